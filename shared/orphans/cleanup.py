from dataclasses import dataclass
from typing import Iterable, Optional

from structlog import get_logger

log = get_logger()


@dataclass
class CleanupResult:
    deleted: int = 0
    total: int = 0

    def as_dict(self) -> dict:
        return {"deleted": self.deleted, "total": self.total}


def cleanup(store, orphan_paths: Iterable[str], total: Optional[int] = None) -> CleanupResult:
    """Delete each orphan path; failures are logged and skipped.

    ``deleted`` counts confirmed deletions only. ``total`` defaults to the
    number of paths attempted (callers pass the bucket file count instead).
    """
    paths = list(orphan_paths)
    deleted = 0
    for path in paths:
        try:
            store.remove_object(path)
        except Exception as e:
            log.error(
                "orphan_delete_failed",
                bucket=getattr(store, "bucket", None),
                path=path,
                error=str(e),
                error_type=type(e).__name__,
            )
            continue
        deleted += 1
        log.info("orphan_deleted", bucket=getattr(store, "bucket", None), path=path)
    return CleanupResult(deleted=deleted, total=len(paths) if total is None else total)
