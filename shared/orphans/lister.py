from typing import List, Optional

from structlog import get_logger

log = get_logger()

DEFAULT_LIST_LIMIT = 1000


def list_all_files(store, prefix: str = "", limit: int = DEFAULT_LIST_LIMIT, errors: Optional[list] = None) -> List[str]:
    """Walk every folder under ``prefix`` and return bucket-relative file paths.

    ``store`` needs ``bucket`` and ``list(prefix, limit)``. A folder whose
    listing fails is logged and contributes no files; the rest of the tree is
    still walked, so the result can under-report. Failed prefixes are appended
    to ``errors`` when given.
    """
    files: List[str] = []
    pending = [prefix]
    while pending:
        current = pending.pop()
        try:
            entries = store.list(current, limit=limit)
        except Exception as e:
            log.error(
                "storage_list_failed",
                bucket=getattr(store, "bucket", None),
                prefix=current,
                error=str(e),
                error_type=type(e).__name__,
            )
            if errors is not None:
                errors.append({"prefix": current, "error": type(e).__name__})
            continue

        folders = []
        for entry in entries or []:
            path = f"{current}/{entry.name}" if current else entry.name
            if entry.is_file:
                files.append(path)
            else:
                folders.append(path)
        # Reversed so pop() visits folders in listing order (depth-first)
        pending.extend(reversed(folders))
    return files
