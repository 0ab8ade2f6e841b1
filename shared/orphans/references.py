from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Optional, Set

from sqlalchemy.exc import SQLAlchemyError
from structlog import get_logger

from shared.errors import BusinessError

log = get_logger()


@dataclass(frozen=True)
class ReferenceRecord:
    """A stored file URL/path and the primary key of the row holding it."""

    id: Any
    value: str


def is_external_url(value: str, hosts: Iterable[str]) -> bool:
    """True for values hosted outside our storage (e.g. social-login avatars)."""
    return any(host and host in value for host in hosts)


def collect_reference_records(
    db,
    column,
    exclude: Optional[Callable[[str], bool]] = None,
    domain: Optional[str] = None,
) -> List[ReferenceRecord]:
    """Load every non-empty value of ``column`` with its row id.

    ``column`` is a mapped attribute such as ``VisitorEntry.profile_photo_url``.
    Query failures raise ``BusinessError`` and abort the run.
    """
    pk = column.class_.id
    try:
        rows = (
            db.query(pk, column)
            .filter(column.isnot(None), column != "")
            .all()
        )
    except SQLAlchemyError as e:
        log.error("reference_query_failed", domain=domain, column=str(column), error=str(e))
        raise BusinessError("ORPHAN_REFERENCE_QUERY_FAILED", {"domain": domain or str(column)}) from e

    records = []
    for row_id, value in rows:
        if not value:
            continue
        if exclude is not None and exclude(value):
            continue
        records.append(ReferenceRecord(id=row_id, value=value))
    return records


def collect_references(db, column, exclude: Optional[Callable[[str], bool]] = None) -> Set[str]:
    return {r.value for r in collect_reference_records(db, column, exclude)}
