"""
Two-way diff between a bucket listing and the file references held in the DB.

Orphan files are storage paths no reference points at; dangling references
are DB values whose storage path is missing from the listing. A path counts as
referenced when it occurs *anywhere* inside a reference value (values are full
public URLs ending in the object path), so a path that is a substring of an
unrelated URL is treated as used. Matching runs on the raw reference text
while dangling detection URL-decodes it, so a file whose name is stored
encoded (``a b.jpg`` referenced as ``.../a%20b.jpg``) is reported as an orphan
even though its reference resolves to it.

Both inputs are read at different moments without a shared snapshot, so the
result is a point-in-time approximation: re-run before deleting at scale.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union
from urllib.parse import unquote

from shared.orphans.references import ReferenceRecord, is_external_url


@dataclass(frozen=True)
class ReconcileOptions:
    bucket: str
    excluded_path_prefixes: Tuple[str, ...] = ()
    external_host_exclusions: Tuple[str, ...] = ()


@dataclass
class OrphanResult:
    orphan_files: List[str] = field(default_factory=list)
    dangling_references: List[ReferenceRecord] = field(default_factory=list)
    counts: Dict[str, int] = field(default_factory=dict)


def is_reserved(path: str, prefixes: Iterable[str]) -> bool:
    return any(path.startswith(p) for p in prefixes)


def extract_storage_path(value: str, bucket: str) -> Optional[str]:
    """Return the bucket-relative path a reference value points at.

    Full URLs yield the text after ``<bucket>/`` (query/fragment dropped).
    Values without a scheme are taken as paths already. URLs that do not
    mention the bucket yield None.
    """
    marker = f"{bucket}/"
    idx = value.find(marker)
    if idx >= 0 and (idx == 0 or value[idx - 1] == "/"):
        path = value[idx + len(marker):]
    elif "://" in value:
        return None
    else:
        path = value
    path = path.split("?", 1)[0].split("#", 1)[0].lstrip("/")
    return unquote(path) or None


def _as_record(ref: Union[ReferenceRecord, str]) -> ReferenceRecord:
    if isinstance(ref, ReferenceRecord):
        return ref
    return ReferenceRecord(id=None, value=ref)


def reconcile(
    storage_paths: Sequence[str],
    references: Iterable[Union[ReferenceRecord, str]],
    options: ReconcileOptions,
) -> OrphanResult:
    records = [_as_record(r) for r in references]
    used: List[ReferenceRecord] = []
    excluded = 0
    for rec in records:
        if is_external_url(rec.value, options.external_host_exclusions):
            excluded += 1
        else:
            used.append(rec)
    used_values = {rec.value for rec in used}

    orphans: List[str] = []
    reserved = 0
    for path in storage_paths:
        if is_reserved(path, options.excluded_path_prefixes):
            reserved += 1
            continue
        if not any(path in value for value in used_values):
            orphans.append(path)

    present = set(storage_paths)
    dangling: List[ReferenceRecord] = []
    unresolved = 0
    for rec in used:
        path = extract_storage_path(rec.value, options.bucket)
        if path is None:
            unresolved += 1
            continue
        if is_reserved(path, options.excluded_path_prefixes):
            continue
        if path not in present:
            dangling.append(rec)

    return OrphanResult(
        orphan_files=orphans,
        dangling_references=dangling,
        counts={
            "storage_files": len(storage_paths),
            "references": len(records),
            "excluded_references": excluded,
            "reserved_files": reserved,
            "orphan_files": len(orphans),
            "dangling_references": len(dangling),
            "unresolved_references": unresolved,
        },
    )
