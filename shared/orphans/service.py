"""
Orphan-file check and cleanup across the visitor and profile buckets.

Each domain pairs a bucket with the DB column that references its objects.
Reference query failures abort the run; storage listing failures only drop
the affected folder (see ``list_all_files``).
"""

import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from structlog import get_logger

from shared.audit.system_log import create_system_log
from shared.config.settings import settings
from shared.db import models
from shared.orphans.cleanup import CleanupResult, cleanup
from shared.orphans.lister import list_all_files
from shared.orphans.reconciler import OrphanResult, ReconcileOptions, reconcile
from shared.orphans.references import collect_reference_records

log = get_logger()


@dataclass(frozen=True)
class OrphanDomain:
    name: str
    bucket: str
    column: object
    excluded_path_prefixes: Tuple[str, ...] = ()


def orphan_domains() -> Tuple[OrphanDomain, ...]:
    return (
        OrphanDomain(
            name="visitor",
            bucket=settings.visitor_photos_bucket,
            column=models.VisitorEntry.profile_photo_url,
        ),
        OrphanDomain(
            name="profile",
            bucket=settings.profiles_bucket,
            column=models.Profile.profile_image_url,
            excluded_path_prefixes=tuple(settings.orphan_reserved_prefixes),
        ),
    )


@dataclass
class DomainScan:
    domain: OrphanDomain
    storage_files: list
    storage_errors: list
    result: OrphanResult
    used_urls: list


def scan_domain(db, domain: OrphanDomain, store) -> DomainScan:
    hosts = tuple(settings.orphan_external_hosts)
    # Raw values; reconcile() drops the external hosts
    records = collect_reference_records(db, domain.column, domain=domain.name)
    errors: list = []
    files = list_all_files(store, limit=settings.orphan_list_limit, errors=errors)
    result = reconcile(
        files,
        records,
        ReconcileOptions(
            bucket=domain.bucket,
            excluded_path_prefixes=domain.excluded_path_prefixes,
            external_host_exclusions=hosts,
        ),
    )
    return DomainScan(
        domain=domain,
        storage_files=files,
        storage_errors=errors,
        result=result,
        used_urls=sorted({r.value for r in records}),
    )


def check_orphans(db, store_factory: Callable[[str], object]) -> dict:
    """Read-only report for the admin settings screen."""
    started = time.perf_counter()
    scans: Dict[str, DomainScan] = {}
    for domain in orphan_domains():
        scans[domain.name] = scan_domain(db, domain, store_factory(domain.bucket))

    report = {}
    debug = {}
    for name, scan in scans.items():
        report[f"{name}Orphans"] = scan.result.orphan_files
        report[f"{name}OrphanCount"] = len(scan.result.orphan_files)
        report[f"{name}DbOrphans"] = [
            {"id": str(r.id) if r.id is not None else None, "url": r.value}
            for r in scan.result.dangling_references
        ]
        debug[name] = {
            "usedUrls": scan.used_urls,
            "usedUrlCount": len(scan.used_urls),
            "storageFiles": scan.storage_files,
            "storageFileCount": len(scan.storage_files),
            "storageErrors": scan.storage_errors,
            "counts": scan.result.counts,
        }
    report["debug"] = debug
    log.info(
        "orphan_check_completed",
        visitor_orphans=report["visitorOrphanCount"],
        profile_orphans=report["profileOrphanCount"],
        duration_ms=int((time.perf_counter() - started) * 1000),
    )
    return report


def cleanup_orphans(
    db,
    store_factory: Callable[[str], object],
    actor=None,
    ip: Optional[str] = None,
    user_agent: Optional[str] = None,
    cleanup_type: str = "manual",
) -> dict:
    """Delete orphan files in every domain and record one audit row.

    On failure an error audit row is written and the exception re-raised.
    """
    results: Dict[str, CleanupResult] = {}
    try:
        for domain in orphan_domains():
            store = store_factory(domain.bucket)
            scan = scan_domain(db, domain, store)
            results[domain.name] = cleanup(
                store,
                scan.result.orphan_files,
                total=len(scan.storage_files),
            )
    except Exception as e:
        log.exception("orphan_cleanup_failed", error_type=type(e).__name__)
        # A failed query leaves the transaction aborted; the audit insert needs a fresh one
        db.rollback()
        create_system_log(
            db,
            "ORPHAN_FILE_CLEANUP_ERROR",
            "Orphan file cleanup failed",
            level="error",
            user=actor,
            resource_type="system",
            metadata={
                "error": str(e)[:500],
                "error_type": type(e).__name__,
                "cleanup_type": cleanup_type,
                "userAgent": user_agent,
                "ip": ip,
            },
            ip=ip,
            user_agent=user_agent,
        )
        raise

    total_deleted = sum(r.deleted for r in results.values())
    create_system_log(
        db,
        "ORPHAN_FILE_CLEANUP",
        f"Orphan file cleanup completed: {total_deleted} files deleted",
        level="info",
        user=actor,
        resource_type="system",
        metadata={
            "visitor_deleted": results["visitor"].deleted,
            "visitor_total": results["visitor"].total,
            "profile_deleted": results["profile"].deleted,
            "profile_total": results["profile"].total,
            "total_deleted": total_deleted,
            "cleanup_type": cleanup_type,
            "userAgent": user_agent,
            "ip": ip,
        },
        ip=ip,
        user_agent=user_agent,
    )
    log.info("orphan_cleanup_completed", total_deleted=total_deleted)
    return {
        "success": True,
        "message": f"{total_deleted} orphan files were cleaned up.",
        "results": {name: r.as_dict() for name, r in results.items()},
    }
