from dataclasses import dataclass
from datetime import datetime
from itertools import islice
from typing import Optional

from minio import Minio
from minio.error import S3Error

from shared.config.settings import settings


@dataclass(frozen=True)
class StorageObject:
    """One entry of a single-level bucket listing.

    ``name`` is relative to the listed prefix. Folder entries carry no object
    identity (``is_file`` False) and are walked by the caller.
    """

    name: str
    is_file: bool
    size: Optional[int] = None
    last_modified: Optional[datetime] = None


class Storage:
    def __init__(self, bucket: Optional[str] = None):
        endpoint = settings.s3_endpoint_url.replace("http://", "").replace("https://", "")
        self.bucket = bucket or settings.visitor_photos_bucket
        self.client = Minio(
            endpoint,
            access_key=settings.s3_access_key,
            secret_key=settings.s3_secret_key,
            secure=bool(settings.s3_secure),
            region=settings.s3_region,
        )

    def ensure_bucket(self):
        found = self.client.bucket_exists(self.bucket)
        if not found:
            self.client.make_bucket(self.bucket)

    # Listing helpers (used by the orphan-file walk)
    def list(self, prefix: str = "", limit: int = 1000) -> list[StorageObject]:
        """List one directory level under ``prefix``, capped at ``limit`` entries.

        Raises ``S3Error`` (or a transport error) when the listing fails.
        """
        query = f"{prefix.rstrip('/')}/" if prefix else ""
        out: list[StorageObject] = []
        for obj in islice(self.client.list_objects(self.bucket, prefix=query, recursive=False), limit):
            name = obj.object_name[len(query):].rstrip("/")
            if not name:
                continue
            out.append(StorageObject(
                name=name,
                is_file=not obj.is_dir,
                size=obj.size,
                last_modified=obj.last_modified,
            ))
        return out

    def remove_object(self, key: str) -> None:
        """Remove object from bucket. Removing a missing key is not an error."""
        try:
            self.client.remove_object(self.bucket, key)
        except S3Error as e:
            if e.code == "NoSuchKey":
                return
            raise
