"""S3/MinIO storage client for exported audit records."""

import hashlib
import logging
from io import BytesIO

from minio import Minio
from minio.error import S3Error

from compliance_api.settings import get_settings

logger = logging.getLogger(__name__)


class S3Storage:
    """S3-compatible storage client."""

    def __init__(self, client: Minio = None, bucket: str = None):
        """Initialize storage client."""
        settings = get_settings()
        self.client = client or Minio(
            settings.minio_endpoint,
            access_key=settings.minio_access_key,
            secret_key=settings.minio_secret_key,
            secure=settings.minio_use_ssl,
        )
        self.bucket = bucket or settings.minio_bucket
        self._bucket_ready = False

    def _ensure_bucket(self):
        """Ensure bucket exists."""
        if self._bucket_ready:
            return
        if not self.client.bucket_exists(self.bucket):
            self.client.make_bucket(self.bucket)
        self._bucket_ready = True

    def upload_object(self, object_key: str, data: bytes, content_type: str = "application/json") -> dict:
        """Upload object to storage."""
        self._ensure_bucket()
        sha256_hash = hashlib.sha256(data).hexdigest()

        self.client.put_object(
            self.bucket,
            object_key,
            BytesIO(data),
            len(data),
            content_type=content_type,
        )
        logger.info("Uploaded object", extra={"object_key": object_key, "size": len(data)})

        return {
            "key": object_key,
            "size": len(data),
            "hash": f"sha256:{sha256_hash}",
        }

    def object_exists(self, object_key: str) -> bool:
        try:
            self.client.stat_object(self.bucket, object_key)
            return True
        except S3Error as e:
            if e.code in ("NoSuchKey", "NoSuchBucket", "NoSuchObject"):
                return False
            raise

    def get_object(self, object_key: str) -> bytes:
        """Download object from storage."""
        response = self.client.get_object(self.bucket, object_key)
        try:
            return response.read()
        finally:
            response.close()
            response.release_conn()
