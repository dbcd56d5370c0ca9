"""
MinIO-backed object storage for profile pictures and meeting files.

Key uniqueness is the caller's job; this layer only moves bytes. Every client
failure surfaces as ``DependencyFailureError`` so services can treat the
store as one opaque collaborator.
"""
import gzip
import logging
import os
import shutil
import tempfile
from dataclasses import dataclass
from datetime import timedelta
from typing import BinaryIO, Optional

from minio import Minio
from minio.error import MinioException, S3Error
from urllib3.exceptions import HTTPError

from meetinghub.core import config
from meetinghub.core.errors import DependencyFailureError

logger = logging.getLogger(__name__)

GZIP_CONTENT_TYPE = "application/gzip"


@dataclass
class UploadedFile:
    """A file received from a client, still unread."""

    filename: str
    content_type: str
    size: int
    stream: BinaryIO


def from_upload_file(upload) -> UploadedFile:
    """Wrap a FastAPI ``UploadFile``, measuring it when the client sent no size."""
    size = upload.size
    if size is None:
        upload.file.seek(0, os.SEEK_END)
        size = upload.file.tell()
        upload.file.seek(0)
    return UploadedFile(
        filename=upload.filename or "file",
        content_type=upload.content_type or "application/octet-stream",
        size=size,
        stream=upload.file,
    )


class ObjectStore:
    def __init__(self, client: Minio, public_client: Optional[Minio] = None,
                 compression_limit: int = config.COMPRESSION_FILE_SIZE_LIMIT):
        self.client = client
        self.public_client = public_client or client
        self.compression_limit = compression_limit
        self._known_buckets = set()

    def _ensure_bucket(self, bucket: str) -> None:
        if bucket in self._known_buckets:
            return
        if not self.client.bucket_exists(bucket_name=bucket):
            self.client.make_bucket(bucket_name=bucket)
            logger.info("Created bucket %s", bucket)
        self._known_buckets.add(bucket)

    def put(self, bucket: str, key: str, upload: UploadedFile, allow_compression: bool = False) -> None:
        try:
            self._ensure_bucket(bucket)
            if allow_compression and upload.size > self.compression_limit:
                self._put_compressed(bucket, key, upload)
            else:
                self.client.put_object(
                    bucket_name=bucket,
                    object_name=key,
                    data=upload.stream,
                    length=upload.size,
                    content_type=upload.content_type,
                )
        except (MinioException, HTTPError) as exc:
            logger.error("Failed to store object %s in bucket %s: %s", key, bucket, exc)
            raise DependencyFailureError(f"Could not store '{upload.filename}'.") from exc

    def _put_compressed(self, bucket: str, key: str, upload: UploadedFile) -> None:
        # Spill to disk past the threshold rather than holding the whole payload in memory
        with tempfile.SpooledTemporaryFile(max_size=self.compression_limit) as spool:
            with gzip.GzipFile(fileobj=spool, mode="wb") as gz:
                shutil.copyfileobj(upload.stream, gz)
            compressed_size = spool.tell()
            spool.seek(0)
            self.client.put_object(
                bucket_name=bucket,
                object_name=key,
                data=spool,
                length=compressed_size,
                content_type=GZIP_CONTENT_TYPE,
            )
        logger.info("Stored %s compressed (%d -> %d bytes)", key, upload.size, compressed_size)

    def delete(self, bucket: str, key: str) -> None:
        try:
            self.client.remove_object(bucket_name=bucket, object_name=key)
        except S3Error as exc:
            if exc.code in ("NoSuchKey", "NoSuchBucket"):
                logger.warning("Object %s was already absent from bucket %s", key, bucket)
                return
            logger.error("Failed to delete object %s from bucket %s: %s", key, bucket, exc)
            raise DependencyFailureError(f"Could not delete object '{key}'.") from exc
        except (MinioException, HTTPError) as exc:
            logger.error("Failed to delete object %s from bucket %s: %s", key, bucket, exc)
            raise DependencyFailureError(f"Could not delete object '{key}'.") from exc

    def presigned_get_url(self, bucket: str, key: str, expires_seconds: int = 300) -> str:
        try:
            return self.public_client.presigned_get_object(
                bucket_name=bucket,
                object_name=key,
                expires=timedelta(seconds=expires_seconds),
            )
        except (MinioException, HTTPError) as exc:
            raise DependencyFailureError(f"Could not sign a URL for '{key}'.") from exc


def create_object_store() -> ObjectStore:
    client = Minio(
        config.MINIO_ENDPOINT,
        access_key=config.MINIO_ACCESS_KEY,
        secret_key=config.MINIO_SECRET_KEY,
        secure=config.MINIO_SECURE,
    )
    public_client = None
    if config.MINIO_PUBLIC_ENDPOINT:
        # Region is fixed so signing never calls out to the public host
        public_client = Minio(
            config.MINIO_PUBLIC_ENDPOINT,
            access_key=config.MINIO_ACCESS_KEY,
            secret_key=config.MINIO_SECRET_KEY,
            secure=config.MINIO_PUBLIC_SECURE,
            region=config.MINIO_REGION,
        )
    return ObjectStore(client, public_client)


_store: Optional[ObjectStore] = None


def get_object_store() -> ObjectStore:
    global _store
    if _store is None:
        _store = create_object_store()
    return _store
