"""S3-compatible object storage for uploaded invoice documents.

Every document lives in the configured bucket under
``<user_id>/<uuid>-<filename>``, and that key is what the invoice row keeps in
``file_path``. The stored copy is what gets attached when an invoice is
entered into an accounting portal.

Based on MinIO Python SDK:
https://min.io/docs/minio/linux/developers/python/API.html
"""

import io
import logging
import mimetypes
import re
import uuid

from minio import Minio
from minio.error import S3Error
from pydantic import BaseModel
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from services.shared.config import Settings
from services.shared.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# Transient S3 failures (throttling, 5xx) are retried; everything else fails fast
_retry_s3 = retry(
    retry=retry_if_exception_type(S3Error),
    stop=stop_after_attempt(3),
    wait=wait_exponential_jitter(initial=1, max=10),
    reraise=True,
)


class StoredDocument(BaseModel):
    """Outcome of putting or fetching one invoice document.

    Attributes:
        success: Whether the object store call succeeded
        object_name: Key of the document in the bucket
        size: Document size in bytes
        data: Document content (fetches only)
        error: Reason the call failed
    """

    success: bool
    object_name: str
    size: int | None = None
    data: bytes | None = None
    error: str | None = None


def document_object_name(user_id: str, filename: str) -> str:
    """Collision-free key for a user's document, keeping a readable file name."""
    safe_name = re.sub(r"[^A-Za-z0-9._-]+", "_", filename).strip("_") or "document"
    return f"{user_id}/{uuid.uuid4().hex}-{safe_name}"


def _describe(e: Exception) -> str:
    if isinstance(e, S3Error):
        return f"S3 error: {e.code} - {e.message}"
    return str(e)


class DocumentStore:
    """Keeps original invoice documents in MinIO."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self._client: Minio | None = None
        self._bucket_ready = False

    def is_available(self) -> bool:
        """True if storage is enabled and credentials are set."""
        return self.settings.storage_enabled and bool(
            self.settings.storage_access_key and self.settings.storage_secret_key
        )

    def _get_client(self) -> Minio:
        """Lazily build the MinIO client.

        Raises:
            ConfigurationError: If storage credentials are not configured
        """
        if self._client is not None:
            return self._client

        if not (self.settings.storage_access_key and self.settings.storage_secret_key):
            raise ConfigurationError(
                "Storage credentials not configured. "
                "Set APP_STORAGE_ACCESS_KEY and APP_STORAGE_SECRET_KEY environment variables."
            )
        self._client = Minio(
            endpoint=self.settings.storage_endpoint,
            access_key=self.settings.storage_access_key,
            secret_key=self.settings.storage_secret_key,
            secure=self.settings.storage_secure,
        )
        logger.info(f"Document store connected to {self.settings.storage_endpoint}")
        return self._client

    def _bucket(self) -> str:
        bucket = self.settings.storage_bucket
        if not self._bucket_ready:
            client = self._get_client()
            if not client.bucket_exists(bucket):
                client.make_bucket(bucket)
                logger.info(f"Created document bucket: {bucket}")
            self._bucket_ready = True
        return bucket

    @_retry_s3
    def _put(self, object_name: str, data: bytes, content_type: str) -> None:
        self._get_client().put_object(
            bucket_name=self._bucket(),
            object_name=object_name,
            data=io.BytesIO(data),
            length=len(data),
            content_type=content_type,
        )

    @_retry_s3
    def _get(self, object_name: str) -> bytes:
        response = self._get_client().get_object(
            bucket_name=self.settings.storage_bucket, object_name=object_name
        )
        try:
            return response.read()
        finally:
            response.close()
            response.release_conn()

    def store_document(
        self,
        user_id: str,
        filename: str,
        data: bytes,
        content_type: str | None = None,
    ) -> StoredDocument:
        """Keep an uploaded document under the user's prefix.

        Args:
            user_id: Owner of the document
            filename: Name the client uploaded the document with
            data: Document bytes
            content_type: MIME type (guessed from ``filename`` if not provided)

        Returns:
            StoredDocument; on failure ``error`` says why and nothing is raised
        """
        object_name = document_object_name(user_id, filename)
        content_type = (
            content_type or mimetypes.guess_type(filename)[0] or "application/octet-stream"
        )

        try:
            self._put(object_name, data, content_type)
        except Exception as e:
            logger.error(f"Failed to store document {object_name}: {e}")
            return StoredDocument(success=False, object_name=object_name, error=_describe(e))

        logger.info(f"Stored document {object_name} ({len(data)} bytes)")
        return StoredDocument(success=True, object_name=object_name, size=len(data))

    def fetch_document(self, object_name: str) -> StoredDocument:
        """Read a stored document back; ``data`` holds its bytes on success."""
        try:
            data = self._get(object_name)
        except S3Error as e:
            logger.error(f"Failed to fetch document {object_name}: {e}")
            return StoredDocument(success=False, object_name=object_name, error=_describe(e))

        return StoredDocument(success=True, object_name=object_name, size=len(data), data=data)
