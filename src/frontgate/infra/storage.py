"""S3 blob storage for visitor photos and company logos."""

from __future__ import annotations

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from frontgate.domain.errors import StorageError
from frontgate.infra.settings import Settings, get_settings
from frontgate.observability.logging import get_logger
from frontgate.observability.redaction import safe_log_context

logger = get_logger(__name__)


class BlobStorage:
    """Uploads objects under deterministic keys and returns their public URL."""

    def __init__(
        self,
        bucket: str | None,
        region: str | None = None,
        endpoint_url: str | None = None,
        public_base_url: str | None = None,
        client=None,
    ) -> None:
        self.bucket = bucket
        self.region = region
        self.endpoint_url = endpoint_url
        self.public_base_url = public_base_url
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "BlobStorage":
        s = settings or get_settings()
        return cls(
            bucket=s.s3_bucket,
            region=s.aws_region,
            endpoint_url=s.s3_endpoint_url,
            public_base_url=s.s3_public_base_url,
        )

    @property
    def client(self):
        if self._client is None:
            config = Config(
                region_name=self.region,
                signature_version="s3v4",
                retries={"max_attempts": 3, "mode": "standard"},
                connect_timeout=5,
                read_timeout=30,
            )
            self._client = boto3.client("s3", config=config, endpoint_url=self.endpoint_url)
        return self._client

    def public_url(self, key: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url.rstrip('/')}/{key}"
        if self.endpoint_url:
            return f"{self.endpoint_url.rstrip('/')}/{self.bucket}/{key}"
        region = self.region or "us-east-1"
        return f"https://{self.bucket}.s3.{region}.amazonaws.com/{key}"

    def upload(self, data: bytes, mime_type: str, key: str) -> str:
        """Store ``data`` at ``key``.

        Returns:
            Public URL of the stored object.

        Raises:
            StorageError: Bucket not configured or the upload failed.
        """
        if not self.bucket:
            raise StorageError("Blob storage not configured")
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=mime_type,
            )
        except (ClientError, BotoCoreError) as exc:
            logger.error(
                "blob upload failed",
                exc_info=True,
                extra={"extra_fields": safe_log_context(key=key, error_type=type(exc).__name__)},
            )
            raise StorageError("Could not store file, please try again") from exc

        return self.public_url(key)


def get_storage() -> BlobStorage:
    """FastAPI dependency: storage client built from process settings."""
    return BlobStorage.from_settings()


MAX_IMAGE_BYTES = 5 * 1024 * 1024


def validate_image(field: str, mime_type: str | None, data: bytes) -> None:
    """Reject non-image or oversized uploads.

    Raises:
        InvalidInputError: With the offending field name.
    """
    from frontgate.domain.errors import InvalidInputError

    if not data:
        raise InvalidInputError.single(field, f"{field.capitalize()} is required")
    if not (mime_type or "").startswith("image/"):
        raise InvalidInputError.single(field, "Only image files are allowed")
    if len(data) > MAX_IMAGE_BYTES:
        raise InvalidInputError.single(field, "Image must be 5 MB or smaller")
