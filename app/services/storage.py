"""S3 access to stored session audio."""

from __future__ import annotations

import mimetypes
from typing import Any, Optional

from botocore.exceptions import BotoCoreError, ClientError
from fastapi.concurrency import run_in_threadpool

from app.application.interfaces import AudioStoreInterface
from app.config.settings import settings
from app.services.aws import create_boto3_client


class StorageError(RuntimeError):
    """Raised when session audio cannot be read from S3."""


def _guess_content_type(key: str) -> str:
    guessed, _ = mimetypes.guess_type(key)
    return guessed or "application/octet-stream"


class S3AudioStore(AudioStoreInterface):
    """Read recordings uploaded by the client from the configured bucket."""

    def __init__(self, *, client: Any | None = None, bucket: str | None = None) -> None:
        self._client = client or create_boto3_client("s3", region_name=settings.s3.region)
        self._bucket = bucket or settings.s3.bucket_name

    async def fetch_audio(self, storage_path: str) -> tuple[bytes, str]:
        """Download the object and return (bytes, content_type)."""

        if not self._bucket:
            raise StorageError("S3 bucket name is not configured.")
        if not storage_path:
            raise StorageError("Recording has no storage path.")

        def _download() -> tuple[bytes, str]:
            response = self._client.get_object(Bucket=self._bucket, Key=storage_path)
            body = response["Body"].read()
            content_type = response.get("ContentType") or _guess_content_type(storage_path)
            return body, content_type

        try:
            audio_bytes, content_type = await run_in_threadpool(_download)
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Failed to download recording audio: {exc}") from exc

        if not audio_bytes:
            raise StorageError(f"Stored audio at {storage_path} is empty.")
        return audio_bytes, content_type

    async def presigned_url(self, storage_path: str) -> Optional[str]:
        if not self._bucket or not storage_path:
            return None
        try:
            return await run_in_threadpool(
                self._client.generate_presigned_url,
                "get_object",
                Params={"Bucket": self._bucket, "Key": storage_path},
                ExpiresIn=settings.s3.presigned_url_expiration,
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Failed to sign recording URL: {exc}") from exc


__all__ = ["S3AudioStore", "StorageError"]
