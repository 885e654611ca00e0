import logging
import time
from functools import lru_cache

from supabase import Client, create_client

from app.core.config import settings

logger = logging.getLogger(__name__)


class StorageError(RuntimeError):
    """Raised when an object storage call fails."""


def timestamp_ms() -> int:
    return int(time.time() * 1000)


def file_extension(filename: str | None) -> str:
    if not filename or "." not in filename:
        return ""
    return filename.rsplit(".", 1)[-1].lower()


def report_file_path(user_id: object, report_id: object, file_type: str, ext: str) -> str:
    return f"{user_id}/{report_id}/{file_type}_{timestamp_ms()}.{ext}"


def budget_file_path(user_id: object, property_id: object, ext: str) -> str:
    return f"{user_id}/budgets/{property_id}_budget_{timestamp_ms()}.{ext}"


def logo_file_path(user_id: object, ext: str) -> str:
    return f"{user_id}/logo-{timestamp_ms()}.{ext}"


class StorageClient:
    """Thin wrapper over Supabase Storage buckets."""

    def __init__(self, client: Client | None = None):
        self._client = client

    @property
    def client(self) -> Client:
        if self._client is None:
            if not settings.SUPABASE_URL or not settings.SUPABASE_SERVICE_KEY:
                raise StorageError("SUPABASE_URL and SUPABASE_SERVICE_KEY must be configured")
            self._client = create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_KEY)
        return self._client

    def upload(self, bucket: str, path: str, data: bytes, content_type: str | None = None) -> str:
        file_options = {"content-type": content_type or "application/octet-stream", "upsert": "false"}
        try:
            self.client.storage.from_(bucket).upload(path, data, file_options=file_options)
        except StorageError:
            raise
        except Exception as exc:
            logger.error("Upload to %s/%s failed: %s", bucket, path, exc)
            raise StorageError(f"Failed to upload file: {exc}") from exc
        return path

    def download(self, bucket: str, path: str) -> bytes:
        try:
            return self.client.storage.from_(bucket).download(path)
        except StorageError:
            raise
        except Exception as exc:
            logger.error("Download of %s/%s failed: %s", bucket, path, exc)
            raise StorageError(f"Failed to download file: {exc}") from exc

    def remove(self, bucket: str, paths: list[str]) -> None:
        paths = [p for p in paths if p]
        if not paths:
            return
        try:
            self.client.storage.from_(bucket).remove(paths)
        except StorageError:
            raise
        except Exception as exc:
            raise StorageError(f"Failed to remove files: {exc}") from exc

    def public_url(self, bucket: str, path: str) -> str:
        return self.client.storage.from_(bucket).get_public_url(path)


def remove_quietly(storage: StorageClient, bucket: str, paths: list[str]) -> None:
    """Remove objects, logging instead of failing; used when the DB row is the source of truth."""
    try:
        storage.remove(bucket, paths)
    except StorageError as exc:
        logger.warning("Could not remove %s from %s: %s", paths, bucket, exc)


@lru_cache
def get_storage() -> StorageClient:
    return StorageClient()
