# cozytown/photos.py
from __future__ import annotations

import logging
import threading
import uuid
from typing import Dict, Optional, Protocol, Tuple

import httpx
from storage3.utils import StorageException
from supabase import Client, create_client

from .errors import NotFound, StorageError, ValidationFailed

log = logging.getLogger(__name__)

MAX_PHOTO_BYTES = 10 * 1024 * 1024

EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
}


def photo_path(user_id: str, content_type: str) -> str:
    ext = EXTENSIONS.get(content_type)
    if ext is None:
        raise ValidationFailed(f"Unsupported photo type: {content_type}")
    return f"{user_id}/{uuid.uuid4()}.{ext}"


def check_photo(data: bytes, content_type: str) -> None:
    if content_type not in EXTENSIONS:
        raise ValidationFailed(f"Unsupported photo type: {content_type}")
    if not data:
        raise ValidationFailed("Photo is empty")
    if len(data) > MAX_PHOTO_BYTES:
        raise ValidationFailed("Photo is larger than 10 MB")


class PhotoStore(Protocol):
    def upload(self, user_id: str, data: bytes, content_type: str) -> str: ...


class MemoryPhotoStore:
    """Keeps uploads in process; the API serves them back under /photos/."""

    def __init__(self, base_url: str):
        self.base_url = base_url.rstrip("/")
        self._lock = threading.Lock()
        self._blobs: Dict[str, Tuple[bytes, str]] = {}

    def upload(self, user_id: str, data: bytes, content_type: str) -> str:
        check_photo(data, content_type)
        path = photo_path(user_id, content_type)
        with self._lock:
            self._blobs[path] = (data, content_type)
        return f"{self.base_url}/photos/{path}"

    def get(self, path: str) -> Tuple[bytes, str]:
        with self._lock:
            blob = self._blobs.get(path)
        if blob is None:
            raise NotFound("Photo not found")
        return blob


class SupabasePhotoStore:
    def __init__(self, url: str, key: str, bucket: str, client: Optional[Client] = None):
        self.bucket = bucket
        self.client = client or create_client(url, key)

    def upload(self, user_id: str, data: bytes, content_type: str) -> str:
        check_photo(data, content_type)
        path = photo_path(user_id, content_type)
        storage = self.client.storage.from_(self.bucket)
        try:
            storage.upload(path, data, {"content-type": content_type})
        except (StorageException, httpx.HTTPError) as e:
            log.error("photo upload to %s failed: %s", self.bucket, e)
            raise StorageError(str(e)) from e
        return storage.get_public_url(path)
