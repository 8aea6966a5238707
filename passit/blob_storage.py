"""
Image storage for listing photos, profile photos and chat images.

`FirebaseBlobStorage` uploads to the project's Cloud Storage bucket through
`firebase_admin.storage` and hands out token-based download URLs, the same
form the Firebase client SDKs return. `InMemoryBlobStorage` is the test
double. Deletes are best-effort: failures are logged, never raised.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol
from urllib.parse import quote, unquote, urlparse

from firebase_admin import storage as firebase_storage

from passit.errors import NotFoundError
from shared.firebase_constants import (
    CHAT_IMAGES_FOLDER,
    LISTING_IMAGES_FOLDER,
    PROFILE_PHOTOS_FOLDER,
)
from shared.formatting import now_millis

logger = logging.getLogger(__name__)

DOWNLOAD_HOST = "firebasestorage.googleapis.com"
DOWNLOAD_TOKEN_KEY = "firebaseStorageDownloadTokens"
IMAGE_CONTENT_TYPE = "image/jpeg"


def listing_image_path(listing_id: str, index: int, timestamp: int) -> str:
    return f"{LISTING_IMAGES_FOLDER}/{listing_id}/listing_{listing_id}_{index}_{timestamp}.jpg"


def profile_photo_path(user_id: str, timestamp: int) -> str:
    return f"{PROFILE_PHOTOS_FOLDER}/{user_id}/profile_{user_id}_{timestamp}.jpg"


def chat_image_path(chat_room_id: str, timestamp: int, unique_id: str) -> str:
    return (
        f"{CHAT_IMAGES_FOLDER}/{chat_room_id}/"
        f"chat_{chat_room_id}_{timestamp}_{unique_id}.jpg"
    )


def download_url(bucket_name: str, path: str, token: str) -> str:
    return (
        f"https://{DOWNLOAD_HOST}/v0/b/{bucket_name}/o/{quote(path, safe='')}"
        f"?alt=media&token={token}"
    )


def storage_path_from_url(url: str) -> str:
    """
    Returns the object path encoded in a download URL or `gs://` URL.

    Raises:
        ValueError: If `url` is not a storage URL.
    """
    parsed = urlparse(url or "")
    if parsed.scheme == "gs" and parsed.path.strip("/"):
        return parsed.path.lstrip("/")
    if parsed.netloc == DOWNLOAD_HOST and "/o/" in parsed.path:
        encoded = parsed.path.split("/o/", 1)[1]
        if encoded:
            return unquote(encoded)
    raise ValueError(f"Not a storage URL: {url!r}")


class BlobStorage(Protocol):
    """Operations the image repository needs from object storage."""

    def upload_listing_image(self, local_path: str, listing_id: str, index: int) -> str:
        ...

    def upload_listing_images(self, local_paths: List[str], listing_id: str) -> List[str]:
        ...

    def upload_profile_photo(self, local_path: str, user_id: str) -> str:
        ...

    def upload_chat_image(self, local_path: str, chat_room_id: str) -> str:
        ...

    def delete_image(self, image_url: str) -> None:
        ...

    def delete_listing_images(self, listing_id: str) -> None:
        ...

    def delete_old_profile_photos(self, user_id: str, current_photo_url: str) -> None:
        ...

    def get_download_url(self, storage_path: str) -> str:
        ...


class _ImageFolders:
    """
    Path layout and best-effort deletes shared by both storage backends.

    Subclasses provide `upload_file`, `delete_path`, `list_paths` and
    `get_download_url`.
    """

    def upload_file(self, local_path: str, dest_path: str) -> str:
        raise NotImplementedError

    def delete_path(self, path: str) -> None:
        raise NotImplementedError

    def list_paths(self, prefix: str) -> List[str]:
        raise NotImplementedError

    def upload_listing_image(self, local_path: str, listing_id: str, index: int) -> str:
        return self.upload_file(local_path, listing_image_path(listing_id, index, now_millis()))

    def upload_listing_images(self, local_paths: List[str], listing_id: str) -> List[str]:
        return [
            self.upload_listing_image(path, listing_id, index)
            for index, path in enumerate(local_paths)
        ]

    def upload_profile_photo(self, local_path: str, user_id: str) -> str:
        return self.upload_file(local_path, profile_photo_path(user_id, now_millis()))

    def upload_chat_image(self, local_path: str, chat_room_id: str) -> str:
        return self.upload_file(
            local_path, chat_image_path(chat_room_id, now_millis(), str(uuid.uuid4()))
        )

    def delete_image(self, image_url: str) -> None:
        try:
            self.delete_path(storage_path_from_url(image_url))
        except Exception as exc:
            logger.warning("Failed to delete image %s: %s", image_url, exc)

    def delete_listing_images(self, listing_id: str) -> None:
        try:
            for path in self.list_paths(f"{LISTING_IMAGES_FOLDER}/{listing_id}/"):
                self.delete_path(path)
        except Exception as exc:
            logger.warning("Failed to delete listing images for %s: %s", listing_id, exc)

    def delete_old_profile_photos(self, user_id: str, current_photo_url: str) -> None:
        try:
            current_path = storage_path_from_url(current_photo_url)
        except ValueError:
            current_path = None
        try:
            for path in self.list_paths(f"{PROFILE_PHOTOS_FOLDER}/{user_id}/"):
                if path != current_path:
                    self.delete_path(path)
        except Exception as exc:
            logger.warning("Failed to delete old profile photos for %s: %s", user_id, exc)


@dataclass
class FirebaseBlobStorage(_ImageFolders):
    """Firebase Storage (Cloud Storage bucket) client."""

    bucket_name: Optional[str] = None
    storage_module: Any = firebase_storage

    def _bucket(self):
        return self.storage_module.bucket(self.bucket_name)

    def upload_file(self, local_path: str, dest_path: str) -> str:
        bucket = self._bucket()
        token = str(uuid.uuid4())
        blob = bucket.blob(dest_path)
        blob.metadata = {DOWNLOAD_TOKEN_KEY: token}
        blob.upload_from_filename(local_path, content_type=IMAGE_CONTENT_TYPE)
        return download_url(bucket.name, dest_path, token)

    def delete_path(self, path: str) -> None:
        self._bucket().blob(path).delete()

    def list_paths(self, prefix: str) -> List[str]:
        return [blob.name for blob in self._bucket().list_blobs(prefix=prefix)]

    def get_download_url(self, storage_path: str) -> str:
        bucket = self._bucket()
        blob = bucket.get_blob(storage_path)
        if blob is None:
            raise NotFoundError(f"No object at {storage_path}")
        tokens = (blob.metadata or {}).get(DOWNLOAD_TOKEN_KEY)
        if tokens:
            token = tokens.split(",")[0]
        else:
            token = str(uuid.uuid4())
            blob.metadata = {**(blob.metadata or {}), DOWNLOAD_TOKEN_KEY: token}
            blob.patch()
        return download_url(bucket.name, storage_path, token)


@dataclass
class InMemoryBlobStorage(_ImageFolders):
    """Test double for image storage interactions."""

    bucket_name: str = "passit-test.appspot.com"
    stored_objects: Dict[str, bytes] = field(default_factory=dict)
    tokens: Dict[str, str] = field(default_factory=dict)

    def upload_file(self, local_path: str, dest_path: str) -> str:
        with open(local_path, "rb") as f:
            self.stored_objects[dest_path] = f.read()
        self.tokens[dest_path] = str(uuid.uuid4())
        return download_url(self.bucket_name, dest_path, self.tokens[dest_path])

    def delete_path(self, path: str) -> None:
        if path not in self.stored_objects:
            raise FileNotFoundError(path)
        del self.stored_objects[path]
        self.tokens.pop(path, None)

    def list_paths(self, prefix: str) -> List[str]:
        return sorted(path for path in self.stored_objects if path.startswith(prefix))

    def get_download_url(self, storage_path: str) -> str:
        if storage_path not in self.stored_objects:
            raise NotFoundError(f"No object at {storage_path}")
        return download_url(self.bucket_name, storage_path, self.tokens[storage_path])
