"""
Image repository: uploads and best-effort deletes.
"""

from __future__ import annotations

import logging
from typing import Iterable, List

from passit.blob_storage import BlobStorage

logger = logging.getLogger(__name__)


class ImageRepository:
    def __init__(self, storage: BlobStorage):
        self.storage = storage

    def upload_listing_images(self, local_paths: List[str], listing_id: str) -> List[str]:
        """Uploads photos in order; the returned URLs keep the same order."""
        return [
            self.storage.upload_listing_image(path, listing_id, index)
            for index, path in enumerate(local_paths)
        ]

    def upload_listing_image(self, local_path: str, listing_id: str, index: int) -> str:
        return self.storage.upload_listing_image(local_path, listing_id, index)

    def upload_profile_photo(self, local_path: str, user_id: str) -> str:
        return self.storage.upload_profile_photo(local_path, user_id)

    def upload_chat_image(self, local_path: str, chat_room_id: str) -> str:
        return self.storage.upload_chat_image(local_path, chat_room_id)

    def delete_image(self, image_url: str) -> None:
        self.storage.delete_image(image_url)

    def delete_listing_images(self, image_urls: Iterable[str]) -> None:
        for url in image_urls:
            try:
                self.storage.delete_image(url)
            except Exception as exc:
                logger.warning("Failed to delete image %s: %s", url, exc)

    def delete_listing_folder(self, listing_id: str) -> None:
        """Removes everything uploaded under the listing's folder, best-effort."""
        self.storage.delete_listing_images(listing_id)

    def delete_old_profile_photos(self, user_id: str, current_photo_url: str) -> None:
        self.storage.delete_old_profile_photos(user_id, current_photo_url)
