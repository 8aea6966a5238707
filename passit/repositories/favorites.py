"""
Favorites repository.
"""

from __future__ import annotations

from dataclasses import replace
from typing import List

from passit.cache import LocalCache
from passit.remote import RemoteDataSource
from shared.types import Favorite


class FavoriteRepository:
    def __init__(self, cache: LocalCache, remote: RemoteDataSource):
        self.cache = cache
        self.remote = remote

    def toggle_favorite(self, user_id: str, listing_id: str) -> bool:
        """Adds or removes the favorite; returns True if it is now a favorite."""
        favorited = self.remote.toggle_favorite(user_id, listing_id)
        cached = self.cache.get_listing(listing_id)
        if cached is not None:
            delta = 1 if favorited else -1
            self.cache.upsert_listing(
                replace(cached, favorite_count=max(cached.favorite_count + delta, 0))
            )
        return favorited

    def get_favorites(self, user_id: str) -> List[Favorite]:
        return self.remote.get_favorites(user_id)

    def is_favorite(self, user_id: str, listing_id: str) -> bool:
        return self.remote.is_favorite(user_id, listing_id)
