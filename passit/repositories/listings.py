"""
Listing repository: the cache is the source of truth for observers.
"""

from __future__ import annotations

import logging
from concurrent.futures import Executor, Future
from dataclasses import replace
from typing import Callable, List, Optional

from passit.cache import ListingQuery, LocalCache
from passit.live import Subscription
from passit.remote import RemoteDataSource
from passit.repositories.background import submit_refresh
from shared.formatting import now_millis
from shared.types import Category, Listing

logger = logging.getLogger(__name__)


class ListingRepository:
    def __init__(
        self,
        cache: LocalCache,
        remote: RemoteDataSource,
        executor: Optional[Executor] = None,
    ):
        self.cache = cache
        self.remote = remote
        # None runs refreshes inline on the calling thread.
        self.executor = executor

    def observe_listings(
        self,
        callback: Callable[[List[Listing]], None],
        category: Optional[Category] = None,
    ) -> Subscription:
        """
        Streams unsold listings (optionally for one category) from the cache,
        newest first, and refreshes the cache from the remote store.
        """
        self.refresh_listings(category)
        return self.cache.observe_listings(ListingQuery(category=category), callback)

    def refresh_listings(self, category: Optional[Category] = None) -> Future:
        def _refresh():
            if category is not None:
                listings = self.remote.get_listings_by_category(category)
            else:
                listings = self.remote.get_all_listings()
            self.cache.upsert_listings(listings)

        return submit_refresh(self.executor, _refresh, "sync listings")

    def refresh_user_listings(self, user_id: str) -> Future:
        return submit_refresh(
            self.executor,
            lambda: self.cache.upsert_listings(self.remote.get_listings_by_seller(user_id)),
            "sync user listings",
        )

    def get_listing(self, listing_id: str) -> Listing:
        cached = self.cache.get_listing(listing_id)
        if cached is not None:
            return cached
        listing = self.remote.get_listing(listing_id)
        self.cache.upsert_listing(listing)
        return listing

    def observe_user_listings(
        self, user_id: str, callback: Callable[[List[Listing]], None]
    ) -> Subscription:
        """Streams every listing by `user_id`, sold ones included."""
        self.refresh_user_listings(user_id)
        return self.cache.observe_listings(ListingQuery(seller_id=user_id), callback)

    def search_listings(
        self, query: str, callback: Callable[[List[Listing]], None]
    ) -> Subscription:
        return self.cache.observe_listings(ListingQuery(title_query=query), callback)

    def create_listing(self, listing: Listing, seller_id: str) -> str:
        listing_id = self.remote.create_listing(listing, seller_id)
        now = now_millis()
        self.cache.upsert_listing(
            replace(
                listing,
                id=listing_id,
                seller_id=seller_id,
                created_timestamp=now,
                updated_timestamp=now,
                is_sold=False,
            )
        )
        return listing_id

    def update_listing(self, listing: Listing) -> None:
        self.remote.update_listing(listing)
        self.cache.upsert_listing(replace(listing, updated_timestamp=now_millis()))

    def delete_listing(self, listing_id: str) -> None:
        self.remote.delete_listing(listing_id)
        self.cache.delete_listing(listing_id)

    def mark_as_sold(self, listing_id: str) -> None:
        listing = self.get_listing(listing_id)
        self.update_listing(replace(listing, is_sold=True))
