"""
User profile repository.
"""

from __future__ import annotations

import logging
from concurrent.futures import Executor, Future
from dataclasses import replace
from typing import Callable, List, Optional

from passit.cache import LocalCache
from passit.errors import NotFoundError
from passit.live import ErrorCallback, Subscription
from passit.remote import RemoteDataSource
from passit.repositories.background import submit_refresh
from shared.formatting import now_millis
from shared.types import User

logger = logging.getLogger(__name__)


class UserRepository:
    def __init__(
        self,
        cache: LocalCache,
        remote: RemoteDataSource,
        executor: Optional[Executor] = None,
    ):
        self.cache = cache
        self.remote = remote
        self.executor = executor

    def observe_user(
        self,
        user_id: str,
        callback: Callable[[User], None],
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        """
        Streams the cached profile for `user_id` and refreshes it remotely.

        While the cache holds no row for the user, `on_error` receives a
        `NotFoundError`; the stream stays open and delivers the profile once
        it arrives.
        """

        def _deliver(user: Optional[User]) -> None:
            if user is not None:
                callback(user)
            elif on_error:
                on_error(NotFoundError(f"User {user_id} not found"))

        subscription = self.cache.observe_user(user_id, _deliver)
        self.refresh_user(user_id)
        return subscription

    def sync_user(self, user_id: str) -> User:
        """Fetches the remote profile and stores it in the cache."""
        user = self.remote.get_user(user_id)
        self.cache.upsert_user(user)
        return user

    def refresh_user(self, user_id: str) -> Future:
        return submit_refresh(self.executor, lambda: self.sync_user(user_id), "sync user")

    def get_user(self, user_id: str) -> User:
        cached = self.cache.get_user(user_id)
        if cached is not None:
            return cached
        return self.sync_user(user_id)

    def create_user(self, user: User) -> None:
        self.remote.create_user(user)
        self.cache.upsert_user(user)

    def update_user(self, user: User) -> None:
        self.remote.update_user(user)
        self.cache.upsert_user(user)

    def delete_user(self, user_id: str) -> None:
        self.remote.delete_user(user_id)
        self.cache.delete_user(user_id)

    def update_online_status(self, user_id: str, is_online: bool) -> User:
        user = replace(self.get_user(user_id), is_online=is_online, last_seen=now_millis())
        self.update_user(user)
        return user

    def follow_user(self, follower_id: str, target_id: str) -> None:
        self.remote.follow_user(follower_id, target_id)
        self.refresh_user(target_id)
        self.refresh_user(follower_id)

    def unfollow_user(self, follower_id: str, target_id: str) -> None:
        self.remote.unfollow_user(follower_id, target_id)
        self.refresh_user(target_id)
        self.refresh_user(follower_id)

    def is_following(self, follower_id: str, target_id: str) -> bool:
        return self.remote.is_following(follower_id, target_id)

    def search_users(self, query: str) -> List[User]:
        return self.cache.search_users(query)
