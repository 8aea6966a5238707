"""
Profile screen state: the user card, their listings, reviews and follow state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import StrEnum
from typing import List, Optional, Tuple

from passit.repositories.images import ImageRepository
from passit.repositories.listings import ListingRepository
from passit.repositories.reviews import ReviewRepository
from passit.repositories.users import UserRepository
from passit.viewstate import StateHolder, SubscriptionBag, error_message
from shared.types import Listing, Review, User

logger = logging.getLogger(__name__)


class ProfileTab(StrEnum):
    ACTIVE = "Active"
    SOLD = "Sold"
    REVIEWS = "Reviews"


@dataclass(frozen=True)
class ProfileState:
    is_loading: bool = True
    is_updating: bool = False
    error: Optional[str] = None
    user: Optional[User] = None
    is_own_profile: bool = False
    is_following: bool = False
    selected_tab: ProfileTab = ProfileTab.ACTIVE
    active_listings: Tuple[Listing, ...] = ()
    sold_listings: Tuple[Listing, ...] = ()
    items_sold: int = 0
    reviews: Tuple[Review, ...] = ()
    current_user_id: Optional[str] = None


class ProfileViewState:
    def __init__(
        self,
        users: UserRepository,
        listings: ListingRepository,
        images: ImageRepository,
        reviews: Optional[ReviewRepository] = None,
    ):
        self.users = users
        self.listings = listings
        self.images = images
        self.reviews = reviews
        self.holder: StateHolder[ProfileState] = StateHolder(ProfileState())
        self._subscriptions = SubscriptionBag()

    @property
    def state(self) -> ProfileState:
        return self.holder.state

    def close(self) -> None:
        self._subscriptions.close()

    def load_profile(self, user_id: str, current_user_id: Optional[str] = None) -> None:
        self.holder.update(
            is_loading=True,
            error=None,
            current_user_id=current_user_id,
            is_own_profile=user_id == current_user_id,
        )
        try:
            user = self.users.get_user(user_id)
        except Exception as exc:
            self.holder.update(is_loading=False, error=error_message(exc, "Failed to load profile"))
            return
        is_following = False
        if current_user_id and current_user_id != user_id:
            try:
                is_following = self.users.is_following(current_user_id, user_id)
            except Exception as exc:
                logger.warning("Could not load follow state for %s: %s", user_id, exc)
        self.holder.update(is_loading=False, user=user, is_following=is_following)
        self.observe_user(user_id)
        self._observe_listings(user_id)

    def observe_user(self, user_id: str) -> None:
        def _on_user(user: User) -> None:
            self.holder.update(user=user)

        def _on_error(exc: Exception) -> None:
            # The profile is already on screen; a missing cache row is expected
            # until the refresh lands.
            logger.debug("Profile stream for %s: %s", user_id, exc)

        self._subscriptions.replace("user", self.users.observe_user(user_id, _on_user, _on_error))

    def _observe_listings(self, user_id: str) -> None:
        def _on_listings(listings: List[Listing]) -> None:
            active = tuple(item for item in listings if not item.is_sold)
            sold = tuple(item for item in listings if item.is_sold)
            self.holder.update(
                active_listings=active, sold_listings=sold, items_sold=len(sold)
            )

        try:
            self._subscriptions.replace(
                "listings", self.listings.observe_user_listings(user_id, _on_listings)
            )
        except Exception as exc:
            self.holder.update(error=error_message(exc, "Failed to load profile"))

    def on_tab_selected(self, tab: ProfileTab) -> None:
        self.holder.update(selected_tab=tab)
        if tab == ProfileTab.REVIEWS:
            self._load_reviews()

    def _load_reviews(self) -> None:
        user = self.state.user
        if user is None or self.reviews is None:
            return
        try:
            reviews = self.reviews.get_reviews_for_user(user.id)
        except Exception as exc:
            logger.warning("Failed to load reviews for %s: %s", user.id, exc)
            return
        ordered = sorted(reviews, key=lambda r: r.timestamp, reverse=True)
        self.holder.update(reviews=tuple(ordered))

    def update_profile(
        self, name: str, bio: str, photo_url: Optional[str] = None
    ) -> None:
        user = self.state.user
        if user is None:
            return
        self.holder.update(is_updating=True, error=None)
        updated = replace(
            user,
            name=name,
            bio=bio,
            photo_url=photo_url if photo_url is not None else user.photo_url,
        )
        try:
            self.users.update_user(updated)
        except Exception as exc:
            self.holder.update(
                is_updating=False, error=error_message(exc, "Failed to update profile")
            )
            return
        self.holder.update(is_updating=False, user=updated)

    def toggle_follow(self) -> None:
        state = self.state
        if state.user is None or not state.current_user_id or state.is_own_profile:
            return
        target_id = state.user.id
        try:
            if state.is_following:
                self.users.unfollow_user(state.current_user_id, target_id)
            else:
                self.users.follow_user(state.current_user_id, target_id)
        except Exception as exc:
            logger.warning("Follow toggle for %s failed: %s", target_id, exc)
            self.holder.update(
                error="Failed to unfollow user" if state.is_following else "Failed to follow user"
            )
            return
        self.holder.update(is_following=not state.is_following)

    def upload_profile_photo(self, local_path: str) -> Optional[str]:
        """Uploads a new profile photo, saves it on the user and prunes old ones."""
        user = self.state.user
        if user is None:
            return None
        self.holder.update(is_updating=True, error=None)
        try:
            photo_url = self.images.upload_profile_photo(local_path, user.id)
            updated = replace(user, photo_url=photo_url)
            self.users.update_user(updated)
        except Exception as exc:
            logger.warning("Profile photo upload for %s failed: %s", user.id, exc)
            self.holder.update(is_updating=False, error="Failed to upload photo")
            return None
        self.images.delete_old_profile_photos(user.id, photo_url)
        self.holder.update(is_updating=False, user=updated)
        return photo_url

    def clear_error(self) -> None:
        self.holder.update(error=None)
