"""
Listing detail and create-listing state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import List, Optional, Tuple

from passit.errors import NotLoggedInError
from passit.repositories.auth import AuthRepository
from passit.repositories.favorites import FavoriteRepository
from passit.repositories.images import ImageRepository
from passit.repositories.listings import ListingRepository
from passit.viewstate import StateHolder, error_message
from shared.constants import DEFAULT_CURRENCY, MAX_LISTING_PHOTOS
from shared.types import Category, Condition, Listing

logger = logging.getLogger(__name__)

CONDITION_LABELS = {
    "New": Condition.NEW,
    "Like New": Condition.LIKE_NEW,
    "Good": Condition.GOOD,
    "Fair": Condition.FAIR,
}

CATEGORY_LABELS = {
    "Electronics & Gadgets": Category.ELECTRONICS,
    "Clothing & Fashion": Category.CLOTHING,
    "Home & Garden": Category.FURNITURE,
    "Furniture": Category.FURNITURE,
    "Sports & Outdoors": Category.SPORTS,
    "Books & Media": Category.BOOKS,
    "Toys & Games": Category.TOYS,
}


def condition_from_label(label: str) -> Condition:
    return CONDITION_LABELS.get(label, Condition.GOOD)


def category_from_label(label: str) -> Category:
    return CATEGORY_LABELS.get(label, Category.OTHER)


def filter_price_input(text: str) -> str:
    """Keeps only digits and decimal points."""
    return "".join(ch for ch in text if ch.isdigit() or ch == ".")


def parse_price(text: str) -> float:
    try:
        return float(text)
    except ValueError:
        return 0.0


@dataclass(frozen=True)
class ListingDetailState:
    is_loading: bool = True
    error: Optional[str] = None
    listing: Optional[Listing] = None
    is_favorite: bool = False


@dataclass(frozen=True)
class CreateListingState:
    # Local file paths of the photos to upload.
    selected_photos: Tuple[str, ...] = ()
    title: str = ""
    price: str = ""
    selected_currency: str = DEFAULT_CURRENCY
    selected_condition: str = "Like New"
    selected_category: str = "Electronics & Gadgets"
    description: str = ""
    brand: str = ""
    location: str = "Toronto, ON"
    is_creating: bool = False
    error: Optional[str] = None


class ListingViewState:
    def __init__(
        self,
        listings: ListingRepository,
        images: ImageRepository,
        favorites: FavoriteRepository,
        auth: AuthRepository,
    ):
        self.listings = listings
        self.images = images
        self.favorites = favorites
        self.auth = auth
        self.detail: StateHolder[ListingDetailState] = StateHolder(ListingDetailState())
        self.create: StateHolder[CreateListingState] = StateHolder(CreateListingState())

    # Detail

    def load_listing(self, listing_id: str) -> None:
        self.detail.update(is_loading=True, error=None)
        try:
            listing = self.listings.get_listing(listing_id)
        except Exception as exc:
            self.detail.update(
                is_loading=False, error=error_message(exc, "Failed to load listing")
            )
            return
        is_favorite = False
        user_id = self.auth.current_user_id()
        if user_id is not None:
            try:
                is_favorite = self.favorites.is_favorite(user_id, listing_id)
            except Exception as exc:
                logger.warning("Could not load favorite state for %s: %s", listing_id, exc)
        self.detail.update(is_loading=False, listing=listing, is_favorite=is_favorite)

    def toggle_favorite(self, listing_id: str) -> None:
        try:
            user_id = self.auth.current_user_id()
            if user_id is None:
                raise NotLoggedInError()
            favorited = self.favorites.toggle_favorite(user_id, listing_id)
        except Exception as exc:
            logger.warning("Failed to toggle favorite %s: %s", listing_id, exc)
            self.detail.update(error="Failed to update favorite")
            return
        listing = self.detail.state.listing
        if listing is not None and listing.id == listing_id:
            delta = 1 if favorited else -1
            listing = replace(listing, favorite_count=max(listing.favorite_count + delta, 0))
        self.detail.update(is_favorite=favorited, listing=listing)

    # Create

    def on_photos_selected(self, paths: List[str]) -> None:
        current = self.create.state.selected_photos
        if len(current) + len(paths) <= MAX_LISTING_PHOTOS:
            self.create.update(selected_photos=current + tuple(paths))

    def on_remove_photo(self, index: int) -> None:
        photos = self.create.state.selected_photos
        self.create.update(
            selected_photos=tuple(p for i, p in enumerate(photos) if i != index)
        )

    def on_title_change(self, title: str) -> None:
        self.create.update(title=title)

    def on_price_change(self, price: str) -> None:
        self.create.update(price=filter_price_input(price))

    def on_currency_change(self, currency: str) -> None:
        self.create.update(selected_currency=currency)

    def on_condition_change(self, condition: str) -> None:
        self.create.update(selected_condition=condition)

    def on_category_change(self, category: str) -> None:
        self.create.update(selected_category=category)

    def on_description_change(self, description: str) -> None:
        self.create.update(description=description)

    def on_brand_change(self, brand: str) -> None:
        self.create.update(brand=brand)

    def on_location_change(self, location: str) -> None:
        self.create.update(location=location)

    def build_listing(self) -> Listing:
        draft = self.create.state
        return Listing(
            title=draft.title,
            description=draft.description,
            price=parse_price(draft.price),
            currency=draft.selected_currency,
            condition=condition_from_label(draft.selected_condition),
            category=category_from_label(draft.selected_category),
            brand=draft.brand,
            location=draft.location,
        )

    def create_listing(self) -> Optional[str]:
        """
        Creates the drafted listing for the signed-in seller and uploads its
        photos. Returns the new listing id, or None if anything failed.

        A listing whose photos fail to upload is deleted again, together with
        any photos that did make it, so a retry does not leave duplicates.
        """
        self.create.update(is_creating=True, error=None)
        listing_id = None
        try:
            seller_id = self.auth.current_user_id()
            if seller_id is None:
                raise NotLoggedInError()
            photos = list(self.create.state.selected_photos)
            listing_id = self.listings.create_listing(self.build_listing(), seller_id)
            if photos:
                image_urls = self.images.upload_listing_images(photos, listing_id)
                created = self.listings.get_listing(listing_id)
                self.listings.update_listing(replace(created, image_urls=image_urls))
        except Exception as exc:
            if listing_id is not None:
                self._discard_listing(listing_id)
            self.create.update(
                is_creating=False, error=error_message(exc, "Failed to create listing")
            )
            return None
        self.create.set(CreateListingState())
        return listing_id

    def _discard_listing(self, listing_id: str) -> None:
        try:
            self.listings.delete_listing(listing_id)
        except Exception as exc:
            logger.warning("Failed to remove partially created listing %s: %s", listing_id, exc)
        self.images.delete_listing_folder(listing_id)

    def clear_error(self) -> None:
        self.create.update(error=None)
        self.detail.update(error=None)
