"""
Home feed and search/filter state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from passit.errors import NotLoggedInError
from passit.repositories.auth import AuthRepository
from passit.repositories.favorites import FavoriteRepository
from passit.repositories.listings import ListingRepository
from passit.viewstate import StateHolder, SubscriptionBag, error_message
from shared.constants import HOME_FRESH_FINDS_COUNT
from shared.formatting import format_price_short
from shared.types import Category, Listing

logger = logging.getLogger(__name__)

ALL_CATEGORIES = "All"
ANY_CONDITION = "Any"

SORT_RECOMMENDED = "Recommended"
SORT_LOWEST_PRICE = "Lowest Price"
SORT_NEWEST = "Newest"

DEFAULT_PRICE_RANGE = (50.0, 1200.0)
RESET_PRICE_RANGE = (0.0, 5000.0)

CATEGORY_LABELS = {
    "Furniture": Category.FURNITURE,
    "Electronics": Category.ELECTRONICS,
    "Clothing": Category.CLOTHING,
    "Books": Category.BOOKS,
    "Sports": Category.SPORTS,
    "Toys": Category.TOYS,
    "Home": Category.HOME,
    "Other": Category.OTHER,
}


def category_from_label(label: str) -> Optional[Category]:
    """Maps a feed category chip to its category; "All" and unknown labels mean no filter."""
    return CATEGORY_LABELS.get(label)


@dataclass(frozen=True)
class HomeListingItem:
    id: str
    title: str
    price_text: str
    location_text: str
    image_url: str

    @classmethod
    def from_listing(cls, listing: Listing) -> "HomeListingItem":
        return cls(
            id=listing.id,
            title=listing.title,
            price_text=format_price_short(listing.price),
            location_text=listing.location,
            image_url=listing.image_urls[0] if listing.image_urls else "",
        )


@dataclass(frozen=True)
class HomeState:
    is_loading: bool = False
    error: Optional[str] = None
    selected_category: str = ALL_CATEGORIES
    fresh_finds: Tuple[HomeListingItem, ...] = ()
    explore_local: Tuple[HomeListingItem, ...] = ()
    search_query: str = ""
    search_results: Tuple[HomeListingItem, ...] = ()
    selected_sort: str = SORT_RECOMMENDED
    price_range: Tuple[float, float] = DEFAULT_PRICE_RANGE
    selected_condition: str = ANY_CONDITION
    results_count: int = 0


def filter_and_sort(listings: List[Listing], state: HomeState) -> List[Listing]:
    low, high = state.price_range
    filtered = [item for item in listings if low <= item.price <= high]
    if state.selected_condition != ANY_CONDITION:
        # Filter labels are spaced ("Like New"), stored values are not.
        wanted = state.selected_condition.replace(" ", "")
        filtered = [item for item in filtered if item.condition.value == wanted]
    if state.selected_sort == SORT_LOWEST_PRICE:
        filtered.sort(key=lambda item: item.price)
    elif state.selected_sort == SORT_NEWEST:
        filtered.sort(key=lambda item: item.created_timestamp, reverse=True)
    return filtered


class HomeViewState:
    def __init__(
        self,
        listings: ListingRepository,
        favorites: FavoriteRepository,
        auth: AuthRepository,
    ):
        self.listings = listings
        self.favorites = favorites
        self.auth = auth
        self.holder: StateHolder[HomeState] = StateHolder(HomeState())
        self._subscriptions = SubscriptionBag()

    @property
    def state(self) -> HomeState:
        return self.holder.state

    def start(self) -> None:
        self._observe_listings(category_from_label(self.state.selected_category))

    def close(self) -> None:
        self._subscriptions.close()

    def on_category_selected(self, label: str) -> None:
        self.holder.update(selected_category=label)
        self._observe_listings(category_from_label(label))

    def refresh_listings(self) -> None:
        self._observe_listings(category_from_label(self.state.selected_category))

    def toggle_favorite(self, listing_id: str) -> Optional[bool]:
        try:
            user_id = self.auth.current_user_id()
            if user_id is None:
                raise NotLoggedInError()
            return self.favorites.toggle_favorite(user_id, listing_id)
        except Exception as exc:
            logger.warning("Failed to toggle favorite %s: %s", listing_id, exc)
            self.holder.update(error="Failed to update favorite.")
            return None

    def update_search_query(self, query: str) -> None:
        self.holder.update(search_query=query)
        if query.strip():
            self.search_listings(query)
        else:
            self._subscriptions.replace("search", None)
            self.holder.update(search_results=(), results_count=0)

    def update_sort_option(self, sort: str) -> None:
        self.holder.update(selected_sort=sort)
        self.apply_filters()

    def update_price_range(self, low: float, high: float) -> None:
        self.holder.update(price_range=(float(low), float(high)))

    def update_condition(self, condition: str) -> None:
        self.holder.update(selected_condition=condition)

    def apply_filters(self) -> None:
        query = self.state.search_query
        if query.strip():
            self.search_listings(query)

    def reset_filters(self) -> None:
        self.holder.update(
            selected_sort=SORT_RECOMMENDED,
            price_range=RESET_PRICE_RANGE,
            selected_condition=ANY_CONDITION,
        )
        self.apply_filters()

    def search_listings(self, query: str) -> None:
        if not query.strip():
            self.holder.update(search_results=(), results_count=0)
            return
        self.holder.update(is_loading=True, error=None)

        def _on_results(listings: List[Listing]) -> None:
            items = tuple(
                HomeListingItem.from_listing(item)
                for item in filter_and_sort(listings, self.state)
            )
            self.holder.update(
                is_loading=False, search_results=items, results_count=len(items), error=None
            )

        try:
            self._subscriptions.replace(
                "search", self.listings.search_listings(query, _on_results)
            )
        except Exception as exc:
            self.holder.update(is_loading=False, error=error_message(exc, "Search failed"))

    def clear_error(self) -> None:
        self.holder.update(error=None)

    def _observe_listings(self, category: Optional[Category]) -> None:
        self.holder.update(is_loading=True, error=None)

        def _on_listings(listings: List[Listing]) -> None:
            items = [HomeListingItem.from_listing(item) for item in listings]
            self.holder.update(
                is_loading=False,
                fresh_finds=tuple(items[:HOME_FRESH_FINDS_COUNT]),
                explore_local=tuple(items[HOME_FRESH_FINDS_COUNT:]),
                error=None,
            )

        try:
            self._subscriptions.replace(
                "listings", self.listings.observe_listings(_on_listings, category=category)
            )
        except Exception as exc:
            self.holder.update(
                is_loading=False, error=error_message(exc, "Failed to load listings")
            )
