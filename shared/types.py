# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Dict, List, Optional

from shared.constants import DEFAULT_COUNTRY, DEFAULT_CURRENCY


class Condition(StrEnum):
    NEW = "New"
    LIKE_NEW = "LikeNew"
    GOOD = "Good"
    FAIR = "Fair"

    @classmethod
    def parse(cls, value: Optional[str]) -> "Condition":
        """Returns the condition stored under `value`, or GOOD if unknown."""
        try:
            return cls(value)
        except ValueError:
            return cls.GOOD


class Category(StrEnum):
    ELECTRONICS = "Electronics"
    CLOTHING = "Clothing"
    FURNITURE = "Furniture"
    HOME = "Home"
    SPORTS = "Sports"
    BOOKS = "Books"
    TOYS = "Toys"
    OTHER = "Other"

    @classmethod
    def parse(cls, value: Optional[str]) -> "Category":
        """Returns the category stored under `value`, or OTHER if unknown."""
        try:
            return cls(value)
        except ValueError:
            return cls.OTHER


class NotificationType(StrEnum):
    MESSAGE = "Message"
    LISTING_SOLD = "ListingSold"
    NEW_REVIEW = "NewReview"
    PRICE_REDUCED = "PriceReduced"
    SYSTEM = "System"

    @classmethod
    def parse(cls, value: Optional[str]) -> "NotificationType":
        try:
            return cls(value)
        except ValueError:
            return cls.SYSTEM


@dataclass
class User:
    id: str = ""
    name: str = ""
    email: str = ""
    photo_url: str = ""
    bio: str = ""
    location: str = ""
    phone_number: str = ""
    rating: float = 0.0
    reviews_count: int = 0
    followers_count: int = 0
    following_count: int = 0
    is_verified: bool = False
    is_online: bool = False
    created_at: int = 0
    last_seen: int = 0


@dataclass
class Listing:
    id: str = ""
    seller_id: str = ""
    title: str = ""
    description: str = ""
    price: float = 0.0
    currency: str = DEFAULT_CURRENCY
    condition: Condition = Condition.GOOD
    category: Category = Category.OTHER
    brand: str = ""
    location: str = ""
    latitude: float = 0.0
    longitude: float = 0.0
    image_urls: List[str] = field(default_factory=list)
    created_timestamp: int = 0
    updated_timestamp: int = 0
    view_count: int = 0
    favorite_count: int = 0
    is_sold: bool = False


@dataclass
class ChatRoom:
    id: str = ""
    listing_id: str = ""
    buyer_id: str = ""
    seller_id: str = ""
    last_message: str = ""
    last_message_timestamp: int = 0
    unread_count: int = 0
    is_active: bool = True


@dataclass
class ChatMessage:
    id: str = ""
    chat_room_id: str = ""
    sender_id: str = ""
    message_text: str = ""
    timestamp: int = 0
    is_read: bool = False
    image_url: Optional[str] = None


@dataclass
class ChatThread:
    """A chat room as seen by one of its two participants."""

    chat_room_id: str
    listing_id: Optional[str] = None
    listing_title: Optional[str] = None
    listing_photo_url: Optional[str] = None
    other_user_id: Optional[str] = None
    other_user_name: Optional[str] = None
    other_user_photo_url: Optional[str] = None
    last_message_text: Optional[str] = None
    last_message_timestamp: Optional[int] = None
    unread_count: Optional[int] = 0


@dataclass
class ChatRoomMetadata:
    """Denormalized listing and participant details written onto a room doc."""

    listing_id: str = ""
    listing_title: Optional[str] = None
    listing_photo_url: Optional[str] = None
    participant_names: Dict[str, str] = field(default_factory=dict)
    participant_photos: Dict[str, str] = field(default_factory=dict)


@dataclass
class Favorite:
    id: str = ""
    user_id: str = ""
    listing_id: str = ""
    timestamp: int = 0


@dataclass
class Review:
    id: str = ""
    reviewer_id: str = ""
    reviewed_user_id: str = ""
    listing_id: str = ""
    rating: float = 0.0
    comment: str = ""
    timestamp: int = 0


@dataclass
class Notification:
    id: str = ""
    user_id: str = ""
    type: NotificationType = NotificationType.MESSAGE
    title: str = ""
    message: str = ""
    related_id: str = ""
    timestamp: int = 0
    is_read: bool = False


@dataclass
class ExchangeRate:
    base_currency: str = DEFAULT_CURRENCY
    rates: Dict[str, float] = field(default_factory=dict)
    timestamp: int = 0


@dataclass
class CachedRate:
    """A single cached conversion rate, keyed "{from}_{to}"."""

    id: str
    from_currency: str
    to_currency: str
    rate: float
    timestamp: int


@dataclass
class Location:
    city: str = ""
    province: str = ""
    country: str = DEFAULT_COUNTRY
    postal_code: str = ""
    latitude: float = 0.0
    longitude: float = 0.0
