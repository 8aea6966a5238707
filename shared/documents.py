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

"""
Conversions between the shared dataclasses and camelCase Firestore documents.
"""

from dataclasses import asdict
from typing import Any, Optional, Type, TypeVar

from dacite import Config, from_dict

from shared.json_utils import convert_keys
from shared.types import (
    Category,
    ChatMessage,
    Condition,
    Listing,
    Notification,
    NotificationType,
    Review,
    User,
)

T = TypeVar("T")

# Maps keyed by user ids or currency codes must keep their keys verbatim.
PRESERVED_KEYS = ("participantNames", "participantPhotos", "unreadCounts", "rates")

_DACITE_CONFIG = Config(
    check_types=False,
    cast=[Condition, Category, NotificationType],
    type_hooks={float: float, int: int},
)


def to_document(record: Any, *, include_id: bool = False) -> dict:
    """Serializes a dataclass into a camelCase document payload."""
    data = asdict(record)
    if not include_id:
        data.pop("id", None)
    return convert_keys(data, "snake_to_camel", preserve=PRESERVED_KEYS)


def from_document(data_class: Type[T], doc_id: Optional[str], data: dict) -> T:
    """
    Builds a dataclass from a camelCase document.

    Missing fields keep their defaults and `None` values are dropped so
    the defaults apply to them as well.
    """
    snake = convert_keys(data or {}, "camel_to_snake", preserve=PRESERVED_KEYS)
    snake = {key: value for key, value in snake.items() if value is not None}
    if doc_id is not None and not snake.get("id"):
        snake["id"] = doc_id
    return from_dict(data_class=data_class, data=snake, config=_DACITE_CONFIG)


def listing_from_document(doc_id: str, data: dict) -> Listing:
    data = dict(data or {})
    data["condition"] = Condition.parse(data.get("condition")).value
    data["category"] = Category.parse(data.get("category")).value
    data["imageUrls"] = list(data.get("imageUrls") or [])
    return from_document(Listing, doc_id, data)


def user_from_document(doc_id: str, data: dict) -> User:
    return from_document(User, doc_id, data)


def message_from_document(doc_id: str, data: dict) -> ChatMessage:
    data = dict(data or {})
    # Older clients wrote the text under "message".
    if "messageText" not in data and "message" in data:
        data["messageText"] = data.pop("message")
    message = from_document(ChatMessage, doc_id, data)
    if message.image_url == "":
        message.image_url = None
    return message


def review_from_document(doc_id: str, data: dict) -> Review:
    return from_document(Review, doc_id, data)


def notification_from_document(doc_id: str, data: dict) -> Notification:
    data = dict(data or {})
    data["type"] = NotificationType.parse(data.get("type")).value
    return from_document(Notification, doc_id, data)
