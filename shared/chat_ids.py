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
Chat room identifiers.

A room id has the form `chat_<listingId>_<buyerId>_<sellerId>`. Existing room
documents are keyed this way, so the format is kept, but ids are built and
parsed strictly: no part may be empty or contain the separator.
"""

from dataclasses import dataclass
from typing import Tuple

CHAT_ROOM_PREFIX = "chat"
SEPARATOR = "_"


class InvalidChatRoomId(ValueError):
    pass


@dataclass(frozen=True)
class ChatRoomKey:
    listing_id: str
    buyer_id: str
    seller_id: str

    @property
    def participants(self) -> Tuple[str, str]:
        return (self.buyer_id, self.seller_id)

    @property
    def chat_room_id(self) -> str:
        return build_chat_room_id(self.listing_id, self.buyer_id, self.seller_id)

    def other_participant(self, user_id: str) -> str:
        """Returns the participant that is not `user_id`."""
        if user_id == self.buyer_id:
            return self.seller_id
        if user_id == self.seller_id:
            return self.buyer_id
        raise InvalidChatRoomId(
            f"User {user_id!r} is not a participant of {self.chat_room_id!r}"
        )


def _check_part(name: str, value: str) -> None:
    if not value:
        raise InvalidChatRoomId(f"{name} must not be empty")
    if SEPARATOR in value:
        raise InvalidChatRoomId(f"{name} {value!r} contains {SEPARATOR!r}")


def build_chat_room_id(listing_id: str, buyer_id: str, seller_id: str) -> str:
    _check_part("listing_id", listing_id)
    _check_part("buyer_id", buyer_id)
    _check_part("seller_id", seller_id)
    if buyer_id == seller_id:
        raise InvalidChatRoomId("A chat room needs two distinct participants")
    return SEPARATOR.join((CHAT_ROOM_PREFIX, listing_id, buyer_id, seller_id))


def parse_chat_room_id(chat_room_id: str) -> ChatRoomKey:
    """
    Parses a chat room id into its listing and participant ids.

    Raises:
        InvalidChatRoomId: If the id does not have exactly four non-empty
            parts starting with the `chat` prefix.
    """
    parts = (chat_room_id or "").split(SEPARATOR)
    if len(parts) != 4 or parts[0] != CHAT_ROOM_PREFIX or not all(parts):
        raise InvalidChatRoomId(f"Malformed chat room id: {chat_room_id!r}")
    _, listing_id, buyer_id, seller_id = parts
    return ChatRoomKey(listing_id=listing_id, buyer_id=buyer_id, seller_id=seller_id)
