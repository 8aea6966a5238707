"""
Chat repository: live remote message streams mirrored into the cache.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Optional

from passit.cache import LocalCache
from passit.live import ErrorCallback, Subscription
from passit.remote import RemoteDataSource
from shared.chat_ids import build_chat_room_id, parse_chat_room_id
from shared.types import ChatMessage, ChatRoomMetadata, ChatThread, Listing, User

logger = logging.getLogger(__name__)


class ChatRepository:
    def __init__(self, cache: LocalCache, remote: RemoteDataSource):
        self.cache = cache
        self.remote = remote

    def observe_messages(
        self,
        chat_room_id: str,
        callback: Callable[[List[ChatMessage]], None],
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        def _mirror(messages: List[ChatMessage]) -> None:
            self.cache.replace_messages_for_room(chat_room_id, messages)
            callback(messages)

        return self.remote.observe_messages(chat_room_id, _mirror, on_error)

    def observe_chat_threads(
        self,
        user_id: str,
        callback: Callable[[List[ChatThread]], None],
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        return self.remote.observe_chat_threads(user_id, callback, on_error)

    def _lookup_listing(self, listing_id: str) -> Optional[Listing]:
        try:
            return self.remote.get_listing(listing_id)
        except Exception as exc:
            logger.warning("Could not load listing %s for chat metadata: %s", listing_id, exc)
            return None

    def _lookup_user(self, user_id: str) -> Optional[User]:
        try:
            return self.remote.get_user(user_id)
        except Exception as exc:
            logger.warning("Could not load user %s for chat metadata: %s", user_id, exc)
            return None

    def send_message(self, message: ChatMessage) -> ChatMessage:
        """
        Sends `message` to the other participant of its room.

        Listing and participant details are denormalized onto the room
        document when they can be loaded; lookups that fail are skipped.

        Raises:
            InvalidChatRoomId: If the room id is malformed or the sender is
                not one of its participants.
        """
        key = parse_chat_room_id(message.chat_room_id)
        receiver_id = key.other_participant(message.sender_id)

        listing = self._lookup_listing(key.listing_id)
        metadata = ChatRoomMetadata(listing_id=key.listing_id)
        if listing is not None:
            metadata.listing_title = listing.title
            metadata.listing_photo_url = listing.image_urls[0] if listing.image_urls else None
        for user_id in (receiver_id, message.sender_id):
            user = self._lookup_user(user_id)
            if user is not None:
                metadata.participant_names[user_id] = user.name
                metadata.participant_photos[user_id] = user.photo_url

        stored = self.remote.send_message(
            chat_room_id=message.chat_room_id,
            sender_id=message.sender_id,
            receiver_id=receiver_id,
            text=message.message_text,
            image_url=message.image_url,
            metadata=metadata,
        )
        self.cache.upsert_message(stored)
        return stored

    def get_messages(self, chat_room_id: str) -> List[ChatMessage]:
        return self.cache.get_messages(chat_room_id)

    def mark_as_read(self, chat_room_id: str, reader_id: str) -> int:
        """Marks the other participant's messages read; returns how many changed."""
        marked = self.remote.mark_messages_as_read(chat_room_id, reader_id)
        for message in self.cache.get_messages(chat_room_id):
            if message.sender_id != reader_id and not message.is_read:
                self.cache.mark_message_read(message.id)
        return marked

    def delete_message(self, chat_room_id: str, message_id: str) -> None:
        self.remote.delete_message(chat_room_id, message_id)
        self.cache.delete_message(message_id)

    def start_chat(self, listing_id: str, buyer_id: str, seller_id: str) -> str:
        return build_chat_room_id(listing_id, buyer_id, seller_id)
