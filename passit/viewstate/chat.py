"""
Chat room and chat list state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from passit.repositories.chat import ChatRepository
from passit.repositories.listings import ListingRepository
from passit.repositories.users import UserRepository
from passit.viewstate import StateHolder, SubscriptionBag, error_message
from shared.formatting import format_relative_time, now_millis
from shared.types import ChatMessage, ChatThread, Listing, User

logger = logging.getLogger(__name__)

UNKNOWN_USER_NAME = "Unknown"
UNKNOWN_ITEM_TITLE = "Item"


@dataclass(frozen=True)
class ChatState:
    is_loading: bool = True
    is_sending: bool = False
    error: Optional[str] = None
    chat_room_id: Optional[str] = None
    listing: Optional[Listing] = None
    other_user: Optional[User] = None
    current_user_id: Optional[str] = None
    messages: Tuple[ChatMessage, ...] = ()
    message_input: str = ""


@dataclass(frozen=True)
class ChatListItem:
    chat_room_id: str
    user_name: str
    user_photo: str
    last_message: str
    timestamp: str
    unread_count: int
    item_title: str

    @classmethod
    def from_thread(cls, thread: ChatThread, now: Optional[int] = None) -> "ChatListItem":
        return cls(
            chat_room_id=thread.chat_room_id,
            user_name=thread.other_user_name or UNKNOWN_USER_NAME,
            user_photo=thread.other_user_photo_url or "",
            last_message=thread.last_message_text or "",
            timestamp=format_relative_time(thread.last_message_timestamp or 0, now),
            unread_count=thread.unread_count or 0,
            item_title=thread.listing_title or UNKNOWN_ITEM_TITLE,
        )


@dataclass(frozen=True)
class ChatListState:
    is_loading: bool = False
    error: Optional[str] = None
    current_user_id: Optional[str] = None
    items: Tuple[ChatListItem, ...] = ()


class ChatViewState:
    def __init__(
        self,
        chat: ChatRepository,
        listings: ListingRepository,
        users: UserRepository,
        clock: Callable[[], int] = now_millis,
    ):
        self.chat = chat
        self.listings = listings
        self.users = users
        self.clock = clock
        self.room: StateHolder[ChatState] = StateHolder(ChatState())
        self.list: StateHolder[ChatListState] = StateHolder(ChatListState())
        self._subscriptions = SubscriptionBag()
        self._observed_room: Optional[str] = None
        self._observed_user: Optional[str] = None

    def close(self) -> None:
        self._subscriptions.close()

    # Room

    def initialize_chat(
        self, chat_room_id: str, listing_id: str, other_user_id: str, current_user_id: str
    ) -> None:
        self.room.update(is_loading=True, error=None)
        try:
            listing = self.listings.get_listing(listing_id)
            other_user = self.users.get_user(other_user_id)
        except Exception as exc:
            self.room.update(is_loading=False, error=error_message(exc, "Failed to load chat"))
            return
        self.room.update(
            chat_room_id=chat_room_id,
            listing=listing,
            other_user=other_user,
            current_user_id=current_user_id,
            is_loading=False,
        )
        self.observe_messages(chat_room_id)

    def observe_messages(self, chat_room_id: str) -> None:
        if not chat_room_id.strip():
            return
        if self._observed_room == chat_room_id and self._subscriptions.is_active("messages"):
            return
        self._observed_room = chat_room_id
        self.room.update(is_loading=True, error=None)

        def _on_messages(messages: List[ChatMessage]) -> None:
            ordered = tuple(sorted(messages, key=lambda m: m.timestamp))
            self.room.update(is_loading=False, messages=ordered, error=None)

        def _on_error(exc: Exception) -> None:
            self.room.update(is_loading=False, error=error_message(exc, "Failed to load messages"))

        try:
            self._subscriptions.replace(
                "messages", self.chat.observe_messages(chat_room_id, _on_messages, _on_error)
            )
        except Exception as exc:
            _on_error(exc)

    def on_message_input_change(self, text: str) -> None:
        self.room.update(message_input=text)

    def send_message(self) -> Optional[ChatMessage]:
        state = self.room.state
        text = state.message_input.strip()
        if not text or not state.chat_room_id or not state.current_user_id:
            return None
        self.room.update(is_sending=True, error=None)
        try:
            stored = self.chat.send_message(
                ChatMessage(
                    chat_room_id=state.chat_room_id,
                    sender_id=state.current_user_id,
                    message_text=text,
                    timestamp=self.clock(),
                )
            )
        except Exception as exc:
            self.room.update(
                is_sending=False, error=error_message(exc, "Failed to send message")
            )
            return None
        self.room.update(is_sending=False, message_input="")
        return stored

    def mark_as_read(self) -> None:
        state = self.room.state
        if not state.chat_room_id or not state.current_user_id:
            return
        try:
            self.chat.mark_as_read(state.chat_room_id, state.current_user_id)
        except Exception as exc:
            logger.warning("Failed to mark %s as read: %s", state.chat_room_id, exc)

    def clear_error(self) -> None:
        self.room.update(error=None)

    # Chat list

    def start_chat_list(self, current_user_id: str) -> None:
        if not current_user_id.strip():
            return
        if self._observed_user == current_user_id and self._subscriptions.is_active("threads"):
            return
        self._observed_user = current_user_id
        self.list.update(is_loading=True, error=None, current_user_id=current_user_id)

        def _on_threads(threads: List[ChatThread]) -> None:
            now = self.clock()
            ordered = sorted(
                threads, key=lambda t: t.last_message_timestamp or 0, reverse=True
            )
            items = tuple(ChatListItem.from_thread(t, now) for t in ordered)
            self.list.update(is_loading=False, items=items, error=None)

        def _on_error(exc: Exception) -> None:
            self.list.update(is_loading=False, error=error_message(exc, "Failed to load chats"))

        try:
            self._subscriptions.replace(
                "threads", self.chat.observe_chat_threads(current_user_id, _on_threads, _on_error)
            )
        except Exception as exc:
            _on_error(exc)

    def clear_list_error(self) -> None:
        self.list.update(error=None)
