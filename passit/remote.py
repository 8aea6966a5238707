"""
Remote document store for listings, users, chats, favorites, reviews and
notifications.

`FirestoreDataSource` wraps the `firebase_admin` Firestore client.
`InMemoryRemoteDataSource` is a test double that keeps the same documents in
dictionaries and fires listeners synchronously on every write.
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import replace
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, Set, Tuple

from firebase_admin import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from passit.errors import NotFoundError
from passit.live import ErrorCallback, Listener, ListenerRegistry, Subscription
from shared.chat_ids import InvalidChatRoomId, parse_chat_room_id
from shared.documents import (
    listing_from_document,
    message_from_document,
    notification_from_document,
    review_from_document,
    to_document,
    user_from_document,
)
from shared.firebase_constants import (
    CHATS_COLLECTION,
    FAVORITES_COLLECTION,
    FOLLOWERS_COLLECTION,
    FOLLOWING_COLLECTION,
    LISTINGS_COLLECTION,
    MAX_BATCH_WRITES,
    MESSAGES_COLLECTION,
    NOTIFICATIONS_COLLECTION,
    REVIEWS_COLLECTION,
    USERS_COLLECTION,
)
from shared.formatting import now_millis
from shared.types import (
    Category,
    ChatMessage,
    ChatRoomMetadata,
    ChatThread,
    Favorite,
    Listing,
    Notification,
    Review,
    User,
)

logger = logging.getLogger(__name__)

IMAGE_MESSAGE_PREVIEW = "Photo"


class RemoteDataSource(Protocol):
    """Operations the repositories need from the remote document store."""

    # Listings
    def get_all_listings(self) -> List[Listing]:
        ...

    def get_listings_by_category(self, category: Category) -> List[Listing]:
        ...

    def get_listings_by_seller(self, seller_id: str) -> List[Listing]:
        ...

    def get_listing(self, listing_id: str) -> Listing:
        ...

    def create_listing(self, listing: Listing, seller_id: str) -> str:
        ...

    def update_listing(self, listing: Listing) -> None:
        ...

    def delete_listing(self, listing_id: str) -> None:
        ...

    def observe_listings(
        self,
        category: Optional[Category],
        callback: Callable[[List[Listing]], None],
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        ...

    # Users
    def get_user(self, user_id: str) -> User:
        ...

    def create_user(self, user: User) -> None:
        ...

    def update_user(self, user: User) -> None:
        ...

    def delete_user(self, user_id: str) -> None:
        ...

    def observe_user(
        self,
        user_id: str,
        callback: Callable[[Optional[User]], None],
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        ...

    def follow_user(self, follower_id: str, target_id: str) -> None:
        ...

    def unfollow_user(self, follower_id: str, target_id: str) -> None:
        ...

    def is_following(self, follower_id: str, target_id: str) -> bool:
        ...

    # Chat
    def observe_messages(
        self,
        chat_room_id: str,
        callback: Callable[[List[ChatMessage]], None],
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        ...

    def send_message(
        self,
        chat_room_id: str,
        sender_id: str,
        receiver_id: str,
        text: str,
        image_url: Optional[str] = None,
        metadata: Optional[ChatRoomMetadata] = None,
    ) -> ChatMessage:
        ...

    def observe_chat_threads(
        self,
        user_id: str,
        callback: Callable[[List[ChatThread]], None],
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        ...

    def mark_messages_as_read(self, chat_room_id: str, reader_id: str) -> int:
        ...

    def delete_message(self, chat_room_id: str, message_id: str) -> None:
        ...

    # Favorites
    def toggle_favorite(self, user_id: str, listing_id: str) -> bool:
        ...

    def get_favorites(self, user_id: str) -> List[Favorite]:
        ...

    def is_favorite(self, user_id: str, listing_id: str) -> bool:
        ...

    # Reviews
    def add_review(self, review: Review) -> str:
        ...

    def get_reviews_for_user(self, user_id: str) -> List[Review]:
        ...

    # Notifications
    def add_notification(self, notification: Notification) -> str:
        ...

    def observe_notifications(
        self,
        user_id: str,
        callback: Callable[[List[Notification]], None],
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        ...

    def mark_notification_read(self, notification_id: str) -> None:
        ...


def favorite_doc_id(user_id: str, listing_id: str) -> str:
    return f"{user_id}_{listing_id}"


def chat_room_update(
    chat_room_id: str,
    sender_id: str,
    text: str,
    timestamp: int,
    image_url: Optional[str] = None,
    metadata: Optional[ChatRoomMetadata] = None,
) -> Dict[str, Any]:
    """
    Builds the fields merged into a room document when a message is sent.

    The receiver's unread counter is not included; each backend increments
    it in its own way.
    """
    key = parse_chat_room_id(chat_room_id)
    update = {
        "chatRoomId": chat_room_id,
        "listingId": key.listing_id,
        "buyerId": key.buyer_id,
        "sellerId": key.seller_id,
        "participants": list(key.participants),
        "lastMessageText": text or (IMAGE_MESSAGE_PREVIEW if image_url else ""),
        "lastMessageTimestamp": timestamp,
        "lastSenderId": sender_id,
        "isActive": True,
    }
    if metadata:
        if metadata.listing_title is not None:
            update["listingTitle"] = metadata.listing_title
        if metadata.listing_photo_url is not None:
            update["listingPhotoUrl"] = metadata.listing_photo_url
        if metadata.participant_names:
            update["participantNames"] = dict(metadata.participant_names)
        if metadata.participant_photos:
            update["participantPhotos"] = dict(metadata.participant_photos)
    return update


def project_chat_thread(
    chat_room_id: str, data: Dict[str, Any], user_id: str
) -> Optional[ChatThread]:
    """
    Projects a room document into a `ChatThread` from `user_id`'s side.

    Rooms written without a participants array fall back to the ids encoded
    in the room id. Returns None for rooms that cannot be resolved or that
    `user_id` is not part of.
    """
    room_id = data.get("chatRoomId") or chat_room_id
    participants = [p for p in (data.get("participants") or []) if p]
    listing_id = data.get("listingId")
    if len(participants) != 2:
        try:
            key = parse_chat_room_id(room_id)
        except InvalidChatRoomId:
            logger.warning("Skipping chat room with malformed id %r", room_id)
            return None
        participants = list(key.participants)
        listing_id = listing_id or key.listing_id
    if user_id not in participants:
        return None
    other_user_id = next((p for p in participants if p != user_id), None)
    names = data.get("participantNames") or {}
    photos = data.get("participantPhotos") or {}
    unread_counts = data.get("unreadCounts") or {}
    return ChatThread(
        chat_room_id=room_id,
        listing_id=listing_id,
        listing_title=data.get("listingTitle"),
        listing_photo_url=data.get("listingPhotoUrl"),
        other_user_id=other_user_id,
        other_user_name=names.get(other_user_id),
        other_user_photo_url=photos.get(other_user_id),
        last_message_text=data.get("lastMessageText"),
        last_message_timestamp=data.get("lastMessageTimestamp"),
        unread_count=int(unread_counts.get(user_id, 0) or 0),
    )


def sort_threads(threads: Iterable[ChatThread]) -> List[ChatThread]:
    return sorted(threads, key=lambda t: t.last_message_timestamp or 0, reverse=True)


def _convert_documents(snapshots: Iterable[Any], converter: Callable[[str, dict], Any]) -> list:
    """Converts document snapshots, skipping any that fail to parse."""
    results = []
    for snapshot in snapshots:
        if not snapshot.exists:
            continue
        try:
            results.append(converter(snapshot.id, snapshot.to_dict() or {}))
        except Exception as exc:
            logger.warning("Skipping malformed document %s: %s", snapshot.id, exc)
    return results


class FirestoreDataSource:
    """`RemoteDataSource` backed by Cloud Firestore through firebase_admin."""

    def __init__(self, client=None):
        self.db = client or firestore.client()

    # Listings

    def _listings_query(self, category: Optional[Category] = None):
        query = self.db.collection(LISTINGS_COLLECTION).where(
            filter=FieldFilter("isSold", "==", False)
        )
        if category is not None:
            query = query.where(filter=FieldFilter("category", "==", category.value))
        return query.order_by("createdTimestamp", direction=firestore.Query.DESCENDING)

    def get_all_listings(self) -> List[Listing]:
        return _convert_documents(self._listings_query().stream(), listing_from_document)

    def get_listings_by_category(self, category: Category) -> List[Listing]:
        return _convert_documents(
            self._listings_query(category).stream(), listing_from_document
        )

    def get_listings_by_seller(self, seller_id: str) -> List[Listing]:
        query = (
            self.db.collection(LISTINGS_COLLECTION)
            .where(filter=FieldFilter("sellerId", "==", seller_id))
            .order_by("createdTimestamp", direction=firestore.Query.DESCENDING)
        )
        return _convert_documents(query.stream(), listing_from_document)

    def get_listing(self, listing_id: str) -> Listing:
        doc = self.db.collection(LISTINGS_COLLECTION).document(listing_id).get()
        if not doc.exists:
            raise NotFoundError(f"Listing {listing_id} not found")
        return listing_from_document(doc.id, doc.to_dict() or {})

    def create_listing(self, listing: Listing, seller_id: str) -> str:
        doc_ref = self.db.collection(LISTINGS_COLLECTION).document()
        now = now_millis()
        stored = replace(
            listing,
            id=doc_ref.id,
            seller_id=seller_id,
            created_timestamp=now,
            updated_timestamp=now,
            is_sold=False,
        )
        doc_ref.set(to_document(stored))
        return doc_ref.id

    def update_listing(self, listing: Listing) -> None:
        stored = replace(listing, updated_timestamp=now_millis())
        self.db.collection(LISTINGS_COLLECTION).document(listing.id).set(
            to_document(stored)
        )

    def delete_listing(self, listing_id: str) -> None:
        self.db.collection(LISTINGS_COLLECTION).document(listing_id).delete()

    def observe_listings(
        self,
        category: Optional[Category],
        callback: Callable[[List[Listing]], None],
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        return self._watch(
            self._listings_query(category),
            category,
            lambda docs: _convert_documents(docs, listing_from_document),
            callback,
            on_error,
        )

    # Users

    def _user_ref(self, user_id: str):
        return self.db.collection(USERS_COLLECTION).document(user_id)

    def get_user(self, user_id: str) -> User:
        doc = self._user_ref(user_id).get()
        if not doc.exists:
            raise NotFoundError(f"User {user_id} not found")
        return user_from_document(doc.id, doc.to_dict() or {})

    def create_user(self, user: User) -> None:
        self._user_ref(user.id).set(to_document(user))

    def update_user(self, user: User) -> None:
        self._user_ref(user.id).set(to_document(user))

    def delete_user(self, user_id: str) -> None:
        self._user_ref(user_id).delete()

    def observe_user(
        self,
        user_id: str,
        callback: Callable[[Optional[User]], None],
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        def convert(docs):
            users = _convert_documents(docs, user_from_document)
            return users[0] if users else None

        return self._watch(self._user_ref(user_id), user_id, convert, callback, on_error)

    def _follow_refs(self, follower_id: str, target_id: str) -> Tuple[Any, Any]:
        followers_edge = (
            self._user_ref(target_id).collection(FOLLOWERS_COLLECTION).document(follower_id)
        )
        following_edge = (
            self._user_ref(follower_id).collection(FOLLOWING_COLLECTION).document(target_id)
        )
        return followers_edge, following_edge

    def follow_user(self, follower_id: str, target_id: str) -> None:
        followers_edge, following_edge = self._follow_refs(follower_id, target_id)
        transaction = self.db.transaction()

        @firestore.transactional
        def _follow_transaction(transaction):
            if followers_edge.get(transaction=transaction).exists:
                return
            now = now_millis()
            transaction.set(followers_edge, {"userId": follower_id, "timestamp": now})
            transaction.set(following_edge, {"userId": target_id, "timestamp": now})
            transaction.update(
                self._user_ref(target_id), {"followersCount": firestore.Increment(1)}
            )
            transaction.update(
                self._user_ref(follower_id), {"followingCount": firestore.Increment(1)}
            )

        _follow_transaction(transaction)

    def unfollow_user(self, follower_id: str, target_id: str) -> None:
        followers_edge, following_edge = self._follow_refs(follower_id, target_id)
        transaction = self.db.transaction()

        @firestore.transactional
        def _unfollow_transaction(transaction):
            if not followers_edge.get(transaction=transaction).exists:
                return
            transaction.delete(followers_edge)
            transaction.delete(following_edge)
            transaction.update(
                self._user_ref(target_id), {"followersCount": firestore.Increment(-1)}
            )
            transaction.update(
                self._user_ref(follower_id), {"followingCount": firestore.Increment(-1)}
            )

        _unfollow_transaction(transaction)

    def is_following(self, follower_id: str, target_id: str) -> bool:
        followers_edge, _ = self._follow_refs(follower_id, target_id)
        return followers_edge.get().exists

    # Chat

    def _room_ref(self, chat_room_id: str):
        return self.db.collection(CHATS_COLLECTION).document(chat_room_id)

    def _messages_ref(self, chat_room_id: str):
        return self._room_ref(chat_room_id).collection(MESSAGES_COLLECTION)

    def observe_messages(
        self,
        chat_room_id: str,
        callback: Callable[[List[ChatMessage]], None],
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        query = self._messages_ref(chat_room_id).order_by("timestamp")
        return self._watch(
            query,
            chat_room_id,
            lambda docs: _convert_documents(docs, message_from_document),
            callback,
            on_error,
        )

    def send_message(
        self,
        chat_room_id: str,
        sender_id: str,
        receiver_id: str,
        text: str,
        image_url: Optional[str] = None,
        metadata: Optional[ChatRoomMetadata] = None,
    ) -> ChatMessage:
        now = now_millis()
        room_update = chat_room_update(chat_room_id, sender_id, text, now, image_url, metadata)
        room_update["unreadCounts"] = {receiver_id: firestore.Increment(1)}

        msg_ref = self._messages_ref(chat_room_id).document()
        message = ChatMessage(
            id=msg_ref.id,
            chat_room_id=chat_room_id,
            sender_id=sender_id,
            message_text=text,
            timestamp=now,
            is_read=False,
            image_url=image_url,
        )
        batch = self.db.batch()
        batch.set(msg_ref, to_document(message, include_id=True))
        batch.set(self._room_ref(chat_room_id), room_update, merge=True)
        batch.commit()
        return message

    def observe_chat_threads(
        self,
        user_id: str,
        callback: Callable[[List[ChatThread]], None],
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        query = self.db.collection(CHATS_COLLECTION).where(
            filter=FieldFilter("participants", "array_contains", user_id)
        )

        def convert(docs):
            threads = []
            for doc in docs:
                thread = project_chat_thread(doc.id, doc.to_dict() or {}, user_id)
                if thread:
                    threads.append(thread)
            return sort_threads(threads)

        return self._watch(query, user_id, convert, callback, on_error)

    def mark_messages_as_read(self, chat_room_id: str, reader_id: str) -> int:
        key = parse_chat_room_id(chat_room_id)
        other_id = key.other_participant(reader_id)
        unread = (
            self._messages_ref(chat_room_id)
            .where(filter=FieldFilter("senderId", "==", other_id))
            .where(filter=FieldFilter("isRead", "==", False))
            .stream()
        )
        batch = self.db.batch()
        pending = 0
        marked = 0
        for doc in unread:
            # Leave room in the final batch for the unread-count reset.
            if pending == MAX_BATCH_WRITES - 1:
                batch.commit()
                batch = self.db.batch()
                pending = 0
            batch.update(doc.reference, {"isRead": True})
            pending += 1
            marked += 1
        batch.set(
            self._room_ref(chat_room_id), {"unreadCounts": {reader_id: 0}}, merge=True
        )
        batch.commit()
        return marked

    def delete_message(self, chat_room_id: str, message_id: str) -> None:
        self._messages_ref(chat_room_id).document(message_id).delete()

    # Favorites

    def toggle_favorite(self, user_id: str, listing_id: str) -> bool:
        fav_ref = self.db.collection(FAVORITES_COLLECTION).document(
            favorite_doc_id(user_id, listing_id)
        )
        listing_ref = self.db.collection(LISTINGS_COLLECTION).document(listing_id)
        transaction = self.db.transaction()

        @firestore.transactional
        def _toggle_transaction(transaction) -> bool:
            if fav_ref.get(transaction=transaction).exists:
                transaction.delete(fav_ref)
                transaction.update(listing_ref, {"favoriteCount": firestore.Increment(-1)})
                return False
            favorite = Favorite(
                id=fav_ref.id, user_id=user_id, listing_id=listing_id, timestamp=now_millis()
            )
            transaction.set(fav_ref, to_document(favorite))
            transaction.update(listing_ref, {"favoriteCount": firestore.Increment(1)})
            return True

        return _toggle_transaction(transaction)

    def get_favorites(self, user_id: str) -> List[Favorite]:
        query = (
            self.db.collection(FAVORITES_COLLECTION)
            .where(filter=FieldFilter("userId", "==", user_id))
            .order_by("timestamp", direction=firestore.Query.DESCENDING)
        )
        return _convert_documents(
            query.stream(),
            lambda doc_id, data: Favorite(
                id=doc_id,
                user_id=data.get("userId", ""),
                listing_id=data.get("listingId", ""),
                timestamp=int(data.get("timestamp", 0) or 0),
            ),
        )

    def is_favorite(self, user_id: str, listing_id: str) -> bool:
        doc = (
            self.db.collection(FAVORITES_COLLECTION)
            .document(favorite_doc_id(user_id, listing_id))
            .get()
        )
        return doc.exists

    # Reviews

    def add_review(self, review: Review) -> str:
        review_ref = self.db.collection(REVIEWS_COLLECTION).document()
        user_ref = self._user_ref(review.reviewed_user_id)
        stored = replace(review, id=review_ref.id, timestamp=review.timestamp or now_millis())
        transaction = self.db.transaction()

        @firestore.transactional
        def _review_transaction(transaction):
            user_doc = user_ref.get(transaction=transaction)
            if not user_doc.exists:
                raise NotFoundError(f"User {review.reviewed_user_id} not found")
            data = user_doc.to_dict() or {}
            count = int(data.get("reviewsCount", 0) or 0)
            rating = float(data.get("rating", 0.0) or 0.0)
            transaction.set(review_ref, to_document(stored))
            transaction.update(
                user_ref,
                {
                    "rating": (rating * count + stored.rating) / (count + 1),
                    "reviewsCount": count + 1,
                },
            )

        _review_transaction(transaction)
        return review_ref.id

    def get_reviews_for_user(self, user_id: str) -> List[Review]:
        query = (
            self.db.collection(REVIEWS_COLLECTION)
            .where(filter=FieldFilter("reviewedUserId", "==", user_id))
            .order_by("timestamp", direction=firestore.Query.DESCENDING)
        )
        return _convert_documents(query.stream(), review_from_document)

    # Notifications

    def add_notification(self, notification: Notification) -> str:
        doc_ref = self.db.collection(NOTIFICATIONS_COLLECTION).document()
        stored = replace(
            notification,
            id=doc_ref.id,
            timestamp=notification.timestamp or now_millis(),
        )
        doc_ref.set(to_document(stored))
        return doc_ref.id

    def observe_notifications(
        self,
        user_id: str,
        callback: Callable[[List[Notification]], None],
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        query = (
            self.db.collection(NOTIFICATIONS_COLLECTION)
            .where(filter=FieldFilter("userId", "==", user_id))
            .order_by("timestamp", direction=firestore.Query.DESCENDING)
        )
        return self._watch(
            query,
            user_id,
            lambda docs: _convert_documents(docs, notification_from_document),
            callback,
            on_error,
        )

    def mark_notification_read(self, notification_id: str) -> None:
        self.db.collection(NOTIFICATIONS_COLLECTION).document(notification_id).update(
            {"isRead": True}
        )

    def _watch(
        self,
        target,
        key: Any,
        convert: Callable[[List[Any]], Any],
        callback: Callable[[Any], None],
        on_error: Optional[ErrorCallback],
    ) -> Subscription:
        """
        Attaches a snapshot listener to a query or document reference.

        Conversion errors are routed to `on_error` and stop the stream.
        """
        listener = Listener(key=key, callback=callback, on_error=on_error)
        watch_holder: List[Any] = []

        def _stop():
            if watch_holder:
                watch_holder[0].unsubscribe()

        listener.subscription = Subscription(_stop)

        def on_snapshot(snapshots, changes, read_time):
            try:
                snapshot = convert(list(snapshots))
            except Exception as exc:
                listener.fail(exc)
                return
            listener.deliver(snapshot)

        watch = target.on_snapshot(on_snapshot)
        watch_holder.append(watch)
        if not listener.subscription.active:
            watch.unsubscribe()
        return listener.subscription


LISTINGS_TOPIC = "listings"
USER_TOPIC = "user"
MESSAGES_TOPIC = "messages"
THREADS_TOPIC = "threads"
NOTIFICATIONS_TOPIC = "notifications"


class InMemoryRemoteDataSource:
    """Simple in-memory document store for development and tests."""

    def __init__(self):
        self._lock = threading.RLock()
        self.listeners = ListenerRegistry()
        self.listings: Dict[str, Listing] = {}
        self.users: Dict[str, User] = {}
        self.messages: Dict[str, Dict[str, ChatMessage]] = {}
        self.rooms: Dict[str, Dict[str, Any]] = {}
        self.favorites: Dict[str, Favorite] = {}
        self.reviews: Dict[str, Review] = {}
        self.notifications: Dict[str, Notification] = {}
        self.follows: Set[Tuple[str, str]] = set()

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        with self._lock:
            self.listings.clear()
            self.users.clear()
            self.messages.clear()
            self.rooms.clear()
            self.favorites.clear()
            self.reviews.clear()
            self.notifications.clear()
            self.follows.clear()

    def fail_listeners(self, topic: str, exc: Exception) -> None:
        """Delivers `exc` to every listener on `topic`, ending their streams."""
        for listener in self.listeners.listeners(topic):
            listener.fail(exc)

    @staticmethod
    def _new_id() -> str:
        return uuid.uuid4().hex

    # Listings

    def _query_listings(self, category: Optional[Category] = None) -> List[Listing]:
        with self._lock:
            matches = [
                replace(item, image_urls=list(item.image_urls))
                for item in self.listings.values()
                if not item.is_sold and (category is None or item.category == category)
            ]
        return sorted(matches, key=lambda item: item.created_timestamp, reverse=True)

    def get_all_listings(self) -> List[Listing]:
        return self._query_listings()

    def get_listings_by_category(self, category: Category) -> List[Listing]:
        return self._query_listings(category)

    def get_listings_by_seller(self, seller_id: str) -> List[Listing]:
        with self._lock:
            matches = [
                replace(item, image_urls=list(item.image_urls))
                for item in self.listings.values()
                if item.seller_id == seller_id
            ]
        return sorted(matches, key=lambda item: item.created_timestamp, reverse=True)

    def get_listing(self, listing_id: str) -> Listing:
        with self._lock:
            listing = self.listings.get(listing_id)
            if not listing:
                raise NotFoundError(f"Listing {listing_id} not found")
            return replace(listing, image_urls=list(listing.image_urls))

    def create_listing(self, listing: Listing, seller_id: str) -> str:
        listing_id = self._new_id()
        now = now_millis()
        with self._lock:
            self.listings[listing_id] = replace(
                listing,
                id=listing_id,
                seller_id=seller_id,
                image_urls=list(listing.image_urls),
                created_timestamp=now,
                updated_timestamp=now,
                is_sold=False,
            )
        self._emit_listings()
        return listing_id

    def update_listing(self, listing: Listing) -> None:
        with self._lock:
            self.listings[listing.id] = replace(
                listing, image_urls=list(listing.image_urls), updated_timestamp=now_millis()
            )
        self._emit_listings()

    def delete_listing(self, listing_id: str) -> None:
        with self._lock:
            self.listings.pop(listing_id, None)
        self._emit_listings()

    def observe_listings(
        self,
        category: Optional[Category],
        callback: Callable[[List[Listing]], None],
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        listener = self.listeners.add(LISTINGS_TOPIC, category, callback, on_error)
        listener.deliver(self._query_listings(category))
        return listener.subscription

    def _emit_listings(self) -> None:
        for listener in self.listeners.listeners(LISTINGS_TOPIC):
            listener.deliver(self._query_listings(listener.key))

    # Users

    def get_user(self, user_id: str) -> User:
        with self._lock:
            user = self.users.get(user_id)
            if not user:
                raise NotFoundError(f"User {user_id} not found")
            return replace(user)

    def _peek_user(self, user_id: str) -> Optional[User]:
        with self._lock:
            user = self.users.get(user_id)
            return replace(user) if user else None

    def create_user(self, user: User) -> None:
        self.update_user(user)

    def update_user(self, user: User) -> None:
        with self._lock:
            self.users[user.id] = replace(user)
        self._emit_user(user.id)

    def delete_user(self, user_id: str) -> None:
        with self._lock:
            self.users.pop(user_id, None)
        self._emit_user(user_id)

    def observe_user(
        self,
        user_id: str,
        callback: Callable[[Optional[User]], None],
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        listener = self.listeners.add(USER_TOPIC, user_id, callback, on_error)
        listener.deliver(self._peek_user(user_id))
        return listener.subscription

    def _emit_user(self, user_id: str) -> None:
        for listener in self.listeners.listeners(USER_TOPIC):
            if listener.key == user_id:
                listener.deliver(self._peek_user(user_id))

    def _bump_user_count(self, user_id: str, field_name: str, delta: int) -> None:
        user = self.users.get(user_id)
        if user:
            setattr(user, field_name, max(getattr(user, field_name) + delta, 0))

    def follow_user(self, follower_id: str, target_id: str) -> None:
        with self._lock:
            if (follower_id, target_id) in self.follows:
                return
            self.follows.add((follower_id, target_id))
            self._bump_user_count(target_id, "followers_count", 1)
            self._bump_user_count(follower_id, "following_count", 1)
        self._emit_user(target_id)
        self._emit_user(follower_id)

    def unfollow_user(self, follower_id: str, target_id: str) -> None:
        with self._lock:
            if (follower_id, target_id) not in self.follows:
                return
            self.follows.discard((follower_id, target_id))
            self._bump_user_count(target_id, "followers_count", -1)
            self._bump_user_count(follower_id, "following_count", -1)
        self._emit_user(target_id)
        self._emit_user(follower_id)

    def is_following(self, follower_id: str, target_id: str) -> bool:
        with self._lock:
            return (follower_id, target_id) in self.follows

    # Chat

    def _room_messages(self, chat_room_id: str) -> List[ChatMessage]:
        with self._lock:
            messages = [replace(m) for m in self.messages.get(chat_room_id, {}).values()]
        return sorted(messages, key=lambda m: m.timestamp)

    def observe_messages(
        self,
        chat_room_id: str,
        callback: Callable[[List[ChatMessage]], None],
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        listener = self.listeners.add(MESSAGES_TOPIC, chat_room_id, callback, on_error)
        listener.deliver(self._room_messages(chat_room_id))
        return listener.subscription

    def _emit_messages(self, chat_room_id: str) -> None:
        for listener in self.listeners.listeners(MESSAGES_TOPIC):
            if listener.key == chat_room_id:
                listener.deliver(self._room_messages(chat_room_id))

    def send_message(
        self,
        chat_room_id: str,
        sender_id: str,
        receiver_id: str,
        text: str,
        image_url: Optional[str] = None,
        metadata: Optional[ChatRoomMetadata] = None,
    ) -> ChatMessage:
        now = now_millis()
        room_update = chat_room_update(chat_room_id, sender_id, text, now, image_url, metadata)
        message = ChatMessage(
            id=self._new_id(),
            chat_room_id=chat_room_id,
            sender_id=sender_id,
            message_text=text,
            timestamp=now,
            is_read=False,
            image_url=image_url,
        )
        with self._lock:
            self.messages.setdefault(chat_room_id, {})[message.id] = message
            room = self.rooms.setdefault(chat_room_id, {})
            for key in ("participantNames", "participantPhotos"):
                if key in room_update:
                    room[key] = {**room.get(key, {}), **room_update.pop(key)}
            room.update(room_update)
            unread = room.setdefault("unreadCounts", {})
            unread[receiver_id] = unread.get(receiver_id, 0) + 1
        self._emit_messages(chat_room_id)
        self._emit_threads()
        return replace(message)

    def _threads_for(self, user_id: str) -> List[ChatThread]:
        with self._lock:
            rooms = [(room_id, dict(data)) for room_id, data in self.rooms.items()]
        threads = []
        for room_id, data in rooms:
            thread = project_chat_thread(room_id, data, user_id)
            if thread:
                threads.append(thread)
        return sort_threads(threads)

    def observe_chat_threads(
        self,
        user_id: str,
        callback: Callable[[List[ChatThread]], None],
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        listener = self.listeners.add(THREADS_TOPIC, user_id, callback, on_error)
        listener.deliver(self._threads_for(user_id))
        return listener.subscription

    def _emit_threads(self) -> None:
        for listener in self.listeners.listeners(THREADS_TOPIC):
            listener.deliver(self._threads_for(listener.key))

    def mark_messages_as_read(self, chat_room_id: str, reader_id: str) -> int:
        other_id = parse_chat_room_id(chat_room_id).other_participant(reader_id)
        marked = 0
        with self._lock:
            for message in self.messages.get(chat_room_id, {}).values():
                if message.sender_id == other_id and not message.is_read:
                    message.is_read = True
                    marked += 1
            room = self.rooms.setdefault(chat_room_id, {})
            room.setdefault("unreadCounts", {})[reader_id] = 0
        self._emit_messages(chat_room_id)
        self._emit_threads()
        return marked

    def delete_message(self, chat_room_id: str, message_id: str) -> None:
        with self._lock:
            self.messages.get(chat_room_id, {}).pop(message_id, None)
        self._emit_messages(chat_room_id)

    # Favorites

    def toggle_favorite(self, user_id: str, listing_id: str) -> bool:
        doc_id = favorite_doc_id(user_id, listing_id)
        with self._lock:
            listing = self.listings.get(listing_id)
            if doc_id in self.favorites:
                del self.favorites[doc_id]
                if listing:
                    listing.favorite_count = max(listing.favorite_count - 1, 0)
                favorited = False
            else:
                self.favorites[doc_id] = Favorite(
                    id=doc_id, user_id=user_id, listing_id=listing_id, timestamp=now_millis()
                )
                if listing:
                    listing.favorite_count += 1
                favorited = True
        self._emit_listings()
        return favorited

    def get_favorites(self, user_id: str) -> List[Favorite]:
        with self._lock:
            favorites = [replace(f) for f in self.favorites.values() if f.user_id == user_id]
        return sorted(favorites, key=lambda f: f.timestamp, reverse=True)

    def is_favorite(self, user_id: str, listing_id: str) -> bool:
        with self._lock:
            return favorite_doc_id(user_id, listing_id) in self.favorites

    # Reviews

    def add_review(self, review: Review) -> str:
        review_id = self._new_id()
        with self._lock:
            user = self.users.get(review.reviewed_user_id)
            if not user:
                raise NotFoundError(f"User {review.reviewed_user_id} not found")
            self.reviews[review_id] = replace(
                review, id=review_id, timestamp=review.timestamp or now_millis()
            )
            count = user.reviews_count
            user.rating = (user.rating * count + review.rating) / (count + 1)
            user.reviews_count = count + 1
        self._emit_user(review.reviewed_user_id)
        return review_id

    def get_reviews_for_user(self, user_id: str) -> List[Review]:
        with self._lock:
            reviews = [
                replace(r) for r in self.reviews.values() if r.reviewed_user_id == user_id
            ]
        return sorted(reviews, key=lambda r: r.timestamp, reverse=True)

    # Notifications

    def _notifications_for(self, user_id: str) -> List[Notification]:
        with self._lock:
            items = [replace(n) for n in self.notifications.values() if n.user_id == user_id]
        return sorted(items, key=lambda n: n.timestamp, reverse=True)

    def add_notification(self, notification: Notification) -> str:
        notification_id = self._new_id()
        with self._lock:
            self.notifications[notification_id] = replace(
                notification,
                id=notification_id,
                timestamp=notification.timestamp or now_millis(),
            )
        self._emit_notifications(notification.user_id)
        return notification_id

    def observe_notifications(
        self,
        user_id: str,
        callback: Callable[[List[Notification]], None],
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        listener = self.listeners.add(NOTIFICATIONS_TOPIC, user_id, callback, on_error)
        listener.deliver(self._notifications_for(user_id))
        return listener.subscription

    def _emit_notifications(self, user_id: str) -> None:
        for listener in self.listeners.listeners(NOTIFICATIONS_TOPIC):
            if listener.key == user_id:
                listener.deliver(self._notifications_for(user_id))

    def mark_notification_read(self, notification_id: str) -> None:
        with self._lock:
            notification = self.notifications.get(notification_id)
            if not notification:
                raise NotFoundError(f"Notification {notification_id} not found")
            notification.is_read = True
        self._emit_notifications(notification.user_id)
