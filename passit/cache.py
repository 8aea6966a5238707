"""
Local cache for listings, users, chat messages and exchange rates.

`SqlLocalCache` keeps the cache in any SQLAlchemy database (SQLite on
device); `InMemoryLocalCache` is the test double. Both re-emit full query
results to observers after every write to the matching table.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from typing import Callable, Dict, Iterable, List, Optional, Protocol

from sqlalchemy import (
    Boolean,
    Column,
    Float,
    Integer,
    String,
    Text,
    create_engine,
    delete,
    func,
    select,
    update,
)
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from passit.live import ErrorCallback, ListenerRegistry, Subscription
from shared.constants import CACHE_SCHEMA_VERSION
from shared.types import CachedRate, Category, ChatMessage, Condition, Listing, User

logger = logging.getLogger(__name__)

LISTINGS_TOPIC = "listings"
USERS_TOPIC = "users"
MESSAGES_TOPIC = "messages"


@dataclass(frozen=True)
class ListingQuery:
    """
    Filter for cached listings.

    Sold listings are only returned when filtering by seller (so a seller's
    own profile can show them) or when `include_sold` is set.
    """

    category: Optional[Category] = None
    seller_id: Optional[str] = None
    title_query: Optional[str] = None
    include_sold: bool = False

    def matches(self, listing: Listing) -> bool:
        if self.seller_id is not None:
            if listing.seller_id != self.seller_id:
                return False
        elif listing.is_sold and not self.include_sold:
            return False
        if self.category is not None and listing.category != self.category:
            return False
        if self.title_query and self.title_query.lower() not in listing.title.lower():
            return False
        return True


class LocalCache(Protocol):
    """Operations the repositories need from the on-device cache."""

    # Listings
    def get_listing(self, listing_id: str) -> Optional[Listing]:
        ...

    def upsert_listing(self, listing: Listing) -> None:
        ...

    def upsert_listings(self, listings: Iterable[Listing]) -> None:
        ...

    def delete_listing(self, listing_id: str) -> None:
        ...

    def query_listings(self, query: ListingQuery) -> List[Listing]:
        ...

    def count_sold_listings(self, seller_id: str) -> int:
        ...

    def clear_listings(self) -> None:
        ...

    def observe_listings(
        self, query: ListingQuery, callback: Callable[[List[Listing]], None]
    ) -> Subscription:
        ...

    # Users
    def get_user(self, user_id: str) -> Optional[User]:
        ...

    def upsert_user(self, user: User) -> None:
        ...

    def upsert_users(self, users: Iterable[User]) -> None:
        ...

    def delete_user(self, user_id: str) -> None:
        ...

    def search_users(self, query: str) -> List[User]:
        ...

    def update_online_status(self, user_id: str, is_online: bool, last_seen: int) -> None:
        ...

    def clear_users(self) -> None:
        ...

    def observe_user(
        self,
        user_id: str,
        callback: Callable[[Optional[User]], None],
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        ...

    # Chat messages
    def get_messages(self, chat_room_id: str) -> List[ChatMessage]:
        ...

    def upsert_message(self, message: ChatMessage) -> None:
        ...

    def upsert_messages(self, messages: Iterable[ChatMessage]) -> None:
        ...

    def mark_message_read(self, message_id: str) -> None:
        ...

    def delete_message(self, message_id: str) -> None:
        ...

    def delete_messages_for_room(self, chat_room_id: str) -> None:
        ...

    def replace_messages_for_room(
        self, chat_room_id: str, messages: Iterable[ChatMessage]
    ) -> None:
        """Makes the room's cached messages exactly `messages`."""
        ...

    def observe_messages(
        self, chat_room_id: str, callback: Callable[[List[ChatMessage]], None]
    ) -> Subscription:
        ...

    # Exchange rates
    def get_rate(self, from_currency: str, to_currency: str) -> Optional[CachedRate]:
        ...

    def upsert_rate(self, rate: CachedRate) -> None:
        ...

    def all_rates(self) -> List[CachedRate]:
        ...

    def delete_rates_older_than(self, timestamp: int) -> int:
        ...

    def clear_rates(self) -> None:
        ...


class _ObservableCache:
    """Observer bookkeeping shared by both cache implementations."""

    def __init__(self):
        self.listeners = ListenerRegistry()

    def observe_listings(
        self, query: ListingQuery, callback: Callable[[List[Listing]], None]
    ) -> Subscription:
        listener = self.listeners.add(LISTINGS_TOPIC, query, callback)
        listener.deliver(self.query_listings(query))
        return listener.subscription

    def observe_user(
        self,
        user_id: str,
        callback: Callable[[Optional[User]], None],
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        listener = self.listeners.add(USERS_TOPIC, user_id, callback, on_error)
        listener.deliver(self.get_user(user_id))
        return listener.subscription

    def observe_messages(
        self, chat_room_id: str, callback: Callable[[List[ChatMessage]], None]
    ) -> Subscription:
        listener = self.listeners.add(MESSAGES_TOPIC, chat_room_id, callback)
        listener.deliver(self.get_messages(chat_room_id))
        return listener.subscription

    def _notify_listings(self) -> None:
        for listener in self.listeners.listeners(LISTINGS_TOPIC):
            listener.deliver(self.query_listings(listener.key))

    def _notify_users(self) -> None:
        for listener in self.listeners.listeners(USERS_TOPIC):
            listener.deliver(self.get_user(listener.key))

    def _notify_messages(self) -> None:
        for listener in self.listeners.listeners(MESSAGES_TOPIC):
            listener.deliver(self.get_messages(listener.key))

    # Implemented by subclasses.
    def query_listings(self, query: ListingQuery) -> List[Listing]:
        raise NotImplementedError

    def get_user(self, user_id: str) -> Optional[User]:
        raise NotImplementedError

    def get_messages(self, chat_room_id: str) -> List[ChatMessage]:
        raise NotImplementedError


def _sorted_listings(listings: Iterable[Listing]) -> List[Listing]:
    return sorted(listings, key=lambda item: item.created_timestamp, reverse=True)


class InMemoryLocalCache(_ObservableCache):
    """Simple in-memory cache for development and tests."""

    def __init__(self):
        super().__init__()
        self._lock = threading.RLock()
        self.listings: Dict[str, Listing] = {}
        self.users: Dict[str, User] = {}
        self.messages: Dict[str, ChatMessage] = {}
        self.rates: Dict[str, CachedRate] = {}

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        with self._lock:
            self.listings.clear()
            self.users.clear()
            self.messages.clear()
            self.rates.clear()

    # Listings

    def get_listing(self, listing_id: str) -> Optional[Listing]:
        with self._lock:
            listing = self.listings.get(listing_id)
            return replace(listing, image_urls=list(listing.image_urls)) if listing else None

    def upsert_listing(self, listing: Listing) -> None:
        self.upsert_listings([listing])

    def upsert_listings(self, listings: Iterable[Listing]) -> None:
        with self._lock:
            for listing in listings:
                self.listings[listing.id] = replace(
                    listing, image_urls=list(listing.image_urls)
                )
        self._notify_listings()

    def delete_listing(self, listing_id: str) -> None:
        with self._lock:
            self.listings.pop(listing_id, None)
        self._notify_listings()

    def query_listings(self, query: ListingQuery) -> List[Listing]:
        with self._lock:
            matches = [
                replace(item, image_urls=list(item.image_urls))
                for item in self.listings.values()
                if query.matches(item)
            ]
        return _sorted_listings(matches)

    def count_sold_listings(self, seller_id: str) -> int:
        with self._lock:
            return sum(
                1
                for item in self.listings.values()
                if item.seller_id == seller_id and item.is_sold
            )

    def clear_listings(self) -> None:
        with self._lock:
            self.listings.clear()
        self._notify_listings()

    # Users

    def get_user(self, user_id: str) -> Optional[User]:
        with self._lock:
            user = self.users.get(user_id)
            return replace(user) if user else None

    def upsert_user(self, user: User) -> None:
        self.upsert_users([user])

    def upsert_users(self, users: Iterable[User]) -> None:
        with self._lock:
            for user in users:
                self.users[user.id] = replace(user)
        self._notify_users()

    def delete_user(self, user_id: str) -> None:
        with self._lock:
            self.users.pop(user_id, None)
        self._notify_users()

    def search_users(self, query: str) -> List[User]:
        needle = query.lower()
        with self._lock:
            return [replace(u) for u in self.users.values() if needle in u.name.lower()]

    def update_online_status(self, user_id: str, is_online: bool, last_seen: int) -> None:
        with self._lock:
            user = self.users.get(user_id)
            if not user:
                return
            self.users[user_id] = replace(user, is_online=is_online, last_seen=last_seen)
        self._notify_users()

    def clear_users(self) -> None:
        with self._lock:
            self.users.clear()
        self._notify_users()

    # Chat messages

    def get_messages(self, chat_room_id: str) -> List[ChatMessage]:
        with self._lock:
            matches = [
                replace(m) for m in self.messages.values() if m.chat_room_id == chat_room_id
            ]
        return sorted(matches, key=lambda m: m.timestamp)

    def upsert_message(self, message: ChatMessage) -> None:
        self.upsert_messages([message])

    def upsert_messages(self, messages: Iterable[ChatMessage]) -> None:
        with self._lock:
            for message in messages:
                self.messages[message.id] = replace(message)
        self._notify_messages()

    def mark_message_read(self, message_id: str) -> None:
        with self._lock:
            message = self.messages.get(message_id)
            if not message:
                return
            self.messages[message_id] = replace(message, is_read=True)
        self._notify_messages()

    def delete_message(self, message_id: str) -> None:
        with self._lock:
            self.messages.pop(message_id, None)
        self._notify_messages()

    def delete_messages_for_room(self, chat_room_id: str) -> None:
        with self._lock:
            for key in [k for k, m in self.messages.items() if m.chat_room_id == chat_room_id]:
                del self.messages[key]
        self._notify_messages()

    def replace_messages_for_room(
        self, chat_room_id: str, messages: Iterable[ChatMessage]
    ) -> None:
        with self._lock:
            for key in [k for k, m in self.messages.items() if m.chat_room_id == chat_room_id]:
                del self.messages[key]
            for message in messages:
                self.messages[message.id] = replace(message)
        self._notify_messages()

    # Exchange rates

    def get_rate(self, from_currency: str, to_currency: str) -> Optional[CachedRate]:
        with self._lock:
            for rate in self.rates.values():
                if rate.from_currency == from_currency and rate.to_currency == to_currency:
                    return replace(rate)
        return None

    def upsert_rate(self, rate: CachedRate) -> None:
        with self._lock:
            self.rates[rate.id] = replace(rate)

    def all_rates(self) -> List[CachedRate]:
        with self._lock:
            return [replace(rate) for rate in self.rates.values()]

    def delete_rates_older_than(self, timestamp: int) -> int:
        with self._lock:
            stale = [key for key, rate in self.rates.items() if rate.timestamp < timestamp]
            for key in stale:
                del self.rates[key]
        return len(stale)

    def clear_rates(self) -> None:
        with self._lock:
            self.rates.clear()


class SqlLocalCache(_ObservableCache):
    """
    SQLAlchemy-backed cache. Accepts any SQLAlchemy URL (SQLite on device,
    `sqlite+pysqlite:///:memory:` in tests).

    Schema changes are handled destructively: when the stored schema version
    differs from CACHE_SCHEMA_VERSION every cache table is dropped and
    recreated.
    """

    def __init__(self, database_url: str, schema_version: int = CACHE_SCHEMA_VERSION):
        if not database_url:
            raise ValueError("A database URL is required for SqlLocalCache")
        super().__init__()
        engine_kwargs: dict = {"future": True}
        if database_url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if ":memory:" in database_url or database_url.rstrip("/").endswith("sqlite"):
                engine_kwargs["poolclass"] = StaticPool
        self.engine = create_engine(database_url, **engine_kwargs)
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        self._lock = threading.RLock()
        self.schema_version = schema_version
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        Base.metadata.create_all(self.engine)
        with self.Session() as session:
            row = session.get(CacheMetaRow, "schema_version")
            stored = int(row.value) if row else None
        if stored == self.schema_version:
            return
        if stored is not None:
            logger.info(
                "Cache schema version changed (%s -> %s), recreating tables",
                stored,
                self.schema_version,
            )
        Base.metadata.drop_all(self.engine)
        Base.metadata.create_all(self.engine)
        with self.Session() as session:
            session.add(CacheMetaRow(key="schema_version", value=str(self.schema_version)))
            session.commit()

    # Listings

    def get_listing(self, listing_id: str) -> Optional[Listing]:
        with self._lock, self.Session() as session:
            row = session.get(ListingRow, listing_id)
            return _listing_from_row(row) if row else None

    def upsert_listing(self, listing: Listing) -> None:
        self.upsert_listings([listing])

    def upsert_listings(self, listings: Iterable[Listing]) -> None:
        with self._lock, self.Session() as session:
            for listing in listings:
                session.merge(_listing_to_row(listing))
            session.commit()
        self._notify_listings()

    def delete_listing(self, listing_id: str) -> None:
        with self._lock, self.Session() as session:
            session.execute(delete(ListingRow).where(ListingRow.id == listing_id))
            session.commit()
        self._notify_listings()

    def query_listings(self, query: ListingQuery) -> List[Listing]:
        stmt = select(ListingRow)
        if query.seller_id is not None:
            stmt = stmt.where(ListingRow.seller_id == query.seller_id)
        elif not query.include_sold:
            stmt = stmt.where(ListingRow.is_sold.is_(False))
        if query.category is not None:
            stmt = stmt.where(ListingRow.category == query.category.value)
        if query.title_query:
            stmt = stmt.where(ListingRow.title.icontains(query.title_query, autoescape=True))
        stmt = stmt.order_by(ListingRow.created_timestamp.desc())
        with self._lock, self.Session() as session:
            return [_listing_from_row(row) for row in session.execute(stmt).scalars()]

    def count_sold_listings(self, seller_id: str) -> int:
        stmt = select(func.count()).select_from(ListingRow).where(
            ListingRow.seller_id == seller_id, ListingRow.is_sold.is_(True)
        )
        with self._lock, self.Session() as session:
            return session.execute(stmt).scalar_one()

    def clear_listings(self) -> None:
        with self._lock, self.Session() as session:
            session.execute(delete(ListingRow))
            session.commit()
        self._notify_listings()

    # Users

    def get_user(self, user_id: str) -> Optional[User]:
        with self._lock, self.Session() as session:
            row = session.get(UserRow, user_id)
            return _user_from_row(row) if row else None

    def upsert_user(self, user: User) -> None:
        self.upsert_users([user])

    def upsert_users(self, users: Iterable[User]) -> None:
        with self._lock, self.Session() as session:
            for user in users:
                session.merge(_user_to_row(user))
            session.commit()
        self._notify_users()

    def delete_user(self, user_id: str) -> None:
        with self._lock, self.Session() as session:
            session.execute(delete(UserRow).where(UserRow.id == user_id))
            session.commit()
        self._notify_users()

    def search_users(self, query: str) -> List[User]:
        stmt = select(UserRow).where(UserRow.name.icontains(query, autoescape=True))
        with self._lock, self.Session() as session:
            return [_user_from_row(row) for row in session.execute(stmt).scalars()]

    def update_online_status(self, user_id: str, is_online: bool, last_seen: int) -> None:
        with self._lock, self.Session() as session:
            session.execute(
                update(UserRow)
                .where(UserRow.id == user_id)
                .values(is_online=is_online, last_seen=last_seen)
            )
            session.commit()
        self._notify_users()

    def clear_users(self) -> None:
        with self._lock, self.Session() as session:
            session.execute(delete(UserRow))
            session.commit()
        self._notify_users()

    # Chat messages

    def get_messages(self, chat_room_id: str) -> List[ChatMessage]:
        stmt = (
            select(ChatMessageRow)
            .where(ChatMessageRow.chat_room_id == chat_room_id)
            .order_by(ChatMessageRow.timestamp.asc())
        )
        with self._lock, self.Session() as session:
            return [_message_from_row(row) for row in session.execute(stmt).scalars()]

    def upsert_message(self, message: ChatMessage) -> None:
        self.upsert_messages([message])

    def upsert_messages(self, messages: Iterable[ChatMessage]) -> None:
        with self._lock, self.Session() as session:
            for message in messages:
                session.merge(_message_to_row(message))
            session.commit()
        self._notify_messages()

    def mark_message_read(self, message_id: str) -> None:
        with self._lock, self.Session() as session:
            session.execute(
                update(ChatMessageRow)
                .where(ChatMessageRow.id == message_id)
                .values(is_read=True)
            )
            session.commit()
        self._notify_messages()

    def delete_message(self, message_id: str) -> None:
        with self._lock, self.Session() as session:
            session.execute(delete(ChatMessageRow).where(ChatMessageRow.id == message_id))
            session.commit()
        self._notify_messages()

    def delete_messages_for_room(self, chat_room_id: str) -> None:
        with self._lock, self.Session() as session:
            session.execute(
                delete(ChatMessageRow).where(ChatMessageRow.chat_room_id == chat_room_id)
            )
            session.commit()
        self._notify_messages()

    def replace_messages_for_room(
        self, chat_room_id: str, messages: Iterable[ChatMessage]
    ) -> None:
        with self._lock, self.Session() as session:
            session.execute(
                delete(ChatMessageRow).where(ChatMessageRow.chat_room_id == chat_room_id)
            )
            for message in messages:
                session.merge(_message_to_row(message))
            session.commit()
        self._notify_messages()

    # Exchange rates

    def get_rate(self, from_currency: str, to_currency: str) -> Optional[CachedRate]:
        stmt = (
            select(ExchangeRateRow)
            .where(
                ExchangeRateRow.from_currency == from_currency,
                ExchangeRateRow.to_currency == to_currency,
            )
            .limit(1)
        )
        with self._lock, self.Session() as session:
            row = session.execute(stmt).scalar_one_or_none()
            return _rate_from_row(row) if row else None

    def upsert_rate(self, rate: CachedRate) -> None:
        with self._lock, self.Session() as session:
            session.merge(
                ExchangeRateRow(
                    id=rate.id,
                    from_currency=rate.from_currency,
                    to_currency=rate.to_currency,
                    rate=rate.rate,
                    timestamp=rate.timestamp,
                )
            )
            session.commit()

    def all_rates(self) -> List[CachedRate]:
        with self._lock, self.Session() as session:
            rows = session.execute(select(ExchangeRateRow)).scalars()
            return [_rate_from_row(row) for row in rows]

    def delete_rates_older_than(self, timestamp: int) -> int:
        with self._lock, self.Session() as session:
            result = session.execute(
                delete(ExchangeRateRow).where(ExchangeRateRow.timestamp < timestamp)
            )
            session.commit()
            return result.rowcount or 0

    def clear_rates(self) -> None:
        with self._lock, self.Session() as session:
            session.execute(delete(ExchangeRateRow))
            session.commit()


Base = declarative_base()


class CacheMetaRow(Base):
    __tablename__ = "cache_meta"

    key = Column(String, primary_key=True)
    value = Column(String, nullable=False)


class ListingRow(Base):
    __tablename__ = "listings"

    id = Column(String, primary_key=True)
    seller_id = Column(String, nullable=False, index=True)
    title = Column(String, nullable=False, default="")
    description = Column(Text, nullable=False, default="")
    price = Column(Float, nullable=False, default=0.0)
    currency = Column(String(3), nullable=False)
    condition = Column(String, nullable=False)
    category = Column(String, nullable=False, index=True)
    brand = Column(String, nullable=False, default="")
    location = Column(String, nullable=False, default="")
    latitude = Column(Float, nullable=False, default=0.0)
    longitude = Column(Float, nullable=False, default=0.0)
    # Comma-joined URLs
    image_urls = Column(Text, nullable=False, default="")
    created_timestamp = Column(Integer, nullable=False, default=0, index=True)
    updated_timestamp = Column(Integer, nullable=False, default=0)
    view_count = Column(Integer, nullable=False, default=0)
    favorite_count = Column(Integer, nullable=False, default=0)
    is_sold = Column(Boolean, nullable=False, default=False)


class UserRow(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False, default="")
    email = Column(String, nullable=False, default="")
    photo_url = Column(String, nullable=False, default="")
    bio = Column(Text, nullable=False, default="")
    location = Column(String, nullable=False, default="")
    phone_number = Column(String, nullable=False, default="")
    rating = Column(Float, nullable=False, default=0.0)
    reviews_count = Column(Integer, nullable=False, default=0)
    followers_count = Column(Integer, nullable=False, default=0)
    following_count = Column(Integer, nullable=False, default=0)
    is_verified = Column(Boolean, nullable=False, default=False)
    is_online = Column(Boolean, nullable=False, default=False)
    created_at = Column(Integer, nullable=False, default=0)
    last_seen = Column(Integer, nullable=False, default=0)


class ChatMessageRow(Base):
    __tablename__ = "chat_messages"

    id = Column(String, primary_key=True)
    chat_room_id = Column(String, nullable=False, index=True)
    sender_id = Column(String, nullable=False)
    message_text = Column(Text, nullable=False, default="")
    timestamp = Column(Integer, nullable=False, default=0)
    is_read = Column(Boolean, nullable=False, default=False)
    image_url = Column(String, nullable=True)


class ExchangeRateRow(Base):
    __tablename__ = "exchange_rates"

    # "{from}_{to}", e.g. "CAD_USD"
    id = Column(String, primary_key=True)
    from_currency = Column(String(3), nullable=False)
    to_currency = Column(String(3), nullable=False)
    rate = Column(Float, nullable=False)
    timestamp = Column(Integer, nullable=False)


def _listing_to_row(listing: Listing) -> ListingRow:
    return ListingRow(
        id=listing.id,
        seller_id=listing.seller_id,
        title=listing.title,
        description=listing.description,
        price=listing.price,
        currency=listing.currency,
        condition=listing.condition.value,
        category=listing.category.value,
        brand=listing.brand,
        location=listing.location,
        latitude=listing.latitude,
        longitude=listing.longitude,
        image_urls=",".join(listing.image_urls),
        created_timestamp=listing.created_timestamp,
        updated_timestamp=listing.updated_timestamp,
        view_count=listing.view_count,
        favorite_count=listing.favorite_count,
        is_sold=listing.is_sold,
    )


def _listing_from_row(row: ListingRow) -> Listing:
    return Listing(
        id=row.id,
        seller_id=row.seller_id,
        title=row.title,
        description=row.description,
        price=row.price,
        currency=row.currency,
        condition=Condition.parse(row.condition),
        category=Category.parse(row.category),
        brand=row.brand,
        location=row.location,
        latitude=row.latitude,
        longitude=row.longitude,
        image_urls=row.image_urls.split(",") if row.image_urls.strip() else [],
        created_timestamp=row.created_timestamp,
        updated_timestamp=row.updated_timestamp,
        view_count=row.view_count,
        favorite_count=row.favorite_count,
        is_sold=row.is_sold,
    )


def _user_to_row(user: User) -> UserRow:
    return UserRow(
        id=user.id,
        name=user.name,
        email=user.email,
        photo_url=user.photo_url,
        bio=user.bio,
        location=user.location,
        phone_number=user.phone_number,
        rating=user.rating,
        reviews_count=user.reviews_count,
        followers_count=user.followers_count,
        following_count=user.following_count,
        is_verified=user.is_verified,
        is_online=user.is_online,
        created_at=user.created_at,
        last_seen=user.last_seen,
    )


def _user_from_row(row: UserRow) -> User:
    return User(
        id=row.id,
        name=row.name,
        email=row.email,
        photo_url=row.photo_url,
        bio=row.bio,
        location=row.location,
        phone_number=row.phone_number,
        rating=row.rating,
        reviews_count=row.reviews_count,
        followers_count=row.followers_count,
        following_count=row.following_count,
        is_verified=row.is_verified,
        is_online=row.is_online,
        created_at=row.created_at,
        last_seen=row.last_seen,
    )


def _message_to_row(message: ChatMessage) -> ChatMessageRow:
    return ChatMessageRow(
        id=message.id,
        chat_room_id=message.chat_room_id,
        sender_id=message.sender_id,
        message_text=message.message_text,
        timestamp=message.timestamp,
        is_read=message.is_read,
        image_url=message.image_url,
    )


def _message_from_row(row: ChatMessageRow) -> ChatMessage:
    return ChatMessage(
        id=row.id,
        chat_room_id=row.chat_room_id,
        sender_id=row.sender_id,
        message_text=row.message_text,
        timestamp=row.timestamp,
        is_read=row.is_read,
        image_url=row.image_url,
    )


def _rate_from_row(row: ExchangeRateRow) -> CachedRate:
    return CachedRate(
        id=row.id,
        from_currency=row.from_currency,
        to_currency=row.to_currency,
        rate=row.rate,
        timestamp=row.timestamp,
    )
