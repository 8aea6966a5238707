"""
Dependency wiring for the data layer.

Every getter returns a process-wide singleton. Backends fall back to their
in-memory doubles when `use_in_memory_backends` is set or Firebase is not
configured.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor

import firebase_admin
from firebase_admin import credentials

from passit.auth import AuthDataSource, FirebaseAuthDataSource, InMemoryAuthDataSource
from passit.blob_storage import BlobStorage, FirebaseBlobStorage, InMemoryBlobStorage
from passit.cache import InMemoryLocalCache, LocalCache, SqlLocalCache
from passit.config import Settings, get_settings
from passit.exchange_rates import ExchangeRateApiClient
from passit.remote import FirestoreDataSource, InMemoryRemoteDataSource, RemoteDataSource
from passit.repositories.auth import AuthRepository
from passit.repositories.background import make_executor
from passit.repositories.chat import ChatRepository
from passit.repositories.exchange_rates import ExchangeRateRepository
from passit.repositories.favorites import FavoriteRepository
from passit.repositories.images import ImageRepository
from passit.repositories.listings import ListingRepository
from passit.repositories.notifications import NotificationRepository
from passit.repositories.reviews import ReviewRepository
from passit.repositories.users import UserRepository

logger = logging.getLogger(__name__)

_local_cache: LocalCache | None = None
_remote_data_source: RemoteDataSource | None = None
_auth_data_source: AuthDataSource | None = None
_blob_storage: BlobStorage | None = None
_exchange_rate_client: ExchangeRateApiClient | None = None
_executor: ThreadPoolExecutor | None = None

_listing_repository: ListingRepository | None = None
_user_repository: UserRepository | None = None
_chat_repository: ChatRepository | None = None
_auth_repository: AuthRepository | None = None
_image_repository: ImageRepository | None = None
_exchange_rate_repository: ExchangeRateRepository | None = None
_favorite_repository: FavoriteRepository | None = None
_review_repository: ReviewRepository | None = None
_notification_repository: NotificationRepository | None = None


def _use_in_memory(settings: Settings) -> bool:
    return settings.use_in_memory_backends or not settings.firebase_configured


def initialize_firebase(settings: Settings) -> firebase_admin.App:
    """Initializes the default firebase_admin app once and returns it."""
    try:
        return firebase_admin.get_app()
    except ValueError:
        pass
    options = {}
    if settings.firebase_project_id:
        options["projectId"] = settings.firebase_project_id
    if settings.firebase_storage_bucket:
        options["storageBucket"] = settings.firebase_storage_bucket
    cred = (
        credentials.Certificate(settings.firebase_credentials)
        if settings.firebase_credentials
        else None
    )
    logger.info("Initializing Firebase app for project %s", settings.firebase_project_id)
    return firebase_admin.initialize_app(cred, options or None)


def get_local_cache() -> LocalCache:
    global _local_cache
    if _local_cache:
        return _local_cache

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.cache_url:
        _local_cache = InMemoryLocalCache()
    else:
        _local_cache = SqlLocalCache(settings.cache_url)
    return _local_cache


def get_remote_data_source() -> RemoteDataSource:
    global _remote_data_source
    if _remote_data_source:
        return _remote_data_source

    settings = get_settings()
    if _use_in_memory(settings):
        _remote_data_source = InMemoryRemoteDataSource()
    else:
        initialize_firebase(settings)
        _remote_data_source = FirestoreDataSource()
    return _remote_data_source


def get_auth_data_source() -> AuthDataSource:
    global _auth_data_source
    if _auth_data_source:
        return _auth_data_source

    settings = get_settings()
    if _use_in_memory(settings):
        _auth_data_source = InMemoryAuthDataSource()
    elif not settings.firebase_web_api_key:
        # Local accounts would hand out uids unknown to the real project.
        raise ValueError(
            "FIREBASE_WEB_API_KEY is required when Firebase is configured; "
            "set PASSIT_USE_IN_MEMORY_BACKENDS=true to run without Firebase"
        )
    else:
        _auth_data_source = FirebaseAuthDataSource(settings.firebase_web_api_key)
    return _auth_data_source


def get_blob_storage() -> BlobStorage:
    global _blob_storage
    if _blob_storage:
        return _blob_storage

    settings = get_settings()
    if _use_in_memory(settings):
        _blob_storage = InMemoryBlobStorage()
    else:
        initialize_firebase(settings)
        _blob_storage = FirebaseBlobStorage(bucket_name=settings.firebase_storage_bucket)
    return _blob_storage


def get_exchange_rate_client() -> ExchangeRateApiClient:
    global _exchange_rate_client
    if _exchange_rate_client:
        return _exchange_rate_client

    settings = get_settings()
    _exchange_rate_client = ExchangeRateApiClient(
        base_url=settings.exchange_rate_base_url,
        timeout=settings.exchange_rate_timeout_seconds,
    )
    return _exchange_rate_client


def get_executor() -> ThreadPoolExecutor:
    """
    Return the pool that runs background cache refreshes.
    """
    global _executor
    if _executor:
        return _executor
    _executor = make_executor(get_settings().sync_workers)
    return _executor


def get_listing_repository() -> ListingRepository:
    global _listing_repository
    if _listing_repository:
        return _listing_repository
    _listing_repository = ListingRepository(
        get_local_cache(), get_remote_data_source(), get_executor()
    )
    return _listing_repository


def get_user_repository() -> UserRepository:
    global _user_repository
    if _user_repository:
        return _user_repository
    _user_repository = UserRepository(get_local_cache(), get_remote_data_source(), get_executor())
    return _user_repository


def get_chat_repository() -> ChatRepository:
    global _chat_repository
    if _chat_repository:
        return _chat_repository
    _chat_repository = ChatRepository(get_local_cache(), get_remote_data_source())
    return _chat_repository


def get_auth_repository() -> AuthRepository:
    global _auth_repository
    if _auth_repository:
        return _auth_repository
    _auth_repository = AuthRepository(get_auth_data_source(), get_user_repository())
    return _auth_repository


def get_image_repository() -> ImageRepository:
    global _image_repository
    if _image_repository:
        return _image_repository
    _image_repository = ImageRepository(get_blob_storage())
    return _image_repository


def get_exchange_rate_repository() -> ExchangeRateRepository:
    global _exchange_rate_repository
    if _exchange_rate_repository:
        return _exchange_rate_repository
    _exchange_rate_repository = ExchangeRateRepository(
        get_local_cache(), get_exchange_rate_client()
    )
    return _exchange_rate_repository


def get_favorite_repository() -> FavoriteRepository:
    global _favorite_repository
    if _favorite_repository:
        return _favorite_repository
    _favorite_repository = FavoriteRepository(get_local_cache(), get_remote_data_source())
    return _favorite_repository


def get_review_repository() -> ReviewRepository:
    global _review_repository
    if _review_repository:
        return _review_repository
    _review_repository = ReviewRepository(get_remote_data_source(), get_user_repository())
    return _review_repository


def get_notification_repository() -> NotificationRepository:
    global _notification_repository
    if _notification_repository:
        return _notification_repository
    _notification_repository = NotificationRepository(get_remote_data_source())
    return _notification_repository


def reset_dependencies() -> None:
    """Drops every singleton; the next getter call rebuilds from settings."""
    global _local_cache, _remote_data_source, _auth_data_source, _blob_storage
    global _exchange_rate_client, _executor, _listing_repository, _user_repository
    global _chat_repository, _auth_repository, _image_repository
    global _exchange_rate_repository, _favorite_repository, _review_repository
    global _notification_repository
    if _executor is not None:
        _executor.shutdown(wait=False)
    _local_cache = _remote_data_source = _auth_data_source = _blob_storage = None
    _exchange_rate_client = _executor = None
    _listing_repository = _user_repository = _chat_repository = None
    _auth_repository = _image_repository = _exchange_rate_repository = None
    _favorite_repository = _review_repository = _notification_repository = None
