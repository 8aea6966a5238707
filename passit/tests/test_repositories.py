import unittest
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import MagicMock

from passit.auth import GOOGLE_PROVIDER, InMemoryAuthDataSource
from passit.blob_storage import InMemoryBlobStorage
from passit.cache import InMemoryLocalCache
from passit.errors import AuthError, NotFoundError, NotLoggedInError
from passit.remote import InMemoryRemoteDataSource
from passit.repositories.auth import DEFAULT_DISPLAY_NAME, AuthRepository
from passit.repositories.background import submit_refresh
from passit.repositories.chat import ChatRepository
from passit.repositories.favorites import FavoriteRepository
from passit.repositories.images import ImageRepository
from passit.repositories.listings import ListingRepository
from passit.repositories.notifications import NotificationRepository
from passit.repositories.reviews import ReviewRepository
from passit.repositories.users import UserRepository
from shared.chat_ids import InvalidChatRoomId
from shared.types import (
    Category,
    ChatMessage,
    Listing,
    NotificationType,
    Review,
    User,
)

ROOM = "chat_L1_buyer_seller"


class SubmitRefreshTest(unittest.TestCase):
    def test_inline_failures_are_swallowed(self):
        refresh = MagicMock(side_effect=RuntimeError("offline"))
        future = submit_refresh(None, refresh, "sync listings")
        refresh.assert_called_once()
        self.assertIsNone(future.result())

    def test_runs_on_executor(self):
        with ThreadPoolExecutor(max_workers=1) as executor:
            calls = []
            submit_refresh(executor, lambda: calls.append(1), "sync").result(timeout=5)
        self.assertEqual(calls, [1])


class ListingRepositoryTest(unittest.TestCase):
    def setUp(self):
        self.cache = InMemoryLocalCache()
        self.remote = InMemoryRemoteDataSource()
        self.repo = ListingRepository(self.cache, self.remote)

    def test_observe_refreshes_cache_from_remote(self):
        self.remote.create_listing(Listing(title="Desk", category=Category.FURNITURE), "s1")
        self.remote.create_listing(Listing(title="Novel", category=Category.BOOKS), "s1")
        snapshots = []

        self.repo.observe_listings(snapshots.append, category=Category.BOOKS)

        self.assertEqual([item.title for item in snapshots[-1]], ["Novel"])

    def test_refresh_failure_keeps_cached_data(self):
        self.cache.upsert_listing(Listing(id="L1", title="Cached"))
        remote = MagicMock()
        remote.get_all_listings.side_effect = RuntimeError("offline")
        repo = ListingRepository(self.cache, remote)
        snapshots = []

        repo.observe_listings(snapshots.append)

        self.assertEqual([item.id for item in snapshots[-1]], ["L1"])

    def test_create_update_and_sold(self):
        listing_id = self.repo.create_listing(Listing(title="Desk", price=40), "s1")

        cached = self.cache.get_listing(listing_id)
        self.assertEqual(cached.seller_id, "s1")
        self.assertFalse(cached.is_sold)

        own, feed = [], []
        self.repo.observe_user_listings("s1", own.append)
        self.repo.observe_listings(feed.append)

        self.repo.mark_as_sold(listing_id)

        self.assertTrue(self.remote.get_listing(listing_id).is_sold)
        self.assertTrue(own[-1][0].is_sold)
        self.assertEqual(feed[-1], [])

    def test_get_listing_reads_through(self):
        listing_id = self.remote.create_listing(Listing(title="Lamp"), "s1")
        self.assertIsNone(self.cache.get_listing(listing_id))

        self.assertEqual(self.repo.get_listing(listing_id).title, "Lamp")
        self.assertIsNotNone(self.cache.get_listing(listing_id))

        with self.assertRaises(NotFoundError):
            self.repo.get_listing("missing")

    def test_search_and_delete(self):
        listing_id = self.repo.create_listing(Listing(title="Standing Desk"), "s1")
        self.repo.create_listing(Listing(title="Lamp"), "s1")
        results = []

        self.repo.search_listings("desk", results.append)
        self.assertEqual([item.id for item in results[-1]], [listing_id])

        self.repo.delete_listing(listing_id)
        self.assertEqual(results[-1], [])
        self.assertEqual(self.remote.listings.get(listing_id), None)


class UserRepositoryTest(unittest.TestCase):
    def setUp(self):
        self.cache = InMemoryLocalCache()
        self.remote = InMemoryRemoteDataSource()
        self.repo = UserRepository(self.cache, self.remote)

    def test_observe_missing_user_reports_not_found_then_recovers(self):
        users, errors = [], []

        self.repo.observe_user("u1", users.append, errors.append)
        self.assertTrue(errors)
        self.assertIsInstance(errors[0], NotFoundError)

        self.repo.create_user(User(id="u1", name="Ann"))
        self.assertEqual(users[-1].name, "Ann")

    def test_observe_syncs_remote_profile(self):
        self.remote.create_user(User(id="u1", name="Ann"))
        users = []
        self.repo.observe_user("u1", users.append)
        self.assertEqual(users[-1].name, "Ann")
        self.assertEqual(self.cache.get_user("u1").name, "Ann")

    def test_follow_refreshes_counters(self):
        self.repo.create_user(User(id="a", name="Ann"))
        self.repo.create_user(User(id="b", name="Ben"))

        self.repo.follow_user("a", "b")
        self.assertTrue(self.repo.is_following("a", "b"))
        self.assertEqual(self.cache.get_user("b").followers_count, 1)
        self.assertEqual(self.cache.get_user("a").following_count, 1)

        self.repo.unfollow_user("a", "b")
        self.assertFalse(self.repo.is_following("a", "b"))
        self.assertEqual(self.cache.get_user("b").followers_count, 0)

    def test_online_status(self):
        self.repo.create_user(User(id="a", name="Ann"))
        user = self.repo.update_online_status("a", True)
        self.assertTrue(user.is_online)
        self.assertGreater(user.last_seen, 0)
        self.assertTrue(self.remote.get_user("a").is_online)

    def test_search_and_delete(self):
        self.repo.create_user(User(id="a", name="Ann Lee"))
        self.repo.create_user(User(id="b", name="Ben"))
        self.assertEqual([u.id for u in self.repo.search_users("lee")], ["a"])

        self.repo.delete_user("a")
        with self.assertRaises(NotFoundError):
            self.repo.get_user("a")


class ChatRepositoryTest(unittest.TestCase):
    def setUp(self):
        self.cache = InMemoryLocalCache()
        self.remote = InMemoryRemoteDataSource()
        self.repo = ChatRepository(self.cache, self.remote)
        self.remote.listings["L1"] = Listing(id="L1", title="Desk", image_urls=["p1", "p2"])
        self.remote.create_user(User(id="buyer", name="Bea", photo_url="bea.jpg"))
        self.remote.create_user(User(id="seller", name="Sam"))

    def test_send_message_denormalizes_room(self):
        sent = self.repo.send_message(
            ChatMessage(chat_room_id=ROOM, sender_id="buyer", message_text="hi")
        )

        room = self.remote.rooms[ROOM]
        self.assertEqual(room["listingTitle"], "Desk")
        self.assertEqual(room["listingPhotoUrl"], "p1")
        self.assertEqual(room["participantNames"], {"seller": "Sam", "buyer": "Bea"})
        self.assertEqual(room["unreadCounts"], {"seller": 1})
        self.assertEqual(self.repo.get_messages(ROOM), [sent])

    def test_send_message_tolerates_missing_listing(self):
        self.remote.listings.clear()
        self.repo.send_message(
            ChatMessage(chat_room_id=ROOM, sender_id="seller", message_text="sold?")
        )
        room = self.remote.rooms[ROOM]
        self.assertNotIn("listingTitle", room)
        self.assertEqual(room["unreadCounts"], {"buyer": 1})

    def test_send_message_rejects_strangers(self):
        with self.assertRaises(InvalidChatRoomId):
            self.repo.send_message(
                ChatMessage(chat_room_id=ROOM, sender_id="stranger", message_text="hi")
            )

    def test_observe_mirrors_into_cache(self):
        snapshots = []
        self.repo.observe_messages(ROOM, snapshots.append)
        self.remote.send_message(ROOM, "buyer", "seller", "hi")
        self.assertEqual(len(snapshots[-1]), 1)
        self.assertEqual(len(self.cache.get_messages(ROOM)), 1)

    def test_messages_deleted_elsewhere_leave_the_cache(self):
        self.repo.observe_messages(ROOM, lambda messages: None)
        kept = self.remote.send_message(ROOM, "buyer", "seller", "hi")
        gone = self.remote.send_message(ROOM, "seller", "buyer", "hello")
        self.assertEqual(len(self.cache.get_messages(ROOM)), 2)

        self.remote.delete_message(ROOM, gone.id)

        self.assertEqual([m.id for m in self.cache.get_messages(ROOM)], [kept.id])

    def test_mark_as_read_updates_cache(self):
        self.repo.observe_messages(ROOM, lambda messages: None)
        self.repo.send_message(ChatMessage(chat_room_id=ROOM, sender_id="buyer", message_text="a"))
        self.repo.send_message(ChatMessage(chat_room_id=ROOM, sender_id="seller", message_text="b"))

        self.assertEqual(self.repo.mark_as_read(ROOM, "seller"), 1)

        read = {m.message_text: m.is_read for m in self.cache.get_messages(ROOM)}
        self.assertEqual(read, {"a": True, "b": False})

    def test_delete_message(self):
        sent = self.repo.send_message(
            ChatMessage(chat_room_id=ROOM, sender_id="buyer", message_text="oops")
        )
        self.repo.delete_message(ROOM, sent.id)
        self.assertEqual(self.repo.get_messages(ROOM), [])

    def test_start_chat(self):
        self.assertEqual(self.repo.start_chat("L1", "buyer", "seller"), ROOM)


class AuthRepositoryTest(unittest.TestCase):
    def setUp(self):
        self.auth = InMemoryAuthDataSource()
        self.remote = InMemoryRemoteDataSource()
        self.users = UserRepository(InMemoryLocalCache(), self.remote)
        self.repo = AuthRepository(self.auth, self.users)

    def test_sign_up_creates_profile(self):
        user = self.repo.sign_up_with_email("ann@example.com", "secret1", "Ann")
        self.assertTrue(self.repo.is_logged_in())
        self.assertEqual(self.repo.current_user_id(), user.id)
        stored = self.remote.get_user(user.id)
        self.assertEqual(stored.name, "Ann")
        self.assertTrue(stored.is_online)

    def test_sign_in_and_out_toggles_online(self):
        user = self.repo.sign_up_with_email("ann@example.com", "secret1", "Ann")
        self.repo.sign_out()
        self.assertFalse(self.remote.get_user(user.id).is_online)
        self.assertIsNone(self.repo.current_user_id())

        signed_in = self.repo.sign_in_with_email("ann@example.com", "secret1")
        self.assertTrue(signed_in.is_online)

    def test_sign_in_failure_propagates(self):
        with self.assertRaises(AuthError):
            self.repo.sign_in_with_email("ghost@example.com", "secret1")

    def test_google_sign_in_creates_missing_profile(self):
        uid = self.auth.register_provider_token(GOOGLE_PROVIDER, "g", "ann@example.com", "")

        user = self.repo.sign_in_with_google("g")

        self.assertEqual(user.id, uid)
        self.assertEqual(user.name, DEFAULT_DISPLAY_NAME)
        self.assertEqual(self.remote.get_user(uid).email, "ann@example.com")

        self.repo.sign_out()
        again = self.repo.sign_in_with_google("g")
        self.assertTrue(again.is_online)

    def test_update_email_and_delete_account(self):
        user = self.repo.sign_up_with_email("ann@example.com", "secret1", "Ann")
        self.repo.update_email("anne@example.com")
        self.assertEqual(self.remote.get_user(user.id).email, "anne@example.com")

        self.repo.delete_account()
        self.assertFalse(self.repo.is_logged_in())
        with self.assertRaises(NotFoundError):
            self.remote.get_user(user.id)

    def test_signed_out_account_changes_raise(self):
        with self.assertRaises(NotLoggedInError):
            self.repo.delete_account()

    def test_email_verification(self):
        self.repo.sign_up_with_email("ann@example.com", "secret1", "Ann")
        self.repo.send_email_verification()
        self.assertFalse(self.repo.is_email_verified())
        self.auth.verify_email("ann@example.com")
        self.assertTrue(self.repo.is_email_verified())


class FavoriteRepositoryTest(unittest.TestCase):
    def test_toggle_adjusts_cached_count(self):
        cache = InMemoryLocalCache()
        remote = InMemoryRemoteDataSource()
        listing_id = remote.create_listing(Listing(title="Desk"), "s1")
        cache.upsert_listing(remote.get_listing(listing_id))
        repo = FavoriteRepository(cache, remote)

        self.assertTrue(repo.toggle_favorite("u1", listing_id))
        self.assertEqual(cache.get_listing(listing_id).favorite_count, 1)
        self.assertTrue(repo.is_favorite("u1", listing_id))
        self.assertEqual(len(repo.get_favorites("u1")), 1)

        self.assertFalse(repo.toggle_favorite("u1", listing_id))
        self.assertEqual(cache.get_listing(listing_id).favorite_count, 0)

    def test_uncached_listing(self):
        remote = InMemoryRemoteDataSource()
        repo = FavoriteRepository(InMemoryLocalCache(), remote)
        self.assertTrue(repo.toggle_favorite("u1", "L9"))


class ReviewRepositoryTest(unittest.TestCase):
    def test_add_review_syncs_reviewed_user(self):
        cache = InMemoryLocalCache()
        remote = InMemoryRemoteDataSource()
        users = UserRepository(cache, remote)
        users.create_user(User(id="s", name="Sam"))
        repo = ReviewRepository(remote, users)

        repo.add_review(Review(reviewer_id="b", reviewed_user_id="s", rating=4.0))

        self.assertEqual(cache.get_user("s").reviews_count, 1)
        self.assertAlmostEqual(cache.get_user("s").rating, 4.0)
        self.assertEqual(len(repo.get_reviews_for_user("s")), 1)


class NotificationRepositoryTest(unittest.TestCase):
    def test_notify_and_mark_read(self):
        repo = NotificationRepository(InMemoryRemoteDataSource())
        seen = []
        repo.observe_notifications("u1", seen.append)

        notification_id = repo.notify(
            "u1", NotificationType.LISTING_SOLD, "Sold", "Your desk sold", related_id="L1"
        )
        repo.mark_read(notification_id)

        latest = seen[-1][0]
        self.assertEqual(latest.type, NotificationType.LISTING_SOLD)
        self.assertEqual(latest.related_id, "L1")
        self.assertTrue(latest.is_read)


class ImageRepositoryTest(unittest.TestCase):
    def test_delete_listing_images_continues_after_failure(self):
        storage = MagicMock()
        storage.delete_image.side_effect = [RuntimeError("403"), None]
        repo = ImageRepository(storage)

        repo.delete_listing_images(["a", "b"])

        self.assertEqual(storage.delete_image.call_count, 2)

    def test_upload_single_listing_image(self):
        storage = MagicMock(spec=InMemoryBlobStorage)
        storage.upload_listing_image.return_value = "url"
        self.assertEqual(ImageRepository(storage).upload_listing_image("/p.jpg", "L1", 3), "url")
        storage.upload_listing_image.assert_called_once_with("/p.jpg", "L1", 3)


if __name__ == "__main__":
    unittest.main()
