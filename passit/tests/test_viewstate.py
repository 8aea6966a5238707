import os
import shutil
import tempfile
import unittest
from unittest.mock import MagicMock

from passit.auth import GOOGLE_PROVIDER, InMemoryAuthDataSource
from passit.blob_storage import InMemoryBlobStorage
from passit.cache import InMemoryLocalCache
from passit.errors import NotFoundError
from passit.live import Subscription
from passit.remote import THREADS_TOPIC, InMemoryRemoteDataSource
from passit.repositories.auth import AuthRepository
from passit.repositories.chat import ChatRepository
from passit.repositories.favorites import FavoriteRepository
from passit.repositories.images import ImageRepository
from passit.repositories.listings import ListingRepository
from passit.repositories.reviews import ReviewRepository
from passit.repositories.users import UserRepository
from passit.viewstate import StateHolder, SubscriptionBag, error_message
from passit.viewstate.auth import (
    GOOGLE_SIGN_IN_FAILED,
    RESET_EMAIL_FAILED,
    RESET_EMAIL_REQUIRED,
    RESET_EMAIL_SENT,
    AuthState,
    AuthViewState,
)
from passit.viewstate.chat import ChatListItem, ChatViewState
from passit.viewstate.home import (
    SORT_LOWEST_PRICE,
    HomeState,
    HomeViewState,
    filter_and_sort,
)
from passit.viewstate.listing import (
    CreateListingState,
    ListingViewState,
    filter_price_input,
    parse_price,
)
from passit.viewstate.profile import ProfileTab, ProfileViewState
from shared.constants import MAX_LISTING_PHOTOS
from shared.formatting import HOUR_MS
from shared.types import Category, ChatThread, Condition, Listing, Review, User

ROOM = "chat_L1_buyer_seller"


class Backend:
    """Wires every repository to in-memory sources."""

    def __init__(self):
        self.cache = InMemoryLocalCache()
        self.remote = InMemoryRemoteDataSource()
        self.auth_source = InMemoryAuthDataSource()
        self.storage = InMemoryBlobStorage()
        self.listings = ListingRepository(self.cache, self.remote)
        self.users = UserRepository(self.cache, self.remote)
        self.chat = ChatRepository(self.cache, self.remote)
        self.favorites = FavoriteRepository(self.cache, self.remote)
        self.images = ImageRepository(self.storage)
        self.reviews = ReviewRepository(self.remote, self.users)
        self.auth = AuthRepository(self.auth_source, self.users)

    def seed_listing(self, listing_id, **fields):
        fields.setdefault("seller_id", "seller")
        self.remote.listings[listing_id] = Listing(id=listing_id, **fields)


class StateHolderTest(unittest.TestCase):
    def test_subscribe_gets_current_then_updates(self):
        holder = StateHolder(HomeState())
        seen = []
        subscription = holder.subscribe(seen.append)

        holder.update(search_query="desk")
        subscription.unsubscribe()
        holder.update(search_query="lamp")

        self.assertEqual([s.search_query for s in seen], ["", "desk"])
        self.assertEqual(holder.state.search_query, "lamp")

    def test_subscription_bag_replaces_previous(self):
        bag = SubscriptionBag()
        first, second = Subscription(), Subscription()
        bag.replace("feed", first)
        bag.replace("feed", second)
        self.assertFalse(first.active)
        self.assertTrue(bag.is_active("feed"))

        bag.close()
        self.assertFalse(second.active)
        self.assertFalse(bag.is_active("feed"))

    def test_error_message_fallback(self):
        self.assertEqual(error_message(RuntimeError(), "Failed"), "Failed")
        self.assertEqual(error_message(RuntimeError("boom"), "Failed"), "boom")


class HomeViewStateTest(unittest.TestCase):
    def setUp(self):
        self.backend = Backend()
        for i in range(7):
            self.backend.seed_listing(
                f"L{i}",
                title=f"Desk {i}" if i % 2 else f"Book {i}",
                price=100.0 + i,
                category=Category.FURNITURE if i % 2 else Category.BOOKS,
                condition=Condition.LIKE_NEW if i == 3 else Condition.GOOD,
                created_timestamp=1000 + i,
            )
        self.home = HomeViewState(
            self.backend.listings, self.backend.favorites, self.backend.auth
        )
        self.addCleanup(self.home.close)

    def test_feed_splits_fresh_finds(self):
        self.home.start()
        state = self.home.state
        self.assertFalse(state.is_loading)
        self.assertEqual([i.id for i in state.fresh_finds], ["L6", "L5", "L4", "L3", "L2"])
        self.assertEqual([i.id for i in state.explore_local], ["L1", "L0"])
        self.assertEqual(state.fresh_finds[0].price_text, "$106.0")

    def test_category_chip(self):
        self.home.start()
        self.home.on_category_selected("Furniture")
        ids = [i.id for i in self.home.state.fresh_finds + self.home.state.explore_local]
        self.assertEqual(ids, ["L5", "L3", "L1"])

    def test_search_with_filters(self):
        self.home.start()
        self.home.update_search_query("desk")
        self.assertEqual([i.id for i in self.home.state.search_results], ["L5", "L3", "L1"])

        self.home.update_sort_option(SORT_LOWEST_PRICE)
        self.assertEqual([i.id for i in self.home.state.search_results], ["L1", "L3", "L5"])

        self.home.update_condition("Like New")
        self.home.apply_filters()
        self.assertEqual([i.id for i in self.home.state.search_results], ["L3"])
        self.assertEqual(self.home.state.results_count, 1)

        self.home.reset_filters()
        self.assertEqual(self.home.state.results_count, 3)

        self.home.update_search_query("   ")
        self.assertEqual(self.home.state.search_results, ())

    def test_price_range_filter(self):
        listings = [Listing(id="a", price=10), Listing(id="b", price=60)]
        state = HomeState(price_range=(50.0, 100.0))
        self.assertEqual([l.id for l in filter_and_sort(listings, state)], ["b"])

    def test_favorite_requires_login(self):
        self.assertIsNone(self.home.toggle_favorite("L1"))
        self.assertEqual(self.home.state.error, "Failed to update favorite.")
        self.home.clear_error()
        self.assertIsNone(self.home.state.error)

    def test_favorite_when_signed_in(self):
        self.backend.auth.sign_up_with_email("ann@example.com", "secret1", "Ann")
        self.assertTrue(self.home.toggle_favorite("L1"))

    def test_load_failure_sets_error(self):
        listings = MagicMock()
        listings.observe_listings.side_effect = RuntimeError()
        home = HomeViewState(listings, self.backend.favorites, self.backend.auth)
        home.start()
        self.assertEqual(home.state.error, "Failed to load listings")
        self.assertFalse(home.state.is_loading)


class ListingViewStateTest(unittest.TestCase):
    def setUp(self):
        self.backend = Backend()
        self.view = ListingViewState(
            self.backend.listings,
            self.backend.images,
            self.backend.favorites,
            self.backend.auth,
        )
        self.tmpdir = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, self.tmpdir)

    def _photo(self, name):
        path = os.path.join(self.tmpdir, name)
        with open(path, "wb") as f:
            f.write(name.encode())
        return path

    def test_price_input_helpers(self):
        self.assertEqual(filter_price_input("$12.5a"), "12.5")
        self.assertEqual(parse_price("12.5"), 12.5)
        self.assertEqual(parse_price(""), 0.0)
        self.assertEqual(parse_price("1.2.3"), 0.0)

    def test_load_listing(self):
        self.backend.seed_listing("L1", title="Desk", favorite_count=2)
        self.view.load_listing("L1")
        state = self.view.detail.state
        self.assertFalse(state.is_loading)
        self.assertEqual(state.listing.title, "Desk")
        self.assertFalse(state.is_favorite)

    def test_load_missing_listing(self):
        self.view.load_listing("missing")
        self.assertEqual(self.view.detail.state.error, "Listing missing not found")

    def test_toggle_favorite_adjusts_count(self):
        self.backend.seed_listing("L1", title="Desk", favorite_count=2)
        self.backend.auth.sign_up_with_email("ann@example.com", "secret1", "Ann")
        self.view.load_listing("L1")

        self.view.toggle_favorite("L1")
        self.assertTrue(self.view.detail.state.is_favorite)
        self.assertEqual(self.view.detail.state.listing.favorite_count, 3)

        self.view.toggle_favorite("L1")
        self.assertEqual(self.view.detail.state.listing.favorite_count, 2)

    def test_toggle_favorite_signed_out(self):
        self.view.toggle_favorite("L1")
        self.assertEqual(self.view.detail.state.error, "Failed to update favorite")

    def test_photo_selection_limit(self):
        self.view.on_photos_selected([f"p{i}" for i in range(MAX_LISTING_PHOTOS - 1)])
        self.view.on_photos_selected(["x", "y"])
        self.assertEqual(len(self.view.create.state.selected_photos), MAX_LISTING_PHOTOS - 1)

        self.view.on_photos_selected(["x"])
        self.view.on_remove_photo(0)
        photos = self.view.create.state.selected_photos
        self.assertEqual(len(photos), MAX_LISTING_PHOTOS - 1)
        self.assertEqual(photos[0], "p1")
        self.assertEqual(photos[-1], "x")

    def test_create_listing_uploads_photos(self):
        user = self.backend.auth.sign_up_with_email("ann@example.com", "secret1", "Ann")
        self.view.on_title_change("Camera")
        self.view.on_price_change("250.5")
        self.view.on_condition_change("New")
        self.view.on_category_change("Books & Media")
        self.view.on_brand_change("Canon")
        self.view.on_photos_selected([self._photo("a.jpg"), self._photo("b.jpg")])

        listing_id = self.view.create_listing()

        self.assertIsNotNone(listing_id)
        stored = self.backend.remote.get_listing(listing_id)
        self.assertEqual(stored.seller_id, user.id)
        self.assertEqual(stored.price, 250.5)
        self.assertEqual(stored.condition, Condition.NEW)
        self.assertEqual(stored.category, Category.BOOKS)
        self.assertEqual(len(stored.image_urls), 2)
        self.assertEqual(self.view.create.state, CreateListingState())

    def test_failed_photo_upload_removes_listing(self):
        self.backend.auth.sign_up_with_email("ann@example.com", "secret1", "Ann")
        self.view.on_title_change("Camera")
        self.view.on_photos_selected(
            [self._photo("a.jpg"), os.path.join(self.tmpdir, "missing.jpg")]
        )

        self.assertIsNone(self.view.create_listing())
        self.assertIsNone(self.view.create_listing())

        self.assertEqual(self.backend.remote.listings, {})
        self.assertEqual(self.backend.cache.listings, {})
        self.assertEqual(self.backend.storage.stored_objects, {})
        state = self.view.create.state
        self.assertFalse(state.is_creating)
        self.assertIsNotNone(state.error)
        self.assertEqual(len(state.selected_photos), 2)

    def test_create_listing_defaults(self):
        self.backend.auth.sign_up_with_email("ann@example.com", "secret1", "Ann")
        listing = self.view.build_listing()
        self.assertEqual(listing.condition, Condition.LIKE_NEW)
        self.assertEqual(listing.category, Category.ELECTRONICS)
        self.view.on_category_change("Something else")
        self.assertEqual(self.view.build_listing().category, Category.OTHER)

    def test_create_listing_signed_out(self):
        self.view.on_title_change("Camera")
        self.assertIsNone(self.view.create_listing())
        state = self.view.create.state
        self.assertEqual(state.error, "Not logged in")
        self.assertFalse(state.is_creating)
        self.assertEqual(state.title, "Camera")

        self.view.clear_error()
        self.assertIsNone(self.view.create.state.error)


class ChatViewStateTest(unittest.TestCase):
    def setUp(self):
        self.backend = Backend()
        self.backend.seed_listing("L1", title="Desk")
        self.backend.remote.create_user(User(id="buyer", name="Bea"))
        self.backend.remote.create_user(User(id="seller", name="Sam"))
        self.now = 10 * HOUR_MS
        self.view = ChatViewState(
            self.backend.chat,
            self.backend.listings,
            self.backend.users,
            clock=lambda: self.now,
        )
        self.addCleanup(self.view.close)

    def test_initialize_and_send(self):
        self.view.initialize_chat(ROOM, "L1", "seller", "buyer")
        state = self.view.room.state
        self.assertEqual(state.listing.title, "Desk")
        self.assertEqual(state.other_user.name, "Sam")
        self.assertEqual(state.messages, ())

        self.view.on_message_input_change("  hello  ")
        sent = self.view.send_message()

        self.assertEqual(sent.message_text, "hello")
        state = self.view.room.state
        self.assertEqual(state.message_input, "")
        self.assertFalse(state.is_sending)
        self.assertEqual([m.message_text for m in state.messages], ["hello"])

    def test_blank_message_is_not_sent(self):
        self.view.initialize_chat(ROOM, "L1", "seller", "buyer")
        self.view.on_message_input_change("   ")
        self.assertIsNone(self.view.send_message())
        self.assertNotIn(ROOM, self.backend.remote.rooms)

    def test_initialize_failure(self):
        self.view.initialize_chat(ROOM, "missing", "seller", "buyer")
        self.assertEqual(self.view.room.state.error, "Listing missing not found")
        self.assertFalse(self.view.room.state.is_loading)

    def test_send_failure_keeps_input(self):
        chat = MagicMock()
        chat.send_message.side_effect = RuntimeError()
        view = ChatViewState(chat, self.backend.listings, self.backend.users)
        view.initialize_chat(ROOM, "L1", "seller", "buyer")
        view.on_message_input_change("hi")

        self.assertIsNone(view.send_message())
        self.assertEqual(view.room.state.error, "Failed to send message")
        self.assertEqual(view.room.state.message_input, "hi")

    def test_observe_same_room_once(self):
        self.view.observe_messages(ROOM)
        before = self.backend.remote.listeners.count()
        self.view.observe_messages(ROOM)
        self.view.observe_messages("  ")
        self.assertEqual(self.backend.remote.listeners.count(), before)

    def test_mark_as_read(self):
        self.backend.remote.send_message(ROOM, "buyer", "seller", "hi")
        self.view.initialize_chat(ROOM, "L1", "buyer", "seller")
        self.view.mark_as_read()
        self.assertEqual(self.backend.remote.rooms[ROOM]["unreadCounts"]["seller"], 0)
        self.assertTrue(self.view.room.state.messages[0].is_read)

    def test_chat_list_newest_first_with_fallbacks(self):
        self.backend.remote.rooms[ROOM] = {
            "participantNames": {"seller": "Sam"},
            "listingTitle": "Desk",
            "lastMessageText": "hi",
            "lastMessageTimestamp": self.now - 2 * HOUR_MS,
            "unreadCounts": {"buyer": 1},
        }
        self.backend.remote.rooms["chat_L2_buyer_other"] = {
            "lastMessageTimestamp": self.now - 5 * 60_000,
        }

        self.view.start_chat_list("buyer")

        first, second = self.view.list.state.items
        self.assertEqual(first.user_name, "Unknown")
        self.assertEqual(first.item_title, "Item")
        self.assertEqual(first.timestamp, "5m ago")
        self.assertEqual(second.user_name, "Sam")
        self.assertEqual(second.timestamp, "2h ago")
        self.assertEqual(second.unread_count, 1)

    def test_chat_list_error(self):
        self.view.start_chat_list("buyer")
        self.backend.remote.fail_listeners(THREADS_TOPIC, RuntimeError())
        self.assertEqual(self.view.list.state.error, "Failed to load chats")
        self.view.clear_list_error()
        self.assertIsNone(self.view.list.state.error)

    def test_list_item_from_thread(self):
        item = ChatListItem.from_thread(ChatThread(chat_room_id=ROOM, unread_count=None))
        self.assertEqual(item.unread_count, 0)
        self.assertEqual(item.timestamp, "")


class ProfileViewStateTest(unittest.TestCase):
    def setUp(self):
        self.backend = Backend()
        self.backend.remote.create_user(User(id="a", name="Ann"))
        self.backend.remote.create_user(User(id="s", name="Sam", bio="Sells desks"))
        self.backend.seed_listing("L1", seller_id="s", title="Desk", created_timestamp=2)
        self.backend.seed_listing(
            "L2", seller_id="s", title="Chair", is_sold=True, created_timestamp=1
        )
        self.view = ProfileViewState(
            self.backend.users,
            self.backend.listings,
            self.backend.images,
            self.backend.reviews,
        )
        self.addCleanup(self.view.close)

    def test_load_profile_splits_listings(self):
        self.view.load_profile("s", current_user_id="s")
        state = self.view.state
        self.assertTrue(state.is_own_profile)
        self.assertEqual(state.user.bio, "Sells desks")
        self.assertEqual([l.id for l in state.active_listings], ["L1"])
        self.assertEqual([l.id for l in state.sold_listings], ["L2"])
        self.assertEqual(state.items_sold, 1)

    def test_load_missing_profile(self):
        self.view.load_profile("ghost")
        self.assertEqual(self.view.state.error, "User ghost not found")
        self.assertFalse(self.view.state.is_loading)

    def test_follow_toggle(self):
        self.view.load_profile("s", current_user_id="a")
        self.view.toggle_follow()
        self.assertTrue(self.view.state.is_following)
        self.assertTrue(self.backend.remote.is_following("a", "s"))
        self.assertEqual(self.view.state.user.followers_count, 1)

        self.view.toggle_follow()
        self.assertFalse(self.view.state.is_following)
        self.assertFalse(self.backend.remote.is_following("a", "s"))

    def test_follow_failure(self):
        users = MagicMock()
        users.get_user.return_value = User(id="s")
        users.is_following.return_value = False
        users.follow_user.side_effect = RuntimeError("denied")
        view = ProfileViewState(users, MagicMock(), self.backend.images)
        view.load_profile("s", current_user_id="a")

        view.toggle_follow()

        self.assertEqual(view.state.error, "Failed to follow user")
        self.assertFalse(view.state.is_following)

    def test_reviews_tab(self):
        self.backend.reviews.add_review(
            Review(reviewer_id="a", reviewed_user_id="s", rating=5.0, timestamp=1)
        )
        self.backend.reviews.add_review(
            Review(reviewer_id="b", reviewed_user_id="s", rating=3.0, timestamp=2)
        )
        self.view.load_profile("s", current_user_id="a")
        self.view.on_tab_selected(ProfileTab.REVIEWS)

        state = self.view.state
        self.assertEqual(state.selected_tab, ProfileTab.REVIEWS)
        self.assertEqual([r.rating for r in state.reviews], [3.0, 5.0])
        self.assertEqual(state.user.reviews_count, 2)

    def test_update_profile(self):
        self.view.load_profile("s", current_user_id="s")
        self.view.update_profile("Samuel", "New bio")
        self.assertEqual(self.view.state.user.name, "Samuel")
        self.assertEqual(self.backend.remote.get_user("s").bio, "New bio")
        self.assertFalse(self.view.state.is_updating)

    def test_upload_profile_photo(self):
        tmpdir = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, tmpdir)
        path = os.path.join(tmpdir, "me.jpg")
        with open(path, "wb") as f:
            f.write(b"jpeg")
        self.view.load_profile("s", current_user_id="s")

        url = self.view.upload_profile_photo(path)

        self.assertEqual(self.view.state.user.photo_url, url)
        self.assertEqual(self.backend.remote.get_user("s").photo_url, url)
        self.assertEqual(len(self.backend.storage.stored_objects), 1)

    def test_upload_failure(self):
        images = MagicMock()
        images.upload_profile_photo.side_effect = OSError("no such file")
        view = ProfileViewState(self.backend.users, self.backend.listings, images)
        view.load_profile("s", current_user_id="s")

        self.assertIsNone(view.upload_profile_photo("/missing.jpg"))
        self.assertEqual(view.state.error, "Failed to upload photo")
        images.delete_old_profile_photos.assert_not_called()
        view.close()


class AuthViewStateTest(unittest.TestCase):
    def setUp(self):
        self.backend = Backend()
        self.view = AuthViewState(self.backend.auth)

    def test_sign_up_then_login(self):
        self.view.on_email_change(" ann@example.com ")
        self.view.on_password_change("secret1")
        self.view.on_name_change("Ann")
        user = self.view.sign_up()
        self.assertEqual(user.name, "Ann")
        self.assertEqual(self.view.state.current_user, user)

        self.view.sign_out()
        self.assertEqual(self.view.state, AuthState())

        self.view.on_email_change("ann@example.com")
        self.view.on_password_change("secret1")
        self.assertEqual(self.view.login().id, user.id)
        self.assertFalse(self.view.state.is_loading)

    def test_login_failure_shows_backend_message(self):
        self.view.on_email_change("ghost@example.com")
        self.view.on_password_change("secret1")
        self.assertIsNone(self.view.login())
        self.assertEqual(self.view.state.error, "EMAIL_NOT_FOUND")
        self.assertFalse(self.view.state.is_loading)

    def test_login_failure_without_message(self):
        auth = MagicMock()
        auth.sign_in_with_email.side_effect = RuntimeError()
        view = AuthViewState(auth)
        view.login()
        self.assertEqual(view.state.error, "Login failed. Please try again.")

    def test_google_sign_in(self):
        self.backend.auth_source.register_provider_token(
            GOOGLE_PROVIDER, "g", "ann@example.com", "Ann"
        )
        self.assertEqual(self.view.sign_in_with_google("g").name, "Ann")

        self.view.sign_out()
        self.assertIsNone(self.view.sign_in_with_google("bad"))
        self.assertEqual(self.view.state.error, GOOGLE_SIGN_IN_FAILED)

    def test_forgot_password(self):
        self.assertFalse(self.view.forgot_password())
        self.assertEqual(self.view.state.email_error, RESET_EMAIL_REQUIRED)

        self.view.on_email_change("ghost@example.com")
        self.assertIsNone(self.view.state.email_error)
        self.assertFalse(self.view.forgot_password())
        self.assertEqual(self.view.state.error, RESET_EMAIL_FAILED)

        self.backend.auth_source.sign_up_with_email("ann@example.com", "secret1")
        self.view.on_email_change("ann@example.com")
        self.assertTrue(self.view.forgot_password())
        self.assertEqual(self.view.state.message, RESET_EMAIL_SENT)

        self.view.clear_error()
        self.assertIsNone(self.view.state.message)

    def test_sign_out_resets_even_on_failure(self):
        auth = MagicMock()
        auth.sign_out.side_effect = NotFoundError("User gone")
        view = AuthViewState(auth)
        view.on_email_change("ann@example.com")
        view.toggle_password_visibility()

        with self.assertRaises(NotFoundError):
            view.sign_out()
        self.assertEqual(view.state, AuthState())

    def test_mode_and_visibility(self):
        self.view.set_auth_mode(False)
        self.view.toggle_confirm_password_visibility()
        self.assertFalse(self.view.state.is_login_mode)
        self.assertTrue(self.view.state.is_confirm_password_visible)


if __name__ == "__main__":
    unittest.main()
