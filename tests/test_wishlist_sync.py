from __future__ import annotations

import threading
import unittest

from fakes import FakeListingStore, listing_row

from ridemarket.integrations.identity import Principal, SessionIdentityProvider
from ridemarket.services.wishlist_sync import WishlistSessionRegistry, WishlistState, WishlistSync

ALICE = Principal(id="alice-0001", email="alice@example.com")
BOB = Principal(id="bob-000002", email="bob@example.com")


class WishlistSyncTestCase(unittest.TestCase):
    def setUp(self):
        self.store = FakeListingStore()
        for lid in ("L1", "L2", "L3"):
            self.store.seed("listings", **listing_row(lid))
        self.store.seed("wishlists", user_id=ALICE.id, item_id="L1")
        self.store.seed("wishlists", user_id=BOB.id, item_id="L2")

    def _sync(self, principal=None):
        identity = SessionIdentityProvider(principal)
        sync = WishlistSync(identity, self.store).start()
        self.addCleanup(sync.dispose)
        return identity, sync

    def test_anonymous_start_is_empty_and_toggle_fails_without_store_calls(self):
        _identity, sync = self._sync()
        self.assertEqual(sync.state, WishlistState.ANONYMOUS)
        self.assertEqual(sync.items, [])
        before = list(self.store.calls)
        self.assertFalse(sync.toggle_wishlist("L2"))
        self.assertEqual(self.store.calls, before)

    def test_signed_in_start_loads_entries_and_listings(self):
        _identity, sync = self._sync(ALICE)
        self.assertEqual(sync.state, WishlistState.READY)
        self.assertTrue(sync.is_in_wishlist("L1"))
        self.assertFalse(sync.is_in_wishlist("L2"))
        self.assertEqual([l.id for l in sync.listings], ["L1"])
        self.assertIn(("select", "listings"), self.store.calls)

    def test_toggle_round_trip(self):
        _identity, sync = self._sync(ALICE)
        self.assertTrue(sync.toggle_wishlist("L3"))
        self.assertTrue(sync.is_in_wishlist("L3"))
        self.assertEqual(len([r for r in self.store.tables["wishlists"] if r["user_id"] == ALICE.id]), 2)

        self.assertTrue(sync.toggle_wishlist("L3"))
        self.assertFalse(sync.is_in_wishlist("L3"))
        self.assertEqual(len([r for r in self.store.tables["wishlists"] if r["user_id"] == ALICE.id]), 1)

    def test_added_entry_carries_listing_when_fetch_succeeds(self):
        _identity, sync = self._sync(ALICE)
        sync.toggle_wishlist("L3")
        item = next(i for i in sync.items if i.item_id == "L3")
        self.assertIsNotNone(item.listing)
        self.assertEqual(item.listing.title, "Bike L3")

    def test_added_entry_kept_when_listing_fetch_fails(self):
        _identity, sync = self._sync(ALICE)
        self.store.fail.add("select:listings")
        self.assertTrue(sync.toggle_wishlist("L3"))
        self.assertTrue(sync.is_in_wishlist("L3"))
        item = next(i for i in sync.items if i.item_id == "L3")
        self.assertIsNone(item.listing)

    def test_failed_delete_leaves_cache_untouched(self):
        _identity, sync = self._sync(ALICE)
        self.store.fail.add("delete:wishlists")
        self.assertFalse(sync.toggle_wishlist("L1"))
        self.assertTrue(sync.is_in_wishlist("L1"))
        self.assertTrue(sync.toggle_error)

    def test_failed_insert_returns_false(self):
        _identity, sync = self._sync(ALICE)
        self.store.fail.add("insert:wishlists")
        self.assertFalse(sync.toggle_wishlist("L3"))
        self.assertFalse(sync.is_in_wishlist("L3"))

    def test_toggle_error_clears_on_next_attempt(self):
        _identity, sync = self._sync(ALICE)
        self.store.fail.add("insert:wishlists")
        self.assertFalse(sync.toggle_wishlist("L3"))
        self.store.fail.clear()
        self.assertTrue(sync.toggle_wishlist("L3"))
        self.assertIsNone(sync.toggle_error)

    def test_toggle_returns_its_own_error(self):
        _identity, sync = self._sync(ALICE)
        inner = []
        self.store.fail.add("delete:wishlists")
        self.store.hooks["delete:wishlists"] = lambda: inner.append(sync.toggle("L3"))

        ok, error = sync.toggle("L1")
        self.assertFalse(ok)
        self.assertTrue(error)
        self.assertEqual(inner, [(True, None)])
        self.assertTrue(sync.is_in_wishlist("L1"))
        self.assertTrue(sync.is_in_wishlist("L3"))

    def test_toggle_with_blank_id_reports_error(self):
        _identity, sync = self._sync(ALICE)
        self.assertEqual(sync.toggle("  "), (False, "Missing listing id"))

    def test_no_cross_principal_leakage(self):
        identity, sync = self._sync(ALICE)
        self.assertTrue(sync.is_in_wishlist("L1"))

        identity.sign_out()
        self.assertEqual(sync.state, WishlistState.ANONYMOUS)
        self.assertFalse(sync.is_in_wishlist("L1"))
        self.assertEqual(sync.wishlist_ids(), [])

        identity.sign_in(BOB)
        self.assertEqual(sync.state, WishlistState.READY)
        self.assertEqual(sync.wishlist_ids(), ["L2"])
        self.assertFalse(sync.is_in_wishlist("L1"))

    def test_direct_principal_switch_reloads(self):
        identity, sync = self._sync(ALICE)
        identity.sign_in(BOB)
        self.assertEqual(sync.owner_id, BOB.id)
        self.assertEqual(sync.wishlist_ids(), ["L2"])

    def test_toggle_rechecks_principal_before_mutating(self):
        identity, sync = self._sync(ALICE)
        # Principal changes without an event reaching this sync.
        identity._principal = BOB
        self.assertTrue(sync.toggle_wishlist("L1"))
        self.assertEqual(sync.owner_id, BOB.id)
        bob_items = sorted(r["item_id"] for r in self.store.tables["wishlists"] if r["user_id"] == BOB.id)
        self.assertEqual(bob_items, ["L1", "L2"])
        alice_items = [r["item_id"] for r in self.store.tables["wishlists"] if r["user_id"] == ALICE.id]
        self.assertEqual(alice_items, ["L1"])

    def test_dangling_entries_stay_in_items_but_not_listings(self):
        self.store.seed("wishlists", user_id=ALICE.id, item_id="GONE")
        _identity, sync = self._sync(ALICE)
        self.assertEqual(sorted(sync.wishlist_ids()), ["GONE", "L1"])
        self.assertEqual([l.id for l in sync.listings], ["L1"])
        self.assertTrue(sync.is_in_wishlist("GONE"))

    def test_load_error_becomes_ready_and_empty(self):
        self.store.fail.add("select:wishlists")
        _identity, sync = self._sync(ALICE)
        self.assertEqual(sync.state, WishlistState.READY)
        self.assertEqual(sync.items, [])
        self.assertTrue(sync.load_error)

    def test_listing_query_error_becomes_ready_and_empty(self):
        self.store.fail.add("select:listings")
        _identity, sync = self._sync(ALICE)
        self.assertEqual(sync.state, WishlistState.READY)
        self.assertEqual(sync.items, [])

    def test_zero_entries_is_ready_and_empty(self):
        identity = SessionIdentityProvider(Principal(id="nobody-9999"))
        sync = WishlistSync(identity, self.store).start()
        self.addCleanup(sync.dispose)
        self.assertEqual(sync.state, WishlistState.READY)
        self.assertEqual(sync.items, [])
        self.assertIsNone(sync.load_error)

    def test_superseded_load_is_discarded(self):
        identity = SessionIdentityProvider(ALICE)
        sync = WishlistSync(identity, self.store)
        self.addCleanup(sync.dispose)
        # While Alice's entries are being fetched the session switches to Bob.
        self.store.hooks["select:wishlists"] = lambda: identity.sign_in(BOB)
        sync.start()
        self.assertEqual(sync.owner_id, BOB.id)
        self.assertEqual(sync.wishlist_ids(), ["L2"])

    def test_load_finishing_after_dispose_is_discarded(self):
        identity = SessionIdentityProvider(ALICE)
        sync = WishlistSync(identity, self.store)
        self.store.hooks["select:wishlists"] = sync.dispose
        sync.start()
        self.assertEqual(sync.state, WishlistState.DISPOSED)
        self.assertEqual(sync.items, [])

    def test_dispose_unsubscribes(self):
        identity, sync = self._sync(ALICE)
        sync.dispose()
        sync.dispose()
        self.assertEqual(identity._subscriptions, [])
        calls = len(self.store.calls)
        identity.sign_in(BOB)
        self.assertEqual(len(self.store.calls), calls)
        self.assertFalse(sync.toggle_wishlist("L3"))
        with self.assertRaises(RuntimeError):
            sync.start()

    def test_context_manager_lifecycle(self):
        identity = SessionIdentityProvider(ALICE)
        with WishlistSync(identity, self.store) as sync:
            self.assertEqual(sync.state, WishlistState.READY)
        self.assertEqual(sync.state, WishlistState.DISPOSED)

    def test_concurrent_double_toggle_persists_one_entry(self):
        _identity, sync = self._sync(ALICE)
        self.store.insert_barrier = threading.Barrier(2)
        results, errors = [], []

        def worker():
            try:
                results.append(sync.toggle_wishlist("L3"))
            except Exception as e:  # pragma: no cover
                errors.append(e)

        threads = [threading.Thread(target=worker) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)

        self.assertEqual(errors, [])
        self.assertEqual(results, [True, True])
        rows = [r for r in self.store.tables["wishlists"] if r["user_id"] == ALICE.id and r["item_id"] == "L3"]
        self.assertEqual(len(rows), 1)
        self.assertEqual(sync.wishlist_ids().count("L3"), 1)


class WishlistSessionRegistryTestCase(unittest.TestCase):
    def setUp(self):
        self.store = FakeListingStore()
        self.store.seed("listings", **listing_row("L1"))
        self.store.seed("wishlists", user_id=ALICE.id, item_id="L1")

    def test_bind_reuses_session_per_key(self):
        registry = WishlistSessionRegistry(self.store)
        first = registry.bind(ALICE)
        second = registry.bind(ALICE)
        self.assertIs(first, second)
        self.assertTrue(first.is_in_wishlist("L1"))
        self.assertEqual(len(registry), 1)

    def test_new_principal_on_same_session_reloads(self):
        registry = WishlistSessionRegistry(self.store)
        sync = registry.bind(Principal(id=ALICE.id, session_id="s-1"))
        self.assertTrue(sync.is_in_wishlist("L1"))
        again = registry.bind(Principal(id=BOB.id, session_id="s-1"))
        self.assertIs(sync, again)
        self.assertEqual(sync.owner_id, BOB.id)
        self.assertFalse(sync.is_in_wishlist("L1"))

    def test_eviction_disposes_oldest(self):
        registry = WishlistSessionRegistry(self.store, max_sessions=1)
        old = registry.bind(ALICE)
        registry.bind(BOB)
        self.assertEqual(len(registry), 1)
        self.assertEqual(old.state, WishlistState.DISPOSED)

    def test_sign_out_disposes_session(self):
        registry = WishlistSessionRegistry(self.store)
        sync = registry.bind(ALICE)
        self.assertTrue(registry.sign_out(ALICE))
        self.assertFalse(registry.sign_out(ALICE))
        self.assertEqual(sync.state, WishlistState.DISPOSED)
        self.assertEqual(len(registry), 0)

    def test_refresh_picks_up_writes_from_other_sessions(self):
        self.store.seed("listings", **listing_row("L2"))
        registry = WishlistSessionRegistry(self.store)
        phone = Principal(id=ALICE.id, session_id="phone")
        laptop = Principal(id=ALICE.id, session_id="laptop")
        phone_sync = registry.bind(phone)
        self.assertTrue(registry.bind(laptop).toggle_wishlist("L2"))

        self.assertFalse(registry.bind(phone).is_in_wishlist("L2"))
        self.assertIs(registry.bind(phone, refresh=True), phone_sync)
        self.assertTrue(phone_sync.is_in_wishlist("L2"))

    def test_refresh_drops_deleted_listings(self):
        registry = WishlistSessionRegistry(self.store)
        sync = registry.bind(ALICE)
        self.assertEqual([l.id for l in sync.listings], ["L1"])
        self.store.tables["listings"] = []

        registry.bind(ALICE, refresh=True)
        self.assertEqual(sync.listings, [])
        self.assertEqual(sync.wishlist_ids(), ["L1"])

    def test_refresh_on_new_session_loads_once(self):
        registry = WishlistSessionRegistry(self.store)
        registry.bind(ALICE, refresh=True)
        self.assertEqual(self.store.calls.count(("select", "wishlists")), 1)


if __name__ == "__main__":
    unittest.main()
