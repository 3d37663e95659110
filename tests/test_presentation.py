from __future__ import annotations

import unittest

from fakes import FakeListingStore, listing_row

from ridemarket.integrations.identity import Principal, SessionIdentityProvider
from ridemarket.integrations.storage.supabase_provider import SupabaseObjectStorage
from ridemarket.services.image_urls import PLACEHOLDER_IMAGE_URL, ImageUrlResolver
from ridemarket.services.presentation import (
    CURRENT_USER_LABEL,
    format_price,
    listing_card,
    parse_price_range,
    seller_display_name,
    wishlist_view,
)
from ridemarket.services.records import ListingRecord, ProfileRecord, RecordValidationError
from ridemarket.services.wishlist_sync import WishlistSync


def _resolver():
    return ImageUrlResolver(SupabaseObjectStorage("https://proj.supabase.co", "k"), "listing-images")


class FormatPriceTestCase(unittest.TestCase):
    def test_thousands_separator_and_suffix(self):
        self.assertEqual(format_price(1234.5), "1,234.5 kr DKK")

    def test_whole_and_fractional_amounts(self):
        self.assertEqual(format_price(1000), "1,000 kr DKK")
        self.assertEqual(format_price(0), "0 kr DKK")
        self.assertEqual(format_price(999.99), "999.99 kr DKK")
        self.assertEqual(format_price(1234567.891), "1,234,567.89 kr DKK")

    def test_custom_suffix(self):
        self.assertEqual(format_price(1234.5, "EUR"), "1,234.5 EUR")
        self.assertEqual(format_price(10, ""), "10")

    def test_unparseable_value_renders_zero(self):
        self.assertEqual(format_price(None), "0 kr DKK")


class PriceRangeTestCase(unittest.TestCase):
    def test_ranges(self):
        self.assertEqual(parse_price_range("100-500"), (100.0, 500.0))
        self.assertEqual(parse_price_range("1000+"), (1000.0, None))
        self.assertEqual(parse_price_range(""), (None, None))
        self.assertEqual(parse_price_range(None), (None, None))

    def test_bad_ranges(self):
        for raw in ("abc", "500-100", "-5+", "10"):
            with self.assertRaises(ValueError):
                parse_price_range(raw)


class ListingCardTestCase(unittest.TestCase):
    def setUp(self):
        self.listing = ListingRecord.from_row(listing_row("L1", user_id="seller-abcdef-123", price=1234.5))

    def test_card_fields(self):
        card = listing_card(self.listing, resolver=_resolver())
        self.assertEqual(card["price_display"], "1,234.5 kr DKK")
        self.assertEqual(
            card["image_url"], "https://proj.supabase.co/storage/v1/object/public/listing-images/L1.jpg"
        )
        self.assertEqual(card["fallback_image_url"], PLACEHOLDER_IMAGE_URL)
        self.assertEqual(card["seller_name"], "User seller")
        self.assertEqual(card["href"], "/listings/L1")
        self.assertFalse(card["in_wishlist"])

    def test_seller_name_variants(self):
        profile = ProfileRecord(id="seller-abcdef-123", username="Mette")
        self.assertEqual(seller_display_name("seller-abcdef-123", profile=profile), "Mette")
        self.assertEqual(
            seller_display_name("seller-abcdef-123", viewer_id="seller-abcdef-123", profile=profile),
            CURRENT_USER_LABEL,
        )
        self.assertEqual(seller_display_name("seller-abcdef-123", profile=ProfileRecord(id="x", username=" ")), "User seller")

    def test_missing_image_has_no_url_but_keeps_fallback(self):
        listing = ListingRecord.from_row(listing_row("L2", image_url=None))
        card = listing_card(listing, resolver=_resolver())
        self.assertIsNone(card["image_url"])
        self.assertEqual(card["fallback_image_url"], PLACEHOLDER_IMAGE_URL)


class WishlistViewTestCase(unittest.TestCase):
    def setUp(self):
        self.store = FakeListingStore()
        self.store.seed("listings", **listing_row("L1", price=1234.5))

    def _sync(self, principal):
        sync = WishlistSync(SessionIdentityProvider(principal), self.store).start()
        self.addCleanup(sync.dispose)
        return sync

    def test_anonymous_state(self):
        view = wishlist_view(self._sync(None), resolver=_resolver())
        self.assertEqual(view["state"], "anonymous")
        self.assertEqual(wishlist_view(None, resolver=_resolver())["state"], "anonymous")

    def test_zero_entries_renders_empty_state(self):
        view = wishlist_view(self._sync(Principal(id="u-1")), resolver=_resolver())
        self.assertEqual(view["state"], "empty")
        self.assertEqual(view["items"], [])
        self.assertEqual(view["count"], 0)

    def test_dangling_entries_are_left_out(self):
        self.store.seed("wishlists", user_id="u-1", item_id="L1")
        self.store.seed("wishlists", user_id="u-1", item_id="DELETED")
        view = wishlist_view(self._sync(Principal(id="u-1")), resolver=_resolver())
        self.assertEqual(view["state"], "ready")
        self.assertEqual([c["id"] for c in view["items"]], ["L1"])
        self.assertEqual(view["dangling"], 1)
        self.assertTrue(view["items"][0]["in_wishlist"])
        self.assertEqual(view["items"][0]["price_display"], "1,234.5 kr DKK")

    def test_only_dangling_entries_renders_empty_state(self):
        self.store.seed("wishlists", user_id="u-1", item_id="DELETED")
        view = wishlist_view(self._sync(Principal(id="u-1")), resolver=_resolver())
        self.assertEqual(view["state"], "empty")


class ListingRecordTestCase(unittest.TestCase):
    def test_non_finite_prices_are_rejected(self):
        for price in ("nan", "inf", float("-inf")):
            with self.assertRaises(RecordValidationError):
                ListingRecord.from_row(listing_row("L9", price=price))

    def test_numeric_string_price_is_accepted(self):
        self.assertEqual(ListingRecord.from_row(listing_row("L9", price="1234.50")).price, 1234.5)


if __name__ == "__main__":
    unittest.main()
