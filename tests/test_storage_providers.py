from __future__ import annotations

import os
import tempfile
import unittest
from unittest.mock import MagicMock, patch

from ridemarket.integrations.common import IntegrationMisconfiguredError
from ridemarket.integrations.storage.factory import build_object_storage
from ridemarket.integrations.storage.local_provider import LocalObjectStorage
from ridemarket.integrations.storage.supabase_provider import SupabaseObjectStorage


class LocalObjectStorageTestCase(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.storage = LocalObjectStorage(self.tmp.name)

    def test_upload_and_list(self):
        self.assertTrue(self.storage.upload("avatars", "b.png", b"1").ok)
        self.assertTrue(self.storage.upload("avatars", "a/c.png", b"2").ok)
        self.assertEqual(self.storage.list("avatars"), ["a/c.png", "b.png"])
        self.assertEqual(self.storage.list("empty-bucket"), [])
        with open(self.storage.object_path("avatars", "b.png"), "rb") as fh:
            self.assertEqual(fh.read(), b"1")

    def test_duplicate_without_upsert_fails(self):
        self.storage.upload("avatars", "x.png", b"1")
        res = self.storage.upload("avatars", "x.png", b"2")
        self.assertFalse(res.ok)
        self.assertEqual(res.code, "DUPLICATE")
        self.assertTrue(self.storage.upload("avatars", "x.png", b"3", upsert=True).ok)

    def test_path_traversal_rejected(self):
        res = self.storage.upload("avatars", "../../etc/passwd", b"x")
        self.assertFalse(res.ok)
        self.assertEqual(res.code, "INVALID_KEY")


class SupabaseObjectStorageTestCase(unittest.TestCase):
    def setUp(self):
        self.storage = SupabaseObjectStorage("https://proj.supabase.co", "service-key", list_page_size=2)

    @patch("ridemarket.integrations.storage.supabase_provider.requests.post")
    def test_upload_headers(self, post):
        r = MagicMock(status_code=200, content=b"{}")
        r.json.return_value = {"Key": "avatars/a.png"}
        post.return_value = r
        res = self.storage.upload("avatars", "a.png", b"data", content_type="image/png")
        self.assertTrue(res.ok)
        args, kwargs = post.call_args
        self.assertEqual(args[0], "https://proj.supabase.co/storage/v1/object/avatars/a.png")
        self.assertEqual(kwargs["headers"]["cache-control"], "max-age=3600")
        self.assertEqual(kwargs["headers"]["x-upsert"], "false")
        self.assertEqual(kwargs["headers"]["Content-Type"], "image/png")

    @patch("ridemarket.integrations.storage.supabase_provider.requests.post")
    def test_upload_error_message(self, post):
        r = MagicMock(status_code=400, content=b"{}")
        r.json.return_value = {"message": "The resource already exists"}
        post.return_value = r
        res = self.storage.upload("avatars", "a.png", b"data")
        self.assertFalse(res.ok)
        self.assertEqual(res.message, "The resource already exists")

    @patch("ridemarket.integrations.storage.supabase_provider.requests.post")
    def test_list_pages(self, post):
        pages = [[{"name": "a"}, {"name": "b"}], [{"name": "c"}]]

        def _page(*args, **kwargs):
            r = MagicMock()
            r.json.return_value = pages.pop(0)
            return r

        post.side_effect = _page
        self.assertEqual(self.storage.list("listing-images"), ["a", "b", "c"])
        self.assertEqual(post.call_count, 2)


class StorageFactoryTestCase(unittest.TestCase):
    def test_local_default(self):
        self.assertIsInstance(build_object_storage({"STORAGE_LOCAL_ROOT": tempfile.gettempdir()}), LocalObjectStorage)

    def test_supabase_requires_credentials(self):
        with self.assertRaises(IntegrationMisconfiguredError):
            build_object_storage({"STORAGE_PROVIDER": "supabase"})
        storage = build_object_storage(
            {"STORAGE_PROVIDER": "supabase", "SUPABASE_URL": "https://p.supabase.co", "SUPABASE_SERVICE_ROLE_KEY": "k"}
        )
        self.assertIsInstance(storage, SupabaseObjectStorage)


if __name__ == "__main__":
    unittest.main()
