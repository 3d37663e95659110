from __future__ import annotations

import os
import unittest
import uuid
from unittest.mock import patch

from ridemarket import create_app
from ridemarket.extensions import db


class RequestIdHeadersTestCase(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        with patch.dict(os.environ, {"SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:"}, clear=False):
            cls.app = create_app()
        cls.app.config.update(TESTING=True)
        with cls.app.app_context():
            db.create_all()
        cls.client = cls.app.test_client()

    def test_fresh_request_id_per_call(self):
        first = self.client.get("/api/listings").headers.get("X-Request-ID")
        second = self.client.get("/api/listings").headers.get("X-Request-ID")
        uuid.UUID(first)
        uuid.UUID(second)
        self.assertNotEqual(first, second)

    def test_caller_request_id_is_kept(self):
        res = self.client.get("/api/wishlist", headers={"X-Request-ID": "edge-7f3a"})
        self.assertEqual(res.headers.get("X-Request-ID"), "edge-7f3a")

    def test_error_trace_id_matches_header(self):
        res = self.client.post("/api/listings", json={"title": "No token"}, headers={"X-Request-ID": "trace-401"})
        self.assertEqual(res.status_code, 401)
        self.assertEqual(res.get_json()["trace_id"], "trace-401")

        res = self.client.get("/api/listings/does-not-exist")
        self.assertEqual(res.status_code, 404)
        self.assertEqual(res.get_json()["trace_id"], res.headers.get("X-Request-ID"))

    def test_request_line_is_logged(self):
        with self.assertLogs(self.app.logger, level="INFO") as logs:
            self.client.get("/api/listings", headers={"X-Request-ID": "log-me"})
        self.assertTrue(any('"request_id": "log-me"' in line for line in logs.output))

    def test_health_reports_integrations(self):
        body = self.client.get("/api/health").get_json()
        self.assertEqual(body["db"], "ok")
        self.assertEqual(body["payments"]["provider"], "mock")
        self.assertEqual(body["storage"], "local")


if __name__ == "__main__":
    unittest.main()
