from __future__ import annotations

import json
import unittest

from ridemarket.integrations.payments.webhook_signature import (
    SignatureVerificationError,
    compute_signature,
    construct_event,
)

SECRET = "whsec_abc"


class WebhookSignatureTestCase(unittest.TestCase):
    def setUp(self):
        self.payload = json.dumps({"id": "evt_1", "type": "account.updated"}).encode("utf-8")
        self.ts = 1_700_000_000

    def _header(self, *sigs):
        return ",".join([f"t={self.ts}"] + [f"v1={s}" for s in sigs])

    def test_valid_signature_returns_event(self):
        header = self._header(compute_signature(self.payload, self.ts, SECRET))
        event = construct_event(self.payload, header, SECRET, now=self.ts + 10)
        self.assertEqual(event["id"], "evt_1")

    def test_any_matching_v1_is_accepted(self):
        header = self._header("deadbeef", compute_signature(self.payload, self.ts, SECRET))
        self.assertEqual(construct_event(self.payload, header, SECRET, now=self.ts)["type"], "account.updated")

    def test_tampered_payload_is_rejected(self):
        header = self._header(compute_signature(self.payload, self.ts, SECRET))
        with self.assertRaises(SignatureVerificationError):
            construct_event(self.payload + b" ", header, SECRET, now=self.ts)

    def test_old_timestamp_is_rejected(self):
        header = self._header(compute_signature(self.payload, self.ts, SECRET))
        with self.assertRaises(SignatureVerificationError):
            construct_event(self.payload, header, SECRET, now=self.ts + 301)

    def test_malformed_header_and_missing_secret(self):
        for header in ("", "v1=abc", "t=notanumber,v1=abc", "t=1"):
            with self.assertRaises(SignatureVerificationError):
                construct_event(self.payload, header, SECRET, now=self.ts)
        with self.assertRaises(SignatureVerificationError):
            construct_event(self.payload, self._header("abc"), "", now=self.ts)


if __name__ == "__main__":
    unittest.main()
