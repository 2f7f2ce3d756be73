from __future__ import annotations

import unittest

from whatsapp.verification import read_verification_params, verify_subscription


class VerificationTest(unittest.TestCase):
    def test_matching_token_echoes_challenge(self) -> None:
        self.assertEqual(verify_subscription("subscribe", "secret", "12345", "secret"), "12345")

    def test_rejections(self) -> None:
        self.assertIsNone(verify_subscription("subscribe", "wrong", "12345", "secret"))
        self.assertIsNone(verify_subscription("unsubscribe", "secret", "12345", "secret"))
        self.assertIsNone(verify_subscription("subscribe", "", "12345", ""))
        self.assertIsNone(verify_subscription(None, None, None, "secret"))

    def test_read_params_accepts_hub_prefix(self) -> None:
        params = {"hub.mode": "subscribe", "hub.verify_token": "secret", "hub.challenge": "42"}
        self.assertEqual(read_verification_params(params), ("subscribe", "secret", "42"))
        bare = {"mode": "subscribe", "verify_token": "secret", "challenge": "42"}
        self.assertEqual(read_verification_params(bare), ("subscribe", "secret", "42"))


if __name__ == "__main__":
    unittest.main()
