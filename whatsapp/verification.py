from __future__ import annotations

import hmac
from typing import Mapping

SUBSCRIBE_MODE = "subscribe"


def verify_subscription(mode: str | None, verify_token: str | None, challenge: str | None, expected_token: str) -> str | None:
    """Returns the challenge to echo back, or None when the handshake must be rejected."""
    expected = (expected_token or "").strip()
    received = (verify_token or "").strip()
    if not expected or not received:
        return None
    if (mode or "").strip() != SUBSCRIBE_MODE:
        return None
    if not hmac.compare_digest(expected.encode("utf-8"), received.encode("utf-8")):
        return None
    return challenge or ""


def read_verification_params(params: Mapping[str, str]) -> tuple[str | None, str | None, str | None]:
    def _pick(name: str) -> str | None:
        value = params.get(f"hub.{name}")
        if value is None:
            value = params.get(name)
        return value

    return _pick("mode"), _pick("verify_token"), _pick("challenge")
