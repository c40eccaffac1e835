"""HMAC signature verification for inbound webhooks.

Two schemes are supported:

- Svix (used by Clerk): ``whsec_<base64>`` secret, signed content
  ``{svix-id}.{svix-timestamp}.{body}``, base64 HMAC-SHA256, header of
  space-separated ``v1,<signature>`` entries.
- Stripe: plain secret, signed content ``{t}.{body}``, hex HMAC-SHA256,
  header ``t=<unix seconds>,v1=<signature>[,...]``.

Verifiers are built once from configuration and hold the decoded key.
"""

import base64
import binascii
import hashlib
import hmac
import time
from dataclasses import dataclass, field

from gateway.core.exceptions import WebhookConfigurationError
from gateway.webhooks.compare import timing_safe_equal

SVIX_SECRET_PREFIX = "whsec_"


@dataclass(frozen=True)
class VerificationResult:
    """Outcome of a signature check.

    The signature values are kept for diagnostics and excluded from repr.
    """

    authentic: bool
    expected: str = field(default="", repr=False)
    candidates: tuple[str, ...] = field(default=(), repr=False)

    def __bool__(self) -> bool:
        return self.authentic


def _within_tolerance(timestamp: str, tolerance_seconds: int, now: float | None) -> bool:
    if tolerance_seconds <= 0:
        return True
    try:
        signed_at = int(timestamp)
    except ValueError:
        return False
    now = time.time() if now is None else now
    return abs(now - signed_at) <= tolerance_seconds


class SvixSignatureVerifier:
    """Verifies Clerk webhooks delivered through Svix."""

    def __init__(self, secret: str, tolerance_seconds: int = 0):
        encoded = secret[len(SVIX_SECRET_PREFIX):] if secret.startswith(SVIX_SECRET_PREFIX) else secret
        try:
            self._key = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise WebhookConfigurationError("Clerk webhook secret is not valid base64") from exc
        if not self._key:
            raise WebhookConfigurationError("Clerk webhook secret is empty")
        self.tolerance_seconds = tolerance_seconds

    def sign(self, message_id: str, timestamp: str, body: bytes) -> str:
        """Return the base64 signature for a delivery."""
        signed_content = f"{message_id}.{timestamp}.".encode("utf-8") + body
        digest = hmac.new(self._key, signed_content, hashlib.sha256).digest()
        return base64.b64encode(digest).decode("ascii")

    def verify(
        self,
        message_id: str,
        timestamp: str,
        signature_header: str,
        body: bytes,
        now: float | None = None,
    ) -> VerificationResult:
        expected = self.sign(message_id, timestamp, body)

        # "v1,<sig> v1,<sig2>": the version tag is dropped
        candidates = tuple(
            entry.split(",", 1)[1] for entry in signature_header.split(" ") if "," in entry
        )

        if not _within_tolerance(timestamp, self.tolerance_seconds, now):
            return VerificationResult(False, expected, candidates)

        authentic = False
        for candidate in candidates:
            # No early exit: every candidate is compared
            if candidate and timing_safe_equal(expected, candidate):
                authentic = True
        return VerificationResult(authentic, expected, candidates)


def parse_stripe_signature_header(header: str) -> tuple[str | None, list[str]]:
    """Extract the ``t`` timestamp and all ``v1`` signatures from a Stripe-Signature header."""
    timestamp: str | None = None
    signatures: list[str] = []
    for item in header.split(","):
        key, sep, value = item.strip().partition("=")
        if not sep:
            continue
        if key == "t" and timestamp is None:
            timestamp = value
        elif key == "v1" and value:
            signatures.append(value)
    return timestamp, signatures


class StripeSignatureVerifier:
    """Verifies Stripe webhooks.

    The signed content is ``{t}.{body}``; its hex HMAC-SHA256 is compared with
    the header's ``v1`` entries. Every ``v1`` entry is checked and any match
    authenticates, as Stripe's SDK does while a secret is rolled, rather than
    only the first entry. With one ``v1`` entry the two rules agree.
    """

    def __init__(self, secret: str, tolerance_seconds: int = 0):
        if not secret:
            raise WebhookConfigurationError("Stripe webhook secret is empty")
        self._key = secret.encode("utf-8")
        self.tolerance_seconds = tolerance_seconds

    def sign(self, timestamp: str, body: bytes) -> str:
        """Return the hex signature for a delivery."""
        signed_payload = f"{timestamp}.".encode("utf-8") + body
        return hmac.new(self._key, signed_payload, hashlib.sha256).hexdigest()

    def verify(self, signature_header: str, body: bytes, now: float | None = None) -> VerificationResult:
        timestamp, signatures = parse_stripe_signature_header(signature_header)
        if not (timestamp and signatures):
            return VerificationResult(False)

        expected = self.sign(timestamp, body)
        candidates = tuple(signatures)

        if not _within_tolerance(timestamp, self.tolerance_seconds, now):
            return VerificationResult(False, expected, candidates)

        authentic = False
        for candidate in candidates:
            if timing_safe_equal(expected, candidate):
                authentic = True
        return VerificationResult(authentic, expected, candidates)
