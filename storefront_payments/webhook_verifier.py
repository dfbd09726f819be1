"""
Yoco webhook verification.

A notification is trusted only when both checks pass:
- freshness: webhook-timestamp is within the tolerance window of now
- authenticity: webhook-signature matches HMAC-SHA256 of
  "{webhook-id}.{webhook-timestamp}.{raw body}" keyed with the decoded secret

Both checks return a bool and never raise; every failure collapses to False.
"""

import base64
import binascii
import hashlib
import hmac
import logging
import time
from typing import Callable, Optional, Union

logger = logging.getLogger(__name__)

SECRET_PREFIX = "whsec_"
DEFAULT_TOLERANCE_MINUTES = 3


def decode_secret(secret: str) -> bytes:
    """
    Decode a whsec_<base64> secret into raw key bytes.

    Raises:
        ValueError: secret is missing the prefix or is not valid base64
    """
    if not secret.startswith(SECRET_PREFIX):
        raise ValueError(f"webhook secret must start with '{SECRET_PREFIX}'")
    try:
        return base64.b64decode(secret[len(SECRET_PREFIX):], validate=True)
    except binascii.Error as e:
        raise ValueError(f"webhook secret is not valid base64: {e}") from e


def compute_signature(key: bytes, webhook_id: str, webhook_timestamp: str, body: Union[bytes, str]) -> str:
    """Base64 HMAC-SHA256 of the signed content."""
    if isinstance(body, str):
        body = body.encode("utf-8")
    signed_content = f"{webhook_id}.{webhook_timestamp}.".encode("utf-8") + body
    digest = hmac.new(key, signed_content, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


class WebhookVerifier:
    """
    Verifies Yoco webhook notifications against a configured secret.

    Args:
        secret: webhook secret in whsec_<base64> form; empty means unconfigured
        verify_all_signatures: accept a match on any header entry instead of
            only the first one
        clock: returns current time in seconds
    """

    def __init__(
        self,
        secret: Optional[str],
        verify_all_signatures: bool = False,
        clock: Callable[[], float] = time.time,
    ):
        self._key: Optional[bytes] = None
        self._verify_all = verify_all_signatures
        self._clock = clock

        if not secret:
            logger.warning("Webhook secret not configured, all signatures will be rejected")
            return
        try:
            self._key = decode_secret(secret)
        except ValueError as e:
            logger.warning(f"Webhook secret is malformed, all signatures will be rejected: {e}")

    @property
    def configured(self) -> bool:
        return self._key is not None

    def validate_timestamp(self, webhook_timestamp: str, threshold_minutes: int = DEFAULT_TOLERANCE_MINUTES) -> bool:
        """True iff the timestamp (unix seconds) is within threshold_minutes of now, inclusive."""
        # ASCII digits only
        if not isinstance(webhook_timestamp, str) or not (webhook_timestamp.isascii() and webhook_timestamp.isdigit()):
            logger.info(f"Rejecting unparsable webhook timestamp: {webhook_timestamp!r}")
            return False
        timestamp_ms = int(webhook_timestamp) * 1000

        now_ms = int(self._clock() * 1000)
        difference_ms = abs(now_ms - timestamp_ms)
        is_fresh = difference_ms <= threshold_minutes * 60 * 1000
        if not is_fresh:
            logger.info(f"Webhook timestamp outside tolerance: drift={difference_ms}ms")
        return is_fresh

    def validate_signature(
        self,
        webhook_id: str,
        webhook_timestamp: str,
        raw_body: Union[bytes, str],
        signature_header: str,
    ) -> bool:
        """
        True iff signature_header carries the expected signature for the raw body.

        raw_body must be exactly what was received; a re-serialized JSON
        document will not verify.
        """
        if self._key is None:
            logger.warning("Webhook signature check skipped: secret not configured")
            return False

        try:
            expected = compute_signature(self._key, webhook_id, webhook_timestamp, raw_body)
            received = self._received_signatures(signature_header)
            if not received:
                logger.info("Webhook signature header is malformed")
                return False

            is_valid = False
            for signature in received:
                if hmac.compare_digest(expected.encode("ascii"), signature.encode("utf-8")):
                    is_valid = True
            logger.debug(f"Webhook signature verification: {'valid' if is_valid else 'invalid'}")
            return is_valid
        except Exception as e:
            logger.warning(f"Webhook signature verification failed: {e}")
            return False

    def _received_signatures(self, signature_header: str) -> list[str]:
        # "v1,<sig> v1,<sig>"; surrounding whitespace is rejected, not trimmed
        if not signature_header or signature_header != signature_header.strip():
            return []
        entries = signature_header.split(" ")
        if not self._verify_all:
            entries = entries[:1]

        signatures = []
        for entry in entries:
            version, sep, value = entry.partition(",")
            if not sep or not version or not value:
                continue
            signatures.append(value)
        return signatures
