"""Constant-time string comparison for webhook signatures."""

import hmac


def timing_safe_equal(a: str, b: str) -> bool:
    """Compare two strings without leaking the position of the first mismatch.

    Length is not secret, so unequal lengths are rejected up front. Equal-length
    inputs are compared over their full length by ``hmac.compare_digest``.
    """
    a_bytes = a.encode("utf-8")
    b_bytes = b.encode("utf-8")
    if len(a_bytes) != len(b_bytes):
        return False
    return hmac.compare_digest(a_bytes, b_bytes)
