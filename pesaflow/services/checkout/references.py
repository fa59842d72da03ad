"""Merchant reference generation."""

import secrets
import string
import time


_ALPHABET = string.digits + string.ascii_lowercase


def new_merchant_reference(prefix: str = "KLB", suffix_length: int = 9) -> str:
    """`<prefix>-<epoch ms>-<random base36>`; unique per call with overwhelming probability."""

    suffix = "".join(secrets.choice(_ALPHABET) for _ in range(suffix_length))
    return f"{prefix}-{time.time_ns() // 1_000_000}-{suffix}"
