#!/usr/bin/env python3
"""
otp_core.py — Core library for time-based one-time codes (RFC 4226 / RFC 6238).

Goals:
- Pure functions only: the secret key, the counter and the current time are
  always passed in by the caller. Nothing here reads files, env vars or the
  system clock, so the device loop, the HTTP service and the tests all share
  the exact same derivation.
- No argparse / CLI loop here (see otp_cli.py).

Security notes:
- HMAC-SHA1 per RFC 4226/6238 (what Google Authenticator and friends expect).
- Codes are compared with hmac.compare_digest.
"""

from typing import Iterator, Optional, Tuple
import hmac
import hashlib
import logging
import math
import struct
from urllib.parse import quote

import pyotp

logger = logging.getLogger(__name__)

# --- Config / constants ----------------------------------------------------
DEFAULT_DIGITS = 6          # 6 digits is the RFC default; 4 is used by the token device
DEFAULT_TIME_STEP = 30      # TOTP step (seconds)
DEFAULT_WINDOW = 1          # accepted neighbouring steps on each side
MIN_DIGITS = 1
MAX_DIGITS = 10             # a 31-bit truncated value never exceeds 10 decimal digits
MAX_COUNTER = 2 ** 64 - 1

BASE32_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ234567"
_BASE32_VALUES = {ch: i for i, ch in enumerate(BASE32_ALPHABET)}


# --- Base32 secrets --------------------------------------------------------
def decode_secret(secret_b32: str) -> bytes:
    """
    Decode a human-typed Base32 secret into raw key bytes (lenient).

    - Surrounding whitespace is trimmed and the text is uppercased.
    - Characters outside A-Z2-7 (spaces, dashes, '=' padding, ...) are skipped.
    - Leftover bits (< 8) at the end are dropped, like unpadded Base32.

    Never raises: an empty or all-invalid string gives b"".

    Example: decode_secret("jbsw y3dp-ehpk 3pxp") == decode_secret("JBSWY3DPEHPK3PXP")
    """
    buffer = 0
    bits = 0
    out = bytearray()
    for ch in secret_b32.strip().upper():
        value = _BASE32_VALUES.get(ch)
        if value is None:
            continue
        buffer = (buffer << 5) | value
        bits += 5
        if bits >= 8:
            bits -= 8
            out.append((buffer >> bits) & 0xFF)
            buffer &= (1 << bits) - 1
    return bytes(out)


def invalid_base32_chars(secret_b32: str) -> str:
    """
    Return the characters the lenient decoder would skip, in order.

    Whitespace and trailing '=' padding are not counted.
    Example: invalid_base32_chars("JBSW-Y3D1") == "-1"
    """
    cleaned = "".join(secret_b32.split()).rstrip("=").upper()
    return "".join(ch for ch in cleaned if ch not in _BASE32_VALUES)


def trailing_bits(secret_b32: str) -> int:
    """Number of bits left over after the last full byte (0..7); decode_secret drops them."""
    valid = sum(1 for ch in secret_b32.upper() if ch in _BASE32_VALUES)
    return (valid * 5) % 8


def decode_secret_strict(secret_b32: str) -> bytes:
    """
    Decode a Base32 secret, refusing anything but the alphabet.

    Whitespace and trailing '=' padding are tolerated, and so is an unpadded
    length ("JBSWY3" is fine); any other stray character raises ValueError.
    Used to check configured secrets at startup.

    Raises:
        ValueError: if the secret is not valid Base32
    """
    stray = invalid_base32_chars(secret_b32)
    if stray:
        raise ValueError(f"Invalid Base32 secret: unexpected characters {stray!r}")
    return decode_secret(secret_b32)


def generate_base32_secret() -> str:
    """Return a fresh random Base32 secret (no padding), e.g. for `otp-cli secret`."""
    return pyotp.random_base32()


# --- RFC helpers -----------------------------------------------------------
def int_to_bytes(i: int) -> bytes:
    """
    Encode the counter as 8 bytes big-endian, as RFC 4226 requires.

    Example: int_to_bytes(1) -> b'\x00\x00\x00\x00\x00\x00\x00\x01'
    """
    return struct.pack(">Q", i)


def dynamic_truncate(hmac_digest: bytes) -> int:
    """
    RFC 4226 dynamic truncation.

    - offset = low 4 bits of the last byte (0..15)
    - read 4 bytes at offset big-endian and clear the sign bit
    - returns a 31-bit non-negative integer
    """
    offset = hmac_digest[-1] & 0x0F
    return struct.unpack(">I", hmac_digest[offset:offset + 4])[0] & 0x7FFFFFFF


def derive(key: bytes, counter: int, digits: int = DEFAULT_DIGITS) -> str:
    """
    Derive the HOTP code for `counter` (RFC 4226).

    Steps:
    1. message = 8-byte big-endian counter
    2. HMAC-SHA1(key, message)
    3. dynamic truncation -> 31-bit value
    4. value % 10^digits, zero-padded to exactly `digits` characters

    Arguments:
        key: raw secret bytes (already decoded; may be empty)
        counter: 0 <= counter < 2**64
        digits: code length, validated by the configuration layer

    Returns:
        str: the zero-padded code
    """
    digest = hmac.new(key, int_to_bytes(counter), hashlib.sha1).digest()
    return str(dynamic_truncate(digest) % (10 ** digits)).zfill(digits)


# Kept under the RFC name; callers that think in HOTP terms use this one.
hotp = derive


def counter_at(timestamp: float, timestep: int = DEFAULT_TIME_STEP) -> int:
    """Counter (time-step index) for a Unix timestamp: floor(timestamp / timestep)."""
    return int(timestamp // timestep)


def totp(
    key: bytes,
    timestamp: float,
    timestep: int = DEFAULT_TIME_STEP,
    digits: int = DEFAULT_DIGITS,
) -> Tuple[str, int]:
    """
    TOTP code for `timestamp` (RFC 6238 with T0 = 0).

    Returns:
        (code, remaining_seconds) where remaining_seconds is the time left
        until the next step starts.
    """
    counter = counter_at(timestamp, timestep)
    remaining = math.ceil((counter + 1) * timestep - timestamp)
    return derive(key, counter, digits), remaining


# --- Verification ----------------------------------------------------------
def is_well_formed(code: str, digits: int) -> bool:
    """True if `code` is exactly `digits` ASCII decimal characters."""
    return (
        isinstance(code, str)
        and len(code) == digits
        and code.isascii()
        and code.isdigit()
    )


def window_offsets(window: int) -> Iterator[int]:
    """Yield 0, -1, +1, -2, +2, ... up to +/-window."""
    yield 0
    for step in range(1, window + 1):
        yield -step
        yield step


def verify_totp(
    code: str,
    key: bytes,
    digits: int = DEFAULT_DIGITS,
    timestamp: float = 0,
    window: int = DEFAULT_WINDOW,
    timestep: int = DEFAULT_TIME_STEP,
) -> Optional[int]:
    """
    Check a submitted TOTP code against the steps around `timestamp`.

    The current step is tried first, then neighbours outward (previous before
    next). Counters below zero are skipped.

    Arguments:
        code: submitted code, compared as a string (leading zeros matter)
        key: raw secret bytes
        digits: expected code length
        timestamp: validator's Unix time in seconds
        window: skew tolerance, number of steps accepted on each side
        timestep: TOTP step in seconds

    Returns:
        the matching offset (0, -1, +1, ...) or None if nothing matched
    """
    if not is_well_formed(code, digits):
        return None

    current = counter_at(timestamp, timestep)
    for offset in window_offsets(window):
        candidate = current + offset
        if candidate < 0 or candidate > MAX_COUNTER:
            continue
        if hmac.compare_digest(derive(key, candidate, digits), code):
            logger.debug("TOTP matched at offset %+d (counter=%d)", offset, candidate)
            return offset
    return None


def is_valid_totp(code: str, key: bytes, digits: int = DEFAULT_DIGITS,
                  timestamp: float = 0, window: int = DEFAULT_WINDOW,
                  timestep: int = DEFAULT_TIME_STEP) -> bool:
    return verify_totp(code, key, digits, timestamp, window, timestep) is not None


# --- Provisioning ----------------------------------------------------------
def format_otpauth_uri(
    secret_b32: str,
    account: str,
    issuer: str,
    digits: int = DEFAULT_DIGITS,
    period: int = DEFAULT_TIME_STEP,
) -> str:
    """
    Build the otpauth://totp/ URI that authenticator apps import (QR code).

    The secret is normalized (no whitespace, no padding, uppercase); the
    label and issuer are URL-quoted.
    """
    secret = "".join(secret_b32.split()).rstrip("=").upper()
    label = quote(f"{issuer}:{account}")
    return (
        f"otpauth://totp/{label}?secret={secret}&issuer={quote(issuer)}"
        f"&algorithm=SHA1&digits={digits}&period={period}"
    )
