"""
otp_core package
================

Time-based one-time codes (RFC 4226 HOTP / RFC 6238 TOTP) shared by the
validation server (otp_backend), the token device loop (otp_device) and the
CLI.

Core algorithm
--------------
- HOTP: code = Truncate(HMAC-SHA1(key, counter)) mod 10^digits
- TOTP: HOTP with counter = floor(unix_time / period), period = 30 s
- Dynamic truncation: 4 bytes at offset (last byte & 0x0F), sign bit cleared

Quick example
-------------
>>> from otp_core import decode_secret, derive
>>> derive(b"12345678901234567890", 0, 6)
'755224'
>>> from otp_core import OTPService, FixedClock
>>> service = OTPService(decode_secret("JBSWY3DPEHPK3PXP"), digits=4, clock=FixedClock(59))
>>> issued = service.generate()
>>> service.validate(issued.code).valid
True
"""

from .clock import FallbackClock, FixedClock, SystemClock, TimeReading
from .config import Settings, ensure_compatible, load_settings
from .exceptions import ClockError, ConfigError, OTPError
from .otp_core import (
    counter_at,
    decode_secret,
    decode_secret_strict,
    derive,
    format_otpauth_uri,
    generate_base32_secret,
    hotp,
    is_valid_totp,
    totp,
    verify_totp,
)
from .protocol import IssuedCode, OTPService, ValidationResult

__all__ = [
    "ClockError",
    "ConfigError",
    "FallbackClock",
    "FixedClock",
    "IssuedCode",
    "OTPError",
    "OTPService",
    "Settings",
    "SystemClock",
    "TimeReading",
    "ValidationResult",
    "counter_at",
    "decode_secret",
    "decode_secret_strict",
    "derive",
    "ensure_compatible",
    "format_otpauth_uri",
    "generate_base32_secret",
    "hotp",
    "is_valid_totp",
    "load_settings",
    "totp",
    "verify_totp",
]
