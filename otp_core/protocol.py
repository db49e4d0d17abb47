"""
protocol.py — Generate / Validate operations exposed to callers.

OTPService wraps the pure functions of otp_core with one configured key and
an injected clock. It keeps no mutable state, so a single instance can be
shared by every request thread of the HTTP server.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from .clock import SystemClock
from .config import Settings
from .otp_core import (
    DEFAULT_DIGITS,
    DEFAULT_TIME_STEP,
    DEFAULT_WINDOW,
    counter_at,
    derive,
    verify_totp,
)

logger = logging.getLogger(__name__)

REASON_OK = "ok"
REASON_WRONG_LENGTH = "wrong_length"
REASON_NON_NUMERIC = "non_numeric"
REASON_NO_MATCH = "no_match"

# Reasons caused by the caller's input shape (HTTP 400) rather than a wrong code.
SHAPE_ERRORS = (REASON_WRONG_LENGTH, REASON_NON_NUMERIC)

MESSAGE_VALID = "OTP is valid"
MESSAGE_NON_NUMERIC = "non-numeric: code must contain only digits"
MESSAGE_NO_MATCH = "invalid or expired"


@dataclass(frozen=True)
class IssuedCode:
    code: str
    expires_at: int     # Unix ms at which the next step starts
    counter: int

    def to_json(self) -> dict:
        return {"code": self.code, "expiresAt": self.expires_at}


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    message: str
    reason: str
    matched_offset: Optional[int] = None    # diagnostics only, never sent to clients

    @property
    def is_shape_error(self) -> bool:
        return self.reason in SHAPE_ERRORS

    def to_json(self) -> dict:
        return {"valid": self.valid, "message": self.message}


class OTPService:
    """
    Issue and validate codes for one shared secret.

    Arguments:
        key: raw secret bytes (see otp_core.decode_secret)
        digits: code length
        period: TOTP step in seconds
        window: skew tolerance in steps on each side
        clock: object with now() -> TimeReading; SystemClock by default
    """

    def __init__(
        self,
        key: bytes,
        digits: int = DEFAULT_DIGITS,
        period: int = DEFAULT_TIME_STEP,
        window: int = DEFAULT_WINDOW,
        clock=None,
    ):
        self._key = bytes(key)
        self.digits = digits
        self.period = period
        self.window = window
        self.clock = clock or SystemClock()

    @classmethod
    def from_settings(cls, settings: Settings, clock=None) -> "OTPService":
        return cls(settings.key, settings.digits, settings.period, settings.window, clock)

    @property
    def clock_synced(self) -> bool:
        return self.clock.now().synced

    def _now(self, now: Optional[float]) -> float:
        return self.clock.now().unix if now is None else now

    def expected(self, now: Optional[float] = None) -> Tuple[str, int]:
        """Code and counter that are current at `now` (diagnostics)."""
        counter = counter_at(self._now(now), self.period)
        return derive(self._key, counter, self.digits), counter

    def generate(self, now: Optional[float] = None) -> IssuedCode:
        """
        Issue the code for the current step.

        Calls within one step return the same code; expires_at is the start of
        the next step in Unix milliseconds so clients can show a countdown.
        """
        code, counter = self.expected(now)
        expires_at = (counter + 1) * self.period * 1000
        logger.debug("Issued code for counter=%d, expires_at=%d", counter, expires_at)
        return IssuedCode(code, expires_at, counter)

    def validate(self, submitted: str, now: Optional[float] = None) -> ValidationResult:
        """
        Validate a submitted code.

        Shape checks (length, digits only) run before any HMAC work and get
        their own messages. A wrong code always gets the same generic message.
        """
        if len(submitted) != self.digits:
            return ValidationResult(
                False, f"wrong length: expected {self.digits} digits", REASON_WRONG_LENGTH
            )
        if not (submitted.isascii() and submitted.isdigit()):
            return ValidationResult(False, MESSAGE_NON_NUMERIC, REASON_NON_NUMERIC)

        offset = verify_totp(
            submitted, self._key, self.digits, self._now(now), self.window, self.period
        )
        if offset is None:
            logger.info("OTP rejected: no match within +/-%d steps", self.window)
            return ValidationResult(False, MESSAGE_NO_MATCH, REASON_NO_MATCH)

        logger.info("OTP accepted (offset %+d)", offset)
        return ValidationResult(True, MESSAGE_VALID, REASON_OK, offset)
