"""
exceptions.py — Exception types shared by the OTP packages.
"""


class OTPError(Exception):
    """Base class for every error raised by otp_core."""


class ConfigError(OTPError, ValueError):
    """Invalid or inconsistent configuration (digits, period, window, secret)."""


class ClockError(OTPError):
    """A time source could not produce the current time."""
