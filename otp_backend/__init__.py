"""
BACKEND PACKAGE - OTP validation server built on Flask.

Wraps otp_core.protocol.OTPService behind the JSON endpoints used by the web
form (see routes.py).
"""

from .app import create_app

__all__ = ['create_app']
