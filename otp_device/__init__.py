"""
otp_device package — control loop of the hardware token generator.
"""

from .token_generator import State, TokenGenerator

__all__ = ["State", "TokenGenerator"]
