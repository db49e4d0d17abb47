import pytest

from otp_core.clock import FixedClock
from otp_core.config import Settings
from otp_backend.app import create_app

# RFC 4226 Appendix D: key "12345678901234567890", counters 0..9
RFC_KEY = b"12345678901234567890"
RFC_SECRET_B32 = "GEZDGNBVGY3TQOJQGEZDGNBVGY3TQOJQ"
RFC_CODES = [
    "755224", "287082", "359152", "969429", "338314",
    "254676", "287922", "162583", "399871", "520489",
]
PERIOD = 30


def at_counter(counter, second=7):
    """Unix time `second` seconds into the given step."""
    return counter * PERIOD + second


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("OTP_CONFIG_FILE", "OTP_SECRET", "OTP_DIGITS", "OTP_PERIOD", "OTP_WINDOW",
                 "OTP_DISPLAY_SECONDS", "OTP_DEBUG_ENDPOINTS", "OTP_STRICT_SECRET",
                 "OTP_LOG_LEVEL", "OTP_ISSUER", "OTP_ACCOUNT"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def clock():
    return FixedClock(at_counter(5))


@pytest.fixture
def settings():
    return Settings(secret=RFC_SECRET_B32, digits=6, period=PERIOD, window=1)


@pytest.fixture
def app(settings, clock):
    app = create_app(settings, clock=clock)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def debug_client(settings, clock):
    app = create_app(Settings(**{**settings.to_dict(), "debug_endpoints": True}), clock=clock)
    app.config["TESTING"] = True
    return app.test_client()
