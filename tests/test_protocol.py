import pytest

from otp_core.clock import FixedClock
from otp_core.config import Settings
from otp_core.otp_core import decode_secret, derive
from otp_core.protocol import (
    MESSAGE_NO_MATCH,
    REASON_NON_NUMERIC,
    REASON_NO_MATCH,
    REASON_OK,
    REASON_WRONG_LENGTH,
    OTPService,
)

from .conftest import PERIOD, RFC_CODES, RFC_KEY, at_counter


@pytest.fixture
def service(clock):
    return OTPService(RFC_KEY, digits=6, period=PERIOD, window=1, clock=clock)


class TestGenerate:

    def test_code_and_expiry(self, service):
        issued = service.generate()
        assert issued.code == RFC_CODES[5]
        assert issued.counter == 5
        assert issued.expires_at == 6 * PERIOD * 1000
        assert issued.to_json() == {"code": RFC_CODES[5], "expiresAt": 180000}

    def test_same_code_within_window(self, service, clock):
        clock.set(at_counter(5, second=0))
        first = service.generate()
        clock.set(at_counter(5, second=29))
        second = service.generate()
        assert first.code == second.code
        assert first.expires_at <= second.expires_at == (5 + 1) * PERIOD * 1000

    def test_next_window(self, service, clock):
        clock.set(at_counter(6, second=0))
        assert service.generate().code == RFC_CODES[6]

    def test_explicit_now(self, service):
        assert service.generate(now=at_counter(2)).code == RFC_CODES[2]

    def test_four_digits(self, clock):
        service = OTPService(RFC_KEY, digits=4, clock=clock)
        assert service.generate().code == RFC_CODES[5][-4:]


class TestValidate:

    def test_valid(self, service):
        result = service.validate(RFC_CODES[5])
        assert result.valid
        assert result.reason == REASON_OK
        assert result.matched_offset == 0

    @pytest.mark.parametrize("counter", [4, 6])
    def test_neighbours_accepted(self, service, counter):
        assert service.validate(RFC_CODES[counter]).valid

    @pytest.mark.parametrize("counter", [3, 7])
    def test_far_codes_rejected(self, service, counter):
        result = service.validate(RFC_CODES[counter])
        assert not result.valid
        assert result.reason == REASON_NO_MATCH
        assert result.message == MESSAGE_NO_MATCH
        assert not result.is_shape_error
        assert result.to_json() == {"valid": False, "message": "invalid or expired"}

    @pytest.mark.parametrize("code", ["1234", "1234567", ""])
    def test_wrong_length(self, service, code):
        result = service.validate(code)
        assert result.reason == REASON_WRONG_LENGTH
        assert result.message == "wrong length: expected 6 digits"
        assert result.is_shape_error

    @pytest.mark.parametrize("code", ["12a456", " 54676", "25467-", "٢٥٤٦٧٦"])
    def test_non_numeric(self, service, code):
        result = service.validate(code)
        assert result.reason == REASON_NON_NUMERIC
        assert result.message.startswith("non-numeric")

    def test_round_trip_across_clocks(self):
        key = decode_secret("JBSWY3DPEHPK3PXP")
        issuer = OTPService(key, digits=4, clock=FixedClock(1000000))
        issued = issuer.generate()
        for drift in (-30, -1, 0, 1, 29, 30):
            validator = OTPService(key, digits=4, clock=FixedClock(1000000 + drift))
            assert validator.validate(issued.code).valid, drift

    def test_different_key_rejected(self, service):
        assert not service.validate(derive(b"another key", 5, 6)).valid


def test_from_settings(settings, clock):
    service = OTPService.from_settings(settings, clock=clock)
    assert service.generate().code == RFC_CODES[5]
    assert service.clock_synced


def test_expected_reports_counter(service):
    assert service.expected() == (RFC_CODES[5], 5)
