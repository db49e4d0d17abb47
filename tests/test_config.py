import json
import logging

import pytest

from otp_core.config import Settings, ensure_compatible, load_settings, save_config
from otp_core.exceptions import ConfigError

from .conftest import RFC_KEY, RFC_SECRET_B32


def write_json(path, data):
    path.write_text(json.dumps(data), encoding="utf-8")
    return str(path)


class TestLoadSettings:

    def test_defaults(self):
        settings = load_settings()
        assert settings == Settings()
        assert settings.digits == 6 and settings.period == 30 and settings.window == 1

    def test_file_then_env_then_overrides(self, tmp_path, monkeypatch):
        path = write_json(tmp_path / "otp.json", {"secret": RFC_SECRET_B32, "digits": 4, "window": 2})
        monkeypatch.setenv("OTP_WINDOW", "0")
        monkeypatch.setenv("OTP_DEBUG_ENDPOINTS", "yes")
        settings = load_settings(path)
        assert settings.key == RFC_KEY
        assert settings.digits == 4
        assert settings.window == 0
        assert settings.debug_endpoints is True

        settings = load_settings(path, digits=6, period=None, window=3)
        assert settings.digits == 6
        assert settings.period == 30
        assert settings.window == 3

    def test_env_ignored_for_peer_file(self, tmp_path, monkeypatch):
        path = write_json(tmp_path / "peer.json", {"digits": 4})
        monkeypatch.setenv("OTP_DIGITS", "8")
        assert load_settings(path).digits == 8
        assert load_settings(path, use_env=False).digits == 4

    def test_config_file_from_env(self, tmp_path, monkeypatch):
        path = write_json(tmp_path / "otp.json", {"digits": 8})
        monkeypatch.setenv("OTP_CONFIG_FILE", path)
        assert load_settings().digits == 8

    def test_unknown_keys_ignored(self, tmp_path, caplog):
        path = write_json(tmp_path / "otp.json", {"digits": 4, "colour": "blue"})
        with caplog.at_level(logging.WARNING):
            assert load_settings(path).digits == 4
        assert "colour" in caplog.text

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_settings(str(tmp_path / "nope.json"))

    @pytest.mark.parametrize("content", ["{not json", "[1, 2]"])
    def test_bad_file(self, tmp_path, content):
        path = tmp_path / "otp.json"
        path.write_text(content, encoding="utf-8")
        with pytest.raises(ConfigError):
            load_settings(str(path))

    def test_fractional_numbers_rejected(self, tmp_path):
        path = write_json(tmp_path / "otp.json", {"digits": 4.9, "period": 30.7})
        with pytest.raises(ConfigError) as excinfo:
            load_settings(path, use_env=False)
        message = str(excinfo.value)
        assert "digits" in message and "period" in message

    def test_whole_float_accepted(self, tmp_path):
        path = write_json(tmp_path / "otp.json", {"digits": 4.0})
        assert load_settings(path).digits == 4

    @pytest.mark.parametrize("name,value", [
        ("OTP_DIGITS", "0"),
        ("OTP_DIGITS", "11"),
        ("OTP_DIGITS", "six"),
        ("OTP_DIGITS", "4.9"),
        ("OTP_PERIOD", "0"),
        ("OTP_WINDOW", "-1"),
        ("OTP_DISPLAY_SECONDS", "0"),
        ("OTP_DEBUG_ENDPOINTS", "maybe"),
    ])
    def test_invalid_env_values(self, monkeypatch, name, value):
        monkeypatch.setenv(name, value)
        with pytest.raises(ConfigError):
            load_settings()

    def test_invalid_override(self):
        with pytest.raises(ConfigError) as excinfo:
            load_settings(digits=0)
        assert "digits" in str(excinfo.value)

    def test_direct_construction_validates(self):
        with pytest.raises(ValueError):
            Settings(digits=0)

    def test_settings_are_frozen(self):
        with pytest.raises(ValueError):
            Settings().digits = 4


class TestSecretChecks:

    def test_lenient_secret_warns(self, caplog):
        with caplog.at_level(logging.WARNING):
            Settings(secret="JBSW-Y3DP-EHPK-3PXP")
        assert "not clean Base32" in caplog.text
        assert "'---'" in caplog.text

    def test_strict_secret_fails(self):
        with pytest.raises(ConfigError) as excinfo:
            load_settings(secret="JBSW-Y3DP-EHPK-3PXP", strict_secret=True)
        assert "Base32 alphabet" in str(excinfo.value)

    @pytest.mark.parametrize("secret", ["JBSWY3", "JBS", "JBSWY3DPEH", "jbsw y3dp ehpk 3pxp", "JBSWY3DP===="])
    def test_unpadded_lengths_are_clean(self, caplog, secret):
        with caplog.at_level(logging.WARNING):
            settings = load_settings(secret=secret, strict_secret=True)
        assert "not clean Base32" not in caplog.text
        assert settings.key

    def test_trailing_bits_reported(self, caplog):
        with caplog.at_level(logging.INFO, logger="otp_core.config"):
            Settings(secret="JBSWY3")
        assert "6 bits" in caplog.text

    def test_empty_key_warns(self, caplog):
        with caplog.at_level(logging.WARNING):
            Settings(secret="")
        assert "empty key" in caplog.text

    def test_empty_key_strict(self):
        with pytest.raises(ConfigError):
            load_settings(secret="", strict_secret=True)


class TestCompatibility:

    def test_same_settings(self):
        ensure_compatible(Settings(secret="jbsw y3dp ehpk 3pxp"), Settings(secret="JBSWY3DPEHPK3PXP", window=3))

    def test_mismatch_names_fields(self):
        with pytest.raises(ConfigError) as excinfo:
            ensure_compatible(Settings(digits=6), Settings(secret=RFC_SECRET_B32, digits=4))
        message = str(excinfo.value)
        assert "secret" in message and "digits" in message
        assert "period" not in message


def test_save_config_round_trip(tmp_path):
    path = str(tmp_path / "otp.json")
    save_config(Settings(secret=RFC_SECRET_B32, digits=4), path)
    save_config(Settings(secret=RFC_SECRET_B32, digits=6), path)

    assert load_settings(path).digits == 6
    with open(path + ".bak", encoding="utf-8") as f:
        assert json.load(f)["digits"] == 4
