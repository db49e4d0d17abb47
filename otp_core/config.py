"""
config.py — Deployment settings shared by the server, the CLI and the device.

Every party (token device, validation server, CLI) must agree on the secret,
digits and period; otherwise validation fails 100% of the time with no hint
why. Settings are a pydantic-settings model loaded in layers, lowest first:

    defaults  ->  JSON file (OTP_CONFIG_FILE)  ->  OTP_* environment variables  ->  explicit overrides

The JSON file uses the same keys the CLI writes with `otp-cli secret --save`:

    {"secret": "JBSWY3DPEHPK3PXP", "digits": 6, "period": 30, "window": 1}
"""

import json
import logging
import os
import shutil
from typing import Any, Dict, Optional, Tuple, Type

from pydantic import Field, ValidationError, model_validator
from pydantic.fields import FieldInfo
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from .exceptions import ConfigError
from .otp_core import (
    DEFAULT_DIGITS,
    DEFAULT_TIME_STEP,
    DEFAULT_WINDOW,
    MAX_DIGITS,
    MIN_DIGITS,
    decode_secret,
    invalid_base32_chars,
    trailing_bits,
)

logger = logging.getLogger(__name__)

DEFAULT_SECRET = "JBSWY3DPEHPK3PXP"
DEFAULT_DISPLAY_SECONDS = 30
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# Settings that must be identical on every generating and validating party.
SHARED_FIELDS = ("secret", "digits", "period")


def load_config_file(path: str) -> Dict[str, Any]:
    """
    Read a JSON settings file and return only the known keys.

    Raises:
        FileNotFoundError: if the file does not exist
        ConfigError: if the file is not a JSON object
    """
    with open(path, "r", encoding="utf-8") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(f"{path}: invalid JSON ({e})") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: expected a JSON object")

    known = set(Settings.model_fields) - {"config_file"}
    unknown = set(data) - known
    if unknown:
        logger.warning("%s: ignoring unknown settings %s", path, ", ".join(sorted(unknown)))
    return {k: v for k, v in data.items() if k in known}


class ConfigFileSource(PydanticBaseSettingsSource):
    """
    Settings source for the JSON file.

    The path is taken from the `config_file` init argument, else from the
    environment (OTP_CONFIG_FILE) when an env source is given.
    """

    def __init__(self, settings_cls: Type[BaseSettings], init_settings, env_settings=None):
        super().__init__(settings_cls)
        self._init_settings = init_settings
        self._env_settings = env_settings

    def get_field_value(self, field: FieldInfo, field_name: str) -> Tuple[Any, str, bool]:
        # Values are produced all at once by __call__.
        return None, field_name, False

    def __call__(self) -> Dict[str, Any]:
        path = self._init_settings.init_kwargs.get("config_file")
        if not path and self._env_settings is not None:
            path = self._env_settings().get("config_file")
        if not path:
            return {}
        return load_config_file(path)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="OTP_",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    secret: str = DEFAULT_SECRET
    digits: int = Field(DEFAULT_DIGITS, ge=MIN_DIGITS, le=MAX_DIGITS)
    period: int = Field(DEFAULT_TIME_STEP, gt=0)            # seconds
    window: int = Field(DEFAULT_WINDOW, ge=0)
    display_seconds: int = Field(DEFAULT_DISPLAY_SECONDS, gt=0)
    debug_endpoints: bool = False
    strict_secret: bool = False
    log_level: str = "INFO"
    issuer: str = "otp-tool"
    account: str = "user@example"
    config_file: Optional[str] = Field(None, exclude=True)

    @classmethod
    def settings_customise_sources(cls, settings_cls, init_settings, env_settings,
                                   dotenv_settings, file_secret_settings):
        # Highest priority first.
        return init_settings, env_settings, ConfigFileSource(settings_cls, init_settings, env_settings)

    @model_validator(mode="after")
    def check_secret(self) -> "Settings":
        """
        Characters outside the Base32 alphabet are ignored by the decoder, so a
        typo silently gives another key: warn, or fail with strict_secret.
        """
        stray = invalid_base32_chars(self.secret)
        if stray:
            if self.strict_secret:
                raise ConfigError(f"secret contains characters outside the Base32 alphabet: {stray!r}")
            logger.warning("Configured secret is not clean Base32; invalid characters are ignored: %r", stray)

        leftover = trailing_bits(self.secret)
        if leftover:
            logger.info("Configured secret ends with %d bits that do not fill a byte; they are ignored", leftover)

        if not self.key:
            if self.strict_secret:
                raise ConfigError("secret decodes to an empty key")
            logger.warning("Configured secret decodes to an empty key; codes are not secure")
        return self

    @property
    def key(self) -> bytes:
        """Raw key bytes (lenient decode, same as every other party does)."""
        return decode_secret(self.secret)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump()


class _FileOnlySettings(Settings):
    """Settings of another party: its file only, never this host's environment."""

    @classmethod
    def settings_customise_sources(cls, settings_cls, init_settings, env_settings,
                                   dotenv_settings, file_secret_settings):
        return init_settings, ConfigFileSource(settings_cls, init_settings)


# --- Loading ---------------------------------------------------------------
def _describe(error: ValidationError) -> str:
    parts = []
    for err in error.errors():
        where = ".".join(str(p) for p in err["loc"]) or "settings"
        parts.append(f"{where}: {err['msg']}")
    return "invalid settings: " + "; ".join(parts)


def load_settings(path: Optional[str] = None, use_env: bool = True, **overrides: Any) -> Settings:
    """
    Build validated Settings from defaults, a JSON file, env vars and overrides.

    Arguments:
        path: JSON file; defaults to $OTP_CONFIG_FILE when use_env is set
        use_env: read OTP_* environment variables (off for a peer's file)
        overrides: explicit values, applied last (None values are ignored)

    Raises:
        ConfigError: on any invalid value
        FileNotFoundError: if the settings file does not exist
    """
    values = {k: v for k, v in overrides.items() if v is not None}
    if path:
        values["config_file"] = path
    cls = Settings if use_env else _FileOnlySettings
    try:
        return cls(**values)
    except ValidationError as e:
        raise ConfigError(_describe(e)) from e


def save_config(settings: Settings, path: str) -> None:
    """
    Write settings as JSON. An existing file is kept as `path + ".bak"`.

    The file holds the secret: keep it chmod 600 and out of version control.
    """
    if os.path.exists(path):
        shutil.copy2(path, path + ".bak")
    with open(path, "w", encoding="utf-8") as f:
        json.dump(settings.to_dict(), f, indent=2)
        f.write("\n")


def ensure_compatible(local: Settings, peer: Settings) -> None:
    """
    Check that two parties (e.g. server and token device) can interoperate.

    Secrets are compared after decoding, so "jbsw y3dp" and "JBSWY3DP" match.

    Raises:
        ConfigError: naming every mismatching field
    """
    mismatches = []
    for name in SHARED_FIELDS:
        if name == "secret":
            same = local.key == peer.key
        else:
            same = getattr(local, name) == getattr(peer, name)
        if not same:
            mismatches.append(name)
    if mismatches:
        raise ConfigError("settings mismatch between parties: " + ", ".join(mismatches))


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
