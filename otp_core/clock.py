"""
clock.py — "Current time" providers for code derivation and validation.

Every provider returns a TimeReading(unix, synced). `synced` says whether the
time can be trusted (system clock, successful sync) or is a fallback guess;
a code derived from a fallback time will usually fail validation on a
correctly synced server.
"""

import logging
import time
from typing import Callable, NamedTuple

from .exceptions import ClockError

logger = logging.getLogger(__name__)

# 2024-01-01 00:00:00 UTC, used when a device never managed to sync.
DEFAULT_FALLBACK_EPOCH = 1704067200
DEFAULT_MAX_SYNC_ATTEMPTS = 3


class TimeReading(NamedTuple):
    unix: float
    synced: bool


class SystemClock:
    """Host wall clock; assumed to be NTP-disciplined by the OS."""

    def now(self) -> TimeReading:
        return TimeReading(time.time(), True)


class FixedClock:
    """Clock frozen at a given time; tests move it with advance()/set()."""

    def __init__(self, unix: float, synced: bool = True):
        self.unix = unix
        self.synced = synced

    def now(self) -> TimeReading:
        return TimeReading(self.unix, self.synced)

    def set(self, unix: float) -> None:
        self.unix = unix

    def advance(self, seconds: float) -> None:
        self.unix += seconds


class FallbackClock:
    """
    Clock fed by an external time source (NTP client, RTC read, ...).

    Each sync() makes exactly one attempt: the source is called once and
    either gives a Unix time or raises. After `max_attempts` failures the
    clock stops asking and keeps running from `fallback_epoch`, reporting
    synced=False. Between syncs time is extrapolated with a monotonic ticker,
    so later wall-clock jumps on the host do not leak in.

    Arguments:
        source: callable returning Unix seconds; raises ClockError/OSError on failure
        fallback_epoch: Unix time assumed when no sync ever succeeded
        max_attempts: number of failed sync() calls before giving up
        ticker: monotonic seconds, time.monotonic by default
    """

    def __init__(
        self,
        source: Callable[[], float],
        fallback_epoch: float = DEFAULT_FALLBACK_EPOCH,
        max_attempts: int = DEFAULT_MAX_SYNC_ATTEMPTS,
        ticker: Callable[[], float] = time.monotonic,
    ):
        self._source = source
        self._ticker = ticker
        self.max_attempts = max_attempts
        self.attempts = 0
        self.synced = False
        self._base_unix = float(fallback_epoch)
        self._base_tick = ticker()

    @property
    def exhausted(self) -> bool:
        """True once all sync attempts failed and the fallback time is final."""
        return not self.synced and self.attempts >= self.max_attempts

    def sync(self) -> bool:
        """One bounded sync attempt. Returns True if the clock is synced afterwards."""
        if self.synced:
            return True
        if self.exhausted:
            return False

        self.attempts += 1
        try:
            unix = float(self._source())
        except (ClockError, OSError) as e:
            logger.warning("Time sync attempt %d/%d failed: %s",
                           self.attempts, self.max_attempts, e)
            if self.exhausted:
                logger.warning("Giving up on time sync; using fallback time %s",
                               time.strftime("%Y-%m-%d %H:%M:%S", time.gmtime(self.now().unix)))
            return False

        self._base_unix = unix
        self._base_tick = self._ticker()
        self.synced = True
        logger.info("Clock synced after %d attempt(s): unix=%d", self.attempts, unix)
        return True

    def now(self) -> TimeReading:
        elapsed = self._ticker() - self._base_tick
        return TimeReading(self._base_unix + elapsed, self.synced)
