"""
token_generator.py — Control loop of the hardware token (clock + display + button).

    BOOTING -> TIME_SYNCING -> READY -> DISPLAYING -> EXPIRED
                                          ^              |
                                          +--- press ----+

The loop is cooperative: the caller invokes tick() as often as it likes and
every tick returns quickly. Time sync makes at most one attempt per tick so a
dead network never stalls the button.

Hardware is injected:
- button:  callable returning True while the (already debounced) button is down
- display: object with show_status(text), show_code(code, synced), clear()
- clock:   object with now() -> TimeReading, optionally sync() -> bool
- ticker:  monotonic seconds, used for the display timeout only
"""

import enum
import logging
import time
from typing import Callable, Optional

from otp_core.clock import SystemClock
from otp_core.config import DEFAULT_DISPLAY_SECONDS, Settings
from otp_core.otp_core import DEFAULT_DIGITS, DEFAULT_TIME_STEP, counter_at, derive

logger = logging.getLogger(__name__)


class State(enum.Enum):
    BOOTING = "booting"
    TIME_SYNCING = "time_syncing"
    READY = "ready"
    DISPLAYING = "displaying"
    EXPIRED = "expired"


class TokenGenerator:
    def __init__(
        self,
        key: bytes,
        button: Callable[[], bool],
        display,
        clock=None,
        digits: int = DEFAULT_DIGITS,
        period: int = DEFAULT_TIME_STEP,
        display_seconds: float = DEFAULT_DISPLAY_SECONDS,
        ticker: Callable[[], float] = time.monotonic,
    ):
        self._key = bytes(key)
        self.button = button
        self.display = display
        self.clock = clock or SystemClock()
        self.digits = digits
        self.period = period
        self.display_seconds = display_seconds
        self._ticker = ticker

        self.state = State.BOOTING
        self.code: Optional[str] = None
        self.generated_at: Optional[float] = None
        self._was_pressed = False

    @classmethod
    def from_settings(cls, settings: Settings, button, display, clock=None, **kwargs) -> "TokenGenerator":
        return cls(settings.key, button, display, clock,
                   digits=settings.digits, period=settings.period,
                   display_seconds=settings.display_seconds, **kwargs)

    def _set_state(self, state: State) -> None:
        if state is not self.state:
            logger.debug("Token state %s -> %s", self.state.name, state.name)
            self.state = state

    def _pressed_edge(self) -> bool:
        pressed = bool(self.button())
        edge = pressed and not self._was_pressed
        self._was_pressed = pressed
        return edge

    def generate(self) -> str:
        """Read the clock, derive the code for the current step and show it."""
        reading = self.clock.now()
        counter = counter_at(reading.unix, self.period)
        self.code = derive(self._key, counter, self.digits)
        self.generated_at = self._ticker()
        if not reading.synced:
            logger.warning("Code generated from an unsynced clock; the server will likely reject it")
        self.display.show_code(self.code, reading.synced)
        self._set_state(State.DISPLAYING)
        return self.code

    def tick(self) -> State:
        """Run one non-blocking iteration of the loop and return the new state."""
        if self.state is State.BOOTING:
            self.display.show_status("Booting...")
            self._set_state(State.TIME_SYNCING)

        elif self.state is State.TIME_SYNCING:
            self._tick_sync()

        elif self.state is State.DISPLAYING:
            if self._pressed_edge():
                self.generate()
            elif self._ticker() - self.generated_at >= self.display_seconds:
                self.code = None
                self.display.clear()
                self._set_state(State.EXPIRED)

        elif self._pressed_edge():
            self.generate()

        return self.state

    def _tick_sync(self) -> None:
        sync = getattr(self.clock, "sync", None)
        if sync is None:
            self._enter_ready()
            return

        self.display.show_status("Syncing time...")
        if sync() or getattr(self.clock, "exhausted", True):
            self._enter_ready()

    def _enter_ready(self) -> None:
        synced = self.clock.now().synced
        self.display.show_status("Ready" if synced else "Ready (clock not synced)")
        # A button held down through boot must be released before it counts.
        self._was_pressed = bool(self.button())
        self._set_state(State.READY)

    def run(self, poll_interval: float = 0.05, should_stop: Callable[[], bool] = lambda: False) -> None:
        while not should_stop():
            self.tick()
            time.sleep(poll_interval)
