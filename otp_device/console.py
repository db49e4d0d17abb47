"""
console.py — Terminal stand-ins for the token's display and button.
"""

import sys
import threading


class ConsoleDisplay:
    def __init__(self, stream=None):
        self.stream = stream or sys.stdout

    def _write(self, text: str) -> None:
        print(text, file=self.stream, flush=True)

    def show_status(self, text: str) -> None:
        self._write(f"[ {text} ]")

    def show_code(self, code: str, synced: bool) -> None:
        suffix = "" if synced else "  (!) clock not synced"
        self._write(f">>> {code} <<<{suffix}")

    def clear(self) -> None:
        self._write("[ ---- ]")


class EnterButton:
    """
    Button pressed by hitting Enter.

    A daemon thread blocks on stdin and only sets an event; the control loop
    polls it, so the loop itself never blocks. Each Enter reads as one press
    for exactly one poll.
    """

    def __init__(self, stream=None):
        self.stream = stream or sys.stdin
        self._event = threading.Event()
        self.closed = False
        self._thread = threading.Thread(target=self._reader, daemon=True)
        self._thread.start()

    def _reader(self) -> None:
        for _ in self.stream:
            self._event.set()
        self.closed = True

    def __call__(self) -> bool:
        if self._event.is_set():
            self._event.clear()
            return True
        return False
