"""Local terminal control utilities."""

import codecs
import logging
import os
import sys
from typing import Any, List, Optional, TextIO

logger = logging.getLogger(__name__)

try:
    import termios
    import tty
except ImportError:  # Windows has no termios
    termios = None  # type: ignore[assignment]
    tty = None  # type: ignore[assignment]


def supports_terminal_control(stream: Optional[TextIO] = None) -> bool:
    """Return True when raw mode can be applied to ``stream`` (stdin by default)."""
    if termios is None:
        return False
    stream = stream if stream is not None else sys.stdin
    try:
        return stream.isatty()
    except (AttributeError, ValueError):
        return False


class RawTerminal:
    """Scoped raw, no-echo mode for the local terminal.

    ``restore()`` is idempotent, so it can be wired to every exit path (child
    exit, scope exit, forced kill) without tracking who got there first.
    """

    def __init__(self, stream: Optional[TextIO] = None):
        self._stream = stream if stream is not None else sys.stdin
        self._saved: Optional[List[Any]] = None
        self._fd: Optional[int] = None

    @property
    def active(self) -> bool:
        return self._saved is not None

    def acquire(self) -> "RawTerminal":
        if self.active or not supports_terminal_control(self._stream):
            return self
        self._fd = self._stream.fileno()
        self._saved = termios.tcgetattr(self._fd)
        tty.setraw(self._fd)
        logger.debug("Local terminal switched to raw mode")
        return self

    def restore(self) -> None:
        if self._saved is None:
            return
        saved, self._saved = self._saved, None
        try:
            termios.tcsetattr(self._fd, termios.TCSADRAIN, saved)
            logger.debug("Local terminal mode restored")
        except termios.error as e:
            logger.warning(f"Failed to restore terminal mode: {e}")

    def __enter__(self) -> "RawTerminal":
        return self.acquire()

    def __exit__(self, *exc_info: Any) -> None:
        self.restore()


class StdinReader:
    """Reads local keystrokes as text.

    Decoding is incremental, so a multibyte character split across two reads
    is delivered whole once its last byte arrives.
    """

    def __init__(self, fd: int, size: int = 1024):
        self.fd = fd
        self.size = size
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def read(self) -> Optional[str]:
        """Return decoded text (possibly empty), or None at end of input."""
        raw = os.read(self.fd, self.size)
        if not raw:
            return None
        return self._decoder.decode(raw)
