"""Logging setup for the command line entry point."""

import logging
import sys
from typing import Optional

from cli_agent_runner.utils.env import is_debug_enabled

LOG_FORMAT = "[%(levelname)s] %(name)s: %(message)s"

_handler: Optional[logging.Handler] = None


def setup_logging(debug: bool = False) -> None:
    """Send log records to stderr; DEBUG when requested, WARNING otherwise.

    Calling it again replaces the previous handler, so the current
    ``sys.stderr`` is always the target.
    """
    global _handler

    root = logging.getLogger()
    if _handler is not None:
        root.removeHandler(_handler)

    _handler = logging.StreamHandler(sys.stderr)
    _handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(_handler)
    root.setLevel(logging.DEBUG if debug or is_debug_enabled() else logging.WARNING)
