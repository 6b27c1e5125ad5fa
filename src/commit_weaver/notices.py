"""
Progress notices emitted by the engine.

Engine components never print. They report skips and fallbacks through
a ``notify(level, message)`` callable supplied by the caller; the CLI
renders them on the console, everything else logs them.
"""

from __future__ import annotations

import logging
from typing import Callable


Notifier = Callable[[int, str], None]


def logging_notifier(log: logging.Logger) -> Notifier:
    """Return a notifier that forwards every notice to ``log``."""

    def notify(level: int, message: str) -> None:
        log.log(level, message)

    return notify
