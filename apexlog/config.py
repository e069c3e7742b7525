"""Parser settings with environment variable fallbacks."""

import logging
import os
from dataclasses import dataclass

from apexlog.constants import DEFAULT_HEAD_LINES, DEFAULT_MAX_LINES
from apexlog.env import APEXLOG_DEBUG, APEXLOG_HEAD_LINES, APEXLOG_MAX_LINES

_FALSY = ("false", "0", "no", "off")


@dataclass
class ParserSettings:
    """Runtime settings for a single parse.

    Attributes:
        max_lines: Cap on scanned lines, or None for the whole log.
            Values below 1 are clamped to 1 by the parser.
        head_lines: Leading lines searched for the level header.
        debug: Whether the host asked for debug logging.
    """

    max_lines: int | None = DEFAULT_MAX_LINES
    head_lines: int = DEFAULT_HEAD_LINES
    debug: bool = False

    def __post_init__(self):
        if self.head_lines < 1:
            raise ValueError(f"head_lines must be positive, got {self.head_lines}")

    @classmethod
    def from_env(cls) -> "ParserSettings":
        """Create settings from environment variables."""
        env_max = os.environ.get(APEXLOG_MAX_LINES)
        env_head = os.environ.get(APEXLOG_HEAD_LINES)
        env_debug = os.environ.get(APEXLOG_DEBUG, "").lower()
        return cls(
            max_lines=int(env_max) if env_max else DEFAULT_MAX_LINES,
            head_lines=int(env_head) if env_head else DEFAULT_HEAD_LINES,
            debug=bool(env_debug) and env_debug not in _FALSY,
        )

    def configure_logging(self) -> None:
        """Raise the package logger to DEBUG when debug mode is on."""
        if self.debug:
            logging.getLogger("apexlog").setLevel(logging.DEBUG)
