"""Default log level header reader.

Apex logs open with the API version followed by the trace categories that were
enabled for the transaction, e.g.::

    64.0 APEX_CODE,FINEST;APEX_PROFILING,INFO;DB,INFO;SYSTEM,DEBUG

The map is attached to every graph node and drives the level diagnostics.
"""

import re
from enum import Enum

from apexlog.constants import APEX_CODE


class LogLevel(str, Enum):
    """Verbosity scale, ordered from quietest to loudest."""

    NONE = "NONE"
    ERROR = "ERROR"
    WARN = "WARN"
    INFO = "INFO"
    DEBUG = "DEBUG"
    FINE = "FINE"
    FINER = "FINER"
    FINEST = "FINEST"

    @property
    def rank(self) -> int:
        return _RANKS[self]


_RANKS = {level: rank for rank, level in enumerate(LogLevel)}

LogLevels = dict[str, LogLevel]

_HEADER_RE = re.compile(rf"\b{APEX_CODE}\b.*[,;]")
_PAIR_RE = re.compile(r"([A-Z_]+)\s*,\s*([A-Z]+)")


def normalize_level(level: str | None) -> LogLevel | None:
    """Match a raw level token against the scale, ignoring case."""
    token = (level or "").upper().strip()
    try:
        return LogLevel(token)
    except ValueError:
        return None


def level_rank(level: str | None) -> int:
    """Rank of a level, or -1 when absent or unrecognized."""
    normalized = normalize_level(level)
    return normalized.rank if normalized is not None else -1


def parse_default_log_levels(head_lines: list[str]) -> LogLevels | None:
    """Parse the category/level map from the first lines of a log.

    Args:
        head_lines: The leading lines of the log (usually the first 8)

    Returns:
        Mapping of category to level, or None when no header line is found
        or it yields no valid pairs.
    """
    header = next((line for line in head_lines if _HEADER_RE.search(line)), None)
    if header is None:
        return None

    # Skip the leading API version so "64.0" is never read as a category
    start = header.find("APEX_")
    payload = header[start:] if start >= 0 else header

    levels: LogLevels = {}
    for part in payload.split(";"):
        match = _PAIR_RE.search(part)
        if not match:
            continue
        level = normalize_level(match.group(2))
        if level is not None:
            levels[match.group(1)] = level
    return levels or None
