"""Per-line event classification.

Each log line looks like::

    12:00:00.001 (1000)|METHOD_ENTRY|[5]|01p000000000001|MyClass.myMethod()

The classifier recognizes the small set of events the graph builder needs and
extracts the ``HH:MM:SS(.fraction) (nanoseconds)|`` prefix when present.
"""

import re
from dataclasses import dataclass
from enum import Enum

from apexlog.constants import NS_PER_MS


class LineKind(Enum):
    """Events the frame tracker and metrics attribution react to."""

    CODE_UNIT_STARTED = "CODE_UNIT_STARTED"
    CODE_UNIT_FINISHED = "CODE_UNIT_FINISHED"
    METHOD_ENTRY = "METHOD_ENTRY"
    METHOD_EXIT = "METHOD_EXIT"
    SOQL_EXECUTE_BEGIN = "SOQL_EXECUTE_BEGIN"
    SOQL_EXECUTE_END = "SOQL_EXECUTE_END"
    QUERY_MORE = "QUERY_MORE"
    DML_BEGIN = "DML_BEGIN"
    DML_END = "DML_END"
    CALLOUT_REQUEST = "CALLOUT_REQUEST"
    CALLOUT_RESPONSE = "CALLOUT_RESPONSE"
    CUMULATIVE_LIMIT_USAGE = "CUMULATIVE_LIMIT_USAGE"
    CUMULATIVE_LIMIT_USAGE_END = "CUMULATIVE_LIMIT_USAGE_END"
    CUMULATIVE_PROFILING = "CUMULATIVE_PROFILING"
    CUMULATIVE_PROFILING_END = "CUMULATIVE_PROFILING_END"
    OTHER = "OTHER"


# Events that carry a payload after the event token
_PAYLOAD_KINDS = (
    LineKind.CODE_UNIT_STARTED,
    LineKind.CODE_UNIT_FINISHED,
    LineKind.METHOD_ENTRY,
    LineKind.METHOD_EXIT,
)
_PAYLOAD_RES = {kind: re.compile(rf"\|{kind.value}\|(.+)$") for kind in _PAYLOAD_KINDS}

# Marker events, matched as whole pipe-delimited fields in any case
_MARKER_KINDS = tuple(
    kind for kind in LineKind if kind not in _PAYLOAD_KINDS and kind is not LineKind.OTHER
)

CUMULATIVE_STARTS = (LineKind.CUMULATIVE_LIMIT_USAGE, LineKind.CUMULATIVE_PROFILING)
CUMULATIVE_ENDS = (LineKind.CUMULATIVE_LIMIT_USAGE_END, LineKind.CUMULATIVE_PROFILING_END)

_PREFIX_RE = re.compile(r"^(\d{2}:\d{2}:\d{2}(?:\.\d+)?)\s*\((\d+)\)\|")
_CPU_RE = re.compile(r"Maximum CPU time:\s*(\d+)\s+out of", re.IGNORECASE)
_HEAP_RE = re.compile(r"Maximum heap size:\s*(\d+)\s+out of", re.IGNORECASE)


@dataclass(frozen=True)
class ClassifiedLine:
    """Result of classifying a single log line.

    Attributes:
        kind: Recognized event, or OTHER
        payload: Text after the event token for unit/method events
        time: Wall-clock part of the prefix
        nanos: Raw nanosecond field from the prefix
        ns: ``nanos`` as an int
    """

    kind: LineKind
    payload: str | None = None
    time: str | None = None
    nanos: str | None = None
    ns: int | None = None

    @property
    def has_prefix(self) -> bool:
        return self.nanos is not None


def classify_line(line: str) -> ClassifiedLine:
    """Classify one log line and extract its time prefix."""
    prefix = _PREFIX_RE.match(line)
    time = prefix.group(1) if prefix else None
    nanos = prefix.group(2) if prefix else None
    ns = int(nanos) if nanos is not None else None

    fields = {field.strip() for field in line.upper().split("|")}
    for kind in _MARKER_KINDS:
        if kind.value in fields:
            return ClassifiedLine(kind=kind, time=time, nanos=nanos, ns=ns)

    for kind, pattern in _PAYLOAD_RES.items():
        match = pattern.search(line)
        if match:
            return ClassifiedLine(kind=kind, payload=match.group(1), time=time, nanos=nanos, ns=ns)

    return ClassifiedLine(kind=LineKind.OTHER, time=time, nanos=nanos, ns=ns)


def read_cpu_ms(line: str) -> int | None:
    """Read ``Maximum CPU time: N out of M`` from a cumulative block line."""
    match = _CPU_RE.search(line)
    return int(match.group(1)) if match else None


def read_heap_bytes(line: str) -> int | None:
    """Read ``Maximum heap size: N out of M`` from a cumulative block line."""
    match = _HEAP_RE.search(line)
    return int(match.group(1)) if match else None


def ns_to_ms(delta_ns: int) -> int:
    """Convert a nanosecond delta to whole milliseconds, clamped at zero."""
    return (max(0, delta_ns) + NS_PER_MS // 2) // NS_PER_MS


class TimestampTracker:
    """Track the last seen nanosecond value across lines.

    Lines without a prefix and strictly decreasing values are counted for the
    diagnostics engine but never change how a line is parsed.
    """

    def __init__(self):
        self.last_ns: int | None = None
        self.missing_prefix = 0
        self.non_monotonic = 0

    def observe(self, classified: ClassifiedLine) -> None:
        if not classified.has_prefix:
            self.missing_prefix += 1
            return
        if self.last_ns is not None and classified.ns < self.last_ns:
            self.non_monotonic += 1
        self.last_ns = classified.ns
