"""Flat log entries for a line-by-line log viewer.

Unlike the graph parser this keeps every non-empty line, split into its
timestamp, event type, optional source line number and message, and tags it
with a coarse category used for filtering and highlighting.
"""

import re
from dataclasses import dataclass
from typing import Literal

LogCategory = Literal["debug", "soql", "dml", "code", "limit", "system", "error", "other"]

ERROR_EVENT_TOKENS = frozenset({"EXCEPTION", "ERROR", "FATAL", "FAIL", "FAILED", "FAILURE", "FAULT"})

_TOKEN_SPLIT_RE = re.compile(r"[^A-Z]+")
_TIMESTAMP_RE = re.compile(r"^(\d{1,2}:\d{2}:\d{2}\.\d+)(?:\s+\((\d+)\))?")
_LINE_NUMBER_RE = re.compile(r"^\[(\d+)\]$")
_QUERY_RE = re.compile(r"\b(select|find)\b", re.IGNORECASE)
_DML_RE = re.compile(r"^(insert|update|delete|merge|upsert)", re.IGNORECASE)

# SOQL tokens longer than this are treated as the query text
_LONG_SOQL_TOKEN = 60


@dataclass
class ParsedLogEntry:
    id: int
    timestamp: str
    type: str
    message: str
    raw: str
    category: LogCategory
    elapsed: str | None = None
    line_number: int | None = None
    details: str | None = None


def tokenize_log_event_type(event_type: str) -> list[str]:
    return [token for token in _TOKEN_SPLIT_RE.split(event_type.upper()) if token]


def is_error_event_type(event_type: str) -> bool:
    """True when any alphabetic token of the event type signals a failure."""
    return any(token in ERROR_EVENT_TOKENS for token in tokenize_log_event_type(event_type))


def extract_log_event_type(line: str) -> str | None:
    """The second pipe-delimited field of a log line, if any."""
    if "|" not in line:
        return None
    event_type = line.split("|")[1].strip()
    return event_type or None


def line_has_error_signal(line: str) -> bool:
    event_type = extract_log_event_type(line)
    return event_type is not None and is_error_event_type(event_type)


def categorize(event_type: str) -> LogCategory:
    upper = event_type.upper()
    if is_error_event_type(upper):
        return "error"
    if upper == "USER_DEBUG":
        return "debug"
    if upper.startswith("SOQL"):
        return "soql"
    if upper.startswith("DML"):
        return "dml"
    if upper.startswith("CODE_UNIT"):
        return "code"
    if upper.startswith("LIMIT_USAGE"):
        return "limit"
    if "METHOD" in upper or upper.endswith("ENTRY") or upper.endswith("EXIT"):
        return "system"
    return "other"


def _split_details(category: LogCategory, tokens: list[str]) -> tuple[list[str], str | None]:
    """Separate a trailing detail token (unit name, query text, DML op)."""
    if len(tokens) < 2:
        return tokens, None
    candidate = tokens[-1]
    if category == "code":
        return tokens[:-1], candidate
    if category == "soql" and (_QUERY_RE.search(candidate) or len(candidate) > _LONG_SOQL_TOKEN):
        return tokens[:-1], candidate
    if category == "dml" and _DML_RE.match(candidate.strip()):
        return tokens[:-1], candidate
    return tokens, None


def parse_log_line(raw: str, index: int) -> ParsedLogEntry | None:
    """Parse one line into an entry. Blank lines yield None."""
    line = raw.rstrip()
    if not line:
        return None
    if "|" not in line:
        return ParsedLogEntry(id=index, timestamp="", type="INFO", message=line, raw=raw, category="other")

    parts = line.split("|")
    prefix = parts[0]
    stamp = _TIMESTAMP_RE.match(prefix)
    timestamp = stamp.group(1) if stamp else prefix.strip()
    elapsed = stamp.group(2) if stamp else None
    event_type = parts[1].strip() or "UNKNOWN"
    category = categorize(event_type)

    tokens = [part.strip() for part in parts[2:] if part.strip()]
    line_number = None
    if tokens:
        number = _LINE_NUMBER_RE.match(tokens[0])
        if number:
            line_number = int(number.group(1))
            tokens = tokens[1:]

    message_tokens, details = _split_details(category, tokens)
    message = " | ".join(message_tokens)
    if not message and details:
        message, details = details, None

    return ParsedLogEntry(
        id=index,
        timestamp=timestamp,
        elapsed=elapsed,
        type=event_type,
        line_number=line_number,
        message=message,
        details=details,
        raw=raw,
        category=category,
    )


def parse_log_lines(lines: list[str]) -> list[ParsedLogEntry]:
    """Parse every line, keeping the original line index as the entry id."""
    entries = []
    for index, raw in enumerate(lines):
        entry = parse_log_line(raw, index)
        if entry is not None:
            entries.append(entry)
    return entries
