"""Constants used by the apexlog parser.

This module defines default values, the log category names the diagnostics
engine checks, and the markers used when naming code units.
"""

# =============================================================================
# Defaults
# =============================================================================

DEFAULT_HEAD_LINES = 8
"""Number of leading lines scanned for the default log level header."""

DEFAULT_MAX_LINES = None
"""Default line cap. ``None`` scans the whole log."""

NS_PER_MS = 1_000_000
"""Nanoseconds per millisecond, for converting the ``(nanos)`` prefix."""

# =============================================================================
# Log Categories
# =============================================================================

APEX_CODE = "APEX_CODE"
"""Execution tracing category. Method entries need FINEST."""

DB = "DB"
"""Database category. SOQL/DML markers need INFO."""

CALLOUT = "CALLOUT"
"""Outbound call category. Callout markers need INFO."""

SYSTEM_NAMESPACE = "System"
"""Built-in runtime namespace. Method entries on it are treated as noise."""

# =============================================================================
# Node Labels
# =============================================================================

TRIGGER_PATH_MARKER = "__sfdc_trigger/"
"""Internal path segment logged after the human trigger label."""

FALLBACK_UNIT_NAME = "CodeUnit"
"""Name used when a code unit carries no usable label."""

FALLBACK_FLOW_NAME = "Flow"
"""Name used for a ``Flow:`` descriptor with nothing after the marker."""
