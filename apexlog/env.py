"""Environment variable definitions for apexlog hosts.

The parser itself never reads the environment. Hosts that want env-driven
configuration build a :class:`apexlog.config.ParserSettings` with
``ParserSettings.from_env()`` and pass it in explicitly.

Usage:
    from apexlog import ParserSettings, parse_apex_log_to_graph

    graph = parse_apex_log_to_graph(text, settings=ParserSettings.from_env())
"""

# =============================================================================
# Parsing Limits
# =============================================================================

APEXLOG_MAX_LINES = "APEXLOG_MAX_LINES"
"""
.. envvar:: APEXLOG_MAX_LINES

Maximum number of log lines scanned per parse. Lines past the cap are not
read and every open frame is closed at the cap.

**Default:** unset (scan everything)
"""

APEXLOG_HEAD_LINES = "APEXLOG_HEAD_LINES"
"""
.. envvar:: APEXLOG_HEAD_LINES

Number of leading lines searched for the default log level header.

**Default:** ``8``
"""

# =============================================================================
# Feature Flags
# =============================================================================

APEXLOG_DEBUG = "APEXLOG_DEBUG"
"""
.. envvar:: APEXLOG_DEBUG

Enable debug logging of per-parse summaries.
Accepts: "true", "false", "1", "0", "yes", "no", "on", "off" (case-insensitive)

**Default:** ``false``
"""
