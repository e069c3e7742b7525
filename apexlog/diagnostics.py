"""Advisory diagnostics for a parsed log.

Issues are collected while the parser runs and flushed once at the end. They
describe how trustworthy the graph is; they never change its shape and never
carry ``error`` severity, since the parser has no failure mode for malformed
input.
"""

from dataclasses import dataclass, field

from apexlog.constants import APEX_CODE, CALLOUT, DB
from apexlog.levels import LogLevel, LogLevels, level_rank
from apexlog.schemas import LogIssue


@dataclass
class EventCounters:
    """Event tallies accumulated during the pass."""

    code_unit_started: int = 0
    method_entry: int = 0
    method_exit: int = 0
    fallback_method_exit: int = 0


@dataclass
class IssueCollector:
    """Accumulate-then-flush builder for :class:`LogIssue` values."""

    counters: EventCounters = field(default_factory=EventCounters)
    _issues: list[LogIssue] = field(default_factory=list)

    def add(self, severity: str, code: str, message: str, details: str | None = None) -> None:
        self._issues.append(LogIssue(severity=severity, code=code, message=message, details=details))

    def check_levels(self, levels: LogLevels | None) -> None:
        """Static checks against the declared header levels."""
        if not levels:
            self.add(
                "info",
                "levels.missing",
                "Default log levels not detected in header.",
                "Some features may be incomplete. Ensure the first lines include "
                "categories (e.g., APEX_CODE,FINEST;DB,INFO;CALLOUT,INFO;).",
            )
            return

        if level_rank(levels.get(APEX_CODE)) < LogLevel.FINEST.rank:
            self.add(
                "warning",
                "levels.apex_code.low",
                "APEX_CODE level below FINEST.",
                "Method entries may be missing. Set APEX_CODE to FINEST for best results.",
            )
        if level_rank(levels.get(DB)) < LogLevel.INFO.rank:
            self.add(
                "warning",
                "levels.db.low",
                "DB level below INFO.",
                "SOQL/DML counters and timings may be incomplete. Set DB to INFO or higher.",
            )
        if level_rank(levels.get(CALLOUT)) < LogLevel.INFO.rank:
            self.add(
                "warning",
                "levels.callout.low",
                "CALLOUT level below INFO.",
                "Callout counters and timings may be incomplete. Set CALLOUT to INFO or higher.",
            )

    def flush(
        self,
        missing_prefix: int,
        non_monotonic: int,
        open_units: int,
        open_methods: int,
        open_timers: dict[str, int],
    ) -> list[LogIssue]:
        """Append the dynamic checks and return every collected issue.

        Args:
            missing_prefix: Lines scanned without a time prefix
            non_monotonic: Timestamps lower than the one before them
            open_units: Units left on the unit stack
            open_methods: Classes left on the method stack
            open_timers: Unmatched begin markers keyed by kind
                (``soql``, ``dml``, ``callout``)

        Returns:
            All issues in emission order
        """
        counters = self.counters
        if missing_prefix > 0:
            self.add(
                "warning",
                "timestamps.missing",
                f"{missing_prefix} line(s) without time prefix.",
                "Timeline metrics rely on the (nanos) prefix. Some durations may be inaccurate.",
            )
        if non_monotonic > 0:
            self.add(
                "info",
                "timestamps.non_monotonic",
                f"Detected {non_monotonic} non-monotonic timestamp(s).",
                "Out-of-order timestamps can occur; timeline durations are clamped to non-negative.",
            )
        if counters.code_unit_started == 0:
            self.add(
                "warning",
                "events.code_unit.missing",
                "No CODE_UNIT_* events found.",
                "Diagram may be empty. Ensure APEX_CODE is set to FINEST.",
            )
        if counters.method_entry == 0:
            self.add(
                "info",
                "events.methods.missing",
                "No METHOD_ENTRY events found.",
                "Method timeline will be empty. Set APEX_CODE to FINEST.",
            )
        if counters.method_entry != counters.method_exit:
            self.add(
                "info",
                "events.methods.unbalanced",
                f"METHOD_ENTRY ({counters.method_entry}) != METHOD_EXIT ({counters.method_exit}).",
                "This can happen with system frames. Parser compensates, but durations may be rough.",
            )
        if open_units > 0:
            self.add(
                "warning",
                "frames.unit.unclosed",
                f"{open_units} code unit(s) left open at end of log.",
                "Unclosed units reduce accuracy of durations and nesting.",
            )
        if open_methods > 0:
            self.add("info", "frames.method.unclosed", f"{open_methods} method frame(s) left open at end of log.")
        if counters.fallback_method_exit > 0:
            self.add(
                "info",
                "methods.exit.fallback",
                f"Closed {counters.fallback_method_exit} method(s) by fallback "
                "due to ambiguous METHOD_EXIT entries.",
            )

        unmatched = {
            "soql": "SOQL_EXECUTE_BEGIN without SOQL_EXECUTE_END",
            "dml": "DML_BEGIN without DML_END",
            "callout": "CALLOUT_REQUEST without CALLOUT_RESPONSE",
        }
        for kind, description in unmatched.items():
            pending = open_timers.get(kind, 0)
            if pending > 0:
                self.add("info", f"{kind}.open", f"{pending} {description}.")

        return list(self._issues)
