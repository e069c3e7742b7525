"""Apex debug log to call graph.

This is not a full log parser. It focuses on CODE_UNIT_* and METHOD_* events
to infer relationships between triggers, classes and flows, and on the
SOQL/DML/callout markers and cumulative usage blocks to profile the frames
those events open. A single forward pass drives four cooperating stacks:

- the unit stack (execution units)
- the method stack (class names only, cleared whenever a unit finishes)
- the global nested-frame stack (shared depth for units and methods)
- per-actor lane stacks (flow spans)

Malformed or truncated logs never raise. Ambiguities are resolved by the
heuristics below and reported as :class:`~apexlog.schemas.LogIssue` values.
"""

import logging
import re
from dataclasses import dataclass

from apexlog.config import ParserSettings
from apexlog.constants import (
    FALLBACK_FLOW_NAME,
    FALLBACK_UNIT_NAME,
    SYSTEM_NAMESPACE,
    TRIGGER_PATH_MARKER,
)
from apexlog.diagnostics import IssueCollector
from apexlog.frames import FrameArena
from apexlog.graph import inc_edge, node_id, upsert_node
from apexlog.levels import LogLevels, parse_default_log_levels
from apexlog.lines import (
    CUMULATIVE_ENDS,
    CUMULATIVE_STARTS,
    ClassifiedLine,
    LineKind,
    TimestampTracker,
    classify_line,
    ns_to_ms,
    read_cpu_ms,
    read_heap_bytes,
)
from apexlog.schemas import GraphEdge, GraphNode, LogGraph, NodeKind, SequenceEvent

logger = logging.getLogger(__name__)

_LINE_SPLIT_RE = re.compile(r"\r?\n")
_FLOW_RE = re.compile(r"^Flow:", re.IGNORECASE)
_CLASS_UNIT_RE = re.compile(r"^Class\.(.+?)\.")
_CLASS_FINISH_RE = re.compile(r"^Class\.(.+?)(?:\.|$)")
_TRIGGER_RE = re.compile(r"\btrigger event\b", re.IGNORECASE)
_SYSTEM_CLASS_RE = re.compile(rf"^{SYSTEM_NAMESPACE}(\.|$)")
_SYSTEMISH_RE = re.compile(rf"\b{SYSTEM_NAMESPACE}\b|[()<>]", re.IGNORECASE)

# Begin markers count one operation; only the explicit BEGIN/REQUEST ones start a timer
_COUNTED = {
    LineKind.SOQL_EXECUTE_BEGIN: "soql",
    LineKind.QUERY_MORE: "soql",
    LineKind.DML_BEGIN: "dml",
    LineKind.CALLOUT_REQUEST: "callout",
}
_TIMED_BEGINS = (LineKind.SOQL_EXECUTE_BEGIN, LineKind.DML_BEGIN, LineKind.CALLOUT_REQUEST)
_TIMED_ENDS = {
    LineKind.SOQL_EXECUTE_END: "soql",
    LineKind.DML_END: "dml",
    LineKind.CALLOUT_RESPONSE: "callout",
}


@dataclass(frozen=True)
class Unit:
    """An execution unit on the unit stack."""

    kind: NodeKind
    name: str
    id: str


# =============================================================================
# Label helpers
# =============================================================================


def resolve_unit_label(payload: str) -> str:
    """Pick the human label from a CODE_UNIT_* payload.

    The right-most segment wins unless it is an internal trigger path, in which
    case the segment before it is used.
    """
    parts = [part.strip() for part in payload.split("|") if part.strip()]
    last = parts[-1] if parts else ""
    last_but_one = parts[-2] if len(parts) >= 2 else ""
    if TRIGGER_PATH_MARKER in last and last_but_one:
        return last_but_one
    return last


def describe_unit(label: str) -> tuple[NodeKind, str]:
    """Map a unit label to its node kind and name.

    Examples:
        "Flow:Account_Update"                                -> Flow, Account_Update
        "Class.MyClass.run"                                  -> Class, MyClass
        "MyTrigger on Account trigger event BeforeInsert"    -> Trigger, MyTrigger
    """
    if _FLOW_RE.match(label):
        return "Flow", _FLOW_RE.sub("", label).strip() or FALLBACK_FLOW_NAME
    if label.startswith("Class."):
        match = _CLASS_UNIT_RE.match(label)
        return "Class", match.group(1) if match else label[len("Class."):]
    if _TRIGGER_RE.search(label):
        return "Trigger", label.split(" on ")[0].strip()
    return "Other", label or FALLBACK_UNIT_NAME


def normalize_finished_unit_name(label: str) -> str:
    """Reduce a CODE_UNIT_FINISHED label to the name used when the unit started."""
    if not label:
        return label
    if _FLOW_RE.match(label):
        return _FLOW_RE.sub("", label).strip()
    if label.startswith("Class."):
        match = _CLASS_FINISH_RE.match(label)
        return match.group(1) if match else label[len("Class."):]
    if _TRIGGER_RE.search(label):
        return label.split(" on ")[0].strip()
    return label


def class_name_from_signature(signature: str) -> str | None:
    """Owner class of a method signature, or None for System or unqualified calls.

    Examples:
        "MyClass.myMethod(String)"               -> "MyClass"
        "ns__MyClass.handler(Map<Id,SObject>)"   -> "ns__MyClass"
        "System.debug(ANY)"                      -> None
    """
    no_args = signature.split("(")[0].strip()
    parts = no_args.split(".")
    if len(parts) < 2:
        return None
    method = parts.pop()
    cls = ".".join(parts)
    if not cls or not method:
        return None
    if _SYSTEM_CLASS_RE.match(cls):
        return None
    return cls


# =============================================================================
# METHOD_EXIT attribution
# =============================================================================


@dataclass(frozen=True)
class MatchedSignature:
    """Exit payload carried a full method signature."""

    class_name: str


@dataclass(frozen=True)
class BareIdentifier:
    """Exit payload logged only a class name."""

    class_name: str


@dataclass(frozen=True)
class Unrecoverable:
    """No class could be derived from the exit payload."""

    payload: str

    @property
    def system_like(self) -> bool:
        """Looks like a built-in or generic signature we never tracked."""
        return bool(_SYSTEMISH_RE.search(self.payload))


ExitDecision = MatchedSignature | BareIdentifier | Unrecoverable


def decide_method_exit(payload: str) -> ExitDecision:
    cls = class_name_from_signature(payload)
    if cls is not None:
        return MatchedSignature(cls)
    simple = payload.strip()
    if simple and "(" not in simple and ")" not in simple:
        return BareIdentifier(simple)
    return Unrecoverable(simple)


# =============================================================================
# Parser
# =============================================================================


class LogGraphBuilder:
    """State of one forward pass over a log.

    A builder is single use: feed it lines in order, then call :meth:`finish`.
    """

    def __init__(self, levels: LogLevels | None):
        self.levels = levels
        self.arena = FrameArena()
        self.clock = TimestampTracker()
        self.collector = IssueCollector()
        self.collector.check_levels(levels)

        self._nodes: dict[str, GraphNode] = {}
        self._edges: dict[tuple[str, str], GraphEdge] = {}
        self._units: list[Unit] = []
        self._methods: list[str] = []  # class names
        self._timers: dict[str, list[int]] = {"soql": [], "dml": [], "callout": []}

        # Cumulative usage snapshots
        self._in_block: LineKind | None = None
        self._snap_cpu_ms: int | None = None
        self._snap_heap_bytes: int | None = None
        self._last_cpu_ms = 0
        self._last_heap_bytes = 0

    # -------------------------------------------------------------------------
    # Current owners
    # -------------------------------------------------------------------------

    def _method_actor(self) -> str | None:
        return node_id("Class", self._methods[-1]) if self._methods else None

    def _unit_actor(self) -> str | None:
        return self._units[-1].id if self._units else None

    def _current_owner(self) -> str | None:
        """Top method's class if any, else the current unit."""
        return self._method_actor() or self._unit_actor()

    # -------------------------------------------------------------------------
    # Line dispatch
    # -------------------------------------------------------------------------

    def feed(self, line: str) -> None:
        classified = classify_line(line)
        self.clock.observe(classified)
        kind = classified.kind

        if kind in _COUNTED:
            self._begin_operation(kind)
        elif kind in _TIMED_ENDS:
            self._end_operation(_TIMED_ENDS[kind])

        if kind in CUMULATIVE_STARTS:
            self._in_block = kind
            self._snap_cpu_ms = None
            self._snap_heap_bytes = None
            return
        if self._in_block is not None:
            if self._read_block_line(line, kind):
                return

        if kind is LineKind.CODE_UNIT_STARTED:
            self._unit_started(classified)
        elif kind is LineKind.CODE_UNIT_FINISHED:
            self._unit_finished(classified)
        elif kind is LineKind.METHOD_ENTRY:
            self._method_entry(classified)
        elif kind is LineKind.METHOD_EXIT:
            self._method_exit(classified)

    # -------------------------------------------------------------------------
    # Metrics attribution
    # -------------------------------------------------------------------------

    def _begin_operation(self, kind: LineKind) -> None:
        operation = _COUNTED[kind]
        self.arena.count(operation, self._method_actor(), self._unit_actor())
        if kind in _TIMED_BEGINS and self.clock.last_ns is not None:
            self._timers[operation].append(self.clock.last_ns)

    def _end_operation(self, operation: str) -> None:
        timer = self._timers[operation]
        start_ns = timer.pop() if timer else None
        if start_ns is None or self.clock.last_ns is None:
            return
        self.arena.attribute(
            f"{operation}_time_ms",
            ns_to_ms(self.clock.last_ns - start_ns),
            self._method_actor(),
            self._unit_actor(),
        )

    def _read_block_line(self, line: str, kind: LineKind) -> bool:
        """Capture peak CPU/heap inside a cumulative block. True when the block ended.

        A block lists one section per namespace, so the largest value wins.
        """
        cpu_ms = read_cpu_ms(line)
        if cpu_ms is not None:
            self._snap_cpu_ms = cpu_ms if self._snap_cpu_ms is None else max(self._snap_cpu_ms, cpu_ms)
        heap_bytes = read_heap_bytes(line)
        if heap_bytes is not None:
            self._snap_heap_bytes = (
                heap_bytes if self._snap_heap_bytes is None else max(self._snap_heap_bytes, heap_bytes)
            )
        if kind not in CUMULATIVE_ENDS:
            return False

        current_cpu = self._snap_cpu_ms if self._snap_cpu_ms is not None else self._last_cpu_ms
        current_heap = self._snap_heap_bytes if self._snap_heap_bytes is not None else self._last_heap_bytes
        delta_cpu = max(0, current_cpu - self._last_cpu_ms)
        delta_heap = max(0, current_heap - self._last_heap_bytes)
        self._last_cpu_ms = current_cpu
        self._last_heap_bytes = current_heap

        method_actor, unit_actor = self._method_actor(), self._unit_actor()
        self.arena.attribute("cpu_ms", delta_cpu, method_actor, unit_actor)
        self.arena.attribute("heap_bytes", delta_heap, method_actor, unit_actor)

        self._in_block = None
        self._snap_cpu_ms = None
        self._snap_heap_bytes = None
        return True

    # -------------------------------------------------------------------------
    # Frame transitions
    # -------------------------------------------------------------------------

    def _unit_started(self, classified: ClassifiedLine) -> None:
        self.collector.counters.code_unit_started += 1
        kind, name = describe_unit(resolve_unit_label(classified.payload or ""))
        node = upsert_node(self._nodes, kind, name, self.levels)
        unit = Unit(kind=kind, name=name, id=node.id)

        owner = self._current_owner()
        self.arena.push(unit.id, unit.name, "unit", self.clock.last_ns)
        self.arena.record(
            SequenceEvent(
                from_id=owner,
                to_id=unit.id,
                label="CODE_UNIT_STARTED",
                time=classified.time,
                nanos=classified.nanos,
            )
        )
        self._units.append(unit)

    def _unit_finished(self, classified: ClassifiedLine) -> None:
        label = normalize_finished_unit_name(resolve_unit_label(classified.payload or ""))

        # Pop until a matching unit, to be resilient to mismatched finish labels
        while self._units:
            top = self._units.pop()
            if top.name == label or top.id.endswith(f":{label}"):
                self.arena.mark_closed("unit", top.id)
                self.arena.close(top.id, "unit", self.clock.last_ns)
                break

        # Method frames never outlive their unit
        if self._methods:
            self.arena.mark_closed("method", self._method_actor())
        self._methods.clear()

    def _method_entry(self, classified: ClassifiedLine) -> None:
        self.collector.counters.method_entry += 1
        signature = (classified.payload or "").split("|")[-1]
        cls = class_name_from_signature(signature)
        if cls is None:
            return

        target = upsert_node(self._nodes, "Class", cls, self.levels).id
        owner = self._current_owner()
        if owner is not None:
            inc_edge(self._edges, owner, target)
        self.arena.push(target, signature, "method", self.clock.last_ns)
        self.arena.record(
            SequenceEvent(
                from_id=owner,
                to_id=target,
                label=signature,
                time=classified.time,
                nanos=classified.nanos,
            )
        )
        self._methods.append(cls)

    def _method_exit(self, classified: ClassifiedLine) -> None:
        self.collector.counters.method_exit += 1
        if not self._methods:
            return

        decision = decide_method_exit((classified.payload or "").split("|")[-1])
        if isinstance(decision, (MatchedSignature, BareIdentifier)):
            if decision.class_name in self._methods:
                self._unwind_to(decision.class_name)
            # A class that is not on the stack is ignored rather than desynchronizing it
            return

        if decision.system_like:
            return
        top = self._methods.pop()
        actor = node_id("Class", top)
        self.arena.close(actor, "method", self.clock.last_ns)
        self.arena.mark_closed("method", actor)
        self.collector.counters.fallback_method_exit += 1

    def _unwind_to(self, cls: str) -> None:
        """Close method frames down to and including the innermost ``cls``."""
        while self._methods:
            top = self._methods.pop()
            self.arena.close(node_id("Class", top), "method", self.clock.last_ns)
            if top == cls:
                break
        self.arena.mark_closed("method", node_id("Class", cls))

    # -------------------------------------------------------------------------
    # End of input
    # -------------------------------------------------------------------------

    def finish(self) -> LogGraph:
        """Close every open frame and assemble the graph."""
        open_units = len(self._units)
        open_methods = len(self._methods)
        self.arena.close_all(self.clock.last_ns)

        issues = self.collector.flush(
            missing_prefix=self.clock.missing_prefix,
            non_monotonic=self.clock.non_monotonic,
            open_units=open_units,
            open_methods=open_methods,
            open_timers={operation: len(stack) for operation, stack in self._timers.items()},
        )
        return LogGraph(
            nodes=list(self._nodes.values()),
            edges=list(self._edges.values()),
            sequence=self.arena.sequence,
            flow=self.arena.flow,
            nested=self.arena.nested,
            issues=issues,
            levels=self.levels,
        )


def parse_apex_log_to_graph(
    text: str,
    max_lines: int | None = None,
    settings: ParserSettings | None = None,
) -> LogGraph:
    """Parse Apex log text into a call graph.

    - Detects default log levels from the head
    - Creates nodes for triggers, classes and flows
    - Adds edges when a class method is entered from a different owner
    - Records lane spans and globally nested frames with profile counters

    Args:
        text: The complete log text
        max_lines: Optional cap on scanned lines. Overrides ``settings.max_lines``.
        settings: Parser settings. Defaults are used when omitted.

    Returns:
        The parsed graph. Never raises on malformed input; problems are
        reported in ``graph.issues``.
    """
    settings = settings or ParserSettings()
    if max_lines is None:
        max_lines = settings.max_lines

    lines = _LINE_SPLIT_RE.split(text)
    limit = len(lines) if max_lines is None else min(len(lines), max(1, max_lines))
    if limit < len(lines):
        logger.debug(f"Truncating log at {limit} of {len(lines)} lines")

    builder = LogGraphBuilder(parse_default_log_levels(lines[: settings.head_lines]))
    for line in lines[:limit]:
        builder.feed(line)
    graph = builder.finish()

    logger.debug(
        f"Parsed {limit} lines: {len(graph.nodes)} nodes, {len(graph.edges)} edges, "
        f"{len(graph.nested)} frames, {len(graph.issues)} issues"
    )
    return graph
