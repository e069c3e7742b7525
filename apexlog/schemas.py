"""Graph schemas produced by the log parser.

These are plain data: hosts call ``model_dump()`` or ``model_dump_json()`` to
hand them across a process or UI boundary.
"""

from typing import Literal

from pydantic import BaseModel, Field

from apexlog.levels import LogLevels

NodeKind = Literal["Trigger", "Class", "Flow", "Other"]
FrameKind = Literal["unit", "method"]
Severity = Literal["info", "warning", "error"]


class GraphNode(BaseModel):
    """A trigger, class, flow or other code unit seen in the log."""

    id: str  # "<kind>:<name>"
    label: str
    kind: NodeKind
    levels: LogLevels | None = None


class GraphEdge(BaseModel):
    """Directed call edge between two owners."""

    from_id: str
    to_id: str
    count: int = 1


class SequenceEvent(BaseModel):
    """One unit start or method entry, in log order."""

    from_id: str | None = None
    to_id: str
    label: str | None = None
    time: str | None = None  # HH:MM:SS.mmm
    nanos: str | None = None  # raw value from the (nanos) prefix


class FlowSpan(BaseModel):
    """Interval on a single actor's swim lane."""

    actor: str
    label: str
    start: int  # sequence index at push
    end: int | None = None  # sequence index at close
    depth: int  # height of this actor's lane stack at push
    kind: FrameKind
    start_ns: int | None = None
    end_ns: int | None = None


class FrameProfile(BaseModel):
    """Counters and timings attributed to a frame while it is active."""

    soql: int = 0
    dml: int = 0
    callout: int = 0
    soql_time_ms: int = 0
    dml_time_ms: int = 0
    callout_time_ms: int = 0
    cpu_ms: int = 0
    heap_bytes: int = 0
    time_ms: int | None = None  # wall clock from the frame's own ns pair


class NestedFrame(BaseModel):
    """Interval on the single global stack shared by units and methods."""

    actor: str
    label: str
    start: int
    end: int | None = None
    depth: int  # height of the global stack at push
    kind: FrameKind
    profile: FrameProfile | None = None
    start_ns: int | None = None
    end_ns: int | None = None

    def ensure_profile(self) -> FrameProfile:
        if self.profile is None:
            self.profile = FrameProfile()
        return self.profile


class LogIssue(BaseModel):
    """Advisory diagnostic. Never blocks graph or tree construction."""

    severity: Severity
    code: str
    message: str
    details: str | None = None


class LogGraph(BaseModel):
    """Everything derived from one pass over a log."""

    nodes: list[GraphNode] = Field(default_factory=list)
    edges: list[GraphEdge] = Field(default_factory=list)
    sequence: list[SequenceEvent] = Field(default_factory=list)
    flow: list[FlowSpan] = Field(default_factory=list)
    nested: list[NestedFrame] = Field(default_factory=list)
    issues: list[LogIssue] = Field(default_factory=list)
    levels: LogLevels | None = None

    def node(self, node_id: str) -> GraphNode | None:
        """Look up a node by id."""
        return next((n for n in self.nodes if n.id == node_id), None)

    def issue_codes(self) -> list[str]:
        return [issue.code for issue in self.issues]
