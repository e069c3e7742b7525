"""Call tree data model.

Nodes are owned by their model's ``all`` table. ``parents`` holds non-owning
back-references used only for traversal (backtraces), which is why the tree
is built from dataclasses rather than serializable schemas; use
:meth:`CallTreeModel.to_dict` to hand a tree to a host.
"""

from dataclasses import asdict, dataclass, field
from typing import Any

_METRIC_FIELDS = (
    "total_time_ms",
    "own_time_ms",
    "soql",
    "dml",
    "callout",
    "soql_time_ms",
    "dml_time_ms",
    "callout_time_ms",
    "cpu_ms",
    "heap_bytes",
)


@dataclass
class CallTreeMetrics:
    total_time_ms: int = 0  # time including subtree
    own_time_ms: int = 0  # total minus the children's totals
    soql: int = 0
    dml: int = 0
    callout: int = 0
    soql_time_ms: int = 0
    dml_time_ms: int = 0
    callout_time_ms: int = 0
    cpu_ms: int = 0
    heap_bytes: int = 0
    count: int | None = None  # occurrences folded into a merged node

    def absorb(self, other: "CallTreeMetrics") -> None:
        """Add every counter of ``other`` into this one."""
        for name in _METRIC_FIELDS:
            setattr(self, name, getattr(self, name) + getattr(other, name))


@dataclass
class CallRef:
    class_name: str  # e.g. MyClass
    method: str  # e.g. doWork(String)
    label: str  # raw label from the log


@dataclass(eq=False)
class CallTreeNode:
    """One occurrence of a method call, or one merged signature."""

    id: str
    ref: CallRef
    metrics: CallTreeMetrics
    children: list["CallTreeNode"] = field(default_factory=list)
    parents: list["CallTreeNode"] = field(default_factory=list, repr=False)
    start: int | None = None
    end: int | None = None
    depth: int | None = None
    actor: str | None = None  # e.g. Class:Foo

    @property
    def signature(self) -> str:
        return signature_from_label(self.actor or "", self.ref.label)[2]


@dataclass
class CallTreeModel:
    roots: list[CallTreeNode]
    all: dict[str, CallTreeNode]
    by_signature: dict[str, list[CallTreeNode]]  # signature -> occurrences
    parents_by_signature: dict[str, set[str]]  # callee signature -> caller signatures
    totals: dict[str, int]

    def to_dict(self) -> dict[str, Any]:
        """Flatten the tree into plain data.

        Children are listed by id so merged and inverted trees, which may
        contain cycles through recursive calls, serialize without recursion.
        """
        return {
            "roots": [root.id for root in self.roots],
            "nodes": {
                nid: {
                    "id": node.id,
                    "ref": asdict(node.ref),
                    "metrics": asdict(node.metrics),
                    "children": [child.id for child in node.children],
                    "start": node.start,
                    "end": node.end,
                    "depth": node.depth,
                    "actor": node.actor,
                }
                for nid, node in self.all.items()
            },
            "totals": dict(self.totals),
        }


def signature_from_label(actor: str, label: str) -> tuple[str, str, str]:
    """Derive ``(class_name, method, signature)`` from a frame label.

    Labels usually look like ``MyClass.myMethod(String)`` or
    ``ns__MyClass.doWork()``. The method keeps its argument list, so overloads
    get distinct signatures. Without a dot the class falls back to the
    ``Class:`` actor.
    """
    raw = (label or "").strip()
    no_args = raw.split("|")[0] or raw
    before_paren = no_args.split("(")[0] or no_args
    class_name = ""
    method = raw
    dot = before_paren.rfind(".")
    if dot > 0:
        class_name = before_paren[:dot]
        method = raw[dot + 1:]
    elif actor.startswith("Class:"):
        class_name = actor[len("Class:"):]
    return class_name, method, f"{class_name}#{method}"
