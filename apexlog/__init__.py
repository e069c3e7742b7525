"""apexlog - call graphs and call trees from Apex debug logs.

Basic Usage:
    from apexlog import build_call_tree, parse_apex_log_to_graph

    graph = parse_apex_log_to_graph(text)
    for issue in graph.issues:
        print(issue.severity, issue.message)

    tree = build_call_tree(graph.nested)

Views:
    from apexlog import invert_for_signature, merge_occurrences, scope_to_occurrence

    merged = merge_occurrences(tree, "MyClass#doWork()")
    callers = invert_for_signature(tree, "MyClass#doWork()")
    single = scope_to_occurrence(tree, "Class:MyClass:3")
"""

from apexlog.calltree import (
    CallRef,
    CallTreeMetrics,
    CallTreeModel,
    CallTreeNode,
    build_call_tree,
    invert_for_signature,
    merge_occurrences,
    scope_to_occurrence,
    signature_from_label,
)
from apexlog.config import ParserSettings
from apexlog.entries import ParsedLogEntry, line_has_error_signal, parse_log_lines
from apexlog.levels import LogLevel, LogLevels, parse_default_log_levels
from apexlog.parser import parse_apex_log_to_graph
from apexlog.schemas import (
    FlowSpan,
    FrameProfile,
    GraphEdge,
    GraphNode,
    LogGraph,
    LogIssue,
    NestedFrame,
    SequenceEvent,
)

__version__ = "0.1.0"

__all__ = [
    # Parsing
    "parse_apex_log_to_graph",
    "parse_default_log_levels",
    "ParserSettings",
    # Graph schemas
    "LogGraph",
    "GraphNode",
    "GraphEdge",
    "SequenceEvent",
    "FlowSpan",
    "NestedFrame",
    "FrameProfile",
    "LogIssue",
    "LogLevel",
    "LogLevels",
    # Call tree
    "build_call_tree",
    "merge_occurrences",
    "invert_for_signature",
    "scope_to_occurrence",
    "signature_from_label",
    "CallTreeModel",
    "CallTreeNode",
    "CallTreeMetrics",
    "CallRef",
    # Log viewer
    "parse_log_lines",
    "ParsedLogEntry",
    "line_has_error_signal",
]
