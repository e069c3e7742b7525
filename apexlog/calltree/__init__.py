"""Call tree built from nested method frames, plus merged, backtrace and scoped views."""

from .build import build_call_tree, invert_for_signature, merge_occurrences, scope_to_occurrence
from .types import CallRef, CallTreeMetrics, CallTreeModel, CallTreeNode, signature_from_label

__all__ = [
    "build_call_tree",
    "merge_occurrences",
    "invert_for_signature",
    "scope_to_occurrence",
    "CallRef",
    "CallTreeMetrics",
    "CallTreeModel",
    "CallTreeNode",
    "signature_from_label",
]
