"""Build a call tree from nested frames and derive its alternate views.

The builder keeps every method occurrence as its own node and nests nodes by
interval containment. The view operators never mutate nodes reachable from
the source model's ``all`` table: they create new nodes or clones.
"""

import logging
from collections import deque

from apexlog.calltree.types import (
    CallRef,
    CallTreeMetrics,
    CallTreeModel,
    CallTreeNode,
    signature_from_label,
)
from apexlog.lines import ns_to_ms
from apexlog.schemas import NestedFrame

logger = logging.getLogger(__name__)


def _frame_time_ms(frame: NestedFrame) -> int:
    """Wall-clock time of a frame: profile, then own ns span, then index span."""
    if frame.profile is not None and frame.profile.time_ms is not None:
        return max(0, frame.profile.time_ms)
    if frame.start_ns is not None and frame.end_ns is not None:
        return ns_to_ms(frame.end_ns - frame.start_ns)
    end = frame.end if frame.end is not None else frame.start + 1
    return max(0, end - frame.start)


def _metrics_from_frame(frame: NestedFrame) -> CallTreeMetrics:
    metrics = CallTreeMetrics(total_time_ms=_frame_time_ms(frame))
    profile = frame.profile
    if profile is not None:
        metrics.soql = profile.soql
        metrics.dml = profile.dml
        metrics.callout = profile.callout
        metrics.soql_time_ms = profile.soql_time_ms
        metrics.dml_time_ms = profile.dml_time_ms
        metrics.callout_time_ms = profile.callout_time_ms
        metrics.cpu_ms = profile.cpu_ms
        metrics.heap_bytes = profile.heap_bytes
    return metrics


def _compute_own_times(roots: list[CallTreeNode]) -> None:
    """Post-order: own = max(0, total - sum(children.total))."""
    stack: list[tuple[CallTreeNode, bool]] = [(root, False) for root in reversed(roots)]
    while stack:
        node, visited = stack.pop()
        if not visited:
            stack.append((node, True))
            stack.extend((child, False) for child in reversed(node.children))
            continue
        children_total = sum(child.metrics.total_time_ms for child in node.children)
        node.metrics.own_time_ms = max(0, node.metrics.total_time_ms - children_total)


def build_call_tree(frames: list[NestedFrame]) -> CallTreeModel:
    """Build an occurrence-level call tree from the graph's nested frames.

    Only method frames participate; unit frames are structural. A frame's
    parent is the innermost earlier frame whose interval still contains its
    start.

    Args:
        frames: ``LogGraph.nested``

    Returns:
        The tree with ``by_signature`` and ``parents_by_signature`` indexes.
    """
    methods = sorted(
        (frame for frame in frames if frame.kind == "method"),
        key=lambda frame: (frame.start, frame.depth),
    )
    stack: list[CallTreeNode] = []
    roots: list[CallTreeNode] = []
    all_nodes: dict[str, CallTreeNode] = {}
    by_signature: dict[str, list[CallTreeNode]] = {}
    parents_by_signature: dict[str, set[str]] = {}

    for frame in methods:
        while stack and stack[-1].end is not None and stack[-1].end <= frame.start:
            stack.pop()

        class_name, method, signature = signature_from_label(frame.actor, frame.label)
        node = CallTreeNode(
            id=f"{frame.actor}:{frame.start}",
            ref=CallRef(class_name=class_name, method=method, label=frame.label),
            metrics=_metrics_from_frame(frame),
            start=frame.start,
            end=frame.end,
            depth=frame.depth,
            actor=frame.actor,
        )
        all_nodes[node.id] = node
        by_signature.setdefault(signature, []).append(node)

        if stack:
            parent = stack[-1]
            node.parents.append(parent)
            parent.children.append(node)
            parents_by_signature.setdefault(signature, set()).add(parent.signature)
        else:
            roots.append(node)
        stack.append(node)

    _compute_own_times(roots)
    total = sum(root.metrics.total_time_ms for root in roots)
    return CallTreeModel(
        roots=roots,
        all=all_nodes,
        by_signature=by_signature,
        parents_by_signature=parents_by_signature,
        totals={"total_time_ms": total},
    )


def _split_signature(signature: str) -> tuple[str, str]:
    class_name, _, method = signature.partition("#")
    return class_name, method


def merge_occurrences(model: CallTreeModel, signature: str) -> CallTreeModel:
    """Fold every occurrence of ``signature`` and its subtrees by signature.

    Each distinct signature reachable from an occurrence becomes one node with
    summed metrics and an occurrence ``count``. Returns ``model`` unchanged
    when the signature never occurs.
    """
    occurrences = model.by_signature.get(signature)
    if not occurrences:
        logger.debug(f"merge_occurrences: no occurrences of {signature}")
        return model

    merged_by_sig: dict[str, CallTreeNode] = {}

    def merged_node(sig: str, sample: CallTreeNode) -> CallTreeNode:
        existing = merged_by_sig.get(sig)
        if existing is not None:
            return existing
        default_class, default_method = _split_signature(sig)
        class_name = sample.ref.class_name or default_class
        method = sample.ref.method or default_method
        node = CallTreeNode(
            id=f"merged:{sig}",
            ref=CallRef(class_name=class_name, method=method, label=f"{class_name}.{method}"),
            metrics=CallTreeMetrics(count=0),
        )
        merged_by_sig[sig] = node
        return node

    def fold(target: CallTreeNode, occurrence: CallTreeNode) -> None:
        target.metrics.count = (target.metrics.count or 0) + 1
        target.metrics.absorb(occurrence.metrics)

    # Recursive occurrences are reached twice: as a root and inside an outer subtree
    folded: set[str] = set()
    for root_occurrence in occurrences:
        if root_occurrence.id in folded:
            continue
        root = merged_node(root_occurrence.signature, root_occurrence)
        fold(root, root_occurrence)
        folded.add(root_occurrence.id)

        pending = [(root_occurrence, root)]
        while pending:
            occurrence, merged = pending.pop()
            for child_occurrence in occurrence.children:
                child = merged_node(child_occurrence.signature, child_occurrence)
                if not any(existing is child for existing in merged.children):
                    merged.children.append(child)
                if child_occurrence.id not in folded:
                    fold(child, child_occurrence)
                    folded.add(child_occurrence.id)
                pending.append((child_occurrence, child))

    for node in merged_by_sig.values():
        for child in node.children:
            child.parents.append(node)

    roots = [merged_by_sig[signature]] if signature in merged_by_sig else []
    return CallTreeModel(
        roots=roots,
        all={node.id: node for node in merged_by_sig.values()},
        by_signature=model.by_signature,
        parents_by_signature=model.parents_by_signature,
        totals={"total_time_ms": sum(root.metrics.total_time_ms for root in roots)},
    )


def invert_for_signature(model: CallTreeModel, signature: str) -> CallTreeModel:
    """Backtraces: a tree rooted at ``signature`` whose children are its callers.

    Walks ``parents_by_signature`` breadth first, so branches fan out to
    increasingly distant callers. Each node aggregates the total and own time
    of every occurrence of its signature. Returns ``model`` unchanged when
    the signature never occurs.
    """
    if signature not in model.by_signature:
        logger.debug(f"invert_for_signature: no occurrences of {signature}")
        return model

    def caller_node(sig: str) -> CallTreeNode:
        occurrences = model.by_signature.get(sig, [])
        default_class, default_method = _split_signature(sig)
        sample = occurrences[0] if occurrences else None
        class_name = (sample.ref.class_name if sample else "") or default_class
        method = (sample.ref.method if sample else "") or default_method
        node = CallTreeNode(
            id=f"back:{sig}",
            ref=CallRef(class_name=class_name, method=method, label=f"{class_name}.{method}"),
            metrics=CallTreeMetrics(count=len(occurrences)),
        )
        for occurrence in occurrences:
            node.metrics.total_time_ms += occurrence.metrics.total_time_ms
            node.metrics.own_time_ms += occurrence.metrics.own_time_ms
        return node

    root = caller_node(signature)
    nodes = {signature: root}
    queue = deque([signature])
    while queue:
        current = queue.popleft()
        for caller_sig in sorted(model.parents_by_signature.get(current, ())):
            caller = nodes.get(caller_sig)
            if caller is None:
                caller = caller_node(caller_sig)
                nodes[caller_sig] = caller
                queue.append(caller_sig)
            nodes[current].children.append(caller)
            caller.parents.append(nodes[current])

    return CallTreeModel(
        roots=[root],
        all={node.id: node for node in nodes.values()},
        by_signature=model.by_signature,
        parents_by_signature=model.parents_by_signature,
        totals={"total_time_ms": root.metrics.total_time_ms},
    )


def scope_to_occurrence(model: CallTreeModel, node_id: str) -> CallTreeModel:
    """Clone one occurrence subtree into its own tree, depth reset at the root.

    Returns ``model`` unchanged when ``node_id`` is unknown.
    """
    source = model.all.get(node_id)
    if source is None:
        logger.debug(f"scope_to_occurrence: unknown node {node_id}")
        return model

    def clone(node: CallTreeNode, depth: int) -> CallTreeNode:
        return CallTreeNode(
            id=node.id,
            ref=CallRef(node.ref.class_name, node.ref.method, node.ref.label),
            metrics=CallTreeMetrics(**vars(node.metrics)),
            start=node.start,
            end=node.end,
            depth=depth,
            actor=node.actor,
        )

    root = clone(source, 0)
    all_nodes = {root.id: root}
    pending = [(source, root)]
    while pending:
        original, copy = pending.pop()
        for child in original.children:
            child_copy = clone(child, copy.depth + 1)
            child_copy.parents.append(copy)
            copy.children.append(child_copy)
            all_nodes[child_copy.id] = child_copy
            pending.append((child, child_copy))

    return CallTreeModel(
        roots=[root],
        all=all_nodes,
        by_signature=model.by_signature,
        parents_by_signature=model.parents_by_signature,
        totals={"total_time_ms": root.metrics.total_time_ms},
    )
