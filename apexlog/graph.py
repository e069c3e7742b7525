"""Node, edge and sequence bookkeeping for the call graph."""

from apexlog.levels import LogLevels
from apexlog.schemas import GraphEdge, GraphNode, NodeKind, SequenceEvent


def node_id(kind: NodeKind, name: str) -> str:
    return f"{kind}:{name}"


def upsert_node(
    nodes_by_id: dict[str, GraphNode],
    kind: NodeKind,
    name: str,
    levels: LogLevels | None = None,
) -> GraphNode:
    """Return the node for ``(kind, name)``, creating it on first reference.

    Existing nodes are never updated; the levels passed on first creation win.
    """
    nid = node_id(kind, name)
    existing = nodes_by_id.get(nid)
    if existing is not None:
        return existing
    node = GraphNode(id=nid, label=name, kind=kind, levels=levels)
    nodes_by_id[nid] = node
    return node


def inc_edge(edges_by_key: dict[tuple[str, str], GraphEdge], from_id: str, to_id: str) -> GraphEdge | None:
    """Count one call from ``from_id`` to ``to_id``. Self loops are ignored."""
    if from_id == to_id:
        return None
    key = (from_id, to_id)
    edge = edges_by_key.get(key)
    if edge is not None:
        edge.count += 1
        return edge
    edge = GraphEdge(from_id=from_id, to_id=to_id, count=1)
    edges_by_key[key] = edge
    return edge


def add_sequence_event(sequence: list[SequenceEvent], event: SequenceEvent) -> None:
    sequence.append(event)
