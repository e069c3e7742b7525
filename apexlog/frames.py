"""Frame arena shared by the frame stack tracker and metrics attribution.

Every lane span and nested frame lives in one append-only list. The open
stacks hold indexes into those lists, so closing a frame is a pop by index and
closing everything at end of input is a sweep over the open indexes.
"""

from apexlog.graph import add_sequence_event
from apexlog.lines import ns_to_ms
from apexlog.schemas import FlowSpan, FrameKind, NestedFrame, SequenceEvent


class FrameArena:
    """Owns the sequence, lane spans and nested frames of one parse."""

    def __init__(self):
        self.sequence: list[SequenceEvent] = []
        self.flow: list[FlowSpan] = []
        self.nested: list[NestedFrame] = []
        self._open_frames: list[int] = []  # global stack, indexes into nested
        self._lanes: dict[str, list[int]] = {}  # per-actor stacks, indexes into flow
        self._last_closed: dict[FrameKind, str] = {}

    @property
    def cursor(self) -> int:
        """Current sequence index. New frames start here; closed frames end here."""
        return len(self.sequence)

    @property
    def depth(self) -> int:
        return len(self._open_frames)

    def record(self, event: SequenceEvent) -> None:
        add_sequence_event(self.sequence, event)

    def last_closed(self, kind: FrameKind) -> str | None:
        """Actor of the most recently closed frame of ``kind``."""
        return self._last_closed.get(kind)

    def mark_closed(self, kind: FrameKind, actor: str) -> None:
        self._last_closed[kind] = actor

    # -------------------------------------------------------------------------
    # Push / close
    # -------------------------------------------------------------------------

    def push(self, actor: str, label: str, kind: FrameKind, start_ns: int | None) -> None:
        """Open a lane span and a global frame for ``actor``.

        Call before recording the event that opens the frame, so both start
        at that event's sequence index and ``[start, end)`` covers exactly
        the events logged while the frame was open.
        """
        lane = self._lanes.setdefault(actor, [])
        self.flow.append(
            FlowSpan(
                actor=actor,
                label=label,
                start=self.cursor,
                depth=len(lane),
                kind=kind,
                start_ns=start_ns,
            )
        )
        lane.append(len(self.flow) - 1)

        self.nested.append(
            NestedFrame(
                actor=actor,
                label=label,
                start=self.cursor,
                depth=self.depth,
                kind=kind,
                start_ns=start_ns,
            )
        )
        self._open_frames.append(len(self.nested) - 1)

    def end_span(self, actor: str, end_ns: int | None) -> FlowSpan | None:
        """Close the innermost open span on ``actor``'s lane."""
        lane = self._lanes.get(actor)
        if not lane:
            return None
        span = self.flow[lane.pop()]
        self._close_span(span, end_ns)
        return span

    def pop_frame(self, actor: str, kind: FrameKind, end_ns: int | None) -> NestedFrame | None:
        """Close the innermost open frame for ``actor`` and ``kind``."""
        position = self._find_open(actor, kind)
        if position is None:
            return None
        frame = self.nested[self._open_frames.pop(position)]
        self._close_frame(frame, end_ns)
        self._last_closed[kind] = actor
        return frame

    def close(self, actor: str, kind: FrameKind, end_ns: int | None) -> None:
        """Close both the lane span and the global frame for ``actor``."""
        self.end_span(actor, end_ns)
        self.pop_frame(actor, kind, end_ns)

    def close_all(self, last_ns: int | None) -> None:
        """Close everything still open at the current cursor.

        Open entries get ``last_ns`` as their end timestamp when one was seen.
        """
        for lane in self._lanes.values():
            while lane:
                span = self.flow[lane.pop()]
                self._close_span(span, last_ns if span.end_ns is None else None)
        while self._open_frames:
            frame = self.nested[self._open_frames.pop()]
            self._close_frame(frame, last_ns if frame.end_ns is None else None)

    def _close_span(self, span: FlowSpan, end_ns: int | None) -> None:
        if span.end is None:
            span.end = max(span.start + 1, self.cursor)
        if end_ns is not None:
            span.end_ns = end_ns
        assert span.end >= span.start + 1, f"span {span.label} closed before it started"

    def _close_frame(self, frame: NestedFrame, end_ns: int | None) -> None:
        frame.end = max(frame.start + 1, self.cursor)
        if end_ns is not None:
            frame.end_ns = end_ns
        if frame.start_ns is not None and frame.end_ns is not None:
            profile = frame.ensure_profile()
            profile.time_ms = (profile.time_ms or 0) + ns_to_ms(frame.end_ns - frame.start_ns)
        assert frame.end >= frame.start + 1, f"frame {frame.label} closed before it started"

    # -------------------------------------------------------------------------
    # Attribution lookups
    # -------------------------------------------------------------------------

    def _find_open(self, actor: str, kind: FrameKind) -> int | None:
        for position in range(len(self._open_frames) - 1, -1, -1):
            frame = self.nested[self._open_frames[position]]
            if frame.actor == actor and frame.kind == kind:
                return position
        return None

    def active_frame(self, actor: str | None, kind: FrameKind) -> NestedFrame | None:
        """Innermost open frame for ``actor`` and ``kind``."""
        if actor is None:
            return None
        position = self._find_open(actor, kind)
        return self.nested[self._open_frames[position]] if position is not None else None

    def recent_frame(self, actor: str | None, kind: FrameKind) -> NestedFrame | None:
        """Innermost open frame, else the latest frame ever opened, for ``actor``."""
        frame = self.active_frame(actor, kind)
        if frame is not None or actor is None:
            return frame
        for candidate in reversed(self.nested):
            if candidate.actor == actor and candidate.kind == kind:
                return candidate
        return None

    def count(self, field: str, method_actor: str | None, unit_actor: str | None) -> None:
        """Add one to ``field`` on the active method and unit frames."""
        for frame in (
            self.active_frame(method_actor, "method"),
            self.active_frame(unit_actor, "unit"),
        ):
            if frame is not None:
                profile = frame.ensure_profile()
                setattr(profile, field, getattr(profile, field) + 1)

    def attribute(self, field: str, amount: int, method_actor: str | None, unit_actor: str | None) -> None:
        """Add ``amount`` to ``field`` on the method and unit frames.

        Each actor falls back to the last closed actor of its kind, so work
        whose end marker lands after its frame closed is still attributed.
        """
        if not amount:
            return
        for actor, kind in ((method_actor, "method"), (unit_actor, "unit")):
            frame = self.recent_frame(actor or self.last_closed(kind), kind)
            if frame is not None:
                profile = frame.ensure_profile()
                setattr(profile, field, getattr(profile, field) + amount)
