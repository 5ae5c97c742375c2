"""Segment-at-a-time graph generation negotiated with an external validator.

The session proposes one segment, then waits. Whoever owns the geometry
answers with a verdict: accept, or reject with how far the proposed end
overlaps something. A rejected end point is pushed further along the same
direction and proposed again, up to ``max_overlap_retries`` times.

    session = IncrementalGraphSession(GraphConfig(seed="abc123"))
    events = session.start(goals=[(150, 0, 150)])
    while session.state is SessionState.AWAITING_VALIDATION:
        proposal = events[-1]
        events = session.submit(my_validator(proposal))

The session never blocks; it can be driven from timers, queues or a plain
loop (see :meth:`IncrementalGraphSession.run`).
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from ..logging_utils import get_logger
from .config import GraphConfig
from .errors import GraphIntegrityError, OverlapResolutionError, ProtocolError
from .geometry import Vec3, as_vec3, step
from .graph import PathGraph, Point, WalkPolicy
from .rng import DeterministicRNG, make_rng

log = get_logger("delve.layout.incremental")


class SessionState(str, Enum):
    IDLE = "idle"
    AWAITING_VALIDATION = "awaiting_validation"
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass(frozen=True)
class SegmentProposal:
    from_id: int
    to_id: int
    from_pos: Vec3
    to_pos: Vec3
    direction: str
    attempt: int = 1
    kind = "segment_proposal"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.kind,
            "from_id": self.from_id,
            "to_id": self.to_id,
            "from_pos": list(self.from_pos),
            "to_pos": list(self.to_pos),
            "direction": self.direction,
            "attempt": self.attempt,
        }


@dataclass(frozen=True)
class PathComplete:
    path_index: int
    kind = "path_complete"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.kind, "path_index": self.path_index}


@dataclass(frozen=True)
class SessionComplete:
    seed: Any
    total_points: int
    total_segments: int
    kind = "session_complete"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.kind, "seed": self.seed, "total_points": self.total_points,
                "total_segments": self.total_segments}


@dataclass(frozen=True)
class SessionFailed:
    point_id: int
    attempts: int
    reason: str
    kind = "session_failed"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.kind, "point_id": self.point_id, "attempts": self.attempts,
                "reason": self.reason}


Event = Union[SegmentProposal, PathComplete, SessionComplete, SessionFailed]


@dataclass(frozen=True)
class Verdict:
    ok: bool
    overlap_amount: Optional[float] = None

    @classmethod
    def coerce(cls, value: Union["Verdict", Mapping[str, Any]]) -> "Verdict":
        if isinstance(value, Verdict):
            verdict = value
        elif isinstance(value, Mapping) and "ok" in value:
            amount = value.get("overlap_amount", value.get("overlapAmount"))
            verdict = cls(bool(value["ok"]), None if amount is None else float(amount))
        else:
            raise TypeError(f"not a verdict: {value!r}")
        if verdict.overlap_amount is not None and not math.isfinite(verdict.overlap_amount):
            raise ValueError(f"overlap_amount must be finite, got {verdict.overlap_amount}")
        return verdict


@dataclass
class _Pending:
    from_id: int
    to_id: int
    direction: str
    attempt: int = 1


class IncrementalGraphSession(WalkPolicy):
    """One generation session: owns its RNG, graph, index and counters."""

    MAIN_PATH = "main"
    SPUR = "spur"

    def __init__(self, config: Optional[GraphConfig] = None, rng: Optional[DeterministicRNG] = None):
        self.config = (config or GraphConfig()).validate()
        self.rng = rng if rng is not None else make_rng(self.config.seed)
        self.unit = self.config.base_unit
        self._graph = PathGraph(self.unit, seed=self.rng.seed)
        self.state = SessionState.IDLE
        self.violations = 0
        self.protocol_errors: List[ProtocolError] = []
        self.path_index = 0
        self.spur_total = 0
        self.spurs_started = 0
        self._pending: Optional[_Pending] = None
        self._goals: List[Vec3] = []
        self._goal_cursor = 0
        self._path_kind = self.MAIN_PATH
        self._path_limit = self.config.max_segments_per_path
        self._path_segments = 0
        self._current: Optional[int] = None
        self._prev: Optional[str] = None

    @property
    def seed(self):
        return self.rng.seed

    @property
    def pending(self) -> Optional[SegmentProposal]:
        if self._pending is None:
            return None
        return self._proposal(self._pending)

    def _violation(self, reason: str) -> List[Event]:
        self.violations += 1
        self.protocol_errors.append(ProtocolError(reason))
        log.warn(event="protocol_violation", reason=reason, state=self.state.value,
                 violations=self.violations)
        return []

    def start(self, start: Vec3 = (0.0, 0.0, 0.0), goals=None) -> List[Event]:
        if self.state is not SessionState.IDLE or self._graph.start_id is not None:
            return self._violation("start_while_running")
        start = as_vec3(start)
        self.config.check_start(start)
        self._goals = [as_vec3(g) for g in (goals or [])]
        self._graph.start_id = self._graph.add_point(start).id
        self.spur_total = self.rng.int_range(*self.config.spur_count)
        log.info(event="session_start", seed=self.seed, spur_total=self.spur_total,
                 goals=len(self._goals))
        self._begin_path(self.MAIN_PATH, self._graph.start_id, self.config.max_segments_per_path)
        return self._propose()

    def submit(self, verdict) -> List[Event]:
        if self.state is not SessionState.AWAITING_VALIDATION or self._pending is None:
            return self._violation("verdict_without_pending")
        try:
            v = Verdict.coerce(verdict)
        except (TypeError, ValueError):
            return self._violation("malformed_verdict")
        if v.ok:
            return self._accept()
        return self._reject(v.overlap_amount)

    # -- proposals ---------------------------------------------------------
    def _valid_directions(self, point: Point, prev: Optional[str]) -> List[str]:
        # The validator owns geometry, so never step straight onto a finalized point.
        return [d for d in super()._valid_directions(point, prev)
                if self._graph.point_at(step(point.position, d, self.unit)) is None]

    def _begin_path(self, kind: str, origin: int, limit: int) -> None:
        self.path_index += 1
        self._path_kind = kind
        self._path_limit = limit
        self._path_segments = 0
        self._current = origin
        self._prev = None
        log.debug(event="path_start", path_index=self.path_index, kind=kind, origin=origin, limit=limit)

    def _target(self) -> Optional[Vec3]:
        if self._path_kind == self.MAIN_PATH and self._goal_cursor < len(self._goals):
            return self._goals[self._goal_cursor]
        return None

    def _proposal(self, p: _Pending) -> SegmentProposal:
        return SegmentProposal(p.from_id, p.to_id, self._graph.get(p.from_id).position,
                               self._graph.get(p.to_id).position, p.direction, p.attempt)

    def _propose(self) -> List[Event]:
        if self._budget_left() <= 0:
            log.warn(event="segment_budget_exhausted", max_segments=self.config.max_segments)
            return self._end_path()
        point = self._graph.get(self._current)
        target = self._target()
        preferred = self._toward(point.position, target) if target is not None else ()
        d = self._pick_direction(point, self._prev, preferred)
        if d is None:
            log.debug(event="path_stalled", path_index=self.path_index, point=point.id)
            return self._end_path()
        length = self._step_length(point, d, target)
        for i in range(2, length + 1):
            if self._graph.point_at(step(point.position, d, self.unit * i)) is not None:
                length = i - 1
                break
        tentative = self._graph.add_point(step(point.position, d, self.unit * length), register=False)
        self._pending = _Pending(point.id, tentative.id, d)
        self.state = SessionState.AWAITING_VALIDATION
        proposal = self._proposal(self._pending)
        log.debug(event="segment_proposed", frm=proposal.from_id, to=proposal.to_id,
                  direction=d, length=length)
        return [proposal]

    # -- verdicts ----------------------------------------------------------
    def _accept(self) -> List[Event]:
        p, self._pending = self._pending, None
        graph = self._graph
        end = graph.get(p.to_id)
        graph.index.register(end.id, end.position)
        end.built = True
        if graph.connect(p.from_id, p.to_id, p.direction, self.path_index) is None:
            raise GraphIntegrityError(f"segment {p.from_id}->{p.to_id} already exists")
        self.state = SessionState.IDLE
        self._path_segments += 1
        self._current, self._prev = end.id, p.direction
        log.debug(event="segment_accepted", frm=p.from_id, to=p.to_id, attempt=p.attempt)

        target = self._target()
        if target is not None and self._near(end.position, target):
            graph.goal_ids.append(end.id)
            self._goal_cursor += 1
            log.info(event="goal_reached", point=end.id, goal=list(target))
            if self._goal_cursor >= len(self._goals):
                return self._end_path()
        if self._path_segments >= self._path_limit:
            return self._end_path()
        return self._propose()

    def _near(self, pos: Vec3, goal: Vec3) -> bool:
        radius = 2 * self.unit
        return abs(goal[0] - pos[0]) <= radius and abs(goal[2] - pos[2]) <= radius

    def _reject(self, amount: Optional[float]) -> List[Event]:
        p = self._pending
        if p.attempt >= self.config.max_overlap_retries:
            self._pending = None
            self._graph.discard_point(p.to_id)
            self.state = SessionState.FAILED
            log.error(event="overlap_unresolved", point=p.to_id, attempts=p.attempt, seed=self.seed)
            return [SessionFailed(p.to_id, p.attempt, "overlap_unresolved")]
        if amount is None:
            amount = self.unit
        # every retry moves at least one unit further along the direction
        amount = max(0.0, amount)
        end = self._graph.get(p.to_id)
        moved = step(end.position, p.direction, amount + self.unit)
        while self._graph.point_at(moved) is not None:
            moved = step(moved, p.direction, self.unit)
        end.position = moved
        p.attempt += 1
        log.debug(event="segment_shifted", point=p.to_id, overlap=amount, attempt=p.attempt)
        return [self._proposal(p)]

    # -- path / session ends -----------------------------------------------
    def _spur_origins(self) -> List[Point]:
        graph = self._graph
        return [pt for pid, pt in sorted(graph.points.items())
                if pt.built and pt.degree == 2 and pid != graph.start_id]

    def _end_path(self) -> List[Event]:
        self.state = SessionState.IDLE
        events: List[Event] = [PathComplete(self.path_index)]
        log.info(event="path_complete", path_index=self.path_index, kind=self._path_kind,
                 segments=self._path_segments)
        if self._budget_left() > 0 and self.spurs_started < self.spur_total:
            origins = self._spur_origins()
            if origins:
                origin = self.rng.choice(origins)
                self.spurs_started += 1
                self._begin_path(self.SPUR, origin.id, self.rng.int_range(*self.config.spur_steps))
                events.extend(self._propose())
                return events
        events.append(self._complete())
        return events

    def _complete(self) -> SessionComplete:
        self.state = SessionState.COMPLETE
        graph = self._graph
        built = sum(1 for pt in graph.points.values() if pt.built)
        log.info(event="session_complete", seed=self.seed, points=built, segments=len(graph.segments),
                 violations=self.violations)
        return SessionComplete(self.seed, built, len(graph.segments))

    # -- drivers -----------------------------------------------------------
    def graph(self) -> PathGraph:
        """Finalized points and segments; a pending tentative point is left out."""
        record = self._graph.to_dict()
        record["points"] = {k: v for k, v in record["points"].items()
                            if self._graph.points[int(k)].built}
        return PathGraph.from_dict(record)

    def run(self, validator: Callable[[SegmentProposal], Any], start: Vec3 = (0.0, 0.0, 0.0),
            goals=None) -> PathGraph:
        """Drive the session to completion with a synchronous validator."""
        events = self.start(start, goals)
        while self.state is SessionState.AWAITING_VALIDATION:
            proposal = next(e for e in reversed(events) if isinstance(e, SegmentProposal))
            events = self.submit(validator(proposal))
        if self.state is SessionState.FAILED:
            failed = events[-1]
            raise OverlapResolutionError(failed.point_id, failed.attempts)
        return self.graph()


__all__ = [
    "SessionState",
    "SegmentProposal",
    "PathComplete",
    "SessionComplete",
    "SessionFailed",
    "Event",
    "Verdict",
    "IncrementalGraphSession",
]
