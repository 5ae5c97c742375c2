"""Navigation graph model and the bulk graph builder.

The builder grows a graph in three phases that all share one walk step:

1. through-path from the start toward each goal,
2. spurs: short unbiased walks off existing points,
3. loops: walks from a corridor point back toward a nearby point.

Every phase draws from the same segment budget. Running out of budget, or a
walk that can no longer move, ends generation early with whatever graph was
built so far; neither is an error.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from ..logging_utils import get_logger
from .config import GraphConfig
from .errors import GraphIntegrityError
from .geometry import (
    AXIS_OF,
    DIRECTIONS,
    EAST,
    HORIZONTAL,
    NORTH,
    OPPOSITES,
    SOUTH,
    UP,
    VERTICAL,
    WEST,
    DOWN,
    Vec3,
    as_vec3,
    direction_between,
    manhattan,
    step,
)
from .metrics import init_graph_metrics
from .rng import DeterministicRNG, make_rng
from .spatial import SpatialIndex

log = get_logger("delve.layout.graph")


@dataclass
class Point:
    id: int
    position: Vec3
    connections: List[int] = field(default_factory=list)
    built: bool = True

    @property
    def degree(self) -> int:
        return len(self.connections)


@dataclass(frozen=True)
class Segment:
    id: int
    from_id: int
    to_id: int
    direction: Optional[str] = None
    walk: int = 0

    @property
    def pair(self) -> Tuple[int, int]:
        return (min(self.from_id, self.to_id), max(self.from_id, self.to_id))


class PathGraph:
    """Points, segments and the spatial index that keeps points apart."""

    def __init__(self, unit: float, seed=None):
        self.unit = unit
        self.seed = seed
        self.points: Dict[int, Point] = {}
        self.segments: List[Segment] = []
        self.start_id: Optional[int] = None
        self.goal_ids: List[int] = []
        self.metrics: Dict[str, Any] = {}
        self.index = SpatialIndex(unit)
        self._pairs: set = set()
        self._next_point = 1
        self._next_segment = 1

    def __len__(self) -> int:
        return len(self.points)

    def get(self, point_id: int) -> Point:
        try:
            return self.points[point_id]
        except KeyError:
            raise GraphIntegrityError(f"unknown point id {point_id}") from None

    def add_point(self, position: Vec3, register: bool = True) -> Point:
        point = Point(self._next_point, as_vec3(position), built=register)
        if register:
            self.index.register(point.id, point.position)
        self.points[point.id] = point
        self._next_point += 1
        return point

    def discard_point(self, point_id: int) -> None:
        """Drop an unregistered tentative point that never got a segment."""
        point = self.get(point_id)
        if point.built or point.connections:
            raise GraphIntegrityError(f"point {point_id} is finalized and cannot be discarded")
        del self.points[point_id]

    def point_at(self, position: Vec3) -> Optional[int]:
        return self.index.lookup(position)

    def has_segment(self, a: int, b: int) -> bool:
        return (min(a, b), max(a, b)) in self._pairs

    def connect(self, a: int, b: int, direction: Optional[str] = None, walk: int = 0) -> Optional[Segment]:
        """Record a segment between two existing points.

        Returns None when the pair is already connected.
        """
        if a == b:
            raise GraphIntegrityError(f"cannot connect point {a} to itself")
        pa, pb = self.get(a), self.get(b)
        if self.has_segment(a, b):
            return None
        seg = Segment(self._next_segment, a, b, direction, walk)
        self._next_segment += 1
        self.segments.append(seg)
        self._pairs.add(seg.pair)
        pa.connections.append(b)
        pb.connections.append(a)
        return seg

    def to_dict(self) -> Dict[str, Any]:
        return {
            'points': {
                str(pid): {'position': list(p.position), 'connections': list(p.connections)}
                for pid, p in self.points.items()
            },
            'segments': [
                {'id': s.id, 'from': s.from_id, 'to': s.to_id, 'direction': s.direction, 'walk': s.walk}
                for s in self.segments
            ],
            'start': self.start_id,
            'goals': list(self.goal_ids),
            'seed': self.seed,
            'base_unit': self.unit,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PathGraph":
        """Rebuild a graph from its record, keeping every stored id."""
        graph = cls(data.get('base_unit', 15), seed=data.get('seed'))
        for key in sorted(data.get('points', {}), key=int):
            raw = data['points'][key]
            pid = int(key)
            point = Point(pid, as_vec3(raw['position']), [int(c) for c in raw.get('connections', [])])
            graph.index.register(pid, point.position)
            graph.points[pid] = point
        for raw in data.get('segments', []):
            seg = Segment(int(raw['id']), int(raw['from']), int(raw['to']), raw.get('direction'),
                          int(raw.get('walk', 0)))
            if seg.from_id not in graph.points or seg.to_id not in graph.points:
                raise GraphIntegrityError(f"segment {seg.id} references a missing point")
            graph.segments.append(seg)
            graph._pairs.add(seg.pair)
        graph._next_point = max(graph.points, default=0) + 1
        graph._next_segment = max((s.id for s in graph.segments), default=0) + 1
        graph.start_id = data.get('start')
        graph.goal_ids = [int(g) for g in data.get('goals', [])]
        return graph


class WalkPolicy:
    """Direction and length rules shared by the bulk and incremental walkers.

    Subclasses provide ``config``, ``rng``, ``_graph`` and ``unit``.
    """

    config: GraphConfig
    rng: DeterministicRNG
    _graph: PathGraph
    unit: float

    def _budget_left(self) -> int:
        return self.config.max_segments - len(self._graph.segments)

    def _valid_directions(self, point: Point, prev: Optional[str]) -> List[str]:
        cfg = self.config
        out = []
        for d in DIRECTIONS:
            if prev is not None and d == OPPOSITES[prev]:
                continue
            if d == UP and not cfg.allow_up:
                continue
            if d == DOWN and not cfg.allow_down:
                continue
            first = step(point.position, d, self.unit)
            if cfg.bounds is not None and not cfg.bounds.contains(first):
                continue
            occupant = self._graph.point_at(first)
            if occupant is not None and occupant in point.connections:
                continue
            out.append(d)
        return out

    def _pick_direction(self, point: Point, prev: Optional[str],
                        preferred: Sequence[str] = ()) -> Optional[str]:
        valid = self._valid_directions(point, prev)
        if not valid:
            return None
        cfg = self.config
        if prev is not None and prev in valid and cfg.straightness > 0 and self.rng.chance(cfg.straightness):
            return prev
        vertical = [d for d in valid if d in VERTICAL]
        horizontal = [d for d in valid if d in HORIZONTAL]
        if vertical and (not horizontal or self.rng.chance(cfg.vertical_chance)):
            return self.rng.choice(vertical)
        toward = [d for d in preferred if d in horizontal]
        if toward and self.rng.chance(cfg.goal_bias):
            return self.rng.choice(toward)
        return self.rng.choice(horizontal)

    def _step_length(self, point: Point, direction: str, target: Optional[Vec3] = None) -> int:
        lo, hi = self.config.step_length
        n = self.rng.int_range(lo, hi)
        bounds = self.config.bounds
        if bounds is not None:
            n = min(n, int(math.floor(bounds.room_along(point.position, direction) / self.unit + 1e-9)))
        if target is not None:
            axis = AXIS_OF[direction]
            delta = (target[axis] - point.position[axis]) * DIRECTIONS[direction][axis]
            if delta >= self.unit:
                n = min(n, int(math.floor(delta / self.unit + 1e-9)))
        return max(1, n)

    def _toward(self, pos: Vec3, target: Vec3) -> List[str]:
        dx = target[0] - pos[0]
        dz = target[2] - pos[2]
        out = []
        if abs(dx) > self.unit:
            out.append(EAST if dx > 0 else WEST)
        if abs(dz) > self.unit:
            out.append(NORTH if dz > 0 else SOUTH)
        return out


class GraphBuilder(WalkPolicy):
    """Grow a complete graph in one call."""

    def __init__(self, config: Optional[GraphConfig] = None, rng: Optional[DeterministicRNG] = None):
        self.config = (config or GraphConfig()).validate()
        self.rng = rng if rng is not None else make_rng(self.config.seed)
        self.unit = self.config.base_unit
        self._graph = PathGraph(self.unit, seed=self.rng.seed)
        self.metrics = init_graph_metrics()
        self._walk_id = 0

    @property
    def graph(self) -> PathGraph:
        return self._graph

    def build(self, start: Vec3 = (0.0, 0.0, 0.0), goals: Optional[Iterable[Vec3]] = None) -> PathGraph:
        start = as_vec3(start)
        self.config.check_start(start)
        graph = self._graph
        if graph.start_id is not None:
            raise GraphIntegrityError("GraphBuilder.build() may only be called once per builder")
        graph.start_id = graph.add_point(start).id
        goals = [as_vec3(g) for g in (goals or [])]

        self._through_path(goals)
        self._spurs()
        self._loops()

        self.metrics['points'] = len(graph.points)
        self.metrics['segments'] = len(graph.segments)
        graph.metrics = self.metrics
        log.info(event="graph_built", seed=graph.seed, points=len(graph.points),
                 segments=len(graph.segments), loop_closures=self.metrics['loop_closures'],
                 budget_exhausted=self.metrics['budget_exhausted'])
        return graph

    # -- walk step ---------------------------------------------------------
    def _has_budget(self) -> bool:
        if self._budget_left() > 0:
            return True
        if not self.metrics['budget_exhausted']:
            self.metrics['budget_exhausted'] = True
            log.warn(event="segment_budget_exhausted", max_segments=self.config.max_segments)
        return False

    def _advance(self, from_id: int, direction: str, length: int) -> Tuple[Optional[int], bool]:
        """Move ``length`` cells from ``from_id``.

        Returns ``(point_id, closed)``; ``closed`` is True when the step ended
        on an existing point. ``point_id`` is None when nothing was added.
        """
        graph = self._graph
        origin = graph.get(from_id).position
        for i in range(1, length + 1):
            occupant = graph.point_at(step(origin, direction, self.unit * i))
            if occupant is not None:
                return self._close_on(from_id, occupant, direction)
        end = graph.add_point(step(origin, direction, self.unit * length))
        graph.connect(from_id, end.id, direction, self._walk_id)
        log.debug(event="segment_added", frm=from_id, to=end.id, direction=direction, length=length)
        return end.id, False

    def _close_on(self, from_id: int, occupant: int, direction: str) -> Tuple[Optional[int], bool]:
        """Landed on an occupied cell: connect to that point instead of creating one."""
        seg = self._graph.connect(from_id, occupant, direction, self._walk_id)
        if seg is None:
            return None, False
        self.metrics['loop_closures'] += 1
        log.debug(event="loop_closure", frm=from_id, to=occupant, direction=direction)
        return occupant, True

    def _walk(self, from_id: int, steps: int, target: Optional[Vec3] = None) -> int:
        """Unbiased (or goal-biased when ``target`` is set) walk; returns the end id."""
        self._walk_id += 1
        current, prev = from_id, None
        for _ in range(steps):
            if not self._has_budget():
                break
            point = self._graph.get(current)
            preferred = self._toward(point.position, target) if target is not None else ()
            d = self._pick_direction(point, prev, preferred)
            if d is None:
                self.metrics['stalls'] += 1
                break
            nxt, closed = self._advance(current, d, self._step_length(point, d, target))
            if nxt is None:
                self.metrics['stalls'] += 1
                break
            current, prev = nxt, d
            if closed:
                break
        return current

    # -- phases ------------------------------------------------------------
    def _reached(self, pos: Vec3, goal: Vec3) -> bool:
        return abs(goal[0] - pos[0]) <= self.unit and abs(goal[2] - pos[2]) <= self.unit

    def _through_path(self, goals: List[Vec3]) -> None:
        graph = self._graph
        current = graph.start_id
        for goal in goals:
            self._walk_id += 1
            prev = None
            while True:
                point = graph.get(current)
                if self._reached(point.position, goal):
                    if current not in graph.goal_ids:
                        graph.goal_ids.append(current)
                    log.debug(event="goal_reached", point=current, goal=list(goal))
                    break
                if not self._has_budget():
                    break
                d = self._pick_direction(point, prev, self._toward(point.position, goal))
                if d is None:
                    self.metrics['stalls'] += 1
                    break
                nxt, _ = self._advance(current, d, self._step_length(point, d, goal))
                if nxt is None:
                    self.metrics['stalls'] += 1
                    break
                current, prev = nxt, d

    def _spurs(self) -> None:
        graph = self._graph
        count = self.rng.int_range(*self.config.spur_count)
        excluded = {graph.start_id, *graph.goal_ids}
        for _ in range(count):
            if not self._has_budget():
                break
            candidates = [p for pid, p in sorted(graph.points.items()) if pid not in excluded]
            if not candidates:
                break
            weights = [3 if p.degree == 2 else 1 for p in candidates]
            origin = candidates[self.rng.weighted_index(weights)]
            before = len(graph.segments)
            self._walk(origin.id, self.rng.int_range(*self.config.spur_steps))
            if len(graph.segments) > before:
                self.metrics['spurs_built'] += 1

    def _loops(self) -> None:
        graph = self._graph
        attempts = self.rng.int_range(*self.config.loop_count)
        lo, hi = (v * self.unit for v in self.config.loop_distance)
        for _ in range(attempts):
            if not self._has_budget():
                break
            corridors = [p for pid, p in sorted(graph.points.items())
                         if p.degree == 2 and pid != graph.start_id]
            if not corridors:
                break
            origin = self.rng.choice(corridors)
            targets = [p for pid, p in sorted(graph.points.items())
                       if pid != origin.id and pid not in origin.connections
                       and lo <= manhattan(origin.position, p.position) <= hi]
            if not targets:
                continue
            self._walk_to(origin.id, self.rng.choice(targets).id)

    def _best_direction(self, valid: List[str], pos: Vec3, target: Vec3) -> Optional[str]:
        # Largest remaining axis delta first.
        deltas = sorted(((abs(target[a] - pos[a]), a) for a in range(3)), reverse=True)
        for size, axis in deltas:
            if size <= 0:
                break
            for d in valid:
                if AXIS_OF[d] == axis and DIRECTIONS[d][axis] * (target[axis] - pos[axis]) > 0:
                    return d
        return None

    def _walk_to(self, origin_id: int, target_id: int) -> None:
        graph = self._graph
        self._walk_id += 1
        target = graph.get(target_id)
        current, prev = origin_id, None
        for _ in range(2 * self.config.loop_distance[1]):
            if not self._has_budget():
                return
            point = graph.get(current)
            if manhattan(point.position, target.position) <= self.unit:
                if graph.connect(current, target_id, direction_between(point.position, target.position),
                                 self._walk_id):
                    self.metrics['loops_connected'] += 1
                    log.debug(event="loop_connected", frm=current, to=target_id)
                return
            valid = self._valid_directions(point, prev)
            if not valid:
                self.metrics['stalls'] += 1
                return
            d = None
            if not self.rng.chance(self.config.switchback_chance):
                d = self._best_direction(valid, point.position, target.position)
            if d is None:
                d = self.rng.choice(valid)
            nxt, closed = self._advance(current, d, self._step_length(point, d, target.position))
            if nxt is None:
                self.metrics['stalls'] += 1
                return
            if closed:
                if nxt == target_id:
                    self.metrics['loops_connected'] += 1
                return
            current, prev = nxt, d


def build_graph(config: Optional[GraphConfig] = None, start: Vec3 = (0.0, 0.0, 0.0),
                goals: Optional[Iterable[Vec3]] = None, rng: Optional[DeterministicRNG] = None) -> PathGraph:
    return GraphBuilder(config, rng).build(start, goals)


__all__ = ["Point", "Segment", "PathGraph", "WalkPolicy", "GraphBuilder", "build_graph"]
