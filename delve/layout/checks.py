"""Structural invariant checks for generated layouts.

Each ``analyze_*`` function returns a list of human readable problems; an
empty list means the layout is sound. Used by the test-suite, the CLI
``replay`` command and ``scripts/diagnose_seeds.py``.
"""
from __future__ import annotations

from typing import List, Optional, Sequence

from .config import RoomConfig
from .geometry import AXIS_OF, OPPOSITES, box_overlaps, direction_between, wall_overlap
from .graph import PathGraph
from .rooms import Room
from .spatial import SpatialIndex


def analyze_graph(graph: PathGraph) -> List[str]:
    problems: List[str] = []
    index = SpatialIndex(graph.unit)
    for pid, point in sorted(graph.points.items()):
        cell = index.cell_of(point.position)
        other = index.lookup(point.position)
        if other is not None:
            problems.append(f"points {other} and {pid} share cell {cell}")
        else:
            index.register(pid, point.position)
        if point.degree == 0 and len(graph.points) > 1:
            problems.append(f"point {pid} has no connections")
        for c in point.connections:
            if c not in graph.points:
                problems.append(f"point {pid} connects to missing point {c}")
            elif pid not in graph.points[c].connections:
                problems.append(f"connection {pid}->{c} is not symmetric")

    pairs = set()
    for seg in graph.segments:
        if seg.pair in pairs:
            problems.append(f"duplicate segment between {seg.pair[0]} and {seg.pair[1]}")
        pairs.add(seg.pair)
        a, b = graph.points.get(seg.from_id), graph.points.get(seg.to_id)
        if a is None or b is None:
            problems.append(f"segment {seg.id} references a missing point")
            continue
        if seg.to_id not in a.connections:
            problems.append(f"segment {seg.id} missing from point connections")
        actual = direction_between(a.position, b.position)
        if seg.direction is not None and actual is not None and actual != seg.direction:
            problems.append(f"segment {seg.id} labelled {seg.direction} but runs {actual}")

    problems.extend(find_reversals(graph))
    if graph.start_id is not None and graph.start_id not in graph.points:
        problems.append(f"start point {graph.start_id} missing")
    return problems


def find_reversals(graph: PathGraph) -> List[str]:
    """Consecutive segments of one walk that turn straight back."""
    out = []
    for prev, seg in zip(graph.segments, graph.segments[1:]):
        if prev.walk != seg.walk or prev.to_id != seg.from_id:
            continue
        if prev.direction and seg.direction == OPPOSITES[prev.direction]:
            out.append(f"segment {seg.id} reverses segment {prev.id}")
    return out


def analyze_rooms(rooms: Sequence[Room], config: Optional[RoomConfig] = None) -> List[str]:
    config = config or RoomConfig()
    problems: List[str] = []
    for i, a in enumerate(rooms):
        for b in rooms[i + 1:]:
            if box_overlaps(a.position, a.dims, b.position, b.dims, config.wall_thickness):
                problems.append(f"rooms {a.index} and {b.index} overlap")
    for room in rooms:
        if room.parent_id is None:
            continue
        parent = rooms[room.parent_id]
        touch = _touch_axis(parent, room)
        if touch is None:
            problems.append(f"room {room.index} does not touch its parent {parent.index}")
            continue
        shared = min(wall_overlap(parent.position, parent.dims, room.position, room.dims, touch))
        if shared < config.min_door_size - 1e-9:
            problems.append(f"room {room.index} door {shared:.2f} below {config.min_door_size}")
    return problems


def _touch_axis(a: Room, b: Room) -> Optional[int]:
    for axis in set(AXIS_OF.values()):
        gap = abs(b.position[axis] - a.position[axis]) - (a.dims[axis] + b.dims[axis]) / 2
        if abs(gap) < 1e-6:
            return axis
    return None


def analyze_layout(layout) -> List[str]:
    problems = analyze_graph(layout.graph)
    problems.extend(analyze_rooms(layout.rooms, layout.config.rooms))
    return problems


__all__ = ["analyze_graph", "analyze_rooms", "analyze_layout", "find_reversals"]
