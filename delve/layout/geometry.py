"""Direction constants, bounds and axis-aligned box helpers."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Sequence, Tuple

Vec3 = Tuple[float, float, float]

# Direction keys centralized for graph walks and room faces
NORTH = "N"  # +Z
SOUTH = "S"  # -Z
EAST = "E"  # +X
WEST = "W"  # -X
UP = "U"  # +Y
DOWN = "D"  # -Y

DIRECTIONS: Dict[str, Tuple[int, int, int]] = {
    NORTH: (0, 0, 1),
    SOUTH: (0, 0, -1),
    EAST: (1, 0, 0),
    WEST: (-1, 0, 0),
    UP: (0, 1, 0),
    DOWN: (0, -1, 0),
}

OPPOSITES = {NORTH: SOUTH, SOUTH: NORTH, EAST: WEST, WEST: EAST, UP: DOWN, DOWN: UP}

HORIZONTAL = (NORTH, SOUTH, EAST, WEST)
VERTICAL = (UP, DOWN)

AXIS_OF = {EAST: 0, WEST: 0, UP: 1, DOWN: 1, NORTH: 2, SOUTH: 2}


def as_vec3(value: Sequence[float]) -> Vec3:
    if len(value) != 3:
        raise ValueError(f"expected 3 components, got {len(value)}")
    return (float(value[0]), float(value[1]), float(value[2]))


def step(pos: Vec3, direction: str, distance: float) -> Vec3:
    dx, dy, dz = DIRECTIONS[direction]
    return (pos[0] + dx * distance, pos[1] + dy * distance, pos[2] + dz * distance)


def manhattan(a: Vec3, b: Vec3) -> float:
    return abs(a[0] - b[0]) + abs(a[1] - b[1]) + abs(a[2] - b[2])


def horizontal_distance(a: Vec3, b: Vec3) -> float:
    return ((a[0] - b[0]) ** 2 + (a[2] - b[2]) ** 2) ** 0.5


def direction_between(a: Vec3, b: Vec3) -> str | None:
    """Axis direction from ``a`` to ``b`` when they differ on exactly one axis."""
    deltas = [b[i] - a[i] for i in range(3)]
    moving = [i for i, d in enumerate(deltas) if d != 0]
    if len(moving) != 1:
        return None
    axis = moving[0]
    positive = deltas[axis] > 0
    for key, vec in DIRECTIONS.items():
        if vec[axis] == (1 if positive else -1):
            return key
    return None


@dataclass(frozen=True)
class Bounds:
    """Inclusive axis-aligned clamp for point positions."""

    min: Vec3
    max: Vec3

    def contains(self, pos: Vec3) -> bool:
        return all(self.min[i] <= pos[i] <= self.max[i] for i in range(3))

    def room_along(self, pos: Vec3, direction: str) -> float:
        """Distance available from ``pos`` to the boundary along ``direction``."""
        axis = AXIS_OF[direction]
        sign = DIRECTIONS[direction][axis]
        if sign > 0:
            return self.max[axis] - pos[axis]
        return pos[axis] - self.min[axis]

    def to_dict(self):
        return {"min": list(self.min), "max": list(self.max)}


def box_interval(center: float, extent: float, margin: float = 0.0) -> Tuple[float, float]:
    return center - extent / 2 + margin, center + extent / 2 - margin


def box_overlaps(pos_a: Vec3, dims_a: Vec3, pos_b: Vec3, dims_b: Vec3, margin: float = 0.0) -> bool:
    """True when two boxes interpenetrate on all three axes.

    ``margin`` is subtracted from every half-extent, so walls may intrude on
    each other by up to ``2 * margin``. A zero-gap touch is not an overlap.
    """
    for axis in range(3):
        min_a, max_a = box_interval(pos_a[axis], dims_a[axis], margin)
        min_b, max_b = box_interval(pos_b[axis], dims_b[axis], margin)
        if max_a <= min_b or min_a >= max_b:
            return False
    return True


def wall_overlap(pos_a: Vec3, dims_a: Vec3, pos_b: Vec3, dims_b: Vec3, touch_axis: int) -> List[float]:
    """Shared extent on the two axes perpendicular to ``touch_axis``."""
    shared = []
    for axis in range(3):
        if axis == touch_axis:
            continue
        min_a, max_a = box_interval(pos_a[axis], dims_a[axis])
        min_b, max_b = box_interval(pos_b[axis], dims_b[axis])
        shared.append(max(0.0, min(max_a, max_b) - max(min_a, min_b)))
    return shared


def overlap_amount(pos_a: Vec3, dims_a: Vec3, pos_b: Vec3, dims_b: Vec3) -> float:
    """Smallest horizontal push separating two boxes, 0 when they do not overlap."""
    if not box_overlaps(pos_a, dims_a, pos_b, dims_b):
        return 0.0
    pushes = []
    for axis in (0, 2):
        min_a, max_a = box_interval(pos_a[axis], dims_a[axis])
        min_b, max_b = box_interval(pos_b[axis], dims_b[axis])
        pushes.append(min(max_a, max_b) - max(min_a, min_b))
    return min(pushes)


__all__ = [
    "Vec3",
    "DIRECTIONS",
    "OPPOSITES",
    "HORIZONTAL",
    "VERTICAL",
    "AXIS_OF",
    "Bounds",
    "as_vec3",
    "step",
    "manhattan",
    "horizontal_distance",
    "direction_between",
    "box_overlaps",
    "wall_overlap",
    "overlap_amount",
]
