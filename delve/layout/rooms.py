"""Room volume placement.

One growth engine (:func:`grow_rooms`) attaches axis-aligned boxes to
already placed boxes. Where the next room goes is decided by a strategy
object with two policies:

``select_parent(rooms, rng)``
    which placed room to attach to, as ``(room, index)`` or None to stop.
``select_faces(parent, rng)``
    the parent faces (direction keys) to try, in order.

Optional hooks ``admits(position)``, ``placed(room)`` and ``finished()`` let
a strategy veto a candidate, track its own state and end growth early.

Every room after the first touches its parent with a shared wall of at least
``min_door_size`` on both non-touch axes, and no two rooms interpenetrate
beyond ``wall_thickness``.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple, Type

from ..logging_utils import get_logger
from .config import RoomConfig, canonical_strategy
from .errors import ConfigError
from .geometry import (
    AXIS_OF,
    DIRECTIONS,
    EAST,
    NORTH,
    SOUTH,
    WEST,
    Vec3,
    as_vec3,
    box_overlaps,
    horizontal_distance,
    wall_overlap,
)
from .metrics import init_room_metrics
from .rng import DeterministicRNG, make_rng

log = get_logger("delve.layout.rooms")

Face = str
HORIZONTAL_FACES: Tuple[Face, ...] = (EAST, WEST, NORTH, SOUTH)


@dataclass
class Room:
    index: int
    position: Vec3
    scale: Tuple[int, int, int]
    parent_id: Optional[int] = None
    depth: int = 0
    connections: List[int] = field(default_factory=list)
    base_unit: float = 15

    @property
    def dims(self) -> Vec3:
        u = self.base_unit
        return (self.scale[0] * u, self.scale[1] * u, self.scale[2] * u)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'index': self.index,
            'position': list(self.position),
            'scale': list(self.scale),
            'parent_id': self.parent_id,
            'depth': self.depth,
            'connections': list(self.connections),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], base_unit: float = 15) -> "Room":
        return cls(
            index=int(data['index']),
            position=as_vec3(data['position']),
            scale=tuple(int(s) for s in data['scale']),
            parent_id=data.get('parent_id'),
            depth=int(data.get('depth', 0)),
            connections=[int(c) for c in data.get('connections', [])],
            base_unit=base_unit,
        )


def _child_counts(rooms: Sequence[Room]) -> List[int]:
    counts = [0] * len(rooms)
    for room in rooms:
        if room.parent_id is not None:
            counts[room.parent_id] += 1
    return counts


def _shuffled_faces(faces: Sequence[Face], rng: DeterministicRNG) -> List[Face]:
    return rng.shuffle(list(faces))


class GrowthStrategy:
    """Base strategy: uniform parent, shuffled horizontal faces."""

    name = "Base"

    def __init__(self, config: RoomConfig):
        self.config = config

    def target_rooms(self) -> int:
        return self.config.max_rooms

    def select_parent(self, rooms: Sequence[Room], rng: DeterministicRNG):
        idx = rng.int_range(0, len(rooms) - 1)
        return rooms[idx], idx

    def select_faces(self, parent: Room, rng: DeterministicRNG) -> List[Face]:
        return _shuffled_faces(HORIZONTAL_FACES, rng)

    def admits(self, position: Vec3) -> bool:
        return True

    def placed(self, room: Room) -> None:
        pass

    def finished(self) -> bool:
        return False


class GridStrategy(GrowthStrategy):
    """Tendrils: later rooms are likelier parents (weight = index + 1)."""

    name = "Grid"

    def select_parent(self, rooms, rng):
        idx = rng.weighted_index([i + 1 for i in range(len(rooms))])
        return rooms[idx], idx


class PoissonStrategy(GrowthStrategy):
    name = "Poisson"


class BSPStrategy(GrowthStrategy):
    """Balanced growth: fewest-children parents, alternating axis faces."""

    name = "BSP"

    def __init__(self, config):
        super().__init__(config)
        self._axis = 0

    def select_parent(self, rooms, rng):
        counts = _child_counts(rooms)
        fewest = min(counts)
        candidates = [i for i, c in enumerate(counts) if c == fewest]
        idx = rng.choice(candidates)
        return rooms[idx], idx

    def select_faces(self, parent, rng):
        self._axis = 2 if self._axis == 0 else 0
        faces = (EAST, WEST) if self._axis == 0 else (NORTH, SOUTH)
        return _shuffled_faces(faces, rng)


class OrganicStrategy(GrowthStrategy):
    """Mostly extend one of the newest rooms, sometimes backtrack."""

    name = "Organic"
    BACKTRACK_PERCENT = 30

    def select_parent(self, rooms, rng):
        n = len(rooms)
        if rng.int_range(1, 100) <= self.BACKTRACK_PERCENT and n > 3:
            idx = rng.int_range(0, max(1, n - 3) - 1)
        else:
            idx = rng.int_range(max(0, n - 3), n - 1)
        return rooms[idx], idx


class RadialStrategy(GrowthStrategy):
    """Concentric rings around the origin.

    Ring ``k`` rooms attach to ring ``k - 1`` rooms, least-used parents first,
    on faces pointing away from the origin, and must lie within
    ``k * ring_spacing`` of it on the horizontal plane. A ring that cannot be
    filled within ``max_attempts`` attempts is closed as it stands.
    """

    name = "Radial"

    def __init__(self, config):
        super().__init__(config)
        self.origin = config.origin or (0.0, 0.0, 0.0)
        self.spacing = config.effective_ring_spacing
        self.ring = 1
        self.ring_filled = 0
        self.ring_attempts = 0
        self.closed_early = 0

    def target_rooms(self) -> int:
        return min(self.config.max_rooms, 1 + self.config.rings * self.config.rooms_per_ring)

    def _next_ring(self) -> None:
        self.ring += 1
        self.ring_filled = 0
        self.ring_attempts = 0

    def select_parent(self, rooms, rng):
        if self.ring_attempts >= self.config.max_attempts:
            self.closed_early += 1
            log.debug(event="ring_closed_early", ring=self.ring, filled=self.ring_filled)
            self._next_ring()
            if self.finished():
                return None
        self.ring_attempts += 1
        counts = _child_counts(rooms)
        inner = [i for i, r in enumerate(rooms) if r.depth == self.ring - 1]
        if not inner:
            return None
        fewest = min(counts[i] for i in inner)
        idx = rng.choice([i for i in inner if counts[i] == fewest])
        return rooms[idx], idx

    def select_faces(self, parent, rng):
        dx = parent.position[0] - self.origin[0]
        dz = parent.position[2] - self.origin[2]
        faces = []
        if dx >= 0:
            faces.append(EAST)
        if dx <= 0:
            faces.append(WEST)
        if dz >= 0:
            faces.append(NORTH)
        if dz <= 0:
            faces.append(SOUTH)
        if len(faces) < 2:
            faces = list(HORIZONTAL_FACES)
        return _shuffled_faces(faces, rng)

    def admits(self, position):
        return horizontal_distance(position, self.origin) <= self.ring * self.spacing + 1e-6

    def placed(self, room):
        self.ring_filled += 1
        if self.ring_filled >= self.config.rooms_per_ring:
            self._next_ring()

    def finished(self):
        return self.ring > self.config.rings


STRATEGIES: Dict[str, Type[GrowthStrategy]] = {
    "Grid": GridStrategy,
    "Poisson": PoissonStrategy,
    "BSP": BSPStrategy,
    "Organic": OrganicStrategy,
    "Radial": RadialStrategy,
}


def get_strategy(name: str, config: RoomConfig) -> GrowthStrategy:
    key = canonical_strategy(name)
    if key is None:
        raise ConfigError(f"unknown strategy: {name}")
    return STRATEGIES[key](config)


def _random_scale(config: RoomConfig, rng: DeterministicRNG) -> Tuple[int, int, int]:
    sr = config.scale_range
    return (rng.int_range(sr.min, sr.max), rng.int_range(sr.min_y, sr.max_y), rng.int_range(sr.min, sr.max))


def _try_attach(parent: Room, scale, face: Face, rooms: Sequence[Room], config: RoomConfig,
                rng: DeterministicRNG, metrics: Dict[str, Any]) -> Optional[Vec3]:
    u = config.base_unit
    door = config.min_door_size
    parent_dims = parent.dims
    new_dims = (scale[0] * u, scale[1] * u, scale[2] * u)
    touch = AXIS_OF[face]
    sign = DIRECTIONS[face][touch]
    pos = list(parent.position)
    pos[touch] = parent.position[touch] + sign * (parent_dims[touch] / 2 + new_dims[touch] / 2)
    for axis in range(3):
        if axis == touch:
            continue
        max_offset = parent_dims[axis] / 2 + new_dims[axis] / 2 - door
        if max_offset > 0:
            pos[axis] = parent.position[axis] + rng.float_range(-max_offset, max_offset)
    pos = (pos[0], pos[1], pos[2])
    if min(wall_overlap(parent.position, parent_dims, pos, new_dims, touch)) < door:
        metrics['rejected_door'] += 1
        return None
    for other in rooms:
        if box_overlaps(pos, new_dims, other.position, other.dims, config.wall_thickness):
            metrics['rejected_overlap'] += 1
            return None
    return pos


def grow_rooms(config: RoomConfig, rng: DeterministicRNG, strategy: GrowthStrategy,
               metrics: Optional[Dict[str, Any]] = None) -> List[Room]:
    if metrics is None:
        metrics = init_room_metrics()
    origin = config.origin or (0.0, 0.0, 0.0)
    u = config.base_unit
    rooms = [Room(0, as_vec3(origin), _random_scale(config, rng), None, 0, [], u)]
    target = strategy.target_rooms()
    budget = config.max_attempts * target
    attempts = 0
    while len(rooms) < target and attempts < budget and not strategy.finished():
        attempts += 1
        picked = strategy.select_parent(rooms, rng)
        if picked is None:
            break
        parent, parent_idx = picked
        faces = strategy.select_faces(parent, rng)
        scale = _random_scale(config, rng)
        for face in faces:
            pos = _try_attach(parent, scale, face, rooms, config, rng, metrics)
            if pos is None or not strategy.admits(pos):
                continue
            room = Room(len(rooms), pos, scale, parent_idx, parent.depth + 1, [parent_idx], u)
            parent.connections.append(room.index)
            rooms.append(room)
            strategy.placed(room)
            break
    metrics['attempts'] = attempts
    metrics['rooms_placed'] = len(rooms)
    if len(rooms) < target:
        log.debug(event="room_growth_short", strategy=strategy.name, placed=len(rooms), target=target,
                  attempts=attempts)
    return rooms


def adjacent(a: Room, b: Room, config: RoomConfig) -> bool:
    """Touching on some axis (within two wall thicknesses) with a door-sized shared wall."""
    pa, da, pb, db = a.position, a.dims, b.position, b.dims
    for axis in range(3):
        gap = abs(abs(pb[axis] - pa[axis]) - (da[axis] / 2 + db[axis] / 2))
        if gap > config.wall_thickness * 2:
            continue
        if min(wall_overlap(pa, da, pb, db, axis)) >= config.min_door_size:
            return True
    return False


def add_extra_connections(rooms: List[Room], config: RoomConfig, rng: DeterministicRNG,
                          metrics: Optional[Dict[str, Any]] = None) -> int:
    """Link adjacent, not yet connected rooms to form loops. Returns the count added."""
    added = 0
    cap = config.max_connections
    for i, a in enumerate(rooms):
        for b in rooms[i + 1:]:
            if b.index in a.connections or not adjacent(a, b, config):
                continue
            if len(a.connections) >= cap or len(b.connections) >= cap:
                continue
            if rng.chance(config.extra_connection_chance):
                a.connections.append(b.index)
                b.connections.append(a.index)
                added += 1
    if metrics is not None:
        metrics['extra_connections'] = added
    return added


class RoomPlacer:
    def __init__(self, config: Optional[RoomConfig] = None, rng: Optional[DeterministicRNG] = None):
        self.config = (config or RoomConfig()).validate()
        self.rng = rng if rng is not None else make_rng(self.config.seed)
        self.strategy = get_strategy(self.config.strategy, self.config)
        self.metrics = init_room_metrics()

    def generate(self) -> List[Room]:
        cfg = self.config
        rooms = grow_rooms(cfg, self.rng, self.strategy, self.metrics)
        if cfg.connection_method != "Tree" and cfg.max_connections > 1:
            add_extra_connections(rooms, cfg, self.rng, self.metrics)
        if isinstance(self.strategy, RadialStrategy):
            self.metrics['rings_closed_early'] = self.strategy.closed_early
        log.info(event="rooms_placed", strategy=self.strategy.name, seed=self.rng.seed, rooms=len(rooms),
                 attempts=self.metrics['attempts'], extra_connections=self.metrics['extra_connections'])
        return rooms


def place_rooms(config: Optional[RoomConfig] = None, rng: Optional[DeterministicRNG] = None) -> List[Room]:
    return RoomPlacer(config, rng).generate()


__all__ = [
    "Room",
    "Face",
    "HORIZONTAL_FACES",
    "GrowthStrategy",
    "GridStrategy",
    "PoissonStrategy",
    "BSPStrategy",
    "OrganicStrategy",
    "RadialStrategy",
    "STRATEGIES",
    "get_strategy",
    "grow_rooms",
    "adjacent",
    "add_extra_connections",
    "RoomPlacer",
    "place_rooms",
]
