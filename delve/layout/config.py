"""Generation configuration dataclasses, validation and presets.

A layout is fully determined by its seed plus these values, so every config
round-trips through ``to_dict``/``from_dict`` for storage.
"""
from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field, fields, replace
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from .errors import ConfigError
from .geometry import Bounds, Vec3, as_vec3

IntRange = Tuple[int, int]
Seed = Union[int, str]

STRATEGY_NAMES = ("Grid", "Poisson", "BSP", "Organic", "Radial")
CONNECTION_METHODS = ("Tree", "Adjacent")


def _snake(key: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", key).lower()


def _parse_range(name: str, value: Any) -> IntRange:
    try:
        if isinstance(value, Mapping):
            return (int(value["min"]), int(value["max"]))
        if isinstance(value, (list, tuple)) and len(value) == 2:
            return (int(value[0]), int(value[1]))
    except KeyError as exc:
        raise ConfigError(f"{name} needs 'min' and 'max'") from exc
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{name} bounds must be integers") from exc
    raise ConfigError(f"{name} must be [min, max] or {{'min': .., 'max': ..}}")


def _check_range(name: str, rng: IntRange, floor: int = 0) -> None:
    lo, hi = rng
    if lo < floor:
        raise ConfigError(f"{name} minimum must be >= {floor}, got {lo}")
    if hi < lo:
        raise ConfigError(f"{name} is inverted: {lo} > {hi}")


def _check_probability(name: str, value: float) -> None:
    if not 0.0 <= value <= 1.0:
        raise ConfigError(f"{name} must be within [0, 1], got {value}")


def _parse_vec(name: str, value: Any) -> Vec3:
    try:
        return as_vec3(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{name} must be a 3 component vector") from exc


def parse_bounds(value: Any) -> Optional[Bounds]:
    if value is None or isinstance(value, Bounds):
        return value
    if not isinstance(value, Mapping):
        raise ConfigError("bounds must be a mapping")
    if "min" in value and "max" in value:
        return Bounds(_parse_vec("bounds.min", value["min"]), _parse_vec("bounds.max", value["max"]))
    try:
        xs, ys, zs = (value[k] for k in ("x", "y", "z"))
    except KeyError as exc:
        raise ConfigError("bounds needs min/max or x/y/z ranges") from exc
    return Bounds((float(xs[0]), float(ys[0]), float(zs[0])), (float(xs[1]), float(ys[1]), float(zs[1])))


def _build(cls, opts: Dict[str, Any]):
    try:
        return cls(**opts).validate()
    except TypeError as exc:
        raise ConfigError(f"invalid {cls.__name__} value: {exc}") from exc


def _normalize_keys(cls, data: Mapping[str, Any]) -> Dict[str, Any]:
    known = {f.name for f in fields(cls)}
    out: Dict[str, Any] = {}
    for key, value in data.items():
        name = _snake(key)
        if name not in known:
            raise ConfigError(f"unknown {cls.__name__} option: {key}")
        out[name] = value
    return out


@dataclass
class GraphConfig:
    base_unit: float = 15
    seed: Optional[Seed] = None
    spur_count: IntRange = (2, 5)
    loop_count: IntRange = (1, 3)
    max_segments: int = 60
    max_segments_per_path: int = 10
    step_length: IntRange = (1, 4)
    spur_steps: IntRange = (2, 5)
    loop_distance: IntRange = (2, 6)
    vertical_chance: float = 0.15
    switchback_chance: float = 0.25
    goal_bias: float = 0.7
    straightness: float = 0.0
    allow_up: bool = True
    allow_down: bool = True
    bounds: Optional[Bounds] = None
    max_overlap_retries: int = 8

    def validate(self) -> "GraphConfig":
        if self.base_unit <= 0:
            raise ConfigError(f"base_unit must be positive, got {self.base_unit}")
        _check_range("spur_count", self.spur_count)
        _check_range("loop_count", self.loop_count)
        _check_range("step_length", self.step_length, floor=1)
        _check_range("spur_steps", self.spur_steps, floor=1)
        _check_range("loop_distance", self.loop_distance, floor=1)
        if self.max_segments < 0:
            raise ConfigError("max_segments must be >= 0")
        if self.max_segments_per_path < 1:
            raise ConfigError("max_segments_per_path must be >= 1")
        if self.max_overlap_retries < 1:
            raise ConfigError("max_overlap_retries must be >= 1")
        for name in ("vertical_chance", "switchback_chance", "goal_bias", "straightness"):
            _check_probability(name, getattr(self, name))
        if self.bounds is not None and any(self.bounds.min[i] > self.bounds.max[i] for i in range(3)):
            raise ConfigError("bounds min exceeds max")
        return self

    def check_start(self, start: Vec3) -> None:
        if self.bounds is not None and not self.bounds.contains(start):
            raise ConfigError(f"start {start} lies outside bounds")

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "GraphConfig":
        opts = _normalize_keys(cls, data or {})
        for name in ("spur_count", "loop_count", "step_length", "spur_steps", "loop_distance"):
            if name in opts:
                opts[name] = _parse_range(name, opts[name])
        if "bounds" in opts:
            opts["bounds"] = parse_bounds(opts["bounds"])
        return _build(cls, opts)

    @classmethod
    def from_preset(cls, name: str, **overrides) -> "GraphConfig":
        preset = PRESETS.get(name.lower())
        if preset is None:
            raise ConfigError(f"unknown preset: {name}")
        return replace(preset, **overrides).validate()

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["spur_count"] = list(self.spur_count)
        data["loop_count"] = list(self.loop_count)
        data["step_length"] = list(self.step_length)
        data["spur_steps"] = list(self.spur_steps)
        data["loop_distance"] = list(self.loop_distance)
        data["bounds"] = self.bounds.to_dict() if self.bounds else None
        return data


@dataclass(frozen=True)
class ScaleRange:
    min: int = 2
    max: int = 5
    min_y: int = 2
    max_y: int = 4

    @classmethod
    def parse(cls, value: Any) -> "ScaleRange":
        if isinstance(value, ScaleRange):
            return value
        if isinstance(value, Mapping):
            opts = {_snake(k): int(v) for k, v in value.items()}
            lo, hi = opts.get("min", cls.min), opts.get("max", cls.max)
            return cls(lo, hi, opts.get("min_y", lo), opts.get("max_y", hi))
        lo, hi = _parse_range("scale_range", value)
        return cls(lo, hi, lo, hi)


@dataclass
class RoomConfig:
    base_unit: float = 15
    seed: Optional[Seed] = None
    strategy: str = "Poisson"
    scale_range: ScaleRange = field(default_factory=ScaleRange)
    min_door_size: float = 4
    wall_thickness: float = 1
    max_rooms: int = 25
    max_attempts: int = 50
    origin: Optional[Vec3] = None
    rings: int = 2
    rooms_per_ring: int = 6
    ring_spacing: Optional[float] = None
    connection_method: str = "Tree"
    max_connections: int = 4
    extra_connection_chance: float = 0.3

    def validate(self) -> "RoomConfig":
        if self.base_unit <= 0:
            raise ConfigError(f"base_unit must be positive, got {self.base_unit}")
        if canonical_strategy(self.strategy) is None:
            raise ConfigError(f"unknown strategy: {self.strategy} (choose from {', '.join(STRATEGY_NAMES)})")
        sr = self.scale_range
        _check_range("scale_range", (sr.min, sr.max), floor=1)
        _check_range("scale_range.y", (sr.min_y, sr.max_y), floor=1)
        if self.min_door_size < 0:
            raise ConfigError("min_door_size must be >= 0")
        if self.wall_thickness < 0:
            raise ConfigError("wall_thickness must be >= 0")
        if self.max_rooms < 1:
            raise ConfigError("max_rooms must be >= 1")
        if self.max_attempts < 1:
            raise ConfigError("max_attempts must be >= 1")
        if self.rings < 1 or self.rooms_per_ring < 1:
            raise ConfigError("rings and rooms_per_ring must be >= 1")
        if self.ring_spacing is not None and self.ring_spacing <= 0:
            raise ConfigError("ring_spacing must be positive")
        if self.connection_method not in CONNECTION_METHODS:
            raise ConfigError(f"connection_method must be one of {CONNECTION_METHODS}")
        if self.max_connections < 1:
            raise ConfigError("max_connections must be >= 1")
        _check_probability("extra_connection_chance", self.extra_connection_chance)
        # A door wider than the smallest wall can never be cut.
        smallest = min(sr.min, sr.min_y) * self.base_unit
        if self.min_door_size > smallest:
            raise ConfigError(f"min_door_size {self.min_door_size} exceeds smallest room wall {smallest}")
        return self

    @property
    def max_hop(self) -> float:
        """Largest horizontal center distance between a room and its parent."""
        reach = self.scale_range.max * self.base_unit
        lateral = max(0.0, reach - self.min_door_size)
        return (reach ** 2 + lateral ** 2) ** 0.5

    @property
    def effective_ring_spacing(self) -> float:
        return self.ring_spacing if self.ring_spacing is not None else self.max_hop

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "RoomConfig":
        opts = _normalize_keys(cls, data or {})
        if "scale_range" in opts:
            opts["scale_range"] = ScaleRange.parse(opts["scale_range"])
        if opts.get("origin") is not None:
            opts["origin"] = _parse_vec("origin", opts["origin"])
        return _build(cls, opts)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["origin"] = list(self.origin) if self.origin is not None else None
        return data


def canonical_strategy(name: str) -> Optional[str]:
    for known in STRATEGY_NAMES:
        if known.lower() == str(name).lower():
            return known
    return None


@dataclass
class LayoutConfig:
    graph: GraphConfig = field(default_factory=GraphConfig)
    rooms: RoomConfig = field(default_factory=RoomConfig)
    seed: Optional[Seed] = None
    start: Vec3 = (0.0, 0.0, 0.0)
    goals: List[Vec3] = field(default_factory=lambda: [(150.0, 0.0, 150.0)])
    include_rooms: bool = True

    def validate(self) -> "LayoutConfig":
        self.graph.validate()
        self.rooms.validate()
        self.graph.check_start(self.start)
        return self

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "LayoutConfig":
        data = dict(data or {})
        preset = data.pop("preset", None)
        graph_opts = data.pop("graph", None) or {}
        if preset:
            base = GraphConfig.from_preset(preset)
            graph = GraphConfig.from_dict({**base.to_dict(), **graph_opts})
        else:
            graph = GraphConfig.from_dict(graph_opts)
        rooms = RoomConfig.from_dict(data.pop("rooms", None) or {})
        opts = _normalize_keys(cls, data)
        if "start" in opts:
            opts["start"] = _parse_vec("start", opts["start"])
        if "goals" in opts:
            opts["goals"] = [_parse_vec("goal", g) for g in (opts["goals"] or [])]
        return cls(graph=graph, rooms=rooms, **opts).validate()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "graph": self.graph.to_dict(),
            "rooms": self.rooms.to_dict(),
            "seed": self.seed,
            "start": list(self.start),
            "goals": [list(g) for g in self.goals],
            "include_rooms": self.include_rooms,
        }


PRESETS: Dict[str, GraphConfig] = {
    # tight corridors, frequent drops
    "dungeon": GraphConfig(base_unit=12, spur_count=(3, 6), max_segments_per_path=10,
                           vertical_chance=0.25, straightness=0.3, goal_bias=0.5),
    "cavern": GraphConfig(base_unit=20, spur_count=(2, 4), max_segments_per_path=6,
                          vertical_chance=0.15, straightness=0.6, goal_bias=0.4),
    "tower": GraphConfig(base_unit=15, spur_count=(1, 2), max_segments_per_path=12,
                         vertical_chance=0.6, allow_down=False, straightness=0.2, goal_bias=0.3),
    "mine": GraphConfig(base_unit=10, spur_count=(4, 8), max_segments_per_path=15,
                        vertical_chance=0.4, allow_up=False, straightness=0.7, goal_bias=0.2),
    "labyrinth": GraphConfig(base_unit=12, spur_count=(5, 10), max_segments_per_path=20,
                             vertical_chance=0.0, straightness=0.8, goal_bias=0.6),
    "station": GraphConfig(base_unit=18, spur_count=(2, 4), max_segments_per_path=8,
                           vertical_chance=0.1, straightness=0.5, goal_bias=0.7),
    "cathedral": GraphConfig(base_unit=25, spur_count=(1, 3), max_segments_per_path=5,
                             vertical_chance=0.05, straightness=0.4, goal_bias=0.8),
    "bunker": GraphConfig(base_unit=10, spur_count=(2, 3), max_segments_per_path=6,
                          vertical_chance=0.05, straightness=0.6, goal_bias=0.5),
}


__all__ = [
    "GraphConfig",
    "RoomConfig",
    "LayoutConfig",
    "ScaleRange",
    "PRESETS",
    "STRATEGY_NAMES",
    "CONNECTION_METHODS",
    "canonical_strategy",
    "parse_bounds",
]
