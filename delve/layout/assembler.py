"""Compose the graph and the rooms into one layout record.

Provides the public entry point used by the CLI and the HTTP API. One RNG
per session feeds the graph builder first and the room placer second, so the
seed plus the configuration is all that needs storing.
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Union

from ..logging_utils import get_logger
from .config import LayoutConfig
from .graph import GraphBuilder, PathGraph
from .metrics import init_layout_metrics, metrics_enabled
from .rng import DeterministicRNG, generate_seed
from .rooms import Room, RoomPlacer

log = get_logger("delve.layout.assembler")

# Keys compared by replay(); metrics and timings legitimately differ per run.
REPLAY_KEYS = ("points", "segments", "start", "goals", "seed", "rooms")


@dataclass
class Layout:
    graph: PathGraph
    rooms: List[Room]
    seed: Any
    config: LayoutConfig
    metrics: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        record = self.graph.to_dict()
        record['seed'] = self.seed
        record['rooms'] = [r.to_dict() for r in self.rooms]
        record['config'] = self.config.to_dict()
        record['metrics'] = dict(self.metrics)
        return record

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Layout":
        config = LayoutConfig.from_dict(data.get('config') or {})
        graph = PathGraph.from_dict(data)
        rooms = [Room.from_dict(r, config.rooms.base_unit) for r in data.get('rooms', [])]
        return cls(graph, rooms, data.get('seed'), config, dict(data.get('metrics') or {}))


@dataclass
class ReplayResult:
    matches: bool
    differences: List[str]
    layout: Layout


def _resolve_seed(config: LayoutConfig):
    if config.seed is not None:
        return config.seed
    if config.graph.seed is not None:
        return config.graph.seed
    return generate_seed()


def assemble_layout(config: Optional[LayoutConfig] = None) -> Layout:
    config = (config or LayoutConfig()).validate()
    seed = _resolve_seed(config)
    config = replace(config, seed=seed)
    rng = DeterministicRNG(seed)
    enable_metrics = metrics_enabled()
    metrics: Dict[str, Any] = init_layout_metrics() if enable_metrics else {}

    if enable_metrics:
        start = time.perf_counter()
        phase_times = {}

        def _phase(label, fn, *a, **k):
            ps = time.perf_counter()
            r = fn(*a, **k)
            phase_times[label] = int((time.perf_counter() - ps) * 1000)
            return r
    else:
        def _phase(label, fn, *a, **k):
            return fn(*a, **k)

    builder = GraphBuilder(config.graph, rng)
    graph = _phase('graph', builder.build, config.start, config.goals)
    rooms: List[Room] = []
    placer = None
    if config.include_rooms:
        room_cfg = config.rooms
        if room_cfg.origin is None:
            room_cfg = replace(room_cfg, origin=graph.get(graph.start_id).position)
        placer = RoomPlacer(room_cfg, rng)
        rooms = _phase('rooms', placer.generate)

    if enable_metrics:
        metrics['graph'] = dict(builder.metrics)
        if placer is not None:
            metrics['rooms'] = dict(placer.metrics)
        metrics['rng_draws'] = rng.draws
        metrics['phase_ms'] = phase_times
        metrics['runtime_ms'] = int((time.perf_counter() - start) * 1000)

    log.info(event="layout_assembled", seed=seed, points=len(graph.points), segments=len(graph.segments),
             rooms=len(rooms), runtime_ms=metrics.get('runtime_ms'))
    return Layout(graph, rooms, seed, config, metrics)


def replay(record: Union[Dict[str, Any], Layout]) -> ReplayResult:
    """Regenerate a stored record from its seed and config and diff the result."""
    if isinstance(record, Layout):
        record = record.to_dict()
    config = LayoutConfig.from_dict(record.get('config') or {})
    config = replace(config, seed=record.get('seed', config.seed))
    fresh = assemble_layout(config)
    regenerated = fresh.to_dict()
    differences = [key for key in REPLAY_KEYS if _normalize(record.get(key)) != _normalize(regenerated.get(key))]
    if differences:
        log.warn(event="replay_mismatch", seed=config.seed, keys=",".join(differences))
    return ReplayResult(not differences, differences, fresh)


def _normalize(value):
    # JSON round-trips turn tuples into lists and int keys into strings.
    if isinstance(value, dict):
        return {str(k): _normalize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_normalize(v) for v in value]
    return value


__all__ = ["Layout", "ReplayResult", "assemble_layout", "replay", "REPLAY_KEYS"]
