"""Public layout generation interface."""

from .assembler import Layout, ReplayResult, assemble_layout, replay
from .checks import analyze_graph, analyze_layout, analyze_rooms
from .config import PRESETS, GraphConfig, LayoutConfig, RoomConfig, ScaleRange
from .errors import (
    ConfigError,
    GraphIntegrityError,
    LayoutError,
    OverlapResolutionError,
    ProtocolError,
    SpatialConflictError,
)
from .geometry import Bounds
from .graph import GraphBuilder, PathGraph, Point, Segment, build_graph
from .incremental import (
    IncrementalGraphSession,
    PathComplete,
    SegmentProposal,
    SessionComplete,
    SessionFailed,
    SessionState,
    Verdict,
)
from .rng import DeterministicRNG, coerce_seed, fold_seed, generate_seed
from .rooms import STRATEGIES, Room, RoomPlacer, place_rooms
from .spatial import SpatialIndex
from .validators import BoxValidator  # noqa: F401

__all__ = [
    "Layout",
    "ReplayResult",
    "assemble_layout",
    "replay",
    "analyze_graph",
    "analyze_layout",
    "analyze_rooms",
    "PRESETS",
    "GraphConfig",
    "LayoutConfig",
    "RoomConfig",
    "ScaleRange",
    "Bounds",
    "ConfigError",
    "GraphIntegrityError",
    "LayoutError",
    "OverlapResolutionError",
    "ProtocolError",
    "SpatialConflictError",
    "GraphBuilder",
    "PathGraph",
    "Point",
    "Segment",
    "build_graph",
    "IncrementalGraphSession",
    "PathComplete",
    "SegmentProposal",
    "SessionComplete",
    "SessionFailed",
    "SessionState",
    "Verdict",
    "BoxValidator",
    "DeterministicRNG",
    "coerce_seed",
    "fold_seed",
    "generate_seed",
    "STRATEGIES",
    "Room",
    "RoomPlacer",
    "place_rooms",
    "SpatialIndex",
]
