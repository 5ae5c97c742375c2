"""Exception types raised by the layout generator.

Exhaustion (segment budget, attempt budget, stalled walks) is never an
exception; callers always receive a graph, possibly a small one.
"""


class LayoutError(Exception):
    """Base class for generator errors."""


class ConfigError(LayoutError, ValueError):
    """Invalid configuration; generation does not start."""


class ProtocolError(LayoutError):
    """A message arrived that the incremental session was not expecting."""


class GraphIntegrityError(LayoutError):
    """Internal data inconsistency (missing point, duplicate registration)."""


class SpatialConflictError(GraphIntegrityError):
    """Two different point ids were registered on the same grid cell."""


class OverlapResolutionError(LayoutError):
    """An incremental segment could not be placed within the retry ceiling."""

    def __init__(self, point_id: int, attempts: int):
        super().__init__(f"point {point_id} still rejected after {attempts} attempts")
        self.point_id = point_id
        self.attempts = attempts


__all__ = [
    "LayoutError",
    "ConfigError",
    "ProtocolError",
    "GraphIntegrityError",
    "SpatialConflictError",
    "OverlapResolutionError",
]
