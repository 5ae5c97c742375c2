"""Quantized position -> point id lookup.

Positions are divided by the base unit and rounded half-up per axis, so two
positions that land in the same cell are the same logical point.
"""
from __future__ import annotations

import math
from typing import Dict, Iterator, Optional, Tuple

from .errors import SpatialConflictError
from .geometry import Vec3

Cell = Tuple[int, int, int]


class SpatialIndex:
    def __init__(self, unit: float):
        if unit <= 0:
            raise ValueError("spatial index unit must be positive")
        self.unit = unit
        self._cells: Dict[Cell, int] = {}

    def cell_of(self, pos: Vec3) -> Cell:
        u = self.unit
        return (
            math.floor(pos[0] / u + 0.5),
            math.floor(pos[1] / u + 0.5),
            math.floor(pos[2] / u + 0.5),
        )

    def lookup(self, pos: Vec3) -> Optional[int]:
        return self._cells.get(self.cell_of(pos))

    def register(self, point_id: int, pos: Vec3) -> Cell:
        cell = self.cell_of(pos)
        existing = self._cells.get(cell)
        if existing is not None and existing != point_id:
            raise SpatialConflictError(f"cell {cell} already holds point {existing}, cannot add {point_id}")
        self._cells[cell] = point_id
        return cell

    def unregister(self, point_id: int, pos: Vec3) -> None:
        cell = self.cell_of(pos)
        if self._cells.get(cell) == point_id:
            del self._cells[cell]

    def cells(self) -> Iterator[Tuple[Cell, int]]:
        return iter(self._cells.items())

    def __contains__(self, pos: Vec3) -> bool:
        return self.cell_of(pos) in self._cells

    def __len__(self) -> int:
        return len(self._cells)


__all__ = ["SpatialIndex", "Cell"]
