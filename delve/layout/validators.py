"""Reference validator for :class:`~delve.layout.incremental.IncrementalGraphSession`.

Keeps one box per accepted point and rejects a proposal whose end box
penetrates any box except the one around the segment's own start point.
Useful for harnesses and tests; real consumers plug in their own geometry.
"""
from __future__ import annotations

from typing import Dict, Tuple

from ..logging_utils import get_logger
from .geometry import Vec3, box_overlaps, overlap_amount
from .incremental import SegmentProposal, Verdict

log = get_logger("delve.layout.validators")


class BoxValidator:
    def __init__(self, base_unit: float = 15, room_scale: float = 1.0, height_scale: float = 1.0):
        self.base_unit = base_unit
        size = room_scale * base_unit
        self.dims: Vec3 = (size, height_scale * base_unit, size)
        self.boxes: Dict[int, Vec3] = {}
        self.checked = 0
        self.rejected = 0

    def _conflict(self, proposal: SegmentProposal) -> Tuple[int, float]:
        worst_id, worst = 0, 0.0
        for pid, pos in self.boxes.items():
            if pid == proposal.from_id:
                continue
            if not box_overlaps(proposal.to_pos, self.dims, pos, self.dims):
                continue
            amount = overlap_amount(proposal.to_pos, self.dims, pos, self.dims)
            if amount > worst:
                worst_id, worst = pid, amount
        return worst_id, worst

    def __call__(self, proposal: SegmentProposal) -> Verdict:
        self.checked += 1
        self.boxes.setdefault(proposal.from_id, proposal.from_pos)
        other, amount = self._conflict(proposal)
        if amount > 0:
            self.rejected += 1
            log.debug(event="box_overlap", point=proposal.to_id, against=other, overlap=amount)
            return Verdict(False, amount)
        self.boxes[proposal.to_id] = proposal.to_pos
        return Verdict(True)


__all__ = ["BoxValidator"]
