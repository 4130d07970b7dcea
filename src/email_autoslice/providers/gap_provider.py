from __future__ import annotations

from pathlib import Path
from typing import Sequence

from email_autoslice.providers.base import BoundaryProposal, DetectedRegion
from email_autoslice.slicing.bands import build_forbidden_bands
from email_autoslice.slicing.config import SliceConfig
from email_autoslice.slicing.contracts import TextBlock
from email_autoslice.slicing.gaps import find_gap_boundaries


class GapBoundaryProposer:
    """
    Offline proposer: cut at the widest whitespace gaps between content bands.
    Detected objects and logos count as content alongside text.
    Leaves the footer decision to the detector.
    """

    name = "gap"

    def __init__(self, config: SliceConfig | None = None) -> None:
        self.config = config or SliceConfig()

    async def propose_boundaries(
        self,
        image_path: Path,
        blocks: list[TextBlock],
        image_width: int,
        image_height: int,
        regions: Sequence[DetectedRegion] = (),
    ) -> BoundaryProposal:
        cfg = self.config
        content = list(blocks) + [
            TextBlock(text=r.name, y_top=r.y_top, y_bottom=r.y_bottom, x_left=r.x_left, x_right=r.x_right)
            for r in regions
        ]
        bands = build_forbidden_bands(content, padding=cfg.padding_px)
        cuts = find_gap_boundaries(
            bands,
            image_height,
            max_cuts=cfg.gap_max_cuts,
            min_gap=cfg.gap_min_px,
            min_slice_height=cfg.gap_min_slice_height_px,
        )
        return BoundaryProposal(
            boundaries=cuts,
            footer_start_y=None,
            provider=self.name,
            model="find_gap_boundaries",
        )
