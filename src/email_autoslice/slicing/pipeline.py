from __future__ import annotations

import logging
from typing import Iterable

from email_autoslice.slicing.bands import build_forbidden_bands
from email_autoslice.slicing.candidates import generate_candidate_cuts, nearest_cut
from email_autoslice.slicing.config import SliceConfig
from email_autoslice.slicing.contracts import CandidateCutLine, SlicePlan, TextBlock
from email_autoslice.slicing.footer import detect_footer
from email_autoslice.slicing.gaps import find_gap_boundaries
from email_autoslice.slicing.postprocess import validate_boundaries

logger = logging.getLogger(__name__)


def plan_slices(
    blocks: Iterable[TextBlock],
    image_height: int,
    config: SliceConfig | None = None,
    boundaries: Iterable[int] | None = None,
    footer_start_y: int | None = None,
    edges: Iterable[CandidateCutLine] | None = None,
) -> SlicePlan:
    """
    Run bands -> candidates -> footer -> proposal -> validation for one screenshot.

    `boundaries` is an untrusted proposal (e.g. from a vision model); when it is
    None the largest text gaps are used instead. `footer_start_y`, when given,
    overrides the detected footer start after clamping and snapping; the
    detection is still reported on the plan.
    """
    if image_height <= 0:
        raise ValueError("image_height must be > 0")
    cfg = config or SliceConfig()
    blocks = list(blocks)

    bands = build_forbidden_bands(blocks, padding=cfg.padding_px)
    candidates = generate_candidate_cuts(
        image_height,
        step=cfg.candidate_step_px,
        edges=edges,
        low_risk_multiple=cfg.low_risk_multiple,
    )
    footer = detect_footer(blocks, image_height, candidates.lines)
    logger.info(
        "slicing: %d blocks, %d bands, %d candidates; footer at %d (%s, %d matches)",
        len(blocks),
        len(bands),
        len(candidates.lines),
        footer.start_y,
        footer.confidence.value,
        footer.match_count,
    )

    footer_y = footer.start_y
    if footer_start_y is not None:
        clamped = max(0, min(image_height, int(footer_start_y)))
        snapped = nearest_cut(clamped, candidates.lines)
        footer_y = clamped if snapped is None else snapped.y
        logger.info("slicing: footer override %d -> %d", footer_start_y, footer_y)

    if boundaries is None:
        proposed = find_gap_boundaries(
            [b for b in bands if b.y_bottom <= footer_y],
            footer_y if footer_y > 0 else image_height,
            max_cuts=cfg.gap_max_cuts,
            min_gap=cfg.gap_min_px,
            min_slice_height=cfg.gap_min_slice_height_px,
        )
    else:
        proposed = list(boundaries)

    result = validate_boundaries(
        proposed,
        footer_y,
        bands,
        candidates.lines,
        candidates.low_risk_bands,
        min_slice_height=cfg.min_slice_height_px,
    )
    logger.info("slicing: %d slices, %d repairs", len(result.slices), len(result.repairs))

    return SlicePlan(
        image_height=image_height,
        blocks=blocks,
        forbidden_bands=bands,
        candidates=candidates,
        footer=footer,
        proposed_boundaries=proposed,
        result=result,
    )
