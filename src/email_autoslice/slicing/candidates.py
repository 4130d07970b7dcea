from __future__ import annotations

from typing import Iterable

from email_autoslice.slicing.contracts import CandidateCutLine, CandidateCuts, CutType, LowRiskCutBand

NEUTRAL_STRENGTH = 0.5


def generate_candidate_cuts(
    image_height: int,
    step: int = 10,
    edges: Iterable[CandidateCutLine] | None = None,
    low_risk_multiple: int = 5,
) -> CandidateCuts:
    """
    Uniform grid of whitespace candidates strictly inside the image, merged with
    any pre-scored edge/colorShift lines from a visual detector.

    Low-risk bands sit on every `low_risk_multiple * step` grid position and
    extend `step // 2` either side, clamped to the image.
    """
    if image_height <= 0:
        raise ValueError("image_height must be > 0")
    if step <= 0:
        raise ValueError("step must be > 0")
    if low_risk_multiple <= 0:
        raise ValueError("low_risk_multiple must be > 0")

    by_y: dict[int, CandidateCutLine] = {
        y: CandidateCutLine(y=y, strength=NEUTRAL_STRENGTH, type=CutType.WHITESPACE)
        for y in range(step, image_height, step)
    }
    for e in edges or []:
        if not (0 < e.y < image_height):
            continue
        held = by_y.get(e.y)
        if held is None or e.strength > held.strength:
            by_y[e.y] = e

    coarse = step * low_risk_multiple
    half = step // 2
    bands: list[LowRiskCutBand] = []
    for y in range(coarse, image_height, coarse):
        bands.append(LowRiskCutBand(y_top=max(0, y - half), y_bottom=min(image_height, y + half)))

    return CandidateCuts(lines=[by_y[y] for y in sorted(by_y)], low_risk_bands=bands)


def nearest_cut(y: int, lines: Iterable[CandidateCutLine]) -> CandidateCutLine | None:
    # Exact ties go to the later (larger) y.
    best: CandidateCutLine | None = None
    for c in lines:
        if best is None:
            best = c
            continue
        d, bd = abs(c.y - y), abs(best.y - y)
        if d < bd or (d == bd and c.y > best.y):
            best = c
    return best
