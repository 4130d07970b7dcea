from __future__ import annotations

from typing import Iterable

from email_autoslice.slicing.contracts import ForbiddenBand, TextBlock


def build_forbidden_bands(blocks: Iterable[TextBlock], padding: int = 4) -> list[ForbiddenBand]:
    """
    Pad each block's vertical extent and merge the results into sorted,
    non-overlapping no-cut intervals. Touching intervals are merged too.
    """
    if padding < 0:
        raise ValueError("padding must be >= 0")

    padded = sorted(
        (max(0, b.y_top - padding), b.y_bottom + padding) for b in blocks
    )
    if not padded:
        return []

    out: list[ForbiddenBand] = []
    cur_top, cur_bottom = padded[0]
    for top, bottom in padded[1:]:
        if top <= cur_bottom:
            cur_bottom = max(cur_bottom, bottom)
            continue
        out.append(ForbiddenBand(cur_top, cur_bottom))
        cur_top, cur_bottom = top, bottom
    out.append(ForbiddenBand(cur_top, cur_bottom))
    return out


def inside_any_band(y: int, bands: Iterable[ForbiddenBand]) -> bool:
    return any(b.contains(y) for b in bands)
