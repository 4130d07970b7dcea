from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from email_autoslice.slicing.contracts import ForbiddenBand


@dataclass(frozen=True)
class Gap:
    y: int  # cut position at the gap centre
    size: int


def find_gaps(bands: Iterable[ForbiddenBand], min_gap: int = 20) -> list[Gap]:
    ordered = sorted(bands, key=lambda b: b.y_top)
    out: list[Gap] = []
    for prev, nxt in zip(ordered, ordered[1:]):
        size = nxt.y_top - prev.y_bottom
        if size > min_gap:
            out.append(Gap(y=prev.y_bottom + size // 2, size=size))
    return out


def find_gap_boundaries(
    bands: Iterable[ForbiddenBand],
    image_height: int,
    max_cuts: int,
    min_gap: int = 20,
    min_slice_height: int = 80,
) -> list[int]:
    """
    Propose cut positions at the largest empty gaps between text bands.

    Gaps are taken largest first; a gap is skipped when cutting there would leave
    any slice of [0, image_height] shorter than `min_slice_height`.
    """
    if image_height <= 0:
        raise ValueError("image_height must be > 0")

    gaps = sorted(find_gaps(bands, min_gap=min_gap), key=lambda g: (-g.size, g.y))

    selected: list[int] = []
    for gap in gaps:
        if len(selected) >= max_cuts:
            break
        trial = sorted([0, *selected, gap.y, image_height])
        if all(b - a >= min_slice_height for a, b in zip(trial, trial[1:])):
            selected.append(gap.y)
    return sorted(selected)
