from __future__ import annotations

import logging
from typing import Any, Iterable

from email_autoslice.slicing.bands import inside_any_band
from email_autoslice.slicing.contracts import (
    CandidateCutLine,
    ForbiddenBand,
    LowRiskCutBand,
    RepairEvent,
    Slice,
    SliceResult,
)

logger = logging.getLogger(__name__)


def _coerce(values: Iterable[Any], repairs: list[RepairEvent]) -> list[int]:
    out: list[int] = []
    for v in values:
        try:
            out.append(int(round(float(v))))
        except (TypeError, ValueError, OverflowError):
            repairs.append(RepairEvent(kind="invalid", boundary=None))
    return out


def _nearest_point(y: int, points: Iterable[int]) -> int | None:
    # Exact ties go to the later (larger) y, same rule as candidate snapping.
    best: int | None = None
    for p in points:
        if best is None or abs(p - y) < abs(best - y) or (abs(p - y) == abs(best - y) and p > best):
            best = p
    return best


def _low_risk_target(
    y: int,
    low_risk_bands: list[LowRiskCutBand],
    forbidden: list[ForbiddenBand],
    footer_start_y: int,
) -> int | None:
    points: set[int] = set()
    for lr in low_risk_bands:
        top = max(0, lr.y_top)
        bottom = min(footer_start_y, lr.y_bottom)
        if top > bottom:
            continue
        points.update((top, bottom, max(top, min(bottom, y))))
        # The lawful part of a low-risk band is bounded by forbidden band edges.
        for fb in forbidden:
            for edge in (fb.y_top, fb.y_bottom):
                if top <= edge <= bottom:
                    points.add(edge)
    lawful = [p for p in points if not inside_any_band(p, forbidden)]
    return _nearest_point(y, lawful)


def validate_boundaries(
    boundaries: Iterable[Any],
    footer_start_y: int,
    forbidden_bands: Iterable[ForbiddenBand],
    candidate_lines: Iterable[CandidateCutLine],
    low_risk_bands: Iterable[LowRiskCutBand] = (),
    min_slice_height: int = 20,
) -> SliceResult:
    """
    Repair an untrusted boundary proposal into a lawful partition of [0, footer_start_y].

    Never raises on malformed boundaries: out-of-range values are dropped, the two
    endpoints are backfilled, boundaries strictly inside a forbidden band are
    snapped to the nearest lawful candidate line (then to the nearest lawful point
    of a low-risk band) or dropped, and boundaries closer than `min_slice_height`
    to the previous accepted one are merged away. Every change is reported in
    `SliceResult.repairs`.

    The endpoints 0 and `footer_start_y` are fixed and never snapped.
    """
    if min_slice_height < 0:
        raise ValueError("min_slice_height must be >= 0")

    footer = max(0, int(footer_start_y))
    bands = list(forbidden_bands)
    low_risk = list(low_risk_bands)
    repairs: list[RepairEvent] = []

    ordered = sorted(set(_coerce(boundaries, repairs)))

    kept: list[int] = []
    for b in ordered:
        if b < 0 or b > footer:
            repairs.append(RepairEvent(kind="out_of_range", boundary=b))
            continue
        kept.append(b)
    if not kept or kept[0] != 0:
        kept.insert(0, 0)
        repairs.append(RepairEvent(kind="endpoint_added", boundary=0))
    if kept[-1] != footer:
        kept.append(footer)
        repairs.append(RepairEvent(kind="endpoint_added", boundary=footer))

    lawful_lines = [c for c in candidate_lines if 0 <= c.y <= footer and not inside_any_band(c.y, bands)]
    snapped: list[int] = []
    for b in kept:
        if b in (0, footer) or not inside_any_band(b, bands):
            snapped.append(b)
            continue
        target = _nearest_point(b, (c.y for c in lawful_lines))
        if target is None:
            target = _low_risk_target(b, low_risk, bands, footer)
        if target is None:
            repairs.append(RepairEvent(kind="unsnappable", boundary=b))
            continue
        repairs.append(RepairEvent(kind="snapped", boundary=b, replacement=target))
        snapped.append(target)

    interior = [b for b in sorted(set(snapped)) if 0 < b < footer]

    accepted = [0]
    for b in interior:
        if b - accepted[-1] >= min_slice_height:
            accepted.append(b)
        else:
            repairs.append(RepairEvent(kind="too_close", boundary=b, replacement=accepted[-1]))

    if footer > 0:
        if len(accepted) > 1 and footer - accepted[-1] < min_slice_height:
            dropped = accepted.pop()
            repairs.append(RepairEvent(kind="tail_merged", boundary=dropped, replacement=footer))
        accepted.append(footer)

    for r in repairs:
        logger.debug("boundary repair: %s", r)

    slices = [Slice(y_top=a, y_bottom=b) for a, b in zip(accepted, accepted[1:])]
    return SliceResult(footer_start_y=footer, slices=slices, repairs=repairs)
