from __future__ import annotations

import math

from PIL import Image

from email_autoslice.slicing.contracts import CandidateCutLine, CutType


def _row_average(px, y: int, width: int, pixel_step: int) -> tuple[float, float, float]:
    r = g = b = 0.0
    count = 0
    for x in range(0, width, pixel_step):
        pr, pg, pb = px[x, y][:3]
        r += pr
        g += pg
        b += pb
        count += 1
    return (r / count, g / count, b / count)


def _color_distance(a: tuple[float, float, float], b: tuple[float, float, float]) -> float:
    return math.sqrt((a[0] - b[0]) ** 2 + (a[1] - b[1]) ** 2 + (a[2] - b[2]) ** 2)


def detect_horizontal_edges(
    image: Image.Image,
    row_step: int = 5,
    pixel_step: int = 10,
    threshold: float = 35.0,
    min_strength: float = 0.5,
    max_edges: int = 30,
) -> list[CandidateCutLine]:
    """
    Find rows where the average row colour jumps, in image coordinates.

    Rows are sampled every `row_step` px, pixels within a row every `pixel_step` px.
    A jump whose following row returns to the previous colour is a thin divider
    (`edge`); otherwise the background changed (`colorShift`).
    Returns at most `max_edges` strongest lines, sorted by y.
    """
    rgb = image.convert("RGB")
    width, height = rgb.size
    if width <= 0 or height <= row_step:
        return []
    px = rgb.load()

    rows = list(range(0, height, row_step))
    avgs = [_row_average(px, y, width, pixel_step) for y in rows]

    found: list[CandidateCutLine] = []
    for i in range(1, len(rows)):
        diff = _color_distance(avgs[i - 1], avgs[i])
        if diff <= threshold:
            continue
        strength = min(diff / 100.0, 1.0)
        if strength <= min_strength:
            continue
        cut_type = CutType.COLOR_SHIFT
        if i + 1 < len(rows) and _color_distance(avgs[i - 1], avgs[i + 1]) <= threshold:
            cut_type = CutType.EDGE
        found.append(CandidateCutLine(y=rows[i], strength=round(strength, 4), type=cut_type))

    strongest = sorted(found, key=lambda c: (-c.strength, c.y))[:max_edges]
    return sorted(strongest, key=lambda c: c.y)
