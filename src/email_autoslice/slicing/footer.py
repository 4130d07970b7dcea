from __future__ import annotations

import math
import re
from typing import Iterable

from email_autoslice.slicing.candidates import nearest_cut
from email_autoslice.slicing.contracts import CandidateCutLine, Confidence, FooterDetection, TextBlock

# English-only; matched case-insensitively against each block's text.
FOOTER_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"unsubscribe",
        r"privacy\s+policy",
        r"terms\s+(of\s+service|(and|&)\s+conditions|of\s+use)",
        r"\bfaqs?\b",
        r"contact\s+us",
        r"customer\s+(service|care|support)",
        r"\bshop\b",
        r"our\s+story",
        r"follow\s+us",
        r"copyright",
        r"©",
        r"\(c\)",
        r"all\s+rights\s+reserved",
        r"not\s+been\s+evaluated\s+by\s+the\s+food\s+and\s+drug\s+administration",
        r"not\s+intended\s+to\s+diagnose,?\s+treat,?\s+cure",
        r"\d{5}(-\d{4})?",
        r"[A-Z]{2}\s*\d{5}",
    )
)

BOTTOM_REGION_RATIO = 0.6
FALLBACK_RATIO = 0.95
SMALL_TEXT_MAX_HEIGHT = 30
SMALL_TEXT_MIN_CHARS = 10
DENSE_SMALL_TEXT_MIN_BLOCKS = 3


def is_footer_text(text: str) -> bool:
    return any(p.search(text) for p in FOOTER_PATTERNS)


def detect_footer(
    blocks: Iterable[TextBlock],
    image_height: int,
    candidate_lines: Iterable[CandidateCutLine],
) -> FooterDetection:
    """
    Locate where the legal/unsubscribe footer begins.

    Only blocks starting in the bottom 40% of the image are considered. The start
    is the earliest block matching a footer pattern, or the earliest block of a
    dense run of small text. With no pattern match at all the footer is assumed
    to be the last 5% of the image. The start is snapped to the nearest
    candidate cut line when any exist.
    """
    if image_height <= 0:
        raise ValueError("image_height must be > 0")

    region_top = BOTTOM_REGION_RATIO * image_height
    bottom = [b for b in blocks if b.y_top >= region_top]

    start_y: int | None = None
    matches = 0
    for b in bottom:
        if is_footer_text(b.text):
            matches += 1
            if start_y is None or b.y_top < start_y:
                start_y = b.y_top

    small = [b for b in bottom if b.height < SMALL_TEXT_MAX_HEIGHT and len(b.text) > SMALL_TEXT_MIN_CHARS]
    dense = len(small) >= DENSE_SMALL_TEXT_MIN_BLOCKS
    if dense:
        earliest = min(b.y_top for b in small)
        start_y = earliest if start_y is None else min(start_y, earliest)

    if matches >= 3:
        confidence = Confidence.HIGH
    elif matches >= 1:
        confidence = Confidence.MEDIUM
    else:
        confidence = Confidence.LOW
        start_y = math.floor(FALLBACK_RATIO * image_height)

    raw = int(start_y)
    snapped = nearest_cut(raw, candidate_lines)
    return FooterDetection(
        start_y=raw if snapped is None else snapped.y,
        confidence=confidence,
        raw_start_y=raw,
        match_count=matches,
        dense_small_text=dense,
    )
