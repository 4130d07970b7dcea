from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol, Sequence

from email_autoslice.slicing.contracts import TextBlock


@dataclass(frozen=True)
class DetectedRegion:
    # Non-text content (product image, logo) in image pixels.
    kind: str  # object|logo
    name: str
    score: float
    y_top: int
    y_bottom: int
    x_left: int
    x_right: int


@dataclass(frozen=True)
class TextGeometryResult:
    blocks: list[TextBlock]
    provider: str
    model: str
    raw_text: str | None
    regions: list[DetectedRegion] = field(default_factory=list)


@dataclass(frozen=True)
class BoundaryProposal:
    # Untrusted: the slicing validator repairs whatever comes back here.
    boundaries: list[int]
    footer_start_y: int | None
    provider: str
    model: str
    sections: list[dict[str, Any]] = field(default_factory=list)
    raw_text: str | None = None


class TextGeometryProvider(Protocol):
    name: str

    async def extract_text_geometry(
        self,
        image_path: Path,
        image_width: int,
        image_height: int,
    ) -> TextGeometryResult: ...


class BoundaryProposer(Protocol):
    name: str

    async def propose_boundaries(
        self,
        image_path: Path,
        blocks: list[TextBlock],
        image_width: int,
        image_height: int,
        regions: Sequence[DetectedRegion] = (),
    ) -> BoundaryProposal: ...


def _as_int(value: Any) -> int | None:
    try:
        return int(round(float(value)))
    except (TypeError, ValueError, OverflowError):
        return None


def boundaries_from_sections(sections: list[Any]) -> list[int]:
    """
    Flatten `[{name, yTop, yBottom}, ...]` into a raw boundary list.

    No ordering or range checks here; that is the validator's job.
    """
    out: list[int] = []
    for s in sections:
        if not isinstance(s, dict):
            continue
        for key in ("yTop", "y_top", "yBottom", "y_bottom"):
            v = _as_int(s.get(key))
            if v is not None:
                out.append(v)
    return sorted(set(out))


def parse_proposal_payload(data: Any) -> tuple[list[int], int | None, list[dict[str, Any]]]:
    """
    Read `{footerStartY, sections}` (or a bare boundary list) from parsed model JSON.
    Anything unrecognized yields an empty proposal.
    """
    if isinstance(data, list):
        return sorted({v for v in (_as_int(x) for x in data) if v is not None}), None, []
    if not isinstance(data, dict):
        return [], None, []

    sections = [s for s in data.get("sections") or [] if isinstance(s, dict)]
    footer = _as_int(data.get("footerStartY", data.get("footer_start_y")))
    boundaries = boundaries_from_sections(sections)
    if not boundaries and isinstance(data.get("boundaries"), list):
        boundaries = sorted({v for v in (_as_int(x) for x in data["boundaries"]) if v is not None})
    return boundaries, footer, sections


def blocks_for_prompt(blocks: list[TextBlock], scale: float = 1.0, max_chars: int = 150) -> list[dict[str, Any]]:
    return [
        {
            "text": b.text[:max_chars],
            "yTop": round(b.y_top * scale),
            "yBottom": round(b.y_bottom * scale),
            "xLeft": round(b.x_left * scale),
            "xRight": round(b.x_right * scale),
        }
        for b in blocks
    ]


def regions_for_prompt(regions: Sequence[DetectedRegion], kind: str, scale: float = 1.0) -> list[dict[str, Any]]:
    return [
        {
            "name": r.name,
            "confidence": round(r.score * 100),
            "yTop": round(r.y_top * scale),
            "yBottom": round(r.y_bottom * scale),
            "xLeft": round(r.x_left * scale),
            "xRight": round(r.x_right * scale),
        }
        for r in regions
        if r.kind == kind
    ]


def sectioning_prompt(
    blocks: list[TextBlock],
    width: int,
    height: int,
    scale: float = 1.0,
    regions: Sequence[DetectedRegion] = (),
) -> str:
    return (
        "You are analyzing an email design screenshot to decide where to slice it into horizontal sections.\n"
        f"Image size: {width}x{height} pixels.\n"
        "OCR text blocks with pixel coordinates:\n"
        f"{json.dumps(blocks_for_prompt(blocks, scale=scale), indent=2)}\n"
        "Detected objects (images, products, UI elements):\n"
        f"{json.dumps(regions_for_prompt(regions, 'object', scale=scale), indent=2)}\n"
        "Detected logos:\n"
        f"{json.dumps(regions_for_prompt(regions, 'logo', scale=scale), indent=2)}\n"
        "Rules:\n"
        "- Keep semantically related content together (hero, product modules, CTAs, testimonials).\n"
        "- Never cut through text, images, logos or buttons; place cuts in the gaps.\n"
        "- The footer holds unsubscribe links, legal text, social icons and the address.\n"
        "Return STRICT JSON only (no markdown):\n"
        '{"footerStartY": <int>, "sections": [{"name": "header", "yTop": 0, "yBottom": 120}, ...]}\n'
        "The first section starts at 0 and the last section ends at footerStartY.\n"
    )


def scale_proposal(boundaries: list[int], footer: int | None, scale: float) -> tuple[list[int], int | None]:
    # Map model-space coordinates back to source pixels.
    if scale == 1.0:
        return boundaries, footer
    back = [int(round(b / scale)) for b in boundaries]
    return back, (None if footer is None else int(round(footer / scale)))
