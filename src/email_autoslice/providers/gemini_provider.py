from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Sequence

from PIL import Image

from email_autoslice.assembly.crop import resize_for_model
from email_autoslice.config import settings
from email_autoslice.providers.base import (
    BoundaryProposal,
    DetectedRegion,
    TextGeometryResult,
    parse_proposal_payload,
    scale_proposal,
    sectioning_prompt,
)
from email_autoslice.slicing.contracts import TextBlock
from email_autoslice.slicing.geometry import text_blocks_from_records

logger = logging.getLogger(__name__)


class GeminiProvider:
    name = "gemini"

    def __init__(self, api_key: str) -> None:
        # Imported lazily so the app can start without the dependency installed.
        from google import genai  # type: ignore

        self._genai = genai
        self.client = genai.Client(api_key=api_key)

    def _load(self, image_path: Path) -> tuple[Image.Image, float]:
        img = Image.open(image_path).convert("RGB")
        return resize_for_model(img, settings.max_model_image_dimension)

    async def extract_text_geometry(
        self,
        image_path: Path,
        image_width: int,
        image_height: int,
    ) -> TextGeometryResult:
        """
        Ask the vision model for paragraph-level OCR with pixel boxes.
        Malformed output yields no blocks rather than an error.
        """
        img, scale = self._load(image_path)
        mw, mh = img.size
        prompt = (
            "Transcribe every paragraph of text visible in this email screenshot.\n"
            f"The image is {mw}x{mh} pixels.\n"
            "Return STRICT JSON only (no markdown): a list of objects with keys\n"
            "text, yTop, yBottom, xLeft, xRight (integer pixel coordinates), confidence (0..1).\n"
            "One object per paragraph, top to bottom.\n"
        )

        resp = self.client.models.generate_content(
            model=settings.gemini_vision_model,
            contents=[prompt, img],
        )
        raw_text: str | None = getattr(resp, "text", None)
        parsed = _parse_jsonish(raw_text)

        rows: list[Any] = []
        if isinstance(parsed, list):
            rows = parsed
        elif isinstance(parsed, dict) and isinstance(parsed.get("paragraphs"), list):
            rows = parsed["paragraphs"]

        if scale != 1.0:
            rows = [_unscale_row(r, scale) for r in rows if isinstance(r, dict)]

        blocks = text_blocks_from_records(rows, image_width, image_height)
        logger.info("gemini ocr: %d blocks from %d rows", len(blocks), len(rows))
        return TextGeometryResult(
            blocks=blocks,
            provider=self.name,
            model=settings.gemini_vision_model,
            raw_text=raw_text,
        )

    async def propose_boundaries(
        self,
        image_path: Path,
        blocks: list[TextBlock],
        image_width: int,
        image_height: int,
        regions: Sequence[DetectedRegion] = (),
    ) -> BoundaryProposal:
        img, scale = self._load(image_path)
        prompt = sectioning_prompt(blocks, img.size[0], img.size[1], scale=scale, regions=regions)

        resp = self.client.models.generate_content(
            model=settings.gemini_vision_model,
            contents=[prompt, img],
        )
        raw_text: str | None = getattr(resp, "text", None)
        boundaries, footer, sections = parse_proposal_payload(_parse_jsonish(raw_text))
        boundaries, footer = scale_proposal(boundaries, footer, scale)

        logger.info("gemini proposal: %d boundaries, footerStartY=%s", len(boundaries), footer)
        return BoundaryProposal(
            boundaries=boundaries,
            footer_start_y=footer,
            provider=self.name,
            model=settings.gemini_vision_model,
            sections=sections,
            raw_text=raw_text,
        )


def _unscale_row(row: dict[str, Any], scale: float) -> dict[str, Any]:
    out = dict(row)
    for key in ("yTop", "yBottom", "xLeft", "xRight", "y_top", "y_bottom", "x_left", "x_right"):
        try:
            out[key] = float(row[key]) / scale
        except (KeyError, TypeError, ValueError):
            continue
    return out


def _strip_code_fences(text: str) -> str:
    s = text.strip()
    if s.startswith("```"):
        # Remove leading fence line
        first_nl = s.find("\n")
        if first_nl != -1:
            s = s[first_nl + 1 :]
        # Remove trailing fence
        if s.rstrip().endswith("```"):
            s = s.rstrip()[:-3]
    return s.strip()


def _parse_jsonish(raw_text: str | None) -> Any:
    if not raw_text:
        return None
    s = _strip_code_fences(raw_text)
    try:
        return json.loads(s)
    except ValueError:
        return None
