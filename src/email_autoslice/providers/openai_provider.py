from __future__ import annotations

import base64
import json
import logging
import re
from pathlib import Path
from typing import Any, Sequence

from PIL import Image

from email_autoslice.assembly.crop import pil_to_png_bytes, resize_for_model
from email_autoslice.config import settings
from email_autoslice.providers.base import (
    BoundaryProposal,
    DetectedRegion,
    parse_proposal_payload,
    scale_proposal,
    sectioning_prompt,
)
from email_autoslice.slicing.contracts import TextBlock

logger = logging.getLogger(__name__)


class OpenAIBoundaryProposer:
    name = "openai"

    def __init__(self, api_key: str) -> None:
        from openai import OpenAI  # type: ignore

        self.client = OpenAI(api_key=api_key)

    async def propose_boundaries(
        self,
        image_path: Path,
        blocks: list[TextBlock],
        image_width: int,
        image_height: int,
        regions: Sequence[DetectedRegion] = (),
    ) -> BoundaryProposal:
        img = Image.open(image_path).convert("RGB")
        img, scale = resize_for_model(img, settings.max_model_image_dimension)
        data_url = "data:image/png;base64," + base64.b64encode(pil_to_png_bytes(img)).decode("ascii")
        prompt = sectioning_prompt(blocks, img.size[0], img.size[1], scale=scale, regions=regions)

        resp = self.client.responses.create(
            model=settings.openai_vision_model,
            input=[
                {
                    "role": "user",
                    "content": [
                        {"type": "input_text", "text": prompt},
                        {"type": "input_image", "image_url": data_url},
                    ],
                }
            ],
        )
        text = getattr(resp, "output_text", None) or ""

        boundaries, footer, sections = parse_proposal_payload(_extract_json(text))
        boundaries, footer = scale_proposal(boundaries, footer, scale)

        logger.info("openai proposal: %d boundaries, footerStartY=%s", len(boundaries), footer)
        return BoundaryProposal(
            boundaries=boundaries,
            footer_start_y=footer,
            provider=self.name,
            model=settings.openai_vision_model,
            sections=sections,
            raw_text=text,
        )


def _extract_json(text: str) -> Any:
    raw = text.strip()

    # Best-effort JSON extraction (handles accidental pre/post text).
    m = re.search(r"```(?:json)?\s*(\{.*?\})\s*```", raw, re.DOTALL | re.IGNORECASE)
    if m:
        raw = m.group(1).strip()
    else:
        start = raw.find("{")
        end = raw.rfind("}")
        if start != -1 and end != -1 and end > start:
            raw = raw[start : end + 1].strip()

    try:
        return json.loads(raw)
    except ValueError:
        return None
