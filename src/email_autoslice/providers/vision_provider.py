from __future__ import annotations

import base64
import logging
from pathlib import Path
from typing import Any

import httpx

from email_autoslice.config import settings
from email_autoslice.providers.base import DetectedRegion, TextGeometryResult
from email_autoslice.slicing.geometry import text_blocks_from_vision_annotation

logger = logging.getLogger(__name__)


class VisionProvider:
    """
    Google Cloud Vision over REST: paragraph OCR (DOCUMENT_TEXT_DETECTION) plus
    object and logo boxes, all from one `images:annotate` request.
    """

    name = "vision"
    model = "DOCUMENT_TEXT_DETECTION"

    def __init__(self, api_key: str, client: httpx.AsyncClient | None = None) -> None:
        self.api_key = api_key
        # When a client is passed in, the caller owns its lifecycle.
        self._client = client

    def _request_body(self, content: bytes) -> dict[str, Any]:
        return {
            "requests": [
                {
                    "image": {"content": base64.b64encode(content).decode("ascii")},
                    "features": [
                        {"type": "DOCUMENT_TEXT_DETECTION"},
                        {"type": "OBJECT_LOCALIZATION", "maxResults": settings.vision_max_objects},
                        {"type": "LOGO_DETECTION", "maxResults": settings.vision_max_logos},
                    ],
                }
            ]
        }

    async def _annotate(self, content: bytes) -> dict[str, Any]:
        body = self._request_body(content)
        params = {"key": self.api_key}
        if self._client is not None:
            resp = await self._client.post(settings.vision_api_url, params=params, json=body)
        else:
            async with httpx.AsyncClient(timeout=settings.vision_timeout_sec) as client:
                resp = await client.post(settings.vision_api_url, params=params, json=body)
        resp.raise_for_status()
        responses = resp.json().get("responses") or [{}]
        return responses[0] or {}

    async def extract_text_geometry(
        self,
        image_path: Path,
        image_width: int,
        image_height: int,
    ) -> TextGeometryResult:
        """
        HTTP failures raise `httpx.HTTPError`. A per-image error inside an OK
        response is logged and yields whatever annotations did come back.
        """
        data = await self._annotate(Path(image_path).read_bytes())
        if data.get("error"):
            logger.warning("vision: annotate error %s", data["error"].get("message", data["error"]))

        blocks = text_blocks_from_vision_annotation(data.get("fullTextAnnotation"))
        regions = regions_from_vision_response(data, image_width, image_height)
        logger.info("vision ocr: %d blocks, %d regions", len(blocks), len(regions))
        return TextGeometryResult(
            blocks=blocks,
            provider=self.name,
            model=self.model,
            raw_text=None,
            regions=regions,
        )


def _box(xs: list[float], ys: list[float]) -> tuple[int, int, int, int] | None:
    if not xs or not ys:
        return None
    return round(min(ys)), round(max(ys)), round(min(xs)), round(max(xs))


def regions_from_vision_response(data: dict[str, Any], image_width: int, image_height: int) -> list[DetectedRegion]:
    # Objects come with normalized vertices (0..1), logos with pixel vertices.
    out: list[DetectedRegion] = []

    for obj in data.get("localizedObjectAnnotations") or []:
        verts = (obj.get("boundingPoly") or {}).get("normalizedVertices") or []
        box = _box(
            [float(v.get("x") or 0) * image_width for v in verts],
            [float(v.get("y") or 0) * image_height for v in verts],
        )
        if box is None:
            continue
        out.append(DetectedRegion("object", str(obj.get("name") or ""), float(obj.get("score") or 0), *box))

    for logo in data.get("logoAnnotations") or []:
        verts = (logo.get("boundingPoly") or {}).get("vertices") or []
        box = _box([float(v.get("x") or 0) for v in verts], [float(v.get("y") or 0) for v in verts])
        if box is None:
            continue
        out.append(DetectedRegion("logo", str(logo.get("description") or ""), float(logo.get("score") or 0), *box))

    return sorted(out, key=lambda r: (r.y_top, r.kind))
