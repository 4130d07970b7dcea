from __future__ import annotations

import io
import json
import logging
from dataclasses import asdict
from typing import Any

import httpx
from fastapi import FastAPI, File, Form, HTTPException, UploadFile
from fastapi.responses import FileResponse
from PIL import Image, UnidentifiedImageError
from pydantic import BaseModel, Field

from email_autoslice.assembly.crop import crop_slices, render_slice_preview
from email_autoslice.config import settings
from email_autoslice.providers.base import (
    BoundaryProposal,
    BoundaryProposer,
    DetectedRegion,
    TextGeometryProvider,
)
from email_autoslice.providers.gap_provider import GapBoundaryProposer
from email_autoslice.providers.gemini_provider import GeminiProvider
from email_autoslice.providers.openai_provider import OpenAIBoundaryProposer
from email_autoslice.providers.vision_provider import VisionProvider
from email_autoslice.slicing.config import SliceConfig
from email_autoslice.slicing.contracts import (
    CandidateCutLine,
    CutType,
    ForbiddenBand,
    LowRiskCutBand,
    TextBlock,
)
from email_autoslice.slicing.edges import detect_horizontal_edges
from email_autoslice.slicing.geometry import text_blocks_from_records
from email_autoslice.slicing.pipeline import plan_slices
from email_autoslice.slicing.postprocess import validate_boundaries
from email_autoslice.storage import RunStore, SliceRun

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="email_autoslice")

store = RunStore()


class BandIn(BaseModel):
    y_top: int
    y_bottom: int


class CutLineIn(BaseModel):
    y: int
    strength: float = 0.5
    type: CutType = CutType.WHITESPACE


class TextBlockIn(BaseModel):
    text: str
    y_top: int
    y_bottom: int
    x_left: int = 0
    x_right: int = 0
    confidence: float = Field(default=0.9, ge=0.0, le=1.0)


class ValidateRequest(BaseModel):
    boundaries: list[int] = []
    footer_start_y: int
    forbidden_bands: list[BandIn] = []
    candidate_lines: list[CutLineIn] = []
    low_risk_bands: list[BandIn] = []
    min_slice_height: int = Field(default_factory=lambda: settings.min_slice_height_px, ge=0)


class PlanRequest(BaseModel):
    image_height: int = Field(gt=0)
    text_blocks: list[TextBlockIn] = []
    boundaries: list[int] | None = None
    footer_start_y: int | None = None
    edges: list[CutLineIn] = []
    include_geometry: bool = False


def _slice_config() -> SliceConfig:
    return SliceConfig.from_settings(settings)


def _get_gemini() -> GeminiProvider:
    if not settings.gemini_api_key:
        raise HTTPException(status_code=400, detail="GEMINI_API_KEY is not set")
    return GeminiProvider(api_key=settings.gemini_api_key)


def _get_openai() -> OpenAIBoundaryProposer:
    if not settings.openai_api_key:
        raise HTTPException(status_code=400, detail="OPENAI_API_KEY is not set")
    return OpenAIBoundaryProposer(api_key=settings.openai_api_key)


def _get_vision() -> VisionProvider:
    if not settings.google_cloud_vision_api_key:
        raise HTTPException(status_code=400, detail="GOOGLE_CLOUD_VISION_API_KEY is not set")
    return VisionProvider(api_key=settings.google_cloud_vision_api_key)


def _get_ocr(name: str) -> TextGeometryProvider:
    key = (name or "").strip().lower()
    if key == "vision":
        return _get_vision()
    if key == "gemini":
        return _get_gemini()
    raise HTTPException(status_code=400, detail=f"unknown ocr provider '{name}' (vision|gemini)")


def _get_proposer(name: str) -> BoundaryProposer:
    key = (name or "").strip().lower()
    if key == "gemini":
        return _get_gemini()
    if key == "openai":
        return _get_openai()
    if key == "gap":
        return GapBoundaryProposer(_slice_config())
    raise HTTPException(status_code=400, detail=f"unknown proposer '{name}' (gemini|openai|gap)")


def _parse_bool(value: str | None) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _parse_json_list_payload(raw: str, label: str) -> list[dict[str, Any]]:
    if not raw.strip():
        return []
    try:
        parsed = json.loads(raw)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"{label} must be JSON list: {exc}") from exc
    if not isinstance(parsed, list):
        raise HTTPException(status_code=400, detail=f"{label} must be JSON list")
    return [item for item in parsed if isinstance(item, dict)]


def _run_summary(run: Any) -> dict[str, Any]:
    return {
        "run_id": run.run_id,
        "name": run.name,
        "brand_name": run.brand_name,
        "created_at": run.created_at,
        "image_width": run.image_width,
        "image_height": run.image_height,
        "images": [
            {
                **asdict(i),
                "url": f"/runs/{run.run_id}/images/{i.image_id}",
            }
            for i in run.images
        ],
        "result": run.result,
    }


@app.post("/slices/validate")
def validate_slices(req: ValidateRequest):
    result = validate_boundaries(
        req.boundaries,
        req.footer_start_y,
        [ForbiddenBand(b.y_top, b.y_bottom) for b in req.forbidden_bands],
        [CandidateCutLine(y=c.y, strength=c.strength, type=c.type) for c in req.candidate_lines],
        [LowRiskCutBand(b.y_top, b.y_bottom) for b in req.low_risk_bands],
        min_slice_height=req.min_slice_height,
    )
    return result.to_dict()


@app.post("/slices/plan")
def plan(req: PlanRequest):
    blocks = [TextBlock(**b.model_dump()) for b in req.text_blocks]
    edges = [CandidateCutLine(y=e.y, strength=e.strength, type=e.type) for e in req.edges]
    result = plan_slices(
        blocks,
        req.image_height,
        _slice_config(),
        boundaries=req.boundaries,
        footer_start_y=req.footer_start_y,
        edges=edges,
    )
    return result.to_dict(include_geometry=req.include_geometry)


def _footer_override(proposal: BoundaryProposal, use_model_footer: bool) -> int | None:
    # A model footer at or above the top would leave nothing to slice.
    footer = proposal.footer_start_y
    if not use_model_footer or footer is None:
        return None
    if footer <= 0:
        logger.warning("%s proposed footerStartY=%d; using the detected footer", proposal.provider, footer)
        return None
    return footer


async def _slice_into_run(
    run: SliceRun,
    img: Image.Image,
    supplied: list[dict[str, Any]],
    ocr: TextGeometryProvider | None,
    boundary_proposer: BoundaryProposer,
    use_model_footer: bool,
    want_preview: bool,
) -> int:
    width, height = img.size
    source_path = store.image_path(run.run_id, run.images[0])

    regions: list[DetectedRegion] = []
    ocr_meta: dict[str, Any]
    if ocr is None:
        blocks = text_blocks_from_records(supplied, width, height)
        ocr_meta = {"provider": "client", "model": None}
    else:
        geometry = await ocr.extract_text_geometry(source_path, width, height)
        blocks = geometry.blocks
        regions = geometry.regions
        ocr_meta = {"provider": geometry.provider, "model": geometry.model}

    edges = detect_horizontal_edges(img)
    proposal = await boundary_proposer.propose_boundaries(source_path, blocks, width, height, regions=regions)

    plan = plan_slices(
        blocks,
        height,
        _slice_config(),
        boundaries=proposal.boundaries,
        footer_start_y=_footer_override(proposal, use_model_footer),
        edges=edges,
    )

    rgb = img.convert("RGB")
    stored = store.add_slices(run.run_id, crop_slices(rgb, plan.result.slices))
    if want_preview:
        store.add_preview(run.run_id, render_slice_preview(rgb, plan.result, plan.forbidden_bands))

    payload = plan.to_dict()
    payload["ocr"] = ocr_meta
    payload["regions"] = [asdict(r) for r in regions]
    payload["proposer"] = {
        "provider": proposal.provider,
        "model": proposal.model,
        "footer_start_y": proposal.footer_start_y,
        "sections": proposal.sections,
    }
    payload["edge_count"] = len(edges)
    payload["slice_images"] = [
        {"index": i.index, "image_id": i.image_id, "url": f"/runs/{run.run_id}/images/{i.image_id}"}
        for i in stored
    ]
    store.write_result(run.run_id, payload)
    return len(stored)


@app.post("/screenshots/auto-slice")
async def auto_slice_screenshot(
    file: UploadFile = File(...),
    proposer: str = Form("gemini"),
    ocr: str = Form("vision"),
    name: str = Form(""),
    brand_name: str = Form(""),
    text_blocks: str = Form(""),
    use_model_footer: str = Form("true"),
    preview: str = Form("true"),
):
    """
    Upload a screenshot, slice it and store the cropped slices.

    `text_blocks` (JSON list) skips the OCR call when the caller already has
    text geometry. If any step after the run is created fails, the run is
    removed again so no half-finished run is left listed.
    """
    content = await file.read()
    try:
        img = Image.open(io.BytesIO(content))
        img.load()
    except (UnidentifiedImageError, OSError) as exc:
        raise HTTPException(status_code=400, detail=f"could not read image: {exc}") from exc
    width, height = img.size
    if width <= 0 or height <= 0:
        raise HTTPException(status_code=400, detail="image has no pixels")

    supplied = _parse_json_list_payload(text_blocks, "text_blocks")
    boundary_proposer = _get_proposer(proposer)
    ocr_provider = None if supplied else _get_ocr(ocr)

    run = store.create_run(
        name=name.strip() or (file.filename or "screenshot"),
        source=content,
        image_width=width,
        image_height=height,
        source_format=img.format or "png",
        brand_name=brand_name,
    )
    try:
        count = await _slice_into_run(
            run,
            img,
            supplied,
            ocr_provider,
            boundary_proposer,
            use_model_footer=_parse_bool(use_model_footer),
            want_preview=_parse_bool(preview),
        )
    except httpx.HTTPError as exc:
        store.delete_run(run.run_id)
        raise HTTPException(status_code=502, detail=f"upstream provider failed: {exc}") from exc
    except Exception:
        store.delete_run(run.run_id)
        raise

    logger.info("run %s: %d slices stored", run.run_id, count)
    return _run_summary(store.read_run(run.run_id))


@app.get("/runs")
def list_runs():
    return [_run_summary(r) for r in store.list_runs()]


def _read_run_or_404(run_id: str) -> SliceRun:
    try:
        return store.read_run(run_id)
    except (FileNotFoundError, ValueError):
        raise HTTPException(status_code=404, detail="run not found")


@app.get("/runs/{run_id}")
def get_run(run_id: str):
    return _run_summary(_read_run_or_404(run_id))


@app.get("/runs/{run_id}/images/{image_id}")
def get_image(run_id: str, image_id: str):
    run = _read_run_or_404(run_id)
    match = run.image(image_id)
    if not match:
        raise HTTPException(status_code=404, detail="image not found")
    path = store.image_path(run_id, match)
    if not path.exists():
        raise HTTPException(status_code=404, detail="image file missing")
    return FileResponse(path)


@app.post("/runs/{run_id}/delete")
def delete_run(run_id: str):
    try:
        store.delete_run(run_id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"deleted": run_id}
