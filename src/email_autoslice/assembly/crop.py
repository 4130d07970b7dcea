from __future__ import annotations

import io
from dataclasses import dataclass
from typing import Iterable

from PIL import Image, ImageDraw, ImageFont

from email_autoslice.slicing.contracts import ForbiddenBand, Slice, SliceResult


@dataclass(frozen=True)
class CroppedSlice:
    index: int
    slice: Slice
    image: Image.Image


def crop_slices(image: Image.Image, slices: Iterable[Slice]) -> list[CroppedSlice]:
    """
    Cut full-width horizontal strips out of the screenshot.

    Slice edges are clamped to the image; strips that end up empty are skipped
    but keep their original index so callers can line results up with slices.
    """
    w, h = image.size
    out: list[CroppedSlice] = []
    for idx, s in enumerate(slices):
        top = max(0, min(h, s.y_top))
        bottom = max(0, min(h, s.y_bottom))
        if bottom <= top:
            continue
        out.append(CroppedSlice(index=idx, slice=s, image=image.crop((0, top, w, bottom))))
    return out


def resize_for_model(image: Image.Image, max_dimension: int = 8000) -> tuple[Image.Image, float]:
    """
    Downscale so neither side exceeds `max_dimension`, keeping the aspect ratio.
    Returns the image and the scale applied (1.0 when untouched).
    """
    iw, ih = image.size
    if iw <= 0 or ih <= 0 or (iw <= max_dimension and ih <= max_dimension):
        return image, 1.0

    scale = max_dimension / max(iw, ih)
    nw, nh = max(1, round(iw * scale)), max(1, round(ih * scale))
    return image.resize((nw, nh), Image.Resampling.LANCZOS), scale


def render_slice_preview(
    image: Image.Image,
    result: SliceResult,
    forbidden_bands: Iterable[ForbiddenBand] = (),
) -> Image.Image:
    """
    Debug overlay: forbidden bands shaded amber, cut lines red, footer start blue,
    slice index labels at the left edge.
    """
    base = image.convert("RGBA")
    w, h = base.size
    overlay = Image.new("RGBA", (w, h), (0, 0, 0, 0))
    draw = ImageDraw.Draw(overlay)

    for band in forbidden_bands:
        draw.rectangle([(0, band.y_top), (w, band.y_bottom)], fill=(255, 176, 0, 70))

    line_w = max(1, w // 300)
    font = ImageFont.load_default()
    for idx, s in enumerate(result.slices):
        if s.y_top > 0:
            draw.line([(0, s.y_top), (w, s.y_top)], fill=(230, 30, 30, 230), width=line_w)
        draw.text((6, s.y_top + 4), str(idx), font=font, fill=(230, 30, 30, 255))

    fy = result.footer_start_y
    if 0 < fy < h:
        draw.line([(0, fy), (w, fy)], fill=(30, 90, 230, 255), width=line_w * 2)

    return Image.alpha_composite(base, overlay).convert("RGB")


def pil_to_png_bytes(img: Image.Image) -> bytes:
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()
