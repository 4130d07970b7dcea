from __future__ import annotations

import math
from typing import Any, Iterable

from email_autoslice.slicing.contracts import TextBlock

_DEFAULT_CONFIDENCE = 0.9


def text_blocks_from_vision_annotation(annotation: dict[str, Any] | None) -> list[TextBlock]:
    """
    Flatten a Vision-style `fullTextAnnotation` into paragraph-level TextBlocks.

    Paragraph text is rebuilt from word symbols, one space between words.
    Paragraphs with fewer than four bounding vertices are skipped.
    """
    if not annotation:
        return []

    out: list[TextBlock] = []
    for page in annotation.get("pages") or []:
        for block in page.get("blocks") or []:
            for paragraph in block.get("paragraphs") or []:
                vertices = (paragraph.get("boundingBox") or {}).get("vertices") or []
                if len(vertices) < 4:
                    continue
                xs = [int(v.get("x") or 0) for v in vertices]
                ys = [int(v.get("y") or 0) for v in vertices]

                words: list[str] = []
                for word in paragraph.get("words") or []:
                    words.append("".join(str(s.get("text") or "") for s in word.get("symbols") or []))

                out.append(
                    TextBlock(
                        text=" ".join(words).strip(),
                        y_top=min(ys),
                        y_bottom=max(ys),
                        x_left=min(xs),
                        x_right=max(xs),
                        confidence=float(paragraph.get("confidence") or _DEFAULT_CONFIDENCE),
                    )
                )
    return out


def _first(d: dict[str, Any], *keys: str) -> Any:
    for k in keys:
        if d.get(k) is not None:
            return d[k]
    return None


def _to_int(value: Any) -> int | None:
    try:
        return int(round(float(value)))
    except (TypeError, ValueError, OverflowError):
        return None


def text_blocks_from_records(
    records: Iterable[Any],
    image_width: int,
    image_height: int,
) -> list[TextBlock]:
    """
    Normalize loosely-shaped rows (model output, JSON payloads) into TextBlocks.

    Accepts camelCase or snake_case keys. Coordinates are clamped to the image,
    inverted boxes are swapped, rows with blank text or missing y are dropped.
    """
    out: list[TextBlock] = []
    for row in records:
        if not isinstance(row, dict):
            continue
        text = str(row.get("text") or "").strip()
        if not text:
            continue

        y0 = _to_int(_first(row, "yTop", "y_top"))
        y1 = _to_int(_first(row, "yBottom", "y_bottom"))
        if y0 is None or y1 is None:
            continue
        x0 = _to_int(_first(row, "xLeft", "x_left"))
        x1 = _to_int(_first(row, "xRight", "x_right"))
        x0 = 0 if x0 is None else x0
        x1 = image_width if x1 is None else x1

        y0, y1 = (y0, y1) if y0 <= y1 else (y1, y0)
        x0, x1 = (x0, x1) if x0 <= x1 else (x1, x0)

        conf_raw = row.get("confidence")
        try:
            conf = _DEFAULT_CONFIDENCE if conf_raw is None else float(conf_raw)
        except (TypeError, ValueError):
            conf = _DEFAULT_CONFIDENCE
        if not math.isfinite(conf):
            conf = _DEFAULT_CONFIDENCE

        out.append(
            TextBlock(
                text=text,
                y_top=max(0, min(image_height, y0)),
                y_bottom=max(0, min(image_height, y1)),
                x_left=max(0, min(image_width, x0)),
                x_right=max(0, min(image_width, x1)),
                confidence=max(0.0, min(1.0, conf)),
            )
        )
    return out
