from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class CutType(str, Enum):
    EDGE = "edge"
    WHITESPACE = "whitespace"
    COLOR_SHIFT = "colorShift"


class Confidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(frozen=True)
class TextBlock:
    # One OCR paragraph in image-pixel coordinates.
    text: str
    y_top: int
    y_bottom: int
    x_left: int
    x_right: int
    confidence: float = 0.9

    @property
    def width(self) -> int:
        return self.x_right - self.x_left

    @property
    def height(self) -> int:
        return self.y_bottom - self.y_top

    @staticmethod
    def from_dict(d: dict[str, Any]) -> "TextBlock":
        return TextBlock(
            text=str(d.get("text", "")),
            y_top=int(d["y_top"]),
            y_bottom=int(d["y_bottom"]),
            x_left=int(d.get("x_left", 0)),
            x_right=int(d.get("x_right", 0)),
            confidence=float(d.get("confidence", 0.9)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "y_top": self.y_top,
            "y_bottom": self.y_bottom,
            "x_left": self.x_left,
            "x_right": self.x_right,
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class ForbiddenBand:
    y_top: int
    y_bottom: int

    def contains(self, y: int) -> bool:
        # Strict: a cut exactly on the band edge is allowed.
        return self.y_top < y < self.y_bottom

    @staticmethod
    def from_dict(d: dict[str, Any]) -> "ForbiddenBand":
        return ForbiddenBand(y_top=int(d["y_top"]), y_bottom=int(d["y_bottom"]))

    def to_dict(self) -> dict[str, Any]:
        return {"y_top": self.y_top, "y_bottom": self.y_bottom}


@dataclass(frozen=True)
class LowRiskCutBand:
    y_top: int
    y_bottom: int

    @staticmethod
    def from_dict(d: dict[str, Any]) -> "LowRiskCutBand":
        return LowRiskCutBand(y_top=int(d["y_top"]), y_bottom=int(d["y_bottom"]))

    def to_dict(self) -> dict[str, Any]:
        return {"y_top": self.y_top, "y_bottom": self.y_bottom}


@dataclass(frozen=True)
class CandidateCutLine:
    y: int
    strength: float = 0.5
    type: CutType = CutType.WHITESPACE

    @staticmethod
    def from_dict(d: dict[str, Any]) -> "CandidateCutLine":
        return CandidateCutLine(
            y=int(d["y"]),
            strength=float(d.get("strength", 0.5)),
            type=CutType(d.get("type", CutType.WHITESPACE.value)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"y": self.y, "strength": self.strength, "type": self.type.value}


@dataclass(frozen=True)
class CandidateCuts:
    lines: list[CandidateCutLine]
    low_risk_bands: list[LowRiskCutBand]

    def to_dict(self) -> dict[str, Any]:
        return {
            "lines": [c.to_dict() for c in self.lines],
            "low_risk_bands": [b.to_dict() for b in self.low_risk_bands],
        }


@dataclass(frozen=True)
class FooterDetection:
    start_y: int
    confidence: Confidence
    raw_start_y: int
    match_count: int
    dense_small_text: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "start_y": self.start_y,
            "confidence": self.confidence.value,
            "raw_start_y": self.raw_start_y,
            "match_count": self.match_count,
            "dense_small_text": self.dense_small_text,
        }


@dataclass(frozen=True)
class Slice:
    y_top: int
    y_bottom: int

    @property
    def height(self) -> int:
        return self.y_bottom - self.y_top

    def to_dict(self) -> dict[str, Any]:
        return {"y_top": self.y_top, "y_bottom": self.y_bottom}


@dataclass(frozen=True)
class RepairEvent:
    # kind: invalid|out_of_range|endpoint_added|snapped|unsnappable|too_close|tail_merged
    # `boundary` is None only for `invalid`, where the input was not a number.
    kind: str
    boundary: int | None
    replacement: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "boundary": self.boundary, "replacement": self.replacement}


@dataclass(frozen=True)
class SliceResult:
    footer_start_y: int
    slices: list[Slice]
    repairs: list[RepairEvent] = field(default_factory=list)

    @property
    def boundaries(self) -> list[int]:
        if not self.slices:
            return []
        return [s.y_top for s in self.slices] + [self.slices[-1].y_bottom]

    def to_dict(self) -> dict[str, Any]:
        return {
            "footer_start_y": self.footer_start_y,
            "slices": [s.to_dict() for s in self.slices],
            "repairs": [r.to_dict() for r in self.repairs],
        }


@dataclass(frozen=True)
class SlicePlan:
    image_height: int
    blocks: list[TextBlock]
    forbidden_bands: list[ForbiddenBand]
    candidates: CandidateCuts
    footer: FooterDetection
    proposed_boundaries: list[int]
    result: SliceResult

    def to_dict(self, include_geometry: bool = False) -> dict[str, Any]:
        out: dict[str, Any] = {
            "image_height": self.image_height,
            "footer": self.footer.to_dict(),
            "proposed_boundaries": list(self.proposed_boundaries),
            "forbidden_bands": [b.to_dict() for b in self.forbidden_bands],
            **self.result.to_dict(),
        }
        if include_geometry:
            out["text_blocks"] = [b.to_dict() for b in self.blocks]
            out["candidates"] = self.candidates.to_dict()
        return out
