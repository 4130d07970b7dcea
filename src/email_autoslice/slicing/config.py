from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class SliceConfig:
    """
    Thresholds for one slicing run. All pixel values are in source-image pixels.
    """

    padding_px: int = 4
    candidate_step_px: int = 10
    low_risk_multiple: int = 5
    min_slice_height_px: int = 20

    # Gap proposer, used when no boundary list is supplied.
    gap_min_px: int = 20
    gap_min_slice_height_px: int = 80
    gap_max_cuts: int = 12

    def validate(self) -> None:
        if self.padding_px < 0:
            raise ValueError("padding_px must be >= 0")
        if self.candidate_step_px <= 0:
            raise ValueError("candidate_step_px must be > 0")
        if self.low_risk_multiple <= 0:
            raise ValueError("low_risk_multiple must be > 0")
        if self.min_slice_height_px < 0:
            raise ValueError("min_slice_height_px must be >= 0")
        if self.gap_min_px < 0:
            raise ValueError("gap_min_px must be >= 0")
        if self.gap_min_slice_height_px < 0:
            raise ValueError("gap_min_slice_height_px must be >= 0")
        if self.gap_max_cuts < 0:
            raise ValueError("gap_max_cuts must be >= 0")

    def __post_init__(self) -> None:
        self.validate()

    @staticmethod
    def from_settings(s: Any) -> "SliceConfig":
        return SliceConfig(
            padding_px=s.slice_padding_px,
            candidate_step_px=s.slice_candidate_step_px,
            low_risk_multiple=s.slice_low_risk_multiple,
            min_slice_height_px=s.min_slice_height_px,
            gap_min_px=s.gap_min_px,
            gap_min_slice_height_px=s.gap_min_slice_height_px,
            gap_max_cuts=s.gap_max_cuts,
        )
