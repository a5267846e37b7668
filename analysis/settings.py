from __future__ import annotations

import math
from dataclasses import dataclass, asdict, field, replace
from typing import Dict

from core.conditioning import BandpassSettings


@dataclass(frozen=True)
class DetectionSettings:
    """Parameters of the spindle threshold/hysteresis rule."""

    min_length_s: float = 0.5
    threshold_factor: float = 2.0
    band: BandpassSettings = field(default_factory=BandpassSettings)

    def min_samples(self, sample_rate: float) -> int:
        # round half up
        return int(math.floor(sample_rate * self.min_length_s + 0.5))

    def validate(self, sample_rate: float) -> None:
        if sample_rate <= 0:
            raise ValueError("sample_rate must be positive")
        if self.min_length_s < 0:
            raise ValueError("min_length_s must be non-negative")
        if self.threshold_factor <= 0:
            raise ValueError("threshold_factor must be positive")
        self.band.validate(sample_rate)

    def with_updates(self, **kwargs) -> "DetectionSettings":
        return replace(self, **kwargs)

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


__all__ = ["DetectionSettings"]
