from .base import (
    DETECTOR_REGISTRY,
    DetectorParameter,
    create_detector,
    EventDetector,
    register_detector,
)
from .run_length import logical_consecutive, run_boundaries
from .spindle import SpindleDetector, hysteresis_mask, spindle_stats

__all__ = [
    "EventDetector",
    "DetectorParameter",
    "DETECTOR_REGISTRY",
    "register_detector",
    "create_detector",
    "SpindleDetector",
    "hysteresis_mask",
    "logical_consecutive",
    "run_boundaries",
    "spindle_stats",
]
