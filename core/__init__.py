"""Core signal conditioning utilities.

Detectors live in :mod:`core.detection`.
"""

from .conditioning import BandpassSettings, SpindleBandpass, SpindleFilterBank, spindle_filter
from shared.models import RunLengths, SpindleEvent, SpindleResult

__all__ = [
    "BandpassSettings",
    "SpindleBandpass",
    "SpindleFilterBank",
    "spindle_filter",
    "RunLengths",
    "SpindleEvent",
    "SpindleResult",
]
