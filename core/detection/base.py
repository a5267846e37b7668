from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Mapping, Protocol, Type

from shared.models import SpindleResult


@dataclass
class DetectorParameter:
    name: str
    default: float | int | bool
    min: float | None = None
    max: float | None = None
    help: str = ""


class EventDetector(Protocol):
    name: str
    display_name: str

    @property
    def parameters(self) -> Mapping[str, DetectorParameter]:
        ...

    def configure(self, **params) -> None:
        ...

    def detect(self, values, times, sample_rate: float) -> SpindleResult:
        """Run detection over a whole recording."""
        ...


DETECTOR_REGISTRY: Dict[str, Type[EventDetector]] = {}


def register_detector(cls: Type[EventDetector]) -> Type[EventDetector]:
    if not hasattr(cls, "name"):
        raise ValueError(f"Detector {cls} must have a 'name' attribute")
    DETECTOR_REGISTRY[cls.name] = cls
    return cls


def create_detector(name: str, **params) -> EventDetector:
    """Instantiate a registered detector and apply ``params`` via ``configure``."""
    try:
        cls = DETECTOR_REGISTRY[name]
    except KeyError:
        known = ", ".join(sorted(DETECTOR_REGISTRY)) or "none"
        raise ValueError(f"Unknown detector {name!r} (registered: {known})") from None
    detector = cls()
    if params:
        detector.configure(**params)
    return detector
