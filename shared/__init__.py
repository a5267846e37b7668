"""
Shared data structures produced by the detection back end.
"""

from .models import RunLengths, SpindleEvent, SpindleResult

__all__ = ["RunLengths", "SpindleEvent", "SpindleResult"]
