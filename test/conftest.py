from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
ROOT_STR = str(ROOT)
if ROOT_STR not in sys.path:
    sys.path.insert(0, ROOT_STR)

from core.conditioning import SpindleFilterBank  # noqa: E402


@pytest.fixture(scope="session")
def filter_bank() -> SpindleFilterBank:
    """One filter bank per test session; equiripple design is slow at long orders."""
    return SpindleFilterBank()


@pytest.fixture
def sample_rate() -> float:
    return 200.0
