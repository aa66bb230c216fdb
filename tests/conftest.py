"""
Shared fixtures for the SPKF-Lite test suite.

Run: pytest tests/ -v
"""

import sys
from pathlib import Path

import numpy as np
import pytest

# Import the package from the source tree without installing it
sys.path.insert(0, str(Path(__file__).parent.parent / "python"))


def make_spd(rng: np.random.Generator, n: int, floor: float = 0.5) -> np.ndarray:
    """Random symmetric positive definite matrix."""
    A = rng.normal(size=(n, n))
    return A @ A.T + floor * np.eye(n)


@pytest.fixture
def rng():
    return np.random.default_rng(42)


@pytest.fixture
def spd(rng):
    return lambda n: make_spd(rng, n)
