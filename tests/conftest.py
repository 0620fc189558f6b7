"""Pytest configuration and shared fixtures for the shadow engine tests."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import numpy as np
import pytest


# Add project root to path so imports work
PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))


def pytest_configure(config: pytest.Config) -> None:
    """Configure logging for tests."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(name)s [%(levelname)s] %(message)s",
    )


@pytest.fixture
def flat_5x5() -> np.ndarray:
    """5 x 5 plane at z=0."""
    return np.zeros((5, 5), dtype=np.float64)


@pytest.fixture
def spike_5x5() -> np.ndarray:
    """5 x 5 plane with a single 100-unit spike at the centre."""
    elevation = np.zeros((5, 5), dtype=np.float64)
    elevation[2, 2] = 100.0
    return elevation


@pytest.fixture
def rough_terrain() -> np.ndarray:
    """Reproducible rough terrain: smooth hills plus noise, 40 x 30."""
    rng = np.random.default_rng(1234)
    rr, cc = np.meshgrid(np.arange(40.0), np.arange(30.0), indexing="ij")
    hills = 6.0 * np.sin(rr / 5.0) * np.cos(cc / 4.0) + 0.2 * rr
    return hills + rng.normal(0.0, 0.5, hills.shape)
