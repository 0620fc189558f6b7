"""Synthetic terrain generator.

Generates parametric height fields (flat plane, single spike, east-west
wall, parabolic bowl, conical crater) for exercising the shadow engine
without real elevation data.

Notes
-----
Grids are row-major with row 0 on the north edge. Crater profiles use the
radial distance ``r`` (in cells) from the grid centre:

    parabolic bowl:  z(r) = -D * (1 - (r/R)^2)        for r <= R
    conical:         z(r) = -D * (1 - r/R)            for r <= R
    rim:             z(r) = 0.3 D * exp(-(r-R)^2 / (2 w^2))  for r > R

where D = ``height``, R = ``radius_cells`` and w = 0.1 R.
"""

from __future__ import annotations

import logging

import numpy as np

from shadow_engine.config import SyntheticTerrainConfig

logger = logging.getLogger(__name__)


def generate_synthetic_terrain(config: SyntheticTerrainConfig) -> np.ndarray:
    """Generate a synthetic height field from configuration.

    Dispatches to the appropriate generator based on ``config.terrain_type``.

    Parameters
    ----------
    config : SyntheticTerrainConfig
        Terrain configuration.

    Returns
    -------
    np.ndarray
        Elevation grid. Shape: (rows, cols), dtype: float64.

    Raises
    ------
    ValueError
        If ``config.terrain_type`` is not recognized.
    """
    generators = {
        "flat": _generate_flat,
        "spike": _generate_spike,
        "wall": _generate_wall,
        "parabolic_bowl": _generate_parabolic_bowl,
        "conical": _generate_conical,
    }

    if config.terrain_type not in generators:
        raise ValueError(
            f"Unknown terrain type '{config.terrain_type}'. "
            f"Valid options: {list(generators.keys())}"
        )

    logger.info(
        "Generating synthetic terrain: type=%s, %d x %d, height=%.1f, seed=%d",
        config.terrain_type,
        config.rows,
        config.cols,
        config.height,
        config.seed,
    )

    elevation = generators[config.terrain_type](config)

    if config.noise_amplitude > 0.0:
        rng = np.random.default_rng(config.seed)
        elevation = elevation + rng.normal(0.0, config.noise_amplitude, elevation.shape)

    logger.info(
        "Terrain generated: z=[%.2f, %.2f]",
        float(elevation.min()),
        float(elevation.max()),
    )
    return elevation


def _generate_flat(config: SyntheticTerrainConfig) -> np.ndarray:
    """Flat plane at z=0; every cell should be fully lit."""
    return np.zeros((config.rows, config.cols), dtype=np.float64)


def _generate_spike(config: SyntheticTerrainConfig) -> np.ndarray:
    """Flat plane with one tall cell at the grid centre."""
    elevation = np.zeros((config.rows, config.cols), dtype=np.float64)
    elevation[config.rows // 2, config.cols // 2] = config.height
    return elevation


def _generate_wall(config: SyntheticTerrainConfig) -> np.ndarray:
    """Flat plane with one tall east-west row through the centre."""
    elevation = np.zeros((config.rows, config.cols), dtype=np.float64)
    elevation[config.rows // 2, :] = config.height
    return elevation


def _radial_distance(config: SyntheticTerrainConfig) -> np.ndarray:
    rr, cc = np.meshgrid(
        np.arange(config.rows, dtype=np.float64) - (config.rows - 1) / 2.0,
        np.arange(config.cols, dtype=np.float64) - (config.cols - 1) / 2.0,
        indexing="ij",
    )
    return np.sqrt(rr**2 + cc**2)


def _crater(config: SyntheticTerrainConfig, inside_profile: np.ndarray, r: np.ndarray) -> np.ndarray:
    R = config.radius_cells
    D = config.height
    rim_width = 0.1 * R

    elevation = np.zeros_like(r)
    inside = r <= R
    elevation[inside] = inside_profile[inside]

    outside = ~inside
    elevation[outside] = 0.3 * D * np.exp(-((r[outside] - R) ** 2) / (2.0 * rim_width**2))
    return elevation


def _generate_parabolic_bowl(config: SyntheticTerrainConfig) -> np.ndarray:
    """Parabolic bowl crater with a Gaussian rim."""
    r = _radial_distance(config)
    R = max(config.radius_cells, 1e-9)
    profile = -config.height * (1.0 - (r / R) ** 2)
    return _crater(config, profile, r)


def _generate_conical(config: SyntheticTerrainConfig) -> np.ndarray:
    """Conical (V-shaped) crater with a Gaussian rim."""
    r = _radial_distance(config)
    R = max(config.radius_cells, 1e-9)
    profile = -config.height * (1.0 - r / R)
    return _crater(config, profile, r)


def compute_terrain_statistics(elevation: np.ndarray) -> dict:
    """Compute summary statistics for a height field.

    Parameters
    ----------
    elevation : np.ndarray
        Elevation grid.

    Returns
    -------
    dict
        Shape, min, max, mean, std and range of elevation.
    """
    rows, cols = elevation.shape
    return {
        "rows": rows,
        "cols": cols,
        "total_cells": rows * cols,
        "z_min": float(elevation.min()),
        "z_max": float(elevation.max()),
        "z_mean": float(elevation.mean()),
        "z_std": float(elevation.std()),
        "z_range": float(elevation.max() - elevation.min()),
    }
