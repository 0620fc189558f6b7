"""Lambertian shading and shadow/shading compositing.

Lambertian intensity is the cosine between the local surface normal and
the light direction, floored at zero for faces turned away from the sun.
It is computed independently of ray occlusion and then composited with
the ray-traced shadow matrix.

Notes
-----
Normals come from central differences of ``elevation / zscale`` (one-sided
on the grid edges, as ``numpy.gradient`` does). In (east, north, up)
coordinates, with row 0 on the north edge:

    n = (-dz/dcol, dz/drow, 1) / |...|
    L = (sin φ cos θ, cos φ cos θ, sin θ)
    I = max(0, n · L)

Compositing is multiplicative:

    combined = clip(shadow * (floor + (1 - floor) * lambert), 0, 1)

so a fully shadowed cell stays at 0 and ``floor`` limits how dark the
Lambert term can make a lit cell.
"""

from __future__ import annotations

import logging
import math

import numpy as np

from shadow_engine.errors import InvalidInputError
from shadow_engine.heightfield import ComputeRegion, HeightField

logger = logging.getLogger(__name__)


def _gradient(z: np.ndarray, axis: int) -> np.ndarray:
    """``numpy.gradient`` along one axis; zero where the axis has one sample."""
    if z.shape[axis] < 2:
        return np.zeros_like(z)
    return np.gradient(z, axis=axis)


def lamb_shade(
    heightfield: HeightField,
    ray_angle_deg: float = 45.0,
    sun_angle_deg: float = 315.0,
    trim_border: bool = True,
) -> np.ndarray:
    """Compute the Lambertian intensity of every cell.

    Parameters
    ----------
    heightfield : HeightField
        Terrain with its vertical scale.
    ray_angle_deg : float
        Sun elevation above the horizon [deg].
    sun_angle_deg : float
        Sun azimuth, 0 = north, clockwise [deg].
    trim_border : bool
        Drop the one-cell border, matching a trimmed shadow matrix.

    Returns
    -------
    np.ndarray
        Intensity in [0, 1]. Shape: (rows, cols), or (rows-2, cols-2)
        when trimming.
    """
    if not math.isfinite(ray_angle_deg) or not math.isfinite(sun_angle_deg):
        raise InvalidInputError(
            f"Lambert angles must be finite, got elevation={ray_angle_deg}, "
            f"azimuth={sun_angle_deg}"
        )

    z = heightfield.scaled()
    dz_drow = _gradient(z, axis=0)
    dz_dcol = _gradient(z, axis=1)

    nx = -dz_dcol
    ny = dz_drow
    norm = np.sqrt(nx**2 + ny**2 + 1.0)

    theta = math.radians(ray_angle_deg)
    phi = math.radians(sun_angle_deg)
    lx = math.sin(phi) * math.cos(theta)
    ly = math.cos(phi) * math.cos(theta)
    lz = math.sin(theta)

    intensity = (nx * lx + ny * ly + lz) / norm
    intensity = np.clip(intensity, 0.0, 1.0)

    logger.debug(
        "Lambert shading: elevation=%.2f°, azimuth=%.2f°, mean=%.3f",
        ray_angle_deg,
        sun_angle_deg,
        float(intensity.mean()),
    )

    region = ComputeRegion.for_heightfield(heightfield, trim_border)
    return region.trim(intensity)


def combine_shading(
    shadow: np.ndarray,
    lambert: np.ndarray,
    floor: float = 0.0,
) -> np.ndarray:
    """Composite a ray-traced shadow matrix with Lambertian shading.

    Parameters
    ----------
    shadow : np.ndarray
        Ray-traced intensity in [0, 1].
    lambert : np.ndarray
        Lambertian intensity in [0, 1]. Same shape as ``shadow``.
    floor : float
        Darkest factor the Lambert term applies, in [0, 1]. 0 applies
        Lambert fully, 1 ignores it.

    Returns
    -------
    np.ndarray
        Combined intensity in [0, 1].
    """
    if shadow.shape != lambert.shape:
        raise InvalidInputError(
            f"Cannot combine matrices of shape {shadow.shape} and {lambert.shape}"
        )
    if not (0.0 <= floor <= 1.0):
        raise InvalidInputError(f"Shading floor must be in [0, 1], got {floor}")

    factor = floor + (1.0 - floor) * lambert
    return np.clip(shadow * factor, 0.0, 1.0)
