"""Height-field ray marcher and multi-angle aggregation.

Casts one shadow ray per (cell, elevation angle) toward the sun and walks
its horizontal projection across the grid, comparing the ray height with
the bilinearly interpolated terrain at every step. All inner-loop
functions are compiled with Numba ``@njit(cache=True, nogil=True)`` so the
row kernel can run on several threads at once.

Design Notes
------------
- **DDA walk**: the step vector is the unit sun direction divided by its
  largest component, so the dominant axis advances exactly one cell per
  step and every crossed row (or column) is visited once. One step covers
  ``step_length = 1 / max(|sin φ|, |cos φ|)`` cells of horizontal distance.
- **Grid orientation**: row 0 is north. Azimuth φ is measured clockwise
  from north, so the step toward the sun is
  ``(d_row, d_col) = (-cos φ, sin φ) * step_length``.
- **Early exits**: a ray that leaves the grid, or climbs above the highest
  terrain sample, is clear. The first terrain sample at or above the ray
  blocks it.
- **Sorted angles**: every angle of a cell samples the same positions, so a
  higher ray lies above a lower one at every step. Once an angle is clear
  all higher angles are clear too and the aggregator stops.
- **Precision**: float64 throughout, ``fastmath=False`` so results do not
  depend on how the compiler vectorizes a given row.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Iterable

import numpy as np
from numba import njit

from shadow_engine.errors import InvalidInputError
from shadow_engine.heightfield import interpolate_height

logger = logging.getLogger(__name__)

# Direction components below this magnitude are treated as exact zeros
# (cos(90°) evaluates to ~6e-17, which would push row-0 rays off the grid).
_DIRECTION_EPSILON: float = 1e-12


# ===================================================================
# MARCH PARAMETERS: Python, one-time setup per call
# ===================================================================


@dataclass(frozen=True)
class MarchParameters:
    """Per-call constants shared by every ray march.

    Attributes
    ----------
    angles_deg : tuple[float, ...]
        Elevation angles, sorted ascending [deg].
    azimuth_deg : float
        Sun azimuth, clockwise from north [deg].
    d_row, d_col : float
        Grid step toward the sun (one DDA step).
    step_length : float
        Horizontal distance covered by one step [cells].
    rises : np.ndarray
        Ray rise per step for each angle, ``tan(θ) * step_length``.
        Shape: (num_angles,).
    max_search : int
        Maximum number of steps per ray.
    ceiling : float
        Highest scaled terrain sample; rays above it are clear.
    """

    angles_deg: tuple[float, ...]
    azimuth_deg: float
    d_row: float
    d_col: float
    step_length: float
    rises: np.ndarray
    max_search: int
    ceiling: float

    @property
    def num_angles(self) -> int:
        return len(self.angles_deg)


def sort_angles(angles_deg: Iterable[float]) -> tuple[float, ...]:
    """Validate and sort an elevation angle set.

    Parameters
    ----------
    angles_deg : iterable of float
        Sun elevation angles above the horizon [deg].

    Returns
    -------
    tuple[float, ...]
        Angles sorted ascending.

    Raises
    ------
    InvalidInputError
        If the set is empty or an angle is outside [0, 90].
    """
    values = [angles_deg] if np.isscalar(angles_deg) else list(angles_deg)
    angles = tuple(sorted(float(a) for a in values))
    if not angles:
        raise InvalidInputError("Angle set must contain at least one elevation angle")
    for angle in angles:
        if not math.isfinite(angle) or angle < 0.0 or angle > 90.0:
            raise InvalidInputError(
                f"Elevation angles must be within [0, 90] degrees, got {angle}"
            )
    return angles


def sun_step(azimuth_deg: float) -> tuple[float, float, float]:
    """Compute the DDA grid step toward the sun.

    Parameters
    ----------
    azimuth_deg : float
        Sun azimuth, 0 = north, clockwise [deg].

    Returns
    -------
    d_row, d_col, step_length : float
        Row/column increment per step and the horizontal length of one
        step in cells. The dominant component is exactly ±1.
    """
    if not math.isfinite(azimuth_deg):
        raise InvalidInputError(f"Azimuth must be finite, got {azimuth_deg}")

    phi = math.radians(azimuth_deg)
    north = math.cos(phi)
    east = math.sin(phi)
    if abs(north) < _DIRECTION_EPSILON:
        north = 0.0
    if abs(east) < _DIRECTION_EPSILON:
        east = 0.0

    major = max(abs(north), abs(east))
    d_row = -north / major
    d_col = east / major
    # |direction| is 1, so the step length is 1 / major
    return d_row, d_col, 1.0 / major


def build_march_parameters(
    angles_deg: Iterable[float],
    azimuth_deg: float,
    max_search: int,
    scaled_elevation: np.ndarray,
) -> MarchParameters:
    """Validate inputs and precompute the constants of a shading run.

    Parameters
    ----------
    angles_deg : iterable of float
        Elevation angle set [deg].
    azimuth_deg : float
        Sun azimuth [deg].
    max_search : int
        Maximum steps per ray. Must be a positive integer.
    scaled_elevation : np.ndarray
        Elevation divided by zscale. Shape: (rows, cols).

    Returns
    -------
    MarchParameters
    """
    if isinstance(max_search, bool) or int(max_search) != max_search or max_search < 1:
        raise InvalidInputError(f"max_search must be a positive integer, got {max_search}")

    angles = sort_angles(angles_deg)
    d_row, d_col, step_length = sun_step(float(azimuth_deg))
    rises = np.tan(np.radians(np.asarray(angles, dtype=np.float64))) * step_length

    params = MarchParameters(
        angles_deg=angles,
        azimuth_deg=float(azimuth_deg),
        d_row=d_row,
        d_col=d_col,
        step_length=step_length,
        rises=rises,
        max_search=int(max_search),
        ceiling=float(scaled_elevation.max()),
    )
    logger.debug(
        "March parameters: azimuth=%.2f°, step=(%.4f, %.4f), step_length=%.4f, "
        "angles=%s, max_search=%d, ceiling=%.3f",
        params.azimuth_deg,
        d_row,
        d_col,
        step_length,
        list(angles),
        params.max_search,
        params.ceiling,
    )
    return params


# ===================================================================
# RAY MARCH: Numba JIT
# ===================================================================


@njit(cache=True, nogil=True, fastmath=False)
def march_ray(
    elevation: np.ndarray,
    row: int,
    col: int,
    d_row: float,
    d_col: float,
    rise: float,
    max_search: int,
    ceiling: float,
) -> bool:
    """Test whether the shadow ray leaving cell (row, col) hits terrain.

    Parameters
    ----------
    elevation : np.ndarray
        Scaled elevation grid. Shape: (rows, cols).
    row, col : int
        Origin cell.
    d_row, d_col : float
        Grid step toward the sun.
    rise : float
        Ray height gained per step, ``tan(θ) * step_length``.
    max_search : int
        Maximum number of steps.
    ceiling : float
        Highest terrain sample in the grid.

    Returns
    -------
    bool
        True if the ray is occluded within ``max_search`` steps.
    """
    nrows = elevation.shape[0]
    ncols = elevation.shape[1]
    last_row = nrows - 1.0
    last_col = ncols - 1.0
    origin_height = elevation[row, col]

    for k in range(1, max_search + 1):
        r = row + k * d_row
        c = col + k * d_col
        if r < 0.0 or r > last_row or c < 0.0 or c > last_col:
            return False  # Left the grid

        ray_height = origin_height + k * rise
        if ray_height > ceiling:
            return False  # Above every terrain sample

        if ray_height <= interpolate_height(elevation, r, c):
            return True  # Shadow confirmed

    return False


@njit(cache=True, nogil=True, fastmath=False)
def shade_cell(
    elevation: np.ndarray,
    row: int,
    col: int,
    d_row: float,
    d_col: float,
    rises: np.ndarray,
    max_search: int,
    ceiling: float,
) -> float:
    """Fraction of the angle samples that reach the sun from one cell.

    ``rises`` must be sorted ascending. Marching stops at the first clear
    angle, since every steeper ray is then clear as well.

    Returns
    -------
    float
        Light intensity in [0, 1]: 1 - blocked / num_angles.
    """
    num_angles = rises.shape[0]
    blocked = 0
    for a in range(num_angles):
        if march_ray(elevation, row, col, d_row, d_col, rises[a], max_search, ceiling):
            blocked += 1
        else:
            break
    return 1.0 - blocked / num_angles


@njit(cache=True, nogil=True, fastmath=False)
def shade_row(
    elevation: np.ndarray,
    row: int,
    mask_row: np.ndarray,
    d_row: float,
    d_col: float,
    rises: np.ndarray,
    max_search: int,
    ceiling: float,
    uncomputed_value: float,
) -> np.ndarray:
    """Shade every masked cell of one grid row.

    Parameters
    ----------
    elevation : np.ndarray
        Scaled elevation grid. Shape: (rows, cols).
    row : int
        Row index in the full grid.
    mask_row : np.ndarray
        Row of the padded cache mask, 1 = compute. Shape: (cols,).
    d_row, d_col, rises, max_search, ceiling
        See :class:`MarchParameters`.
    uncomputed_value : float
        Value written to cells the mask excludes.

    Returns
    -------
    np.ndarray
        Intensities for this row. Shape: (cols,), dtype: float64.
    """
    ncols = elevation.shape[1]
    out = np.empty(ncols, dtype=np.float64)
    for col in range(ncols):
        if mask_row[col] != 0:
            out[col] = shade_cell(
                elevation, row, col, d_row, d_col, rises, max_search, ceiling
            )
        else:
            out[col] = uncomputed_value
    return out
