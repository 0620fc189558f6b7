"""Shading engine — orchestrates ray marching, blending, and cache merge.

This module is the "conductor" that connects the height field, the ray
marcher, the grid evaluator, Lambertian shading and the cache layer to
produce a light-intensity matrix (0.0–1.0) for an elevation grid.

Pipeline
--------
1. Validate inputs and build the valid computation region.
2. Pad the cache mask to the full grid (border cells are never selected).
3. March rays for every masked cell (sequential or row-parallel).
4. Clamp negatives to 0 and trim the context border.
5. Optionally multiply in Lambertian shading.
6. Optionally merge the fresh cells into a previous shadow matrix.

Notes
-----
The result is a pure function of the inputs. Worker scheduling only
changes the order in which rows finish, never their values.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Iterable

import numpy as np

from shadow_engine.cache import merge_with_cache
from shadow_engine.config import ExecutionConfig
from shadow_engine.errors import InvalidInputError
from shadow_engine.grid_evaluator import evaluate_grid
from shadow_engine.heightfield import ComputeRegion, HeightField
from shadow_engine.lambert import combine_shading, lamb_shade
from shadow_engine.raymarcher import build_march_parameters

logger = logging.getLogger(__name__)

_DEFAULT_ANGLES_DEG: tuple[float, ...] = tuple(float(a) for a in range(40, 51))


# ---------------------------------------------------------------------------
# Result Container
# ---------------------------------------------------------------------------


@dataclass
class ShadowResult:
    """Result of a shading computation.

    Attributes
    ----------
    shadow : np.ndarray
        Light intensity per output cell, 0 = shadowed, 1 = lit.
    mask : np.ndarray
        {0,1} mask of the output window that selected recomputed cells.
    angles_deg : tuple[float, ...]
        Elevation angles used, sorted ascending.
    azimuth_deg : float
        Sun azimuth [deg].
    max_search : int
        Search bound in DDA steps.
    workers : int
        Number of row workers used.
    wall_time_s : float
        Elapsed time of the computation.
    stats : dict[str, float]
        Summary statistics: mean intensity, shadow fraction, etc.
    """

    shadow: np.ndarray
    mask: np.ndarray
    angles_deg: tuple[float, ...]
    azimuth_deg: float
    max_search: int
    workers: int
    wall_time_s: float
    stats: dict[str, float]


# ---------------------------------------------------------------------------
# Shading Engine
# ---------------------------------------------------------------------------


class RayShader:
    """Computes ray-traced shadow maps for one height field.

    Parameters
    ----------
    heightfield : HeightField
        Terrain to shade.
    execution : ExecutionConfig, optional
        Worker count, cache use, border trimming and progress settings.
    """

    def __init__(
        self,
        heightfield: HeightField,
        execution: ExecutionConfig | None = None,
    ) -> None:
        self._heightfield = heightfield
        self._execution = execution if execution is not None else ExecutionConfig()
        self._region = ComputeRegion.for_heightfield(
            heightfield, self._execution.trim_border
        )

        logger.info(
            "RayShader initialized: grid=%d x %d, zscale=%.3f, output=%d x %d, "
            "workers=%d",
            heightfield.rows,
            heightfield.cols,
            heightfield.zscale,
            *self._region.output_shape,
            self._execution.resolved_workers(),
        )

    @property
    def region(self) -> ComputeRegion:
        return self._region

    def compute(
        self,
        angles_deg: Iterable[float] = _DEFAULT_ANGLES_DEG,
        azimuth_deg: float = 315.0,
        max_search: int = 100,
        lambert: bool = True,
        shadow_floor: float = 0.0,
        cache_mask: np.ndarray | None = None,
        shadow_cache: np.ndarray | None = None,
    ) -> ShadowResult:
        """Compute the light-intensity matrix.

        Parameters
        ----------
        angles_deg : iterable of float
            Sun elevation angles [deg]; sorted internally.
        azimuth_deg : float
            Sun azimuth, 0 = north, clockwise [deg].
        max_search : int
            Maximum number of DDA steps per ray.
        lambert : bool
            Multiply in Lambertian shading at the mean elevation angle.
        shadow_floor : float
            Darkest factor the Lambert term applies, in [0, 1].
        cache_mask : np.ndarray, optional
            {0,1} mask of shape (rows-2, cols-2); 1 = recompute. The grid
            border is never recomputed when a mask is given.
        shadow_cache : np.ndarray, optional
            Previous result with the output shape; cells outside the mask
            keep these values.

        Returns
        -------
        ShadowResult

        Raises
        ------
        InvalidInputError
            If any input is malformed. Raised before any ray is marched.
        WorkerFailureError
            If a parallel row task fails.
        """
        t_start = time.perf_counter()
        execution = self._execution
        region = self._region

        # --- Validation (nothing is computed until everything passes) ---
        workers = execution.resolved_workers()
        if workers < 1:
            raise InvalidInputError(f"worker_count must be >= 1, got {workers}")
        if not (0.0 <= shadow_floor <= 1.0):
            raise InvalidInputError(f"shadow_floor must be in [0, 1], got {shadow_floor}")

        if not execution.use_cache and (cache_mask is not None or shadow_cache is not None):
            logger.info("use_cache is off: ignoring cache_mask / shadow_cache")
            cache_mask = None
            shadow_cache = None

        if shadow_cache is not None:
            shadow_cache = np.asarray(shadow_cache, dtype=np.float64)
            region.check_output_shape(shadow_cache, "shadow_cache")

        full_mask = region.pad_mask(cache_mask)
        elevation = self._heightfield.scaled()
        params = build_march_parameters(angles_deg, azimuth_deg, max_search, elevation)

        # --- Ray marching ---
        raw = evaluate_grid(elevation, full_mask, params, execution)
        np.maximum(raw, 0.0, out=raw)

        shadow = region.trim(raw)
        mask = region.trim(full_mask)

        # --- Lambertian blend ---
        if lambert:
            mean_angle = float(np.mean(params.angles_deg))
            shading = lamb_shade(
                self._heightfield,
                ray_angle_deg=mean_angle,
                sun_angle_deg=params.azimuth_deg,
                trim_border=execution.trim_border,
            )
            shadow = combine_shading(shadow, shading, shadow_floor)

        # --- Cache merge ---
        shadow = merge_with_cache(shadow, mask, shadow_cache)

        wall_time = time.perf_counter() - t_start
        stats = self._compute_stats(shadow)

        logger.info(
            "Shadow map computed: %d x %d, azimuth=%.1f°, %d angle(s), "
            "mean=%.3f, shadow=%.1f%%, penumbra=%.1f%%, %.2f s",
            shadow.shape[0],
            shadow.shape[1],
            params.azimuth_deg,
            params.num_angles,
            stats["mean_intensity"],
            stats["shadow_fraction"] * 100.0,
            stats["penumbra_fraction"] * 100.0,
            wall_time,
        )

        return ShadowResult(
            shadow=shadow,
            mask=mask,
            angles_deg=params.angles_deg,
            azimuth_deg=params.azimuth_deg,
            max_search=params.max_search,
            workers=workers,
            wall_time_s=wall_time,
            stats=stats,
        )

    @staticmethod
    def _compute_stats(shadow: np.ndarray) -> dict[str, float]:
        """Compute summary statistics for a shadow matrix."""
        n = shadow.size
        if n == 0:
            return {
                "mean_intensity": 0.0,
                "shadow_fraction": 0.0,
                "penumbra_fraction": 0.0,
                "full_light_fraction": 0.0,
            }

        full_shadow = float(np.sum(shadow == 0.0)) / n
        full_light = float(np.sum(shadow == 1.0)) / n
        penumbra = 1.0 - full_shadow - full_light

        return {
            "mean_intensity": float(shadow.mean()),
            "shadow_fraction": full_shadow,
            "penumbra_fraction": max(0.0, penumbra),
            "full_light_fraction": full_light,
        }


# ---------------------------------------------------------------------------
# Functional API
# ---------------------------------------------------------------------------


def ray_shade(
    heightmap: np.ndarray,
    anglebreaks: Iterable[float] = _DEFAULT_ANGLES_DEG,
    sunangle: float = 315.0,
    maxsearch: int = 100,
    lambert: bool = True,
    zscale: float = 1.0,
    multicore: bool = False,
    remove_edges: bool = True,
    cache_mask: np.ndarray | None = None,
    shadow_cache: np.ndarray | None = None,
    progbar: bool = False,
    worker_count: int | None = None,
    shadow_floor: float = 0.0,
) -> np.ndarray:
    """Calculate a shadow map by marching rays toward the light source(s).

    Parameters
    ----------
    heightmap : np.ndarray
        Elevation matrix, evenly spaced. Shape: (rows, cols).
    anglebreaks : iterable of float
        Sun elevation angle(s) above the horizon [deg]. Default 40–50°.
    sunangle : float
        Sun azimuth, 0 = north, clockwise [deg]. Default 315 (NW).
    maxsearch : int
        Maximum number of steps a ray is followed.
    lambert : bool
        Multiply in Lambertian shading.
    zscale : float
        Elevation units per horizontal cell spacing.
    multicore : bool
        Shade rows on a thread pool.
    remove_edges : bool
        Trim the one-cell border from the result.
    cache_mask : np.ndarray, optional
        {0,1} mask of interior cells to recompute, shape (rows-2, cols-2).
    shadow_cache : np.ndarray, optional
        Previous result to update at the masked cells (output shape).
    progbar : bool
        Log row progress.
    worker_count : int, optional
        Worker threads when ``multicore``; default one per CPU.
    shadow_floor : float
        Darkest factor the Lambert term applies, in [0, 1].

    Returns
    -------
    np.ndarray
        Light intensity at each point.
    """
    execution = ExecutionConfig(
        multicore=multicore,
        worker_count=worker_count,
        use_cache=True,
        trim_border=remove_edges,
        progress=progbar,
    )
    shader = RayShader(HeightField(heightmap, zscale=zscale), execution)
    result = shader.compute(
        angles_deg=anglebreaks,
        azimuth_deg=sunangle,
        max_search=maxsearch,
        lambert=lambert,
        shadow_floor=shadow_floor,
        cache_mask=cache_mask,
        shadow_cache=shadow_cache,
    )
    return result.shadow
