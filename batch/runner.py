"""Batch runner — terrain in, shadow map and figures out.

Orchestrates one complete shading job:
1. Load a heightmap file or generate a synthetic terrain
2. Optionally load a previous run as shadow cache
3. Run the ray shader
4. Save arrays + metadata and render figures
"""

from __future__ import annotations

import logging
from pathlib import Path

import numpy as np

from shadow_engine.config import ShadeConfig, hash_array
from shadow_engine.heightfield import HeightField
from shadow_engine.shading import RayShader, ShadowResult
from terrain.loader import load_heightmap
from terrain.synthetic import compute_terrain_statistics, generate_synthetic_terrain

logger = logging.getLogger(__name__)


class ShadowRunner:
    """Runs a configured shading job end to end.

    Parameters
    ----------
    config : ShadeConfig
        Full configuration loaded from YAML (CLI overrides applied).
    """

    def __init__(self, config: ShadeConfig) -> None:
        self._config = config
        logger.info(
            "ShadowRunner initialized: azimuth=%.1f°, %d angle(s), max_search=%d, "
            "zscale=%.3f, multicore=%s",
            config.lighting.sun_angle_deg,
            len(config.lighting.angle_breaks_deg),
            config.raymarch.max_search,
            config.raymarch.zscale,
            config.execution.multicore,
        )

    @property
    def config(self) -> ShadeConfig:
        return self._config

    def load_terrain(self, heightmap_path: Path | str | None = None) -> np.ndarray:
        """Read the heightmap file, or generate the configured synthetic terrain."""
        if heightmap_path is not None:
            logger.info("Step 1/3: Loading heightmap (%s)...", heightmap_path)
            return load_heightmap(heightmap_path, max_size=self._config.max_size)
        logger.info("Step 1/3: Generating synthetic terrain...")
        return generate_synthetic_terrain(self._config.terrain)

    def run(
        self,
        heightmap_path: Path | str | None = None,
        cache_dir: Path | str | None = None,
        cache_mask: np.ndarray | None = None,
        save_data: bool = True,
        make_plots: bool = True,
        output_dir: Path | str | None = None,
    ) -> ShadowResult:
        """Execute the shading job.

        Parameters
        ----------
        heightmap_path : Path or str, optional
            Elevation file. If None, a synthetic terrain is generated.
        cache_dir : Path or str, optional
            Directory of a previous run whose ``shadow_map.npy`` is used
            as the shadow cache.
        cache_mask : np.ndarray, optional
            {0,1} mask of interior cells to recompute, shape
            (rows-2, cols-2). Cells outside it keep the cached value.
        save_data : bool
            Persist arrays and metadata.
        make_plots : bool
            Render PNG figures.
        output_dir : Path or str, optional
            Override the configured output directory.

        Returns
        -------
        ShadowResult
        """
        cfg = self._config
        output_dir = Path(output_dir if output_dir is not None else cfg.output_dir)

        elevation = self.load_terrain(heightmap_path)
        terrain_stats = compute_terrain_statistics(elevation)

        shadow_cache = None
        if cache_dir is not None:
            from batch.io_manager import load_results

            shadow_cache = load_results(cache_dir)["shadow_map"]
            if shadow_cache is None:
                raise FileNotFoundError(f"No shadow_map.npy in cache directory {cache_dir}")
            logger.info("Using shadow cache from %s: shape=%s", cache_dir, shadow_cache.shape)
            if cache_mask is None:
                logger.warning(
                    "Shadow cache given without a cache mask: every cell is "
                    "recomputed and no cached value is kept"
                )

        logger.info("Step 2/3: Shading...")
        shader = RayShader(HeightField(elevation, zscale=cfg.raymarch.zscale), cfg.execution)
        result = shader.compute(
            angles_deg=cfg.lighting.angle_breaks_deg,
            azimuth_deg=cfg.lighting.sun_angle_deg,
            max_search=cfg.raymarch.max_search,
            lambert=cfg.shading.lambert,
            shadow_floor=cfg.shading.shadow_floor,
            cache_mask=cache_mask,
            shadow_cache=shadow_cache,
        )

        digest = hash_array(result.shadow)
        logger.info("Shadow map SHA-256: %s", digest)

        logger.info("Step 3/3: Writing outputs to %s/...", output_dir)
        if save_data:
            from batch.io_manager import save_results

            save_results(
                output_dir=output_dir,
                shadow=result.shadow,
                heightmap=elevation,
                cache_mask=result.mask,
                metadata={
                    "heightmap_source": str(heightmap_path) if heightmap_path else "synthetic",
                    "max_size": cfg.max_size,
                    "cache_dir": str(cache_dir) if cache_dir else None,
                    "cached_cells": int(np.count_nonzero(result.mask == 0)),
                    "terrain": terrain_stats,
                    "angles_deg": result.angles_deg,
                    "azimuth_deg": result.azimuth_deg,
                    "max_search": result.max_search,
                    "zscale": cfg.raymarch.zscale,
                    "lambert": cfg.shading.lambert,
                    "shadow_floor": cfg.shading.shadow_floor,
                    "trim_border": cfg.execution.trim_border,
                    "workers": result.workers,
                    "wall_time_s": result.wall_time_s,
                    "stats": result.stats,
                    "sha256": digest,
                },
            )

        if make_plots:
            from visualization.plotter import generate_all_plots

            generate_all_plots(result, elevation, output_dir=output_dir)

        return result

