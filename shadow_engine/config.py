"""Shading configuration and YAML loader.

Run settings are loaded from a YAML file into frozen dataclasses and
validated once. The grid evaluator receives its execution settings as an
explicit :class:`ExecutionConfig` argument instead of reading process-wide
options.

Defaults follow the classic ``ray_shade`` routine: sun from the north-west
(315°), elevation angles 40°–50° in 1° steps, 100 search steps, unit
``zscale``, Lambertian blending on and border trimming on.
"""

from __future__ import annotations

import hashlib
import logging
import os
import platform
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import numba
import numpy as np
import yaml

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Configuration Data Classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LightingConfig:
    """Sun position.

    Attributes
    ----------
    sun_angle_deg : float
        Azimuth of the light source, 0 = north, clockwise [deg].
    angle_breaks_deg : tuple[float, ...]
        Elevation angles sampled across the solar disk [deg].
    """

    sun_angle_deg: float = 315.0
    angle_breaks_deg: tuple[float, ...] = tuple(float(a) for a in range(40, 51))


@dataclass(frozen=True)
class RaymarchConfig:
    """Ray marching limits.

    Attributes
    ----------
    max_search : int
        Maximum number of DDA steps per ray.
    zscale : float
        Elevation units per horizontal cell spacing.
    """

    max_search: int = 100
    zscale: float = 1.0


@dataclass(frozen=True)
class ExecutionConfig:
    """How the grid evaluator runs.

    Attributes
    ----------
    multicore : bool
        If True, rows are dispatched to a thread pool.
    worker_count : int or None
        Number of parallel row tasks in flight. None means one per CPU.
        Ignored when ``multicore`` is False.
    use_cache : bool
        If True, a supplied cache mask restricts which cells are computed
        and a supplied shadow cache is merged into the result. If False
        both are ignored and every cell is computed.
    trim_border : bool
        Drop the one-cell border from the result (and the mask).
    progress : bool
        Log row progress at INFO level.
    """

    multicore: bool = False
    worker_count: int | None = None
    use_cache: bool = True
    trim_border: bool = True
    progress: bool = False

    def resolved_workers(self) -> int:
        """Number of workers the evaluator will actually use."""
        if not self.multicore:
            return 1
        if self.worker_count is None:
            return os.cpu_count() or 1
        return int(self.worker_count)


@dataclass(frozen=True)
class ShadingConfig:
    """Lambertian blending settings.

    Attributes
    ----------
    lambert : bool
        Blend the ray-traced shadows with Lambertian shading.
    shadow_floor : float
        Darkest factor the Lambert term may apply to a lit cell, in [0, 1].
    """

    lambert: bool = True
    shadow_floor: float = 0.0


@dataclass(frozen=True)
class SyntheticTerrainConfig:
    """Synthetic terrain used when no heightmap file is given.

    Attributes
    ----------
    terrain_type : str
        'flat', 'spike', 'wall', 'parabolic_bowl' or 'conical'.
    rows, cols : int
        Grid shape.
    height : float
        Feature height (spike, wall, rim) or crater depth [elevation units].
    radius_cells : float
        Crater radius in cells (bowl / conical).
    noise_amplitude : float
        Standard deviation of additive Gaussian noise.
    seed : int
        Random seed for reproducibility.
    """

    terrain_type: str = "parabolic_bowl"
    rows: int = 128
    cols: int = 128
    height: float = 20.0
    radius_cells: float = 40.0
    noise_amplitude: float = 0.0
    seed: int = 42


@dataclass
class ShadeConfig:
    """Top-level configuration loaded from YAML.

    Attributes
    ----------
    lighting : LightingConfig
    raymarch : RaymarchConfig
    execution : ExecutionConfig
    shading : ShadingConfig
    terrain : SyntheticTerrainConfig
    output_dir : str
        Directory for saved arrays and figures.
    max_size : int or None
        Largest grid dimension kept when reading a heightmap file; larger
        files are decimated. None keeps full resolution.
    """

    lighting: LightingConfig = field(default_factory=LightingConfig)
    raymarch: RaymarchConfig = field(default_factory=RaymarchConfig)
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)
    shading: ShadingConfig = field(default_factory=ShadingConfig)
    terrain: SyntheticTerrainConfig = field(default_factory=SyntheticTerrainConfig)
    output_dir: str = "output"
    max_size: int | None = None


# ---------------------------------------------------------------------------
# Configuration Loader
# ---------------------------------------------------------------------------


def load_config(config_path: str | Path) -> ShadeConfig:
    """Load and validate a shading configuration from a YAML file.

    Missing sections or keys fall back to the dataclass defaults.

    Parameters
    ----------
    config_path : str or Path
        Path to the YAML configuration file.

    Returns
    -------
    ShadeConfig
        Fully populated, typed configuration object.

    Raises
    ------
    FileNotFoundError
        If the configuration file does not exist.
    ValueError
        If values are invalid.
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        raw: dict[str, Any] = yaml.safe_load(f) or {}

    logger.info("Loading configuration from: %s", config_path)
    config = config_from_dict(raw)
    logger.info("Configuration loaded successfully.")
    return config


def config_from_dict(raw: dict[str, Any]) -> ShadeConfig:
    """Build a validated :class:`ShadeConfig` from a parsed YAML mapping."""
    defaults = ShadeConfig()

    # --- Lighting ---
    lit = raw.get("lighting") or {}
    lighting = LightingConfig(
        sun_angle_deg=float(lit.get("sun_angle_deg", defaults.lighting.sun_angle_deg)),
        angle_breaks_deg=_parse_angle_breaks(
            lit.get("angle_breaks_deg", defaults.lighting.angle_breaks_deg)
        ),
    )

    # --- Ray marching ---
    rm = raw.get("raymarch") or {}
    raymarch = RaymarchConfig(
        max_search=int(rm.get("max_search", defaults.raymarch.max_search)),
        zscale=float(rm.get("zscale", defaults.raymarch.zscale)),
    )

    # --- Execution ---
    ex = raw.get("execution") or {}
    workers = ex.get("worker_count", defaults.execution.worker_count)
    execution = ExecutionConfig(
        multicore=bool(ex.get("multicore", defaults.execution.multicore)),
        worker_count=None if workers is None else int(workers),
        use_cache=bool(ex.get("use_cache", defaults.execution.use_cache)),
        trim_border=bool(ex.get("trim_border", defaults.execution.trim_border)),
        progress=bool(ex.get("progress", defaults.execution.progress)),
    )

    # --- Shading ---
    sh = raw.get("shading") or {}
    shading = ShadingConfig(
        lambert=bool(sh.get("lambert", defaults.shading.lambert)),
        shadow_floor=float(sh.get("shadow_floor", defaults.shading.shadow_floor)),
    )

    # --- Synthetic terrain ---
    ter = raw.get("terrain") or {}
    td = defaults.terrain
    terrain = SyntheticTerrainConfig(
        terrain_type=str(ter.get("type", td.terrain_type)),
        rows=int(ter.get("rows", td.rows)),
        cols=int(ter.get("cols", td.cols)),
        height=float(ter.get("height", td.height)),
        radius_cells=float(ter.get("radius_cells", td.radius_cells)),
        noise_amplitude=float(ter.get("noise_amplitude", td.noise_amplitude)),
        seed=int(ter.get("seed", td.seed)),
    )

    inp = raw.get("input") or {}
    max_size = inp.get("max_size", defaults.max_size)

    out = raw.get("output") or {}
    config = ShadeConfig(
        lighting=lighting,
        raymarch=raymarch,
        execution=execution,
        shading=shading,
        terrain=terrain,
        output_dir=str(out.get("dir", defaults.output_dir)),
        max_size=None if max_size is None else int(max_size),
    )

    _validate_config(config)
    return config


def _parse_angle_breaks(value: Any) -> tuple[float, ...]:
    """Parse a list of angles or an inclusive ``{start, stop, step}`` range."""
    if isinstance(value, dict):
        start = float(value["start"])
        stop = float(value["stop"])
        step = float(value.get("step", 1.0))
        if step <= 0:
            raise ValueError(f"angle_breaks_deg step must be positive, got {step}")
        count = int(np.floor((stop - start) / step + 1e-9)) + 1
        return tuple(float(start + i * step) for i in range(max(count, 0)))
    if isinstance(value, (int, float)):
        return (float(value),)
    return tuple(float(a) for a in value)


def _validate_config(config: ShadeConfig) -> None:
    """Validate value ranges.

    Raises
    ------
    ValueError
        If any value is invalid.
    """
    if not config.lighting.angle_breaks_deg:
        raise ValueError("angle_breaks_deg must contain at least one angle.")
    for angle in config.lighting.angle_breaks_deg:
        if not (0.0 <= angle <= 90.0):
            raise ValueError(f"Elevation angles must be in [0, 90], got {angle}")
    if config.raymarch.max_search < 1:
        raise ValueError(f"max_search must be >= 1, got {config.raymarch.max_search}")
    if config.raymarch.zscale <= 0:
        raise ValueError(f"zscale must be positive, got {config.raymarch.zscale}")
    if config.execution.worker_count is not None and config.execution.worker_count < 1:
        raise ValueError(
            f"worker_count must be >= 1 or null, got {config.execution.worker_count}"
        )
    if not (0.0 <= config.shading.shadow_floor <= 1.0):
        raise ValueError(
            f"shadow_floor must be in [0, 1], got {config.shading.shadow_floor}"
        )
    if config.terrain.rows < 1 or config.terrain.cols < 1:
        raise ValueError("Synthetic terrain rows and cols must be positive.")
    if config.max_size is not None and config.max_size < 3:
        raise ValueError(f"input max_size must be >= 3 or null, got {config.max_size}")

    logger.debug("Configuration validation passed.")


def log_platform_info() -> None:
    """Log platform and library version information for reproducibility."""
    logger.info("=" * 70)
    logger.info("PLATFORM INFORMATION (for reproducibility)")
    logger.info("=" * 70)
    logger.info("  Python:    %s", sys.version)
    logger.info("  Platform:  %s", platform.platform())
    logger.info("  CPUs:      %s", os.cpu_count())
    logger.info("  NumPy:     %s", np.__version__)
    logger.info("  Numba:     %s", numba.__version__)
    logger.info("=" * 70)


def hash_array(arr: np.ndarray) -> str:
    """Compute SHA-256 hash of a NumPy array for reproducibility verification.

    Parameters
    ----------
    arr : np.ndarray
        Array to hash.

    Returns
    -------
    str
        Hex digest of the SHA-256 hash.
    """
    return hashlib.sha256(np.ascontiguousarray(arr).tobytes()).hexdigest()
