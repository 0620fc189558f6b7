"""Visualization module for shadow maps.

Generates figures using matplotlib:
- Shadow / light-intensity maps (grayscale)
- Shaded relief: elevation colour ramp darkened by the shadow map
- Recomputation mask for cache-aware runs
"""

from __future__ import annotations

import logging
from pathlib import Path

import matplotlib

matplotlib.use("Agg")  # Non-interactive backend for headless rendering

import matplotlib.pyplot as plt
import numpy as np
from matplotlib.colors import Normalize

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Color Configuration
# ---------------------------------------------------------------------------

_SHADOW_CMAP = "gray"
_TERRAIN_CMAP = "terrain"
_MASK_CMAP = "viridis"
_BACKGROUND = "#1a1a2e"
_DPI = 150


def _style_axes(fig: plt.Figure, ax: plt.Axes, title: str) -> None:
    ax.set_xlabel("Column", color="white")
    ax.set_ylabel("Row", color="white")
    ax.set_title(title, fontsize=14, fontweight="bold", color="white")
    ax.tick_params(colors="white")
    for spine in ax.spines.values():
        spine.set_edgecolor("#444")
    fig.tight_layout()


def _save(fig: plt.Figure, output_path: Path | str | None, dpi: int, label: str) -> None:
    if output_path is not None:
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(output_path, dpi=dpi, facecolor=fig.get_facecolor())
        logger.info("%s saved: %s", label, output_path)
    plt.close(fig)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def plot_shadow_map(
    shadow: np.ndarray,
    title: str = "Shadow Map",
    output_path: Path | str | None = None,
    dpi: int = _DPI,
) -> plt.Figure:
    """Plot a light-intensity matrix in grayscale (row 0 at the top = north).

    Parameters
    ----------
    shadow : np.ndarray
        Light intensity [0, 1]. Shape: (rows, cols).
    title : str
        Figure title.
    output_path : Path or str, optional
        If provided, save figure to this path.
    dpi : int
        Figure resolution.

    Returns
    -------
    matplotlib.figure.Figure
        The generated figure.
    """
    fig, ax = plt.subplots(1, 1, figsize=(10, 8), facecolor=_BACKGROUND)
    ax.set_facecolor(_BACKGROUND)

    image = ax.imshow(shadow, cmap=_SHADOW_CMAP, vmin=0.0, vmax=1.0, interpolation="nearest")
    cbar = fig.colorbar(image, ax=ax, label="Light Intensity", shrink=0.8)
    cbar.ax.yaxis.label.set_color("white")
    cbar.ax.tick_params(colors="white")

    _style_axes(fig, ax, title)
    _save(fig, output_path, dpi, "Shadow map")
    return fig


def plot_shaded_relief(
    elevation: np.ndarray,
    shadow: np.ndarray,
    title: str = "Shaded Relief",
    output_path: Path | str | None = None,
    dpi: int = _DPI,
) -> plt.Figure:
    """Plot elevation colours multiplied by the shadow map.

    If ``elevation`` is larger than ``shadow`` (border trimmed), the same
    border is cut from the elevation grid.

    Parameters
    ----------
    elevation : np.ndarray
        Elevation grid.
    shadow : np.ndarray
        Light intensity [0, 1].
    title : str
        Figure title.
    output_path : Path or str, optional
        If provided, save figure to this path.
    dpi : int
        Figure resolution.

    Returns
    -------
    matplotlib.figure.Figure
    """
    border = (elevation.shape[0] - shadow.shape[0]) // 2
    if border > 0:
        elevation = elevation[border:-border, border:-border]

    norm = Normalize(vmin=float(elevation.min()), vmax=float(elevation.max()) + 1e-12)
    rgb = matplotlib.colormaps[_TERRAIN_CMAP](norm(elevation))[..., :3]
    shaded = rgb * shadow[..., np.newaxis]

    fig, ax = plt.subplots(1, 1, figsize=(10, 8), facecolor=_BACKGROUND)
    ax.set_facecolor(_BACKGROUND)
    ax.imshow(np.clip(shaded, 0.0, 1.0), interpolation="nearest")

    _style_axes(fig, ax, title)
    _save(fig, output_path, dpi, "Shaded relief")
    return fig


def plot_cache_mask(
    mask: np.ndarray,
    title: str = "Recomputed Cells",
    output_path: Path | str | None = None,
    dpi: int = _DPI,
) -> plt.Figure:
    """Plot the {0,1} recomputation mask."""
    fig, ax = plt.subplots(1, 1, figsize=(10, 8), facecolor=_BACKGROUND)
    ax.set_facecolor(_BACKGROUND)
    ax.imshow(mask, cmap=_MASK_CMAP, vmin=0, vmax=1, interpolation="nearest")

    _style_axes(fig, ax, title)
    _save(fig, output_path, dpi, "Cache mask")
    return fig


def generate_all_plots(
    result: "ShadowResult",
    elevation: np.ndarray,
    output_dir: Path | str = "output",
    dpi: int = _DPI,
) -> list[Path]:
    """Generate all standard plots for a shading result.

    Parameters
    ----------
    result : ShadowResult
        Output of :meth:`shadow_engine.shading.RayShader.compute`.
    elevation : np.ndarray
        Elevation grid the result was computed from.
    output_dir : Path or str
        Directory for output plots.
    dpi : int
        Figure resolution.

    Returns
    -------
    list[Path]
        Paths to all generated plot files.
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    saved: list[Path] = []

    angles = result.angles_deg
    subtitle = f"azimuth {result.azimuth_deg:.0f}°, elevation {angles[0]:.0f}–{angles[-1]:.0f}°"

    p = output_dir / "shadow_map.png"
    plot_shadow_map(result.shadow, title=f"Shadow Map ({subtitle})", output_path=p, dpi=dpi)
    saved.append(p)

    p = output_dir / "shaded_relief.png"
    plot_shaded_relief(elevation, result.shadow, output_path=p, dpi=dpi)
    saved.append(p)

    if not np.all(result.mask == 1):
        p = output_dir / "cache_mask.png"
        plot_cache_mask(result.mask, output_path=p, dpi=dpi)
        saved.append(p)

    logger.info("Generated %d plots in %s", len(saved), output_dir)
    return saved
