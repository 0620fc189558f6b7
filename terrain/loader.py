"""Heightmap and cache-mask loader for NumPy, delimited text and GeoTIFF files.

Reads an elevation matrix from disk and returns it as a float64 array
ready for :class:`shadow_engine.heightfield.HeightField`, or a {0,1}
recomputation mask for cache-aware runs. GeoTIFF support
needs ``rasterio``, which is imported only when a ``.tif`` file is read.
"""

from __future__ import annotations

import logging
from pathlib import Path

import numpy as np

logger = logging.getLogger(__name__)

_TEXT_SUFFIXES = {".csv", ".txt", ".asc"}
_GEOTIFF_SUFFIXES = {".tif", ".tiff"}


def _import_rasterio():
    """Lazy import rasterio with a helpful error message."""
    try:
        import rasterio
        return rasterio
    except ImportError as e:
        raise ImportError(
            "rasterio is required for loading GeoTIFF heightmaps. "
            "Install it with: pip install 'terrain-rayshade[geotiff]'"
        ) from e


def load_heightmap(
    file_path: str | Path,
    nodata_threshold: float = -1.0e30,
    max_size: int | None = None,
) -> np.ndarray:
    """Load an elevation matrix from disk.

    Parameters
    ----------
    file_path : str or Path
        ``.npy``, ``.csv`` / ``.txt`` / ``.asc`` (comma or whitespace
        delimited) or ``.tif`` / ``.tiff``.
    nodata_threshold : float
        GeoTIFF values below this are treated as NoData.
    max_size : int, optional
        Maximum grid dimension. Larger grids are decimated by skipping
        rows and columns.

    Returns
    -------
    np.ndarray
        Elevation grid. Shape: (rows, cols), dtype: float64.

    Raises
    ------
    FileNotFoundError
        If the file does not exist.
    ValueError
        If the format is unsupported, the data is not 2-D, or it holds no
        valid elevations.
    """
    file_path = Path(file_path)
    logger.info("Loading heightmap: %s", file_path)
    elevation = _read_grid(file_path, nodata_threshold)

    if max_size is not None:
        if max_size < 1:
            raise ValueError(f"max_size must be >= 1, got {max_size}")
        if max(elevation.shape) > max_size:
            step = int(np.ceil(max(elevation.shape) / max_size))
            elevation = elevation[::step, ::step]
            logger.info("  Downsampled to %d x %d (step=%d)", *elevation.shape, step)

    logger.info(
        "  Heightmap: %d x %d, z=[%.2f, %.2f]",
        elevation.shape[0],
        elevation.shape[1],
        float(elevation.min()),
        float(elevation.max()),
    )
    return np.ascontiguousarray(elevation)


def load_cache_mask(file_path: str | Path) -> np.ndarray:
    """Load a {0,1} recomputation mask.

    Accepts the same formats as :func:`load_heightmap`. The mask covers the
    heightmap interior, shape ``(rows-2, cols-2)``.

    Returns
    -------
    np.ndarray
        Mask, dtype uint8.

    Raises
    ------
    FileNotFoundError
        If the file does not exist.
    ValueError
        If the file is not 2-D or holds values other than 0 and 1.
    """
    file_path = Path(file_path)
    logger.info("Loading cache mask: %s", file_path)
    mask = _read_grid(file_path, nodata_threshold=-np.inf)

    if not np.all((mask == 0) | (mask == 1)):
        raise ValueError(f"Cache mask {file_path} must contain only 0 and 1")

    logger.info(
        "  Cache mask: %d x %d, %d cell(s) to recompute",
        mask.shape[0],
        mask.shape[1],
        int(np.count_nonzero(mask)),
    )
    return mask.astype(np.uint8)


def _read_grid(file_path: Path, nodata_threshold: float) -> np.ndarray:
    """Read a 2-D float64 grid from any supported file format."""
    if not file_path.exists():
        raise FileNotFoundError(f"Grid file not found: {file_path}")

    suffix = file_path.suffix.lower()
    if suffix == ".npy":
        grid = np.load(file_path).astype(np.float64)
    elif suffix in _TEXT_SUFFIXES:
        delimiter = "," if suffix == ".csv" else None
        grid = np.loadtxt(file_path, delimiter=delimiter, dtype=np.float64, ndmin=2)
    elif suffix in _GEOTIFF_SUFFIXES:
        grid = _load_geotiff(file_path, nodata_threshold)
    else:
        raise ValueError(
            f"Unsupported grid format '{suffix}'. "
            f"Expected .npy, {sorted(_TEXT_SUFFIXES)} or {sorted(_GEOTIFF_SUFFIXES)}"
        )

    if grid.ndim != 2:
        raise ValueError(f"Grid must be 2-D, got shape {grid.shape}")
    return grid


def _load_geotiff(file_path: Path, nodata_threshold: float) -> np.ndarray:
    """Read band 1 of a GeoTIFF and replace NoData with the lowest valid value."""
    rasterio = _import_rasterio()

    with rasterio.open(file_path) as src:
        logger.info(
            "  CRS: %s, Size: %d x %d, Bands: %d, dtype: %s, NoData: %s",
            src.crs, src.width, src.height, src.count, src.dtypes[0], src.nodata,
        )
        elevation = src.read(1).astype(np.float64)
        file_nodata = src.nodata

    mask = ~np.isfinite(elevation) | (elevation < nodata_threshold)
    if file_nodata is not None:
        mask |= np.isclose(elevation, file_nodata, rtol=1e-5)

    num_nodata = int(np.count_nonzero(mask))
    if num_nodata == elevation.size:
        raise ValueError(
            f"Heightmap contains no valid elevation data. "
            f"All {elevation.size} pixels are NoData."
        )
    if num_nodata > 0:
        valid_min = float(elevation[~mask].min())
        elevation[mask] = valid_min
        logger.info(
            "  NoData pixels: %d (%.1f%%) replaced with min valid elevation %.2f",
            num_nodata,
            100.0 * num_nodata / elevation.size,
            valid_min,
        )

    return elevation
