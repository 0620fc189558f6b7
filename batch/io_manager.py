"""Data I/O manager — persist shading results as NumPy arrays.

Saves and loads shadow maps together with the heightmap they were computed
from, so a later run can reuse the matrix as a shadow cache or re-render
figures without re-marching rays.

File layout under output_dir/:
    shadow_map.npy   — Final light intensity, shape (rows', cols')
    heightmap.npy    — Input elevation grid, shape (rows, cols)
    cache_mask.npy   — {0,1} mask of recomputed cells, shape (rows', cols')
    metadata.json    — Run metadata (JSON)
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

import numpy as np

logger = logging.getLogger(__name__)

_ARRAY_FILES = (
    ("shadow_map", "shadow_map.npy"),
    ("heightmap", "heightmap.npy"),
    ("cache_mask", "cache_mask.npy"),
)


def save_results(
    output_dir: Path | str,
    shadow: np.ndarray,
    heightmap: np.ndarray,
    cache_mask: np.ndarray,
    metadata: dict,
) -> list[Path]:
    """Save a shading run to disk as NumPy arrays + JSON.

    Parameters
    ----------
    output_dir : Path or str
        Output directory (created if needed).
    shadow : np.ndarray
        Final light-intensity matrix.
    heightmap : np.ndarray
        Elevation grid the shadows were computed from.
    cache_mask : np.ndarray
        Mask of cells recomputed in this run.
    metadata : dict
        Run metadata.

    Returns
    -------
    list[Path]
        Paths to all saved files.
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    saved: list[Path] = []
    arrays = {"shadow_map": shadow, "heightmap": heightmap, "cache_mask": cache_mask}

    for key, filename in _ARRAY_FILES:
        path = output_dir / filename
        np.save(path, arrays[key])
        saved.append(path)
        logger.debug("Saved %s: shape=%s, dtype=%s", filename, arrays[key].shape, arrays[key].dtype)

    meta_path = output_dir / "metadata.json"
    with open(meta_path, "w", encoding="utf-8") as f:
        json.dump(_sanitize_for_json(metadata), f, indent=2, ensure_ascii=False)
    saved.append(meta_path)

    logger.info("Saved %d files to %s (shadow: %s)", len(saved), output_dir, shadow.shape)
    return saved


def load_results(output_dir: Path | str) -> dict[str, np.ndarray | dict | None]:
    """Load previously saved shading results.

    Parameters
    ----------
    output_dir : Path or str
        Directory containing saved results.

    Returns
    -------
    dict
        Keys: 'shadow_map', 'heightmap', 'cache_mask', 'metadata'. Missing
        arrays are None; missing metadata is an empty dict.
    """
    output_dir = Path(output_dir)
    if not output_dir.exists():
        raise FileNotFoundError(f"Output directory not found: {output_dir}")

    data: dict = {}
    for key, filename in _ARRAY_FILES:
        path = output_dir / filename
        if path.exists():
            data[key] = np.load(path)
            logger.debug("Loaded %s: shape=%s", key, data[key].shape)
        else:
            logger.warning("Missing file: %s", path)
            data[key] = None

    meta_path = output_dir / "metadata.json"
    if meta_path.exists():
        with open(meta_path, "r", encoding="utf-8") as f:
            data["metadata"] = json.load(f)
    else:
        data["metadata"] = {}

    logger.info("Loaded results from %s (%d keys)", output_dir, len(data))
    return data


def _sanitize_for_json(obj: object) -> object:
    """Recursively convert NumPy types and other non-JSON types to Python natives."""
    if isinstance(obj, dict):
        return {k: _sanitize_for_json(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_sanitize_for_json(v) for v in obj]
    if isinstance(obj, np.integer):
        return int(obj)
    if isinstance(obj, np.floating):
        return float(obj)
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    if isinstance(obj, np.bool_):
        return bool(obj)
    if isinstance(obj, Path):
        return str(obj)
    return obj
