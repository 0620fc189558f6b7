"""Cache merge — reuse previously computed shadows outside the mask."""

from __future__ import annotations

import logging

import numpy as np

from shadow_engine.errors import InvalidInputError

logger = logging.getLogger(__name__)


def merge_with_cache(
    fresh: np.ndarray,
    mask: np.ndarray,
    cache: np.ndarray | None,
) -> np.ndarray:
    """Overlay freshly computed cells onto a cached shadow matrix.

    Parameters
    ----------
    fresh : np.ndarray
        Newly computed shadow matrix (output window).
    mask : np.ndarray
        {0,1} mask of the output window, 1 = take the fresh value.
    cache : np.ndarray or None
        Previous shadow matrix. If None, ``fresh`` is returned unchanged.

    Returns
    -------
    np.ndarray
        Merged matrix. Neither input is modified.

    Raises
    ------
    InvalidInputError
        If the shapes of ``fresh``, ``mask`` and ``cache`` differ.
    """
    if cache is None:
        return fresh

    cache = np.asarray(cache, dtype=np.float64)
    if cache.shape != fresh.shape or mask.shape != fresh.shape:
        raise InvalidInputError(
            f"Cannot merge: fresh {fresh.shape}, mask {mask.shape}, cache {cache.shape}"
        )

    selected = mask == 1
    logger.debug(
        "Merging %d fresh cell(s) into cache of %d cell(s)",
        int(np.count_nonzero(selected)),
        cache.size,
    )
    return np.where(selected, fresh, cache)
