"""Height field container, valid computation region, and terrain lookup.

The height field is the read-only input shared by every ray march. It is
stored row-major with row 0 on the north edge and column 0 on the west
edge. Elevations are divided by ``zscale`` before marching so that one
horizontal cell spacing and one vertical unit are the same length.

Notes
-----
Border handling is modelled by :class:`ComputeRegion` rather than by
padding arrays at call sites. A cache mask always covers the interior
(rows-2) x (cols-2) and is padded with a zero ring, so border cells are
never recomputed over a cached value. With ``border=1`` the ring is also
dropped from the output; rays may still cross it:

    padded mask (rows x cols)        user mask: (rows-2) x (cols-2)
    +---------------------+
    | 0 0 0 0 0 0 0 0 0 0 |          output / cache:
    | 0 . . . . . . . . 0 |            border=1  (rows-2) x (cols-2)
    | 0 . . . . . . . . 0 |            border=0  rows x cols
    | 0 0 0 0 0 0 0 0 0 0 |
    +---------------------+
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

import numpy as np
from numba import njit

from shadow_engine.errors import InvalidInputError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Height Field
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class HeightField:
    """Immutable elevation grid with a vertical scale factor.

    Attributes
    ----------
    elevation : np.ndarray
        Elevation samples. Shape: (rows, cols), dtype: float64. A private
        read-only copy of the input is stored.
    zscale : float
        Elevation units per horizontal cell spacing. Elevations in metres
        on a 10 m grid give ``zscale=10``.
    """

    elevation: np.ndarray
    zscale: float = 1.0

    def __post_init__(self) -> None:
        elevation = np.array(self.elevation, dtype=np.float64)
        if elevation.ndim != 2:
            raise InvalidInputError(
                f"Height field must be 2-D, got {elevation.ndim} dimension(s)"
            )
        if elevation.shape[0] < 1 or elevation.shape[1] < 1:
            raise InvalidInputError(f"Height field is empty: shape={elevation.shape}")
        if not np.all(np.isfinite(elevation)):
            raise InvalidInputError(
                f"Height field contains {int(np.count_nonzero(~np.isfinite(elevation)))} "
                "non-finite value(s)"
            )
        zscale = float(self.zscale)
        if not math.isfinite(zscale) or zscale <= 0.0:
            raise InvalidInputError(f"zscale must be positive, got {self.zscale}")

        elevation.setflags(write=False)
        object.__setattr__(self, "elevation", elevation)
        object.__setattr__(self, "zscale", zscale)

    @property
    def shape(self) -> tuple[int, int]:
        """Grid shape (rows, cols)."""
        return self.elevation.shape

    @property
    def rows(self) -> int:
        return self.elevation.shape[0]

    @property
    def cols(self) -> int:
        return self.elevation.shape[1]

    def scaled(self) -> np.ndarray:
        """Elevation in horizontal grid units (``elevation / zscale``).

        Returns
        -------
        np.ndarray
            New C-contiguous float64 array. Shape: (rows, cols).
        """
        return np.ascontiguousarray(self.elevation / self.zscale)


# ---------------------------------------------------------------------------
# Valid Computation Region
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ComputeRegion:
    """Maps between the full marching grid and the output window.

    Attributes
    ----------
    grid_shape : tuple[int, int]
        Shape of the full height field.
    border : int
        Width of the context ring excluded from the output (0 or 1).
    """

    grid_shape: tuple[int, int]
    border: int = 0

    def __post_init__(self) -> None:
        rows, cols = self.grid_shape
        if self.border not in (0, 1):
            raise InvalidInputError(f"border must be 0 or 1, got {self.border}")
        if self.border and (rows < 3 or cols < 3):
            raise InvalidInputError(
                f"Border trimming needs at least a 3 x 3 grid, got {rows} x {cols}"
            )

    @classmethod
    def for_heightfield(cls, heightfield: HeightField, trim_border: bool) -> ComputeRegion:
        return cls(grid_shape=heightfield.shape, border=1 if trim_border else 0)

    @property
    def output_shape(self) -> tuple[int, int]:
        rows, cols = self.grid_shape
        return rows - 2 * self.border, cols - 2 * self.border

    @property
    def window(self) -> tuple[slice, slice]:
        """Slices selecting the output window inside the full grid."""
        rows, cols = self.grid_shape
        b = self.border
        return slice(b, rows - b), slice(b, cols - b)

    def trim(self, matrix: np.ndarray) -> np.ndarray:
        """Cut a full-grid matrix down to the output window (copy)."""
        if matrix.shape != self.grid_shape:
            raise InvalidInputError(
                f"Expected full-grid shape {self.grid_shape}, got {matrix.shape}"
            )
        return matrix[self.window].copy()

    def check_output_shape(self, array: np.ndarray, name: str) -> None:
        """Raise if ``array`` does not have the output window's shape."""
        if array.shape != self.output_shape:
            raise InvalidInputError(
                f"{name} shape {array.shape} does not match output shape "
                f"{self.output_shape} (grid {self.grid_shape}, border={self.border})"
            )

    @property
    def mask_shape(self) -> tuple[int, int]:
        """Shape of a user cache mask: the grid minus its one-cell ring."""
        rows, cols = self.grid_shape
        return rows - 2, cols - 2

    def pad_mask(self, mask: np.ndarray | None) -> np.ndarray:
        """Embed an interior {0,1} mask into a full-grid mask.

        The mask always has shape ``(rows-2, cols-2)``, whether or not the
        border is trimmed from the output, and the padding ring is 0.

        Parameters
        ----------
        mask : np.ndarray or None
            Interior mask, 1 = compute. If None, every cell of the full
            grid (border included) is selected.

        Returns
        -------
        np.ndarray
            Full-grid mask, dtype uint8.
        """
        if mask is None:
            return np.ones(self.grid_shape, dtype=np.uint8)

        rows, cols = self.grid_shape
        if rows < 3 or cols < 3:
            raise InvalidInputError(
                f"cache_mask needs at least a 3 x 3 grid, got {rows} x {cols}"
            )
        mask = np.asarray(mask)
        if mask.shape != self.mask_shape:
            raise InvalidInputError(
                f"cache_mask shape {mask.shape} does not match interior shape "
                f"{self.mask_shape} (grid {self.grid_shape})"
            )
        if not np.all((mask == 0) | (mask == 1)):
            raise InvalidInputError("cache_mask must contain only 0 and 1")

        padded = np.zeros(self.grid_shape, dtype=np.uint8)
        padded[1:-1, 1:-1] = mask.astype(np.uint8)
        return padded


# ---------------------------------------------------------------------------
# Terrain Lookup: Numba JIT
# ---------------------------------------------------------------------------


@njit(cache=True, nogil=True, fastmath=False)
def interpolate_height(elevation: np.ndarray, row: float, col: float) -> float:
    """Bilinearly interpolate the terrain height at a fractional position.

    The position must lie inside ``[0, rows-1] x [0, cols-1]``; callers
    test bounds first. On the last row/column the lower cell index is
    pulled back by one so the fraction becomes 1.0, and single-row or
    single-column grids degenerate to linear interpolation.

    Parameters
    ----------
    elevation : np.ndarray
        Scaled elevation grid. Shape: (rows, cols).
    row, col : float
        Fractional grid coordinates.

    Returns
    -------
    float
        Interpolated elevation.
    """
    nrows = elevation.shape[0]
    ncols = elevation.shape[1]

    i0 = int(math.floor(row))
    j0 = int(math.floor(col))
    if i0 > nrows - 2:
        i0 = nrows - 2
    if j0 > ncols - 2:
        j0 = ncols - 2
    if i0 < 0:
        i0 = 0
    if j0 < 0:
        j0 = 0
    i1 = min(i0 + 1, nrows - 1)
    j1 = min(j0 + 1, ncols - 1)

    fr = row - i0
    fc = col - j0

    top = elevation[i0, j0] * (1.0 - fc) + elevation[i0, j1] * fc
    bottom = elevation[i1, j0] * (1.0 - fc) + elevation[i1, j1] * fc
    return top * (1.0 - fr) + bottom * fr
