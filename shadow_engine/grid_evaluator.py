"""Grid evaluator — applies the row kernel to every row of the height field.

Rows are independent: no cell's shadow depends on another cell's result.
The evaluator therefore either loops over rows in the calling thread or
dispatches one task per row to a thread pool. The Numba row kernel
releases the GIL (``nogil=True``), so worker threads run truly in
parallel while sharing the read-only elevation array without copies.

Both modes call the same compiled kernel on the same inputs and assemble
rows by index, so their outputs are bit-identical.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor, as_completed

import numpy as np

from shadow_engine.config import ExecutionConfig
from shadow_engine.errors import InvalidInputError, WorkerFailureError
from shadow_engine.raymarcher import MarchParameters, shade_row

logger = logging.getLogger(__name__)

# Value of cells the cache mask excludes when no shadow cache is merged.
UNCOMPUTED_VALUE: float = 1.0


# ---------------------------------------------------------------------------
# Progress reporting
# ---------------------------------------------------------------------------


class _RowProgress:
    """Logs completed-row counts at roughly 10 % intervals."""

    def __init__(self, total: int, enabled: bool) -> None:
        self._total = total
        self._enabled = enabled
        self._done = 0
        self._next_report = 0.1
        self._start = time.perf_counter()

    def advance(self) -> None:
        self._done += 1
        if not self._enabled or self._total == 0:
            return
        fraction = self._done / self._total
        if fraction >= self._next_report or self._done == self._total:
            logger.info(
                "  Rows shaded: %d/%d (%.0f%%), %.1f s elapsed",
                self._done,
                self._total,
                fraction * 100.0,
                time.perf_counter() - self._start,
            )
            while self._next_report <= fraction:
                self._next_report += 0.1


# ---------------------------------------------------------------------------
# Row task
# ---------------------------------------------------------------------------


def _shade_one_row(
    elevation: np.ndarray,
    row: int,
    mask_row: np.ndarray,
    params: MarchParameters,
    uncomputed_value: float,
) -> np.ndarray:
    """Shade one row, skipping the kernel when the mask excludes every cell."""
    if not mask_row.any():
        return np.full(elevation.shape[1], uncomputed_value, dtype=np.float64)
    return shade_row(
        elevation,
        row,
        mask_row,
        params.d_row,
        params.d_col,
        params.rises,
        params.max_search,
        params.ceiling,
        uncomputed_value,
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def evaluate_grid(
    elevation: np.ndarray,
    mask: np.ndarray,
    params: MarchParameters,
    execution: ExecutionConfig,
    uncomputed_value: float = UNCOMPUTED_VALUE,
) -> np.ndarray:
    """Compute the raw shadow matrix for every masked cell.

    Parameters
    ----------
    elevation : np.ndarray
        Scaled elevation grid (``elevation / zscale``). Shape: (rows, cols).
    mask : np.ndarray
        Full-grid {0,1} mask, 1 = compute. Shape: (rows, cols).
    params : MarchParameters
        Precomputed march constants.
    execution : ExecutionConfig
        Worker count and progress settings.
    uncomputed_value : float
        Value written to cells the mask excludes.

    Returns
    -------
    np.ndarray
        Shadow intensities, unclamped. Shape: (rows, cols), dtype: float64.

    Raises
    ------
    InvalidInputError
        If shapes disagree or the worker count is below 1.
    WorkerFailureError
        If a row task fails in parallel mode.
    """
    if mask.shape != elevation.shape:
        raise InvalidInputError(
            f"Mask shape {mask.shape} does not match grid shape {elevation.shape}"
        )
    workers = execution.resolved_workers()
    if workers < 1:
        raise InvalidInputError(f"worker_count must be >= 1, got {workers}")

    elevation = np.ascontiguousarray(elevation, dtype=np.float64)
    mask = np.ascontiguousarray(mask, dtype=np.uint8)
    nrows = elevation.shape[0]

    logger.info(
        "Evaluating %d x %d grid: %d masked cells, %d angle(s), %d worker(s)",
        nrows,
        elevation.shape[1],
        int(np.count_nonzero(mask)),
        params.num_angles,
        workers,
    )

    if workers == 1:
        rows = _evaluate_sequential(elevation, mask, params, execution, uncomputed_value)
    else:
        rows = _evaluate_parallel(
            elevation, mask, params, execution, uncomputed_value, workers
        )

    return np.vstack(rows) if rows else np.empty(elevation.shape, dtype=np.float64)


def _evaluate_sequential(
    elevation: np.ndarray,
    mask: np.ndarray,
    params: MarchParameters,
    execution: ExecutionConfig,
    uncomputed_value: float,
) -> list[np.ndarray]:
    progress = _RowProgress(elevation.shape[0], execution.progress)
    rows: list[np.ndarray] = []
    for row in range(elevation.shape[0]):
        rows.append(_shade_one_row(elevation, row, mask[row], params, uncomputed_value))
        progress.advance()
    return rows


def _evaluate_parallel(
    elevation: np.ndarray,
    mask: np.ndarray,
    params: MarchParameters,
    execution: ExecutionConfig,
    uncomputed_value: float,
    workers: int,
) -> list[np.ndarray]:
    """Dispatch one task per row and collect results in row order.

    The pool is shut down on every exit path; on failure pending rows are
    cancelled and the finished ones are discarded.
    """
    nrows = elevation.shape[0]
    progress = _RowProgress(nrows, execution.progress)
    results: list[np.ndarray | None] = [None] * nrows

    pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="rayshade")
    try:
        future_rows: dict[Future, int] = {
            pool.submit(
                _shade_one_row, elevation, row, mask[row], params, uncomputed_value
            ): row
            for row in range(nrows)
        }
        for future in as_completed(future_rows):
            row = future_rows[future]
            try:
                results[row] = future.result()
            except Exception as exc:
                logger.error("Row %d failed; aborting shading run: %s", row, exc)
                raise WorkerFailureError(
                    f"Row task {row} failed: {exc}", row=row
                ) from exc
            progress.advance()
    finally:
        pool.shutdown(wait=True, cancel_futures=True)

    return results
