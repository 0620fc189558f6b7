"""Tests for the sequential and row-parallel grid evaluator."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor

import numpy as np
import pytest

from shadow_engine import grid_evaluator
from shadow_engine.config import ExecutionConfig
from shadow_engine.errors import InvalidInputError, WorkerFailureError
from shadow_engine.grid_evaluator import UNCOMPUTED_VALUE, evaluate_grid
from shadow_engine.raymarcher import build_march_parameters


@pytest.fixture
def params(rough_terrain: np.ndarray):
    return build_march_parameters(np.arange(30.0, 41.0), 135.0, 50, rough_terrain)


# ===================================================================
# DETERMINISM
# ===================================================================


class TestParallelEquivalence:
    """Worker count must never change the result."""

    @pytest.mark.parametrize("workers", [2, 3, 8])
    def test_parallel_matches_sequential(
        self, rough_terrain: np.ndarray, params, workers: int
    ) -> None:
        mask = np.ones(rough_terrain.shape, dtype=np.uint8)
        sequential = evaluate_grid(rough_terrain, mask, params, ExecutionConfig())
        parallel = evaluate_grid(
            rough_terrain,
            mask,
            params,
            ExecutionConfig(multicore=True, worker_count=workers),
        )
        assert np.array_equal(sequential, parallel), (
            f"{workers} workers produced a different shadow matrix"
        )

    def test_repeated_runs_identical(self, rough_terrain: np.ndarray, params) -> None:
        mask = np.ones(rough_terrain.shape, dtype=np.uint8)
        execution = ExecutionConfig(multicore=True, worker_count=4)
        first = evaluate_grid(rough_terrain, mask, params, execution)
        second = evaluate_grid(rough_terrain, mask, params, execution)
        assert np.array_equal(first, second)

    def test_output_shape_and_range(self, rough_terrain: np.ndarray, params) -> None:
        mask = np.ones(rough_terrain.shape, dtype=np.uint8)
        out = evaluate_grid(rough_terrain, mask, params, ExecutionConfig())
        assert out.shape == rough_terrain.shape
        assert out.dtype == np.float64
        assert np.all((out >= 0.0) & (out <= 1.0))


# ===================================================================
# MASKING
# ===================================================================


class TestMask:

    def test_unmasked_cells_uncomputed(self, rough_terrain: np.ndarray, params) -> None:
        mask = np.zeros(rough_terrain.shape, dtype=np.uint8)
        out = evaluate_grid(rough_terrain, mask, params, ExecutionConfig())
        assert np.all(out == UNCOMPUTED_VALUE)

    def test_masked_cells_match_full_run(self, rough_terrain: np.ndarray, params) -> None:
        full_mask = np.ones(rough_terrain.shape, dtype=np.uint8)
        full = evaluate_grid(rough_terrain, full_mask, params, ExecutionConfig())

        mask = np.zeros(rough_terrain.shape, dtype=np.uint8)
        mask[5:15, 3:20] = 1
        mask[30, :] = 1
        partial = evaluate_grid(
            rough_terrain, mask, params, ExecutionConfig(multicore=True, worker_count=2)
        )

        selected = mask == 1
        np.testing.assert_array_equal(partial[selected], full[selected])
        assert np.all(partial[~selected] == UNCOMPUTED_VALUE)

    def test_custom_fill_value(self, rough_terrain: np.ndarray, params) -> None:
        mask = np.zeros(rough_terrain.shape, dtype=np.uint8)
        out = evaluate_grid(
            rough_terrain, mask, params, ExecutionConfig(), uncomputed_value=0.25
        )
        assert np.all(out == 0.25)

    def test_mask_shape_mismatch(self, rough_terrain: np.ndarray, params) -> None:
        with pytest.raises(InvalidInputError, match="Mask shape"):
            evaluate_grid(rough_terrain, np.ones((3, 3), dtype=np.uint8), params, ExecutionConfig())


# ===================================================================
# WORKERS AND FAILURES
# ===================================================================


class TestWorkers:

    def test_zero_workers_rejected(self, rough_terrain: np.ndarray, params) -> None:
        mask = np.ones(rough_terrain.shape, dtype=np.uint8)
        with pytest.raises(InvalidInputError, match="worker_count"):
            evaluate_grid(
                rough_terrain, mask, params, ExecutionConfig(multicore=True, worker_count=0)
            )

    def test_worker_failure_is_reported(
        self, rough_terrain: np.ndarray, params, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        real_shade_row = grid_evaluator.shade_row

        def failing_shade_row(elevation, row, *args):
            if row == 7:
                raise RuntimeError("simulated kernel fault")
            return real_shade_row(elevation, row, *args)

        monkeypatch.setattr(grid_evaluator, "shade_row", failing_shade_row)
        mask = np.ones(rough_terrain.shape, dtype=np.uint8)

        with pytest.raises(WorkerFailureError) as excinfo:
            evaluate_grid(
                rough_terrain, mask, params, ExecutionConfig(multicore=True, worker_count=3)
            )

        assert excinfo.value.row == 7
        assert isinstance(excinfo.value.__cause__, RuntimeError)

    def test_pool_shut_down_after_failure(
        self, rough_terrain: np.ndarray, params, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        pools: list[ThreadPoolExecutor] = []

        class TrackingPool(ThreadPoolExecutor):
            def __init__(self, *args, **kwargs) -> None:
                super().__init__(*args, **kwargs)
                pools.append(self)

        def always_fail(*args):
            raise RuntimeError("boom")

        monkeypatch.setattr(grid_evaluator, "ThreadPoolExecutor", TrackingPool)
        monkeypatch.setattr(grid_evaluator, "shade_row", always_fail)
        mask = np.ones(rough_terrain.shape, dtype=np.uint8)

        with pytest.raises(WorkerFailureError):
            evaluate_grid(
                rough_terrain, mask, params, ExecutionConfig(multicore=True, worker_count=2)
            )

        assert len(pools) == 1
        with pytest.raises(RuntimeError):
            pools[0].submit(lambda: None)  # Shut-down pools refuse new work

    def test_sequential_failure_propagates(
        self, rough_terrain: np.ndarray, params, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        def always_fail(*args):
            raise RuntimeError("boom")

        monkeypatch.setattr(grid_evaluator, "shade_row", always_fail)
        mask = np.ones(rough_terrain.shape, dtype=np.uint8)

        with pytest.raises(RuntimeError, match="boom"):
            evaluate_grid(rough_terrain, mask, params, ExecutionConfig())


# ===================================================================
# PROGRESS
# ===================================================================


class TestProgress:

    def test_progress_logged_when_enabled(
        self, rough_terrain: np.ndarray, params, caplog: pytest.LogCaptureFixture
    ) -> None:
        mask = np.ones(rough_terrain.shape, dtype=np.uint8)
        with caplog.at_level(logging.INFO, logger="shadow_engine.grid_evaluator"):
            evaluate_grid(rough_terrain, mask, params, ExecutionConfig(progress=True))
        messages = [r.getMessage() for r in caplog.records]
        assert any("Rows shaded: 40/40" in m for m in messages)

    def test_progress_silent_when_disabled(
        self, rough_terrain: np.ndarray, params, caplog: pytest.LogCaptureFixture
    ) -> None:
        mask = np.ones(rough_terrain.shape, dtype=np.uint8)
        with caplog.at_level(logging.INFO, logger="shadow_engine.grid_evaluator"):
            evaluate_grid(rough_terrain, mask, params, ExecutionConfig(progress=False))
        assert not any("Rows shaded" in r.getMessage() for r in caplog.records)
