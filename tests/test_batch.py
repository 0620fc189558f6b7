"""Tests for result persistence, the batch runner, figures and the CLI."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import numpy as np
import pytest

from batch.io_manager import load_results, save_results
from batch.runner import ShadowRunner
from main import main
from shadow_engine.config import config_from_dict
from shadow_engine.shading import ShadowResult
from visualization.plotter import generate_all_plots, plot_shaded_relief


@pytest.fixture
def spike_config():
    """Small spike terrain lit from the north, pure ray-traced shadows."""
    return config_from_dict(
        {
            "lighting": {"sun_angle_deg": 0, "angle_breaks_deg": [45]},
            "raymarch": {"max_search": 10},
            "execution": {"progress": False},
            "shading": {"lambert": False},
            "terrain": {"type": "spike", "rows": 9, "cols": 9, "height": 50},
        }
    )


# ===================================================================
# I/O MANAGER
# ===================================================================


class TestIOManager:

    def test_save_and_load(self, tmp_path: Path) -> None:
        shadow = np.full((3, 3), 0.5)
        heightmap = np.arange(25.0).reshape(5, 5)
        mask = np.ones((3, 3), dtype=np.uint8)

        saved = save_results(
            tmp_path,
            shadow,
            heightmap,
            mask,
            {"azimuth_deg": np.float64(315.0), "angles_deg": (40.0, 45.0), "src": tmp_path},
        )
        assert len(saved) == 4

        data = load_results(tmp_path)
        np.testing.assert_array_equal(data["shadow_map"], shadow)
        np.testing.assert_array_equal(data["heightmap"], heightmap)
        np.testing.assert_array_equal(data["cache_mask"], mask)
        assert data["metadata"]["azimuth_deg"] == 315.0
        assert data["metadata"]["angles_deg"] == [40.0, 45.0]
        assert data["metadata"]["src"] == str(tmp_path)

    def test_missing_arrays_are_none(self, tmp_path: Path) -> None:
        data = load_results(tmp_path)
        assert data["shadow_map"] is None
        assert data["metadata"] == {}

    def test_missing_directory(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_results(tmp_path / "absent")


# ===================================================================
# RUNNER
# ===================================================================


class TestShadowRunner:

    def test_synthetic_run(self, spike_config, tmp_path: Path) -> None:
        result = ShadowRunner(spike_config).run(output_dir=tmp_path, make_plots=False)

        assert isinstance(result, ShadowResult)
        assert result.shadow.shape == (7, 7)
        # Spike at (4, 4); the cell south of it is (5, 4) -> output (4, 3)
        assert result.shadow[4, 3] == 0.0
        assert result.shadow[2, 3] == 1.0

        for name in ("shadow_map.npy", "heightmap.npy", "cache_mask.npy", "metadata.json"):
            assert (tmp_path / name).exists(), name

        meta = json.loads((tmp_path / "metadata.json").read_text(encoding="utf-8"))
        assert meta["heightmap_source"] == "synthetic"
        assert meta["max_search"] == 10
        assert len(meta["sha256"]) == 64

    def test_heightmap_file(self, spike_config, tmp_path: Path) -> None:
        path = tmp_path / "dem.npy"
        np.save(path, np.zeros((6, 6)))

        result = ShadowRunner(spike_config).run(
            heightmap_path=path, save_data=False, make_plots=False
        )

        assert result.shadow.shape == (4, 4)
        assert np.all(result.shadow == 1.0)

    def test_cache_dir_reuse(self, spike_config, tmp_path: Path) -> None:
        runner = ShadowRunner(spike_config)
        first = runner.run(output_dir=tmp_path / "first", make_plots=False)

        second = runner.run(
            cache_dir=tmp_path / "first",
            cache_mask=np.zeros(first.shadow.shape, dtype=np.uint8),
            save_data=False,
            make_plots=False,
        )

        assert np.array_equal(first.shadow, second.shadow)

    def test_cache_without_mask_warns(
        self, spike_config, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        runner = ShadowRunner(spike_config)
        runner.run(output_dir=tmp_path, make_plots=False)

        with caplog.at_level(logging.WARNING, logger="batch.runner"):
            runner.run(cache_dir=tmp_path, save_data=False, make_plots=False)

        assert any("without a cache mask" in r.getMessage() for r in caplog.records)

    def test_cache_dir_without_shadow(self, spike_config, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError, match="shadow_map.npy"):
            ShadowRunner(spike_config).run(cache_dir=tmp_path, save_data=False, make_plots=False)

    def test_plots_written(self, spike_config, tmp_path: Path) -> None:
        ShadowRunner(spike_config).run(output_dir=tmp_path, save_data=False)
        assert (tmp_path / "shadow_map.png").exists()
        assert (tmp_path / "shaded_relief.png").exists()


# ===================================================================
# VISUALIZATION
# ===================================================================


class TestPlotter:

    def test_cache_mask_plot_only_when_partial(self, tmp_path: Path) -> None:
        shadow = np.ones((4, 4))
        mask = np.ones((4, 4), dtype=np.uint8)
        mask[0, 0] = 0
        result = ShadowResult(
            shadow=shadow,
            mask=mask,
            angles_deg=(40.0, 50.0),
            azimuth_deg=315.0,
            max_search=100,
            workers=1,
            wall_time_s=0.0,
            stats={},
        )

        paths = generate_all_plots(result, np.zeros((6, 6)), output_dir=tmp_path, dpi=40)

        assert [p.name for p in paths] == ["shadow_map.png", "shaded_relief.png", "cache_mask.png"]
        assert all(p.exists() for p in paths)

    def test_shaded_relief_trims_elevation(self) -> None:
        fig = plot_shaded_relief(np.random.default_rng(0).normal(size=(8, 8)), np.ones((6, 6)))
        image = fig.axes[0].images[0].get_array()
        assert image.shape[:2] == (6, 6)


# ===================================================================
# CLI
# ===================================================================


class TestCLI:

    @pytest.fixture
    def config_file(self, tmp_path: Path) -> Path:
        path = tmp_path / "config.yaml"
        path.write_text(
            "lighting:\n"
            "  angle_breaks_deg: [30, 40]\n"
            "raymarch:\n"
            "  max_search: 20\n"
            "terrain:\n"
            "  type: conical\n"
            "  rows: 24\n"
            "  cols: 24\n"
            "  radius_cells: 8\n",
            encoding="utf-8",
        )
        return path

    def test_run_with_overrides(self, config_file: Path, tmp_path: Path) -> None:
        out = tmp_path / "out"
        code = main(
            [
                "--config", str(config_file),
                "--sunangle", "90",
                "--angles", "20",
                "--multicore", "--workers", "2",
                "--no-lambert",
                "--keep-edges",
                "--no-plots",
                "--output", str(out),
            ]
        )

        assert code == 0
        meta = json.loads((out / "metadata.json").read_text(encoding="utf-8"))
        assert meta["azimuth_deg"] == 90.0
        assert meta["angles_deg"] == [20.0]
        assert meta["workers"] == 2
        assert meta["lambert"] is False
        assert np.load(out / "shadow_map.npy").shape == (24, 24)

    def test_invalid_heightmap_returns_error(self, config_file: Path, tmp_path: Path) -> None:
        bad = np.zeros((5, 5))
        bad[2, 2] = np.nan
        path = tmp_path / "bad.npy"
        np.save(path, bad)

        code = main(
            ["--config", str(config_file), "--heightmap", str(path), "--no-plots",
             "--output", str(tmp_path / "out")]
        )

        assert code == 1

    def test_cache_reuses_values_outside_mask(self, config_file: Path, tmp_path: Path) -> None:
        first = tmp_path / "first"
        assert main(["--config", str(config_file), "--no-plots", "--output", str(first)]) == 0

        fresh = np.load(first / "shadow_map.npy")
        # Mark the cached run so reused cells are recognisable
        np.save(first / "shadow_map.npy", np.full((22, 22), 0.25))
        mask = np.zeros((22, 22), dtype=np.uint8)
        mask[5, 7] = 1
        mask_path = tmp_path / "changed.npy"
        np.save(mask_path, mask)

        second = tmp_path / "second"
        code = main(
            [
                "--config", str(config_file),
                "--cache", str(first),
                "--cache-mask", str(mask_path),
                "--no-plots",
                "--output", str(second),
            ]
        )

        assert code == 0
        shadow = np.load(second / "shadow_map.npy")
        kept = mask == 0
        assert np.all(shadow[kept] == 0.25), "cells outside the mask keep the cached value"
        assert shadow[5, 7] == fresh[5, 7], "masked cell is recomputed"
        meta = json.loads((second / "metadata.json").read_text(encoding="utf-8"))
        assert meta["cached_cells"] == 22 * 22 - 1

    def test_cache_keeps_border_when_untrimmed(self, config_file: Path, tmp_path: Path) -> None:
        cached = tmp_path / "cached"
        cached.mkdir()
        np.save(cached / "shadow_map.npy", np.full((24, 24), 0.25))
        mask_path = tmp_path / "all.csv"
        np.savetxt(mask_path, np.ones((22, 22)), delimiter=",", fmt="%d")

        out = tmp_path / "out"
        code = main(
            [
                "--config", str(config_file),
                "--keep-edges",
                "--cache", str(cached),
                "--cache-mask", str(mask_path),
                "--no-plots",
                "--output", str(out),
            ]
        )

        assert code == 0
        shadow = np.load(out / "shadow_map.npy")
        ring = np.ones((24, 24), dtype=bool)
        ring[1:-1, 1:-1] = False
        assert np.all(shadow[ring] == 0.25)

    def test_max_size_decimates_heightmap(self, config_file: Path, tmp_path: Path) -> None:
        path = tmp_path / "big.npy"
        np.save(path, np.zeros((40, 40)))

        out = tmp_path / "out"
        code = main(
            ["--config", str(config_file), "--heightmap", str(path), "--max-size", "20",
             "--no-plots", "--output", str(out)]
        )

        assert code == 0
        assert np.load(out / "heightmap.npy").shape == (20, 20)
        assert np.load(out / "shadow_map.npy").shape == (18, 18)
        meta = json.loads((out / "metadata.json").read_text(encoding="utf-8"))
        assert meta["max_size"] == 20
