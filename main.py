"""Terrain ray shading — CLI entry point.

Computes a ray-traced shadow map for a heightmap file or a synthetic
terrain and writes the arrays, metadata and figures to an output folder.

Usage
-----
    python main.py                                  # synthetic bowl, default config
    python main.py --heightmap data/volcano.npy --sunangle 45 --angles 30 40
    python main.py --heightmap dem.tif --zscale 10 --multicore --workers 8
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path


def setup_logging(level: str = "INFO") -> None:
    """Configure structured logging."""
    fmt = "%(name)s [%(levelname)s] %(message)s"
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=fmt,
        stream=sys.stdout,
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments."""
    parser = argparse.ArgumentParser(
        prog="rayshade",
        description="Ray-traced terrain shadow maps",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  python main.py\n"
            "  python main.py --heightmap data/volcano.npy --sunangle 45\n"
            "  python main.py --angles 30 40 --maxsearch 200 --no-lambert\n"
            "  python main.py --multicore --workers 4 --output output/run1\n"
            "  python main.py --heightmap dem.npy --cache output/run1 --cache-mask changed.npy\n"
        ),
    )
    parser.add_argument(
        "--config",
        type=str,
        default="config/default_config.yaml",
        help="Path to YAML config (default: config/default_config.yaml)",
    )
    parser.add_argument(
        "--heightmap",
        type=str,
        default=None,
        help="Elevation file (.npy, .csv, .txt, .tif). Default: synthetic terrain",
    )
    parser.add_argument(
        "--sunangle",
        type=float,
        default=None,
        help="Sun azimuth in degrees, 0 = north, clockwise (default: from config)",
    )
    parser.add_argument(
        "--angles",
        type=float,
        nargs="+",
        default=None,
        help="Sun elevation angle(s) in degrees (default: from config)",
    )
    parser.add_argument(
        "--maxsearch",
        type=int,
        default=None,
        help="Maximum ray steps (default: from config)",
    )
    parser.add_argument(
        "--zscale",
        type=float,
        default=None,
        help="Elevation units per cell spacing (default: from config)",
    )
    parser.add_argument(
        "--multicore",
        action="store_true",
        default=False,
        help="Shade rows on a thread pool",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Worker threads with --multicore (default: one per CPU)",
    )
    parser.add_argument(
        "--no-lambert",
        action="store_true",
        default=False,
        help="Ray-traced shadows only, no Lambertian shading",
    )
    parser.add_argument(
        "--keep-edges",
        action="store_true",
        default=False,
        help="Keep the one-cell border in the output",
    )
    parser.add_argument(
        "--cache",
        type=str,
        default=None,
        help="Previous output directory whose shadow map is kept outside --cache-mask",
    )
    parser.add_argument(
        "--cache-mask",
        type=str,
        default=None,
        help="{0,1} mask of interior cells to recompute (.npy, .csv, .txt, .tif); "
        "other cells keep their --cache value",
    )
    parser.add_argument(
        "--max-size",
        type=int,
        default=None,
        help="Decimate heightmap files larger than this many cells per side",
    )
    parser.add_argument(
        "--output",
        type=str,
        default=None,
        help="Output directory for arrays and plots (default: from config)",
    )
    parser.add_argument(
        "--no-plots",
        action="store_true",
        default=False,
        help="Skip figure rendering",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity (default: INFO)",
    )

    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    setup_logging(args.log_level)

    logger = logging.getLogger("rayshade")
    logger.info("=" * 60)
    logger.info("  Terrain Ray Shading")
    logger.info("=" * 60)

    from batch.runner import ShadowRunner
    from shadow_engine.config import ShadeConfig, load_config, log_platform_info
    from shadow_engine.errors import ShadeError
    from terrain.loader import load_cache_mask

    log_platform_info()

    config_path = Path(args.config)
    if config_path.exists():
        config = load_config(config_path)
    else:
        logger.warning("Config %s not found; using built-in defaults", config_path)
        config = ShadeConfig()

    # CLI overrides
    lighting = config.lighting
    if args.sunangle is not None:
        lighting = replace(lighting, sun_angle_deg=args.sunangle)
    if args.angles is not None:
        lighting = replace(lighting, angle_breaks_deg=tuple(args.angles))

    raymarch = config.raymarch
    if args.maxsearch is not None:
        raymarch = replace(raymarch, max_search=args.maxsearch)
    if args.zscale is not None:
        raymarch = replace(raymarch, zscale=args.zscale)

    execution = config.execution
    if args.multicore:
        execution = replace(execution, multicore=True)
    if args.workers is not None:
        execution = replace(execution, worker_count=args.workers)
    if args.keep_edges:
        execution = replace(execution, trim_border=False)

    shading = config.shading
    if args.no_lambert:
        shading = replace(shading, lambert=False)

    config = replace(
        config,
        lighting=lighting,
        raymarch=raymarch,
        execution=execution,
        shading=shading,
        output_dir=args.output if args.output is not None else config.output_dir,
        max_size=args.max_size if args.max_size is not None else config.max_size,
    )

    cache_mask = load_cache_mask(args.cache_mask) if args.cache_mask else None

    runner = ShadowRunner(config)
    try:
        result = runner.run(
            heightmap_path=args.heightmap,
            cache_dir=args.cache,
            cache_mask=cache_mask,
            make_plots=not args.no_plots,
        )
    except ShadeError as exc:
        logger.error("Shading failed: %s", exc)
        return 1

    logger.info("=" * 60)
    logger.info("  SHADING COMPLETE")
    logger.info("=" * 60)
    logger.info("  Output shape: %d x %d", *result.shadow.shape)
    logger.info("  Wall time: %.2f s (%d worker(s))", result.wall_time_s, result.workers)
    logger.info(
        "  Mean intensity: %.3f, shadowed: %.1f%%, penumbra: %.1f%%",
        result.stats["mean_intensity"],
        result.stats["shadow_fraction"] * 100.0,
        result.stats["penumbra_fraction"] * 100.0,
    )
    logger.info("  Output directory: %s", config.output_dir)
    logger.info("=" * 60)

    return 0


if __name__ == "__main__":
    sys.exit(main())
