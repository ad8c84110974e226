"""colorize_laser CLI

Takes the color information from one or more colored (depth camera) point
clouds and transfers it to the nearest points of an uncolored (laser) cloud.

Usage:
    python colorize_laser.py [options] laserdat colordat1 [colordat2 ...] outfile

Each output line is ``x y z squared_distance match_flag r g b``.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from common.cli import (
    add_config_arg,
    add_log_level_arg,
    jobs_arg,
    non_negative_float_arg,
    parse_args_with_config,
    positive_int_arg,
    resolve_workers,
    setup_logging,
)
from common.logging import counting_log_handler
from exceptions.exceptions import StepPreconditionError
from validation.validate_input import validate_input
from validation.validation_helpers import log_issues

from cloud_colorization.domain.model import Color, ColorizationSettings

INDEX_BACKENDS = ("kdtree", "brute", "flann")
FLOAT_FORMATS = ("compact", "fixed")


def hex_color_arg(value) -> Color:
    try:
        return Color.from_hex(str(value))
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected a 24 bit hex color RRGGBB, got {value!r}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Transfer colors from colored point clouds to near points of an uncolored cloud",
        usage="%(prog)s [options] laserdat colordat1 [colordat2 ...] outfile",
    )
    add_config_arg(parser); add_log_level_arg(parser)
    parser.add_argument(
        "paths",
        nargs="+",
        metavar="PATH",
        help="Uncolored cloud, one or more colored clouds, then the output file",
    )
    parser.add_argument(
        "-d", "--max-distance",
        type=non_negative_float_arg,
        default=None,
        help="Maximum distance for neighbourhood (not squared). Default: unbounded",
    )
    parser.add_argument(
        "-j", "--jobs",
        type=jobs_arg,
        default="auto",
        help="Number of worker threads, positive integer or 'auto' (default). Each worker "
             "answers a whole --chunk-size batch with numpy array code, so the speed-up "
             "grows with the chunk size",
    )
    parser.add_argument(
        "-c", "--default-color",
        type=hex_color_arg,
        default=Color(0, 0, 0),
        help="Color of points with no neighbours as 24 bit hexadecimal integer (RRGGBB)",
    )
    parser.add_argument("--chunk-size", type=positive_int_arg, default=65_536, help="Target points per worker task")
    parser.add_argument("--index", choices=INDEX_BACKENDS, default="kdtree",
                        help="Spatial index backend")
    parser.add_argument("--leaf-size", type=positive_int_arg, default=16, help="k-d tree bucket size")
    parser.add_argument("--growth-chunk", type=positive_int_arg, default=100_000,
                        help="Point buffer growth increment while loading")
    parser.add_argument("--float-format", choices=FLOAT_FORMATS, default="compact",
                        help="Number layout of the output file")
    parser.add_argument("--export-cloud", default=None,
                        help="Also write the colorized cloud to this .ply/.pcd file (needs open3d)")
    return parser


def _config_color(value) -> Color:
    # YAML reads an unquoted 000100 as the integer 64
    if not isinstance(value, str):
        raise argparse.ArgumentTypeError(f"default_color must be a quoted RRGGBB string, got {value!r}")
    return hex_color_arg(value)


def _config_choice(key: str, value, choices) -> str:
    if value not in choices:
        raise argparse.ArgumentTypeError(f"{key} must be one of {', '.join(choices)}, got {value!r}")
    return value


def _defaults_from_cfg(cfg) -> dict:
    col = cfg.colorization
    return dict(
        log_level=cfg.logging.level,
        max_distance=None if col.max_distance is None else non_negative_float_arg(col.max_distance),
        jobs=jobs_arg(col.jobs),
        default_color=_config_color(col.default_color),
        chunk_size=positive_int_arg(col.chunk_size),
        index=_config_choice("colorization.index", col.index, INDEX_BACKENDS),
        leaf_size=positive_int_arg(col.leaf_size),
        growth_chunk=positive_int_arg(cfg.loading.growth_chunk),
        float_format=_config_choice("output.float_format", cfg.output.float_format, FLOAT_FORMATS),
        export_cloud=cfg.output.export_cloud,
    )


def main(argv: Optional[List[str]] = None) -> int:
    args, _cfg = parse_args_with_config(build_parser, _defaults_from_cfg, argv)
    if len(args.paths) < 3:
        build_parser().error("need an uncolored cloud, at least one colored cloud and an output file")
    setup_logging(args.log_level)

    target = Path(args.paths[0])
    colored = [Path(p) for p in args.paths[1:-1]]
    output = Path(args.paths[-1])
    export_cloud = Path(args.export_cloud) if args.export_cloud else None

    issues = validate_input(target, colored, output, export_cloud=export_cloud, index=args.index)
    if log_issues(issues, "error"):
        logging.error("❌ Validation failed. Nothing was colorized.")
        return 1

    settings = ColorizationSettings.from_max_distance(
        args.max_distance,
        default_color=args.default_color,
        workers=resolve_workers(args.jobs),
        chunk_size=args.chunk_size,
    )

    from cloud_colorization.entrypoints.colorize_clouds import colorize_clouds
    from pcdtools.presenters import print_run_summary

    with counting_log_handler() as counter:
        try:
            report = colorize_clouds(
                target_path=target,
                colored_paths=colored,
                output_path=output,
                settings=settings,
                index_backend=args.index,
                leaf_size=args.leaf_size,
                growth_chunk=args.growth_chunk,
                float_format=args.float_format,
                export_cloud=export_cloud,
            )
        except StepPreconditionError as e:
            logging.error("%s: %s", e.code, str(e))
            return 1
        except ImportError as e:
            logging.error("OPEN3D_MISSING: %s (pip install open3d)", e)
            return 1
        except MemoryError:
            logging.error("OUT_OF_MEMORY: the clouds do not fit into memory")
            return 1

    print_run_summary(report)
    if counter.warnings or counter.errors:
        logging.info("Finished with %d warning(s), %d error(s)", counter.warnings, counter.errors)
    return 0


if __name__ == "__main__":
    sys.exit(main())
