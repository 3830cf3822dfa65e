"""CLI subcommand for scoring images.

Runs the analysis pipeline on one or more images (or directories of
images), logs each score and status, and saves the heatmap overlays plus a
``predictions.json`` summary to the output directory.

Usage:
    anomap predict --model models/bottle.onnx --metadata models/bottle.json \
        samples/ extra.png [--output-dir runs/predict] [--threshold 7.5]
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from tqdm import tqdm

from anomap.cli.utils import (
    add_common_args,
    collect_image_paths,
    create_pipeline_from_config,
    load_config_from_subcommand,
)
from anomap.errors import AnomapError

logger = logging.getLogger(__name__)


def add_predict_parser(subparsers: argparse._SubParsersAction) -> None:  # type: ignore[type-arg]
    """Register the 'predict' subcommand.

    Args:
        subparsers: Subparsers action from the top-level argument parser.
    """
    parser = subparsers.add_parser(
        "predict",
        help="Score images and save heatmap overlays",
        description=(
            "Compute the anomaly score of each image, classify it against "
            "the threshold, and save a heatmap overlay."
        ),
    )
    add_common_args(parser)
    parser.add_argument(
        "inputs",
        nargs="+",
        help="Image files and/or directories of images",
    )
    parser.add_argument(
        "--no-heatmaps",
        action="store_true",
        default=False,
        help="Do not write heatmap overlay images",
    )
    parser.set_defaults(func=run_predict)


def unique_heatmap_name(path: Path, ext: str, used: set[str]) -> str:
    """Return an overlay file name for ``path`` not already in ``used``.

    ``<stem>_heatmap`` is tried first, then ``<parent>_<stem>_heatmap`` so
    MVTec-style folders (``crack/000.png``, ``scratch/000.png``) stay
    distinguishable, then a numeric suffix. The chosen name is added to
    ``used``.
    """
    candidates = [f"{path.stem}_heatmap"]
    if path.parent.name:
        candidates.append(f"{path.parent.name}_{path.stem}_heatmap")

    for base in candidates:
        name = f"{base}.{ext}"
        if name not in used:
            used.add(name)
            return name

    base = candidates[-1]
    n = 1
    while f"{base}_{n}.{ext}" in used:
        n += 1
    name = f"{base}_{n}.{ext}"
    used.add(name)
    return name


def run_predict(args: argparse.Namespace) -> None:
    """Score images with the configured model.

    Workflow:
        1. Load config with CLI overrides
        2. Load the ONNX model and metadata into a pipeline
        3. Analyze each image, logging score and status
        4. Save heatmap overlays and predictions.json

    Args:
        args: Parsed CLI arguments.

    Raises:
        SystemExit: On missing files, invalid config, or pipeline errors.
    """
    try:
        config = load_config_from_subcommand(args)
        image_paths = collect_image_paths(args.inputs)

        from anomap.evaluation.reporting import (
            ImageResult,
            format_results_table,
            save_results_json,
        )
        from anomap.visualization.heatmap import save_overlay

        output_dir = Path(config.output_dir)
        heatmap_ext = "jpg" if config.visualization.image_format == "JPEG" else "png"

        logger.info("Scoring %d images with %s", len(image_paths), config.model.path)

        results: list[ImageResult] = []
        used_names: set[str] = set()
        with create_pipeline_from_config(config, threshold=args.threshold) as pipeline:
            for path in tqdm(image_paths, desc="Scoring", leave=False):
                result = pipeline.analyze_path(path)

                heatmap_path: str | None = None
                if not args.no_heatmaps:
                    out = save_overlay(
                        result.heatmap_image,
                        output_dir / unique_heatmap_name(path, heatmap_ext, used_names),
                    )
                    heatmap_path = str(out)

                logger.info(
                    "%s: Status: %s, Max Anomaly Score: %.4f",
                    path.name, result.status, result.score,
                )
                results.append(
                    ImageResult(
                        path=str(path),
                        score=result.score,
                        is_anomaly=result.is_anomaly,
                        threshold=result.threshold,
                        heatmap_path=heatmap_path,
                    )
                )

        logger.info("Results:\n%s", format_results_table(results))
        save_results_json(
            results,
            output_dir / "predictions.json",
            metadata={
                "config": args.config,
                "model": config.model.path,
                "boundary_mode": config.inference.boundary_mode,
                "smoothing_sigma": config.inference.smoothing_sigma,
            },
        )

    except FileNotFoundError as e:
        logger.error("File not found: %s", e)
        sys.exit(1)
    except AnomapError as e:
        logger.error("%s: %s", type(e).__name__, e)
        sys.exit(1)
    except ValueError as e:
        logger.error("Invalid input: %s", e)
        sys.exit(1)
