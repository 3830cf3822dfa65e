"""CLI subcommand for evaluation.

Scores a labeled image folder (``good/`` = nominal, any other subfolder =
anomalous) and reports image-AUROC plus accuracy, precision, recall and F1
at the configured threshold. Useful to check a threshold against held-out
data after changing the model or the smoothing border policy.

Usage:
    anomap evaluate --model models/bottle.onnx --metadata models/bottle.json \
        --data-root data/bottle/test [--save-heatmaps] [--output-dir results]
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

import numpy as np
from tqdm import tqdm

from anomap.cli.utils import (
    add_common_args,
    create_pipeline_from_config,
    load_config_from_subcommand,
)
from anomap.errors import AnomapError

logger = logging.getLogger(__name__)


def add_evaluate_parser(subparsers: argparse._SubParsersAction) -> None:  # type: ignore[type-arg]
    """Register the 'evaluate' subcommand.

    Args:
        subparsers: Subparsers action from the top-level argument parser.
    """
    parser = subparsers.add_parser(
        "evaluate",
        help="Evaluate model and threshold on a labeled image folder",
        description=(
            "Score every image under --data-root and compute image-AUROC "
            "and threshold metrics. Images in 'good/' are nominal; images "
            "in any other subfolder are anomalous."
        ),
    )
    add_common_args(parser)
    parser.add_argument(
        "--data-root",
        type=str,
        required=True,
        help="Folder with 'good/' and defect-type subfolders",
    )
    parser.add_argument(
        "--save-heatmaps",
        action="store_true",
        default=False,
        help="Save a heatmap overlay for every evaluated image",
    )
    parser.set_defaults(func=run_evaluate)


def run_evaluate(args: argparse.Namespace) -> None:
    """Evaluate the configured model on a labeled image folder.

    Workflow:
        1. Load config with CLI overrides
        2. Discover labeled images under --data-root
        3. Load the ONNX model and metadata into a pipeline
        4. Score every image, optionally saving overlays
        5. Compute image-AUROC and threshold metrics
        6. Display and save results

    Args:
        args: Parsed CLI arguments.

    Raises:
        SystemExit: On missing files, invalid config, or pipeline errors.
    """
    try:
        config = load_config_from_subcommand(args)

        from anomap.data.datasets import LabeledImageFolder
        from anomap.evaluation.metrics import image_auroc, threshold_metrics
        from anomap.evaluation.reporting import (
            EvaluationSummary,
            ImageResult,
            format_summary,
            save_results_json,
        )
        from anomap.visualization.heatmap import save_overlay

        dataset = LabeledImageFolder(args.data_root)
        output_dir = Path(config.output_dir)
        heatmap_dir = output_dir / "heatmaps"
        heatmap_ext = "jpg" if config.visualization.image_format == "JPEG" else "png"

        results: list[ImageResult] = []
        with create_pipeline_from_config(config, threshold=args.threshold) as pipeline:
            threshold = pipeline.threshold
            logger.info(
                "Evaluating %d images from %s (threshold=%.4f)",
                len(dataset), args.data_root, threshold,
            )

            for i in tqdm(range(len(dataset)), desc="Evaluating", leave=False):
                sample = dataset[i]
                result = pipeline.analyze(sample["image"])

                heatmap_path: str | None = None
                if args.save_heatmaps:
                    stem = Path(sample["path"]).stem
                    out = save_overlay(
                        result.heatmap_image,
                        heatmap_dir / f"{sample['defect_type']}_{stem}.{heatmap_ext}",
                    )
                    heatmap_path = str(out)

                results.append(
                    ImageResult(
                        path=sample["path"],
                        score=result.score,
                        is_anomaly=result.is_anomaly,
                        threshold=result.threshold,
                        label=sample["label"],
                        heatmap_path=heatmap_path,
                    )
                )

        labels_arr = np.array([r.label for r in results], dtype=np.int64)
        scores_arr = np.array([r.score for r in results], dtype=np.float64)

        img_auc = image_auroc(labels_arr, scores_arr)
        at_threshold = threshold_metrics(labels_arr, scores_arr, threshold)
        logger.info("Image AUROC: %.4f", img_auc)

        summary = EvaluationSummary(
            num_images=len(results),
            num_anomalous=int(labels_arr.sum()),
            threshold=threshold,
            image_auroc=img_auc,
            accuracy=at_threshold.accuracy,
            precision=at_threshold.precision,
            recall=at_threshold.recall,
            f1=at_threshold.f1,
        )
        logger.info("Results:\n%s", format_summary(summary, title=Path(args.data_root).name))

        results_file = output_dir / "evaluation.json"
        save_results_json(
            results,
            results_file,
            summary=summary,
            metadata={
                "config": args.config,
                "model": config.model.path,
                "data_root": args.data_root,
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
