"""Shared CLI helpers for argument parsing, config building, and pipeline creation.

Provides common utilities used by all CLI subcommands (predict, evaluate)
to avoid duplication of argument definitions, override logic, and model
loading.
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from anomap.config.loading import load_config, load_metadata
from anomap.config.schema import Config
from anomap.data.io import IMAGE_EXTENSIONS, list_images

if TYPE_CHECKING:
    from anomap.inference.pipeline import AnomalyPipeline

logger = logging.getLogger(__name__)


def add_common_args(parser: argparse.ArgumentParser) -> None:
    """Add common CLI arguments shared across all subcommands.

    Adds ``--config``, ``--model``, ``--metadata``, ``--device``,
    ``--output-dir``, ``--threshold`` and ``--boundary`` to the given parser.

    Args:
        parser: Argument parser to add arguments to.
    """
    parser.add_argument(
        "--config",
        type=str,
        default="configs/default.yaml",
        help="Path to YAML configuration file (default: configs/default.yaml)",
    )
    parser.add_argument(
        "--model",
        type=str,
        default=None,
        help="Path to ONNX model file (overrides config)",
    )
    parser.add_argument(
        "--metadata",
        type=str,
        default=None,
        help="Path to model metadata JSON (overrides config)",
    )
    parser.add_argument(
        "--device",
        type=str,
        default=None,
        help="Execution device (overrides config, e.g. 'cpu' or 'cuda')",
    )
    parser.add_argument(
        "--output-dir",
        type=str,
        default=None,
        help="Output directory for heatmaps and results (overrides config)",
    )
    parser.add_argument(
        "--threshold",
        type=float,
        default=None,
        help="Anomaly score threshold (overrides metadata and config)",
    )
    parser.add_argument(
        "--boundary",
        type=str,
        choices=["reflect", "clamp"],
        default=None,
        help="Smoothing border policy (overrides config)",
    )


def build_overrides(args: argparse.Namespace) -> dict[str, Any]:
    """Build config override dict from parsed CLI arguments.

    Translates parsed CLI arguments into dot-separated config overrides
    compatible with :func:`anomap.config.loading.load_config`. The
    ``--threshold`` flag is not a config override; it is applied to the
    pipeline directly so it beats the metadata threshold.

    Args:
        args: Parsed argument namespace containing common CLI fields.

    Returns:
        Dictionary of dot-separated config overrides. Empty values
        (None) are excluded.
    """
    overrides: dict[str, Any] = {}
    if args.model is not None:
        overrides["model.path"] = args.model
    if args.metadata is not None:
        overrides["model.metadata_path"] = args.metadata
    if args.device is not None:
        overrides["model.device"] = args.device
    if args.output_dir is not None:
        overrides["output_dir"] = args.output_dir
    if args.boundary is not None:
        overrides["inference.boundary_mode"] = args.boundary
    return overrides


def load_config_from_subcommand(args: argparse.Namespace) -> Config:
    """Load and validate config from subcommand arguments.

    Args:
        args: Parsed argument namespace (must contain ``config`` field).

    Returns:
        Fully validated Config instance.
    """
    overrides = build_overrides(args)
    return load_config(args.config, overrides=overrides or None)


def create_pipeline_from_config(
    config: Config,
    threshold: float | None = None,
) -> AnomalyPipeline:
    """Load the ONNX model and metadata named in the config.

    Uses deferred imports to preserve fast ``--help`` behavior.

    Args:
        config: Full configuration.
        threshold: Explicit threshold, overriding metadata and config.

    Returns:
        Ready AnomalyPipeline owning the loaded adapter.
    """
    from anomap.inference.adapter import load_onnx_adapter
    from anomap.inference.pipeline import AnomalyPipeline

    metadata = None
    if config.model.metadata_path is not None:
        metadata = load_metadata(config.model.metadata_path)

    adapter = load_onnx_adapter(
        config.model.path,
        device=config.model.device,
        crop_size=config.preprocess.crop_size,
    )
    try:
        return AnomalyPipeline(adapter, config, metadata=metadata, threshold=threshold)
    except Exception:
        adapter.close()
        raise


def collect_image_paths(inputs: list[str]) -> list[Path]:
    """Expand a list of files and directories into image paths.

    Directories contribute their direct image children (sorted); files are
    kept in the order given.

    Args:
        inputs: File or directory paths.

    Returns:
        Image paths.

    Raises:
        FileNotFoundError: If an input does not exist.
        ValueError: If no images are found.
    """
    paths: list[Path] = []
    for item in inputs:
        p = Path(item)
        if p.is_dir():
            paths.extend(list_images(p))
        elif p.is_file():
            if p.suffix.lower() not in IMAGE_EXTENSIONS:
                logger.warning("Unrecognized image extension, trying anyway: %s", p)
            paths.append(p)
        else:
            raise FileNotFoundError(f"Input not found: {p}")

    if not paths:
        raise ValueError(f"No images found in {inputs}")
    return paths
