"""Result aggregation and formatted reporting.

Classes:
    - ImageResult: Per-image score and classification
    - EvaluationSummary: Metrics over a labeled image folder
Functions:
    - format_results_table: Human-readable aligned table of per-image results
    - format_summary: One-block summary of evaluation metrics
    - save_results_json: JSON serialization with optional summary and metadata
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

from anomap.inference.scoring import status_label

logger = logging.getLogger(__name__)


@dataclass
class ImageResult:
    """Analysis result for a single image.

    Attributes:
        path: Source image path.
        score: Image-level anomaly score.
        is_anomaly: Predicted class (``score > threshold``).
        threshold: Threshold used for the prediction.
        label: Ground-truth label (0 nominal, 1 anomalous), or None if unknown.
        heatmap_path: Where the overlay was saved, or None if not saved.
    """

    path: str
    score: float
    is_anomaly: bool
    threshold: float
    label: int | None = None
    heatmap_path: str | None = None


@dataclass
class EvaluationSummary:
    """Image-level metrics over an evaluation set.

    Attributes:
        num_images: Total images evaluated.
        num_anomalous: Images with ground-truth label 1.
        threshold: Threshold used for the predictions.
        image_auroc: Image-level AUROC.
        accuracy: Accuracy at the threshold.
        precision: Precision at the threshold (anomalous = positive).
        recall: Recall at the threshold.
        f1: F1 score at the threshold.
    """

    num_images: int
    num_anomalous: int
    threshold: float
    image_auroc: float
    accuracy: float
    precision: float
    recall: float
    f1: float


def format_results_table(results: list[ImageResult]) -> str:
    """Format per-image results as an aligned table.

    Args:
        results: Per-image results.

    Returns:
        Table string with one row per image.

    Raises:
        ValueError: If results is empty.
    """
    if not results:
        raise ValueError("results must not be empty")

    has_labels = any(r.label is not None for r in results)

    headers = ["Image", "Score", "Status"]
    if has_labels:
        headers.append("Label")

    rows: list[list[str]] = []
    for r in results:
        row = [Path(r.path).name, f"{r.score:.4f}", status_label(r.is_anomaly)]
        if has_labels:
            row.append(_fmt_label(r.label))
        rows.append(row)

    all_rows = [headers, *rows]
    col_widths = [
        max(len(cell) for cell in col) for col in zip(*all_rows, strict=True)
    ]

    header_line = " | ".join(
        h.ljust(w) for h, w in zip(headers, col_widths, strict=True)
    )
    lines = [header_line, "-" * len(header_line)]
    for row in rows:
        lines.append(
            " | ".join(cell.ljust(w) for cell, w in zip(row, col_widths, strict=True))
        )
    return "\n".join(lines)


def format_summary(summary: EvaluationSummary, title: str = "Evaluation") -> str:
    """Format evaluation metrics as an aligned block.

    Args:
        summary: Metrics to display.
        title: Header line.

    Returns:
        Multi-line summary string.
    """
    entries = [
        ("Images", str(summary.num_images)),
        ("Anomalous", str(summary.num_anomalous)),
        ("Threshold", f"{summary.threshold:.4f}"),
        ("I-AUROC", _fmt_pct(summary.image_auroc)),
        ("Accuracy", _fmt_pct(summary.accuracy)),
        ("Precision", _fmt_pct(summary.precision)),
        ("Recall", _fmt_pct(summary.recall)),
        ("F1", _fmt_pct(summary.f1)),
    ]
    width = max(len(name) for name, _ in entries)
    header = f"  {title} Results"
    lines = [header, "=" * max(len(header), width + 12)]
    lines.extend(f"{name.ljust(width)} : {value}" for name, value in entries)
    return "\n".join(lines)


def save_results_json(
    results: list[ImageResult],
    output_path: str | Path,
    summary: EvaluationSummary | None = None,
    metadata: dict[str, Any] | None = None,
) -> None:
    """Save per-image results as JSON for programmatic consumption.

    Args:
        results: Per-image results.
        output_path: Output file path.
        summary: Optional evaluation metrics.
        metadata: Optional metadata dict (config, model, etc.).

    Raises:
        ValueError: If results is empty.
    """
    if not results:
        raise ValueError("results must not be empty")

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    data: dict[str, Any] = {"results": [asdict(r) for r in results]}
    if summary is not None:
        data["summary"] = asdict(summary)
    if metadata is not None:
        data["metadata"] = metadata

    output_path.write_text(json.dumps(data, indent=2), encoding="utf-8")
    logger.info("Results saved to %s", output_path)


def _fmt_pct(value: float) -> str:
    """Format a metric value as a percentage string with 1 decimal place."""
    return f"{value * 100:.1f}"


def _fmt_label(label: int | None) -> str:
    if label is None:
        return "-"
    return "anomalous" if label == 1 else "nominal"
