"""Evaluation metrics and result reporting."""

from anomap.evaluation.metrics import ThresholdMetrics, image_auroc, threshold_metrics
from anomap.evaluation.reporting import (
    EvaluationSummary,
    ImageResult,
    format_results_table,
    format_summary,
    save_results_json,
)

__all__ = [
    "EvaluationSummary",
    "ImageResult",
    "ThresholdMetrics",
    "format_results_table",
    "format_summary",
    "image_auroc",
    "save_results_json",
    "threshold_metrics",
]
