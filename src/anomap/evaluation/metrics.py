"""Image-level metrics for calibrating and checking the anomaly threshold.

All metric functions are pure computation on numpy arrays and return
plain scalars or small dataclasses.

Metrics:
    - image_auroc: Threshold-free ranking quality of the scores
    - threshold_metrics: Accuracy / precision / recall / F1 at a threshold
"""

from __future__ import annotations

import warnings
from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray
from sklearn.metrics import accuracy_score, precision_recall_fscore_support, roc_auc_score


@dataclass
class ThresholdMetrics:
    """Binary classification metrics at a fixed score threshold.

    Anomalous (label 1) is the positive class.
    """

    accuracy: float
    precision: float
    recall: float
    f1: float


def image_auroc(
    labels: NDArray[np.integer],
    scores: NDArray[np.floating],
) -> float:
    """Image-level AUROC using sklearn.

    Args:
        labels: Ground truth binary labels (N,). 0 = nominal, 1 = anomalous.
        scores: Predicted anomaly scores (N,). Higher = more anomalous.

    Returns:
        Area under the ROC curve [0, 1].
        Returns 0.0 if all labels are the same class (undefined AUROC).

    Raises:
        ValueError: If labels and scores have different lengths or are empty.
    """
    _validate_1d_arrays(labels, scores, "labels", "scores")

    unique_labels = np.unique(labels)
    if len(unique_labels) < 2:
        warnings.warn(
            f"Only one class present in labels ({unique_labels}). "
            "AUROC is undefined; returning 0.0.",
            stacklevel=2,
        )
        return 0.0

    return float(roc_auc_score(labels, scores))


def threshold_metrics(
    labels: NDArray[np.integer],
    scores: NDArray[np.floating],
    threshold: float,
) -> ThresholdMetrics:
    """Classification metrics for ``score > threshold`` predictions.

    Args:
        labels: Ground truth binary labels (N,).
        scores: Predicted anomaly scores (N,).
        threshold: Scores strictly above this are predicted anomalous.

    Returns:
        ThresholdMetrics. Precision/recall/F1 are 0.0 when undefined.

    Raises:
        ValueError: If labels and scores have different lengths or are empty.
    """
    _validate_1d_arrays(labels, scores, "labels", "scores")

    predictions = (scores > threshold).astype(int)
    precision, recall, f1, _ = precision_recall_fscore_support(
        labels,
        predictions,
        average="binary",
        pos_label=1,
        zero_division=0,
    )
    return ThresholdMetrics(
        accuracy=float(accuracy_score(labels, predictions)),
        precision=float(precision),
        recall=float(recall),
        f1=float(f1),
    )


def _validate_1d_arrays(
    a: np.ndarray,
    b: np.ndarray,
    name_a: str,
    name_b: str,
) -> None:
    """Check that two arrays are 1D, non-empty, and of equal length."""
    if a.ndim != 1 or b.ndim != 1:
        raise ValueError(
            f"{name_a} and {name_b} must be 1D, got shapes {a.shape} and {b.shape}"
        )
    if len(a) == 0:
        raise ValueError(f"{name_a} must not be empty")
    if len(a) != len(b):
        raise ValueError(
            f"{name_a} and {name_b} must have the same length, "
            f"got {len(a)} and {len(b)}"
        )
