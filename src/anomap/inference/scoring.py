"""Image-level score extraction and threshold classification.

The anomaly score of an image is the maximum of its smoothed anomaly map;
the location of the maximum is irrelevant. An image is anomalous when its
score is strictly greater than the calibrated threshold.
"""

from __future__ import annotations

from torch import Tensor


def compute_image_score(anomaly_map: Tensor) -> float:
    """Image-level anomaly score: max of the anomaly map.

    Args:
        anomaly_map: Pixel-level score map of any shape, typically (H, W).

    Returns:
        Maximum element as a Python float.

    Raises:
        ValueError: If the map is empty.
    """
    if anomaly_map.numel() == 0:
        raise ValueError("Cannot compute a score from an empty anomaly map")
    return float(anomaly_map.max().item())


def classify_score(score: float, threshold: float) -> bool:
    """Return True if ``score`` is strictly above ``threshold``."""
    return score > threshold


def status_label(is_anomaly: bool) -> str:
    """User-facing status string for a classification result."""
    return "ANOMALY DETECTED" if is_anomaly else "NORMAL"
