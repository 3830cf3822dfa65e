"""Tests for anomap.evaluation.metrics."""

from __future__ import annotations

import numpy as np
import pytest

from anomap.evaluation.metrics import ThresholdMetrics, image_auroc, threshold_metrics

# ---------------------------------------------------------------------------
# image_auroc
# ---------------------------------------------------------------------------


class TestImageAuroc:
    """Tests for image-level AUROC."""

    def test_perfect_predictions(self) -> None:
        """Perfect scores → AUROC = 1.0."""
        labels = np.array([0, 0, 0, 1, 1, 1])
        scores = np.array([0.1, 0.2, 0.3, 0.7, 0.8, 0.9])
        assert image_auroc(labels, scores) == 1.0

    def test_inverted_predictions(self) -> None:
        """Perfectly inverted scores → AUROC = 0.0."""
        labels = np.array([0, 0, 0, 1, 1, 1])
        scores = np.array([0.9, 0.8, 0.7, 0.3, 0.2, 0.1])
        assert image_auroc(labels, scores) == 0.0

    def test_known_value(self) -> None:
        """One of four positive/negative pairs misordered → 0.75."""
        labels = np.array([0, 1, 0, 1])
        scores = np.array([0.2, 0.8, 0.6, 0.4])
        assert image_auroc(labels, scores) == pytest.approx(0.75)

    def test_single_class_returns_zero(self) -> None:
        """All nominal labels → returns 0.0 with warning."""
        labels = np.array([0, 0, 0, 0])
        scores = np.array([0.1, 0.2, 0.3, 0.4])
        with pytest.warns(UserWarning, match="Only one class"):
            result = image_auroc(labels, scores)
        assert result == 0.0

    def test_length_mismatch_raises(self) -> None:
        """Mismatched lengths → ValueError."""
        with pytest.raises(ValueError, match="same length"):
            image_auroc(np.array([0, 1]), np.array([0.1, 0.2, 0.3]))

    def test_empty_raises(self) -> None:
        """Empty arrays → ValueError."""
        with pytest.raises(ValueError, match="must not be empty"):
            image_auroc(np.array([], dtype=np.int64), np.array([], dtype=np.float64))

    def test_wrong_ndim_raises(self) -> None:
        """2D array → ValueError."""
        with pytest.raises(ValueError, match="must be 1D"):
            image_auroc(np.array([[0, 1]]), np.array([[0.1, 0.9]]))


# ---------------------------------------------------------------------------
# threshold_metrics
# ---------------------------------------------------------------------------


class TestThresholdMetrics:
    """Tests for metrics at a fixed threshold."""

    def test_perfect_separation(self) -> None:
        """Threshold between the classes → all metrics 1.0."""
        labels = np.array([0, 0, 1, 1])
        scores = np.array([1.0, 2.0, 11.0, 12.0])
        result = threshold_metrics(labels, scores, threshold=10.0)
        assert result == ThresholdMetrics(accuracy=1.0, precision=1.0, recall=1.0, f1=1.0)

    def test_strict_comparison(self) -> None:
        """A score equal to the threshold is predicted nominal."""
        labels = np.array([0, 1])
        scores = np.array([1.0, 10.0])
        result = threshold_metrics(labels, scores, threshold=10.0)
        assert result.recall == 0.0
        assert result.accuracy == 0.5

    def test_known_values(self) -> None:
        """Hand-computed confusion matrix: TP=2, FP=1, FN=1, TN=2."""
        labels = np.array([0, 0, 0, 1, 1, 1])
        scores = np.array([1.0, 2.0, 9.0, 3.0, 8.0, 9.5])
        result = threshold_metrics(labels, scores, threshold=5.0)
        assert result.accuracy == pytest.approx(4 / 6)
        assert result.precision == pytest.approx(2 / 3)
        assert result.recall == pytest.approx(2 / 3)
        assert result.f1 == pytest.approx(2 / 3)

    def test_no_positive_predictions(self) -> None:
        """Undefined precision is reported as 0.0, not NaN."""
        labels = np.array([0, 1, 1])
        scores = np.array([0.1, 0.2, 0.3])
        result = threshold_metrics(labels, scores, threshold=10.0)
        assert result.precision == 0.0
        assert result.f1 == 0.0

    def test_length_mismatch_raises(self) -> None:
        """Mismatched lengths → ValueError."""
        with pytest.raises(ValueError, match="same length"):
            threshold_metrics(np.array([0]), np.array([0.1, 0.2]), threshold=1.0)
