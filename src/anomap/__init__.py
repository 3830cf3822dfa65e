"""anomap: anomaly score and heatmap extraction around a pre-trained detector."""

__version__ = "0.1.0"
