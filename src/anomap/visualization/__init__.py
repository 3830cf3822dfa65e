"""Anomaly heatmap colorization and overlay utilities."""

from anomap.visualization.heatmap import (
    colorize_anomaly_map,
    composite_heatmap,
    jet_colormap,
    normalize_anomaly_map,
    render_heatmap_overlay,
    save_overlay,
)

__all__ = [
    "colorize_anomaly_map",
    "composite_heatmap",
    "jet_colormap",
    "normalize_anomaly_map",
    "render_heatmap_overlay",
    "save_overlay",
]
