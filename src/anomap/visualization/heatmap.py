"""Heatmap colorization and overlay compositing.

The smoothed anomaly map is normalized against its own min/max::

    n = (v - min) / (max - min + 1e-5)

and mapped through a piecewise-linear jet-like ramp
(blue -> cyan -> green -> yellow -> red as ``n`` goes 0 -> 1)::

    r = clip(1.5 - |4n - 3|, 0, 1)
    g = clip(1.5 - |4n - 2|, 0, 1)
    b = clip(1.5 - |4n - 1|, 0, 1)

Channels are scaled to [0, 255] with round-half-up. The heatmap carries a
constant alpha (150/255 by default) and is composited with the "over"
operator onto the preprocessed source image.

All functions here operate on numpy arrays and PIL images. The pipeline
converts its torch anomaly map once, at this boundary.
"""

from __future__ import annotations

import logging
from pathlib import Path

import numpy as np
from PIL import Image

from anomap.data.io import ensure_rgb_image

logger = logging.getLogger(__name__)

#: Added to the min-max range so a flat map normalizes to 0, not NaN.
NORM_EPS: float = 1e-5

#: Default heatmap alpha (~0.588 opacity).
DEFAULT_ALPHA: int = 150


def jet_colormap(normalized: np.ndarray) -> np.ndarray:
    """Map normalized intensities to RGB floats in [0, 1].

    Args:
        normalized: Array of any shape. Values outside [0, 1] are clamped
            implicitly by the channel formulas.

    Returns:
        float array with a trailing RGB axis, shape ``normalized.shape + (3,)``.
    """
    n = np.asarray(normalized, dtype=np.float64)
    r = np.clip(1.5 - np.abs(4.0 * n - 3.0), 0.0, 1.0)
    g = np.clip(1.5 - np.abs(4.0 * n - 2.0), 0.0, 1.0)
    b = np.clip(1.5 - np.abs(4.0 * n - 1.0), 0.0, 1.0)
    return np.stack([r, g, b], axis=-1)


def to_uint8(values: np.ndarray) -> np.ndarray:
    """Scale [0, 1] floats to uint8 with round-half-up (0.5 -> 128)."""
    return np.floor(np.clip(values, 0.0, 1.0) * 255.0 + 0.5).astype(np.uint8)


def normalize_anomaly_map(
    anomaly_map: np.ndarray,
    max_score: float | None = None,
) -> np.ndarray:
    """Min-max normalize an anomaly map against its own range.

    The minimum is always computed from the map. The maximum is the
    already-extracted image score when given, otherwise the map maximum.

    Args:
        anomaly_map: Anomaly score map, shape ``(H, W)``.
        max_score: Previously computed max of the map, if available.

    Returns:
        float64 map, ``(v - min) / (max - min + 1e-5)``.

    Raises:
        ValueError: If the anomaly map is not 2D or is empty.
    """
    if anomaly_map.ndim != 2:
        msg = f"Expected 2D anomaly map, got {anomaly_map.ndim} dims."
        raise ValueError(msg)
    if anomaly_map.size == 0:
        raise ValueError("Cannot normalize an empty anomaly map.")

    map_float = anomaly_map.astype(np.float64)
    vmin = float(map_float.min())
    vmax = float(map_float.max()) if max_score is None else float(max_score)
    return (map_float - vmin) / (vmax - vmin + NORM_EPS)


def colorize_anomaly_map(
    anomaly_map: np.ndarray,
    max_score: float | None = None,
    alpha: int = DEFAULT_ALPHA,
) -> np.ndarray:
    """Render an anomaly map as an RGBA heatmap.

    Args:
        anomaly_map: Smoothed anomaly map, shape ``(H, W)``.
        max_score: Previously computed max of the map, if available.
        alpha: Constant alpha in [0, 255]. Default 150.

    Returns:
        New uint8 array of shape ``(H, W, 4)``.

    Raises:
        ValueError: If the map is not 2D or alpha is out of range.
    """
    if not 0 <= alpha <= 255:
        raise ValueError(f"alpha must be in [0, 255], got {alpha}")

    normalized = normalize_anomaly_map(anomaly_map, max_score=max_score)
    rgb = to_uint8(jet_colormap(normalized))

    heatmap = np.empty((*normalized.shape, 4), dtype=np.uint8)
    heatmap[..., :3] = rgb
    heatmap[..., 3] = alpha
    return heatmap


def composite_heatmap(
    image: Image.Image | np.ndarray,
    heatmap: np.ndarray,
) -> Image.Image:
    """Alpha-composite an RGBA heatmap over an image ("over" operator).

    Args:
        image: Background image, e.g. the preprocessed crop. Treated as
            fully opaque.
        heatmap: RGBA uint8 array, shape ``(H, W, 4)``.

    Returns:
        New RGB image with the same size as the background.

    Raises:
        ValueError: If the heatmap is not RGBA or its spatial dimensions do
            not match the image.
    """
    if heatmap.ndim != 3 or heatmap.shape[2] != 4 or heatmap.dtype != np.uint8:
        msg = f"Expected uint8 RGBA heatmap (H, W, 4), got {heatmap.shape} {heatmap.dtype}."
        raise ValueError(msg)

    background = ensure_rgb_image(image)
    if (background.height, background.width) != heatmap.shape[:2]:
        msg = (
            f"Spatial dimensions mismatch: image {(background.height, background.width)} "
            f"vs heatmap {heatmap.shape[:2]}."
        )
        raise ValueError(msg)

    overlay = Image.fromarray(np.ascontiguousarray(heatmap))
    if overlay.mode != "RGBA":
        overlay = overlay.convert("RGBA")
    composed = Image.alpha_composite(background.convert("RGBA"), overlay)
    return composed.convert("RGB")


def render_heatmap_overlay(
    image: Image.Image | np.ndarray,
    anomaly_map: np.ndarray,
    max_score: float | None = None,
    alpha: int = DEFAULT_ALPHA,
) -> Image.Image:
    """Colorize an anomaly map and composite it onto an image.

    Args:
        image: Background image with the same spatial size as the map.
        anomaly_map: Smoothed anomaly map, shape ``(H, W)``.
        max_score: Previously computed max of the map, if available.
        alpha: Heatmap alpha in [0, 255].

    Returns:
        Composited RGB image.
    """
    heatmap = colorize_anomaly_map(anomaly_map, max_score=max_score, alpha=alpha)
    return composite_heatmap(image, heatmap)


def save_overlay(
    image_bytes: bytes,
    output_path: str | Path,
) -> Path:
    """Write encoded overlay bytes to disk, creating parent directories.

    Args:
        image_bytes: Encoded image, e.g. ``AnomalyResult.heatmap_image``.
        output_path: Destination file path.

    Returns:
        The written path.
    """
    out = Path(output_path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_bytes(image_bytes)
    logger.info("Saved heatmap overlay to %s", out)
    return out
