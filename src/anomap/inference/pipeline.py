"""Full analysis pipeline: preprocess, infer, smooth, score, and render.

Stages, each fully consuming its input before the next starts:

    1. resize_and_center_crop   source image -> (224, 224) RGB crop
    2. to_normalized_tensor     crop -> (1, 3, 224, 224) float32
    3. InferenceAdapter.infer   tensor -> raw (224, 224) anomaly map
    4. gaussian_smooth          raw map -> smoothed map (new buffer)
    5. compute_image_score      smoothed map -> max score
    6. render_heatmap_overlay   smoothed map + crop -> composited overlay

Any stage failure aborts the analysis of that image; no partial results
are returned.

Usage:
    adapter = OnnxInferenceAdapter("models/bottle.onnx")
    with AnomalyPipeline(adapter, config, metadata) as pipeline:
        result = pipeline.analyze_path("sample.png")
        future = pipeline.submit("other.png")  # runs on the worker thread
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import numpy as np
from PIL import Image

from anomap.config.schema import Config, ModelMetadata
from anomap.data.io import encode_image, load_image
from anomap.data.transforms import preprocess_image
from anomap.errors import ShapeMismatchError
from anomap.inference.adapter import InferenceAdapter
from anomap.inference.scoring import classify_score, compute_image_score, status_label
from anomap.inference.smoothing import gaussian_smooth
from anomap.visualization.heatmap import render_heatmap_overlay

logger = logging.getLogger(__name__)

ImageSource = Image.Image | np.ndarray | str | Path


@dataclass
class AnomalyResult:
    """Outcome of analyzing one image.

    Attributes:
        score: Image-level anomaly score (max of the smoothed map).
        heatmap_image: Encoded heatmap overlay (JPEG by default).
        is_anomaly: True if ``score > threshold``.
        threshold: Threshold used for the classification.
        anomaly_map: Smoothed anomaly map, shape (H, W).
    """

    score: float
    heatmap_image: bytes
    is_anomaly: bool
    threshold: float
    anomaly_map: np.ndarray = field(repr=False)

    @property
    def status(self) -> str:
        return status_label(self.is_anomaly)

    def to_dict(self) -> dict[str, Any]:
        """Serialize the scalar fields for JSON reports."""
        return {
            "score": self.score,
            "is_anomaly": self.is_anomaly,
            "status": self.status,
            "threshold": self.threshold,
        }


@dataclass
class _PipelineState:
    """Adapter and classification settings swapped as one unit."""

    adapter: InferenceAdapter
    metadata: ModelMetadata | None
    threshold: float
    leases: int = 0
    retired: bool = False


class AnomalyPipeline:
    """Image-to-score/heatmap pipeline around an inference adapter.

    The pipeline owns the adapter: :meth:`close` and :meth:`reconfigure`
    release it. Each call allocates its own buffers, so :meth:`analyze` may
    be called from several threads; the adapter serializes inference.

    Args:
        adapter: Inference backend.
        config: Pipeline configuration. Defaults to ``Config()``.
        metadata: Optional model metadata (threshold, input size).
        threshold: Explicit threshold, overriding metadata and config.

    Raises:
        ShapeMismatchError: If the adapter or metadata input size does not
            match the configured crop size.
    """

    def __init__(
        self,
        adapter: InferenceAdapter,
        config: Config | None = None,
        metadata: ModelMetadata | None = None,
        threshold: float | None = None,
    ) -> None:
        self.config = config if config is not None else Config()
        self._lock = threading.Lock()
        self._state = self._make_state(adapter, metadata, threshold)
        self._executor: ThreadPoolExecutor | None = None
        self._closed = False
        logger.info(
            "Pipeline ready (crop=%d, sigma=%.2f, boundary=%s, threshold=%.4f)",
            self.config.preprocess.crop_size,
            self.config.inference.smoothing_sigma,
            self.config.inference.boundary_mode,
            self._state.threshold,
        )

    @property
    def threshold(self) -> float:
        with self._lock:
            return self._state.threshold

    @property
    def metadata(self) -> ModelMetadata | None:
        with self._lock:
            return self._state.metadata

    @property
    def adapter(self) -> InferenceAdapter:
        with self._lock:
            return self._state.adapter

    def analyze(self, image: ImageSource) -> AnomalyResult:
        """Analyze one image synchronously.

        Args:
            image: PIL image, uint8 ``(H, W, 3|4)`` array, or image path.

        Returns:
            Score, encoded overlay, and classification.

        Raises:
            InvalidImageError: If the image is empty or undecodable.
            ModelExecutionError: If inference fails.
            ShapeMismatchError: If the model output has the wrong shape.
        """
        if isinstance(image, (str, Path)):
            image = load_image(image)

        state = self._acquire()
        try:
            return self._run(image, state)
        finally:
            self._release(state)

    def analyze_path(self, path: str | Path) -> AnomalyResult:
        """Decode an image file and analyze it."""
        return self.analyze(load_image(path))

    def submit(self, image: ImageSource) -> Future[AnomalyResult]:
        """Analyze an image on the pipeline's worker thread.

        The returned future carries the result or the stage exception.
        Once started, an analysis runs to completion.
        """
        with self._lock:
            if self._closed:
                raise RuntimeError("Pipeline has been closed")
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=1, thread_name_prefix="anomap-pipeline"
                )
            executor = self._executor
        return executor.submit(self.analyze, image)

    def reconfigure(
        self,
        adapter: InferenceAdapter | None = None,
        metadata: ModelMetadata | None = None,
        threshold: float | None = None,
    ) -> None:
        """Atomically replace the adapter and/or classification settings.

        Takes effect for analyses started after this call. A replaced
        adapter is closed as soon as no in-flight analysis uses it.

        Args:
            adapter: New inference backend, or None to keep the current one.
            metadata: New model metadata, or None to keep the current one.
            threshold: Explicit threshold, overriding metadata and config.

        Raises:
            ShapeMismatchError: If the new adapter or metadata does not
                match the configured crop size. The current state is kept.
        """
        with self._lock:
            if self._closed:
                raise RuntimeError("Pipeline has been closed")
            current = self._state
        new_state = self._make_state(
            adapter if adapter is not None else current.adapter,
            metadata if metadata is not None else current.metadata,
            threshold,
        )

        to_close: InferenceAdapter | None = None
        with self._lock:
            old = self._state
            self._state = new_state
            if new_state.adapter is not old.adapter:
                old.retired = True
                if old.leases == 0:
                    to_close = old.adapter

        if to_close is not None:
            to_close.close()
        logger.info(
            "Pipeline reconfigured (adapter=%s, threshold=%.4f)",
            type(new_state.adapter).__name__,
            new_state.threshold,
        )

    def close(self) -> None:
        """Shut down the worker thread and release the adapter."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            executor = self._executor
            self._executor = None

        if executor is not None:
            executor.shutdown(wait=True)

        to_close: InferenceAdapter | None = None
        with self._lock:
            state = self._state
            state.retired = True
            if state.leases == 0:
                to_close = state.adapter
        if to_close is not None:
            to_close.close()

    def __enter__(self) -> AnomalyPipeline:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _make_state(
        self,
        adapter: InferenceAdapter,
        metadata: ModelMetadata | None,
        threshold: float | None,
    ) -> _PipelineState:
        crop = self.config.preprocess.crop_size
        if adapter.spatial_size != (crop, crop):
            raise ShapeMismatchError(
                f"Adapter expects {adapter.spatial_size} input but the "
                f"preprocessor produces ({crop}, {crop})"
            )
        if metadata is not None and metadata.spatial_size != (crop, crop):
            raise ShapeMismatchError(
                f"Model metadata input_size {metadata.input_size} does not "
                f"match crop size {crop}"
            )

        if threshold is None:
            threshold = (
                metadata.threshold if metadata is not None
                else self.config.inference.threshold
            )
        return _PipelineState(adapter=adapter, metadata=metadata, threshold=float(threshold))

    def _acquire(self) -> _PipelineState:
        with self._lock:
            state = self._state
            state.leases += 1
            return state

    def _release(self, state: _PipelineState) -> None:
        to_close: InferenceAdapter | None = None
        with self._lock:
            state.leases -= 1
            if state.retired and state.leases == 0 and state.adapter is not self._state.adapter:
                to_close = state.adapter
            elif self._closed and state.leases == 0:
                to_close = state.adapter
        if to_close is not None:
            to_close.close()

    def _run(self, image: Image.Image | np.ndarray, state: _PipelineState) -> AnomalyResult:
        cfg = self.config

        cropped, tensor = preprocess_image(image, cfg.preprocess)
        raw_map = state.adapter.infer(tensor)

        if cfg.inference.smoothing_sigma > 0.0:
            smoothed = gaussian_smooth(
                raw_map,
                sigma=cfg.inference.smoothing_sigma,
                boundary=cfg.inference.boundary_mode,
            )
        else:
            smoothed = raw_map.clone()

        score = compute_image_score(smoothed)
        anomaly_map = smoothed.numpy()

        overlay = render_heatmap_overlay(
            cropped,
            anomaly_map,
            max_score=score,
            alpha=cfg.visualization.heatmap_alpha,
        )
        heatmap_bytes = encode_image(
            overlay,
            image_format=cfg.visualization.image_format,
            quality=cfg.visualization.jpeg_quality,
        )

        is_anomaly = classify_score(score, state.threshold)
        logger.debug("Score %.4f vs threshold %.4f -> %s", score, state.threshold, status_label(is_anomaly))

        return AnomalyResult(
            score=score,
            heatmap_image=heatmap_bytes,
            is_anomaly=is_anomaly,
            threshold=state.threshold,
            anomaly_map=anomaly_map,
        )
