"""Inference adapters, anomaly map smoothing, scoring, and the full pipeline."""

from anomap.inference.adapter import (
    InferenceAdapter,
    OnnxInferenceAdapter,
    TorchModuleAdapter,
    load_onnx_adapter,
)
from anomap.inference.pipeline import AnomalyPipeline, AnomalyResult
from anomap.inference.scoring import classify_score, compute_image_score, status_label
from anomap.inference.smoothing import (
    BoundaryMode,
    extend_indices,
    gaussian_kernel_1d,
    gaussian_smooth,
)

__all__ = [
    "AnomalyPipeline",
    "AnomalyResult",
    "BoundaryMode",
    "InferenceAdapter",
    "OnnxInferenceAdapter",
    "TorchModuleAdapter",
    "classify_score",
    "compute_image_score",
    "extend_indices",
    "gaussian_kernel_1d",
    "gaussian_smooth",
    "load_onnx_adapter",
    "status_label",
]
