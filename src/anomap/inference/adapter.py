"""Inference backends behind a single ``infer(tensor) -> map`` contract.

An adapter owns its backend session from construction until :meth:`close`.
``infer`` is serialized with a lock because backend sessions are not
assumed to be re-entrant.

Adapters:
    - OnnxInferenceAdapter: ONNX Runtime session loaded from a model file.
    - TorchModuleAdapter: In-process ``torch.nn.Module``.

Usage:
    with OnnxInferenceAdapter("models/bottle.onnx") as adapter:
        anomaly_map = adapter.infer(tensor)  # (224, 224)
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

import numpy as np
import torch
from torch import Tensor, nn

from anomap.errors import ModelExecutionError, ModelLoadError, ShapeMismatchError

logger = logging.getLogger(__name__)

#: Model input shape (B, C, H, W) used when the backend does not report one.
DEFAULT_INPUT_SHAPE: tuple[int, int, int, int] = (1, 3, 224, 224)


class InferenceAdapter(ABC):
    """Base class for inference backends.

    Subclasses implement :meth:`_run` (and optionally :meth:`_release`).
    The base class validates shapes, serializes calls, and converts
    backend failures into :class:`~anomap.errors.ModelExecutionError`.

    Args:
        input_shape: Expected input tensor shape ``(1, 3, H, W)``.
    """

    def __init__(self, input_shape: tuple[int, ...] = DEFAULT_INPUT_SHAPE) -> None:
        if len(input_shape) != 4 or input_shape[0] != 1:
            raise ShapeMismatchError(
                f"input_shape must be (1, C, H, W), got {tuple(input_shape)}"
            )
        self.input_shape = tuple(int(s) for s in input_shape)
        self._lock = threading.Lock()
        self._closed = False

    @property
    def spatial_size(self) -> tuple[int, int]:
        """Spatial (H, W) of the model input and of the returned map."""
        return self.input_shape[2], self.input_shape[3]

    @property
    def closed(self) -> bool:
        return self._closed

    def infer(self, tensor: Tensor) -> Tensor:
        """Run the model on a normalized image tensor.

        Args:
            tensor: float32 tensor of shape ``input_shape``.

        Returns:
            Raw anomaly map, float32, shape ``(H, W)``. The batch and
            channel dimensions of the backend output are dropped.

        Raises:
            ShapeMismatchError: If the input or output shape is wrong.
            ModelExecutionError: If the backend fails or the adapter is closed.
        """
        if tuple(tensor.shape) != self.input_shape:
            raise ShapeMismatchError(
                f"Model expects input of shape {self.input_shape}, "
                f"got {tuple(tensor.shape)}"
            )

        with self._lock:
            if self._closed:
                raise ModelExecutionError(
                    f"{type(self).__name__} has been closed"
                )
            try:
                output = self._run(tensor)
            except (ShapeMismatchError, ModelExecutionError):
                raise
            except Exception as e:
                raise ModelExecutionError(f"Inference failed: {e}") from e

        return self._to_anomaly_map(output)

    def close(self) -> None:
        """Release the backend session. Safe to call more than once."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._release()
        logger.info("Released %s", type(self).__name__)

    def __enter__(self) -> InferenceAdapter:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @abstractmethod
    def _run(self, tensor: Tensor) -> Tensor | np.ndarray:
        """Backend-specific forward pass. Called with the lock held."""

    def _release(self) -> None:
        """Backend-specific cleanup. Called once, with the lock held."""

    def _to_anomaly_map(self, output: Tensor | np.ndarray) -> Tensor:
        """Validate a backend output and reduce it to an ``(H, W)`` map."""
        if isinstance(output, np.ndarray):
            output = torch.from_numpy(np.array(output, dtype=np.float32))
        output = output.detach().to("cpu", torch.float32)

        h, w = self.spatial_size
        leading = output.shape[:-2]
        if (
            output.ndim < 2
            or tuple(output.shape[-2:]) != (h, w)
            or any(d != 1 for d in leading)
        ):
            raise ShapeMismatchError(
                f"Expected a single ({h}, {w}) anomaly map "
                f"(e.g. shape (1, 1, {h}, {w})), got {tuple(output.shape)}"
            )
        return output.reshape(h, w)


class OnnxInferenceAdapter(InferenceAdapter):
    """ONNX Runtime backend.

    The first model input receives the tensor and the first model output is
    taken as the anomaly map. When the model declares a static input shape
    it overrides ``input_shape``.

    Args:
        model_path: Path to the ``.onnx`` artifact.
        device: ``"cpu"`` or ``"cuda"``. CUDA falls back to CPU if the
            CUDA provider is unavailable.
        input_shape: Expected input shape for models with dynamic axes.

    Raises:
        ModelLoadError: If the file is missing or ONNX Runtime rejects it.
    """

    def __init__(
        self,
        model_path: str | Path,
        device: str = "cpu",
        input_shape: tuple[int, ...] = DEFAULT_INPUT_SHAPE,
    ) -> None:
        import onnxruntime as ort

        self.model_path = Path(model_path)
        if not self.model_path.is_file():
            raise ModelLoadError(f"Model file not found: {self.model_path}")

        if device == "cuda":
            providers = ["CUDAExecutionProvider", "CPUExecutionProvider"]
        else:
            providers = ["CPUExecutionProvider"]

        sess_options = ort.SessionOptions()
        sess_options.graph_optimization_level = ort.GraphOptimizationLevel.ORT_ENABLE_ALL

        try:
            self._session: Any = ort.InferenceSession(
                str(self.model_path),
                sess_options=sess_options,
                providers=providers,
            )
        except Exception as e:
            raise ModelLoadError(
                f"Failed to load ONNX model {self.model_path}: {e}"
            ) from e

        model_input = self._session.get_inputs()[0]
        self._input_name: str = model_input.name
        self._output_name: str = self._session.get_outputs()[0].name

        declared = tuple(model_input.shape)
        if len(declared) == 4 and all(isinstance(d, int) and d > 0 for d in declared):
            input_shape = declared

        super().__init__(input_shape=input_shape)

        logger.info(
            "Loaded ONNX model %s (input=%s %s, providers=%s)",
            self.model_path,
            self._input_name,
            self.input_shape,
            self._session.get_providers(),
        )

    def _run(self, tensor: Tensor) -> np.ndarray:
        feed = {self._input_name: tensor.detach().cpu().numpy().astype(np.float32)}
        return self._session.run([self._output_name], feed)[0]

    def _release(self) -> None:
        self._session = None


class TorchModuleAdapter(InferenceAdapter):
    """In-process PyTorch backend.

    The module is put in eval mode with gradients disabled and run under
    ``torch.inference_mode()``. If it returns a tuple or list, the first
    element is used.

    Args:
        module: Model mapping ``(1, 3, H, W)`` to a single ``(H, W)`` map.
        device: Compute device for the forward pass.
        input_shape: Expected input shape.
    """

    def __init__(
        self,
        module: nn.Module,
        device: str | torch.device = "cpu",
        input_shape: tuple[int, ...] = DEFAULT_INPUT_SHAPE,
    ) -> None:
        super().__init__(input_shape=input_shape)
        self.device = torch.device(device)
        self._module: nn.Module | None = module.to(self.device)
        self._module.eval()
        self._module.requires_grad_(False)
        logger.info(
            "Wrapped %s on %s (input=%s)",
            type(module).__name__, self.device, self.input_shape,
        )

    def _run(self, tensor: Tensor) -> Tensor:
        if self._module is None:
            raise ModelExecutionError("TorchModuleAdapter has no module loaded")
        with torch.inference_mode():
            output = self._module(tensor.to(self.device))
        if isinstance(output, (tuple, list)):
            output = output[0]
        return output

    def _release(self) -> None:
        self._module = None


def load_onnx_adapter(
    model_path: str | Path,
    device: str = "cpu",
    crop_size: int = 224,
) -> OnnxInferenceAdapter:
    """Create an ONNX adapter expecting ``(1, 3, crop_size, crop_size)`` input."""
    return OnnxInferenceAdapter(
        model_path,
        device=device,
        input_shape=(1, 3, crop_size, crop_size),
    )
