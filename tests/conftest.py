"""Shared test fixtures for anomap."""

from __future__ import annotations

import numpy as np
import pytest
import torch
from PIL import Image
from torch import Tensor, nn

from anomap.config.schema import Config, ModelMetadata
from anomap.inference.adapter import InferenceAdapter

H, W = 224, 224


class FixedMapAdapter(InferenceAdapter):
    """Adapter that ignores its input and returns a preset anomaly map.

    Records every tensor it receives so tests can inspect the
    preprocessing output.
    """

    def __init__(self, anomaly_map: Tensor) -> None:
        super().__init__(input_shape=(1, 3, *anomaly_map.shape[-2:]))
        self.anomaly_map = anomaly_map
        self.calls: list[Tensor] = []
        self.released = False

    def _run(self, tensor: Tensor) -> Tensor:
        self.calls.append(tensor.clone())
        return self.anomaly_map.reshape(1, 1, *self.anomaly_map.shape[-2:])

    def _release(self) -> None:
        self.released = True


class ChannelEnergy(nn.Module):
    """Tiny deterministic "detector": squared channel sum per pixel."""

    def forward(self, x: Tensor) -> Tensor:
        return x.pow(2).sum(dim=1, keepdim=True)  # (B, 1, H, W)


def make_peak_map(
    value: float = 100.0,
    row: int = 100,
    col: int = 100,
    size: tuple[int, int] = (H, W),
) -> Tensor:
    """All-zero map with a single non-zero cell."""
    anomaly_map = torch.zeros(size, dtype=torch.float32)
    anomaly_map[row, col] = value
    return anomaly_map


@pytest.fixture
def default_config() -> Config:
    """Default pipeline configuration."""
    return Config()


@pytest.fixture
def sample_metadata() -> ModelMetadata:
    """Metadata for a 224x224 model."""
    return ModelMetadata(
        model_name="patchcore_bottle",
        threshold=0.5,
        input_size=[224, 224],
        category="bottle",
    )


@pytest.fixture
def random_image() -> Image.Image:
    """Random non-square RGB image (W=320, H=240)."""
    rng = np.random.RandomState(0)
    arr = rng.randint(0, 256, size=(240, 320, 3), dtype=np.uint8)
    return Image.fromarray(arr)


@pytest.fixture
def peak_adapter() -> FixedMapAdapter:
    """Adapter returning a single 100.0 peak at (100, 100)."""
    return FixedMapAdapter(make_peak_map())


@pytest.fixture
def random_map() -> Tensor:
    """Random non-negative (224, 224) anomaly map."""
    generator = torch.Generator().manual_seed(7)
    return torch.rand(H, W, generator=generator) * 5.0
