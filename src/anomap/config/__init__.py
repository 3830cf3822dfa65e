"""Configuration schema and loading utilities."""

from anomap.config.loading import load_config, load_metadata
from anomap.config.schema import (
    IMAGENET_MEAN,
    IMAGENET_STD,
    Config,
    InferenceConfig,
    ModelConfig,
    ModelMetadata,
    PreprocessConfig,
    VisualizationConfig,
)

__all__ = [
    "IMAGENET_MEAN",
    "IMAGENET_STD",
    "Config",
    "InferenceConfig",
    "ModelConfig",
    "ModelMetadata",
    "PreprocessConfig",
    "VisualizationConfig",
    "load_config",
    "load_metadata",
]
