"""Configuration loading from YAML files and model metadata from JSON.

Usage:
    config = load_config("configs/default.yaml")
    config = load_config("configs/default.yaml", overrides={"inference.threshold": 7.5})
    metadata = load_metadata("models/bottle.json")
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import yaml

from anomap.config.schema import (
    Config,
    InferenceConfig,
    ModelConfig,
    ModelMetadata,
    PreprocessConfig,
    VisualizationConfig,
)

logger = logging.getLogger(__name__)

_METADATA_KEYS: frozenset[str] = frozenset({"model_name", "threshold"})


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override dict into base dict.

    Args:
        base: Base dictionary (not modified in place).
        override: Dictionary with values to override.

    Returns:
        Merged dictionary.
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _build_preprocess_config(data: dict[str, Any]) -> PreprocessConfig:
    """Build PreprocessConfig from a raw dict, converting lists to tuples."""
    data = data.copy()
    for key in ("mean", "std"):
        if key in data and isinstance(data[key], list):
            data[key] = tuple(float(v) for v in data[key])
    return PreprocessConfig(**data)


def _build_config_from_dict(raw: dict[str, Any]) -> Config:
    """Build a Config from a raw dictionary (e.g., parsed YAML).

    Args:
        raw: Dictionary with config sections as keys.

    Returns:
        Fully constructed Config instance.
    """
    known_keys = {"model", "preprocess", "inference", "visualization", "output_dir"}
    unknown_keys = set(raw.keys()) - known_keys
    if unknown_keys:
        logger.warning("Unknown config keys (ignored): %s", sorted(unknown_keys))

    model = ModelConfig(**raw.get("model", {}))
    preprocess = _build_preprocess_config(raw.get("preprocess", {}))
    inference = InferenceConfig(**raw.get("inference", {}))
    visualization = VisualizationConfig(**raw.get("visualization", {}))

    top_level = {k: v for k, v in raw.items() if k == "output_dir"}

    return Config(
        model=model,
        preprocess=preprocess,
        inference=inference,
        visualization=visualization,
        **top_level,
    )


def load_config(
    path: str | Path,
    overrides: dict[str, Any] | None = None,
) -> Config:
    """Load configuration from a YAML file with optional overrides.

    Args:
        path: Path to the YAML configuration file.
        overrides: Optional dictionary of dot-separated key overrides.
            Example: {"model.path": "models/bottle.onnx", "inference.threshold": 7.5}

    Returns:
        Fully validated Config instance.

    Raises:
        FileNotFoundError: If the config file does not exist.
        ValueError: If config values fail validation.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path, encoding="utf-8") as f:
        raw_data = yaml.safe_load(f)

    if raw_data is None:
        raw: dict[str, Any] = {}
    elif not isinstance(raw_data, dict):
        raise ValueError(
            f"Config file must contain a YAML mapping, got {type(raw_data).__name__}"
        )
    else:
        raw = raw_data

    logger.info("Loaded config from %s", path)

    if overrides:
        nested: dict[str, Any] = {}
        for dotted_key, value in overrides.items():
            parts = dotted_key.split(".")
            target = nested
            for part in parts[:-1]:
                target = target.setdefault(part, {})
            target[parts[-1]] = value
        raw = _deep_merge(raw, nested)
        logger.info("Applied %d config overrides", len(overrides))

    return _build_config_from_dict(raw)


def load_metadata(path: str | Path) -> ModelMetadata:
    """Load model metadata from a JSON sidecar file.

    Args:
        path: Path to the JSON file with ``model_name``, ``threshold``,
            ``input_size`` and ``category`` fields.

    Returns:
        Validated ModelMetadata instance.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the JSON is malformed or required fields are missing.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Metadata file not found: {path}")

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in metadata file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ValueError(
            f"Metadata file must contain a JSON object, got {type(data).__name__}"
        )

    missing = _METADATA_KEYS - set(data.keys())
    if missing:
        raise ValueError(f"Missing required keys in metadata file {path}: {sorted(missing)}")

    metadata = ModelMetadata(
        model_name=str(data["model_name"]),
        threshold=float(data["threshold"]),
        input_size=[int(v) for v in data.get("input_size", [224, 224])],
        category=str(data.get("category", "")),
    )
    logger.info(
        "Loaded metadata for model '%s' (category=%s, threshold=%.4f)",
        metadata.model_name,
        metadata.category,
        metadata.threshold,
    )
    return metadata
