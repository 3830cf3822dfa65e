"""Exception taxonomy for the anomaly analysis pipeline.

Every stage either returns a buffer of the contracted shape or raises one of
these. The concrete classes also derive from the closest builtin so callers
catching ``ValueError`` / ``RuntimeError`` keep working.
"""

from __future__ import annotations


class AnomapError(Exception):
    """Base class for all pipeline errors."""


class InvalidImageError(AnomapError, ValueError):
    """Source image is empty, undecodable, or otherwise unusable."""


class ModelLoadError(AnomapError, RuntimeError):
    """Model artifact is missing or cannot be loaded by the backend."""


class ModelExecutionError(AnomapError, RuntimeError):
    """Inference backend failed while running the model."""


class ShapeMismatchError(AnomapError, ValueError):
    """Tensor or map shape does not match what the next stage expects.

    Indicates a configuration or programming error rather than bad user
    input.
    """
