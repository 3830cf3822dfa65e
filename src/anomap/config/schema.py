"""Configuration dataclasses for anomap.

Preprocessing geometry, smoothing, thresholding, and visualization options
are defined here as typed dataclasses. Defaults reproduce the reference
pipeline: resize to 256, center crop 224, ImageNet statistics, Gaussian
sigma 4.0 with reflected borders, and a 150/255 heatmap alpha.
"""

from __future__ import annotations

from dataclasses import dataclass, field

#: ImageNet per-channel mean (R, G, B).
IMAGENET_MEAN: tuple[float, float, float] = (0.485, 0.456, 0.406)

#: ImageNet per-channel standard deviation (R, G, B).
IMAGENET_STD: tuple[float, float, float] = (0.229, 0.224, 0.225)

_VALID_BOUNDARY_MODES = {"reflect", "clamp"}
_VALID_DEVICES = {"cpu", "cuda"}
_VALID_IMAGE_FORMATS = {"JPEG", "PNG"}


@dataclass
class ModelConfig:
    """Inference model location and execution device.

    Attributes:
        path: Path to the ONNX model artifact.
        metadata_path: Optional path to the JSON metadata sidecar
            (model_name, threshold, input_size, category).
        device: Execution device, ``"cpu"`` or ``"cuda"``. Default "cpu".
    """

    path: str = "models/model.onnx"
    metadata_path: str | None = None
    device: str = "cpu"

    def __post_init__(self) -> None:
        if self.device not in _VALID_DEVICES:
            raise ValueError(
                f"device must be one of {_VALID_DEVICES}, got '{self.device}'"
            )


@dataclass
class PreprocessConfig:
    """Geometric preprocessing and tensor normalization.

    The image is stretched to ``resize_size`` x ``resize_size`` and then
    center-cropped to ``crop_size`` x ``crop_size`` at offset
    ``(resize_size - crop_size) // 2`` on both axes.

    Attributes:
        resize_size: Intermediate square size. Default 256.
        crop_size: Model input size. Default 224.
        mean: Per-channel normalization mean (R, G, B).
        std: Per-channel normalization std (R, G, B).
    """

    resize_size: int = 256
    crop_size: int = 224
    mean: tuple[float, ...] = IMAGENET_MEAN
    std: tuple[float, ...] = IMAGENET_STD

    def __post_init__(self) -> None:
        if self.crop_size <= 0:
            raise ValueError(f"crop_size must be positive, got {self.crop_size}")
        if self.resize_size < self.crop_size:
            raise ValueError(
                f"resize_size ({self.resize_size}) must be >= "
                f"crop_size ({self.crop_size})"
            )
        if len(self.mean) != 3 or len(self.std) != 3:
            raise ValueError(
                f"mean and std must have 3 entries, got {len(self.mean)} "
                f"and {len(self.std)}"
            )
        if any(s <= 0 for s in self.std):
            raise ValueError(f"All std values must be positive, got {self.std}")

    @property
    def crop_offset(self) -> int:
        """Top-left offset of the center crop on both axes."""
        return (self.resize_size - self.crop_size) // 2


@dataclass
class InferenceConfig:
    """Anomaly map post-processing and classification.

    Attributes:
        smoothing_sigma: Gaussian standard deviation in pixels applied to
            the raw anomaly map. Set to 0.0 to disable. Default 4.0.
        boundary_mode: Border extension used by both smoothing passes,
            ``"reflect"`` or ``"clamp"``. Default "reflect".
        threshold: Score above which an image is reported as anomalous,
            used when no model metadata provides one. Default 10.0.
    """

    smoothing_sigma: float = 4.0
    boundary_mode: str = "reflect"
    threshold: float = 10.0

    def __post_init__(self) -> None:
        if self.smoothing_sigma < 0.0:
            raise ValueError(
                f"smoothing_sigma must be >= 0.0, got {self.smoothing_sigma}"
            )
        if self.boundary_mode not in _VALID_BOUNDARY_MODES:
            raise ValueError(
                f"boundary_mode must be one of {_VALID_BOUNDARY_MODES}, "
                f"got '{self.boundary_mode}'"
            )


@dataclass
class VisualizationConfig:
    """Heatmap overlay rendering.

    Attributes:
        heatmap_alpha: Constant heatmap alpha in [0, 255]. Default 150.
        image_format: Output encoding, ``"JPEG"`` or ``"PNG"``. Default "JPEG".
        jpeg_quality: JPEG quality, or None for the Pillow default.
    """

    heatmap_alpha: int = 150
    image_format: str = "JPEG"
    jpeg_quality: int | None = None

    def __post_init__(self) -> None:
        if not 0 <= self.heatmap_alpha <= 255:
            raise ValueError(
                f"heatmap_alpha must be in [0, 255], got {self.heatmap_alpha}"
            )
        if self.image_format not in _VALID_IMAGE_FORMATS:
            raise ValueError(
                f"image_format must be one of {_VALID_IMAGE_FORMATS}, "
                f"got '{self.image_format}'"
            )
        if self.jpeg_quality is not None and not 1 <= self.jpeg_quality <= 100:
            raise ValueError(
                f"jpeg_quality must be in [1, 100], got {self.jpeg_quality}"
            )


@dataclass
class ModelMetadata:
    """Metadata shipped next to an exported model.

    Attributes:
        model_name: Human-readable model identifier.
        threshold: Calibrated anomaly score threshold.
        input_size: Expected input size, e.g. ``[224, 224]`` or
            ``[1, 3, 224, 224]``. The last two entries are (H, W).
        category: Product/object category the model was trained on.
    """

    model_name: str
    threshold: float
    input_size: list[int] = field(default_factory=lambda: [224, 224])
    category: str = ""

    def __post_init__(self) -> None:
        if len(self.input_size) < 2:
            raise ValueError(
                f"input_size needs at least 2 entries (H, W), got {self.input_size}"
            )
        if any(s <= 0 for s in self.input_size):
            raise ValueError(
                f"All input_size entries must be positive, got {self.input_size}"
            )

    @property
    def spatial_size(self) -> tuple[int, int]:
        """Expected (H, W) of the model input."""
        return int(self.input_size[-2]), int(self.input_size[-1])


@dataclass
class Config:
    """Top-level configuration combining all sub-configs.

    Attributes:
        model: Model artifact configuration.
        preprocess: Geometric preprocessing and normalization.
        inference: Smoothing and threshold configuration.
        visualization: Heatmap rendering configuration.
        output_dir: Directory for heatmaps and result files. Default "runs".
    """

    model: ModelConfig = field(default_factory=ModelConfig)
    preprocess: PreprocessConfig = field(default_factory=PreprocessConfig)
    inference: InferenceConfig = field(default_factory=InferenceConfig)
    visualization: VisualizationConfig = field(default_factory=VisualizationConfig)
    output_dir: str = "runs"
