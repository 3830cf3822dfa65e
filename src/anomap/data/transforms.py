"""Geometric preprocessing and tensor normalization.

The canonical policy is a non-aspect-preserving stretch to
``resize_size`` x ``resize_size`` with Pillow's bilinear (triangle) filter,
followed by a fixed center crop to ``crop_size`` x ``crop_size``. With the
defaults the crop box is ``(16, 16, 240, 240)``.

The crop is then turned into a channel-first float32 tensor with
per-channel mean/std normalization::

    tensor[0, c, y, x] = (pixel[c] / 255 - mean[c]) / std[c]
"""

from __future__ import annotations

import logging

import numpy as np
import torch
from PIL import Image

from anomap.config.schema import IMAGENET_MEAN, IMAGENET_STD, PreprocessConfig
from anomap.data.io import ensure_rgb_image
from anomap.errors import ShapeMismatchError

logger = logging.getLogger(__name__)


def resize_and_center_crop(
    image: Image.Image | np.ndarray,
    resize_size: int = 256,
    crop_size: int = 224,
) -> Image.Image:
    """Stretch an image to a square and take the fixed center crop.

    Both axes are scaled independently (no letterboxing, no aspect
    correction), so any source size, including tiny or very elongated
    images, maps to exactly ``crop_size`` x ``crop_size``.

    Args:
        image: Source image, PIL in any mode or uint8 ``(H, W, 3|4)`` array.
        resize_size: Intermediate square size. Default 256.
        crop_size: Output square size. Default 224.

    Returns:
        New RGB image of size ``(crop_size, crop_size)``.

    Raises:
        InvalidImageError: If the image is empty or not an RGB(A) buffer.
        ValueError: If ``crop_size`` exceeds ``resize_size``.
    """
    if crop_size > resize_size:
        raise ValueError(
            f"crop_size ({crop_size}) must be <= resize_size ({resize_size})"
        )

    rgb = ensure_rgb_image(image)
    resized = rgb.resize(
        (resize_size, resize_size),
        resample=Image.Resampling.BILINEAR,
    )

    offset = (resize_size - crop_size) // 2
    return resized.crop((offset, offset, offset + crop_size, offset + crop_size))


def to_normalized_tensor(
    image: Image.Image | np.ndarray,
    mean: tuple[float, ...] = IMAGENET_MEAN,
    std: tuple[float, ...] = IMAGENET_STD,
) -> torch.Tensor:
    """Convert an RGB pixel buffer into a normalized ``[1, 3, H, W]`` tensor.

    Args:
        image: RGB PIL image or uint8 array of shape ``(H, W, 3)``.
        mean: Per-channel mean (R, G, B).
        std: Per-channel std (R, G, B).

    Returns:
        float32 tensor of shape ``(1, 3, H, W)``.

    Raises:
        ShapeMismatchError: If the buffer is not ``(H, W, 3)``.
    """
    if isinstance(image, Image.Image):
        if image.mode != "RGB":
            raise ShapeMismatchError(f"Expected an RGB image, got mode '{image.mode}'")
        arr = np.array(image, dtype=np.uint8)
    else:
        arr = image

    if arr.ndim != 3 or arr.shape[2] != 3:
        raise ShapeMismatchError(
            f"Expected pixel buffer of shape (H, W, 3), got {arr.shape}"
        )

    pixels = torch.from_numpy(np.array(arr, dtype=np.uint8)).to(torch.float32) / 255.0
    pixels = pixels.permute(2, 0, 1)  # (3, H, W)

    mean_t = torch.tensor(mean, dtype=torch.float32).view(3, 1, 1)
    std_t = torch.tensor(std, dtype=torch.float32).view(3, 1, 1)

    return ((pixels - mean_t) / std_t).unsqueeze(0).contiguous()


def preprocess_image(
    image: Image.Image | np.ndarray,
    config: PreprocessConfig,
) -> tuple[Image.Image, torch.Tensor]:
    """Run the geometric preprocessor and the tensor normalizer.

    Args:
        image: Source image.
        config: Preprocessing configuration.

    Returns:
        Tuple of (cropped RGB image, normalized ``(1, 3, crop, crop)`` tensor).
        The cropped image is kept as the compositing background.
    """
    cropped = resize_and_center_crop(
        image,
        resize_size=config.resize_size,
        crop_size=config.crop_size,
    )
    tensor = to_normalized_tensor(cropped, mean=config.mean, std=config.std)
    logger.debug("Preprocessed image to tensor %s", tuple(tensor.shape))
    return cropped, tensor
