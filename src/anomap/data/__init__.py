"""Image I/O, preprocessing transforms, and labeled image folders."""

from anomap.data.datasets import LabeledImageFolder
from anomap.data.io import encode_image, ensure_rgb_image, list_images, load_image
from anomap.data.transforms import (
    preprocess_image,
    resize_and_center_crop,
    to_normalized_tensor,
)

__all__ = [
    "LabeledImageFolder",
    "encode_image",
    "ensure_rgb_image",
    "list_images",
    "load_image",
    "preprocess_image",
    "resize_and_center_crop",
    "to_normalized_tensor",
]
