"""Image decode/encode boundary.

Thin wrappers around Pillow that convert decode failures into
:class:`~anomap.errors.InvalidImageError` and always hand back RGB images.
"""

from __future__ import annotations

import io
import logging
from pathlib import Path

import numpy as np
from PIL import Image, UnidentifiedImageError

from anomap.errors import InvalidImageError

logger = logging.getLogger(__name__)

#: File suffixes picked up when scanning directories for images.
IMAGE_EXTENSIONS: frozenset[str] = frozenset({".jpg", ".jpeg", ".png", ".bmp"})


def load_image(source: str | Path | bytes) -> Image.Image:
    """Decode an image file (or raw bytes) into an RGB PIL image.

    Args:
        source: Path to an image file, or the encoded file contents.

    Returns:
        Fully loaded RGB image.

    Raises:
        InvalidImageError: If the file is missing, cannot be decoded, or
            has zero width or height.
    """
    try:
        if isinstance(source, bytes):
            with Image.open(io.BytesIO(source)) as img:
                image = img.convert("RGB")
        else:
            with Image.open(source) as img:
                image = img.convert("RGB")
    except FileNotFoundError as e:
        raise InvalidImageError(f"Image file not found: {source}") from e
    except (UnidentifiedImageError, OSError) as e:
        raise InvalidImageError(f"Cannot decode image {_describe(source)}: {e}") from e

    if image.width == 0 or image.height == 0:
        raise InvalidImageError(
            f"Image {_describe(source)} has zero size {image.size}"
        )
    logger.debug("Decoded %s (%dx%d)", _describe(source), image.width, image.height)
    return image


def ensure_rgb_image(image: Image.Image | np.ndarray) -> Image.Image:
    """Coerce a PIL image or ``(H, W, 3|4)`` uint8 array into an RGB image.

    Args:
        image: PIL image in any mode, or a uint8 numpy array.

    Returns:
        RGB PIL image. The input is never modified.

    Raises:
        InvalidImageError: If the array has an unsupported shape/dtype or
            the image has zero width or height.
    """
    if isinstance(image, np.ndarray):
        if image.ndim != 3 or image.shape[2] not in (3, 4):
            raise InvalidImageError(
                f"Expected image array of shape (H, W, 3) or (H, W, 4), "
                f"got {image.shape}"
            )
        if image.dtype != np.uint8:
            raise InvalidImageError(f"Expected uint8 image array, got {image.dtype}")
        if image.shape[0] == 0 or image.shape[1] == 0:
            raise InvalidImageError(f"Image has zero size {image.shape[:2]}")
        image = Image.fromarray(np.ascontiguousarray(image))

    if image.width == 0 or image.height == 0:
        raise InvalidImageError(f"Image has zero size {image.size}")

    if image.mode != "RGB":
        return image.convert("RGB")
    return image


def encode_image(
    image: Image.Image,
    image_format: str = "JPEG",
    quality: int | None = None,
) -> bytes:
    """Encode an image to bytes.

    Args:
        image: Image to encode. Converted to RGB first for JPEG.
        image_format: Pillow format name. Default ``"JPEG"``.
        quality: JPEG quality, or None for the Pillow default (75).

    Returns:
        Encoded file contents.
    """
    if image_format == "JPEG" and image.mode != "RGB":
        image = image.convert("RGB")

    save_kwargs: dict[str, int] = {}
    if quality is not None:
        save_kwargs["quality"] = quality

    buffer = io.BytesIO()
    image.save(buffer, format=image_format, **save_kwargs)
    return buffer.getvalue()


def list_images(directory: str | Path) -> list[Path]:
    """List image files directly inside a directory, sorted by name.

    Args:
        directory: Directory to scan (not recursive).

    Returns:
        Sorted list of image paths.

    Raises:
        FileNotFoundError: If the directory does not exist.
    """
    directory = Path(directory)
    if not directory.is_dir():
        raise FileNotFoundError(f"Image directory not found: {directory}")
    return sorted(
        p for p in directory.iterdir()
        if p.is_file() and p.suffix.lower() in IMAGE_EXTENSIONS
    )


def _describe(source: str | Path | bytes) -> str:
    if isinstance(source, bytes):
        return f"<{len(source)} bytes>"
    return str(source)
