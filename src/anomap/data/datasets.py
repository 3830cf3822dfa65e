"""Labeled image folders for threshold evaluation.

Expected layout (MVTec-style test split)::

    root/
        good/            # nominal images, label 0
            000.png
        scratch/         # any other subfolder is a defect type, label 1
            000.png

Images are decoded lazily in ``__getitem__``; no transforms are applied
since the analysis pipeline does its own preprocessing.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from torch.utils.data import Dataset

from anomap.data.io import list_images, load_image

logger = logging.getLogger(__name__)

#: Subfolder name holding nominal samples.
NOMINAL_DIR: str = "good"


class LabeledImageFolder(Dataset):  # type: ignore[type-arg]
    """Nominal/anomalous images discovered from a folder tree.

    Each sample is a dict with keys:
        - ``image``: RGB PIL image.
        - ``label``: 0 for nominal, 1 for anomalous.
        - ``defect_type``: Subfolder name (``"good"`` for nominal).
        - ``path``: Image path as a string.

    Args:
        root: Directory containing ``good/`` and defect subfolders.

    Raises:
        FileNotFoundError: If ``root`` does not exist.
        ValueError: If no images are found.
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)
        if not self.root.is_dir():
            raise FileNotFoundError(f"Dataset directory not found: {self.root}")

        self.samples: list[tuple[Path, int, str]] = []
        for subdir in sorted(p for p in self.root.iterdir() if p.is_dir()):
            label = 0 if subdir.name == NOMINAL_DIR else 1
            for path in list_images(subdir):
                self.samples.append((path, label, subdir.name))

        if not self.samples:
            raise ValueError(f"No images found under {self.root}")

        num_anomalous = sum(label for _, label, _ in self.samples)
        logger.info(
            "Found %d images in %s (%d nominal, %d anomalous)",
            len(self.samples),
            self.root,
            len(self.samples) - num_anomalous,
            num_anomalous,
        )

    def __len__(self) -> int:
        return len(self.samples)

    def __getitem__(self, idx: int) -> dict[str, Any]:
        path, label, defect_type = self.samples[idx]
        return {
            "image": load_image(path),
            "label": label,
            "defect_type": defect_type,
            "path": str(path),
        }

    @property
    def labels(self) -> list[int]:
        """Labels of all samples in discovery order."""
        return [label for _, label, _ in self.samples]
