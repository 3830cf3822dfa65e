"""Tests for LabeledImageFolder discovery and sample format."""

from __future__ import annotations

from pathlib import Path

import pytest
from PIL import Image

from anomap.data.datasets import LabeledImageFolder


@pytest.fixture
def labeled_root(tmp_path: Path) -> Path:
    """Folder with 2 nominal and 3 anomalous images over two defect types."""
    layout = {"good": 2, "crack": 2, "scratch": 1}
    for defect_type, count in layout.items():
        subdir = tmp_path / defect_type
        subdir.mkdir()
        for i in range(count):
            Image.new("RGB", (16, 12), color=(i * 40, 0, 0)).save(subdir / f"{i:03d}.png")
    return tmp_path


class TestLabeledImageFolder:
    """Tests for LabeledImageFolder."""

    def test_length(self, labeled_root: Path) -> None:
        """All images under all subfolders are discovered."""
        assert len(LabeledImageFolder(labeled_root)) == 5

    def test_labels(self, labeled_root: Path) -> None:
        """'good' is nominal, every other folder is anomalous."""
        dataset = LabeledImageFolder(labeled_root)
        assert sorted(dataset.labels) == [0, 0, 1, 1, 1]

    def test_sample_keys(self, labeled_root: Path) -> None:
        """Samples carry image, label, defect_type and path."""
        sample = LabeledImageFolder(labeled_root)[0]
        assert set(sample) == {"image", "label", "defect_type", "path"}
        assert isinstance(sample["image"], Image.Image)
        assert sample["image"].mode == "RGB"
        assert sample["image"].size == (16, 12)

    def test_defect_type_matches_label(self, labeled_root: Path) -> None:
        """Label is 0 exactly when defect_type is 'good'."""
        dataset = LabeledImageFolder(labeled_root)
        for i in range(len(dataset)):
            sample = dataset[i]
            assert (sample["label"] == 0) == (sample["defect_type"] == "good")

    def test_deterministic_order(self, labeled_root: Path) -> None:
        """Discovery order is sorted by folder, then file name."""
        dataset = LabeledImageFolder(labeled_root)
        order = [(Path(p).parent.name, Path(p).name) for p, _, _ in dataset.samples]
        assert order == [
            ("crack", "000.png"),
            ("crack", "001.png"),
            ("good", "000.png"),
            ("good", "001.png"),
            ("scratch", "000.png"),
        ]

    def test_missing_root_raises(self, tmp_path: Path) -> None:
        """Missing root raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            LabeledImageFolder(tmp_path / "missing")

    def test_empty_root_raises(self, tmp_path: Path) -> None:
        """Root without images raises ValueError."""
        (tmp_path / "good").mkdir()
        with pytest.raises(ValueError, match="No images"):
            LabeledImageFolder(tmp_path)
