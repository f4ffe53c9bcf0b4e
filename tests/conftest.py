"""Shared pytest fixtures for prefetch_pipeline tests."""

from collections.abc import Callable
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

from prefetch_pipeline.schemas import BoxAnnotation, BoxRecord

IMAGE_SIZE = 8


def coded_image(index: int, size: int = IMAGE_SIZE) -> np.ndarray:
    """RGB image whose red channel is ``10 * y + x`` and blue channel ``index``.

    Pixel positions can be recovered after any flip or crop.
    """
    ys, xs = np.mgrid[0:size, 0:size]
    img = np.zeros((size, size, 3), dtype=np.uint8)
    img[:, :, 0] = 10 * ys + xs
    img[:, :, 2] = index
    return img


def column_label(width: int, height: int | None = None) -> np.ndarray:
    """Label map whose value at every pixel is its column index."""
    height = width if height is None else height
    return np.tile(np.arange(width, dtype=np.uint8), (height, 1))


@pytest.fixture()
def make_box_records() -> Callable[[int], list[BoxRecord]]:
    """Factory for ``n`` decoded box records keyed ``record_{i}``."""

    def _make(n: int) -> list[BoxRecord]:
        return [
            BoxRecord(
                image=coded_image(i),
                boxes=(BoxAnnotation(class_id=i % 3, box=(0.25, 0.25, 0.5, 0.5)),),
                key=f"record_{i}",
            )
            for i in range(n)
        ]

    return _make


def _write_pairs(
    root: Path, prefix: str, n: int, label_size: int
) -> list[str]:
    lines = []
    for i in range(n):
        img_name = f"{prefix}_img_{i:02d}.png"
        lbl_name = f"{prefix}_lbl_{i:02d}.png"
        Image.fromarray(coded_image(i)).save(root / img_name)
        Image.fromarray(column_label(label_size)).save(root / lbl_name)
        lines.append(f"{img_name} {lbl_name}")
    return lines


@pytest.fixture()
def dense_dataset_dir(tmp_path: Path) -> Path:
    """Paired dataset on disk with same-resolution label maps.

    - ``train.txt``: 5 pairs of 8x8 RGB images and 8x8 column labels.
    - ``synth.txt``: 3 synthetic pairs in the same format.
    - ``half.txt``: 5 pairs with 4x4 labels (``scale = 2``).
    """
    lines = _write_pairs(tmp_path, "real", 5, IMAGE_SIZE)
    (tmp_path / "train.txt").write_text("\n".join(lines) + "\n")
    synth = _write_pairs(tmp_path, "synth", 3, IMAGE_SIZE)
    (tmp_path / "synth.txt").write_text("\n".join(synth) + "\n")
    half = _write_pairs(tmp_path, "half", 5, IMAGE_SIZE // 2)
    (tmp_path / "half.txt").write_text("\n".join(half) + "\n")
    return tmp_path


@pytest.fixture()
def make_coded_image() -> Callable[..., np.ndarray]:
    return coded_image


@pytest.fixture()
def make_column_label() -> Callable[..., np.ndarray]:
    return column_label
