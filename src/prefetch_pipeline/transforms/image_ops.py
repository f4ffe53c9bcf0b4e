"""Pixel primitives: decode, resize and layout conversion.

Images are handled as ``uint8`` numpy arrays, ``(H, W, C)`` for colour and
``(H, W)`` for grayscale and label maps.
"""

from __future__ import annotations

import io
from pathlib import Path

import numpy as np
import torch
from PIL import Image, UnidentifiedImageError

__all__ = ["read_image", "to_chw_tensor"]

# Palette and 8-bit grayscale label maps already store class ids per pixel.
_LABEL_MODES = ("P", "L")


def _open(source: Path | bytes | np.ndarray) -> Image.Image:
    if isinstance(source, np.ndarray):
        return Image.fromarray(source)
    if isinstance(source, bytes):
        return Image.open(io.BytesIO(source))
    return Image.open(source)


def read_image(
    source: Path | bytes | np.ndarray,
    height: int = 0,
    width: int = 0,
    is_color: bool = True,
    is_label: bool = False,
) -> np.ndarray:
    """Decode ``source`` and optionally resize it to ``height x width``.

    Label maps are kept single-channel and resized with nearest-neighbour
    interpolation so that class ids are never blended.

    Raises:
        OSError: If the image cannot be found or decoded.
    """
    name = source if isinstance(source, Path) else type(source).__name__
    try:
        img = _open(source)
        img.load()
    except (OSError, UnidentifiedImageError, ValueError) as e:
        raise OSError(f"Could not load {name}") from e

    if is_label:
        if img.mode not in _LABEL_MODES:
            img = img.convert("L")
        resample = Image.NEAREST
    else:
        img = img.convert("RGB" if is_color else "L")
        resample = Image.BILINEAR

    if height > 0 and width > 0 and img.size != (width, height):
        img = img.resize((width, height), resample)
    return np.asarray(img, dtype=np.uint8)


def to_chw_tensor(array: np.ndarray, dtype: torch.dtype = torch.float32) -> torch.Tensor:
    """Convert an ``(H, W)`` or ``(H, W, C)`` array to a ``(C, H, W)`` tensor."""
    if array.ndim == 2:
        array = array[:, :, None]
    return torch.from_numpy(np.array(array)).permute(2, 0, 1).to(dtype)
