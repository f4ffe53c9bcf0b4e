"""Rasterize variable-count box annotations into a fixed detection grid.

The label vector for one sample is planar, with ``L = side * side``::

    [difficult x L | is_object x L | class x L | box x 4L]

Boxes are written in annotation order and a later box landing in an occupied
cell replaces the earlier one.  Consumers trained on this layout depend on
that last-write-wins behaviour, so it must not be changed to overlap
resolution.
"""

from __future__ import annotations

import math
from collections.abc import Sequence

import torch
from loguru import logger

from prefetch_pipeline.schemas import BoxAnnotation

__all__ = ["GRID_CHANNELS", "cell_index", "encode", "transform_label"]

# difficult, is_object, class, x, y, w, h
GRID_CHANNELS = 7


def cell_index(x_center: float, y_center: float, side: int) -> int:
    """Grid cell owning a box centre; coordinates at 1.0 clamp to the last cell.

    Raises:
        ValueError: If the centre is negative.
    """
    if x_center < 0.0 or y_center < 0.0:
        raise ValueError(f"box centre must be >= 0, got ({x_center}, {y_center})")
    x_index = min(math.floor(x_center * side), side - 1)
    y_index = min(math.floor(y_center * side), side - 1)
    return side * y_index + x_index


def transform_label(
    box_labels: Sequence[BoxAnnotation],
    side: int,
    out: torch.Tensor,
) -> torch.Tensor:
    """Write the grid encoding of ``box_labels`` into the 1-D region ``out``.

    Every cell is reset to defaults first, so a recycled buffer never keeps
    values from a previous sample.

    Raises:
        ValueError: If ``out`` does not hold exactly ``side * side * 7``
            values, or an annotation has a negative class id or box centre.
    """
    locations = side * side
    if out.dim() != 1 or out.numel() != locations * GRID_CHANNELS:
        raise ValueError(
            f"side and count not match: side={side} needs "
            f"{locations * GRID_CHANNELS} values, label region has {out.numel()}"
        )

    difficult = out.narrow(0, 0, locations)
    is_object = out.narrow(0, locations, locations)
    class_label = out.narrow(0, locations * 2, locations)
    boxes = out.narrow(0, locations * 3, locations * 4).view(locations, 4)

    difficult.fill_(0)
    is_object.fill_(0)
    class_label.fill_(-1)
    boxes.fill_(0)

    for annotation in box_labels:
        if annotation.difficult not in (0, 1):
            logger.warning(
                f"Difficult must be 0 or 1, got {annotation.difficult}"
            )
        if annotation.class_id < 0:
            raise ValueError(f"class_label must >= 0, got {annotation.class_id}")
        cell = cell_index(annotation.x_center, annotation.y_center, side)
        difficult[cell] = annotation.difficult
        is_object[cell] = 1
        class_label[cell] = annotation.class_id
        boxes[cell] = torch.tensor(annotation.box, dtype=out.dtype)
    return out


def encode(
    box_labels: Sequence[BoxAnnotation],
    side: int,
    dtype: torch.dtype = torch.float32,
) -> torch.Tensor:
    """Return a fresh ``side * side * 7`` grid encoding of ``box_labels``."""
    if side <= 0:
        raise ValueError(f"side must be > 0, got {side}")
    out = torch.empty(side * side * GRID_CHANNELS, dtype=dtype)
    return transform_label(box_labels, side, out)
