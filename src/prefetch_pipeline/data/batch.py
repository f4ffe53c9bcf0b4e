"""Preallocated batch buffers."""

from __future__ import annotations

from collections.abc import Sequence

import torch

__all__ = ["SUPPORTED_DTYPES", "Batch"]

SUPPORTED_DTYPES: tuple[torch.dtype, ...] = (torch.float16, torch.float32, torch.float64)


class Batch:
    """A reusable ``(data, label)`` tensor pair holding ``batch_size`` samples.

    Each sample occupies a disjoint, contiguous range of the flattened
    tensors: sample ``i`` of ``data`` starts at ``data_offset(i)`` and spans
    ``data_count`` elements.  Fill code writes only through the views
    returned by :meth:`data_region` and :meth:`label_region`.

    ``keys`` records which record filled each sample slot.
    """

    def __init__(self, dtype: torch.dtype = torch.float32) -> None:
        if dtype not in SUPPORTED_DTYPES:
            raise ValueError(f"Unsupported batch dtype {dtype}")
        self.dtype = dtype
        self.data = torch.empty(0, dtype=dtype)
        self.label = torch.empty(0, dtype=dtype)
        self.keys: list[str] = []

    def reshape(self, data_shape: Sequence[int], label_shape: Sequence[int]) -> None:
        """Reallocate storage if the requested shape differs from the current one."""
        if data_shape[0] != label_shape[0]:
            raise ValueError(
                f"data and label batch sizes differ: {data_shape[0]} vs {label_shape[0]}"
            )
        if tuple(self.data.shape) != tuple(data_shape):
            self.data = torch.zeros(tuple(data_shape), dtype=self.dtype)
        if tuple(self.label.shape) != tuple(label_shape):
            self.label = torch.zeros(tuple(label_shape), dtype=self.dtype)
        self.keys = [""] * data_shape[0]

    @property
    def batch_size(self) -> int:
        return int(self.data.shape[0]) if self.data.dim() else 0

    @property
    def data_count(self) -> int:
        """Elements per sample in ``data``."""
        return self.data[0].numel() if self.batch_size else 0

    @property
    def label_count(self) -> int:
        """Elements per sample in ``label``."""
        return self.label[0].numel() if self.batch_size else 0

    def data_offset(self, item_id: int) -> int:
        self._check_item(item_id)
        return item_id * self.data_count

    def label_offset(self, item_id: int) -> int:
        self._check_item(item_id)
        return item_id * self.label_count

    def data_region(self, item_id: int) -> torch.Tensor:
        """Flat view of sample ``item_id`` in ``data``."""
        return self.data.view(-1).narrow(0, self.data_offset(item_id), self.data_count)

    def label_region(self, item_id: int) -> torch.Tensor:
        """Flat view of sample ``item_id`` in ``label``."""
        return self.label.view(-1).narrow(
            0, self.label_offset(item_id), self.label_count
        )

    def _check_item(self, item_id: int) -> None:
        if not 0 <= item_id < self.batch_size:
            raise IndexError(f"item_id {item_id} out of range [0, {self.batch_size})")

    def __repr__(self) -> str:
        return (
            f"Batch(data={tuple(self.data.shape)}, label={tuple(self.label.shape)}, "
            f"dtype={self.dtype})"
        )
