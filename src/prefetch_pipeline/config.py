"""Pydantic frozen configuration models for prefetch_pipeline."""

from typing import Literal

import torch
from pydantic import BaseModel, model_validator

_DTYPES: dict[str, torch.dtype] = {
    "float16": torch.float16,
    "float32": torch.float32,
    "float64": torch.float64,
}


def _check_both_or_neither(a: int, b: int, what: str) -> None:
    if not ((a == 0 and b == 0) or (a > 0 and b > 0)):
        raise ValueError(
            f"Current implementation requires {what} height and width "
            f"to be set at the same time (got {a}, {b})"
        )


class PrefetchConfig(BaseModel, frozen=True):
    """Settings shared by every prefetching pipeline.

    ``prefetch_count`` is the number of batch buffers in circulation; it must
    be at least 2 so that one batch can be filled while another is consumed.
    ``prefetch_depth`` is the number of record slots owned by each reader.
    """

    batch_size: int = 32
    prefetch_count: int = 3
    prefetch_depth: int = 4
    dtype: Literal["float16", "float32", "float64"] = "float32"

    @model_validator(mode="after")
    def _check_pool_sizes(self) -> "PrefetchConfig":
        if self.batch_size <= 0:
            raise ValueError(f"batch_size must be > 0, got {self.batch_size}")
        if self.prefetch_count < 2:
            raise ValueError(
                f"prefetch_count must be >= 2, got {self.prefetch_count}"
            )
        if self.prefetch_depth <= 0:
            raise ValueError(
                f"prefetch_depth must be > 0, got {self.prefetch_depth}"
            )
        return self

    @property
    def torch_dtype(self) -> torch.dtype:
        return _DTYPES[self.dtype]


class TransformConfig(BaseModel, frozen=True):
    """Per-sample transform settings.

    ``mirror`` and ``crop_size`` make the transformer itself stochastic, which
    is only legal for box data.  ``mean_values`` and ``pixel_scale`` drive the
    normalization hook: ``(pixel - mean) * pixel_scale``.
    """

    mirror: bool = False
    crop_size: int = 0
    mean_values: tuple[float, ...] = ()
    pixel_scale: float = 1.0

    @model_validator(mode="after")
    def _check_values(self) -> "TransformConfig":
        if self.crop_size < 0:
            raise ValueError(f"crop_size must be >= 0, got {self.crop_size}")
        if self.pixel_scale == 0:
            raise ValueError("pixel_scale must not be 0")
        return self

    @property
    def is_stochastic(self) -> bool:
        return self.mirror or self.crop_size > 0


class BoxDataConfig(PrefetchConfig, frozen=True):
    """Configuration for BoxDataPrefetcher.

    ``side`` is the detection grid size; every sample's label is a
    ``side * side * 7`` vector.
    """

    side: int = 7
    new_height: int = 0
    new_width: int = 0
    is_color: bool = True

    @model_validator(mode="after")
    def _check_box_shape(self) -> "BoxDataConfig":
        if self.side <= 0:
            raise ValueError(f"side must be > 0, got {self.side}")
        _check_both_or_neither(self.new_height, self.new_width, "new")
        return self

    @property
    def label_stride(self) -> int:
        return self.side * self.side * 7


class DenseImageDataConfig(PrefetchConfig, frozen=True):
    """Configuration for DenseImageDataPrefetcher.

    ``source`` is a list file of ``image_path label_path`` pairs, resolved
    against ``root_folder``.  ``synth_source`` optionally names a second list
    whose records fill the first ``synth_split`` slots of every batch
    (default: half the batch).  Label images are stored at ``1 / scale`` of
    the image resolution.
    """

    source: str
    root_folder: str = ""
    synth_source: str | None = None
    synth_split: int | None = None
    new_height: int = 0
    new_width: int = 0
    crop_height: int = 0
    crop_width: int = 0
    scale: float = 1.0
    mirror: bool = False
    shuffle: bool = False
    rand_skip: int = 0
    is_color: bool = True
    seed: int | None = None

    @model_validator(mode="after")
    def _check_dense_shape(self) -> "DenseImageDataConfig":
        _check_both_or_neither(self.new_height, self.new_width, "new")
        _check_both_or_neither(self.crop_height, self.crop_width, "crop")
        if self.scale == 0:
            raise ValueError("Scale must not be 0")
        if self.rand_skip < 0:
            raise ValueError(f"rand_skip must be >= 0, got {self.rand_skip}")
        if self.synth_split is not None and not 0 <= self.synth_split <= self.batch_size:
            raise ValueError(
                f"synth_split must be in [0, batch_size], got {self.synth_split}"
            )
        return self
