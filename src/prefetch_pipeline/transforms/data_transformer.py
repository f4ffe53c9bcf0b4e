"""Per-sample transform that places one decoded image into a batch region."""

from __future__ import annotations

import random
from collections.abc import Callable, Sequence

import numpy as np
import torch
from torchvision.transforms import v2

from prefetch_pipeline.config import TransformConfig
from prefetch_pipeline.schemas import BoxAnnotation
from prefetch_pipeline.transforms.image_ops import to_chw_tensor

__all__ = ["DataTransformer", "crop_boxes"]


def crop_boxes(
    boxes: Sequence[BoxAnnotation],
    height: int,
    width: int,
    h_off: int,
    w_off: int,
    crop_size: int,
) -> list[BoxAnnotation]:
    """Re-express normalized boxes relative to a square crop.

    Boxes whose centre falls outside the crop are dropped.  Extents are
    rescaled but not clipped to the crop.
    """
    kept: list[BoxAnnotation] = []
    for b in boxes:
        x, y, w, h = b.box
        cx = (x * width - w_off) / crop_size
        cy = (y * height - h_off) / crop_size
        if not (0.0 <= cx < 1.0 and 0.0 <= cy < 1.0):
            continue
        new_box = (cx, cy, w * width / crop_size, h * height / crop_size)
        kept.append(b.model_copy(update={"box": new_box}))
    return kept


class DataTransformer:
    """Write a decoded image into a flat batch region as ``(C, H, W)`` floats.

    Optional random mirror and square crop (``TransformConfig.mirror`` and
    ``crop_size``) adjust the box annotations passed alongside the image.  The
    normalization hook runs on the float tensor before it is copied out; by
    default it is ``v2.Normalize`` built from ``mean_values`` and
    ``pixel_scale``, and nothing when neither is set.

    Args:
        config: Transform settings.
        normalize: Replacement normalization hook taking and returning a
            ``(C, H, W)`` tensor.
        rng: Generator for mirror/crop draws; owned by the prefetch thread.
    """

    def __init__(
        self,
        config: TransformConfig | None = None,
        normalize: Callable[[torch.Tensor], torch.Tensor] | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.config = config or TransformConfig()
        self.rng = rng or random.Random()
        if normalize is None:
            normalize = self._build_normalize(self.config)
        self.normalize = normalize

    @staticmethod
    def _build_normalize(
        config: TransformConfig,
    ) -> Callable[[torch.Tensor], torch.Tensor] | None:
        if not config.mean_values and config.pixel_scale == 1.0:
            return None
        mean = list(config.mean_values) or [0.0]
        std = [1.0 / config.pixel_scale] * len(mean)
        return v2.Normalize(mean=mean, std=std)

    def infer_shape(self, image: np.ndarray) -> tuple[int, int, int]:
        """``(C, H, W)`` that :meth:`transform` produces for ``image``."""
        channels = image.shape[2] if image.ndim == 3 else 1
        if self.config.crop_size:
            return channels, self.config.crop_size, self.config.crop_size
        return channels, image.shape[0], image.shape[1]

    def transform(
        self,
        image: np.ndarray,
        out: torch.Tensor,
        boxes: Sequence[BoxAnnotation] = (),
    ) -> list[BoxAnnotation]:
        """Transform ``image`` into ``out`` and return the adjusted boxes."""
        boxes = list(boxes)
        crop = self.config.crop_size
        if crop:
            height, width = image.shape[0], image.shape[1]
            if height < crop or width < crop:
                raise ValueError(f"crop_size {crop} larger than image {height}x{width}")
            h_off = self.rng.randrange(height - crop + 1)
            w_off = self.rng.randrange(width - crop + 1)
            image = image[h_off : h_off + crop, w_off : w_off + crop]
            boxes = crop_boxes(boxes, height, width, h_off, w_off, crop)
        if self.config.mirror and self.rng.randrange(2) == 1:
            image = np.flip(image, axis=1)
            boxes = [b.mirrored() for b in boxes]

        tensor = to_chw_tensor(image, out.dtype)
        if self.normalize is not None:
            tensor = self.normalize(tensor)
        out.view(tensor.shape).copy_(tensor)
        return boxes

    def transform_label(self, label: np.ndarray, out: torch.Tensor) -> None:
        """Label-mode variant: copy class ids unchanged, no normalization."""
        out.view(-1).copy_(torch.from_numpy(np.array(label)).reshape(-1).to(out.dtype))
