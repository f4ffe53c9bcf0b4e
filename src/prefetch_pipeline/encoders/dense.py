"""Shared geometric augmentation for an image and its per-pixel label map.

The label map may be stored at ``1 / scale`` of the image's linear
resolution.  Mirror and crop decisions are drawn once per sample, sized for
the image, and every extent or offset is divided by ``scale`` before it is
applied to the label map.
"""

from __future__ import annotations

import random
from dataclasses import dataclass

import numpy as np

from prefetch_pipeline.config import TransformConfig

__all__ = ["AugmentationDecision", "PairedDenseLabelEncoder", "scaled_extent"]


def scaled_extent(value: float, scale: float) -> int:
    """Image-space length or offset converted to label space (truncating)."""
    return int(value / scale)


@dataclass(frozen=True)
class AugmentationDecision:
    """One sample's augmentation, in image coordinates."""

    mirror: bool = False
    h_off: int = 0
    w_off: int = 0


class PairedDenseLabelEncoder:
    """Apply one mirror/crop draw identically to an image and its label map.

    Args:
        crop_height: Crop height in image pixels, 0 to disable cropping.
        crop_width: Crop width in image pixels, 0 to disable cropping.
        scale: Image-to-label linear resolution ratio.
        mirror: Whether to draw a random horizontal flip.
        rng: Generator for the draws; owned by the calling thread.
    """

    def __init__(
        self,
        crop_height: int = 0,
        crop_width: int = 0,
        scale: float = 1.0,
        mirror: bool = False,
        rng: random.Random | None = None,
    ) -> None:
        if (crop_height > 0) != (crop_width > 0):
            raise ValueError("crop_height and crop_width must be set together")
        if scale == 0:
            raise ValueError("Scale must not be 0")
        self.crop_height = crop_height
        self.crop_width = crop_width
        self.scale = scale
        self.mirror = mirror
        self.rng = rng or random.Random()

    @property
    def crops(self) -> bool:
        return self.crop_height > 0 and self.crop_width > 0

    @staticmethod
    def require_deterministic(transform_config: TransformConfig) -> None:
        """Refuse a transformer that would make its own random decisions.

        An independent mirror or crop inside the transformer would be drawn
        separately for image and label and break their pixel correspondence.
        """
        if transform_config.is_stochastic:
            raise ValueError(
                "Stochastic transformer settings (mirror, crop_size) are not "
                "allowed with paired dense labels; configure mirror and crop "
                "on the dense data config instead"
            )

    def sample(self, height: int, width: int) -> AugmentationDecision:
        """Draw the mirror flag and crop offsets for an image of this size."""
        do_mirror = self.mirror and self.rng.randrange(2) == 1
        h_off = w_off = 0
        if self.crops:
            if height < self.crop_height or width < self.crop_width:
                raise ValueError(
                    f"Crop {self.crop_height}x{self.crop_width} larger than "
                    f"image {height}x{width}"
                )
            h_off = self.rng.randrange(height - self.crop_height + 1)
            w_off = self.rng.randrange(width - self.crop_width + 1)
        return AugmentationDecision(mirror=do_mirror, h_off=h_off, w_off=w_off)

    def apply(
        self,
        image: np.ndarray,
        label: np.ndarray,
        decision: AugmentationDecision,
    ) -> tuple[np.ndarray, np.ndarray]:
        """Mirror and crop ``image`` and ``label`` according to ``decision``.

        ``image`` is ``(H, W)`` or ``(H, W, C)``; ``label`` is ``(H_l, W_l)``.
        """
        if decision.mirror:
            image = np.flip(image, axis=1)
            label = np.flip(label, axis=1)
        if self.crops:
            image = image[
                decision.h_off : decision.h_off + self.crop_height,
                decision.w_off : decision.w_off + self.crop_width,
            ]
            lh_off = scaled_extent(decision.h_off, self.scale)
            lw_off = scaled_extent(decision.w_off, self.scale)
            label = label[
                lh_off : lh_off + scaled_extent(self.crop_height, self.scale),
                lw_off : lw_off + scaled_extent(self.crop_width, self.scale),
            ]
        return np.ascontiguousarray(image), np.ascontiguousarray(label)

    def __call__(
        self, image: np.ndarray, label: np.ndarray
    ) -> tuple[np.ndarray, np.ndarray, AugmentationDecision]:
        decision = self.sample(image.shape[0], image.shape[1])
        image, label = self.apply(image, label, decision)
        return image, label, decision
