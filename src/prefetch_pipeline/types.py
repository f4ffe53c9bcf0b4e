"""Type aliases and TypedDicts for prefetch_pipeline inter-module contracts."""

from typing import TypedDict

import torch


class PrefetchedBatch(TypedDict):
    """A single batch as handed to a LightningModule.

    images: Float tensor of shape (B, C, H, W).
    labels: Float tensor of shape (B, side * side * 7) for box data or
        (B, 1, H_l, W_l) for dense label maps.
    """

    images: torch.Tensor
    labels: torch.Tensor
