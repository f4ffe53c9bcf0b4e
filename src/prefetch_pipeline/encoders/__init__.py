"""Label encoders run on the prefetch thread."""

from prefetch_pipeline.encoders.dense import (
    AugmentationDecision,
    PairedDenseLabelEncoder,
    scaled_extent,
)
from prefetch_pipeline.encoders.detection import (
    GRID_CHANNELS,
    cell_index,
    encode,
    transform_label,
)

__all__ = [
    "GRID_CHANNELS",
    "AugmentationDecision",
    "PairedDenseLabelEncoder",
    "cell_index",
    "encode",
    "scaled_extent",
    "transform_label",
]
