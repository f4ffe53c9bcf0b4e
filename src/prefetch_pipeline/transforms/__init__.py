"""Pixel primitives and the per-sample batch transformer."""

from prefetch_pipeline.transforms.data_transformer import DataTransformer, crop_boxes
from prefetch_pipeline.transforms.image_ops import read_image, to_chw_tensor

__all__ = [
    "DataTransformer",
    "crop_boxes",
    "read_image",
    "to_chw_tensor",
]
