"""Prefetching pipeline for images with bounding-box annotations."""

from __future__ import annotations

import time
from collections.abc import Sequence

import numpy as np
from loguru import logger

from prefetch_pipeline.config import BoxDataConfig
from prefetch_pipeline.data.batch import Batch
from prefetch_pipeline.data.prefetcher import BatchPrefetcher
from prefetch_pipeline.data.reader import RecordReader
from prefetch_pipeline.data.sources import RecordSource
from prefetch_pipeline.encoders.detection import transform_label
from prefetch_pipeline.schemas import BoxRecord
from prefetch_pipeline.transforms import DataTransformer, read_image

__all__ = ["BoxDataPrefetcher"]


class BoxDataPrefetcher(BatchPrefetcher):
    """Fill ``(data, label)`` batches from a stream of :class:`BoxRecord`.

    A :class:`RecordReader` pulls records from ``source`` on its own thread.
    For every sample slot the fill thread pops one record, decodes and
    transforms the image into the slot's data region and rasterizes the
    (transformed) boxes into the slot's ``side * side * 7`` label region.

    Args:
        source: Endless record source; handed to the internal reader.
        config: Batch, grid and resize settings.
        transformer: Per-sample transform; may mirror/crop and adjust boxes.
        output_labels: If ``False`` the label tensor is left untouched.
        start: Run setup and start both threads immediately.
    """

    def __init__(
        self,
        source: RecordSource[BoxRecord],
        config: BoxDataConfig,
        transformer: DataTransformer | None = None,
        output_labels: bool = True,
        start: bool = True,
    ) -> None:
        super().__init__(
            batch_size=config.batch_size,
            prefetch_count=config.prefetch_count,
            dtype=config.torch_dtype,
            name="box prefetch",
        )
        self.config = config
        self.side = config.side
        self.output_labels = output_labels
        self.transformer = transformer or DataTransformer()
        self.reader: RecordReader[BoxRecord] = RecordReader(
            source, prefetch_depth=config.prefetch_depth, name="box reader"
        )
        if start:
            try:
                self.start()
            except Exception:
                self.stop_readers()
                raise

    def readers(self) -> list[RecordReader[BoxRecord]]:
        return [self.reader]

    def _decode(self, record: BoxRecord) -> np.ndarray:
        return read_image(
            record.image,
            self.config.new_height,
            self.config.new_width,
            is_color=self.config.is_color,
        )

    def data_layer_setup(self) -> tuple[Sequence[int], Sequence[int]]:
        # Peek: the first record must still be delivered to the first batch.
        record = self.wait_peek(self.reader.full(), self.reader).get()
        channels, height, width = self.transformer.infer_shape(self._decode(record))
        data_shape = (self.batch_size, channels, height, width)
        label_shape = (self.batch_size, self.config.label_stride)
        logger.info(f"Box labels: side={self.side}, label stride={label_shape[1]}")
        return data_shape, label_shape

    def load_batch(self, batch: Batch) -> tuple[float, float]:
        read_time = 0.0
        trans_time = 0.0
        full, free = self.reader.full(), self.reader.free()
        for item_id in range(self.batch_size):
            start = time.perf_counter()
            slot = self.wait_pop(full, self.reader)
            record = slot.get()
            read_time += time.perf_counter() - start

            start = time.perf_counter()
            image = self._decode(record)
            boxes = self.transformer.transform(
                image, batch.data_region(item_id), record.boxes
            )
            if self.output_labels:
                transform_label(boxes, self.side, batch.label_region(item_id))
            batch.keys[item_id] = record.key
            trans_time += time.perf_counter() - start

            free.push(slot)
        return read_time, trans_time
