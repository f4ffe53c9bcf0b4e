"""Prefetching pipeline for images paired with per-pixel label maps."""

from __future__ import annotations

import random
import time
from collections.abc import Sequence

import numpy as np
from loguru import logger

from prefetch_pipeline.config import DenseImageDataConfig
from prefetch_pipeline.data.batch import Batch
from prefetch_pipeline.data.prefetcher import BatchPrefetcher
from prefetch_pipeline.data.reader import RecordReader
from prefetch_pipeline.data.sources import ListFileSource, SequenceSource, read_list_file
from prefetch_pipeline.encoders.dense import PairedDenseLabelEncoder, scaled_extent
from prefetch_pipeline.schemas import PairedRecord
from prefetch_pipeline.transforms import DataTransformer, read_image

__all__ = ["DenseImageDataPrefetcher"]


class DenseImageDataPrefetcher(BatchPrefetcher):
    """Fill batches of images and their label maps from list files.

    Records come from ``config.source`` and, when ``config.synth_source``
    lists any pairs, from a second auxiliary pool.  Slots below
    ``synth_split`` draw from the auxiliary pool; the remaining slots (or all
    slots, without an auxiliary pool) draw from the primary one.  Each pool
    has its own reader thread, cursor and reshuffle.

    Mirror and crop are drawn once per sample by a
    :class:`PairedDenseLabelEncoder` and applied to image and label alike, so
    the transformer must not be stochastic itself.

    Raises:
        ValueError: On a stochastic transformer, an unreadable first pair or
            image/label dimensions that disagree with ``scale``.
    """

    def __init__(
        self,
        config: DenseImageDataConfig,
        transformer: DataTransformer | None = None,
        start: bool = True,
    ) -> None:
        super().__init__(
            batch_size=config.batch_size,
            prefetch_count=config.prefetch_count,
            dtype=config.torch_dtype,
            name="dense prefetch",
        )
        self.config = config
        self.transformer = transformer or DataTransformer()
        PairedDenseLabelEncoder.require_deterministic(self.transformer.config)

        rng = random.Random(config.seed)
        self.encoder = PairedDenseLabelEncoder(
            crop_height=config.crop_height,
            crop_width=config.crop_width,
            scale=config.scale,
            mirror=config.mirror,
            rng=rng,
        )

        source = ListFileSource(
            config.source,
            root_folder=config.root_folder,
            shuffle=config.shuffle,
            rand_skip=config.rand_skip,
            seed=config.seed,
        )
        self.reader: RecordReader[PairedRecord] = RecordReader(
            source, prefetch_depth=config.prefetch_depth, name="dense reader"
        )
        self.synth_reader: RecordReader[PairedRecord] | None = None
        self.synth_split = (
            config.synth_split
            if config.synth_split is not None
            else config.batch_size // 2
        )
        if config.synth_source and self.synth_split == 0:
            logger.info(
                "synth_split is 0; not reading synthetic examples from "
                f"{config.synth_source}"
            )
        elif config.synth_source:
            synth_records = read_list_file(config.synth_source, config.root_folder)
            if synth_records:
                synth_source = SequenceSource(
                    synth_records,
                    shuffle=config.shuffle,
                    seed=None if config.seed is None else config.seed + 1,
                    name=f"{config.synth_source} (synthetic)",
                )
                self.synth_reader = RecordReader(
                    synth_source,
                    prefetch_depth=config.prefetch_depth,
                    name="dense synth reader",
                )
            else:
                logger.warning(f"No synthetic examples in {config.synth_source}")

        if start:
            try:
                self.start()
            except Exception:
                self.stop_readers()
                raise

    def readers(self) -> list[RecordReader[PairedRecord]]:
        readers = [self.reader]
        if self.synth_reader is not None:
            readers.append(self.synth_reader)
        return readers

    def _read_pair(self, record: PairedRecord) -> tuple[np.ndarray, np.ndarray]:
        cfg = self.config
        image = read_image(
            record.image_path, cfg.new_height, cfg.new_width, is_color=cfg.is_color
        )
        if record.label_path is None:
            raise ValueError(f"No label image listed for {record.image_path}")
        label = read_image(
            record.label_path,
            scaled_extent(cfg.new_height, cfg.scale),
            scaled_extent(cfg.new_width, cfg.scale),
            is_label=True,
        )
        return image, label

    def data_layer_setup(self) -> tuple[Sequence[int], Sequence[int]]:
        cfg = self.config
        # Peek: the first pair must still be delivered to the first batch.
        first = self.wait_peek(self.reader.full(), self.reader).get()
        image, label = self._read_pair(first)
        if label.ndim != 2:
            raise ValueError("Can only handle grayscale label images")

        height, width = image.shape[0], image.shape[1]
        channels = image.shape[2] if image.ndim == 3 else 1
        expected = (scaled_extent(height, cfg.scale), scaled_extent(width, cfg.scale))
        if label.shape != expected:
            if cfg.scale == 1.0:
                raise ValueError(
                    "Input and label image heights and widths must match: "
                    f"{height}x{width} vs {label.shape[0]}x{label.shape[1]}"
                )
            raise ValueError(
                f"Label image {label.shape[0]}x{label.shape[1]} does not match "
                f"image {height}x{width} at scale {cfg.scale}"
            )

        if self.encoder.crops:
            if height < cfg.crop_height or width < cfg.crop_width:
                raise ValueError(
                    f"Crop {cfg.crop_height}x{cfg.crop_width} larger than image "
                    f"{height}x{width}"
                )
            height, width = cfg.crop_height, cfg.crop_width
        data_shape = (self.batch_size, channels, height, width)
        label_shape = (
            self.batch_size,
            1,
            scaled_extent(height, cfg.scale),
            scaled_extent(width, cfg.scale),
        )
        if self.synth_reader is not None:
            logger.info(
                f"Drawing the first {self.synth_split} of {self.batch_size} "
                "slots from synthetic examples"
            )
        return data_shape, label_shape

    def load_batch(self, batch: Batch) -> tuple[float, float]:
        read_time = 0.0
        trans_time = 0.0
        for item_id in range(self.batch_size):
            reader = self.reader
            if self.synth_reader is not None and item_id < self.synth_split:
                reader = self.synth_reader

            start = time.perf_counter()
            slot = self.wait_pop(reader.full(), reader)
            record = slot.get()
            image, label = self._read_pair(record)
            read_time += time.perf_counter() - start

            start = time.perf_counter()
            image, label, _ = self.encoder(image, label)
            self.transformer.transform(image, batch.data_region(item_id))
            self.transformer.transform_label(label, batch.label_region(item_id))
            batch.keys[item_id] = record.key
            trans_time += time.perf_counter() - start

            reader.free().push(slot)
        return read_time, trans_time
