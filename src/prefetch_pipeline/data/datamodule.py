"""LightningDataModule serving batches from a BatchPrefetcher."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from typing import Any

import lightning as L
from loguru import logger

from prefetch_pipeline.data.prefetcher import BatchPrefetcher
from prefetch_pipeline.types import PrefetchedBatch
from prefetch_pipeline.utils.hydra import register


class PrefetchLoader:
    """Iterable of ``batches_per_epoch`` prefetched batches.

    The batch yielded last is released back to the prefetcher when the
    next one is requested, i.e. after the training step that used it.
    """

    def __init__(self, prefetcher: BatchPrefetcher, batches_per_epoch: int) -> None:
        self.prefetcher = prefetcher
        self.batches_per_epoch = batches_per_epoch

    def __len__(self) -> int:
        return self.batches_per_epoch

    def __iter__(self) -> Iterator[PrefetchedBatch]:
        for _ in range(self.batches_per_epoch):
            batch = self.prefetcher.next_ready_batch()
            try:
                yield {"images": batch.data, "labels": batch.label}
            finally:
                self.prefetcher.release(batch)


@register(group="data")
class PrefetchDataModule(L.LightningDataModule):
    """Expose a prefetching pipeline as Lightning's training dataloader.

    The prefetcher is built lazily in :meth:`setup` so that its threads start
    in the training process, and stopped in :meth:`teardown`.

    Args:
        prefetcher: A prefetcher, or a zero-argument factory returning one
            (Hydra passes ``_partial_`` targets this way).  It is started in
            ``setup`` if it is not already running.
        batches_per_epoch: Batches drawn from the endless stream per epoch.
        **kwargs: Absorbs extra Hydra-injected keys.
    """

    def __init__(
        self,
        prefetcher: BatchPrefetcher | Callable[[], BatchPrefetcher],
        batches_per_epoch: int,
        **kwargs: Any,
    ) -> None:
        super().__init__()
        if batches_per_epoch <= 0:
            raise ValueError(f"batches_per_epoch must be > 0, got {batches_per_epoch}")
        self._prefetcher_or_factory = prefetcher
        self._prefetcher: BatchPrefetcher | None = None
        self.batches_per_epoch = batches_per_epoch

    @property
    def prefetcher(self) -> BatchPrefetcher:
        if self._prefetcher is None:
            raise RuntimeError("Call setup('fit') first")
        return self._prefetcher

    def setup(self, stage: str | None = None) -> None:
        if stage not in ("fit", None) or self._prefetcher is not None:
            return
        target = self._prefetcher_or_factory
        prefetcher = target if isinstance(target, BatchPrefetcher) else target()
        if not prefetcher.is_started():
            prefetcher.start()
        self._prefetcher = prefetcher
        logger.info(
            f"Setup fit: {self.batches_per_epoch} batches/epoch of "
            f"{prefetcher.data_shape}"
        )

    def train_dataloader(self) -> PrefetchLoader:
        return PrefetchLoader(self.prefetcher, self.batches_per_epoch)

    def teardown(self, stage: str | None = None) -> None:
        if self._prefetcher is not None:
            self._prefetcher.stop()
            self._prefetcher = None
