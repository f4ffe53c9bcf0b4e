"""Tests for the Lightning data module wrapper."""

from collections.abc import Callable

import pytest
from hydra.core.config_store import ConfigStore

from prefetch_pipeline.config import BoxDataConfig
from prefetch_pipeline.data import (
    BoxDataPrefetcher,
    PrefetchDataModule,
    PrefetchLoader,
    SequenceSource,
)
from prefetch_pipeline.schemas import BoxRecord


@pytest.fixture()
def box_factory(
    make_box_records: Callable[[int], list[BoxRecord]],
) -> Callable[[], BoxDataPrefetcher]:
    cfg = BoxDataConfig(batch_size=2, side=2)
    return lambda: BoxDataPrefetcher(
        SequenceSource(make_box_records(5)), cfg, start=False
    )


class TestPrefetchDataModule:
    def test_fit_loop(self, box_factory: Callable[[], BoxDataPrefetcher]) -> None:
        dm = PrefetchDataModule(box_factory, batches_per_epoch=3)
        dm.setup("fit")
        try:
            loader = dm.train_dataloader()
            assert isinstance(loader, PrefetchLoader)
            assert len(loader) == 3
            seen = 0
            for batch in loader:
                assert batch["images"].shape == (2, 3, 8, 8)
                assert batch["labels"].shape == (2, 2 * 2 * 7)
                seen += 1
            assert seen == 3
        finally:
            dm.teardown("fit")
        with pytest.raises(RuntimeError, match="setup"):
            _ = dm.prefetcher

    def test_accepts_started_prefetcher(
        self, box_factory: Callable[[], BoxDataPrefetcher]
    ) -> None:
        prefetcher = box_factory()
        prefetcher.start()
        dm = PrefetchDataModule(prefetcher, batches_per_epoch=1)
        dm.setup()
        try:
            assert dm.prefetcher is prefetcher
            assert len(list(dm.train_dataloader())) == 1
        finally:
            dm.teardown()
        assert not prefetcher.is_started()

    def test_setup_after_teardown_restarts_prefetcher(
        self, box_factory: Callable[[], BoxDataPrefetcher]
    ) -> None:
        prefetcher = box_factory()
        dm = PrefetchDataModule(prefetcher, batches_per_epoch=1)
        dm.setup("fit")
        try:
            assert len(list(dm.train_dataloader())) == 1
        finally:
            dm.teardown("fit")

        dm.setup("fit")
        try:
            assert prefetcher.reader.is_started()
            for _ in range(6):
                batch = prefetcher.next_ready_batch(timeout=5.0)
                prefetcher.release(batch)
        finally:
            dm.teardown("fit")
        assert not prefetcher.reader.is_started()

    def test_prefetcher_before_setup(
        self, box_factory: Callable[[], BoxDataPrefetcher]
    ) -> None:
        dm = PrefetchDataModule(box_factory, batches_per_epoch=1)
        with pytest.raises(RuntimeError, match="setup"):
            _ = dm.prefetcher

    def test_validate_stage_does_not_build(
        self, box_factory: Callable[[], BoxDataPrefetcher]
    ) -> None:
        dm = PrefetchDataModule(box_factory, batches_per_epoch=1)
        dm.setup("validate")
        with pytest.raises(RuntimeError):
            _ = dm.prefetcher

    def test_rejects_empty_epoch(
        self, box_factory: Callable[[], BoxDataPrefetcher]
    ) -> None:
        with pytest.raises(ValueError, match="batches_per_epoch"):
            PrefetchDataModule(box_factory, batches_per_epoch=0)

    def test_registered_in_config_store(self) -> None:
        assert "PrefetchDataModule.yaml" in ConfigStore.instance().list("data")
