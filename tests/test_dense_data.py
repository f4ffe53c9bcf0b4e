"""End-to-end tests for DenseImageDataPrefetcher."""

from pathlib import Path

import pytest
import torch

from prefetch_pipeline.config import DenseImageDataConfig, TransformConfig
from prefetch_pipeline.data import DenseImageDataPrefetcher
from prefetch_pipeline.transforms import DataTransformer


def _config(root: Path, list_name: str = "train.txt", **kwargs: object) -> DenseImageDataConfig:
    return DenseImageDataConfig(
        source=str(root / list_name),
        root_folder=str(root),
        **kwargs,  # type: ignore[arg-type]
    )


def _names(keys: list[str]) -> list[str]:
    return [Path(k).name for k in keys]


class TestDenseSetup:
    def test_same_resolution_shapes(self, dense_dataset_dir: Path) -> None:
        with DenseImageDataPrefetcher(_config(dense_dataset_dir, batch_size=2)) as p:
            assert p.data_shape == (2, 3, 8, 8)
            assert p.label_shape == (2, 1, 8, 8)

    def test_half_resolution_labels(self, dense_dataset_dir: Path) -> None:
        cfg = _config(dense_dataset_dir, "half.txt", batch_size=2, scale=2)
        with DenseImageDataPrefetcher(cfg) as p:
            assert p.label_shape == (2, 1, 4, 4)

    def test_crop_shapes_scaled_for_labels(self, dense_dataset_dir: Path) -> None:
        cfg = _config(
            dense_dataset_dir, "half.txt", batch_size=2, scale=2,
            crop_height=4, crop_width=4,
        )
        with DenseImageDataPrefetcher(cfg) as p:
            assert p.data_shape == (2, 3, 4, 4)
            assert p.label_shape == (2, 1, 2, 2)

    def test_resize_reads_labels_at_scaled_size(self, dense_dataset_dir: Path) -> None:
        cfg = _config(
            dense_dataset_dir, batch_size=1, new_height=6, new_width=6, scale=2
        )
        with DenseImageDataPrefetcher(cfg) as p:
            assert p.data_shape == (1, 3, 6, 6)
            assert p.label_shape == (1, 1, 3, 3)

    def test_mismatched_label_size_is_fatal(self, dense_dataset_dir: Path) -> None:
        with pytest.raises(ValueError, match="must match"):
            DenseImageDataPrefetcher(_config(dense_dataset_dir, "half.txt"))

    def test_stochastic_transformer_rejected(self, dense_dataset_dir: Path) -> None:
        transformer = DataTransformer(TransformConfig(mirror=True))
        with pytest.raises(ValueError, match="Stochastic"):
            DenseImageDataPrefetcher(_config(dense_dataset_dir), transformer=transformer)

    def test_missing_label_column(self, tmp_path: Path, dense_dataset_dir: Path) -> None:
        list_file = tmp_path / "nolabels.txt"
        list_file.write_text("real_img_00.png\n")
        cfg = DenseImageDataConfig(source=str(list_file), root_folder=str(dense_dataset_dir))
        with pytest.raises(ValueError, match="No label image"):
            DenseImageDataPrefetcher(cfg)


class TestDenseContents:
    def test_fifo_and_pixel_placement(self, dense_dataset_dir: Path) -> None:
        with DenseImageDataPrefetcher(_config(dense_dataset_dir, batch_size=2)) as p:
            keys: list[str] = []
            for _ in range(3):
                batch = p.next_ready_batch(timeout=5.0)
                keys.extend(_names(batch.keys))
                for item_id, name in enumerate(_names(batch.keys)):
                    index = int(name.split("_")[-1].split(".")[0])
                    assert torch.all(batch.data[item_id, 2] == index)
                    assert batch.data[item_id, 0, 3, 5] == 35
                    assert batch.label[item_id, 0, 0].tolist() == list(range(8))
                p.release(batch)
        expected = [f"real_img_{i:02d}.png" for i in (0, 1, 2, 3, 4, 0)]
        assert keys == expected

    def test_shuffled_epoch_is_permutation(self, dense_dataset_dir: Path) -> None:
        cfg = _config(dense_dataset_dir, batch_size=5, shuffle=True, seed=7)
        with DenseImageDataPrefetcher(cfg) as p:
            batch = p.next_ready_batch(timeout=5.0)
            names = sorted(_names(batch.keys))
            p.release(batch)
        assert names == [f"real_img_{i:02d}.png" for i in range(5)]

    @pytest.mark.parametrize("seed", [0, 1, 2])
    def test_mirror_and_crop_keep_correspondence(
        self, dense_dataset_dir: Path, seed: int
    ) -> None:
        cfg = _config(
            dense_dataset_dir, batch_size=4, mirror=True,
            crop_height=4, crop_width=4, seed=seed,
        )
        with DenseImageDataPrefetcher(cfg) as p:
            for _ in range(3):
                batch = p.next_ready_batch(timeout=5.0)
                image_cols = batch.data[:, 0].to(torch.int64) % 10
                labels = batch.label[:, 0].to(torch.int64)
                assert torch.equal(image_cols, labels)
                p.release(batch)

    @pytest.mark.parametrize("seed", [0, 1, 2])
    def test_half_resolution_correspondence(
        self, dense_dataset_dir: Path, seed: int
    ) -> None:
        cfg = _config(
            dense_dataset_dir, "half.txt", batch_size=4, scale=2, mirror=True,
            crop_height=4, crop_width=4, seed=seed,
        )
        with DenseImageDataPrefetcher(cfg) as p:
            for _ in range(3):
                batch = p.next_ready_batch(timeout=5.0)
                image_cols = batch.data[:, 0, ::2, ::2].to(torch.int64) % 10
                labels = batch.label[:, 0].to(torch.int64)
                assert torch.equal(image_cols // 2, labels)
                p.release(batch)


class TestDenseSyntheticPool:
    def test_first_half_from_synthetic(self, dense_dataset_dir: Path) -> None:
        cfg = _config(
            dense_dataset_dir, batch_size=4,
            synth_source=str(dense_dataset_dir / "synth.txt"),
        )
        with DenseImageDataPrefetcher(cfg) as p:
            for _ in range(2):
                batch = p.next_ready_batch(timeout=5.0)
                names = _names(batch.keys)
                assert all(n.startswith("synth") for n in names[:2])
                assert all(n.startswith("real") for n in names[2:])
                p.release(batch)

    def test_pools_keep_independent_cursors(self, dense_dataset_dir: Path) -> None:
        cfg = _config(
            dense_dataset_dir, batch_size=2, synth_split=1,
            synth_source=str(dense_dataset_dir / "synth.txt"),
        )
        with DenseImageDataPrefetcher(cfg) as p:
            names: list[str] = []
            for _ in range(4):
                batch = p.next_ready_batch(timeout=5.0)
                names.extend(_names(batch.keys))
                p.release(batch)
        assert names[0::2] == [f"synth_img_{i:02d}.png" for i in (0, 1, 2, 0)]
        assert names[1::2] == [f"real_img_{i:02d}.png" for i in (0, 1, 2, 3)]

    def test_zero_split_skips_synthetic_reader(self, dense_dataset_dir: Path) -> None:
        cfg = _config(
            dense_dataset_dir, batch_size=2, synth_split=0,
            synth_source=str(dense_dataset_dir / "synth.txt"),
        )
        with DenseImageDataPrefetcher(cfg) as p:
            assert p.synth_reader is None
            assert p.readers() == [p.reader]
            batch = p.next_ready_batch(timeout=5.0)
            assert all(n.startswith("real") for n in _names(batch.keys))
            p.release(batch)

    def test_empty_synthetic_list_uses_primary(
        self, tmp_path: Path, dense_dataset_dir: Path
    ) -> None:
        empty = tmp_path / "empty.txt"
        empty.write_text("")
        cfg = _config(dense_dataset_dir, batch_size=2, synth_source=str(empty))
        with DenseImageDataPrefetcher(cfg) as p:
            assert p.synth_reader is None
            batch = p.next_ready_batch(timeout=5.0)
            assert all(n.startswith("real") for n in _names(batch.keys))
            p.release(batch)


class TestDenseErrors:
    def test_missing_image_mid_stream_is_fatal(
        self, tmp_path: Path, dense_dataset_dir: Path
    ) -> None:
        list_file = tmp_path / "broken.txt"
        list_file.write_text(
            "real_img_00.png real_lbl_00.png\nmissing.png real_lbl_01.png\n"
        )
        cfg = DenseImageDataConfig(
            source=str(list_file), root_folder=str(dense_dataset_dir), batch_size=2
        )
        p = DenseImageDataPrefetcher(cfg)
        try:
            with pytest.raises(RuntimeError, match="failed") as exc_info:
                p.next_ready_batch(timeout=5.0)
            assert "missing.png" in str(exc_info.value.__cause__)
        finally:
            p.stop()
