"""Record sources: endless, optionally shuffled streams of records.

A source owns its permutation and cursor.  Only the reader thread that was
handed the source calls :meth:`next`, so no locking is needed here.
"""

from __future__ import annotations

import random
from collections.abc import Sequence
from pathlib import Path
from typing import Generic, Protocol, TypeVar

from loguru import logger

from prefetch_pipeline.schemas import PairedRecord

__all__ = [
    "ListFileSource",
    "RecordSource",
    "SequenceSource",
    "read_list_file",
]

R = TypeVar("R")
R_co = TypeVar("R_co", covariant=True)


class RecordSource(Protocol[R_co]):
    """Anything that yields records forever, wrapping at the epoch boundary."""

    def next(self) -> R_co: ...

    def __len__(self) -> int: ...


class SequenceSource(Generic[R]):
    """Cycle over an in-memory list of records.

    Args:
        records: The records of one epoch, in file order.
        shuffle: Permute once at construction and again at every wrap.
        rand_skip: If positive, start at a random offset in
            ``[0, rand_skip)`` so that parallel workers are desynchronized.
        seed: Seed for the shuffle/skip generator.
        name: Label used in log lines.
    """

    def __init__(
        self,
        records: Sequence[R],
        shuffle: bool = False,
        rand_skip: int = 0,
        seed: int | None = None,
        name: str = "source",
    ) -> None:
        if not records:
            raise ValueError(f"{name} contains no records")
        self.name = name
        self.shuffle = shuffle
        self._records: list[R] = list(records)
        self._rng = random.Random(seed)
        self._cursor = 0
        self.epoch = 0

        if shuffle:
            logger.info(f"Shuffling {name}")
            self._rng.shuffle(self._records)
        logger.info(f"A total of {len(self._records)} examples in {name}")

        if rand_skip:
            skip = self._rng.randrange(rand_skip)
            logger.info(f"Skipping first {skip} data points of {name}")
            if skip >= len(self._records):
                raise ValueError(
                    f"Not enough points to skip: {skip} >= {len(self._records)}"
                )
            self._cursor = skip

    def __len__(self) -> int:
        return len(self._records)

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def order(self) -> list[R]:
        """Current epoch order (a copy)."""
        return list(self._records)

    def next(self) -> R:
        record = self._records[self._cursor]
        self._cursor += 1
        if self._cursor >= len(self._records):
            logger.debug(f"Restarting {self.name} from start")
            self._cursor = 0
            self.epoch += 1
            if self.shuffle:
                self._rng.shuffle(self._records)
        return record


def read_list_file(list_file: str | Path, root_folder: str | Path = "") -> list[PairedRecord]:
    """Parse a list file of ``image_path [label_path]`` lines.

    Blank lines are ignored.  Paths are resolved against ``root_folder``.

    Raises:
        ValueError: If a line holds more than two fields.
    """
    root = Path(root_folder)
    records: list[PairedRecord] = []
    logger.info(f"Opening file {list_file}")
    with open(list_file) as f:
        for lineno, line in enumerate(f, start=1):
            fields = line.split()
            if not fields:
                continue
            if len(fields) > 2:
                raise ValueError(
                    f"{list_file}:{lineno}: expected 'image [label]', got {line!r}"
                )
            label = root / fields[1] if len(fields) == 2 else None
            records.append(PairedRecord(image_path=root / fields[0], label_path=label))
    return records


class ListFileSource(SequenceSource[PairedRecord]):
    """SequenceSource over the pairs listed in a list file."""

    def __init__(
        self,
        list_file: str | Path,
        root_folder: str | Path = "",
        shuffle: bool = False,
        rand_skip: int = 0,
        seed: int | None = None,
    ) -> None:
        self.list_file = Path(list_file)
        super().__init__(
            read_list_file(list_file, root_folder),
            shuffle=shuffle,
            rand_skip=rand_skip,
            seed=seed,
            name=self.list_file.name,
        )
