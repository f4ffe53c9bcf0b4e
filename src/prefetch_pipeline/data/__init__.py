"""Prefetching data pipeline for prefetch_pipeline."""

from prefetch_pipeline.data.batch import Batch
from prefetch_pipeline.data.box_data import BoxDataPrefetcher
from prefetch_pipeline.data.datamodule import PrefetchDataModule, PrefetchLoader
from prefetch_pipeline.data.dense_data import DenseImageDataPrefetcher
from prefetch_pipeline.data.handoff import BoundedHandoffQueue
from prefetch_pipeline.data.prefetcher import BatchPrefetcher, PrefetchStats
from prefetch_pipeline.data.reader import RecordReader, RecordSlot
from prefetch_pipeline.data.sources import (
    ListFileSource,
    RecordSource,
    SequenceSource,
    read_list_file,
)

__all__ = [
    "Batch",
    "BatchPrefetcher",
    "BoundedHandoffQueue",
    "BoxDataPrefetcher",
    "DenseImageDataPrefetcher",
    "ListFileSource",
    "PrefetchDataModule",
    "PrefetchLoader",
    "PrefetchStats",
    "RecordReader",
    "RecordSlot",
    "RecordSource",
    "SequenceSource",
    "read_list_file",
]
