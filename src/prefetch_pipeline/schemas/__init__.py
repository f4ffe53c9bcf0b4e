"""Record and annotation schemas."""

from prefetch_pipeline.schemas.annotation import BoxAnnotation
from prefetch_pipeline.schemas.record import BoxRecord, PairedRecord, Record

__all__ = [
    "BoxAnnotation",
    "BoxRecord",
    "PairedRecord",
    "Record",
]
