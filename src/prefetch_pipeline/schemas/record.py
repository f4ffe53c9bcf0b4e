"""Raw training records as produced by a record source.

Records are immutable.  A record's ownership moves between threads through
the reader's queues; nothing ever mutates one after the source built it.
"""

from __future__ import annotations

from pathlib import Path
from typing import Union

import numpy as np
from pydantic import BaseModel, ConfigDict

from prefetch_pipeline.schemas.annotation import BoxAnnotation


class BoxRecord(BaseModel, frozen=True):
    """An image plus zero or more box annotations.

    ``image`` is either the encoded file payload (JPEG/PNG bytes), a path to
    the image on disk, or an already-decoded ``(H, W, C)`` uint8 array.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    image: Path | bytes | np.ndarray
    boxes: tuple[BoxAnnotation, ...] = ()
    key: str = ""


class PairedRecord(BaseModel, frozen=True):
    """An image path and the path of its per-pixel label map."""

    image_path: Path
    label_path: Path | None = None

    @property
    def key(self) -> str:
        return str(self.image_path)


Record = Union[BoxRecord, PairedRecord]
