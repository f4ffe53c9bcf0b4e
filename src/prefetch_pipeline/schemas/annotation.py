"""Bounding-box annotation schema."""

from __future__ import annotations

from pydantic import BaseModel, model_validator


class BoxAnnotation(BaseModel, frozen=True):
    """One labeled box in normalized ``(x_center, y_center, width, height)``.

    The centre must lie in ``[0, 1]``.  ``difficult`` is expected to be 0 or 1
    but is not validated here; the detection encoder warns about other values
    and writes them unchanged.  ``class_id`` is checked by the encoder for the
    same reason.
    """

    class_id: int
    difficult: float = 0.0
    box: tuple[float, float, float, float]

    @model_validator(mode="after")
    def _check_centre(self) -> BoxAnnotation:
        x, y = self.box[0], self.box[1]
        if not (0.0 <= x <= 1.0 and 0.0 <= y <= 1.0):
            raise ValueError(f"box centre must be in [0, 1], got ({x}, {y})")
        return self

    @property
    def x_center(self) -> float:
        return self.box[0]

    @property
    def y_center(self) -> float:
        return self.box[1]

    def mirrored(self) -> BoxAnnotation:
        """Return the annotation reflected about the vertical image axis."""
        x, y, w, h = self.box
        return self.model_copy(update={"box": (1.0 - x, y, w, h)})
