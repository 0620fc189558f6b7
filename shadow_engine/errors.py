"""Exception types raised by the shadow engine."""

from __future__ import annotations


class ShadeError(Exception):
    """Base class for all shadow engine errors."""


class InvalidInputError(ShadeError, ValueError):
    """Input rejected before any ray is marched.

    Raised for malformed height fields, non-positive ``zscale`` or search
    bound, empty or out-of-range angle sets, and cache mask / shadow cache
    arrays whose shape does not match the output window.
    """


class WorkerFailureError(ShadeError, RuntimeError):
    """A row task failed during parallel evaluation.

    The whole run is aborted; no partial shadow matrix is returned.

    Attributes
    ----------
    row : int
        Index (in the full grid) of the first row observed to fail.
    """

    def __init__(self, message: str, row: int) -> None:
        super().__init__(message)
        self.row = row
