"""
Exceptions raised by the stitching pipeline.

A failed pairwise fit is not an exception: estimators report it as a
``(False, None)`` result and callers decide whether it is fatal.
"""


class StitchError(Exception):
    """Base class for fatal stitching errors."""

    def __init__(self, message, indices=None, phase=None):
        super().__init__(message)
        self.indices = tuple(indices) if indices is not None else None
        self.phase = phase

    def __str__(self):
        msg = super().__str__()
        if self.phase:
            msg = f"[{self.phase}] {msg}"
        return msg


class ConnectivityError(StitchError):
    """A pair of images that must match could not be fitted."""


class DegenerateGeometryError(StitchError):
    """A homography or perspective transform could not be inverted or solved."""


class ExhaustedSearchError(StitchError):
    """The warp-factor search never produced a usable chain of homographies."""
