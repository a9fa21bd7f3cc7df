"""Exceptions raised by the scanning pipeline."""


class ScanError(Exception):
    """Base class for all pagescan errors."""


class InputError(ScanError, ValueError):
    """Rejected input file (unsupported type or too large)."""


class GeometryDegenerate(ScanError):
    """The corner quadrilateral cannot be turned into a perspective transform."""


class ProcessingError(ScanError, ValueError):
    """A pixel buffer could not be read by a processing stage."""
