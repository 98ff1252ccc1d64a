"""frequent_longs package public API."""
from ._metadata import __version__
from .frequent_longs import ErrorType, FrequentLongs, Row
from .serialization import SketchState


class FrequentLongsSketch(FrequentLongs):
    """Alias for :class:`FrequentLongs` used by the benchmarking utilities."""


__all__ = [
    "ErrorType",
    "FrequentLongs",
    "FrequentLongsSketch",
    "Row",
    "SketchState",
    "__version__",
]
