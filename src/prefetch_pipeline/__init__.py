"""Double-buffered batch prefetching for box and dense-label training data."""

__version__ = "0.0.1"
