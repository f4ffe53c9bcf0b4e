"""Smoke test: verify the prefetch_pipeline package is importable."""

import prefetch_pipeline


def test_package_version() -> None:
    """Package must declare a __version__ string."""
    assert isinstance(prefetch_pipeline.__version__, str)
    assert prefetch_pipeline.__version__ == "0.0.1"


def test_public_data_api() -> None:
    import prefetch_pipeline.data as data_pkg

    for name in ("BoxDataPrefetcher", "DenseImageDataPrefetcher", "RecordReader"):
        assert hasattr(data_pkg, name)
