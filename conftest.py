"""
Pytest configuration for the flat83fs test suite.

    python -m pytest                 # everything
    python -m pytest -m "not slow"   # skip image-filling tests

Fixtures hand each test its own freshly formatted backing image under
pytest's tmp_path, so tests never share state through the image file.
"""

import pytest

from blockstore import DEFAULT_GEOMETRY, format_image
from diskcache import DiskCache
from fsops import FlatFS


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers",
        "slow: tests that fill a whole image (deselect with -m 'not slow')")


@pytest.fixture
def image_path(tmp_path):
    path = tmp_path / "test.disk"
    format_image(path, DEFAULT_GEOMETRY)
    return path


@pytest.fixture
def cache(image_path):
    return DiskCache(image_path)


@pytest.fixture
def fs(cache):
    return FlatFS(cache)
