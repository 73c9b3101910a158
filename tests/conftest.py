"""Test configuration and fixtures."""

from pathlib import Path

import pytest

from fakes import Harness


@pytest.fixture
def harness_factory(tmp_path: Path):
    """Build a wired in-memory worker; keyword arguments go to ``Harness``."""

    def _factory(**kwargs) -> Harness:
        return Harness(tmp_path, **kwargs)

    return _factory
