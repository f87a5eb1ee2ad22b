from __future__ import annotations

import os

import pytest

from plantops.core.config.paths import ConfigFsPaths
from plantops.core.persistence.kv_store import MemoryKeyValueStore

from .helpers.fakes import FakeClock


@pytest.fixture
def tmp_config_root(tmp_path):
    """Isolated root with config/ under tmp_path."""
    fs = ConfigFsPaths(root=str(tmp_path))
    os.makedirs(fs.config_dir, exist_ok=True)
    return fs


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def kv():
    return MemoryKeyValueStore()
