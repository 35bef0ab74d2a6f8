"""
Pytest configuration for the test suite.

This file is automatically loaded by pytest and applies configuration
to all tests in the tests/ directory.
"""

import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import Config


def pytest_configure(config):
    """Configure pytest with custom markers and settings."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )


@pytest.fixture
def small_config(tmp_path):
    """Config small enough for fast CPU tests, writing models under tmp_path."""
    config = Config()
    config.FORCE_CPU = True
    config.REPLAY_BUFFER_SIZE = 100
    config.MEMORY_MIN = 10
    config.BATCH_SIZE = 8
    config.HIDDEN_LAYERS = [16, 16]
    config.DROPOUT = 0.0
    config.SYNC_EVERY_FRAMES = 5
    config.SERIES_LENGTH = 8
    config.LOG_EVERY = 1
    config.MODEL_DIR = str(tmp_path / 'models')
    return config
