"""
Pytest configuration for the test suite.

This file is automatically loaded by pytest and applies configuration
to all tests in the tests/ directory.
"""

import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
os.environ.setdefault('PYGAME_HIDE_SUPPORT_PROMPT', '1')

from src.utils.logger import setup_logging, LogLevel


def pytest_configure(config):
    """Configure pytest with custom markers and settings."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    # Console only; tests must never create a logs/ directory
    setup_logging(level=LogLevel.WARNING, file_output=False, force=True)
