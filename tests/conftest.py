"""Pytest configuration for fortsmith tests.

This module provides pytest hooks that apply across all tests.
"""

import logging

import pytest

console_logger = logging.getLogger(__name__)


@pytest.hookimpl(tryfirst=True)
def pytest_runtest_setup(item):
    """Log the test being run so that planner logs can be told apart."""
    console_logger.debug(f"Running test: {item.nodeid}")
