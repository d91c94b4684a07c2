"""Pytest configuration and fixtures shared across all test modules.

Environment variables are set before any ``quota_gate`` import so the global
settings object sees them: the in-memory store replaces Redis and a known
token override is registered.
"""

import os

os.environ["APP_ENV"] = "testing"
os.environ["STORE_BACKEND"] = "memory"
os.environ["IP_REQUESTS_PER_SECOND"] = "5"
os.environ["IP_BLOCK_DURATION_MINUTES"] = "1"
os.environ["TOKEN_LIMIT_good-token"] = "10,1"
os.environ["TOKEN_LIMIT_broken-token"] = "ten,1"

from unittest.mock import Mock

import pytest


@pytest.fixture
def clock() -> Mock:
    """Clock that only moves when a test bumps its return_value."""
    return Mock(return_value=1000.0)
