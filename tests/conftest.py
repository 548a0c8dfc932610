"""Pytest configuration and fixtures shared across all test modules.

Environment variables are set before any app import so settings are built
from a predictable, file-free configuration.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ.setdefault("APP_RATE_LIMIT_ENABLED", "true")
os.environ.setdefault("APP_RATE_LIMIT_INCLUDE_HEADERS", "true")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from unittest.mock import Mock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.adapters.rate_limit.in_memory import InMemoryFixedWindowRateLimiter
from app.core.app_factory import create_app


@pytest.fixture
def clock() -> Mock:
    """Controllable time source starting at a fixed UNIX timestamp."""
    return Mock(return_value=1_000.0)


@pytest.fixture
def limiter(clock: Mock) -> InMemoryFixedWindowRateLimiter:
    return InMemoryFixedWindowRateLimiter(clock=clock)


@pytest.fixture
def app(limiter: InMemoryFixedWindowRateLimiter) -> FastAPI:
    """Fresh application with its own limiter and deterministic clock."""
    return create_app(limiter=limiter)


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    return TestClient(app)
