"""Shared test fixtures for all test modules."""

from collections.abc import Callable
from pathlib import Path
from typing import Any

import httpx
import pytest

from dualsink.core.models import MetricRow, TransformContext
from dualsink.core.transform import transform

# 2024-01-15 10:30:00 UTC, a Monday
JAN_15_1030 = 1705314600


@pytest.fixture
def metrics_db_path(tmp_path: Path) -> str:
    """Provide a temporary database path for metric storage tests."""
    return str(tmp_path / "metrics.db")


@pytest.fixture
def buffer_db_path(tmp_path: Path) -> str:
    """Provide a temporary database path for buffer tests."""
    return str(tmp_path / "buffer.db")


@pytest.fixture
def call_log() -> list[tuple[str, Any]]:
    """Shared call log so ordering across two fakes can be asserted."""
    return []


@pytest.fixture
def context() -> TransformContext:
    return TransformContext(
        session_id="sess-1",
        user_id=42,
        environment="testing",
        server_name="web-1",
        app_version="2.3.4",
    )


@pytest.fixture
def make_row() -> Callable[..., MetricRow]:
    """Factory building metric rows through the real transformer."""

    def _make(
        t: str = "request",
        timestamp: float = JAN_15_1030,
        context: TransformContext | None = None,
        **fields: Any,
    ) -> MetricRow:
        return transform({"t": t, "timestamp": timestamp, **fields}, context)

    return _make


@pytest.fixture
def asgi_test_client():
    """Factory fixture that creates an httpx.AsyncClient for ASGI testing.

    Usage:
        async def test_something(asgi_test_client):
            async with asgi_test_client(app) as client:
                response = await client.get("/status")
    """

    def _get_client(app):
        return httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app), base_url="http://test"
        )

    return _get_client
