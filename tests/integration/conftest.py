"""
Shared pytest fixtures for integration tests.

The tracing and metrics fixtures come from tests/conftest.py. This module
adds pipeline configurations with no simulated step work so the pipeline
runs as fast as the scheduler allows.
"""

from __future__ import annotations

import pytest

from spanlinks.config import PipelineConfig, StepTimings


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    """Mark every test under tests/integration as an integration test."""
    for item in items:
        if "integration" in item.nodeid.split("/"):
            item.add_marker(pytest.mark.integration)


@pytest.fixture
def closed_config() -> PipelineConfig:
    """Three orders, queue capacity 100, two workers, backward links only."""
    return PipelineConfig(
        queue_capacity=100,
        batch_size=3,
        worker_count=2,
        step_timings=StepTimings.zero(),
        publish_interval=0.01,
        collection_timeout=2.0,
        shutdown_timeout=2.0,
    )


@pytest.fixture
def forward_config() -> PipelineConfig:
    """Same as closed_config with forward links enabled."""
    return PipelineConfig(
        queue_capacity=100,
        batch_size=3,
        worker_count=2,
        step_timings=StepTimings.zero(),
        forward_links=True,
        publish_interval=0.01,
        collection_timeout=2.0,
        shutdown_timeout=2.0,
    )
