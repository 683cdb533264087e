"""
Integration tests for the spanlinks library.

These tests run the full order pipeline (queue, producer, worker pool and
forward-link channel) against an in-memory OpenTelemetry SDK, with real
asyncio scheduling between the components.

Run integration tests:
    pytest tests/integration/ -v

Skip integration tests:
    pytest tests/ -v -m "not integration"
"""
