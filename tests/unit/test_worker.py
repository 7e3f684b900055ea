import asyncio
from unittest.mock import AsyncMock

import pytest

from app.jobs import worker


@pytest.fixture
def no_resources(monkeypatch):
    opened = AsyncMock()
    closed = AsyncMock()

    async def idle_heartbeat(job_name):
        await asyncio.Event().wait()

    monkeypatch.setattr(worker, "_open_resources", opened)
    monkeypatch.setattr(worker, "_close_resources", closed)
    monkeypatch.setattr(worker, "heartbeat_loop", idle_heartbeat)
    return opened, closed


@pytest.mark.asyncio
async def test_run_worker_runs_job(monkeypatch, no_resources):
    called = {"ok": False}

    async def dummy_job():
        called["ok"] = True

    monkeypatch.setitem(worker.JOB_REGISTRY, "dummy", dummy_job)

    await worker.run_worker("dummy")

    assert called["ok"] is True
    opened, closed = no_resources
    opened.assert_awaited_once()
    closed.assert_awaited_once()


@pytest.mark.asyncio
async def test_run_worker_closes_resources_on_failure(monkeypatch, no_resources):
    async def failing_job():
        raise RuntimeError("boom")

    monkeypatch.setitem(worker.JOB_REGISTRY, "failing", failing_job)

    with pytest.raises(RuntimeError):
        await worker.run_worker("failing")

    _, closed = no_resources
    closed.assert_awaited_once()


@pytest.mark.asyncio
async def test_run_worker_unknown_job():
    with pytest.raises(ValueError):
        await worker.run_worker("missing")


def test_registry_has_attribution_jobs():
    assert set(worker.JOB_REGISTRY) >= {"attribution_processing", "client_sync", "review_auto_confirm"}


class FakeResource:
    def __init__(self, name, events, fail_on_open=False):
        self.name = name
        self.events = events
        self.fail_on_open = fail_on_open

    async def initialize(self):
        if self.fail_on_open:
            raise RuntimeError(f"{self.name} unreachable")
        self.events.append(f"open:{self.name}")

    async def close(self):
        self.events.append(f"close:{self.name}")


@pytest.mark.asyncio
async def test_open_resources_rolls_back_on_partial_failure(monkeypatch):
    events: list[str] = []
    monkeypatch.setattr(worker, "attribution_pool", FakeResource("attribution", events))
    monkeypatch.setattr(
        worker, "production_pool", FakeResource("production", events, fail_on_open=True)
    )
    monkeypatch.setattr(worker, "fast_redis", FakeResource("redis", events))

    with pytest.raises(RuntimeError, match="production unreachable"):
        await worker._open_resources()

    assert events == ["open:attribution", "close:attribution"]


@pytest.mark.asyncio
async def test_close_resources_runs_in_reverse_order(monkeypatch):
    events: list[str] = []
    monkeypatch.setattr(worker, "attribution_pool", FakeResource("attribution", events))
    monkeypatch.setattr(worker, "production_pool", FakeResource("production", events))
    monkeypatch.setattr(worker, "fast_redis", FakeResource("redis", events))

    await worker._open_resources()
    await worker._close_resources()

    assert events == [
        "open:attribution",
        "open:production",
        "open:redis",
        "close:redis",
        "close:production",
        "close:attribution",
    ]
