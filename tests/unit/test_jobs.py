import json
from datetime import UTC, datetime
from unittest.mock import AsyncMock

import pytest

from app.features.attribution import jobs
from app.features.attribution.jobs import heartbeat
from app.features.attribution.jobs.attribution_processing_job import AttributionProcessingJob
from app.features.attribution.jobs.schedule import seconds_until_hour


def test_seconds_until_hour_later_today():
    now = datetime(2024, 3, 1, 1, 30, tzinfo=UTC)

    assert seconds_until_hour(3, now=now) == 90 * 60


def test_seconds_until_hour_rolls_to_tomorrow():
    now = datetime(2024, 3, 1, 3, 0, tzinfo=UTC)

    assert seconds_until_hour(3, now=now) == 24 * 3600


@pytest.mark.asyncio
async def test_heartbeat_round_trip(monkeypatch, fake_redis):
    monkeypatch.setattr(heartbeat, "fast_redis", fake_redis)

    assert await heartbeat.write_heartbeat("attribution_processing", "processing", "job-1") is True
    payload = await heartbeat.read_heartbeat("attribution_processing")

    assert payload["status"] == "processing"
    assert payload["current_job_id"] == "job-1"
    raw = fake_redis.store["attribution:worker-heartbeat:attribution_processing"]
    assert json.loads(raw)["job"] == "attribution_processing"


@pytest.mark.asyncio
async def test_processing_job_runs_single_client(monkeypatch, fake_redis):
    monkeypatch.setattr(heartbeat, "fast_redis", fake_redis)
    processor = AsyncMock()
    processor.process_client_attributions.return_value = {"client_id": "client-1", "events_processed": 4}
    job = AttributionProcessingJob(processor=processor)

    result = await job.run_once("client-1")

    assert result["events_processed"] == 4
    processor.process_client_attributions.assert_awaited_once_with("client-1")
    processor.process_all_clients.assert_not_awaited()
    assert job.is_running is False
    assert job.get_job_status()["last_run_time"] is not None


@pytest.mark.asyncio
async def test_processing_job_skips_when_already_running(monkeypatch, fake_redis):
    monkeypatch.setattr(heartbeat, "fast_redis", fake_redis)
    processor = AsyncMock()
    job = AttributionProcessingJob(processor=processor)
    job.is_running = True

    result = await job.run_once()

    assert result == {"skipped": True, "reason": "already_running"}
    processor.process_all_clients.assert_not_awaited()


@pytest.mark.asyncio
async def test_run_job_reports_failures(monkeypatch):
    monkeypatch.setattr(jobs, "run_client_sync", AsyncMock(side_effect=RuntimeError("db down")))

    result = await jobs.run_job("client_sync")

    assert result == {"job": "client_sync", "failed": True, "error": "db down"}


@pytest.mark.asyncio
async def test_run_job_dispatches_with_client(monkeypatch):
    run_mock = AsyncMock(return_value={"client_id": "client-1"})
    monkeypatch.setattr(jobs, "run_attribution_processing", run_mock)

    await jobs.run_job("attribution_processing", client_id="client-1")

    run_mock.assert_awaited_once_with("client-1")


@pytest.mark.asyncio
async def test_run_job_unknown_name():
    with pytest.raises(ValueError):
        await jobs.run_job("missing")
