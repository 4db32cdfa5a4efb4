from unittest.mock import AsyncMock

import pytest

from app.jobs import worker


@pytest.mark.asyncio
async def test_run_worker_runs_job(monkeypatch):
    called = {"ok": False}

    async def dummy_job():
        called["ok"] = True

    monkeypatch.setitem(worker.JOB_REGISTRY, "dummy", dummy_job)

    await worker.run_worker("dummy")

    assert called["ok"] is True


@pytest.mark.asyncio
async def test_run_worker_unknown_job():
    with pytest.raises(ValueError):
        await worker.run_worker("missing")


def test_registry_exposes_notification_jobs():
    assert set(worker.JOB_REGISTRY) == {
        "notification_check",
        "notification_digest",
        "notification_cleanup",
    }


@pytest.mark.asyncio
async def test_managed_pool_is_closed_when_database_is_down(monkeypatch):
    job = AsyncMock()
    monkeypatch.setitem(worker.JOB_REGISTRY, "dummy", job)
    initialize = AsyncMock()
    close = AsyncMock()
    monkeypatch.setattr("app.jobs.worker.db_pool.initialize", initialize)
    monkeypatch.setattr("app.jobs.worker.db_pool.close", close)
    monkeypatch.setattr("app.jobs.worker.check_db", AsyncMock(return_value="connection refused"))

    with pytest.raises(RuntimeError, match="Database unavailable"):
        await worker.run_worker("dummy", manage_pool=True)

    initialize.assert_awaited_once()
    close.assert_awaited_once()
    job.assert_not_awaited()


@pytest.mark.asyncio
async def test_managed_pool_runs_job_after_check(monkeypatch):
    job = AsyncMock()
    monkeypatch.setitem(worker.JOB_REGISTRY, "dummy", job)
    monkeypatch.setattr("app.jobs.worker.db_pool.initialize", AsyncMock())
    monkeypatch.setattr("app.jobs.worker.db_pool.close", AsyncMock())
    monkeypatch.setattr("app.jobs.worker.check_db", AsyncMock(return_value=True))

    await worker.run_worker("dummy", manage_pool=True)

    job.assert_awaited_once()
