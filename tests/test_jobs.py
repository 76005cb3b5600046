from datetime import date

import pytest

from conftest import FakeLegacyClient, sale_payload
from retailsync.ingest.legacy import LegacySourceError
from retailsync.ingest.runs import SyncError
from retailsync.jobs import daily


@pytest.mark.asyncio
async def test_nightly_sync_runs_sales_then_exchanges(monkeypatch, seeded_engine):
    fake = FakeLegacyClient(sale_items=[sale_payload("1001", "009", 10, sale_date="2025-03-09")])
    monkeypatch.setattr(daily, "create_engine_from_env", lambda: seeded_engine)
    monkeypatch.setattr(daily, "LegacyClient", lambda: fake)
    monkeypatch.setattr(daily, "yesterday_in_tz", lambda: date(2025, 3, 9))

    results = await daily.run_daily_sync()

    assert results["sale items"].created == 1
    assert results["exchanges"].created == 0
    assert [call[0] for call in fake.calls] == ["sale_items", "exchanges"]
    assert all(call[1] == call[2] == date(2025, 3, 9) for call in fake.calls)


@pytest.mark.asyncio
async def test_nightly_sync_reraises_after_trying_both(monkeypatch, seeded_engine):
    fake = FakeLegacyClient(error=LegacySourceError("timed out", retriable=True))
    monkeypatch.setattr(daily, "create_engine_from_env", lambda: seeded_engine)
    monkeypatch.setattr(daily, "LegacyClient", lambda: fake)

    with pytest.raises(SyncError) as excinfo:
        await daily.run_daily_sync(as_of=date(2025, 3, 9))

    assert excinfo.value.retriable is True
    assert len(fake.calls) == 2


def test_beat_schedule_targets_nightly_task():
    from retailsync.jobs.celery_app import celery_app

    entry = celery_app.conf.beat_schedule["nightly-sync"]
    assert entry["task"] == "retailsync.jobs.daily.run_daily_sync"
    assert entry["task"] in celery_app.tasks
