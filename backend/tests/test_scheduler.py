"""Tests for the embedded scheduler."""

import pytest

from abacus.tasks import scheduler as scheduler_module
from abacus.tasks.scheduler import setup_scheduler, shutdown_scheduler


@pytest.mark.asyncio
async def test_setup_registers_jobs():
    """Test one forward sync job per provider plus the backfill job."""
    scheduler = setup_scheduler()
    try:
        jobs = {job.id: job for job in scheduler.get_jobs()}

        assert set(jobs) == {
            "forward_sync_claude_code",
            "forward_sync_cursor",
            "forward_sync_github",
            "backfill",
        }
        assert jobs["forward_sync_cursor"].args == ("cursor",)
        assert jobs["forward_sync_claude_code"].trigger.interval.total_seconds() == 360 * 60
    finally:
        shutdown_scheduler()

    assert scheduler_module.scheduler is None
