import pytest

from soundmatch.infra.scheduler import JobScheduler


@pytest.mark.asyncio
async def test_interval_jobs_register_and_replace():
    scheduler = JobScheduler()

    async def tick():
        return None

    scheduler.start()
    try:
        scheduler.schedule_interval("monitor", tick, seconds=60)
        scheduler.schedule_interval("monitor", tick, seconds=30)
        assert scheduler.running is True
        assert scheduler.job_ids() == ["monitor"]
    finally:
        scheduler.shutdown()
    assert scheduler.running is False


def test_shutdown_before_start_is_a_no_op():
    scheduler = JobScheduler()
    scheduler.shutdown()
    assert scheduler.running is False
