"""
Test the collector service coordinator lifecycle.
"""

import pytest

from stakingstat.collector.main import CollectorMain
from stakingstat.core.config import Settings


class CrashingCollector:
    async def run_forever(self):
        raise RuntimeError("loop crashed")

    def get_status(self):
        return {}

    def stop(self):
        pass


class FinishingCollector(CrashingCollector):
    async def run_forever(self):
        return None


@pytest.mark.asyncio
async def test_health_task_cancelled_when_loop_raises():
    service = CollectorMain(Settings(health_report_interval=3600))
    service.collector = CrashingCollector()

    with pytest.raises(RuntimeError):
        await service.start()

    loop_task, health_task = service.tasks
    assert loop_task.done()
    assert health_task.done()


@pytest.mark.asyncio
async def test_health_task_cancelled_when_loop_returns():
    service = CollectorMain(Settings(health_report_interval=3600))
    service.collector = FinishingCollector()

    await service.start()

    assert all(task.done() for task in service.tasks)
