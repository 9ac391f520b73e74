"""
Main entry point for the collector service.
Wires the node RPC client, the block subscription and the configured
stores into a StakingStatsCollector and runs it until a signal arrives.
"""

import asyncio
import signal
from typing import List, Optional

import structlog

from stakingstat.core.config import Settings
from stakingstat.services.particl_client import ParticlRpcClient
from stakingstat.services.sample_store import SampleStore
from .notification_loop import StakingStatsCollector
from .subscriber import BlockHashSubscriber


logger = structlog.get_logger(__name__)

STORE_NAMES = ("primary", "secondary")


def build_stores(config: Settings) -> List[SampleStore]:
    """Create one store per configured database URL, primary first."""
    return [
        SampleStore.from_url(name, url, config)
        for name, url in zip(STORE_NAMES, config.database_urls)
    ]


class CollectorMain:
    """Collector service coordinator."""

    def __init__(self, config: Settings):
        self.config = config
        self.rpc: Optional[ParticlRpcClient] = None
        self.subscriber: Optional[BlockHashSubscriber] = None
        self.stores: List[SampleStore] = []
        self.collector: Optional[StakingStatsCollector] = None
        self.tasks: List[asyncio.Task] = []

    async def initialize(self):
        """Initialize RPC client, subscription and stores."""
        try:
            logger.info("Initializing staking stats collector")

            self.rpc = ParticlRpcClient.from_settings(self.config)
            self.stores = build_stores(self.config)

            self.subscriber = BlockHashSubscriber(self.config.zmq_endpoint)
            self.subscriber.connect()

            self.collector = StakingStatsCollector(
                rpc=self.rpc,
                subscriber=self.subscriber,
                stores=self.stores,
                retry_delay=self.config.notification_retry_delay,
            )

            logger.info("Staking stats collector initialized", stores=len(self.stores))

        except Exception as e:
            logger.error("Failed to initialize collector", error=str(e))
            raise

    async def start(self):
        """Run the notification loop alongside a periodic health report."""
        loop_task = asyncio.create_task(self.collector.run_forever())
        health_task = asyncio.create_task(self._periodic_health_check())
        self.tasks = [loop_task, health_task]

        try:
            await loop_task
        finally:
            health_task.cancel()
            await asyncio.gather(health_task, return_exceptions=True)

    def request_stop(self):
        if self.collector:
            self.collector.stop()
        for task in self.tasks:
            if not task.done():
                task.cancel()

    async def close(self):
        """Release RPC session, subscription and database engines."""
        if self.subscriber:
            self.subscriber.close()
        if self.rpc:
            await self.rpc.close()
        for store in self.stores:
            await store.close()
        logger.info("Staking stats collector shut down")

    async def _periodic_health_check(self):
        while True:
            try:
                await asyncio.sleep(self.config.health_report_interval)
                logger.info("📊 Collector health check", status=self.collector.get_status())
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("❌ Health check error", error=str(e))


async def run_collector(config: Settings) -> None:
    """Run the collector until SIGINT/SIGTERM."""
    service = CollectorMain(config)

    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, service.request_stop)
        except NotImplementedError:
            # add_signal_handler is unavailable on Windows event loops
            signal.signal(signum, lambda *_: service.request_stop())

    try:
        await service.initialize()
        await service.start()
    except asyncio.CancelledError:
        logger.info("Collector cancelled, shutting down")
    finally:
        await service.close()
