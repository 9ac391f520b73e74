"""
Staking stats collector loop.

Waits for new-block-hash notifications, fetches the block header and the
current staking info from the node, computes the reward sample and writes
it to every configured store.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

import structlog

from stakingstat.core.exceptions import (
    InputFetchError,
    InvalidInputError,
    StoreError,
    TransportError,
)
from stakingstat.services.rewards import RewardCalculator, RewardSample
from stakingstat.services.sample_store import SampleStore


logger = structlog.get_logger(__name__)


class CollectorState(Enum):
    """State of the notification loop."""
    IDLE = "idle"
    PROCESSING = "processing"


@dataclass
class CollectorStats:
    """Statistics for the notification loop."""
    notifications_received: int = 0
    samples_computed: int = 0
    fetch_errors: int = 0
    invalid_inputs: int = 0
    transport_errors: int = 0
    processing_errors: int = 0
    writes_succeeded: Dict[str, int] = field(default_factory=dict)
    writes_failed: Dict[str, int] = field(default_factory=dict)
    start_time: Optional[datetime] = None
    last_block_nr: Optional[int] = None
    last_block_time: Optional[datetime] = None


class StakingStatsCollector:
    """
    Single-worker notification loop.

    One notification is fully processed before the next receive. A failed
    block is logged and skipped; gaps are healed by reconciliation.
    """

    def __init__(
        self,
        rpc,
        subscriber,
        stores: List[SampleStore],
        calculator: Optional[RewardCalculator] = None,
        retry_delay: float = 10,
        error_delay: float = 1,
    ):
        if not stores:
            raise ValueError("At least one sample store is required")
        self.rpc = rpc
        self.subscriber = subscriber
        self.stores = list(stores)
        self.calculator = calculator or RewardCalculator()
        self.retry_delay = retry_delay
        self.error_delay = error_delay
        self.state = CollectorState.IDLE
        self.stats = CollectorStats()
        self._running = False
        self.logger = logger.bind(service="staking_stats_collector")

    async def run_forever(self) -> None:
        """Receive and process notifications until stop() is called."""
        self._running = True
        self.stats.start_time = datetime.now(timezone.utc)
        self.logger.info(
            "Starting staking stats collector",
            stores=[store.name for store in self.stores]
        )

        while self._running:
            try:
                block_hash = await self.subscriber.receive()
            except TransportError as e:
                self.stats.transport_errors += 1
                self.logger.error(
                    "Notification receive failed",
                    error=e.message,
                    retry_in=self.retry_delay
                )
                await asyncio.sleep(self.retry_delay)
                continue

            self.stats.notifications_received += 1
            try:
                await self.process_block(block_hash)
            except Exception as e:
                self.stats.processing_errors += 1
                self.logger.error(
                    "Unexpected error processing block",
                    block_hash=block_hash.hex(),
                    error=str(e),
                    error_type=type(e).__name__
                )
                await asyncio.sleep(self.error_delay)

        self.logger.info("Staking stats collector stopped")

    def stop(self) -> None:
        self._running = False

    async def process_block(self, block_hash: bytes) -> Optional[RewardSample]:
        """
        Fetch, compute and persist the sample for one notified block.

        Returns:
            The computed sample, or None if fetching or computing failed
        """
        self.state = CollectorState.PROCESSING
        hash_hex = block_hash.hex()
        log = self.logger.bind(block_hash=hash_hex)
        log.info("Processing block")

        try:
            try:
                header = await self.rpc.get_block_header(hash_hex)
                info = await self.rpc.get_staking_info()
            except InputFetchError as e:
                self.stats.fetch_errors += 1
                log.error("Fetching block inputs failed", error=e.message, code=e.code)
                return None

            try:
                sample = self.calculator.compute(info, header)
            except InvalidInputError as e:
                self.stats.invalid_inputs += 1
                log.error(
                    "Reward computation rejected input",
                    block_nr=header.height,
                    error=e.message,
                    **e.details
                )
                return None

            self.stats.samples_computed += 1
            results = await self.persist(sample)

            self.stats.last_block_nr = sample.block_nr
            self.stats.last_block_time = datetime.now(timezone.utc)
            log.info(
                "Block processed",
                block_nr=sample.block_nr,
                nominal_rate=sample.nominal_rate,
                actual_rate=sample.actual_rate,
                stored={name: error is None for name, error in results.items()}
            )
            return sample
        finally:
            self.state = CollectorState.IDLE

    async def persist(self, sample: RewardSample) -> Dict[str, Optional[StoreError]]:
        """
        Write a sample to every store; a failing store does not stop the others.

        Returns:
            Mapping of store name to the StoreError raised, or None on success
        """
        results: Dict[str, Optional[StoreError]] = {}
        for store in self.stores:
            try:
                await store.upsert(sample)
            except StoreError as e:
                self.stats.writes_failed[store.name] = self.stats.writes_failed.get(store.name, 0) + 1
                self.logger.error(
                    "Sample write failed, reconcile to heal",
                    store=store.name,
                    block_nr=sample.block_nr,
                    error=e.message
                )
                results[store.name] = e
            else:
                self.stats.writes_succeeded[store.name] = self.stats.writes_succeeded.get(store.name, 0) + 1
                results[store.name] = None
        return results

    def get_status(self) -> Dict:
        return {
            "state": self.state.value,
            "notifications_received": self.stats.notifications_received,
            "samples_computed": self.stats.samples_computed,
            "fetch_errors": self.stats.fetch_errors,
            "invalid_inputs": self.stats.invalid_inputs,
            "transport_errors": self.stats.transport_errors,
            "processing_errors": self.stats.processing_errors,
            "writes_succeeded": dict(self.stats.writes_succeeded),
            "writes_failed": dict(self.stats.writes_failed),
            "start_time": self.stats.start_time.isoformat() if self.stats.start_time else None,
            "last_block_nr": self.stats.last_block_nr,
            "last_block_time": self.stats.last_block_time.isoformat() if self.stats.last_block_time else None,
            "average_actual_rate": self.calculator.average.value,
        }
