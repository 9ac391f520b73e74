"""
Sample store: persistence of RewardSamples in one stakingratestats table.

Writes are first-write-wins (INSERT ... ON CONFLICT DO NOTHING), so a
sample can be replayed or copied between stores any number of times.
"""

from collections import OrderedDict
from typing import Dict, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncEngine

from stakingstat.core.config import Settings
from stakingstat.core.database import create_engine, create_session_maker, session_scope, health_check
from stakingstat.core.exceptions import StoreError
from stakingstat.models import StakingRateStat
from stakingstat.services.rewards.types import RewardSample


logger = structlog.get_logger(__name__)

_INSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class SampleStore:
    """
    One database holding the stakingratestats table.

    Every operation opens its own session, so a store can be shared by
    independent callers.
    """

    def __init__(self, name: str, engine: AsyncEngine):
        self.name = name
        self.engine = engine
        self._session_maker = create_session_maker(engine)
        self.logger = logger.bind(service="sample_store", store=name)

        dialect = engine.dialect.name
        if dialect not in _INSERT_DIALECTS:
            raise StoreError(
                f"Unsupported database dialect: {dialect}",
                {"store": name, "dialect": dialect}
            )
        self._insert = _INSERT_DIALECTS[dialect]

    @classmethod
    def from_url(cls, name: str, url: str, config: Optional[Settings] = None) -> "SampleStore":
        return cls(name, create_engine(url, config))

    def __repr__(self):
        return f"<SampleStore(name={self.name})>"

    async def create_schema(self) -> None:
        """Create the stakingratestats table; fails if it already exists."""
        table = StakingRateStat.__table__
        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(table.create)
        except Exception as e:
            self.logger.error("Failed to create table", table=table.name, error=str(e))
            raise StoreError(
                f"Failed to create table '{table.name}' in store {self.name}: {e}",
                {"store": self.name, "operation": "create_schema", "table": table.name}
            )
        self.logger.info("Table created", table=table.name)

    async def drop_schema(self) -> None:
        """Drop the stakingratestats table; fails if it does not exist."""
        table = StakingRateStat.__table__
        self.logger.warning("Dropping table", table=table.name)
        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(table.drop)
        except Exception as e:
            self.logger.error("Failed to drop table", table=table.name, error=str(e))
            raise StoreError(
                f"Failed to drop table '{table.name}' in store {self.name}: {e}",
                {"store": self.name, "operation": "drop_schema", "table": table.name}
            )
        self.logger.info("Table dropped", table=table.name)

    async def upsert(self, sample: RewardSample) -> bool:
        """
        Insert a sample unless a row for its block already exists.

        Returns:
            True if a row was written, False if the block was already stored

        Raises:
            StoreError: on any database or connection failure
        """
        stmt = self._insert(StakingRateStat.__table__).values(
            block_nr=sample.block_nr,
            block_time=sample.block_time,
            nominal_rate=sample.nominal_rate,
            actual_rate=sample.actual_rate,
        ).on_conflict_do_nothing(index_elements=["block_nr"])

        try:
            async with session_scope(self._session_maker) as session:
                result = await session.execute(stmt)
        except Exception as e:
            self.logger.error("Inserting sample failed", block_nr=sample.block_nr, error=str(e))
            raise StoreError(
                f"Failed to store block {sample.block_nr} in store {self.name}: {e}",
                {"store": self.name, "operation": "upsert", "block_nr": sample.block_nr}
            )

        inserted = result.rowcount > 0
        if inserted:
            self.logger.debug("Sample stored", block_nr=sample.block_nr)
        else:
            self.logger.debug("Sample already present", block_nr=sample.block_nr)
        return inserted

    async def recent_entries(self, limit: int) -> Dict[int, RewardSample]:
        """
        Most recent samples, newest first, keyed by block number.

        Raises:
            StoreError: on any database failure or malformed row
        """
        if limit <= 0:
            return OrderedDict()

        stmt = (
            select(StakingRateStat)
            .order_by(StakingRateStat.block_nr.desc())
            .limit(limit)
        )

        try:
            async with session_scope(self._session_maker) as session:
                rows = (await session.execute(stmt)).scalars().all()
            entries = OrderedDict()
            for row in rows:
                entries[row.block_nr] = _row_to_sample(row)
        except (TypeError, ValueError) as e:
            self.logger.error("Malformed sample row", limit=limit, error=str(e))
            raise StoreError(
                f"Malformed row in store {self.name}: {e}",
                {"store": self.name, "operation": "recent_entries", "limit": limit}
            )
        except Exception as e:
            self.logger.error("Reading recent samples failed", limit=limit, error=str(e))
            raise StoreError(
                f"Failed to read recent samples from store {self.name}: {e}",
                {"store": self.name, "operation": "recent_entries", "limit": limit}
            )

        return entries

    async def health_check(self) -> bool:
        return await health_check(self.engine)

    async def close(self) -> None:
        await self.engine.dispose()


def _row_to_sample(row: StakingRateStat) -> RewardSample:
    return RewardSample(
        block_nr=int(row.block_nr),
        block_time=int(row.block_time),
        nominal_rate=float(row.nominal_rate),
        actual_rate=float(row.actual_rate),
    )
