"""
Test the block notification loop with fake node collaborators.
"""

import pytest

from stakingstat.collector import StakingStatsCollector, CollectorState
from stakingstat.core.exceptions import InputFetchError, StoreError, TransportError
from stakingstat.services.rewards import BlockHeader, StakingInfo


BLOCK_HASH = bytes.fromhex("ab" * 32)


class FakeRpc:
    """Serves canned staking info and headers, or fails on demand."""

    def __init__(self, info, header, fail_header=False, fail_info=False):
        self.info = info
        self.header = header
        self.fail_header = fail_header
        self.fail_info = fail_info
        self.requested_hashes = []

    async def get_block_header(self, block_hash):
        self.requested_hashes.append(block_hash)
        if self.fail_header:
            raise InputFetchError("node unreachable", {"method": "getblockheader"})
        return self.header

    async def get_staking_info(self):
        if self.fail_info:
            raise InputFetchError("node unreachable", {"method": "getstakinginfo"})
        return self.info


class FakeSubscriber:
    """Replays a script of hashes and transport errors, then stops the loop."""

    def __init__(self, script):
        self.script = list(script)
        self.collector = None

    async def receive(self):
        if not self.script:
            self.collector.stop()
            raise TransportError("subscription closed")
        item = self.script.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class FailingStore:
    name = "secondary"

    def __init__(self):
        self.attempts = 0

    async def upsert(self, sample):
        self.attempts += 1
        raise StoreError("connection refused", {"store": self.name, "block_nr": sample.block_nr})


def _collector(rpc, stores, script=()):
    subscriber = FakeSubscriber(script)
    collector = StakingStatsCollector(rpc, subscriber, stores, retry_delay=0, error_delay=0)
    subscriber.collector = collector
    return collector


@pytest.mark.asyncio
async def test_block_is_stored_in_every_store(store_a, store_b, staking_info, block_header):
    rpc = FakeRpc(staking_info, block_header)
    collector = _collector(rpc, [store_a, store_b])

    sample = await collector.process_block(BLOCK_HASH)

    assert rpc.requested_hashes == ["ab" * 32]
    for store in (store_a, store_b):
        stored = (await store.recent_entries(10))[1000]
        assert stored.block_time == 1700000000
        assert stored.nominal_rate == pytest.approx(4.9)
        assert stored.actual_rate == pytest.approx(98.0)
    assert sample.block_nr == 1000
    assert collector.state == CollectorState.IDLE


@pytest.mark.asyncio
@pytest.mark.parametrize("fail_header, fail_info", [(True, False), (False, True)])
async def test_fetch_failure_skips_block(store_a, staking_info, block_header, fail_header, fail_info):
    rpc = FakeRpc(staking_info, block_header, fail_header=fail_header, fail_info=fail_info)
    collector = _collector(rpc, [store_a])

    assert await collector.process_block(BLOCK_HASH) is None

    assert await store_a.recent_entries(10) == {}
    assert collector.stats.fetch_errors == 1
    assert collector.state == CollectorState.IDLE


@pytest.mark.asyncio
async def test_zero_stake_weight_writes_nothing(store_a, block_header):
    info = StakingInfo(
        money_supply=1_000_000,
        percent_year_reward=5.0,
        treasury_donation_percent=2.0,
        net_stake_weight=0,
    )
    collector = _collector(FakeRpc(info, block_header), [store_a])

    assert await collector.process_block(BLOCK_HASH) is None

    assert await store_a.recent_entries(10) == {}
    assert collector.stats.invalid_inputs == 1


@pytest.mark.asyncio
async def test_failing_store_does_not_block_others(store_a, staking_info, block_header):
    """Both writes are attempted; the failure is reported per store."""
    broken = FailingStore()
    collector = _collector(FakeRpc(staking_info, block_header), [broken, store_a])

    sample = await collector.process_block(BLOCK_HASH)

    assert sample is not None
    assert broken.attempts == 1
    assert 1000 in await store_a.recent_entries(10)
    assert collector.stats.writes_failed == {"secondary": 1}
    assert collector.stats.writes_succeeded == {"primary": 1}


@pytest.mark.asyncio
async def test_persist_reports_per_store_results(store_a, make_sample):
    broken = FailingStore()
    collector = _collector(FakeRpc(None, None), [store_a, broken])

    results = await collector.persist(make_sample(5))

    assert results["primary"] is None
    assert isinstance(results["secondary"], StoreError)


@pytest.mark.asyncio
async def test_run_forever_survives_transport_errors(store_a, staking_info):
    """Transport errors back off and the loop keeps receiving."""
    headers = iter([
        BlockHeader(height=1001, time=1700000120, hash="01" * 32),
        BlockHeader(height=1002, time=1700000240, hash="02" * 32),
    ])

    class SequencedRpc(FakeRpc):
        async def get_block_header(self, block_hash):
            return next(headers)

    script = [
        bytes.fromhex("01" * 32),
        TransportError("connection dropped"),
        bytes.fromhex("02" * 32),
    ]
    collector = _collector(SequencedRpc(staking_info, None), [store_a], script)

    await collector.run_forever()

    assert list((await store_a.recent_entries(10)).keys()) == [1002, 1001]
    assert collector.stats.notifications_received == 2
    # one scripted drop plus the closing error raised by the fake subscriber
    assert collector.stats.transport_errors == 2
    assert collector.calculator.average.samples == 2


@pytest.mark.asyncio
async def test_replayed_block_is_not_duplicated(store_a, staking_info, block_header):
    collector = _collector(FakeRpc(staking_info, block_header), [store_a])

    await collector.process_block(BLOCK_HASH)
    await collector.process_block(BLOCK_HASH)

    assert len(await store_a.recent_entries(10)) == 1


def test_collector_requires_a_store(staking_info, block_header):
    with pytest.raises(ValueError):
        StakingStatsCollector(FakeRpc(staking_info, block_header), FakeSubscriber([]), [])


@pytest.mark.asyncio
async def test_unreachable_store_does_not_block_others(offline_store, store_a, staking_info, block_header):
    """A refused database connection is a per-store failure, not a crash."""
    collector = _collector(FakeRpc(staking_info, block_header), [offline_store, store_a])

    sample = await collector.process_block(BLOCK_HASH)

    assert sample.block_nr == 1000
    assert 1000 in await store_a.recent_entries(10)
    assert collector.stats.writes_failed == {"offline": 1}
    assert collector.stats.writes_succeeded == {"primary": 1}


@pytest.mark.asyncio
async def test_run_forever_survives_unexpected_errors(store_a, staking_info):
    """An unexpected failure on one block is logged and the loop moves on."""

    class FlakyRpc(FakeRpc):
        async def get_block_header(self, block_hash):
            self.requested_hashes.append(block_hash)
            if block_hash == "01" * 32:
                raise RuntimeError("unexpected reply")
            return BlockHeader(height=1002, time=1700000240, hash=block_hash)

    rpc = FlakyRpc(staking_info, None)
    script = [bytes.fromhex("01" * 32), bytes.fromhex("02" * 32)]
    collector = _collector(rpc, [store_a], script)

    await collector.run_forever()

    assert rpc.requested_hashes == ["01" * 32, "02" * 32]
    assert list((await store_a.recent_entries(10)).keys()) == [1002]
    assert collector.stats.processing_errors == 1
    assert collector.state == CollectorState.IDLE
    assert collector.get_status()["processing_errors"] == 1


@pytest.mark.asyncio
async def test_get_status_reports_times(store_a, staking_info, block_header):
    collector = _collector(FakeRpc(staking_info, block_header), [store_a], [BLOCK_HASH])

    status = collector.get_status()
    assert status["start_time"] is None
    assert status["last_block_time"] is None

    await collector.run_forever()

    status = collector.get_status()
    assert status["start_time"] is not None
    assert status["last_block_time"] is not None
    assert status["last_block_nr"] == 1000
