"""
Staking reward calculator.

Derives the nominal and the actual (stake-weight adjusted) annual reward
rate from a getstakinginfo snapshot and keeps an exponential moving average
of the actual rate for diagnostics.
"""

import math
from dataclasses import dataclass
from typing import Optional

import structlog

from stakingstat.core.exceptions import InvalidInputError
from .types import StakingInfo, BlockHeader, RewardSample


logger = structlog.get_logger(__name__)

SAT_PER_COIN = 100_000_000

# ~100 sample time constant
AVERAGE_DECAY = 0.99
AVERAGE_WEIGHT = 0.01


@dataclass
class RunningAverage:
    """Exponential moving average of the actual reward rate."""
    value: Optional[float] = None
    samples: int = 0

    def update(self, rate: float) -> float:
        if self.value is None:
            self.value = rate
        else:
            self.value = AVERAGE_DECAY * self.value + AVERAGE_WEIGHT * rate
        self.samples += 1
        return self.value


def nominal_rate(info: StakingInfo) -> float:
    """Protocol reward rate after the treasury donation."""
    return info.percent_year_reward * (100 - info.treasury_donation_percent) / 100


def actual_rate(info: StakingInfo) -> float:
    """
    Reward rate a staker realizes given the money supply and the network
    stake weight.

    Raises:
        InvalidInputError: if the net stake weight is zero or the result is not finite
    """
    if info.net_stake_weight == 0:
        raise InvalidInputError(
            "Net stake weight is zero",
            {"net_stake_weight": info.net_stake_weight}
        )

    # Operation order is fixed; reordering changes rounding.
    rate = info.money_supply * info.percent_year_reward * (100 - info.treasury_donation_percent)
    rate /= 100 * 100
    rate /= info.net_stake_weight / SAT_PER_COIN
    rate *= 100

    if not math.isfinite(rate):
        raise InvalidInputError(
            "Actual reward rate is not finite",
            {
                "money_supply": info.money_supply,
                "percent_year_reward": info.percent_year_reward,
                "net_stake_weight": info.net_stake_weight,
            }
        )
    return rate


class RewardCalculator:
    """
    Turns staking info and a block header into a RewardSample.

    Each instance owns its RunningAverage; it is only touched after a
    sample was computed successfully.
    """

    def __init__(self, average: Optional[RunningAverage] = None):
        self.average = average if average is not None else RunningAverage()
        self.logger = logger.bind(service="reward_calculator")

    def compute(self, info: StakingInfo, header: BlockHeader) -> RewardSample:
        sample = RewardSample(
            block_nr=header.height,
            block_time=header.time,
            nominal_rate=nominal_rate(info),
            actual_rate=actual_rate(info),
        )

        avg = self.average.update(sample.actual_rate)
        self.logger.info(
            "Actual avg reward",
            block_nr=sample.block_nr,
            actual_rate=round(sample.actual_rate, 8),
            average=round(avg, 8)
        )
        return sample
