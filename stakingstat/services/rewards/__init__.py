"""
Staking reward computation.
"""

from .types import StakingInfo, BlockHeader, RewardSample
from .calculator import RewardCalculator, RunningAverage, SAT_PER_COIN

__all__ = [
    "StakingInfo",
    "BlockHeader",
    "RewardSample",
    "RewardCalculator",
    "RunningAverage",
    "SAT_PER_COIN",
]
