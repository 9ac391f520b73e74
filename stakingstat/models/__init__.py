"""
Database models for the staking stats collector.
"""

from .base import Base
from .staking_rate import StakingRateStat

__all__ = [
    "Base",
    "StakingRateStat",
]
