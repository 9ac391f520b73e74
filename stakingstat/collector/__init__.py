"""
Block notification collector.
"""

from .notification_loop import StakingStatsCollector, CollectorState, CollectorStats
from .subscriber import BlockHashSubscriber

__all__ = [
    "StakingStatsCollector",
    "CollectorState",
    "CollectorStats",
    "BlockHashSubscriber",
]
