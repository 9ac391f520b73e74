"""
Staking rate statistics table.

One row per block height holding the nominal and the weight-adjusted
(actual) annualized staking reward observed when the block arrived.
"""

from sqlalchemy import Column, Integer, BigInteger, Numeric

from .base import Base


class StakingRateStat(Base):
    """Reward rates recorded for a single block."""
    __tablename__ = "stakingratestats"

    block_nr = Column(Integer, primary_key=True, autoincrement=False)
    block_time = Column(BigInteger, comment="Unix seconds of block creation")
    nominal_rate = Column(Numeric(asdecimal=False), comment="Annual reward % after treasury donation")
    actual_rate = Column(Numeric(asdecimal=False), comment="Annual reward % adjusted for net stake weight")

    def __repr__(self):
        return (
            f"<StakingRateStat(block_nr={self.block_nr}, "
            f"nominal_rate={self.nominal_rate}, actual_rate={self.actual_rate})>"
        )
