"""
Types for staking reward computation.
"""

from dataclasses import dataclass
from typing import Any, Dict

from stakingstat.core.exceptions import InputFetchError


@dataclass(frozen=True)
class StakingInfo:
    """Chain-wide staking economics reported by getstakinginfo."""
    money_supply: float
    percent_year_reward: float
    treasury_donation_percent: float
    net_stake_weight: float  # satoshis

    @classmethod
    def from_rpc(cls, result: Dict[str, Any]) -> "StakingInfo":
        """Parse a getstakinginfo result."""
        donation = result.get("treasurydonationpercent", result.get("foundationdonationpercent"))
        try:
            return cls(
                money_supply=float(result["moneysupply"]),
                percent_year_reward=float(result["percentyearreward"]),
                treasury_donation_percent=float(donation),
                net_stake_weight=float(result["netstakeweight"]),
            )
        except (KeyError, TypeError, ValueError, OverflowError) as e:
            raise InputFetchError(
                f"Malformed getstakinginfo result: {e}",
                {"method": "getstakinginfo"}
            )


@dataclass(frozen=True)
class BlockHeader:
    """Subset of getblockheader the collector needs."""
    height: int
    time: int  # unix seconds
    hash: str

    @classmethod
    def from_rpc(cls, result: Dict[str, Any]) -> "BlockHeader":
        """Parse a getblockheader result."""
        try:
            return cls(
                height=int(result["height"]),
                time=int(result["time"]),
                hash=str(result["hash"]),
            )
        except (KeyError, TypeError, ValueError, OverflowError) as e:
            raise InputFetchError(
                f"Malformed getblockheader result: {e}",
                {"method": "getblockheader"}
            )


@dataclass(frozen=True)
class RewardSample:
    """Reward rates derived for one block; the persisted entity."""
    block_nr: int
    block_time: int
    nominal_rate: float
    actual_rate: float
