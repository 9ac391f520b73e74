"""
Two-way reconciliation of the most recent samples held by two stores.

Only the tail window (the newest N blocks of each store) is compared.
Samples missing on one side are copied verbatim from the other; values are
never recomputed.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Tuple

import structlog

from stakingstat.core.exceptions import StoreError
from stakingstat.services.rewards.types import RewardSample
from stakingstat.services.sample_store import SampleStore


logger = structlog.get_logger(__name__)


@dataclass
class ReconciliationResult:
    """Outcome of one reconciliation pass."""
    window: int
    copied_a_to_b: List[int] = field(default_factory=list)
    copied_b_to_a: List[int] = field(default_factory=list)
    already_present: List[int] = field(default_factory=list)
    failed: List[Tuple[str, int, str]] = field(default_factory=list)  # (target store, block_nr, error)

    @property
    def total_copied(self) -> int:
        return len(self.copied_a_to_b) + len(self.copied_b_to_a)

    @property
    def is_clean(self) -> bool:
        return not self.failed


class ReconciliationEngine:
    """Heals divergence between two independently written sample stores."""

    def __init__(self):
        self.logger = logger.bind(service="reconciliation")

    async def reconcile(self, store_a: SampleStore, store_b: SampleStore, n: int) -> ReconciliationResult:
        """
        Copy samples missing from either store's last-n window into the other.

        Raises:
            StoreError: if a window cannot be read, or after all copies were
                attempted if any of them failed
        """
        result = ReconciliationResult(window=n)

        entries_a = await store_a.recent_entries(n)
        entries_b = await store_b.recent_entries(n)

        self.logger.info(
            "Reconciling stores",
            store_a=store_a.name,
            store_b=store_b.name,
            window=n,
            entries_a=len(entries_a),
            entries_b=len(entries_b)
        )

        await self._copy_missing(entries_a, entries_b, store_b, result.copied_a_to_b, result)
        await self._copy_missing(entries_b, entries_a, store_a, result.copied_b_to_a, result)

        self.logger.info(
            "Reconciliation finished",
            copied_a_to_b=len(result.copied_a_to_b),
            copied_b_to_a=len(result.copied_b_to_a),
            failed=len(result.failed)
        )

        if result.failed:
            raise StoreError(
                f"Reconciliation left {len(result.failed)} block(s) uncopied",
                {
                    "operation": "reconcile",
                    "failed": [
                        {"store": store, "block_nr": block_nr, "error": error}
                        for store, block_nr, error in result.failed
                    ],
                }
            )
        return result

    async def _copy_missing(
        self,
        source: Dict[int, RewardSample],
        target_entries: Dict[int, RewardSample],
        target: SampleStore,
        copied: List[int],
        result: ReconciliationResult,
    ) -> None:
        for block_nr, sample in source.items():
            if block_nr in target_entries:
                continue

            try:
                inserted = await target.upsert(sample)
            except StoreError as e:
                self.logger.error(
                    "Copying sample failed",
                    target=target.name,
                    block_nr=block_nr,
                    error=e.message
                )
                result.failed.append((target.name, block_nr, e.message))
                continue

            if inserted:
                self.logger.info("Copied sample", target=target.name, block_nr=block_nr)
                copied.append(block_nr)
            else:
                # Outside the target's window but already stored there
                result.already_present.append(block_nr)
