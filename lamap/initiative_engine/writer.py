from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from .cancel import CancelToken
from .dedupe import ProximityDeduplicator
from .errors import StorageError, describe
from .models import Initiative

logger = logging.getLogger(__name__)


@dataclass
class BatchFailure:
    initiative: Initiative
    reason: str


@dataclass
class BatchResult:
    inserted_count: int = 0
    inserted_ids: List[str] = field(default_factory=list)
    skipped_duplicates: int = 0
    failures: List[BatchFailure] = field(default_factory=list)
    cancelled: bool = False

    def as_counts(self) -> dict:
        return {
            "inserted": self.inserted_count,
            "skipped_duplicate": self.skipped_duplicates,
            "failed": len(self.failures),
        }


class BatchWriter:
    """
    Inserts one record at a time, in input order, each in its own transaction.

    A failed record is recorded and the loop moves on; nothing already
    written is rolled back, on failure or on cancellation.
    """

    def __init__(
        self,
        store,
        *,
        deduplicator: Optional[ProximityDeduplicator] = None,
        cancel: Optional[CancelToken] = None,
    ) -> None:
        self.store = store
        self.deduplicator = deduplicator
        self.cancel = cancel

    def write_batch(self, initiatives: Iterable[Initiative]) -> BatchResult:
        result = BatchResult()

        for initiative in initiatives:
            if self.cancel is not None and self.cancel.cancelled:
                result.cancelled = True
                logger.warning("batch stopped by cancellation after %d inserts", result.inserted_count)
                break

            try:
                if self.deduplicator is not None and self.deduplicator.is_duplicate(initiative.location):
                    result.skipped_duplicates += 1
                    continue

                new_id = self.store.insert(initiative)
            except StorageError as e:
                reason = describe(e)
                logger.warning("insert failed for %r: %s", initiative.name, reason)
                result.failures.append(BatchFailure(initiative=initiative, reason=reason))
                continue

            result.inserted_count += 1
            result.inserted_ids.append(new_id)

        return result
