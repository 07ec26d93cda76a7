"""
Enrichment: stored initiatives with a website but no social links get
their links looked up and written back (social link columns only).

Records are handled one at a time; pacing between website fetches is the
fetcher's job (Pacer, "website" class), cancellation is checked between records.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from typing import Optional

from .cancel import CancelToken
from .crawler.extractor import LinkExtractor
from .errors import StorageError, describe
from .models import Initiative

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 100


def is_eligible_for_enrichment(initiative: Initiative) -> bool:
    """Website present and not a single social link stored yet."""
    if not (initiative.website or "").strip():
        return False
    return not initiative.has_any_social_link()


@dataclass
class EnrichmentSummary:
    processed: int = 0
    updated: int = 0
    failed: int = 0
    skipped: int = 0
    no_links: int = 0
    would_update: int = 0
    dry_run: bool = False
    cancelled: bool = False

    def as_dict(self) -> dict:
        return asdict(self)


class EnrichmentOrchestrator:
    def __init__(self, store, extractor: LinkExtractor, *, cancel: Optional[CancelToken] = None) -> None:
        self.store = store
        self.extractor = extractor
        self.cancel = cancel

    def enrich_pending(self, limit: int = DEFAULT_LIMIT, dry_run: bool = False) -> EnrichmentSummary:
        summary = EnrichmentSummary(dry_run=dry_run)

        # StorageUnavailable here means there is nothing we can do this run: propagate
        candidates = self.store.query_eligible_for_enrichment(limit)
        logger.info("enrichment candidates: %d (limit=%d, dry_run=%s)", len(candidates), limit, dry_run)

        for initiative in candidates:
            if self.cancel is not None and self.cancel.cancelled:
                summary.cancelled = True
                break

            if not is_eligible_for_enrichment(initiative):
                summary.skipped += 1
                continue

            summary.processed += 1
            try:
                links = self.extractor.extract_links(initiative)
            except Exception:
                logger.exception("link extraction crashed for %s (%s)", initiative.name, initiative.id)
                summary.failed += 1
                continue

            if not links:
                summary.no_links += 1
                logger.info("no social links for %s (%s)", initiative.name, initiative.website)
                continue

            if dry_run:
                summary.would_update += 1
                logger.info(
                    "[dry-run] would update %s (%s): %s",
                    initiative.name,
                    initiative.id,
                    json.dumps(links, sort_keys=True),
                )
                continue

            try:
                self.store.update(initiative.id, {"social_links": links})
            except StorageError as e:
                summary.failed += 1
                logger.warning("update failed for %s (%s): %s", initiative.name, initiative.id, describe(e))
                continue

            summary.updated += 1
            logger.info("updated %s with %s", initiative.name, ", ".join(sorted(links)))

        return summary
