"""
Core ingestion orchestration for the Initiative Engine.

Prefect-free on purpose; the Prefect wrapper lives in flows/initiatives_flow.py
and the CLI in lamap/cli.py.

Per category:
    Overpass fetch -> normalize (Skip counted by reason) -> BatchWriter
    (proximity dedupe per record when enabled) -> counters

Design goals:
- A category whose source call fails is recorded and the run moves on.
- A record whose insert fails is recorded and the batch moves on.
- Per-category yield counters + one JSON line per category and per run.
"""

from __future__ import annotations

import json
import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from .cancel import CancelToken
from .config import PipelineSettings
from .dedupe import ProximityDeduplicator
from .errors import SourceError, describe
from .models import BoundingBox, Initiative, Skip
from .normalize import NodeNormalizer
from .writer import BatchResult, BatchWriter

logger = logging.getLogger(__name__)

ALL_CATEGORIES = "all"


@dataclass
class CategoryRun:
    key: str
    fetched: int = 0
    normalized: int = 0
    skipped: Dict[str, int] = field(default_factory=dict)
    inserted: int = 0
    skipped_duplicate: int = 0
    failed: int = 0
    storage_unavailable: int = 0
    error: Optional[str] = None

    def as_dict(self) -> Dict[str, object]:
        out: Dict[str, object] = {
            "fetched": self.fetched,
            "normalized": self.normalized,
            "skipped": dict(self.skipped),
            "inserted": self.inserted,
            "skipped_duplicate": self.skipped_duplicate,
            "failed": self.failed,
        }
        if self.error:
            out["error"] = self.error
        return out


@dataclass
class IngestSummary:
    categories: Dict[str, CategoryRun] = field(default_factory=dict)
    cancelled: bool = False

    def total(self, name: str) -> int:
        return sum(int(getattr(run, name)) for run in self.categories.values())

    @property
    def all_sources_failed(self) -> bool:
        runs = list(self.categories.values())
        return bool(runs) and all(r.error for r in runs)

    @property
    def storage_unavailable(self) -> bool:
        """Every attempted write failed because storage could not be reached."""
        failed = self.total("failed")
        return failed > 0 and self.total("inserted") == 0 and failed == self.total("storage_unavailable")

    def as_dict(self) -> Dict[str, object]:
        return {
            "categories": {k: r.as_dict() for k, r in self.categories.items()},
            "inserted": self.total("inserted"),
            "skipped_duplicate": self.total("skipped_duplicate"),
            "failed": self.total("failed"),
            "cancelled": self.cancelled,
        }


def resolve_categories(requested: Sequence[str], settings: PipelineSettings) -> List[str]:
    """'all' -> every configured key; otherwise validated as given (UnknownCategory on a bad key)."""
    keys: List[str] = []
    for raw in requested:
        key = (raw or "").strip()
        if key == ALL_CATEGORIES:
            keys.extend(k for k in settings.categories if k not in keys)
            continue
        settings.category_query(key)
        if key not in keys:
            keys.append(key)
    return keys


def _log_event(payload: Dict[str, object]) -> None:
    logger.info(json.dumps(payload, sort_keys=True, default=str))


def ingest_category(
    key: str,
    bbox: BoundingBox,
    *,
    settings: PipelineSettings,
    geo_client,
    normalizer: NodeNormalizer,
    writer: BatchWriter,
) -> CategoryRun:
    run = CategoryRun(key=key)
    query = settings.category_query(key)

    try:
        nodes = geo_client.fetch_nodes(key, bbox)
    except SourceError as e:
        run.error = describe(e)
        logger.error("source failed for %s: %s", key, run.error)
        return run

    run.fetched = len(nodes)

    initiatives: List[Initiative] = []
    skips: Counter = Counter()
    for node in nodes:
        result = normalizer.normalize(node, query.category)
        if isinstance(result, Skip):
            skips[result.reason] += 1
            continue
        initiatives.append(result)

    run.normalized = len(initiatives)
    run.skipped = dict(skips)

    batch: BatchResult = writer.write_batch(initiatives)
    run.inserted = batch.inserted_count
    run.skipped_duplicate = batch.skipped_duplicates
    run.failed = len(batch.failures)
    run.storage_unavailable = sum(1 for f in batch.failures if f.reason.startswith("StorageUnavailable"))
    return run


def run_ingest(
    categories: Sequence[str],
    bbox: Optional[BoundingBox] = None,
    *,
    settings: PipelineSettings,
    store,
    geo_client,
    skip_duplicates: bool = False,
    dedup_radius_m: Optional[float] = None,
    cancel: Optional[CancelToken] = None,
) -> IngestSummary:
    """
    Ingest each requested category into `store`.

    Raises UnknownCategory before any network call if a key is not configured.
    Source and per-record storage errors are captured in the summary, never raised.
    """
    keys = resolve_categories(categories, settings)
    bbox = bbox or settings.bbox()

    deduplicator = None
    if skip_duplicates:
        deduplicator = ProximityDeduplicator(store, dedup_radius_m or settings.dedup_radius_m)

    normalizer = NodeNormalizer(settings.nameless_policy)
    writer = BatchWriter(store, deduplicator=deduplicator, cancel=cancel)

    summary = IngestSummary()
    for key in keys:
        if cancel is not None and cancel.cancelled:
            summary.cancelled = True
            break

        run = ingest_category(
            key,
            bbox,
            settings=settings,
            geo_client=geo_client,
            normalizer=normalizer,
            writer=writer,
        )
        summary.categories[key] = run

        logger.info(
            "%s: fetched=%d normalized=%d inserted=%d skipped_duplicate=%d failed=%d",
            key,
            run.fetched,
            run.normalized,
            run.inserted,
            run.skipped_duplicate,
            run.failed,
        )
        _log_event({"event": "category_complete", "category": key, **run.as_dict()})

    if cancel is not None and cancel.cancelled:
        summary.cancelled = True

    _log_event({"event": "run_complete", "bbox": bbox.to_overpass(), **summary.as_dict()})
    return summary
