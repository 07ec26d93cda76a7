from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from prefect import flow, get_run_logger
from prefect.runtime import flow_run  # type: ignore

from lamap.db import create_db_engine
from lamap.initiative_engine.config import PipelineSettings
from lamap.initiative_engine.crawler import LinkExtractor, WebsiteFetcher
from lamap.initiative_engine.enrich import EnrichmentOrchestrator
from lamap.initiative_engine.ingest_flow import run_ingest
from lamap.initiative_engine.models import BoundingBox
from lamap.initiative_engine.pacing import Pacer
from lamap.initiative_engine.sources import OverpassClient
from lamap.initiative_engine.storage import PostgisInitiativeStore


def _classify_run(summary: Dict[str, Any]) -> str:
    """
    Mutually exclusive, ordered classification:
      1) INGEST_BROKEN       every category errored, or nothing could be written
      2) INGEST_PARTIAL      at least one category errored
      3) INGEST_SUCCESS      something was inserted
      4) INGEST_ZERO_YIELD
    """
    categories: Dict[str, Dict[str, Any]] = summary.get("categories") or {}
    errored = [k for k, c in categories.items() if c.get("error")]

    inserted = int(summary.get("inserted", 0) or 0)
    failed = int(summary.get("failed", 0) or 0)

    if categories and len(errored) == len(categories):
        return "INGEST_BROKEN"
    if failed > 0 and inserted == 0:
        return "INGEST_BROKEN"
    if errored:
        return "INGEST_PARTIAL"
    if inserted > 0:
        return "INGEST_SUCCESS"
    return "INGEST_ZERO_YIELD"


def _run_id() -> Optional[str]:
    run_id = getattr(flow_run, "id", None)
    return str(run_id) if run_id else None


@flow(name="initiatives-ingest", persist_result=False)
def initiatives_ingest(
    categories: Optional[List[str]] = None,
    bbox: Optional[str] = None,
    skip_duplicates: bool = True,
    dedup_radius_m: Optional[float] = None,
) -> Dict[str, Any]:
    """
    Prefect flow wrapper for ingestion.

    Delegates to `run_ingest()` and emits per-category yield lines plus one
    JSON run_complete line for log-based checks.
    """
    load_dotenv()
    logger = get_run_logger()
    settings = PipelineSettings.from_env()
    logger.info("Initiatives ingest flow started.")

    store = PostgisInitiativeStore(create_db_engine(settings.database_url or None))
    pacer = Pacer(settings.pacing_intervals)

    with OverpassClient(settings, pacer) as geo_client:
        summary = run_ingest(
            categories or ["all"],
            BoundingBox.parse(bbox) if bbox else None,
            settings=settings,
            store=store,
            geo_client=geo_client,
            skip_duplicates=skip_duplicates,
            dedup_radius_m=dedup_radius_m,
        ).as_dict()

    for key, counts in summary["categories"].items():
        logger.info(
            f"[{key}] fetched={counts['fetched']} normalized={counts['normalized']} "
            f"inserted={counts['inserted']} skipped_duplicate={counts['skipped_duplicate']} failed={counts['failed']}"
        )
        if counts.get("error"):
            logger.warning(json.dumps({"event": "initiatives_source_failed", "category": key, "error": counts["error"]}, sort_keys=True))

    classification = _classify_run(summary)
    payload = {
        "event": "initiatives_ingest_run_complete",
        "run_id": _run_id(),
        "classification": classification,
        "inserted": summary["inserted"],
        "skipped_duplicate": summary["skipped_duplicate"],
        "failed": summary["failed"],
    }
    logger.info(json.dumps(payload, sort_keys=True))

    return {**summary, "run_id": payload["run_id"], "classification": classification}


@flow(name="initiatives-enrich", persist_result=False)
def initiatives_enrich(limit: Optional[int] = None, dry_run: bool = False, osm_lookup: bool = False) -> Dict[str, Any]:
    load_dotenv()
    logger = get_run_logger()
    settings = PipelineSettings.from_env().with_overrides(
        enrich_limit=limit,
        enrich_osm_lookup=True if osm_lookup else None,
    )
    logger.info("Initiatives enrich flow started (dry_run=%s).", dry_run)

    store = PostgisInitiativeStore(create_db_engine(settings.database_url or None))
    pacer = Pacer(settings.pacing_intervals)
    fetcher = WebsiteFetcher(settings, pacer)
    geo_client = OverpassClient(settings, pacer) if settings.enrich_osm_lookup else None

    try:
        extractor = LinkExtractor(fetcher, geo_client=geo_client)
        summary = EnrichmentOrchestrator(store, extractor).enrich_pending(
            limit=settings.enrich_limit,
            dry_run=dry_run,
        )
    finally:
        fetcher.close()
        if geo_client is not None:
            geo_client.close()

    out = {**summary.as_dict(), "run_id": _run_id()}
    logger.info(json.dumps({"event": "initiatives_enrich_run_complete", **out}, sort_keys=True))
    return out


if __name__ == "__main__":
    initiatives_ingest()
