"""
lamap command line.

    lamap ingest <category|all> [...] [--skip-duplicates] [--dedup-radius-m 50]
                 [--bbox W,S,E,N] [--nameless skip|synthesize] [--debug]
    lamap enrich [--dry-run] [--limit 100] [--osm-lookup] [--debug]
    lamap bootstrap-db

Exit codes:
    0  run completed (per-record failures are reported, not fatal)
    1  every category failed at the source, storage unreachable, or no DATABASE_URL
    2  usage error (unknown category, bad bbox, non-positive radius or limit)
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import List, Optional

from dotenv import load_dotenv

from lamap.db import create_db_engine
from lamap.initiative_engine.cancel import CancelToken
from lamap.initiative_engine.config import NAMELESS_POLICIES, PipelineSettings
from lamap.initiative_engine.crawler import LinkExtractor, WebsiteFetcher
from lamap.initiative_engine.enrich import EnrichmentOrchestrator
from lamap.initiative_engine.errors import StorageUnavailable, UnknownCategory
from lamap.initiative_engine.ingest_flow import resolve_categories, run_ingest
from lamap.initiative_engine.models import BoundingBox
from lamap.initiative_engine.pacing import Pacer
from lamap.initiative_engine.sources import OverpassClient
from lamap.initiative_engine.storage import PostgisInitiativeStore

logger = logging.getLogger("lamap")

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2


def _bbox_arg(raw: str) -> BoundingBox:
    try:
        return BoundingBox.parse(raw)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


def _positive_float(raw: str) -> float:
    try:
        value = float(raw)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"not a number: {raw!r}") from e
    if not value > 0 or value == float("inf"):
        raise argparse.ArgumentTypeError(f"must be a positive number: {raw!r}")
    return value


def _positive_int(raw: str) -> int:
    try:
        value = int(raw)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"not an integer: {raw!r}") from e
    if value <= 0:
        raise argparse.ArgumentTypeError(f"must be a positive integer: {raw!r}")
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="lamap", description="LaMap initiative ingestion & enrichment")
    sub = parser.add_subparsers(dest="command", required=True)

    ing = sub.add_parser("ingest", help="pull OSM points for one or more categories into storage")
    ing.add_argument("categories", nargs="+", metavar="category", help="category key, or 'all'")
    ing.add_argument("--skip-duplicates", action="store_true")
    ing.add_argument("--dedup-radius-m", type=_positive_float, default=None)
    ing.add_argument("--bbox", type=_bbox_arg, default=None, help="west,south,east,north")
    ing.add_argument("--nameless", choices=NAMELESS_POLICIES, default=None)
    ing.add_argument("--debug", action="store_true")

    enr = sub.add_parser("enrich", help="add social links to stored initiatives")
    enr.add_argument("--dry-run", action="store_true")
    enr.add_argument("--limit", type=_positive_int, default=None)
    enr.add_argument("--osm-lookup", action="store_true", help="also read contact:* tags from OSM by name")
    enr.add_argument("--debug", action="store_true")

    boot = sub.add_parser("bootstrap-db", help="create the initiatives schema (idempotent)")
    boot.add_argument("--debug", action="store_true")

    return parser


def _configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s.%(msecs)03d %(levelname)s %(message)s",
        datefmt="%H:%M:%S",
    )
    if debug:
        logging.getLogger().setLevel(logging.DEBUG)


def _open_store(settings: PipelineSettings) -> PostgisInitiativeStore:
    return PostgisInitiativeStore(create_db_engine(settings.database_url or None))


def cmd_ingest(args: argparse.Namespace, settings: PipelineSettings, cancel: CancelToken) -> int:
    settings = settings.with_overrides(nameless_policy=args.nameless, dedup_radius_m=args.dedup_radius_m)

    try:
        resolve_categories(args.categories, settings)
    except UnknownCategory as e:
        logger.error("%s", e)
        return EXIT_USAGE

    store = _open_store(settings)
    pacer = Pacer(settings.pacing_intervals, sleep=cancel.wait)

    with OverpassClient(settings, pacer) as geo_client:
        summary = run_ingest(
            args.categories,
            args.bbox,
            settings=settings,
            store=store,
            geo_client=geo_client,
            skip_duplicates=args.skip_duplicates,
            dedup_radius_m=args.dedup_radius_m,
            cancel=cancel,
        )

    logger.info(
        "ingest done: inserted=%d skipped_duplicate=%d failed=%d",
        summary.total("inserted"),
        summary.total("skipped_duplicate"),
        summary.total("failed"),
    )

    if summary.all_sources_failed:
        logger.error("every requested category failed at the source")
        return EXIT_FAILED
    if summary.storage_unavailable:
        logger.error("storage unavailable: no record could be written")
        return EXIT_FAILED
    return EXIT_OK


def cmd_enrich(args: argparse.Namespace, settings: PipelineSettings, cancel: CancelToken) -> int:
    settings = settings.with_overrides(
        enrich_limit=args.limit,
        enrich_osm_lookup=True if args.osm_lookup else None,
    )

    store = _open_store(settings)
    pacer = Pacer(settings.pacing_intervals, sleep=cancel.wait)
    fetcher = WebsiteFetcher(settings, pacer)
    geo_client = OverpassClient(settings, pacer) if settings.enrich_osm_lookup else None

    try:
        orchestrator = EnrichmentOrchestrator(store, LinkExtractor(fetcher, geo_client=geo_client), cancel=cancel)
        summary = orchestrator.enrich_pending(limit=settings.enrich_limit, dry_run=args.dry_run)
    except StorageUnavailable as e:
        logger.error("could not load enrichment candidates: %s", e)
        return EXIT_FAILED
    finally:
        fetcher.close()
        if geo_client is not None:
            geo_client.close()

    logger.info(
        "enrich done: processed=%d updated=%d failed=%d skipped=%d no_links=%d",
        summary.processed,
        summary.updated,
        summary.failed,
        summary.skipped,
        summary.no_links,
    )
    logger.info(json.dumps({"event": "enrich_complete", **summary.as_dict()}, sort_keys=True))
    return EXIT_OK


def cmd_bootstrap_db(args: argparse.Namespace, settings: PipelineSettings, cancel: CancelToken) -> int:
    try:
        _open_store(settings).ensure_schema()
    except StorageUnavailable as e:
        logger.error("schema bootstrap failed: %s", e)
        return EXIT_FAILED
    return EXIT_OK


_COMMANDS = {
    "ingest": cmd_ingest,
    "enrich": cmd_enrich,
    "bootstrap-db": cmd_bootstrap_db,
}


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)
    _configure_logging(getattr(args, "debug", False))

    try:
        settings = PipelineSettings.from_env()
    except ValueError as e:
        logger.error("invalid configuration: %s", e)
        return EXIT_USAGE

    cancel = CancelToken()
    cancel.install_signal_handlers()

    try:
        return _COMMANDS[args.command](args, settings, cancel)
    except RuntimeError as e:
        # missing DATABASE_URL and the like
        logger.error("%s", e)
        return EXIT_FAILED


if __name__ == "__main__":
    sys.exit(main())
