from __future__ import annotations

import math
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional

import pytest

from lamap.initiative_engine.config import PipelineSettings
from lamap.initiative_engine.crawler.website_fetcher import PageSnapshot
from lamap.initiative_engine.errors import ConstraintViolation, EnrichmentExtractionFailure, NotFound
from lamap.initiative_engine.models import SOCIAL_PLATFORMS, Category, GeoPoint, Initiative, RawSourceNode
from lamap.initiative_engine.storage import social_columns_from_fields


def haversine_m(a: GeoPoint, b: GeoPoint) -> float:
    r = 6371000.0
    p1, p2 = math.radians(a.latitude), math.radians(b.latitude)
    dp = p2 - p1
    dl = math.radians(b.longitude - a.longitude)
    h = math.sin(dp / 2) ** 2 + math.cos(p1) * math.cos(p2) * math.sin(dl / 2) ** 2
    return 2 * r * math.asin(math.sqrt(h))


class FakeStore:
    """In-memory InitiativeStore."""

    def __init__(self) -> None:
        self.rows: Dict[str, Initiative] = {}
        self.updates: List[tuple] = []
        self.insert_calls = 0
        # called with the initiative before each insert; may raise
        self.before_insert: Optional[Callable[[Initiative], None]] = None

    def insert(self, initiative: Initiative) -> str:
        self.insert_calls += 1
        if self.before_insert is not None:
            self.before_insert(initiative)
        if not (initiative.name or "").strip():
            raise ConstraintViolation("name must not be blank")
        new_id = str(uuid.uuid4())
        now = datetime.now(timezone.utc)
        self.rows[new_id] = replace(
            initiative,
            id=new_id,
            created_at=now,
            updated_at=now,
            social_links=dict(initiative.social_links),
        )
        return new_id

    def update(self, initiative_id: str, fields: Mapping[str, Any]) -> None:
        if initiative_id not in self.rows:
            raise NotFound(initiative_id)
        cols = social_columns_from_fields(fields)
        self.rows[initiative_id].social_links.update(cols)
        self.updates.append((initiative_id, dict(fields)))

    def find_near(self, point: GeoPoint, radius_m: float) -> int:
        return sum(1 for row in self.rows.values() if haversine_m(row.location, point) <= radius_m)

    def query_eligible_for_enrichment(self, limit: int) -> List[Initiative]:
        out = []
        for row in self.rows.values():
            if not (row.website or "").strip():
                continue
            if all(row.social_links.get(p) for p in SOCIAL_PLATFORMS):
                continue
            out.append(row)
        return out[:limit]


class FakeGeoClient:
    """OverpassClient stand-in: category key -> nodes, or an exception to raise."""

    def __init__(self, by_category: Optional[Dict[str, Any]] = None, named: Optional[List[RawSourceNode]] = None) -> None:
        self.by_category = by_category or {}
        self.named = named or []
        self.calls: List[str] = []
        self.named_calls: List[str] = []

    def fetch_nodes(self, category_key, bbox):
        self.calls.append(category_key)
        result = self.by_category.get(category_key, [])
        if isinstance(result, Exception):
            raise result
        return list(result)

    def fetch_named_near(self, name, point, radius_m=100.0):
        self.named_calls.append(name)
        if isinstance(self.named, Exception):
            raise self.named
        return list(self.named)

    def close(self):
        pass

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


class FakeFetcher:
    """WebsiteFetcher stand-in: url -> body, or an exception to raise."""

    def __init__(self, pages: Optional[Dict[str, Any]] = None, default: Any = None) -> None:
        self.pages = pages or {}
        self.default = default
        self.calls: List[str] = []

    def fetch(self, url: str) -> PageSnapshot:
        self.calls.append(url)
        body = self.pages.get(url, self.default)
        if body is None:
            raise EnrichmentExtractionFailure(f"{url} -> HTTP 404")
        if isinstance(body, Exception):
            raise body
        return PageSnapshot(url=url, status=200, content_type="text/html", body=body)

    def close(self):
        pass


def make_node(node_id: int, lat: Optional[float] = 48.87, lon: Optional[float] = 2.35, **tags: str) -> RawSourceNode:
    # python kwargs cannot hold ':' so addr_city -> addr:city
    return RawSourceNode(id=node_id, lat=lat, lon=lon, tags={k.replace("_", ":", 1) if k.startswith(("addr_", "contact_")) else k: v for k, v in tags.items()})


def make_initiative(name: str = "Ressourcerie du Canal", lon: float = 2.35, lat: float = 48.87, **kw) -> Initiative:
    return Initiative(name=name, category=kw.pop("category", Category.SECOND_HAND_SHOP), location=GeoPoint(lon, lat), **kw)


@pytest.fixture
def settings() -> PipelineSettings:
    return PipelineSettings(geo_pace_s=0.0, website_pace_s=0.0)


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()
