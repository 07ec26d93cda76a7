"""
Configuration for the Initiative Engine.

This module controls:
- Which OSM categories we know how to query (category key -> tag predicate -> Category).
- Network knobs (endpoints, timeouts, user agent).
- Pacing intervals and the dedupe radius.

Everything is built explicitly through PipelineSettings.from_env() and passed in;
no component reads the environment on its own.

Optional overrides can live in a YAML file (LAMAP_CONFIG_YAML, default config.yaml):

    overpass_timeout_s: 90
    categories:
      second_hand:
        category: SecondHandShop
        predicates: ['node["shop"="second_hand"]']
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, List, Mapping, Optional, Tuple

import yaml

from .errors import UnknownCategory
from .models import BoundingBox, Category

logger = logging.getLogger(__name__)

NAMELESS_SKIP = "skip"
NAMELESS_SYNTHESIZE = "synthesize"
NAMELESS_POLICIES = (NAMELESS_SKIP, NAMELESS_SYNTHESIZE)

GEO_SOURCE = "geo_source"
WEBSITE = "website"

DEFAULT_OVERPASS_URL = "https://overpass-api.de/api/interpreter"
DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; LaMap/1.0; +https://lamap.fr)"

# Metropolitan France, (west, south, east, north)
DEFAULT_BBOX = "-5.5,41.0,10.0,51.5"


@dataclass(frozen=True)
class CategoryQuery:
    key: str
    category: Category
    # Overpass selectors without the bbox, OR-ed together
    predicates: Tuple[str, ...]


DEFAULT_CATEGORY_QUERIES: Dict[str, CategoryQuery] = {
    q.key: q
    for q in (
        CategoryQuery("second_hand", Category.SECOND_HAND_SHOP, ('node["shop"="second_hand"]',)),
        CategoryQuery("recycling", Category.RECYCLING_POINT, ('node["amenity"="recycling"]',)),
        CategoryQuery("organic_shop", Category.ORGANIC_SHOP, ('node["shop"="organic"]',)),
        CategoryQuery("social_facility", Category.SOCIAL_FACILITY, ('node["amenity"="social_facility"]',)),
        CategoryQuery(
            "repair_cafe",
            Category.REPAIR_CAFE,
            (
                'node["amenity"="community_centre"]["community_centre:for"~"repair"]',
                'node["repair"="assisted_self_service"]',
            ),
        ),
        CategoryQuery(
            "thrift_clothes",
            Category.THRIFT_STORE,
            ('node["shop"="clothes"]["second_hand"~"^(yes|only)$"]',),
        ),
        CategoryQuery(
            "bike_workshop",
            Category.BIKE_WORKSHOP,
            (
                'node["amenity"="bicycle_repair_station"]',
                'node["shop"="bicycle"]["service:bicycle:diy"="yes"]',
            ),
        ),
        CategoryQuery("give_box", Category.GIVE_BOX, ('node["amenity"="give_box"]',)),
        CategoryQuery("fab_lab", Category.FAB_LAB, ('node["leisure"="hackerspace"]',)),
        CategoryQuery("bulk_shop", Category.BULK_STORE, ('node["shop"]["bulk_purchase"="only"]',)),
        CategoryQuery(
            "community_garden",
            Category.COMMUNITY_GARDEN,
            ('node["leisure"="garden"]["garden:type"="community"]',),
        ),
    )
}


# -----------------------------
# Env helpers
# -----------------------------
def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    try:
        return int(env.get(name, str(default)) or str(default))
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r", name, env.get(name))
        return default


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    try:
        return float(env.get(name, str(default)) or str(default))
    except ValueError:
        logger.warning("Ignoring non-numeric %s=%r", name, env.get(name))
        return default


def _env_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "y", "on")


def _env_str(env: Mapping[str, str], name: str, default: str) -> str:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip()


def load_yaml_config(path: Optional[str]) -> Dict[str, Any]:
    """Optionally load overrides from a YAML file; missing file -> {}."""
    if not path or not os.path.exists(path):
        return {}
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top-level YAML must be a mapping")
    return data


def parse_category_table(raw: Mapping[str, Any]) -> Dict[str, CategoryQuery]:
    table: Dict[str, CategoryQuery] = {}
    for key, spec in raw.items():
        if not isinstance(spec, Mapping):
            raise ValueError(f"category {key!r}: expected a mapping")
        predicates = spec.get("predicates") or spec.get("query")
        if isinstance(predicates, str):
            predicates = [predicates]
        if not predicates:
            raise ValueError(f"category {key!r}: no predicates")
        table[str(key)] = CategoryQuery(
            key=str(key),
            category=Category(spec.get("category", Category.OTHER.value)),
            predicates=tuple(str(p) for p in predicates),
        )
    return table


@dataclass(frozen=True)
class PipelineSettings:
    overpass_url: str = DEFAULT_OVERPASS_URL
    overpass_timeout_s: int = 60
    website_timeout_s: int = 5
    user_agent: str = DEFAULT_USER_AGENT

    geo_pace_s: float = 2.0
    website_pace_s: float = 1.0

    dedup_radius_m: float = 50.0
    nameless_policy: str = NAMELESS_SKIP
    default_bbox: str = DEFAULT_BBOX

    enrich_limit: int = 100
    enrich_osm_lookup: bool = False

    database_url: str = ""

    categories: Dict[str, CategoryQuery] = field(default_factory=lambda: dict(DEFAULT_CATEGORY_QUERIES))

    def __post_init__(self) -> None:
        if self.nameless_policy not in NAMELESS_POLICIES:
            raise ValueError(f"nameless_policy must be one of {NAMELESS_POLICIES}, got {self.nameless_policy!r}")
        if self.dedup_radius_m <= 0:
            raise ValueError("dedup_radius_m must be positive")

    @property
    def pacing_intervals(self) -> Dict[str, float]:
        return {GEO_SOURCE: self.geo_pace_s, WEBSITE: self.website_pace_s}

    def bbox(self) -> BoundingBox:
        return BoundingBox.parse(self.default_bbox)

    def category_query(self, key: str) -> CategoryQuery:
        try:
            return self.categories[key]
        except KeyError:
            raise UnknownCategory(
                f"unknown category {key!r}; known: {', '.join(sorted(self.categories))}"
            ) from None

    def with_overrides(self, **kw: Any) -> "PipelineSettings":
        return replace(self, **{k: v for k, v in kw.items() if v is not None})

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "PipelineSettings":
        env = os.environ if env is None else env
        file_cfg = load_yaml_config(_env_str(env, "LAMAP_CONFIG_YAML", "config.yaml"))

        base = cls()
        values: Dict[str, Any] = {
            "overpass_url": _env_str(env, "LAMAP_OVERPASS_URL", base.overpass_url),
            "overpass_timeout_s": _env_int(env, "LAMAP_OVERPASS_TIMEOUT_S", base.overpass_timeout_s),
            "website_timeout_s": _env_int(env, "LAMAP_WEBSITE_TIMEOUT_S", base.website_timeout_s),
            "user_agent": _env_str(env, "LAMAP_USER_AGENT", base.user_agent),
            "geo_pace_s": _env_float(env, "LAMAP_GEO_PACE_S", base.geo_pace_s),
            "website_pace_s": _env_float(env, "LAMAP_WEBSITE_PACE_S", base.website_pace_s),
            "dedup_radius_m": _env_float(env, "LAMAP_DEDUP_RADIUS_M", base.dedup_radius_m),
            "nameless_policy": _env_str(env, "LAMAP_NAMELESS_POLICY", base.nameless_policy).lower(),
            "default_bbox": _env_str(env, "LAMAP_DEFAULT_BBOX", base.default_bbox),
            "enrich_limit": _env_int(env, "LAMAP_ENRICH_LIMIT", base.enrich_limit),
            "enrich_osm_lookup": _env_bool(env, "LAMAP_ENRICH_OSM_LOOKUP", base.enrich_osm_lookup),
            "database_url": _env_str(env, "DATABASE_URL", ""),
        }

        # YAML wins over defaults but not over explicitly set env vars
        scalar_names = {f.name for f in fields(cls)} - {"categories"}
        for name in scalar_names:
            env_name = "DATABASE_URL" if name == "database_url" else f"LAMAP_{name.upper()}"
            if name in file_cfg and env.get(env_name) is None:
                values[name] = file_cfg[name]

        categories: List[Tuple[str, CategoryQuery]] = list(DEFAULT_CATEGORY_QUERIES.items())
        if file_cfg.get("categories"):
            categories.extend(parse_category_table(file_cfg["categories"]).items())
        values["categories"] = dict(categories)

        return cls(**values)
