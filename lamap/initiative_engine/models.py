from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

SOCIAL_PLATFORMS = ("facebook", "instagram", "twitter", "linkedin", "youtube", "tiktok")

# platform -> canonical absolute URL; keys only present when a value was found
SocialLinks = Dict[str, str]


class Category(str, Enum):
    """Closed set of initiative categories."""

    SECOND_HAND_SHOP = "SecondHandShop"
    RECYCLING_POINT = "RecyclingPoint"
    ORGANIC_SHOP = "OrganicShop"
    SOCIAL_FACILITY = "SocialFacility"
    REPAIR_CAFE = "RepairCafe"
    THRIFT_STORE = "ThriftStore"
    BIKE_WORKSHOP = "BikeWorkshop"
    GIVE_BOX = "GiveBox"
    FAB_LAB = "FabLab"
    BULK_STORE = "BulkStore"
    COMMUNITY_GARDEN = "CommunityGarden"
    OTHER = "Other"


@dataclass(frozen=True)
class GeoPoint:
    longitude: float
    latitude: float

    def __post_init__(self) -> None:
        if not -180.0 <= self.longitude <= 180.0:
            raise ValueError(f"longitude out of range: {self.longitude}")
        if not -90.0 <= self.latitude <= 90.0:
            raise ValueError(f"latitude out of range: {self.latitude}")

    def to_wkt(self) -> str:
        return f"POINT({self.longitude} {self.latitude})"


@dataclass(frozen=True)
class BoundingBox:
    """
    Query window in WGS84 degrees.

    Stored as (west, south, east, north); Overpass wants (south, west, north, east).
    """
    west: float
    south: float
    east: float
    north: float

    def __post_init__(self) -> None:
        for lon in (self.west, self.east):
            if not -180.0 <= lon <= 180.0:
                raise ValueError(f"longitude out of range: {lon}")
        for lat in (self.south, self.north):
            if not -90.0 <= lat <= 90.0:
                raise ValueError(f"latitude out of range: {lat}")
        if not self.west < self.east:
            raise ValueError("bbox requires west < east")
        if not self.south < self.north:
            raise ValueError("bbox requires south < north")

    @classmethod
    def parse(cls, raw: str) -> "BoundingBox":
        """Parse 'west,south,east,north'."""
        parts = [p.strip() for p in (raw or "").split(",")]
        if len(parts) != 4:
            raise ValueError(f"bbox must be 'west,south,east,north', got {raw!r}")
        west, south, east, north = (float(p) for p in parts)
        return cls(west=west, south=south, east=east, north=north)

    def to_overpass(self) -> str:
        return f"{self.south},{self.west},{self.north},{self.east}"


@dataclass(frozen=True)
class RawSourceNode:
    """
    One element exactly as Overpass returned it. Never mutated by the pipeline.
    """
    id: int
    lat: Optional[float]
    lon: Optional[float]
    tags: Mapping[str, str] = field(default_factory=dict)
    type: str = "node"

    def __post_init__(self) -> None:
        # read-only view so downstream code cannot edit source tags in place
        object.__setattr__(self, "tags", MappingProxyType(dict(self.tags)))

    @classmethod
    def from_element(cls, el: Dict[str, Any]) -> "RawSourceNode":
        lat = el.get("lat")
        lon = el.get("lon")
        if lat is None or lon is None:
            center = el.get("center") or {}
            lat = center.get("lat")
            lon = center.get("lon")

        tags = el.get("tags") or {}
        if not isinstance(tags, dict):
            tags = {}

        return cls(
            id=int(el.get("id") or 0),
            lat=float(lat) if isinstance(lat, (int, float)) else None,
            lon=float(lon) if isinstance(lon, (int, float)) else None,
            tags={str(k): str(v) for k, v in tags.items() if v is not None},
            type=str(el.get("type") or "node"),
        )

    @property
    def source_ref(self) -> str:
        return f"{self.type}/{self.id}"


@dataclass
class Initiative:
    """
    Canonical initiative shape.

    Freshly normalized records have no id / timestamps; storage assigns them on insert.
    """
    name: str
    category: Category
    location: GeoPoint

    description: Optional[str] = None
    address: Optional[str] = None
    website: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None

    verified: bool = False
    opening_hours: Optional[Dict[str, Any]] = None
    social_links: SocialLinks = field(default_factory=dict)

    id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    # Lineage only (e.g. 'node/123'); never used for dedupe
    source_ref: Optional[str] = None

    def has_any_social_link(self) -> bool:
        return any((self.social_links.get(p) or "").strip() for p in SOCIAL_PLATFORMS)


@dataclass(frozen=True)
class Skip:
    """Returned by the normalizer instead of an Initiative when a node is discarded."""
    reason: str
