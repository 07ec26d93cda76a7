"""
RawSourceNode -> Initiative.

Pure mapping: no I/O, nothing read from the environment, same input -> same output.
Discarded nodes come back as Skip(reason) so callers can count them.
"""

from __future__ import annotations

import math
from typing import Mapping, Optional, Tuple, Union

from .config import NAMELESS_POLICIES, NAMELESS_SKIP, NAMELESS_SYNTHESIZE
from .crawler.social_links import links_from_tags
from .models import Category, GeoPoint, Initiative, RawSourceNode, Skip

SKIP_MISSING_NAME = "missing_name"
SKIP_MISSING_COORDINATES = "missing_coordinates"
SKIP_INVALID_COORDINATES = "invalid_coordinates"

# First non-blank tag wins
_FIELD_TAGS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("name", ("name",)),
    ("description", ("description",)),
    ("website", ("website", "contact:website", "url")),
    ("phone", ("phone", "contact:phone")),
    ("email", ("email", "contact:email")),
    ("opening_hours", ("opening_hours",)),
)

_ADDRESS_TAGS = ("addr:housenumber", "addr:street", "addr:postcode", "addr:city")


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def _first_tag(tags: Mapping[str, str], keys: Tuple[str, ...]) -> Optional[str]:
    for k in keys:
        v = _clean(tags.get(k))
        if v:
            return v
    return None


def build_address(tags: Mapping[str, str]) -> Optional[str]:
    """'12 Rue de la Paix 75002 Paris' from whichever addr:* parts are present."""
    parts = [_clean(tags.get(k)) for k in _ADDRESS_TAGS]
    joined = " ".join(p for p in parts if p)
    return joined or None


class NodeNormalizer:
    def __init__(self, nameless_policy: str = NAMELESS_SKIP) -> None:
        if nameless_policy not in NAMELESS_POLICIES:
            raise ValueError(f"nameless_policy must be one of {NAMELESS_POLICIES}")
        self.nameless_policy = nameless_policy

    def normalize(self, node: RawSourceNode, category: Category) -> Union[Initiative, Skip]:
        tags = node.tags
        values = {field: _first_tag(tags, keys) for field, keys in _FIELD_TAGS}

        name = values["name"]
        if not name:
            if self.nameless_policy != NAMELESS_SYNTHESIZE:
                return Skip(SKIP_MISSING_NAME)
            name = f"{category.value} #{node.id}"

        if node.lat is None or node.lon is None:
            return Skip(SKIP_MISSING_COORDINATES)
        if not (math.isfinite(node.lat) and math.isfinite(node.lon)):
            return Skip(SKIP_INVALID_COORDINATES)
        try:
            location = GeoPoint(longitude=node.lon, latitude=node.lat)
        except ValueError:
            return Skip(SKIP_INVALID_COORDINATES)

        hours = values["opening_hours"]

        return Initiative(
            name=name,
            category=category,
            location=location,
            description=values["description"],
            address=build_address(tags),
            website=values["website"],
            phone=values["phone"],
            email=values["email"],
            verified=False,
            opening_hours={"raw": hours} if hours else None,
            social_links=links_from_tags(tags),
            source_ref=node.source_ref,
        )
