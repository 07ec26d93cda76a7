"""
OSM / Overpass source for the Initiative Engine.

Reliability contract:
- One POST per category with an explicit timeout; no retries in here.
  The caller decides whether a failed category is retried or skipped.
- Timeouts surface as SourceTimeout, everything else (DNS, 4xx/5xx, bad JSON)
  as SourceUnavailable.

Output:
- Raw elements as RawSourceNode, unfiltered (nameless nodes included).
"""

from __future__ import annotations

import logging
import math
import re
from typing import Any, Dict, List, Optional, Sequence

import requests

from ..config import GEO_SOURCE, CategoryQuery, PipelineSettings
from ..errors import SourceTimeout, SourceUnavailable
from ..models import BoundingBox, GeoPoint, RawSourceNode
from ..pacing import Pacer

logger = logging.getLogger(__name__)

_METERS_PER_DEGREE_LAT = 111_320.0


def build_bbox_query(predicates: Sequence[str], bbox: BoundingBox, timeout_s: int) -> str:
    """
    One Overpass QL query: every predicate restricted to the bbox, OR-ed in a union.
    """
    if not predicates:
        raise ValueError("predicates required")

    box = bbox.to_overpass()
    selectors = "\n".join(f"  {p}({box});" for p in predicates)
    return f"""
[out:json][timeout:{int(timeout_s)}];
(
{selectors}
);
out center;
""".strip()


def _overpass_regex_literal(value: str) -> str:
    # re.escape for the regex, then escape for an Overpass double-quoted string
    return re.escape(value).replace("\\", "\\\\").replace('"', '\\"')


def bbox_around(point: GeoPoint, radius_m: float) -> BoundingBox:
    dlat = radius_m / _METERS_PER_DEGREE_LAT
    cos_lat = max(math.cos(math.radians(point.latitude)), 1e-6)
    dlon = radius_m / (_METERS_PER_DEGREE_LAT * cos_lat)
    return BoundingBox(
        west=max(-180.0, point.longitude - dlon),
        south=max(-90.0, point.latitude - dlat),
        east=min(180.0, point.longitude + dlon),
        north=min(90.0, point.latitude + dlat),
    )


class OverpassClient:
    def __init__(
        self,
        settings: PipelineSettings,
        pacer: Pacer,
        *,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.settings = settings
        self.pacer = pacer
        self.session = session or requests.Session()
        self.session.headers["User-Agent"] = settings.user_agent

    # -----------------------------
    # Public API
    # -----------------------------
    def fetch_nodes(self, category_key: str, bbox: BoundingBox) -> List[RawSourceNode]:
        query: CategoryQuery = self.settings.category_query(category_key)
        ql = build_bbox_query(query.predicates, bbox, self.settings.overpass_timeout_s)
        logger.info("Querying Overpass for %s in %s", category_key, bbox.to_overpass())
        logger.debug("Overpass query:\n%s", ql)

        nodes = self._run(ql)
        logger.info("Overpass returned %d elements for %s", len(nodes), category_key)
        return nodes

    def fetch_named_near(self, name: str, point: GeoPoint, radius_m: float = 100.0) -> List[RawSourceNode]:
        """
        Elements named `name` (case-insensitive, exact) around `point`.

        Used to recover contact:* tags for records that were stored without them.
        """
        if not (name or "").strip():
            return []
        box = bbox_around(point, radius_m)
        pattern = f"^{_overpass_regex_literal(name.strip())}$"
        predicates = [f'{kind}["name"~"{pattern}",i]' for kind in ("node", "way", "relation")]
        ql = build_bbox_query(predicates, box, min(self.settings.overpass_timeout_s, 25))
        return self._run(ql)

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> "OverpassClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # -----------------------------
    # HTTP
    # -----------------------------
    def _run(self, ql: str) -> List[RawSourceNode]:
        self.pacer.pace(GEO_SOURCE)

        timeout_s = self.settings.overpass_timeout_s
        try:
            resp = self.session.post(
                self.settings.overpass_url,
                data={"data": ql},
                timeout=timeout_s,
            )
            resp.raise_for_status()
            payload: Dict[str, Any] = resp.json()
        except requests.exceptions.Timeout as e:
            raise SourceTimeout(f"Overpass timed out after {timeout_s}s") from e
        except requests.exceptions.HTTPError as e:
            status = getattr(e.response, "status_code", None)
            raise SourceUnavailable(f"Overpass HTTP {status}") from e
        except requests.exceptions.RequestException as e:
            raise SourceUnavailable(f"Overpass request failed: {e}") from e
        except ValueError as e:
            raise SourceUnavailable(f"Overpass returned invalid JSON: {e}") from e

        elements = payload.get("elements", []) if isinstance(payload, dict) else []
        return [RawSourceNode.from_element(el) for el in elements if isinstance(el, dict)]
