"""
Storage contract for initiatives + the PostgreSQL/PostGIS implementation.

Every call is its own transaction (engine.begin()); nothing is batched across
records, so a failing row never takes earlier rows with it.

Error mapping (SQLAlchemy -> pipeline taxonomy):
- IntegrityError / DataError        -> ConstraintViolation
- any other DBAPIError / SQLAlchemyError -> StorageUnavailable
- UPDATE touching 0 rows            -> NotFound
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Mapping, Protocol

from sqlalchemy import bindparam, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DataError, IntegrityError, SQLAlchemyError
from sqlalchemy.types import JSON

from .errors import ConstraintViolation, NotFound, StorageUnavailable
from .models import SOCIAL_PLATFORMS, Category, GeoPoint, Initiative

logger = logging.getLogger(__name__)


class InitiativeStore(Protocol):
    def insert(self, initiative: Initiative) -> str: ...

    def update(self, initiative_id: str, fields: Mapping[str, Any]) -> None: ...

    def find_near(self, point: GeoPoint, radius_m: float) -> int: ...

    def query_eligible_for_enrichment(self, limit: int) -> List[Initiative]: ...


# Idempotent DDL (safe to run repeatedly).
SCHEMA_SQL = """
CREATE EXTENSION IF NOT EXISTS postgis;
CREATE EXTENSION IF NOT EXISTS pgcrypto;

CREATE TABLE IF NOT EXISTS initiatives (
  id             uuid PRIMARY KEY DEFAULT gen_random_uuid(),
  name           text NOT NULL CHECK (length(trim(name)) > 0),
  type           text NOT NULL,
  description    text,
  address        text,
  location       geography(Point, 4326) NOT NULL,
  verified       boolean NOT NULL DEFAULT false,
  website        text,
  phone          text,
  email          text,
  opening_hours  jsonb,
  user_id        uuid,
  created_at     timestamptz NOT NULL DEFAULT now(),
  updated_at     timestamptz NOT NULL DEFAULT now()
);

-- Social link columns and lineage, for tables created before they existed
ALTER TABLE IF EXISTS initiatives
  ADD COLUMN IF NOT EXISTS facebook   text,
  ADD COLUMN IF NOT EXISTS instagram  text,
  ADD COLUMN IF NOT EXISTS twitter    text,
  ADD COLUMN IF NOT EXISTS linkedin   text,
  ADD COLUMN IF NOT EXISTS youtube    text,
  ADD COLUMN IF NOT EXISTS tiktok     text,
  ADD COLUMN IF NOT EXISTS source_ref text;

CREATE INDEX IF NOT EXISTS idx_initiatives_location ON initiatives USING GIST (location);
CREATE INDEX IF NOT EXISTS idx_initiatives_type ON initiatives(type);
"""

_SOCIAL_COLS = ", ".join(SOCIAL_PLATFORMS)
_SOCIAL_PARAMS = ", ".join(f":{p}" for p in SOCIAL_PLATFORMS)

_INSERT_SQL = text(
    f"""
    INSERT INTO initiatives (
        name, type, description, address, location, verified,
        website, phone, email, opening_hours,
        {_SOCIAL_COLS},
        source_ref, created_at, updated_at
    )
    VALUES (
        :name, :type, :description, :address,
        ST_SetSRID(ST_MakePoint(:lon, :lat), 4326)::geography,
        :verified,
        :website, :phone, :email, :opening_hours,
        {_SOCIAL_PARAMS},
        :source_ref, now(), now()
    )
    RETURNING id
    """
).bindparams(bindparam("opening_hours", type_=JSON()))

_FIND_NEAR_SQL = text(
    """
    SELECT count(*)
    FROM initiatives
    WHERE ST_DWithin(location, ST_SetSRID(ST_MakePoint(:lon, :lat), 4326)::geography, :radius)
    """
)

_ELIGIBLE_SQL = text(
    f"""
    SELECT
        id, name, type, description, address,
        ST_X(location::geometry) AS lon,
        ST_Y(location::geometry) AS lat,
        verified, website, phone, email, opening_hours,
        {_SOCIAL_COLS},
        source_ref, created_at, updated_at
    FROM initiatives
    WHERE website IS NOT NULL
      AND length(trim(website)) > 0
      AND ({" OR ".join(f"{p} IS NULL" for p in SOCIAL_PLATFORMS)})
    ORDER BY created_at ASC
    LIMIT :lim
    """
)


def initiative_to_params(initiative: Initiative) -> Dict[str, Any]:
    params: Dict[str, Any] = {
        "name": initiative.name,
        "type": initiative.category.value,
        "description": initiative.description,
        "address": initiative.address,
        "lon": initiative.location.longitude,
        "lat": initiative.location.latitude,
        "verified": bool(initiative.verified),
        "website": initiative.website,
        "phone": initiative.phone,
        "email": initiative.email,
        "opening_hours": initiative.opening_hours,
        "source_ref": initiative.source_ref,
    }
    for p in SOCIAL_PLATFORMS:
        params[p] = initiative.social_links.get(p)
    return params


def row_to_initiative(row: Mapping[str, Any]) -> Initiative:
    try:
        category = Category(row.get("type"))
    except ValueError:
        category = Category.OTHER

    return Initiative(
        id=str(row["id"]),
        name=row["name"],
        category=category,
        location=GeoPoint(longitude=float(row["lon"]), latitude=float(row["lat"])),
        description=row.get("description"),
        address=row.get("address"),
        website=row.get("website"),
        phone=row.get("phone"),
        email=row.get("email"),
        verified=bool(row.get("verified")),
        opening_hours=row.get("opening_hours"),
        social_links={p: row[p] for p in SOCIAL_PLATFORMS if row.get(p)},
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
        source_ref=row.get("source_ref"),
    )


def social_columns_from_fields(fields: Mapping[str, Any]) -> Dict[str, str]:
    """
    Accepts {"social_links": {...}} and/or bare platform keys.
    Anything else is refused: enrichment may only touch social link columns.
    """
    cols: Dict[str, str] = {}
    for key, value in fields.items():
        if key == "social_links":
            for p, url in (value or {}).items():
                if p not in SOCIAL_PLATFORMS:
                    raise ValueError(f"unknown social platform {p!r}")
                if url:
                    cols[p] = url
        elif key in SOCIAL_PLATFORMS:
            if value:
                cols[key] = value
        else:
            raise ValueError(f"field {key!r} is not updatable")
    return cols


@contextmanager
def _storage_errors(op: str) -> Iterator[None]:
    try:
        yield
    except (IntegrityError, DataError) as e:
        raise ConstraintViolation(f"{op}: {getattr(e, 'orig', e)}") from e
    except SQLAlchemyError as e:
        raise StorageUnavailable(f"{op}: {type(e).__name__}: {str(e)[:300]}") from e


class PostgisInitiativeStore:
    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def ensure_schema(self) -> int:
        # one statement at a time to avoid multi-statement restrictions
        stmts = [s.strip() for s in SCHEMA_SQL.strip().split(";") if s.strip()]
        with _storage_errors("ensure_schema"):
            with self.engine.begin() as conn:
                for stmt in stmts:
                    conn.execute(text(stmt))
        logger.info("schema ensured (%d statements)", len(stmts))
        return len(stmts)

    def insert(self, initiative: Initiative) -> str:
        with _storage_errors("insert"):
            with self.engine.begin() as conn:
                new_id = conn.execute(_INSERT_SQL, initiative_to_params(initiative)).scalar()
        return str(new_id)

    def update(self, initiative_id: str, fields: Mapping[str, Any]) -> None:
        cols = social_columns_from_fields(fields)
        if not cols:
            return

        assignments = ", ".join(f"{c} = :{c}" for c in cols)
        sql = text(f"UPDATE initiatives SET {assignments}, updated_at = now() WHERE id = CAST(:id AS uuid)")
        try:
            with _storage_errors("update"):
                with self.engine.begin() as conn:
                    res = conn.execute(sql, {"id": initiative_id, **cols})
                    touched = int(res.rowcount or 0)
        except ConstraintViolation as e:
            # malformed uuid: no such row
            raise NotFound(f"initiative {initiative_id} not found") from e
        if touched == 0:
            raise NotFound(f"initiative {initiative_id} not found")

    def find_near(self, point: GeoPoint, radius_m: float) -> int:
        with _storage_errors("find_near"):
            with self.engine.begin() as conn:
                count = conn.execute(
                    _FIND_NEAR_SQL,
                    {"lon": point.longitude, "lat": point.latitude, "radius": float(radius_m)},
                ).scalar()
        return int(count or 0)

    def query_eligible_for_enrichment(self, limit: int) -> List[Initiative]:
        with _storage_errors("query_eligible_for_enrichment"):
            with self.engine.begin() as conn:
                rows = conn.execute(_ELIGIBLE_SQL, {"lim": int(limit)}).mappings().all()
        return [row_to_initiative(dict(r)) for r in rows]
