from __future__ import annotations

import logging
from typing import Optional

from .models import GeoPoint

logger = logging.getLogger(__name__)

DEFAULT_RADIUS_M = 50.0


class ProximityDeduplicator:
    """
    "Something is already stored within radius_m of this point" -> duplicate.

    Advisory only: never merges or updates the existing row.
    Storage errors (StorageUnavailable) propagate to the caller.
    """

    def __init__(self, store, radius_m: float = DEFAULT_RADIUS_M) -> None:
        if radius_m <= 0:
            raise ValueError("radius_m must be positive")
        self.store = store
        self.radius_m = float(radius_m)

    def is_duplicate(self, point: GeoPoint, radius_m: Optional[float] = None) -> bool:
        radius = self.radius_m if radius_m is None else float(radius_m)
        count = self.store.find_near(point, radius)
        if count > 0:
            logger.debug("duplicate: %d stored within %.0fm of %s", count, radius, point.to_wkt())
            return True
        return False
