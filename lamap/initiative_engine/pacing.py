from __future__ import annotations

import logging
import time
from typing import Callable, Dict, Mapping, Optional

logger = logging.getLogger(__name__)


class Pacer:
    """
    Fixed minimum interval between consecutive outbound requests per source class.

    Not a token bucket: call volumes are already bounded upstream by explicit
    limits, so a plain "wait out the rest of the interval" is enough.
    pace() is called right before the request, whatever the previous request's outcome.
    """

    def __init__(
        self,
        intervals: Mapping[str, float],
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.intervals: Dict[str, float] = {k: max(0.0, float(v)) for k, v in intervals.items()}
        self._clock = clock
        self._sleep = sleep
        self._last: Dict[str, float] = {}

    def pace(self, source_class: str) -> float:
        """Block until `source_class` may fire again; returns seconds waited."""
        interval = self.intervals.get(source_class, 0.0)
        waited = 0.0
        last: Optional[float] = self._last.get(source_class)

        if interval > 0 and last is not None:
            remaining = interval - (self._clock() - last)
            if remaining > 0:
                logger.debug("pacing %s: sleeping %.2fs", source_class, remaining)
                self._sleep(remaining)
                waited = remaining

        self._last[source_class] = self._clock()
        return waited
