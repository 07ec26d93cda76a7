from __future__ import annotations

import logging
import urllib.parse
from dataclasses import dataclass
from typing import Optional

import requests

from ..config import WEBSITE, PipelineSettings
from ..errors import EnrichmentExtractionFailure
from ..pacing import Pacer

logger = logging.getLogger(__name__)

# Social links live in headers/footers; no need to pull whole media-heavy pages.
_MAX_BODY_BYTES = 1_000_000

_DEFAULT_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "fr-FR,fr;q=0.9,en;q=0.8",
}


@dataclass
class PageSnapshot:
    url: str
    status: int
    content_type: str
    body: str


def normalize_site_url(raw: Optional[str]) -> Optional[str]:
    if not raw:
        return None
    s = raw.strip()
    if not s:
        return None

    if "://" not in s:
        s = "https://" + s

    u = urllib.parse.urlparse(s)
    if u.scheme not in ("http", "https") or not u.netloc:
        return None
    return urllib.parse.urlunparse((u.scheme, u.netloc, u.path or "/", u.params, u.query, ""))


class WebsiteFetcher:
    """
    Single GET per site. No redirects beyond what requests follows, no crawl.
    Anything that is not a 2xx page comes back as EnrichmentExtractionFailure.
    """

    def __init__(
        self,
        settings: PipelineSettings,
        pacer: Pacer,
        *,
        session: Optional[requests.Session] = None,
        max_bytes: int = _MAX_BODY_BYTES,
    ) -> None:
        self.settings = settings
        self.pacer = pacer
        self.max_bytes = max_bytes
        self.session = session or requests.Session()
        self.session.headers.update(_DEFAULT_HEADERS)
        self.session.headers["User-Agent"] = settings.user_agent

    def fetch(self, raw_url: str) -> PageSnapshot:
        url = normalize_site_url(raw_url)
        if not url:
            raise EnrichmentExtractionFailure(f"unusable website URL: {raw_url!r}")

        self.pacer.pace(WEBSITE)
        try:
            with self.session.get(url, timeout=self.settings.website_timeout_s, stream=True) as resp:
                status = int(resp.status_code or 0)
                if not 200 <= status < 300:
                    raise EnrichmentExtractionFailure(f"{url} -> HTTP {status}")

                ctype = (resp.headers.get("Content-Type") or "").lower()
                raw = b""
                for chunk in resp.iter_content(chunk_size=65536):
                    if not chunk:
                        continue
                    raw += chunk
                    if len(raw) >= self.max_bytes:
                        break
                encoding = resp.encoding or "utf-8"
        except requests.exceptions.Timeout as e:
            raise EnrichmentExtractionFailure(f"{url} timed out after {self.settings.website_timeout_s}s") from e
        except requests.exceptions.RequestException as e:
            raise EnrichmentExtractionFailure(f"{url} request failed: {e}") from e

        try:
            body = raw[: self.max_bytes].decode(encoding, errors="replace")
        except LookupError:
            body = raw[: self.max_bytes].decode("utf-8", errors="replace")

        logger.debug("fetched %s status=%s bytes=%d", url, status, len(raw))
        return PageSnapshot(url=url, status=status, content_type=ctype, body=body)

    def close(self) -> None:
        self.session.close()
