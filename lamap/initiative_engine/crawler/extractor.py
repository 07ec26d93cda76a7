from __future__ import annotations

import logging
from typing import List, Mapping, Optional

from ..errors import EnrichmentExtractionFailure, SourceError
from ..models import Initiative, RawSourceNode, SocialLinks
from .social_links import links_from_html, links_from_tags
from .website_fetcher import WebsiteFetcher

logger = logging.getLogger(__name__)


def _merge_node_tags(nodes: List[RawSourceNode]) -> Mapping[str, str]:
    merged = {}
    for node in nodes:
        for k, v in node.tags.items():
            merged.setdefault(k, v)
    return merged


class LinkExtractor:
    """
    Social links for one initiative, from up to two strategies:

    1) source tags (contact:<platform> / <platform>), passed in or looked up on Overpass
    2) one GET of the initiative's website, regex-scanned

    The website result wins when both strategies find the same platform.
    extract_links() never raises; an empty dict means "nothing found".
    """

    def __init__(self, fetcher: WebsiteFetcher, *, geo_client=None) -> None:
        self.fetcher = fetcher
        # OverpassClient-like; only fetch_named_near() is used
        self.geo_client = geo_client

    def extract_links(self, initiative: Initiative, tags: Optional[Mapping[str, str]] = None) -> SocialLinks:
        links: SocialLinks = {}
        links.update(self._from_tags(initiative, tags))
        links.update(self._from_website(initiative))
        return links

    def _from_tags(self, initiative: Initiative, tags: Optional[Mapping[str, str]]) -> SocialLinks:
        if tags is None and self.geo_client is not None:
            try:
                nodes = self.geo_client.fetch_named_near(initiative.name, initiative.location)
            except SourceError as e:
                logger.info("OSM lookup failed for %s: %s", initiative.name, e)
                return {}
            tags = _merge_node_tags(nodes)
        return links_from_tags(tags)

    def _from_website(self, initiative: Initiative) -> SocialLinks:
        website = (initiative.website or "").strip()
        if not website:
            return {}

        try:
            page = self.fetcher.fetch(website)
        except EnrichmentExtractionFailure as e:
            logger.info("website unreachable for %s: %s", initiative.name, e)
            return {}

        return links_from_html(page.body)
