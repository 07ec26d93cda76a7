"""
Crawler subsystem for the Initiative Engine.

- website_fetcher.py: one polite, bounded GET per website
- social_links.py: regex extraction + normalization of social profile URLs
- extractor.py: combines source tags and website results behind one call
"""

from .extractor import LinkExtractor
from .social_links import links_from_html, links_from_tags, normalize_social_url
from .website_fetcher import WebsiteFetcher

__all__ = [
    "LinkExtractor",
    "WebsiteFetcher",
    "links_from_html",
    "links_from_tags",
    "normalize_social_url",
]
