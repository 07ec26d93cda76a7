"""
Sources for the Initiative Engine.

Each source returns raw, untyped elements (RawSourceNode); normalization
into `Initiative` happens in normalize.py.
"""

from .overpass import OverpassClient, build_bbox_query

__all__ = ["OverpassClient", "build_bbox_query"]
