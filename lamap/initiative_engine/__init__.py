"""
Initiative Engine package.

Responsible for:
- Ingesting points of interest from OpenStreetMap (Overpass) per category.
- Normalizing them into the canonical `Initiative` shape.
- Suppressing new points that sit next to an already stored initiative.
- Enriching stored initiatives with social media links found on their websites.
"""
