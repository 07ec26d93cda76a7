"""
LaMap data tooling.

- initiative_engine: OSM ingestion + social link enrichment for `initiatives`
- db: SQLAlchemy engine construction
- cli: `lamap` command line entry point
"""
