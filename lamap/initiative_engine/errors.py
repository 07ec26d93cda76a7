"""
Error taxonomy for the initiative engine.

Source errors are scoped to one category; storage errors to one record.
Extraction failures never leave the link extractor.
"""

from __future__ import annotations


class PipelineError(Exception):
    pass


class UnknownCategory(PipelineError, ValueError):
    pass


# ---- geo source ----
class SourceError(PipelineError):
    pass


class SourceUnavailable(SourceError):
    pass


class SourceTimeout(SourceError):
    pass


# ---- storage ----
class StorageError(PipelineError):
    pass


class StorageUnavailable(StorageError):
    pass


class ConstraintViolation(StorageError):
    pass


class NotFound(StorageError):
    pass


# ---- enrichment ----
class EnrichmentExtractionFailure(PipelineError):
    pass


def describe(exc: BaseException, limit: int = 500) -> str:
    """'<ErrorClass>: <message>' trimmed for summaries."""
    return f"{type(exc).__name__}: {str(exc)[:limit]}"
