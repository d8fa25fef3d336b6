"""
Error types raised by the federated search engine.

Per-source errors (subclasses of SourceQueryError) are recovered by the
coordinator and reported in the result metadata. AllSourcesFailed and
MisconfiguredSource are fatal for a request.
"""

from __future__ import annotations

from typing import Dict, Optional

from .models import ChainId


class Agent0SearchError(Exception):
    """Base class for all search engine errors."""


class SourceQueryError(Agent0SearchError):
    """A single source could not answer a query."""

    def __init__(self, message: str, source_id: Optional[ChainId] = None):
        super().__init__(message)
        self.source_id = source_id


class SourceUnreachable(SourceQueryError, ConnectionError):
    """Network or transport failure talking to a source's indexing endpoint."""


class UnsupportedPredicate(SourceQueryError, ValueError):
    """A pushed-down predicate the source cannot evaluate server-side."""

    def __init__(self, message: str, source_id: Optional[ChainId] = None, predicate=None):
        super().__init__(message, source_id)
        self.predicate = predicate


class ProtocolError(SourceQueryError):
    """The source answered, but not with a well-formed response."""


class EmptyResult(SourceQueryError):
    """The source answered with no matching records."""


class AllSourcesFailed(Agent0SearchError, ConnectionError):
    """Every queried source failed or timed out."""

    def __init__(self, errors: Dict[ChainId, BaseException]):
        self.errors = dict(errors)
        details = "; ".join(f"{source}: {error}" for source, error in self.errors.items())
        super().__init__(f"All sources failed: {details}")


class InvalidCursor(Agent0SearchError, ValueError):
    """Malformed pagination cursor."""


class MisconfiguredSource(Agent0SearchError, ValueError):
    """A requested source has no resolvable query endpoint."""

    def __init__(self, message: str, source_ids=None):
        super().__init__(message)
        self.source_ids = list(source_ids or [])
