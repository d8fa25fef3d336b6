"""
Agent0 search: federated agent discovery and reputation across chains.
"""

from .core.exceptions import (
    Agent0SearchError,
    AllSourcesFailed,
    EmptyResult,
    InvalidCursor,
    MisconfiguredSource,
    ProtocolError,
    SourceQueryError,
    SourceUnreachable,
    UnsupportedPredicate,
)
from .core.filters import SourceCapabilities
from .core.indexer import AgentIndexer, ReputationFilter
from .core.models import (
    AgentRecord,
    ExtensionMap,
    FeedbackRecord,
    Predicate,
    PredicateOp,
    ReputationSummary,
    SearchFeedbackParams,
    SearchMeta,
    SearchParams,
    SearchResult,
    SortKey,
    SortSpec,
    TrustModel,
)
from .core.sdk import SDK

__version__ = "0.1.0"

__all__ = [
    "SDK",
    "AgentIndexer",
    "ReputationFilter",
    "SourceCapabilities",
    "AgentRecord",
    "ExtensionMap",
    "FeedbackRecord",
    "Predicate",
    "PredicateOp",
    "ReputationSummary",
    "SearchFeedbackParams",
    "SearchMeta",
    "SearchParams",
    "SearchResult",
    "SortKey",
    "SortSpec",
    "TrustModel",
    "Agent0SearchError",
    "AllSourcesFailed",
    "EmptyResult",
    "InvalidCursor",
    "MisconfiguredSource",
    "ProtocolError",
    "SourceQueryError",
    "SourceUnreachable",
    "UnsupportedPredicate",
]
