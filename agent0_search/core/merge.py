"""
Cross-source merge: deduplicate, sort and paginate batches fetched from
independent sources.

Sources share no ordering, so the merged stream is defined entirely here:
records are deduplicated, sorted by the requested keys, and ties are broken
by (chainId, tokenId) so that repeated calls over the same data produce the
same pages.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, Hashable, List, Optional, Sequence

from .cursor import Cursor, encode_cursor
from .models import AgentRecord, ChainId, SortKey, SortSpec

logger = logging.getLogger(__name__)

DedupKey = Callable[[AgentRecord], Hashable]

DEFAULT_SORT = SortSpec((SortKey("createdAt", descending=True),))

# Fields the merge stage knows how to order by
SORTABLE_FIELDS = {
    "createdAt", "updatedAt", "totalFeedback", "lastActivity",
    "name", "description", "chainId", "agentId",
    "averageScore", "feedbackCount",
}

# Computed per request by the reputation stage and carried in extras
_EXTRA_SORT_FIELDS = {"averageScore", "feedbackCount"}


def default_dedup_key(record: AgentRecord) -> Hashable:
    """The same logical agent: equal case-folded (name, description), any chain."""
    return (record.name.casefold(), record.description.casefold())


def normalize_sort(sort: SortSpec) -> SortSpec:
    """Drop unknown sort fields; an empty spec becomes createdAt:desc."""
    keys = []
    for key in sort.keys:
        if key.field in SORTABLE_FIELDS:
            keys.append(key)
        else:
            logger.warning(f"Unknown sort field: {key.field}, ignoring")
    if not keys:
        return DEFAULT_SORT
    return SortSpec(tuple(keys))


def sort_value(record: AgentRecord, field: str) -> Any:
    if field in _EXTRA_SORT_FIELDS:
        return record.extras.get_int(field)
    if field == "agentId":
        return record.identity_key
    value = getattr(record, field, None)
    if isinstance(value, str):
        return value.casefold()
    return value


def deduplicate_records(
    records: Sequence[AgentRecord],
    dedup_key: DedupKey = default_dedup_key,
) -> List[AgentRecord]:
    """Collapse records sharing a dedup key.

    The first record seen wins unless a later duplicate carries strictly
    richer extension data. The survivor lists every chain the agent was seen
    on in extras["deployedOn"].
    """
    winners: Dict[Hashable, AgentRecord] = {}
    deployed_on: Dict[Hashable, List[ChainId]] = {}
    order: List[Hashable] = []

    for record in records:
        key = dedup_key(record)
        if key not in winners:
            winners[key] = record
            deployed_on[key] = [record.chainId]
            order.append(key)
            continue

        if record.chainId not in deployed_on[key]:
            deployed_on[key].append(record.chainId)
        if record.extras.richness() > winners[key].extras.richness():
            winners[key] = record

    deduplicated = [
        replace(winners[key], extras=winners[key].extras.with_updates(deployedOn=deployed_on[key]))
        for key in order
    ]

    if len(deduplicated) != len(records):
        logger.info(f"Deduplication: {len(records)} agents -> {len(deduplicated)} unique agents")

    return deduplicated


def sort_records(records: Sequence[AgentRecord], sort: SortSpec) -> List[AgentRecord]:
    """Sort by every key in `sort`, then by identity.

    Records without a value for a key go after those that have one,
    whatever the direction.
    """
    ordered = sorted(records, key=lambda record: record.identity_key)

    # Stable multi-key sort: apply keys from least to most significant
    for key in reversed(sort.keys):
        present = [r for r in ordered if sort_value(r, key.field) is not None]
        missing = [r for r in ordered if sort_value(r, key.field) is None]
        present.sort(key=lambda r: sort_value(r, key.field), reverse=key.descending)
        ordered = present + missing

    return ordered


@dataclass
class MergedPage:
    items: List[AgentRecord]
    next_cursor: Optional[str]
    total: int  # size of the merged, deduplicated stream


def merge(
    batches: Sequence[Sequence[AgentRecord]],
    sort: SortSpec,
    page_size: int,
    global_offset: int = 0,
    dedup_key: DedupKey = default_dedup_key,
    deduplicate: bool = True,
) -> MergedPage:
    """Merge per-source batches into one page of the global stream.

    Batches should be given in a fixed source order; first-seen dedup depends
    on it.
    """
    if page_size <= 0:
        raise ValueError(f"page_size must be positive, got {page_size}")

    combined = [record for batch in batches for record in batch]
    if deduplicate:
        combined = deduplicate_records(combined, dedup_key)

    ordered = sort_records(combined, sort)

    end = global_offset + page_size
    page = ordered[global_offset:end]

    next_cursor = None
    if len(ordered) > end:
        consumed = Counter(record.chainId for record in ordered[:end])
        next_cursor = encode_cursor(Cursor(globalOffset=end, sourceOffsets=dict(consumed)))

    return MergedPage(items=page, next_cursor=next_cursor, total=len(ordered))
