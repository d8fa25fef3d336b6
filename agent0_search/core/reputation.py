"""
Reputation aggregation over raw feedback records.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence

from .models import AgentId, Address, FeedbackRecord, ReputationSummary

logger = logging.getLogger(__name__)


def _truncating_mean(total: int, count: int) -> int:
    if count == 0:
        return 0
    quotient = abs(total) // count
    return quotient if total >= 0 else -quotient


def filter_feedback(
    feedback: Iterable[FeedbackRecord],
    tags: Optional[Sequence[str]] = None,
    include_revoked: bool = False,
    reviewers: Optional[Sequence[Address]] = None,
    capabilities: Optional[Sequence[str]] = None,
    skills: Optional[Sequence[str]] = None,
    tasks: Optional[Sequence[str]] = None,
    names: Optional[Sequence[str]] = None,
) -> List[FeedbackRecord]:
    """Select the feedback that counts towards a summary.

    Tags match exactly (case-sensitive) against either slot, OR-ed across the
    requested tags. The detail filters (capability, skill, task, name) match
    the off-chain feedback file fields.
    """
    wanted_tags = set(tags) if tags else None
    wanted_reviewers = {reviewer.lower() for reviewer in reviewers} if reviewers else None

    selected = []
    seen = 0
    for record in feedback:
        seen += 1
        if record.isRevoked and not include_revoked:
            continue
        if wanted_tags is not None and record.tag1 not in wanted_tags and record.tag2 not in wanted_tags:
            continue
        if wanted_reviewers is not None and record.reviewer.lower() not in wanted_reviewers:
            continue
        if capabilities and record.capability not in capabilities:
            continue
        if skills and record.skill not in skills:
            continue
        if tasks and record.task not in tasks:
            continue
        if names and record.name not in names:
            continue
        selected.append(record)

    logger.debug(f"Feedback filter kept {len(selected)} of {seen} entries")
    return selected


def _summary_of(records: Sequence[FeedbackRecord]) -> ReputationSummary:
    count = len(records)
    total = sum(record.score for record in records)
    return ReputationSummary(count=count, averageScore=_truncating_mean(total, count))


def _group_key(record: FeedbackRecord, group_by: Sequence[str]) -> str:
    key_parts = []
    for dimension in group_by:
        if dimension == "tag":
            key_parts.append(f"tags:{','.join(record.tags)}" if record.tags else "tags:none")
        elif dimension == "capability":
            key_parts.append(f"capability:{record.capability or 'none'}")
        elif dimension == "skill":
            key_parts.append(f"skill:{record.skill or 'none'}")
        elif dimension == "task":
            key_parts.append(f"task:{record.task or 'none'}")
        elif dimension == "time":
            created = datetime.fromtimestamp(record.createdAt, tz=timezone.utc)
            key_parts.append(f"time:{created.strftime('%Y-%m')}")  # monthly buckets
        else:
            key_parts.append(f"{dimension}:unknown")
    return "|".join(key_parts)


def group_feedback(
    records: Sequence[FeedbackRecord],
    group_by: Sequence[str],
) -> Dict[str, ReputationSummary]:
    """Summaries per group key, e.g. {"skill:python|time:2025-01": ...}."""
    buckets: Dict[str, List[FeedbackRecord]] = {}
    for record in records:
        buckets.setdefault(_group_key(record, group_by), []).append(record)
    return {key: _summary_of(bucket) for key, bucket in buckets.items()}


def summarize(
    feedback: Iterable[FeedbackRecord],
    tag_filter: Optional[Sequence[str]] = None,
    include_revoked: bool = False,
    reviewers: Optional[Sequence[Address]] = None,
    capabilities: Optional[Sequence[str]] = None,
    skills: Optional[Sequence[str]] = None,
    tasks: Optional[Sequence[str]] = None,
    names: Optional[Sequence[str]] = None,
    group_by: Optional[Sequence[str]] = None,
) -> ReputationSummary:
    """Count and integer-truncated average score of the qualifying feedback.

    With no qualifying feedback the result is count=0, averageScore=0.
    """
    selected = filter_feedback(
        feedback,
        tags=tag_filter,
        include_revoked=include_revoked,
        reviewers=reviewers,
        capabilities=capabilities,
        skills=skills,
        tasks=tasks,
        names=names,
    )
    summary = _summary_of(selected)
    if group_by:
        return ReputationSummary(
            count=summary.count,
            averageScore=summary.averageScore,
            groups=group_feedback(selected, group_by),
        )
    return summary


def summarize_by_agent(
    feedback: Iterable[FeedbackRecord],
    **filters,
) -> Dict[AgentId, ReputationSummary]:
    """summarize() applied per agent. Agents without feedback are absent."""
    per_agent: Dict[AgentId, List[FeedbackRecord]] = {}
    for record in feedback:
        per_agent.setdefault(record.agentId, []).append(record)
    return {agent_id: summarize(records, **filters) for agent_id, records in per_agent.items()}


def passes_min_average(summary: Optional[ReputationSummary], minimum: Optional[int]) -> bool:
    """Minimum-average check used to post-filter search results.

    An agent without qualifying feedback never passes, whatever the minimum.
    """
    if minimum is None:
        return True
    if summary is None or summary.count == 0:
        return False
    return summary.averageScore >= minimum
