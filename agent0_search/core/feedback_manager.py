"""
Feedback and reputation queries for Agent0 search.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from .indexer import AgentIndexer
from .models import (
    AgentId, Address, ChainId,
    FeedbackRecord, ReputationSummary, SearchFeedbackParams,
)
from .reputation import summarize
from .utils import format_agent_id, normalize_address, parse_agent_id

logger = logging.getLogger(__name__)


class FeedbackManager:
    """Read-only feedback search and reputation summaries."""

    def __init__(
        self,
        indexer: AgentIndexer,
        default_chain_id: Optional[ChainId] = None,
    ):
        """Initialize feedback manager.

        default_chain_id is used for agent ids given without a chain prefix.
        """
        self.indexer = indexer
        self.default_chain_id = default_chain_id

    def _resolve_agent(self, agentId: AgentId) -> Tuple[ChainId, AgentId]:
        chain_id, token_id = parse_agent_id(agentId)
        if chain_id is None:
            if self.default_chain_id is None:
                raise ValueError(
                    f"Agent ID {agentId} has no chain prefix and no default chain is set"
                )
            chain_id = self.default_chain_id
        return chain_id, format_agent_id(chain_id, token_id)

    def searchFeedback(
        self,
        agentId: AgentId,
        clientAddresses: Optional[List[Address]] = None,
        tags: Optional[List[str]] = None,
        capabilities: Optional[List[str]] = None,
        skills: Optional[List[str]] = None,
        tasks: Optional[List[str]] = None,
        names: Optional[List[str]] = None,
        minScore: Optional[int] = None,
        maxScore: Optional[int] = None,
        include_revoked: bool = False,
    ) -> List[FeedbackRecord]:
        """Search feedback for an agent.

        Tags match either tag slot; several tags are OR-ed.
        """
        chain_id, full_agent_id = self._resolve_agent(agentId)
        params = SearchFeedbackParams(
            agents=[full_agent_id],
            reviewers=[normalize_address(a) for a in clientAddresses] if clientAddresses else None,
            tags=tags,
            capabilities=capabilities,
            skills=skills,
            tasks=tasks,
            names=names,
            minScore=minScore,
            maxScore=maxScore,
            includeRevoked=include_revoked,
        )
        feedbacks = self.indexer.search_feedback(chain_id, params)
        logger.info(f"Found {len(feedbacks)} feedback entries for agent {full_agent_id}")
        return feedbacks

    def getReputationSummary(
        self,
        agentId: AgentId,
        clientAddresses: Optional[List[Address]] = None,
        tag1: Optional[str] = None,
        tag2: Optional[str] = None,
        groupBy: Optional[List[str]] = None,
        include_revoked: bool = False,
    ) -> ReputationSummary:
        """Get reputation summary for an agent with optional grouping.

        tag1 and tag2 are alternatives: feedback carrying either one, in
        either slot, counts. averageScore is the integer-truncated mean and
        is 0 when count is 0.
        """
        tags = [tag for tag in (tag1, tag2) if tag]
        reviewers = [normalize_address(a) for a in clientAddresses] if clientAddresses else None

        chain_id, full_agent_id = self._resolve_agent(agentId)
        # Tags and revocation are filtered locally by summarize()
        feedbacks = self.indexer.search_feedback(chain_id, SearchFeedbackParams(
            agents=[full_agent_id],
            reviewers=reviewers,
            includeRevoked=True,
        ))

        return summarize(
            feedbacks,
            tag_filter=tags or None,
            include_revoked=include_revoked,
            reviewers=reviewers,
            group_by=groupBy,
        )
