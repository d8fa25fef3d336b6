"""
Main SDK class for Agent0 search.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from .constants import DEFAULTS, TIMEOUTS
from .feedback_manager import FeedbackManager
from .filters import SourceCapabilities
from .indexer import AgentIndexer
from .models import (
    AgentId, ChainId, Address,
    AgentRecord, FeedbackRecord, ReputationSummary, SearchParams, SearchResult,
)
from .sources import SourceRegistry
from .subgraph_client import SubgraphClient
from .utils import format_agent_id, parse_agent_id


class SDK:
    """Read-only entry point: agent search, feedback search and reputation."""

    def __init__(
        self,
        chainId: ChainId,
        subgraphOverrides: Optional[Dict[ChainId, str]] = None,  # Override subgraph URLs per chain
        sourceCapabilities: Optional[Dict[ChainId, SourceCapabilities]] = None,
        timeout: float = TIMEOUTS["MULTI_CHAIN_SEARCH"],
    ):
        """Initialize the SDK.

        chainId is the default chain for agent ids given without a prefix.
        """
        self.chainId = chainId
        self._subgraph_urls: Dict[ChainId, str] = dict(subgraphOverrides or {})

        self.registry = SourceRegistry(
            subgraph_url_overrides=self._subgraph_urls,
            capabilities=sourceCapabilities,
        )
        self.indexer = AgentIndexer(source_registry=self.registry, timeout=timeout)
        self.feedback_manager = FeedbackManager(self.indexer, default_chain_id=chainId)

    def chain_id(self) -> ChainId:
        """Get default chain ID."""
        return self.chainId

    def get_subgraph_client(self, chain_id: Optional[ChainId] = None) -> Optional[SubgraphClient]:
        """
        Get subgraph client for a specific chain.

        Args:
            chain_id: Chain ID (defaults to the SDK's chain)

        Returns:
            SubgraphClient instance or None if no subgraph available
        """
        target_chain = chain_id if chain_id is not None else self.chainId
        url = self.registry.get_url(target_chain)
        if url:
            return SubgraphClient(url, source_id=target_chain)
        return None

    def _full_agent_id(self, agentId: AgentId) -> AgentId:
        chain_id, token_id = parse_agent_id(agentId)
        return format_agent_id(chain_id if chain_id is not None else self.chainId, token_id)

    # Agent search
    def getAgent(self, agentId: AgentId) -> AgentRecord:
        """Get one agent. A bare token id refers to the SDK's chain."""
        return self.indexer.get_agent(self._full_agent_id(agentId))

    def searchAgents(
        self,
        params: Union[SearchParams, Dict[str, Any], None] = None,
        sort: Union[str, List[str], None] = None,
        page_size: int = DEFAULTS["SEARCH_PAGE_SIZE"],
        cursor: Optional[str] = None,
        **kwargs  # Accept search criteria as kwargs for better DX
    ) -> SearchResult:
        """Search for agents across every configured chain (or params.chains).

        Examples:
            sdk.searchAgents(name="Test")
            sdk.searchAgents(mcpTools=["code_generation"], chains=[11155111, 84532])
            sdk.searchAgents(SearchParams(name="Test"), page_size=10)

            # Next page
            result = sdk.searchAgents(name="Test")
            sdk.searchAgents(name="Test", cursor=result.nextCursor)
        """
        # If kwargs provided, use them instead of params
        if kwargs and params is None:
            params = SearchParams(**kwargs)
        elif params is None:
            params = SearchParams()
        elif isinstance(params, dict):
            params = SearchParams(**params)

        if sort is None:
            sort = ["updatedAt:desc"]
        elif isinstance(sort, str):
            sort = [sort]

        return self.indexer.search_agents(params, sort, page_size, cursor)

    def searchAgentsByReputation(
        self,
        agents: Optional[List[AgentId]] = None,
        tags: Optional[List[str]] = None,
        reviewers: Optional[List[Address]] = None,
        capabilities: Optional[List[str]] = None,
        skills: Optional[List[str]] = None,
        tasks: Optional[List[str]] = None,
        names: Optional[List[str]] = None,
        minAverageScore: Optional[int] = None,  # 0-100
        includeRevoked: bool = False,
        page_size: int = DEFAULTS["SEARCH_PAGE_SIZE"],
        cursor: Optional[str] = None,
        sort: Optional[List[str]] = None,
        chains: Union[List[ChainId], str, None] = None,
    ) -> SearchResult:
        """Search agents filtered by reputation criteria.

        Each returned agent carries extras["averageScore"] and
        extras["feedbackCount"].
        """
        return self.indexer.search_agents_by_reputation(
            agents=[self._full_agent_id(a) for a in agents] if agents else None,
            tags=tags,
            reviewers=[r.lower() for r in reviewers] if reviewers else None,
            capabilities=capabilities,
            skills=skills,
            tasks=tasks,
            names=names,
            min_average_score=minAverageScore,
            include_revoked=includeRevoked,
            page_size=page_size,
            cursor=cursor,
            sort=sort,
            chains=chains,
        )

    # Feedback methods - delegate to feedback_manager
    def searchFeedback(
        self,
        agentId: AgentId,
        reviewers: Optional[List[Address]] = None,
        tags: Optional[List[str]] = None,
        capabilities: Optional[List[str]] = None,
        skills: Optional[List[str]] = None,
        tasks: Optional[List[str]] = None,
        names: Optional[List[str]] = None,
        minScore: Optional[int] = None,
        maxScore: Optional[int] = None,
        include_revoked: bool = False,
    ) -> List[FeedbackRecord]:
        """Search feedback for an agent."""
        return self.feedback_manager.searchFeedback(
            agentId=agentId,
            clientAddresses=reviewers,
            tags=tags,
            capabilities=capabilities,
            skills=skills,
            tasks=tasks,
            names=names,
            minScore=minScore,
            maxScore=maxScore,
            include_revoked=include_revoked,
        )

    def getReputationSummary(
        self,
        agentId: AgentId,
        clientAddresses: Optional[List[Address]] = None,
        tag1: Optional[str] = None,
        tag2: Optional[str] = None,
        groupBy: Optional[List[str]] = None,
        includeRevoked: bool = False,
    ) -> ReputationSummary:
        """Get reputation summary for an agent."""
        return self.feedback_manager.getReputationSummary(
            agentId,
            clientAddresses=clientAddresses,
            tag1=tag1,
            tag2=tag2,
            groupBy=groupBy,
            include_revoked=includeRevoked,
        )
