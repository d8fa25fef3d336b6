"""
Per-source query clients.

SubgraphClient speaks GraphQL to one agent0 subgraph. SubgraphSourceClient
adapts it to the SourceQueryClient contract used by the federated search
coordinator: translate pushed-down predicates into an `Agent_filter`, fetch
exactly `limit` records from `offset`, and fail loudly on anything it cannot
translate.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import requests

from .constants import DEFAULTS, TIMEOUTS
from .exceptions import (
    EmptyResult,
    ProtocolError,
    SourceUnreachable,
    UnsupportedPredicate,
)
from .models import (
    AgentId,
    AgentRecord,
    ChainId,
    FeedbackRecord,
    FilterSpec,
    Predicate,
    PredicateOp,
    SearchFeedbackParams,
    SortSpec,
)

logger = logging.getLogger(__name__)


AGENT_FIELDS = """
    id
    chainId
    agentId
    owner
    operators
    agentURI
    createdAt
    updatedAt
    totalFeedback
    lastActivity
"""

REGISTRATION_FILE_FIELDS = """
    registrationFile {
        id
        agentId
        name
        description
        image
        active
        x402support
        supportedTrusts
        mcpEndpoint
        mcpVersion
        a2aEndpoint
        a2aVersion
        ens
        did
        agentWallet
        agentWalletChainId
        mcpTools
        mcpPrompts
        mcpResources
        a2aSkills
    }
"""

FEEDBACK_FIELDS = """
    id
    agent { id agentId chainId }
    clientAddress
    score
    tag1
    tag2
    feedbackUri
    isRevoked
    createdAt
    feedbackFile {
        text
        capability
        name
        skill
        task
        tag1
        tag2
    }
"""


class SubgraphClient:
    """Client for querying one agent0 subgraph."""

    def __init__(
        self,
        subgraph_url: str,
        timeout: float = TIMEOUTS["SUBGRAPH_REQUEST"],
        session: Optional[requests.Session] = None,
        source_id: Optional[ChainId] = None,
    ):
        self.subgraph_url = subgraph_url
        self.timeout = timeout
        self.session = session or requests.Session()
        self.source_id = source_id

    def query(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Execute a GraphQL query and return its `data` object.

        Raises:
            SourceUnreachable: On transport failures, timeouts and 5xx/429 responses
            ProtocolError: On GraphQL errors or malformed responses
        """
        try:
            response = self.session.post(
                self.subgraph_url,
                json={"query": query, "variables": variables or {}},
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout as e:
            raise SourceUnreachable(f"Subgraph request timed out: {e}", self.source_id) from e
        except requests.exceptions.RequestException as e:
            raise SourceUnreachable(f"Subgraph request failed: {e}", self.source_id) from e

        if response.status_code == 429 or response.status_code >= 500:
            raise SourceUnreachable(
                f"Subgraph returned HTTP {response.status_code}", self.source_id
            )
        if response.status_code >= 400:
            raise ProtocolError(
                f"Subgraph rejected query: HTTP {response.status_code}", self.source_id
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise ProtocolError(f"Subgraph returned invalid JSON: {e}", self.source_id) from e

        if not isinstance(payload, dict):
            raise ProtocolError("Subgraph returned a non-object response", self.source_id)

        errors = payload.get("errors")
        if errors:
            messages = "; ".join(
                err.get("message", str(err)) if isinstance(err, dict) else str(err)
                for err in errors
            )
            raise ProtocolError(f"Subgraph query failed: {messages}", self.source_id)

        data = payload.get("data")
        if not isinstance(data, dict):
            raise ProtocolError("Subgraph response has no data", self.source_id)
        return data

    def get_agents(
        self,
        where: Optional[Dict[str, Any]] = None,
        first: int = 100,
        skip: int = 0,
        order_by: str = "createdAt",
        order_direction: str = "desc",
        include_registration_file: bool = True,
    ) -> List[Dict[str, Any]]:
        """Query agents with a GraphQL `Agent_filter`."""
        selection = AGENT_FIELDS + (REGISTRATION_FILE_FIELDS if include_registration_file else "")
        query = f"""
            query GetAgents(
                $where: Agent_filter
                $first: Int!
                $skip: Int!
                $orderBy: Agent_orderBy
                $orderDirection: OrderDirection
            ) {{
                agents(
                    where: $where
                    first: $first
                    skip: $skip
                    orderBy: $orderBy
                    orderDirection: $orderDirection
                ) {{
                    {selection}
                }}
            }}
        """
        data = self.query(query, {
            "where": where or {},
            "first": first,
            "skip": skip,
            "orderBy": order_by,
            "orderDirection": order_direction,
        })
        agents = data.get("agents")
        if not isinstance(agents, list):
            raise ProtocolError("Subgraph response is missing 'agents'", self.source_id)
        return agents

    def get_agent_by_id(self, agent_id: AgentId) -> Optional[Dict[str, Any]]:
        """Get one agent by its "chainId:tokenId" id, or None."""
        query = f"""
            query GetAgent($agentId: ID!) {{
                agent(id: $agentId) {{
                    {AGENT_FIELDS}
                    {REGISTRATION_FILE_FIELDS}
                }}
            }}
        """
        data = self.query(query, {"agentId": agent_id})
        return data.get("agent")

    def search_feedback(
        self,
        params: SearchFeedbackParams,
        first: int = 100,
        skip: int = 0,
        order_by: str = "createdAt",
        order_direction: str = "desc",
    ) -> List[Dict[str, Any]]:
        """Query feedback with a GraphQL `Feedback_filter` built from params."""
        query = f"""
            query SearchFeedback(
                $where: Feedback_filter
                $first: Int!
                $skip: Int!
                $orderBy: Feedback_orderBy
                $orderDirection: OrderDirection
            ) {{
                feedbacks(
                    where: $where
                    first: $first
                    skip: $skip
                    orderBy: $orderBy
                    orderDirection: $orderDirection
                ) {{
                    {FEEDBACK_FIELDS}
                }}
            }}
        """
        data = self.query(query, {
            "where": build_feedback_where(params),
            "first": first,
            "skip": skip,
            "orderBy": order_by,
            "orderDirection": order_direction,
        })
        feedbacks = data.get("feedbacks")
        if not isinstance(feedbacks, list):
            raise ProtocolError("Subgraph response is missing 'feedbacks'", self.source_id)
        return feedbacks

    def search_all_feedback(
        self,
        params: SearchFeedbackParams,
        page_size: int = DEFAULTS["FEEDBACK_PAGE_SIZE"],
    ) -> List[Dict[str, Any]]:
        """Page through every feedback entry matching params."""
        results: List[Dict[str, Any]] = []
        skip = 0
        while True:
            page = self.search_feedback(params, first=page_size, skip=skip)
            results.extend(page)
            if len(page) < page_size:
                return results
            skip += page_size


def build_feedback_where(params: SearchFeedbackParams) -> Dict[str, Any]:
    """Translate SearchFeedbackParams into a `Feedback_filter`.

    Tags match either slot: each requested tag becomes two alternatives of a
    top-level `or`, each alternative carrying every other condition.
    """
    where: Dict[str, Any] = {}

    if params.agents:
        where["agent_in"] = list(params.agents)
    if params.reviewers:
        where["clientAddress_in"] = [reviewer.lower() for reviewer in params.reviewers]
    if not params.includeRevoked:
        where["isRevoked"] = False
    if params.minScore is not None:
        where["score_gte"] = params.minScore
    if params.maxScore is not None:
        where["score_lte"] = params.maxScore

    feedback_file_where: Dict[str, Any] = {}
    if params.capabilities:
        feedback_file_where["capability_in"] = list(params.capabilities)
    if params.skills:
        feedback_file_where["skill_in"] = list(params.skills)
    if params.tasks:
        feedback_file_where["task_in"] = list(params.tasks)
    if params.names:
        feedback_file_where["name_in"] = list(params.names)
    if feedback_file_where:
        where["feedbackFile_"] = feedback_file_where

    if params.tags:
        alternatives = []
        for tag in params.tags:
            alternatives.append({**where, "tag1": tag})
            alternatives.append({**where, "tag2": tag})
        return {"or": alternatives}

    return where


class SourceQueryClient(ABC):
    """Query contract for one independent indexing backend."""

    source_id: ChainId

    @abstractmethod
    def query(
        self,
        push_down: FilterSpec,
        sort: SortSpec,
        limit: int,
        offset: int,
    ) -> List[AgentRecord]:
        """Fetch up to `limit` records matching push_down, starting at `offset`.

        Raises:
            SourceUnreachable: Transport failure
            UnsupportedPredicate: A pushed predicate cannot be translated
            EmptyResult: No record matched
            ProtocolError: Malformed response
        """

    @abstractmethod
    def get_agent(self, agent_id: AgentId) -> AgentRecord:
        """Fetch one agent by id. Raises EmptyResult when it does not exist."""

    @abstractmethod
    def fetch_feedback(self, params: SearchFeedbackParams) -> List[FeedbackRecord]:
        """Fetch every feedback entry matching params."""

    def native_order_matches(self, field: str) -> bool:
        """Whether query() returns records in merge order on `field`.

        When this is False the coordinator cannot stop early: it reads the
        whole source and leaves the ranking to the merge.
        """
        return False


# AgentRecord fields the subgraph can order agents by
ORDERABLE_FIELDS = {
    "createdAt": "createdAt",
    "updatedAt": "updatedAt",
    "totalFeedback": "totalFeedback",
    "lastActivity": "lastActivity",
    "agentId": "agentId",
    "name": "registrationFile__name",
}

# Orderable fields the subgraph compares exactly as the merge does. Names are
# excluded: the subgraph compares them case-sensitively, the merge case-folded.
EXACT_ORDER_FIELDS = {"createdAt", "updatedAt", "totalFeedback", "lastActivity", "agentId"}

# Agent-level scalar fields; everything else lives under registrationFile_
_AGENT_LEVEL_FIELDS = {"owner": "owner", "operators": "operators"}
_REGISTRATION_FIELD_NAMES = {
    "name": "name",
    "description": "description",
    "active": "active",
    "x402support": "x402support",
    "ens": "ens",
    "did": "did",
    "walletAddress": "agentWallet",
    "supportedTrusts": "supportedTrusts",
    "a2aSkills": "a2aSkills",
    "mcpTools": "mcpTools",
    "mcpPrompts": "mcpPrompts",
    "mcpResources": "mcpResources",
}
_ENDPOINT_FLAGS = {"mcp": "mcpEndpoint", "a2a": "a2aEndpoint"}
_OP_SUFFIXES = {
    PredicateOp.EQ: "",
    PredicateOp.CONTAINS: "_contains_nocase",
    PredicateOp.IN: "_in",
    PredicateOp.ARRAY_CONTAINS: "_contains",
}


class SubgraphSourceClient(SourceQueryClient):
    """SourceQueryClient backed by an agent0 subgraph."""

    def __init__(self, source_id: ChainId, subgraph_client: SubgraphClient):
        self.source_id = source_id
        self.subgraph_client = subgraph_client

    def _unsupported(self, predicate: Predicate, reason: str) -> UnsupportedPredicate:
        return UnsupportedPredicate(
            f"Chain {self.source_id} cannot push down {predicate.field} "
            f"{predicate.op.value} {predicate.value!r}: {reason}",
            self.source_id,
            predicate,
        )

    def _translate(self, predicate: Predicate) -> Dict[str, Any]:
        """Translate one predicate into an `Agent_filter` fragment."""
        if predicate.field in _ENDPOINT_FLAGS:
            if predicate.op is not PredicateOp.EQ or not isinstance(predicate.value, bool):
                raise self._unsupported(predicate, "endpoint flags only support boolean equality")
            endpoint = _ENDPOINT_FLAGS[predicate.field]
            key = f"{endpoint}_not" if predicate.value else endpoint
            return {"registrationFile_": {key: None}}

        suffix = _OP_SUFFIXES.get(predicate.op)
        if suffix is None:
            raise self._unsupported(predicate, "operator has no subgraph equivalent")

        value = predicate.value
        if predicate.op in (PredicateOp.IN, PredicateOp.ARRAY_CONTAINS):
            value = list(value)

        if predicate.field in _AGENT_LEVEL_FIELDS:
            return {f"{_AGENT_LEVEL_FIELDS[predicate.field]}{suffix}": value}
        if predicate.field in _REGISTRATION_FIELD_NAMES:
            return {"registrationFile_": {f"{_REGISTRATION_FIELD_NAMES[predicate.field]}{suffix}": value}}

        raise self._unsupported(predicate, "unknown field")

    def build_where(self, push_down: FilterSpec) -> Dict[str, Any]:
        """Combine translated predicates into one `Agent_filter`.

        Fragments that would overwrite an existing key are moved into an
        explicit `and` list.
        """
        where: Dict[str, Any] = {}
        conjuncts: List[Dict[str, Any]] = []

        for predicate in push_down:
            fragment = self._translate(predicate)
            for key, value in fragment.items():
                if key == "registrationFile_":
                    nested = where.setdefault("registrationFile_", {})
                    for nested_key, nested_value in value.items():
                        if nested_key in nested:
                            conjuncts.append({"registrationFile_": {nested_key: nested_value}})
                        else:
                            nested[nested_key] = nested_value
                elif key in where:
                    conjuncts.append({key: value})
                else:
                    where[key] = value

        if conjuncts:
            where = {"and": [where] + conjuncts}
        return where

    def _order(self, sort: SortSpec):
        if sort.keys:
            first_key = sort.keys[0]
            order_by = ORDERABLE_FIELDS.get(first_key.field)
            if order_by is not None:
                return order_by, "desc" if first_key.descending else "asc"
            logger.debug(
                f"Chain {self.source_id}: cannot order by {first_key.field}, "
                f"fetching by createdAt"
            )
        return "createdAt", "desc"

    def native_order_matches(self, field: str) -> bool:
        return field in EXACT_ORDER_FIELDS

    def query(
        self,
        push_down: FilterSpec,
        sort: SortSpec,
        limit: int,
        offset: int,
    ) -> List[AgentRecord]:
        where = self.build_where(push_down)
        order_by, order_direction = self._order(sort)

        agents = self.subgraph_client.get_agents(
            where=where or None,
            first=limit,
            skip=offset,
            order_by=order_by,
            order_direction=order_direction,
        )
        if not agents:
            raise EmptyResult(f"No agents matched on chain {self.source_id}", self.source_id)

        records = []
        for agent_data in agents:
            if not isinstance(agent_data, dict):
                raise ProtocolError(f"Malformed agent entry: {agent_data!r}", self.source_id)
            records.append(AgentRecord.from_subgraph(agent_data, chain_id=self.source_id))
        return records

    def get_agent(self, agent_id: AgentId) -> AgentRecord:
        agent_data = self.subgraph_client.get_agent_by_id(agent_id)
        if agent_data is None:
            raise EmptyResult(f"Agent {agent_id} not found on chain {self.source_id}", self.source_id)
        return AgentRecord.from_subgraph(agent_data, chain_id=self.source_id)

    def fetch_feedback(self, params: SearchFeedbackParams) -> List[FeedbackRecord]:
        feedbacks = self.subgraph_client.search_all_feedback(params)
        return [FeedbackRecord.from_subgraph(fb) for fb in feedbacks if isinstance(fb, dict)]
