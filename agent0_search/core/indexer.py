"""
Agent indexer: federated search across per-chain subgraphs.

ARCHITECTURAL PURPOSE:
======================

The indexer is the unified entry point for agent discovery over several
independent chains. Each chain is mirrored by its own subgraph; the subgraphs
share no ordering, no snapshot and no cursor. For every logical query the
indexer:

1. Decodes the pagination cursor (a malformed cursor restarts at offset 0).
2. Resolves the target chains (an explicit list, or every configured chain).
3. Splits the filters per chain into push-down and residual predicates.
4. Queries every chain in parallel under one shared deadline. A chain that
   fails or misses the deadline is reported, not fatal; only all chains
   failing is.
5. Applies residual filters and the optional reputation post-filter to each
   chain's batch.
6. Merges, deduplicates, sorts and slices the global stream, and emits the
   next cursor.

Pagination is recompute-from-offset: every page re-reads each chain from its
start, so the cursor only needs the global offset.
"""

from __future__ import annotations

import asyncio
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Union

from .constants import DEFAULTS, TIMEOUTS
from .cursor import decode_cursor_or_start
from .exceptions import AllSourcesFailed, EmptyResult, SourceQueryError
from .filters import SourceCapabilities, apply_residual, split_filters
from .merge import DedupKey, default_dedup_key, merge, normalize_sort, sort_value
from .models import (
    AgentId, ChainId, Address,
    AgentRecord, FeedbackRecord, FilterSpec, Predicate, PredicateOp,
    ReputationSummary, SearchFeedbackParams, SearchMeta, SearchParams,
    SearchResult, SearchTiming, SortSpec,
)
from .reputation import passes_min_average, summarize_by_agent
from .sources import ClientFactory, SourceRegistry
from .subgraph_client import SourceQueryClient
from .utils import parse_agent_id

logger = logging.getLogger(__name__)

Sources = Union[Sequence[ChainId], str, None]


class SourceStatus(Enum):
    SUCCEEDED = "success"
    FAILED = "error"
    TIMED_OUT = "timeout"


@dataclass
class SourceOutcome:
    """What one chain contributed to a request."""
    source_id: ChainId
    status: SourceStatus
    records: List[AgentRecord] = field(default_factory=list)
    error: Optional[BaseException] = None
    elapsed_ms: Optional[int] = None  # None when the deadline passed first


@dataclass(frozen=True)
class ReputationFilter:
    """Reputation post-filter applied to each chain's batch.

    tags, reviewers and the feedback-file fields restrict which feedback
    counts. With a min_average_score, agents without qualifying feedback are
    dropped.
    """
    tags: Optional[Sequence[str]] = None
    reviewers: Optional[Sequence[Address]] = None
    capabilities: Optional[Sequence[str]] = None
    skills: Optional[Sequence[str]] = None
    tasks: Optional[Sequence[str]] = None
    names: Optional[Sequence[str]] = None
    min_average_score: Optional[int] = None
    include_revoked: bool = False

    def feedback_params(self, agent_ids: List[AgentId]) -> SearchFeedbackParams:
        return SearchFeedbackParams(
            agents=agent_ids,
            tags=list(self.tags) if self.tags else None,
            reviewers=list(self.reviewers) if self.reviewers else None,
            capabilities=list(self.capabilities) if self.capabilities else None,
            skills=list(self.skills) if self.skills else None,
            tasks=list(self.tasks) if self.tasks else None,
            names=list(self.names) if self.names else None,
            includeRevoked=self.include_revoked,
        )

    def summary_filters(self) -> Dict[str, Any]:
        return {
            "tag_filter": self.tags,
            "include_revoked": self.include_revoked,
            "reviewers": self.reviewers,
            "capabilities": self.capabilities,
            "skills": self.skills,
            "tasks": self.tasks,
            "names": self.names,
        }


@dataclass(frozen=True)
class _SourceRequest:
    filters: FilterSpec
    sort: SortSpec
    window: int
    reputation: Optional[ReputationFilter] = None


class AgentIndexer:
    """Indexer for agent discovery and search across chains."""

    def __init__(
        self,
        source_registry: Optional[SourceRegistry] = None,
        subgraph_url_overrides: Optional[Dict[ChainId, str]] = None,
        capabilities: Optional[Dict[ChainId, SourceCapabilities]] = None,
        client_factory: Optional[ClientFactory] = None,
        timeout: float = TIMEOUTS["MULTI_CHAIN_SEARCH"],
        max_source_window: int = DEFAULTS["MAX_SOURCE_WINDOW"],
        dedup_key: DedupKey = default_dedup_key,
    ):
        """Initialize indexer with a source registry, or the pieces to build one."""
        self.registry = source_registry or SourceRegistry(
            subgraph_url_overrides=subgraph_url_overrides,
            capabilities=capabilities,
            client_factory=client_factory,
        )
        self.timeout = timeout
        self.max_source_window = max_source_window
        self.dedup_key = dedup_key

    # ------------------------------------------------------------------
    # Federated search
    # ------------------------------------------------------------------

    def search(
        self,
        filters: FilterSpec = (),
        sort: Union[SortSpec, List[str], str, None] = None,
        page_size: int = DEFAULTS["SEARCH_PAGE_SIZE"],
        cursor: Optional[str] = None,
        sources: Sources = "all",
        timeout: Optional[float] = None,
        deduplicate: bool = True,
        reputation: Optional[ReputationFilter] = None,
    ) -> SearchResult:
        """Blocking wrapper around search_async()."""
        return asyncio.run(self.search_async(
            filters=filters,
            sort=sort,
            page_size=page_size,
            cursor=cursor,
            sources=sources,
            timeout=timeout,
            deduplicate=deduplicate,
            reputation=reputation,
        ))

    async def search_async(
        self,
        filters: FilterSpec = (),
        sort: Union[SortSpec, List[str], str, None] = None,
        page_size: int = DEFAULTS["SEARCH_PAGE_SIZE"],
        cursor: Optional[str] = None,
        sources: Sources = "all",
        timeout: Optional[float] = None,
        deduplicate: bool = True,
        reputation: Optional[ReputationFilter] = None,
    ) -> SearchResult:
        """
        Search agents across chains in parallel.

        Args:
            filters: Predicates every returned agent satisfies
            sort: Sort keys ("field:dir" strings or a SortSpec); createdAt:desc by default
            page_size: Number of results per page
            cursor: Cursor from a previous page, or None for the first page
            sources: Chain ids to query, or "all" for every configured chain
            timeout: Deadline in seconds for all chain queries (default: self.timeout)
            deduplicate: Collapse the same agent seen on several chains
            reputation: Optional reputation post-filter

        Returns:
            SearchResult with the page, the next cursor (None once exhausted)
            and per-chain metadata.

        Raises:
            MisconfiguredSource: A requested chain has no subgraph configured
            AllSourcesFailed: No chain answered
        """
        start_time = time.perf_counter()
        if page_size <= 0:
            raise ValueError(f"page_size must be positive, got {page_size}")
        timeout = self.timeout if timeout is None else timeout

        # Step 1: Decode cursor and resolve chains (fails before any dispatch)
        position = decode_cursor_or_start(cursor)
        source_ids = self.registry.resolve_sources(sources)
        sort_spec = normalize_sort(SortSpec.parse(sort))

        # Step 2: Per-chain window; each chain is read from its start
        window = page_size + position.globalOffset + 1
        if window > self.max_source_window:
            logger.warning(
                f"Requested window {window} exceeds per-chain cap {self.max_source_window}; "
                f"results past the cap may be missing"
            )
            window = self.max_source_window
        request = _SourceRequest(filters=tuple(filters), sort=sort_spec, window=window, reputation=reputation)

        # Step 3: Query every chain under one deadline
        logger.info(f"Querying {len(source_ids)} chains in parallel: {source_ids}")
        outcomes = await self._dispatch(source_ids, request, timeout)

        # Step 4: Collect successes and failures in requested order
        successful = [o for o in outcomes if o.status is SourceStatus.SUCCEEDED]
        failed = [o for o in outcomes if o.status is not SourceStatus.SUCCEEDED]

        logger.info(
            f"Multi-chain query: {len(successful)} successful, {len(failed)} failed, "
            f"{sum(len(o.records) for o in successful)} total agents"
        )

        if not successful:
            raise AllSourcesFailed({o.source_id: o.error for o in outcomes})

        # Step 5: Merge, dedup, sort and slice
        page = merge(
            [o.records for o in successful],
            sort_spec,
            page_size,
            global_offset=position.globalOffset,
            dedup_key=self.dedup_key,
            deduplicate=deduplicate,
        )

        # Step 6: Metadata
        per_source_ms = {o.source_id: o.elapsed_ms for o in outcomes if o.elapsed_ms is not None}
        successful_ms = [o.elapsed_ms for o in successful]
        timing = SearchTiming(
            totalMs=int((time.perf_counter() - start_time) * 1000),
            averagePerSourceMs=int(sum(successful_ms) / len(successful_ms)),
            perSourceMs=per_source_ms,
        )
        meta = SearchMeta(
            sources=list(source_ids),
            successfulSources=[o.source_id for o in successful],
            failedSources=[o.source_id for o in failed],
            totalResults=page.total,
            errors={o.source_id: str(o.error) for o in failed},
            timing=timing,
        )

        return SearchResult(items=page.items, nextCursor=page.next_cursor, meta=meta)

    async def _dispatch(
        self,
        source_ids: List[ChainId],
        request: _SourceRequest,
        timeout: float,
    ) -> List[SourceOutcome]:
        """Run one query per chain on worker threads; wait at most `timeout`."""
        loop = asyncio.get_running_loop()
        executor = ThreadPoolExecutor(max_workers=len(source_ids), thread_name_prefix="agent0-search")
        try:
            tasks = {
                source_id: loop.run_in_executor(executor, self._query_source, source_id, request)
                for source_id in source_ids
            }
            done, pending = await asyncio.wait(tasks.values(), timeout=timeout)

            outcomes = []
            for source_id, task in tasks.items():
                if task in done:
                    outcomes.append(task.result())
                    continue
                task.cancel()
                logger.warning(f"Chain {source_id} query timed out after {timeout}s")
                outcomes.append(SourceOutcome(
                    source_id=source_id,
                    status=SourceStatus.TIMED_OUT,
                    error=TimeoutError(f"Query timed out after {timeout}s"),
                ))
            return outcomes
        finally:
            # Abandoned queries finish in the background; do not wait for them
            executor.shutdown(wait=False, cancel_futures=True)

    def _query_source(self, source_id: ChainId, request: _SourceRequest) -> SourceOutcome:
        """Fetch one chain's filtered batch. Runs on a worker thread."""
        started = time.perf_counter()

        def elapsed_ms() -> int:
            return int((time.perf_counter() - started) * 1000)

        try:
            client = self.registry.resolve(source_id)
            push_down, residual = split_filters(request.filters, self.registry.capabilities_for(source_id))
            records = self._collect(client, push_down, residual, request)
        except SourceQueryError as e:
            logger.warning(f"Chain {source_id} query failed: {e}")
            return SourceOutcome(source_id, SourceStatus.FAILED, error=e, elapsed_ms=elapsed_ms())
        except Exception as e:
            logger.error(f"Error querying chain {source_id}: {e}", exc_info=True)
            return SourceOutcome(source_id, SourceStatus.FAILED, error=e, elapsed_ms=elapsed_ms())

        logger.info(f"Chain {source_id}: {len(records)} agents after filtering")
        return SourceOutcome(source_id, SourceStatus.SUCCEEDED, records=records, elapsed_ms=elapsed_ms())

    def _collect(
        self,
        client: SourceQueryClient,
        push_down: FilterSpec,
        residual: FilterSpec,
        request: _SourceRequest,
    ) -> List[AgentRecord]:
        """Read a chain's share of the merged stream.

        When the chain returns records in merge order on the primary sort key,
        reading stops once `window` records survive local filtering, plus the
        records tied with the last one read (the chain breaks ties its own
        way). Otherwise the chain's order says nothing about rank, so it is
        read to exhaustion, up to the per-chain cap.
        """
        primary = request.sort.keys[0].field
        ordered = client.native_order_matches(primary)
        wanted = request.window if ordered else self.max_source_window
        if not ordered:
            logger.debug(f"Chain {client.source_id}: cannot rank by {primary} natively, reading every agent")

        collected: List[AgentRecord] = []
        scanned = 0

        while True:
            limit = min(wanted, self.max_source_window - scanned)
            batch = self._fetch(client, push_down, request.sort, limit, scanned)
            scanned += len(batch)
            collected.extend(self._keep(client, batch, residual, request.reputation))

            if len(batch) < limit:
                return collected
            if ordered and len(collected) >= wanted:
                boundary = sort_value(batch[-1], primary)
                return collected + self._collect_ties(client, push_down, residual, request, scanned, boundary)
            if scanned >= self.max_source_window:
                logger.warning(
                    f"Chain {client.source_id}: scanned {scanned} agents, "
                    f"stopping with {len(collected)} matches"
                )
                return collected

    def _collect_ties(
        self,
        client: SourceQueryClient,
        push_down: FilterSpec,
        residual: FilterSpec,
        request: _SourceRequest,
        offset: int,
        boundary: Any,
    ) -> List[AgentRecord]:
        """Records from `offset` on whose primary sort value equals `boundary`."""
        primary = request.sort.keys[0].field
        tied: List[AgentRecord] = []

        while offset < self.max_source_window:
            limit = min(request.window, self.max_source_window - offset)
            batch = self._fetch(client, push_down, request.sort, limit, offset)
            offset += len(batch)

            run = []
            for record in batch:
                if sort_value(record, primary) != boundary:
                    break
                run.append(record)
            tied.extend(self._keep(client, run, residual, request.reputation))

            if len(run) < len(batch) or len(batch) < limit:
                return tied

        logger.warning(f"Chain {client.source_id}: agents tied on {primary} run past the per-chain cap")
        return tied

    @staticmethod
    def _fetch(
        client: SourceQueryClient,
        push_down: FilterSpec,
        sort: SortSpec,
        limit: int,
        offset: int,
    ) -> List[AgentRecord]:
        try:
            return client.query(push_down, sort, limit, offset)
        except EmptyResult:
            return []

    def _keep(
        self,
        client: SourceQueryClient,
        batch: List[AgentRecord],
        residual: FilterSpec,
        reputation: Optional[ReputationFilter],
    ) -> List[AgentRecord]:
        kept = apply_residual(batch, residual)
        if reputation is not None and kept:
            kept = self._apply_reputation(client, kept, reputation)
        return kept

    def _apply_reputation(
        self,
        client: SourceQueryClient,
        records: List[AgentRecord],
        reputation: ReputationFilter,
    ) -> List[AgentRecord]:
        """Attach averageScore/feedbackCount to extras; drop agents below the minimum."""
        feedback = client.fetch_feedback(reputation.feedback_params([r.agentId for r in records]))
        summaries = summarize_by_agent(feedback, **reputation.summary_filters())

        kept = []
        for record in records:
            summary = summaries.get(record.agentId, ReputationSummary())
            if not passes_min_average(summary, reputation.min_average_score):
                continue
            kept.append(replace(
                record,
                extras=record.extras.with_updates(
                    averageScore=summary.averageScore,
                    feedbackCount=summary.count,
                ),
            ))

        if len(kept) != len(records):
            logger.info(f"Chain {client.source_id}: reputation filter kept {len(kept)} of {len(records)} agents")
        return kept

    # ------------------------------------------------------------------
    # Convenience entry points
    # ------------------------------------------------------------------

    def search_agents(
        self,
        params: SearchParams,
        sort: Optional[List[str]] = None,
        page_size: int = DEFAULTS["SEARCH_PAGE_SIZE"],
        cursor: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> SearchResult:
        """Search for agents with SearchParams; params.chains selects the chains."""
        return self.search(
            filters=params.to_filter_spec(),
            sort=sort,
            page_size=page_size,
            cursor=cursor,
            sources=params.chains if params.chains else "all",
            timeout=timeout,
            deduplicate=params.deduplicate_cross_chain,
        )

    def search_agents_by_reputation(
        self,
        agents: Optional[List[AgentId]] = None,
        tags: Optional[List[str]] = None,
        reviewers: Optional[List[Address]] = None,
        capabilities: Optional[List[str]] = None,
        skills: Optional[List[str]] = None,
        tasks: Optional[List[str]] = None,
        names: Optional[List[str]] = None,
        min_average_score: Optional[int] = None,
        include_revoked: bool = False,
        page_size: int = DEFAULTS["SEARCH_PAGE_SIZE"],
        cursor: Optional[str] = None,
        sort: Optional[List[str]] = None,
        chains: Sources = None,
        timeout: Optional[float] = None,
    ) -> SearchResult:
        """Search agents by reputation.

        Every returned agent carries extras["averageScore"] and
        extras["feedbackCount"]. With min_average_score set, agents without
        qualifying feedback are excluded whatever the threshold.
        """
        filters: List[Predicate] = []
        if agents:
            filters.append(Predicate("agentId", PredicateOp.IN, list(agents)))
            if not chains:
                agent_chains = sorted({c for c, _ in map(parse_agent_id, agents) if c is not None})
                if agent_chains:
                    chains = agent_chains

        reputation = ReputationFilter(
            tags=tags,
            reviewers=reviewers,
            capabilities=capabilities,
            skills=skills,
            tasks=tasks,
            names=names,
            min_average_score=min_average_score,
            include_revoked=include_revoked,
        )
        return self.search(
            filters=tuple(filters),
            sort=sort or ["averageScore:desc"],
            page_size=page_size,
            cursor=cursor,
            sources=chains if chains else "all",
            timeout=timeout,
            reputation=reputation,
        )

    def get_agent(self, agent_id: AgentId) -> AgentRecord:
        """Get one agent by "chainId:tokenId".

        Raises:
            ValueError: If the id has no chain prefix
            MisconfiguredSource: If the chain has no subgraph configured
            EmptyResult: If the agent does not exist
        """
        chain_id, _ = parse_agent_id(agent_id)
        if chain_id is None:
            raise ValueError(f"Agent ID {agent_id} has no chain prefix. Expected format: chainId:tokenId")
        self.registry.resolve_sources([chain_id])
        return self.registry.resolve(chain_id).get_agent(agent_id)

    def search_feedback(self, chain_id: ChainId, params: SearchFeedbackParams) -> List[FeedbackRecord]:
        """Fetch every feedback entry on one chain matching params."""
        self.registry.resolve_sources([chain_id])
        return self.registry.resolve(chain_id).fetch_feedback(params)
