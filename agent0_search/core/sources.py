"""
Source registry: which chains can be queried, and how.

Resolution order for a chain's subgraph URL:
1. Constructor-provided overrides
2. DEFAULT_SUBGRAPH_URLS
3. Environment variable SUBGRAPH_URL_<chainId>
"""

from __future__ import annotations

import logging
import os
import threading
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Union

from .constants import DEFAULT_SUBGRAPH_URLS, SUBGRAPH_URL_ENV_PREFIX
from .exceptions import MisconfiguredSource
from .filters import SourceCapabilities, load_default_capabilities
from .models import ChainId
from .subgraph_client import SourceQueryClient, SubgraphClient, SubgraphSourceClient

logger = logging.getLogger(__name__)

ClientFactory = Callable[[ChainId, str], SourceQueryClient]


def subgraph_client_factory(chain_id: ChainId, url: str) -> SourceQueryClient:
    return SubgraphSourceClient(chain_id, SubgraphClient(url, source_id=chain_id))


class SourceRegistry:
    """Resolves chain ids to query clients, memoizing one client per chain."""

    def __init__(
        self,
        subgraph_url_overrides: Optional[Mapping[ChainId, str]] = None,
        capabilities: Optional[Mapping[ChainId, SourceCapabilities]] = None,
        client_factory: Optional[ClientFactory] = None,
        environ: Optional[Mapping[str, str]] = None,
        include_defaults: bool = True,
    ):
        self.subgraph_url_overrides: Dict[ChainId, str] = dict(subgraph_url_overrides or {})
        self._capabilities: Dict[ChainId, SourceCapabilities] = dict(capabilities or {})
        self._client_factory = client_factory or subgraph_client_factory
        self._environ = environ if environ is not None else os.environ
        self._defaults: Mapping[ChainId, str] = DEFAULT_SUBGRAPH_URLS if include_defaults else {}
        self._clients: Dict[ChainId, SourceQueryClient] = {}
        self._lock = threading.Lock()

    def get_url(self, chain_id: ChainId) -> Optional[str]:
        if chain_id in self.subgraph_url_overrides:
            return self.subgraph_url_overrides[chain_id]

        if chain_id in self._defaults:
            return self._defaults[chain_id]

        env_key = f"{SUBGRAPH_URL_ENV_PREFIX}{chain_id}"
        env_url = self._environ.get(env_key)
        if env_url:
            logger.info(f"Using subgraph URL from environment: {env_key}={env_url}")
            return env_url

        return None

    def configured_sources(self) -> List[ChainId]:
        """All chains with a subgraph URL, sorted."""
        chains = set(self._defaults.keys())
        chains.update(self.subgraph_url_overrides.keys())
        chains.update(self._clients.keys())

        for key, value in self._environ.items():
            if key.startswith(SUBGRAPH_URL_ENV_PREFIX) and value:
                try:
                    chains.add(int(key[len(SUBGRAPH_URL_ENV_PREFIX):]))
                except ValueError:
                    pass

        return sorted(chains)

    def resolve_sources(
        self,
        sources: Union[Sequence[ChainId], str, None],
    ) -> List[ChainId]:
        """Expand "all"/None and validate an explicit source list.

        Raises:
            MisconfiguredSource: If a named chain has no subgraph URL, or no
                chain is configured at all
        """
        if sources is None or sources == "all":
            chains = self.configured_sources()
            if not chains:
                raise MisconfiguredSource("No sources configured")
            return chains

        if isinstance(sources, str):
            raise MisconfiguredSource(f"Invalid source selector: {sources!r}")

        requested: List[ChainId] = []
        for chain_id in sources:
            if chain_id not in requested:
                requested.append(chain_id)
        if not requested:
            raise MisconfiguredSource("Empty source list")

        missing = [
            chain_id for chain_id in requested
            if chain_id not in self._clients and self.get_url(chain_id) is None
        ]
        if missing:
            raise MisconfiguredSource(
                f"No subgraph URL configured for chains {missing}. "
                f"Available chains: {self.configured_sources()}",
                missing,
            )
        return requested

    def resolve(self, chain_id: ChainId) -> SourceQueryClient:
        """Get (or create on first use) the query client for a chain."""
        with self._lock:
            client = self._clients.get(chain_id)
            if client is not None:
                return client

            url = self.get_url(chain_id)
            if url is None:
                raise MisconfiguredSource(f"No subgraph URL configured for chain {chain_id}", [chain_id])

            client = self._client_factory(chain_id, url)
            self._clients[chain_id] = client
            logger.info(f"Created query client for chain {chain_id}: {url}")
            return client

    def register_client(self, chain_id: ChainId, client: SourceQueryClient) -> None:
        """Bind a ready-made client to a chain; the chain then counts as configured."""
        with self._lock:
            self._clients[chain_id] = client

    def capabilities_for(self, chain_id: ChainId) -> SourceCapabilities:
        return self._capabilities.get(chain_id) or load_default_capabilities()
