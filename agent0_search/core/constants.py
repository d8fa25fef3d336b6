"""
Default configuration tables for the Agent0 search engine.
"""

from __future__ import annotations

from typing import Dict

# Default subgraph endpoints per chain
DEFAULT_SUBGRAPH_URLS: Dict[int, str] = {
    11155111: "https://gateway.thegraph.com/api/00a452ad3cd1900273ea62c1bf283f93/subgraphs/id/6wQRC7geo9XYAhckfmfo8kbMRLeWU8KQd3XsJqFKmZLT",  # Ethereum Sepolia
    84532: "https://gateway.thegraph.com/api/00a452ad3cd1900273ea62c1bf283f93/subgraphs/id/GjQEDgEKqoh5Yc8MUgxoQoRATEJdEiH7HbocfR1aFiHa",  # Base Sepolia
    80002: "https://gateway.thegraph.com/api/00a452ad3cd1900273ea62c1bf283f93/subgraphs/id/2A1JB18r1mF2VNP4QBH4mmxd74kbHoM6xLXC8ABAKf7j",  # Polygon Amoy
}

# Environment variable prefix for per-chain subgraph URLs (SUBGRAPH_URL_<chainId>)
SUBGRAPH_URL_ENV_PREFIX = "SUBGRAPH_URL_"

# Timeouts in seconds
TIMEOUTS: Dict[str, float] = {
    "MULTI_CHAIN_SEARCH": 30.0,
    "SUBGRAPH_REQUEST": 10.0,
}

DEFAULTS: Dict[str, int] = {
    "SEARCH_PAGE_SIZE": 50,
    # The Graph caps `first` at 1000
    "MAX_SOURCE_WINDOW": 1000,
    "FEEDBACK_PAGE_SIZE": 1000,
}
