"""
Helpers for agent ids, feedback ids and addresses.
"""

from __future__ import annotations

from typing import Optional, Tuple

from eth_utils import is_address

from .models import AgentId, ChainId, Address


def parse_agent_id(agent_id: AgentId) -> Tuple[Optional[ChainId], str]:
    """Split "chainId:tokenId" into (chainId, tokenId).

    A bare token id yields (None, tokenId).
    """
    agent_id = str(agent_id)
    if ":" not in agent_id:
        return None, agent_id
    chain_part, token_part = agent_id.split(":", 1)
    try:
        chain_id = int(chain_part)
    except ValueError:
        raise ValueError(f"Invalid chain ID in agent ID {agent_id}")
    if not token_part:
        raise ValueError(f"Invalid agent ID format: {agent_id}. Expected format: chainId:tokenId")
    return chain_id, token_part


def format_agent_id(chain_id: ChainId, token_id) -> AgentId:
    return f"{chain_id}:{token_id}"


def normalize_address(address: Address) -> Address:
    """Lower-case an address for subgraph matching.

    Raises:
        ValueError: If the value is not a 20-byte hex address
    """
    if not isinstance(address, str) or not is_address(address):
        raise ValueError(f"Invalid address: {address!r}")
    return "0x" + address[2:].lower()


def parse_feedback_id(feedback_id: str) -> Tuple[AgentId, Address, int]:
    """Parse "agentId:clientAddress:feedbackIndex".

    The agent id may itself contain a colon, so split from the right.
    """
    parts = feedback_id.rsplit(":", 2)
    if len(parts) != 3:
        raise ValueError(f"Invalid feedback ID format: {feedback_id}")
    try:
        feedback_index = int(parts[2])
    except ValueError:
        raise ValueError(f"Invalid feedback index: {parts[2]}")
    return parts[0], parts[1].lower(), feedback_index
