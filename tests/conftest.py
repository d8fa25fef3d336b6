"""
Shared fixtures: subgraph-shaped agent/feedback data and mock subgraph clients.
"""

import time
from unittest.mock import Mock

import pytest

from agent0_search.core.indexer import AgentIndexer
from agent0_search.core.sources import SourceRegistry
from agent0_search.core.subgraph_client import SubgraphSourceClient

ETH_SEPOLIA = 11155111
BASE_SEPOLIA = 84532
POLYGON_AMOY = 80002


def make_agent(chain_id, token_id, name, description="", created_at=1700000000, owner="0xabc123", total_feedback=0, **reg_fields):
    """Raw subgraph `Agent` entity."""
    registration_file = {
        'name': name,
        'description': description,
        'active': True,
        'x402support': False,
        'supportedTrusts': [],
        'mcpEndpoint': None,
        'a2aEndpoint': None,
        'mcpTools': [],
        'a2aSkills': [],
        'mcpPrompts': [],
        'mcpResources': [],
    }
    registration_file.update(reg_fields)
    return {
        'id': f'{chain_id}:{token_id}',
        'chainId': str(chain_id),
        'agentId': str(token_id),
        'owner': owner,
        'operators': [],
        'totalFeedback': str(total_feedback),
        'createdAt': str(created_at),
        'updatedAt': str(created_at + 100),
        'registrationFile': registration_file,
    }


def make_feedback(agent_id, reviewer, index, score, tag1=None, tag2=None, revoked=False, created_at=1700000000, **file_fields):
    """Raw subgraph `Feedback` entity."""
    chain_id, token_id = agent_id.split(':')
    feedback_file = {'text': None, 'capability': None, 'name': None, 'skill': None, 'task': None}
    feedback_file.update(file_fields)
    return {
        'id': f'{agent_id}:{reviewer}:{index}',
        'agent': {'id': agent_id, 'agentId': token_id, 'chainId': chain_id},
        'clientAddress': reviewer,
        'score': score,
        'tag1': tag1,
        'tag2': tag2,
        'feedbackUri': None,
        'isRevoked': revoked,
        'createdAt': str(created_at),
        'feedbackFile': feedback_file,
    }


def _order_value(agent, order_by):
    if order_by == 'registrationFile__name':
        return (agent.get('registrationFile') or {}).get('name') or ''
    return int(agent.get(order_by) or 0)


def mock_subgraph_client(agents, feedback=(), error=None, delay=0.0):
    """Mock SubgraphClient that orders and pages like a subgraph; where clauses are ignored.

    Ties on the order field are broken by entity id, as a string.
    """
    client = Mock()

    def get_agents(where=None, first=100, skip=0, order_by="createdAt", order_direction="desc", **kwargs):
        if delay:
            time.sleep(delay)
        if error is not None:
            raise error
        ordered = sorted(agents, key=lambda a: a['id'])
        ordered.sort(key=lambda a: _order_value(a, order_by), reverse=order_direction == 'desc')
        return ordered[skip:skip + first]

    def get_agent_by_id(agent_id):
        return next((a for a in agents if a['id'] == agent_id), None)

    def search_all_feedback(params, page_size=1000):
        entries = [
            f for f in feedback
            if not params.agents or f['agent']['id'] in params.agents
        ]
        if not params.includeRevoked:
            entries = [f for f in entries if not f['isRevoked']]
        return entries

    client.get_agents = Mock(side_effect=get_agents)
    client.get_agent_by_id = Mock(side_effect=get_agent_by_id)
    client.search_all_feedback = Mock(side_effect=search_all_feedback)
    return client


def register_chain(indexer, chain_id, agents, feedback=(), error=None, delay=0.0):
    """Bind a mock-backed SubgraphSourceClient to `chain_id`; returns the mock."""
    subgraph_client = mock_subgraph_client(agents, feedback, error=error, delay=delay)
    indexer.registry.register_client(chain_id, SubgraphSourceClient(chain_id, subgraph_client))
    return subgraph_client


@pytest.fixture
def registry():
    """Registry with no default chains and an empty environment."""
    return SourceRegistry(include_defaults=False, environ={})


@pytest.fixture
def indexer(registry):
    return AgentIndexer(source_registry=registry, timeout=5.0)


@pytest.fixture
def mock_subgraph_responses():
    """Mock subgraph responses for different chains."""
    return {
        ETH_SEPOLIA: [
            make_agent(
                ETH_SEPOLIA, 1, 'Agent Alpha', 'Test agent on Ethereum',
                created_at=1700000000, owner='0xabc123', total_feedback=5,
                supportedTrusts=['reputation'],
                mcpEndpoint='https://agent-alpha.example.com/mcp',
                mcpTools=['code_generation', 'analysis'],
            ),
            make_agent(
                ETH_SEPOLIA, 2, 'Agent Beta', 'Another test agent',
                created_at=1700000200, owner='0xdef456', total_feedback=3, x402support=True,
                supportedTrusts=['reputation', 'crypto-economic'],
                a2aEndpoint='https://agent-beta.example.com/a2a',
                a2aSkills=['translation', 'summarization'],
            ),
        ],
        BASE_SEPOLIA: [
            make_agent(
                BASE_SEPOLIA, 1, 'Agent Gamma', 'Base network agent',
                created_at=1700000400, owner='0xghi789', total_feedback=10,
                supportedTrusts=['reputation'],
                mcpEndpoint='https://agent-gamma.example.com/mcp',
                a2aEndpoint='https://agent-gamma.example.com/a2a',
                mcpTools=['data_analysis'], a2aSkills=['research'],
            ),
        ],
        POLYGON_AMOY: [
            make_agent(
                POLYGON_AMOY, 1, 'Agent Delta', 'Amoy network agent',
                created_at=1700000600, owner='0xjkl012', total_feedback=2, x402support=True,
                supportedTrusts=['tee-attestation'],
                mcpEndpoint='https://agent-delta.example.com/mcp',
                mcpTools=['security_audit'],
            ),
        ],
    }
