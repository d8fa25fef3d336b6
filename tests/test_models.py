"""
Tests for data models and id/address helpers.
"""

import pytest

from agent0_search.core.models import (
    AgentRecord,
    ExtensionMap,
    FeedbackRecord,
    Predicate,
    PredicateOp,
    SearchParams,
    SortKey,
    SortSpec,
    TrustModel,
)
from agent0_search.core.utils import (
    format_agent_id,
    normalize_address,
    parse_agent_id,
    parse_feedback_id,
)

from conftest import make_agent, make_feedback


class TestExtensionMap:

    @pytest.fixture
    def extras(self):
        return ExtensionMap({"endpoint": "https://x", "count": 3, "flag": True, "items": ["a"], "empty": ""})

    def test_typed_accessors(self, extras):
        assert extras.get_str("endpoint") == "https://x"
        assert extras.get_int("count") == 3
        assert extras.get_bool("flag") is True
        assert extras.get_list("items") == ["a"]

    def test_wrong_type_or_missing_is_absent(self, extras):
        assert extras.get_int("endpoint") is None
        assert extras.get_int("flag") is None
        assert extras.get_str("count") is None
        assert extras.get_bool("missing") is None
        assert extras.get_list("endpoint") is None

    def test_richness_counts_non_empty(self, extras):
        assert extras.richness() == 4

    def test_with_updates_is_a_copy(self, extras):
        updated = extras.with_updates(count=4)

        assert updated.get_int("count") == 4
        assert extras.get_int("count") == 3
        assert updated == {**extras.to_dict(), "count": 4}


class TestAgentRecord:

    def test_from_subgraph(self):
        raw = make_agent(
            84532, 7, "Agent Seven", "desc",
            owner="0xowner",
            mcpEndpoint="https://seven.example.com/mcp",
            mcpVersion="2025-06-18",
            mcpTools=["search"],
            supportedTrusts=["reputation"],
        )

        agent = AgentRecord.from_subgraph(raw)

        assert agent.chainId == 84532
        assert agent.agentId == "84532:7"
        assert agent.tokenId == "7"
        assert agent.mcp is True
        assert agent.a2a is False
        assert agent.mcpTools == ("search",)
        assert agent.owner == "0xowner"
        assert agent.createdAt == 1700000000
        assert agent.extras.to_dict() == {
            "mcpEndpoint": "https://seven.example.com/mcp",
            "mcpVersion": "2025-06-18",
        }

    def test_missing_registration_file(self):
        agent = AgentRecord.from_subgraph({"id": "11155111:3", "owner": None}, chain_id=11155111)

        assert agent.chainId == 11155111
        assert agent.tokenId == "3"
        assert agent.name == "Agent 11155111:3"
        assert agent.owners == ()

    def test_identity_key_orders_tokens_numerically(self):
        low = AgentRecord(chainId=1, agentId="1:9", tokenId="9")
        high = AgentRecord(chainId=1, agentId="1:10", tokenId="10")

        assert low.identity_key < high.identity_key

    def test_to_dict(self):
        agent = AgentRecord.from_subgraph(make_agent(1, 1, "A", mcpTools=["t"]))

        data = agent.to_dict()

        assert data["agentId"] == "1:1"
        assert data["mcpTools"] == ["t"]
        assert data["extras"] == {}


class TestFeedbackRecord:

    def test_from_subgraph(self):
        raw = make_feedback("84532:1", "0xABC", 2, 85, tag1="support", skill="python")

        fb = FeedbackRecord.from_subgraph(raw)

        assert fb.agentId == "84532:1"
        assert fb.reviewer == "0xabc"
        assert fb.score == 85
        assert fb.tags == ["support"]
        assert fb.skill == "python"

    def test_hex_tags_are_decoded(self):
        hex_tag = "0x" + b"billing".hex() + "00" * 25
        raw = make_feedback("1:1", "0xa", 1, 50, tag1=hex_tag, tag2="0x" + "00" * 32)

        fb = FeedbackRecord.from_subgraph(raw)

        assert fb.tag1 == "billing"
        assert fb.tag2 is None


class TestSortSpec:

    def test_parse(self):
        spec = SortSpec.parse(["totalFeedback:desc", "name:asc", "createdAt"])

        assert spec.keys == (
            SortKey("totalFeedback", True),
            SortKey("name", False),
            SortKey("createdAt", True),
        )
        assert spec.to_strings() == ["totalFeedback:desc", "name:asc", "createdAt:desc"]

    def test_bad_direction(self):
        with pytest.raises(ValueError):
            SortSpec.parse("name:sideways")


class TestSearchParams:

    def test_to_filter_spec(self):
        params = SearchParams(
            name="bot",
            owners=["0xABC"],
            operators=["0xOP"],
            supportedTrust=[TrustModel.REPUTATION, "tee-attestation"],
            mcpTools=["search"],
            mcp=True,
            active=None,
        )

        spec = params.to_filter_spec()

        assert spec == (
            Predicate("mcp", PredicateOp.EQ, True),
            Predicate("name", PredicateOp.CONTAINS, "bot"),
            Predicate("owner", PredicateOp.EQ, "0xabc"),
            Predicate("operators", PredicateOp.ARRAY_CONTAINS_ANY, ("0xop",)),
            Predicate("supportedTrusts", PredicateOp.ARRAY_CONTAINS_ANY, ("reputation", "tee-attestation")),
            Predicate("mcpTools", PredicateOp.ARRAY_CONTAINS_ANY, ("search",)),
        )

    def test_active_by_default(self):
        assert SearchParams().to_filter_spec() == (Predicate("active", PredicateOp.EQ, True),)


class TestIds:

    def test_parse_agent_id(self):
        assert parse_agent_id("84532:12") == (84532, "12")
        assert parse_agent_id("12") == (None, "12")
        assert format_agent_id(84532, 12) == "84532:12"

    @pytest.mark.parametrize("bad", ["x:1", "1:"])
    def test_bad_agent_id(self, bad):
        with pytest.raises(ValueError):
            parse_agent_id(bad)

    def test_parse_feedback_id(self):
        assert parse_feedback_id("84532:12:0xABC:3") == ("84532:12", "0xabc", 3)
        with pytest.raises(ValueError):
            parse_feedback_id("84532:12:0xabc:x")

    def test_normalize_address(self):
        checksummed = "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"

        assert normalize_address(checksummed) == checksummed.lower()
        with pytest.raises(ValueError):
            normalize_address("0x123")
