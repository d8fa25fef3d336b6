"""
Tests for the push-down / residual filter split and local predicate evaluation.
"""

import pytest

from agent0_search.core.filters import (
    SourceCapabilities,
    apply_residual,
    load_default_capabilities,
    matches,
    split_filters,
)
from agent0_search.core.models import AgentRecord, Predicate, PredicateOp, SearchParams


@pytest.fixture
def record():
    return AgentRecord(
        chainId=84532,
        agentId="84532:1",
        tokenId="1",
        name="Agent Gamma",
        description="Base network agent",
        ens="Gamma.eth",
        mcp=True,
        owners=("0xabc",),
        operators=("0xop1", "0xop2"),
        mcpTools=("data_analysis", "search"),
    )


class TestSplitFilters:

    def test_split_preserves_order(self):
        filters = (
            Predicate("name", PredicateOp.CONTAINS, "bot"),
            Predicate("active", PredicateOp.EQ, True),
            Predicate("mcpTools", PredicateOp.ARRAY_CONTAINS_ANY, ["a"]),
            Predicate("mcp", PredicateOp.EQ, True),
        )

        push_down, residual = split_filters(filters, load_default_capabilities())

        assert push_down == (filters[1], filters[3])
        assert residual == (filters[0], filters[2])

    def test_substring_and_contains_any_stay_residual_by_default(self):
        caps = load_default_capabilities()

        assert not caps.supports(Predicate("name", PredicateOp.CONTAINS, "x"))
        assert not caps.supports(Predicate("a2aSkills", PredicateOp.ARRAY_CONTAINS_ANY, ["x"]))
        assert caps.supports(Predicate("owner", PredicateOp.IN, ["0xa", "0xb"]))

    def test_source_can_opt_in(self):
        caps = load_default_capabilities().with_support(("name", PredicateOp.CONTAINS))
        predicate = Predicate("name", PredicateOp.CONTAINS, "bot")

        assert split_filters((predicate,), caps) == ((predicate,), ())
        assert not caps.without_support(("name", PredicateOp.CONTAINS)).supports(predicate)

    def test_no_capabilities_means_all_residual(self):
        filters = SearchParams(mcp=True, name="x").to_filter_spec()

        push_down, residual = split_filters(filters, SourceCapabilities())

        assert push_down == ()
        assert residual == filters

    def test_split_is_deterministic(self):
        filters = SearchParams(mcp=True, name="x", owners=["0xA", "0xB"]).to_filter_spec()
        caps = load_default_capabilities()

        assert split_filters(filters, caps) == split_filters(filters, caps)

    def test_default_capabilities_loaded_once(self):
        assert load_default_capabilities() is load_default_capabilities()


class TestMatches:

    @pytest.mark.parametrize("predicate,expected", [
        (Predicate("mcp", PredicateOp.EQ, True), True),
        (Predicate("mcp", PredicateOp.EQ, False), False),
        (Predicate("ens", PredicateOp.EQ_NOCASE, "gamma.ETH"), True),
        (Predicate("ens", PredicateOp.EQ, "gamma.eth"), False),
        (Predicate("name", PredicateOp.CONTAINS, "GAMMA"), True),
        (Predicate("description", PredicateOp.CONTAINS, "ethereum"), False),
        (Predicate("owner", PredicateOp.IN, ["0xabc", "0xdef"]), True),
        (Predicate("owner", PredicateOp.IN, ["0xdef"]), False),
        (Predicate("operators", PredicateOp.ARRAY_CONTAINS, ["0xop1", "0xop2"]), True),
        (Predicate("operators", PredicateOp.ARRAY_CONTAINS, ["0xop1", "0xop3"]), False),
        (Predicate("mcpTools", PredicateOp.ARRAY_CONTAINS_ANY, ["search", "other"]), True),
        (Predicate("mcpTools", PredicateOp.ARRAY_CONTAINS_ANY, ["other"]), False),
        (Predicate("did", PredicateOp.EQ_NOCASE, "did:x"), False),
    ])
    def test_predicates(self, record, predicate, expected):
        assert matches(record, predicate) is expected

    def test_apply_residual_keeps_matching_records(self, record):
        other = AgentRecord(chainId=1, agentId="1:2", tokenId="2", name="Other")
        residual = (Predicate("name", PredicateOp.CONTAINS, "gamma"),)

        assert apply_residual([record, other], residual) == [record]
        assert apply_residual([record, other], ()) == [record, other]
