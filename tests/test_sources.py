"""
Tests for source configuration and client resolution.
"""

from unittest.mock import Mock

import pytest

from agent0_search.core.constants import DEFAULT_SUBGRAPH_URLS
from agent0_search.core.exceptions import MisconfiguredSource
from agent0_search.core.filters import SourceCapabilities, load_default_capabilities
from agent0_search.core.sources import SourceRegistry
from agent0_search.core.subgraph_client import SubgraphSourceClient


class TestUrlResolution:

    def test_override_beats_default(self):
        registry = SourceRegistry(subgraph_url_overrides={84532: "https://override.example.com"}, environ={})

        assert registry.get_url(84532) == "https://override.example.com"
        assert registry.get_url(11155111) == DEFAULT_SUBGRAPH_URLS[11155111]

    def test_environment_fallback(self):
        registry = SourceRegistry(environ={"SUBGRAPH_URL_59141": "https://linea.example.com"})

        assert registry.get_url(59141) == "https://linea.example.com"
        assert 59141 in registry.configured_sources()

    def test_unconfigured_chain(self):
        registry = SourceRegistry(environ={})

        assert registry.get_url(1) is None

    def test_configured_sources_sorted(self):
        registry = SourceRegistry(
            subgraph_url_overrides={1: "https://one.example.com"},
            environ={"SUBGRAPH_URL_bogus": "x", "SUBGRAPH_URL_10": ""},
        )

        assert registry.configured_sources() == sorted(set(DEFAULT_SUBGRAPH_URLS) | {1})


class TestResolveSources:

    @pytest.fixture
    def registry(self):
        return SourceRegistry(
            subgraph_url_overrides={1: "https://one.example.com", 2: "https://two.example.com"},
            include_defaults=False,
            environ={},
        )

    def test_all(self, registry):
        assert registry.resolve_sources("all") == [1, 2]
        assert registry.resolve_sources(None) == [1, 2]

    def test_explicit_list_keeps_order_and_drops_repeats(self, registry):
        assert registry.resolve_sources([2, 1, 2]) == [2, 1]

    def test_missing_chain(self, registry):
        with pytest.raises(MisconfiguredSource) as exc_info:
            registry.resolve_sources([1, 3, 4])

        assert exc_info.value.source_ids == [3, 4]

    def test_bad_selectors(self, registry):
        with pytest.raises(MisconfiguredSource):
            registry.resolve_sources("some")
        with pytest.raises(MisconfiguredSource):
            registry.resolve_sources([])

    def test_nothing_configured(self):
        with pytest.raises(MisconfiguredSource):
            SourceRegistry(include_defaults=False, environ={}).resolve_sources("all")


class TestResolveClient:

    def test_clients_are_memoized(self):
        factory = Mock(side_effect=lambda chain_id, url: Mock(source_id=chain_id))
        registry = SourceRegistry(
            subgraph_url_overrides={1: "https://one.example.com"},
            client_factory=factory,
            include_defaults=False,
            environ={},
        )

        first = registry.resolve(1)

        assert registry.resolve(1) is first
        factory.assert_called_once_with(1, "https://one.example.com")

    def test_default_factory_builds_subgraph_client(self):
        registry = SourceRegistry(subgraph_url_overrides={1: "https://one.example.com"}, environ={})

        client = registry.resolve(1)

        assert isinstance(client, SubgraphSourceClient)
        assert client.source_id == 1
        assert client.subgraph_client.subgraph_url == "https://one.example.com"

    def test_unresolvable_chain(self):
        with pytest.raises(MisconfiguredSource):
            SourceRegistry(include_defaults=False, environ={}).resolve(1)

    def test_registered_client_counts_as_configured(self):
        registry = SourceRegistry(include_defaults=False, environ={})
        client = Mock(source_id=7)

        registry.register_client(7, client)

        assert registry.resolve_sources("all") == [7]
        assert registry.resolve(7) is client

    def test_capabilities(self):
        custom = SourceCapabilities()
        registry = SourceRegistry(capabilities={1: custom}, include_defaults=False, environ={})

        assert registry.capabilities_for(1) is custom
        assert registry.capabilities_for(2) is load_default_capabilities()
