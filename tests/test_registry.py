"""
Tests for the submodule registry and descriptors.
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import pytest

from schema import DiscoveryResult
from submodules.base import DiscoveryModule, OptionSpec, ValidationModule
from submodules.registry import REGISTRY, SubmoduleRegistry


def _noop(entities, config, context):
    return DiscoveryResult()


class TestRegistry:

    def test_loads_every_registered_submodule(self):
        registry = SubmoduleRegistry()
        for key in REGISTRY:
            submodule_type, name = key.split("/")
            descriptor = registry.load(submodule_type, name)
            assert descriptor is not None, key
            assert descriptor.key == key
            assert descriptor.type == submodule_type

    def test_typed_variants(self):
        registry = SubmoduleRegistry()
        assert isinstance(registry.load("discovery", "sitemap"), DiscoveryModule)
        assert isinstance(registry.load("validation", "dedupe"), ValidationModule)

    def test_unknown_is_none(self):
        registry = SubmoduleRegistry()
        assert registry.load("discovery", "nope") is None
        assert registry.load("enrichment", "sitemap") is None

    def test_cached(self):
        registry = SubmoduleRegistry()
        assert registry.load("validation", "url-format") is registry.load("validation", "url-format")

    def test_unimportable_module_is_none(self):
        registry = SubmoduleRegistry({"discovery/broken": "submodules.discovery.does_not_exist"})
        assert registry.load("discovery", "broken") is None

    def test_register_descriptor(self):
        registry = SubmoduleRegistry({})
        custom = DiscoveryModule(id="custom", name="Custom", category="website", description="", execute=_noop)
        registry.register("discovery", "custom", custom)
        assert registry.load("discovery", "custom") is custom
        assert registry.names("discovery") == ["custom"]

    def test_register_rejects_unknown_type(self):
        with pytest.raises(ValueError):
            SubmoduleRegistry({}).register("enrichment", "x", "some.module")

    def test_reload_invalidates(self):
        registry = SubmoduleRegistry({"validation/url-format": "submodules.validation.url_format"})
        before = registry.load("validation", "url-format")
        assert registry.reload("validation") == ["validation/url-format"]
        after = registry.load("validation", "url-format")
        assert after is not None
        assert after is not before

    def test_list_all(self):
        listing = SubmoduleRegistry().list_all()
        assert [d["id"] for d in listing["discovery"]] == ["sitemap", "navigation", "seed-expansion"]
        assert len(listing["validation"]) == 5
        assert list(listing["categories"]) == ["website", "search", "filtering", "dedup"]
        assert "execute" not in listing["discovery"][0]


class TestDescriptor:

    def test_resolve_config_overlays_defaults(self):
        descriptor = DiscoveryModule(
            id="x", name="X", category="website", description="", execute=_noop,
            options=[OptionSpec("max_urls_per_entity", "number", 100), OptionSpec("flag", "boolean", True)],
        )
        assert descriptor.resolve_config({"max_urls_per_entity": 5, "flag": None}) == {
            "max_urls_per_entity": 5,
            "flag": True,
        }

    def test_run_coerces_dicts(self):
        seen = {}

        def capture(entities, config, context):
            seen["entities"] = entities
            return DiscoveryResult()

        descriptor = DiscoveryModule(id="x", name="X", category="website", description="", execute=capture)
        descriptor.run([{"name": "Acme", "website": "acme.test"}])
        entity = seen["entities"][0]
        assert entity.id == "0"
        assert entity.domain == "acme.test"

    def test_to_dict(self):
        data = ValidationModule(
            id="v", name="V", category="filtering", description="d", execute=_noop,
            options=[OptionSpec("mode", "select", "a", ["a", "b"], "Mode")],
        ).to_dict()
        assert data["type"] == "validation"
        assert data["options"] == [{"name": "mode", "type": "select", "default": "a", "values": ["a", "b"], "description": "Mode"}]
