"""Tests for the agent Registry."""

import json

import pytest
import yaml

from hive_router.errors import LoadError, NotFound
from hive_router.registry import (
    AgentCategory,
    AgentDescriptor,
    ComplexityClass,
    Registry,
    infer_complexity,
)


class TestRegistryLoad:
    """Tests for loading descriptors."""

    def test_load_from_mappings(self, agent_entries):
        """Test loading descriptors from a list of mappings."""
        registry = Registry()
        loaded = registry.load(agent_entries)

        assert isinstance(loaded, frozenset)
        assert len(loaded) == 4
        assert registry.count() == 4
        assert "frontend-developer" in registry

    def test_load_from_json_file(self, tmp_path, agent_entries):
        """Test loading descriptors from a JSON file."""
        path = tmp_path / "agents.json"
        path.write_text(json.dumps(agent_entries))

        registry = Registry.from_source(path)

        assert len(registry) == 4

    def test_load_from_yaml_file_with_agents_key(self, tmp_path, agent_entries):
        """Test loading an {agents: [...]} YAML document."""
        path = tmp_path / "agents.yaml"
        path.write_text(yaml.safe_dump({"agents": agent_entries}))

        registry = Registry.from_source(str(path))

        assert registry.lookup("security-auditor").complexity == ComplexityClass.HIGH

    def test_missing_id_is_load_error(self):
        """Test that a descriptor without an id is rejected."""
        with pytest.raises(LoadError):
            Registry.from_source([{"name": "nameless", "capabilities": ["writing"]}])

    def test_empty_capabilities_is_load_error(self):
        """Test that a descriptor without capabilities is rejected."""
        with pytest.raises(LoadError):
            Registry.from_source([{"id": "idle", "capabilities": []}])

    def test_duplicate_id_is_load_error(self):
        """Test that duplicate ids are rejected."""
        entries = [
            {"id": "twin", "capabilities": ["writing"]},
            {"id": "twin", "capabilities": ["code-generation"]},
        ]
        with pytest.raises(LoadError):
            Registry.from_source(entries)

    def test_unknown_category_is_load_error(self):
        """Test that categories outside the fixed set are rejected."""
        with pytest.raises(LoadError):
            Registry.from_source([{"id": "x", "category": "astrology", "capabilities": ["writing"]}])

    def test_unreadable_file_is_load_error(self, tmp_path):
        """Test that a missing source file is rejected."""
        with pytest.raises(LoadError):
            Registry.from_source(tmp_path / "missing.json")

    def test_second_load_is_rejected(self, registry, agent_entries):
        """Test that a loaded registry stays read-only."""
        with pytest.raises(LoadError):
            registry.load(agent_entries)

    def test_malformed_entry_leaves_registry_empty(self, agent_entries):
        """Test that one bad entry loads nothing."""
        registry = Registry()
        with pytest.raises(LoadError):
            registry.load(agent_entries + [{"id": "broken", "capabilities": []}])

        assert registry.count() == 0


class TestRegistryQueries:
    """Tests for registry lookups."""

    def test_lookup(self, registry):
        """Test looking up a descriptor by id."""
        descriptor = registry.lookup("frontend-developer")

        assert descriptor.name == "frontend-developer"
        assert descriptor.capabilities == frozenset({"code-generation"})

    def test_lookup_unknown_raises_not_found(self, registry):
        """Test that unknown ids raise NotFound, which is also a KeyError."""
        with pytest.raises(NotFound) as excinfo:
            registry.lookup("nobody")

        assert isinstance(excinfo.value, KeyError)
        assert "nobody" in str(excinfo.value)
        assert registry.get("nobody") is None

    def test_by_category_is_ordered_by_id(self, registry):
        """Test listing descriptors by category."""
        development = registry.by_category(AgentCategory.DEVELOPMENT)

        assert [d.id for d in development] == ["frontend-developer", "reference-builder"]
        assert registry.by_category("security")[0].id == "security-auditor"

    def test_by_category_unknown_is_empty(self, registry):
        """Test that unknown or empty categories give an empty sequence."""
        assert registry.by_category("astrology") == ()
        assert registry.by_category(AgentCategory.DATABASE) == ()

    def test_by_capability(self, registry):
        """Test looking up descriptor ids by capability."""
        assert registry.by_capability("Code-Generation") == (
            "frontend-developer",
            "reference-builder",
            "seo-specialist",
        )

    def test_list_all(self, registry):
        """Test that all descriptors are listed in id order."""
        ids = [d.id for d in registry.list_all()]

        assert ids == sorted(ids)
        assert len(ids) == 4


class TestDescriptor:
    """Tests for AgentDescriptor."""

    def test_descriptor_is_immutable(self):
        """Test that descriptors cannot be modified."""
        descriptor = AgentDescriptor(id="a", name="A", capabilities=["writing"])

        with pytest.raises(Exception):
            descriptor.name = "B"

    def test_capabilities_are_normalized(self):
        """Test that capability names are lowercased and stripped."""
        descriptor = AgentDescriptor(id="a", name="A", capabilities=[" Writing ", "CODE-generation"])

        assert descriptor.capabilities == frozenset({"writing", "code-generation"})

    def test_name_defaults_to_id(self):
        """Test that a missing name falls back to the id."""
        registry = Registry.from_source([{"id": "solo", "capabilities": ["writing"]}])

        assert registry.lookup("solo").name == "solo"

    def test_search_text(self):
        """Test search text contains name and capabilities."""
        descriptor = AgentDescriptor(id="a", name="Alpha", capabilities=["writing"], description="Writes docs")

        text = descriptor.to_search_text()
        assert "Alpha" in text
        assert "writing" in text


class TestComplexity:
    """Tests for complexity classes."""

    def test_infer_complexity(self):
        """Test complexity inference from descriptions."""
        assert infer_complexity("Enterprise architect for distributed systems") == ComplexityClass.HIGH
        assert infer_complexity("A simple helper") == ComplexityClass.LOW
        assert infer_complexity("Writes unit tests") == ComplexityClass.MEDIUM

    def test_inferred_when_missing(self):
        """Test that loading infers complexity when it is not given."""
        registry = Registry.from_source([
            {"id": "arch", "capabilities": ["architecture-design"], "description": "Advanced system design"},
        ])

        assert registry.lookup("arch").complexity == ComplexityClass.HIGH

    def test_parse_aliases(self):
        """Test simple/complex aliases."""
        assert ComplexityClass.parse("simple") == ComplexityClass.LOW
        assert ComplexityClass.parse("Complex") == ComplexityClass.HIGH
        assert ComplexityClass.parse(ComplexityClass.MEDIUM) == ComplexityClass.MEDIUM

    def test_rank_order(self):
        """Test that ranks order low < medium < high."""
        assert ComplexityClass.LOW.rank < ComplexityClass.MEDIUM.rank < ComplexityClass.HIGH.rank
