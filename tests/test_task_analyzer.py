"""Tests for the TaskAnalyzer."""

import pytest

from hive_router.config import TaxonomyConfig
from hive_router.registry import AgentCategory, ComplexityClass
from hive_router.task_analyzer import Requirement, TaskAnalyzer


class TestTaskAnalyzer:
    """Tests for request parsing."""

    def test_development_request(self):
        """Test parsing a frontend development request."""
        requirement = TaskAnalyzer().analyze("Build a React frontend component")

        assert requirement.category == AgentCategory.DEVELOPMENT
        assert requirement.capabilities == frozenset({"code-generation"})
        assert requirement.keywords == ("build", "react", "frontend", "component")
        assert requirement.complexity == ComplexityClass.MEDIUM
        assert requirement.urgency == "normal"

    def test_security_request_with_urgency(self):
        """Test category, capabilities and urgency for a security request."""
        requirement = TaskAnalyzer().analyze("URGENT: fix the security vulnerability in our authentication")

        assert requirement.category == AgentCategory.SECURITY
        assert requirement.capabilities == frozenset({"code-analysis", "testing-debugging"})
        assert requirement.urgency == "high"

    def test_keyword_capabilities_use_prefixes(self):
        """Test that keyword mappings also match longer word forms."""
        requirement = TaskAnalyzer().analyze("Write tests and deploy the api")

        assert {"testing-debugging", "deployment", "integration"} <= requirement.capabilities

    def test_high_complexity(self):
        """Test complexity estimation from indicator words."""
        requirement = TaskAnalyzer().analyze("Architect a distributed enterprise platform")

        assert requirement.complexity == ComplexityClass.HIGH

    def test_low_complexity(self):
        """Test that simple help requests are low complexity."""
        requirement = TaskAnalyzer().analyze("Quick question, explain closures")

        assert requirement.complexity == ComplexityClass.LOW

    def test_general_request(self):
        """Test that unrelated text falls into the general category."""
        requirement = TaskAnalyzer().analyze("Hello there")

        assert requirement.category == AgentCategory.GENERAL
        assert requirement.capabilities == frozenset()
        assert requirement.keywords == ("hello", "there")

    def test_explicit_overrides(self):
        """Test that explicit capabilities are canonicalized and the category is kept."""
        requirement = TaskAnalyzer().analyze("anything", capabilities=["Codegen", "debugging"], category="testing")

        assert requirement.capabilities == frozenset({"code-generation", "testing-debugging"})
        assert requirement.category == AgentCategory.TESTING

    def test_invalid_category(self):
        """Test that an unknown explicit category is rejected."""
        with pytest.raises(ValueError):
            TaskAnalyzer().analyze("anything", category="astrology")

    def test_keywords_are_capped(self):
        """Test the keyword limit."""
        analyzer = TaskAnalyzer(TaxonomyConfig(max_keywords=3))

        requirement = analyzer.analyze("alpha beta gamma delta epsilon")

        assert requirement.keywords == ("alpha", "beta", "gamma")

    def test_custom_taxonomy(self):
        """Test that the taxonomy drives capability inference."""
        taxonomy = TaxonomyConfig(
            version="2",
            domain_patterns={"data": ["spreadsheet"]},
            domain_capabilities={"data": ["tabulation"]},
            keyword_capabilities={},
        )

        requirement = TaskAnalyzer(taxonomy).analyze("Clean up this spreadsheet")

        assert requirement.category == AgentCategory.DATA
        assert requirement.capabilities == frozenset({"tabulation"})


class TestRequirement:
    """Tests for the Requirement model."""

    def test_signature(self):
        """Test that the signature is stable under capability order."""
        a = Requirement(capabilities=["b-cap", "a-cap"], category="development")
        b = Requirement(capabilities=["a-cap", "b-cap"], category="development")

        assert a.signature() == b.signature() == "development:a-cap,b-cap"

    def test_normalization(self):
        """Test that capabilities and keywords are lowercased."""
        requirement = Requirement(capabilities=["Code-Generation"], keywords=["React"])

        assert requirement.capabilities == frozenset({"code-generation"})
        assert requirement.keywords == ("react",)
