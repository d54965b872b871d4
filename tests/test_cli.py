"""Tests for the command-line interface."""

import json

import pytest
import yaml

from conftest import AGENT_ENTRIES
from hive_router.cli import create_parser, main

EXECUTOR_MODULE = '''
def handle(descriptor, prompt, budget):
    return f"{descriptor.id} finished the task: {prompt.request}. Everything is in place."
'''


@pytest.fixture
def cli_files(tmp_path, monkeypatch):
    """Config, registry and executor module for CLI runs."""
    registry_path = tmp_path / "agents.json"
    registry_path.write_text(json.dumps({"agents": AGENT_ENTRIES}))

    config_path = tmp_path / "config.yaml"
    config_path.write_text(yaml.safe_dump({
        "registry": {"source": str(registry_path)},
        "embedding": {"enabled": False, "dimension": 64},
        "persistence": {"backend": "filesystem", "data_directory": str(tmp_path / "data")},
        "classifier": {"simulated_failure_probability": {"low": 0.0, "medium": 0.0, "high": 0.0}},
        "router": {"memory_min_similarity": 0.0},
        "logging": {"level": "WARNING"},
    }))

    (tmp_path / "cli_demo_executor.py").write_text(EXECUTOR_MODULE)
    monkeypatch.syspath_prepend(str(tmp_path))
    monkeypatch.delenv("HIVE_ROUTER_CONFIG", raising=False)
    return ["--config", str(config_path)]


class TestParser:
    def test_route_requires_executor(self):
        """Test that route refuses to run without an executor reference."""
        with pytest.raises(SystemExit):
            create_parser().parse_args(["route", "do something"])

    def test_search_related_flag(self):
        """Test that --related switches on related-memory expansion."""
        args = create_parser().parse_args(["search", "react", "--related"])

        assert args.related is True
        assert create_parser().parse_args(["search", "react"]).related is False

    def test_no_command(self, capsys):
        """Test that running without a command prints help."""
        assert main([]) == 1
        assert "usage" in capsys.readouterr().out


class TestCommands:
    """Tests for each CLI command."""

    def test_agents(self, cli_files, capsys):
        """Test listing agents."""
        assert main(cli_files + ["agents"]) == 0

        out = capsys.readouterr().out
        assert "Registered agents (4)" in out
        assert "frontend-developer" in out

    def test_agents_json_by_category(self, cli_files, capsys):
        """Test listing one category as JSON."""
        assert main(cli_files + ["agents", "--category", "security", "--json"]) == 0

        agents = json.loads(capsys.readouterr().out)
        assert [a["id"] for a in agents] == ["security-auditor"]

    def test_registry_override(self, cli_files, tmp_path, capsys):
        """Test that --registry replaces the configured source."""
        other = tmp_path / "other.yaml"
        other.write_text(yaml.safe_dump([{"id": "solo", "capabilities": ["writing"]}]))

        assert main(cli_files + ["--registry", str(other), "agents", "--json"]) == 0

        assert [a["id"] for a in json.loads(capsys.readouterr().out)] == ["solo"]

    def test_analyze(self, cli_files, capsys):
        """Test the parsed requirement output."""
        assert main(cli_files + ["analyze", "Build a React frontend component", "--json"]) == 0

        requirement = json.loads(capsys.readouterr().out)
        assert requirement["category"] == "development"
        assert requirement["capabilities"] == ["code-generation"]

    def test_rank(self, cli_files, capsys):
        """Test ranking output."""
        assert main(cli_files + ["rank", "Build a React frontend component", "--top-k", "2", "--json"]) == 0

        ranking = json.loads(capsys.readouterr().out)
        assert [r["agent_id"] for r in ranking] == ["frontend-developer", "reference-builder"]
        assert ranking[0]["final"] == pytest.approx(0.875)

    def test_route_then_stats_and_search(self, cli_files, capsys):
        """Test that a routed request persists memory and outcomes across runs."""
        args = cli_files + ["route", "Build a React frontend component", "--executor", "cli_demo_executor:handle"]

        assert main(args + ["--user-id", "u1"]) == 0
        out = capsys.readouterr().out
        assert "Routed to: frontend-developer" in out
        assert "Outcome: success" in out

        assert main(cli_files + ["stats"]) == 0
        stats = json.loads(capsys.readouterr().out)
        assert stats["registered_agents"] == 4
        assert stats["memory"]["total_records"] == 1
        assert stats["outcomes"]["frontend-developer"]["total"] == 1

        assert main(cli_files + ["search", "React frontend", "--min-similarity", "-1", "--json"]) == 0
        hits = json.loads(capsys.readouterr().out)
        assert hits[0]["record"]["agent_id"] == "frontend-developer"
        assert "embedding" not in hits[0]["record"]
        assert hits[0]["related_to"] is None

    def test_route_failure_exit_code(self, cli_files, capsys):
        """Test that a failed route returns a non-zero exit code."""
        args = cli_files + [
            "route", "Build a React frontend component",
            "--executor", "cli_demo_executor:handle",
            "--strategy", "reckless",
        ]

        assert main(args) == 1
        assert "ConfigError" in capsys.readouterr().err

    def test_bad_executor_reference(self, cli_files, capsys):
        """Test that a malformed executor reference is reported."""
        assert main(cli_files + ["route", "anything", "--executor", "nocolon"]) == 1
        assert "module:attribute" in capsys.readouterr().err

    def test_classify(self, cli_files, capsys):
        """Test classifying telemetry from the command line."""
        assert main(cli_files + ["classify", "--duration-ms", "35000", "--response", "partial"]) == 0

        verdict = json.loads(capsys.readouterr().out)
        assert verdict == {"success": False, "quality": 0.1, "failure_reason": "timeout"}

    def test_invalid_config(self, tmp_path, capsys):
        """Test that an invalid configuration file is reported."""
        path = tmp_path / "bad.yaml"
        path.write_text(yaml.safe_dump({"matching": {"default_strategy": "missing"}}))

        assert main(["--config", str(path), "stats"]) == 1
        assert "invalid configuration" in capsys.readouterr().err
