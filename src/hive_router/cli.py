"""Command-line interface for Hive Router."""

import argparse
import asyncio
import json
import sys
from typing import Optional

from hive_router.config import Config
from hive_router.executor import load_executor
from hive_router.hive import AgentHive
from hive_router.outcome import OutcomeClassifier
from hive_router.registry import ComplexityClass
from hive_router.router import RouteOptions


def create_parser() -> argparse.ArgumentParser:
    """Create the CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="hive-router",
        description="Hive Router - Route tasks to specialist agents with semantic memory",
    )
    parser.add_argument("--config", help="Path to a YAML configuration file")
    parser.add_argument("--registry", help="Path to a JSON or YAML agent registry")
    parser.add_argument("--data-dir", help="Directory for persisted memories and outcomes")
    parser.add_argument("--log-level", help="Override the configured log level")

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    # Agents command
    agents_parser = subparsers.add_parser("agents", help="List registered agents")
    agents_parser.add_argument("--category", help="Filter by category")
    agents_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # Analyze command
    analyze_parser = subparsers.add_parser("analyze", help="Show the requirement parsed from a request")
    analyze_parser.add_argument("text", help="Request text")
    analyze_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # Rank command
    rank_parser = subparsers.add_parser("rank", help="Rank agents for a request without dispatching")
    rank_parser.add_argument("text", help="Request text")
    rank_parser.add_argument("--strategy", help="Strategy profile name")
    rank_parser.add_argument("--top-k", type=int, default=5, help="Number of agents to show")
    rank_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # Route command
    route_parser = subparsers.add_parser("route", help="Route a request and dispatch it")
    route_parser.add_argument("text", help="Request text")
    route_parser.add_argument("--executor", required=True, help="Executor reference as module:attribute")
    route_parser.add_argument("--strategy", help="Strategy profile name")
    route_parser.add_argument("--user-id", default="anonymous", help="User id")
    route_parser.add_argument("--session-id", help="Session id")
    route_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # Search command
    search_parser = subparsers.add_parser("search", help="Search interaction memory")
    search_parser.add_argument("query", help="Search query")
    search_parser.add_argument("--agent-id", help="Restrict to one agent")
    search_parser.add_argument("--category", help="Restrict to one memory category")
    search_parser.add_argument("--limit", type=int, default=5, help="Number of results")
    search_parser.add_argument("--min-similarity", type=float, default=0.0, help="Minimum similarity")
    search_parser.add_argument("--related", action="store_true", help="Also list memories related to the hits")
    search_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # Classify command
    classify_parser = subparsers.add_parser("classify", help="Classify execution telemetry")
    classify_parser.add_argument("--duration-ms", type=float, required=True, help="Execution duration")
    classify_parser.add_argument("--response", default="", help="Response text")
    classify_parser.add_argument("--provider-error", action="store_true", help="Provider reported an error")
    classify_parser.add_argument("--complexity", default="medium", choices=["low", "medium", "high"])

    # Stats command
    subparsers.add_parser("stats", help="Show registry, memory and outcome statistics")

    return parser


def load_config(args) -> Config:
    """Load configuration and apply command-line overrides."""
    config = Config.from_yaml(args.config) if args.config else Config.from_default_locations()
    if args.registry:
        config.registry.source = args.registry
    if args.data_dir:
        config.persistence.data_directory = args.data_dir
    if args.log_level:
        config.logging.level = args.log_level
    return config


def format_agent(agent) -> dict:
    """Format an agent descriptor for output."""
    return {
        "id": agent.id,
        "name": agent.name,
        "category": agent.category.value,
        "capabilities": sorted(agent.capabilities),
        "complexity": agent.complexity.value,
    }


def cmd_agents(hive: AgentHive, args) -> int:
    """Handle agents command."""
    agents = hive.list_agents(category=args.category)

    if args.json:
        print(json.dumps([format_agent(a) for a in agents], indent=2))
    else:
        if not agents:
            print("No agents registered")
            return 0

        print(f"Registered agents ({len(agents)}):")
        for agent in agents:
            print(f"  - {agent.name} ({agent.id})")
            print(f"    Capabilities: {', '.join(sorted(agent.capabilities))}")
            print(f"    Category: {agent.category.value}, Complexity: {agent.complexity.value}")

    return 0


def cmd_analyze(hive: AgentHive, args) -> int:
    """Handle analyze command."""
    requirement = hive.analyze(args.text)

    if args.json:
        print(json.dumps(requirement.model_dump(mode="json"), indent=2))
    else:
        print("Requirement:")
        print(f"  Category: {requirement.category.value}")
        print(f"  Capabilities: {', '.join(sorted(requirement.capabilities)) or '-'}")
        print(f"  Complexity: {requirement.complexity.value}")
        print(f"  Urgency: {requirement.urgency}")
        print(f"  Keywords: {', '.join(requirement.keywords)}")
        print(f"  Signature: {requirement.signature()}")

    return 0


def cmd_rank(hive: AgentHive, args) -> int:
    """Handle rank command."""
    ranking = hive.rank(args.text, strategy=args.strategy)[:args.top_k]

    if args.json:
        print(json.dumps([vars(s) for s in ranking], indent=2, default=list))
    else:
        if not ranking:
            print("No agents registered")
            return 0

        print(f"Ranking for '{args.text}':")
        for position, score in enumerate(ranking, 1):
            print(
                f"  {position}. {score.agent_id}: {score.final:.3f} "
                f"(capability {score.capability:.2f}, specialization {score.specialization:.2f}, "
                f"history {score.history:.2f})"
            )

    return 0


def cmd_route(hive: AgentHive, args) -> int:
    """Handle route command."""
    hive.executor = load_executor(args.executor)
    hive.router.executor = hive.executor

    options = RouteOptions(strategy=args.strategy, user_id=args.user_id, session_id=args.session_id)
    result = asyncio.run(hive.route(args.text, options))

    if args.json:
        print(json.dumps(result.model_dump(mode="json"), indent=2))
    elif result.completed:
        outcome = result.outcome
        print(f"Routed to: {result.selected_agent_id} (confidence {result.confidence:.2f})")
        print(f"  {result.reasoning}")
        print(f"  Outcome: {'success' if outcome.success else outcome.failure_reason.value}, quality {outcome.quality:.2f}")
        print(f"  Memories used: {len(result.memory_ids)}")
        if result.response_text:
            print()
            print(result.response_text)
    else:
        print(f"Routing failed ({result.failure}): {result.error}", file=sys.stderr)

    return 0 if result.completed else 1


def cmd_search(hive: AgentHive, args) -> int:
    """Handle search command."""
    hits = asyncio.run(hive.search_memory(
        args.query,
        agent_id=args.agent_id,
        category=args.category,
        limit=args.limit,
        min_similarity=args.min_similarity,
        include_related=args.related,
    ))

    if args.json:
        print(json.dumps([
            {
                "similarity": h.similarity,
                "related_to": h.related_to,
                "record": h.record.model_dump(mode="json", exclude={"embedding"}),
            }
            for h in hits
        ], indent=2))
    else:
        if not hits:
            print(f"No memories found matching: {args.query}")
            return 0

        print(f"Memories for '{args.query}' ({len(hits)}):")
        for hit in hits:
            record = hit.record
            last = record.interactions[-1].input_summary if record.interactions else ""
            marker = f" related to {hit.related_to[:8]}" if hit.related_to else ""
            print(f"  - [{hit.similarity:.3f}] {record.agent_id} / {record.user_id} ({record.category}){marker}")
            print(f"    {last[:100]}")

    return 0


def cmd_classify(config: Config, args) -> int:
    """Handle classify command."""
    classifier = OutcomeClassifier(config.classifier)
    verdict = classifier.classify(
        args.duration_ms,
        args.response,
        provider_error=args.provider_error,
        complexity=ComplexityClass.parse(args.complexity),
    )
    print(json.dumps(verdict.model_dump(mode="json"), indent=2))
    return 0


def cmd_stats(hive: AgentHive, args) -> int:
    """Handle stats command."""
    stats = hive.get_stats()
    print(json.dumps(stats, indent=2, default=str))
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point for CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    try:
        config = load_config(args)
    except Exception as e:
        print(f"Error: invalid configuration: {e}", file=sys.stderr)
        return 1
    config.logging.configure()

    if args.command == "classify":
        return cmd_classify(config, args)

    # Initialize hive
    hive = AgentHive(config=config)

    try:
        # Route to command handler
        handlers = {
            "agents": cmd_agents,
            "analyze": cmd_analyze,
            "rank": cmd_rank,
            "route": cmd_route,
            "search": cmd_search,
            "stats": cmd_stats,
        }

        handler = handlers.get(args.command)
        if handler:
            hive.initialize()
            return handler(hive, args)
        else:
            print(f"Unknown command: {args.command}", file=sys.stderr)
            return 1

    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        hive.shutdown()


if __name__ == "__main__":
    sys.exit(main())
