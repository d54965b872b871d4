"""Basic usage example for Hive Router."""

from hive_router import AgentHive, Config
from hive_router.errors import NoCandidate


def main():
    """Run basic usage example."""
    print("=" * 60)
    print("Hive Router - Basic Usage Example")
    print("=" * 60)

    # Initialize the hive
    print("\n[1] Initializing hive...")
    hive = AgentHive(config=Config.from_yaml("examples/config.yaml"))
    hive.initialize()

    # List agents
    print("\n[2] Registered agents:")
    for agent in hive.list_agents():
        print(f"  - {agent.name} ({agent.category.value}): {', '.join(sorted(agent.capabilities))}")

    # Analyze a request
    request = "Build a React frontend component for the checkout page"
    print(f"\n[3] Analyzing request: '{request}'")
    requirement = hive.analyze(request)
    print(f"  Category: {requirement.category.value}")
    print(f"  Capabilities: {', '.join(sorted(requirement.capabilities))}")
    print(f"  Complexity: {requirement.complexity.value}")
    print(f"  Keywords: {', '.join(requirement.keywords)}")

    # Rank agents under each strategy
    print("\n[4] Ranking agents by strategy:")
    for strategy in ("balanced", "performance", "speed", "accuracy"):
        top = hive.rank(request, strategy=strategy)[:3]
        ranked = ", ".join(f"{s.agent_id} ({s.final:.3f})" for s in top)
        print(f"  {strategy:<12} {ranked}")

    # Select the best agent
    print("\n[5] Selecting the best agent...")
    match = hive.select(request)
    print(f"  Selected: {match.agent_id} (confidence {match.confidence:.2f})")
    print(f"  Reasoning: {match.reasoning}")
    print(f"  Alternatives: {', '.join(s.agent_id for s in match.alternatives)}")

    # A request nobody fits
    print("\n[6] Selecting for an unrelated request...")
    try:
        weak = hive.select("Compose a sonnet about autumn leaves")
    except NoCandidate as e:
        print(f"  No candidate: {e}")
    else:
        print(f"  Weak match: {weak.agent_id} (confidence {weak.confidence:.2f})")

    # Classify execution telemetry
    print("\n[7] Classifying execution telemetry:")
    samples = [
        (1800, "Here is the finished checkout component with unit tests and styles."),
        (24000, "Here is the finished checkout component with unit tests and styles."),
        (35000, "Here is the finished checkout component with unit tests and styles."),
        (900, "Done."),
        (700, "Error: rate limit exceeded"),
    ]
    for duration_ms, response in samples:
        verdict = hive.classify(duration_ms, response)
        print(f"  {duration_ms:>6}ms -> quality {verdict.quality:.2f}, {verdict.failure_reason.value}")

    # Show stats
    print("\n[8] Hive Statistics:")
    stats = hive.get_stats()
    print(f"  Registered Agents: {stats['registered_agents']}")
    print(f"  Memory Records: {stats['memory']['total_records']}")
    print(f"  Strategy: {stats['config']['strategy']}")

    # Cleanup
    print("\n[9] Cleaning up...")
    hive.shutdown()
    print("  Done!")

    print("\n" + "=" * 60)
    print("Example completed successfully!")
    print("=" * 60)


if __name__ == "__main__":
    main()
