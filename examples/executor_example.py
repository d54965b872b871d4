"""Example demonstrating routing with an executor and interaction memory."""

import asyncio
import random

from hive_router import AgentHive, CallableExecutor, Config, ExecutionResult


async def frontend_handler(descriptor, prompt, budget):
    """Pretend to run the frontend agent."""
    await asyncio.sleep(0.1)
    remembered = f" (recalling {len(prompt.memories)} earlier interaction(s))" if prompt.memories else ""
    return ExecutionResult(
        response_text=f"Created the requested component with props, styles and tests{remembered}.",
        duration_ms=random.uniform(800, 2500),
    )


async def slow_handler(descriptor, prompt, budget):
    """An agent that never answers in time."""
    await asyncio.sleep(10)
    return "too late"


def default_handler(descriptor, prompt, budget):
    """Synchronous handler used for every other agent."""
    return f"{descriptor.name} handled the task: {prompt.request}"


def build_hive():
    executor = CallableExecutor(default_handler)
    executor.register_agent_handler("frontend-developer", frontend_handler)
    executor.register_agent_handler("security-auditor", slow_handler)

    hive = AgentHive(config=Config.from_yaml("examples/config.yaml"), executor=executor)
    hive.initialize()
    return hive


async def example_routing(hive):
    """Example: Route the same kind of request twice."""
    print("\n" + "=" * 50)
    print("ROUTING WITH MEMORY")
    print("=" * 50)

    for request in ("Build a React frontend component", "Build a React frontend component for the cart"):
        result = await hive.route(request, user_id="alice", session_id="session-1")
        print(f"\n[Request] {request}")
        print(f"  State: {result.state.value}")
        print(f"  Agent: {result.selected_agent_id} (confidence {result.confidence:.2f})")
        print(f"  Memories used: {len(result.memory_ids)}")
        print(f"  Quality: {result.outcome.quality:.2f}")
        print(f"  Response: {result.response_text}")


async def example_timeout(hive):
    """Example: An agent exceeding the dispatch timeout."""
    print("\n" + "=" * 50)
    print("DISPATCH TIMEOUT")
    print("=" * 50)

    result = await hive.route("Audit the authentication flow for vulnerabilities", timeout_seconds=0.5)
    print(f"\n  Agent: {result.selected_agent_id}")
    print(f"  Outcome: {result.outcome.failure_reason.value}, quality {result.outcome.quality:.2f}")
    print(f"  Route history: {' -> '.join(s.value for s in result.history)}")


async def example_concurrent(hive):
    """Example: Many users routed at once."""
    print("\n" + "=" * 50)
    print("CONCURRENT REQUESTS")
    print("=" * 50)

    requests = [
        ("bob", "Deploy the api to kubernetes"),
        ("carol", "Write a reference guide for the payments module"),
        ("dave", "Build a React frontend dashboard"),
    ]
    results = await asyncio.gather(*(hive.route(text, user_id=user) for user, text in requests))

    for (user, text), result in zip(requests, results):
        print(f"  {user:<6} {result.selected_agent_id or result.failure:<22} {text}")


async def example_memory_search(hive):
    """Example: Search the accumulated interaction memory."""
    print("\n" + "=" * 50)
    print("MEMORY SEARCH")
    print("=" * 50)

    hits = await hive.search_memory("React component", limit=3)
    for hit in hits:
        print(f"  [{hit.similarity:.3f}] {hit.record.agent_id} / {hit.record.user_id}: "
              f"{len(hit.record.interactions)} interaction(s)")

    stats = hive.get_stats()
    for agent_id, summary in stats["outcomes"].items():
        print(f"  {agent_id}: {summary['total']} outcome(s), success rate {summary['success_rate']:.0%}")


async def main():
    """Run all examples."""
    print("=" * 60)
    print("Hive Router - Executor Examples")
    print("=" * 60)

    hive = build_hive()
    try:
        await example_routing(hive)
        await example_timeout(hive)
        await example_concurrent(hive)
        await example_memory_search(hive)
    finally:
        hive.shutdown()

    print("\n" + "=" * 60)
    print("All examples completed!")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(main())
