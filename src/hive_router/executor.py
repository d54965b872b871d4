"""Contract for the external agent-execution collaborator."""

import asyncio
import importlib
import inspect
import time
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional, Union

from pydantic import BaseModel, Field

from hive_router.registry import AgentDescriptor


class AugmentedPrompt(BaseModel):
    """Context handed to the executor: agent behavior plus relevant memories."""
    agent_id: str
    system_prompt: str = ""
    request: str
    memories: list[str] = Field(default_factory=list)
    user_id: Optional[str] = None
    session_id: Optional[str] = None

    def render(self) -> str:
        """Render the prompt as a single text block."""
        parts = []
        if self.system_prompt:
            parts.append(self.system_prompt)
        if self.memories:
            parts.append("Relevant previous knowledge:\n" + "\n".join(f"- {m}" for m in self.memories))
        parts.append(f"Task: {self.request}")
        return "\n\n".join(parts)


class ExecutionResult(BaseModel):
    """Raw telemetry returned by one execution."""
    response_text: str = ""
    duration_ms: Optional[float] = None
    provider_error: bool = False
    error: Optional[str] = None


class AgentExecutor(ABC):
    """Runs a prompt against an agent. Implemented outside this package."""

    @abstractmethod
    async def execute(self, descriptor: AgentDescriptor, prompt: AugmentedPrompt, budget: int) -> ExecutionResult:
        pass


HandlerResult = Union[ExecutionResult, str, dict[str, Any]]
Handler = Callable[[AgentDescriptor, AugmentedPrompt, int], Union[HandlerResult, Awaitable[HandlerResult]]]


class CallableExecutor(AgentExecutor):
    """Adapts plain sync or async functions to the executor contract.

    Handlers may be registered per agent id with a default for all other
    agents. A handler may return an ExecutionResult, a mapping of its
    fields, or just the response text; duration is measured when the
    handler does not report it. Sync handlers run in a worker thread.
    """

    def __init__(self, default_handler: Optional[Handler] = None):
        self._default_handler = default_handler
        self._agent_handlers: dict[str, Handler] = {}

    def register_agent_handler(self, agent_id: str, handler: Handler) -> None:
        """Register a handler function for an agent."""
        self._agent_handlers[agent_id] = handler

    def register_default_handler(self, handler: Handler) -> None:
        """Register a default handler for all agents."""
        self._default_handler = handler

    async def execute(self, descriptor: AgentDescriptor, prompt: AugmentedPrompt, budget: int) -> ExecutionResult:
        handler = self._agent_handlers.get(descriptor.id, self._default_handler)
        if handler is None:
            raise LookupError(f"no handler registered for agent {descriptor.id}")

        started = time.perf_counter()
        if inspect.iscoroutinefunction(handler):
            output = await handler(descriptor, prompt, budget)
        else:
            output = await asyncio.to_thread(handler, descriptor, prompt, budget)
            if inspect.isawaitable(output):
                output = await output
        elapsed_ms = (time.perf_counter() - started) * 1000

        if isinstance(output, ExecutionResult):
            result = output
        elif isinstance(output, dict):
            result = ExecutionResult(**output)
        else:
            result = ExecutionResult(response_text="" if output is None else str(output))

        if result.duration_ms is None:
            result = result.model_copy(update={"duration_ms": elapsed_ms})
        return result


def load_executor(reference: str) -> AgentExecutor:
    """Load an executor from a ``module:attribute`` reference.

    The attribute may be an AgentExecutor instance, an AgentExecutor subclass
    (instantiated without arguments), or a handler function.
    """
    module_name, _, attribute = reference.partition(":")
    if not module_name or not attribute:
        raise ValueError(f"executor reference must look like 'module:attribute', got '{reference}'")

    target = getattr(importlib.import_module(module_name), attribute)

    if isinstance(target, AgentExecutor):
        return target
    if inspect.isclass(target) and issubclass(target, AgentExecutor):
        return target()
    if callable(target):
        return CallableExecutor(target)
    raise TypeError(f"{reference} is not an executor or handler")
