"""LLM client protocol used by the planner.

Provider implementations (Ollama, Claude, ...) live with the host
application and only need to implement ``complete()``.  The router that
picks a provider from ``TaskType`` is theirs too.

Implementations:
  - NullLLMClient — returns empty content; planning then yields no plan
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class TaskType(str, Enum):
    COMPLEX_REASONING = "complex_reasoning"
    CODE_GENERATION = "code_generation"
    SIMPLE_TASKS = "simple_tasks"
    GENERAL = "general"


@dataclass
class Message:
    """A single message in a chat-style conversation."""

    role: str  # "system", "user", "assistant", "tool"
    content: str


@dataclass
class TokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0


@dataclass
class LLMRequest:
    messages: list[Message]
    system_prompt: str | None = None
    tools: list[dict[str, Any]] | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    task_type: TaskType = TaskType.GENERAL


@dataclass
class LLMResponse:
    content: str
    model: str = ""
    usage: TokenUsage = field(default_factory=TokenUsage)


class LLMClient(ABC):
    @abstractmethod
    async def complete(self, request: LLMRequest) -> LLMResponse:
        """Send *request* and return the completion.  May raise on transport errors."""

    async def close(self) -> None:
        pass


class NullLLMClient(LLMClient):
    async def complete(self, request: LLMRequest) -> LLMResponse:
        return LLMResponse(content="", model="null")
