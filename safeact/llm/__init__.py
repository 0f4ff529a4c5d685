"""LLM layer — provider-neutral completion interface."""

from safeact.llm.client import (
    LLMClient,
    LLMRequest,
    LLMResponse,
    Message,
    NullLLMClient,
    TaskType,
    TokenUsage,
)

__all__ = [
    "LLMClient",
    "LLMRequest",
    "LLMResponse",
    "Message",
    "NullLLMClient",
    "TaskType",
    "TokenUsage",
]
