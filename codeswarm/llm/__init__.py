"""LLM module using httpx for OpenAI-compatible APIs."""

from .client import FunctionCall, LLMClient, LLMError, LLMResponse
from .router import AgentTier, ModelRouter, ModelTier

__all__ = [
    "AgentTier",
    "FunctionCall",
    "LLMClient",
    "LLMError",
    "LLMResponse",
    "ModelRouter",
    "ModelTier",
]
