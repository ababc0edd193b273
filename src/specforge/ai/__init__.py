"""AI capability layer for SpecForge.

Exposes the AICapability protocol used by the pipelines, the retrying
BaseAIClient, and the Anthropic Messages API implementation.
"""

from __future__ import annotations

from specforge.ai.anthropic import AnthropicClient
from specforge.ai.client import (
    AICapability,
    BaseAIClient,
    ChatMessage,
    RawCompletion,
    StructuredResult,
)

__all__ = [
    "AICapability",
    "AnthropicClient",
    "BaseAIClient",
    "ChatMessage",
    "RawCompletion",
    "StructuredResult",
]
