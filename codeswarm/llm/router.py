"""Model selection by agent tier.

Every agent in a batch declares a tier. The router maps it to a
:class:`ModelTier`:

- **fast**: quick lookups and small scoped edits, cheap model
- **balanced**: the default model
- **thorough**: multi-file changes and long reasoning, strongest model
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from codeswarm.config.models import TiersConfig


class AgentTier(str, Enum):
    FAST = "fast"
    BALANCED = "balanced"
    THOROUGH = "thorough"


@dataclass
class ModelTier:
    """A model configuration for one tier."""

    model: str
    max_tokens: int = 16384
    temperature: float = 0.0


class ModelRouter:
    """Resolves an :class:`AgentTier` to a :class:`ModelTier`.

    Usage::

        router = ModelRouter.from_config(config.tiers)
        tier = router.for_tier("thorough")
        llm.chat(messages, model=tier.model, max_tokens=tier.max_tokens)
    """

    def __init__(self, fast: ModelTier, balanced: ModelTier, thorough: ModelTier):
        self._tiers = {
            AgentTier.FAST: fast,
            AgentTier.BALANCED: balanced,
            AgentTier.THOROUGH: thorough,
        }

    @classmethod
    def from_config(cls, config: Optional[TiersConfig] = None) -> "ModelRouter":
        config = config or TiersConfig()
        return cls(
            fast=ModelTier(config.fast.model, config.fast.max_tokens, config.fast.temperature),
            balanced=ModelTier(
                config.balanced.model, config.balanced.max_tokens, config.balanced.temperature
            ),
            thorough=ModelTier(
                config.thorough.model, config.thorough.max_tokens, config.thorough.temperature
            ),
        )

    def for_tier(self, tier: AgentTier | str) -> ModelTier:
        """Raises ``ValueError`` for an unknown tier name."""
        return self._tiers[AgentTier(tier)]

    @property
    def default(self) -> ModelTier:
        return self._tiers[AgentTier.BALANCED]
