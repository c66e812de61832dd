"""Pydantic models for codeswarm configuration."""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field, field_validator

from codeswarm.config.defaults import CONFIG, MULTI_AGENT_DEFAULTS, MULTI_AGENT_LIMITS


class OutputMode(str, Enum):
    """Output mode for the CLI."""

    HUMAN = "human"
    JSON = "json"


class Provider(str, Enum):
    """LLM provider."""

    CHUTES = "chutes"
    OPENAI = "openai"
    OPENROUTER = "openrouter"


class TierModelConfig(BaseModel):
    """One model tier (fast / balanced / thorough)."""

    model: str = Field(description="Model identifier sent to the provider")
    max_tokens: int = Field(default=16384, description="Maximum tokens for a response")
    temperature: float = Field(default=0.0, description="Generation temperature")


class TiersConfig(BaseModel):
    """Model used for each agent tier."""

    fast: TierModelConfig = Field(
        default_factory=lambda: TierModelConfig(
            model=os.environ.get("CODESWARM_FAST_MODEL", "Qwen/Qwen3-32B"),
            max_tokens=8192,
        )
    )
    balanced: TierModelConfig = Field(
        default_factory=lambda: TierModelConfig(
            model=os.environ.get("CODESWARM_BALANCED_MODEL", CONFIG["model"]),
        )
    )
    thorough: TierModelConfig = Field(
        default_factory=lambda: TierModelConfig(
            model=os.environ.get("CODESWARM_THOROUGH_MODEL", "deepseek-ai/DeepSeek-V3.2-TEE"),
            max_tokens=32768,
        )
    )


class MultiAgentConfig(BaseModel):
    """Settings for batches of concurrent agents."""

    max_concurrent: int = Field(
        default=MULTI_AGENT_DEFAULTS["max_concurrent"],
        description="Worker pool size for parallel and adaptive modes",
    )
    max_agents_per_request: int = Field(
        default=MULTI_AGENT_LIMITS["max_agents_per_request"],
        description="Largest batch accepted by the executor",
    )
    escalation_threshold: int = Field(
        default=MULTI_AGENT_LIMITS["max_conflicts_before_serialize"],
        description="Conflicts after which adaptive mode runs one agent at a time",
    )
    execution_mode: str = Field(default=MULTI_AGENT_DEFAULTS["execution_mode"])
    conflict_strategy: str = Field(default=MULTI_AGENT_DEFAULTS["conflict_strategy"])
    abort_on_first_error: bool = Field(default=MULTI_AGENT_DEFAULTS["abort_on_first_error"])

    @field_validator("max_concurrent", "max_agents_per_request", "escalation_threshold")
    @classmethod
    def at_least_one(cls, v: int) -> int:
        """Clamp counts to a usable minimum."""
        return max(1, v)


class ToolsConfig(BaseModel):
    """Configuration for available tools."""

    shell_enabled: bool = Field(default=True, description="Enable shell execution")
    shell_timeout: int = Field(default=CONFIG["shell_timeout"], description="Shell timeout in seconds")
    file_ops_enabled: bool = Field(default=True, description="Enable file writes")
    max_file_size: int = Field(default=1048576, description="Maximum file size to read")
    max_grep_results: int = Field(default=100, description="Maximum grep results")
    max_output_tokens: int = Field(
        default=CONFIG["max_output_tokens"], description="Token budget for one tool output"
    )


class PermissionsConfig(BaseModel):
    """How side effects are approved."""

    approval_policy: str = Field(default=CONFIG["approval_policy"])
    auto_approve: bool = Field(default=CONFIG["auto_approve"])
    readonly: bool = Field(default=CONFIG["readonly"])


class OutputConfig(BaseModel):
    """Configuration for output formatting."""

    mode: OutputMode = Field(default=OutputMode.HUMAN, description="Output mode")
    colors: bool = Field(default=True, description="Enable colored output")
    log_level: str = Field(default="WARNING", description="Level for diagnostic logging")

    @field_validator("log_level", mode="before")
    @classmethod
    def upper_level(cls, v: str) -> str:
        return str(v).upper()


class PathsConfig(BaseModel):
    """Configuration for file paths."""

    cwd: str = Field(default="", description="Working directory")
    readable_roots: list[str] = Field(default=[], description="Additional readable directories")
    writable_roots: list[str] = Field(default=[], description="Additional writable directories")

    @field_validator("cwd", mode="before")
    @classmethod
    def resolve_cwd(cls, v: str) -> str:
        """Resolve empty cwd to current directory."""
        if not v:
            return os.getcwd()
        return str(Path(v).resolve())


class AgentConfig(BaseModel):
    """Main configuration for codeswarm."""

    provider: Provider = Field(default=Provider.CHUTES, description="LLM provider")
    max_iterations: int = Field(default=CONFIG["max_iterations"], description="Provider calls per agent")
    timeout: int = Field(default=120, description="Timeout per LLM call in seconds")

    tiers: TiersConfig = Field(default_factory=TiersConfig)
    multi_agent: MultiAgentConfig = Field(default_factory=MultiAgentConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    permissions: PermissionsConfig = Field(default_factory=PermissionsConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)

    @field_validator("max_iterations")
    @classmethod
    def positive_iterations(cls, v: int) -> int:
        return max(1, v)

    @property
    def working_directory(self) -> Path:
        """Get the working directory as a Path object."""
        return Path(self.paths.cwd or os.getcwd())

    def get_api_key(self) -> str:
        """Get the API key for the configured provider."""
        env_vars = {
            Provider.CHUTES: ["CHUTES_API_TOKEN", "CHUTES_API_KEY"],
            Provider.OPENAI: ["OPENAI_API_KEY"],
            Provider.OPENROUTER: ["OPENROUTER_API_KEY"],
        }

        for var in env_vars.get(self.provider, []):
            key = os.environ.get(var)
            if key:
                return key

        raise ValueError(
            f"No API key found for provider {self.provider.value}. "
            f"Set one of: {env_vars.get(self.provider, [])}"
        )

    def get_base_url(self) -> str:
        """Get the base URL for the configured provider."""
        override = os.environ.get("CODESWARM_BASE_URL")
        if override:
            return override
        urls = {
            Provider.CHUTES: "https://llm.chutes.ai/v1",
            Provider.OPENAI: "https://api.openai.com/v1",
            Provider.OPENROUTER: "https://openrouter.ai/api/v1",
        }
        return urls[self.provider]
