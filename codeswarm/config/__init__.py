"""Configuration: defaults, pydantic models and the TOML loader."""

from codeswarm.config.defaults import CONFIG, MULTI_AGENT_DEFAULTS, MULTI_AGENT_LIMITS
from codeswarm.config.loader import find_config_file, load_config
from codeswarm.config.models import AgentConfig

__all__ = [
    "AgentConfig",
    "CONFIG",
    "MULTI_AGENT_DEFAULTS",
    "MULTI_AGENT_LIMITS",
    "find_config_file",
    "load_config",
]
