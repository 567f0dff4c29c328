"""Exception types shared by the agent, the model client and the config loader."""


class AgentError(Exception):
    """Raised by the model client or setup helpers for reportable runtime failures."""


class ConfigError(AgentError):
    """Raised for invalid configuration (bad TOML, wrong value types, etc.)."""
