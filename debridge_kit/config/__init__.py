"""Configuration utilities for debridge_kit."""

from .loader import (
    ApiUrlsConfig,
    ChainConfig,
    ConfigError,
    DefaultsConfig,
    KitConfig,
    RPC_ENV_VARS,
    SecretsConfig,
    load_config,
)

__all__ = [
    "ApiUrlsConfig",
    "ChainConfig",
    "ConfigError",
    "DefaultsConfig",
    "KitConfig",
    "RPC_ENV_VARS",
    "SecretsConfig",
    "load_config",
]
