"""Config loader for debridge_kit."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, MutableMapping, Optional

from debridge_kit.core.chains import CHAIN_IDS


class ConfigError(ValueError):
    """Raised when configuration data is invalid or missing."""


DEFAULT_DLN_API = "https://dln.debridge.finance/v1.0"
DEFAULT_STATS_API = "https://stats-api.dln.trade/api"
DEFAULT_REFERRAL_CODE = "31805"

# Environment variables that override a chain's ``rpc_url``.
RPC_ENV_VARS: Dict[str, str] = {
    "polygon": "POLYGON_RPC_URL",
    "arbitrum": "ARB_RPC_URL",
    "bnb": "BNB_RPC_URL",
    "base": "BASE_RPC_URL",
    "solana": "SOL_RPC_URL",
    "tron": "TRON_RPC_URL",
}

SECRET_ENV_VARS = ("SIGNER_PK", "SOL_PK", "TRON_PK", "TRONGRID_API_KEY")

_BUILTIN_CHAINS: Dict[str, Dict[str, Any]] = {
    "polygon": {"chain_id": CHAIN_IDS["Polygon"], "rpc_url": None},
    "arbitrum": {"chain_id": CHAIN_IDS["Arbitrum"], "rpc_url": None},
    "bnb": {"chain_id": CHAIN_IDS["BNB"], "rpc_url": None},
    "base": {"chain_id": CHAIN_IDS["Base"], "rpc_url": None},
    "solana": {"chain_id": CHAIN_IDS["Solana"], "rpc_url": "https://api.mainnet-beta.solana.com"},
    "tron": {"chain_id": CHAIN_IDS["TRON"], "rpc_url": "https://api.trongrid.io"},
}


def _require_keys(data: Mapping[str, Any], keys: Iterable[str], context: str) -> None:
    missing = [key for key in keys if key not in data]
    if missing:
        raise ConfigError(f"{context} missing required keys: {', '.join(missing)}")


@dataclass(frozen=True)
class ChainConfig:
    """Configuration for a blockchain network."""

    name: str
    chain_id: int
    rpc_url: Optional[str] = None

    def ensure_rpc_url(self) -> str:
        """Return the RPC URL or raise if it is missing."""
        if not self.rpc_url:
            env_var = RPC_ENV_VARS.get(self.name)
            hint = f" (set {env_var})" if env_var else ""
            raise ConfigError(f"RPC URL for {self.name} required but not configured{hint}")
        return self.rpc_url


@dataclass(frozen=True)
class ApiUrlsConfig:
    """deBridge endpoints."""

    dln_api: str = DEFAULT_DLN_API
    stats_api: str = DEFAULT_STATS_API


@dataclass(frozen=True)
class DefaultsConfig:
    """Default operational parameters."""

    api_timeout: int = 30
    referral_code: str = DEFAULT_REFERRAL_CODE
    gas_buffer: float = 1.1
    cancel_gas_buffer: float = 1.3
    tron_fee_buffer: float = 1.3
    cu_limit_buffer: float = 1.1
    fallback_compute_units: int = 200_000
    fallback_cu_price: int = 2_000
    affiliate_fee_recipient: Optional[str] = None


@dataclass(frozen=True)
class SecretsConfig:
    """Signing keys and API keys read from the environment."""

    signer_pk: Optional[str] = field(default=None, repr=False)
    sol_pk: Optional[str] = field(default=None, repr=False)
    tron_pk: Optional[str] = field(default=None, repr=False)
    trongrid_api_key: Optional[str] = field(default=None, repr=False)


@dataclass(frozen=True)
class KitConfig:
    """Typed wrapper around the toolkit configuration."""

    chains: Mapping[str, ChainConfig]
    api_urls: ApiUrlsConfig
    defaults: DefaultsConfig
    secrets: SecretsConfig
    raw: Mapping[str, Any] = field(repr=False, default_factory=dict)

    def chain(self, name: str) -> ChainConfig:
        """Return the chain configured under ``name`` (case-insensitive)."""
        try:
            return self.chains[name.lower()]
        except KeyError as exc:
            raise ConfigError(f"Chain not configured: {name}") from exc

    def chain_by_id(self, chain_id: int) -> ChainConfig:
        for chain in self.chains.values():
            if chain.chain_id == int(chain_id):
                return chain
        raise ConfigError(f"No chain configured with id {chain_id}")

    def require_secret(self, env_name: str) -> str:
        """Return the secret stored for ``env_name`` or raise if it is unset."""
        attr = env_name.lower()
        value = getattr(self.secrets, attr, None)
        if not value:
            raise ConfigError(f"{env_name} not found in environment or .env file")
        return value

    def to_dict(self) -> Dict[str, Any]:
        """Return the original configuration mapping."""
        return dict(self.raw)


def _load_json(path: Path) -> MutableMapping[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as fh:
            return json.load(fh)
    except FileNotFoundError as exc:
        raise ConfigError(f"Config file not found: {path}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Config file contains invalid JSON: {path}") from exc


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _build_chains(chains: Mapping[str, Any], env: Mapping[str, str]) -> Dict[str, ChainConfig]:
    result: Dict[str, ChainConfig] = {}
    for name, chain_data in chains.items():
        key = name.lower()
        _require_keys(chain_data, ["chain_id"], f"chain {name}")
        rpc_url = _clean(chain_data.get("rpc_url"))
        env_var = RPC_ENV_VARS.get(key)
        if env_var and _clean(env.get(env_var)):
            rpc_url = _clean(env.get(env_var))
        result[key] = ChainConfig(name=key, chain_id=int(chain_data["chain_id"]), rpc_url=rpc_url)
    if not result:
        raise ConfigError("chains cannot be empty")
    return result


def _build_defaults(defaults: Mapping[str, Any]) -> DefaultsConfig:
    base = DefaultsConfig()
    config = DefaultsConfig(
        api_timeout=int(defaults.get("api_timeout", base.api_timeout)),
        referral_code=str(defaults.get("referral_code", base.referral_code)),
        gas_buffer=float(defaults.get("gas_buffer", base.gas_buffer)),
        cancel_gas_buffer=float(defaults.get("cancel_gas_buffer", base.cancel_gas_buffer)),
        tron_fee_buffer=float(defaults.get("tron_fee_buffer", base.tron_fee_buffer)),
        cu_limit_buffer=float(defaults.get("cu_limit_buffer", base.cu_limit_buffer)),
        fallback_compute_units=int(defaults.get("fallback_compute_units", base.fallback_compute_units)),
        fallback_cu_price=int(defaults.get("fallback_cu_price", base.fallback_cu_price)),
        affiliate_fee_recipient=defaults.get("affiliate_fee_recipient"),
    )
    if config.api_timeout <= 0:
        raise ConfigError("defaults.api_timeout must be positive")
    for name in ("gas_buffer", "cancel_gas_buffer", "tron_fee_buffer", "cu_limit_buffer"):
        if getattr(config, name) < 1:
            raise ConfigError(f"defaults.{name} must be at least 1")
    if config.fallback_compute_units <= 0:
        raise ConfigError("defaults.fallback_compute_units must be positive")
    if config.fallback_cu_price < 0:
        raise ConfigError("defaults.fallback_cu_price cannot be negative")
    return config


def load_config(config_path: Optional[Path] = None, *, env: Optional[Mapping[str, str]] = None) -> KitConfig:
    """Load and validate configuration data.

    When ``config_path`` is omitted and ``config.json`` does not exist in the
    working directory, the built-in chain table and endpoints are used so that
    environment variables alone are enough to run.
    """
    env = os.environ if env is None else env

    if config_path is None and not Path("config.json").exists():
        data: MutableMapping[str, Any] = {"chains": dict(_BUILTIN_CHAINS)}
    else:
        data = _load_json(config_path or Path("config.json"))

    _require_keys(data, ["chains"], "config")

    api_urls = data.get("api_urls", {})
    api_config = ApiUrlsConfig(
        dln_api=str(api_urls.get("dln_api", DEFAULT_DLN_API)).rstrip("/"),
        stats_api=str(api_urls.get("stats_api", DEFAULT_STATS_API)).rstrip("/"),
    )

    secrets = SecretsConfig(**{name.lower(): _clean(env.get(name)) for name in SECRET_ENV_VARS})

    return KitConfig(
        chains=_build_chains(data["chains"], env),
        api_urls=api_config,
        defaults=_build_defaults(data.get("defaults", {})),
        secrets=secrets,
        raw=data,
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
