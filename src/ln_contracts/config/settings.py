"""Channel tooling settings loaded from environment variables and config files.

Configuration is loaded from (highest priority first):
1. Environment variables (prefix: ``LNCONTRACTS_``, nested via ``__``)
2. YAML config file (``LNCONTRACTS_CONFIG_PATH`` env var or ``AppConfig.from_yaml``)
3. Defaults defined here
"""

from __future__ import annotations

import enum
from pathlib import Path
from typing import Any, Self

import yaml
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# ---------------------------------------------------------------------------
# Enums for validated choices
# ---------------------------------------------------------------------------


class Network(enum.StrEnum):
    """Bitcoin networks, with their address encoding parameters."""

    MAINNET = "mainnet"
    TESTNET = "testnet"
    SIGNET = "signet"
    REGTEST = "regtest"

    @property
    def bech32_hrp(self) -> str:
        """Human-readable part of bech32 segwit addresses."""
        return _BECH32_HRP[self]

    @property
    def p2pkh_version(self) -> int:
        """Base58Check version byte of P2PKH addresses."""
        return 0x00 if self == Network.MAINNET else 0x6F

    @property
    def p2sh_version(self) -> int:
        """Base58Check version byte of P2SH addresses."""
        return 0x05 if self == Network.MAINNET else 0xC4


_BECH32_HRP = {
    Network.MAINNET: "bc",
    Network.TESTNET: "tb",
    Network.SIGNET: "tb",
    Network.REGTEST: "bcrt",
}


class LogLevel(enum.StrEnum):
    """Root logger levels accepted by the command-line tool."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


# ---------------------------------------------------------------------------
# Sub-config models
# ---------------------------------------------------------------------------


class ChannelConfig(BaseSettings):
    """Per-channel policy applied when building commitment state."""

    model_config = SettingsConfigDict(
        env_prefix="LNCONTRACTS_CHANNEL__",
        case_sensitive=False,
    )

    to_self_delay: int = Field(
        default=144,
        ge=1,
        le=0xFFFF,
        description="CSV delay in blocks on the broadcaster's to-local output",
    )
    dust_limit_satoshis: int = Field(
        default=546,
        ge=0,
        description="Outputs below this value are reported by PaymentChannel.trimmed_outputs",
    )
    max_accepted_htlcs: int = Field(default=483, ge=0, le=483)
    sort_funding_keys: bool = Field(
        default=True,
        description="Order funding keys lexicographically in the 2-of-2 script",
    )


# ---------------------------------------------------------------------------
# Top-level config
# ---------------------------------------------------------------------------


def _load_yaml(path: str | Path) -> dict[str, Any]:
    """Load a YAML configuration file and return its contents as a dict.

    Returns an empty dict if the file doesn't exist or is empty.
    """
    p = Path(path)
    if not p.exists():
        return {}
    data = yaml.safe_load(p.read_text(encoding="utf-8"))
    return data if isinstance(data, dict) else {}


class AppConfig(BaseSettings):
    """Top-level configuration.

    Loads settings from environment variables (``LNCONTRACTS_`` prefix),
    an optional YAML file, and built-in defaults.
    """

    model_config = SettingsConfigDict(
        env_prefix="LNCONTRACTS_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    debug: bool = False
    log_level: LogLevel = LogLevel.WARNING
    network: Network = Network.MAINNET
    config_path: str = ""

    channel: ChannelConfig = Field(default_factory=ChannelConfig)

    @model_validator(mode="before")
    @classmethod
    def _merge_yaml(cls, values: dict[str, Any]) -> dict[str, Any]:
        """Merge YAML config file contents under the env var overrides."""
        config_path = values.get("config_path", "")
        if not config_path:
            return values
        for key, val in _load_yaml(config_path).items():
            if key not in values or values[key] is None:
                values[key] = val
            elif isinstance(val, dict) and isinstance(values.get(key), dict):
                # YAML fills in nested keys the environment left unset
                values[key] = {**val, **values[key]}
        return values

    @classmethod
    def from_yaml(cls, path: str | Path) -> Self:
        """Construct ``AppConfig`` loading defaults from a YAML file.

        Environment variables still override YAML values.
        """
        return cls(config_path=str(path))
