"""
Configuration for the agent model service.

Settings come from an optional JSON file (the first CLI argument). Without
one the service talks to a local IPFS daemon and a local Ethereum node.
The file is validated against `ServiceConfig`; anything invalid aborts
startup.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional, Union
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

# Root directory for the on-disk caches when neither the config file nor
# the environment says otherwise.
DEFAULT_CACHE_ROOT = "."


class ConfigError(Exception):
    """Raised when the service configuration cannot be loaded."""


class ServiceConfig(BaseModel):
    """
    Process configuration.

    Field aliases match the JSON keys of the config file:

    - ipfsEndpoint: IPFS HTTP API, e.g. "http://localhost:5001"
    - ethereumRPCEndpoint: JSON-RPC endpoint of an Ethereum node
    - network / infuraKey: alternative to ethereumRPCEndpoint, builds a
      hosted Infura endpoint
    - port / host: where the HTTP server listens
    - cacheRoot: directory holding the metadata and model caches
    """

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    ipfs_endpoint: str = Field("http://localhost:5001", alias="ipfsEndpoint")
    ethereum_rpc_endpoint: str = Field("http://localhost:8545", alias="ethereumRPCEndpoint")
    network: Optional[str] = None
    infura_key: Optional[str] = Field(None, alias="infuraKey")
    port: int = Field(9000, ge=1, le=65535)
    host: str = "0.0.0.0"
    cache_root: Path = Field(
        default_factory=lambda: Path(os.environ.get("MODEL_SERVICE_CACHE_ROOT", DEFAULT_CACHE_ROOT)),
        alias="cacheRoot",
    )

    @field_validator("ipfs_endpoint")
    @classmethod
    def _check_ipfs_endpoint(cls, value: str) -> str:
        parsed = urlparse(value)
        if not parsed.scheme:
            raise ValueError(f'ipfsEndpoint must include a protocol (ex: "https://"). {value!r}')
        if not parsed.hostname:
            raise ValueError(f'ipfsEndpoint must include a hostname (ex: "ipfs.io"). {value!r}')
        if parsed.port is None:
            raise ValueError(f'ipfsEndpoint must include a port (ex: ":80"). {value!r}')
        return value.rstrip("/")

    @property
    def ethereum_endpoint(self) -> str:
        """RPC endpoint actually used, preferring a named Infura network."""
        if self.network is not None:
            return f"https://{self.network}.infura.io/{self.infura_key or ''}"
        return self.ethereum_rpc_endpoint


def load_config(path: Optional[Union[str, Path]] = None) -> ServiceConfig:
    """
    Build the service configuration.

    With no path the defaults are used. A relative path is taken relative to
    the current working directory.
    """
    if path is None:
        try:
            return ServiceConfig()
        except ValidationError as exc:
            raise ConfigError(str(exc)) from exc

    config_path = Path(path).resolve()
    if not config_path.exists():
        raise ConfigError(f"configuration file not found at {config_path}")

    try:
        return ServiceConfig.model_validate_json(config_path.read_text(encoding="utf-8"))
    except ValidationError as exc:
        raise ConfigError(f"invalid configuration in {config_path}: {exc}") from exc
