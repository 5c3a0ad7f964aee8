"""Process-wide state shared by every request handler."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict

from ..config import ServiceConfig
from ..registry.filesystem_store import FilesystemModelCache


@dataclass
class PipelineContext:
    """
    Built once at startup and handed to the gateways and the resolver.

    The maps grow for the lifetime of the process and are never evicted:
    addresses and content hashes are immutable keys.

    - bindings: web3 contract object per Agent address
    - service_names: proto service name per metadata hash
    - inflight: running resolution task per metadata hash
    """

    config: ServiceConfig
    cache: FilesystemModelCache
    bindings: Dict[str, Any] = field(default_factory=dict)
    service_names: Dict[str, str] = field(default_factory=dict)
    inflight: Dict[str, "asyncio.Task[bytes]"] = field(default_factory=dict)

    @classmethod
    def from_config(cls, config: ServiceConfig) -> "PipelineContext":
        return cls(config=config, cache=FilesystemModelCache(config.cache_root))
