"""
Resolution pipeline: metadata hash -> compiled interface JSON.

Stages run in order (unpack, discover service, compile) and each one
checks its own cache first. A compiled description already on disk is
returned without entering any earlier stage.
"""

from __future__ import annotations

import asyncio
import logging

from ..registry.content_store import ContentStoreGateway
from .archive import ensure_unpacked
from .compiler import ensure_compiled
from .context import PipelineContext
from .discovery import discover_service_name

LOGGER = logging.getLogger(__name__)


class ModelResolver:
    """Turns metadata hashes into compiled JSON, coalescing concurrent requests per hash."""

    def __init__(self, context: PipelineContext, store: ContentStoreGateway) -> None:
        self._context = context
        self._store = store

    async def resolve(self, metadata_hash: str) -> bytes:
        json_path = self._context.cache.json_path(metadata_hash)
        if json_path.exists():
            LOGGER.debug("Cache hit for %s", metadata_hash)
            return await asyncio.to_thread(json_path.read_bytes)

        inflight = self._context.inflight
        task = inflight.get(metadata_hash)
        if task is None:
            task = asyncio.ensure_future(self._build(metadata_hash))
            inflight[metadata_hash] = task
            task.add_done_callback(lambda _: inflight.pop(metadata_hash, None))
        # Shielded so one cancelled request does not abort the build for the others.
        return await asyncio.shield(task)

    async def _build(self, metadata_hash: str) -> bytes:
        cache = self._context.cache
        proto_path = await ensure_unpacked(cache, self._store, metadata_hash)
        service_name = await discover_service_name(self._context.service_names, metadata_hash, proto_path)
        return await ensure_compiled(cache, metadata_hash, proto_path, service_name)
