"""
Metadata and model archive stages.

`get_model_uri` turns a metadata hash into the model archive locator and
`ensure_unpacked` makes sure the archive behind it sits unpacked on disk.
Both consult the disk cache before going to IPFS.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import tarfile
from pathlib import Path

from pydantic import ValidationError

from ..errors import InternalError
from ..registry.agent_registry import uri_to_hash
from ..registry.content_store import ContentStoreGateway
from ..registry.filesystem_store import FilesystemModelCache
from ..schemas import MetadataRecord

LOGGER = logging.getLogger(__name__)


async def get_model_uri(cache: FilesystemModelCache, store: ContentStoreGateway, metadata_hash: str) -> str:
    """
    Return the `modelURI` of the metadata document `metadata_hash`.

    The raw document is fetched at most once and kept under
    `metadata/<hash>`. Parse failures are not retried.
    """
    metadata_path = cache.metadata_path(metadata_hash)
    if metadata_path.exists():
        raw = await asyncio.to_thread(metadata_path.read_bytes)
    else:
        raw = await store.cat(metadata_hash)
        await asyncio.to_thread(cache.write_atomic, metadata_path, raw)

    try:
        record = MetadataRecord.model_validate_json(raw)
    except ValidationError as exc:
        raise InternalError(f"Malformed metadata {metadata_hash}: {exc}") from exc
    return record.model_uri


async def ensure_unpacked(cache: FilesystemModelCache, store: ContentStoreGateway, metadata_hash: str) -> Path:
    """
    Return the directory holding the unpacked proto files for `metadata_hash`.

    An existing directory is returned as is. Otherwise the archive is
    fetched (unless already cached) and extracted.
    """
    proto_path = cache.proto_path(metadata_hash)
    if proto_path.is_dir():
        return proto_path

    tar_path = cache.tar_path(metadata_hash)
    if not tar_path.exists():
        model_hash = uri_to_hash(await get_model_uri(cache, store, metadata_hash))
        model_tar = await store.cat(model_hash)
        await asyncio.to_thread(cache.write_atomic, tar_path, model_tar)

    await asyncio.to_thread(untar, cache, tar_path, proto_path)
    return proto_path


def untar(cache: FilesystemModelCache, source: Path, dest: Path) -> Path:
    """
    Extract a (possibly gzipped) tar into `dest`.

    Extraction happens in a temporary sibling that is renamed onto `dest`
    only after the last member has been written.
    """
    staging = cache.temp_dir_for(dest)
    try:
        with tarfile.open(source, mode="r:*") as archive:
            archive.extractall(staging, filter="data")
    except (tarfile.TarError, OSError) as exc:
        shutil.rmtree(staging, ignore_errors=True)
        raise InternalError(f"Failed to extract model archive {source.name}: {exc}") from exc

    try:
        os.replace(staging, dest)
    except OSError:
        # Another request unpacked the same archive first.
        shutil.rmtree(staging, ignore_errors=True)
        if not dest.is_dir():
            raise
    LOGGER.info("Unpacked %s into %s", source.name, dest)
    return dest
