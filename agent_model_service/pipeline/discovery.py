"""Find the one `service` declaration in an unpacked proto tree."""

from __future__ import annotations

import asyncio
import logging
import re
from pathlib import Path
from typing import Dict, List

from ..errors import BadRequestError

LOGGER = logging.getLogger(__name__)

# Proto identifier; the name also becomes a file name under the tree.
SERVICE_NAME_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")


def scan_service_declarations(proto_path: Path) -> List[str]:
    """All lines, across every file under `proto_path`, declaring a service."""
    services: List[str] = []
    for path in sorted(proto_path.rglob("*")):
        if not path.is_file():
            continue
        text = path.read_text(encoding="utf-8", errors="replace")
        for line in text.splitlines():
            tokens = line.split()
            if tokens and tokens[0] == "service":
                services.append(line)
    return services


def service_name_from_declaration(line: str) -> str:
    tokens = line.replace("{", " {").split()
    if len(tokens) < 2 or not SERVICE_NAME_RE.fullmatch(tokens[1]):
        raise BadRequestError(f"Malformed service declaration: {line.strip()!r}")
    return tokens[1]


async def discover_service_name(service_names: Dict[str, str], metadata_hash: str, proto_path: Path) -> str:
    if metadata_hash not in service_names:
        services = await asyncio.to_thread(scan_service_declarations, proto_path)
        if len(services) > 1:
            raise BadRequestError("Service spec has more than 1 service")
        if not services:
            raise BadRequestError("No service in service spec")
        service_names[metadata_hash] = service_name_from_declaration(services[0])
        LOGGER.debug("Service for %s is %s", metadata_hash, service_names[metadata_hash])
    return service_names[metadata_hash]
