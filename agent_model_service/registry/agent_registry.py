"""
On-chain Agent registry gateway.

Reads `metadataURI()` from an Agent contract. Contract objects are bound
once per address and kept in the pipeline context; binding is local and
costs no RPC round trip.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, List, Optional

from web3 import AsyncWeb3, Web3
from web3.exceptions import BadFunctionCallOutput

from ..errors import BadRequestError, InternalError, NotFoundError
from ..pipeline.context import PipelineContext

LOGGER = logging.getLogger(__name__)

# Address accepted without touching the chain; its metadata hash is itself.
TEST_ADDRESS = "test"

AGENT_ABI_PATH = Path(__file__).parent / "abi" / "Agent.json"


def load_agent_abi(path: Path = AGENT_ABI_PATH) -> List[dict]:
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def uri_to_hash(uri: str) -> str:
    """Last path segment of a content URI, e.g. ipfs://ipfs/QmAbc -> QmAbc."""
    return uri.split("/")[-1]


def is_valid_address(address: str) -> bool:
    return address == TEST_ADDRESS or Web3.is_address(address)


class AgentRegistryGateway:
    """Resolves Agent contract addresses to their metadata URI."""

    def __init__(
        self,
        context: PipelineContext,
        web3: Optional[AsyncWeb3] = None,
        abi: Optional[List[dict]] = None,
    ) -> None:
        self._context = context
        self._web3 = web3 or AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(context.config.ethereum_endpoint))
        self._abi = abi if abi is not None else load_agent_abi()

    def binding_for(self, address: str) -> Any:
        bindings = self._context.bindings
        if address not in bindings:
            LOGGER.debug("Binding Agent contract at %s", address)
            bindings[address] = self._web3.eth.contract(
                address=Web3.to_checksum_address(address), abi=self._abi
            )
        return bindings[address]

    async def get_metadata_uri(self, address: str) -> str:
        if not is_valid_address(address):
            raise BadRequestError(f"{address} is not a valid Ethereum address")
        if address == TEST_ADDRESS:
            return TEST_ADDRESS

        agent = self.binding_for(address)
        try:
            uri = await agent.functions.metadataURI().call()
        except BadFunctionCallOutput as exc:
            raise NotFoundError(
                f"Error while trying to get metadataURI for address {address}. "
                f"{address} is probably not an instance of an Agent contract. {exc}"
            ) from exc
        except Exception as exc:
            raise InternalError(f"Error while trying to get metadataURI for address {address}. {exc}") from exc

        if isinstance(uri, bytes):
            uri = uri.rstrip(b"\x00").decode("utf-8")
        return uri

    async def resolve_metadata_hash(self, address: str) -> str:
        return uri_to_hash(await self.get_metadata_uri(address))
