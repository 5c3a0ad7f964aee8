import asyncio

import pytest
from web3.exceptions import BadFunctionCallOutput

from agent_model_service.errors import BadRequestError, InternalError, NotFoundError
from agent_model_service.registry.agent_registry import AgentRegistryGateway, load_agent_abi, uri_to_hash

from conftest import FakeWeb3

AGENT_ADDRESS = "0x" + "ab" * 20


@pytest.mark.parametrize(
    "uri, expected",
    [
        ("QmHash", "QmHash"),
        ("ipfs://QmHash", "QmHash"),
        ("https://gateway.example.org/ipfs/QmHash", "QmHash"),
    ],
)
def test_uri_to_hash_takes_last_segment(uri, expected):
    assert uri_to_hash(uri) == expected


def test_agent_abi_has_metadata_uri():
    names = {entry["name"] for entry in load_agent_abi()}
    assert "metadataURI" in names


def test_resolve_metadata_hash(context):
    web3 = FakeWeb3(result="ipfs://ipfs/QmMetadata")
    gateway = AgentRegistryGateway(context, web3=web3, abi=[])
    assert asyncio.run(gateway.resolve_metadata_hash(AGENT_ADDRESS)) == "QmMetadata"


def test_binding_is_cached_per_address(context):
    web3 = FakeWeb3(result="QmMetadata")
    gateway = AgentRegistryGateway(context, web3=web3, abi=[])

    asyncio.run(gateway.get_metadata_uri(AGENT_ADDRESS))
    asyncio.run(gateway.get_metadata_uri(AGENT_ADDRESS))

    assert len(web3.bound) == 1
    assert AGENT_ADDRESS in context.bindings


def test_invalid_address_is_bad_request(context):
    gateway = AgentRegistryGateway(context, web3=FakeWeb3(), abi=[])
    with pytest.raises(BadRequestError, match="0xBAD is not a valid Ethereum address"):
        asyncio.run(gateway.get_metadata_uri("0xBAD"))
    assert context.bindings == {}


def test_test_address_skips_the_chain(context):
    web3 = FakeWeb3()
    gateway = AgentRegistryGateway(context, web3=web3, abi=[])
    assert asyncio.run(gateway.resolve_metadata_hash("test")) == "test"
    assert web3.bound == []


def test_empty_return_value_is_not_found(context):
    web3 = FakeWeb3(error=BadFunctionCallOutput("Could not decode contract function call to metadataURI()"))
    gateway = AgentRegistryGateway(context, web3=web3, abi=[])
    with pytest.raises(NotFoundError) as excinfo:
        asyncio.run(gateway.get_metadata_uri(AGENT_ADDRESS))
    assert f"{AGENT_ADDRESS} is probably not an instance of an Agent contract" in str(excinfo.value)


def test_other_failures_are_internal(context):
    web3 = FakeWeb3(error=ConnectionError("connection refused"))
    gateway = AgentRegistryGateway(context, web3=web3, abi=[])
    with pytest.raises(InternalError, match="connection refused"):
        asyncio.run(gateway.get_metadata_uri(AGENT_ADDRESS))
