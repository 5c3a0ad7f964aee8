import io
import json
import tarfile
from pathlib import Path
from types import SimpleNamespace
from typing import Dict, List

import pytest

from agent_model_service.config import ServiceConfig
from agent_model_service.pipeline.context import PipelineContext

CALCULATOR_PROTO = """syntax = "proto3";

package example_service;

message Numbers {
    float a = 1;
    float b = 2;
}

message Result {
    float value = 1;
}

service Calculator {
    rpc add(Numbers) returns (Result) {}
    rpc sub(Numbers) returns (Result) {}
}
"""

METADATA_HASH = "QmMetadataHash"
MODEL_HASH = "QmModelHash"


def make_model_tar(files: Dict[str, str]) -> bytes:
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as archive:
        for name, content in files.items():
            data = content.encode("utf-8")
            info = tarfile.TarInfo(name)
            info.size = len(data)
            archive.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


class FakeContentStore:
    """In-memory stand-in for the IPFS gateway that records every fetch."""

    endpoint = "http://ipfs.test:5001"

    def __init__(self, objects: Dict[str, bytes]) -> None:
        self.objects = objects
        self.calls: List[str] = []
        self.closed = False

    async def cat(self, content_hash: str) -> bytes:
        self.calls.append(content_hash)
        return self.objects[content_hash]

    async def aclose(self) -> None:
        self.closed = True


class FakeCall:
    def __init__(self, result=None, error=None) -> None:
        self._result = result
        self._error = error

    async def call(self):
        if self._error is not None:
            raise self._error
        return self._result


class FakeWeb3:
    """Just enough of AsyncWeb3 to bind contracts locally."""

    def __init__(self, result=None, error=None) -> None:
        self.bound: List[str] = []
        self.eth = SimpleNamespace(contract=self._contract)
        self._result = result
        self._error = error

    def _contract(self, address, abi):
        self.bound.append(address)
        return SimpleNamespace(
            address=address,
            functions=SimpleNamespace(metadataURI=lambda: FakeCall(self._result, self._error)),
        )


@pytest.fixture
def config(tmp_path: Path) -> ServiceConfig:
    return ServiceConfig(cache_root=tmp_path / "cache")


@pytest.fixture
def context(config: ServiceConfig) -> PipelineContext:
    ctx = PipelineContext.from_config(config)
    ctx.cache.ensure_layout()
    return ctx


@pytest.fixture
def model_store() -> FakeContentStore:
    metadata = json.dumps({"version": 1, "display_name": "Calculator", "modelURI": f"ipfs://{MODEL_HASH}"})
    return FakeContentStore(
        {
            METADATA_HASH: metadata.encode("utf-8"),
            MODEL_HASH: make_model_tar({"Calculator.proto": CALCULATOR_PROTO}),
        }
    )


CALCULATOR_JSON = {
    "nested": {
        "example_service": {
            "nested": {
                "Numbers": {"fields": {"a": {"type": "float", "id": 1}, "b": {"type": "float", "id": 2}}},
                "Result": {"fields": {"value": {"type": "float", "id": 1}}},
                "Calculator": {
                    "methods": {
                        "add": {"requestType": "Numbers", "responseType": "Result"},
                        "sub": {"requestType": "Numbers", "responseType": "Result"},
                    }
                },
            }
        }
    }
}
