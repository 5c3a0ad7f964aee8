import json
from pathlib import Path

import pytest

from agent_model_service.config import ConfigError, ServiceConfig, load_config


def test_defaults_without_config_file(monkeypatch):
    monkeypatch.setenv("MODEL_SERVICE_CACHE_ROOT", "/var/cache/models")
    config = load_config()
    assert config.ipfs_endpoint == "http://localhost:5001"
    assert config.ethereum_endpoint == "http://localhost:8545"
    assert config.port == 9000
    assert config.cache_root == Path("/var/cache/models")


def test_load_config_file(tmp_path: Path):
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps(
            {
                "ipfsEndpoint": "https://ipfs.example.org:443/",
                "ethereumRPCEndpoint": "http://node:8545",
                "port": 8000,
                "cacheRoot": str(tmp_path / "cache"),
            }
        )
    )
    config = load_config(path)
    assert config.ipfs_endpoint == "https://ipfs.example.org:443"
    assert config.ethereum_endpoint == "http://node:8545"
    assert config.port == 8000
    assert config.cache_root == tmp_path / "cache"


def test_network_builds_infura_endpoint():
    config = ServiceConfig(network="kovan", infuraKey="abc123")
    assert config.ethereum_endpoint == "https://kovan.infura.io/abc123"


def test_missing_config_file(tmp_path: Path):
    with pytest.raises(ConfigError, match="configuration file not found"):
        load_config(tmp_path / "nope.json")


@pytest.mark.parametrize(
    "payload",
    [
        {"ipfsEndpoint": "localhost:5001"},
        {"ipfsEndpoint": "http://localhost"},
        {"ipfsEndpoint": "http://:5001"},
        {"port": "not-a-port"},
        {"unknownKey": True},
    ],
)
def test_invalid_config_is_rejected(tmp_path: Path, payload):
    path = tmp_path / "config.json"
    path.write_text(json.dumps(payload))
    with pytest.raises(ConfigError):
        load_config(path)


def test_config_is_immutable():
    config = ServiceConfig()
    with pytest.raises(Exception):
        config.port = 1
