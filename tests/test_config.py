"""
Tests for ClientConfig and its sources.

Test plan:
- Defaults, endpoint normalisation and URL building
- from_mapping / load_config / from_env happy paths
- Invalid values fail with ConfigError naming the key, whether they
  come from a source or from direct construction
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from factor_client.config import DEFAULT_SERVICE_ID, ClientConfig, load_config, validate_config
from factor_client.errors import ConfigError


class TestClientConfig:
    def test_defaults(self) -> None:
        config = ClientConfig(endpoint="http://127.0.0.1:13007/api")
        assert config.service_id == DEFAULT_SERVICE_ID == 128
        assert config.service_name == "factor"
        assert config.strict_poll is False
        assert config.poll_interval > 0

    def test_trailing_slash_stripped(self) -> None:
        config = ClientConfig(endpoint="http://ledger.test/api/")
        assert config.transactions_url == "http://ledger.test/api/explorer/v1/transactions"
        assert config.service_url("/users/info") == "http://ledger.test/api/services/factor/v1/users/info"

    def test_service_name_in_urls(self) -> None:
        config = ClientConfig(endpoint="http://ledger.test/api", service_name="basis")
        assert config.service_url("/products") == "http://ledger.test/api/services/basis/v1/products"

    @pytest.mark.parametrize(
        ("kwargs", "key"),
        [
            ({"endpoint": "http://x", "poll_interval": 0}, "poll_interval"),
            ({"endpoint": "http://x", "poll_timeout": -1.0}, "poll_timeout"),
            ({"endpoint": "ledger.test"}, "endpoint"),
        ],
    )
    def test_direct_construction_validated(self, kwargs: dict[str, object], key: str) -> None:
        with pytest.raises(ConfigError) as exc_info:
            ClientConfig(**kwargs)  # type: ignore[arg-type]
        assert exc_info.value.details["key"] == key


class TestFromMapping:
    def test_valid(self) -> None:
        config = ClientConfig.from_mapping(
            {"endpoint": "https://ledger.test/api", "service_id": 200, "poll_timeout": 2.5}
        )
        assert config.service_id == 200
        assert config.poll_timeout == 2.5

    @pytest.mark.parametrize(
        ("data", "key"),
        [
            ({"endpoint": "ftp://ledger.test"}, "endpoint"),
            ({"endpoint": "http://x", "service_id": 70000}, "service_id"),
            ({"endpoint": "http://x", "poll_interval": 0}, "poll_interval"),
            ({"endpoint": "http://x", "strict_poll": "yes"}, "strict_poll"),
        ],
    )
    def test_invalid_value(self, data: dict[str, object], key: str) -> None:
        with pytest.raises(ConfigError) as exc_info:
            ClientConfig.from_mapping(data)
        assert exc_info.value.details["key"] == key
        assert exc_info.value.error_code == "CONFIG"

    def test_missing_endpoint(self) -> None:
        with pytest.raises(ConfigError, match="endpoint"):
            validate_config({"service_id": 128})

    def test_unknown_key(self) -> None:
        with pytest.raises(ConfigError, match="colour"):
            ClientConfig.from_mapping({"endpoint": "http://x", "colour": "red"})


class TestLoadConfig:
    def test_file(self, tmp_path: Path) -> None:
        path = tmp_path / "factor.json"
        path.write_text(json.dumps({"endpoint": "http://ledger.test/api", "schema_dir": "schemas"}))
        config = load_config(path)
        assert config.endpoint == "http://ledger.test/api"
        assert config.schema_dir == "schemas"

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="cannot read config"):
            load_config(tmp_path / "absent.json")

    def test_invalid_json(self, tmp_path: Path) -> None:
        path = tmp_path / "factor.json"
        path.write_text("{endpoint:")
        with pytest.raises(ConfigError):
            load_config(path)

    def test_not_an_object(self, tmp_path: Path) -> None:
        path = tmp_path / "factor.json"
        path.write_text("[]")
        with pytest.raises(ConfigError, match="JSON object"):
            load_config(path)


class TestFromEnv:
    def test_reads_variables(self) -> None:
        config = ClientConfig.from_env(
            {
                "FACTOR_ENDPOINT": "http://ledger.test/api",
                "FACTOR_SERVICE_ID": "129",
                "FACTOR_POLL_TIMEOUT": "0.75",
                "FACTOR_STRICT_POLL": "true",
                "FACTOR_SCHEMA_DIR": "",
            }
        )
        assert config.service_id == 129
        assert config.poll_timeout == 0.75
        assert config.strict_poll is True
        assert config.schema_dir is None

    def test_unparseable_number(self) -> None:
        with pytest.raises(ConfigError) as exc_info:
            ClientConfig.from_env({"FACTOR_ENDPOINT": "http://x", "FACTOR_SERVICE_ID": "lots"})
        assert exc_info.value.details["variable"] == "FACTOR_SERVICE_ID"

    def test_missing_endpoint(self) -> None:
        with pytest.raises(ConfigError):
            ClientConfig.from_env({})

    def test_process_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("FACTOR_ENDPOINT", "http://from-env.test/api")
        assert ClientConfig.from_env().endpoint == "http://from-env.test/api"
