"""Shared fixtures: schemas, identities, config and the fake ledger."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest

from factor_client.config import ClientConfig
from factor_client.crypto import generate_keypair
from factor_client.identity import IdentityRegistry
from factor_client.schema.registry import SchemaRegistry

from fake_ledger import FakeLedger

DESCRIPTOR_DIR = Path(__file__).parent / "fixtures" / "descriptors"
ENDPOINT = "http://ledger.test/api"


@pytest.fixture(scope="session")
def descriptor_dir() -> Path:
    return DESCRIPTOR_DIR


@pytest.fixture(scope="session")
def registry() -> SchemaRegistry:
    return SchemaRegistry.from_directory(DESCRIPTOR_DIR)


@pytest.fixture(scope="session")
def root_keys() -> tuple[str, str]:
    return generate_keypair()


@pytest.fixture
def identities(root_keys: tuple[str, str]) -> Iterator[IdentityRegistry]:
    reg = IdentityRegistry()
    reg.add("root", *root_keys)
    yield reg
    reg.remove_all()


@pytest.fixture
def config() -> ClientConfig:
    return ClientConfig(endpoint=ENDPOINT, poll_interval=0.5, poll_timeout=5.0)


@pytest.fixture
def ledger(registry: SchemaRegistry) -> FakeLedger:
    return FakeLedger(registry)
