"""
Pytest configuration and fixtures for solwrap tests.

Usage:
    # Fixtures are injected by name:

    @pytest.mark.asyncio
    async def test_something(simple_storage, mock_client):
        instance = simple_storage.at(STORAGE_ADDRESS)
        ...
"""

from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from solwrap.core.client import RpcClient
from solwrap.core.contract import ContractClass
from solwrap.utils.artifacts import load_artifact
from solwrap.utils.mock_node import MockNode

FIXTURES_DIR = Path(__file__).parent / "fixtures"

SENDER = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
STORAGE_ADDRESS = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
TX_HASH = "0x" + "ab" * 32


@pytest.fixture
def fixtures_dir() -> Path:
    return FIXTURES_DIR


@pytest.fixture
def pensions_artifact():
    return load_artifact(FIXTURES_DIR / "Pensions.sol.js")


@pytest.fixture
def simple_storage_artifact():
    return load_artifact(FIXTURES_DIR / "SimpleStorage.json")


@pytest.fixture
def mock_client():
    """RpcClient stand-in whose coroutines are AsyncMocks"""
    client = AsyncMock(spec=RpcClient)
    client.net_version.return_value = "42"
    client.send_transaction.return_value = TX_HASH
    client.get_transaction_receipt.return_value = {
        "transactionHash": TX_HASH,
        "blockNumber": "0x1",
        "status": "0x1",
        "logs": [],
    }
    return client


@pytest.fixture
def simple_storage(simple_storage_artifact, mock_client):
    contract_class = ContractClass(simple_storage_artifact)
    contract_class.set_provider(mock_client)
    contract_class.poll_interval = 0.01
    return contract_class


@pytest.fixture
def mock_node():
    node = MockNode(network_id="42")
    node.start()
    yield node
    node.stop()
