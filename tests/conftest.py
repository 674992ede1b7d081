"""
Pytest configuration and shared fixtures for token-balance-scanner tests.
"""

import pytest

from scripts.lib.checkpoint_store import CheckpointStore
from scripts.lib.models import NetworkConfig
from scripts.lib.rpc_client import ContractCallError, TransportError


TOKEN_A = "0x" + "a" * 40
TOKEN_B = "0x" + "b" * 40
TOKEN_C = "0x" + "c" * 40


class FakeLedger:
    """
    In-memory ledger client.

    ``logs`` maps block number -> list of log objects; ``balances`` maps
    token address -> balance (or an exception to raise). ``fail_logs`` holds
    exceptions raised by successive get_logs calls before falling back to
    real results (None entries mean "succeed").
    """

    def __init__(self, head=100, logs=None, balances=None, names=None, fail_logs=None):
        self.head = head
        self.logs = logs or {}
        self.balances = balances or {}
        self.names = names or {}
        self.fail_logs = list(fail_logs or [])
        self.log_queries = []
        self.closed = False

    def latest_block_number(self):
        if isinstance(self.head, Exception):
            raise self.head
        return self.head

    def get_logs(self, from_block, to_block, topics):
        self.log_queries.append((from_block, to_block, list(topics)))
        if self.fail_logs:
            failure = self.fail_logs.pop(0)
            if failure is not None:
                raise failure
        events = []
        for block in range(from_block, to_block + 1):
            events.extend(self.logs.get(block, []))
        return events

    def call_view_method(self, contract_address, method_name, args):
        if method_name == "balanceOf":
            value = self.balances.get(contract_address)
            if value is None:
                raise ContractCallError(contract_address, method_name, "execution reverted")
            if isinstance(value, Exception):
                raise value
            return value
        if method_name == "name":
            if contract_address not in self.names:
                raise ContractCallError(contract_address, method_name, "execution reverted")
            return self.names[contract_address]
        raise ValueError(method_name)

    def close(self):
        self.closed = True


def transfer_log(token, block, tx_index=0, log_index=0):
    """Build a raw Transfer log emitted by ``token`` in ``block``."""
    return {
        "address": token,
        "blockNumber": hex(block),
        "transactionHash": "0x" + f"{block:032x}{tx_index:032x}",
        "logIndex": hex(log_index),
        "topics": [],
        "data": "0x" + "0" * 63 + "1",
    }


def transport_error(message="boom"):
    return TransportError(message, status_code=-32000)


@pytest.fixture
def sample_wallet_address():
    """Sample Ethereum wallet address for testing."""
    return "0xd8da6bf26964af9d7eed9e03e53415d37aa96045"  # vitalik.eth


@pytest.fixture
def sample_rpc_url():
    """Mock RPC URL embedding an API key."""
    return "https://eth-mainnet.example.com/v2/test-api-key-12345"


@pytest.fixture
def network():
    """Network with a chunk size of 10 blocks."""
    return NetworkConfig(name="ethereum", rpc_url="https://rpc.example.com", chunk_size=10)


@pytest.fixture
def store(tmp_path):
    """Checkpoint store rooted in a temporary directory."""
    return CheckpointStore(tmp_path / "cache", tmp_path / "data")
