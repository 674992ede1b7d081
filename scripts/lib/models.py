"""
Data models for token balance scanning.

This module defines the network configuration, the resumable scan
checkpoint, balance records and the per-(network, address) scan result.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .rpc_client import TRANSFER_TOPIC


# Balance record statuses
STATUS_NEW = "new"
STATUS_CHANGED = "changed"
STATUS_UNCHANGED = "unchanged"
STATUSES = (STATUS_NEW, STATUS_CHANGED, STATUS_UNCHANGED)

DEFAULT_TOKEN_TYPE = "ERC20"


@dataclass(frozen=True)
class NetworkConfig:
    """A chain endpoint to scan. Immutable for the whole run."""

    name: str
    rpc_url: str
    chunk_size: int  # Initial block range size for log queries
    enabled: bool = True
    explorer: Optional[str] = None  # Reporting only


@dataclass(frozen=True)
class TokenInterface:
    """Type tag and Transfer event topic used to discover token contracts."""

    type: str = DEFAULT_TOKEN_TYPE
    transfer_topic: str = TRANSFER_TOPIC


@dataclass
class ScanCheckpoint:
    """
    Resumable progress for one (network, address) pair.

    ``contracts`` maps a lower-cased token contract address to its discovery
    metadata: ``{"type": <tag>, "events": [<raw event>, ...]}``.
    """

    last_scanned_block: int = 0
    contracts: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    persisted: bool = False  # False until a checkpoint file exists for the pair

    def to_dict(self) -> Dict[str, Any]:
        return {"lastBlock": self.last_scanned_block, "contracts": self.contracts}


@dataclass
class BalanceRecord:
    """A snapshot of one token's balance for one address."""

    token_address: str
    token_type: str
    balance: Optional[str]  # Decimal string, arbitrary precision; None if unknown
    token_name: Optional[str] = None
    status: Optional[str] = None  # new, changed or unchanged once diffed

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the persisted snapshot entry."""
        return {
            "status": self.status,
            "type": self.token_type,
            "name": self.token_name,
            "balance": self.balance,
        }

    @classmethod
    def from_dict(cls, token_address: str, data: Dict[str, Any]) -> "BalanceRecord":
        """Rebuild a record from a persisted snapshot entry."""
        balance = data.get("balance")
        return cls(
            token_address=token_address,
            token_type=data.get("type") or DEFAULT_TOKEN_TYPE,
            balance=str(balance) if balance is not None else None,
            token_name=data.get("name"),
            status=data.get("status"),
        )


# All balance records for one (network, address), keyed by token address
BalanceSnapshot = Dict[str, BalanceRecord]


@dataclass
class ScanResult:
    """
    Result of scanning one address on one network.

    A failed pair carries its error message and no balances.
    """

    network: str
    address: str
    balances: BalanceSnapshot = field(default_factory=dict)
    new_count: int = 0
    changed_count: int = 0
    unchanged_count: int = 0
    skipped_tokens: int = 0  # Tokens skipped due to balance query failures
    last_block: Optional[int] = None
    error: Optional[str] = None  # Error message if scan failed
