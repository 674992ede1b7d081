"""
Balance fetcher querying token balances for discovered contracts.
"""

from typing import Any, Dict, Optional, Tuple

from .formatters import log
from .models import DEFAULT_TOKEN_TYPE, BalanceRecord, BalanceSnapshot
from .rpc_client import LedgerError


class BalanceFetcher:
    """
    Reads ``balanceOf`` and ``name`` for each discovered token contract.

    Contract calls are independent: a token whose balance cannot be read is
    logged and skipped without affecting the others.
    """

    def __init__(self, client, network: str, fetch_names: bool = True):
        """
        Initialize the fetcher.

        Args:
            client: Ledger client (call_view_method)
            network: Network name, used for logging
            fetch_names: Whether to also query the token display name
        """
        self.client = client
        self.network = network
        self.fetch_names = fetch_names

    def _fetch_name(self, token_address: str) -> Optional[str]:
        try:
            name = self.client.call_view_method(token_address, "name", [])
        except LedgerError as e:
            log(self.network, f"No name for {token_address}: {e}")
            return None
        return str(name).strip("\x00").strip() or None

    def fetch(self, address: str, contracts: Dict[str, Dict[str, Any]]) -> Tuple[BalanceSnapshot, int]:
        """
        Fetch current balances of ``address`` for every discovered contract.

        Args:
            address: Account address
            contracts: Discovered contracts keyed by token address

        Returns:
            Tuple of (balance records without status, number of skipped tokens)
        """
        balances: BalanceSnapshot = {}
        skipped_tokens = 0

        for token_address, metadata in contracts.items():
            token_type = (metadata or {}).get("type") or DEFAULT_TOKEN_TYPE
            try:
                raw_balance = self.client.call_view_method(token_address, "balanceOf", [address])
            except LedgerError as e:
                log(self.network, f"Skipping {token_address} for {address}: {e}")
                skipped_tokens += 1
                continue

            token_name = self._fetch_name(token_address) if self.fetch_names else None
            balance = str(raw_balance)

            balances[token_address] = BalanceRecord(
                token_address=token_address,
                token_type=token_type,
                balance=balance,
                token_name=token_name,
            )
            log(self.network, f"Balance for {token_address} ({token_name or token_type}) of {address} is {balance}")

        if skipped_tokens > 0:
            log(self.network, f"Skipped {skipped_tokens} token(s) for {address} due to balance query failures")

        return balances, skipped_tokens
