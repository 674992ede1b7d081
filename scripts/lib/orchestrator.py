"""
Scan orchestration across networks and addresses.

Each enabled network gets its own worker thread and its own ledger client;
addresses on a network are processed one after another, and for each
address contract discovery fully precedes balance fetching.
"""

from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional

from .balance_differ import count_statuses, diff_balances, merge_balances
from .balance_fetcher import BalanceFetcher
from .block_scanner import BlockRangeScanner, ScanFailure
from .checkpoint_store import CheckpointStore, CorruptCheckpoint, CorruptSnapshot
from .formatters import log
from .models import (
    STATUS_CHANGED,
    STATUS_NEW,
    STATUS_UNCHANGED,
    BalanceSnapshot,
    NetworkConfig,
    ScanResult,
    TokenInterface,
)
from .retry import RetryPolicy
from .rpc_client import LedgerError, RpcClient


# Failures confined to one (network, address) pair
PAIR_ERRORS = (ScanFailure, CorruptCheckpoint, CorruptSnapshot, LedgerError, OSError, ValueError)


def default_client_factory(network: NetworkConfig) -> RpcClient:
    return RpcClient(network.rpc_url)


def failed_result(network: NetworkConfig, address: str, error: Exception) -> ScanResult:
    """Build the ScanResult of a pair that could not be scanned."""
    message = str(error)
    if not isinstance(error, ScanFailure):
        message = f"[{network.name}] {address}: {message}"
    return ScanResult(network=network.name, address=address, error=message)


class ScanOrchestrator:
    """
    Runs scanner, fetcher and differ for every (network, address) pair.

    Failures are isolated per pair by default: a failed address is reported
    in its ScanResult while other addresses and networks carry on. With
    ``fail_fast`` the first failure is raised instead.
    """

    def __init__(
        self,
        networks: List[NetworkConfig],
        addresses: List[str],
        store: CheckpointStore,
        client_factory: Optional[Callable[[NetworkConfig], object]] = None,
        token_interface: Optional[TokenInterface] = None,
        fail_fast: bool = False,
        fetch_names: bool = True,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            networks: Configured networks; disabled ones are skipped
            addresses: Account addresses to scan on every network
            store: Checkpoint and snapshot store
            client_factory: Creates the ledger client for a network (RpcClient by default)
            token_interface: Type tag and Transfer topic to scan for
            fail_fast: Raise the first failure instead of isolating it
            fetch_names: Whether to query token display names
            retry_policy: Per-chunk retry budget for log queries
        """
        self.networks = [network for network in networks if network.enabled]
        self.addresses = addresses
        self.store = store
        self.client_factory = client_factory or default_client_factory
        self.token_interface = token_interface or TokenInterface()
        self.fail_fast = fail_fast
        self.fetch_names = fetch_names
        self.retry_policy = retry_policy

    def _scan_address(
        self,
        network: NetworkConfig,
        scanner: BlockRangeScanner,
        fetcher: BalanceFetcher,
        address: str,
    ) -> ScanResult:
        contracts = scanner.scan(address)
        log(network.name, f"{len(contracts)} token contract(s) known for {address}")

        fresh, skipped_tokens = fetcher.fetch(address, contracts)
        previous = self.store.load_previous_snapshot(network.name, address)
        diff_balances(fresh, previous)

        aggregate: BalanceSnapshot = {}
        merge_balances(aggregate, fresh)
        self.store.save_balance_snapshot(network.name, address, aggregate)

        counts = count_statuses(aggregate)
        log(
            network.name,
            f"{address}: {counts[STATUS_NEW]} new, {counts[STATUS_CHANGED]} changed, "
            f"{counts[STATUS_UNCHANGED]} unchanged",
        )

        return ScanResult(
            network=network.name,
            address=address,
            balances=aggregate,
            new_count=counts[STATUS_NEW],
            changed_count=counts[STATUS_CHANGED],
            unchanged_count=counts[STATUS_UNCHANGED],
            skipped_tokens=skipped_tokens,
            last_block=self.store.load(network.name, address).last_scanned_block,
        )

    def scan_network(self, network: NetworkConfig) -> List[ScanResult]:
        """
        Scan every address on one network.

        Args:
            network: Network to scan

        Returns:
            One ScanResult per address
        """
        log(network.name, "Starting token scan...")

        try:
            client = self.client_factory(network)
        except (LedgerError, ValueError) as e:
            if self.fail_fast:
                raise
            log(network.name, f"ERROR: cannot connect: {e}. Skipping network.")
            return [failed_result(network, address, e) for address in self.addresses]

        results: List[ScanResult] = []
        try:
            scanner = BlockRangeScanner(
                client,
                network,
                self.store,
                token_interface=self.token_interface,
                retry_policy=self.retry_policy,
            )
            fetcher = BalanceFetcher(client, network.name, fetch_names=self.fetch_names)

            for address in self.addresses:
                try:
                    results.append(self._scan_address(network, scanner, fetcher, address))
                except PAIR_ERRORS as e:
                    if self.fail_fast:
                        raise
                    log(network.name, f"ERROR: {e}. Skipping address.")
                    results.append(failed_result(network, address, e))
        finally:
            client.close()

        return results

    def run(self) -> List[ScanResult]:
        """
        Scan all enabled networks concurrently, one worker per network.

        Returns:
            ScanResults of all networks, in network configuration order
        """
        if not self.networks:
            return []

        with ThreadPoolExecutor(max_workers=len(self.networks)) as executor:
            futures = [executor.submit(self.scan_network, network) for network in self.networks]
            results: List[ScanResult] = []
            for network, future in zip(self.networks, futures):
                try:
                    results.extend(future.result())
                except Exception as e:
                    # Keep the results of the other networks
                    if self.fail_fast:
                        raise
                    log(network.name, f"ERROR: {e}. Skipping network.")
                    results.extend(failed_result(network, address, e) for address in self.addresses)

        return results
