"""
Block range scanner discovering token contracts from Transfer logs.

The scanner walks a chain from the checkpoint to the head block in
adaptively sized chunks, asking for Transfer events whose recipient topic
is the target address. The checkpoint is saved after every chunk, so an
interrupted scan loses at most one chunk of work.
"""

import time
from typing import Any, Callable, Dict, List, Optional, Set

from .checkpoint_store import CheckpointStore
from .formatters import log
from .models import NetworkConfig, TokenInterface
from .retry import RetryPolicy
from .rpc_client import TransportError, address_topic


# Latency band for a single log query
SLOW_QUERY_MS = 6000
FAST_QUERY_MS = 3000
MAX_CHUNK_MULTIPLIER = 10
STEP_FRACTION = 0.1

DEFAULT_CHUNK_ATTEMPTS = 5


class ScanFailure(Exception):
    """Retry budget exhausted for a chunk; fatal for one (network, address) pair."""

    def __init__(self, network: str, address: str, message: str):
        super().__init__(f"[{network}] {address}: {message}")
        self.network = network
        self.address = address


class ChunkSizer:
    """
    Adaptive block range size owned by a single scan invocation.

    Grows by one step after fast queries, shrinks by one step after slow
    ones and halves after failures. Always between 1 and
    MAX_CHUNK_MULTIPLIER times the configured default.
    """

    def __init__(self, default_size: int):
        if default_size < 1:
            raise ValueError("Chunk size must be at least 1")
        self.default_size = default_size
        self.max_size = default_size * MAX_CHUNK_MULTIPLIER
        self.step = max(1, round(default_size * STEP_FRACTION))
        self.size = default_size

    def record_latency(self, elapsed_ms: float) -> int:
        """Adjust the size after a successful query that took ``elapsed_ms``."""
        if elapsed_ms > SLOW_QUERY_MS:
            self.size = max(1, self.size - self.step)
        elif elapsed_ms < FAST_QUERY_MS:
            self.size = min(self.max_size, self.size + self.step)
        return self.size

    def record_failure(self) -> int:
        """Halve the size after a failed query."""
        self.size = max(1, self.size // 2)
        return self.size


def _event_key(event: Dict[str, Any]) -> tuple:
    return (event.get("transactionHash"), event.get("logIndex"))


def _raw_event(event: Dict[str, Any]) -> Dict[str, Any]:
    """Keep the fields of a log worth persisting."""
    return {
        "blockNumber": event.get("blockNumber"),
        "transactionHash": event.get("transactionHash"),
        "logIndex": event.get("logIndex"),
        "topics": event.get("topics", []),
        "data": event.get("data"),
    }


class BlockRangeScanner:
    """
    Incrementally discovers token contracts that sent tokens to an address.

    One scanner serves one network; ``scan`` is called once per address.
    """

    def __init__(
        self,
        client,
        network: NetworkConfig,
        store: CheckpointStore,
        token_interface: Optional[TokenInterface] = None,
        retry_policy: Optional[RetryPolicy] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the scanner.

        Args:
            client: Ledger client (latest_block_number, get_logs)
            network: Network being scanned
            store: Checkpoint store for progress persistence
            token_interface: Type tag and Transfer topic (ERC20 by default)
            retry_policy: Per-chunk retry budget and backoff between attempts
            clock: Monotonic clock in seconds, used to time log queries
            sleep: Sleep function used between retries
        """
        self.client = client
        self.network = network
        self.store = store
        self.token_interface = token_interface or TokenInterface()
        self.retry_policy = retry_policy or RetryPolicy(max_attempts=DEFAULT_CHUNK_ATTEMPTS, initial_delay=0.5)
        self.clock = clock
        self.sleep = sleep

    def _record_events(
        self,
        contracts: Dict[str, Dict[str, Any]],
        seen: Dict[str, Set[tuple]],
        events: List[Dict[str, Any]],
    ) -> int:
        """
        Merge events into the contract mapping; returns the number of new contracts.

        ``seen`` holds the event keys already stored per contract and is
        updated in place.
        """
        found = 0
        for event in events:
            token_address = str(event.get("address", "")).lower()
            if not token_address:
                continue
            entry = contracts.get(token_address)
            if entry is None:
                entry = contracts[token_address] = {"type": self.token_interface.type, "events": []}
                found += 1
            known = seen.get(token_address)
            if known is None:
                known = seen[token_address] = {_event_key(e) for e in entry.setdefault("events", [])}
            key = _event_key(event)
            if key not in known:
                known.add(key)
                entry["events"].append(_raw_event(event))
        return found

    def scan(self, address: str) -> Dict[str, Dict[str, Any]]:
        """
        Scan from the checkpoint to the current head for contracts sending to ``address``.

        Args:
            address: Account address (recipient of the Transfer events)

        Returns:
            Mapping of lower-cased contract address -> discovery metadata

        Raises:
            ScanFailure: If the head block cannot be resolved or a chunk exhausts its retries
            CorruptCheckpoint: If the stored checkpoint cannot be parsed
        """
        name = self.network.name
        address = address.lower()
        checkpoint = self.store.load(name, address)
        contracts = checkpoint.contracts

        try:
            end_block = self.client.latest_block_number()
        except TransportError as e:
            raise ScanFailure(name, address, f"head block lookup failed: {e}") from e

        # Without a checkpoint file block 0 has not been scanned yet
        cursor = checkpoint.last_scanned_block + 1 if checkpoint.persisted else 0
        sizer = ChunkSizer(self.network.chunk_size)
        topics = [self.token_interface.transfer_topic, None, address_topic(address)]
        seen: Dict[str, Set[tuple]] = {}
        attempt = 0

        while cursor <= end_block:
            to_block = min(cursor + sizer.size - 1, end_block)
            progress = round(100.0 * cursor / end_block, 2) if end_block else 100.0
            log(name, f"Looking for tokens for {address} {cursor}/{end_block} @ {sizer.size} ({progress}%)")

            attempt += 1
            started = self.clock()
            try:
                events = self.client.get_logs(cursor, to_block, topics)
            except TransportError as e:
                sizer.record_failure()
                if not self.retry_policy.can_retry(attempt):
                    raise ScanFailure(
                        name,
                        address,
                        f"blocks {cursor}-{to_block} failed after {attempt} attempts: {e}",
                    ) from e
                log(name, f"Log query for blocks {cursor}-{to_block} failed ({e}), retrying @ {sizer.size}")
                self.sleep(self.retry_policy.delay_for(attempt))
                continue

            elapsed_ms = (self.clock() - started) * 1000
            sizer.record_latency(elapsed_ms)

            found = self._record_events(contracts, seen, events)
            if found:
                log(name, f"Found {found} new token contract(s) for {address}")

            self.store.save(name, address, to_block, contracts)
            cursor = to_block + 1
            attempt = 0

        return contracts
