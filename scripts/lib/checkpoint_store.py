"""
File-based persistence of scan checkpoints and balance snapshots.

Checkpoints live in ``<cache_dir>/<network>-<address>.json`` and hold the
last fully scanned block plus the discovered token contracts. Balance
snapshots live in ``<data_dir>/<network>-<address>_<timestamp>.json``, one
file per run, and serve as the baseline for the next run's diff.

Every write goes to a temporary file in the target directory which is then
renamed over the destination, so a reader never sees a partial file.
"""

import json
import os
import re
import tempfile
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from .formatters import generate_timestamp
from .models import BalanceRecord, BalanceSnapshot, ScanCheckpoint


DEFAULT_CACHE_DIR = "cache"
DEFAULT_DATA_DIR = "data"

# <network>-<address>[_<YYYYMMDD_HHMMSS>].json; network names may contain dashes
SNAPSHOT_FILENAME_RE = re.compile(
    r"^(?P<network>.+)-(?P<address>0x[0-9a-fA-F]{40})(?:_(?P<timestamp>\d{8}_\d{6}))?\.json$"
)

PathLike = Union[str, Path]


class CorruptCheckpoint(Exception):
    """Persisted checkpoint data could not be parsed."""

    def __init__(self, path: PathLike, reason: str):
        super().__init__(f"Corrupt checkpoint {path}: {reason}")
        self.path = str(path)
        self.reason = reason


class CorruptSnapshot(Exception):
    """A persisted balance snapshot could not be parsed."""

    def __init__(self, path: PathLike, reason: str):
        super().__init__(f"Corrupt balance snapshot {path}: {reason}")
        self.path = str(path)
        self.reason = reason


def _atomic_write_json(path: Path, data: Any) -> None:
    """Write JSON to a temp file beside ``path`` and rename it into place."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=4)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


def _read_snapshot_file(path: Path) -> BalanceSnapshot:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        raise CorruptSnapshot(path, str(e)) from e

    if not isinstance(data, dict):
        raise CorruptSnapshot(path, "expected a JSON object")
    for token, entry in data.items():
        if not isinstance(entry, dict):
            raise CorruptSnapshot(path, f"invalid entry for {token}")
    return {token: BalanceRecord.from_dict(token, entry) for token, entry in data.items()}


def _snapshot_files(directory: Path) -> Iterator[Tuple[str, str, str, Path]]:
    """Yield (network, address, sort key, path) for every snapshot file in a directory."""
    if not directory.is_dir():
        return
    for path in directory.iterdir():
        match = SNAPSHOT_FILENAME_RE.match(path.name)
        if not match or not path.is_file():
            continue
        # Untimestamped files predate timestamped ones
        yield match.group("network"), match.group("address").lower(), match.group("timestamp") or "", path


def load_all_snapshots(directory: PathLike) -> Dict[str, Dict[str, List[BalanceSnapshot]]]:
    """
    Reconstruct the balance history stored in a directory.

    Files not matching the snapshot naming convention are ignored.

    Args:
        directory: Directory holding balance snapshot files

    Returns:
        Mapping network -> address -> snapshots ordered oldest first

    Raises:
        CorruptSnapshot: If a snapshot file cannot be parsed
    """
    found: Dict[str, Dict[str, List[Tuple[str, Path]]]] = {}
    for network, address, sort_key, path in _snapshot_files(Path(directory)):
        found.setdefault(network, {}).setdefault(address, []).append((sort_key, path))

    history: Dict[str, Dict[str, List[BalanceSnapshot]]] = {}
    for network, by_address in found.items():
        for address, entries in by_address.items():
            entries.sort()
            history.setdefault(network, {})[address] = [
                _read_snapshot_file(path) for _, path in entries
            ]

    return history


class CheckpointStore:
    """
    Persists scan checkpoints and balance snapshots per (network, address).

    Each pair is written by one scan task at a time, so atomic file
    replacement is the only synchronization needed.
    """

    def __init__(self, cache_dir: PathLike = DEFAULT_CACHE_DIR, data_dir: PathLike = DEFAULT_DATA_DIR):
        """
        Initialize the store.

        Args:
            cache_dir: Directory for checkpoint files
            data_dir: Directory for balance snapshot files
        """
        self.cache_dir = Path(cache_dir)
        self.data_dir = Path(data_dir)
        # (network, address) -> last block known to be on disk
        self._last_saved: Dict[Tuple[str, str], int] = {}

    def checkpoint_path(self, network: str, address: str) -> Path:
        """Get the checkpoint file path for a pair."""
        return self.cache_dir / f"{network}-{address.lower()}.json"

    def snapshot_path(self, network: str, address: str, timestamp: str) -> Path:
        """Get the balance snapshot file path for a pair at a timestamp."""
        return self.data_dir / f"{network}-{address.lower()}_{timestamp}.json"

    def load(self, network: str, address: str) -> ScanCheckpoint:
        """
        Load the checkpoint for a pair.

        Args:
            network: Network name
            address: Account address

        Returns:
            The persisted checkpoint, or an empty one if none exists

        Raises:
            CorruptCheckpoint: If the stored data cannot be parsed
        """
        path = self.checkpoint_path(network, address)
        if not path.exists():
            return ScanCheckpoint()

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise CorruptCheckpoint(path, str(e)) from e

        if not isinstance(data, dict):
            raise CorruptCheckpoint(path, "expected a JSON object")

        last_block = data.get("lastBlock")
        contracts = data.get("contracts")
        if isinstance(last_block, bool) or not isinstance(last_block, int) or last_block < 0:
            raise CorruptCheckpoint(path, f"invalid lastBlock {last_block!r}")
        if not isinstance(contracts, dict):
            raise CorruptCheckpoint(path, "invalid contracts mapping")

        self._last_saved[(network, address.lower())] = last_block
        return ScanCheckpoint(last_scanned_block=last_block, contracts=contracts, persisted=True)

    def save(self, network: str, address: str, end_block: int, contracts: Dict[str, Dict[str, Any]]) -> None:
        """
        Atomically persist scan progress for a pair.

        The file is only read when this store has not seen the pair yet.

        Args:
            network: Network name
            address: Account address
            end_block: Last block fully scanned (inclusive)
            contracts: Discovered contracts so far

        Raises:
            ValueError: If end_block would move the checkpoint backwards
        """
        key = (network, address.lower())
        path = self.checkpoint_path(network, address)
        if key not in self._last_saved and path.exists():
            self.load(network, address)

        previous = self._last_saved.get(key)
        if previous is not None and end_block < previous:
            raise ValueError(
                f"Checkpoint for {network}/{address} cannot move back "
                f"from block {previous} to {end_block}"
            )

        checkpoint = ScanCheckpoint(last_scanned_block=end_block, contracts=contracts)
        _atomic_write_json(path, checkpoint.to_dict())
        self._last_saved[key] = end_block

    def save_balance_snapshot(
        self,
        network: str,
        address: str,
        snapshot: BalanceSnapshot,
        timestamp: Optional[str] = None,
    ) -> Optional[str]:
        """
        Persist a balance snapshot for a pair.

        Empty snapshots are not written so the previous run's file stays the
        baseline for the next diff.

        Args:
            network: Network name
            address: Account address
            snapshot: Balance records keyed by token address
            timestamp: Optional timestamp to use (generates new one if not provided)

        Returns:
            The written file path, or None if nothing was written
        """
        if not snapshot:
            return None

        path = self.snapshot_path(network, address, timestamp or generate_timestamp())
        _atomic_write_json(path, {token: record.to_dict() for token, record in snapshot.items()})
        return str(path)

    def load_previous_snapshot(self, network: str, address: str) -> BalanceSnapshot:
        """
        Load the most recent balance snapshot for a pair.

        Returns:
            The latest snapshot, or an empty mapping if none was ever written

        Raises:
            CorruptSnapshot: If the latest snapshot file cannot be parsed
        """
        address = address.lower()
        candidates = [
            (sort_key, path)
            for found_network, found_address, sort_key, path in _snapshot_files(self.data_dir)
            if found_network == network and found_address == address
        ]
        if not candidates:
            return {}
        return _read_snapshot_file(max(candidates)[1])
