"""
Loading and validation of the JSON input files.

Addresses, networks and the optional token interface descriptor are
validated once at start-up so a bad entry fails fast with a descriptive
error instead of deep inside a scan.
"""

import json
from pathlib import Path
from typing import Any, List, Union

from eth_utils import event_abi_to_log_topic, is_hex_address

from .models import NetworkConfig, TokenInterface


PathLike = Union[str, Path]


class ConfigError(ValueError):
    """Exception raised for invalid input files."""

    pass


def read_json_array(path: PathLike) -> List[Any]:
    """
    Read a JSON array from a file.

    Raises:
        ConfigError: If the file is missing, unparsable or not an array
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e.strerror or e}") from e
    except ValueError as e:
        raise ConfigError(f"Invalid JSON in {path}: {e}") from e

    if not isinstance(data, list):
        raise ConfigError(f"{path} must contain a JSON array")
    return data


def parse_addresses(entries: List[Any]) -> List[str]:
    """
    Validate and normalize account addresses.

    Addresses are lower-cased; duplicates are dropped keeping the first
    occurrence.
    """
    addresses: List[str] = []
    for entry in entries:
        if not isinstance(entry, str) or not is_hex_address(entry):
            raise ConfigError(f"Invalid address: {entry!r}")
        address = entry.lower()
        if address not in addresses:
            addresses.append(address)
    return addresses


def parse_network(entry: Any) -> NetworkConfig:
    """
    Validate one network entry ``{name, rpcUrl, chunkSize, enabled, explorer}``.

    Raises:
        ConfigError: If a required field is missing or has the wrong type
    """
    if not isinstance(entry, dict):
        raise ConfigError(f"Network entry must be an object: {entry!r}")

    name = entry.get("name")
    if not isinstance(name, str) or not name:
        raise ConfigError(f"Network entry without a name: {entry!r}")

    rpc_url = entry.get("rpcUrl")
    if not isinstance(rpc_url, str) or not rpc_url.lower().startswith(("http://", "https://")):
        raise ConfigError(f"Network {name}: rpcUrl must be an http(s) URL")

    chunk_size = entry.get("chunkSize")
    if isinstance(chunk_size, bool) or not isinstance(chunk_size, int) or chunk_size < 1:
        raise ConfigError(f"Network {name}: chunkSize must be a positive integer")

    enabled = entry.get("enabled", True)
    if not isinstance(enabled, bool):
        raise ConfigError(f"Network {name}: enabled must be true or false")

    explorer = entry.get("explorer")
    if explorer is not None and not isinstance(explorer, str):
        raise ConfigError(f"Network {name}: explorer must be a string")

    return NetworkConfig(
        name=name,
        rpc_url=rpc_url,
        chunk_size=chunk_size,
        enabled=enabled,
        explorer=explorer,
    )


def parse_networks(entries: List[Any]) -> List[NetworkConfig]:
    """Validate all network entries, rejecting duplicate names."""
    networks = [parse_network(entry) for entry in entries]
    seen = set()
    for network in networks:
        if network.name in seen:
            raise ConfigError(f"Duplicate network name: {network.name}")
        seen.add(network.name)
    return networks


def parse_token_interfaces(entries: List[Any]) -> TokenInterface:
    """
    Build the token interface from ``[{type, abi}]`` descriptors.

    Only one descriptor is supported: checkpoints are kept per
    (network, address), so several interfaces would share one scan cursor.
    The Transfer event of the ABI provides the log topic.
    """
    if len(entries) != 1:
        raise ConfigError(f"Expected exactly one token interface descriptor, got {len(entries)}")

    entry = entries[0]
    if not isinstance(entry, dict) or not isinstance(entry.get("type"), str) or not entry["type"]:
        raise ConfigError("Token interface descriptor needs a non-empty type")

    abi = entry.get("abi")
    if not isinstance(abi, list):
        raise ConfigError(f"Token interface {entry['type']}: abi must be a list")

    transfer = next(
        (item for item in abi if isinstance(item, dict) and item.get("type") == "event" and item.get("name") == "Transfer"),
        None,
    )
    if transfer is None:
        raise ConfigError(f"Token interface {entry['type']}: abi has no Transfer event")

    function_names = {item.get("name") for item in abi if isinstance(item, dict) and item.get("type") == "function"}
    if "balanceOf" not in function_names:
        raise ConfigError(f"Token interface {entry['type']}: abi has no balanceOf function")

    try:
        topic = "0x" + event_abi_to_log_topic(transfer).hex()
    except (KeyError, TypeError, ValueError) as e:
        raise ConfigError(f"Token interface {entry['type']}: malformed Transfer event") from e

    return TokenInterface(type=entry["type"], transfer_topic=topic)


def load_addresses(path: PathLike) -> List[str]:
    return parse_addresses(read_json_array(path))


def load_networks(path: PathLike) -> List[NetworkConfig]:
    return parse_networks(read_json_array(path))


def load_token_interface(path: PathLike) -> TokenInterface:
    return parse_token_interfaces(read_json_array(path))
