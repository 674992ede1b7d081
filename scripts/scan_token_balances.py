#!/usr/bin/env python3
"""
Scan accounts for ERC20 token balances across multiple networks.

This script discovers the token contracts that sent tokens to each
configured address by scanning Transfer logs (resuming from the last
checkpoint), queries the current balance of every discovered token and
prints a JSON report classifying each balance as new, changed or unchanged.
"""

import argparse
import sys
from typing import List, Optional

from scripts.lib.block_scanner import ScanFailure
from scripts.lib.checkpoint_store import (
    DEFAULT_CACHE_DIR,
    DEFAULT_DATA_DIR,
    CheckpointStore,
    CorruptCheckpoint,
    CorruptSnapshot,
)
from scripts.lib.config import ConfigError, load_addresses, load_networks, load_token_interface
from scripts.lib.formatters import combine_scan_results, write_json
from scripts.lib.models import NetworkConfig
from scripts.lib.orchestrator import ScanOrchestrator
from scripts.lib.rpc_client import LedgerError


def select_networks(networks: List[NetworkConfig], names: Optional[List[str]]) -> List[NetworkConfig]:
    """
    Restrict configured networks to the requested names.

    Args:
        networks: Networks from the configuration file
        names: Requested network names (all networks if None)

    Returns:
        Selected networks in configuration order

    Raises:
        ValueError: If any requested network is not configured
    """
    if not names:
        return networks

    configured = [network.name for network in networks]
    for name in names:
        if name not in configured:
            raise ValueError(f"Unknown network: {name}. " f"Configured: {', '.join(configured)}")
    return [network for network in networks if network.name in names]


def main(args: Optional[List[str]] = None) -> int:
    """
    Main entry point for the CLI.

    Args:
        args: Command line arguments (uses sys.argv if None)

    Returns:
        Exit code (0 for success, 1 for error)
    """
    parser = argparse.ArgumentParser(
        description="Discover ERC20 tokens received by accounts and report their balances.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Scan all enabled networks, print JSON to stdout
  %(prog)s --addresses addresses.json --networks networks.json

  # Scan only one network, save report to file
  %(prog)s --addresses addresses.json --networks networks.json \\
    --only ethereum --output balances.json
        """,
    )

    parser.add_argument(
        "--addresses",
        default="addresses.json",
        help="JSON array of account addresses (default: addresses.json)",
    )
    parser.add_argument(
        "--networks",
        default="networks.json",
        help="JSON array of {name, rpcUrl, chunkSize, enabled, explorer} (default: networks.json)",
    )
    parser.add_argument(
        "--abis",
        help="Optional JSON array with one {type, abi} token interface descriptor",
    )
    parser.add_argument(
        "--only",
        nargs="+",
        help="Scan only these configured networks",
    )
    parser.add_argument(
        "--cache-dir",
        default=DEFAULT_CACHE_DIR,
        help=f"Directory for scan checkpoints (default: {DEFAULT_CACHE_DIR})",
    )
    parser.add_argument(
        "--data-dir",
        default=DEFAULT_DATA_DIR,
        help=f"Directory for balance snapshots (default: {DEFAULT_DATA_DIR})",
    )
    parser.add_argument(
        "--output",
        help="Output file path. If not specified, outputs to stdout.",
    )
    parser.add_argument(
        "--fail-fast",
        action="store_true",
        help="Abort the whole run on the first failed address instead of skipping it",
    )
    parser.add_argument(
        "--no-names",
        action="store_true",
        help="Do not query token display names",
    )

    parsed_args = parser.parse_args(args)

    # Load configuration
    try:
        addresses = load_addresses(parsed_args.addresses)
        networks = select_networks(load_networks(parsed_args.networks), parsed_args.only)
        token_interface = load_token_interface(parsed_args.abis) if parsed_args.abis else None
    except (ConfigError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    orchestrator = ScanOrchestrator(
        networks,
        addresses,
        CheckpointStore(parsed_args.cache_dir, parsed_args.data_dir),
        token_interface=token_interface,
        fail_fast=parsed_args.fail_fast,
        fetch_names=not parsed_args.no_names,
    )

    try:
        results = orchestrator.run()
    except (ScanFailure, CorruptCheckpoint, CorruptSnapshot, LedgerError, OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    output_file = write_json(combine_scan_results(results), parsed_args.output)
    if output_file:
        print(f"\nResults written to: {output_file}", file=sys.stderr)

    failures = [result for result in results if result.error is not None]
    for failure in failures:
        print(f"Error: {failure.error}", file=sys.stderr)

    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main())
