"""
Output formatters for token balance reports.

This module handles progress logging to stderr, timestamp generation for
snapshot filenames, and JSON output of the combined balance map.
"""

import json
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, TextIO

from .models import ScanResult


# network -> address -> token address -> persisted balance entry
BalanceReport = Dict[str, Dict[str, Dict[str, Dict[str, Any]]]]


def log(network: str, message: str) -> None:
    """Log a message with network prefix."""
    print(f"[{network}] {message}", file=sys.stderr)


def generate_timestamp() -> str:
    """
    Generate a timestamp string for filenames.

    Returns:
        Timestamp in YYYYMMDD_HHMMSS format
    """
    return datetime.now().strftime("%Y%m%d_%H%M%S")


def combine_scan_results(results: List[ScanResult]) -> BalanceReport:
    """
    Combine per-address scan results into one network -> address -> token map.

    Failed pairs are left out. Every network and address that scanned
    successfully appears, even with no tokens.

    Args:
        results: ScanResult objects from all networks

    Returns:
        Nested mapping of persisted balance entries
    """
    report: BalanceReport = {}

    for result in results:
        if result.error is not None:
            continue
        by_address = report.setdefault(result.network, {})
        tokens = by_address.setdefault(result.address, {})
        for token_address, record in result.balances.items():
            tokens[token_address] = record.to_dict()

    return report


def write_json_to_stream(report: BalanceReport, stream: TextIO) -> None:
    """
    Write the balance report as indented JSON to a stream.

    Args:
        report: Combined balance report
        stream: File-like object to write to
    """
    json.dump(report, stream, indent=4)
    stream.write("\n")


def write_json(report: BalanceReport, output_path: Optional[str] = None) -> Optional[str]:
    """
    Write the balance report to a file or stdout.

    Args:
        report: Combined balance report
        output_path: Output file path. If None, writes to stdout.

    Returns:
        The written file path if output_path provided, otherwise None.
    """
    if output_path is None:
        write_json_to_stream(report, sys.stdout)
        return None

    path = Path(output_path)
    if path.parent and not path.parent.exists():
        path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "w", encoding="utf-8") as f:
        write_json_to_stream(report, f)

    return str(path)
