"""
Classification of fresh balances against the previous snapshot.
"""

from typing import Dict

from .models import (
    STATUS_CHANGED,
    STATUS_NEW,
    STATUS_UNCHANGED,
    STATUSES,
    BalanceRecord,
    BalanceSnapshot,
)


def classify(record: BalanceRecord, previous: BalanceSnapshot) -> str:
    """
    Get the status of a freshly fetched record.

    Balances are compared as strings, never as machine integers. An unknown
    previous balance (None) counts as changed.

    Examples:
        previous {A: "100"}, fresh A "100" -> "unchanged"
        previous {A: "100"}, fresh A "200" -> "changed"
        previous {A: "100"}, fresh B "50"  -> "new"
    """
    prior = previous.get(record.token_address)
    if prior is None:
        return STATUS_NEW
    if prior.balance != record.balance:
        return STATUS_CHANGED
    return STATUS_UNCHANGED


def diff_balances(fresh: BalanceSnapshot, previous: BalanceSnapshot) -> BalanceSnapshot:
    """
    Assign a status to every fresh record.

    Args:
        fresh: Records from the current run
        previous: Most recent persisted snapshot (empty on the first run)

    Returns:
        The fresh records with status set
    """
    for record in fresh.values():
        record.status = classify(record, previous or {})
    return fresh


def merge_balances(target: BalanceSnapshot, updates: BalanceSnapshot) -> BalanceSnapshot:
    """Update ``target`` in place, the later record winning per token address."""
    for token_address, record in updates.items():
        target[token_address] = record
    return target


def count_statuses(snapshot: BalanceSnapshot) -> Dict[str, int]:
    counts = {status: 0 for status in STATUSES}
    for record in snapshot.values():
        if record.status in counts:
            counts[record.status] += 1
    return counts
