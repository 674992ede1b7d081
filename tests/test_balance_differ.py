"""
Unit tests for balance classification and merging.

Tests follow the Given/When/Then pattern for clarity.
"""

from conftest import TOKEN_A, TOKEN_B
from scripts.lib.balance_differ import classify, count_statuses, diff_balances, merge_balances
from scripts.lib.models import BalanceRecord


def record(token, balance, status=None):
    return BalanceRecord(token_address=token, token_type="ERC20", balance=balance, status=status)


class TestClassify:
    """Tests for the classify function."""

    def test_same_balance_is_unchanged_and_missing_token_is_new(self):
        """
        Given a previous snapshot {A: "100"}
        When the fresh fetch produces {A: "100", B: "50"}
        Then A should be unchanged and B new
        """
        # Given
        previous = {TOKEN_A: record(TOKEN_A, "100")}
        fresh = {TOKEN_A: record(TOKEN_A, "100"), TOKEN_B: record(TOKEN_B, "50")}

        # When
        diff_balances(fresh, previous)

        # Then
        assert fresh[TOKEN_A].status == "unchanged"
        assert fresh[TOKEN_B].status == "new"

    def test_different_balance_is_changed(self):
        """
        Given a previous snapshot {A: "100"}
        When the fresh fetch produces {A: "200"}
        Then A should be changed
        """
        # Given
        previous = {TOKEN_A: record(TOKEN_A, "100")}

        # When
        status = classify(record(TOKEN_A, "200"), previous)

        # Then
        assert status == "changed"

    def test_balances_compare_as_strings(self):
        """
        Given balances beyond 64-bit range that differ only in the last digit
        When classifying
        Then the difference should be detected
        """
        # Given
        big = str(2**200)
        previous = {TOKEN_A: record(TOKEN_A, big)}

        # When
        status = classify(record(TOKEN_A, big[:-1] + "7"), previous)

        # Then
        assert status == "changed"

    def test_unknown_previous_balance_is_changed(self):
        """
        Given a previous record whose balance is unknown
        When the fresh fetch produces a zero balance
        Then the token should be changed, not unchanged
        """
        # Given
        previous = {TOKEN_A: record(TOKEN_A, None)}

        # When
        status = classify(record(TOKEN_A, "0"), previous)

        # Then
        assert status == "changed"

    def test_no_previous_snapshot_makes_everything_new(self):
        """
        Given no previous snapshot
        When diffing fresh balances
        Then every token should be new
        """
        # Given
        fresh = {TOKEN_A: record(TOKEN_A, "0"), TOKEN_B: record(TOKEN_B, "1")}

        # When
        result = diff_balances(fresh, {})

        # Then
        assert {r.status for r in result.values()} == {"new"}


class TestMergeBalances:
    """Tests for merge_balances."""

    def test_later_record_wins_per_token(self):
        """
        Given a target holding A and updates holding A and B
        When merging
        Then A should be replaced and B added
        """
        # Given
        target = {TOKEN_A: record(TOKEN_A, "1")}
        updates = {TOKEN_A: record(TOKEN_A, "2"), TOKEN_B: record(TOKEN_B, "3")}

        # When
        merged = merge_balances(target, updates)

        # Then
        assert merged is target
        assert target[TOKEN_A].balance == "2"
        assert target[TOKEN_B].balance == "3"


class TestCountStatuses:
    """Tests for count_statuses."""

    def test_counts_every_status(self):
        """
        Given records with mixed statuses
        When counting
        Then each status should be tallied, absent ones as zero
        """
        # Given
        snapshot = {
            TOKEN_A: record(TOKEN_A, "1", status="new"),
            TOKEN_B: record(TOKEN_B, "2", status="new"),
        }

        # When
        counts = count_statuses(snapshot)

        # Then
        assert counts == {"new": 2, "changed": 0, "unchanged": 0}
