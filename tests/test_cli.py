"""
Unit tests for the CLI module.

Tests follow the Given/When/Then pattern for clarity.
"""

import json

import pytest

from conftest import TOKEN_A, FakeLedger, transfer_log, transport_error
from scripts.lib.models import NetworkConfig
from scripts.scan_token_balances import main, select_networks


ADDRESS = "0x" + "1" * 40


def configured(*names):
    return [NetworkConfig(name=name, rpc_url=f"https://{name}.example.com", chunk_size=100) for name in names]


@pytest.fixture
def input_files(tmp_path):
    """Address and network files for one address on two networks."""
    addresses = tmp_path / "addresses.json"
    addresses.write_text(json.dumps([ADDRESS]))
    networks = tmp_path / "networks.json"
    networks.write_text(
        json.dumps(
            [
                {"name": "ethereum", "rpcUrl": "https://eth.example.com", "chunkSize": 100, "enabled": True},
                {"name": "polygon", "rpcUrl": "https://polygon.example.com", "chunkSize": 100, "enabled": True},
            ]
        )
    )
    return tmp_path, addresses, networks


def cli_args(tmp_path, addresses, networks, *extra):
    return [
        "--addresses",
        str(addresses),
        "--networks",
        str(networks),
        "--cache-dir",
        str(tmp_path / "cache"),
        "--data-dir",
        str(tmp_path / "data"),
        *extra,
    ]


class TestSelectNetworks:
    """Tests for select_networks function."""

    def test_returns_all_networks_without_names(self):
        """
        Given no requested names
        When selecting networks
        Then all configured networks should be returned
        """
        # Given
        networks = configured("ethereum", "polygon")

        # When / Then
        assert select_networks(networks, None) == networks

    def test_keeps_configuration_order(self):
        """
        Given names in a different order than configured
        When selecting networks
        Then the configuration order should be kept
        """
        # Given
        networks = configured("ethereum", "polygon", "bsc")

        # When
        result = select_networks(networks, ["bsc", "ethereum"])

        # Then
        assert [n.name for n in result] == ["ethereum", "bsc"]

    def test_raises_error_for_unknown_network(self):
        """
        Given a name that is not configured
        When selecting networks
        Then a ValueError should be raised
        """
        with pytest.raises(ValueError, match="Unknown network: solana"):
            select_networks(configured("ethereum"), ["solana"])


class TestMain:
    """Tests for the main entry point."""

    def test_prints_combined_json_and_exits_zero(self, input_files, monkeypatch, capsys):
        """
        Given valid input files and reachable networks
        When running the CLI
        Then the JSON report should be printed and the exit code be 0
        """
        # Given
        tmp_path, addresses, networks = input_files
        monkeypatch.setattr(
            "scripts.lib.orchestrator.default_client_factory",
            lambda network: FakeLedger(head=50, logs={10: [transfer_log(TOKEN_A, 10)]}, balances={TOKEN_A: 7}),
        )

        # When
        exit_code = main(cli_args(tmp_path, addresses, networks))

        # Then
        assert exit_code == 0
        report = json.loads(capsys.readouterr().out)
        assert report["ethereum"][ADDRESS][TOKEN_A] == {"status": "new", "type": "ERC20", "name": None, "balance": "7"}
        assert set(report) == {"ethereum", "polygon"}

    def test_failed_network_exits_non_zero_with_message(self, input_files, monkeypatch, capsys):
        """
        Given one network whose head block cannot be read
        When running the CLI
        Then the other network's report should be printed
        And an error line should name the network, address and cause
        """
        # Given
        tmp_path, addresses, networks = input_files

        def factory(network):
            if network.name == "polygon":
                return FakeLedger(head=transport_error("connection refused"))
            return FakeLedger(head=5)

        monkeypatch.setattr("scripts.lib.orchestrator.default_client_factory", factory)

        # When
        exit_code = main(cli_args(tmp_path, addresses, networks))

        # Then
        assert exit_code == 1
        captured = capsys.readouterr()
        assert set(json.loads(captured.out)) == {"ethereum"}
        assert f"Error: [polygon] {ADDRESS}: head block lookup failed: connection refused" in captured.err

    def test_only_restricts_networks(self, input_files, monkeypatch, capsys):
        """
        Given --only polygon
        When running the CLI
        Then only polygon should be scanned
        """
        # Given
        tmp_path, addresses, networks = input_files
        monkeypatch.setattr("scripts.lib.orchestrator.default_client_factory", lambda network: FakeLedger(head=5))

        # When
        exit_code = main(cli_args(tmp_path, addresses, networks, "--only", "polygon"))

        # Then
        assert exit_code == 0
        assert set(json.loads(capsys.readouterr().out)) == {"polygon"}

    def test_writes_report_to_output_file(self, input_files, monkeypatch):
        """
        Given an --output path
        When running the CLI
        Then the report should be written to that file
        """
        # Given
        tmp_path, addresses, networks = input_files
        output = tmp_path / "balances.json"
        monkeypatch.setattr("scripts.lib.orchestrator.default_client_factory", lambda network: FakeLedger(head=5))

        # When
        exit_code = main(cli_args(tmp_path, addresses, networks, "--output", str(output)))

        # Then
        assert exit_code == 0
        assert set(json.loads(output.read_text())) == {"ethereum", "polygon"}

    def test_invalid_configuration_exits_with_error(self, tmp_path, capsys):
        """
        Given a network file with an invalid entry
        When running the CLI
        Then an error should be printed and the exit code be 1
        """
        # Given
        addresses = tmp_path / "addresses.json"
        addresses.write_text(json.dumps([ADDRESS]))
        networks = tmp_path / "networks.json"
        networks.write_text(json.dumps([{"name": "ethereum", "rpcUrl": "https://x", "chunkSize": 0}]))

        # When
        exit_code = main(cli_args(tmp_path, addresses, networks))

        # Then
        assert exit_code == 1
        assert "Error: Network ethereum: chunkSize must be a positive integer" in capsys.readouterr().err

    def test_fail_fast_exits_with_single_error(self, input_files, monkeypatch, capsys):
        """
        Given --fail-fast and a failing network
        When running the CLI
        Then one error line should be printed and nothing on stdout
        """
        # Given
        tmp_path, addresses, networks = input_files

        monkeypatch.setattr(
            "scripts.lib.orchestrator.default_client_factory",
            lambda network: FakeLedger(head=transport_error("connection refused")),
        )

        # When
        exit_code = main(cli_args(tmp_path, addresses, networks, "--fail-fast"))

        # Then
        assert exit_code == 1
        captured = capsys.readouterr()
        assert captured.out == ""
        assert "connection refused" in captured.err
