"""
JSON-RPC ledger client with automatic rate limit handling and retry logic.

This module provides the client every scan task uses to talk to an
EVM-compatible node: head block lookup, log queries over block ranges and
read-only contract calls. HTTP 429 and server errors are retried with
exponential backoff before being surfaced as typed errors.
"""

import time
from typing import Any, Callable, Dict, List, Optional, Sequence
from urllib.parse import urlparse

import requests
from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from eth_utils import function_signature_to_4byte_selector, keccak

from .retry import RetryPolicy


# keccak("Transfer(address,address,uint256)")
TRANSFER_TOPIC = "0x" + keccak(text="Transfer(address,address,uint256)").hex()

# View methods callable through call_view_method: signature, argument types, return type
VIEW_METHODS = {
    "balanceOf": ("balanceOf(address)", ["address"], "uint256"),
    "name": ("name()", [], "string"),
    "symbol": ("symbol()", [], "string"),
    "decimals": ("decimals()", [], "uint8"),
}

# JSON-RPC error codes that providers use for throttling
RATE_LIMIT_ERROR_CODES = (-32005, 429)

DEFAULT_CLIENT_MAX_ATTEMPTS = 3
DEFAULT_TIMEOUT = 30.0  # seconds


class LedgerError(Exception):
    """Base exception for ledger client errors."""


class TransportError(LedgerError):
    """RPC call failed at the network or protocol layer."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimited(TransportError):
    """Exception raised when the node keeps throttling and retries are exhausted."""

    pass


class JsonRpcError(TransportError):
    """The node answered with a JSON-RPC error object."""

    pass


class ContractCallError(LedgerError):
    """A single view-method call failed (reverted, missing or undecodable)."""

    def __init__(self, contract_address: str, method_name: str, reason: str):
        super().__init__(f"{method_name}() on {contract_address} failed: {reason}")
        self.contract_address = contract_address
        self.method_name = method_name
        self.reason = reason


def address_topic(address: str) -> str:
    """
    Left-pad an account address into a 32-byte log topic.

    Examples:
        address_topic("0xAbC...") -> "0x000000000000000000000000abc..."
    """
    return "0x" + address.lower().replace("0x", "").rjust(64, "0")


class RpcClient:
    """
    Ledger client for one network's JSON-RPC endpoint.

    All chain interactions of a scan task go through this class, which handles:
    - HTTP 429 rate limit retries with exponential backoff
    - Server error and connection error retries
    - JSON-RPC request/response serialization
    - ABI encoding of view-method calls
    """

    def __init__(
        self,
        rpc_url: str,
        retry_policy: Optional[RetryPolicy] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        """
        Initialize the client.

        Args:
            rpc_url: HTTP(S) JSON-RPC endpoint, possibly embedding an API key
            retry_policy: Backoff policy for throttled or failed HTTP requests
            timeout: Per-request timeout in seconds
        """
        self.rpc_url = rpc_url
        self.retry_policy = retry_policy or RetryPolicy(max_attempts=DEFAULT_CLIENT_MAX_ATTEMPTS)
        self.timeout = timeout
        self.session = requests.Session()
        self._request_id = 0

    def __enter__(self) -> "RpcClient":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()

    def close(self) -> None:
        """Release the underlying HTTP connection pool."""
        self.session.close()

    def _sanitize_error_message(self, message: str) -> str:
        """Remove the RPC URL (and any key in its path) from error messages."""
        sanitized = message.replace(self.rpc_url, "[REDACTED]")
        path = urlparse(self.rpc_url).path
        if path and path != "/":
            sanitized = sanitized.replace(path, "/[REDACTED]")
        return sanitized

    def _execute_with_retry(
        self,
        request_func: Callable[[], requests.Response],
    ) -> requests.Response:
        """
        Execute a request function with retry logic for rate limits and server errors.

        Args:
            request_func: A callable that returns a requests.Response

        Returns:
            The successful response

        Raises:
            TransportError: For transport errors after retries exhausted
            RateLimited: When rate limit retries are exhausted
        """
        policy = self.retry_policy
        attempt = 0

        while True:
            attempt += 1
            try:
                response = request_func()
            except requests.RequestException as e:
                if policy.can_retry(attempt):
                    time.sleep(policy.delay_for(attempt))
                    continue
                sanitized_msg = self._sanitize_error_message(str(e))
                raise TransportError(f"Request failed: {sanitized_msg}") from e

            if response.status_code == 429:
                if policy.can_retry(attempt):
                    time.sleep(policy.delay_for(attempt))
                    continue
                raise RateLimited(
                    "Rate limit exceeded and max retries reached",
                    status_code=429,
                )

            if response.status_code in (401, 403):
                raise TransportError("Access denied by RPC endpoint", status_code=response.status_code)

            if response.status_code >= 500:
                if policy.can_retry(attempt):
                    time.sleep(policy.delay_for(attempt))
                    continue
                raise TransportError(
                    f"Server error: {response.status_code}",
                    status_code=response.status_code,
                )

            if response.status_code >= 400:
                raise TransportError(
                    f"HTTP error: {response.status_code}",
                    status_code=response.status_code,
                )

            return response

    def _request(self, method: str, params: List[Any]) -> Any:
        """
        Make a JSON-RPC request with automatic 429 retry and exponential backoff.

        Args:
            method: JSON-RPC method name
            params: Method parameters

        Returns:
            The 'result' field from the JSON-RPC response

        Raises:
            TransportError: For transport and JSON-RPC errors
            RateLimited: When the node throttles beyond the retry budget
        """
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": self._request_id,
        }

        response = self._execute_with_retry(
            lambda: self.session.post(self.rpc_url, json=payload, timeout=self.timeout)
        )
        try:
            data = response.json()
        except ValueError as e:
            raise TransportError(f"Invalid JSON-RPC response for {method}") from e

        if "error" in data:
            error = data["error"] or {}
            code = error.get("code")
            message = self._sanitize_error_message(str(error.get("message", error)))
            if code in RATE_LIMIT_ERROR_CODES:
                raise RateLimited(f"API error: {message}", status_code=code)
            raise JsonRpcError(f"API error: {message}", status_code=code)

        if "result" not in data:
            raise TransportError(f"Missing result in response for {method}")

        return data["result"]

    def latest_block_number(self) -> int:
        """
        Get the number of the most recent block.

        Returns:
            Block number as integer
        """
        result = self._request("eth_blockNumber", [])
        return int(result, 16)

    def get_logs(
        self,
        from_block: int,
        to_block: int,
        topics: Sequence[Optional[str]],
    ) -> List[Dict[str, Any]]:
        """
        Get all logs in an inclusive block range matching a topic filter.

        Args:
            from_block: First block of the range
            to_block: Last block of the range (inclusive)
            topics: Positional topic filter, None matching any value

        Returns:
            List of raw log objects (address, topics, data, blockNumber, ...)
        """
        log_filter = {
            "fromBlock": hex(from_block),
            "toBlock": hex(to_block),
            "topics": list(topics),
        }
        result = self._request("eth_getLogs", [log_filter])
        return result or []

    def call_view_method(self, contract_address: str, method_name: str, args: Sequence[Any] = ()) -> Any:
        """
        Call a read-only contract method at the latest block.

        Args:
            contract_address: Token contract address
            method_name: One of VIEW_METHODS (balanceOf, name, symbol, decimals)
            args: Method arguments

        Returns:
            The decoded return value (int for uint types, str for string)

        Raises:
            ContractCallError: If the call reverts or its result cannot be decoded
            TransportError: If the node cannot be reached
        """
        if method_name not in VIEW_METHODS:
            raise ValueError(f"Unsupported view method: {method_name}")

        signature, arg_types, return_type = VIEW_METHODS[method_name]
        call_data = function_signature_to_4byte_selector(signature) + encode(arg_types, list(args))
        call = {"to": contract_address, "data": "0x" + call_data.hex()}

        try:
            result = self._request("eth_call", [call, "latest"])
        except JsonRpcError as e:
            # A JSON-RPC level error here means the call itself reverted
            raise ContractCallError(contract_address, method_name, str(e)) from e

        if not result or result == "0x":
            raise ContractCallError(contract_address, method_name, "empty result")

        try:
            (value,) = decode([return_type], bytes.fromhex(result[2:]))
        except (DecodingError, OverflowError, ValueError) as e:
            raise ContractCallError(contract_address, method_name, f"undecodable result {result}") from e

        return value

