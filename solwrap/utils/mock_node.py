"""
MockNode: in-process JSON-RPC server standing in for an Ethereum node.

Enough of the eth_* surface to drive contract wrappers end to end without a
real chain: canned eth_call results, transactions that get a receipt after a
configurable number of receipt polls, contract creation addresses, and logs.
Nothing is executed.
"""

import json
import logging
import socket
import threading
import time
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any, Dict, List, Optional, Tuple

from eth_utils import keccak, to_checksum_address

LOG = logging.getLogger(__name__)

DEFAULT_CHAIN_ID = 1337

# Well-known development accounts
DEFAULT_ACCOUNTS = [
    "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266",
    "0x70997970C51812dc3A010C7d01b50e0d17dc79C8",
]


def _to_hex(value: int) -> str:
    return hex(value)


def _fake_hash(seed: int) -> str:
    return "0x" + seed.to_bytes(32, "big").hex()


def contract_address_for(sender: str, nonce: int) -> str:
    """Deterministic stand-in for a CREATE address"""
    digest = keccak(bytes.fromhex(sender[2:].lower()) + nonce.to_bytes(32, "big"))
    return to_checksum_address("0x" + digest[-20:].hex())


class MockNode:
    """
    Lightweight JSON-RPC server for wrapper tests.

    Implements:
      - net_version, eth_chainId, eth_accounts, eth_blockNumber
      - eth_call (results registered with set_call_result)
      - eth_sendTransaction, eth_sendRawTransaction
      - eth_getTransactionReceipt (None for pending_polls queries, then mined)
      - eth_estimateGas, eth_gasPrice, eth_getTransactionCount, eth_getCode
      - eth_getLogs (logs emitted by mined transactions)
    """

    def __init__(
        self,
        port: int = 0,
        network_id: str = "1337",
        chain_id: int = DEFAULT_CHAIN_ID,
        pending_polls: int = 0
    ):
        """
        Args:
            port: Port to listen on; 0 picks a free one
            network_id: Value returned by net_version
            chain_id: Value returned by eth_chainId
            pending_polls: Receipt queries answered with null before a
                           transaction is considered mined
        """
        self.port = port
        self.network_id = str(network_id)
        self.chain_id = chain_id
        self.pending_polls = pending_polls
        self.accounts = list(DEFAULT_ACCOUNTS)
        self.gas_price = 1_000_000_000
        self.gas_estimate = 90_000
        self.current_block = 0

        self.requests: List[Dict[str, Any]] = []
        self.transactions: Dict[str, Dict[str, Any]] = {}
        self.receipts: Dict[str, Dict[str, Any]] = {}
        self.code: Dict[str, str] = {}
        self.logs: List[Dict[str, Any]] = []

        self._call_results: Dict[Tuple[Optional[str], str], str] = {}
        self._failures: Dict[str, Dict[str, Any]] = {}
        self._next_logs: List[Dict[str, Any]] = []
        self._next_status = 1
        self._nonces: Dict[str, int] = {}
        self._polls: Dict[str, int] = {}
        self._lock = threading.Lock()

        self._server: Optional[HTTPServer] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def rpc_url(self) -> str:
        return f"http://127.0.0.1:{self.port}"

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # ------------------------------------------------------------------
    # Scripting
    # ------------------------------------------------------------------

    def set_call_result(self, data_prefix: str, result: str, to: Optional[str] = None) -> None:
        """
        Answer eth_call whose data starts with data_prefix (usually a selector).

        Args:
            data_prefix: 0x-prefixed call data prefix
            result: 0x-prefixed ABI-encoded return data
            to: Only match calls to this address
        """
        key = (to.lower() if to else None, data_prefix.lower())
        self._call_results[key] = result

    def fail_method(self, method: str, message: str = "mock failure", code: int = -32000) -> None:
        """Make every request for method return a JSON-RPC error"""
        self._failures[method] = {"code": code, "message": message}

    def emit_logs_on_next_transaction(self, logs: List[Dict[str, Any]], status: int = 1) -> None:
        """Attach logs (and a receipt status) to the next submitted transaction"""
        self._next_logs = list(logs)
        self._next_status = status

    def calls_to(self, method: str) -> List[Dict[str, Any]]:
        return [r for r in self.requests if r.get("method") == method]

    # ------------------------------------------------------------------
    # JSON-RPC handlers
    # ------------------------------------------------------------------

    def handle_request(self, body: dict) -> dict:
        """Route a JSON-RPC request to the appropriate handler."""
        method = body.get("method", "")
        params = body.get("params", [])
        req_id = body.get("id", 1)

        with self._lock:
            self.requests.append({"method": method, "params": params})

            if method in self._failures:
                return {"jsonrpc": "2.0", "id": req_id, "error": dict(self._failures[method])}

            try:
                if method == "net_version":
                    result = self.network_id
                elif method == "eth_chainId":
                    result = _to_hex(self.chain_id)
                elif method == "eth_accounts":
                    result = self.accounts
                elif method == "eth_blockNumber":
                    result = _to_hex(self.current_block)
                elif method == "eth_gasPrice":
                    result = _to_hex(self.gas_price)
                elif method == "eth_estimateGas":
                    result = _to_hex(self.gas_estimate)
                elif method == "eth_getTransactionCount":
                    result = _to_hex(self._nonces.get(params[0].lower(), 0))
                elif method == "eth_getCode":
                    result = self.code.get(params[0].lower(), "0x")
                elif method == "eth_call":
                    result = self._handle_call(params)
                elif method == "eth_sendTransaction":
                    result = self._handle_send(params[0])
                elif method == "eth_sendRawTransaction":
                    result = self._handle_send_raw(params[0])
                elif method == "eth_getTransactionReceipt":
                    result = self._handle_receipt(params[0])
                elif method == "eth_getLogs":
                    result = self._handle_get_logs(params)
                else:
                    LOG.debug(f"MockNode: unsupported method '{method}', returning null")
                    result = None
                return {"jsonrpc": "2.0", "id": req_id, "result": result}

            except Exception as e:
                LOG.error(f"MockNode: error handling {method}: {e}")
                return {
                    "jsonrpc": "2.0",
                    "id": req_id,
                    "error": {"code": -32603, "message": str(e)},
                }

    def _handle_call(self, params: list) -> str:
        tx = params[0]
        to = (tx.get("to") or "").lower()
        data = (tx.get("data") or "0x").lower()
        # Longest matching prefix wins, address-specific before generic
        best = None
        for (address, prefix), result in self._call_results.items():
            if address not in (None, to) or not data.startswith(prefix):
                continue
            rank = (len(prefix), address is not None)
            if best is None or rank > best[0]:
                best = (rank, result)
        return best[1] if best else "0x"

    def _handle_send(self, tx: Dict[str, Any]) -> str:
        sender = tx.get("from") or self.accounts[0]
        nonce = self._nonces.get(sender.lower(), 0)
        self._nonces[sender.lower()] = nonce + 1

        seed = json.dumps(tx, sort_keys=True).encode() + nonce.to_bytes(8, "big")
        tx_hash = "0x" + keccak(seed).hex()
        return self._record(tx_hash, dict(tx, nonce=_to_hex(nonce)), sender, nonce)

    def _handle_send_raw(self, raw_tx: str) -> str:
        tx_hash = "0x" + keccak(hexstr=raw_tx).hex()
        return self._record(tx_hash, {"raw": raw_tx}, self.accounts[0], len(self.transactions))

    def _record(self, tx_hash: str, tx: Dict[str, Any], sender: str, nonce: int) -> str:
        self.transactions[tx_hash] = tx
        self._polls[tx_hash] = 0

        contract_address = None
        if "raw" not in tx and not tx.get("to"):
            contract_address = contract_address_for(sender, nonce)
            self.code[contract_address.lower()] = "0x6080"

        block = self.current_block + 1
        logs = []
        for index, log in enumerate(self._next_logs):
            logs.append(dict(
                log,
                address=log.get("address") or tx.get("to") or contract_address,
                transactionHash=tx_hash,
                blockNumber=_to_hex(block),
                blockHash=_fake_hash(block + 0x100),
                logIndex=_to_hex(index),
                removed=False,
            ))

        self.receipts[tx_hash] = {
            "transactionHash": tx_hash,
            "transactionIndex": "0x0",
            "blockNumber": _to_hex(block),
            "blockHash": _fake_hash(block + 0x100),
            "from": sender,
            "to": tx.get("to"),
            "contractAddress": contract_address,
            "gasUsed": _to_hex(self.gas_estimate // 2),
            "cumulativeGasUsed": _to_hex(self.gas_estimate // 2),
            "status": _to_hex(self._next_status),
            "logs": logs,
        }
        self._next_logs = []
        self._next_status = 1
        return tx_hash

    def _handle_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        if tx_hash not in self.receipts:
            return None
        self._polls[tx_hash] += 1
        if self._polls[tx_hash] <= self.pending_polls:
            return None

        receipt = self.receipts[tx_hash]
        block = int(receipt["blockNumber"], 16)
        if block > self.current_block:
            self.current_block = block
            self.logs.extend(receipt["logs"])
        return receipt

    def _handle_get_logs(self, params: list) -> list:
        filter_obj = params[0] if params else {}
        from_block = self._parse_block_tag(filter_obj.get("fromBlock", "0x0"))
        to_block = self._parse_block_tag(filter_obj.get("toBlock", "latest"))
        address = (filter_obj.get("address") or "").lower()
        topics = filter_obj.get("topics") or []

        results = []
        for log in self.logs:
            block = int(log["blockNumber"], 16)
            if not from_block <= block <= to_block:
                continue
            if address and (log.get("address") or "").lower() != address:
                continue
            if not self._topics_match(log.get("topics", []), topics):
                continue
            results.append(log)
        return results

    def _parse_block_tag(self, tag) -> int:
        if isinstance(tag, int):
            return tag
        if tag in ("latest", "finalized", "safe", "pending"):
            return self.current_block
        if tag == "earliest":
            return 0
        return int(tag, 16) if tag.startswith("0x") else int(tag)

    @staticmethod
    def _topics_match(log_topics: list, filter_topics: list) -> bool:
        for i, wanted in enumerate(filter_topics):
            if wanted is None:
                continue
            if i >= len(log_topics):
                return False
            options = wanted if isinstance(wanted, list) else [wanted]
            if log_topics[i].lower() not in [o.lower() for o in options]:
                return False
        return True

    # ------------------------------------------------------------------
    # HTTP Server lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the HTTP server in a background thread."""
        if self.is_running:
            LOG.warning("MockNode already running, stopping first...")
            self.stop()

        mock = self

        class Handler(BaseHTTPRequestHandler):
            def do_POST(self):
                content_len = int(self.headers.get("Content-Length", 0))
                body_bytes = self.rfile.read(content_len)

                try:
                    body = json.loads(body_bytes)
                except json.JSONDecodeError:
                    self.send_error(400, "Invalid JSON")
                    return

                if isinstance(body, list):
                    response_body = json.dumps([mock.handle_request(req) for req in body])
                else:
                    response_body = json.dumps(mock.handle_request(body))

                self.send_response(200)
                self.send_header("Content-Type", "application/json")
                self.end_headers()
                self.wfile.write(response_body.encode())

            def log_message(self, format, *args):
                pass

        self._server = HTTPServer(("127.0.0.1", self.port), Handler)
        self.port = self._server.server_address[1]
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()

        deadline = time.time() + 5
        while time.time() < deadline:
            try:
                with socket.create_connection(("127.0.0.1", self.port), timeout=1):
                    break
            except OSError:
                time.sleep(0.1)

        LOG.info(f"MockNode running at {self.rpc_url}")

    def stop(self) -> None:
        """Stop the server."""
        if self._server is not None:
            self._server.shutdown()
            self._server.server_close()
            self._server = None
            self._thread = None
            LOG.info("MockNode: stopped")

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
