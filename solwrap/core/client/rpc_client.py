"""
Ethereum JSON-RPC client

The provider every contract wrapper forwards through. Requests go over a
single aiohttp session; transactions are either handed to the node
(eth_sendTransaction, node-managed accounts) or signed locally with an
eth_account key and sent raw.
"""

import asyncio
import json
import logging
from typing import Any, Dict, List, Mapping, Optional, Union

import aiohttp
from eth_account.signers.local import LocalAccount
from web3 import Web3

from ...utils.common import hex_to_int
from ...utils.exceptions import APIError, ErrorCodes

LOG = logging.getLogger(__name__)

# Transaction fields sent as hex quantities
QUANTITY_FIELDS = ("gas", "gasPrice", "value", "nonce", "maxFeePerGas",
                   "maxPriorityFeePerGas", "chainId")

DEFAULT_GAS_PRICE = 20_000_000_000


def to_checksum_address(address: str) -> str:
    """Convert address to EIP-55 checksum format"""
    if not address.startswith("0x"):
        address = "0x" + address
    return Web3.to_checksum_address(address)


def format_transaction(tx: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Render transaction params the way JSON-RPC expects them.

    Integers become hex quantities, addresses are checksummed and None
    values are dropped.
    """
    formatted: Dict[str, Any] = {}
    for key, value in tx.items():
        if value is None:
            continue
        if key in QUANTITY_FIELDS and isinstance(value, int):
            formatted[key] = hex(value)
        elif key in ("from", "to") and isinstance(value, str):
            formatted[key] = to_checksum_address(value)
        elif isinstance(value, (bytes, bytearray)):
            formatted[key] = "0x" + bytes(value).hex()
        else:
            formatted[key] = value
    return formatted


class RpcClient:
    """Async JSON-RPC client for an Ethereum node"""

    def __init__(
        self,
        rpc_url: str,
        account: Optional[LocalAccount] = None,
        timeout: float = 30.0
    ):
        """
        Args:
            rpc_url: HTTP endpoint of the node
            account: Local account to sign transactions with; without one
                     the node signs (eth_sendTransaction)
            timeout: Per-request timeout in seconds
        """
        self.rpc_url = rpc_url
        self.account = account
        self.timeout = timeout
        self.session: Optional[aiohttp.ClientSession] = None
        self._request_id = 0

    async def __aenter__(self):
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
        return self.session

    async def close(self) -> None:
        if self.session:
            await self.session.close()
            self.session = None

    async def send_request(self, method: str, params: Optional[List[Any]] = None) -> Any:
        """Send JSON-RPC request

        Args:
            method: RPC method name
            params: Parameter list

        Returns:
            RPC response result

        Raises:
            APIError: Request failed or returned error
        """
        session = await self._ensure_session()

        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params or [],
            "id": self._request_id
        }
        LOG.debug(f"RPC -> {method} {payload['params']}")

        try:
            async with session.post(self.rpc_url, json=payload) as response:
                if response.status != 200:
                    text = await response.text()
                    raise APIError(
                        f"HTTP {response.status}: {text}",
                        code=ErrorCodes.RPC_HTTP_ERROR,
                        details={"status": response.status, "method": method}
                    )

                result = await response.json(content_type=None)

        except asyncio.TimeoutError as e:
            raise APIError(
                f"Request timeout after {self.timeout}s",
                code=ErrorCodes.RPC_CONNECTION_FAILED,
                details={"method": method},
                cause=e
            )
        except aiohttp.ClientError as e:
            raise APIError(
                f"Connection error: {e}",
                code=ErrorCodes.RPC_CONNECTION_FAILED,
                details={"method": method},
                cause=e
            )
        except json.JSONDecodeError as e:
            raise APIError(
                f"Invalid JSON response: {e}",
                code=ErrorCodes.RPC_INVALID_RESPONSE,
                details={"method": method},
                cause=e
            )

        if "error" in result:
            error = result["error"]
            raise APIError(
                f"RPC Error: {error.get('message', str(error))}",
                code=error.get("code", ErrorCodes.RPC_ERROR),
                details={"method": method, "data": error.get("data")}
            )

        LOG.debug(f"RPC <- {method} {result.get('result')}")
        return result.get("result")

    async def net_version(self) -> str:
        """Network id as reported by the node"""
        return str(await self.send_request("net_version"))

    async def get_chain_id(self) -> int:
        chain_id = await self.send_request("eth_chainId")
        return hex_to_int(chain_id)

    async def get_accounts(self) -> List[str]:
        return await self.send_request("eth_accounts")

    async def get_block_number(self) -> int:
        block = await self.send_request("eth_blockNumber")
        return hex_to_int(block)

    async def get_balance(self, address: str, block: str = "latest") -> int:
        """Get account balance (wei)"""
        balance = await self.send_request("eth_getBalance", [to_checksum_address(address), block])
        return hex_to_int(balance)

    async def get_transaction_count(self, address: str, block: str = "latest") -> int:
        """Get account transaction count (nonce)"""
        count = await self.send_request(
            "eth_getTransactionCount", [to_checksum_address(address), block]
        )
        return hex_to_int(count)

    async def get_gas_price(self) -> int:
        gas_price = await self.send_request("eth_gasPrice")
        return hex_to_int(gas_price)

    async def get_code(self, address: str, block: str = "latest") -> str:
        return await self.send_request("eth_getCode", [to_checksum_address(address), block])

    async def call(self, tx: Mapping[str, Any], block: Union[int, str] = "latest") -> str:
        """Execute a read-only call, returning the raw hex output"""
        block_id = hex(block) if isinstance(block, int) else block
        return await self.send_request("eth_call", [format_transaction(tx), block_id])

    async def estimate_gas(self, tx: Mapping[str, Any]) -> int:
        gas = await self.send_request("eth_estimateGas", [format_transaction(tx)])
        return hex_to_int(gas)

    async def send_raw_transaction(self, raw_tx) -> str:
        """Send raw transaction"""
        if isinstance(raw_tx, (bytes, bytearray)):
            raw_tx = "0x" + bytes(raw_tx).hex()
        elif not isinstance(raw_tx, str):
            raw_tx = raw_tx.hex()
        if not raw_tx.startswith("0x"):
            raw_tx = "0x" + raw_tx
        return await self.send_request("eth_sendRawTransaction", [raw_tx])

    async def send_transaction(self, tx: Mapping[str, Any]) -> str:
        """
        Submit a transaction and return its hash without waiting for it.

        With a local account the missing nonce, gas, gas price and chain id
        are filled in from the node before signing.
        """
        if self.account is None:
            return await self.send_request("eth_sendTransaction", [format_transaction(tx)])

        signed = self.account.sign_transaction(await self._fill_transaction(tx))
        # eth-account renamed rawTransaction to raw_transaction
        raw_tx = getattr(signed, "raw_transaction", None) or getattr(signed, "rawTransaction")
        return await self.send_raw_transaction(raw_tx)

    async def _fill_transaction(self, tx: Mapping[str, Any]) -> Dict[str, Any]:
        filled = {k: v for k, v in tx.items() if v is not None}
        sender = filled.get("from") or self.account.address
        if to_checksum_address(sender) != self.account.address:
            raise APIError(
                f"Transaction from address {sender} does not match account address {self.account.address}",
                code=ErrorCodes.RPC_ERROR
            )
        filled["from"] = self.account.address
        if filled.get("to"):
            filled["to"] = to_checksum_address(filled["to"])

        filled.setdefault("value", 0)
        if "nonce" not in filled:
            filled["nonce"] = await self.get_transaction_count(self.account.address, "pending")
        if "chainId" not in filled:
            filled["chainId"] = await self.get_chain_id()
        if "gasPrice" not in filled and "maxFeePerGas" not in filled:
            try:
                filled["gasPrice"] = await self.get_gas_price()
            except APIError as e:
                LOG.warning(f"Could not get gas price: {e}")
                filled["gasPrice"] = DEFAULT_GAS_PRICE
        if "gas" not in filled:
            filled["gas"] = await self.estimate_gas(filled)

        # eth_account signs the transaction without a sender field
        filled.pop("from")
        return {k: hex_to_int(v) if k in QUANTITY_FIELDS else v for k, v in filled.items()}

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict]:
        """Receipt of a mined transaction, None while pending"""
        receipt = await self.send_request("eth_getTransactionReceipt", [tx_hash])
        return receipt if receipt else None

    async def get_logs(
        self,
        from_block: Union[int, str] = "latest",
        to_block: Union[int, str] = "latest",
        address: Optional[Union[str, List[str]]] = None,
        topics: Optional[List[Any]] = None
    ) -> List[Dict]:
        params: Dict[str, Any] = {
            "fromBlock": hex(from_block) if isinstance(from_block, int) else from_block,
            "toBlock": hex(to_block) if isinstance(to_block, int) else to_block,
        }
        if address:
            if isinstance(address, str):
                address = to_checksum_address(address)
            params["address"] = address
        if topics:
            params["topics"] = topics

        return await self.send_request("eth_getLogs", [params])

    def __repr__(self) -> str:
        signer = self.account.address if self.account else "node"
        return f"RpcClient(rpc_url={self.rpc_url}, signer={signer})"
