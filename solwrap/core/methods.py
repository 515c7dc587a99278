"""
Per-ABI-entry proxies attached to contract instances

A MethodProxy stands for every ABI function sharing one name. Awaiting the
proxy does what the generated wrappers did: constant functions resolve with
the eth_call result, everything else is submitted and resolved once mined.
The explicit variants (call, send_transaction, estimate_gas, request) are
available on every proxy regardless of mutability.
"""

import logging
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Tuple, Union

from ..utils.abi_codec import (
    ABIEntry,
    abi_signature,
    decode_function_result,
    encode_function_call,
    is_constant,
    select_overload,
)
from ..utils.event_parser import DecodedLog, decode_logs, event_topic
from ..utils.receipt_poller import submit_transaction
from ..utils.transaction_builder import TransactionResult, merge_tx_params, split_tx_params

if TYPE_CHECKING:
    from .contract import ContractInstance

LOG = logging.getLogger(__name__)


class MethodProxy:
    """Callable standing in for one (possibly overloaded) contract function"""

    def __init__(self, instance: "ContractInstance", name: str, entries: List[ABIEntry]):
        self.instance = instance
        self.name = name
        self.entries = entries

    @property
    def constant(self) -> bool:
        return all(is_constant(e) for e in self.entries)

    @property
    def signatures(self) -> List[str]:
        return [abi_signature(e) for e in self.entries]

    def _prepare(
        self,
        args: Tuple[Any, ...],
        tx: Optional[Mapping[str, Any]]
    ) -> Tuple[ABIEntry, Dict[str, Any]]:
        expected = len(self.entries[0].get("inputs", [])) if len(self.entries) == 1 else None
        call_args, params = split_tx_params(args, expected, tx)
        entry = select_overload(self.entries, call_args)

        contract_class = self.instance.contract_class
        params = merge_tx_params(contract_class.class_defaults, params)
        params["to"] = self.instance.address
        params["data"] = encode_function_call(entry, call_args)
        return entry, params

    async def __call__(self, *args, tx: Optional[Mapping[str, Any]] = None):
        entry, params = self._prepare(args, tx)
        if is_constant(entry):
            return await self._call(entry, params, "latest")
        return await self._transact(entry, params)

    async def call(
        self,
        *args,
        tx: Optional[Mapping[str, Any]] = None,
        block: Union[int, str] = "latest"
    ) -> Any:
        """Run the function with eth_call and decode its outputs"""
        entry, params = self._prepare(args, tx)
        return await self._call(entry, params, block)

    async def _call(self, entry: ABIEntry, params: Dict[str, Any], block: Union[int, str]) -> Any:
        client = self.instance.contract_class.require_provider(f"{self.name}.call")
        # eth_call ignores gas pricing; keep only what a call uses
        call_params = {k: v for k, v in params.items() if k in ("from", "to", "data", "value", "gas")}
        LOG.debug(f"Calling {self.instance.contract_class.contract_name}.{abi_signature(entry)}")
        raw = await client.call(call_params, block)
        return decode_function_result(entry, raw)

    async def send_transaction(self, *args, tx: Optional[Mapping[str, Any]] = None) -> str:
        """Submit the transaction and return its hash without waiting"""
        _, params = self._prepare(args, tx)
        client = self.instance.contract_class.require_provider(f"{self.name}.send_transaction")
        return await client.send_transaction(params)

    async def transact(
        self,
        *args,
        tx: Optional[Mapping[str, Any]] = None
    ) -> Union[str, TransactionResult]:
        """
        Submit the transaction and wait for it to be mined.

        Returns:
            The transaction hash, or a TransactionResult with the receipt and
            decoded logs when the contract class has next_gen enabled

        Raises:
            TransactionTimeoutError: No receipt within synchronization_timeout
        """
        entry, params = self._prepare(args, tx)
        return await self._transact(entry, params)

    async def _transact(
        self,
        entry: ABIEntry,
        params: Dict[str, Any]
    ) -> Union[str, TransactionResult]:
        contract_class = self.instance.contract_class
        client = contract_class.require_provider(self.name)

        LOG.info(f"Sending {contract_class.contract_name}.{abi_signature(entry)} "
                 f"to {self.instance.address}")
        pending = await submit_transaction(
            client,
            params,
            timeout=contract_class.synchronization_timeout,
            poll_interval=contract_class.poll_interval,
        )
        receipt = await pending.wait()

        if not contract_class.next_gen:
            return pending.tx_hash
        return TransactionResult(
            tx=pending.tx_hash,
            receipt=receipt,
            logs=decode_logs(receipt.get("logs") or [], contract_class.events),
        )

    async def estimate_gas(self, *args, tx: Optional[Mapping[str, Any]] = None) -> int:
        _, params = self._prepare(args, tx)
        client = self.instance.contract_class.require_provider(f"{self.name}.estimate_gas")
        return await client.estimate_gas(params)

    def request(self, *args, tx: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        """The unsent transaction payload, e.g. for batching or offline signing"""
        _, params = self._prepare(args, tx)
        return params

    def __repr__(self) -> str:
        kind = "constant" if self.constant else "transaction"
        return f"MethodProxy({', '.join(self.signatures)}, {kind})"


class EventProxy:
    """Access to one event of a deployed contract"""

    def __init__(self, instance: "ContractInstance", abi: ABIEntry):
        self.instance = instance
        self.abi = abi
        self.name = abi["name"]
        self.topic = event_topic(abi)

    async def get_logs(
        self,
        from_block: Union[int, str] = 0,
        to_block: Union[int, str] = "latest"
    ) -> List[DecodedLog]:
        """Fetch and decode this event's logs from the contract address"""
        client = self.instance.contract_class.require_provider(f"{self.name}.get_logs")
        logs = await client.get_logs(
            from_block=from_block,
            to_block=to_block,
            address=self.instance.address,
            topics=[self.topic],
        )
        return decode_logs(logs, {self.topic: self.abi})

    def __repr__(self) -> str:
        return f"EventProxy({self.name}, topic={self.topic[:10]}...)"
