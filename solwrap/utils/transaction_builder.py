"""
Transaction parameter handling for generated contract methods

Design Notes:
- Transaction params are plain JSON-RPC dicts (from, to, gas, gasPrice,
  value, data, nonce); class defaults are merged under per-call params
- Callers may pass params as a trailing mapping argument, as the generated
  wrappers did, or explicitly with tx=
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from .common import merge
from .event_parser import DecodedLog

LOG = logging.getLogger(__name__)

TX_PARAM_KEYS = frozenset({
    "from", "to", "gas", "gasPrice", "value", "data", "nonce",
    "maxFeePerGas", "maxPriorityFeePerGas", "chainId",
})


@dataclass
class TransactionResult:
    """Outcome of a confirmed state-changing call"""
    tx: str
    receipt: Dict[str, Any]
    logs: List[DecodedLog] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        """False only when the receipt carries a failing status"""
        status = self.receipt.get("status")
        if status is None:
            return True
        if isinstance(status, str):
            return int(status, 16) == 1
        return int(status) == 1


def split_tx_params(
    args: Sequence[Any],
    expected_inputs: Optional[int],
    tx: Optional[Mapping[str, Any]] = None
) -> Tuple[List[Any], Dict[str, Any]]:
    """
    Separate call arguments from transaction params.

    A trailing mapping is taken as tx params only when the call carries one
    argument more than the ABI entry has inputs. When expected_inputs is
    unknown (overloaded functions) a trailing mapping whose keys are all
    transaction fields is accepted instead.

    Returns:
        (arguments, tx params)
    """
    args = list(args)
    params: Dict[str, Any] = {}

    if args and isinstance(args[-1], Mapping):
        last = args[-1]
        if expected_inputs is not None:
            is_params = len(args) == expected_inputs + 1
        else:
            is_params = bool(last) and set(last).issubset(TX_PARAM_KEYS)
        if is_params:
            params = dict(args.pop())

    if tx:
        params = merge(params, tx)
    return args, params


def merge_tx_params(defaults: Optional[Mapping[str, Any]], params: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Class defaults overlaid with per-call params"""
    merged = merge(defaults or {}, params or {})
    unknown = set(merged) - TX_PARAM_KEYS
    if unknown:
        LOG.warning(f"Passing unrecognised transaction fields to the node: {sorted(unknown)}")
    return merged
