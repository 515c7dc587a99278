"""
ABI helpers for encoding calls and decoding results

Encoding and decoding are delegated to eth_abi; this module only maps ABI
entries to type lists, selectors and call data, normalizes argument values
the way the generated wrappers accepted them (hex strings for bytes, any
address casing) and picks an overload for a given argument count.
"""

import json
import logging
from typing import Any, Dict, List, Optional, Sequence

from eth_abi import decode as abi_decode
from eth_abi import encode as abi_encode
from eth_abi.exceptions import DecodingError
from eth_utils import (
    is_hex_address,
    keccak,
    to_bytes,
    to_checksum_address,
    to_normalized_address,
)

from .common import strip_0x
from .exceptions import ContractError

LOG = logging.getLogger(__name__)

ABIEntry = Dict[str, Any]


def canonical_type(param: Dict[str, Any]) -> str:
    """Type string of an ABI parameter with tuple components collapsed"""
    abi_type = param["type"]
    if not abi_type.startswith("tuple"):
        return abi_type
    components = ",".join(canonical_type(c) for c in param.get("components", []))
    return f"({components}){abi_type[len('tuple'):]}"


def input_types(entry: ABIEntry) -> List[str]:
    return [canonical_type(p) for p in entry.get("inputs", [])]


def output_types(entry: ABIEntry) -> List[str]:
    return [canonical_type(p) for p in entry.get("outputs", [])]


def abi_signature(entry: ABIEntry) -> str:
    """e.g. ``transfer(address,uint256)``"""
    return f"{entry['name']}({','.join(input_types(entry))})"


def function_selector(entry: ABIEntry) -> str:
    """0x-prefixed 4-byte selector of a function entry"""
    return "0x" + keccak(text=abi_signature(entry))[:4].hex()


def is_constant(entry: ABIEntry) -> bool:
    """Whether the function can be served by eth_call alone"""
    if entry.get("constant") is True:
        return True
    return entry.get("stateMutability") in ("view", "pure")


def functions_by_name(abi: Sequence[ABIEntry]) -> Dict[str, List[ABIEntry]]:
    """Group function entries by name, keeping ABI order"""
    grouped: Dict[str, List[ABIEntry]] = {}
    for entry in abi:
        if entry.get("type", "function") == "function" and "name" in entry:
            grouped.setdefault(entry["name"], []).append(entry)
    return grouped


def constructor_entry(abi: Sequence[ABIEntry]) -> Optional[ABIEntry]:
    return next((e for e in abi if e.get("type") == "constructor"), None)


def select_overload(entries: List[ABIEntry], args: Sequence[Any]) -> ABIEntry:
    """
    Pick the ABI entry matching the number of arguments.

    Raises:
        ContractError: When no entry, or more than one, takes len(args) inputs
    """
    if len(entries) == 1:
        return entries[0]

    matching = [e for e in entries if len(e.get("inputs", [])) == len(args)]
    name = entries[0].get("name")
    if not matching:
        raise ContractError(f"No overload of {name} takes {len(args)} arguments")
    if len(matching) > 1:
        signatures = ", ".join(abi_signature(e) for e in matching)
        raise ContractError(
            f"Ambiguous call to {name} with {len(args)} arguments: {signatures}"
        )
    return matching[0]


def _normalize_value(abi_type: str, value: Any) -> Any:
    if abi_type.endswith("]"):
        base = abi_type[:abi_type.rindex("[")]
        return [_normalize_value(base, v) for v in value]
    if abi_type.startswith("bytes") and isinstance(value, str):
        return to_bytes(hexstr=value)
    if abi_type == "address" and isinstance(value, str) and is_hex_address(value):
        return to_normalized_address(value)
    return value


def encode_arguments(types: List[str], args: Sequence[Any]) -> bytes:
    if len(types) != len(args):
        raise ContractError(f"Expected {len(types)} arguments, got {len(args)}")
    values = [_normalize_value(t, a) for t, a in zip(types, args)]
    return abi_encode(types, values)


def encode_function_call(entry: ABIEntry, args: Sequence[Any]) -> str:
    """0x-prefixed call data: selector followed by the encoded arguments"""
    encoded = encode_arguments(input_types(entry), args)
    return function_selector(entry) + encoded.hex()


def encode_constructor_args(abi: Sequence[ABIEntry], args: Sequence[Any]) -> str:
    """Hex (no 0x) of constructor arguments to append to the deploy bytecode"""
    entry = constructor_entry(abi)
    if entry is None:
        if args:
            raise ContractError(f"Contract has no constructor but {len(args)} arguments were given")
        return ""
    return encode_arguments(input_types(entry), args).hex()


def _checksum_addresses(abi_type: str, value: Any) -> Any:
    if abi_type.endswith("]"):
        base = abi_type[:abi_type.rindex("[")]
        return [_checksum_addresses(base, v) for v in value]
    if abi_type == "address" and isinstance(value, str):
        return to_checksum_address(value)
    return value


def decode_values(types: List[str], data: str) -> tuple:
    raw = to_bytes(hexstr=data) if isinstance(data, str) else bytes(data)
    values = abi_decode(types, raw)
    return tuple(_checksum_addresses(t, v) for t, v in zip(types, values))


def decode_function_result(entry: ABIEntry, data: str) -> Any:
    """
    Decode eth_call output.

    Returns:
        None for no outputs, the bare value for one output, a tuple otherwise
    """
    types = output_types(entry)
    if not types:
        return None
    if not strip_0x(data or ""):
        raise ContractError(
            f"Call to {entry.get('name')} returned no data; is the contract deployed at this address?"
        )
    try:
        values = decode_values(types, data)
    except DecodingError as e:
        raise ContractError(f"Could not decode result of {entry.get('name')}: {e}", cause=e)
    return values[0] if len(values) == 1 else values


_TRUE_STRINGS = ("true", "1", "yes", "y")


def coerce_argument(abi_type: str, raw: str) -> Any:
    """
    Convert a command-line string into a value eth_abi accepts for abi_type.

    Arrays and tuples are given as JSON (``[1,2]``); integers accept any
    base prefix Python understands (``0x10``, ``16``).
    """
    if abi_type.endswith("]") or abi_type.startswith("("):
        return json.loads(raw)
    if abi_type.startswith(("uint", "int")):
        return int(raw, 0)
    if abi_type == "bool":
        return raw.strip().lower() in _TRUE_STRINGS
    if abi_type.startswith("bytes"):
        return to_bytes(hexstr=raw)
    return raw
