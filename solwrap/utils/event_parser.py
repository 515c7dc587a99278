"""
Event log decoding

Receipts and eth_getLogs return raw logs: topic 0 is the keccak of the event
signature, the remaining topics hold indexed parameters and the data field
holds the ABI-encoded non-indexed parameters.

Design Notes:
- Events are matched by topic 0 against a topic -> event ABI map, the same
  map artifacts store under "events"
- Indexed dynamic values (string, bytes, arrays, tuples) are only present as
  their keccak hash; the hash is returned in their place
- Logs with an unknown topic are skipped, anonymous events are not decoded
- decode_logs also skips logs whose topic matches but whose payload does not
  decode, since another contract may emit an event with the same signature
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from eth_abi import decode as abi_decode
from eth_abi.exceptions import DecodingError
from eth_utils import keccak, to_bytes, to_checksum_address

from .abi_codec import canonical_type

LOG = logging.getLogger(__name__)


@dataclass
class DecodedLog:
    """A log matched to its event ABI"""
    event: str
    args: Dict[str, Any]
    address: Optional[str] = None
    transaction_hash: Optional[str] = None
    block_number: Optional[int] = None
    log_index: Optional[int] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)


def event_signature(event_abi: Mapping[str, Any]) -> str:
    types = ",".join(canonical_type(p) for p in event_abi.get("inputs", []))
    return f"{event_abi['name']}({types})"


def event_topic(event_abi: Mapping[str, Any]) -> str:
    """0x-prefixed topic 0 for an event entry"""
    return "0x" + keccak(text=event_signature(event_abi)).hex()


def events_by_topic(abi: Sequence[Mapping[str, Any]]) -> Dict[str, Dict[str, Any]]:
    """Map topic 0 -> event ABI for every non-anonymous event in the ABI"""
    return {
        event_topic(entry): dict(entry)
        for entry in abi
        if entry.get("type") == "event" and not entry.get("anonymous", False)
    }


def _as_hex(value: Any) -> str:
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    if hasattr(value, "hex") and not isinstance(value, str):
        # HexBytes renders with or without 0x depending on its version
        rendered = value.hex()
        return rendered if rendered.startswith("0x") else "0x" + rendered
    return str(value).lower()


def _as_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, str):
        return int(value, 16) if value.startswith("0x") else int(value)
    return int(value)


def _is_dynamic(abi_type: str) -> bool:
    return (
        abi_type in ("string", "bytes")
        or abi_type.endswith("]")
        or abi_type.startswith("(")
    )


def decode_log(log: Mapping[str, Any], event_abi: Mapping[str, Any]) -> DecodedLog:
    """
    Decode one log with a known event ABI.

    Args:
        log: Raw log (hex strings or bytes for topics and data)
        event_abi: Matching event ABI entry

    Returns:
        DecodedLog with named args
    """
    inputs = event_abi.get("inputs", [])
    topics = [_as_hex(t) for t in log.get("topics", [])][1:]

    indexed = [p for p in inputs if p.get("indexed")]
    non_indexed = [p for p in inputs if not p.get("indexed")]

    values: Dict[str, Any] = {}

    for param, topic in zip(indexed, topics):
        abi_type = canonical_type(param)
        if _is_dynamic(abi_type):
            values[param["name"]] = topic
            continue
        (value,) = abi_decode([abi_type], to_bytes(hexstr=topic))
        if abi_type == "address":
            value = to_checksum_address(value)
        values[param["name"]] = value

    data = _as_hex(log.get("data") or "0x")
    if non_indexed:
        types = [canonical_type(p) for p in non_indexed]
        decoded = abi_decode(types, to_bytes(hexstr=data))
        for param, abi_type, value in zip(non_indexed, types, decoded):
            if abi_type == "address":
                value = to_checksum_address(value)
            values[param["name"]] = value

    # Preserve declaration order
    args = {p["name"]: values.get(p["name"]) for p in inputs}

    address = log.get("address")
    return DecodedLog(
        event=event_abi["name"],
        args=args,
        address=to_checksum_address(address) if address else None,
        transaction_hash=_as_hex(log["transactionHash"]) if log.get("transactionHash") else None,
        block_number=_as_int(log.get("blockNumber")),
        log_index=_as_int(log.get("logIndex")),
        raw=dict(log),
    )


def decode_logs(
    logs: Sequence[Mapping[str, Any]],
    events: Mapping[str, Mapping[str, Any]]
) -> List[DecodedLog]:
    """
    Decode every log whose topic 0 is known; unknown logs are dropped.

    Args:
        logs: Raw logs, e.g. receipt["logs"]
        events: Topic -> event ABI map
    """
    decoded = []
    lookup = {topic.lower(): abi for topic, abi in events.items()}
    for log in logs:
        topics = log.get("topics") or []
        if not topics:
            continue
        event_abi = lookup.get(_as_hex(topics[0]))
        if event_abi is None:
            LOG.debug(f"Skipping log with unknown topic {_as_hex(topics[0])}")
            continue
        try:
            decoded.append(decode_log(log, event_abi))
        except DecodingError as e:
            # Same topic, different layout (e.g. ERC721 vs ERC20 Transfer)
            LOG.debug(f"Skipping undecodable {event_abi['name']} log: {e}")
    return decoded
