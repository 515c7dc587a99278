import time
from typing import Any, Dict, Mapping, Union


def hex_to_int(value: Union[str, int]) -> int:
    """Convert hexadecimal string to integer"""
    if isinstance(value, str) and value.startswith("0x"):
        return int(value, 16)
    return int(value)


def int_to_hex(value: int) -> str:
    """Convert integer to hexadecimal quantity string"""
    return hex(value)


def now_millis() -> int:
    """Current time in milliseconds, the unit artifacts record updated_at in"""
    return int(time.time() * 1000)


def merge(*mappings: Mapping[str, Any]) -> Dict[str, Any]:
    """Merge mappings left to right; later keys win"""
    merged: Dict[str, Any] = {}
    for mapping in mappings:
        if mapping:
            merged.update(mapping)
    return merged


def strip_0x(value: str) -> str:
    return value[2:] if value.startswith(("0x", "0X")) else value
