"""
Bytecode linking for contracts that call deployed libraries

Compilers leave a 40-character placeholder wherever a library address must
go. Two placeholder styles exist:

- legacy: ``__LibName_____________________________`` (name padded with
  underscores to 40 characters)
- solc >= 0.5: ``__$<34 hex>$__`` where the hex is the first 17 bytes of
  keccak256 of the fully qualified library name (``path.sol:LibName``)

Linking substitutes the library address without its 0x prefix, so the
bytecode length is unchanged.
"""

import logging
import re
from typing import Dict, List, Mapping

from eth_utils import is_hex_address, keccak

from .common import strip_0x
from .exceptions import InvalidAddressError, UnlinkedLibraryError

LOG = logging.getLogger(__name__)

PLACEHOLDER_LENGTH = 40

# "__" + name padded with "_" to PLACEHOLDER_LENGTH
LEGACY_PLACEHOLDER = re.compile(r"__[^_$][^$]{37}")
HASHED_PLACEHOLDER = re.compile(r"__\$([0-9a-fA-F]{34})\$__")


def placeholder_hash(fully_qualified_name: str) -> str:
    """Hex digest used inside a ``__$...$__`` placeholder"""
    return keccak(text=fully_qualified_name).hex()[:34]


def legacy_placeholder(library_name: str) -> str:
    """Placeholder for a library name; at most 36 characters of it survive"""
    return ("__" + library_name[:PLACEHOLDER_LENGTH - 4]).ljust(PLACEHOLDER_LENGTH, "_")


def _legacy_candidates(library_name: str) -> List[str]:
    """
    Placeholders a link name may fill, most specific first.

    solc 0.4 embeds the path-qualified name (``path.sol:Name``) while older
    compilers embed the bare name, so a qualified link name also fills the
    bare-name placeholder.
    """
    candidates = [legacy_placeholder(library_name)]
    if ":" in library_name:
        short = legacy_placeholder(library_name.rsplit(":", 1)[-1])
        if short not in candidates:
            candidates.append(short)
    return candidates


def find_unlinked_libraries(bytecode: str) -> List[str]:
    """
    List libraries whose placeholders remain in the bytecode.

    Legacy placeholders yield the library name; hashed placeholders yield
    ``$<hash>$`` since the name cannot be recovered from the hash.

    Returns:
        Sorted list without duplicates
    """
    if not bytecode:
        return []

    names = set()
    for match in HASHED_PLACEHOLDER.finditer(bytecode):
        names.add(f"${match.group(1).lower()}$")

    without_hashed = HASHED_PLACEHOLDER.sub("", bytecode)
    for match in LEGACY_PLACEHOLDER.finditer(without_hashed):
        names.add(match.group(0)[2:].rstrip("_"))

    return sorted(names)


def _validated_address(name: str, address: str) -> str:
    if not isinstance(address, str) or not is_hex_address(address):
        raise InvalidAddressError(f"Invalid address for library {name}: {address}")
    return strip_0x(address).lower()


def link_bytecode(bytecode: str, links: Mapping[str, str]) -> str:
    """
    Substitute library addresses into a bytecode template.

    Args:
        bytecode: Unlinked bytecode
        links: Library name (or fully qualified ``path.sol:Name``) -> address

    Returns:
        Bytecode with every matching placeholder replaced. Placeholders of
        libraries absent from ``links`` are left in place.
    """
    if not bytecode:
        return bytecode

    linked = bytecode
    for library_name, library_address in links.items():
        address_hex = _validated_address(library_name, library_address)

        for placeholder in _legacy_candidates(library_name):
            linked = linked.replace(placeholder, address_hex)

        if ":" in library_name:
            hashed = f"__${placeholder_hash(library_name)}$__"
            linked = re.sub(re.escape(hashed), address_hex, linked, flags=re.IGNORECASE)

        LOG.debug(f"Linked library {library_name} -> 0x{address_hex}")

    return linked


def ensure_linked(bytecode: str, contract_name: str) -> None:
    """Raise UnlinkedLibraryError if placeholders remain"""
    unlinked = find_unlinked_libraries(bytecode)
    if unlinked:
        raise UnlinkedLibraryError(
            f"{contract_name} contains unresolved libraries. You must deploy and link "
            f"the following libraries before you can deploy a new version of "
            f"{contract_name}: {', '.join(unlinked)}",
            libraries=unlinked,
            contract_name=contract_name,
        )


def merge_links(*tables: Mapping[str, str]) -> Dict[str, str]:
    merged: Dict[str, str] = {}
    for table in tables:
        merged.update(table or {})
    return merged
