"""
Contract classes and deployed instances

A ContractClass wraps one artifact and holds the class-level state every
instance forwards through: the selected network, the provider, transaction
defaults, library links and confirmation settings. Instances are attached to
an address and expose one proxy per ABI function and event.

Design Notes:
- Network selection is lazy: without an explicit id, the first operation
  that needs a node (new/deployed) asks it for net_version
- Network id "1" falls back to "live" then "default" artifacts
- Linking another ContractClass merges its events so library logs decode
- new() waits for the deployment receipt with the same poller as method calls
"""

import copy
import logging
from typing import Any, Dict, List, Mapping, Optional, Union

from eth_utils import is_hex_address

from .client import RpcClient
from .client.rpc_client import to_checksum_address
from .methods import EventProxy, MethodProxy
from ..utils.abi_codec import constructor_entry, encode_constructor_args, functions_by_name
from ..utils.artifacts import DEFAULT_NETWORK, ContractArtifact, NetworkArtifact
from ..utils.event_parser import DecodedLog, decode_logs
from ..utils.exceptions import (
    ContractError,
    ErrorCodes,
    InvalidAddressError,
    NetworkNotFoundError,
    ProviderNotSetError,
)
from ..utils.linker import ensure_linked, link_bytecode
from ..utils.receipt_poller import (
    DEFAULT_POLL_INTERVAL,
    DEFAULT_SYNCHRONIZATION_TIMEOUT,
    submit_transaction,
)
from ..utils.transaction_builder import merge_tx_params, split_tx_params

LOG = logging.getLogger(__name__)

# Artifact keys tried, in order, when the node reports the main network
MAINNET_ALIASES = ("1", "live", "default")


class ContractClass:
    """
    Class-level wrapper around one compiled contract.

    Example:
        Pensions = ContractClass(load_artifact("build/Pensions.sol.js"))
        Pensions.set_provider("http://localhost:8545")
        pensions = await Pensions.deployed()
        owner = await pensions.owner()
    """

    def __init__(self, artifact: ContractArtifact, network_id: Optional[str] = None):
        self.artifact = artifact
        self.contract_name = artifact.contract_name
        self.generated_with = artifact.generated_with

        self.current_provider: Optional[RpcClient] = None
        self.class_defaults: Dict[str, Any] = {}
        self.next_gen = False
        self.synchronization_timeout = DEFAULT_SYNCHRONIZATION_TIMEOUT
        self.poll_interval = DEFAULT_POLL_INTERVAL

        self.network_id: Optional[str] = None
        self.abi: List[Dict[str, Any]] = []
        self.unlinked_binary: Optional[str] = None
        self.address: Optional[str] = None
        self.links: Dict[str, str] = {}
        self.events: Dict[str, Dict[str, Any]] = {}
        self.updated_at: Optional[int] = None

        # Start from the default artifacts; the real id is detected on demand
        self.set_network(network_id if network_id is not None else DEFAULT_NETWORK)
        if network_id is None:
            self.network_id = None

    @property
    def all_networks(self) -> Dict[str, NetworkArtifact]:
        return self.artifact.networks

    # Network selection

    def set_network(self, network_id: Union[str, int]) -> "ContractClass":
        """
        Select the artifacts of a network.

        An id with no artifacts leaves the class with an empty ABI and no
        bytecode; check_network() is the strict variant.
        """
        network_id = str(network_id)
        network = self.artifact.network(network_id) or NetworkArtifact()

        self.network_id = network_id
        self.abi = network.abi
        self.unlinked_binary = network.unlinked_binary
        self.address = network.address
        self.links = dict(network.links)
        self.events = dict(network.events)
        self.updated_at = network.updated_at
        return self

    def with_network(self, network_id: Union[str, int]) -> "ContractClass":
        """Copy of this class bound to another network, sharing the provider"""
        clone = copy.copy(self)
        clone.class_defaults = dict(self.class_defaults)
        return clone.set_network(network_id)

    def networks(self) -> List[str]:
        return self.artifact.network_ids()

    def _resolve_network_id(self, network_id: str) -> Optional[str]:
        if self.artifact.network(network_id) is not None:
            return network_id
        if network_id == "1":
            for alias in MAINNET_ALIASES:
                if self.artifact.network(alias) is not None:
                    return alias
        return None

    async def check_network(self) -> str:
        """
        Make sure a network with artifacts is selected, asking the node for
        its id when none was set.

        Returns:
            The selected network id

        Raises:
            NetworkNotFoundError: The artifact has nothing for that id
        """
        if self.network_id is not None:
            resolved = self._resolve_network_id(self.network_id)
            if resolved is None:
                raise self._network_not_found(self.network_id)
            if resolved != self.network_id:
                self.set_network(resolved)
            return self.network_id

        client = self.require_provider("check_network")
        detected = await client.net_version()
        resolved = self._resolve_network_id(detected)
        if resolved is None:
            raise self._network_not_found(detected)

        LOG.info(f"{self.contract_name}: node network id {detected}, using artifacts '{resolved}'")
        self.set_network(resolved)
        return self.network_id

    def _network_not_found(self, network_id: str) -> NetworkNotFoundError:
        return NetworkNotFoundError(
            f"{self.contract_name} error: Can't find artifacts for network id '{network_id}'",
            contract_name=self.contract_name,
        )

    # Provider and defaults

    def set_provider(self, provider: Union[RpcClient, str]) -> "ContractClass":
        """Use an RpcClient, or a node URL to build one, for every instance"""
        if isinstance(provider, str):
            provider = RpcClient(provider)
        self.current_provider = provider
        return self

    def require_provider(self, operation: str) -> RpcClient:
        if self.current_provider is None:
            raise ProviderNotSetError(
                f"{self.contract_name} error: Please call set_provider() first "
                f"before calling {operation}().",
                contract_name=self.contract_name,
            )
        return self.current_provider

    def defaults(self, class_defaults: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        """Merge class_defaults into the transaction defaults and return them"""
        if class_defaults:
            self.class_defaults.update(class_defaults)
        return self.class_defaults

    # Linking

    def link(
        self,
        name: Union[str, Mapping[str, str], "ContractClass"],
        address: Optional[str] = None
    ) -> "ContractClass":
        """
        Record library addresses for the bytecode placeholders.

        Accepts a library name and address, a name -> address mapping, or a
        deployed library's ContractClass (whose events are merged in).
        """
        if isinstance(name, ContractClass):
            library = name
            if not library.address:
                raise ContractError(
                    "Cannot link contract without an address.",
                    contract_name=self.contract_name,
                )
            self.link(library.contract_name, library.address)
            self.events.update(library.events)
            return self

        if isinstance(name, Mapping):
            for library_name, library_address in name.items():
                self.link(library_name, library_address)
            return self

        if address is None:
            raise ContractError(
                f"No address given for library {name}",
                contract_name=self.contract_name,
            )
        self.links[name] = address
        LOG.debug(f"{self.contract_name}: linked {name} at {address}")
        return self

    @property
    def binary(self) -> Optional[str]:
        """Bytecode with the current links substituted"""
        if not self.unlinked_binary:
            return self.unlinked_binary
        return link_bytecode(self.unlinked_binary, self.links)

    # Instances

    def at(self, address: str) -> "ContractInstance":
        """Attach to a contract already deployed at address"""
        if not isinstance(address, str) or len(address) != 42 or not is_hex_address(address):
            raise InvalidAddressError(
                f"Invalid address passed to {self.contract_name}.at(): {address}",
                contract_name=self.contract_name,
            )
        return ContractInstance(self, address)

    async def deployed(self) -> "ContractInstance":
        """Instance at the address recorded for the current network"""
        await self.check_network()
        if not self.address:
            raise ContractError(
                f"Cannot find deployed address: {self.contract_name} not deployed or address not set.",
                contract_name=self.contract_name,
            )
        return self.at(self.address)

    async def new(self, *args, tx: Optional[Mapping[str, Any]] = None) -> "ContractInstance":
        """
        Deploy a new instance and wait for it to be mined.

        Args:
            *args: Constructor arguments, optionally followed by a tx params mapping
            tx: Transaction params (from, gas, gasPrice, value)

        Returns:
            ContractInstance at the new address, with transaction_hash set

        Raises:
            ProviderNotSetError: No provider configured
            ContractError: No bytecode, or the receipt has no contract address
            UnlinkedLibraryError: Library placeholders remain in the bytecode
        """
        client = self.require_provider("new")
        await self.check_network()

        if not self.unlinked_binary:
            raise ContractError(
                f"{self.contract_name} error: contract binary not set. Can't deploy new instance.",
                contract_name=self.contract_name,
                code=ErrorCodes.BINARY_NOT_SET,
            )

        binary = self.binary
        ensure_linked(binary, self.contract_name)

        constructor = constructor_entry(self.abi)
        expected = len(constructor.get("inputs", [])) if constructor else 0
        ctor_args, params = split_tx_params(args, expected, tx)
        params = merge_tx_params(self.class_defaults, params)
        params.pop("to", None)
        params["data"] = (params.get("data") or binary) + encode_constructor_args(self.abi, ctor_args)

        LOG.info(f"Deploying {self.contract_name} on network {self.network_id}")
        pending = await submit_transaction(
            client,
            params,
            timeout=self.synchronization_timeout,
            poll_interval=self.poll_interval,
        )
        receipt = await pending.wait()

        contract_address = receipt.get("contractAddress")
        if not contract_address:
            raise ContractError(
                f"{self.contract_name} deployment {pending.tx_hash} did not create a contract",
                contract_name=self.contract_name,
            )

        LOG.info(f"{self.contract_name} deployed at {contract_address}")
        instance = self.at(contract_address)
        instance.transaction_hash = pending.tx_hash
        instance.receipt = receipt
        return instance

    # Artifacts

    def record_deployment(self, address: str, network_id: Optional[str] = None) -> ContractArtifact:
        """Record address (and the current links) for a network in the artifact"""
        network_id = str(network_id or self.network_id or DEFAULT_NETWORK)
        template = NetworkArtifact(
            abi=self.abi,
            unlinked_binary=self.unlinked_binary,
            links=dict(self.links),
            events=dict(self.events),
        )
        self.artifact = self.artifact.record_deployment(
            network_id, address, links=dict(self.links), template=template
        )
        if network_id == self.network_id:
            self.address = address
            self.updated_at = self.artifact.network(network_id).updated_at
        return self.artifact

    def to_artifact(self) -> ContractArtifact:
        """The artifact with the current network's address and links applied"""
        if not self.address:
            return self.artifact
        return self.record_deployment(self.address)

    def __repr__(self) -> str:
        return (f"ContractClass({self.contract_name}, network={self.network_id}, "
                f"address={self.address})")


class ContractInstance:
    """A contract at a specific address"""

    def __init__(self, contract_class: ContractClass, address: str, transaction_hash: Optional[str] = None):
        self.contract_class = contract_class
        self.abi = contract_class.abi
        self.address = to_checksum_address(address)
        self.transaction_hash = transaction_hash
        self.receipt: Optional[Dict[str, Any]] = None

        self.methods: Dict[str, MethodProxy] = {}
        self.events: Dict[str, EventProxy] = {}

        for name, entries in functions_by_name(self.abi).items():
            self.methods[name] = MethodProxy(self, name, entries)
        for entry in self.abi:
            if entry.get("type") == "event" and not entry.get("anonymous"):
                self.events[entry["name"]] = EventProxy(self, entry)

        # Attribute access for names that don't shadow the instance API
        for name, proxy in list(self.methods.items()) + list(self.events.items()):
            if not name.startswith("_") and not hasattr(type(self), name) and name not in self.__dict__:
                setattr(self, name, proxy)

    async def all_events(
        self,
        from_block: Union[int, str] = 0,
        to_block: Union[int, str] = "latest"
    ) -> List[DecodedLog]:
        """Every decodable log emitted at this address"""
        client = self.contract_class.require_provider("all_events")
        logs = await client.get_logs(from_block=from_block, to_block=to_block, address=self.address)
        return decode_logs(logs, self.contract_class.events)

    def __repr__(self) -> str:
        return f"ContractInstance({self.contract_class.contract_name} at {self.address})"
