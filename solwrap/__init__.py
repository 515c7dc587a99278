"""
solwrap: async Python wrappers for compiled Ethereum contracts

Load an artifact, bind it to a node and call the contract:

    from solwrap import ContractClass, load_artifact

    Pensions = ContractClass(load_artifact("build/contracts/Pensions.sol.js"))
    Pensions.set_provider("http://localhost:8545")
    pensions = await Pensions.deployed()
"""

from importlib.metadata import PackageNotFoundError, version

from .core.client import RpcClient
from .core.contract import ContractClass, ContractInstance
from .core.methods import EventProxy, MethodProxy
from .utils.artifacts import ContractArtifact, NetworkArtifact, load_artifact, load_artifacts, save_artifact
from .utils.exceptions import (
    APIError,
    ArtifactError,
    ConfigurationError,
    ContractError,
    InvalidAddressError,
    NetworkNotFoundError,
    ProviderNotSetError,
    SolwrapError,
    TransactionError,
    TransactionTimeoutError,
    UnlinkedLibraryError,
)
from .utils.receipt_poller import PendingTransaction, TransactionState
from .utils.transaction_builder import TransactionResult

try:
    __version__ = version("solwrap")
except PackageNotFoundError:
    __version__ = "0.0.0"

__all__ = [
    "APIError",
    "ArtifactError",
    "ConfigurationError",
    "ContractArtifact",
    "ContractClass",
    "ContractError",
    "ContractInstance",
    "EventProxy",
    "InvalidAddressError",
    "MethodProxy",
    "NetworkArtifact",
    "NetworkNotFoundError",
    "PendingTransaction",
    "ProviderNotSetError",
    "RpcClient",
    "SolwrapError",
    "TransactionError",
    "TransactionResult",
    "TransactionState",
    "TransactionTimeoutError",
    "UnlinkedLibraryError",
    "load_artifact",
    "load_artifacts",
    "save_artifact",
]
