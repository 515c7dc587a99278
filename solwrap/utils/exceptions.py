"""
Exception hierarchy for solwrap

Every error raised by the package derives from SolwrapError so callers can
catch the whole family at once. Errors carry a numeric code and a details
mapping that is preserved by to_dict() for structured logging.
"""

from enum import IntEnum
from typing import Any, Dict, List, Optional


class ErrorCodes(IntEnum):
    """Numeric error codes grouped by subsystem"""
    UNKNOWN = 1000

    # Client / RPC
    RPC_ERROR = 1100
    RPC_HTTP_ERROR = 1101
    RPC_CONNECTION_FAILED = 1102
    RPC_INVALID_RESPONSE = 1103

    # Configuration
    CONFIG_INVALID = 1200
    CONFIG_FILE_NOT_FOUND = 1201

    # Artifacts
    ARTIFACT_NOT_FOUND = 1300
    ARTIFACT_INVALID = 1301

    # Contract lifecycle
    CONTRACT_ERROR = 1400
    PROVIDER_NOT_SET = 1401
    NETWORK_NOT_FOUND = 1402
    INVALID_ADDRESS = 1403
    UNLINKED_LIBRARIES = 1404
    BINARY_NOT_SET = 1405

    # Transactions
    TRANSACTION_FAILED = 1500
    TRANSACTION_TIMEOUT = 1501


class SolwrapError(Exception):
    """Base exception class for solwrap"""

    default_code = ErrorCodes.UNKNOWN

    def __init__(
        self,
        message: str,
        code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None
    ):
        self.message = message
        self.code = code if code is not None else int(self.default_code)
        self.details = details or {}
        self.cause = cause
        super().__init__(message)

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the error for logs and CLI output"""
        result = {
            "error": type(self).__name__,
            "message": self.message,
            "code": self.code,
            "details": self.details,
        }
        if self.cause is not None:
            result["cause"] = repr(self.cause)
        return result


class APIError(SolwrapError):
    """JSON-RPC call error"""

    default_code = ErrorCodes.RPC_ERROR


class ConfigurationError(SolwrapError):
    """Invalid or missing configuration"""

    default_code = ErrorCodes.CONFIG_INVALID

    def __init__(
        self,
        message: str,
        config_file: Optional[str] = None,
        field: Optional[str] = None,
        code: Optional[int] = None
    ):
        details = {}
        if config_file:
            details["config_file"] = config_file
        if field:
            details["field"] = field
        super().__init__(message, code=code, details=details)


class ArtifactError(SolwrapError):
    """Artifact file is missing or malformed"""

    default_code = ErrorCodes.ARTIFACT_INVALID

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        code: Optional[int] = None,
        cause: Optional[BaseException] = None
    ):
        details = {"path": path} if path else {}
        super().__init__(message, code=code, details=details, cause=cause)


class ContractError(SolwrapError):
    """Contract wrapper misuse or lifecycle error"""

    default_code = ErrorCodes.CONTRACT_ERROR

    def __init__(
        self,
        message: str,
        contract_name: Optional[str] = None,
        code: Optional[int] = None,
        cause: Optional[BaseException] = None
    ):
        details = {"contract_name": contract_name} if contract_name else {}
        super().__init__(message, code=code, details=details, cause=cause)


class ProviderNotSetError(ContractError):
    """An operation needing a client ran before set_provider()"""

    default_code = ErrorCodes.PROVIDER_NOT_SET


class NetworkNotFoundError(ContractError):
    """The artifact holds nothing for the requested network id"""

    default_code = ErrorCodes.NETWORK_NOT_FOUND


class InvalidAddressError(ContractError):
    """Address is not a 0x-prefixed 20-byte hex string"""

    default_code = ErrorCodes.INVALID_ADDRESS


class UnlinkedLibraryError(ContractError):
    """Bytecode still contains library placeholders"""

    default_code = ErrorCodes.UNLINKED_LIBRARIES

    def __init__(
        self,
        message: str,
        libraries: List[str],
        contract_name: Optional[str] = None
    ):
        super().__init__(message, contract_name=contract_name)
        self.libraries = libraries
        self.details["libraries"] = libraries


class TransactionError(SolwrapError):
    """Transaction submission or confirmation failed"""

    default_code = ErrorCodes.TRANSACTION_FAILED

    def __init__(
        self,
        message: str,
        tx_hash: Optional[str] = None,
        from_address: Optional[str] = None,
        to_address: Optional[str] = None,
        code: Optional[int] = None,
        cause: Optional[BaseException] = None
    ):
        details = {}
        if tx_hash:
            details["tx_hash"] = tx_hash
        if from_address:
            details["from_address"] = from_address
        if to_address:
            details["to_address"] = to_address
        super().__init__(message, code=code, details=details, cause=cause)
        self.tx_hash = tx_hash


class TransactionTimeoutError(TransactionError):
    """No receipt appeared within the synchronization timeout"""

    default_code = ErrorCodes.TRANSACTION_TIMEOUT

    def __init__(self, message: str, tx_hash: Optional[str] = None, timeout: Optional[float] = None):
        super().__init__(message, tx_hash=tx_hash)
        self.timeout = timeout
        if timeout is not None:
            self.details["timeout"] = timeout
