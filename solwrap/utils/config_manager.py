"""
Settings for contract wrappers and the command line

Settings come from an optional YAML file with environment variable
overrides on top.

Design Notes:
- Environment overrides use the SOLWRAP_ prefix (SOLWRAP_RPC_URL,
  SOLWRAP_NETWORK_ID, SOLWRAP_TIMEOUT, SOLWRAP_PRIVATE_KEY, SOLWRAP_LOG_LEVEL)
- Validation errors name the offending field
- Settings.apply() pushes provider, network and confirmation settings onto a
  ContractClass
"""

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional, Union

import yaml
from eth_account import Account

from .exceptions import ConfigurationError, ErrorCodes
from .receipt_poller import DEFAULT_POLL_INTERVAL, DEFAULT_SYNCHRONIZATION_TIMEOUT

if TYPE_CHECKING:
    from ..core.client import RpcClient
    from ..core.contract import ContractClass

LOG = logging.getLogger(__name__)

ENV_PREFIX = "SOLWRAP_"
DEFAULT_RPC_URL = "http://127.0.0.1:8545"

# Environment variable suffix -> settings field
ENV_OVERRIDES = {
    "RPC_URL": "rpc_url",
    "NETWORK_ID": "network_id",
    "TIMEOUT": "synchronization_timeout",
    "PRIVATE_KEY": "private_key",
    "LOG_LEVEL": "log_level",
}

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class Settings:
    """Validated solwrap settings"""
    rpc_url: str = DEFAULT_RPC_URL
    network_id: Optional[str] = None
    synchronization_timeout: float = DEFAULT_SYNCHRONIZATION_TIMEOUT
    poll_interval: float = DEFAULT_POLL_INTERVAL
    next_gen: bool = False
    artifacts_dir: Optional[str] = None
    defaults: Dict[str, Any] = field(default_factory=dict)
    log_level: str = "INFO"
    private_key: Optional[str] = None
    request_timeout: float = 30.0
    config_file: Optional[str] = None

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """
        Check field types and ranges.

        Raises:
            ConfigurationError: On the first invalid field
        """
        if not isinstance(self.rpc_url, str) or not self.rpc_url.startswith(("http://", "https://")):
            raise self._invalid("rpc_url", f"rpc_url must be an http(s) URL, got {self.rpc_url!r}")

        if self.network_id is not None:
            self.network_id = str(self.network_id)

        for name in ("synchronization_timeout", "poll_interval", "request_timeout"):
            value = getattr(self, name)
            try:
                value = float(value)
            except (TypeError, ValueError):
                raise self._invalid(name, f"{name} must be a number, got {value!r}")
            if value < 0:
                raise self._invalid(name, f"{name} must not be negative")
            setattr(self, name, value)

        if self.poll_interval == 0:
            raise self._invalid("poll_interval", "poll_interval must be greater than zero")

        if not isinstance(self.defaults, dict):
            raise self._invalid("defaults", "defaults must be a mapping of transaction fields")

        self.log_level = str(self.log_level).upper()
        if self.log_level not in LOG_LEVELS:
            raise self._invalid("log_level", f"log_level must be one of {', '.join(LOG_LEVELS)}")

        if isinstance(self.next_gen, str):
            self.next_gen = self.next_gen.strip().lower() in ("1", "true", "yes")

    def _invalid(self, field_name: str, message: str) -> ConfigurationError:
        return ConfigurationError(message, config_file=self.config_file, field=field_name)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], config_file: Optional[str] = None) -> "Settings":
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            LOG.warning(f"Ignoring unknown settings: {', '.join(sorted(unknown))}")
        values = {k: v for k, v in data.items() if k in known and v is not None}
        values["config_file"] = config_file
        return cls(**values)

    @classmethod
    def load(
        cls,
        config_file: Optional[Union[str, Path]] = None,
        environ: Optional[Mapping[str, str]] = None
    ) -> "Settings":
        """
        Load settings from a YAML file and the environment.

        Args:
            config_file: YAML file; None uses defaults plus environment
            environ: Environment mapping (defaults to os.environ)

        Raises:
            ConfigurationError: Missing file, malformed YAML or invalid value
        """
        data: Dict[str, Any] = {}
        if config_file is not None:
            data = _read_yaml(Path(config_file))

        environ = os.environ if environ is None else environ
        for suffix, field_name in ENV_OVERRIDES.items():
            value = environ.get(ENV_PREFIX + suffix)
            if value is not None:
                LOG.debug(f"Settings override from {ENV_PREFIX + suffix}")
                data[field_name] = value

        return cls.from_dict(data, config_file=str(config_file) if config_file else None)

    def build_account(self):
        """eth_account LocalAccount for private_key, or None"""
        if not self.private_key:
            return None
        try:
            return Account.from_key(self.private_key)
        except (ValueError, TypeError) as e:
            raise ConfigurationError(
                f"Invalid private key: {e}",
                config_file=self.config_file,
                field="private_key",
            )

    def build_client(self) -> "RpcClient":
        from ..core.client import RpcClient

        return RpcClient(self.rpc_url, account=self.build_account(), timeout=self.request_timeout)

    def apply(self, contract_class: "ContractClass", client: Optional["RpcClient"] = None) -> "ContractClass":
        """
        Configure a contract class from these settings.

        Args:
            contract_class: Class to configure
            client: Provider to share; a new one is built when omitted
        """
        contract_class.set_provider(client or self.build_client())
        if self.network_id is not None:
            contract_class.set_network(self.network_id)
        contract_class.synchronization_timeout = self.synchronization_timeout
        contract_class.poll_interval = self.poll_interval
        contract_class.next_gen = self.next_gen
        if self.defaults:
            contract_class.defaults(self.defaults)
        return contract_class

    def __repr__(self) -> str:
        key = "set" if self.private_key else None
        return (f"Settings(rpc_url={self.rpc_url}, network_id={self.network_id}, "
                f"synchronization_timeout={self.synchronization_timeout:g}, private_key={key})")


def _read_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise ConfigurationError(
            f"Configuration file not found: {path}",
            config_file=str(path),
            code=ErrorCodes.CONFIG_FILE_NOT_FOUND,
        )
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}", config_file=str(path))

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration in {path} must be a mapping", config_file=str(path))
    return data
