"""
Contract artifact loading and saving

An artifact describes one compiled contract: its name, the generator version
and, per network id, the ABI, unlinked bytecode, deployed address, library
links and event map. Three on-disk shapes are understood:

- multi-network JSON: ``{"contract_name", "generated_with", "networks": {id: {...}}}``
- single-ABI JSON (truffle/hardhat style): ``{"contractName", "abi",
  "bytecode" | "unlinked_binary", "networks": {id: {"address", "links", ...}}}``
- generated ``*.sol.js`` modules holding a ``Contract.all_networks = {...};``
  literal

Design Notes:
- Artifacts are frozen; record_deployment() returns an updated copy
- Missing event maps are derived from the ABI
- Directory loading caches nothing; callers keep the returned mapping
"""

import json
import logging
import re
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .common import now_millis
from .event_parser import events_by_topic
from .exceptions import ArtifactError, ErrorCodes

LOG = logging.getLogger(__name__)

DEFAULT_NETWORK = "default"

_ALL_NETWORKS_MARKER = re.compile(r"Contract\.all_networks\s*=\s*")
_CONTRACT_NAME = re.compile(r"contract_name\s*=\s*\"([^\"]+)\"")
_GENERATED_WITH = re.compile(r"generated_with\s*=\s*\"([^\"]+)\"")


@dataclass(frozen=True)
class NetworkArtifact:
    """ABI, bytecode and deployment record for one network"""
    abi: List[Dict[str, Any]] = field(default_factory=list)
    unlinked_binary: Optional[str] = None
    address: Optional[str] = None
    links: Dict[str, str] = field(default_factory=dict)
    events: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    updated_at: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NetworkArtifact":
        abi = data.get("abi") or []
        events = data.get("events") or events_by_topic(abi)
        return cls(
            abi=abi,
            unlinked_binary=data.get("unlinked_binary") or data.get("bytecode"),
            address=data.get("address"),
            links=dict(data.get("links") or {}),
            events=dict(events),
            updated_at=data.get("updated_at"),
        )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "abi": self.abi,
            "unlinked_binary": self.unlinked_binary,
            "events": self.events,
            "links": self.links,
        }
        if self.address:
            result["address"] = self.address
        if self.updated_at is not None:
            result["updated_at"] = self.updated_at
        return result


@dataclass(frozen=True)
class ContractArtifact:
    """Everything known about one compiled contract, keyed by network id"""
    contract_name: str
    networks: Dict[str, NetworkArtifact]
    generated_with: Optional[str] = None
    source_path: Optional[str] = None

    def network(self, network_id: str) -> Optional[NetworkArtifact]:
        return self.networks.get(str(network_id))

    def network_ids(self) -> List[str]:
        return list(self.networks.keys())

    def record_deployment(
        self,
        network_id: str,
        address: str,
        links: Optional[Dict[str, str]] = None,
        template: Optional[NetworkArtifact] = None
    ) -> "ContractArtifact":
        """
        Copy of this artifact with a deployment recorded for network_id.

        Args:
            network_id: Network the contract was deployed to
            address: Deployed address
            links: Library links used for the deployment
            template: ABI/bytecode source when the network is new
                      (defaults to the "default" network)
        """
        network_id = str(network_id)
        base = self.networks.get(network_id) or template or self.networks.get(DEFAULT_NETWORK)
        if base is None:
            raise ArtifactError(
                f"{self.contract_name} has no ABI to record a deployment on network '{network_id}'"
            )
        updated = replace(
            base,
            address=address,
            links=dict(links if links is not None else base.links),
            updated_at=now_millis(),
        )
        networks = dict(self.networks)
        networks[network_id] = updated
        return replace(self, networks=networks)

    @classmethod
    def from_dict(
        cls,
        data: Dict[str, Any],
        default_name: Optional[str] = None,
        source_path: Optional[str] = None
    ) -> "ContractArtifact":
        name = data.get("contract_name") or data.get("contractName") or default_name
        if not name:
            raise ArtifactError("Artifact has no contract name", path=source_path)

        if "abi" in data:
            networks = _networks_from_single_abi(data)
        else:
            raw_networks = data.get("networks", data.get("all_networks"))
            if not isinstance(raw_networks, dict):
                raise ArtifactError(
                    f"Artifact for {name} has neither an ABI nor a networks table",
                    path=source_path,
                )
            networks = {
                str(network_id): NetworkArtifact.from_dict(network_data)
                for network_id, network_data in raw_networks.items()
            }

        return cls(
            contract_name=name,
            networks=networks,
            generated_with=data.get("generated_with"),
            source_path=source_path,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "contract_name": self.contract_name,
            "generated_with": self.generated_with,
            "networks": {
                network_id: network.to_dict()
                for network_id, network in self.networks.items()
            },
        }


def _networks_from_single_abi(data: Dict[str, Any]) -> Dict[str, NetworkArtifact]:
    """Expand a top-level ABI/bytecode artifact into per-network entries"""
    abi = data["abi"]
    binary = data.get("unlinked_binary") or data.get("bytecode")
    if isinstance(binary, dict):
        # solc standard-json style {"object": "..."}
        binary = binary.get("object")
    if binary and not binary.startswith("0x"):
        binary = "0x" + binary
    events = events_by_topic(abi)

    networks = {
        DEFAULT_NETWORK: NetworkArtifact(abi=abi, unlinked_binary=binary, events=events)
    }
    for network_id, deployment in (data.get("networks") or {}).items():
        networks[str(network_id)] = NetworkArtifact(
            abi=abi,
            unlinked_binary=binary,
            address=deployment.get("address"),
            links=dict(deployment.get("links") or {}),
            events=dict(deployment.get("events") or events),
            updated_at=deployment.get("updated_at"),
        )
    return networks


def parse_sol_js(source: str, source_path: Optional[str] = None) -> ContractArtifact:
    """
    Extract the artifact embedded in a generated ``*.sol.js`` wrapper module.

    Raises:
        ArtifactError: If the networks literal is missing or not valid JSON
    """
    marker = _ALL_NETWORKS_MARKER.search(source)
    if marker is None:
        raise ArtifactError("No Contract.all_networks literal found", path=source_path)

    try:
        all_networks, _ = json.JSONDecoder().raw_decode(source, marker.end())
    except json.JSONDecodeError as e:
        raise ArtifactError(
            f"Invalid networks literal: {e}", path=source_path, cause=e
        )

    name_match = _CONTRACT_NAME.search(source)
    version_match = _GENERATED_WITH.search(source)

    default_name = None
    if source_path:
        # Pensions.sol.js -> Pensions
        default_name = Path(source_path).name.split(".")[0]

    return ContractArtifact.from_dict(
        {
            "contract_name": name_match.group(1) if name_match else default_name,
            "generated_with": version_match.group(1) if version_match else None,
            "networks": all_networks,
        },
        source_path=source_path,
    )


def load_artifact(path: Union[str, Path]) -> ContractArtifact:
    """
    Load an artifact from a JSON file or a generated ``*.sol.js`` module.

    Raises:
        ArtifactError: If the file does not exist or cannot be parsed
    """
    path = Path(path)
    if not path.exists():
        raise ArtifactError(
            f"Artifact file not found: {path}",
            path=str(path),
            code=ErrorCodes.ARTIFACT_NOT_FOUND,
        )

    text = path.read_text(encoding="utf-8")

    if path.name.endswith(".js"):
        artifact = parse_sol_js(text, source_path=str(path))
    else:
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ArtifactError(f"Invalid JSON in artifact file: {e}", path=str(path), cause=e)
        if not isinstance(data, dict):
            raise ArtifactError("Artifact JSON must be an object", path=str(path))
        artifact = ContractArtifact.from_dict(
            data, default_name=path.name.split(".")[0], source_path=str(path)
        )

    LOG.debug(f"Loaded artifact {artifact.contract_name} from {path} "
              f"(networks: {', '.join(artifact.network_ids())})")
    return artifact


def load_artifacts(directory: Union[str, Path]) -> Dict[str, ContractArtifact]:
    """
    Load every ``*.json`` and ``*.sol.js`` artifact in a build directory.

    Returns:
        Mapping of contract name -> artifact
    """
    directory = Path(directory)
    if not directory.is_dir():
        raise ArtifactError(
            f"Artifacts directory not found: {directory}",
            path=str(directory),
            code=ErrorCodes.ARTIFACT_NOT_FOUND,
        )

    artifacts: Dict[str, ContractArtifact] = {}
    for path in sorted(directory.iterdir()):
        if not (path.name.endswith(".json") or path.name.endswith(".sol.js")):
            continue
        artifact = load_artifact(path)
        if artifact.contract_name in artifacts:
            LOG.warning(f"Duplicate artifact for {artifact.contract_name} in {path}, replacing")
        artifacts[artifact.contract_name] = artifact

    LOG.info(f"Loaded {len(artifacts)} artifacts from {directory}")
    return artifacts


def save_artifact(artifact: ContractArtifact, path: Union[str, Path]) -> Path:
    """Write the multi-network JSON form of an artifact"""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(artifact.to_dict(), f, indent=2)
    LOG.info(f"Saved artifact {artifact.contract_name} to {path}")
    return path
