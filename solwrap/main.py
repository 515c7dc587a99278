#!/usr/bin/env python3
"""
solwrap command line

    solwrap inspect build/contracts/Pensions.sol.js
    solwrap link build/contracts/Pensions.json MathLib=0x... --output Pensions.bin
    solwrap call build/contracts/Pensions.json getPension 0x... --address 0x...
    solwrap send build/contracts/Pensions.json addPensioner 0x... --from 0x...
    solwrap deploy build/contracts/Pensions.json --link MathLib=0x... --save
"""

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from .core.contract import ContractClass
from .utils.abi_codec import abi_signature, coerce_argument, constructor_entry, input_types, is_constant
from .utils.artifacts import load_artifact, save_artifact
from .utils.config_manager import Settings
from .utils.exceptions import ContractError, SolwrapError
from .utils.linker import find_unlinked_libraries
from .utils.logging import setup_logging
from .utils.transaction_builder import TransactionResult

LOG = logging.getLogger(__name__)


def _json_default(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    if hasattr(value, "hex"):
        return value.hex()
    return str(value)


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, default=_json_default))


def _parse_links(pairs: Optional[Sequence[str]]) -> Dict[str, str]:
    links = {}
    for pair in pairs or []:
        name, sep, address = pair.partition("=")
        if not sep or not name or not address:
            raise ContractError(f"Library links must look like Name=0xADDRESS, got {pair!r}")
        links[name] = address
    return links


def _coerce_args(entry: Optional[Dict[str, Any]], raw_args: Sequence[str]) -> List[Any]:
    types = input_types(entry) if entry else []
    if len(types) != len(raw_args):
        name = entry.get("name", "constructor") if entry else "constructor"
        raise ContractError(f"{name} takes {len(types)} arguments, {len(raw_args)} given")
    return [coerce_argument(t, raw) for t, raw in zip(types, raw_args)]


def _tx_params(args) -> Dict[str, Any]:
    params: Dict[str, Any] = {}
    if getattr(args, "sender", None):
        params["from"] = args.sender
    if getattr(args, "gas", None) is not None:
        params["gas"] = args.gas
    if getattr(args, "gas_price", None) is not None:
        params["gasPrice"] = args.gas_price
    if getattr(args, "value", None) is not None:
        params["value"] = args.value
    return params


def load_settings(args) -> Settings:
    settings = Settings.load(args.config)
    if args.rpc_url:
        settings.rpc_url = args.rpc_url
    if args.network:
        settings.network_id = args.network
    settings.validate()
    return settings


def inspect_artifact(contract_class: ContractClass) -> Dict[str, Any]:
    """Summary of an artifact for the selected network"""
    functions = [
        {"signature": abi_signature(e), "constant": is_constant(e)}
        for e in contract_class.abi if e.get("type") == "function"
    ]
    events = [abi_signature(e) for e in contract_class.events.values()]
    return {
        "contract_name": contract_class.contract_name,
        "generated_with": contract_class.generated_with,
        "networks": contract_class.networks(),
        "network_id": contract_class.network_id,
        "address": contract_class.address,
        "links": contract_class.links,
        "unlinked_libraries": find_unlinked_libraries(contract_class.binary or ""),
        "functions": functions,
        "events": events,
    }


def _function_entry(contract_class: ContractClass, name: str, arg_count: int) -> Dict[str, Any]:
    entries = [
        e for e in contract_class.abi
        if e.get("type") == "function" and e.get("name") == name
        and len(e.get("inputs", [])) == arg_count
    ]
    if not entries:
        raise ContractError(
            f"{contract_class.contract_name} has no function {name} taking {arg_count} arguments",
            contract_name=contract_class.contract_name,
        )
    return entries[0]


async def _instance(contract_class: ContractClass, address: Optional[str]):
    if address:
        return contract_class.at(address)
    return await contract_class.deployed()


async def run_command(args, settings: Settings) -> int:
    """Execute one subcommand, returning the process exit code"""
    contract_class = ContractClass(load_artifact(args.artifact), network_id=settings.network_id)

    if args.command == "inspect":
        _print_json(inspect_artifact(contract_class))
        return 0

    if args.command == "link":
        contract_class.link(_parse_links(args.links))
        binary = contract_class.binary or ""
        unlinked = find_unlinked_libraries(binary)
        if unlinked:
            LOG.warning(f"Still unlinked: {', '.join(unlinked)}")
        if args.output:
            with open(args.output, "w") as f:
                f.write(binary)
            LOG.info(f"Wrote linked bytecode to {args.output}")
        else:
            print(binary)
        return 0

    client = settings.build_client()
    try:
        settings.apply(contract_class, client)

        if args.command == "call":
            instance = await _instance(contract_class, args.address)
            entry = _function_entry(contract_class, args.function, len(args.args))
            values = _coerce_args(entry, args.args)
            result = await instance.methods[args.function].call(*values, tx=_tx_params(args))
            _print_json(result)
            return 0

        if args.command == "send":
            instance = await _instance(contract_class, args.address)
            entry = _function_entry(contract_class, args.function, len(args.args))
            values = _coerce_args(entry, args.args)
            result = await instance.methods[args.function].transact(*values, tx=_tx_params(args))
            if isinstance(result, TransactionResult):
                _print_json({
                    "tx": result.tx,
                    "succeeded": result.succeeded,
                    "logs": [asdict(log) for log in result.logs],
                })
            else:
                _print_json({"tx": result})
            return 0

        if args.command == "deploy":
            contract_class.link(_parse_links(args.links))
            values = _coerce_args(constructor_entry(contract_class.abi), args.args)
            instance = await contract_class.new(*values, tx=_tx_params(args))
            _print_json({
                "contract_name": contract_class.contract_name,
                "address": instance.address,
                "tx": instance.transaction_hash,
                "network_id": contract_class.network_id,
            })
            if args.save:
                artifact = contract_class.record_deployment(instance.address)
                save_artifact(artifact, args.save_path or default_save_path(args.artifact))
            return 0

        raise ContractError(f"Unknown command: {args.command}")
    finally:
        await client.close()


def default_save_path(artifact_path: str) -> str:
    """
    Where ``deploy --save`` writes without --save-path.

    The input is never overwritten: compiler artifacts carry keys solwrap does
    not model, so the result goes to ``<name>.solwrap.json`` beside it.
    """
    path = Path(artifact_path)
    name = path.name
    for suffix in (".sol.js", ".json"):
        if name.endswith(suffix):
            name = name[:-len(suffix)]
            break
    return str(path.with_name(f"{name}.solwrap.json"))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Async wrappers for compiled Ethereum contracts")
    parser.add_argument("--config", default=None,
                        help="Path to YAML settings file")
    parser.add_argument("--rpc-url", default=None,
                        help="Node JSON-RPC endpoint (overrides settings)")
    parser.add_argument("--network", default=None,
                        help="Network id to use artifacts for (default: ask the node)")
    parser.add_argument("--log-level", default=None,
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                        help="Logging level")
    parser.add_argument("--log-file", default=None,
                        help="Path to log file")

    subparsers = parser.add_subparsers(dest="command", required=True)

    inspect_parser = subparsers.add_parser("inspect", help="Show an artifact's functions, events and networks")
    inspect_parser.add_argument("artifact")

    link_parser = subparsers.add_parser("link", help="Print bytecode with libraries linked")
    link_parser.add_argument("artifact")
    link_parser.add_argument("links", nargs="*", metavar="Name=0xADDRESS")
    link_parser.add_argument("--output", default=None, help="Write bytecode to this file")

    for name, help_text in (("call", "Call a constant function"),
                            ("send", "Send a transaction and wait for it")):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("artifact")
        sub.add_argument("function")
        sub.add_argument("args", nargs="*")
        sub.add_argument("--address", default=None,
                         help="Contract address (default: the artifact's deployed address)")
        _add_tx_options(sub)

    deploy_parser = subparsers.add_parser("deploy", help="Deploy a new instance")
    deploy_parser.add_argument("artifact")
    deploy_parser.add_argument("args", nargs="*")
    deploy_parser.add_argument("--link", dest="links", action="append", metavar="Name=0xADDRESS",
                               help="Library address, repeatable")
    deploy_parser.add_argument("--save", action="store_true",
                               help="Record the deployment in the artifact")
    deploy_parser.add_argument("--save-path", default=None,
                               help="Where to write the updated artifact (default: <name>.solwrap.json next to the input)")
    _add_tx_options(deploy_parser)

    return parser


def _add_tx_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--from", dest="sender", default=None, help="Sender address")
    parser.add_argument("--gas", type=int, default=None, help="Gas limit")
    parser.add_argument("--gas-price", type=int, default=None, help="Gas price in wei")
    parser.add_argument("--value", type=int, default=None, help="Value in wei")


async def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main execution flow"""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = load_settings(args)
    except SolwrapError as e:
        setup_logging(args.log_level or "INFO", args.log_file)
        LOG.error(f"Configuration error: {e}")
        return 2

    setup_logging(args.log_level or settings.log_level, args.log_file)

    try:
        return await run_command(args, settings)
    except SolwrapError as e:
        LOG.error(str(e))
        return 1


def run() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
