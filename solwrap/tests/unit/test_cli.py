"""
Tests for the solwrap command line
"""

import json
from unittest.mock import patch

import pytest
from eth_abi import encode as abi_encode

from solwrap.main import build_parser, default_save_path, main
from solwrap.utils.artifacts import load_artifact
from solwrap.utils.config_manager import ENV_OVERRIDES, ENV_PREFIX
from solwrap.utils.mock_node import contract_address_for

from ..conftest import FIXTURES_DIR, SENDER, STORAGE_ADDRESS

LIB_ADDRESS = "0x1111111111111111111111111111111111111111"


@pytest.fixture(autouse=True)
def quiet_environment(monkeypatch):
    for suffix in ENV_OVERRIDES:
        monkeypatch.delenv(ENV_PREFIX + suffix, raising=False)
    with patch("solwrap.main.setup_logging"):
        yield


async def run_cli(capsys, *argv):
    code = await main(list(argv))
    return code, capsys.readouterr().out


class TestParser:
    """Argument parsing"""

    def test_deploy_links_repeatable(self):
        args = build_parser().parse_args([
            "deploy", "A.json", "1", "--link", "X=0x1", "--link", "Y=0x2", "--save",
        ])
        assert args.links == ["X=0x1", "Y=0x2"]
        assert args.args == ["1"]
        assert args.save

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    @pytest.mark.parametrize("artifact,expected", [
        ("build/Pensions.json", "build/Pensions.solwrap.json"),
        ("build/Pensions.sol.js", "build/Pensions.solwrap.json"),
    ])
    def test_default_save_path(self, artifact, expected):
        assert default_save_path(artifact) == expected


class TestOfflineCommands:
    """Commands that never contact a node"""

    @pytest.mark.asyncio
    async def test_inspect(self, capsys):
        code, out = await run_cli(capsys, "inspect", str(FIXTURES_DIR / "Pensions.sol.js"))

        assert code == 0
        summary = json.loads(out)
        assert summary["contract_name"] == "Pensions"
        assert summary["generated_with"] == "3.2.0"
        assert summary["networks"] == ["default", "3"]
        assert {"signature": "owner()", "constant": True} in summary["functions"]
        assert {"signature": "Terminate()", "constant": False} in summary["functions"]
        assert summary["events"] == ["Pensions_ev(address,uint256)"]

    @pytest.mark.asyncio
    async def test_inspect_lists_unlinked(self, capsys):
        _, out = await run_cli(capsys, "inspect", str(FIXTURES_DIR / "MathConsumer.json"))
        assert json.loads(out)["unlinked_libraries"] == ["MathLib"]

    @pytest.mark.asyncio
    async def test_link(self, capsys, tmp_path):
        output = tmp_path / "MathConsumer.bin"

        code, _ = await run_cli(
            capsys, "link", str(FIXTURES_DIR / "MathConsumer.json"),
            f"MathLib={LIB_ADDRESS}", "--output", str(output),
        )

        assert code == 0
        assert output.read_text().count(LIB_ADDRESS[2:]) == 2

    @pytest.mark.asyncio
    async def test_bad_link_argument(self, capsys):
        code, _ = await run_cli(capsys, "link", str(FIXTURES_DIR / "MathConsumer.json"), "MathLib")
        assert code == 1

    @pytest.mark.asyncio
    async def test_missing_artifact(self, capsys, tmp_path):
        code, _ = await run_cli(capsys, "inspect", str(tmp_path / "Nope.json"))
        assert code == 1

    @pytest.mark.asyncio
    async def test_bad_config(self, capsys, tmp_path):
        code, _ = await run_cli(
            capsys, "--config", str(tmp_path / "missing.yaml"), "inspect", "x.json"
        )
        assert code == 2


class TestNodeCommands:
    """Commands run against MockNode"""

    @pytest.mark.asyncio
    async def test_call(self, capsys, mock_node):
        mock_node.set_call_result("0x6d4ce63c", "0x" + abi_encode(["uint256"], [7]).hex())

        code, out = await run_cli(
            capsys, "--rpc-url", mock_node.rpc_url,
            "call", str(FIXTURES_DIR / "SimpleStorage.json"), "get",
        )

        assert code == 0
        assert json.loads(out) == 7
        # Address comes from the artifact for the node's network
        assert mock_node.calls_to("eth_call")[0]["params"][0]["to"] == STORAGE_ADDRESS

    @pytest.mark.asyncio
    async def test_send(self, capsys, mock_node):
        code, out = await run_cli(
            capsys, "--rpc-url", mock_node.rpc_url,
            "send", str(FIXTURES_DIR / "SimpleStorage.json"), "set", "5", "--from", SENDER,
        )

        assert code == 0
        tx_hash = json.loads(out)["tx"]
        assert tx_hash in mock_node.transactions
        sent = mock_node.calls_to("eth_sendTransaction")[0]["params"][0]
        assert sent["data"] == "0x60fe47b1" + (5).to_bytes(32, "big").hex()

    @pytest.mark.asyncio
    async def test_deploy_and_save(self, capsys, mock_node, tmp_path):
        saved = tmp_path / "SimpleStorage.json"

        code, out = await run_cli(
            capsys, "--rpc-url", mock_node.rpc_url,
            "deploy", str(FIXTURES_DIR / "SimpleStorage.json"), "10",
            "--from", SENDER, "--save", "--save-path", str(saved),
        )

        assert code == 0
        expected = contract_address_for(SENDER, 0)
        assert json.loads(out)["address"] == expected
        assert load_artifact(saved).network("42").address == expected

    @pytest.mark.asyncio
    async def test_wrong_argument_count(self, capsys, mock_node):
        code, _ = await run_cli(
            capsys, "--rpc-url", mock_node.rpc_url,
            "call", str(FIXTURES_DIR / "SimpleStorage.json"), "get", "1",
        )
        assert code == 1

    @pytest.mark.asyncio
    async def test_deploy_save_keeps_input_artifact(self, capsys, mock_node, tmp_path):
        source = tmp_path / "SimpleStorage.json"
        source.write_text((FIXTURES_DIR / "SimpleStorage.json").read_text())
        original = source.read_text()

        code, out = await run_cli(
            capsys, "--rpc-url", mock_node.rpc_url,
            "deploy", str(source), "10", "--from", SENDER, "--save",
        )

        assert code == 0
        assert source.read_text() == original
        saved = tmp_path / "SimpleStorage.solwrap.json"
        assert load_artifact(saved).network("42").address == json.loads(out)["address"]
