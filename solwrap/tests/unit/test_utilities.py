"""
Unit tests for the utility modules

Covers exceptions, linking, ABI encoding, event decoding, transaction
parameter handling and artifact loading. None of these need a node.
"""

import json

import pytest
from eth_abi import encode as abi_encode

from solwrap.utils.abi_codec import (
    abi_signature,
    canonical_type,
    coerce_argument,
    decode_function_result,
    encode_constructor_args,
    encode_function_call,
    function_selector,
    functions_by_name,
    is_constant,
    select_overload,
)
from solwrap.utils.artifacts import (
    DEFAULT_NETWORK,
    ContractArtifact,
    load_artifact,
    load_artifacts,
    parse_sol_js,
    save_artifact,
)
from solwrap.utils.event_parser import decode_log, decode_logs, event_topic, events_by_topic
from solwrap.utils.exceptions import (
    ArtifactError,
    ContractError,
    ErrorCodes,
    InvalidAddressError,
    SolwrapError,
    TransactionTimeoutError,
    UnlinkedLibraryError,
)
from solwrap.utils.linker import (
    ensure_linked,
    find_unlinked_libraries,
    legacy_placeholder,
    link_bytecode,
    placeholder_hash,
)
from solwrap.utils.transaction_builder import (
    TransactionResult,
    merge_tx_params,
    split_tx_params,
)

LIB_ADDRESS = "0x1111111111111111111111111111111111111111"
OTHER_ADDRESS = "0x2222222222222222222222222222222222222222"

TRANSFER_EVENT = {
    "anonymous": False,
    "inputs": [
        {"indexed": True, "name": "from", "type": "address"},
        {"indexed": True, "name": "to", "type": "address"},
        {"indexed": False, "name": "value", "type": "uint256"},
    ],
    "name": "Transfer",
    "type": "event",
}
TRANSFER_TOPIC = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"


def _address_topic(address: str) -> str:
    return "0x" + "00" * 12 + address[2:].lower()


class TestExceptions:
    """Test custom exceptions"""

    def test_base_exception(self):
        error = SolwrapError("Test error", code=1001)

        assert error.message == "Test error"
        assert error.code == 1001
        assert str(error) == "[1001] Test error"

        error_dict = error.to_dict()
        assert error_dict["error"] == "SolwrapError"
        assert error_dict["message"] == "Test error"
        assert "cause" not in error_dict

    def test_default_codes(self):
        assert ContractError("x").code == ErrorCodes.CONTRACT_ERROR
        assert InvalidAddressError("x").code == ErrorCodes.INVALID_ADDRESS

    def test_timeout_error_details(self):
        error = TransactionTimeoutError("slow", tx_hash="0x123", timeout=240)

        assert error.tx_hash == "0x123"
        assert error.details == {"tx_hash": "0x123", "timeout": 240}
        assert error.code == ErrorCodes.TRANSACTION_TIMEOUT

    def test_unlinked_library_error_lists_libraries(self):
        error = UnlinkedLibraryError("unlinked", libraries=["A", "B"], contract_name="C")

        assert error.libraries == ["A", "B"]
        assert error.details["libraries"] == ["A", "B"]
        assert error.details["contract_name"] == "C"
        assert isinstance(error, ContractError)


class TestLinker:
    """Library placeholder handling"""

    def test_legacy_placeholder_is_40_chars(self):
        placeholder = legacy_placeholder("MathLib")
        assert len(placeholder) == 40
        assert placeholder.startswith("__MathLib_")

    def test_path_qualified_placeholder_links_under_reported_name(self):
        placeholder = "__contracts/MathLib.sol:MathLib".ljust(40, "_")
        bytecode = "0x60" + placeholder + "60"

        (name,) = find_unlinked_libraries(bytecode)
        assert name == "contracts/MathLib.sol:MathLib"

        linked = link_bytecode(bytecode, {name: LIB_ADDRESS})
        assert linked == "0x60" + LIB_ADDRESS[2:] + "60"
        assert find_unlinked_libraries(linked) == []

    def test_qualified_name_also_fills_bare_placeholder(self):
        bytecode = "0x" + legacy_placeholder("MathLib")

        linked = link_bytecode(bytecode, {"contracts/MathLib.sol:MathLib": LIB_ADDRESS})

        assert linked == "0x" + LIB_ADDRESS[2:]

    def test_find_unlinked_sorted_unique(self):
        bytecode = ("0x60" + legacy_placeholder("Zeta") + "60" + legacy_placeholder("Alpha")
                    + legacy_placeholder("Zeta"))
        assert find_unlinked_libraries(bytecode) == ["Alpha", "Zeta"]

    def test_link_legacy_placeholder(self):
        bytecode = "0x6060" + legacy_placeholder("MathLib") + "6060"

        linked = link_bytecode(bytecode, {"MathLib": LIB_ADDRESS})

        assert linked == "0x6060" + LIB_ADDRESS[2:] + "6060"
        assert len(linked) == len(bytecode)
        assert find_unlinked_libraries(linked) == []

    def test_link_does_not_touch_prefix_sharing_library(self):
        bytecode = "0x" + legacy_placeholder("Math") + legacy_placeholder("MathLib")

        linked = link_bytecode(bytecode, {"Math": LIB_ADDRESS})

        assert linked == "0x" + LIB_ADDRESS[2:] + legacy_placeholder("MathLib")

    def test_link_hashed_placeholder(self):
        name = "contracts/Math.sol:MathLib"
        bytecode = "0x60__$" + placeholder_hash(name) + "$__60"

        assert find_unlinked_libraries(bytecode) == [f"${placeholder_hash(name)}$"]
        assert link_bytecode(bytecode, {name: LIB_ADDRESS}) == "0x60" + LIB_ADDRESS[2:] + "60"

    def test_invalid_library_address(self):
        with pytest.raises(InvalidAddressError):
            link_bytecode("0x" + legacy_placeholder("MathLib"), {"MathLib": "0x1234"})

    def test_ensure_linked_message(self):
        bytecode = "0x" + legacy_placeholder("B") + legacy_placeholder("A")

        with pytest.raises(UnlinkedLibraryError) as exc_info:
            ensure_linked(bytecode, "Pensions")

        assert exc_info.value.message == (
            "Pensions contains unresolved libraries. You must deploy and link the following "
            "libraries before you can deploy a new version of Pensions: A, B"
        )
        assert exc_info.value.libraries == ["A", "B"]


class TestAbiCodec:
    """ABI encoding helpers"""

    SET = {"inputs": [{"name": "value", "type": "uint256"}], "name": "set",
           "outputs": [], "stateMutability": "nonpayable", "type": "function"}
    GET = {"inputs": [], "name": "get", "outputs": [{"name": "", "type": "uint256"}],
           "stateMutability": "view", "type": "function"}

    def test_selectors(self):
        assert function_selector(self.SET) == "0x60fe47b1"
        assert function_selector(self.GET) == "0x6d4ce63c"

    def test_tuple_type_collapsed(self):
        param = {"type": "tuple[]", "components": [{"type": "address"}, {"type": "uint256"}]}
        assert canonical_type(param) == "(address,uint256)[]"

    def test_is_constant(self):
        assert is_constant(self.GET)
        assert not is_constant(self.SET)
        assert is_constant({"constant": True, "name": "owner", "type": "function"})
        assert not is_constant({"constant": False, "name": "Terminate", "type": "function"})

    def test_encode_function_call(self):
        data = encode_function_call(self.SET, [42])
        assert data == "0x60fe47b1" + (42).to_bytes(32, "big").hex()

    def test_encode_wrong_argument_count(self):
        with pytest.raises(ContractError):
            encode_function_call(self.SET, [])

    def test_encode_accepts_hex_for_bytes(self):
        entry = {"inputs": [{"name": "b", "type": "bytes32"}], "name": "f", "type": "function"}
        data = encode_function_call(entry, ["0x" + "ff" * 32])
        assert data.endswith("ff" * 32)

    def test_constructor_args(self):
        abi = [{"inputs": [{"name": "initial", "type": "uint256"}], "type": "constructor"}]
        assert encode_constructor_args(abi, [1]) == (1).to_bytes(32, "big").hex()
        assert encode_constructor_args([self.GET], []) == ""
        with pytest.raises(ContractError):
            encode_constructor_args([self.GET], [1])

    def test_decode_single_and_multiple_outputs(self):
        assert decode_function_result(self.GET, "0x" + abi_encode(["uint256"], [7]).hex()) == 7

        entry = {"name": "info", "type": "function", "inputs": [],
                 "outputs": [{"type": "address"}, {"type": "uint256"}]}
        data = "0x" + abi_encode(["address", "uint256"], [LIB_ADDRESS, 3]).hex()
        assert decode_function_result(entry, data) == (LIB_ADDRESS, 3)

    def test_decode_no_outputs_is_none(self):
        assert decode_function_result(self.SET, "0x") is None

    def test_decode_empty_data_raises(self):
        with pytest.raises(ContractError, match="returned no data"):
            decode_function_result(self.GET, "0x")

    def test_select_overload(self):
        two = dict(self.SET, inputs=self.SET["inputs"] + [{"name": "note", "type": "string"}])
        assert select_overload([self.SET, two], [1]) is self.SET
        assert select_overload([self.SET, two], [1, "x"]) is two
        with pytest.raises(ContractError, match="No overload"):
            select_overload([self.SET, two], [])

    def test_select_overload_ambiguous(self):
        other = dict(self.SET, inputs=[{"name": "who", "type": "address"}])
        with pytest.raises(ContractError, match="Ambiguous"):
            select_overload([self.SET, other], [1])

    def test_functions_by_name_groups_overloads(self):
        grouped = functions_by_name([self.SET, self.GET, dict(self.SET), TRANSFER_EVENT])
        assert list(grouped) == ["set", "get"]
        assert len(grouped["set"]) == 2
        assert abi_signature(grouped["get"][0]) == "get()"

    def test_coerce_argument(self):
        assert coerce_argument("uint256", "0x10") == 16
        assert coerce_argument("int8", "-3") == -3
        assert coerce_argument("bool", "true") is True
        assert coerce_argument("bool", "no") is False
        assert coerce_argument("uint256[]", "[1, 2]") == [1, 2]
        assert coerce_argument("bytes", "0x0102") == b"\x01\x02"
        assert coerce_argument("string", "hello") == "hello"


class TestEventParser:
    """Log decoding"""

    def _transfer_log(self, value=5, topic=TRANSFER_TOPIC):
        return {
            "address": OTHER_ADDRESS,
            "topics": [topic, _address_topic(LIB_ADDRESS), _address_topic(OTHER_ADDRESS)],
            "data": "0x" + abi_encode(["uint256"], [value]).hex(),
            "transactionHash": "0x" + "cd" * 32,
            "blockNumber": "0x10",
            "logIndex": "0x0",
        }

    def test_event_topic(self):
        assert event_topic(TRANSFER_EVENT) == TRANSFER_TOPIC

    def test_events_by_topic_skips_anonymous(self):
        anonymous = dict(TRANSFER_EVENT, name="Hidden", anonymous=True)
        assert list(events_by_topic([TRANSFER_EVENT, anonymous])) == [TRANSFER_TOPIC]

    def test_decode_log(self):
        decoded = decode_log(self._transfer_log(), TRANSFER_EVENT)

        assert decoded.event == "Transfer"
        assert decoded.args == {"from": LIB_ADDRESS, "to": OTHER_ADDRESS, "value": 5}
        assert decoded.block_number == 16
        assert decoded.log_index == 0

    def test_dynamic_indexed_kept_as_topic(self):
        event = {"name": "Named", "type": "event", "inputs": [
            {"indexed": True, "name": "label", "type": "string"}
        ]}
        topic = "0x" + "ee" * 32
        decoded = decode_log({"topics": [event_topic(event), topic], "data": "0x"}, event)
        assert decoded.args == {"label": topic}

    def test_decode_logs_drops_unknown(self):
        logs = [self._transfer_log(1), self._transfer_log(2, topic="0x" + "00" * 32)]
        decoded = decode_logs(logs, {TRANSFER_TOPIC: TRANSFER_EVENT})
        assert [d.args["value"] for d in decoded] == [1]

    def test_decode_logs_skips_same_topic_other_layout(self):
        # ERC721 Transfer: tokenId indexed, empty data
        nft_log = dict(self._transfer_log(), data="0x")
        nft_log["topics"] = nft_log["topics"] + ["0x" + abi_encode(["uint256"], [9]).hex()]

        decoded = decode_logs([nft_log, self._transfer_log(3)], {TRANSFER_TOPIC: TRANSFER_EVENT})

        assert [d.args["value"] for d in decoded] == [3]


class TestTransactionBuilder:
    """Transaction parameter splitting and merging"""

    def test_trailing_mapping_taken_when_one_extra(self):
        args, params = split_tx_params([1, {"from": LIB_ADDRESS}], expected_inputs=1)
        assert args == [1]
        assert params == {"from": LIB_ADDRESS}

    def test_mapping_argument_not_taken(self):
        struct = {"from": LIB_ADDRESS}
        args, params = split_tx_params([struct], expected_inputs=1)
        assert args == [struct]
        assert params == {}

    def test_overloaded_requires_tx_keys(self):
        args, params = split_tx_params([1, {"gas": 10}], expected_inputs=None)
        assert (args, params) == ([1], {"gas": 10})

        args, params = split_tx_params([1, {"x": 1}], expected_inputs=None)
        assert args == [1, {"x": 1}]

    def test_tx_keyword_overrides_trailing_mapping(self):
        _, params = split_tx_params([{"gas": 1, "value": 2}], 0, tx={"gas": 3})
        assert params == {"gas": 3, "value": 2}

    def test_merge_defaults_per_call_wins(self):
        merged = merge_tx_params({"from": LIB_ADDRESS, "gas": 100}, {"gas": 200})
        assert merged == {"from": LIB_ADDRESS, "gas": 200}

    def test_result_succeeded(self):
        assert TransactionResult("0x1", {"status": "0x1"}).succeeded
        assert not TransactionResult("0x1", {"status": "0x0"}).succeeded
        assert not TransactionResult("0x1", {"status": 0}).succeeded
        assert TransactionResult("0x1", {}).succeeded


class TestArtifacts:
    """Artifact loading and saving"""

    def test_load_sol_js(self, pensions_artifact):
        assert pensions_artifact.contract_name == "Pensions"
        assert pensions_artifact.generated_with == "3.2.0"
        assert pensions_artifact.network_ids() == [DEFAULT_NETWORK, "3"]

        default = pensions_artifact.network(DEFAULT_NETWORK)
        assert default.address == "0xcbc09888bad00a4f0579cf2f2b7a0fde827f83aa"
        assert default.updated_at == 1486879950250
        # Empty event maps are rebuilt from the ABI
        assert [e["name"] for e in default.events.values()] == ["Pensions_ev"]

    def test_load_single_abi_json(self, simple_storage_artifact):
        assert simple_storage_artifact.contract_name == "SimpleStorage"
        assert simple_storage_artifact.network_ids() == [DEFAULT_NETWORK, "42"]
        deployed = simple_storage_artifact.network("42")
        assert deployed.address == "0x5FbDB2315678afecb367f032d93F642f64180aa3"
        assert deployed.unlinked_binary.startswith("0x6080")

    def test_parse_sol_js_without_literal(self):
        with pytest.raises(ArtifactError):
            parse_sol_js("module.exports = {};")

    def test_missing_file(self, tmp_path):
        with pytest.raises(ArtifactError) as exc_info:
            load_artifact(tmp_path / "Nope.json")
        assert exc_info.value.code == ErrorCodes.ARTIFACT_NOT_FOUND

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "Broken.json"
        path.write_text("{not json")
        with pytest.raises(ArtifactError):
            load_artifact(path)

    def test_record_deployment_returns_copy(self, simple_storage_artifact):
        updated = simple_storage_artifact.record_deployment("1", OTHER_ADDRESS, links={"L": LIB_ADDRESS})

        assert simple_storage_artifact.network("1") is None
        assert updated.network("1").address == OTHER_ADDRESS
        assert updated.network("1").links == {"L": LIB_ADDRESS}
        assert updated.network("1").updated_at is not None

    def test_save_and_reload(self, pensions_artifact, tmp_path):
        path = save_artifact(pensions_artifact, tmp_path / "out" / "Pensions.json")

        reloaded = load_artifact(path)
        assert reloaded.to_dict() == pensions_artifact.to_dict()
        assert json.loads(path.read_text())["contract_name"] == "Pensions"

    def test_load_directory(self, fixtures_dir):
        artifacts = load_artifacts(fixtures_dir)
        assert set(artifacts) == {"MathConsumer", "MathLib", "Pensions", "SimpleStorage"}
        assert isinstance(artifacts["MathLib"], ContractArtifact)
