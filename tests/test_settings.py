from pathlib import Path

import pytest

from aztec_node_cli.errors import NodeCliError
from aztec_node_cli.settings import ROLLUP_CONTRACT, load_settings


def test_defaults():
    s = load_settings({})
    assert s.aztec_dir == Path("/root/aztec")
    assert s.image == "aztecprotocol/aztec:2.1.2"
    assert s.rollup_contract == ROLLUP_CONTRACT
    assert s.http_port == 8080
    assert s.p2p_port == 40400
    assert s.container_name == "aztec-sequencer"


def test_overrides_and_blank_values():
    s = load_settings({
        "AZTEC_IMAGE": "aztecprotocol/aztec:latest",
        "AZTEC_HTTP_PORT": "9090",
        "AZTEC_NETWORK": "  ",
        "AZTEC_DASHTEC_URL": "https://dash.example/",
    })
    assert s.image == "aztecprotocol/aztec:latest"
    assert s.http_port == 9090
    assert s.network == "testnet"
    assert s.dashtec_url == "https://dash.example"


def test_invalid_port():
    with pytest.raises(NodeCliError):
        load_settings({"AZTEC_P2P_PORT": "forty"})
