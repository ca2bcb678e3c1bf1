"""
Deployment settings. Defaults target the Aztec 2.1.2 public testnet and every
value can be overridden through an AZTEC_* environment variable.
"""

import os
from collections import namedtuple
from pathlib import Path
from typing import Mapping, Optional

from .errors import NodeCliError

ROLLUP_CONTRACT = "0xebd99ff0ff6677205509ae73f93d0ca52ac85d67"
STAKE_TOKEN = "0x139d2a7a0881e16332d7D1F8DB383A4507E1Ea7A"
GOVERNANCE_PROPOSER_PAYLOAD = "0xDCd9DdeAbEF70108cE02576df1eB333c4244C666"

# 200 STAKE in base units (18 decimals)
REQUIRED_STAKE = 200 * 10**18

APPROVE_CONFIRMATION_WAIT = 25
CONTAINER_START_WAIT = 8

Settings = namedtuple(
    "Settings",
    [
        "aztec_dir",
        "data_dir",
        "keystore_dir",
        "image",
        "network",
        "rollup_contract",
        "stake_token",
        "container_name",
        "http_port",
        "p2p_port",
        "gas_limit",
        "dashtec_url",
        "log_level",
    ],
)

_DEFAULTS = {
    "AZTEC_DIR": "/root/aztec",
    "AZTEC_DATA_DIR": "/root/.aztec/testnet/data",
    "AZTEC_KEYSTORE_DIR": "/root/.aztec/keystore",
    "AZTEC_IMAGE": "aztecprotocol/aztec:2.1.2",
    "AZTEC_NETWORK": "testnet",
    "AZTEC_ROLLUP_CONTRACT": ROLLUP_CONTRACT,
    "AZTEC_STAKE_TOKEN": STAKE_TOKEN,
    "AZTEC_CONTAINER_NAME": "aztec-sequencer",
    "AZTEC_HTTP_PORT": "8080",
    "AZTEC_P2P_PORT": "40400",
    "AZTEC_GAS_LIMIT": "200000",
    "AZTEC_DASHTEC_URL": "https://dashtec.xyz",
    "AZTEC_LOG_LEVEL": "info",
}


def _to_int(key: str, value: str) -> int:
    try:
        return int(str(value).strip())
    except ValueError:
        raise NodeCliError(f"{key} must be an integer, got {value!r}")


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Build Settings from the process environment (or a given mapping)"""
    env = os.environ if environ is None else environ

    def get(key):
        value = env.get(key)
        return value.strip() if value and value.strip() else _DEFAULTS[key]

    return Settings(
        aztec_dir=Path(get("AZTEC_DIR")),
        data_dir=Path(get("AZTEC_DATA_DIR")),
        keystore_dir=Path(get("AZTEC_KEYSTORE_DIR")),
        image=get("AZTEC_IMAGE"),
        network=get("AZTEC_NETWORK"),
        rollup_contract=get("AZTEC_ROLLUP_CONTRACT"),
        stake_token=get("AZTEC_STAKE_TOKEN"),
        container_name=get("AZTEC_CONTAINER_NAME"),
        http_port=_to_int("AZTEC_HTTP_PORT", get("AZTEC_HTTP_PORT")),
        p2p_port=_to_int("AZTEC_P2P_PORT", get("AZTEC_P2P_PORT")),
        gas_limit=_to_int("AZTEC_GAS_LIMIT", get("AZTEC_GAS_LIMIT")),
        dashtec_url=get("AZTEC_DASHTEC_URL").rstrip("/"),
        log_level=get("AZTEC_LOG_LEVEL"),
    )
