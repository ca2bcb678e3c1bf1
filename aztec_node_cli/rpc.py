"""HTTP helpers: JSON-RPC calls, beacon head check, public IP and liveness probe"""

import ipaddress
import re

import requests

from . import __version__, console
from .errors import ExternalCommandError
from .validators import is_address

ALLOWANCE_SELECTOR = "dd62ed3e"
HEX_DIGITS_RE = re.compile(r"[0-9a-fA-F]*")
PUBLIC_IP_URL = "https://ifconfig.me/ip"
FALLBACK_IP = "127.0.0.1"
RPC_TIMEOUT = 30

SESSION = requests.Session()
SESSION.headers.update({"User-Agent": f"aztec-node-cli/{__version__}"})


def _pad_address(address: str) -> str:
    if not is_address(address):
        raise ValueError(f"Not an address: {address!r}")
    return address[2:].lower().rjust(64, "0")


def encode_allowance_call(owner: str, spender: str) -> str:
    """Calldata for ERC-20 allowance(owner, spender)"""
    return "0x" + ALLOWANCE_SELECTOR + _pad_address(owner) + _pad_address(spender)


def decode_uint(value) -> int:
    if not isinstance(value, str) or not value.lower().startswith("0x"):
        raise ValueError(f"Not a hex quantity: {value!r}")
    digits = value[2:]
    if not HEX_DIGITS_RE.fullmatch(digits):
        raise ValueError(f"Not a hex quantity: {value!r}")
    return int(digits, 16) if digits else 0


def json_rpc(url: str, method: str, params: list):
    payload = {"jsonrpc": "2.0", "method": method, "params": params, "id": 1}
    r = SESSION.post(url, json=payload, timeout=RPC_TIMEOUT)
    r.raise_for_status()
    body = r.json()
    if not isinstance(body, dict):
        raise ExternalCommandError(f"{method}: unexpected response {body!r}")
    if body.get("error"):
        raise ExternalCommandError(f"{method}: {body['error']}")
    if "result" not in body:
        raise ExternalCommandError(f"{method}: response has no result")
    return body["result"]


def eth_call(url: str, to: str, data: str):
    return json_rpc(url, "eth_call", [{"to": to, "data": data}, "latest"])


def fetch_allowance(url: str, token: str, owner: str, spender: str) -> int:
    """
    Token allowance of `spender` over `owner`'s balance.
    Any RPC or decoding failure reads as 0 so the caller approves rather than skips.
    """
    try:
        result = eth_call(url, token, encode_allowance_call(owner, spender))
        return decode_uint(result)
    except (requests.RequestException, ValueError, ExternalCommandError) as e:
        console.warning(f"Allowance query failed, assuming 0: {e}")
        return 0


def check_execution_rpc(url: str) -> int:
    """eth_blockNumber against the execution RPC; returns the block height"""
    try:
        return decode_uint(json_rpc(url, "eth_blockNumber", []))
    except (requests.RequestException, ValueError, ExternalCommandError) as e:
        raise ExternalCommandError(f"Execution RPC check failed for {url}: {e}")


def check_consensus_rpc(url: str) -> int:
    """Beacon head header against the consensus RPC; returns the head slot"""
    head_url = f"{url.rstrip('/')}/eth/v1/beacon/headers/head"
    try:
        r = SESSION.get(head_url, timeout=RPC_TIMEOUT)
        r.raise_for_status()
        return int(r.json()["data"]["header"]["message"]["slot"])
    except (requests.RequestException, ValueError, KeyError, TypeError) as e:
        raise ExternalCommandError(f"Consensus RPC check failed for {url}: {e}")


def resolve_public_ip(url: str = PUBLIC_IP_URL) -> str:
    try:
        r = SESSION.get(url, timeout=5)
        r.raise_for_status()
        ip = r.text.strip()
        ipaddress.ip_address(ip)
        return ip
    except (requests.RequestException, ValueError) as e:
        console.warning(f"Could not resolve public IP ({e}), using {FALLBACK_IP}")
        return FALLBACK_IP


def probe_liveness(port: int, host: str = "127.0.0.1") -> bool:
    """One GET against the node status endpoint; never raises"""
    try:
        r = SESSION.get(f"http://{host}:{port}/status", timeout=5)
    except requests.RequestException as e:
        console.debug(f"Liveness probe error: {e}")
        return False
    return 200 <= r.status_code < 300
