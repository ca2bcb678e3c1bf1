import json
import os
from collections import namedtuple
from pathlib import Path
from typing import List, Optional

from .errors import NodeCliError

KEYSTORE_FILE = "key1.json"
ZERO_FEE_RECIPIENT = "0x" + "0" * 64

KeyMaterial = namedtuple("KeyMaterial", ["private_key", "bls_key", "address"])


def write_private_file(path: Path, text: str) -> Path:
    """Write `text` to `path` readable by the owner only, replacing prior content"""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        f.write(text)
    os.chmod(path, 0o600)
    return path


def write_keystore(path: Path, keys: KeyMaterial, coinbase: Optional[str] = None) -> Path:
    validator = {"attester": {"eth": keys.private_key, "bls": keys.bls_key}}
    if coinbase:
        validator["coinbase"] = coinbase
    validator["feeRecipient"] = ZERO_FEE_RECIPIENT
    doc = {"schemaVersion": 1, "validators": [validator]}
    return write_private_file(path, json.dumps(doc, indent=2) + "\n")


def load_keystore(path: Path) -> List[KeyMaterial]:
    """
    Read validator keys from a keystore file.
    Accepts the {"validators": [{"attester": {...}}]} layout and the flat
    {"eth": ..., "bls": ...} layout. Addresses are not derived here.
    """
    path = Path(path)
    try:
        with path.open("r", encoding="utf-8") as f:
            doc = json.load(f)
    except FileNotFoundError:
        raise NodeCliError(f"Keystore not found at {path}")
    except ValueError as e:
        raise NodeCliError(f"Keystore {path} is not valid JSON: {e}")

    if isinstance(doc, dict) and "validators" in doc:
        entries = [v.get("attester") or {} for v in doc.get("validators") or [] if isinstance(v, dict)]
    else:
        entries = [doc]

    keys = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        eth = str(entry.get("eth") or "").strip()
        bls = str(entry.get("bls") or "").strip()
        if eth and bls:
            keys.append(KeyMaterial(eth, bls, None))
    if not keys:
        raise NodeCliError(f"Keystore {path} contains no attester keys")
    return keys
