from pathlib import Path

import pytest
import requests

from aztec_node_cli.errors import MissingDependencyError
from aztec_node_cli.settings import load_settings
from aztec_node_cli.tools import CommandResult

FUNDING_KEY = "0x" + "aa" * 32
ATTESTER_KEY = "0x" + "bb" * 32
BLS_KEY = "0x" + "cc" * 32
FUNDING_ADDRESS = "0x" + "11" * 20
ATTESTER_ADDRESS = "0x" + "22" * 20
WITHDRAWER = "0x" + "33" * 20


class FakeRunner:
    """Records argv and answers from a list of (argv prefix, returncode, output) rules"""

    def __init__(self, rules=None, available=("docker", "docker-compose", "cast", "aztec")):
        self.rules = list(rules or [])
        self.available = set(available)
        self.calls = []

    def add(self, prefix, returncode=0, output=""):
        self.rules.insert(0, (tuple(prefix), returncode, output))

    def which(self, name):
        return f"/usr/bin/{name}" if name in self.available else None

    def require(self, *names):
        missing = [n for n in names if self.which(n) is None]
        if missing:
            raise MissingDependencyError(missing)

    def run(self, argv, cwd=None, capture=True):
        cmd = tuple(str(a) for a in argv)
        self.calls.append(cmd)
        for prefix, returncode, output in self.rules:
            if cmd[:len(prefix)] == prefix:
                if callable(output):
                    output = output(cmd)
                return CommandResult(cmd, returncode, output)
        return CommandResult(cmd, 0, "")

    def called(self, *prefix):
        return [c for c in self.calls if c[:len(prefix)] == prefix]


class FakeResponse:

    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError("no json body")
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


@pytest.fixture
def runner():
    r = FakeRunner()
    r.add(("cast", "wallet", "address", "--private-key", FUNDING_KEY), 0, FUNDING_ADDRESS + "\n")
    r.add(("cast", "wallet", "address", "--private-key", ATTESTER_KEY), 0, ATTESTER_ADDRESS + "\n")
    return r


@pytest.fixture
def settings(tmp_path: Path):
    return load_settings({
        "AZTEC_DIR": str(tmp_path / "aztec"),
        "AZTEC_DATA_DIR": str(tmp_path / "data"),
        "AZTEC_KEYSTORE_DIR": str(tmp_path / "keystore"),
    })


@pytest.fixture
def sleeps():
    return []
