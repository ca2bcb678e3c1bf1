"""
Thin wrappers around the external programs this tool drives:
`cast` (Foundry wallet CLI), `aztec` (node CLI) and `docker`.
Every call is synchronous and blocking; no timeout is applied.
"""

import json
import os
import re
import shlex
import shutil
import subprocess
import time
from collections import namedtuple
from pathlib import Path
from typing import Iterable, List, Optional

from . import console
from .errors import ExternalCommandError, MissingDependencyError
from .keystore import KEYSTORE_FILE, ZERO_FEE_RECIPIENT
from .settings import APPROVE_CONFIRMATION_WAIT
from .validators import is_address

SUCCESS_STATUSES = ("1", "0x1")

# argv flags whose following value must never be echoed
_SECRET_FLAGS = ("--private-key", "--bls-secret-key")

_STATUS_RE = re.compile(r"""\bstatus\b["']?\s*[:=]?\s*["']?(0x[0-9a-fA-F]+|\d+)""")
_TX_HASH_RE = re.compile(r"""\btransactionHash\b["']?\s*[:=]?\s*["']?(0x[0-9a-fA-F]+)""")


class CommandResult(namedtuple("CommandResult", ["argv", "returncode", "output"])):
    """Exit status and combined stdout/stderr of one external call"""

    __slots__ = ()

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class Receipt(namedtuple("Receipt", ["status", "tx_hash", "structured", "raw"])):
    """
    Transaction receipt read from `cast send` output.
    `structured` is True when the output parsed as a JSON object; otherwise
    status and hash were salvaged from raw text and may be None / "unknown".
    """

    __slots__ = ()

    @property
    def succeeded(self) -> bool:
        return self.status in SUCCESS_STATUSES


def _normalize_status(value) -> Optional[str]:
    if value is None or isinstance(value, bool):
        return None
    text = str(value).strip().lower()
    return text or None


def parse_receipt(output: str) -> Receipt:
    """Strict JSON first; on failure fall back to a best-effort text scan"""
    raw = output or ""
    try:
        data = json.loads(raw)
    except ValueError:
        data = None

    if isinstance(data, dict):
        return Receipt(
            status=_normalize_status(data.get("status")),
            tx_hash=data.get("transactionHash") or "unknown",
            structured=True,
            raw=raw,
        )

    status = _STATUS_RE.search(raw)
    tx_hash = _TX_HASH_RE.search(raw)
    return Receipt(
        status=_normalize_status(status.group(1)) if status else None,
        tx_hash=tx_hash.group(1) if tx_hash else "unknown",
        structured=False,
        raw=raw,
    )


def redact(argv: Iterable[str]) -> List[str]:
    """Helper: replace secret flag values with *** for display"""
    out = []
    hide_next = False
    for arg in argv:
        out.append("***" if hide_next else arg)
        hide_next = arg in _SECRET_FLAGS
    return out


class ToolRunner:
    """Runs external commands with foundry and aztec bin dirs on PATH"""

    def __init__(self, extra_paths: Optional[Iterable[Path]] = None, env: Optional[dict] = None):
        if extra_paths is None:
            home = Path.home()
            extra_paths = [home / ".foundry" / "bin", home / ".aztec" / "bin"]
        self.env = dict(os.environ if env is None else env)
        path = [str(p) for p in extra_paths]
        if self.env.get("PATH"):
            path.append(self.env["PATH"])
        self.env["PATH"] = os.pathsep.join(path)

    def which(self, name: str) -> Optional[str]:
        return shutil.which(name, path=self.env["PATH"])

    def require(self, *names: str) -> None:
        missing = [n for n in names if self.which(n) is None]
        if missing:
            raise MissingDependencyError(missing)

    def run(self, argv: Iterable, cwd: Optional[Path] = None, capture: bool = True) -> CommandResult:
        """
        Run `argv` and wait for it to exit.
        With capture=False the command inherits the terminal (used for log tailing).
        """
        cmd = [str(a) for a in argv]
        console.debug("Running: " + " ".join(shlex.quote(c) for c in redact(cmd)))
        try:
            if capture:
                cp = subprocess.run(
                    cmd,
                    env=self.env,
                    cwd=cwd,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.STDOUT,
                    text=True,
                )
            else:
                cp = subprocess.run(cmd, env=self.env, cwd=cwd)
        except FileNotFoundError:
            raise MissingDependencyError([cmd[0]])
        return CommandResult(tuple(cmd), cp.returncode, cp.stdout or "")


class Cast:
    """Foundry `cast` calls used for key derivation and token approval"""

    def __init__(self, runner: ToolRunner, sleep=time.sleep, confirmation_wait: int = APPROVE_CONFIRMATION_WAIT):
        self.runner = runner
        self.sleep = sleep
        self.confirmation_wait = confirmation_wait

    def _single_address(self, result: CommandResult, what: str) -> str:
        lines = [line.strip() for line in result.output.splitlines() if line.strip()]
        address = lines[-1] if lines else ""
        if not result.ok or not is_address(address):
            raise ExternalCommandError(f"cast could not {what}", result)
        return address

    def derive_address(self, private_key: str) -> str:
        result = self.runner.run(["cast", "wallet", "address", "--private-key", private_key])
        return self._single_address(result, "derive an address from the private key")

    def to_checksum(self, address: str) -> str:
        result = self.runner.run(["cast", "--to-checksum-address", address])
        return self._single_address(result, f"checksum address {address}")

    def send(
        self,
        to: str,
        signature: str,
        args: Iterable[str],
        private_key: str,
        rpc_url: str,
        gas_limit: int,
    ) -> Receipt:
        argv = [
            "cast", "send", to, signature, *args,
            "--private-key", private_key,
            "--rpc-url", rpc_url,
            "--gas-limit", str(gas_limit),
            "--json",
        ]
        result = self.runner.run(argv)
        receipt = parse_receipt(result.output)
        if not receipt.structured:
            console.debug(f"cast send returned non-JSON output (exit {result.returncode})")
        return receipt

    def approve(self, token: str, spender: str, amount: int, private_key: str, rpc_url: str, gas_limit: int) -> Receipt:
        """Send approve(spender, amount); on success block for the confirmation wait"""
        receipt = self.send(token, "approve(address,uint256)", [spender, str(amount)], private_key, rpc_url, gas_limit)
        if receipt.succeeded:
            console.info(f"Approve sent (tx {receipt.tx_hash}), waiting {self.confirmation_wait}s for confirmation...")
            self.sleep(self.confirmation_wait)
        return receipt


class AztecCli:
    """`aztec` node CLI calls"""

    def __init__(self, runner: ToolRunner):
        self.runner = runner

    def add_l1_validator(
        self,
        rpc_url: str,
        network: str,
        private_key: str,
        attester: str,
        withdrawer: str,
        bls_key: str,
        rollup: str,
    ) -> CommandResult:
        return self.runner.run([
            "aztec", "add-l1-validator",
            "--l1-rpc-urls", rpc_url,
            "--network", network,
            "--private-key", private_key,
            "--attester", attester,
            "--withdrawer", withdrawer,
            "--bls-secret-key", bls_key,
            "--rollup", rollup,
        ])

    def new_validator_keys(self, data_dir: Path, file_name: str = KEYSTORE_FILE,
                           fee_recipient: str = ZERO_FEE_RECIPIENT) -> CommandResult:
        """Write a new key pair to data_dir/file_name"""
        result = self.runner.run([
            "aztec", "validator-keys", "new",
            "--fee-recipient", fee_recipient,
            "--data-dir", str(data_dir),
            "--file", file_name,
        ])
        if not result.ok:
            raise ExternalCommandError("BLS key generation failed (aztec validator-keys new)", result)
        return result


class Docker:
    """docker / docker compose calls against the sequencer container"""

    def __init__(self, runner: ToolRunner):
        self.runner = runner

    def compose_up(self, cwd: Path) -> CommandResult:
        result = self.runner.run(["docker", "compose", "up", "-d"], cwd=cwd)
        if not result.ok and self.runner.which("docker-compose"):
            console.debug("`docker compose` failed, retrying with docker-compose")
            result = self.runner.run(["docker-compose", "up", "-d"], cwd=cwd)
        return result

    def compose_down(self, cwd: Path) -> CommandResult:
        return self.runner.run(["docker", "compose", "down"], cwd=cwd)

    def pull(self, image: str) -> CommandResult:
        return self.runner.run(["docker", "pull", image])

    def stop(self, name: str) -> CommandResult:
        return self.runner.run(["docker", "stop", name])

    def rm(self, name: str) -> CommandResult:
        return self.runner.run(["docker", "rm", name])

    def logs(self, name: str, tail: int = 100, follow: bool = True) -> CommandResult:
        argv = ["docker", "logs", "--tail", str(tail)]
        if follow:
            argv.append("-f")
        return self.runner.run(argv + [name], capture=False)

    def ps(self, name: str) -> CommandResult:
        return self.runner.run([
            "docker", "ps", "-a",
            "--filter", f"name=^/{name}$",
            "--format", "{{.Names}}\t{{.Image}}\t{{.Status}}",
        ])

    def container_status(self, name: str) -> Optional[dict]:
        """Return {name, image, status} for the container, or None if it does not exist"""
        result = self.ps(name)
        if not result.ok:
            raise ExternalCommandError(f"docker ps failed (exit {result.returncode})", result)
        for line in result.output.splitlines():
            parts = line.split("\t")
            if len(parts) == 3 and parts[0] == name:
                return {"name": parts[0], "image": parts[1], "status": parts[2]}
        return None

    def is_running(self, name: str) -> bool:
        status = self.container_status(name)
        return bool(status) and status["status"].startswith("Up")
