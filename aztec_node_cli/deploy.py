"""
Renders the sequencer's .env and docker-compose.yml and brings the container up.
Both files are rewritten from scratch on every install.
"""

import time
from collections import namedtuple
from pathlib import Path
from typing import Dict, Tuple

import yaml

from . import console, rpc
from .errors import ExternalCommandError
from .keystore import write_private_file
from .settings import CONTAINER_START_WAIT, GOVERNANCE_PROPOSER_PAYLOAD, Settings
from .tools import Docker

ENV_FILE = ".env"
COMPOSE_FILE = "docker-compose.yml"
CONTAINER_DATA_DIR = "/data"
CONTAINER_KEYSTORE_DIR = "/var/lib/keystore"
CONTAINER_HTTP_PORT = 8080
SERVICE_NAME = "aztec-node"

# use_keystore: this install wrote a keystore, so it is mounted and referenced
DeploymentInputs = namedtuple(
    "DeploymentInputs",
    ["eth_rpc", "consensus_rpc", "private_key", "coinbase", "public_ip", "use_keystore"],
    defaults=(False,),
)

DeploymentDescriptor = namedtuple(
    "DeploymentDescriptor",
    ["env_path", "compose_path", "env_text", "compose_text"],
)


def env_values(inputs: DeploymentInputs, settings: Settings) -> Dict[str, str]:
    values = {
        "ETHEREUM_HOSTS": inputs.eth_rpc,
        "L1_CONSENSUS_HOST_URLS": inputs.consensus_rpc,
        "P2P_IP": inputs.public_ip,
        "P2P_PORT": str(settings.p2p_port),
        "VALIDATOR_PRIVATE_KEYS": inputs.private_key,
        "COINBASE": inputs.coinbase,
        "DATA_DIRECTORY": CONTAINER_DATA_DIR,
        "LOG_LEVEL": settings.log_level,
        "LOG_FORMAT": "json",
        "LMDB_MAX_READERS": "32",
        "GOVERNANCE_PROPOSER_PAYLOAD_ADDRESS": GOVERNANCE_PROPOSER_PAYLOAD,
    }
    if inputs.use_keystore:
        values["KEY_STORE_DIRECTORY"] = CONTAINER_KEYSTORE_DIR
    return values


def render_env(inputs: DeploymentInputs, settings: Settings) -> str:
    return "".join(f"{k}={v}\n" for k, v in env_values(inputs, settings).items())


def render_compose(settings: Settings, use_keystore: bool = False) -> str:
    """Compose descriptor; values come from .env through ${VAR} interpolation"""
    env_keys = list(env_values(DeploymentInputs("", "", "", "", "", use_keystore), settings))
    volumes = [f"{settings.data_dir}:{CONTAINER_DATA_DIR}"]
    if use_keystore:
        volumes.append(f"{settings.keystore_dir}:{CONTAINER_KEYSTORE_DIR}")
    entrypoint = (
        "node --no-warnings /usr/src/yarn-project/aztec/dest/bin/index.js start "
        f"--network {settings.network} --node --archiver --sequencer"
    )
    service = {
        "container_name": settings.container_name,
        "image": settings.image,
        "restart": "unless-stopped",
        "environment": {key: f"${{{key}}}" for key in env_keys},
        "entrypoint": ["sh", "-c", entrypoint],
        "ports": [
            f"{settings.p2p_port}:{settings.p2p_port}/tcp",
            f"{settings.p2p_port}:{settings.p2p_port}/udp",
            f"{settings.http_port}:{CONTAINER_HTTP_PORT}",
        ],
        "volumes": volumes,
        "mem_limit": "4G",
        "logging": {
            "driver": "json-file",
            "options": {"max-size": "100m", "max-file": "5"},
        },
    }
    doc = {"services": {SERVICE_NAME: service}}
    return yaml.safe_dump(doc, sort_keys=False, default_flow_style=False)


def read_env_file(env_file: Path) -> dict:
    env = {}
    env_file = Path(env_file)
    if env_file.exists():
        for line in env_file.read_text().splitlines():
            line = line.strip()
            if line and not line.startswith("#") and "=" in line:
                k, v = line.split("=", 1)
                env[k.strip()] = v.strip()
    return env


class DeploymentWriter:

    def __init__(self, settings: Settings, docker: Docker, sleep=time.sleep, probe=None,
                 start_wait: int = CONTAINER_START_WAIT):
        self.settings = settings
        self.docker = docker
        self.sleep = sleep
        self.probe = probe or rpc.probe_liveness
        self.start_wait = start_wait

    @property
    def env_path(self) -> Path:
        return Path(self.settings.aztec_dir) / ENV_FILE

    @property
    def compose_path(self) -> Path:
        return Path(self.settings.aztec_dir) / COMPOSE_FILE

    def render(self, inputs: DeploymentInputs) -> DeploymentDescriptor:
        return DeploymentDescriptor(
            env_path=self.env_path,
            compose_path=self.compose_path,
            env_text=render_env(inputs, self.settings),
            compose_text=render_compose(self.settings, inputs.use_keystore),
        )

    def write(self, inputs: DeploymentInputs) -> DeploymentDescriptor:
        """Write .env (owner-only, it holds the private key) and the compose file"""
        descriptor = self.render(inputs)
        Path(self.settings.aztec_dir).mkdir(parents=True, exist_ok=True)
        Path(self.settings.data_dir).mkdir(parents=True, exist_ok=True)
        write_private_file(descriptor.env_path, descriptor.env_text)
        descriptor.compose_path.write_text(descriptor.compose_text)
        console.info(f"Wrote {descriptor.env_path} and {descriptor.compose_path}")
        return descriptor

    def launch(self) -> bool:
        """compose up, wait, then probe once; an unhealthy probe is only a warning"""
        result = self.docker.compose_up(Path(self.settings.aztec_dir))
        if not result.ok:
            raise ExternalCommandError(
                f"docker compose up failed (exit {result.returncode}): {result.output.strip()[-300:]}", result
            )
        console.info(f"Container started, waiting {self.start_wait}s before health check...")
        self.sleep(self.start_wait)
        alive = self.probe(self.settings.http_port)
        if alive:
            console.success(f"Node is answering on port {self.settings.http_port}")
        else:
            console.warning(
                f"Node is not answering on port {self.settings.http_port} yet, it may still be initializing"
            )
        return alive

    def deploy(self, inputs: DeploymentInputs) -> Tuple[DeploymentDescriptor, bool]:
        descriptor = self.write(inputs)
        return descriptor, self.launch()
