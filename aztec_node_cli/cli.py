import argparse
import os
import shutil
import sys
import time
import traceback
from pathlib import Path

from tabulate import tabulate

from . import __version__, console, rpc
from .deploy import DeploymentInputs, DeploymentWriter, read_env_file
from .errors import InputValidationError, NodeCliError
from .keystore import KEYSTORE_FILE, KeyMaterial, load_keystore, write_keystore
from .registration import REGISTERED, Registrar, RegistrationRequest
from .settings import Settings, load_settings
from .tools import AztecCli, Cast, Docker, ToolRunner
from .validators import validate


class SequencerCLI:
    """Interactive menu driving install, registration and maintenance of the sequencer"""

    def __init__(self, settings: Settings, runner: ToolRunner = None, input_fn=input, sleep=time.sleep):
        self.settings = settings
        self.runner = runner or ToolRunner()
        self.input = input_fn
        self.sleep = sleep
        self.cast = Cast(self.runner, sleep=sleep)
        self.aztec = AztecCli(self.runner)
        self.docker = Docker(self.runner)
        self.writer = DeploymentWriter(settings, self.docker, sleep=sleep)
        self.registrar = Registrar(self.cast, self.aztec, gas_limit=settings.gas_limit)
        self.menu = [
            ("1", "Install and start node", self.install_and_start_node),
            ("2", "View node logs", self.view_logs),
            ("3", "Node status", self.node_status),
            ("4", "Check queue status", self.queue_status),
            ("5", "Show validator info", self.validator_info),
            ("6", "Update / restart node", self.update_node),
            ("7", "Register validator", self.register_validator),
            ("8", "Delete node data", self.delete_node_data),
            ("0", "Exit", None),
        ]

    @property
    def keystore_path(self) -> Path:
        return Path(self.settings.keystore_dir) / KEYSTORE_FILE

    def prompt(self, msg: str) -> str:
        return self.input(msg).strip()

    def pause(self):
        self.input("\nPress enter to continue...")

    def print_menu(self):
        console.banner(f"Aztec sequencer node manager v{__version__}", f"image: {self.settings.image}")
        for key, label, _ in self.menu:
            print(f"{key}. {label}")
        console.print_character("=", 40)

    def main_menu(self) -> int:
        """Loop until the operator picks Exit; returns the process exit code"""
        actions = {key: func for key, _, func in self.menu}
        while True:
            self.print_menu()
            try:
                choice = self.prompt(f"Choose an option ({', '.join(actions)}): ")
                if choice == "0":
                    console.info("Bye")
                    return 0
                func = actions.get(choice)
                if func is None:
                    console.error("Invalid option")
                    continue
                self.run_action(func)
            except EOFError:
                return 0

    def run_action(self, func):
        """Run one menu action; any NodeCliError aborts it and returns to the menu"""
        try:
            func()
        except InputValidationError as e:
            console.error(f"{e.field} is not valid, action aborted")
        except NodeCliError as e:
            console.error(str(e))
        except OSError as e:
            console.error(f"File system error: {e}")
        except KeyboardInterrupt:
            print()
            console.warning("Interrupted")
        self.pause()

    # install

    def collect_node_inputs(self):
        print(
            "Before you begin, make sure that:\n"
            "1. The execution RPC is a synced Sepolia node\n"
            "2. The consensus RPC exposes the beacon API\n"
            "3. The validator key holds some Sepolia ETH for gas\n"
        )
        eth_rpc = validate("url", self.prompt("L1 execution RPC URL (Sepolia): "), "execution RPC URL")
        consensus_rpc = validate("url", self.prompt("L1 consensus (beacon) RPC URL: "), "consensus RPC URL")
        private_key = validate("private_key", self.prompt("Validator private key (0x + 64 hex): "), "private key")
        bls_key = self.prompt("Validator BLS private key (press enter to skip): ")
        if bls_key:
            bls_key = validate("bls_key", bls_key, "BLS private key")
        coinbase = self.prompt("Coinbase / reward address (press enter to use the validator address): ")
        if coinbase:
            coinbase = validate("address", coinbase, "coinbase address")
        return eth_rpc, consensus_rpc, private_key, bls_key or None, coinbase or None

    def install_and_start_node(self):
        self.runner.require("docker", "cast")
        eth_rpc, consensus_rpc, private_key, bls_key, coinbase = self.collect_node_inputs()

        block = rpc.check_execution_rpc(eth_rpc)
        console.success(f"Execution RPC OK (block {block})")
        slot = rpc.check_consensus_rpc(consensus_rpc)
        console.success(f"Consensus RPC OK (slot {slot})")

        address = self.cast.derive_address(private_key)
        console.info(f"Validator address: {address}")
        coinbase = coinbase or address

        if bls_key:
            path = write_keystore(self.keystore_path, KeyMaterial(private_key, bls_key, address), coinbase)
            console.info(f"Keystore written to {path}")

        public_ip = rpc.resolve_public_ip()
        console.info(f"Public IP: {public_ip}")

        inputs = DeploymentInputs(eth_rpc, consensus_rpc, private_key, coinbase, public_ip,
                                  use_keystore=bool(bls_key))
        self.writer.deploy(inputs)

        console.success("Aztec node deployed")
        console.info(f"Validator address: {address}")
        console.info(f"Coinbase: {coinbase}")
        console.info(f"Queue status: {self.settings.dashtec_url}/validator/{address}")
        console.info(f"Follow logs with: docker logs -f {self.settings.container_name}")

    # maintenance

    def view_logs(self):
        self.runner.require("docker")
        print("Press Ctrl+C to return to the menu")
        result = self.docker.logs(self.settings.container_name, tail=100, follow=True)
        if not result.ok:
            console.error("Node is not running")

    def node_status(self):
        self.runner.require("docker")
        status = self.docker.container_status(self.settings.container_name)
        alive = rpc.probe_liveness(self.settings.http_port)
        rows = [
            ["Container", self.settings.container_name],
            ["Image", status["image"] if status else "-"],
            ["State", status["status"] if status else "not created"],
            [f"HTTP :{self.settings.http_port}", "responding" if alive else "not responding"],
        ]
        print(tabulate(rows, tablefmt="simple"))

    def _coinbase_from_env(self) -> str:
        coinbase = read_env_file(self.writer.env_path).get("COINBASE")
        if not coinbase:
            raise NodeCliError(f"No COINBASE found in {self.writer.env_path}, install the node first")
        return coinbase

    def queue_status(self):
        coinbase = self._coinbase_from_env()
        console.info(f"Queue status: {self.settings.dashtec_url}/validator/{coinbase}")

    def validator_info(self):
        rows = [["Coinbase", self._coinbase_from_env()]]
        if self.keystore_path.exists():
            for i, keys in enumerate(load_keystore(self.keystore_path), start=1):
                rows.append([f"Attester #{i}", self.cast.derive_address(keys.private_key)])
        else:
            rows.append(["Keystore", f"none at {self.keystore_path}"])
        print(tabulate(rows, tablefmt="simple"))

    def update_node(self):
        self.runner.require("docker")
        name = self.settings.container_name
        self.docker.stop(name)
        self.docker.rm(name)
        console.info(f"Pulling {self.settings.image}...")
        pulled = self.docker.pull(self.settings.image)
        if not pulled.ok:
            raise NodeCliError(f"docker pull {self.settings.image} failed")
        self.writer.launch()
        console.success("Update complete")

    def delete_node_data(self):
        answer = self.prompt(f"Delete {self.settings.aztec_dir} and {self.settings.data_dir}? (y/N): ").lower()
        if answer not in ("y", "yes"):
            console.info("Nothing deleted")
            return
        if self.runner.which("docker"):
            self.docker.stop(self.settings.container_name)
            self.docker.rm(self.settings.container_name)
        for path in (self.settings.aztec_dir, self.settings.data_dir):
            shutil.rmtree(path, ignore_errors=True)
        console.success("Node data deleted")

    # registration

    def _generate_validator_keys(self) -> KeyMaterial:
        """Create a fresh attester + BLS key pair with `aztec validator-keys new`"""
        if self.keystore_path.exists():
            answer = self.prompt(f"{self.keystore_path} already exists. Replace it? (y/N): ").lower()
            if answer not in ("y", "yes"):
                raise NodeCliError("Key generation cancelled, existing keystore kept")
            self.keystore_path.unlink()
        console.info("Generating a new BLS key pair...")
        self.aztec.new_validator_keys(self.settings.keystore_dir, KEYSTORE_FILE)
        if not self.keystore_path.exists():
            raise NodeCliError(f"Key file was not created at {self.keystore_path}")
        keys = load_keystore(self.keystore_path)[0]
        validate("private_key", keys.private_key, "generated attester key")
        validate("bls_key", keys.bls_key, "generated BLS key")
        address = self.cast.to_checksum(self.cast.derive_address(keys.private_key))
        console.success(f"New attester address: {address}")
        return keys._replace(address=address)

    def collect_registration(self):
        eth_rpc = validate("url", self.prompt("L1 execution RPC URL (Sepolia): "), "execution RPC URL")
        funding_key = validate(
            "private_key", self.prompt("Funding private key (holds 200 STAKE): "), "funding private key"
        )
        withdrawer = validate("address", self.prompt("Withdrawer address: "), "withdrawer address")
        attester_key = self.prompt("Attester private key (press enter to generate new keys): ")
        if attester_key:
            attester_key = validate("private_key", attester_key, "attester private key")
            bls_key = validate("bls_key", self.prompt("Attester BLS private key: "), "BLS private key")
            keys = KeyMaterial(attester_key, bls_key, self.cast.derive_address(attester_key))
            generated = False
        else:
            keys = self._generate_validator_keys()
            generated = True
        request = RegistrationRequest(
            private_key=funding_key,
            attester=keys.address,
            withdrawer=withdrawer,
            bls_key=keys.bls_key,
            rpc_url=eth_rpc,
            rollup_contract=self.settings.rollup_contract,
            stake_token=self.settings.stake_token,
            network=self.settings.network,
        )
        return request, generated

    def register_validator(self):
        self.runner.require("cast", "aztec")
        request, generated = self.collect_registration()
        outcome = self.registrar.register(request)
        if outcome.state != REGISTERED:
            raise NodeCliError(f"Registration {outcome.state}: {outcome.message}")
        console.success(outcome.message)
        console.info(f"Withdrawer: {request.withdrawer}")
        console.info(f"Queue status: {self.settings.dashtec_url}/validator/{request.attester}")
        if generated:
            console.warning("Fund the new attester with ~0.2 Sepolia ETH for gas:")
            print(
                f"   cast send {request.attester} --value 0.2ether "
                f"--private-key <FUNDING_PRIVATE_KEY> --rpc-url {request.rpc_url}"
            )
        return outcome


class ArgParser:
    """Command line entry: only --version and --verbose, everything else is interactive"""

    def build_parser(self):
        parser = argparse.ArgumentParser(
            prog="aztec-node-cli",
            description="Interactive installer and manager for an Aztec sequencer node",
        )
        parser.add_argument(
            "-V", "--version",
            action="version",
            version=f"aztec-node-cli {__version__}"
        )
        parser.add_argument("-v", "--verbose", action="store_true",
                            help="Show debug lines and full error tracebacks")
        return parser

    def parser_main(self, argv=None) -> int:
        args = self.build_parser().parse_args(argv)
        console.setup(args.verbose)

        if os.geteuid() != 0 and os.environ.get("AZTEC_ALLOW_NON_ROOT") != "1":
            console.error("Please run as root (or set AZTEC_ALLOW_NON_ROOT=1)")
            return 1

        try:
            cli = SequencerCLI(load_settings())
            return cli.main_menu()
        except KeyboardInterrupt:
            print()
            return 130
        except NodeCliError as e:
            console.error(str(e))
            return 1
        except Exception as e:
            if args.verbose:
                traceback.print_exc()
            else:
                print(f"error: {e}", file=sys.stderr)
            return 1


def main():
    sys.exit(ArgParser().parser_main())
