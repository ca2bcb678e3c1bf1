import json

import pytest
import yaml

from aztec_node_cli import cli as cli_module
from aztec_node_cli import rpc
from aztec_node_cli.cli import ArgParser, SequencerCLI
from aztec_node_cli.registration import REGISTERED
from aztec_node_cli.settings import REQUIRED_STAKE, load_settings

from conftest import (
    ATTESTER_ADDRESS,
    ATTESTER_KEY,
    BLS_KEY,
    FUNDING_ADDRESS,
    FUNDING_KEY,
    WITHDRAWER,
    FakeRunner,
)


def scripted(*answers):
    """input() replacement returning the given answers, then EOF"""
    queue = list(answers)
    prompts = []

    def fake_input(prompt=""):
        prompts.append(prompt)
        if not queue:
            raise EOFError
        return queue.pop(0)

    fake_input.remaining = queue
    fake_input.prompts = prompts
    return fake_input


def make_cli(settings, runner, sleeps, *answers):
    app = SequencerCLI(settings, runner=runner, input_fn=scripted(*answers), sleep=sleeps.append)
    app.writer.probe = lambda port: True
    app.registrar.allowance_reader = lambda url, token, owner, spender: REQUIRED_STAKE
    return app


@pytest.fixture
def offline_rpc(monkeypatch):
    monkeypatch.setattr(rpc, "check_execution_rpc", lambda url: 100)
    monkeypatch.setattr(rpc, "check_consensus_rpc", lambda url: 200)
    monkeypatch.setattr(rpc, "resolve_public_ip", lambda: "203.0.113.7")
    monkeypatch.setattr(rpc, "probe_liveness", lambda port: True)


def test_exit_returns_zero(settings, runner, sleeps):
    assert make_cli(settings, runner, sleeps, "0").main_menu() == 0
    assert runner.calls == []


def test_invalid_choice_loops_back(settings, runner, sleeps, capsys):
    app = make_cli(settings, runner, sleeps, "42", "0")
    assert app.main_menu() == 0
    assert "Invalid option" in capsys.readouterr().err


def test_install_aborts_on_invalid_key(settings, runner, sleeps, offline_rpc, capsys):
    app = make_cli(settings, runner, sleeps,
                   "1", "https://rpc.example", "https://beacon.example", "0x1234", "", "0")
    assert app.main_menu() == 0

    assert "private key is not valid" in capsys.readouterr().err
    assert runner.calls == []
    assert not app.writer.env_path.exists()


def test_install_and_start(settings, runner, sleeps, offline_rpc):
    app = make_cli(settings, runner, sleeps,
                   "1", "https://rpc.example", "https://beacon.example", FUNDING_KEY, BLS_KEY, "", "", "0")
    assert app.main_menu() == 0

    env = app.writer.env_path.read_text()
    assert f"COINBASE={FUNDING_ADDRESS}" in env
    assert "P2P_IP=203.0.113.7" in env
    assert app.writer.compose_path.exists()
    keystore = json.loads(app.keystore_path.read_text())
    assert keystore["validators"][0]["attester"]["bls"] == BLS_KEY
    assert runner.called("docker", "compose", "up", "-d")
    assert sleeps == [8]


def test_install_requires_docker(settings, sleeps, capsys):
    runner = FakeRunner(available=("cast",))
    app = make_cli(settings, runner, sleeps, "1", "", "0")
    app.main_menu()
    assert "docker" in capsys.readouterr().err
    assert runner.calls == []


def test_register_with_existing_keys(settings, runner, sleeps):
    runner.add(("aztec", "add-l1-validator"), 0, "")
    app = make_cli(settings, runner, sleeps,
                   "https://rpc.example", FUNDING_KEY, WITHDRAWER, ATTESTER_KEY, BLS_KEY)

    outcome = app.register_validator()

    assert outcome.state == REGISTERED
    argv = runner.called("aztec", "add-l1-validator")[0]
    assert argv[argv.index("--attester") + 1] == ATTESTER_ADDRESS
    assert argv[argv.index("--withdrawer") + 1] == WITHDRAWER
    assert argv[argv.index("--private-key") + 1] == FUNDING_KEY


def test_register_generates_keys(settings, runner, sleeps):
    keystore = settings.keystore_dir / "key1.json"

    def generate(cmd):
        keystore.parent.mkdir(parents=True, exist_ok=True)
        keystore.write_text(json.dumps({"eth": ATTESTER_KEY, "bls": BLS_KEY}))
        return "keys written"

    runner.add(("aztec", "validator-keys", "new"), 0, generate)
    runner.add(("cast", "--to-checksum-address"), 0, ATTESTER_ADDRESS)
    app = make_cli(settings, runner, sleeps, "https://rpc.example", FUNDING_KEY, WITHDRAWER, "")

    outcome = app.register_validator()

    assert outcome.state == REGISTERED
    argv = runner.called("aztec", "add-l1-validator")[0]
    assert argv[argv.index("--bls-secret-key") + 1] == BLS_KEY
    generated = runner.called("aztec", "validator-keys", "new")[0]
    assert generated[generated.index("--data-dir") + 1] == str(settings.keystore_dir)
    assert generated[generated.index("--file") + 1] == "key1.json"


def test_register_failure_is_reported(settings, runner, sleeps, capsys):
    runner.add(("aztec", "add-l1-validator"), 1, "reverted")
    app = make_cli(settings, runner, sleeps,
                   "7", "https://rpc.example", FUNDING_KEY, WITHDRAWER, ATTESTER_KEY, BLS_KEY, "", "0")
    assert app.main_menu() == 0
    assert "register-failed" in capsys.readouterr().err


def test_queue_status_reads_coinbase(settings, runner, sleeps, capsys):
    settings.aztec_dir.mkdir(parents=True)
    (settings.aztec_dir / ".env").write_text(f"COINBASE={FUNDING_ADDRESS}\n")
    make_cli(settings, runner, sleeps).queue_status()
    assert f"https://dashtec.xyz/validator/{FUNDING_ADDRESS}" in capsys.readouterr().err


def test_queue_status_without_install(settings, runner, sleeps, capsys):
    app = make_cli(settings, runner, sleeps, "4", "", "0")
    assert app.main_menu() == 0
    assert "install the node first" in capsys.readouterr().err


def test_update_node(settings, runner, sleeps):
    app = make_cli(settings, runner, sleeps)
    app.update_node()
    assert [c[:2] for c in runner.calls] == [
        ("docker", "stop"),
        ("docker", "rm"),
        ("docker", "pull"),
        ("docker", "compose"),
    ]


def test_delete_requires_confirmation(settings, runner, sleeps):
    settings.aztec_dir.mkdir(parents=True)
    settings.data_dir.mkdir(parents=True)

    make_cli(settings, runner, sleeps, "n").delete_node_data()
    assert settings.aztec_dir.exists()

    make_cli(settings, runner, sleeps, "y").delete_node_data()
    assert not settings.aztec_dir.exists()
    assert not settings.data_dir.exists()


def test_node_status_table(settings, runner, sleeps, offline_rpc, capsys):
    runner.add(("docker", "ps"), 0, "aztec-sequencer\taztecprotocol/aztec:2.1.2\tUp 5 minutes\n")
    make_cli(settings, runner, sleeps).node_status()
    out = capsys.readouterr().out
    assert "Up 5 minutes" in out
    assert "responding" in out


def test_refuses_non_root(monkeypatch):
    monkeypatch.setattr(cli_module.console, "colorama_init", lambda: None)
    monkeypatch.setattr(cli_module.os, "geteuid", lambda: 1000)
    monkeypatch.delenv("AZTEC_ALLOW_NON_ROOT", raising=False)
    assert ArgParser().parser_main([]) == 1


def test_version_flag(capsys):
    with pytest.raises(SystemExit) as exc:
        ArgParser().parser_main(["--version"])
    assert exc.value.code == 0
    assert "aztec-node-cli" in capsys.readouterr().out


def test_reinstall_without_bls_drops_keystore(settings, runner, sleeps, offline_rpc):
    app = make_cli(settings, runner, sleeps,
                   "1", "https://rpc.example", "https://beacon.example", FUNDING_KEY, BLS_KEY, "", "",
                   "1", "https://rpc.example", "https://beacon.example", ATTESTER_KEY, "", "", "",
                   "0")
    assert app.main_menu() == 0

    env = app.writer.env_path.read_text()
    assert f"VALIDATOR_PRIVATE_KEYS={ATTESTER_KEY}" in env
    assert "KEY_STORE_DIRECTORY" not in env
    compose = yaml.safe_load(app.writer.compose_path.read_text())
    assert compose["services"]["aztec-node"]["volumes"] == [f"{settings.data_dir}:/data"]
    assert app.keystore_path.exists()


def test_unwritable_install_dir_returns_to_menu(tmp_path, runner, sleeps, offline_rpc, capsys):
    blocker = tmp_path / "blocker"
    blocker.write_text("")
    settings = load_settings({
        "AZTEC_DIR": str(blocker / "aztec"),
        "AZTEC_DATA_DIR": str(tmp_path / "data"),
        "AZTEC_KEYSTORE_DIR": str(tmp_path / "keystore"),
    })
    app = make_cli(settings, runner, sleeps,
                   "1", "https://rpc.example", "https://beacon.example", FUNDING_KEY, "", "", "", "0")

    assert app.main_menu() == 0
    assert "File system error" in capsys.readouterr().err
    assert runner.called("docker", "compose") == []


def test_compose_failure_returns_to_menu(settings, sleeps, offline_rpc, capsys):
    runner = FakeRunner(available=("docker", "cast"))
    runner.add(("cast", "wallet", "address", "--private-key", FUNDING_KEY), 0, FUNDING_ADDRESS + "\n")
    runner.add(("docker", "compose"), 1, "Cannot connect to the Docker daemon")
    app = make_cli(settings, runner, sleeps,
                   "1", "https://rpc.example", "https://beacon.example", FUNDING_KEY, "", "", "", "0")

    assert app.main_menu() == 0
    assert "docker compose up failed" in capsys.readouterr().err
    assert sleeps == []
    assert app.writer.env_path.exists()


def test_funding_prompt_names_stake_amount(settings, runner, sleeps):
    runner.add(("aztec", "add-l1-validator"), 0, "")
    app = make_cli(settings, runner, sleeps,
                   "https://rpc.example", FUNDING_KEY, WITHDRAWER, ATTESTER_KEY, BLS_KEY)
    app.register_validator()
    assert "Funding private key (holds 200 STAKE): " in app.input.prompts
