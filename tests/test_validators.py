import pytest

from aztec_node_cli.errors import InputValidationError
from aztec_node_cli.validators import is_address, is_bls_key, is_private_key, is_url, validate


@pytest.mark.parametrize("value", [
    "0x" + "a" * 64,
    "0x" + "AbCdEf0123456789" * 4,
])
def test_private_key_accepted(value):
    assert is_private_key(value)


@pytest.mark.parametrize("value", [
    "",
    "a" * 64,
    "0x" + "a" * 63,
    "0x" + "a" * 65,
    "0x" + "g" * 64,
    "0X" + "a" * 64,
    "0x" + "a" * 64 + "\n",
    " 0x" + "a" * 64,
    None,
])
def test_private_key_rejected(value):
    assert not is_private_key(value)


def test_address_pattern():
    assert is_address("0x" + "1F" * 20)
    assert not is_address("0x" + "1" * 39)
    assert not is_address("0x" + "1" * 41)
    assert not is_address("0x" + "1" * 64)
    assert not is_address("1" * 40)


def test_bls_key_allows_wider_range():
    assert is_bls_key("0x" + "c" * 64)
    assert is_bls_key("0x" + "c" * 128)
    assert not is_bls_key("0x" + "c" * 63)
    assert not is_bls_key("0x" + "c" * 129)


def test_url_scheme():
    assert is_url("http://localhost:8545")
    assert is_url("https://rpc.example")
    assert not is_url("ws://rpc.example")
    assert not is_url("rpc.example")


def test_validate_strips_and_returns_value():
    assert validate("url", "  https://rpc.example \n", "execution RPC URL") == "https://rpc.example"


def test_validate_names_failing_field():
    with pytest.raises(InputValidationError) as exc:
        validate("address", "0x1234", "withdrawer address")
    assert exc.value.field == "withdrawer address"
    assert "withdrawer address" in str(exc.value)


def test_validate_unknown_kind():
    with pytest.raises(ValueError):
        validate("mnemonic", "x", "seed")
