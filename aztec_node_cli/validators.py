import re

from .errors import InputValidationError

ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")
PRIVATE_KEY_RE = re.compile(r"^0x[a-fA-F0-9]{64}$")
BLS_KEY_RE = re.compile(r"^0x[a-fA-F0-9]{64,128}$")


def is_url(value: str) -> bool:
    return isinstance(value, str) and value.startswith(("http://", "https://"))


def is_address(value: str) -> bool:
    return isinstance(value, str) and ADDRESS_RE.fullmatch(value) is not None


def is_private_key(value: str) -> bool:
    return isinstance(value, str) and PRIVATE_KEY_RE.fullmatch(value) is not None


def is_bls_key(value: str) -> bool:
    return isinstance(value, str) and BLS_KEY_RE.fullmatch(value) is not None


_CHECKS = {
    "url": is_url,
    "address": is_address,
    "private_key": is_private_key,
    "bls_key": is_bls_key,
}


def validate(kind: str, value: str, field: str) -> str:
    """Return the stripped value or raise InputValidationError naming `field`"""
    check = _CHECKS.get(kind)
    if check is None:
        raise ValueError(f"Unknown input kind: {kind}")
    value = (value or "").strip()
    if not check(value):
        raise InputValidationError(field, value)
    return value
