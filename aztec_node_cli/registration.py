"""
Validator registration: allowance check, conditional approve, add-l1-validator.

One call to Registrar.register() is one attempt. It ends in exactly one of
REGISTERED, APPROVE_FAILED or REGISTER_FAILED and never retries on its own.
"""

from collections import namedtuple
from typing import Tuple

from . import console, rpc
from .settings import REQUIRED_STAKE
from .tools import AztecCli, Cast, Receipt

REGISTERED = "registered"
APPROVE_FAILED = "approve-failed"
REGISTER_FAILED = "register-failed"

RegistrationRequest = namedtuple(
    "RegistrationRequest",
    [
        "private_key",      # funding key holding the stake
        "attester",
        "withdrawer",
        "bls_key",
        "rpc_url",
        "rollup_contract",
        "stake_token",
        "network",
    ],
)

RegistrationOutcome = namedtuple(
    "RegistrationOutcome",
    ["state", "funding_address", "allowance", "approved", "receipt", "message"],
)


class Registrar:

    def __init__(
        self,
        cast: Cast,
        aztec: AztecCli,
        required_stake: int = REQUIRED_STAKE,
        gas_limit: int = 200000,
        allowance_reader=rpc.fetch_allowance,
    ):
        self.cast = cast
        self.aztec = aztec
        self.required_stake = required_stake
        self.gas_limit = gas_limit
        self.allowance_reader = allowance_reader

    def check_allowance(self, request: RegistrationRequest) -> Tuple[str, int]:
        funding_address = self.cast.derive_address(request.private_key)
        console.info(f"Funding address: {funding_address}")
        allowance = self.allowance_reader(
            request.rpc_url, request.stake_token, funding_address, request.rollup_contract
        )
        console.info(f"Current allowance: {allowance} (required {self.required_stake})")
        return funding_address, allowance

    def needs_approval(self, allowance: int) -> bool:
        return allowance < self.required_stake

    def approve(self, request: RegistrationRequest) -> Receipt:
        console.info(f"Approving {self.required_stake} stake for rollup {request.rollup_contract}...")
        return self.cast.approve(
            request.stake_token,
            request.rollup_contract,
            self.required_stake,
            request.private_key,
            request.rpc_url,
            self.gas_limit,
        )

    def register(self, request: RegistrationRequest) -> RegistrationOutcome:
        funding_address, allowance = self.check_allowance(request)
        outcome = RegistrationOutcome(
            state=None,
            funding_address=funding_address,
            allowance=allowance,
            approved=False,
            receipt=None,
            message="",
        )

        if self.needs_approval(allowance):
            receipt = self.approve(request)
            outcome = outcome._replace(approved=receipt.succeeded, receipt=receipt)
            if not receipt.succeeded:
                return outcome._replace(
                    state=APPROVE_FAILED,
                    message=(
                        f"Approve failed (status={receipt.status or 'unknown'}, tx={receipt.tx_hash}). "
                        "Check the private key, RPC and STAKE balance."
                    ),
                )
            console.success(f"Stake approved (tx {receipt.tx_hash})")
        else:
            console.info("Allowance already covers the stake, skipping approve")

        console.info("Registering validator on L1...")
        result = self.aztec.add_l1_validator(
            rpc_url=request.rpc_url,
            network=request.network,
            private_key=request.private_key,
            attester=request.attester,
            withdrawer=request.withdrawer,
            bls_key=request.bls_key,
            rollup=request.rollup_contract,
        )
        if not result.ok:
            console.debug(result.output)
            return outcome._replace(
                state=REGISTER_FAILED,
                message=f"aztec add-l1-validator exited with {result.returncode}. Check RPC, network and arguments.",
            )
        return outcome._replace(state=REGISTERED, message=f"Validator {request.attester} registered")
