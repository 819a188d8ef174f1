"""Settlement of payment commitments for each payment method."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass

from .payment import PaymentCommitment, PaymentMethod

BASE_L2_CHAIN_ID = 8453
"""Chain ID of the Base L2 network."""

_EVM_BLOCK_NUMBER = 12345678
_SUPERFLUID_BLOCK_NUMBER = 87654321

__all__ = [
    "BASE_L2_CHAIN_ID",
    "SettlementContract",
    "SettlementError",
    "SettlementResult",
]

logger = logging.getLogger(__name__)


class SettlementError(Exception):
    """Raised when a payment cannot be settled."""


@dataclass
class SettlementResult:
    """Outcome of a settlement."""

    tx_hash: str
    amount: int
    currency: str
    block_number: int | None
    timestamp: int


class SettlementContract:
    """Settles commitments for one payment method (simulated for on-chain methods)."""

    def __init__(
        self,
        payment_method: PaymentMethod,
        contract_address: str | None = None,
        chain_id: int | None = None,
    ) -> None:
        self.payment_method = PaymentMethod(payment_method)
        self.contract_address = contract_address
        self.chain_id = chain_id

    @classmethod
    def base_l2_usdc(cls, contract_address: str) -> SettlementContract:
        """Return a USDC settlement contract on Base L2."""
        return cls(PaymentMethod.EVM_L2, contract_address, BASE_L2_CHAIN_ID)

    async def settle_payment(self, commitment: PaymentCommitment) -> SettlementResult:
        """Finalize ``commitment`` with this contract's payment method."""
        method = self.payment_method
        if method is PaymentMethod.FREE:
            return SettlementResult("free", 0, "FREE", None, int(time.time()))
        if method is PaymentMethod.EVM_L2:
            return self._settle_evm_l2(commitment)
        if method is PaymentMethod.LIGHTNING:
            logger.info(
                "mock Lightning settlement: amount=%d currency=%s",
                commitment.amount,
                commitment.currency,
            )
            return SettlementResult(
                f"lightning_{commitment.seq}",
                commitment.amount,
                commitment.currency,
                None,
                int(time.time()),
            )
        logger.info(
            "mock Superfluid settlement: amount=%d currency=%s",
            commitment.amount,
            commitment.currency,
        )
        return SettlementResult(
            f"superfluid_{commitment.seq}",
            commitment.amount,
            commitment.currency,
            _SUPERFLUID_BLOCK_NUMBER,
            int(time.time()),
        )

    async def verify_settlement(self, result: SettlementResult) -> bool:
        """Return whether ``result`` is an accepted settlement."""
        if self.payment_method is PaymentMethod.FREE:
            return True
        if self.payment_method is PaymentMethod.EVM_L2:
            logger.info(
                "mock EVM L2 settlement verification: tx_hash=%s amount=%d",
                result.tx_hash,
                result.amount,
            )
            return result.tx_hash.startswith("0x")
        return False

    def _settle_evm_l2(self, commitment: PaymentCommitment) -> SettlementResult:
        if self.contract_address is None:
            raise SettlementError("contract interaction failed: No contract address configured")
        logger.info(
            "mock EVM L2 settlement (Base): contract=%s amount=%d currency=%s "
            "listener_id=%r relay_id=%r",
            self.contract_address,
            commitment.amount,
            commitment.currency,
            commitment.listener_id,
            commitment.relay_id,
        )
        return SettlementResult(
            f"0x{commitment.amount:016x}{commitment.seq:016x}",
            commitment.amount,
            commitment.currency,
            _EVM_BLOCK_NUMBER,
            int(time.time()),
        )