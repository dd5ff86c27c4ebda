"""
Submits TRX and USDT transfers from deposit addresses.

A returned hash only means the node accepted the transaction for broadcast;
confirmation is tracked separately.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from db.models import TokenKind
from shared.config import DEFAULT_FEE_LIMIT_SUN
from shared.currency_precision import AmountConverter
from shared.crypto.clients.tron import TronChainClient
from shared.errors import TransferError
from shared.logger import setup_logging
from .balance_oracle import BalanceOracle
from .rate_limiter import RateLimiter

logger = setup_logging(__name__)


@dataclass(frozen=True)
class TransferReceipt:
    tx_hash: str
    token_kind: TokenKind
    from_address: str
    to_address: str
    amount: Decimal


class TransferExecutor:
    def __init__(self, chain: TronChainClient, oracle: BalanceOracle,
                 fee_limit_sun: int = DEFAULT_FEE_LIMIT_SUN,
                 rate_limiter: Optional[RateLimiter] = None):
        self.chain = chain
        # Shares the oracle's lazily loaded contract handle
        self.oracle = oracle
        self.fee_limit_sun = fee_limit_sun
        self.rate_limiter = rate_limiter

    def _throttle(self):
        if self.rate_limiter is not None:
            self.rate_limiter.acquire()

    def send_native(self, private_key: str, from_address: str, to_address: str,
                    amount: Decimal) -> TransferReceipt:
        try:
            self._throttle()
            tx_hash = self.chain.submit_native_transfer(private_key, to_address, amount)
        except Exception as e:
            raise TransferError(
                f"TRX transfer of {amount} from {from_address} failed: {e}",
                token_kind=TokenKind.NATIVE.value, cause=e
            ) from e
        logger.info(f"💸 Submitted TRX transfer {amount} {from_address} -> {to_address}: {tx_hash}")
        return TransferReceipt(tx_hash, TokenKind.NATIVE, from_address, to_address, amount)

    def send_fungible(self, private_key: str, from_address: str, to_address: str,
                      amount: Decimal) -> TransferReceipt:
        raw_amount = AmountConverter.to_smallest_units(amount, "USDT")
        if raw_amount <= 0:
            raise TransferError(f"USDT amount {amount} is below one base unit",
                                token_kind=TokenKind.FUNGIBLE.value)
        sent = AmountConverter.from_smallest_units(raw_amount, "USDT")
        try:
            contract = self.oracle.token_contract()
            self._throttle()
            tx_hash = self.chain.submit_token_transfer(
                private_key, contract, to_address, raw_amount, self.fee_limit_sun
            )
        except Exception as e:
            raise TransferError(
                f"USDT transfer of {sent} from {from_address} failed: {e}",
                token_kind=TokenKind.FUNGIBLE.value, cause=e
            ) from e
        logger.info(f"💸 Submitted USDT transfer {sent} {from_address} -> {to_address}: {tx_hash}")
        return TransferReceipt(tx_hash, TokenKind.FUNGIBLE, from_address, to_address, sent)
