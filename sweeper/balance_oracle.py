"""
Balance reads for deposit addresses.

Each read yields either a Balance or an Unreadable marker. The two reads of a
snapshot are independent so a failing token read still reports the TRX
balance and vice versa. Sweep policy acts only on Balance readings; the
zero-on-error accessors exist for display paths.
"""
import threading
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Union

from shared.currency_precision import AmountConverter
from shared.crypto.clients.tron import TronChainClient
from shared.logger import setup_logging
from .rate_limiter import RateLimiter

logger = setup_logging(__name__)


@dataclass(frozen=True)
class Balance:
    amount: Decimal


@dataclass(frozen=True)
class Unreadable:
    cause: str


Reading = Union[Balance, Unreadable]


@dataclass(frozen=True)
class BalanceSnapshot:
    address: str
    native: Reading
    fungible: Reading

    @property
    def readable(self) -> bool:
        return isinstance(self.native, Balance) and isinstance(self.fungible, Balance)

    # Legacy view: a failed read shows as zero. Not for sweep decisions.
    @property
    def native_or_zero(self) -> Decimal:
        return self.native.amount if isinstance(self.native, Balance) else Decimal("0")

    @property
    def fungible_or_zero(self) -> Decimal:
        return self.fungible.amount if isinstance(self.fungible, Balance) else Decimal("0")


class BalanceOracle:
    def __init__(self, chain: TronChainClient, token_contract_address: str,
                 rate_limiter: Optional[RateLimiter] = None):
        self.chain = chain
        self.token_contract_address = token_contract_address
        self.rate_limiter = rate_limiter
        self._contract = None
        self._contract_lock = threading.Lock()

    def _throttle(self):
        if self.rate_limiter is not None:
            self.rate_limiter.acquire()

    def token_contract(self):
        """Contract handle, loaded on first use; a failed load is retried next time"""
        if self._contract is not None:
            return self._contract
        with self._contract_lock:
            if self._contract is None:
                self._throttle()
                self._contract = self.chain.load_contract(self.token_contract_address)
                logger.info(f"📄 Loaded token contract {self.token_contract_address}")
        return self._contract

    def read_native(self, address: str) -> Reading:
        try:
            self._throttle()
            return Balance(Decimal(self.chain.get_native_balance(address)))
        except Exception as e:
            logger.warning(f"⚠️ Could not read TRX balance of {address}: {e}")
            return Unreadable(str(e))

    def read_fungible(self, address: str) -> Reading:
        try:
            contract = self.token_contract()
            self._throttle()
            raw = self.chain.call_view(contract, "balanceOf", address)
            return Balance(AmountConverter.from_smallest_units(int(raw), "USDT"))
        except Exception as e:
            logger.warning(f"⚠️ Could not read USDT balance of {address}: {e}")
            return Unreadable(str(e))

    def read_balances(self, address: str) -> BalanceSnapshot:
        return BalanceSnapshot(
            address=address,
            native=self.read_native(address),
            fungible=self.read_fungible(address),
        )
