"""
Sweep engine: consolidates USDT and TRX from deposit addresses into the
master wallet.

A cycle enumerates the active addresses, reads their balances, applies the
sweep policy and submits transfers on a bounded worker pool. Every address is
processed in isolation; a failure on one is logged and counted and the cycle
moves on. Only a failure to enumerate addresses aborts a cycle.
"""
import threading
import traceback
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Any

from db.models import TokenKind
from db.store import AddressRecord, AddressStore
from shared.currency_precision import AmountConverter
from shared.errors import StoreError, TransferError
from shared.logger import setup_logging
from .balance_oracle import Balance, BalanceOracle
from .key_derivation import KeyDerivationService
from .ledger_recorder import LedgerRecorder
from .transfer_executor import TransferExecutor, TransferReceipt

logger = setup_logging(__name__)

INSUFFICIENT_GAS = "insufficient_gas"
UNREADABLE = "unreadable"
IN_FLIGHT = "in_flight"
STOPPED = "stopped"


@dataclass
class SweepCycleStats:
    total_swept: Decimal = Decimal("0")
    cycle_count: int = 0
    error_count: int = 0
    last_cycle_at: Optional[datetime] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "total_swept": self.total_swept,
            "cycle_count": self.cycle_count,
            "error_count": self.error_count,
            "last_cycle_at": self.last_cycle_at.isoformat() if self.last_cycle_at else None,
        }


@dataclass(frozen=True)
class SweepPlan:
    fungible_amount: Optional[Decimal] = None
    native_amount: Optional[Decimal] = None
    flag: Optional[str] = None


@dataclass(frozen=True)
class SweepPolicy:
    min_sweep: Decimal = Decimal("1")
    min_gas_reserve: Decimal = Decimal("15")
    dust_reserve: Decimal = Decimal("1")
    min_native_sweep: Decimal = Decimal("0.1")

    @classmethod
    def from_settings(cls, settings) -> "SweepPolicy":
        return cls(
            min_sweep=settings.min_sweep_amount,
            min_gas_reserve=settings.min_gas_reserve,
            dust_reserve=settings.dust_reserve,
            min_native_sweep=settings.min_native_sweep,
        )

    def plan(self, native: Decimal, fungible: Decimal) -> SweepPlan:
        """
        Decide what to move out of one address.

        USDT goes first and needs min_gas_reserve TRX on the address to pay
        for energy. A token balance that qualifies but cannot be paid for
        leaves the whole address untouched this cycle, so the TRX stays for a
        later token sweep. Otherwise everything above the dust reserve is
        swept as TRX when that exceeds min_native_sweep.
        """
        fungible_amount = None
        if fungible > 0 and fungible >= self.min_sweep:
            if native < self.min_gas_reserve:
                return SweepPlan(flag=INSUFFICIENT_GAS)
            fungible_amount = fungible

        native_amount = native - self.dust_reserve
        if native_amount <= self.min_native_sweep:
            native_amount = None
        return SweepPlan(fungible_amount=fungible_amount, native_amount=native_amount)


@dataclass
class AddressOutcome:
    address_id: int
    address: str
    owner_ref: Optional[int]
    transfers: List[TransferReceipt] = field(default_factory=list)
    errors: int = 0
    skipped: Optional[str] = None

    def swept(self, token_kind: TokenKind = None) -> Decimal:
        return sum(
            (t.amount for t in self.transfers if token_kind is None or t.token_kind == token_kind),
            Decimal("0")
        )


@dataclass
class CycleResult:
    started_at: datetime
    finished_at: datetime
    outcomes: List[AddressOutcome]

    @property
    def addresses(self) -> int:
        return len(self.outcomes)

    @property
    def total_swept(self) -> Decimal:
        return sum((o.swept() for o in self.outcomes), Decimal("0"))

    @property
    def fungible_swept(self) -> Decimal:
        return sum((o.swept(TokenKind.FUNGIBLE) for o in self.outcomes), Decimal("0"))

    @property
    def transfers(self) -> int:
        return sum(len(o.transfers) for o in self.outcomes)

    @property
    def errors(self) -> int:
        return sum(o.errors for o in self.outcomes)

    def skipped(self, reason: str) -> List[AddressOutcome]:
        return [o for o in self.outcomes if o.skipped == reason]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SweepEngine:
    def __init__(self, store: AddressStore, keys: KeyDerivationService,
                 oracle: BalanceOracle, executor: TransferExecutor,
                 recorder: LedgerRecorder, notifier, master_address: str,
                 policy: SweepPolicy = None, workers: int = 4,
                 clock: Callable[[], datetime] = _utcnow):
        self.store = store
        self.keys = keys
        self.oracle = oracle
        self.executor = executor
        self.recorder = recorder
        self.notifier = notifier
        self.master_address = master_address
        self.policy = policy or SweepPolicy()
        self.workers = workers
        self.clock = clock

        self._cycle_lock = threading.Lock()
        self._stop = threading.Event()
        self._in_flight = set()
        self._in_flight_lock = threading.Lock()
        self._stats = SweepCycleStats()
        self._stats_lock = threading.Lock()

    # ===== Public API =====

    @property
    def stats(self) -> SweepCycleStats:
        with self._stats_lock:
            return replace(self._stats)

    @property
    def is_running(self) -> bool:
        return self._cycle_lock.locked()

    def shutdown(self):
        """Stop taking new addresses; transfers already submitted are still recorded"""
        self._stop.set()
        logger.info("🛑 Sweep engine stopping")

    def run_cycle(self) -> Optional[CycleResult]:
        """
        Run one sweep over every active address.

        Returns None when another cycle is still running or the engine has
        been shut down. Raises StoreError when the addresses cannot be
        enumerated.
        """
        if self._stop.is_set():
            logger.warning("Sweep engine is stopped; cycle not started")
            return None
        if not self._cycle_lock.acquire(blocking=False):
            logger.warning("⏳ Sweep cycle already in progress; trigger dropped")
            return None
        try:
            return self._run_cycle()
        finally:
            self._cycle_lock.release()

    def sweep_one(self, address_id: int) -> Optional[AddressOutcome]:
        """Sweep a single address on demand, outside the periodic cycle"""
        record = self.store.get_address(address_id)
        if record is None or not record.is_active:
            logger.warning(f"Address #{address_id} not found or inactive")
            return None

        outcome = self._process_address(record)
        fungible = outcome.swept(TokenKind.FUNGIBLE)
        refresh_errors = self._refresh_master(fungible) if fungible > 0 else 0
        with self._stats_lock:
            self._stats.total_swept += outcome.swept()
            self._stats.error_count += outcome.errors + refresh_errors
        return outcome

    # ===== Cycle =====

    def _run_cycle(self) -> CycleResult:
        started_at = self.clock()
        logger.info("🧹 Starting sweep cycle")

        try:
            records = self.store.list_active_addresses()
        except Exception as e:
            with self._stats_lock:
                self._stats.error_count += 1
            logger.error(f"❌ Could not enumerate active addresses: {e}")
            if isinstance(e, StoreError):
                raise
            raise StoreError(f"Could not enumerate active addresses: {e}") from e

        unique: Dict[int, AddressRecord] = {}
        for record in records:
            unique.setdefault(record.id, record)

        outcomes: List[AddressOutcome] = []
        if unique:
            with ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="sweep") as pool:
                futures = {pool.submit(self._process_address, r): r for r in unique.values()}
                for future in as_completed(futures):
                    record = futures[future]
                    try:
                        outcomes.append(future.result())
                    except Exception as e:
                        logger.error(f"❌ Unexpected error sweeping {record.address}: {e}")
                        outcomes.append(AddressOutcome(record.id, record.address, record.owner_ref, errors=1))

        result = CycleResult(started_at=started_at, finished_at=self.clock(), outcomes=outcomes)

        refresh_errors = 0
        if result.fungible_swept > 0:
            refresh_errors = self._refresh_master(result.fungible_swept)

        with self._stats_lock:
            self._stats.total_swept += result.total_swept
            self._stats.error_count += result.errors + refresh_errors
            self._stats.cycle_count += 1
            self._stats.last_cycle_at = result.finished_at

        logger.info(
            f"✅ Sweep cycle finished: {result.addresses} addresses, {result.transfers} transfers, "
            f"{result.total_swept} swept, {result.errors + refresh_errors} errors"
        )
        return result

    def _claim(self, address_id: int) -> bool:
        with self._in_flight_lock:
            if address_id in self._in_flight:
                return False
            self._in_flight.add(address_id)
            return True

    def _release(self, address_id: int):
        with self._in_flight_lock:
            self._in_flight.discard(address_id)

    def _process_address(self, record: AddressRecord) -> AddressOutcome:
        if self._stop.is_set():
            return AddressOutcome(record.id, record.address, record.owner_ref, skipped=STOPPED)
        if not self._claim(record.id):
            logger.info(f"Address {record.address} is already being swept")
            return AddressOutcome(record.id, record.address, record.owner_ref, skipped=IN_FLIGHT)
        try:
            return self._sweep_address(record)
        finally:
            self._release(record.id)

    def _sweep_address(self, record: AddressRecord) -> AddressOutcome:
        outcome = AddressOutcome(record.id, record.address, record.owner_ref)
        try:
            snapshot = self.oracle.read_balances(record.address)
            if not snapshot.readable:
                logger.warning(f"⚠️ Skipping {record.address}: balances unreadable this cycle")
                outcome.skipped = UNREADABLE
                return outcome

            native = snapshot.native.amount
            fungible = snapshot.fungible.amount
            plan = self.policy.plan(native, fungible)

            if plan.flag == INSUFFICIENT_GAS:
                logger.warning(
                    f"⚠️ Insufficient TRX for gas in {record.address}: "
                    f"{native} TRX, {fungible} USDT waiting"
                )
                outcome.skipped = INSUFFICIENT_GAS
                self._remember_balance(record, fungible)
                return outcome

            if plan.fungible_amount is None and plan.native_amount is None:
                self._remember_balance(record, fungible)
                return outcome

            private_key = self.keys.decrypt(record.private_key_encrypted)
            if plan.fungible_amount is not None:
                self._transfer(outcome, self.executor.send_fungible,
                               private_key, record, plan.fungible_amount)

            if plan.native_amount is not None:
                if self._stop.is_set():
                    logger.info(f"Stop requested; TRX sweep of {record.address} not started")
                else:
                    self._transfer(outcome, self.executor.send_native,
                                   private_key, record, plan.native_amount)

            remaining = fungible - outcome.swept(TokenKind.FUNGIBLE)
            self._remember_balance(record, remaining)
            if outcome.transfers:
                self._notify(outcome)
        except Exception as e:
            outcome.errors += 1
            logger.error(f"❌ Error sweeping {record.address}: {e}\n{traceback.format_exc()}")
        return outcome

    def _transfer(self, outcome: AddressOutcome, send, private_key: str,
                  record: AddressRecord, amount: Decimal):
        try:
            receipt = send(private_key, record.address, self.master_address, amount)
        except TransferError as e:
            outcome.errors += 1
            logger.error(f"❌ {e}")
            return

        outcome.transfers.append(receipt)
        try:
            self.recorder.record(record.id, receipt)
        except StoreError as e:
            # Funds already left; the hash is in the log for reconciliation
            outcome.errors += 1
            logger.error(f"❌ Transfer {receipt.tx_hash} submitted but not recorded: {e}")

    def _remember_balance(self, record: AddressRecord, balance: Decimal):
        try:
            self.store.update_address_balance(record.id, balance)
        except StoreError as e:
            logger.warning(f"Could not update last balance of {record.address}: {e}")

    def _notify(self, outcome: AddressOutcome):
        fungible = outcome.swept(TokenKind.FUNGIBLE)
        native = outcome.swept(TokenKind.NATIVE)
        lines = ["✅ Auto-sweep completed", ""]
        if fungible:
            lines.append(f"💰 {AmountConverter.format_display_amount(fungible, 'USDT')}")
        if native:
            lines.append(f"⚡ {AmountConverter.format_display_amount(native, 'TRX')}")
        lines.append(f"📤 Transactions: {len(outcome.transfers)}")
        lines.append(f"📍 From: {outcome.address}")
        try:
            self.notifier.notify(outcome.owner_ref, "\n".join(lines))
        except Exception as e:
            logger.error(f"Failed to notify owner {outcome.owner_ref}: {e}")

    def _refresh_master(self, fungible_swept: Decimal) -> int:
        """Re-read the master's USDT balance and add the cycle's sweep to its running total"""
        try:
            reading = self.oracle.read_fungible(self.master_address)
            if not isinstance(reading, Balance):
                logger.warning(f"Master wallet balance unreadable: {reading.cause}")
                return 1
            previous = self.store.get_master_wallet_stats(self.master_address)
            received = previous["total_received"] if previous else Decimal("0")
            self.recorder.update_master_balance(
                self.master_address, reading.amount, received + fungible_swept
            )
            return 0
        except StoreError as e:
            logger.error(f"❌ Could not update master wallet stats: {e}")
            return 1
