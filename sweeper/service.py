"""
Sweep Service
Status and reporting on top of the sweep engine, for the CLI and the scheduler.
"""
from typing import Dict, Any, List, Optional

from db.store import AddressStore
from shared.crypto.clients.tron import TronChainClient
from shared.currency_precision import AmountConverter
from shared.errors import StoreError
from shared.logger import setup_logging
from .sweep_engine import SweepEngine, CycleResult

logger = setup_logging(__name__)


class SweepService:
    def __init__(self, engine: SweepEngine, store: AddressStore, chain: TronChainClient,
                 notifier, master_address: str, admin_ids: List[int] = None):
        self.engine = engine
        self.store = store
        self.chain = chain
        self.notifier = notifier
        self.master_address = master_address
        self.admin_ids = list(admin_ids or [])

    def run_sweep(self) -> Optional[CycleResult]:
        return self.engine.run_cycle()

    def status(self) -> Dict[str, Any]:
        """Sweep counters plus store and chain state; store failures degrade to None"""
        try:
            system = self.store.get_system_stats()
            master = self.store.get_master_wallet_stats(self.master_address)
        except StoreError as e:
            logger.error(f"Error reading stats for status: {e}")
            system, master = None, None

        return {
            "sweep": self.engine.stats.as_dict(),
            "running": self.engine.is_running,
            "system": system,
            "master_wallet": master,
            "network": self.chain.network_status(),
        }

    def daily_report(self) -> str:
        status = self.status()
        sweep = status["sweep"]
        lines = ["📈 Daily Report", ""]

        system = status["system"]
        if system:
            lines += [
                f"👥 Users: {system['total_users']}",
                f"📍 Active addresses: {system['total_addresses']}",
                f"📤 Transactions: {system['total_transactions']}",
                f"💰 Tracked balance: {AmountConverter.format_display_amount(system['total_balance'], 'USDT')}",
                "",
            ]

        lines += [
            f"🧹 Sweep cycles: {sweep['cycle_count']}",
            f"💸 Total swept: {sweep['total_swept']}",
            f"❌ Errors: {sweep['error_count']}",
            f"🕐 Last cycle: {sweep['last_cycle_at'] or 'never'}",
        ]

        master = status["master_wallet"]
        if master:
            lines += [
                "",
                f"🏦 Master wallet: {master['address']}",
                f"   Balance: {AmountConverter.format_display_amount(master['current_balance'], 'USDT')}",
                f"   Total received: {AmountConverter.format_display_amount(master['total_received'], 'USDT')}",
            ]
        return "\n".join(lines)

    def send_daily_report(self) -> int:
        """Send the daily report to every admin; returns how many were delivered"""
        if not self.admin_ids:
            logger.info("No admins configured; daily report skipped")
            return 0

        report = self.daily_report()
        delivered = 0
        for admin_id in self.admin_ids:
            try:
                if self.notifier.notify(admin_id, report, category="daily_report"):
                    delivered += 1
            except Exception as e:
                logger.error(f"Failed to send daily report to {admin_id}: {e}")
        logger.info(f"📈 Daily report sent to {delivered}/{len(self.admin_ids)} admins")
        return delivered
