"""
Composition root and command line entry point.

    python -m sweeper.main run                  # scheduler until SIGINT/SIGTERM
    python -m sweeper.main sweep                # one cycle now
    python -m sweeper.main generate OWNER_REF [--label LABEL]
    python -m sweeper.main status
    python -m sweeper.main balance OWNER_REF
"""
import argparse
import json
import signal
import sys
import threading
from dataclasses import dataclass

from db.connection import create_db_engine, make_session_factory, init_db
from db.store import AddressStore
from shared.config import Settings
from shared.crypto.clients.tron import TronChainClient, TronConfig
from shared.errors import SweeperError
from shared.logger import setup_logging
from shared.notification_service import NotificationService
from .address_service import AddressService
from .balance_oracle import BalanceOracle
from .key_derivation import KeyDerivationService
from .ledger_recorder import LedgerRecorder
from .rate_limiter import RateLimiter
from .scheduler import SweepScheduler
from .service import SweepService
from .sweep_engine import SweepEngine, SweepPolicy
from .transfer_executor import TransferExecutor

logger = setup_logging("sweeper")


@dataclass
class Services:
    settings: Settings
    store: AddressStore
    keys: KeyDerivationService
    chain: TronChainClient
    oracle: BalanceOracle
    engine: SweepEngine
    addresses: AddressService
    sweeps: SweepService


def build_services(settings: Settings, chain: TronChainClient = None,
                   notifier=None, store: AddressStore = None) -> Services:
    """Wire every service once; collaborators may be passed in to replace the defaults"""
    if store is None:
        engine = create_db_engine(settings.database_url)
        init_db(engine)
        store = AddressStore(make_session_factory(engine))
    chain = chain or TronChainClient(TronConfig.from_settings(settings))
    notifier = notifier or NotificationService.from_settings(settings)

    keys = KeyDerivationService(settings.hd_mnemonic, settings.hd_passphrase, settings.encryption_key)
    limiter = RateLimiter(settings.chain_calls_per_second)
    oracle = BalanceOracle(chain, settings.usdt_contract_address, rate_limiter=limiter)
    executor = TransferExecutor(chain, oracle, fee_limit_sun=settings.fee_limit_sun, rate_limiter=limiter)
    recorder = LedgerRecorder(store, settings.usdt_contract_address)

    sweep_engine = SweepEngine(
        store=store,
        keys=keys,
        oracle=oracle,
        executor=executor,
        recorder=recorder,
        notifier=notifier,
        master_address=settings.master_address,
        policy=SweepPolicy.from_settings(settings),
        workers=settings.sweep_workers,
    )
    return Services(
        settings=settings,
        store=store,
        keys=keys,
        chain=chain,
        oracle=oracle,
        engine=sweep_engine,
        addresses=AddressService(store, keys, oracle, chain, settings.master_address),
        sweeps=SweepService(sweep_engine, store, chain, notifier,
                            settings.master_address, settings.admin_ids),
    )


def _print(data):
    print(json.dumps(data, indent=2, default=str))


def run_forever(services: Services):
    scheduler = SweepScheduler(
        services.sweeps,
        interval_minutes=services.settings.sweep_interval_minutes,
        daily_report_at=services.settings.daily_report_at,
    )
    stop = threading.Event()

    def _signal_handler(signum, frame):
        logger.info(f"📡 Received signal {signum}, shutting down gracefully...")
        stop.set()

    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    scheduler.start_scheduler()
    # First cycle right away rather than one interval after startup
    scheduler.run_sweep_job()
    stop.wait()
    scheduler.stop_scheduler()


def main(argv=None):
    parser = argparse.ArgumentParser(description="TRON custodial address generator and auto-sweeper")
    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("run", help="Run the sweep scheduler until interrupted")
    commands.add_parser("sweep", help="Run one sweep cycle now")
    generate = commands.add_parser("generate", help="Generate a deposit address for an owner")
    generate.add_argument("owner_ref", type=int)
    generate.add_argument("--label", default=None)
    commands.add_parser("status", help="Show sweep and system status")
    balance = commands.add_parser("balance", help="Show an owner's balances")
    balance.add_argument("owner_ref", type=int)
    args = parser.parse_args(argv)

    try:
        services = build_services(Settings.from_env())
        if args.command == "run":
            run_forever(services)
        elif args.command == "sweep":
            result = services.sweeps.run_sweep()
            if result is None:
                print("[skip] A sweep cycle is already running")
            else:
                _print({
                    "addresses": result.addresses,
                    "transfers": result.transfers,
                    "total_swept": result.total_swept,
                    "errors": result.errors,
                })
        elif args.command == "generate":
            _print(services.addresses.generate_address(args.owner_ref, label=args.label))
        elif args.command == "status":
            _print(services.sweeps.status())
        elif args.command == "balance":
            _print(services.addresses.owner_balances(args.owner_ref))
    except SweeperError as e:
        logger.error(f"❌ {type(e).__name__}: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
