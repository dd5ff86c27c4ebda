import pytest

from db.connection import create_db_engine, make_session_factory, init_db
from db.store import AddressStore
from shared.config import Settings
from sweeper.balance_oracle import BalanceOracle
from sweeper.key_derivation import KeyDerivationService
from sweeper.ledger_recorder import LedgerRecorder
from sweeper.sweep_engine import SweepEngine, SweepPolicy
from sweeper.transfer_executor import TransferExecutor
from sweeper.tests.fakes import FakeChain, FakeNotifier, MNEMONIC, SECRET, MASTER, USDT


@pytest.fixture(scope="session")
def keys():
    return KeyDerivationService(MNEMONIC, "", SECRET)


@pytest.fixture
def db_engine(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'sweeper.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def store(db_engine):
    return AddressStore(make_session_factory(db_engine))


@pytest.fixture
def chain():
    return FakeChain()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        master_address=MASTER,
        encryption_key=SECRET,
        hd_mnemonic=MNEMONIC,
        usdt_contract_address=USDT,
        database_url=f"sqlite:///{tmp_path / 'sweeper.db'}",
        admin_ids=[1001, 1002],
    )


@pytest.fixture
def oracle(chain):
    return BalanceOracle(chain, USDT)


@pytest.fixture
def sweep_engine(store, keys, chain, oracle, notifier):
    return SweepEngine(
        store=store,
        keys=keys,
        oracle=oracle,
        executor=TransferExecutor(chain, oracle),
        recorder=LedgerRecorder(store, USDT),
        notifier=notifier,
        master_address=MASTER,
        policy=SweepPolicy(),
        workers=4,
    )


@pytest.fixture
def add_address(store, keys, chain):
    """Derive, store and fund a deposit address; returns its AddressRecord"""
    def _add(owner_ref=42, index=None, native="0", token="0"):
        store.get_or_create_user(owner_ref)
        if index is None:
            index = store.count_addresses_for(owner_ref)
        derived = keys.derive(index)
        address_id = store.insert_address(owner_ref, derived.address,
                                          keys.encrypt(derived.private_key), index,
                                          f"Address {index + 1}")
        chain.key_owner[derived.private_key] = derived.address
        chain.fund(derived.address, native, token)
        return store.get_address(address_id)
    return _add
