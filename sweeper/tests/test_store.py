from decimal import Decimal
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from db.models import TokenKind, TransactionStatus
from shared.errors import StoreError
from sweeper.ledger_recorder import LedgerRecorder
from sweeper.transfer_executor import TransferReceipt
from sweeper.tests.fakes import MASTER, USDT


def _receipt(tx_hash="ab" * 32, kind=TokenKind.FUNGIBLE, amount="120.5", source="TSource"):
    return TransferReceipt(tx_hash, kind, source, MASTER, Decimal(amount))


def test_get_or_create_user_is_stable(store):
    first = store.get_or_create_user(42, username="alice")
    second = store.get_or_create_user(42, first_name="Alice")
    assert first == second
    assert store.get_system_stats()["total_users"] == 1


def test_count_and_list_addresses(store, add_address):
    add_address(owner_ref=42)
    add_address(owner_ref=42)
    assert store.count_addresses_for(42) == 2
    assert store.count_addresses_for(7) == 0

    records = store.get_user_addresses(42)
    assert [r.derivation_index for r in records] == [0, 1]
    assert [r.label for r in records] == ["Address 1", "Address 2"]
    assert all(r.owner_ref == 42 for r in records)
    assert len(store.list_active_addresses()) == 2


def test_insert_address_for_unknown_owner_fails(store):
    with pytest.raises(StoreError):
        store.insert_address(99, "TUnknown", "cipher", 0)


def test_insert_duplicate_address_fails(store, add_address):
    record = add_address(owner_ref=42)
    store.get_or_create_user(43)
    with pytest.raises(StoreError):
        store.insert_address(43, record.address, "cipher", 0)
    assert store.address_exists(record.address)
    assert not store.address_exists("TNotStored")


def test_record_is_idempotent_per_hash(store, add_address):
    record = add_address()
    recorder = LedgerRecorder(store, USDT)
    receipt = _receipt(source=record.address)

    first = recorder.record(record.id, receipt)
    second = recorder.record(record.id, receipt)

    assert first == second
    history = store.get_transactions_by_owner(42)
    assert len(history) == 1
    assert history[0]["status"] == "pending"
    assert history[0]["token_kind"] == "fungible"
    assert history[0]["amount"] == Decimal("120.5")


def test_native_record_has_no_contract(store, add_address, db_engine):
    record = add_address()
    LedgerRecorder(store, USDT).record(record.id, _receipt(kind=TokenKind.NATIVE, amount="19"))
    with db_engine.connect() as conn:
        contract = conn.exec_driver_sql("SELECT token_contract FROM transactions").scalar()
    assert contract is None


def test_status_moves_forward_only(store, add_address):
    record = add_address()
    tx_hash = "cd" * 32
    store.insert_transaction(record.id, tx_hash, record.address, MASTER,
                             Decimal("5"), TokenKind.NATIVE)

    assert store.update_transaction_status(tx_hash, TransactionStatus.CONFIRMED, block_number=123) is True
    assert store.update_transaction_status(tx_hash, TransactionStatus.CONFIRMED) is False
    with pytest.raises(StoreError):
        store.update_transaction_status(tx_hash, TransactionStatus.PENDING)
    with pytest.raises(StoreError):
        store.update_transaction_status(tx_hash, TransactionStatus.FAILED)
    with pytest.raises(StoreError):
        store.update_transaction_status("ff" * 32, TransactionStatus.CONFIRMED)


def test_master_wallet_upsert(store):
    recorder = LedgerRecorder(store, USDT)
    assert store.get_master_wallet_stats(MASTER) is None

    recorder.update_master_balance(MASTER, Decimal("100"), Decimal("100"))
    recorder.update_master_balance(MASTER, Decimal("150.5"), Decimal("150.5"))

    stats = store.get_master_wallet_stats(MASTER)
    assert stats["current_balance"] == Decimal("150.5")
    assert stats["total_received"] == Decimal("150.5")


def test_address_balance_update_and_system_stats(store, add_address):
    record = add_address()
    store.update_address_balance(record.id, Decimal("12.25"))
    assert store.get_address(record.id).last_balance == Decimal("12.25")
    assert store.get_system_stats()["total_balance"] == Decimal("12.25")


def test_database_errors_become_store_errors(store):
    with patch.object(store, "Session") as session_factory:
        session_factory.return_value.query.side_effect = OperationalError("SELECT", {}, Exception("db down"))
        with pytest.raises(StoreError):
            store.list_active_addresses()
        session_factory.return_value.close.assert_called_once()
