"""
Keyed record store used by the address and sweep services.

Every method opens its own short-lived session so that worker threads never
share one, and returns plain records rather than ORM instances; nothing read
here is meant to outlive a single sweep cycle.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Optional, Tuple, Any

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker, joinedload

from shared.errors import StoreError
from .models import (
    DerivedAddress,
    MasterWallet,
    STATUS_TRANSITIONS,
    SweepTransaction,
    TokenKind,
    TransactionStatus,
    TransactionType,
    User,
)


@dataclass(frozen=True)
class AddressRecord:
    id: int
    owner_ref: int
    derivation_index: int
    address: str
    private_key_encrypted: str
    label: Optional[str]
    is_active: bool
    last_balance: Decimal = Decimal("0")

    @classmethod
    def from_model(cls, row: DerivedAddress) -> "AddressRecord":
        return cls(
            id=row.id,
            owner_ref=row.owner_ref,
            derivation_index=row.derivation_index,
            address=row.address,
            private_key_encrypted=row.private_key_encrypted,
            label=row.label,
            is_active=row.is_active,
            last_balance=Decimal(str(row.last_balance or 0)),
        )


def _decimal(value) -> Decimal:
    return Decimal(str(value)) if value is not None else Decimal("0")


class AddressStore:
    def __init__(self, session_factory: sessionmaker):
        self.Session = session_factory

    # ===== Users =====

    def get_or_create_user(self, owner_ref: int, username: str = None,
                           first_name: str = None, last_name: str = None) -> int:
        session = self.Session()
        try:
            user = session.query(User).filter_by(owner_ref=owner_ref).first()
            if user is None:
                user = User(owner_ref=owner_ref)
                session.add(user)
            for field, value in (("username", username), ("first_name", first_name), ("last_name", last_name)):
                if value is not None:
                    setattr(user, field, value)
            session.commit()
            return user.id
        except IntegrityError:
            # Another request created the same owner first
            session.rollback()
            user = session.query(User).filter_by(owner_ref=owner_ref).first()
            if user is None:
                raise StoreError(f"Could not create user {owner_ref}")
            return user.id
        except SQLAlchemyError as e:
            session.rollback()
            raise StoreError(f"Error creating user {owner_ref}: {e}") from e
        finally:
            session.close()

    # ===== Addresses =====

    def count_addresses_for(self, owner_ref: int) -> int:
        """Number of indices already allocated to the owner, active or not"""
        session = self.Session()
        try:
            return session.query(func.count(DerivedAddress.id)).join(User).filter(
                User.owner_ref == owner_ref
            ).scalar() or 0
        except SQLAlchemyError as e:
            raise StoreError(f"Error counting addresses for {owner_ref}: {e}") from e
        finally:
            session.close()

    def insert_address(self, owner_ref: int, address: str, encrypted_private_key: str,
                       derivation_index: int, label: str = None) -> int:
        session = self.Session()
        try:
            user = session.query(User).filter_by(owner_ref=owner_ref).first()
            if user is None:
                raise StoreError(f"Unknown owner {owner_ref}")
            row = DerivedAddress(
                user_id=user.id,
                address=address,
                private_key_encrypted=encrypted_private_key,
                derivation_index=derivation_index,
                label=label,
                is_active=True,
            )
            session.add(row)
            session.commit()
            return row.id
        except IntegrityError as e:
            session.rollback()
            raise StoreError(
                f"Address {address} or index {derivation_index} already allocated"
            ) from e
        except SQLAlchemyError as e:
            session.rollback()
            raise StoreError(f"Error creating address: {e}") from e
        finally:
            session.close()

    def address_exists(self, address: str) -> bool:
        session = self.Session()
        try:
            return session.query(DerivedAddress.id).filter_by(address=address).first() is not None
        except SQLAlchemyError as e:
            raise StoreError(f"Error checking address {address}: {e}") from e
        finally:
            session.close()

    def get_address(self, address_id: int) -> Optional[AddressRecord]:
        session = self.Session()
        try:
            row = session.query(DerivedAddress).options(
                joinedload(DerivedAddress.user)
            ).filter_by(id=address_id).first()
            return AddressRecord.from_model(row) if row else None
        except SQLAlchemyError as e:
            raise StoreError(f"Error loading address {address_id}: {e}") from e
        finally:
            session.close()

    def get_user_addresses(self, owner_ref: int) -> List[AddressRecord]:
        session = self.Session()
        try:
            rows = session.query(DerivedAddress).options(
                joinedload(DerivedAddress.user)
            ).join(User).filter(
                User.owner_ref == owner_ref,
                DerivedAddress.is_active.is_(True)
            ).order_by(DerivedAddress.derivation_index).all()
            return [AddressRecord.from_model(row) for row in rows]
        except SQLAlchemyError as e:
            raise StoreError(f"Error getting addresses for {owner_ref}: {e}") from e
        finally:
            session.close()

    def list_active_addresses(self) -> List[AddressRecord]:
        session = self.Session()
        try:
            rows = session.query(DerivedAddress).options(
                joinedload(DerivedAddress.user)
            ).filter(DerivedAddress.is_active.is_(True)).all()
            return [AddressRecord.from_model(row) for row in rows]
        except SQLAlchemyError as e:
            raise StoreError(f"Error getting active addresses: {e}") from e
        finally:
            session.close()

    def update_address_balance(self, address_id: int, balance: Decimal,
                               total_received: Decimal = None):
        session = self.Session()
        try:
            values = {"last_balance": balance}
            if total_received is not None:
                values["total_received"] = total_received
            session.query(DerivedAddress).filter_by(id=address_id).update(values)
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise StoreError(f"Error updating balance of address {address_id}: {e}") from e
        finally:
            session.close()

    # ===== Transactions =====

    def insert_transaction(self, address_id: int, tx_hash: str, from_address: str,
                           to_address: str, amount: Decimal, token_kind: TokenKind,
                           token_contract: str = None,
                           tx_type: TransactionType = TransactionType.SWEEP,
                           status: TransactionStatus = TransactionStatus.PENDING) -> Tuple[int, bool]:
        """
        Insert a transaction row keyed by tx_hash.

        Returns (record_id, created). A row with the same hash, whether found
        up front or raced in and caught by the unique constraint, is returned
        with created=False.
        """
        session = self.Session()
        try:
            existing = session.query(SweepTransaction.id).filter_by(tx_hash=tx_hash).scalar()
            if existing is not None:
                return existing, False
            row = SweepTransaction(
                address_id=address_id,
                tx_hash=tx_hash,
                from_address=from_address,
                to_address=to_address,
                amount=amount,
                token_kind=token_kind,
                token_contract=token_contract,
                tx_type=tx_type,
                status=status,
            )
            session.add(row)
            session.commit()
            return row.id, True
        except IntegrityError as e:
            session.rollback()
            existing = session.query(SweepTransaction.id).filter_by(tx_hash=tx_hash).scalar()
            if existing is None:
                raise StoreError(f"Error recording transaction {tx_hash}: {e}") from e
            return existing, False
        except SQLAlchemyError as e:
            session.rollback()
            raise StoreError(f"Error recording transaction {tx_hash}: {e}") from e
        finally:
            session.close()

    def update_transaction_status(self, tx_hash: str, status: TransactionStatus,
                                  block_number: int = None, gas_used: int = None) -> bool:
        """
        Advance a transaction's status. Only pending -> confirmed|failed is
        allowed; repeating the current status is a no-op returning False.
        """
        session = self.Session()
        try:
            row = session.query(SweepTransaction).filter_by(tx_hash=tx_hash).first()
            if row is None:
                raise StoreError(f"Unknown transaction {tx_hash}")
            if row.status == status:
                return False
            if status not in STATUS_TRANSITIONS[row.status]:
                raise StoreError(
                    f"Transaction {tx_hash} cannot move from {row.status.value} to {status.value}"
                )
            row.status = status
            if block_number is not None:
                row.block_number = block_number
            if gas_used is not None:
                row.gas_used = gas_used
            session.commit()
            return True
        except SQLAlchemyError as e:
            session.rollback()
            raise StoreError(f"Error updating transaction {tx_hash}: {e}") from e
        finally:
            session.close()

    def get_transactions_by_owner(self, owner_ref: int, limit: int = 50) -> List[Dict[str, Any]]:
        session = self.Session()
        try:
            rows = session.query(SweepTransaction, DerivedAddress.address, DerivedAddress.label).join(
                DerivedAddress, SweepTransaction.address_id == DerivedAddress.id
            ).join(User).filter(
                User.owner_ref == owner_ref
            ).order_by(SweepTransaction.timestamp.desc(), SweepTransaction.id.desc()).limit(limit).all()
            return [
                {
                    "tx_hash": tx.tx_hash,
                    "address": address,
                    "label": label,
                    "amount": _decimal(tx.amount),
                    "token_kind": tx.token_kind.value,
                    "tx_type": tx.tx_type.value,
                    "status": tx.status.value,
                    "timestamp": tx.timestamp,
                }
                for tx, address, label in rows
            ]
        except SQLAlchemyError as e:
            raise StoreError(f"Error getting transactions for {owner_ref}: {e}") from e
        finally:
            session.close()

    # ===== Master wallet =====

    def upsert_master_wallet_balance(self, address: str, balance: Decimal, total_received: Decimal):
        session = self.Session()
        try:
            row = session.query(MasterWallet).filter_by(address=address).first()
            if row is None:
                row = MasterWallet(address=address)
                session.add(row)
            row.current_balance = balance
            row.total_received = total_received
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise StoreError(f"Error updating master wallet balance: {e}") from e
        finally:
            session.close()

    def get_master_wallet_stats(self, address: str = None) -> Optional[Dict[str, Any]]:
        session = self.Session()
        try:
            query = session.query(MasterWallet)
            if address is not None:
                query = query.filter_by(address=address)
            row = query.first()
            if row is None:
                return None
            return {
                "address": row.address,
                "current_balance": _decimal(row.current_balance),
                "total_received": _decimal(row.total_received),
                "last_updated": row.last_updated,
            }
        except SQLAlchemyError as e:
            raise StoreError(f"Error getting master wallet stats: {e}") from e
        finally:
            session.close()

    # ===== Reporting =====

    def get_system_stats(self) -> Dict[str, Any]:
        session = self.Session()
        try:
            total_users = session.query(func.count(User.id)).scalar()
            total_addresses = session.query(func.count(DerivedAddress.id)).filter(
                DerivedAddress.is_active.is_(True)).scalar()
            total_transactions = session.query(func.count(SweepTransaction.id)).scalar()
            total_balance = session.query(func.sum(DerivedAddress.last_balance)).filter(
                DerivedAddress.is_active.is_(True)).scalar()
            return {
                "total_users": total_users or 0,
                "total_addresses": total_addresses or 0,
                "total_transactions": total_transactions or 0,
                "total_balance": _decimal(total_balance),
            }
        except SQLAlchemyError as e:
            raise StoreError(f"Error getting system stats: {e}") from e
        finally:
            session.close()
