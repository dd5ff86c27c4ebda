import enum
import datetime
from decimal import Decimal

from .base import Base, Timestamped
from sqlalchemy import (
    BigInteger,
    Boolean,
    Integer,
    String,
    Text,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Numeric,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import relationship, Mapped, mapped_column


class TokenKind(enum.Enum):
    NATIVE = "native"
    FUNGIBLE = "fungible"


class TransactionType(enum.Enum):
    DEPOSIT = "deposit"
    SWEEP = "sweep"
    WITHDRAWAL = "withdrawal"


class TransactionStatus(enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


# Allowed forward moves; anything else would rewrite history.
STATUS_TRANSITIONS = {
    TransactionStatus.PENDING: {TransactionStatus.CONFIRMED, TransactionStatus.FAILED},
    TransactionStatus.CONFIRMED: set(),
    TransactionStatus.FAILED: set(),
}


def _enum_values(enum_cls):
    return [e.value for e in enum_cls]


class User(Timestamped):
    __tablename__ = "users"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_ref: Mapped[int] = mapped_column(BigInteger, unique=True, nullable=False, index=True)
    username: Mapped[str | None] = mapped_column(String(255), nullable=True)
    first_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_admin: Mapped[bool] = mapped_column(Boolean, default=False)

    addresses = relationship("DerivedAddress", back_populates="user", passive_deletes=True)

    def __repr__(self):
        return f"<User {self.id}: owner_ref={self.owner_ref}>"


class DerivedAddress(Timestamped):
    __tablename__ = "addresses"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey(
        "users.id", ondelete="CASCADE"), nullable=False, index=True)
    address: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    private_key_encrypted: Mapped[str] = mapped_column(Text, nullable=False)
    derivation_index: Mapped[int] = mapped_column(Integer, nullable=False)
    label: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    last_balance: Mapped[Decimal] = mapped_column(Numeric(20, 6), default=0)
    total_received: Mapped[Decimal] = mapped_column(Numeric(20, 6), default=0)

    user = relationship("User", back_populates="addresses")
    transactions = relationship("SweepTransaction", back_populates="source", passive_deletes=True)

    __table_args__ = (
        UniqueConstraint('user_id', 'derivation_index', name='uq_user_derivation_index'),
    )

    @property
    def owner_ref(self):
        return self.user.owner_ref if self.user else None

    def __repr__(self):
        return f"<DerivedAddress {self.id}: {self.address} index={self.derivation_index}>"


class SweepTransaction(Base):
    __tablename__ = "transactions"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    address_id: Mapped[int] = mapped_column(Integer, ForeignKey(
        "addresses.id", ondelete="CASCADE"), nullable=False, index=True)
    tx_hash: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    from_address: Mapped[str] = mapped_column(String(64), nullable=False)
    to_address: Mapped[str] = mapped_column(String(64), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(20, 6), nullable=False)
    token_kind: Mapped[TokenKind] = mapped_column(
        Enum(TokenKind, values_callable=_enum_values), nullable=False)
    token_contract: Mapped[str | None] = mapped_column(String(64), nullable=True)
    tx_type: Mapped[TransactionType] = mapped_column(
        Enum(TransactionType, values_callable=_enum_values), nullable=False, default=TransactionType.SWEEP)
    status: Mapped[TransactionStatus] = mapped_column(
        Enum(TransactionStatus, values_callable=_enum_values), nullable=False,
        default=TransactionStatus.PENDING, index=True)
    block_number: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    gas_used: Mapped[int | None] = mapped_column(Integer, nullable=True)
    timestamp: Mapped[datetime.datetime] = mapped_column(DateTime, default=func.now(), index=True)

    source = relationship("DerivedAddress", back_populates="transactions")

    def __repr__(self):
        return f"<SweepTransaction {self.tx_hash}: {self.amount} {self.token_kind.value} {self.status.value}>"


class MasterWallet(Base):
    __tablename__ = "master_wallet"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    address: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    current_balance: Mapped[Decimal] = mapped_column(Numeric(20, 6), default=0)
    total_received: Mapped[Decimal] = mapped_column(Numeric(20, 6), default=0)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime, default=func.now())
    last_updated: Mapped[datetime.datetime] = mapped_column(DateTime, default=func.now(), onupdate=func.now())


Index('idx_transactions_status_timestamp', SweepTransaction.status, SweepTransaction.timestamp)
