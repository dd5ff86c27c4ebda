from decimal import Decimal

from db.models import TokenKind, TransactionStatus, TransactionType
from db.store import AddressStore
from shared.logger import setup_logging
from .transfer_executor import TransferReceipt

logger = setup_logging(__name__)


class LedgerRecorder:
    """Persists transfer results; recording the same hash twice is a no-op"""

    def __init__(self, store: AddressStore, token_contract_address: str = None):
        self.store = store
        self.token_contract_address = token_contract_address

    def record(self, address_id: int, receipt: TransferReceipt) -> int:
        contract = self.token_contract_address if receipt.token_kind == TokenKind.FUNGIBLE else None
        record_id, created = self.store.insert_transaction(
            address_id=address_id,
            tx_hash=receipt.tx_hash,
            from_address=receipt.from_address,
            to_address=receipt.to_address,
            amount=receipt.amount,
            token_kind=receipt.token_kind,
            token_contract=contract,
            tx_type=TransactionType.SWEEP,
            status=TransactionStatus.PENDING,
        )
        if created:
            logger.info(f"📝 Recorded {receipt.token_kind.value} sweep {receipt.tx_hash} as #{record_id}")
        else:
            logger.info(f"Transaction {receipt.tx_hash} already recorded as #{record_id}")
        return record_id

    def update_master_balance(self, address: str, balance: Decimal, total_received: Decimal):
        self.store.upsert_master_wallet_balance(address, balance, total_received)
        logger.info(f"🏦 Master wallet {address}: balance {balance}, total received {total_received}")
