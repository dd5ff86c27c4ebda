"""
On-demand deposit address generation and owner-facing balance queries.
"""
import threading
from decimal import Decimal
from typing import Dict, Any, Optional

from shared.crypto.clients.tron import TronChainClient
from shared.logger import setup_logging
from db.store import AddressStore
from .balance_oracle import BalanceOracle
from .key_derivation import KeyDerivationService

logger = setup_logging(__name__)


class AddressService:
    def __init__(self, store: AddressStore, keys: KeyDerivationService,
                 oracle: BalanceOracle, chain: TronChainClient, master_address: str):
        self.store = store
        self.keys = keys
        self.oracle = oracle
        self.chain = chain
        self.master_address = master_address
        # Index allocation is read-then-insert; serialize it within the process
        self._allocation_lock = threading.Lock()

    def generate_address(self, owner_ref: int, label: str = None,
                         profile: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        """
        Allocate the owner's next derivation index and store the new address.

        Raises DerivationError if the key cannot be derived and StoreError if
        the index or the derived address is already allocated.
        """
        self.store.get_or_create_user(owner_ref, **(profile or {}))

        with self._allocation_lock:
            index = self.store.count_addresses_for(owner_ref)
            derived = self.keys.derive(index)
            label = label or f"Address {index + 1}"
            address_id = self.store.insert_address(
                owner_ref=owner_ref,
                address=derived.address,
                encrypted_private_key=self.keys.encrypt(derived.private_key),
                derivation_index=index,
                label=label,
            )

        logger.info(f"🏷️ Generated address {derived.address} ({derived.path}) for owner {owner_ref}")
        return {
            "id": address_id,
            "address": derived.address,
            "derivation_index": index,
            "path": derived.path,
            "label": label,
        }

    def owner_balances(self, owner_ref: int) -> Dict[str, Any]:
        """Current balances of every active address of an owner, for display"""
        addresses = []
        total_native = Decimal("0")
        total_fungible = Decimal("0")
        for record in self.store.get_user_addresses(owner_ref):
            snapshot = self.oracle.read_balances(record.address)
            addresses.append({
                "address": record.address,
                "label": record.label,
                "trx": snapshot.native_or_zero,
                "usdt": snapshot.fungible_or_zero,
                "readable": snapshot.readable,
            })
            total_native += snapshot.native_or_zero
            total_fungible += snapshot.fungible_or_zero

        master = self.oracle.read_balances(self.master_address)
        return {
            "owner_ref": owner_ref,
            "addresses": addresses,
            "total_trx": total_native,
            "total_usdt": total_fungible,
            "master": {
                "address": self.master_address,
                "trx": master.native_or_zero,
                "usdt": master.fungible_or_zero,
            },
        }

    def is_valid_address(self, value: str) -> bool:
        return self.chain.is_valid_address(value)
