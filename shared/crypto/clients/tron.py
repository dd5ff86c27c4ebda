"""
TRON chain client used by the balance oracle and the transfer executor.

Wraps tronpy behind the handful of operations the sweeper needs. Reads return
plain Decimals/ints and raise on failure; the oracle decides what a failed
read means. Submissions sign with a PrivateKey built for that call only.
"""
import logging
from decimal import Decimal
from typing import Optional, Dict, Any

from pydantic import BaseModel
from tronpy import Tron
from tronpy.keys import PrivateKey, is_address
from tronpy.providers import HTTPProvider
from tronpy.exceptions import AddressNotFound

from shared.currency_precision import AmountConverter

logger = logging.getLogger(__name__)


class TronConfig(BaseModel):
    """Pydantic model for Tron configuration"""
    node_url: str
    api_key: Optional[str] = None
    network: str = "mainnet"
    timeout: float = 30.0

    @classmethod
    def from_settings(cls, settings) -> 'TronConfig':
        return cls(
            node_url=settings.node_url,
            api_key=settings.tron_api_key,
            network=settings.tron_network,
        )


class TronChainClient:
    """Thin adapter over a single tronpy client shared by all workers"""

    def __init__(self, tron_config: TronConfig, client: Tron = None):
        self.tron_config = tron_config
        self.client = client or Tron(
            provider=HTTPProvider(
                tron_config.node_url,
                timeout=tron_config.timeout,
                api_key=tron_config.api_key,
            )
        )

    # ===== Reads =====

    def get_native_balance(self, address: str) -> Decimal:
        """TRX balance in display units; an account never seen on chain holds zero"""
        try:
            return Decimal(self.client.get_account_balance(address))
        except AddressNotFound:
            return Decimal("0")

    def load_contract(self, contract_address: str):
        return self.client.get_contract(contract_address)

    def call_view(self, contract, method: str, *args) -> int:
        """Call a constant contract method, e.g. call_view(usdt, "balanceOf", addr)"""
        return getattr(contract.functions, method)(*args)

    def is_valid_address(self, value: str) -> bool:
        try:
            return bool(value) and is_address(value)
        except Exception:
            return False

    def network_status(self) -> Dict[str, Any]:
        try:
            node_info = self.client.get_node_info()
            return {
                "status": "connected",
                "network": self.tron_config.network,
                "block": node_info.get("block"),
                "solidity_block": node_info.get("solidityBlock"),
            }
        except Exception as e:
            logger.warning(f"TRON node unreachable: {e}")
            return {
                "status": "disconnected",
                "network": self.tron_config.network,
                "error": str(e),
            }

    # ===== Submissions =====

    def submit_native_transfer(self, private_key: str, to_address: str, amount: Decimal) -> str:
        """Sign and broadcast a TRX transfer; returns the txid"""
        signer = PrivateKey(bytes.fromhex(private_key))
        from_address = signer.public_key.to_base58check_address()
        amount_sun = AmountConverter.to_smallest_units(amount, "TRX")

        result = (
            self.client.trx
            .transfer(from_address, to_address, amount_sun)
            .build()
            .sign(signer)
            .broadcast()
        )
        return self._txid(result)

    def submit_token_transfer(self, private_key: str, contract, to_address: str,
                              raw_amount: int, fee_limit: int) -> str:
        """Sign and broadcast a TRC-20 transfer of raw_amount base units"""
        signer = PrivateKey(bytes.fromhex(private_key))
        from_address = signer.public_key.to_base58check_address()

        result = (
            contract.functions.transfer(to_address, raw_amount)
            .with_owner(from_address)
            .fee_limit(fee_limit)
            .build()
            .sign(signer)
            .broadcast()
        )
        return self._txid(result)

    @staticmethod
    def _txid(result) -> str:
        tx_id = result.get('txid') if isinstance(result, dict) else getattr(result, 'txid', None)
        if not tx_id:
            raise ValueError(f"Broadcast returned no transaction id: {result}")
        return tx_id
