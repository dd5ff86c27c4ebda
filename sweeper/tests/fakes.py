import itertools
import threading
from decimal import Decimal


# Public BIP-39 test vector; never holds funds
MNEMONIC = "abandon abandon abandon abandon abandon abandon abandon abandon abandon abandon abandon about"
SECRET = "test-encryption-secret"
MASTER = "TJRabPrwbZy45sbavfcjinPJC18kjpRTv8"
USDT = "TR7NHqjeKQxGTCi8q8ZY4pL8otSzgjLj6t"


class FakeContract:
    def __init__(self, address):
        self.address = address


class FakeChain:
    """In-memory chain: balances per address, transfers move them"""

    def __init__(self):
        self.native = {}
        self.token = {}
        self.key_owner = {}
        self.unreadable_native = set()
        self.unreadable_token = set()
        self.reject_keys = set()
        self.contract_failures = 0
        self.contract_loads = 0
        self.submitted = []
        self._txids = itertools.count(1)
        self._lock = threading.Lock()

    def fund(self, address, native="0", token="0"):
        self.native[address] = Decimal(str(native))
        self.token[address] = Decimal(str(token))

    def get_native_balance(self, address):
        if address in self.unreadable_native:
            raise ConnectionError("node timeout")
        return self.native.get(address, Decimal("0"))

    def load_contract(self, contract_address):
        with self._lock:
            self.contract_loads += 1
            if self.contract_failures:
                self.contract_failures -= 1
                raise ConnectionError("contract lookup failed")
        return FakeContract(contract_address)

    def call_view(self, contract, method, *args):
        assert method == "balanceOf"
        address = args[0]
        if address in self.unreadable_token:
            raise ConnectionError("node timeout")
        return int(self.token.get(address, Decimal("0")) * 10**6)

    def is_valid_address(self, value):
        return isinstance(value, str) and value.startswith("T") and len(value) == 34

    def network_status(self):
        return {"status": "connected", "network": "test", "block": 1}

    def _submit(self, private_key, kind, to_address, amount):
        if private_key in self.reject_keys:
            raise RuntimeError("transaction rejected: balance is not sufficient")
        source = self.key_owner[private_key]
        book = self.token if kind == "fungible" else self.native
        with self._lock:
            book[source] = book.get(source, Decimal("0")) - amount
            book[to_address] = book.get(to_address, Decimal("0")) + amount
            tx_hash = f"{next(self._txids):064x}"
            self.submitted.append({"kind": kind, "from": source, "to": to_address,
                                   "amount": amount, "tx_hash": tx_hash})
        return tx_hash

    def submit_native_transfer(self, private_key, to_address, amount):
        return self._submit(private_key, "native", to_address, Decimal(amount))

    def submit_token_transfer(self, private_key, contract, to_address, raw_amount, fee_limit):
        self.last_fee_limit = fee_limit
        return self._submit(private_key, "fungible", to_address, Decimal(raw_amount) / 10**6)


class FakeNotifier:
    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []

    def notify(self, owner_ref, message, category="sweep"):
        if self.fail:
            raise ConnectionError("redis unavailable")
        self.sent.append((owner_ref, message, category))
        return True
