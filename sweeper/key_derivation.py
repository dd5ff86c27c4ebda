"""
Deterministic TRON key derivation and at-rest private key encryption.

The seed and the encryption secret are loaded once when the service is built
and never leave it. Same seed and index always yield the same address.
"""
import base64
import hashlib
import threading
from dataclasses import dataclass

from cryptography.fernet import Fernet, InvalidToken

from shared.crypto.HD import TRX
from shared.errors import DerivationError, DecryptionError
from shared.logger import setup_logging

logger = setup_logging(__name__)


@dataclass(frozen=True)
class DerivedKey:
    address: str
    private_key: str
    path: str

    def __repr__(self):
        return f"DerivedKey(address={self.address!r}, path={self.path!r})"


def fernet_key(secret: str) -> bytes:
    """Stretch an arbitrary secret string into a 32-byte urlsafe Fernet key"""
    return base64.urlsafe_b64encode(hashlib.sha256(secret.encode()).digest())


class KeyDerivationService:
    def __init__(self, mnemonic: str, passphrase: str = "", encryption_key: str = None):
        if not mnemonic or not mnemonic.strip():
            raise DerivationError("HD wallet mnemonic is not configured")
        if not encryption_key:
            raise DerivationError("Encryption key is not configured")

        try:
            self._wallet = TRX().from_mnemonic(
                " ".join(mnemonic.split()), passphrase=passphrase or ""
            )
        except Exception as e:
            raise DerivationError(f"Invalid HD wallet mnemonic: {e}") from e

        self._cipher = Fernet(fernet_key(encryption_key))
        # hdwallet keeps the current derivation on the wallet object
        self._lock = threading.Lock()
        logger.info("🔑 HD wallet seed loaded")

    def derive(self, index: int) -> DerivedKey:
        if isinstance(index, bool) or not isinstance(index, int) or index < 0:
            raise DerivationError(f"Invalid derivation index: {index!r}")

        path = TRX.path(index)
        try:
            with self._lock:
                address, private_key, _ = self._wallet.new_address(index=index)
        except Exception as e:
            raise DerivationError(f"Failed to derive {path}: {e}") from e
        return DerivedKey(address=address, private_key=private_key, path=path)

    def encrypt(self, private_key: str) -> str:
        return self._cipher.encrypt(private_key.encode()).decode()

    def decrypt(self, ciphertext: str) -> str:
        try:
            return self._cipher.decrypt(ciphertext.encode()).decode()
        except (InvalidToken, ValueError, TypeError, AttributeError) as e:
            raise DecryptionError("Stored private key could not be decrypted") from e
