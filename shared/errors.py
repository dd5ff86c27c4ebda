"""
Exception taxonomy shared by the key-derivation, transfer and sweep services.

Every error raised on purpose by this codebase derives from SweeperError so a
caller at a process boundary can catch the whole family in one place.
"""


class SweeperError(Exception):
    """Base class for all custody and sweep errors"""


class ConfigurationError(SweeperError):
    """Settings are missing or inconsistent; raised at startup only"""


class DerivationError(SweeperError):
    """Seed absent or malformed, or an invalid derivation index was requested"""


class DecryptionError(SweeperError):
    """Ciphertext does not decrypt under the configured encryption secret"""


class TransferError(SweeperError):
    """The chain rejected or could not accept a transfer submission"""

    def __init__(self, message: str, token_kind: str = None, cause: Exception = None):
        super().__init__(message)
        self.token_kind = token_kind
        self.cause = cause


class StoreError(SweeperError):
    """A persistence operation failed"""
