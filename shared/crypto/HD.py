from hdwallet import HDWallet
from hdwallet.hds import BIP32HD
from hdwallet.mnemonics import BIP39Mnemonic
from hdwallet.cryptocurrencies import Tron
from hdwallet.derivations import CustomDerivation
from hdwallet.consts import PUBLIC_KEY_TYPES
from typing import Optional


class TRX:
    """BIP-44 TRON wallet (coin type 195) over a single mnemonic"""

    def __init__(self):
        self.cryptocurrency = Tron
        # Tron only has MAINNET in hdwallet 3.x; addresses are the same on testnets
        self.network = Tron.NETWORKS.MAINNET
        self.wallet: HDWallet = None

    def from_mnemonic(self, mnemonic: str, language: Optional[str] = "english", passphrase: Optional[str] = None):
        # Raises if the words or checksum are not valid BIP-39
        mnemonic_obj = BIP39Mnemonic(mnemonic=mnemonic)

        self.wallet = HDWallet(
            cryptocurrency=self.cryptocurrency,
            hd=BIP32HD,
            network=self.network,
            language=language or "english",
            public_key_type=PUBLIC_KEY_TYPES.COMPRESSED,
            passphrase=passphrase or ""
        ).from_mnemonic(mnemonic=mnemonic_obj)
        return self

    def clean_derivation(self):
        if self.wallet:
            self.wallet.clean_derivation()
        return self

    @staticmethod
    def path(index: int, change: bool = False, account: int = 0) -> str:
        change_val = 1 if change else 0
        return f"m/44'/{Tron.COIN_TYPE}'/{account}'/{change_val}/{index}"

    def new_address(self, change: Optional[bool] = False, index: Optional[int] = 0, account: Optional[int] = 0):
        if not self.wallet:
            raise ValueError("Wallet not initialized. Call from_mnemonic() first.")

        self.clean_derivation()
        derivation = CustomDerivation(path=self.path(index, change=change, account=account))
        self.wallet.from_derivation(derivation=derivation)

        address = self.wallet.address()
        priv_key = self.wallet.private_key()
        pub_key = self.wallet.public_key()

        self.clean_derivation()

        return address, priv_key, pub_key
