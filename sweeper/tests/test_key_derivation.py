import pytest
from tronpy.keys import PrivateKey, is_address

from shared.errors import DerivationError, DecryptionError
from sweeper.key_derivation import KeyDerivationService
from sweeper.tests.fakes import MNEMONIC, SECRET


def test_same_seed_and_index_give_same_address(keys):
    other = KeyDerivationService(MNEMONIC, "", "another-secret")
    assert keys.derive(0).address == other.derive(0).address
    assert keys.derive(7).private_key == other.derive(7).private_key


def test_distinct_indices_give_distinct_addresses(keys):
    addresses = {keys.derive(i).address for i in range(5)}
    assert len(addresses) == 5


def test_derivation_path(keys):
    assert keys.derive(0).path == "m/44'/195'/0'/0/0"
    assert keys.derive(12).path == "m/44'/195'/0'/0/12"


def test_derived_key_matches_tron_address(keys):
    derived = keys.derive(3)
    assert is_address(derived.address)
    assert derived.address.startswith("T")
    signer = PrivateKey(bytes.fromhex(derived.private_key))
    assert signer.public_key.to_base58check_address() == derived.address


def test_passphrase_changes_addresses(keys):
    protected = KeyDerivationService(MNEMONIC, "TREZOR", SECRET)
    assert protected.derive(0).address != keys.derive(0).address


def test_repr_hides_private_key(keys):
    derived = keys.derive(0)
    assert derived.private_key not in repr(derived)


def test_negative_index_rejected(keys):
    with pytest.raises(DerivationError):
        keys.derive(-1)


def test_non_integer_index_rejected(keys):
    with pytest.raises(DerivationError):
        keys.derive("1")


@pytest.mark.parametrize("mnemonic", ["", "   ", "not a real mnemonic phrase at all"])
def test_bad_mnemonic_rejected(mnemonic):
    with pytest.raises(DerivationError):
        KeyDerivationService(mnemonic, "", SECRET)


def test_missing_encryption_key_rejected():
    with pytest.raises(DerivationError):
        KeyDerivationService(MNEMONIC, "", "")


def test_encryption_round_trip(keys):
    private_key = keys.derive(0).private_key
    ciphertext = keys.encrypt(private_key)
    assert ciphertext != private_key
    assert keys.decrypt(ciphertext) == private_key


def test_encryption_is_not_deterministic(keys):
    private_key = keys.derive(0).private_key
    assert keys.encrypt(private_key) != keys.encrypt(private_key)


def test_decrypt_with_wrong_secret_fails(keys):
    ciphertext = keys.encrypt(keys.derive(0).private_key)
    other = KeyDerivationService(MNEMONIC, "", "wrong-secret")
    with pytest.raises(DecryptionError):
        other.decrypt(ciphertext)


def test_decrypt_corrupted_ciphertext_fails(keys):
    ciphertext = keys.encrypt(keys.derive(0).private_key)
    with pytest.raises(DecryptionError):
        keys.decrypt(ciphertext[:-4] + "AAAA")
    with pytest.raises(DecryptionError):
        keys.decrypt("not-a-token")
