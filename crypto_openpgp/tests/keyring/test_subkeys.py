import pytest
from pgpy.constants import KeyFlags, PubKeyAlgorithm, SignatureType

from crypto_openpgp.crypto.keys import clone, key_flags, key_id, unlocked
from crypto_openpgp.crypto.secure_bytes import SecureBytes
from crypto_openpgp.exceptions import (
    AuthenticationError,
    CapabilityError,
    ConfigurationError,
    UnsupportedAlgorithmError,
)
from crypto_openpgp.keyring import (
    SecretKeyring,
    add_subkeypair,
    keyring_encryption_key,
    keyring_signing_key,
    publish,
)
from crypto_openpgp.tests.constants import ALICE_PASSWORD, CREATED


def test_add_signing_subkey(alice: SecretKeyring) -> None:
    extended = add_subkeypair(
        alice, ALICE_PASSWORD, "sign", algorithm=("RSA-SIGN", 1024), date=CREATED
    )

    master = extended.get()
    old_ids = list(alice.get().subkeys)
    assert list(master.subkeys)[: len(old_ids)] == old_ids
    (new_id,) = set(master.subkeys) - set(old_ids)
    subkey = master.subkeys[new_id]
    assert key_flags(subkey) == {KeyFlags.Sign}
    (binding,) = subkey._signatures
    assert binding.type == SignatureType.Subkey_Binding
    assert "EmbeddedSignature" in binding._signature.subpackets
    public = extended.get_public_key()
    assert public.verify(public)
    # The master stays the preferred signing key
    assert key_id(keyring_signing_key(extended)) == alice.key_id


def test_add_subkey_leaves_the_input_untouched(alice: SecretKeyring) -> None:
    before = bytes(alice.get())

    add_subkeypair(alice, ALICE_PASSWORD, "sign", algorithm=("RSA-SIGN", 1024), date=CREATED)

    assert bytes(alice.get()) == before


def test_add_encryption_subkey_with_own_password(alice: SecretKeyring) -> None:
    extended = add_subkeypair(
        alice,
        ALICE_PASSWORD,
        "encrypt",
        algorithm=("RSA-ENCRYPT", 1024),
        subpassword="sub-password",
        expire=3600,
        date=CREATED,
    )

    master = clone(extended.get())
    (new_id,) = set(master.subkeys) - set(alice.get().subkeys)
    subkey = master.subkeys[new_id]
    assert subkey.key_algorithm == PubKeyAlgorithm.RSAEncryptOrSign
    assert subkey._signatures[0].key_expiration.total_seconds() == 3600
    with SecureBytes(b"sub-password") as secret, unlocked(subkey, secret):
        assert subkey.is_unlocked
    with SecureBytes.from_password(ALICE_PASSWORD) as secret, pytest.raises(AuthenticationError):
        with unlocked(subkey, secret):
            pass
    # The first encryption sub-key still wins
    assert key_id(keyring_encryption_key(extended)) == key_id(keyring_encryption_key(alice))


def test_elgamal_subkey_is_unsupported(alice: SecretKeyring) -> None:
    with pytest.raises(UnsupportedAlgorithmError):
        add_subkeypair(alice, ALICE_PASSWORD, "encrypt", algorithm=("ELGAMAL-ENCRYPT", 1024))


def test_sign_certify_usage_is_rejected(alice: SecretKeyring) -> None:
    with pytest.raises(CapabilityError):
        add_subkeypair(alice, ALICE_PASSWORD, "sign-certify")


@pytest.mark.parametrize(
    ("usage", "algorithm"),
    [("sign", ("RSA-ENCRYPT", 1024)), ("encrypt", ("DSA", 1024))],
)
def test_algorithm_must_fit_usage(
    alice: SecretKeyring, usage: str, algorithm: tuple[str, int]
) -> None:
    with pytest.raises(CapabilityError):
        add_subkeypair(alice, ALICE_PASSWORD, usage, algorithm=algorithm)


def test_public_keyring_cannot_grow_subkeys(alice: SecretKeyring) -> None:
    with pytest.raises(CapabilityError):
        add_subkeypair(publish(alice), ALICE_PASSWORD, "sign", algorithm=("RSA-SIGN", 1024))


def test_wrong_master_password(alice: SecretKeyring) -> None:
    with pytest.raises(AuthenticationError):
        add_subkeypair(alice, "not alice's password", "sign", algorithm=("RSA-SIGN", 1024))


def test_unknown_usage_is_rejected(alice: SecretKeyring) -> None:
    with pytest.raises(ConfigurationError):
        add_subkeypair(alice, ALICE_PASSWORD, "authenticate")
