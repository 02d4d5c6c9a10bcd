"""
OpenPGP keys, backed by pgpy.

Keys are ``pgpy.PGPKey`` values. Keyring operations never touch a key they
were handed: they work on a ``clone`` and return it. Private material stays
protected except inside an ``unlocked`` block, which unlocks a single key
(master or sub-key) and locks it again on exit.
"""

import copy
from collections.abc import Iterable, Iterator
from contextlib import contextmanager

import structlog
from pgpy import PGPKey, PGPSignature, PGPUID
from pgpy.constants import (
    HashAlgorithm,
    KeyFlags,
    PubKeyAlgorithm,
    RevocationKeyClass,
    SignatureType,
    SymmetricKeyAlgorithm,
)
from pgpy.errors import PGPDecryptionError
from pgpy.packet.fields import String2Key
from pgpy.packet.packets import PrivSubKeyV4

from crypto_openpgp.crypto.secure_bytes import SecureBytes
from crypto_openpgp.exceptions import (
    AuthenticationError,
    ConfigurationError,
    MalformedInputError,
    UnsupportedAlgorithmError,
)

logger = structlog.get_logger(__name__)

SIGNATURE_HASH = HashAlgorithm.SHA256
PROTECTION_HASH = HashAlgorithm.SHA256

_REVOCATIONS = frozenset({SignatureType.KeyRevocation, SignatureType.SubkeyRevocation})


def new_key(algorithm: PubKeyAlgorithm, bits: int, created: int) -> PGPKey:
    """
    Generate an unprotected primary key.

    Raises:
        UnsupportedAlgorithmError: If pgpy cannot generate ``algorithm`` keys.
        ConfigurationError: If ``bits`` is not a valid strength for it.
    """
    try:
        return PGPKey.new(algorithm, bits, created=created)
    except NotImplementedError as e:
        msg = f"Key generation is not available for {algorithm.name}"
        raise UnsupportedAlgorithmError(msg, algorithm=algorithm) from e
    except ValueError as e:
        msg = f"Invalid strength {bits} for {algorithm.name}: {e}"
        raise ConfigurationError(msg) from e


def load_key(data: bytes) -> PGPKey:
    """
    Parse a transferable key, binary or armored.

    Raises:
        MalformedInputError: If the data holds no key.
    """
    try:
        key, _ = PGPKey.from_blob(data)
    except Exception as e:
        msg = f"Failed to parse key: {e}"
        raise MalformedInputError(msg) from e
    if key._key is None:
        msg = "Input holds no key packet"
        raise MalformedInputError(msg)
    return key


def clone(key: PGPKey) -> PGPKey:
    """Independent copy of a key, its user ids, sub-keys and signatures."""
    return load_key(bytes(key))


def public_clone(key: PGPKey) -> PGPKey:
    if key.is_public:
        return clone(key)
    return load_key(bytes(key.pubkey))


def key_id(key: PGPKey) -> str:
    return str(key.fingerprint.keyid)


def fingerprint(key: PGPKey) -> str:
    """Full v4 fingerprint as 40 uppercase hex digits."""
    return str(key.fingerprint)


def find_user_id(key: PGPKey, user_id: str) -> PGPUID | None:
    return next((uid for uid in key.userids if uid.userid == user_id), None)


@contextmanager
def unlocked(key: PGPKey, secret: SecureBytes | None) -> Iterator[PGPKey]:
    """
    Unlock the private material of one key for the duration of the block.

    Sub-keys are not touched; each carries its own protection. Unprotected
    keys are yielded as they are.

    Raises:
        AuthenticationError: If ``secret`` does not decrypt the key.
    """
    if key.is_protected:
        if secret is None:
            msg = "Private key is password protected"
            raise AuthenticationError(msg, key_id=key_id(key))
        try:
            key._key.unprotect(bytes(secret))
        except PGPDecryptionError as e:
            msg = "Password does not unlock the private key"
            raise AuthenticationError(msg, key_id=key_id(key)) from e
    try:
        yield key
    finally:
        # Covers keys protected inside the block; Plaintext keys stay in the clear
        if key.is_protected:
            key._key.keymaterial.clear()


def protect(key: PGPKey, secret: SecureBytes, cipher: SymmetricKeyAlgorithm) -> None:
    """
    Protect one unlocked key in place; ``Plaintext`` stores it in the clear.

    Salt and IV come from the OS CSPRNG (pgpy's S2K).
    """
    material = key._key.keymaterial
    if cipher == SymmetricKeyAlgorithm.Plaintext:
        material.s2k = String2Key()
        material._compute_chksum()
    else:
        key._key.protect(bytes(secret), cipher, PROTECTION_HASH)
    key._key.update_hlen()


def protection_cipher(key: PGPKey) -> SymmetricKeyAlgorithm:
    if not key.is_protected:
        return SymmetricKeyAlgorithm.Plaintext
    return key._key.keymaterial.s2k.encalg


def key_flags(key: PGPKey) -> frozenset[KeyFlags] | None:
    """
    Usage flags from the newest self-signature, or None if it carries none.

    Masters read the self-certifications of their user ids, sub-keys their
    binding signature.
    """
    if key.is_primary:
        candidates = [uid.selfsig for uid in key.userids if uid.selfsig is not None]
    else:
        candidates = [sig for sig in key._signatures if sig.type == SignatureType.Subkey_Binding]
    candidates = [sig for sig in candidates if sig.key_flags]
    if not candidates:
        return None
    newest = max(candidates, key=lambda sig: sig.created)
    return frozenset(newest.key_flags)


def is_revoked(key: PGPKey) -> bool:
    return any(sig.type in _REVOCATIONS for sig in key._signatures)


def revocation_keys(key: PGPKey) -> Iterator[tuple[str, bool]]:
    """Yield (fingerprint, sensitive) for each authorized revoker of ``key``."""
    for sig in key._signatures:
        if sig.type != SignatureType.DirectlyOnKey:
            continue
        for subpacket in sig._signature.subpackets["h_RevocationKey"]:
            sensitive = RevocationKeyClass.Sensitive in subpacket.keyclass
            yield str(subpacket.fingerprint), sensitive


def bind_subkey(
    master: PGPKey,
    subkey: PGPKey,
    flags: frozenset[KeyFlags],
    created: int,
    expire: int,
) -> PGPSignature:
    """
    Attach a freshly generated key to ``master`` as a sub-key.

    Both keys must be unlocked. Signing sub-keys embed a primary key binding
    signature made by the sub-key itself.
    """
    converted = PrivSubKeyV4()
    converted.pkalg = subkey._key.pkalg
    converted.created = subkey._key.created
    converted.keymaterial = subkey._key.keymaterial
    converted.update_hlen()
    subkey._key = converted
    subkey._parent = master
    master._children[key_id(subkey)] = subkey

    binding = PGPSignature.new(
        SignatureType.Subkey_Binding,
        master.key_algorithm,
        SIGNATURE_HASH,
        key_id(master),
        created=created,
    )
    subpackets = binding._signature.subpackets
    subpackets.addnew("KeyFlags", hashed=True, flags=set(flags))
    if expire:
        subpackets.addnew("KeyExpirationTime", hashed=True, expires=expire)
    if KeyFlags.Sign in flags:
        cross = subkey.bind(master, hash=SIGNATURE_HASH, created=created)
        subpackets.addnew("EmbeddedSignature", hashed=False, _sig=cross._signature)

    binding = master._sign(subkey, binding)
    subkey |= binding
    return binding


def merge(target: PGPKey, update: PGPKey) -> None:
    """
    Copy into ``target`` every signature and user id of ``update`` it lacks.

    Signatures are matched by their encoding, user ids by their text and
    sub-keys by key id; nothing already in ``target`` is removed.
    """
    _merge_signatures(target, update._signatures)
    for uid in update.userids:
        existing = find_user_id(target, uid.userid)
        if existing is None:
            target |= copy.copy(uid)
        else:
            _merge_signatures(existing, uid._signatures)
    for subkey_id, subkey in update.subkeys.items():
        existing_subkey = target.subkeys.get(subkey_id)
        if existing_subkey is not None:
            _merge_signatures(existing_subkey, subkey._signatures)


def _merge_signatures(holder: PGPKey | PGPUID, signatures: Iterable[PGPSignature]) -> None:
    known = {bytes(sig) for sig in holder._signatures}
    for sig in signatures:
        encoded = bytes(sig)
        if sig.embedded or encoded in known:
            continue
        holder |= copy.copy(sig)
        known.add(encoded)
