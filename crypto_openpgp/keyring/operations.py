"""
Keyring operations.

Every operation takes keyring values and returns a new keyring; inputs are
never modified, so a failure at any step leaves the caller's keyring as it
was. Role checks (master, signing, authority) run before any private key is
unlocked or any key is generated.
"""

from contextlib import nullcontext
from typing import Any, TypeVar

import structlog
from pgpy import PGPKey, PGPSignature, PGPUID
from pgpy.constants import KeyFlags, SymmetricKeyAlgorithm

from crypto_openpgp.config import (
    Date,
    GenerateConfig,
    make_config,
    parse_key_spec,
    to_timestamp,
)
from crypto_openpgp.crypto.keys import (
    SIGNATURE_HASH,
    bind_subkey,
    clone,
    find_user_id,
    fingerprint,
    is_revoked,
    key_flags,
    key_id,
    new_key,
    protect,
    protection_cipher,
    revocation_keys,
    unlocked,
)
from crypto_openpgp.crypto.secure_bytes import Password, SecureBytes
from crypto_openpgp.crypto.session_key import check_cipher
from crypto_openpgp.exceptions import CapabilityError
from crypto_openpgp.keyring.model import PublicKeyring, SecretKeyring
from crypto_openpgp.keyring.protocol import Keyring, KeyringKind
from crypto_openpgp.models.tags import (
    CertificationLevel,
    Cipher,
    KeyAlgorithm,
    KeyUsage,
    RekeyScope,
    RevocationReason,
    parse_tag,
)

logger = structlog.get_logger(__name__)

KeyringT = TypeVar("KeyringT", SecretKeyring, PublicKeyring)

_DEFAULT_SUBKEY_ALGORITHMS = {
    KeyUsage.SIGN: (KeyAlgorithm.RSA_SIGN, 2048),
    KeyUsage.ENCRYPT: (KeyAlgorithm.RSA_ENCRYPT, 2048),
}

_SIGNING_FLAGS = frozenset({KeyFlags.Sign})
_AUTHORITY_FLAGS = frozenset({KeyFlags.Sign, KeyFlags.Certify})
_ENCRYPTION_FLAGS = KeyUsage.ENCRYPT.flags


def _allows(key: PGPKey, wanted: frozenset[KeyFlags]) -> bool:
    # Keys without usage flags may be used for anything their algorithm supports
    flags = key_flags(key)
    return flags is None or bool(flags & wanted)


def _secret_master(keyring: Keyring, role: str) -> PGPKey:
    if keyring.kind != KeyringKind.SECRET:
        msg = f"{role} keyring holds no private key"
        raise CapabilityError(msg, key_id=keyring.key_id)
    master = clone(keyring.get())
    if not master.is_primary:
        msg = f"{role} key is not a master key"
        raise CapabilityError(msg, key_id=key_id(master))
    if not master.key_algorithm.can_sign or not _allows(master, _AUTHORITY_FLAGS):
        msg = f"{role} key is not a signing key"
        raise CapabilityError(msg, key_id=key_id(master))
    return master


def _require_authority(signer: PGPKey, target: PGPKey) -> None:
    # Key id comparison decides self-signing; authorized revokers match by fingerprint
    if key_id(signer) == key_id(target):
        return
    if any(revoker == fingerprint(signer) for revoker, _ in revocation_keys(target)):
        return
    msg = "Signer is neither the key owner nor an authorized revoker"
    raise CapabilityError(msg, key_id=key_id(signer))


def _protection_cipher(cipher: Any) -> SymmetricKeyAlgorithm:
    algorithm = parse_tag(Cipher, cipher).algorithm
    if algorithm != SymmetricKeyAlgorithm.Plaintext:
        check_cipher(algorithm)
    return algorithm


def _standard_profile(created: int, expire: int) -> dict[str, Any]:
    """Self-certification options: non-revocable, sign-certify, MDC feature, expiration."""
    profile: dict[str, Any] = {
        "usage": set(KeyUsage.SIGN_CERTIFY.flags),
        "hashes": [SIGNATURE_HASH],
        "hash": SIGNATURE_HASH,
        "created": created,
        "revocable": False,
    }
    if expire:
        profile["key_expiration"] = expire
    return profile


def generate(user_id: str, password: Password, **options: Any) -> SecretKeyring:
    """
    Generate a new keyring.

    Args:
        user_id: User id for the self-certification.
        password: Password protecting every private key.
        **options: GenerateConfig fields (date, master, encryption, cipher,
            expire, level).

    Returns:
        A secret keyring with a self-certified master key and, unless
        ``encryption`` is None, an encryption sub-key.

    Raises:
        ConfigurationError: For unrecognized options or tags.
        UnsupportedAlgorithmError: If a key algorithm cannot be generated.
        CapabilityError: If the master algorithm cannot sign or the
            encryption algorithm cannot encrypt.
    """
    config = make_config(GenerateConfig, options)
    created = config.timestamp
    master_algorithm, master_bits = config.master
    if not master_algorithm.can_sign:
        msg = f"Master key algorithm must be able to sign: {master_algorithm}"
        raise CapabilityError(msg)
    if config.encryption is not None and not config.encryption[0].can_encrypt:
        msg = f"Encryption key algorithm must be able to encrypt: {config.encryption[0]}"
        raise CapabilityError(msg)
    cipher = _protection_cipher(config.cipher)

    with SecureBytes.from_password(password) as secret:
        master = new_key(master_algorithm.algorithm, master_bits, created)
        uid = PGPUID.new(user_id)
        uid._parent = master
        uid |= master.certify(
            uid, config.level.signature_type, **_standard_profile(created, config.expire)
        )
        master |= uid

        if config.encryption is not None:
            algorithm, bits = config.encryption
            subkey = new_key(algorithm.algorithm, bits, created)
            bind_subkey(master, subkey, _ENCRYPTION_FLAGS, created, config.expire)
            protect(subkey, secret, cipher)
        protect(master, secret, cipher)

    logger.debug("Generated keyring", key_id=key_id(master), subkeys=len(master.subkeys))
    return SecretKeyring(key=master)


def certify(
    keyring: KeyringT,
    user_id: str,
    signer_keyring: Keyring,
    signer_password: Password,
    *,
    level: CertificationLevel | str = CertificationLevel.DEFAULT,
    date: Date = None,
    expire: int = 0,
) -> KeyringT:
    """
    Certify a user id on a keyring's master key.

    The signer must be the target's own master key (self-signing, which uses
    the standard profile) or a key the target authorized with add_revoker.

    Args:
        keyring: Keyring to certify (secret or public; the variant is kept).
        user_id: User id to bind; added if not yet present.
        signer_keyring: Secret keyring of the signer.
        signer_password: Password of the signer's master key.
        level: Certification level tag.
        date: Signature creation time.
        expire: Key lifetime from the key's creation for self-certifications.

    Returns:
        The keyring with one more certification.

    Raises:
        ConfigurationError: For an unrecognized level.
        CapabilityError: If the signer lacks authority over the keyring.
        AuthenticationError: If the signer password is wrong.
    """
    level = parse_tag(CertificationLevel, level)
    created = to_timestamp(date)
    target = keyring.get_public_key()
    signer = _secret_master(signer_keyring, "Signer")
    _require_authority(signer, target)

    uid = find_user_id(target, user_id)
    added = uid is None
    if added:
        uid = PGPUID.new(user_id)
        uid._parent = target
    if key_id(signer) == key_id(target):
        profile = _standard_profile(created, expire)
    else:
        profile = {"hash": SIGNATURE_HASH, "created": created}

    with SecureBytes.from_password(signer_password) as secret:
        with unlocked(signer, secret):
            signature = signer.certify(uid, level.signature_type, **profile)
    uid |= signature
    if added:
        target |= uid
    logger.debug("Certified user id", key_id=key_id(target), signer=key_id(signer))
    return keyring.put_public_key(target)


def add_subkeypair(
    keyring: SecretKeyring,
    password: Password,
    usage: KeyUsage | str,
    *,
    algorithm: tuple[KeyAlgorithm | str, int] | None = None,
    subpassword: Password | None = None,
    date: Date = None,
    expire: int = 0,
    cipher: Cipher | str = Cipher.AES_256,
) -> SecretKeyring:
    """
    Add a freshly generated signing or encryption sub-key.

    Args:
        keyring: Secret keyring to extend.
        password: Password of the master key.
        usage: "sign" or "encrypt".
        algorithm: (algorithm, strength); defaults to RSA-SIGN or
            RSA-ENCRYPT 2048 depending on ``usage``.
        subpassword: Password for the new sub-key, defaults to ``password``.
        date: Creation time of the sub-key and its binding.
        expire: Sub-key lifetime in seconds, 0 never expires.
        cipher: Cipher protecting the new private key.

    Returns:
        The keyring with one more sub-key; existing keys are untouched.

    Raises:
        ConfigurationError: For unrecognized tags.
        CapabilityError: If the master key cannot sign, or the algorithm
            does not fit the usage.
        AuthenticationError: If the master password is wrong.
    """
    usage = parse_tag(KeyUsage, usage)
    if usage == KeyUsage.SIGN_CERTIFY:
        msg = "Sub-key usage must be sign or encrypt"
        raise CapabilityError(msg)
    key_algorithm, bits = parse_key_spec(
        algorithm or _DEFAULT_SUBKEY_ALGORITHMS[usage], "algorithm"
    )
    capable = key_algorithm.can_sign if usage == KeyUsage.SIGN else key_algorithm.can_encrypt
    if not capable:
        msg = f"Algorithm {key_algorithm} cannot be used for {usage} sub-keys"
        raise CapabilityError(msg)
    protection = _protection_cipher(cipher)
    created = to_timestamp(date)

    master = _secret_master(keyring, "Master")
    sub_password = subpassword if subpassword is not None else password
    with (
        SecureBytes.from_password(password) as secret,
        SecureBytes.from_password(sub_password) as sub_secret,
    ):
        with unlocked(master, secret):
            subkey = new_key(key_algorithm.algorithm, bits, created)
            bind_subkey(master, subkey, usage.flags, created, expire)
            protect(subkey, sub_secret, protection)

    logger.debug("Added sub-key", key_id=key_id(master), subkey=key_id(subkey), usage=str(usage))
    return SecretKeyring(key=master)


def revoke(
    keyring: KeyringT,
    revoker_keyring: Keyring,
    revoker_password: Password,
    *,
    reason: RevocationReason | str | None = None,
    description: str = "",
    date: Date = None,
) -> KeyringT:
    """
    Revoke a keyring's master key.

    Args:
        keyring: Keyring to revoke (variant is kept).
        revoker_keyring: The keyring itself or an authorized revoker.
        revoker_password: Password of the revoker's master key.
        reason: Revocation reason tag; None records "no reason".
        description: Free-text explanation stored with the reason.
        date: Signature creation time.

    Raises:
        ConfigurationError: For an unrecognized reason.
        CapabilityError: If the revoker lacks authority.
        AuthenticationError: If the revoker password is wrong.
    """
    reason = parse_tag(RevocationReason, reason or RevocationReason.NO_REASON)
    created = to_timestamp(date)
    target = keyring.get_public_key()
    revoker = _secret_master(revoker_keyring, "Revoker")
    _require_authority(revoker, target)

    with SecureBytes.from_password(revoker_password) as secret:
        with unlocked(revoker, secret):
            signature = revoker.revoke(
                target,
                reason=reason.code,
                comment=description,
                created=created,
                hash=SIGNATURE_HASH,
            )
    target |= signature
    logger.debug("Revoked key", key_id=key_id(target), revoker=key_id(revoker))
    return keyring.put_public_key(target)


def keyring_revoked(keyring: Keyring) -> bool:
    """Whether the master key carries a key revocation signature."""
    return is_revoked(keyring.get())


def add_revoker(
    keyring: SecretKeyring,
    password: Password,
    revoker: Keyring,
    *,
    sensitive: bool = False,
    date: Date = None,
) -> SecretKeyring:
    """
    Authorize another keyring's master key to revoke (and certify) this one.

    Args:
        keyring: Secret keyring granting the authorization.
        password: Password of its master key.
        revoker: Keyring (either variant) of the authorized key.
        sensitive: Set the sensitive class bit.
        date: Signature creation time.

    Raises:
        CapabilityError: If the master key cannot sign.
        AuthenticationError: If the password is wrong.
    """
    created = to_timestamp(date)
    master = _secret_master(keyring, "Master")
    authorized = revoker.get_public_key()
    with SecureBytes.from_password(password) as secret:
        with unlocked(master, secret):
            signature = master.revoker(
                authorized, sensitive=sensitive, created=created, hash=SIGNATURE_HASH
            )
    master |= signature
    logger.debug("Added revoker", key_id=key_id(master), revoker=key_id(authorized))
    return SecretKeyring(key=master)


def rekey_password(
    keyring: SecretKeyring,
    old_password: Password | None,
    new_password: Password,
    *,
    scope: RekeyScope | str = RekeyScope.ALL,
    cipher: Cipher | str | None = None,
) -> SecretKeyring:
    """
    Replace the password protecting some or all private keys.

    Entries outside ``scope`` are kept byte-identical.

    Args:
        keyring: Secret keyring to re-protect.
        old_password: Current password of the selected keys; None when they
            are stored in the clear.
        new_password: New password.
        scope: "all", "master" or "subkeys".
        cipher: New protection cipher; each key keeps its own when None, and
            keys stored in the clear switch to AES-256.

    Raises:
        ConfigurationError: For an unrecognized scope or cipher.
        CapabilityError: If the keyring holds no private keys or does not
            start with a master key.
        AuthenticationError: If ``old_password`` does not unlock a selected key.
    """
    scope = parse_tag(RekeyScope, scope)
    algorithm = _protection_cipher(cipher) if cipher is not None else None
    if keyring.kind != KeyringKind.SECRET:
        msg = "Keyring holds no private keys"
        raise CapabilityError(msg, key_id=keyring.key_id)
    master = clone(keyring.get())
    if not master.is_primary:
        msg = "Keyring does not start with a master key"
        raise CapabilityError(msg, key_id=key_id(master))

    selected: list[PGPKey] = []
    if scope in (RekeyScope.ALL, RekeyScope.MASTER):
        selected.append(master)
    if scope in (RekeyScope.ALL, RekeyScope.SUBKEYS):
        selected.extend(master.subkeys.values())

    old_secret = (
        nullcontext() if old_password is None else SecureBytes.from_password(old_password)
    )
    with (
        old_secret as old,
        SecureBytes.from_password(new_password) as new,
    ):
        for key in selected:
            key_cipher = algorithm if algorithm is not None else protection_cipher(key)
            if algorithm is None and key_cipher == SymmetricKeyAlgorithm.Plaintext:
                # Keys stored in the clear pick up the default cipher
                key_cipher = Cipher.AES_256.algorithm
            with unlocked(key, old):
                protect(key, new, key_cipher)

    logger.debug("Changed keyring password", key_id=key_id(master), scope=str(scope))
    return SecretKeyring(key=master)


def publish(keyring: Keyring) -> PublicKeyring:
    """The distributable public keyring."""
    return keyring.get_public()


def keyring_user_ids(keyring: Keyring) -> tuple[str, ...]:
    return tuple(uid.userid for uid in keyring.get().userids)


def keyring_certifications(keyring: Keyring, user_id: str) -> tuple[PGPSignature, ...]:
    uid = find_user_id(keyring.get_public_key(), user_id)
    if uid is None:
        return ()
    return tuple(uid._signatures)


def _usable_keys(keyring: Keyring) -> list[PGPKey]:
    master = keyring.get_public_key()
    # A revoked master takes its sub-keys with it
    if is_revoked(master):
        return []
    return [master] + [key for key in master.subkeys.values() if not is_revoked(key)]


def keyring_encryption_key(keyring: Keyring) -> PGPKey | None:
    """First usable public key that can encrypt, master first; None once the master is revoked."""
    for key in _usable_keys(keyring):
        if key.key_algorithm.can_encrypt and _allows(key, _ENCRYPTION_FLAGS):
            return key
    return None


def keyring_signing_key(keyring: Keyring) -> PGPKey | None:
    """First non-revoked public key that can sign, master first."""
    for key in _usable_keys(keyring):
        if key.key_algorithm.can_sign and _allows(key, _SIGNING_FLAGS):
            return key
    return None


def keyring_revokers(keyring: Keyring) -> tuple[str, ...]:
    """Fingerprints (40 uppercase hex digits) of the authorized revokers."""
    return tuple(revoker for revoker, _ in revocation_keys(keyring.get()))
