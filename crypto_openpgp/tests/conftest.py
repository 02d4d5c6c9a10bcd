import random
from collections.abc import Callable

import pytest

from crypto_openpgp.keyring import SecretKeyring, generate
from crypto_openpgp.tests.constants import (
    ALICE,
    ALICE_PASSWORD,
    BOB,
    BOB_PASSWORD,
    CAROL,
    CAROL_PASSWORD,
    CREATED,
)


def _small_keyring(user_id: str, password: str) -> SecretKeyring:
    return generate(
        user_id,
        password,
        master=("RSA-SIGN", 1024),
        encryption=("RSA-ENCRYPT", 1024),
        date=CREATED,
    )


@pytest.fixture
def deterministic_random() -> Callable[[int], bytes]:
    return random.Random(1234).randbytes


@pytest.fixture(scope="session")
def alice() -> SecretKeyring:
    return _small_keyring(ALICE, ALICE_PASSWORD)


@pytest.fixture(scope="session")
def bob() -> SecretKeyring:
    return _small_keyring(BOB, BOB_PASSWORD)


@pytest.fixture(scope="session")
def carol() -> SecretKeyring:
    return _small_keyring(CAROL, CAROL_PASSWORD)
