"""
Shared pytest fixtures for the Fusion test suite.
"""

import pytest

from fusion_core.keystore import new_passphrase_keystore
from fusion_core.manager import AccountManager

# Far below the light preset; keeps every unlock in the low milliseconds.
TEST_SCRYPT_N = 1 << 10
TEST_SCRYPT_P = 1


@pytest.fixture
def keystore():
    """Passphrase keystore with a cheap scrypt cost."""
    return new_passphrase_keystore(TEST_SCRYPT_N, TEST_SCRYPT_P)


@pytest.fixture
def keystore_dir(tmp_path):
    """Empty key directory."""
    d = tmp_path / "keystore"
    d.mkdir()
    return d


@pytest.fixture
def manager(keystore_dir, keystore):
    """Manager over an empty key directory."""
    return AccountManager(str(keystore_dir), keystore)


@pytest.fixture
def account(manager):
    """Freshly created, locked account with passphrase ``s3cr3t``."""
    return manager.new_account("s3cr3t")
