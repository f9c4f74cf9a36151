"""
Account handles for Fusion identities.

An ``Account`` always knows its address and key file.  The private key is
held only while the account is unlocked:

  - ``unlock(passphrase, timeout)`` decrypts the key file and keeps the key
  - ``lock()`` destroys the key material (idempotent)
  - ``sign(hash)`` produces a compact recoverable signature while unlocked

With a positive timeout, ``unlock`` arms a background timer that locks the
account when it fires.  Timers are independent: a later unlock neither
resets nor extends an earlier one, and each armed timer relocks once.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from datetime import timedelta
from typing import Union

from fusion_core.common import Address
from fusion_core.errors import AccountLocked
from fusion_core.keystore import Key, KeyStore
from fusion_core.rwlock import RWLock

logger = logging.getLogger("fusion_account")

Timeout = Union[float, int, timedelta]


def _seconds(timeout: Timeout) -> float:
    if isinstance(timeout, timedelta):
        return timeout.total_seconds()
    return float(timeout)


class Account:
    """One identity: address and key file, plus the key while unlocked."""

    def __init__(
        self,
        address: Address,
        filename: str,
        keystore: KeyStore,
    ):
        self._address = address
        self._filename = filename
        self._keystore = keystore
        self._key: Key | None = None
        self._mu = RWLock()

    # ---- metadata ----

    @property
    def address(self) -> Address:
        return self._address

    @property
    def filename(self) -> str:
        return self._filename

    @property
    def is_locked(self) -> bool:
        with self._mu.read_locked():
            return self._key is None

    # ---- lifecycle ----

    def unlock(self, passphrase: str, timeout: Timeout = 0) -> None:
        """
        Decrypt the key file and hold the key.

        On failure the account state is unchanged and the keystore error
        propagates.  A positive *timeout* (seconds or ``timedelta``) arms a
        one-shot relock timer.
        """
        with self._mu.write_locked():
            key = self._keystore.get_key(self._filename, self._address, passphrase)
            if self._key is not None:
                self._key.destroy()
            self._key = key
            logger.info(f"Account {self._address} unlocked")

        seconds = _seconds(timeout)
        if seconds > 0:
            timer = threading.Timer(seconds, self._expire)
            timer.daemon = True
            timer.start()

    def lock(self) -> None:
        """Destroy the key material; locking a locked account is a no-op."""
        with self._mu.write_locked():
            if self._key is None:
                return
            self._key.destroy()
            self._key = None
            logger.info(f"Account {self._address} locked")

    def _expire(self) -> None:
        logger.debug(f"Unlock timeout elapsed for {self._address}")
        self.lock()

    # ---- signing ----

    def sign(self, digest: bytes) -> bytes:
        """Sign a 32-byte hash; raises :class:`AccountLocked` when locked."""
        with self._mu.read_locked():
            if self._key is None:
                raise AccountLocked()
            return self._key.sign(digest)

    # ---- asyncio helpers ----

    async def unlock_async(self, passphrase: str, timeout: Timeout = 0) -> None:
        """``unlock`` on the default executor; scrypt never blocks the loop."""
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, lambda: self.unlock(passphrase, timeout))

    async def sign_async(self, digest: bytes) -> bytes:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, lambda: self.sign(digest))

    def __str__(self) -> str:
        return f"{self._address} At {self._filename}"

    def __repr__(self) -> str:
        state = "locked" if self._key is None else "unlocked"
        return f"Account({self._address.hex()}, {state})"
