"""
Directory-backed registry of accounts.

On construction the manager walks its key directory, reads the
``Address`` field of every JSON file it finds and registers a locked
``Account`` for it.  Nothing is decrypted during the scan.  Files that are
unreadable, not JSON, or carry a malformed address are skipped.

When two files claim the same address the one scanned last wins.  Files
are visited in sorted path order so the outcome is stable.

Usage:
    mgr = AccountManager("data/keystore")
    acct = mgr.new_account("passphrase")
    acct.unlock("passphrase", timeout=30)
    sig = acct.sign(tx_hash)
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import threading
from typing import TYPE_CHECKING

from fusion_core.account import Account, Timeout
from fusion_core.common import ADDRESS_LENGTH, Address
from fusion_core.keystore import KeyStore, new_passphrase_keystore
from fusion_core.rwlock import RWLock

if TYPE_CHECKING:
    from fusion_core.config import KeystoreConfig

logger = logging.getLogger("fusion_manager")

# Only the leading JSON value of a file is read; trailing bytes are ignored.
_DECODER = json.JSONDecoder()


class AccountManager:
    """Indexes every account under one storage directory by address."""

    def __init__(
        self,
        directory: str,
        keystore: KeyStore | None = None,
        unlock_timeout: float = 0.0,
    ):
        self.directory = str(directory)
        self.keystore = keystore if keystore is not None else new_passphrase_keystore()
        self.unlock_timeout = unlock_timeout
        self._accounts: dict[Address, Account] = {}
        self._mu = RWLock()
        self._scan_lock = threading.Lock()
        # accounts created while a rescan is walking the directory
        self._added: dict[Address, Account] = {}
        self._scanning = False
        self.rescan()

    @classmethod
    def from_config(cls, cfg: KeystoreConfig) -> AccountManager:
        n, p = cfg.scrypt_params()
        return cls(cfg.directory, new_passphrase_keystore(n, p), cfg.unlock_timeout)

    # ── scanning ─────────────────────────────────────────────────

    def _read_account(self, path: str) -> Account | None:
        try:
            with open(path, "r", encoding="utf-8") as f:
                data, _ = _DECODER.raw_decode(f.read().lstrip())
        except (OSError, ValueError) as exc:
            logger.debug(f"Skipping {path}: {exc}")
            return None
        if not isinstance(data, dict):
            return None
        raw = data.get("Address")
        if not isinstance(raw, str) or len(raw) != ADDRESS_LENGTH * 2:
            logger.debug(f"Skipping {path}: no valid Address field")
            return None
        try:
            address = Address(bytes.fromhex(raw))
        except ValueError:
            logger.debug(f"Skipping {path}: malformed address {raw!r}")
            return None
        return Account(address, path, self.keystore)

    def _scan(self) -> dict[Address, Account]:
        found: dict[Address, Account] = {}
        if not os.path.isdir(self.directory):
            return found
        for root, dirs, files in os.walk(self.directory):
            dirs.sort()
            for name in sorted(files):
                path = os.path.join(root, name)
                if not os.path.isfile(path):
                    continue
                account = self._read_account(path)
                if account is None:
                    continue
                if account.address in found:
                    logger.warning(
                        f"Duplicate key file for {account.address}: "
                        f"{path} replaces {found[account.address].filename}"
                    )
                found[account.address] = account
        return found

    def rescan(self) -> None:
        """
        Rebuild the registry from the files currently on disk.

        An account whose address and file are unchanged keeps its existing
        ``Account`` object, so an unlocked account stays unlocked and
        reachable.  Accounts that are replaced or no longer on disk are
        locked.  Accounts created by ``new_account`` during the scan are kept.
        """
        with self._scan_lock:
            with self._mu.write_locked():
                self._added = {}
                self._scanning = True
            try:
                found = self._scan()
            except BaseException:
                with self._mu.write_locked():
                    self._scanning = False
                raise
            with self._mu.write_locked():
                self._scanning = False
                previous = self._accounts
                merged: dict[Address, Account] = {}
                for address, account in found.items():
                    current = previous.get(address)
                    if current is not None and current.filename == account.filename:
                        account = current
                    merged[address] = account
                merged.update(self._added)
                self._added = {}
                self._accounts = merged
            kept = {id(a) for a in merged.values()}
            dropped = [a for a in previous.values() if id(a) not in kept]
        for account in dropped:
            account.lock()
        logger.info(f"Loaded {len(found)} account(s) from {self.directory}")

    # ── queries ──────────────────────────────────────────────────

    def accounts(self) -> list[Account]:
        with self._mu.read_locked():
            return list(self._accounts.values())

    def addresses(self) -> list[Address]:
        with self._mu.read_locked():
            return list(self._accounts.keys())

    def get(self, address: Address) -> Account | None:
        with self._mu.read_locked():
            return self._accounts.get(address)

    def __contains__(self, address: object) -> bool:
        with self._mu.read_locked():
            return address in self._accounts

    def __len__(self) -> int:
        with self._mu.read_locked():
            return len(self._accounts)

    # ── mutation ─────────────────────────────────────────────────

    def new_account(self, passphrase: str) -> Account:
        """Create, encrypt and store a new key; returns its account, locked."""
        address, key, filename = self.keystore.new_key(self.directory, passphrase)
        key.destroy()
        account = Account(address, filename, self.keystore)
        with self._mu.write_locked():
            self._accounts[address] = account
            if self._scanning:
                self._added[address] = account
        logger.info(f"New account {address} stored at {filename}")
        return account

    async def new_account_async(self, passphrase: str) -> Account:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, lambda: self.new_account(passphrase))

    def unlock(self, address: Address, passphrase: str, timeout: Timeout | None = None) -> Account:
        """Unlock a registered account, using the manager default timeout if none given."""
        account = self.get(address)
        if account is None:
            raise KeyError(f"Unknown account {address}")
        account.unlock(passphrase, self.unlock_timeout if timeout is None else timeout)
        return account

    def lock_all(self) -> None:
        for account in self.accounts():
            account.lock()
