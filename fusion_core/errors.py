"""Exception hierarchy for key storage, unlocking and signing."""

from __future__ import annotations


class KeystoreError(Exception):
    """Base class for every error raised by the account keystore."""


class StorageError(KeystoreError):
    """An envelope file could not be read or written."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}")


class MalformedEnvelope(KeystoreError, ValueError):
    """Envelope JSON is unparsable, incomplete or carries bad hex."""


class IncompatibleVersion(KeystoreError):
    """Envelope was written by an incompatible keystore format version."""


class IntegrityCheckFailed(KeystoreError):
    """
    MAC mismatch.

    Raised for a wrong passphrase and for a corrupted envelope alike.
    """


class InvalidKeyMaterial(KeystoreError, ValueError):
    """Decrypted scalar is zero or not below the curve order."""


class AddressMismatch(KeystoreError):
    """Decrypted key does not belong to the address it was stored under."""

    def __init__(self, have: str, want: str) -> None:
        self.have = have
        self.want = want
        super().__init__(f"key content mismatch: have address {have}, want {want}")


class InvalidSignature(KeystoreError, ValueError):
    """Public key recovery from a compact signature failed."""


class AccountLocked(KeystoreError):
    """Signing was attempted on a locked account."""

    def __init__(self, message: str = "account locked, unlock it first") -> None:
        super().__init__(message)
