"""
Fusion - account keystore for the Fusion blockchain client.

Key features:
- secp256k1 key pairs with BLAKE2b-derived 20-byte addresses
- Passphrase-encrypted key files (scrypt + AES-128-CTR + MAC)
- Lockable accounts with optional timed auto-relock
- Compact recoverable signatures and signer recovery
- Directory-backed account registry
"""

__version__ = "0.0.1"
__all__ = [
    "common",
    "version",
    "errors",
    "crypto_utils",
    "keystore",
    "rwlock",
    "account",
    "manager",
    "config",
    "logging_config",
]
