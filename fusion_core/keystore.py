"""
Key storage for Fusion accounts.

A ``KeyStore`` turns an in-memory :class:`Key` into the bytes of an
envelope file and back.  Two codecs exist:

  - ``PassphraseCodec`` — scrypt key derivation, AES-128-CTR encryption and
    a BLAKE2b MAC over the cipher text.  This is the production path.
  - ``PlainCodec``      — unencrypted JSON, for tests and tooling only.

Envelope file (one JSON object per account)::

    {"Address": "<40 hex>", "N": 262144, "R": 8, "P": 1, "DKlen": 32,
     "Salt": "<hex>", "IV": "<hex>", "Mac": "<hex>",
     "CipherText": "<hex>", "Version": <packed uint64>}

KDF parameters travel with every envelope so files written with older cost
settings stay decryptable.
"""

from __future__ import annotations

import hmac
import json
import logging
import os
import secrets
import time
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Union

from Crypto.Cipher import AES
from Crypto.Protocol.KDF import scrypt
from ecdsa import SigningKey, VerifyingKey

from fusion_core.common import Address
from fusion_core.crypto_utils import (
    PRIVATE_KEY_LENGTH,
    generate_private_key,
    hash256,
    pubkey_to_address,
    sign_compact,
    to_private_key,
)
from fusion_core.errors import (
    AccountLocked,
    AddressMismatch,
    IntegrityCheckFailed,
    MalformedEnvelope,
    StorageError,
)
from fusion_core.version import KEYSTORE_VERSION, VersionInfo

logger = logging.getLogger("fusion_keystore")

# scrypt cost presets.
# Standard: 256 MB of memory, roughly 1s of CPU on a modern processor.
STANDARD_SCRYPT_N = 1 << 18
STANDARD_SCRYPT_P = 1
# Light: 4 MB of memory, roughly 100ms of CPU.
LIGHT_SCRYPT_N = 1 << 12
LIGHT_SCRYPT_P = 6

SCRYPT_R = 8
SCRYPT_DKLEN = 32

# Upper bounds on envelope-supplied cost parameters; anything above is refused
# before scrypt runs.
MAX_SCRYPT_N = 1 << 20
MAX_SCRYPT_RP = 64

SCRYPT_PRESETS: dict[str, tuple[int, int]] = {
    "standard": (STANDARD_SCRYPT_N, STANDARD_SCRYPT_P),
    "light": (LIGHT_SCRYPT_N, LIGHT_SCRYPT_P),
}

KEY_FILE_MODE = 0o600


# ===================================================================
#  Key
# ===================================================================

class Key:
    """
    Decrypted secp256k1 key bound to its address.

    The scalar lives in a fixed-size ``bytearray`` so :meth:`destroy` can
    overwrite it in place.
    """

    def __init__(self, address: Address, private_key: bytes):
        self.address = address
        self._secret = bytearray(private_key)
        self._signing_key: SigningKey | None = None

    @classmethod
    def generate(cls) -> Key:
        scalar = generate_private_key()
        sk = to_private_key(scalar)
        key = cls(pubkey_to_address(sk), scalar)
        key._signing_key = sk
        return key

    @classmethod
    def from_scalar(cls, scalar: bytes) -> Key:
        """Rebuild a key pair; raises ``InvalidKeyMaterial`` for a bad scalar."""
        sk = to_private_key(scalar)
        key = cls(pubkey_to_address(sk), scalar)
        key._signing_key = sk
        return key

    @property
    def destroyed(self) -> bool:
        return self._signing_key is None and not any(self._secret)

    def private_key_bytes(self) -> bytes:
        return bytes(self._secret)

    def signing_key(self) -> SigningKey:
        if self._signing_key is None:
            if not any(self._secret):
                raise AccountLocked("key material has been destroyed")
            self._signing_key = to_private_key(bytes(self._secret))
        return self._signing_key

    @property
    def public_key(self) -> VerifyingKey:
        return self.signing_key().get_verifying_key()

    def sign(self, digest: bytes) -> bytes:
        return sign_compact(self.signing_key(), digest)

    def destroy(self) -> None:
        """Overwrite the scalar with random bytes, then zeros, and drop the signer."""
        n = len(self._secret)
        self._secret[:] = secrets.token_bytes(n)
        self._secret[:] = bytes(n)
        self._signing_key = None

    def __repr__(self) -> str:
        return f"Key({self.address.hex()})"


# ===================================================================
#  Envelope
# ===================================================================

def _unhex(field_name: str, value: Any, length: int | None = None) -> bytes:
    if not isinstance(value, str):
        raise MalformedEnvelope(f"{field_name} must be a hex string")
    try:
        raw = bytes.fromhex(value)
    except ValueError as exc:
        raise MalformedEnvelope(f"{field_name} is not valid hex") from exc
    if len(value) != len(raw) * 2:
        raise MalformedEnvelope(f"{field_name} is not valid hex")
    if length is not None and len(raw) != length:
        raise MalformedEnvelope(
            f"{field_name} must be {length} bytes, got {len(raw)}"
        )
    return raw


@dataclass
class EncryptedKeyJSON:
    """On-disk envelope; field names are the JSON keys."""

    Address: str
    N: int
    R: int
    P: int
    DKlen: int
    Salt: str
    IV: str
    Mac: str
    CipherText: str
    Version: int

    def to_json(self) -> bytes:
        return json.dumps(asdict(self)).encode("utf-8")

    @classmethod
    def from_json(cls, data: bytes | str) -> EncryptedKeyJSON:
        try:
            raw = json.loads(data)
        except (ValueError, UnicodeDecodeError) as exc:
            raise MalformedEnvelope(f"envelope is not valid JSON: {exc}") from exc
        if not isinstance(raw, dict):
            raise MalformedEnvelope("envelope must be a JSON object")

        values = {}
        for name, typ in (
            ("Address", str), ("N", int), ("R", int), ("P", int),
            ("DKlen", int), ("Salt", str), ("IV", str), ("Mac", str),
            ("CipherText", str), ("Version", int),
        ):
            if name not in raw:
                raise MalformedEnvelope(f"envelope is missing field {name}")
            value = raw[name]
            if not isinstance(value, typ) or isinstance(value, bool):
                raise MalformedEnvelope(f"envelope field {name} has the wrong type")
            values[name] = value
        return cls(**values)

    # ---- decoded views ----

    @property
    def address(self) -> Address:
        return Address(_unhex("Address", self.Address, 20))

    @property
    def salt(self) -> bytes:
        return _unhex("Salt", self.Salt)

    @property
    def iv(self) -> bytes:
        return _unhex("IV", self.IV, AES.block_size)

    @property
    def mac(self) -> bytes:
        return _unhex("Mac", self.Mac, 32)

    @property
    def cipher_text(self) -> bytes:
        return _unhex("CipherText", self.CipherText)

    @property
    def version(self) -> VersionInfo:
        try:
            return VersionInfo.from_uint64(self.Version)
        except ValueError as exc:
            raise MalformedEnvelope(str(exc)) from exc


def key_file_name(address: Address, now: datetime | None = None) -> str:
    """``UTC--<timestamp>--<hex address>.json`` with nanosecond precision."""
    if now is None:
        ns = time.time_ns()
        now = datetime.fromtimestamp(ns // 1_000_000_000, tz=timezone.utc)
        nanos = ns % 1_000_000_000
    else:
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        nanos = now.microsecond * 1000
    return f"UTC--{_to_iso8601(now, nanos)}--{address.hex()}.json"


def _to_iso8601(t: datetime, nanos: int) -> str:
    offset = t.utcoffset()
    if not offset:
        tz = "Z"
    else:
        tz = f"{int(offset.total_seconds()) // 3600:+03d}00"
    return (
        f"{t.year:04d}-{t.month:02d}-{t.day:02d}"
        f"T{t.hour:02d}-{t.minute:02d}-{t.second:02d}.{nanos:09d}{tz}"
    )


# ===================================================================
#  Codecs
# ===================================================================

def _check_kdf_params(envelope: EncryptedKeyJSON) -> None:
    n, r, p = envelope.N, envelope.R, envelope.P
    if n <= 1 or n & (n - 1):
        raise MalformedEnvelope(f"N must be a power of two greater than 1, got {n}")
    if n > MAX_SCRYPT_N:
        raise MalformedEnvelope(f"N {n} exceeds the limit of {MAX_SCRYPT_N}")
    if r < 1 or p < 1:
        raise MalformedEnvelope(f"R and P must be positive, got R={r} P={p}")
    if r * p > MAX_SCRYPT_RP:
        raise MalformedEnvelope(f"R*P {r * p} exceeds the limit of {MAX_SCRYPT_RP}")
    if envelope.DKlen != SCRYPT_DKLEN:
        raise MalformedEnvelope(f"DKlen must be {SCRYPT_DKLEN}, got {envelope.DKlen}")


class PlainCodec:
    """Unencrypted ``{"Address", "PrivateKey"}`` JSON; ignores the passphrase."""

    def encode(self, key: Key, auth: str) -> bytes:
        return json.dumps({
            "Address": key.address.hex(),
            "PrivateKey": key.private_key_bytes().hex(),
        }).encode("utf-8")

    def decode(self, data: bytes, auth: str) -> tuple[Address, bytes]:
        try:
            raw = json.loads(data)
        except (ValueError, UnicodeDecodeError) as exc:
            raise MalformedEnvelope(f"key file is not valid JSON: {exc}") from exc
        if not isinstance(raw, dict):
            raise MalformedEnvelope("key file must be a JSON object")
        address = Address(_unhex("Address", raw.get("Address"), 20))
        scalar = _unhex("PrivateKey", raw.get("PrivateKey"), PRIVATE_KEY_LENGTH)
        return address, scalar


class PassphraseCodec:
    """scrypt + AES-128-CTR + BLAKE2b MAC envelope."""

    def __init__(self, scrypt_n: int = STANDARD_SCRYPT_N, scrypt_p: int = STANDARD_SCRYPT_P):
        self.scrypt_n = scrypt_n
        self.scrypt_p = scrypt_p

    @staticmethod
    def _derive(auth: str, salt: bytes, n: int, r: int, p: int, dklen: int) -> bytes:
        return scrypt(auth.encode("utf-8"), salt, dklen, N=n, r=r, p=p)

    @staticmethod
    def _aes_ctr(key: bytes, iv: bytes, data: bytes) -> bytes:
        """AES-CTR over the full 128-bit IV as the initial counter block."""
        cipher = AES.new(key, AES.MODE_CTR, nonce=b"", initial_value=iv)
        return cipher.encrypt(data)

    def encode(self, key: Key, auth: str) -> bytes:
        salt = secrets.token_bytes(32)
        derived = self._derive(auth, salt, self.scrypt_n, SCRYPT_R, self.scrypt_p, SCRYPT_DKLEN)
        encrypt_key = derived[:16]
        iv = secrets.token_bytes(AES.block_size)
        cipher_text = self._aes_ctr(encrypt_key, iv, key.private_key_bytes())
        mac = hash256(derived[16:32], cipher_text)
        envelope = EncryptedKeyJSON(
            Address=key.address.hex(),
            N=self.scrypt_n,
            R=SCRYPT_R,
            P=self.scrypt_p,
            DKlen=SCRYPT_DKLEN,
            Salt=salt.hex(),
            IV=iv.hex(),
            Mac=mac.hex(),
            CipherText=cipher_text.hex(),
            Version=KEYSTORE_VERSION.value,
        )
        return envelope.to_json()

    def decode(self, data: bytes, auth: str) -> tuple[Address, bytes]:
        envelope = EncryptedKeyJSON.from_json(data)
        address = envelope.address
        salt = envelope.salt
        iv = envelope.iv
        mac = envelope.mac
        cipher_text = envelope.cipher_text
        _check_kdf_params(envelope)

        KEYSTORE_VERSION.compatible(envelope.version)

        try:
            derived = self._derive(auth, salt, envelope.N, envelope.R, envelope.P, envelope.DKlen)
        except (ValueError, ZeroDivisionError) as exc:
            raise MalformedEnvelope(f"invalid scrypt parameters: {exc}") from exc

        if not hmac.compare_digest(hash256(derived[16:32], cipher_text), mac):
            raise IntegrityCheckFailed("MAC mismatch")

        return address, self._aes_ctr(derived[:16], iv, cipher_text)


Codec = Union[PlainCodec, PassphraseCodec]


# ===================================================================
#  KeyStore
# ===================================================================

class KeyStore:
    """Reads, writes and creates key files through one codec."""

    def __init__(self, codec: Codec | None = None):
        self.codec: Codec = codec if codec is not None else PlainCodec()

    @classmethod
    def from_preset(cls, name: str) -> KeyStore:
        try:
            n, p = SCRYPT_PRESETS[name]
        except KeyError:
            raise ValueError(f"Unknown scrypt preset {name!r}") from None
        return new_passphrase_keystore(n, p)

    # ---- in-memory transforms ----

    def encrypt_key(self, key: Key, auth: str) -> bytes:
        return self.codec.encode(key, auth)

    def decrypt_key(self, data: bytes, auth: str) -> Key:
        """
        Decode *data* and rebuild the key pair.

        Raises ``InvalidKeyMaterial`` for an out-of-range scalar and
        ``AddressMismatch`` when the recovered key does not derive the
        address stored beside it.
        """
        address, scalar = self.codec.decode(data, auth)
        scalar = bytearray(scalar)
        try:
            key = Key.from_scalar(bytes(scalar))
        finally:
            scalar[:] = bytes(len(scalar))
        if key.address != address:
            key.destroy()
            raise AddressMismatch(key.address.hex(), address.hex())
        return key

    # ---- file operations ----

    def get_key(self, filename: str, address: Address, auth: str) -> Key:
        """Load and decrypt *filename*, which must hold the key for *address*."""
        try:
            data = Path(filename).read_bytes()
        except OSError as exc:
            raise StorageError(str(filename), exc.strerror or str(exc)) from exc

        key = self.decrypt_key(data, auth)
        if key.address != address:
            key.destroy()
            raise AddressMismatch(key.address.hex(), address.hex())
        return key

    def store_key(self, filename: str, key: Key, auth: str) -> None:
        """Encrypt *key* fully in memory, then write it with owner-only permissions."""
        data = self.encrypt_key(key, auth)
        path = Path(filename)
        tmp = path.with_name(f".{path.name}.tmp")
        try:
            fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, KEY_FILE_MODE)
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp, path)
        except OSError as exc:
            tmp.unlink(missing_ok=True)
            raise StorageError(str(filename), exc.strerror or str(exc)) from exc
        logger.debug(f"Key file written: {path}")

    def new_key(self, directory: str, auth: str) -> tuple[Address, Key, str]:
        """Generate a key pair and store it under *directory*."""
        key = Key.generate()
        filename = str(Path(directory) / key_file_name(key.address))
        try:
            try:
                Path(directory).mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise StorageError(str(directory), exc.strerror or str(exc)) from exc
            self.store_key(filename, key, auth)
        except BaseException:
            key.destroy()
            raise
        return key.address, key, filename


def new_passphrase_keystore(n: int = STANDARD_SCRYPT_N, p: int = STANDARD_SCRYPT_P) -> KeyStore:
    return KeyStore(PassphraseCodec(n, p))


def new_plain_keystore() -> KeyStore:
    return KeyStore(PlainCodec())
