"""
Cryptographic primitives for Fusion accounts.

  - BLAKE2b-256 hashing (``hash256``)
  - secp256k1 key-pair construction and validation
  - Address derivation from uncompressed public keys
  - Compact recoverable ECDSA signatures and public-key recovery
"""

from __future__ import annotations

import hashlib
import secrets
from typing import Union

from ecdsa import SECP256k1, SigningKey, VerifyingKey
from ecdsa.ellipticcurve import INFINITY, PointJacobi
from ecdsa.errors import MalformedPointError
from ecdsa.keys import BadSignatureError
from ecdsa.numbertheory import SquareRootError, inverse_mod, square_root_mod_prime
from ecdsa.util import sigdecode_string, sigencode_string_canonize

from fusion_core.common import Address, Hash, bytes_to_address
from fusion_core.errors import InvalidKeyMaterial, InvalidSignature

CURVE = SECP256k1
CURVE_ORDER = SECP256k1.order
PRIVATE_KEY_LENGTH = 32
SIGNATURE_LENGTH = 65

# Header byte of a compact signature: 27 + recovery id, +4 when the
# signer used a compressed public key.
_COMPACT_HEADER_BASE = 27

PublicKeyLike = Union[VerifyingKey, bytes]


# ===================================================================
#  Hashing
# ===================================================================

def hash256(*parts: bytes) -> Hash:
    """BLAKE2b with a 32-byte digest over the concatenation of *parts*."""
    d = hashlib.blake2b(digest_size=32)
    for p in parts:
        d.update(p)
    return Hash(d.digest())


# ===================================================================
#  Keys
# ===================================================================

def generate_private_key() -> bytes:
    """Fresh 32-byte big-endian scalar in [1, n-1] from the OS CSPRNG."""
    d = secrets.randbelow(CURVE_ORDER - 1) + 1
    return d.to_bytes(PRIVATE_KEY_LENGTH, "big")


def to_private_key(d: bytes, strict: bool = True) -> SigningKey:
    """
    Build a secp256k1 signing key from a big-endian scalar.

    With *strict* the input must be exactly 32 bytes; otherwise shorter
    encodings (leading zeros cut off) are accepted.
    """
    if strict and len(d) != PRIVATE_KEY_LENGTH:
        raise InvalidKeyMaterial(
            f"invalid length, need {PRIVATE_KEY_LENGTH * 8} bits"
        )
    if len(d) > PRIVATE_KEY_LENGTH:
        raise InvalidKeyMaterial("invalid private key, too long")
    secexp = int.from_bytes(bytes(d), "big")
    if secexp >= CURVE_ORDER:
        raise InvalidKeyMaterial("invalid private key, >=N")
    if secexp <= 0:
        raise InvalidKeyMaterial("invalid private key, zero or negative")
    return SigningKey.from_secret_exponent(secexp, curve=CURVE, hashfunc=hashlib.sha256)


def public_key_bytes(pub: PublicKeyLike) -> bytes:
    """65-byte uncompressed SEC1 encoding: ``0x04 || X || Y``."""
    if isinstance(pub, SigningKey):
        pub = pub.get_verifying_key()
    if isinstance(pub, VerifyingKey):
        return pub.to_string("uncompressed")
    raw = bytes(pub)
    if len(raw) == 64:
        return b"\x04" + raw
    if len(raw) == 65 and raw[0] == 0x04:
        return raw
    raise ValueError(f"Unsupported public key encoding ({len(raw)} bytes)")


def pubkey_to_address(pub: PublicKeyLike) -> Address:
    """Last 20 bytes of ``hash256`` over the uncompressed key minus its tag byte."""
    data = hash256(public_key_bytes(pub)[1:])
    return bytes_to_address(data[12:])


# ===================================================================
#  Compact recoverable signatures
# ===================================================================

def sign_compact(private_key: SigningKey, digest: bytes) -> bytes:
    """
    Sign a 32-byte digest, returning ``header || r || s`` (65 bytes).

    The nonce is deterministic (RFC 6979) and ``s`` is normalised to the
    lower half of the curve order.  The header encodes the recovery id for
    an uncompressed public key.
    """
    if len(digest) != 32:
        raise ValueError(f"digest must be 32 bytes, got {len(digest)}")
    rs = private_key.sign_digest_deterministic(
        bytes(digest),
        hashfunc=hashlib.sha256,
        sigencode=sigencode_string_canonize,
    )
    expected = private_key.get_verifying_key().pubkey.point
    for recid in range(4):
        try:
            candidate = _recover_point(digest, rs, recid)
        except InvalidSignature:
            continue
        if candidate == expected:
            return bytes([_COMPACT_HEADER_BASE + recid]) + rs
    # A valid signature always has a matching recovery id.
    raise RuntimeError("unable to compute recovery id for signature")


def recover_pubkey(digest: bytes, signature: bytes) -> VerifyingKey:
    """Recover the signer's public key from a compact signature."""
    if len(digest) != 32:
        raise InvalidSignature(f"digest must be 32 bytes, got {len(digest)}")
    if len(signature) != SIGNATURE_LENGTH:
        raise InvalidSignature(
            f"invalid compact signature length {len(signature)}"
        )
    header = signature[0] - _COMPACT_HEADER_BASE
    if not 0 <= header < 8:
        raise InvalidSignature("invalid compact signature recovery code")
    recid = header & 3
    point = _recover_point(digest, bytes(signature[1:]), recid)
    try:
        return VerifyingKey.from_public_point(point, curve=CURVE, hashfunc=hashlib.sha256)
    except MalformedPointError as exc:
        raise InvalidSignature(f"recovered point rejected: {exc}") from exc


def sender(digest: bytes, signature: bytes) -> Address:
    """Address of the key that produced *signature* over *digest*."""
    return pubkey_to_address(recover_pubkey(digest, signature))


def verify(pub: PublicKeyLike, digest: bytes, signature: bytes) -> bool:
    """Check a compact signature against a known public key."""
    if isinstance(pub, VerifyingKey):
        vk = pub
    else:
        vk = VerifyingKey.from_string(public_key_bytes(pub), curve=CURVE)
    if len(signature) != SIGNATURE_LENGTH:
        return False
    try:
        return vk.verify_digest(bytes(signature[1:]), bytes(digest), sigdecode=sigdecode_string)
    except BadSignatureError:
        return False


def _recover_point(digest: bytes, rs: bytes, recid: int) -> PointJacobi:
    """Q = r^-1 (sR - eG), with R chosen by *recid* (SEC 1 v2, 4.1.6)."""
    curve = CURVE.curve
    n = CURVE_ORDER
    p = curve.p()

    r = int.from_bytes(rs[:32], "big")
    s = int.from_bytes(rs[32:], "big")
    if not 0 < r < n or not 0 < s < n:
        raise InvalidSignature("signature r or s out of range")

    x = r + (recid >> 1) * n
    if x >= p:
        raise InvalidSignature("recovered x coordinate exceeds field size")
    alpha = (pow(x, 3, p) + curve.a() * x + curve.b()) % p
    try:
        beta = square_root_mod_prime(alpha, p)
    except SquareRootError as exc:
        raise InvalidSignature("x coordinate is not on the curve") from exc
    y = beta if beta % 2 == recid % 2 else p - beta

    R = PointJacobi(curve, x, y, 1, n)
    e = int.from_bytes(bytes(digest), "big") % n
    r_inv = inverse_mod(r, n)
    Q = CURVE.generator * ((-e * r_inv) % n) + R * ((s * r_inv) % n)
    if Q == INFINITY:
        raise InvalidSignature("recovered point at infinity")
    return Q
