"""
Fixed-size value types shared by the keystore and account layers.

``Hash`` is a 32-byte digest, ``Address`` a 20-byte account identifier.
Both are immutable ``bytes`` subclasses so they hash, compare and slice
like plain bytes while keeping their canonical string forms.
"""

from __future__ import annotations

HASH_LENGTH = 32
ADDRESS_LENGTH = 20


def _fit(b: bytes, length: int) -> bytes:
    """Crop *b* from the left or left-pad it with zeros to *length* bytes."""
    b = bytes(b)
    if len(b) > length:
        return b[len(b) - length:]
    return b.rjust(length, b"\x00")


class Hash(bytes):
    """32-byte digest."""

    def __new__(cls, value: bytes) -> Hash:
        if len(value) != HASH_LENGTH:
            raise ValueError(
                f"Hash must be {HASH_LENGTH} bytes, got {len(value)}"
            )
        return super().__new__(cls, value)

    def __str__(self) -> str:
        return "0x" + self.hex()

    def __repr__(self) -> str:
        return f"Hash({self.hex()})"


class Address(bytes):
    """20-byte account address derived from a public key."""

    def __new__(cls, value: bytes) -> Address:
        if len(value) != ADDRESS_LENGTH:
            raise ValueError(
                f"Address must be {ADDRESS_LENGTH} bytes, got {len(value)}"
            )
        return super().__new__(cls, value)

    @classmethod
    def from_hex(cls, text: str) -> Address:
        """Parse a hex address; the ``0x`` prefix and letter case are optional."""
        if text[:2] in ("0x", "0X"):
            text = text[2:]
        if len(text) != ADDRESS_LENGTH * 2:
            raise ValueError(f"Invalid address length: {text!r}")
        return cls(bytes.fromhex(text))

    def checksum_hex(self) -> str:
        """
        Mixed-case display form.

        A letter is uppercased when the matching nibble of
        ``hash256(lowercase_hex)`` is greater than 7.
        """
        from fusion_core.crypto_utils import hash256

        plain = self.hex()
        digest = hash256(plain.encode("ascii"))
        out = []
        for i, ch in enumerate(plain):
            nibble = digest[i // 2] >> 4 if i % 2 == 0 else digest[i // 2] & 0x0F
            if ch > "9" and nibble > 7:
                ch = ch.upper()
            out.append(ch)
        return "".join(out)

    def __str__(self) -> str:
        return "0x" + self.checksum_hex()

    def __repr__(self) -> str:
        return f"Address({self.hex()})"


def bytes_to_hash(b: bytes) -> Hash:
    return Hash(_fit(b, HASH_LENGTH))


def bytes_to_address(b: bytes) -> Address:
    return Address(_fit(b, ADDRESS_LENGTH))
