"""
Tests for fusion_core.common — Hash and Address value types.

Covers:
  - Fixed-length construction
  - Left-crop / left-pad conversion helpers
  - Hex and string forms
  - Mixed-case checksum display encoding
  - Use as dict keys
"""

import hashlib
import unittest

from fusion_core.common import (
    ADDRESS_LENGTH,
    HASH_LENGTH,
    Address,
    Hash,
    bytes_to_address,
    bytes_to_hash,
)


class TestHash(unittest.TestCase):

    def test_requires_32_bytes(self):
        with self.assertRaises(ValueError):
            Hash(b"\x01" * 31)
        self.assertEqual(len(Hash(b"\x01" * HASH_LENGTH)), 32)

    def test_str_is_prefixed_hex(self):
        h = Hash(bytes(range(32)))
        self.assertEqual(str(h), "0x" + bytes(range(32)).hex())

    def test_bytes_to_hash_pads_left(self):
        h = bytes_to_hash(b"\xab")
        self.assertEqual(h, b"\x00" * 31 + b"\xab")

    def test_bytes_to_hash_crops_left(self):
        data = bytes(range(40))
        self.assertEqual(bytes_to_hash(data), data[8:])


class TestAddress(unittest.TestCase):

    def test_requires_20_bytes(self):
        with self.assertRaises(ValueError):
            Address(b"\x00" * 21)
        self.assertEqual(len(Address(b"\x00" * ADDRESS_LENGTH)), 20)

    def test_bytes_to_address_crops_left(self):
        data = bytes(range(32))
        self.assertEqual(bytes_to_address(data), data[12:])

    def test_bytes_to_address_pads_left(self):
        self.assertEqual(bytes_to_address(b"\x01\x02"), b"\x00" * 18 + b"\x01\x02")

    def test_hex_is_lowercase(self):
        a = Address(b"\xab" * 20)
        self.assertEqual(a.hex(), "ab" * 20)

    def test_from_hex_accepts_prefix_and_case(self):
        a = Address(bytes(range(20)))
        self.assertEqual(Address.from_hex("0x" + a.hex().upper()), a)
        self.assertEqual(Address.from_hex(a.hex()), a)

    def test_from_hex_rejects_bad_length(self):
        with self.assertRaises(ValueError):
            Address.from_hex("abcd")

    def test_from_hex_rejects_non_hex(self):
        with self.assertRaises(ValueError):
            Address.from_hex("zz" * 20)

    def test_checksum_matches_digest_nibbles(self):
        a = Address(bytes.fromhex("5aaeb6053f3e94c9b9a09f33669435e7ef1beaed"))
        plain = a.hex()
        digest = hashlib.blake2b(plain.encode(), digest_size=32).digest()
        expected = []
        for i, ch in enumerate(plain):
            nibble = digest[i // 2] >> 4 if i % 2 == 0 else digest[i // 2] & 0xF
            expected.append(ch.upper() if ch.isalpha() and nibble > 7 else ch)
        self.assertEqual(a.checksum_hex(), "".join(expected))

    def test_checksum_only_changes_case(self):
        a = Address(bytes.fromhex("fb6916095ca1df60bb79ce92ce3ea74c37c5d359"))
        self.assertEqual(a.checksum_hex().lower(), a.hex())

    def test_digits_never_change(self):
        a = Address(b"\x12\x34" * 10)
        self.assertEqual(a.checksum_hex(), a.hex())

    def test_str_uses_checksum(self):
        a = Address(bytes(range(20)))
        self.assertEqual(str(a), "0x" + a.checksum_hex())

    def test_usable_as_dict_key(self):
        a1 = Address(b"\x07" * 20)
        a2 = bytes_to_address(b"\x07" * 20)
        self.assertEqual({a1: "x"}[a2], "x")


if __name__ == "__main__":
    unittest.main()
