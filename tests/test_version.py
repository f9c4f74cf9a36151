"""
Tests for fusion_core.version — packed version numbers.
"""

import unittest

from fusion_core.errors import IncompatibleVersion
from fusion_core.version import KEYSTORE_VERSION, MAIN_VERSION, P2P_VERSION, VersionInfo


class TestVersionPacking(unittest.TestCase):

    def test_from_string_packs_fields(self):
        v = VersionInfo.from_string("1.2.3.4")
        self.assertEqual(v.value, (1 << 48) | (2 << 32) | (3 << 16) | 4)

    def test_from_uint64_unpacks_fields(self):
        v = VersionInfo.from_uint64((5 << 48) | (6 << 32) | (7 << 16) | 8)
        self.assertEqual((v.spec, v.major, v.minor, v.revision), (5, 6, 7, 8))
        self.assertEqual(v.string_value, "5.6.7.8")

    def test_string_round_trip(self):
        v = VersionInfo.from_string("0.3.0.12")
        self.assertEqual(VersionInfo.from_uint64(v.value), v)

    def test_keystore_version(self):
        self.assertEqual(KEYSTORE_VERSION.value, 1)
        self.assertEqual(str(KEYSTORE_VERSION), "0.0.0.1")

    def test_release_versions_compatible(self):
        MAIN_VERSION.compatible(KEYSTORE_VERSION)
        self.assertEqual(P2P_VERSION.string_value, "0.0.0.1")

    def test_bad_format(self):
        for text in ("1.2.3", "1.2.3.4.5", "a.b.c.d", ""):
            with self.assertRaises(ValueError):
                VersionInfo.from_string(text)

    def test_field_out_of_range(self):
        with self.assertRaises(ValueError):
            VersionInfo(0, 0, 0x10000, 0)


class TestCompatibility(unittest.TestCase):

    def test_revision_ignored(self):
        VersionInfo.from_string("0.0.0.1").compatible(VersionInfo.from_string("0.0.0.9"))

    def test_spec_differs(self):
        with self.assertRaises(IncompatibleVersion) as ctx:
            VersionInfo.from_string("0.0.0.1").compatible(VersionInfo.from_string("1.0.0.1"))
        self.assertIn("spec", str(ctx.exception))

    def test_major_differs(self):
        with self.assertRaises(IncompatibleVersion) as ctx:
            VersionInfo.from_string("0.1.0.1").compatible(VersionInfo.from_string("0.2.0.1"))
        self.assertIn("major", str(ctx.exception))

    def test_minor_differs(self):
        with self.assertRaises(IncompatibleVersion) as ctx:
            VersionInfo.from_string("0.0.1.0").compatible(VersionInfo.from_string("0.0.2.0"))
        self.assertIn("minor", str(ctx.exception))


if __name__ == "__main__":
    unittest.main()
