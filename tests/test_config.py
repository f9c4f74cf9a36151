"""
Tests for fusion_core.config — TOML configuration and environment overrides.

Covers:
  - Default values for all dataclass sections
  - scrypt preset lookup
  - TOML parsing and section merging
  - Environment variable overrides (precedence over TOML)
  - _merge helper edge cases
  - Missing TOML files
"""

from __future__ import annotations

import os
import tempfile
import textwrap
import unittest
from unittest.mock import patch

from fusion_core.config import (
    FusionConfig,
    KeystoreConfig,
    LoggingConfig,
    _merge,
    load_config,
)
from fusion_core.keystore import (
    LIGHT_SCRYPT_N,
    LIGHT_SCRYPT_P,
    STANDARD_SCRYPT_N,
    STANDARD_SCRYPT_P,
)

_ENV_KEYS = (
    "FUSION_KEYSTORE_DIR",
    "FUSION_SCRYPT",
    "FUSION_UNLOCK_TIMEOUT",
    "FUSION_LOG_LEVEL",
    "FUSION_LOG_FMT",
    "FUSION_LOG_FILE",
)


def _clean_env() -> dict[str, str]:
    return {k: v for k, v in os.environ.items() if k not in _ENV_KEYS}


def _load_toml(content: str) -> FusionConfig:
    with tempfile.NamedTemporaryFile(mode="w", suffix=".toml", delete=False) as f:
        f.write(textwrap.dedent(content))
        f.flush()
        name = f.name
    try:
        return load_config(name)
    finally:
        os.unlink(name)


# ═══════════════════════════════════════════════════════════════════
#  Defaults
# ═══════════════════════════════════════════════════════════════════

class TestDefaults(unittest.TestCase):

    def test_keystore_defaults(self):
        k = KeystoreConfig()
        self.assertEqual(k.directory, "data/keystore")
        self.assertEqual(k.scrypt, "standard")
        self.assertEqual(k.unlock_timeout, 0.0)

    def test_logging_defaults(self):
        log_cfg = LoggingConfig()
        self.assertEqual(log_cfg.level, "INFO")
        self.assertEqual(log_cfg.format, "human")
        self.assertIsNone(log_cfg.file)

    def test_fusion_config_defaults(self):
        cfg = FusionConfig()
        self.assertIsInstance(cfg.keystore, KeystoreConfig)
        self.assertIsInstance(cfg.logging, LoggingConfig)

    def test_sections_not_shared(self):
        a, b = FusionConfig(), FusionConfig()
        a.keystore.directory = "/elsewhere"
        self.assertEqual(b.keystore.directory, "data/keystore")


class TestScryptParams(unittest.TestCase):

    def test_standard(self):
        self.assertEqual(KeystoreConfig().scrypt_params(), (STANDARD_SCRYPT_N, STANDARD_SCRYPT_P))

    def test_light(self):
        self.assertEqual(
            KeystoreConfig(scrypt="light").scrypt_params(),
            (LIGHT_SCRYPT_N, LIGHT_SCRYPT_P),
        )

    def test_unknown_preset(self):
        with self.assertRaises(ValueError) as ctx:
            KeystoreConfig(scrypt="fast").scrypt_params()
        self.assertIn("fast", str(ctx.exception))


# ═══════════════════════════════════════════════════════════════════
#  _merge helper
# ═══════════════════════════════════════════════════════════════════

class TestMerge(unittest.TestCase):

    def test_merge_updates_fields(self):
        k = KeystoreConfig()
        _merge(k, {"directory": "/keys", "scrypt": "light"})
        self.assertEqual(k.directory, "/keys")
        self.assertEqual(k.scrypt, "light")

    def test_merge_ignores_unknown_keys(self):
        k = KeystoreConfig()
        _merge(k, {"unknown_field": 42})
        self.assertFalse(hasattr(k, "unknown_field"))

    def test_merge_hyphenated_keys(self):
        k = KeystoreConfig()
        _merge(k, {"unlock-timeout": 30.0})
        self.assertEqual(k.unlock_timeout, 30.0)

    def test_merge_empty_dict(self):
        k = KeystoreConfig()
        _merge(k, {})
        self.assertEqual(k.directory, "data/keystore")


# ═══════════════════════════════════════════════════════════════════
#  TOML loading
# ═══════════════════════════════════════════════════════════════════

@patch.dict(os.environ, _clean_env(), clear=True)
class TestLoadConfig(unittest.TestCase):

    def test_load_no_file(self):
        cfg = load_config(None)
        self.assertEqual(cfg.keystore.scrypt, "standard")

    def test_load_missing_file(self):
        cfg = load_config("/tmp/__nonexistent_fusion_config__.toml")
        self.assertEqual(cfg.keystore.directory, "data/keystore")

    def test_load_toml_file(self):
        cfg = _load_toml("""\
            [keystore]
            directory = "/var/lib/fusion/keys"
            scrypt = "light"
            unlock-timeout = 45.0

            [logging]
            level = "DEBUG"
            format = "json"
            file = "/var/log/fusion.log"
        """)
        self.assertEqual(cfg.keystore.directory, "/var/lib/fusion/keys")
        self.assertEqual(cfg.keystore.scrypt, "light")
        self.assertEqual(cfg.keystore.unlock_timeout, 45.0)
        self.assertEqual(cfg.logging.level, "DEBUG")
        self.assertEqual(cfg.logging.format, "json")
        self.assertEqual(cfg.logging.file, "/var/log/fusion.log")

    def test_partial_toml_keeps_defaults(self):
        cfg = _load_toml("""\
            [logging]
            level = "WARNING"
        """)
        self.assertEqual(cfg.logging.level, "WARNING")
        self.assertEqual(cfg.keystore.scrypt, "standard")

    def test_unknown_sections_ignored(self):
        cfg = _load_toml("""\
            [node]
            port = 9001
        """)
        self.assertEqual(cfg, FusionConfig())


# ═══════════════════════════════════════════════════════════════════
#  Environment variable overrides
# ═══════════════════════════════════════════════════════════════════

class TestEnvOverrides(unittest.TestCase):

    @patch.dict(os.environ, {"FUSION_KEYSTORE_DIR": "/tmp/fusion-keys"}, clear=False)
    def test_env_keystore_dir(self):
        self.assertEqual(load_config(None).keystore.directory, "/tmp/fusion-keys")

    @patch.dict(os.environ, {"FUSION_SCRYPT": "LIGHT"}, clear=False)
    def test_env_scrypt_lowercased(self):
        self.assertEqual(load_config(None).keystore.scrypt, "light")

    @patch.dict(os.environ, {"FUSION_UNLOCK_TIMEOUT": "12.5"}, clear=False)
    def test_env_unlock_timeout(self):
        self.assertEqual(load_config(None).keystore.unlock_timeout, 12.5)

    @patch.dict(os.environ, {"FUSION_UNLOCK_TIMEOUT": "soon"}, clear=False)
    def test_env_unlock_timeout_invalid(self):
        with self.assertRaises(ValueError):
            load_config(None)

    @patch.dict(os.environ, {"FUSION_LOG_LEVEL": "debug"}, clear=False)
    def test_env_log_level_uppercased(self):
        self.assertEqual(load_config(None).logging.level, "DEBUG")

    @patch.dict(os.environ, {"FUSION_LOG_FMT": "json"}, clear=False)
    def test_env_log_format(self):
        self.assertEqual(load_config(None).logging.format, "json")

    @patch.dict(os.environ, {"FUSION_LOG_FILE": "/tmp/fusion.log"}, clear=False)
    def test_env_log_file(self):
        self.assertEqual(load_config(None).logging.file, "/tmp/fusion.log")


class TestEnvOverridesToml(unittest.TestCase):

    @patch.dict(os.environ, {"FUSION_SCRYPT": "light"}, clear=False)
    def test_env_wins_over_toml(self):
        cfg = _load_toml("""\
            [keystore]
            scrypt = "standard"
        """)
        self.assertEqual(cfg.keystore.scrypt, "light")


if __name__ == "__main__":
    unittest.main()
