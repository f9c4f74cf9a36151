"""
TOML-based configuration for the Fusion account keystore.

Loads settings from a TOML file and/or environment variables.
Environment variables take precedence over file values.

Usage:
    from fusion_core.config import load_config
    cfg = load_config("fusion.toml")
    mgr = AccountManager.from_config(cfg.keystore)
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

if sys.version_info >= (3, 11):
    import tomllib
else:
    try:
        import tomllib  # type: ignore[import]
    except ModuleNotFoundError:
        import tomli as tomllib  # type: ignore[import,no-redef]

from fusion_core.keystore import SCRYPT_PRESETS


@dataclass
class KeystoreConfig:
    """Key file location and encryption cost.

    ``scrypt`` selects a cost preset: ``"standard"`` (256 MB, ~1s per
    unlock) or ``"light"`` (4 MB, ~100ms).  Envelopes record their own
    parameters, so changing the preset never breaks existing files.
    """
    directory: str = "data/keystore"
    scrypt: str = "standard"
    unlock_timeout: float = 0.0   # seconds; 0 = stay unlocked until lock()

    def scrypt_params(self) -> tuple[int, int]:
        """(N, P) for the configured preset."""
        try:
            return SCRYPT_PRESETS[self.scrypt]
        except KeyError:
            raise ValueError(
                f"Unknown scrypt preset {self.scrypt!r}; "
                f"expected one of {sorted(SCRYPT_PRESETS)}"
            ) from None


@dataclass
class LoggingConfig:
    """Logging settings."""
    level: str = "INFO"
    format: str = "human"   # "human" or "json"
    file: str | None = None


@dataclass
class FusionConfig:
    """Top-level configuration container."""
    keystore: KeystoreConfig = field(default_factory=KeystoreConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _merge(dc: Any, raw: dict[str, Any]) -> None:
    """Merge a raw dict into a dataclass instance (in-place)."""
    for key, value in raw.items():
        key_under = key.replace("-", "_")
        if hasattr(dc, key_under):
            setattr(dc, key_under, value)


def load_config(path: str | None = None) -> FusionConfig:
    """
    Load configuration from a TOML file, then overlay environment variables.

    Env-var mapping:
        FUSION_KEYSTORE_DIR    -> keystore.directory
        FUSION_SCRYPT          -> keystore.scrypt
        FUSION_UNLOCK_TIMEOUT  -> keystore.unlock_timeout
        FUSION_LOG_LEVEL       -> logging.level
        FUSION_LOG_FMT         -> logging.format
        FUSION_LOG_FILE        -> logging.file
    """
    cfg = FusionConfig()

    # ── TOML file ────────────────────────────────────────────────
    if path is not None:
        p = Path(path)
        if p.exists():
            with open(p, "rb") as f:
                data = tomllib.load(f)
            for section_name, section_dc in [
                ("keystore", cfg.keystore),
                ("logging", cfg.logging),
            ]:
                if section_name in data:
                    _merge(section_dc, data[section_name])

    # ── Environment variable overrides ───────────────────────────
    if v := os.environ.get("FUSION_KEYSTORE_DIR"):
        cfg.keystore.directory = v
    if v := os.environ.get("FUSION_SCRYPT"):
        cfg.keystore.scrypt = v.lower()
    if v := os.environ.get("FUSION_UNLOCK_TIMEOUT"):
        cfg.keystore.unlock_timeout = float(v)
    if v := os.environ.get("FUSION_LOG_LEVEL"):
        cfg.logging.level = v.upper()
    if v := os.environ.get("FUSION_LOG_FMT"):
        cfg.logging.format = v
    if v := os.environ.get("FUSION_LOG_FILE"):
        cfg.logging.file = v

    return cfg
