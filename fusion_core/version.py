"""
Software and on-disk format versions.

A version is four 16-bit fields (spec, major, minor, revision) packed into
one 64-bit integer at bit offsets 48/32/16/0.  Two versions are compatible
when spec, major and minor agree; the revision is informational.
"""

from __future__ import annotations

from dataclasses import dataclass

from fusion_core.errors import IncompatibleVersion

_FIELD_MASK = 0xFFFF


@dataclass(frozen=True)
class VersionInfo:
    spec: int
    major: int
    minor: int
    revision: int

    def __post_init__(self):
        for name in ("spec", "major", "minor", "revision"):
            v = getattr(self, name)
            if not 0 <= v <= _FIELD_MASK:
                raise ValueError(f"Version field {name} out of range: {v}")

    @property
    def value(self) -> int:
        return (
            (self.spec << 48)
            | (self.major << 32)
            | (self.minor << 16)
            | self.revision
        )

    @property
    def string_value(self) -> str:
        return f"{self.spec}.{self.major}.{self.minor}.{self.revision}"

    @classmethod
    def from_string(cls, text: str) -> VersionInfo:
        parts = text.split(".")
        if len(parts) != 4:
            raise ValueError(f"Invalid version format {text!r}")
        try:
            spec, major, minor, revision = (int(p) for p in parts)
        except ValueError as exc:
            raise ValueError(f"Invalid version format {text!r}") from exc
        return cls(spec, major, minor, revision)

    @classmethod
    def from_uint64(cls, value: int) -> VersionInfo:
        if not 0 <= value < 1 << 64:
            raise ValueError(f"Version value out of range: {value}")
        return cls(
            (value >> 48) & _FIELD_MASK,
            (value >> 32) & _FIELD_MASK,
            (value >> 16) & _FIELD_MASK,
            value & _FIELD_MASK,
        )

    def compatible(self, other: VersionInfo) -> None:
        """Raise :class:`IncompatibleVersion` unless spec/major/minor match."""
        for name in ("spec", "major", "minor"):
            mine, theirs = getattr(self, name), getattr(other, name)
            if mine != theirs:
                raise IncompatibleVersion(
                    f"Different {name} version. Expected {mine}, got {theirs}"
                )

    def __str__(self) -> str:
        return self.string_value


MAIN_VERSION = VersionInfo.from_string("0.0.0.1")
P2P_VERSION = VersionInfo.from_string("0.0.0.1")
KEYSTORE_VERSION = VersionInfo.from_string("0.0.0.1")
