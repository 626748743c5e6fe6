"""Data models for package references and restore outcomes."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

from .constants import Constants


def reference_key(package_name: str) -> str:
    """Return the case-insensitive lookup key for a package name."""
    return package_name.strip().lower()


def is_unconstrained(version: Optional[str]) -> bool:
    """True for ``None``, blank, or wildcard versions."""
    return version is None or not version.strip() or version.strip() == Constants.WILDCARD_VERSION


def normalize_version(version: Optional[str]) -> str:
    """Comparable form of a version: trimmed, lower-cased, unconstrained as ``""``."""
    if is_unconstrained(version):
        return ""
    return version.strip().lower()


def versions_match(left: Optional[str], right: Optional[str]) -> bool:
    """Compare two versions ignoring case and surrounding whitespace."""
    return normalize_version(left) == normalize_version(right)


@dataclass(frozen=True)
class PackageReference:
    """A requested, not yet resolved, package dependency."""

    package_name: str
    package_version: Optional[str]

    @property
    def key(self) -> str:
        return reference_key(self.package_name)

    @classmethod
    def parse(cls, token: Optional[str]) -> Optional["PackageReference"]:
        """Parse a ``nuget:<name>[,<version>]`` token.

        Args:
            token: Raw directive argument.

        Returns:
            PackageReference, or None if the token is not a package reference.
        """
        if not token:
            return None
        text = token.strip()
        if not text.lower().startswith(Constants.REFERENCE_PREFIX):
            return None

        parts = [part.strip() for part in text[len(Constants.REFERENCE_PREFIX):].split(",")]
        if len(parts) > 2 or not parts[0]:
            return None

        version = parts[1] if len(parts) == 2 and parts[1] else None
        return cls(parts[0], version)

    def __str__(self) -> str:
        if self.package_version:
            return f"{Constants.REFERENCE_PREFIX}{self.package_name}, {self.package_version}"
        return f"{Constants.REFERENCE_PREFIX}{self.package_name}"


@dataclass(frozen=True)
class ResolvedPackageReference(PackageReference):
    """A package reference with the on-disk locations produced by the resolver."""

    assembly_paths: Tuple[Path, ...]
    package_root: Path
    probing_paths: Tuple[Path, ...]


@dataclass(frozen=True)
class RestoreResult:
    """Outcome of one restore cycle.

    ``resolved_references`` only holds references resolved by this cycle;
    ``errors`` is set only when the cycle failed.
    """

    succeeded: bool
    requested_packages: Tuple[PackageReference, ...] = ()
    resolved_references: Tuple[ResolvedPackageReference, ...] = ()
    errors: Optional[str] = None
