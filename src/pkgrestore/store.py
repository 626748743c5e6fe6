"""Session-scoped stores for requested and resolved package references.

Resolved entries shadow requested ones: callers look a name up in
``ResolvedStore`` before consulting ``RequestStore``. Requested entries are never
removed once a package resolves.
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, List, Optional

from .models import (
    PackageReference,
    ResolvedPackageReference,
    reference_key,
    versions_match,
)

logger = logging.getLogger(__name__)


class RequestStore:
    """Thread-safe map of pending package references, one version per name."""

    def __init__(self) -> None:
        self._references: Dict[str, PackageReference] = {}
        self._lock = threading.Lock()

    def get(self, package_name: str) -> Optional[PackageReference]:
        with self._lock:
            return self._references.get(reference_key(package_name))

    def get_or_add(self, package_name: str, package_version: Optional[str]) -> Optional[PackageReference]:
        """Return the pending reference for ``package_name``, adding it if new.

        Args:
            package_name: Package name as typed by the user; stored trimmed.
            package_version: Requested version, or None/""/"*" for any.

        Returns:
            The stored reference, or None when a different version is already pending.
        """
        key = reference_key(package_name)
        with self._lock:
            existing = self._references.get(key)
            if existing is not None:
                if versions_match(existing.package_version, package_version):
                    return existing
                logger.debug(
                    "Rejected %s %s: version %s already requested",
                    package_name,
                    package_version,
                    existing.package_version,
                )
                return None

            reference = PackageReference(package_name.strip(), package_version)
            self._references[key] = reference
            return reference

    def values(self) -> List[PackageReference]:
        """Snapshot of pending references in insertion order."""
        with self._lock:
            return list(self._references.values())

    def __contains__(self, package_name: object) -> bool:
        if not isinstance(package_name, str):
            return False
        with self._lock:
            return reference_key(package_name) in self._references

    def __len__(self) -> int:
        with self._lock:
            return len(self._references)


class ResolvedStore:
    """Map of resolved package references kept for the session's lifetime.

    Mutated only by the single in-flight restore of a session.
    """

    def __init__(self) -> None:
        self._references: Dict[str, ResolvedPackageReference] = {}

    def get(self, package_name: str) -> Optional[ResolvedPackageReference]:
        return self._references.get(reference_key(package_name))

    def __getitem__(self, package_name: str) -> ResolvedPackageReference:
        return self._references[reference_key(package_name)]

    def add_if_absent(self, reference: ResolvedPackageReference) -> bool:
        """Insert ``reference`` unless its name is already resolved.

        Returns:
            True if inserted, False if an earlier entry was kept.
        """
        key = reference.key
        if key in self._references:
            return False
        self._references[key] = reference
        return True

    def keys(self) -> List[str]:
        return list(self._references.keys())

    def values(self) -> List[ResolvedPackageReference]:
        return list(self._references.values())

    def __contains__(self, package_name: object) -> bool:
        if not isinstance(package_name, str):
            return False
        return reference_key(package_name) in self._references

    def __len__(self) -> int:
        return len(self._references)
