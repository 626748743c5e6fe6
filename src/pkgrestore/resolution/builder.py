"""Turn raw resolver output into resolved package references."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from ..models import PackageReference, ResolvedPackageReference

logger = logging.getLogger(__name__)


def package_identity(package_root: Path) -> Tuple[str, str]:
    """Read ``(name, version)`` from a ``.../<name>/<version>/`` package root.

    Raises:
        ValueError: If the root has no version or parent name component.
    """
    version = package_root.name
    parent = package_root.parent
    name = parent.name
    if not version or not name or parent == package_root:
        raise ValueError(f"Cannot derive package identity from root: {package_root}")
    return name, version


def _is_within(directory: Path, root: Path) -> bool:
    return directory == root or root in directory.parents


class ReferenceBuilder:
    """Match package roots back to requests and collect their files."""

    def __init__(self, requested_lookup: Callable[[str], Optional[PackageReference]]):
        """Initialize the builder.

        Args:
            requested_lookup: Returns the pending request for a name, if any.
        """
        self._requested_lookup = requested_lookup

    def _resolve_identity(self, package_root: Path) -> PackageReference:
        name, version = package_identity(package_root)
        requested = self._requested_lookup(name)
        if requested is not None:
            # keep the user's casing
            name = requested.package_name
        return PackageReference(name, version)

    def build(
        self,
        resolutions: Iterable[Path],
        package_roots: Sequence[Path],
    ) -> List[ResolvedPackageReference]:
        """Build one resolved reference per package root, in root order.

        Roots whose identity cannot be derived are skipped.
        """
        resolution_paths = [Path(p) for p in resolutions]

        built: List[ResolvedPackageReference] = []
        for raw_root in package_roots:
            root = Path(raw_root)
            try:
                identity = self._resolve_identity(root)
            except Exception as exc:  # pylint: disable=broad-exception-caught
                logger.debug("Skipping package root %s: %s", root, exc)
                continue

            assembly_paths = tuple(p for p in resolution_paths if _is_within(p.parent, root))
            built.append(
                ResolvedPackageReference(
                    package_name=identity.package_name,
                    package_version=identity.package_version,
                    assembly_paths=assembly_paths,
                    package_root=root,
                    probing_paths=(root,),
                )
            )
        return built
