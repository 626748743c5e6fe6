"""Handlers behind the restore-source, package-reference and restore directives.

Argument parsing belongs to the command dispatcher; these handlers receive the
raw argument text and report through a :class:`RestoreReporter`.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional, Sequence

from .constants import Constants
from .context import RestoreContext
from .models import (
    PackageReference,
    ResolvedPackageReference,
    RestoreResult,
    is_unconstrained,
    reference_key,
    versions_match,
)
from .progress import ErrorProduced, ProgressSupervisor, RestoreReporter

logger = logging.getLogger(__name__)


def conflict_message(requested: PackageReference, existing: Optional[PackageReference] = None) -> str:
    """Readable message for a package reference that cannot be added."""
    if existing is not None and requested.package_name and requested.package_version:
        return (
            f"{requested.package_name} version {requested.package_version} cannot be added "
            f"because version {existing.package_version or Constants.WILDCARD_VERSION} was added previously."
        )
    return f"Invalid Package specification: '{requested}'"


def add_restore_source(context: RestoreContext, source: str, reporter: RestoreReporter) -> None:
    """Add a restore source and display the current source list."""
    if source.lower().startswith(Constants.REFERENCE_PREFIX):
        source = source[len(Constants.REFERENCE_PREFIX):]
    source = source.strip()
    context.add_restore_source(source)
    logger.info("Added restore source %s", source)
    reporter.display("Restore sources:\n" + "\n".join(f" - {s}" for s in context.restore_sources))


def add_package_reference(
    context: RestoreContext,
    token: str,
    reporter: RestoreReporter,
) -> Optional[PackageReference]:
    """Request the package named by a ``nuget:<name>[,<version>]`` token.

    Returns:
        The stored reference, or None after publishing an ErrorProduced event.
    """
    requested = PackageReference.parse(token)
    if requested is None:
        reporter.publish(ErrorProduced(f"Unable to parse package reference: \"{token}\""))
        return None

    key = reference_key(requested.package_name)
    existing = next(
        (
            r
            for r in (*context.resolved_package_references, *context.requested_package_references)
            if r.key == key
        ),
        None,
    )
    if (
        existing is not None
        and not is_unconstrained(requested.package_version)
        and not versions_match(requested.package_version, existing.package_version)
    ):
        reporter.publish(ErrorProduced(conflict_message(requested, existing)))
        return None

    added = context.get_or_add_package_reference(requested.package_name, requested.package_version)
    if added is None:
        reporter.publish(ErrorProduced(conflict_message(requested)))
    return added


async def restore(
    context: RestoreContext,
    reporter: RestoreReporter,
    register: Optional[Callable[[Sequence[ResolvedPackageReference]], None]] = None,
) -> RestoreResult:
    """Run exactly one progress-supervised restore."""
    supervisor = ProgressSupervisor(context, reporter, register=register)
    return await supervisor.run()
