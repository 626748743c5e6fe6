"""Session-scoped package restore context.

A ``RestoreContext`` owns everything one interactive session knows about its
package dependencies: restore sources, pending requests, resolved references,
and the lazily created resolver engine. Nothing here is shared between sessions.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from concurrent.futures import Executor
from pathlib import Path
from typing import Callable, Dict, Iterator, Optional, Tuple

from .common.logging_utils import extra_context, is_debug_enabled
from .config import RestoreSettings
from .models import (
    PackageReference,
    ResolvedPackageReference,
    RestoreResult,
    is_unconstrained,
    versions_match,
)
from .resolution.adapter import (
    ErrorReporter,
    ResolutionAdapter,
    ResolverEngine,
    package_manager_lines,
)
from .resolution.builder import ReferenceBuilder
from .store import RequestStore, ResolvedStore

logger = logging.getLogger(__name__)

EngineFactory = Callable[[], ResolverEngine]


class RestoreContext:
    """Deduplicate package requests and restore them through a resolver engine.

    Lookups consult resolved references before pending ones. Restores on one
    context are serialized; requests may be added from any thread.
    """

    def __init__(
        self,
        engine_factory: EngineFactory,
        settings: Optional[RestoreSettings] = None,
        *,
        error_sink: Optional[ErrorReporter] = None,
        executor: Optional[Executor] = None,
    ):
        """Initialize the context.

        Args:
            engine_factory: Creates the resolver engine; called at most once.
            settings: Restore settings; defaults when None.
            error_sink: Optional receiver for engine-reported errors and warnings.
            executor: Executor for blocking resolver calls.
        """
        self._settings = settings or RestoreSettings()
        self._requested = RequestStore()
        self._resolved = ResolvedStore()
        self._restore_sources: Dict[str, None] = {}

        self._engine_factory = engine_factory
        self._engine: Optional[ResolverEngine] = None
        self._engine_lock = threading.Lock()
        self._disposed = False

        self._restore_lock: Optional[asyncio.Lock] = None
        self._restore_lock_loop: Optional[asyncio.AbstractEventLoop] = None

        self._adapter = ResolutionAdapter(
            self._get_engine,
            target_framework=self._settings.target_framework,
            script_extension=self._settings.script_extension,
            package_manager_key=self._settings.package_manager_key,
            error_sink=error_sink,
            executor=executor,
        )
        self._builder = ReferenceBuilder(self._requested.get)

        for source in self._settings.restore_sources:
            self.add_restore_source(source)

    @property
    def settings(self) -> RestoreSettings:
        return self._settings

    @property
    def restore_sources(self) -> Tuple[str, ...]:
        return tuple(self._restore_sources)

    @property
    def requested_package_references(self) -> Tuple[PackageReference, ...]:
        return tuple(self._requested.values())

    @property
    def resolved_package_references(self) -> Tuple[ResolvedPackageReference, ...]:
        return tuple(self._resolved.values())

    @property
    def engine_created(self) -> bool:
        return self._engine is not None

    def add_restore_source(self, source: str) -> None:
        """Add a restore source; duplicates are ignored."""
        self._restore_sources.setdefault(source, None)

    def get_or_add_package_reference(
        self,
        package_name: str,
        package_version: Optional[str] = None,
    ) -> Optional[PackageReference]:
        """Return the reference for a package, requesting it if it is new.

        Args:
            package_name: Package name; matched case-insensitively.
            package_version: Requested version, or None/""/"*" for any.

        Returns:
            The resolved or pending reference, or None if the version conflicts
            with one already resolved or requested.
        """
        resolved = self._resolved.get(package_name)
        if resolved is not None:
            if is_unconstrained(package_version) or versions_match(resolved.package_version, package_version):
                return resolved
            logger.debug(
                "Rejected %s %s: already resolved at %s",
                package_name,
                package_version,
                resolved.package_version,
            )
            return None

        return self._requested.get_or_add(package_name, package_version)

    def get_resolved_package_reference(self, package_name: str) -> ResolvedPackageReference:
        """Return the resolved reference for ``package_name``.

        Raises:
            KeyError: If the package has not been resolved.
        """
        return self._resolved[package_name]

    def newly_requested_package_references(self) -> Tuple[PackageReference, ...]:
        """Pending references that have not been resolved yet."""
        return tuple(r for r in self._requested.values() if r.key not in self._resolved)

    def assembly_probing_paths(self) -> Iterator[Path]:
        for package in self._resolved.values():
            yield from package.assembly_paths

    def native_probing_roots(self) -> Iterator[Path]:
        for package in self._resolved.values():
            yield from package.probing_paths

    def _check_not_disposed(self) -> None:
        if self._disposed:
            raise RuntimeError("RestoreContext has been disposed")

    def _get_engine(self) -> ResolverEngine:
        if self._engine is None:
            with self._engine_lock:
                self._check_not_disposed()
                if self._engine is None:
                    logger.debug("Creating resolver engine")
                    self._engine = self._engine_factory()
        return self._engine

    def _get_restore_lock(self) -> asyncio.Lock:
        loop = asyncio.get_running_loop()
        if self._restore_lock is None or self._restore_lock_loop is not loop:
            self._restore_lock = asyncio.Lock()
            self._restore_lock_loop = loop
        return self._restore_lock

    async def restore_async(self) -> RestoreResult:
        """Resolve all pending references and merge the results.

        Returns:
            RestoreResult listing the packages newly requested before the call
            and the references newly resolved by it.

        Raises:
            RuntimeError: If the context has been disposed.
        """
        self._check_not_disposed()
        async with self._get_restore_lock():
            newly_requested = self.newly_requested_package_references()
            if not newly_requested:
                return RestoreResult(succeeded=True)

            lines = package_manager_lines(self.restore_sources, self._requested.values())
            logger.info(
                "Restoring packages: %s",
                ", ".join(r.package_name for r in newly_requested),
            )
            outcome = await self._adapter.resolve_async(lines)

            if not outcome.success:
                logger.warning("Package restore failed for %d package(s)", len(newly_requested))
                return RestoreResult(
                    succeeded=False,
                    requested_packages=newly_requested,
                    errors=outcome.diagnostic_text,
                )

            previously_resolved = set(self._resolved.keys())
            for reference in self._builder.build(outcome.resolutions, outcome.roots):
                if not self._resolved.add_if_absent(reference):
                    logger.debug("Keeping earlier resolution of %s", reference.package_name)

            resolved_now = tuple(r for r in self._resolved.values() if r.key not in previously_resolved)
            if is_debug_enabled(logger):
                logger.debug(
                    "Package restore merged",
                    extra=extra_context(
                        event="restore",
                        component="restore_context",
                        outcome="success",
                        requested=len(newly_requested),
                        resolved=len(resolved_now),
                    ),
                )
            return RestoreResult(
                succeeded=True,
                requested_packages=newly_requested,
                resolved_references=resolved_now,
            )

    def dispose(self) -> None:
        """Dispose the resolver engine if it was created; failures are ignored.

        A disposed context never creates another engine; later restores raise.
        """
        with self._engine_lock:
            self._disposed = True
            engine, self._engine = self._engine, None
        if engine is None:
            return
        try:
            dispose = getattr(engine, "dispose", None) or getattr(engine, "close", None)
            if callable(dispose):
                dispose()
        except Exception as exc:  # pylint: disable=broad-exception-caught
            logger.debug("Ignoring resolver engine disposal failure: %s", exc)

    def __enter__(self) -> "RestoreContext":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.dispose()
