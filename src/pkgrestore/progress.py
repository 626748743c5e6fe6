"""Progress-reporting wrapper around a single package restore.

Displays one placeholder per newly requested package, appends a dot to each on
every poll tick while the restore runs, and abandons the wait once the
configured ceiling is exceeded.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Optional, Protocol, Sequence, Union

from .context import RestoreContext
from .models import PackageReference, ResolvedPackageReference, RestoreResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PackageAdded:
    """A package became available to the session."""

    package: ResolvedPackageReference


@dataclass(frozen=True)
class ErrorProduced:
    """A user-visible error message."""

    message: str


RestoreEvent = Union[PackageAdded, ErrorProduced]


class RestoreReporter(Protocol):
    """Display and event sink supplied by the caller."""

    def display(self, message: str) -> Any: ...

    def update(self, handle: Any, message: str) -> None: ...

    def publish(self, event: RestoreEvent) -> None: ...


class RestoreTimeoutError(TimeoutError):
    """Raised when a restore does not finish within the wait ceiling."""

    def __init__(self, package_names: Iterable[str]):
        self.package_names = tuple(package_names)
        super().__init__(
            "Package restore took longer than expected for packages: "
            f"{', '.join(self.package_names)}."
        )


def installing_message(package: PackageReference) -> str:
    message = f"Installing package {package.package_name}"
    if package.package_version and package.package_version.strip():
        message += f", version {package.package_version}"
    return message


def installed_message(package: PackageReference) -> str:
    if package.package_version and package.package_version.strip():
        return f"Installed package {package.package_name} version {package.package_version}"
    return f"Installed package {package.package_name}"


@dataclass
class _Placeholder:
    package: PackageReference
    handle: Any
    message: str


class ProgressSupervisor:
    """Run one ``restore_async`` with live progress and a hard timeout.

    Timing out or being cancelled cancels the inner restore, so nothing it
    resolves is merged; the resolver call already running in its executor
    thread is not interrupted.
    """

    def __init__(
        self,
        context: RestoreContext,
        reporter: RestoreReporter,
        *,
        poll_interval: Optional[float] = None,
        timeout: Optional[float] = None,
        register: Optional[Callable[[Sequence[ResolvedPackageReference]], None]] = None,
    ):
        """Initialize the supervisor.

        Args:
            context: Session restore context.
            reporter: Receives placeholders, updates, and events.
            poll_interval: Seconds between progress ticks; from settings when None.
            timeout: Seconds before giving up; from settings when None.
            register: Called with newly resolved references after a successful restore.
        """
        self._context = context
        self._reporter = reporter
        self._poll_interval = poll_interval if poll_interval is not None else context.settings.poll_interval
        self._timeout = timeout if timeout is not None else context.settings.timeout
        self._register = register

    async def run(self) -> RestoreResult:
        """Restore pending packages, reporting progress along the way.

        Raises:
            RestoreTimeoutError: If the restore exceeds the timeout.
        """
        awaited = self._context.newly_requested_package_references()
        placeholders: Dict[str, _Placeholder] = {}
        for package in awaited:
            message = installing_message(package) + "..."
            handle = self._reporter.display(message)
            placeholders[package.key] = _Placeholder(package, handle, message)

        loop = asyncio.get_running_loop()
        started = loop.time()
        task = asyncio.ensure_future(self._context.restore_async())

        try:
            while True:
                done, _ = await asyncio.wait({task}, timeout=self._poll_interval)
                if done:
                    break
                if loop.time() - started > self._timeout:
                    logger.error("Package restore timed out after %.1f seconds", self._timeout)
                    raise RestoreTimeoutError(p.package_name for p in awaited)
                for placeholder in placeholders.values():
                    placeholder.message += "."
                    self._reporter.update(placeholder.handle, placeholder.message)
        except BaseException:
            # an abandoned restore must not merge results nobody registers
            if not task.done():
                task.cancel()
            raise

        result = task.result()
        if result.succeeded:
            self._on_success(result, placeholders)
        else:
            self._reporter.publish(ErrorProduced(result.errors or "Package restore failed."))
        return result

    def _on_success(self, result: RestoreResult, placeholders: Dict[str, _Placeholder]) -> None:
        if self._register is not None:
            self._register(result.resolved_references)

        for reference in result.resolved_references:
            placeholder = placeholders.pop(reference.key, None)
            if placeholder is not None:
                self._reporter.update(placeholder.handle, installed_message(reference))
            self._reporter.publish(PackageAdded(reference))

        # not confirmed by the resolver; reported with the requested version
        for placeholder in placeholders.values():
            logger.debug("No resolution reported for %s", placeholder.package.package_name)
            self._reporter.update(placeholder.handle, installed_message(placeholder.package))
