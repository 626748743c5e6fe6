"""Boundary to the external dependency resolver.

The resolver engine is opaque: it receives package-manager text lines and returns
resolved file paths, source files and package roots. This module builds those
lines, forwards engine-reported messages to logging without ever raising back
into the engine, and runs the blocking call off the event loop.
"""

from __future__ import annotations

import asyncio
import logging
from concurrent.futures import Executor
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Protocol, Sequence, Tuple

from ..common.logging_utils import Timer, extra_context, is_debug_enabled
from ..constants import Constants, ErrorReportType
from ..models import PackageReference

logger = logging.getLogger(__name__)

ErrorReporter = Callable[[ErrorReportType, int, str], None]


@dataclass(frozen=True)
class ResolveOutcome:
    """Raw result of one engine call."""

    success: bool
    resolutions: Tuple[str, ...] = ()
    source_files: Tuple[str, ...] = ()
    roots: Tuple[str, ...] = ()
    stdout: Tuple[str, ...] = ()

    @property
    def diagnostic_text(self) -> str:
        return "\n".join(self.stdout)


class ResolverEngine(Protocol):
    """Contract implemented by dependency resolver engines."""

    def resolve(
        self,
        package_manager_key: str,
        source_descriptor: str,
        batch_id: str,
        script_extension: str,
        lines: Sequence[str],
        report_error: ErrorReporter,
        target_framework: str,
    ) -> ResolveOutcome: ...


def package_manager_lines(
    restore_sources: Iterable[str],
    references: Iterable[PackageReference],
) -> List[str]:
    """Encode sources then references as package-manager directive lines."""
    lines = [f"RestoreSources={source}" for source in restore_sources]
    for reference in references:
        lines.append(f"Include={reference.package_name}, Version={reference.package_version or ''}")
    return lines


def make_error_reporter(sink: Optional[ErrorReporter] = None) -> ErrorReporter:
    """Build a reporting callback that is safe to hand to the engine.

    Messages are logged, then passed to ``sink``. Failures inside the sink are
    logged and dropped so nothing propagates through the engine's call stack.
    """

    def report(error_type: ErrorReportType, code: int, message: str) -> None:
        try:
            if error_type == ErrorReportType.ERROR:
                logger.error("PackageManagementError %s %s", code, message)
            else:
                logger.warning("PackageManagementWarning %s %s", code, message)
            if sink is not None:
                sink(error_type, code, message)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            logger.debug("Error reporter sink failed: %s", exc)

    return report


class ResolutionAdapter:
    """Invoke a lazily provided resolver engine with a batch of lines."""

    def __init__(
        self,
        engine_provider: Callable[[], ResolverEngine],
        *,
        target_framework: str = Constants.RESTORE_TFM,
        script_extension: str = Constants.SCRIPT_EXTENSION,
        package_manager_key: str = Constants.PACKAGE_MANAGER_KEY,
        error_sink: Optional[ErrorReporter] = None,
        executor: Optional[Executor] = None,
    ):
        """Initialize the adapter.

        Args:
            engine_provider: Returns the session's engine, creating it on first use.
            target_framework: Session-fixed target framework moniker.
            script_extension: Session-fixed script extension hint.
            package_manager_key: Key identifying the package manager to the engine.
            error_sink: Optional receiver for engine-reported errors and warnings.
            executor: Executor for the blocking call; the loop default when None.
        """
        self._engine_provider = engine_provider
        self._target_framework = target_framework
        self._script_extension = script_extension
        self._package_manager_key = package_manager_key
        self._report_error = make_error_reporter(error_sink)
        self._executor = executor

    @property
    def report_error(self) -> ErrorReporter:
        return self._report_error

    def resolve(self, lines: Sequence[str]) -> ResolveOutcome:
        """Run the engine synchronously; engine exceptions become failed outcomes."""
        with Timer() as t:
            try:
                engine = self._engine_provider()
                outcome = engine.resolve(
                    self._package_manager_key,
                    "",
                    "",
                    self._script_extension,
                    list(lines),
                    self._report_error,
                    self._target_framework,
                )
            except Exception as exc:  # pylint: disable=broad-exception-caught
                logger.warning("Package resolution raised: %s", exc)
                return ResolveOutcome(success=False, stdout=(str(exc),))

        if is_debug_enabled(logger):
            logger.debug(
                "Package resolution finished",
                extra=extra_context(
                    event="resolve",
                    component="resolution_adapter",
                    outcome="success" if outcome.success else "failure",
                    line_count=len(lines),
                    root_count=len(outcome.roots),
                    duration_ms=t.duration_ms(),
                ),
            )
        return outcome

    async def resolve_async(self, lines: Sequence[str]) -> ResolveOutcome:
        """Run :meth:`resolve` in an executor so the event loop stays free."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, self.resolve, list(lines))
