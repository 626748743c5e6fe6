"""Resolver boundary: engine contract, adapter, and result translation."""

from .adapter import (
    ErrorReporter,
    ResolutionAdapter,
    ResolveOutcome,
    ResolverEngine,
    make_error_reporter,
    package_manager_lines,
)
from .builder import ReferenceBuilder, package_identity
from .dotnet import DotnetCliEngine

__all__ = [
    "ErrorReporter",
    "ResolutionAdapter",
    "ResolveOutcome",
    "ResolverEngine",
    "make_error_reporter",
    "package_manager_lines",
    "ReferenceBuilder",
    "package_identity",
    "DotnetCliEngine",
]
