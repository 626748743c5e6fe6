"""pkgrestore: incremental package requests and restore orchestration.

Sessions declare package dependencies one directive at a time; a
``RestoreContext`` deduplicates the requests, restores them through a resolver
engine in one batch, and caches the resolved references for the session.
"""

from .config import ConfigError, RestoreSettings, load_settings
from .context import RestoreContext
from .models import PackageReference, ResolvedPackageReference, RestoreResult, reference_key
from .progress import (
    ErrorProduced,
    PackageAdded,
    ProgressSupervisor,
    RestoreReporter,
    RestoreTimeoutError,
)
from .resolution import DotnetCliEngine, ResolutionAdapter, ResolveOutcome, ResolverEngine

__all__ = [
    "ConfigError",
    "RestoreSettings",
    "load_settings",
    "RestoreContext",
    "PackageReference",
    "ResolvedPackageReference",
    "RestoreResult",
    "reference_key",
    "ErrorProduced",
    "PackageAdded",
    "ProgressSupervisor",
    "RestoreReporter",
    "RestoreTimeoutError",
    "DotnetCliEngine",
    "ResolutionAdapter",
    "ResolveOutcome",
    "ResolverEngine",
]
