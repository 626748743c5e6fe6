"""Resolver engine backed by the ``dotnet`` CLI.

Each batch is written as a throw-away SDK project, restored with
``dotnet restore``, and read back from ``obj/project.assets.json``.
"""

from __future__ import annotations

import itertools
import json
import logging
import os
import re
import shutil
import subprocess
import tempfile
import textwrap
from typing import Any, Dict, List, Optional, Sequence, Tuple
from xml.sax.saxutils import quoteattr, escape

from ..constants import Constants, ErrorReportType
from .adapter import ErrorReporter, ResolveOutcome

logger = logging.getLogger(__name__)

_PROJECT_TEMPLATE = textwrap.dedent("""\
    <Project Sdk="Microsoft.NET.Sdk">
      <PropertyGroup>
        <TargetFramework>{target_framework}</TargetFramework>
    {restore_sources}  </PropertyGroup>
      <ItemGroup>
    {package_references}  </ItemGroup>
    </Project>
""")

_SOURCE_LINE = re.compile(r"^RestoreSources=(?P<source>.+)$")
_INCLUDE_LINE = re.compile(r"^Include=(?P<name>[^,]+),\s*Version=(?P<version>.*)$")
_DIAGNOSTIC_LINE = re.compile(r"\b(?P<severity>error|warning)\s+NU(?P<code>\d+)\s*:\s*(?P<message>.+)$", re.IGNORECASE)

# Assets with this name only mark an empty folder
_PLACEHOLDER_ASSET = "_._"


def parse_lines(lines: Sequence[str]) -> Tuple[List[str], List[Tuple[str, str]]]:
    """Split package-manager lines into restore sources and (name, version) pairs.

    Raises:
        ValueError: On a line that is neither form.
    """
    sources: List[str] = []
    packages: List[Tuple[str, str]] = []
    for line in lines:
        text = line.strip()
        if not text:
            continue
        source = _SOURCE_LINE.match(text)
        if source:
            sources.append(source.group("source").strip())
            continue
        include = _INCLUDE_LINE.match(text)
        if include:
            version = include.group("version").strip() or Constants.WILDCARD_VERSION
            packages.append((include.group("name").strip(), version))
            continue
        raise ValueError(f"Unrecognized package manager line: {line!r}")
    return sources, packages


def render_project(target_framework: str, sources: Sequence[str], packages: Sequence[Tuple[str, str]]) -> str:
    """Render the SDK project used to restore one batch."""
    restore_sources = ""
    if sources:
        joined = escape(";".join(["$(RestoreSources)", *sources]))
        restore_sources = f"    <RestoreSources>{joined}</RestoreSources>\n"
    package_references = "".join(
        f"    <PackageReference Include={quoteattr(name)} Version={quoteattr(version)} />\n"
        for name, version in packages
    )
    return _PROJECT_TEMPLATE.format(
        target_framework=escape(target_framework),
        restore_sources=restore_sources,
        package_references=package_references,
    )


def read_assets(assets: Dict[str, Any]) -> Tuple[List[str], List[str]]:
    """Extract resolved asset files and package roots from a parsed assets file.

    Returns:
        Tuple of (resolved file paths, package root directories).
    """
    folders = list((assets.get("packageFolders") or {}).keys())
    if not folders:
        return [], []
    packages_folder = folders[0]

    libraries = assets.get("libraries") or {}
    roots: Dict[str, str] = {}
    for library_id, library in libraries.items():
        if library.get("type") != "package" or not library.get("path"):
            continue
        root = os.path.join(packages_folder, *library["path"].split("/"))
        roots[library_id] = root.rstrip(os.sep) + os.sep

    resolutions: List[str] = []
    for target in (assets.get("targets") or {}).values():
        for library_id, entry in target.items():
            root = roots.get(library_id)
            if root is None:
                continue
            for group in ("compile", "runtime"):
                for asset in (entry.get(group) or {}):
                    if os.path.basename(asset) == _PLACEHOLDER_ASSET:
                        continue
                    path = os.path.join(root, *asset.split("/"))
                    if path not in resolutions:
                        resolutions.append(path)

    return resolutions, list(roots.values())


class DotnetCliEngine:
    """Resolve package references by shelling out to ``dotnet restore``."""

    def __init__(self, dotnet_path: str = Constants.DOTNET_EXECUTABLE, timeout: Optional[float] = None):
        """Initialize the engine.

        Args:
            dotnet_path: Executable to invoke.
            timeout: Optional subprocess timeout in seconds.
        """
        self._dotnet_path = dotnet_path
        self._timeout = timeout
        self._work_dir: Optional[str] = None
        self._batches = itertools.count(1)

    def _batch_dir(self) -> str:
        if self._work_dir is None:
            self._work_dir = tempfile.mkdtemp(prefix="pkgrestore-")
        path = os.path.join(self._work_dir, f"batch-{next(self._batches)}")
        os.makedirs(path)
        return path

    def resolve(
        self,
        package_manager_key: str,
        source_descriptor: str,
        batch_id: str,
        script_extension: str,
        lines: Sequence[str],
        report_error: ErrorReporter,
        target_framework: str,
    ) -> ResolveOutcome:
        """Restore ``lines`` and return the resolved files and package roots."""
        try:
            sources, packages = parse_lines(lines)
        except ValueError as exc:
            return ResolveOutcome(success=False, stdout=(str(exc),))

        directory = self._batch_dir()
        project_path = os.path.join(directory, f"{batch_id or 'restore'}.csproj")
        with open(project_path, "w", encoding="utf-8") as f:
            f.write(render_project(target_framework, sources, packages))

        logger.debug("Restoring %d package(s) for %s via %s", len(packages), package_manager_key, project_path)
        try:
            completed = subprocess.run(
                [self._dotnet_path, "restore", project_path],
                capture_output=True,
                text=True,
                timeout=self._timeout,
                check=False,
            )
        except (OSError, subprocess.SubprocessError) as exc:
            return ResolveOutcome(success=False, stdout=(f"Unable to run {self._dotnet_path}: {exc}",))

        output = [line for line in (completed.stdout or "").splitlines() + (completed.stderr or "").splitlines() if line.strip()]
        for line in output:
            diagnostic = _DIAGNOSTIC_LINE.search(line)
            if diagnostic:
                severity = ErrorReportType.ERROR if diagnostic.group("severity").lower() == "error" else ErrorReportType.WARNING
                report_error(severity, int(diagnostic.group("code")), diagnostic.group("message").strip())

        if completed.returncode != 0:
            return ResolveOutcome(success=False, stdout=tuple(output))

        assets_path = os.path.join(directory, "obj", Constants.ASSETS_FILE)
        try:
            with open(assets_path, "r", encoding="utf-8") as f:
                assets = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            return ResolveOutcome(success=False, stdout=(*output, f"Unable to read {assets_path}: {exc}"))

        resolutions, roots = read_assets(assets)
        return ResolveOutcome(
            success=True,
            resolutions=tuple(resolutions),
            source_files=(project_path,),
            roots=tuple(roots),
            stdout=tuple(output),
        )

    def dispose(self) -> None:
        """Remove the engine's working directory."""
        if self._work_dir is not None:
            shutil.rmtree(self._work_dir, ignore_errors=True)
            self._work_dir = None
