"""Tests for RestoreContext request handling and restore orchestration."""

import asyncio
import os
from pathlib import Path
from typing import List, Optional, Sequence

import pytest

from pkgrestore.config import RestoreSettings
from pkgrestore.context import RestoreContext
from pkgrestore.resolution.adapter import ResolveOutcome


class _FakeEngine:
    """Engine stub returning queued outcomes and recording the lines it saw."""

    def __init__(self, *outcomes: ResolveOutcome):
        self.outcomes: List[ResolveOutcome] = list(outcomes)
        self.calls: List[List[str]] = []
        self.disposed = False

    def resolve(self, package_manager_key, source_descriptor, batch_id, script_extension,
                lines, report_error, target_framework):
        self.calls.append(list(lines))
        return self.outcomes.pop(0)

    def dispose(self):
        self.disposed = True


def _success(packages_dir: Path, *packages, files: Optional[Sequence[Path]] = None) -> ResolveOutcome:
    roots = tuple(str(packages_dir / name / version) + os.sep for name, version in packages)
    return ResolveOutcome(success=True, resolutions=tuple(str(f) for f in (files or ())), roots=roots)


def _context(engine, **settings) -> RestoreContext:
    return RestoreContext(lambda: engine, RestoreSettings(**settings))


class TestGetOrAddPackageReference:
    """Tests for request deduplication and version consistency."""

    def test_repeated_request_returns_identical_instance(self):
        context = _context(_FakeEngine())
        first = context.get_or_add_package_reference("Foo", "1.0.0")
        for _ in range(3):
            assert context.get_or_add_package_reference("FOO", "1.0.0") is first

    def test_conflicting_pending_versions_rejected(self):
        context = _context(_FakeEngine())
        first = context.get_or_add_package_reference("Foo", "1.0.0")
        assert context.get_or_add_package_reference("Foo", "2.0.0") is None
        assert context.requested_package_references == (first,)

    def test_unconstrained_then_explicit_is_rejected(self):
        context = _context(_FakeEngine())
        first = context.get_or_add_package_reference("Foo", None)
        assert context.get_or_add_package_reference("Foo", "2.0.0") is None
        assert context.requested_package_references == (first,)

    def test_resolved_reference_returned_for_matching_or_wildcard(self, tmp_path):
        engine = _FakeEngine(_success(tmp_path, ("foo", "1.0.0")))
        context = _context(engine)
        context.get_or_add_package_reference("Foo", "1.0.0")
        asyncio.run(context.restore_async())

        resolved = context.get_resolved_package_reference("foo")
        assert context.get_or_add_package_reference("foo", None) is resolved
        assert context.get_or_add_package_reference("FOO", "*") is resolved
        assert context.get_or_add_package_reference("Foo", " 1.0.0 ") is resolved

    def test_resolved_reference_with_other_version_fails(self, tmp_path):
        engine = _FakeEngine(_success(tmp_path, ("foo", "1.0.0")))
        context = _context(engine)
        context.get_or_add_package_reference("Foo", "1.0.0")
        asyncio.run(context.restore_async())

        assert context.get_or_add_package_reference("Foo", "2.0.0") is None
        assert len(context.requested_package_references) == 1

    def test_restore_sources_are_a_set(self):
        context = _context(_FakeEngine(), restore_sources=["https://a"])
        context.add_restore_source("https://b")
        context.add_restore_source("https://a")
        assert context.restore_sources == ("https://a", "https://b")

    def test_get_resolved_unknown_raises(self):
        with pytest.raises(KeyError):
            _context(_FakeEngine()).get_resolved_package_reference("nope")


class TestRestoreAsync:
    """Tests for restore orchestration."""

    def test_resolves_requested_package_with_its_files(self, tmp_path):
        root = tmp_path / "foo" / "1.0.0"
        inside = [root / "lib" / "Foo.dll", root / "lib" / "Foo.Core.dll"]
        outside = tmp_path / "other" / "Other.dll"
        engine = _FakeEngine(_success(tmp_path, ("foo", "1.0.0"), files=[*inside, outside]))
        context = _context(engine)
        requested = context.get_or_add_package_reference("Foo", "1.0.0")

        result = asyncio.run(context.restore_async())

        assert result.succeeded is True
        assert result.requested_packages == (requested,)
        [ref] = result.resolved_references
        assert ref.package_name == "Foo"
        assert ref.package_version == "1.0.0"
        assert ref.assembly_paths == tuple(inside)
        assert ref.probing_paths == (root,)
        assert context.resolved_package_references == (ref,)

    def test_sends_sources_and_all_pending_references(self, tmp_path):
        engine = _FakeEngine(_success(tmp_path, ("foo", "1.0.0")))
        context = _context(engine, restore_sources=["https://feed"])
        context.get_or_add_package_reference("Foo", "1.0.0")
        context.get_or_add_package_reference("Bar", None)

        asyncio.run(context.restore_async())

        assert engine.calls == [[
            "RestoreSources=https://feed",
            "Include=Foo, Version=1.0.0",
            "Include=Bar, Version=",
        ]]

    def test_padded_name_is_sent_trimmed(self, tmp_path):
        engine = _FakeEngine(_success(tmp_path, ("foo", "1.0")))
        context = _context(engine)
        context.get_or_add_package_reference(" Foo ", "1.0")

        result = asyncio.run(context.restore_async())

        assert engine.calls == [["Include=Foo, Version=1.0"]]
        assert [r.package_name for r in result.resolved_references] == ["Foo"]

    def test_failure_reports_errors_and_keeps_store(self, tmp_path):
        engine = _FakeEngine(ResolveOutcome(success=False, stdout=("X",)))
        context = _context(engine)
        requested = context.get_or_add_package_reference("Bar", "")

        result = asyncio.run(context.restore_async())

        assert result.succeeded is False
        assert result.errors == "X"
        assert result.requested_packages == (requested,)
        assert result.resolved_references == ()
        assert context.resolved_package_references == ()

    def test_failed_requests_are_retried(self, tmp_path):
        engine = _FakeEngine(
            ResolveOutcome(success=False, stdout=("feed down",)),
            _success(tmp_path, ("bar", "2.0.0")),
        )
        context = _context(engine)
        context.get_or_add_package_reference("Bar", None)

        asyncio.run(context.restore_async())
        result = asyncio.run(context.restore_async())

        assert result.succeeded is True
        assert [r.package_name for r in result.resolved_references] == ["Bar"]
        assert engine.calls[1] == ["Include=Bar, Version="]

    def test_second_restore_without_new_requests_is_noop(self, tmp_path):
        engine = _FakeEngine(_success(tmp_path, ("foo", "1.0.0")))
        context = _context(engine)
        context.get_or_add_package_reference("Foo", "1.0.0")

        asyncio.run(context.restore_async())
        second = asyncio.run(context.restore_async())

        assert second.succeeded is True
        assert second.requested_packages == ()
        assert second.resolved_references == ()
        assert len(engine.calls) == 1

    def test_only_new_resolutions_are_reported(self, tmp_path):
        engine = _FakeEngine(
            _success(tmp_path, ("foo", "1.0.0")),
            _success(tmp_path, ("foo", "1.0.0"), ("bar", "2.0.0")),
        )
        context = _context(engine)
        context.get_or_add_package_reference("Foo", "1.0.0")
        first = asyncio.run(context.restore_async())
        before = {r.key for r in context.resolved_package_references}

        context.get_or_add_package_reference("Bar", "2.0.0")
        second = asyncio.run(context.restore_async())

        assert [r.package_name for r in first.resolved_references] == ["Foo"]
        assert [r.package_name for r in second.resolved_references] == ["Bar"]
        assert not before & {r.key for r in second.resolved_references}
        assert [r.package_name for r in second.requested_packages] == ["Bar"]

    def test_duplicate_roots_keep_first(self, tmp_path):
        engine = _FakeEngine(_success(tmp_path, ("foo", "1.0.0"), ("foo", "1.1.0")))
        context = _context(engine)
        context.get_or_add_package_reference("Foo", None)

        result = asyncio.run(context.restore_async())

        assert [r.package_version for r in result.resolved_references] == ["1.0.0"]

    def test_transitive_packages_are_resolved_too(self, tmp_path):
        engine = _FakeEngine(_success(tmp_path, ("foo", "1.0.0"), ("foo.core", "1.0.0")))
        context = _context(engine)
        context.get_or_add_package_reference("Foo", None)

        result = asyncio.run(context.restore_async())

        assert [r.package_name for r in result.resolved_references] == ["Foo", "foo.core"]
        assert [r.package_name for r in result.requested_packages] == ["Foo"]

    def test_concurrent_restores_are_serialized(self, tmp_path):
        engine = _FakeEngine(_success(tmp_path, ("foo", "1.0.0")))
        context = _context(engine)
        context.get_or_add_package_reference("Foo", None)

        async def _run():
            return await asyncio.gather(context.restore_async(), context.restore_async())

        first, second = asyncio.run(_run())

        assert len(engine.calls) == 1
        assert [r.package_name for r in first.resolved_references] == ["Foo"]
        assert second.resolved_references == ()

    def test_probing_enumerations(self, tmp_path):
        root = tmp_path / "foo" / "1.0.0"
        dll = root / "lib" / "Foo.dll"
        engine = _FakeEngine(_success(tmp_path, ("foo", "1.0.0"), files=[dll]))
        context = _context(engine)
        context.get_or_add_package_reference("Foo", None)
        asyncio.run(context.restore_async())

        assert list(context.assembly_probing_paths()) == [dll]
        assert list(context.native_probing_roots()) == [root]


class TestEngineLifecycle:
    """Tests for lazy engine creation and disposal."""

    def test_engine_created_once_and_only_when_needed(self, tmp_path):
        created = []

        def factory():
            engine = _FakeEngine(_success(tmp_path, ("a", "1.0")), _success(tmp_path, ("b", "1.0")))
            created.append(engine)
            return engine

        context = RestoreContext(factory)
        assert context.engine_created is False

        context.get_or_add_package_reference("A", None)
        asyncio.run(context.restore_async())
        context.get_or_add_package_reference("B", None)
        asyncio.run(context.restore_async())

        assert len(created) == 1
        assert len(created[0].calls) == 2

    def test_dispose_only_when_created(self):
        factory_calls = []
        context = RestoreContext(lambda: factory_calls.append(1))
        context.dispose()
        assert factory_calls == []

    def test_context_manager_disposes_engine(self, tmp_path):
        engine = _FakeEngine(_success(tmp_path, ("a", "1.0")))
        with _context(engine) as context:
            context.get_or_add_package_reference("A", None)
            asyncio.run(context.restore_async())
        assert engine.disposed is True

    def test_dispose_failure_is_swallowed(self, tmp_path):
        engine = _FakeEngine(_success(tmp_path, ("a", "1.0")))

        def _boom():
            raise RuntimeError("cannot clean up")

        engine.dispose = _boom
        context = _context(engine)
        context.get_or_add_package_reference("A", None)
        asyncio.run(context.restore_async())

        context.dispose()

    def test_restore_after_dispose_raises_without_new_engine(self, tmp_path):
        created = []

        def factory():
            engine = _FakeEngine(_success(tmp_path, ("a", "1.0")), _success(tmp_path, ("b", "1.0")))
            created.append(engine)
            return engine

        context = RestoreContext(factory)
        context.get_or_add_package_reference("A", None)
        asyncio.run(context.restore_async())
        context.dispose()

        context.get_or_add_package_reference("B", None)
        with pytest.raises(RuntimeError):
            asyncio.run(context.restore_async())

        assert len(created) == 1
        assert created[0].disposed is True
        assert context.engine_created is False
