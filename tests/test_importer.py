from __future__ import annotations

import json

import pytest
from rich.console import Console

from vkvctl.commands.importer import ImportOptions, ImportOrchestrator, _parse_input
from vkvctl.errors import AmbiguousRootError, InvalidFlagCombinationError, MalformedTreeError
from vkvctl.tree import Leaf, Subtree, build_tree
from vkvctl.vault_client import VaultError

from conftest import FakeBackend

INPUT = {"secret": {"app": {"db": {"user": "alice", "pass": "s3cret"}}, "web": {"port": "80"}}}


@pytest.fixture()
def orchestrator(backend: FakeBackend, out_console: Console, log_console: Console) -> ImportOrchestrator:
    return ImportOrchestrator(backend, out=out_console, log=log_console)


@pytest.mark.parametrize(
    "options",
    [
        ImportOptions(force=True, dry_run=True),
        ImportOptions(silent=True, dry_run=True),
    ],
)
def test_invalid_flag_combinations(orchestrator: ImportOrchestrator, options: ImportOptions) -> None:
    with pytest.raises(InvalidFlagCombinationError):
        orchestrator.run(INPUT, options)


def test_import_detects_root_and_writes_every_path(orchestrator: ImportOrchestrator, backend: FakeBackend) -> None:
    result = orchestrator.run(INPUT, ImportOptions())

    assert (result.engine_path, result.sub_path) == ("secret", "")
    assert backend.mounts == {"secret"}
    assert backend.writes == [
        ("secret", "app/db", {"user": "alice", "pass": "s3cret"}),
        ("secret", "web", {"port": "80"}),
    ]
    assert result.written == ["secret/app/db", "secret/web"]


def test_import_detects_multi_segment_root_as_engine_path(orchestrator: ImportOrchestrator, backend: FakeBackend) -> None:
    result = orchestrator.run({"kv/team/": {"app": {"k": "v"}}}, ImportOptions())

    assert (result.engine_path, result.sub_path) == ("kv/team", "")
    assert backend.writes == [("kv/team", "app", {"k": "v"})]


def test_import_to_explicit_path_replaces_input_root(orchestrator: ImportOrchestrator, backend: FakeBackend) -> None:
    orchestrator.run(INPUT, ImportOptions(path="copy/backup"))

    assert backend.mounts == {"copy"}
    assert [(engine, path) for engine, path, _ in backend.writes] == [
        ("copy", "backup/app/db"),
        ("copy", "backup/web"),
    ]


def test_import_with_engine_path_and_path(orchestrator: ImportOrchestrator, backend: FakeBackend) -> None:
    orchestrator.run(INPUT, ImportOptions(engine_path="kv/team", path="imported"))

    assert [(engine, path) for engine, path, _ in backend.writes] == [
        ("kv/team", "imported/app/db"),
        ("kv/team", "imported/web"),
    ]


def test_import_without_root_needs_destination(orchestrator: ImportOrchestrator, backend: FakeBackend) -> None:
    with pytest.raises(AmbiguousRootError, match="-p/-e"):
        orchestrator.run({"a": {"x": {"k": "v"}}, "b": {"y": {"k": "v"}}}, ImportOptions())

    assert backend.writes == []


def test_import_multiple_roots_to_explicit_path(orchestrator: ImportOrchestrator, backend: FakeBackend) -> None:
    orchestrator.run({"a": {"k": "1"}, "b": {"k": "2"}}, ImportOptions(path="secret/dest"))

    assert backend.writes == [("secret", "dest/a", {"k": "1"}), ("secret", "dest/b", {"k": "2"})]


@pytest.mark.parametrize("options", [ImportOptions(path="/"), ImportOptions(engine_path="/")])
def test_import_rejects_empty_destination(
    orchestrator: ImportOrchestrator, backend: FakeBackend, options: ImportOptions
) -> None:
    with pytest.raises(AmbiguousRootError, match="-p/-e"):
        orchestrator.run(INPUT, options)

    assert backend.mounts == set()
    assert backend.writes == []


def test_import_yaml_dates_are_written_as_strings(orchestrator: ImportOrchestrator, backend: FakeBackend) -> None:
    secrets = _parse_input(b"secret:\n  app:\n    expires: 2025-01-01\n")

    orchestrator.run(secrets, ImportOptions())

    assert backend.writes == [("secret", "app", {"expires": "2025-01-01"})]
    assert json.dumps(backend.writes[0][2]) == '{"expires": "2025-01-01"}'


def test_import_existing_engine_requires_force(orchestrator: ImportOrchestrator, backend: FakeBackend) -> None:
    backend.mounts.add("secret")

    with pytest.raises(VaultError, match="already enabled"):
        orchestrator.run(INPUT, ImportOptions())
    assert backend.writes == []

    orchestrator.run(INPUT, ImportOptions(force=True))
    assert len(backend.writes) == 2


def test_import_stops_at_first_failed_write(orchestrator: ImportOrchestrator, backend: FakeBackend) -> None:
    backend.fail_on.add("secret/app/db")

    with pytest.raises(VaultError, match='"secret/app/db"'):
        orchestrator.run(INPUT, ImportOptions())

    assert backend.writes == []


def test_import_rejects_malformed_input(orchestrator: ImportOrchestrator, backend: FakeBackend) -> None:
    with pytest.raises(MalformedTreeError):
        orchestrator.run({"secret": {"app": {"k": "v"}, "token": "abc"}}, ImportOptions())

    assert backend.writes == []


def test_import_prints_result_unless_silent(
    backend: FakeBackend, out_console: Console, log_console: Console
) -> None:
    ImportOrchestrator(backend, out=out_console, log=log_console).run(INPUT, ImportOptions(max_value_length=3))

    assert out_console.export_text() == "secret/\n  app/\n    db\n      pass=***\n      user=***\n  web\n    port=**\n"
    assert backend.reads == [("secret", "", False)]

    ImportOrchestrator(backend, out=out_console, log=log_console).run(INPUT, ImportOptions(force=True, silent=True))

    assert out_console.export_text() == ""


# ─────────────────────────────────────────────────────────────────────────────
# Dry run
# ─────────────────────────────────────────────────────────────────────────────


def test_dry_run_previews_merge_without_writing(
    backend: FakeBackend, out_console: Console, log_console: Console
) -> None:
    backend.secrets = {
        "secret/app/db": {"user": "root", "host": "db.local"},
        "secret/old": {"k": "v"},
    }
    orchestrator = ImportOrchestrator(backend, out=out_console, log=log_console)

    result = orchestrator.run(INPUT, ImportOptions(dry_run=True, show_values=True))

    assert result.changed is True
    assert backend.writes == []
    assert backend.mounts == set()
    assert backend.reads == [("secret", "", True)]
    assert out_console.export_text() == (
        "secret/\n"
        "  app/\n"
        "    db\n"
        "      host=db.local\n"
        "      pass=s3cret\n"
        "      user=alice\n"
        "  old\n"
        "    k=v\n"
        "  web\n"
        "    port=80\n"
    )
    assert "apply changes by using the --force flag" in log_console.export_text()


def test_dry_run_reports_no_changes_when_input_matches(
    backend: FakeBackend, out_console: Console, log_console: Console
) -> None:
    backend.secrets = {
        "secret/app/db": {"user": "alice", "pass": "s3cret"},
        "secret/web": {"port": "80"},
    }
    orchestrator = ImportOrchestrator(backend, out=out_console, log=log_console)

    result = orchestrator.run(INPUT, ImportOptions(dry_run=True))

    assert result.changed is False
    assert result.tree == build_tree(INPUT["secret"])
    assert backend.writes == []
    assert "no changes needed" in log_console.export_text()


def test_dry_run_subset_of_existing_is_no_change(orchestrator: ImportOrchestrator, backend: FakeBackend) -> None:
    backend.secrets = {"secret/app/db": {"user": "alice", "pass": "s3cret", "port": "5432"}, "secret/web": {"port": "80"}}

    result = orchestrator.run(INPUT, ImportOptions(dry_run=True))

    assert result.changed is False


def test_dry_run_against_empty_store(orchestrator: ImportOrchestrator, backend: FakeBackend) -> None:
    result = orchestrator.run(INPUT, ImportOptions(dry_run=True))

    assert result.changed is True
    assert result.tree == build_tree(INPUT["secret"])


def test_dry_run_to_engine_path(orchestrator: ImportOrchestrator, backend: FakeBackend) -> None:
    backend.secrets = {"kv/team/dest/app/db": {"user": "alice", "pass": "old"}}

    result = orchestrator.run(INPUT, ImportOptions(engine_path="kv/team", path="dest", dry_run=True))

    assert backend.reads == [("kv/team", "dest", True)]
    assert result.tree == Subtree(
        {
            "app": Subtree({"db": Leaf({"user": "alice", "pass": "s3cret"})}),
            "web": Leaf({"port": "80"}),
        }
    )
