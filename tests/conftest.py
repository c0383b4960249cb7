from __future__ import annotations

import io
from typing import Any

import pytest
from rich.console import Console

from vkvctl.tree import join_path
from vkvctl.vault_client import VaultError


class FakeBackend:
    """In-memory KV store keyed by absolute path."""

    def __init__(self, secrets: dict[str, dict[str, Any]] | None = None, mounts: set[str] | None = None) -> None:
        self.secrets: dict[str, dict[str, Any]] = dict(secrets or {})
        self.mounts: set[str] = set(mounts or ())
        self.writes: list[tuple[str, str, dict[str, Any]]] = []
        self.reads: list[tuple[str, str, bool]] = []
        self.fail_on: set[str] = set()
        self.closed = False

    def enable_kv2_engine(self, path: str, force: bool = False) -> None:
        if path in self.mounts:
            if not force:
                raise VaultError(f'a secret engine is already enabled at "{path}"')
            return
        self.mounts.add(path)

    def write_leaf(self, engine_path: str, sub_path: str, leaf: dict[str, Any]) -> None:
        full = join_path(engine_path, sub_path)
        if full in self.fail_on:
            raise VaultError("permission denied", 403)
        self.writes.append((engine_path, sub_path, dict(leaf)))
        self.secrets[full] = dict(leaf)

    def read_tree_recursive(
        self, engine_path: str, sub_path: str = "", include_metadata: bool = False
    ) -> dict[str, dict[str, Any]]:
        self.reads.append((engine_path, sub_path, include_metadata))
        prefix = join_path(engine_path, sub_path)
        return {
            path: dict(values)
            for path, values in self.secrets.items()
            if path == prefix or path.startswith(f"{prefix}/")
        }

    def close(self) -> None:
        self.closed = True


@pytest.fixture()
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture()
def out_console() -> Console:
    return Console(record=True, width=200, file=io.StringIO())


@pytest.fixture()
def log_console() -> Console:
    return Console(record=True, width=200, file=io.StringIO())
