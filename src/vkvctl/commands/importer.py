"""Import command.
vkvctl export 출력(JSON/YAML)에서 시크릿 가져오기.

Usage:
    vkvctl export -p secret -f json > secrets.json
    vkvctl import -f secrets.json                 # write back to "secret"
    vkvctl import -f secrets.json -p copy/app     # write below copy/app
    vkvctl import -f secrets.json -p secret -d    # preview only
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional, Protocol

import typer
from rich.console import Console

from vkvctl.config import settings
from vkvctl.errors import AmbiguousRootError, InvalidFlagCombinationError, ParseError, VkvError
from vkvctl.printer import RenderOptions, SecretPrinter
from vkvctl.tree import (
    FlatSecretSet,
    SecretNode,
    Subtree,
    build_tree,
    classify_root,
    deep_merge,
    flatten,
    handle_engine_path,
    join_path,
    resolve_root,
    unflatten,
)
from vkvctl.utils import from_json, from_yaml
from vkvctl.vault_client import VaultError, build_client

console = Console()
err_console = Console(stderr=True, soft_wrap=True)


class SecretBackend(Protocol):
    """What the importer needs from a secret store."""

    def enable_kv2_engine(self, path: str, force: bool = False) -> None: ...

    def write_leaf(self, engine_path: str, sub_path: str, leaf: dict[str, Any]) -> None: ...

    def read_tree_recursive(
        self, engine_path: str, sub_path: str = "", include_metadata: bool = False
    ) -> FlatSecretSet: ...


@dataclass
class ImportOptions:
    """Options of one import run."""

    engine_path: str = ""
    path: str = ""
    force: bool = False
    dry_run: bool = False
    silent: bool = False
    show_values: bool = False
    max_value_length: int = settings.max_value_length

    def validate(self) -> None:
        if self.force and self.dry_run:
            raise InvalidFlagCombinationError("cannot specify both --force and --dry-run")
        if self.silent and self.dry_run:
            raise InvalidFlagCombinationError("cannot specify both --silent and --dry-run")

    def render_options(self) -> RenderOptions:
        return RenderOptions(mask_values=not self.show_values, mask_length=self.max_value_length)


@dataclass
class ImportResult:
    """Outcome of an import run."""

    engine_path: str
    sub_path: str
    written: list[str] = field(default_factory=list)
    changed: bool = True
    tree: Optional[SecretNode] = None


class ImportOrchestrator:
    """Sequences parsing, root detection, merging and writes for an import.

    The backend and the consoles are passed in; nothing here reads global
    state.
    """

    def __init__(self, client: SecretBackend, out: Optional[Console] = None, log: Optional[Console] = None):
        self.client = client
        self.out = out or console
        self.log = log or err_console

    def run(self, secrets: Mapping[str, Any], options: ImportOptions) -> ImportResult:
        options.validate()

        engine_path, path = options.engine_path, options.path
        if not engine_path and not path:
            self.log.print("[dim]no path specified, trying to determine root path from the provided input[/dim]")
            try:
                root = resolve_root(secrets)
            except AmbiguousRootError as e:
                raise AmbiguousRootError(f"try specifying a destination path using -p/-e. {e.message}") from e

            self.log.print(f'[dim]using "{root}" as KV engine path[/dim]')
            engine_path, path = classify_root(root)

        root_path, sub_path = handle_engine_path(engine_path, path)
        if not root_path:
            raise AmbiguousRootError("empty destination path, specify a path using -p/-e")

        payload = self._payload(secrets)
        printer = SecretPrinter(options.render_options(), console=self.out)

        if options.dry_run:
            return self.dry_run(root_path, sub_path, engine_path, payload, printer)

        self.client.enable_kv2_engine(root_path, force=options.force)
        written = self.write_secrets(root_path, sub_path, payload)
        result = ImportResult(root_path, sub_path, written=written, tree=payload)

        if not options.silent:
            self.log.print("\nresult:\n")
            printer.out(self.read_back(root_path, sub_path, engine_path))

        return result

    def _payload(self, secrets: Mapping[str, Any]) -> SecretNode:
        """Secrets below the input's single root element, or the whole input."""
        tree = build_tree(secrets)
        if isinstance(tree, Subtree) and len(tree.children) == 1:
            return next(iter(tree.children.values()))
        return tree

    def write_secrets(self, root_path: str, sub_path: str, payload: SecretNode) -> list[str]:
        """Write each path of ``payload`` below ``root_path/sub_path``."""
        flat = flatten(payload, sub_path)
        written = []

        for path in sorted(flat):
            try:
                self.client.write_leaf(root_path, path, flat[path])
            except VaultError as e:
                raise VaultError(f'error writing secret "{join_path(root_path, path)}": {e.message}', e.status_code) from e

            written.append(join_path(root_path, path))
            self.log.print(f'writing secret "{join_path(root_path, path)}"')

        self.log.print("[green]✓[/green] successfully imported all secrets")
        return written

    def dry_run(
        self,
        root_path: str,
        sub_path: str,
        engine_path: str,
        payload: SecretNode,
        printer: SecretPrinter,
    ) -> ImportResult:
        """Preview the store after applying ``payload``, without writing."""
        prefix = join_path(root_path, sub_path)
        self.log.print(f'[dim]fetching KV secrets from "{prefix}" (if any)[/dim]')

        try:
            flat = self.client.read_tree_recursive(root_path, sub_path, include_metadata=True)
        except VaultError as e:
            raise VaultError(f'error listing secrets from "{prefix}": {e.message}', e.status_code) from e

        if not flat:
            self.log.print("[dim]no secrets found - nothing to compare with[/dim]")

        existing = unflatten(prefix, flat, engine_path)
        merged = deep_merge(payload, existing)

        if merged == existing:
            self.log.print("\ninput matches secrets - no changes needed:\n")
            printer.out(Subtree({prefix: existing}))
            return ImportResult(root_path, sub_path, changed=False, tree=existing)

        self.log.print(f'deep merging provided secrets with existing secrets read from "{prefix}"')
        self.log.print("\npreview:\n")
        printer.out(Subtree({prefix: merged}))
        self.log.print("\napply changes by using the --force flag")
        return ImportResult(root_path, sub_path, changed=True, tree=merged)

    def read_back(self, root_path: str, sub_path: str, engine_path: str) -> SecretNode:
        """Current state below ``root_path/sub_path``, rooted at that path."""
        prefix = join_path(root_path, sub_path)
        flat = self.client.read_tree_recursive(root_path, sub_path, include_metadata=False)
        return Subtree({prefix: unflatten(prefix, flat, engine_path)})


# ═══════════════════════════════════════════════════════════════════════════════
# vkvctl import
# ═══════════════════════════════════════════════════════════════════════════════


def _read_input(file: Optional[Path]) -> bytes:
    if file is not None:
        raw = file.read_bytes()
        err_console.print(f"[dim]reading secrets from {file}[/dim]")
    else:
        raw = typer.get_binary_stream("stdin").read()
        err_console.print("[dim]reading secrets from STDIN[/dim]")

    if not raw.strip():
        raise ParseError("no input found, perhaps the piped command failed or specified file is empty")
    return raw


def _parse_input(raw: bytes) -> dict[str, Any]:
    try:
        secrets = from_json(raw)
    except ParseError:
        try:
            secrets = from_yaml(raw)
        except ParseError as e:
            raise ParseError(f"cannot parse input, perhaps not a vkvctl output? Error: {e.message}") from e
        err_console.print("[dim]parsing secrets from YAML[/dim]")
        return secrets

    err_console.print("[dim]parsing secrets from JSON[/dim]")
    return secrets


def import_secrets(
    path: str = typer.Option("", "--path", "-p", envvar="VKVCTL_IMPORT_PATH", help="KV v2 engine path"),
    engine_path: str = typer.Option(
        "",
        "--engine-path",
        "-e",
        envvar="VKVCTL_IMPORT_ENGINE_PATH",
        help='Engine path when the mount contains "/"; --path is appended below it',
    ),
    file: Optional[Path] = typer.Option(
        None,
        "--file",
        "-f",
        envvar="VKVCTL_IMPORT_FILE",
        exists=True,
        dir_okay=False,
        help="File with vkvctl JSON or YAML output (STDIN if omitted)",
    ),
    force: bool = typer.Option(False, "--force", envvar="VKVCTL_IMPORT_FORCE", help="Write into an existing engine"),
    dry_run: bool = typer.Option(False, "--dry-run", "-d", envvar="VKVCTL_IMPORT_DRY_RUN", help="Preview the result"),
    silent: bool = typer.Option(False, "--silent", "-s", envvar="VKVCTL_IMPORT_SILENT", help="Do not print secrets"),
    show_values: bool = typer.Option(False, "--show-values", envvar="VKVCTL_IMPORT_SHOW_VALUES", help="Don't mask values"),
    max_value_length: int = typer.Option(
        settings.max_value_length,
        "--max-value-length",
        envvar="VKVCTL_IMPORT_MAX_VALUE_LENGTH",
        min=-1,
        help='Maximum length of masked values, "-1" to disable',
    ),
):
    """Import secrets from vkvctl's JSON or YAML output.

    \b
    Examples:
        vkvctl import -f secrets.json
        vkvctl export -p secret -f yaml | vkvctl import -p backup -d
    """
    options = ImportOptions(
        engine_path=engine_path,
        path=path,
        force=force,
        dry_run=dry_run,
        silent=silent,
        show_values=show_values,
        max_value_length=max_value_length,
    )

    client = None
    try:
        options.validate()
        secrets = _parse_input(_read_input(file))
        client = build_client()
        ImportOrchestrator(client, out=console, log=err_console).run(secrets, options)
    except (VkvError, VaultError) as e:
        err_console.print(f"[red]✗[/red] {e.message}")
        raise typer.Exit(1)
    finally:
        if client is not None:
            client.close()
