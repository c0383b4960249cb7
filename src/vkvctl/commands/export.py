"""Export command.
KV 엔진의 시크릿 트리 출력.

Usage:
    vkvctl export -p secret                 # plain tree, masked values
    vkvctl export -p secret/app -f json     # JSON, re-importable
    vkvctl export -e kv/team -f export      # shell export statements
"""

import typer
from rich.console import Console

from vkvctl.config import settings
from vkvctl.errors import VkvError
from vkvctl.printer import OutputFormat, RenderOptions, SecretPrinter
from vkvctl.tree import Subtree, handle_engine_path, join_path, unflatten
from vkvctl.vault_client import VaultError, build_client

console = Console()
err_console = Console(stderr=True, soft_wrap=True)


def export_secrets(
    path: str = typer.Option("", "--path", "-p", envvar="VKVCTL_EXPORT_PATH", help="KV v2 engine path"),
    engine_path: str = typer.Option(
        "",
        "--engine-path",
        "-e",
        envvar="VKVCTL_EXPORT_ENGINE_PATH",
        help='Engine path when the mount contains "/"; --path is appended below it',
    ),
    output_format: str = typer.Option(
        OutputFormat.NATIVE.value,
        "--format",
        "-f",
        envvar="VKVCTL_EXPORT_FORMAT",
        help="Output format: native, json, yaml, export",
    ),
    show_values: bool = typer.Option(False, "--show-values", envvar="VKVCTL_EXPORT_SHOW_VALUES", help="Don't mask values"),
    max_value_length: int = typer.Option(
        settings.max_value_length,
        "--max-value-length",
        envvar="VKVCTL_EXPORT_MAX_VALUE_LENGTH",
        min=-1,
        help='Maximum length of masked values, "-1" to disable',
    ),
    only_keys: bool = typer.Option(False, "--only-keys", envvar="VKVCTL_EXPORT_ONLY_KEYS", help="Show keys without values"),
    only_paths: bool = typer.Option(False, "--only-paths", envvar="VKVCTL_EXPORT_ONLY_PATHS", help="Show paths only"),
):
    """Print all secrets below a path.

    \b
    Examples:
        vkvctl export -p secret
        eval "$(vkvctl export -p secret/app -f export)"
    """
    client = None
    try:
        options = RenderOptions(
            format=output_format,
            mask_values=not show_values,
            mask_length=max_value_length,
            only_keys=only_keys,
            only_paths=only_paths,
        )
        if options.format == OutputFormat.EXPORT:
            # shell statements are useless with masked values
            options = options.model_copy(update={"mask_values": False})

        root_path, sub_path = handle_engine_path(engine_path, path)
        if not root_path:
            raise VkvError("specify a path using -p/-e")

        prefix = join_path(root_path, sub_path)
        client = build_client()
        flat = client.read_tree_recursive(root_path, sub_path)
        if not flat:
            err_console.print(f'[yellow]![/yellow] No secrets found at "{prefix}"')
            raise typer.Exit(1)

        tree = unflatten(prefix, flat, engine_path)
        SecretPrinter(options, console=console).out(Subtree({prefix: tree}))
    except (VkvError, VaultError) as e:
        err_console.print(f"[red]✗[/red] {e.message}")
        raise typer.Exit(1)
    finally:
        if client is not None:
            client.close()
