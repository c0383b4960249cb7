"""vkvctl - export and import Vault KV v2 secret trees.
Vault KV v2 시크릿 트리 CLI.

Usage:
    vkvctl export -p secret              # Print the secret tree
    vkvctl export -p secret -f json      # Dump as JSON
    vkvctl import -f secrets.json -d     # Preview an import
    vkvctl import -f secrets.json        # Import
"""

import typer
from rich.console import Console

from vkvctl import __version__
from vkvctl.commands import export_secrets, import_secrets

app = typer.Typer(
    name="vkvctl",
    help="Export and import Vault KV v2 secrets / Vault KV v2 시크릿 내보내기·가져오기",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
console = Console()

app.command("export")(export_secrets)
app.command("import")(import_secrets)


@app.callback(invoke_without_command=True)
def main(
    version: bool = typer.Option(False, "--version", "-v", help="Show version"),
):
    """Export and import Vault KV v2 secrets.

    \b
    Configuration:
        VAULT_ADDR / VKVCTL_VAULT_ADDR      Vault server address
        VAULT_TOKEN / VKVCTL_VAULT_TOKEN    Vault token
        ~/.config/vkvctl/config             key=value file with VAULT_* entries
    """
    if version:
        console.print(f"vkvctl {__version__}")
        raise typer.Exit(0)


if __name__ == "__main__":
    app()
