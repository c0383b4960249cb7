"""vkvctl commands package.
vkvctl 명령어 패키지.

Structure:
    commands/
    ├── __init__.py          # This file
    ├── export.py            # vkvctl export
    └── importer.py          # vkvctl import
"""

from vkvctl.commands.export import export_secrets
from vkvctl.commands.importer import import_secrets

__all__ = [
    "export_secrets",
    "import_secrets",
]
