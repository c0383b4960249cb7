"""Secret rendering / 시크릿 출력.

Renders a secret tree as a plain indented tree, JSON, YAML or shell ``export``
statements. Keys are sorted at every level, so the same tree always renders to
the same text. Values are masked unless masking is turned off.
"""

import re
from enum import Enum
from typing import Any, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from rich.console import Console

from vkvctl.errors import InvalidFlagCombinationError, UnsupportedFormatError
from vkvctl.tree import Leaf, SecretNode, Subtree, as_node, iter_leaves
from vkvctl.utils import shell_quote, stringify, to_json, to_yaml

MASK_CHAR = "*"
MAX_VALUE_LENGTH = 12
INDENT = "  "
# keys that are not shell variable names are left out of ``export`` output
SHELL_NAME = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")


class OutputFormat(str, Enum):
    """Supported output formats."""

    NATIVE = "native"
    JSON = "json"
    YAML = "yaml"
    EXPORT = "export"


_FORMAT_ALIASES = {
    "base": OutputFormat.NATIVE,
    "shell-export": OutputFormat.EXPORT,
    "yml": OutputFormat.YAML,
}


class RenderOptions(BaseModel):
    """Rendering options.

    Defaults: native format, values masked to at most 12 characters, full
    key=value output. ``mask_length=-1`` shows values even when
    ``mask_values`` is set.
    """

    model_config = ConfigDict(frozen=True)

    format: OutputFormat = OutputFormat.NATIVE
    mask_values: bool = True
    mask_length: int = Field(default=MAX_VALUE_LENGTH, ge=-1)
    only_keys: bool = False
    only_paths: bool = False

    @field_validator("format", mode="before")
    @classmethod
    def _parse_format(cls, value: Any) -> OutputFormat:
        if isinstance(value, OutputFormat):
            return value
        name = str(value).strip().lower()
        if name in _FORMAT_ALIASES:
            return _FORMAT_ALIASES[name]
        try:
            return OutputFormat(name)
        except ValueError:
            choices = ", ".join(f.value for f in OutputFormat)
            raise UnsupportedFormatError(f'unsupported format "{value}" (choose from: {choices})') from None

    @model_validator(mode="after")
    def _check_modes(self) -> "RenderOptions":
        if self.only_keys and self.only_paths:
            raise InvalidFlagCombinationError("cannot specify both --only-keys and --only-paths")
        return self

    @property
    def masking(self) -> bool:
        return self.mask_values and self.mask_length >= 0


def mask_value(value: Any, length: int) -> Any:
    """Replace a value with ``min(len(value), length)`` mask characters.

    ``length=-1`` returns the value unchanged.
    """
    if length < 0:
        return value
    return MASK_CHAR * min(len(stringify(value)), length)


class SecretPrinter:
    """Renders secret trees according to ``RenderOptions``."""

    def __init__(self, options: Optional[RenderOptions] = None, console: Optional[Console] = None):
        self.options = options or RenderOptions()
        self.console = console or Console()

    def out(self, tree: Union[SecretNode, Mapping[str, Any]]) -> None:
        """Render ``tree`` and write it to the console."""
        self.console.out(self.render(tree), end="", highlight=False)

    def render(self, tree: Union[SecretNode, Mapping[str, Any]]) -> str:
        node = as_node(tree)
        fmt = self.options.format

        if fmt == OutputFormat.NATIVE:
            lines = self._native_lines(node, 0)
            return "".join(f"{line}\n" for line in lines)
        if fmt == OutputFormat.JSON:
            return to_json(self._transform(node))
        if fmt == OutputFormat.YAML:
            return to_yaml(self._transform(node))
        if fmt == OutputFormat.EXPORT:
            return self._export(node)

        raise UnsupportedFormatError(f'unsupported format "{fmt}"')

    # ─────────────────────────────────────────────────────────────────────────
    # Value pipeline
    # ─────────────────────────────────────────────────────────────────────────

    def _leaf_values(self, leaf: Leaf) -> Optional[dict[str, Any]]:
        """Sorted, masked and filtered values of a leaf; None when paths only."""
        if self.options.only_paths:
            return None
        if self.options.only_keys:
            return {key: "" for key in sorted(leaf.values)}
        if self.options.masking:
            return {key: mask_value(leaf.values[key], self.options.mask_length) for key in sorted(leaf.values)}
        return {key: leaf.values[key] for key in sorted(leaf.values)}

    def _transform(self, node: SecretNode) -> Any:
        if isinstance(node, Leaf):
            return self._leaf_values(node)
        return {name: self._transform(node.children[name]) for name in sorted(node.children)}

    # ─────────────────────────────────────────────────────────────────────────
    # Formats
    # ─────────────────────────────────────────────────────────────────────────

    def _native_lines(self, node: SecretNode, depth: int) -> list[str]:
        if isinstance(node, Leaf):
            return self._secret_lines(node, depth)

        indent = INDENT * depth
        lines = []
        for name in sorted(node.children):
            child = node.children[name]
            if isinstance(child, Subtree):
                lines.append(f"{indent}{name}/")
            else:
                lines.append(f"{indent}{name}")
            lines.extend(self._native_lines(child, depth + 1))
        return lines

    def _secret_lines(self, leaf: Leaf, depth: int) -> list[str]:
        values = self._leaf_values(leaf)
        if values is None:
            return []

        indent = INDENT * depth
        if self.options.only_keys:
            return [f"{indent}{key}" for key in values]
        return [f"{indent}{key}={stringify(value)}" for key, value in values.items()]

    def _export(self, node: SecretNode) -> str:
        # keys are assumed unique across the tree; the shell keeps the last one
        lines = []
        for _, leaf in iter_leaves(node):
            values = self._leaf_values(leaf)
            if values is None:
                continue
            for key, value in values.items():
                if not SHELL_NAME.fullmatch(key):
                    continue
                lines.append(f"export {key}={shell_quote(value)}\n")
        return "".join(lines)


def render(tree: Union[SecretNode, Mapping[str, Any]], options: Optional[RenderOptions] = None) -> str:
    """Render ``tree`` to text."""
    return SecretPrinter(options).render(tree)
