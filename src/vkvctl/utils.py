"""유틸리티 함수: 입력 파싱 및 직렬화."""

import io
import json
from typing import Any

from ruamel.yaml import YAML
from ruamel.yaml.constructor import SafeConstructor
from ruamel.yaml.error import YAMLError

from vkvctl.errors import ParseError


# ═══════════════════════════════════════════════════════════════════════════════
# Parsing / 파싱
# ═══════════════════════════════════════════════════════════════════════════════


def from_json(raw: bytes) -> dict[str, Any]:
    """Parse JSON input into a mapping."""
    try:
        data = json.loads(raw)
    except ValueError as e:
        raise ParseError(f"invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ParseError(f"expected a JSON object, got {type(data).__name__}")
    return data


class _SecretConstructor(SafeConstructor):
    """Safe constructor that keeps timestamps as plain strings."""


_SecretConstructor.add_constructor("tag:yaml.org,2002:timestamp", SafeConstructor.construct_yaml_str)


def from_yaml(raw: bytes) -> dict[str, Any]:
    """Parse YAML input into a mapping.

    Unquoted dates such as ``2025-01-01`` stay strings, as Vault stores them.
    """
    yaml = YAML(typ="safe", pure=True)
    yaml.Constructor = _SecretConstructor
    try:
        data = yaml.load(raw.decode("utf-8"))
    except (YAMLError, UnicodeDecodeError) as e:
        raise ParseError(f"invalid YAML: {e}") from e

    if not isinstance(data, dict):
        raise ParseError(f"expected a YAML mapping, got {type(data).__name__}")
    return data


# ═══════════════════════════════════════════════════════════════════════════════
# Serialization / 직렬화
# ═══════════════════════════════════════════════════════════════════════════════


def to_json(data: Any) -> str:
    """Serialize to indented JSON with sorted keys."""
    return json.dumps(data, ensure_ascii=False, indent=2, sort_keys=True) + "\n"


def to_yaml(data: Any) -> str:
    """Serialize to block-style YAML."""
    yaml = YAML()
    yaml.default_flow_style = False
    yaml.indent(mapping=2, sequence=4, offset=2)

    stream = io.StringIO()
    yaml.dump(data, stream)
    return stream.getvalue()


def stringify(value: Any) -> str:
    """Text form of a secret value, as shown in plain output."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False, separators=(",", ":"), sort_keys=True)
    return str(value)


def shell_quote(value: Any) -> str:
    """Single-quote a value for ``export`` lines."""
    escaped = stringify(value).replace("'", "'\"'\"'")
    return f"'{escaped}'"
