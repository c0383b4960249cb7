"""Path-tree engine for KV secrets.
KV 시크릿 경로 트리 변환.

Secrets live in two shapes:

* a flat set keyed by full path (``{"secret/app/db": {"user": "alice"}}``), which
  is what the Vault API reads and writes, one path at a time;
* a nested tree (``{"secret": {"app": {"db": {"user": "alice"}}}}``), which is
  what ``vkvctl export`` prints and ``vkvctl import`` reads back.

Nested trees are held as tagged nodes: a ``Leaf`` carries the key/value pairs
stored at one path, a ``Subtree`` carries named child nodes. A plain mapping
that mixes both kinds of children is rejected when the tree is built.
"""

import copy
from dataclasses import dataclass, field
from typing import Any, Iterator, Mapping, Tuple, Union

from vkvctl.errors import AmbiguousRootError, MalformedTreeError

DELIMITER = "/"

FlatSecretSet = dict[str, dict[str, Any]]


@dataclass
class Leaf:
    """Key/value pairs stored at a single path."""

    values: dict[str, Any] = field(default_factory=dict)


@dataclass
class Subtree:
    """Named child nodes below a path."""

    children: dict[str, "SecretNode"] = field(default_factory=dict)


SecretNode = Union[Leaf, Subtree]


# ─────────────────────────────────────────────────────────────────────────────
# Path helpers
# ─────────────────────────────────────────────────────────────────────────────


def split_path(path: str) -> list[str]:
    """Split a path into its non-empty segments."""
    return [segment for segment in path.split(DELIMITER) if segment]


def normalize_path(path: str) -> str:
    """Strip leading, trailing and doubled delimiters / 경로 정규화."""
    return DELIMITER.join(split_path(path))


def join_path(*parts: str) -> str:
    """Join path fragments, ignoring empty ones."""
    return normalize_path(DELIMITER.join(part for part in parts if part))


# ─────────────────────────────────────────────────────────────────────────────
# Tree construction
# ─────────────────────────────────────────────────────────────────────────────


def build_tree(data: Mapping[str, Any]) -> SecretNode:
    """Build a tagged tree from a parsed mapping.

    A mapping whose values are all mappings becomes a ``Subtree``, one whose
    values are all scalars (or lists) becomes a ``Leaf``. An empty mapping is
    an empty ``Leaf``. Keys are normalized, so ``"secret/"`` and ``"secret"``
    name the same node.

    Raises:
        MalformedTreeError: a node mixes secrets with sub-paths, or two keys
            normalize to the same name.
    """
    if not isinstance(data, Mapping):
        raise MalformedTreeError(f"expected a mapping, got {type(data).__name__}")

    nested = [key for key, value in data.items() if isinstance(value, Mapping)]
    if not nested:
        return Leaf({str(key): value for key, value in data.items()})

    if len(nested) != len(data):
        scalars = sorted(str(key) for key, value in data.items() if not isinstance(value, Mapping))
        raise MalformedTreeError(
            f"node mixes secret values ({', '.join(scalars)}) with sub-paths ({', '.join(sorted(map(str, nested)))})"
        )

    children: dict[str, SecretNode] = {}
    for key, value in data.items():
        name = normalize_path(str(key))
        if not name:
            raise MalformedTreeError(f'invalid path segment "{key}"')
        if name in children:
            raise MalformedTreeError(f'duplicate path segment "{name}"')
        children[name] = build_tree(value)
    return Subtree(children)


def to_mapping(node: SecretNode) -> dict[str, Any]:
    """Convert a tagged tree back to plain nested dicts."""
    if isinstance(node, Leaf):
        return dict(node.values)
    return {name: to_mapping(child) for name, child in node.children.items()}


def as_node(tree: Union[SecretNode, Mapping[str, Any]]) -> SecretNode:
    """Accept either a tagged node or a plain mapping."""
    if isinstance(tree, (Leaf, Subtree)):
        return tree
    return build_tree(tree)


def iter_leaves(node: SecretNode, path: str = "") -> Iterator[Tuple[str, Leaf]]:
    """Yield ``(path, leaf)`` pairs in lexicographic path order."""
    if isinstance(node, Leaf):
        yield path, node
        return
    for name in sorted(node.children):
        yield from iter_leaves(node.children[name], join_path(path, name))


# ─────────────────────────────────────────────────────────────────────────────
# Flatten / unflatten
# ─────────────────────────────────────────────────────────────────────────────


def flatten(tree: Union[SecretNode, Mapping[str, Any]], prefix: str = "") -> FlatSecretSet:
    """Flatten a tree into ``{full_path: {key: value}}``.

    Each leaf is emitted under ``join_path(prefix, path_to_leaf)``. A bare
    ``Leaf`` flattens to a single entry at ``prefix``.

    Raises:
        MalformedTreeError: a leaf sits at an empty path, or two leaves
            resolve to the same path.
    """
    result: FlatSecretSet = {}
    for path, leaf in iter_leaves(as_node(tree), normalize_path(prefix)):
        if not path:
            raise MalformedTreeError("secrets at the tree root need a path prefix")
        if path in result:
            raise MalformedTreeError(f'path "{path}" appears more than once')
        result[path] = dict(leaf.values)
    return result


def unflatten(
    absolute_prefix: str,
    flat: Mapping[str, Mapping[str, Any]],
    engine_path: str = "",
) -> SecretNode:
    """Rebuild a nested tree from a flat path map.

    ``engine_path`` is removed first, as a single wrapping layer, so a mount
    such as ``kv/team`` never shows up as two path segments. The rest of
    ``absolute_prefix`` is then removed and the remainder split on ``/``.
    Paths outside the prefix are kept whole. A path equal to the prefix makes
    the result a bare ``Leaf``.

    Raises:
        MalformedTreeError: a path is both a secret and the parent of another
            secret, or two paths resolve to the same location.
    """
    engine = split_path(engine_path)
    prefix = split_path(absolute_prefix)
    if engine and prefix[: len(engine)] == engine:
        prefix = prefix[len(engine):]

    root: SecretNode = Subtree()
    for path in sorted(flat):
        segments = split_path(path)
        if engine and segments[: len(engine)] == engine:
            segments = segments[len(engine):]
        if segments[: len(prefix)] == prefix:
            segments = segments[len(prefix):]

        leaf = Leaf(dict(flat[path]))

        if not segments:
            if isinstance(root, Leaf) or root.children:
                raise MalformedTreeError(f'"{path}" is both a secret and a parent path')
            root = leaf
            continue
        if isinstance(root, Leaf):
            raise MalformedTreeError(f'"{path}" is nested below the secret "{normalize_path(absolute_prefix)}"')

        node = root
        for depth, segment in enumerate(segments[:-1]):
            child = node.children.get(segment)
            if child is None:
                child = node.children[segment] = Subtree()
            elif isinstance(child, Leaf):
                parent = DELIMITER.join(segments[: depth + 1])
                raise MalformedTreeError(f'"{path}" is nested below the secret "{parent}"')
            node = child

        name = segments[-1]
        if name in node.children:
            raise MalformedTreeError(f'"{path}" is both a secret and a parent path')
        node.children[name] = leaf

    return root


# ─────────────────────────────────────────────────────────────────────────────
# Root resolution
# ─────────────────────────────────────────────────────────────────────────────


def resolve_root(secrets: Union[SecretNode, Mapping[str, Any]]) -> str:
    """Return the single top-level key of ``secrets``.

    Raises:
        AmbiguousRootError: there is no top-level key, or more than one.
    """
    if isinstance(secrets, Leaf):
        raise AmbiguousRootError("cannot determine root path: input holds secrets without a path")
    keys = list(secrets.children if isinstance(secrets, Subtree) else secrets)

    if len(keys) != 1:
        found = ", ".join(sorted(str(key) for key in keys)) or "none"
        raise AmbiguousRootError(f"cannot determine root path: expected one top-level element, found: {found}")

    root = normalize_path(str(keys[0]))
    if not root:
        raise AmbiguousRootError(f'cannot determine root path: invalid top-level element "{keys[0]}"')
    return root


def classify_root(root: str) -> Tuple[str, str]:
    """Classify a detected root as ``(engine_path, sub_path)``.

    Heuristic: a root with more than one segment (``kv/team``) can only be an
    engine mount, so it is returned as the engine path. A single segment is
    returned as a plain path whose first segment becomes the mount. Single
    segment mounts therefore always land in the second branch.
    """
    root = normalize_path(root)
    if len(split_path(root)) > 1:
        return root, ""
    return "", root


def handle_engine_path(engine_path: str, path: str) -> Tuple[str, str]:
    """Return ``(mount, sub_path)`` for the given options.

    An explicit engine path is the mount and ``path`` sits below it.
    Otherwise the first segment of ``path`` is the mount.
    """
    if engine_path:
        return normalize_path(engine_path), normalize_path(path)

    segments = split_path(path)
    if not segments:
        return "", ""
    return segments[0], DELIMITER.join(segments[1:])


# ─────────────────────────────────────────────────────────────────────────────
# Merge
# ─────────────────────────────────────────────────────────────────────────────


def deep_merge(
    new: Union[SecretNode, Mapping[str, Any]],
    existing: Union[SecretNode, Mapping[str, Any]],
) -> SecretNode:
    """Merge ``new`` on top of ``existing`` / 새 시크릿을 기존 시크릿 위에 병합.

    Sub-trees are unioned recursively. Two leaves at the same path merge key
    by key with ``new`` winning. Where a leaf meets a sub-tree, ``new`` replaces
    ``existing``. Neither input is modified.
    """
    new, existing = as_node(new), as_node(existing)

    if isinstance(new, Leaf) and isinstance(existing, Leaf):
        return Leaf({**existing.values, **new.values})

    if isinstance(new, Subtree) and isinstance(existing, Subtree):
        children = {name: copy.deepcopy(child) for name, child in existing.children.items()}
        for name, child in new.children.items():
            if name in existing.children:
                children[name] = deep_merge(child, existing.children[name])
            else:
                children[name] = copy.deepcopy(child)
        return Subtree(children)

    return copy.deepcopy(new)
