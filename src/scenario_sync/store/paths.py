"""Path addressing and copy-on-write tree updates.

Documents are plain nested dicts and lists. Updates never edit a node in
place: every ancestor of the written path is cloned and every sibling subtree
is shared by reference, so any snapshot a reader holds stays frozen.
"""

from typing import Any, Iterable, Sequence

from ..exceptions import PathError
from ..types import PathSegment

# Identity fields of array elements, checked in this order.
IDENTITY_FIELDS: tuple[str, ...] = ("value", "id", "_id")

_MISSING = object()


def normalize_path(path: str | Sequence[PathSegment]) -> tuple[PathSegment, ...]:
    """Turn a dotted string or a segment sequence into a tuple of segments.

    Raises:
        PathError: If the path or one of its segments has an unsupported type.
    """
    if isinstance(path, str):
        if not path:
            return ()
        return tuple(path.split("."))
    if not isinstance(path, (list, tuple)):
        raise PathError(path, f"expected str, list or tuple, got {type(path).__name__}")

    segments = tuple(path)
    for segment in segments:
        # bool is an int subclass but never a meaningful index
        if isinstance(segment, bool) or not isinstance(segment, (str, int)):
            raise PathError(path, f"segment {segment!r} must be str or int")
    return segments


def path_to_str(path: Iterable[PathSegment]) -> str:
    """Render a path in dotted form for logs and change events."""
    return ".".join(str(segment) for segment in path)


def _list_index(segment: PathSegment) -> int | None:
    if isinstance(segment, int):
        return segment if segment >= 0 else None
    if segment.isascii() and segment.isdigit():
        return int(segment)
    return None


def _child(node: Any, segment: PathSegment) -> Any:
    if isinstance(node, dict):
        return node.get(str(segment), _MISSING)
    if isinstance(node, list):
        index = _list_index(segment)
        if index is not None and index < len(node):
            return node[index]
    return _MISSING


def get_in(data: Any, path: str | Sequence[PathSegment], default: Any = None) -> Any:
    """Get the value at ``path``, or ``default`` if any segment is absent.

    Never raises for absent segments; only malformed path types raise.
    """
    current = data
    for segment in normalize_path(path):
        current = _child(current, segment)
        if current is _MISSING:
            return default
    return current


def has_path(data: Any, path: str | Sequence[PathSegment]) -> bool:
    """Check whether every segment of ``path`` resolves."""
    return get_in(data, path, _MISSING) is not _MISSING


def assoc_in(data: Any, path: str | Sequence[PathSegment], value: Any) -> Any:
    """Return a new tree with ``value`` stored at ``path``.

    Ancestors are cloned, siblings shared. Missing intermediate containers
    (absent keys or ``None``) are created as empty dicts.

    Raises:
        PathError: For an empty path, a list index past the end, or a path
            that descends through a scalar.
    """
    segments = normalize_path(path)
    if not segments:
        raise PathError(path, "cannot assign to the document root")
    return _assoc(data, segments, 0, value)


def _assoc(node: Any, path: tuple[PathSegment, ...], depth: int, value: Any) -> Any:
    segment = path[depth]
    is_leaf = depth == len(path) - 1

    if isinstance(node, list):
        index = _list_index(segment)
        if index is None or index > len(node):
            raise PathError(
                path, f"index {segment!r} out of range at '{path_to_str(path[:depth])}'"
            )
        existing = node[index] if index < len(node) else None
        child = value if is_leaf else _assoc(existing, path, depth + 1, value)
        clone = list(node)
        if index == len(node):
            clone.append(child)
        else:
            clone[index] = child
        return clone

    if node is None:
        node = {}
    elif not isinstance(node, dict):
        raise PathError(
            path, f"cannot descend into {type(node).__name__} at '{path_to_str(path[:depth])}'"
        )

    key = str(segment)
    clone = dict(node)
    clone[key] = value if is_leaf else _assoc(node.get(key), path, depth + 1, value)
    return clone


def dissoc_in(data: Any, path: str | Sequence[PathSegment]) -> tuple[Any, bool]:
    """Return a new tree without the node at ``path``.

    Returns:
        Tuple of (new tree, True if something was removed). When nothing is
        removed the original tree is returned unchanged.
    """
    segments = normalize_path(path)
    if not segments or not has_path(data, segments):
        return data, False
    return _dissoc(data, segments, 0), True


def _dissoc(node: Any, path: tuple[PathSegment, ...], depth: int) -> Any:
    segment = path[depth]
    is_leaf = depth == len(path) - 1

    if isinstance(node, list):
        index = _list_index(segment)
        clone = list(node)
        if is_leaf:
            del clone[index]
        else:
            clone[index] = _dissoc(node[index], path, depth + 1)
        return clone

    key = str(segment)
    clone = dict(node)
    if is_leaf:
        del clone[key]
    else:
        clone[key] = _dissoc(node[key], path, depth + 1)
    return clone


def identity_of(item: Any, fields: Sequence[str] = IDENTITY_FIELDS) -> str | None:
    """Identity of an array element as a string, or None if it has none."""
    if not isinstance(item, dict):
        return None
    for name in fields:
        candidate = item.get(name)
        if candidate is not None:
            return str(candidate)
    return None
