"""
Traversal helpers for schema-less JSON values.

Field paths are dot-separated object keys with array indices elided, so
arrays of different lengths still compare structurally across models.
"""

from typing import Any, Iterator, List, Tuple


def extract_all_field_paths(value: Any) -> List[str]:
    """
    Collect every field path in a decoded JSON value.

    Objects contribute one path per key (plus the paths beneath it); arrays
    contribute the paths of their elements. Order is first-seen, without
    duplicates.

    Example:
        {"a": {"b": 1}, "items": [{"x": 1}, {"x": 2, "y": 3}]}
        -> ["a", "a.b", "items", "items.x", "items.y"]
    """
    paths: List[str] = []
    seen = set()

    def visit(node: Any, prefix: str) -> None:
        if isinstance(node, dict):
            for key, child in node.items():
                path = f"{prefix}.{key}" if prefix else str(key)
                if path not in seen:
                    seen.add(path)
                    paths.append(path)
                visit(child, path)
        elif isinstance(node, list):
            for item in node:
                visit(item, prefix)

    visit(value, "")
    return paths


def get_value_at_path(data: Any, path: str) -> Any:
    """
    Resolve a dotted path through nested objects.

    Keys that contain "." themselves are matched whole: at each level the
    longest run of path segments naming an existing key wins, so
    {"unit.price": 5} resolves "unit.price" to 5.

    Paths that cross an array resolve to None; only values reachable through
    objects are addressable.
    """
    parts = path.split(".")
    current = data
    start = 0
    while start < len(parts):
        if not isinstance(current, dict):
            return None
        for end in range(len(parts), start, -1):
            key = ".".join(parts[start:end])
            if key in current:
                current = current[key]
                start = end
                break
        else:
            return None
        if current is None:
            return None
    return current


def iter_leaves(value: Any, prefix: str = "") -> Iterator[Tuple[str, Any]]:
    """Yield (path, scalar) for every non-container value, arrays elided."""
    if isinstance(value, dict):
        for key, child in value.items():
            path = f"{prefix}.{key}" if prefix else str(key)
            yield from iter_leaves(child, path)
    elif isinstance(value, list):
        for item in value:
            yield from iter_leaves(item, prefix)
    else:
        yield prefix, value


def iter_keys(value: Any) -> Iterator[str]:
    """Yield every object key in the value, depth first."""
    if isinstance(value, dict):
        for key, child in value.items():
            yield str(key)
            yield from iter_keys(child)
    elif isinstance(value, list):
        for item in value:
            yield from iter_keys(item)


def iter_arrays(value: Any) -> Iterator[list]:
    """Yield every array nested in the value (including the value itself)."""
    if isinstance(value, list):
        yield value
        for item in value:
            yield from iter_arrays(item)
    elif isinstance(value, dict):
        for child in value.values():
            yield from iter_arrays(child)


def max_depth(value: Any) -> int:
    """Nesting depth counting objects and arrays; scalars have depth 0."""
    if isinstance(value, dict):
        return 1 + max((max_depth(v) for v in value.values()), default=0)
    if isinstance(value, list):
        return 1 + max((max_depth(v) for v in value), default=0)
    return 0
