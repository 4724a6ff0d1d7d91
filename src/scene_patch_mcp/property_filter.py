"""Suppression of ``set_property`` operations that would not change anything."""

from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .model import ROOT_PATH, is_within, join_path, rebase_path
from .operations import CreateNode, PatchOperation, RenameNode, ReparentNode, SetProperty
from .shared.logging import get_logger

logger = get_logger(__name__)

PropertyFetcher = Callable[[str, Sequence[str]], Optional[Dict[str, Any]]]

_MISSING = object()


def canonical(value: Any) -> Any:
    if isinstance(value, bool):
        return ("bool", value)
    if isinstance(value, (int, float)):
        return ("num", value)
    if isinstance(value, Mapping):
        return ("map", tuple(sorted((str(k), canonical(v)) for k, v in value.items())))
    if isinstance(value, (list, tuple)):
        return ("seq", tuple(canonical(v) for v in value))
    return ("val", value)


def values_equal(left: Any, right: Any) -> bool:
    return canonical(left) == canonical(right)


class PropertyEqualityFilter:
    """Drops no-op ``set_property`` operations from a generated batch.

    ``fetch(path, names)`` returns the current values for one node (``None``
    when the node is unknown). Each distinct path is fetched once and cached
    for the lifetime of the filter, which is meant to be one generate call.
    """

    def __init__(self, fetch: PropertyFetcher, known: Optional[Mapping[str, Mapping[str, Any]]] = None) -> None:
        self._fetch = fetch
        self._cache: Dict[str, Dict[str, Any]] = {path: dict(values) for path, values in (known or {}).items()}
        self.fetch_count = 0

    def _values_for(self, path: str, names: Iterable[str]) -> Dict[str, Any]:
        cached = self._cache.get(path)
        if cached is not None:
            missing = [name for name in names if name not in cached]
            if not missing:
                return cached
            names = missing
        self.fetch_count += 1
        fetched = self._fetch(path, sorted(set(names))) or {}
        self._cache.setdefault(path, {}).update(fetched)
        return self._cache[path]

    def filter(self, operations: List[PatchOperation]) -> List[PatchOperation]:
        origins = _snapshot_origins(operations)
        wanted: Dict[str, set[str]] = {}
        targets: List[Tuple[int, str]] = []
        for index, op in enumerate(operations):
            if not isinstance(op, SetProperty) or op.node_path is None:
                continue
            origin = origins.get(index)
            if origin is None:
                continue
            wanted.setdefault(origin, set()).add(op.property)
            targets.append((index, origin))

        dropped: set[int] = set()
        for index, origin in targets:
            op = operations[index]
            current = self._values_for(origin, wanted[origin]).get(op.property, _MISSING)
            if current is not _MISSING and values_equal(current, op.value):
                dropped.add(index)

        if dropped:
            logger.debug("Suppressed %d no-op set_property operations", len(dropped))
        return [op for index, op in enumerate(operations) if index not in dropped]


def _snapshot_origins(operations: Sequence[PatchOperation]) -> Dict[int, Optional[str]]:
    """Map each ``set_property`` index to the snapshot path of its target.

    Paths are replayed in batch order: renames and reparents update the
    current->snapshot mapping, nodes created in the batch map to ``None``
    (nothing to compare against).
    """
    # (path after the operation, path before it); None before for nodes created in this batch
    moved: List[Tuple[str, Optional[str]]] = []
    result: Dict[int, Optional[str]] = {}

    def origin_of(path: str) -> Optional[str]:
        # undo the recorded moves newest first
        for after, before in reversed(moved):
            if is_within(path, after):
                if before is None:
                    return None
                path = rebase_path(path, after, before)
        return path

    def relocate(old: str, new: str) -> None:
        moved.append((new, old))

    for index, op in enumerate(operations):
        if isinstance(op, SetProperty) and op.node_path is not None:
            result[index] = origin_of(op.node_path)
        elif isinstance(op, CreateNode):
            parent = op.parent_path or ROOT_PATH
            moved.append((join_path(parent, op.node_name), None))
        elif isinstance(op, RenameNode) and op.node_path is not None:
            relocate(op.node_path, join_path(op.node_path.rsplit("/", 1)[0], op.new_name))
        elif isinstance(op, ReparentNode) and op.node_path is not None and op.new_parent_path is not None:
            name = op.node_path.rsplit("/", 1)[-1]
            relocate(op.node_path, join_path(op.new_parent_path, name))
    return result
