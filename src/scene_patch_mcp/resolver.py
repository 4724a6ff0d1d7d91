"""Translate id-addressed operations into concrete paths.

The resolver starts from a snapshot's ``id -> path`` table and replays the
batch in order. Renames, reparents and deletes are folded into the table as
soon as they are recorded, so an id used after a move resolves to the node's
new address and an id whose node (or ancestor) was deleted is reported
instead of silently failing later.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Tuple

from .model import ROOT_PATH, LiveNode, is_within, join_path, leaf_name, rebase_path
from .operations import (
    CreateNode,
    DeleteNode,
    PatchOperation,
    RenameNode,
    ReparentNode,
    SetProperty,
    parse_operation,
)
from .shared.errors import IdentityError


class IdentityResolver:
    def __init__(self, snapshot: LiveNode) -> None:
        self._paths: Dict[str, str] = {}
        for node in snapshot.walk():
            if node.id:
                self._paths.setdefault(node.id, node.path)
        # (deleted path, index of the deleting operation)
        self._deleted: List[Tuple[str, int]] = []
        self._deleted_ids: Dict[str, List[str]] = {}
        self._position = 0

    def path_of(self, node_id: str) -> Optional[str]:
        return self._paths.get(node_id)

    def _lookup(self, node_id: str, role: str) -> str:
        path = self._paths.get(node_id)
        if path is not None:
            return path
        for deleted, index in self._deleted:
            if node_id in self._deleted_ids.get(deleted, ()):
                raise IdentityError(
                    f"{role} id '{node_id}' was deleted by operation #{index} ({deleted})", path=deleted
                )
        raise IdentityError(f"Unknown {role} id '{node_id}'")

    def _pick(self, role: str, node_id: Optional[str], path: Optional[str]) -> Optional[str]:
        if node_id is None:
            if path is not None:
                self._check_not_deleted(path, role)
            return path
        resolved = self._lookup(node_id, role)
        if path is not None and path != resolved:
            raise IdentityError(
                f"{role} id '{node_id}' resolves to {resolved} but path {path} was given", path=path
            )
        return resolved

    def _check_not_deleted(self, path: str, role: str) -> None:
        for deleted, index in self._deleted:
            if is_within(path, deleted):
                raise IdentityError(
                    f"{role} {path} was removed by operation #{index} (delete_node {deleted})", path=path
                )

    def resolve_operation(self, op: PatchOperation) -> PatchOperation:
        """Return ``op`` with every id reference translated into a path.

        Ids are kept next to the paths so the applicator can confirm that the
        node found at the path still carries the same identity.
        """
        if isinstance(op, CreateNode):
            parent = self._pick("parent", op.parent_id, op.parent_path)
            return replace(op, parent_path=parent or ROOT_PATH)
        if isinstance(op, ReparentNode):
            node_path = self._pick("node", op.node_id, op.node_path)
            new_parent = self._pick("new parent", op.new_parent_id, op.new_parent_path)
            return replace(op, node_path=node_path, new_parent_path=new_parent)
        if isinstance(op, (DeleteNode, SetProperty, RenameNode)):
            return replace(op, node_path=self._pick("node", op.node_id, op.node_path))
        raise IdentityError(f"Unsupported operation {op!r}")

    def _revive(self, path: str) -> None:
        self._deleted = [(deleted, index) for deleted, index in self._deleted if not is_within(deleted, path)]

    def _move(self, old: str, new: str) -> None:
        self._revive(new)
        for node_id, path in list(self._paths.items()):
            if is_within(path, old):
                self._paths[node_id] = rebase_path(path, old, new)

    def record(self, op: PatchOperation) -> None:
        """Fold an already resolved (and applied) operation into the table."""
        index = self._position
        self._position += 1
        if isinstance(op, RenameNode) and op.node_path:
            parent = op.node_path.rsplit("/", 1)[0]
            self._move(op.node_path, join_path(parent, op.new_name))
        elif isinstance(op, ReparentNode) and op.node_path and op.new_parent_path:
            self._move(op.node_path, join_path(op.new_parent_path, leaf_name(op.node_path)))
        elif isinstance(op, DeleteNode) and op.node_path:
            gone = [node_id for node_id, path in self._paths.items() if is_within(path, op.node_path)]
            for node_id in gone:
                del self._paths[node_id]
            self._deleted.append((op.node_path, index))
            self._deleted_ids.setdefault(op.node_path, []).extend(gone)
        elif isinstance(op, CreateNode):
            self._revive(join_path(op.parent_path or ROOT_PATH, op.node_name))

    def skip(self) -> None:
        """Advance the operation counter for an operation that was not applied."""
        self._position += 1


def resolve(operations: Iterable[PatchOperation | dict], snapshot: LiveNode) -> List[PatchOperation]:
    resolver = IdentityResolver(snapshot)
    resolved: List[PatchOperation] = []
    for raw in operations:
        op = resolver.resolve_operation(parse_operation(raw))
        resolver.record(op)
        resolved.append(op)
    return resolved
