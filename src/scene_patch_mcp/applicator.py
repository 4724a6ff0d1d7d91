from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .handle import TreeHandle
from .identity import get_id
from .model import ROOT_PATH, invalid_name_reason, is_within
from .operations import (
    CreateNode,
    DeleteNode,
    PatchOperation,
    RenameNode,
    ReparentNode,
    SetProperty,
    parse_operation,
    references_ids,
)
from .resolver import IdentityResolver
from .shared.errors import (
    IdentityError,
    ScenePatchError,
    StructuralError,
    ValidationError,
)
from .shared.logging import get_logger
from .tree import Action, SceneNode, Transaction

logger = get_logger(__name__)

JsonDict = Dict[str, Any]


@dataclass(frozen=True)
class OperationError:
    index: int
    op: Optional[str]
    code: str
    message: str
    path: Optional[str] = None

    @classmethod
    def from_exception(cls, index: int, op: Optional[str], exc: ScenePatchError) -> "OperationError":
        return cls(index=index, op=op, code=exc.code, message=exc.message, path=exc.path)

    def to_dict(self) -> JsonDict:
        out: JsonDict = {"index": self.index, "op": self.op, "code": self.code, "message": self.message}
        if self.path is not None:
            out["path"] = self.path
        return out


@dataclass
class PatchResult:
    applied: int
    total: int
    errors: List[OperationError] = field(default_factory=list)
    used_undo_redo: bool = False
    rolled_back: bool = False
    cancelled: bool = False

    def summary(self) -> str:
        msg = f"Applied {self.applied}/{self.total} operations"
        if self.errors:
            msg += f" ({len(self.errors)} errors)"
        if self.rolled_back:
            msg += ", rolled back"
        return msg

    def to_dict(self) -> JsonDict:
        return {
            "applied": self.applied,
            "total": self.total,
            "errors": [error.to_dict() for error in self.errors],
            "used_undo_redo": self.used_undo_redo,
            "rolled_back": self.rolled_back,
            "cancelled": self.cancelled,
        }


def _kind_of(raw: Any) -> Optional[str]:
    kind = getattr(raw, "kind", None)
    if kind is None and isinstance(raw, dict):
        kind = raw.get("op")
    return kind if isinstance(kind, str) else None


class PatchApplicator:
    def __init__(self, handle: TreeHandle) -> None:
        self.handle = handle
        self.tree = handle.tree
        self.registry = handle.registry
        self._deleted: List[Tuple[str, int]] = []

    # -------------------------
    # Lookup helpers
    # -------------------------

    def _require(self, path: Optional[str], role: str) -> SceneNode:
        if not path:
            raise ValidationError(f"{role} path is required")
        node = self.tree.find(path)
        if node is not None:
            return node
        for deleted, index in self._deleted:
            if is_within(path, deleted):
                raise StructuralError(
                    f"{role} {path} was removed by operation #{index} (delete_node {deleted})", path=path
                )
        raise StructuralError(f"{role} not found: {path}", path=path)

    @staticmethod
    def _check_id(node: SceneNode, expected: Optional[str], path: Optional[str], role: str) -> None:
        if expected is None:
            return
        actual = get_id(node)
        if actual != expected:
            raise IdentityError(f"{role} at {path} has id '{actual}', expected '{expected}'", path=path)

    def _global_offset(self, node: Optional[SceneNode], size: int) -> List[float]:
        total = [0.0] * size
        while node is not None:
            position = node.properties.get("position")
            if isinstance(position, (list, tuple)) and len(position) == size:
                total = [a + float(b) for a, b in zip(total, position)]
            node = node.parent
        return total

    # -------------------------
    # Per-kind validation, returning the reversible action
    # -------------------------

    def _create(self, op: CreateNode) -> Action:
        parent_path = op.parent_path or ROOT_PATH
        parent = self._require(parent_path, "parent")
        self._check_id(parent, op.parent_id, parent_path, "parent")
        self.registry.require_instantiable(op.node_type)
        reason = invalid_name_reason(op.node_name)
        if reason:
            raise ValidationError(reason, path=parent_path)
        if parent.get_child(op.node_name) is not None:
            raise StructuralError(f"{parent_path} already has a child named '{op.node_name}'", path=parent_path)
        for prop, value in op.properties.items():
            self.registry.validate_property(op.node_type, prop, value)

        node = SceneNode(op.node_name, op.node_type, properties=copy.deepcopy(dict(op.properties)))
        tree = self.tree

        def do() -> None:
            tree.attach(parent, node)
            if op.set_owner:
                tree.set_owner_recursive(node, tree.root)

        def undo() -> None:
            tree.detach(node)

        return Action(op.describe(), do, undo)

    def _delete(self, op: DeleteNode) -> Action:
        node = self._require(op.node_path, "node")
        self._check_id(node, op.node_id, op.node_path, "node")
        if node is self.tree.root:
            raise StructuralError("Cannot delete the scene root", path=op.node_path)
        tree = self.tree
        state: Dict[str, Any] = {}

        def do() -> None:
            state["parent"], state["index"] = tree.detach(node)

        def undo() -> None:
            tree.attach(state["parent"], node, state["index"])

        return Action(op.describe(), do, undo)

    def _set_property(self, op: SetProperty) -> Action:
        node = self._require(op.node_path, "node")
        self._check_id(node, op.node_id, op.node_path, "node")
        self.registry.validate_property(node.type, op.property, op.value)
        had = op.property in node.properties
        old = copy.deepcopy(node.properties.get(op.property))
        new = copy.deepcopy(op.value)

        def do() -> None:
            node.properties[op.property] = new

        def undo() -> None:
            if had:
                node.properties[op.property] = old
            else:
                node.properties.pop(op.property, None)

        return Action(op.describe(), do, undo)

    def _rename(self, op: RenameNode) -> Action:
        node = self._require(op.node_path, "node")
        self._check_id(node, op.node_id, op.node_path, "node")
        reason = invalid_name_reason(op.new_name)
        if reason:
            raise ValidationError(reason, path=op.node_path)
        if node.parent is not None:
            sibling = node.parent.get_child(op.new_name)
            if sibling is not None and sibling is not node:
                raise StructuralError(f"A sibling named '{op.new_name}' already exists", path=op.node_path)
        old_name = node.name

        def do() -> None:
            node.name = op.new_name

        def undo() -> None:
            node.name = old_name

        return Action(op.describe(), do, undo)

    def _reparent(self, op: ReparentNode) -> Action:
        node = self._require(op.node_path, "node")
        self._check_id(node, op.node_id, op.node_path, "node")
        if node is self.tree.root:
            raise StructuralError("Cannot reparent the scene root", path=op.node_path)
        new_parent = self._require(op.new_parent_path, "new parent")
        self._check_id(new_parent, op.new_parent_id, op.new_parent_path, "new parent")
        if new_parent is node or node.is_ancestor_of(new_parent):
            raise StructuralError(f"Cannot move {op.node_path} into its own subtree", path=op.node_path)
        same_parent = new_parent is node.parent
        if not same_parent and new_parent.get_child(node.name) is not None:
            raise StructuralError(
                f"{op.new_parent_path} already has a child named '{node.name}'", path=op.node_path
            )
        limit = len(new_parent.children) - (1 if same_parent else 0)
        if op.index is not None and op.index > limit:
            raise StructuralError(f"index {op.index} out of range (0..{limit})", path=op.node_path)

        new_position = None
        old_position = copy.deepcopy(node.properties.get("position"))
        if op.keep_global_transform and not same_parent and isinstance(old_position, (list, tuple)):
            kind = self.registry.property_kind(node.type, "position")
            if kind in ("vector2", "vector3"):
                size = len(old_position)
                old_offset = self._global_offset(node.parent, size)
                new_offset = self._global_offset(new_parent, size)
                new_position = [float(p) + o - n for p, o, n in zip(old_position, old_offset, new_offset)]

        tree = self.tree
        state: Dict[str, Any] = {}

        def do() -> None:
            state["owners"] = [(item, item.owner) for item in node.walk()]
            state["parent"], state["index"] = tree.detach(node)
            tree.attach(new_parent, node, op.index)
            tree.set_owner_recursive(node, tree.root)
            if new_position is not None:
                node.properties["position"] = list(new_position)

        def undo() -> None:
            tree.detach(node)
            tree.attach(state["parent"], node, state["index"])
            for item, owner in state["owners"]:
                item.owner = owner
            if new_position is not None:
                node.properties["position"] = old_position

        return Action(op.describe(), do, undo)

    def build_action(self, op: PatchOperation) -> Action:
        if isinstance(op, CreateNode):
            return self._create(op)
        if isinstance(op, DeleteNode):
            return self._delete(op)
        if isinstance(op, SetProperty):
            return self._set_property(op)
        if isinstance(op, RenameNode):
            return self._rename(op)
        if isinstance(op, ReparentNode):
            return self._reparent(op)
        raise ValidationError(f"Unsupported operation {op!r}")

    # -------------------------
    # Batch
    # -------------------------

    def _parse_all(self, operations: Sequence[Any]) -> Tuple[List[Optional[PatchOperation]], List[OperationError]]:
        parsed: List[Optional[PatchOperation]] = []
        errors: List[OperationError] = []
        for index, raw in enumerate(operations):
            try:
                parsed.append(parse_operation(raw))
            except ScenePatchError as exc:
                errors.append(OperationError.from_exception(index, _kind_of(raw), exc))
                parsed.append(None)
        return parsed, errors

    def apply(
        self,
        operations: Sequence[Any],
        strict: bool = True,
        should_cancel: Optional[Callable[[], bool]] = None,
    ) -> PatchResult:
        total = len(operations)
        parsed, errors = self._parse_all(operations)
        self._deleted = []

        tx: Optional[Transaction] = self.handle.begin_batch("apply_patch")
        atomic = strict and tx is not None
        if strict and tx is None:
            logger.warning("Tree has no transaction support; strict batch applied best-effort")

        result = PatchResult(applied=0, total=total, errors=errors, used_undo_redo=tx is not None)

        def abort() -> PatchResult:
            if tx is not None:
                tx.rollback()
            result.applied = 0
            result.rolled_back = True
            logger.info("Patch rolled back: %s", result.summary())
            return result

        if atomic and errors:
            return abort()

        resolver = None
        if any(op is not None and references_ids(op) for op in parsed):
            resolver = IdentityResolver(self.handle.snapshot(ensure_ids=False).structure)

        try:
            for index, op in enumerate(parsed):
                if op is None:
                    if resolver is not None:
                        resolver.skip()
                    continue
                if should_cancel is not None and should_cancel():
                    result.cancelled = True
                    result.errors.append(
                        OperationError(index=index, op=op.kind, code="cancelled", message="Batch cancelled")
                    )
                    if atomic:
                        return abort()
                    break
                try:
                    resolved = resolver.resolve_operation(op) if resolver is not None else op
                    action = self.build_action(resolved)
                    if tx is not None:
                        tx.add(action)
                    else:
                        action.do()
                except ScenePatchError as exc:
                    result.errors.append(OperationError.from_exception(index, op.kind, exc))
                    logger.warning("Operation #%d (%s) failed: %s", index, op.describe(), exc.message)
                    if atomic:
                        return abort()
                    if resolver is not None:
                        resolver.skip()
                    continue

                if resolver is not None:
                    resolver.record(resolved)
                if isinstance(resolved, DeleteNode) and resolved.node_path:
                    self._deleted.append((resolved.node_path, index))
                result.applied += 1
        except Exception:
            if tx is not None and not tx.closed:
                tx.rollback()
            raise

        if tx is not None:
            tx.commit()
        logger.info(result.summary())
        return result


def apply(
    handle: TreeHandle,
    operations: Sequence[Any],
    strict: bool = True,
    should_cancel: Optional[Callable[[], bool]] = None,
) -> PatchResult:
    return PatchApplicator(handle).apply(operations, strict=strict, should_cancel=should_cancel)
