"""In-memory authoritative scene tree.

``SceneTree`` only offers structural primitives; validation lives in the
applicator. Mutations made through a :class:`Transaction` are reversible: an
action runs when it is added, the transaction is then consumed exactly once
by ``commit()`` (recorded in the undo history) or ``rollback()`` (every
executed action undone in reverse order).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from .identity import get_id
from .model import DEFAULT_NODE_TYPE, ROOT_PATH, join_path, split_path
from .shared.errors import SchemaValidationError, StructuralError, TransactionClosedError
from .shared.logging import get_logger

JsonDict = Dict[str, Any]

logger = get_logger(__name__)


class SceneNode:
    def __init__(
        self,
        name: str,
        type_name: str = DEFAULT_NODE_TYPE,
        properties: Optional[JsonDict] = None,
        meta: Optional[JsonDict] = None,
    ) -> None:
        self.name = name
        self.type = type_name
        self.properties: JsonDict = dict(properties or {})
        self.meta: JsonDict = dict(meta or {})
        self.children: List["SceneNode"] = []
        self.parent: Optional["SceneNode"] = None
        self.owner: Optional["SceneNode"] = None

    def __repr__(self) -> str:
        return f"SceneNode({self.name!r}, {self.type!r})"

    def get_child(self, name: str) -> Optional["SceneNode"]:
        for child in self.children:
            if child.name == name:
                return child
        return None

    def is_ancestor_of(self, other: "SceneNode") -> bool:
        current = other.parent
        while current is not None:
            if current is self:
                return True
            current = current.parent
        return False

    def walk(self) -> Iterator["SceneNode"]:
        yield self
        for child in self.children:
            yield from child.walk()


@dataclass
class Action:
    name: str
    do: Callable[[], None]
    undo: Callable[[], None]


class Transaction:
    def __init__(self, tree: "SceneTree", name: str) -> None:
        self.tree = tree
        self.name = name
        self._done: List[Action] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def actions(self) -> List[Action]:
        return list(self._done)

    def _ensure_open(self) -> None:
        if self._closed:
            raise TransactionClosedError(f"Transaction '{self.name}' was already committed or rolled back")

    def add(self, action: Action) -> None:
        self._ensure_open()
        action.do()
        self._done.append(action)

    def commit(self) -> None:
        self._ensure_open()
        self._closed = True
        self.tree._record(self)

    def rollback(self) -> None:
        self._ensure_open()
        self._closed = True
        for action in reversed(self._done):
            action.undo()
        logger.debug("Rolled back transaction '%s' (%d actions)", self.name, len(self._done))


class SceneTree:
    root_path = ROOT_PATH

    def __init__(self, root: SceneNode, *, scene_path: Optional[str] = None, transactional: bool = True) -> None:
        root.parent = None
        root.owner = None
        self.root = root
        self.scene_path = scene_path
        self.transactional = transactional
        self._undo_stack: List[Transaction] = []
        self._redo_stack: List[Transaction] = []
        self._open: Optional[Transaction] = None

    # -------------------------
    # Lookup
    # -------------------------

    def walk(self) -> Iterator[SceneNode]:
        return self.root.walk()

    def path_of(self, node: SceneNode) -> str:
        names: List[str] = []
        current: Optional[SceneNode] = node
        while current is not None and current is not self.root:
            names.append(current.name)
            current = current.parent
        if current is None:
            raise StructuralError(f"Node {node.name!r} is not attached to this tree")
        return join_path(ROOT_PATH, "/".join(reversed(names))) if names else ROOT_PATH

    def find(self, path: str) -> Optional[SceneNode]:
        try:
            parts = split_path(path)
        except ValueError:
            return None
        node: Optional[SceneNode] = self.root
        for part in parts:
            node = node.get_child(part) if node is not None else None
            if node is None:
                return None
        return node

    def find_by_id(self, node_id: str) -> Optional[SceneNode]:
        for node in self.walk():
            if get_id(node) == node_id:
                return node
        return None

    # -------------------------
    # Primitives
    # -------------------------

    def attach(self, parent: SceneNode, node: SceneNode, index: Optional[int] = None) -> None:
        if node.parent is not None:
            raise StructuralError(f"Node {node.name!r} already has a parent")
        if index is None or index >= len(parent.children):
            parent.children.append(node)
        else:
            parent.children.insert(index, node)
        node.parent = parent

    def detach(self, node: SceneNode) -> Tuple[SceneNode, int]:
        parent = node.parent
        if parent is None:
            raise StructuralError("Cannot detach the scene root")
        index = parent.children.index(node)
        parent.children.pop(index)
        node.parent = None
        return parent, index

    def set_owner_recursive(self, node: SceneNode, owner: Optional[SceneNode]) -> None:
        for item in node.walk():
            item.owner = owner

    # -------------------------
    # Transactions & history
    # -------------------------

    def begin_batch(self, name: str) -> Optional[Transaction]:
        if not self.transactional:
            return None
        if self._open is not None and not self._open.closed:
            raise StructuralError(f"Transaction '{self._open.name}' is still open")
        self._open = Transaction(self, name)
        return self._open

    def _record(self, transaction: Transaction) -> None:
        if transaction.actions:
            self._undo_stack.append(transaction)
            self._redo_stack.clear()

    def can_undo(self) -> bool:
        return bool(self._undo_stack)

    def can_redo(self) -> bool:
        return bool(self._redo_stack)

    def undo(self) -> bool:
        if not self.can_undo():
            return False
        transaction = self._undo_stack.pop()
        for action in reversed(transaction.actions):
            action.undo()
        self._redo_stack.append(transaction)
        return True

    def redo(self) -> bool:
        if not self.can_redo():
            return False
        transaction = self._redo_stack.pop()
        for action in transaction.actions:
            action.do()
        self._undo_stack.append(transaction)
        return True

    # -------------------------
    # Serialization
    # -------------------------

    def _node_to_dict(self, node: SceneNode) -> JsonDict:
        out: JsonDict = {"name": node.name, "type": node.type}
        if node.properties:
            out["properties"] = dict(node.properties)
        if node.meta:
            out["meta"] = dict(node.meta)
        # unowned nodes are editor-only and never serialized
        out["children"] = [self._node_to_dict(child) for child in node.children if child.owner is self.root]
        return out

    def to_dict(self) -> JsonDict:
        return {"scene_path": self.scene_path, "root": self._node_to_dict(self.root)}

    @classmethod
    def from_dict(cls, raw: JsonDict, *, transactional: bool = True) -> "SceneTree":
        if not isinstance(raw, dict) or not isinstance(raw.get("root"), dict):
            raise SchemaValidationError("scene document requires a 'root' object")

        def build(data: JsonDict) -> SceneNode:
            name = data.get("name")
            if not isinstance(name, str) or not name:
                raise SchemaValidationError("every scene node requires a non-empty 'name'")
            node = SceneNode(
                name,
                str(data.get("type") or DEFAULT_NODE_TYPE),
                properties=data.get("properties") or {},
                meta=data.get("meta") or {},
            )
            for child_raw in data.get("children") or []:
                child = build(child_raw)
                if node.get_child(child.name) is not None:
                    raise SchemaValidationError(f"duplicate sibling name {child.name!r} under {name!r}")
                node.children.append(child)
                child.parent = node
            return node

        root = build(raw["root"])
        seen: Dict[str, str] = {}
        for node in root.walk():
            node_id = get_id(node)
            if node_id is None:
                continue
            if node_id in seen:
                raise SchemaValidationError(f"id {node_id!r} is carried by both {seen[node_id]!r} and {node.name!r}")
            seen[node_id] = node.name
        tree = cls(root, scene_path=raw.get("scene_path"), transactional=transactional)
        for node in root.walk():
            if node is not root:
                node.owner = root
        return tree
