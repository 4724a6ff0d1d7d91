"""Tree differ: live snapshot + desired tree -> ordered patch operations.

The differ never touches the live tree. It mirrors the snapshot into private
working nodes and replays every operation it emits onto that mirror, so each
emitted path is the address the node will have at that point of the batch.

Output order:

1. creates, renames, id-pinned moves and property sets, depth first in
   desired order;
2. deletes (``allow_delete``), children before their parent, after every
   pinned node has been moved out of doomed subtrees;
3. reorders (``reorder_children``), computed against the order left by the
   steps above so nodes already in place are not moved.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Set, Tuple

from .model import DEFAULT_NODE_TYPE, ROOT_PATH, DesiredNode, LiveNode, invalid_name_reason, join_path
from .operations import (
    CreateNode,
    DeleteNode,
    PatchOperation,
    RenameNode,
    ReparentNode,
    SetProperty,
    operation_to_dict,
)
from .property_filter import values_equal
from .shared.config import PatchDefaults
from .shared.logging import get_logger

logger = get_logger(__name__)

_MISSING = object()


@dataclass(frozen=True)
class DiffOptions:
    allow_delete: bool = False
    strict_types: bool = True
    detect_renames: bool = False
    reorder_children: bool = False

    @classmethod
    def from_mapping(cls, raw: Optional[Mapping[str, Any]], defaults: Optional[PatchDefaults] = None) -> "DiffOptions":
        base = defaults or PatchDefaults()
        raw = raw or {}

        def pick(name: str) -> bool:
            value = raw.get(name)
            return getattr(base, name) if value is None else bool(value)

        return cls(
            allow_delete=pick("allow_delete"),
            strict_types=pick("strict_types"),
            detect_renames=pick("detect_renames"),
            reorder_children=pick("reorder_children"),
        )


@dataclass(frozen=True)
class PatchIssue:
    code: str
    message: str
    path: Optional[str] = None
    severity: str = "error"

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"code": self.code, "severity": self.severity, "message": self.message}
        if self.path is not None:
            out["path"] = self.path
        return out


@dataclass
class DiffResult:
    operations: List[PatchOperation] = field(default_factory=list)
    errors: List[PatchIssue] = field(default_factory=list)
    aliases: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operations": [operation_to_dict(op) for op in self.operations],
            "errors": [issue.to_dict() for issue in self.errors],
            "aliases": dict(self.aliases),
        }


class _Work:
    __slots__ = ("name", "type", "id", "properties", "children", "parent", "origin")

    def __init__(
        self,
        name: str,
        type_name: str,
        node_id: Optional[str] = None,
        properties: Optional[Dict[str, Any]] = None,
        origin: Optional[str] = None,
    ) -> None:
        self.name = name
        self.type = type_name
        self.id = node_id
        self.properties = properties
        self.children: List["_Work"] = []
        self.parent: Optional["_Work"] = None
        # snapshot path, None for nodes created during this diff
        self.origin = origin

    @property
    def path(self) -> str:
        names: List[str] = []
        node: Optional[_Work] = self
        while node is not None and node.parent is not None:
            names.append(node.name)
            node = node.parent
        return join_path(ROOT_PATH, "/".join(reversed(names))) if names else ROOT_PATH

    def child(self, name: str) -> Optional["_Work"]:
        for child in self.children:
            if child.name == name:
                return child
        return None

    def contains(self, other: "_Work") -> bool:
        node: Optional[_Work] = other
        while node is not None:
            if node is self:
                return True
            node = node.parent
        return False

    def attach(self, node: "_Work", index: Optional[int] = None) -> None:
        if index is None or index >= len(self.children):
            self.children.append(node)
        else:
            self.children.insert(index, node)
        node.parent = self

    def detach(self) -> None:
        if self.parent is not None:
            self.parent.children.remove(self)
            self.parent = None


def _mirror(node: LiveNode, parent: Optional[_Work] = None) -> _Work:
    path = ROOT_PATH if parent is None else join_path(parent.path, node.name)
    props = dict(node.properties) if node.properties is not None else None
    work = _Work(node.name, node.type, node.id, props, origin=path)
    if parent is not None:
        parent.attach(work)
    for child in node.children:
        _mirror(child, work)
    return work


class _Differ:
    def __init__(self, live_root: LiveNode, options: DiffOptions) -> None:
        self.options = options
        self.root = _mirror(live_root)
        self.by_id: Dict[str, _Work] = {}
        self._index(self.root)
        self.result = DiffResult()
        self.claimed: Set[int] = set()
        self.pinned: Dict[str, DesiredNode] = {}
        self.delete_queue: List[_Work] = []
        self.reorder_queue: List[Tuple[_Work, List[_Work]]] = []

    def _index(self, work: _Work) -> None:
        if work.id:
            self.by_id.setdefault(work.id, work)
        for child in work.children:
            self._index(child)

    # -------------------------
    # Emission helpers
    # -------------------------

    def _emit(self, op: PatchOperation) -> None:
        self.result.operations.append(op)

    def _issue(self, code: str, message: str, path: Optional[str] = None, severity: str = "error") -> None:
        self.result.errors.append(PatchIssue(code=code, message=message, path=path, severity=severity))

    def _alias(self, work: _Work) -> None:
        if work.origin is not None:
            self.result.aliases[work.origin] = work.path

    def _claim(self, work: _Work) -> None:
        self.claimed.add(id(work))

    def _is_claimed(self, work: _Work) -> bool:
        return id(work) in self.claimed

    def _pinned_elsewhere(self, work: _Work, desired: Optional[DesiredNode] = None) -> bool:
        if not work.id or work.id not in self.pinned:
            return False
        return self.pinned[work.id] is not desired

    def _rename(self, work: _Work, new_name: str) -> None:
        self._emit(RenameNode(node_path=work.path, new_name=new_name))
        work.name = new_name
        self._alias(work)

    def _reparent(self, work: _Work, new_parent: _Work, index: Optional[int] = None) -> None:
        self._emit(
            ReparentNode(
                node_path=work.path,
                new_parent_path=new_parent.path,
                index=index,
                keep_global_transform=False,
            )
        )
        work.detach()
        new_parent.attach(work, index)
        self._alias(work)

    # -------------------------
    # Matching
    # -------------------------

    def _collect_pins(self, desired_root: DesiredNode) -> None:
        for desired in desired_root.walk():
            if desired.id is None or desired is desired_root:
                continue
            if desired.id in self.pinned:
                self._issue("duplicate_id", f"Id '{desired.id}' is pinned by more than one desired node")
                continue
            self.pinned[desired.id] = desired

    def _relocate(self, work: _Work, parent: _Work, desired: DesiredNode) -> Optional[_Work]:
        target_path = join_path(parent.path, desired.name)
        if work is self.root:
            self._issue("invalid_move", f"Id '{desired.id}' refers to the scene root", target_path)
            return None
        if work.contains(parent):
            self._issue("invalid_move", f"Cannot move {work.path} under its own subtree", target_path)
            return None
        if work.name != desired.name:
            sibling = work.parent.child(desired.name) if work.parent is not None else None
            if sibling is not None and sibling is not work:
                self._issue("name_collision", f"Cannot rename {work.path} to '{desired.name}': sibling exists", target_path)
                return None
        if work.parent is not parent:
            occupant = parent.child(desired.name)
            if occupant is not None:
                self._issue("name_collision", f"Cannot move {work.path} to {target_path}: path is occupied", target_path)
                return None

        self._claim(work)
        if work.name != desired.name:
            self._rename(work, desired.name)
        if work.parent is not parent:
            self._reparent(work, parent)
        return work

    def _rename_candidate(self, parent: _Work, desired: DesiredNode, desired_names: Set[str]) -> Optional[_Work]:
        if not desired.type:
            return None
        candidates = [
            child
            for child in parent.children
            if not self._is_claimed(child)
            and child.name not in desired_names
            and not self._pinned_elsewhere(child)
            and child.type == desired.type
            and (desired.children is None or len(desired.children) == len(child.children))
        ]
        if len(candidates) != 1:
            if len(candidates) > 1:
                logger.debug(
                    "Rename of %s ambiguous between %s", desired.name, ", ".join(c.name for c in candidates)
                )
            return None
        return candidates[0]

    def _create(self, parent: _Work, desired: DesiredNode) -> _Work:
        node_type = desired.type or DEFAULT_NODE_TYPE
        self._emit(
            CreateNode(
                parent_path=parent.path,
                node_type=node_type,
                node_name=desired.name,
                properties=dict(desired.properties),
                set_owner=True,
            )
        )
        work = _Work(desired.name, node_type, properties=dict(desired.properties))
        parent.attach(work)
        self._claim(work)
        if desired.children:
            self._diff_children(work, desired.children)
        return work

    # -------------------------
    # Recursion
    # -------------------------

    def _diff_node(self, work: _Work, desired: DesiredNode) -> None:
        if desired.type and work.type != desired.type:
            severity = "error" if self.options.strict_types else "warning"
            self._issue(
                "type_mismatch",
                f"Type mismatch at {work.path}: existing={work.type} desired={desired.type}",
                work.path,
                severity,
            )
            if self.options.strict_types:
                return

        for prop, value in desired.properties.items():
            current = _MISSING if work.properties is None else work.properties.get(prop, _MISSING)
            if current is not _MISSING and values_equal(current, value):
                continue
            self._emit(SetProperty(node_path=work.path, property=prop, value=value))
            if work.properties is not None:
                work.properties[prop] = value

        if desired.children is not None:
            self._diff_children(work, desired.children)

    def _diff_children(self, parent: _Work, desired_children: List[DesiredNode]) -> None:
        desired_names = {child.name for child in desired_children}
        seen: Set[str] = set()
        placed: List[_Work] = []

        for desired in desired_children:
            target_path = join_path(parent.path, desired.name)
            reason = invalid_name_reason(desired.name)
            if reason:
                self._issue("invalid_name", reason, target_path)
                continue
            if desired.name in seen:
                self._issue("duplicate_name", f"Desired tree lists '{desired.name}' twice", target_path)
                continue
            seen.add(desired.name)

            if desired.id is not None:
                pinned = self.by_id.get(desired.id)
                if pinned is None:
                    self._issue("unknown_id", f"Unknown node id '{desired.id}'", target_path)
                    continue
                if self._is_claimed(pinned):
                    self._issue("duplicate_id", f"Node id '{desired.id}' is already matched", target_path)
                    continue
                work = self._relocate(pinned, parent, desired)
                if work is None:
                    continue
                placed.append(work)
                self._diff_node(work, desired)
                continue

            direct = parent.child(desired.name)
            if direct is not None:
                if self._is_claimed(direct) or self._pinned_elsewhere(direct, desired):
                    self._issue(
                        "name_collision",
                        f"'{desired.name}' is taken by a node matched elsewhere",
                        target_path,
                    )
                    continue
                self._claim(direct)
                placed.append(direct)
                self._diff_node(direct, desired)
                continue

            if self.options.detect_renames:
                candidate = self._rename_candidate(parent, desired, desired_names)
                if candidate is not None:
                    self._claim(candidate)
                    self._rename(candidate, desired.name)
                    placed.append(candidate)
                    self._diff_node(candidate, desired)
                    continue

            placed.append(self._create(parent, desired))

        if self.options.allow_delete:
            for child in parent.children:
                if self._is_claimed(child) or child.name in desired_names or self._pinned_elsewhere(child):
                    continue
                self.delete_queue.append(child)

        if self.options.reorder_children and len(placed) > 1:
            self.reorder_queue.append((parent, placed))

    def _emit_deletes(self, work: _Work) -> None:
        for child in list(work.children):
            self._emit_deletes(child)
        self._emit(DeleteNode(node_path=work.path))
        work.detach()

    def _pinned_descendant(self, work: _Work) -> Optional[_Work]:
        for child in work.children:
            if child.id and child.id in self.pinned:
                return child
            found = self._pinned_descendant(child)
            if found is not None:
                return found
        return None

    def _flush_deletes(self) -> None:
        for work in self.delete_queue:
            if work.parent is None or self._is_claimed(work):
                continue
            # a pin that could not be honoured still keeps its node alive
            kept = self._pinned_descendant(work)
            if kept is not None:
                self._issue(
                    "delete_blocked",
                    f"Not deleting {work.path}: {kept.path} is pinned by id '{kept.id}'",
                    work.path,
                    "warning",
                )
                continue
            self._emit_deletes(work)

    def _flush_reorders(self) -> None:
        for parent, placed in self.reorder_queue:
            for index, work in enumerate(placed):
                if work.parent is not parent:
                    continue
                if parent.children.index(work) == index:
                    continue
                self._emit(
                    ReparentNode(
                        node_path=work.path,
                        new_parent_path=parent.path,
                        index=index,
                        keep_global_transform=False,
                    )
                )
                parent.children.remove(work)
                parent.children.insert(index, work)

    def run(self, desired_root: DesiredNode) -> DiffResult:
        self._collect_pins(desired_root)
        if desired_root.id is not None and self.root.id is not None and desired_root.id != self.root.id:
            self._issue("invalid_move", f"Desired root id '{desired_root.id}' does not match the scene root", ROOT_PATH)
        self._claim(self.root)
        self._diff_node(self.root, desired_root)
        self._flush_deletes()
        self._flush_reorders()
        return self.result


def diff(live_root: LiveNode, desired_root: DesiredNode, options: Optional[DiffOptions] = None) -> DiffResult:
    options = options or DiffOptions()
    result = _Differ(live_root, options).run(desired_root)
    logger.debug(
        "diff produced %d operations, %d issues, %d aliases",
        len(result.operations),
        len(result.errors),
        len(result.aliases),
    )
    return result
