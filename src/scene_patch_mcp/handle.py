from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

from .identity import IdentityAssignor, get_id
from .model import LiveNode
from .node_types import TypeRegistry, default_registry
from .tree import SceneNode, SceneTree, Transaction

JsonDict = Dict[str, Any]


@dataclass
class Snapshot:
    root_path: str
    structure: LiveNode
    scene_path: Optional[str] = None

    def to_dict(self) -> JsonDict:
        return {
            "root_path": self.root_path,
            "scene_path": self.scene_path,
            "structure": self.structure.to_dict(),
        }


class TreeHandle:
    """Everything a diff/resolve/apply call needs to reach the live tree."""

    def __init__(
        self,
        tree: SceneTree,
        registry: Optional[TypeRegistry] = None,
        assignor: Optional[IdentityAssignor] = None,
    ) -> None:
        self.tree = tree
        self.registry = registry or default_registry()
        self.assignor = assignor or IdentityAssignor()

    @classmethod
    def empty(cls, root_name: str = "Root", root_type: str = "Node", **kwargs: Any) -> "TreeHandle":
        transactional = kwargs.pop("transactional", True)
        return cls(SceneTree(SceneNode(root_name, root_type), transactional=transactional), **kwargs)

    def begin_batch(self, name: str) -> Optional[Transaction]:
        return self.tree.begin_batch(name)

    def snapshot(
        self,
        ensure_ids: bool = True,
        include_properties: bool = False,
        properties: Iterable[str] = (),
    ) -> Snapshot:
        wanted = list(properties)

        def build(node: SceneNode, path: str) -> LiveNode:
            node_id = self.assignor.ensure_id(node) if ensure_ids else get_id(node)
            props = None
            if include_properties:
                names = wanted or list(node.properties)
                props = {name: copy.deepcopy(node.properties[name]) for name in names if name in node.properties}
            return LiveNode(
                name=node.name,
                type=node.type,
                path=path,
                id=node_id,
                properties=props,
                children=[build(child, f"{path}/{child.name}") for child in node.children],
            )

        structure = build(self.tree.root, self.tree.root_path)
        return Snapshot(root_path=self.tree.root_path, structure=structure, scene_path=self.tree.scene_path)

    def fetch_properties(self, path: str, names: Iterable[str]) -> Optional[JsonDict]:
        node = self.tree.find(path)
        if node is None:
            return None
        return {name: copy.deepcopy(node.properties[name]) for name in names if name in node.properties}
