from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional

from .shared.errors import SchemaValidationError

ROOT_PATH = "/root"
DEFAULT_NODE_TYPE = "Node"

JsonDict = Dict[str, Any]

_INVALID_NAME_CHARS = set('./:@%"')


def join_path(parent_path: str, name: str) -> str:
    return f"{parent_path.rstrip('/')}/{name}"


def split_path(path: str) -> List[str]:
    """Return the names below the root, ``/root/A/B`` -> ``["A", "B"]``."""
    if path == ROOT_PATH:
        return []
    if not path.startswith(ROOT_PATH + "/"):
        raise ValueError(f"Path must start with {ROOT_PATH}: {path!r}")
    return [part for part in path[len(ROOT_PATH) + 1 :].split("/") if part]


def leaf_name(path: str) -> str:
    return path.rstrip("/").rsplit("/", 1)[-1]


def is_within(path: str, ancestor: str) -> bool:
    return path == ancestor or path.startswith(ancestor.rstrip("/") + "/")


def rebase_path(path: str, old_prefix: str, new_prefix: str) -> str:
    if path == old_prefix:
        return new_prefix
    return new_prefix + path[len(old_prefix) :]


def invalid_name_reason(name: Any) -> Optional[str]:
    if not isinstance(name, str) or not name.strip():
        return "name must be a non-empty string"
    bad = sorted(_INVALID_NAME_CHARS.intersection(name))
    if bad:
        return f"name {name!r} contains invalid characters {''.join(bad)!r}"
    return None


@dataclass
class LiveNode:
    """A node as observed in a snapshot of the live tree."""

    name: str
    type: str
    path: str
    id: Optional[str] = None
    properties: Optional[JsonDict] = None
    children: List["LiveNode"] = field(default_factory=list)

    def walk(self) -> Iterator["LiveNode"]:
        yield self
        for child in self.children:
            yield from child.walk()

    def to_dict(self) -> JsonDict:
        out: JsonDict = {"name": self.name, "type": self.type, "path": self.path}
        if self.id is not None:
            out["id"] = self.id
        if self.properties is not None:
            out["properties"] = dict(self.properties)
        out["children"] = [child.to_dict() for child in self.children]
        return out

    @classmethod
    def from_dict(cls, raw: JsonDict, parent: Optional[str] = None) -> "LiveNode":
        if not isinstance(raw, dict) or not isinstance(raw.get("name"), str):
            raise SchemaValidationError("snapshot node must be an object with a string 'name'")
        path = raw.get("path")
        if not isinstance(path, str):
            path = ROOT_PATH if parent is None else join_path(parent, raw["name"])
        properties = raw.get("properties")
        return cls(
            name=raw["name"],
            type=str(raw.get("type") or DEFAULT_NODE_TYPE),
            path=path,
            id=raw.get("id"),
            properties=dict(properties) if isinstance(properties, dict) else None,
            children=[cls.from_dict(child, path) for child in raw.get("children") or []],
        )


@dataclass
class DesiredNode:
    """Target shape supplied by a caller; only ``name`` is mandatory."""

    name: str
    type: Optional[str] = None
    id: Optional[str] = None
    properties: JsonDict = field(default_factory=dict)
    children: Optional[List["DesiredNode"]] = None

    @classmethod
    def from_dict(cls, raw: JsonDict) -> "DesiredNode":
        if not isinstance(raw, dict):
            raise SchemaValidationError("desired node must be an object")
        name = raw.get("name")
        if not isinstance(name, str) or not name:
            raise SchemaValidationError("desired node requires a non-empty 'name'")
        properties = raw.get("properties") or {}
        if not isinstance(properties, dict):
            raise SchemaValidationError(f"properties of {name!r} must be an object")
        children = raw.get("children")
        if children is not None and not isinstance(children, list):
            raise SchemaValidationError(f"children of {name!r} must be an array")
        return cls(
            name=name,
            type=raw.get("type"),
            id=raw.get("id"),
            properties=dict(properties),
            children=None if children is None else [cls.from_dict(child) for child in children],
        )

    @classmethod
    def root(cls, children: List["DesiredNode"], **kwargs: Any) -> "DesiredNode":
        return cls(name=kwargs.pop("name", "root"), children=children, **kwargs)

    def walk(self) -> Iterator["DesiredNode"]:
        yield self
        for child in self.children or []:
            yield from child.walk()

    def to_dict(self) -> JsonDict:
        out: JsonDict = {"name": self.name}
        if self.type is not None:
            out["type"] = self.type
        if self.id is not None:
            out["id"] = self.id
        if self.properties:
            out["properties"] = dict(self.properties)
        if self.children is not None:
            out["children"] = [child.to_dict() for child in self.children]
        return out


def desired_from_live(node: LiveNode, *, keep_ids: bool = True) -> DesiredNode:
    """Express a snapshot as its own desired form."""
    return DesiredNode(
        name=node.name,
        type=node.type,
        id=node.id if keep_ids else None,
        properties=dict(node.properties or {}),
        children=[desired_from_live(child, keep_ids=keep_ids) for child in node.children],
    )
