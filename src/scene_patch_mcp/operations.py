from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, ClassVar, Dict, Mapping, Optional, Union

from jsonschema import Draft7Validator

from .model import DEFAULT_NODE_TYPE, ROOT_PATH
from .shared.errors import SchemaValidationError

JsonDict = Dict[str, Any]

_STR = {"type": "string", "minLength": 1}
_TARGET = {"node_path": _STR, "node_id": _STR}
_TARGET_REQUIRED = [{"required": ["node_path"]}, {"required": ["node_id"]}]

OPERATION_SCHEMAS: dict[str, JsonDict] = {
    "create_node": {
        "type": "object",
        "properties": {
            "op": {"const": "create_node"},
            "parent_path": _STR,
            "parent_id": _STR,
            "node_type": _STR,
            "node_name": _STR,
            "properties": {"type": "object"},
            "set_owner": {"type": "boolean"},
        },
        "required": ["op", "node_name"],
        "additionalProperties": False,
    },
    "delete_node": {
        "type": "object",
        "properties": {"op": {"const": "delete_node"}, **_TARGET},
        "required": ["op"],
        "anyOf": _TARGET_REQUIRED,
        "additionalProperties": False,
    },
    "set_property": {
        "type": "object",
        "properties": {"op": {"const": "set_property"}, **_TARGET, "property": _STR, "value": {}},
        "required": ["op", "property", "value"],
        "anyOf": _TARGET_REQUIRED,
        "additionalProperties": False,
    },
    "rename_node": {
        "type": "object",
        "properties": {"op": {"const": "rename_node"}, **_TARGET, "new_name": _STR},
        "required": ["op", "new_name"],
        "anyOf": _TARGET_REQUIRED,
        "additionalProperties": False,
    },
    "reparent_node": {
        "type": "object",
        "properties": {
            "op": {"const": "reparent_node"},
            **_TARGET,
            "new_parent_path": _STR,
            "new_parent_id": _STR,
            "index": {"type": "integer", "minimum": 0},
            "keep_global_transform": {"type": "boolean"},
        },
        "required": ["op"],
        "allOf": [
            {"anyOf": _TARGET_REQUIRED},
            {"anyOf": [{"required": ["new_parent_path"]}, {"required": ["new_parent_id"]}]},
        ],
        "additionalProperties": False,
    },
}

_VALIDATORS: dict[str, Draft7Validator] = {
    kind: Draft7Validator(schema) for kind, schema in OPERATION_SCHEMAS.items()
}


@dataclass(frozen=True)
class CreateNode:
    kind: ClassVar[str] = "create_node"

    node_name: str
    node_type: str = DEFAULT_NODE_TYPE
    parent_path: Optional[str] = None
    parent_id: Optional[str] = None
    properties: Mapping[str, Any] = field(default_factory=dict)
    set_owner: bool = True

    def describe(self) -> str:
        parent = self.parent_path or (f"#{self.parent_id}" if self.parent_id else ROOT_PATH)
        return f"create_node {self.node_type} {self.node_name!r} under {parent}"


@dataclass(frozen=True)
class DeleteNode:
    kind: ClassVar[str] = "delete_node"

    node_path: Optional[str] = None
    node_id: Optional[str] = None

    def describe(self) -> str:
        return f"delete_node {_ref(self.node_path, self.node_id)}"


@dataclass(frozen=True)
class SetProperty:
    kind: ClassVar[str] = "set_property"

    property: str
    value: Any
    node_path: Optional[str] = None
    node_id: Optional[str] = None

    def describe(self) -> str:
        return f"set_property {_ref(self.node_path, self.node_id)}.{self.property}"


@dataclass(frozen=True)
class RenameNode:
    kind: ClassVar[str] = "rename_node"

    new_name: str
    node_path: Optional[str] = None
    node_id: Optional[str] = None

    def describe(self) -> str:
        return f"rename_node {_ref(self.node_path, self.node_id)} -> {self.new_name!r}"


@dataclass(frozen=True)
class ReparentNode:
    kind: ClassVar[str] = "reparent_node"

    node_path: Optional[str] = None
    node_id: Optional[str] = None
    new_parent_path: Optional[str] = None
    new_parent_id: Optional[str] = None
    index: Optional[int] = None
    keep_global_transform: bool = False

    def describe(self) -> str:
        where = _ref(self.new_parent_path, self.new_parent_id)
        at = "" if self.index is None else f" at {self.index}"
        return f"reparent_node {_ref(self.node_path, self.node_id)} -> {where}{at}"


PatchOperation = Union[CreateNode, DeleteNode, SetProperty, RenameNode, ReparentNode]

OPERATION_TYPES: dict[str, type] = {
    cls.kind: cls for cls in (CreateNode, DeleteNode, SetProperty, RenameNode, ReparentNode)
}


def _ref(path: Optional[str], node_id: Optional[str]) -> str:
    if path and node_id:
        return f"{path}#{node_id}"
    return path or f"#{node_id}"


def references_ids(op: PatchOperation) -> bool:
    return any(
        getattr(op, name, None) is not None for name in ("node_id", "parent_id", "new_parent_id")
    )


def parse_operation(raw: Any) -> PatchOperation:
    if isinstance(raw, tuple(OPERATION_TYPES.values())):
        return raw
    if not isinstance(raw, dict):
        raise SchemaValidationError("operation must be an object")
    kind = raw.get("op")
    validator = _VALIDATORS.get(kind) if isinstance(kind, str) else None
    if validator is None:
        raise SchemaValidationError(f"unknown op {kind!r}; expected one of {', '.join(OPERATION_TYPES)}")

    errors = sorted(validator.iter_errors(raw), key=lambda e: (len(e.path), str(list(e.path))))
    if errors:
        first = errors[0]
        where = ".".join(str(p) for p in first.path) or "<root>"
        raise SchemaValidationError(f"{kind}: {where}: {first.message}")

    values = {key: value for key, value in raw.items() if key != "op"}
    if kind == "create_node":
        values.setdefault("node_type", DEFAULT_NODE_TYPE)
        values["properties"] = dict(values.get("properties") or {})
    return OPERATION_TYPES[kind](**values)


def operation_to_dict(op: PatchOperation) -> JsonDict:
    out: JsonDict = {"op": op.kind}
    for f in fields(op):
        value = getattr(op, f.name)
        if value is None:
            continue
        if f.name == "properties":
            value = dict(value)
        out[f.name] = value
    return out

