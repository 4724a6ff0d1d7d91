"""Declared node types and their property schemas.

Validation consults this registry instead of asking a live node whether it
happens to expose an attribute. Each property has a *kind*; every kind maps to
a JSON-schema fragment that incoming values are checked against.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from jsonschema import Draft7Validator

from .shared.errors import TypeMismatchError, ValidationError

_NUMBER = {"type": "number"}

KIND_SCHEMAS: dict[str, dict[str, Any]] = {
    "any": {},
    "bool": {"type": "boolean"},
    "int": {"type": "integer"},
    "float": _NUMBER,
    "string": {"type": "string"},
    "vector2": {"type": "array", "items": _NUMBER, "minItems": 2, "maxItems": 2},
    "vector3": {"type": "array", "items": _NUMBER, "minItems": 3, "maxItems": 3},
    "color": {"type": "array", "items": _NUMBER, "minItems": 3, "maxItems": 4},
    "dict": {"type": "object"},
    "array": {"type": "array"},
}

_KIND_VALIDATORS: dict[str, Draft7Validator] = {
    kind: Draft7Validator(schema) for kind, schema in KIND_SCHEMAS.items()
}


@dataclass(frozen=True)
class NodeType:
    name: str
    parent: str | None = "Node"
    properties: Mapping[str, str] = field(default_factory=dict)
    instantiable: bool = True


class TypeRegistry:
    def __init__(self, types: Iterable[NodeType] = ()) -> None:
        self._types: dict[str, NodeType] = {}
        for node_type in types:
            self.register(node_type)

    def register(self, node_type: NodeType) -> None:
        if node_type.parent is not None and node_type.parent not in self:
            raise ValidationError(f"Unknown parent type '{node_type.parent}' for '{node_type.name}'")
        for prop, kind in node_type.properties.items():
            if kind not in KIND_SCHEMAS:
                raise ValidationError(f"Unknown property kind '{kind}' for {node_type.name}.{prop}")
        self._types[node_type.name] = node_type

    def __contains__(self, type_name: object) -> bool:
        return type_name in self._types

    def get(self, type_name: str) -> NodeType:
        try:
            return self._types[type_name]
        except KeyError as exc:
            raise TypeMismatchError(f"Unknown node type '{type_name}'") from exc

    def lineage(self, type_name: str) -> list[NodeType]:
        chain: list[NodeType] = []
        current: str | None = type_name
        while current is not None:
            node_type = self.get(current)
            chain.append(node_type)
            current = node_type.parent
        return chain

    def properties(self, type_name: str) -> dict[str, str]:
        merged: dict[str, str] = {}
        for node_type in reversed(self.lineage(type_name)):
            merged.update(node_type.properties)
        return merged

    def property_kind(self, type_name: str, prop: str) -> str | None:
        return self.properties(type_name).get(prop)

    def require_instantiable(self, type_name: str) -> NodeType:
        node_type = self.get(type_name)
        if not node_type.instantiable:
            raise TypeMismatchError(f"Node type '{type_name}' cannot be instantiated")
        return node_type

    def validate_property(self, type_name: str, prop: str, value: Any) -> None:
        kind = self.property_kind(type_name, prop)
        if kind is None:
            raise ValidationError(f"Type '{type_name}' has no property '{prop}'")
        errors = list(_KIND_VALIDATORS[kind].iter_errors(value))
        if errors:
            raise ValidationError(f"Invalid value for {type_name}.{prop} ({kind}): {errors[0].message}")


def default_registry() -> TypeRegistry:
    return TypeRegistry(
        [
            NodeType(
                "Node",
                parent=None,
                properties={
                    "process_mode": "int",
                    "process_priority": "int",
                    "editor_description": "string",
                    "unique_name_in_owner": "bool",
                },
            ),
            NodeType(
                "CanvasItem",
                properties={
                    "visible": "bool",
                    "modulate": "color",
                    "self_modulate": "color",
                    "z_index": "int",
                    "show_behind_parent": "bool",
                },
                instantiable=False,
            ),
            NodeType(
                "Node2D",
                parent="CanvasItem",
                properties={
                    "position": "vector2",
                    "rotation": "float",
                    "scale": "vector2",
                    "skew": "float",
                },
            ),
            NodeType(
                "Sprite2D",
                parent="Node2D",
                properties={"texture": "string", "centered": "bool", "offset": "vector2", "flip_h": "bool", "flip_v": "bool"},
            ),
            NodeType("Camera2D", parent="Node2D", properties={"zoom": "vector2", "enabled": "bool", "offset": "vector2"}),
            NodeType("Area2D", parent="Node2D", properties={"monitoring": "bool", "monitorable": "bool"}),
            NodeType("CharacterBody2D", parent="Node2D", properties={"velocity": "vector2", "floor_max_angle": "float"}),
            NodeType("CollisionShape2D", parent="Node2D", properties={"shape": "string", "disabled": "bool"}),
            NodeType(
                "Control",
                parent="CanvasItem",
                properties={
                    "position": "vector2",
                    "size": "vector2",
                    "anchor_left": "float",
                    "anchor_top": "float",
                    "anchor_right": "float",
                    "anchor_bottom": "float",
                    "tooltip_text": "string",
                },
            ),
            NodeType("CanvasLayer", properties={"layer": "int", "visible": "bool", "offset": "vector2"}),
            NodeType("Label", parent="Control", properties={"text": "string", "horizontal_alignment": "int"}),
            NodeType("Button", parent="Control", properties={"text": "string", "disabled": "bool", "flat": "bool"}),
            NodeType("Panel", parent="Control"),
            NodeType("VBoxContainer", parent="Control", properties={"alignment": "int"}),
            NodeType("HBoxContainer", parent="Control", properties={"alignment": "int"}),
            NodeType(
                "Node3D",
                properties={"position": "vector3", "rotation": "vector3", "scale": "vector3", "visible": "bool"},
            ),
            NodeType("Camera3D", parent="Node3D", properties={"fov": "float", "current": "bool", "near": "float", "far": "float"}),
            NodeType("MeshInstance3D", parent="Node3D", properties={"mesh": "string", "cast_shadow": "int"}),
            NodeType("DirectionalLight3D", parent="Node3D", properties={"light_energy": "float", "light_color": "color"}),
            NodeType("Timer", properties={"wait_time": "float", "one_shot": "bool", "autostart": "bool"}),
            NodeType("AudioStreamPlayer", properties={"stream": "string", "volume_db": "float", "autoplay": "bool"}),
        ]
    )
