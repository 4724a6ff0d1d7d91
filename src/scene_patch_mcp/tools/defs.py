from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..operations import OPERATION_SCHEMAS


@dataclass(frozen=True)
class ToolDefinition:
    name: str
    description: str
    input_schema: dict[str, Any]


# Operation shape is checked per kind when the batch is parsed so that one bad
# entry can be reported by index instead of rejecting the whole call.
_OPERATION = {"type": "object", "properties": {"op": {"enum": sorted(OPERATION_SCHEMAS)}}, "required": ["op"]}

_DESIRED_NODE = {
    "type": "object",
    "properties": {
        "name": {"type": "string", "minLength": 1},
        "type": {"type": "string"},
        "id": {"type": "string"},
        "properties": {"type": "object"},
        "children": {"type": "array", "items": {"$ref": "#/definitions/desired_node"}},
    },
    "required": ["name"],
}

TOOL_DEFINITIONS: list[ToolDefinition] = [
    ToolDefinition(
        name="get_tree_snapshot",
        description="Snapshot the edited scene tree with stable node ids.",
        input_schema={
            "type": "object",
            "properties": {
                "ensure_ids": {"type": "boolean"},
                "include_properties": {"type": "boolean"},
                "properties": {"type": "array", "items": {"type": "string"}},
            },
            "additionalProperties": False,
        },
    ),
    ToolDefinition(
        name="generate_patch",
        description="Diff the scene against a desired tree and return patch operations.",
        input_schema={
            "type": "object",
            "definitions": {"desired_node": _DESIRED_NODE},
            "properties": {
                "desired": {"$ref": "#/definitions/desired_node"},
                "options": {
                    "type": "object",
                    "properties": {
                        "allow_delete": {"type": "boolean"},
                        "strict_types": {"type": "boolean"},
                        "detect_renames": {"type": "boolean"},
                        "reorder_children": {"type": "boolean"},
                        "apply": {"type": "boolean"},
                        "strict": {"type": "boolean"},
                    },
                    "additionalProperties": False,
                },
            },
            "required": ["desired"],
            "additionalProperties": False,
        },
    ),
    ToolDefinition(
        name="apply_patch",
        description="Apply patch operations to the scene as one undoable batch.",
        input_schema={
            "type": "object",
            "properties": {
                "operations": {"type": "array", "items": _OPERATION},
                "strict": {"type": "boolean"},
            },
            "required": ["operations"],
            "additionalProperties": False,
        },
    ),
]
