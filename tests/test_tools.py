import json

import pytest

from scene_patch_mcp import server
from scene_patch_mcp.shared.errors import SchemaValidationError, ToolExecutionError, UnknownTool
from scene_patch_mcp.tools.registry import get_definition, list_definitions, validate_arguments


@pytest.fixture
def served(handle, monkeypatch):
    monkeypatch.setattr(server, "handle", handle)
    return handle


def test_tool_definitions_are_listed():
    names = [tool.name for tool in server._tool_definitions()]
    assert names == ["get_tree_snapshot", "generate_patch", "apply_patch"]
    assert [tool.name for tool in list_definitions()] == names


def test_get_definition_unknown():
    with pytest.raises(UnknownTool):
        get_definition("scene.clear")


def test_validate_arguments_rejects_bad_shapes():
    with pytest.raises(SchemaValidationError, match="operations"):
        validate_arguments("apply_patch", {})
    with pytest.raises(SchemaValidationError, match="desired"):
        validate_arguments("generate_patch", {"desired": {"children": []}})
    with pytest.raises(SchemaValidationError):
        validate_arguments("generate_patch", {"desired": {"name": "root"}, "options": {"allow_deletes": True}})


def test_validate_arguments_accepts_nested_desired_tree():
    args = {"desired": {"name": "root", "children": [{"name": "A", "children": [{"name": "B"}]}]}}
    assert validate_arguments("generate_patch", args) == args


@pytest.mark.asyncio
async def test_snapshot_tool_returns_json(served):
    content = await server._execute_tool("get_tree_snapshot", {"include_properties": True})

    payload = json.loads(content[0].text)
    assert payload["root_path"] == "/root"
    assert [child["name"] for child in payload["structure"]["children"]] == ["Player", "UI", "Camera"]


@pytest.mark.asyncio
async def test_generate_and_apply_tools(served):
    desired = {"name": "root", "children": [{"name": "Enemy", "type": "Sprite2D"}]}

    generated = json.loads((await server._execute_tool("generate_patch", {"desired": desired}))[0].text)
    applied = json.loads(
        (await server._execute_tool("apply_patch", {"operations": generated["operations"]}))[0].text
    )

    assert applied == {
        "applied": 1,
        "total": 1,
        "errors": [],
        "used_undo_redo": True,
        "rolled_back": False,
        "cancelled": False,
    }
    assert served.tree.find("/root/Enemy") is not None


@pytest.mark.asyncio
async def test_apply_tool_reports_per_operation_errors(served):
    ops = [{"op": "rename_node", "node_path": "/root/Player"}]

    payload = json.loads((await server._execute_tool("apply_patch", {"operations": ops}))[0].text)

    assert payload["applied"] == 0
    assert payload["errors"][0]["code"] == "schema_validation_error"


@pytest.mark.asyncio
async def test_invalid_arguments_raise_tool_error(served):
    with pytest.raises(ToolExecutionError):
        await server._execute_tool("apply_patch", {"operations": "nope"})


@pytest.mark.asyncio
async def test_unknown_tool_raises_tool_error(served):
    with pytest.raises(ToolExecutionError, match="Unknown tool"):
        await server._execute_tool("scene.clear", {})
