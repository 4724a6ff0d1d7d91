from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from . import service
from .handle import TreeHandle
from .shared.config import AppConfig, SceneConfig, load_config
from .shared.errors import (
    ScenePatchError,
    SchemaValidationError,
    ToolExecutionError,
    UnknownTool,
)
from .shared.logging import configure_logging, get_logger
from .tools.registry import list_definitions, validate_arguments
from .tree import SceneTree

app = Server("scene_patch_mcp")
logger = get_logger(__name__)
config = AppConfig()
handle: TreeHandle | None = None


def build_handle(scene: SceneConfig) -> TreeHandle:
    if scene.file:
        path = Path(scene.file)
        with path.open("r", encoding="utf-8") as fh:
            raw = json.load(fh)
        raw.setdefault("scene_path", str(path))
        logger.info("Loaded scene %s", path)
        return TreeHandle(SceneTree.from_dict(raw, transactional=scene.transactional))
    return TreeHandle.empty(scene.root_name, scene.root_type, transactional=scene.transactional)


def get_handle() -> TreeHandle:
    global handle
    if handle is None:
        handle = build_handle(config.scene)
    return handle


def _tool_definitions() -> list[Tool]:
    return [
        Tool(name=tool.name, description=tool.description, inputSchema=tool.input_schema)
        for tool in list_definitions()
    ]


@app.list_tools()
async def list_tools() -> list[Tool]:
    return _tool_definitions()


def _dispatch(tool_name: str, arguments: dict[str, Any]) -> dict[str, Any]:
    target = get_handle()
    if tool_name == "get_tree_snapshot":
        return service.get_tree_snapshot(
            target,
            ensure_ids=arguments.get("ensure_ids", True),
            include_properties=arguments.get("include_properties", False),
            properties=arguments.get("properties"),
        )
    if tool_name == "generate_patch":
        return service.generate_patch(
            target,
            arguments["desired"],
            arguments.get("options"),
            defaults=config.patch,
        )
    if tool_name == "apply_patch":
        return service.apply_patch(
            target,
            arguments["operations"],
            strict=arguments.get("strict", config.patch.strict),
        )
    raise UnknownTool(f"Unknown tool '{tool_name}'")


async def _execute_tool(tool_name: str, arguments: dict[str, Any] | None) -> list[TextContent]:
    try:
        validated_args = validate_arguments(tool_name, arguments)
    except (SchemaValidationError, UnknownTool) as exc:
        raise ToolExecutionError(str(exc)) from exc

    try:
        payload = _dispatch(tool_name, validated_args)
    except ScenePatchError as exc:
        logger.error("Tool %s failed: %s", tool_name, exc)
        raise ToolExecutionError(str(exc)) from exc

    return [TextContent(type="text", text=json.dumps(payload))]


@app.call_tool()
async def call_tool(name: str, arguments: dict[str, Any] | None) -> list[TextContent]:
    return await _execute_tool(name, arguments)


async def run_server() -> None:
    global config, handle
    config = load_config()
    configure_logging(config.logging)
    logger.info("Starting scene patch MCP server")

    try:
        handle = build_handle(config.scene)
    except (OSError, ValueError, ScenePatchError) as exc:
        logger.error("Cannot load scene: %s", exc)
        raise

    async with stdio_server() as (read_stream, write_stream):
        await app.run(read_stream, write_stream, app.create_initialization_options())


def main() -> None:
    import asyncio

    try:
        asyncio.run(run_server())
    except (OSError, ValueError, ScenePatchError) as exc:
        logger.error("Server stopped: %s", exc)
        raise SystemExit(1) from exc


if __name__ == "__main__":
    main()
