import copy

import pytest

from scene_patch_mcp.handle import TreeHandle
from scene_patch_mcp.shared.config import CONFIG_ENV
from scene_patch_mcp.tree import SceneTree

SCENE = {
    "scene_path": "res://main.tscn",
    "root": {
        "name": "Main",
        "type": "Node2D",
        "children": [
            {"name": "Player", "type": "Sprite2D", "properties": {"position": [10, 0], "texture": "player.png"}},
            {
                "name": "UI",
                "type": "Control",
                "properties": {"position": [100, 50]},
                "children": [{"name": "Score", "type": "Label", "properties": {"text": "0"}}],
            },
            {"name": "Camera", "type": "Camera2D", "properties": {"zoom": [1, 1]}},
        ],
    },
}


@pytest.fixture(autouse=True)
def _isolate_config(monkeypatch):
    # never pick up a developer's config file
    monkeypatch.delenv(CONFIG_ENV, raising=False)


@pytest.fixture
def scene_dict():
    return copy.deepcopy(SCENE)


@pytest.fixture
def tree(scene_dict):
    return SceneTree.from_dict(scene_dict)


@pytest.fixture
def handle(tree):
    return TreeHandle(tree)


@pytest.fixture
def ids(handle):
    """Path -> stable id for every node of the sample scene."""
    snapshot = handle.snapshot()
    return {node.path: node.id for node in snapshot.structure.walk()}
