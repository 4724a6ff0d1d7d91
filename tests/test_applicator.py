import pytest

from scene_patch_mcp.applicator import apply
from scene_patch_mcp.handle import TreeHandle
from scene_patch_mcp.identity import get_id
from scene_patch_mcp.tree import SceneTree

THREE_VALID_ONE_INVALID = [
    {"op": "create_node", "parent_path": "/root", "node_type": "Sprite2D", "node_name": "Enemy"},
    {"op": "set_property", "node_path": "/root/Player", "property": "position", "value": [5, 5]},
    {"op": "rename_node", "node_path": "/root/Camera", "new_name": "MainCamera"},
    {"op": "set_property", "node_path": "/root/Player", "property": "no_such_property", "value": 1},
]


def test_strict_batch_rolls_back_on_any_failure(handle, tree):
    result = apply(handle, THREE_VALID_ONE_INVALID, strict=True)

    assert result.applied == 0
    assert result.total == 4
    assert result.rolled_back is True
    assert [(e.index, e.code) for e in result.errors] == [(3, "validation_error")]
    assert tree.find("/root/Enemy") is None
    assert tree.find("/root/Camera") is not None
    assert tree.find("/root/Player").properties["position"] == [10, 0]
    assert not tree.can_undo()


def test_lenient_batch_applies_the_valid_operations(handle, tree):
    result = apply(handle, THREE_VALID_ONE_INVALID, strict=False)

    assert result.applied == 3
    assert len(result.errors) == 1
    assert result.used_undo_redo is True
    assert tree.find("/root/Enemy").owner is tree.root
    assert tree.find("/root/MainCamera") is not None


def test_committed_batch_is_one_undo_step(handle, tree):
    apply(handle, THREE_VALID_ONE_INVALID[:3])

    assert tree.undo()
    assert tree.find("/root/Enemy") is None
    assert tree.find("/root/Camera") is not None
    assert tree.find("/root/Player").properties["position"] == [10, 0]

    assert tree.redo()
    assert tree.find("/root/MainCamera") is not None
    assert tree.find("/root/Player").properties["position"] == [5, 5]


def test_without_transactions_strict_degrades_to_best_effort(scene_dict):
    handle = TreeHandle(SceneTree.from_dict(scene_dict, transactional=False))

    result = apply(handle, THREE_VALID_ONE_INVALID, strict=True)

    assert result.applied == 3
    assert result.used_undo_redo is False
    assert result.rolled_back is False
    assert handle.tree.find("/root/Enemy") is not None


def test_malformed_operation_fails_strict_batch_up_front(handle, tree):
    ops = [THREE_VALID_ONE_INVALID[0], {"op": "rename_node", "node_path": "/root/Player"}]

    result = apply(handle, ops)

    assert result.applied == 0
    assert result.errors[0].code == "schema_validation_error"
    assert result.errors[0].op == "rename_node"
    assert tree.find("/root/Enemy") is None


@pytest.mark.parametrize(
    "op, code",
    [
        ({"op": "create_node", "parent_path": "/root", "node_type": "CanvasItem", "node_name": "X"}, "type_error"),
        ({"op": "create_node", "parent_path": "/root", "node_type": "Spaceship", "node_name": "X"}, "type_error"),
        ({"op": "create_node", "parent_path": "/root/Nope", "node_name": "X"}, "structural_error"),
        ({"op": "create_node", "parent_path": "/root", "node_name": "Player"}, "structural_error"),
        ({"op": "create_node", "parent_path": "/root", "node_name": "a:b"}, "validation_error"),
        (
            {"op": "create_node", "parent_path": "/root", "node_type": "Label", "node_name": "X", "properties": {"text": 3}},
            "validation_error",
        ),
        ({"op": "delete_node", "node_path": "/root"}, "structural_error"),
        ({"op": "delete_node", "node_path": "/root/Missing"}, "structural_error"),
        ({"op": "set_property", "node_path": "/root/Player", "property": "position", "value": [1]}, "validation_error"),
        ({"op": "rename_node", "node_path": "/root/Player", "new_name": "UI"}, "structural_error"),
        ({"op": "reparent_node", "node_path": "/root", "new_parent_path": "/root/UI"}, "structural_error"),
        ({"op": "reparent_node", "node_path": "/root/UI", "new_parent_path": "/root/UI/Score"}, "structural_error"),
        ({"op": "reparent_node", "node_path": "/root/Camera", "new_parent_path": "/root/UI", "index": 5}, "structural_error"),
    ],
)
def test_invalid_operations_are_reported(handle, op, code):
    result = apply(handle, [op], strict=False)

    assert result.applied == 0
    assert result.errors[0].code == code


def test_id_and_path_must_name_the_same_node(handle, ids):
    op = {"op": "delete_node", "node_path": "/root/Camera", "node_id": ids["/root/Player"]}

    result = apply(handle, [op], strict=False)

    assert result.errors[0].code == "identity_error"


def test_reparent_keeps_global_position(handle, tree):
    op = {
        "op": "reparent_node",
        "node_path": "/root/Player",
        "new_parent_path": "/root/UI",
        "keep_global_transform": True,
    }

    result = apply(handle, [op])

    assert result.applied == 1
    assert tree.find("/root/UI/Player").properties["position"] == [-90.0, -50.0]
    tree.undo()
    assert tree.find("/root/Player").properties["position"] == [10, 0]


def test_reparent_within_parent_moves_to_index(handle, tree):
    op = {"op": "reparent_node", "node_path": "/root/Camera", "new_parent_path": "/root", "index": 0}

    apply(handle, [op])

    assert [child.name for child in tree.root.children] == ["Camera", "Player", "UI"]


def test_operation_below_deleted_node_names_the_delete(handle):
    ops = [
        {"op": "delete_node", "node_path": "/root/UI"},
        {"op": "set_property", "node_path": "/root/UI/Score", "property": "text", "value": "1"},
    ]

    result = apply(handle, ops, strict=False)

    assert result.applied == 1
    assert result.errors[0].index == 1
    assert "operation #0" in result.errors[0].message


def test_player_becomes_hero_under_ui_by_id(handle, tree, ids):
    player_id = ids["/root/Player"]
    ops = [
        {"op": "rename_node", "node_id": player_id, "new_name": "Hero"},
        {"op": "reparent_node", "node_id": player_id, "new_parent_id": ids["/root/UI"]},
        {"op": "set_property", "node_id": player_id, "property": "visible", "value": False},
    ]

    result = apply(handle, ops)

    assert result.applied == 3
    hero = tree.find("/root/UI/Hero")
    assert get_id(hero) == player_id
    assert hero.properties["visible"] is False
    assert handle.snapshot().structure.children[0].children[1].id == player_id


def test_cancellation_between_operations(handle, tree):
    calls = []

    def should_cancel():
        calls.append(1)
        return len(calls) > 1

    strict = apply(handle, THREE_VALID_ONE_INVALID[:3], should_cancel=should_cancel)
    assert strict.cancelled and strict.rolled_back and strict.applied == 0
    assert tree.find("/root/Enemy") is None

    calls.clear()
    lenient = apply(handle, THREE_VALID_ONE_INVALID[:3], strict=False, should_cancel=should_cancel)
    assert lenient.cancelled and lenient.applied == 1
    assert tree.find("/root/Enemy") is not None
