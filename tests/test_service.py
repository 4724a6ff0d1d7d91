from scene_patch_mcp import service

DESIRED = {
    "name": "root",
    "children": [
        {"name": "Player", "type": "Sprite2D", "properties": {"position": [20, 0], "texture": "player.png"}},
        {
            "name": "UI",
            "type": "Control",
            "children": [
                {"name": "Score", "type": "Label", "properties": {"text": "10"}},
                {"name": "Lives", "type": "Label", "properties": {"text": "3"}},
            ],
        },
    ],
}


def test_snapshot_reports_ids_and_selected_properties(handle):
    payload = service.get_tree_snapshot(handle, include_properties=True, properties=["position"])

    assert payload["root_path"] == "/root"
    assert payload["scene_path"] == "res://main.tscn"
    player = payload["structure"]["children"][0]
    assert player["path"] == "/root/Player"
    assert player["id"]
    assert player["properties"] == {"position": [10, 0]}


def test_unchanged_properties_are_not_patched(handle):
    desired = {"name": "root", "children": [{"name": "Player", "properties": {"position": [10, 0]}}]}

    assert service.generate_patch(handle, desired)["operations"] == []


def test_generate_apply_regenerate_round_trip(handle):
    patch = service.generate_patch(handle, DESIRED, {"allow_delete": True})

    assert [op["op"] for op in patch["operations"]] == [
        "set_property",
        "set_property",
        "create_node",
        "delete_node",
    ]
    assert patch["errors"] == []

    applied = service.apply_patch(handle, patch["operations"])
    assert applied["applied"] == applied["total"] == 4

    again = service.generate_patch(handle, DESIRED, {"allow_delete": True})
    assert again["operations"] == []


def test_generate_can_apply_in_one_call(handle):
    patch = service.generate_patch(handle, DESIRED, {"allow_delete": True, "apply": True})

    assert patch["applied"] == patch["total"] == 4
    assert patch["apply_errors"] == []
    assert handle.tree.find("/root/UI/Lives").properties == {"text": "3"}


def test_generate_does_not_apply_when_the_diff_has_errors(handle):
    desired = {"name": "root", "children": [{"name": "Player", "type": "Label"}]}

    patch = service.generate_patch(handle, desired, {"apply": True})

    assert patch["apply_skipped"] is True
    assert patch["errors"][0]["code"] == "type_mismatch"


def test_reorder_rename_delete_round_trip(handle, ids):
    desired = {
        "name": "root",
        "children": [
            {"name": "Camera", "type": "Camera2D"},
            {"name": "Hero", "type": "Sprite2D"},
        ],
    }
    options = {"allow_delete": True, "detect_renames": True, "reorder_children": True}

    patch = service.generate_patch(handle, desired, options)
    assert [op["op"] for op in patch["operations"]] == [
        "rename_node",
        "delete_node",
        "delete_node",
        "reparent_node",
    ]

    applied = service.apply_patch(handle, patch["operations"], strict=True)

    assert applied["applied"] == 4
    assert [child.name for child in handle.tree.root.children] == ["Camera", "Hero"]
    assert handle.snapshot().structure.children[1].id == ids["/root/Player"]
    assert service.generate_patch(handle, desired, options)["operations"] == []
