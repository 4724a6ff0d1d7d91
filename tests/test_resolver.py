import pytest

from scene_patch_mcp.model import LiveNode
from scene_patch_mcp.operations import DeleteNode, RenameNode, ReparentNode, SetProperty
from scene_patch_mcp.resolver import IdentityResolver, resolve
from scene_patch_mcp.shared.errors import IdentityError


@pytest.fixture
def snapshot():
    return LiveNode.from_dict(
        {
            "name": "Main",
            "id": "root",
            "children": [
                {"name": "Player", "id": "p1", "children": [{"name": "Gun", "id": "g1"}]},
                {"name": "UI", "id": "ui", "children": [{"name": "Score", "id": "s1"}]},
            ],
        }
    )


def test_ids_translate_to_snapshot_paths(snapshot):
    [op] = resolve([{"op": "set_property", "node_id": "g1", "property": "visible", "value": False}], snapshot)
    assert op == SetProperty(node_path="/root/Player/Gun", node_id="g1", property="visible", value=False)


def test_player_renamed_and_moved_under_ui(snapshot):
    resolver = IdentityResolver(snapshot)
    ops = []
    for raw in (
        RenameNode(node_id="p1", new_name="Hero"),
        ReparentNode(node_id="p1", new_parent_id="ui"),
    ):
        op = resolver.resolve_operation(raw)
        resolver.record(op)
        ops.append(op)

    assert ops[0].node_path == "/root/Player"
    assert ops[1].node_path == "/root/Hero"
    assert ops[1].new_parent_path == "/root/UI"
    assert resolver.path_of("p1") == "/root/UI/Hero"
    # descendants follow their parent
    assert resolver.path_of("g1") == "/root/UI/Hero/Gun"


def test_reference_after_delete_names_the_deleting_operation(snapshot):
    resolver = IdentityResolver(snapshot)
    resolver.record(resolver.resolve_operation(DeleteNode(node_id="ui")))

    with pytest.raises(IdentityError) as exc:
        resolver.resolve_operation(RenameNode(node_id="s1", new_name="Points"))

    assert "operation #0" in str(exc.value)


def test_path_below_deleted_node_is_rejected(snapshot):
    resolver = IdentityResolver(snapshot)
    resolver.skip()
    resolver.record(resolver.resolve_operation(DeleteNode(node_path="/root/Player")))

    with pytest.raises(IdentityError, match="operation #1"):
        resolver.resolve_operation(SetProperty(node_path="/root/Player/Gun", property="visible", value=True))


def test_unknown_id(snapshot):
    with pytest.raises(IdentityError, match="nope"):
        resolve([DeleteNode(node_id="nope")], snapshot)


def test_id_and_path_must_agree(snapshot):
    with pytest.raises(IdentityError):
        resolve([DeleteNode(node_id="p1", node_path="/root/UI")], snapshot)


def test_create_at_deleted_path_makes_it_addressable_again(snapshot):
    ops = resolve(
        [
            DeleteNode(node_id="p1"),
            {"op": "create_node", "parent_id": "root", "node_name": "Player", "node_type": "Sprite2D"},
            SetProperty(node_path="/root/Player", property="visible", value=True),
        ],
        snapshot,
    )

    assert ops[1].parent_path == "/root"
    assert ops[2].node_path == "/root/Player"
