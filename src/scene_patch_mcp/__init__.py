"""Stable-identity scene tree reconciliation exposed over MCP."""

from .applicator import PatchResult, apply
from .differ import DiffOptions, DiffResult, PatchIssue, diff
from .handle import Snapshot, TreeHandle
from .identity import ID_META_KEY, IdentityAssignor
from .model import ROOT_PATH, DesiredNode, LiveNode
from .node_types import NodeType, TypeRegistry, default_registry
from .operations import (
    CreateNode,
    DeleteNode,
    PatchOperation,
    RenameNode,
    ReparentNode,
    SetProperty,
    operation_to_dict,
    parse_operation,
)
from .property_filter import PropertyEqualityFilter, values_equal
from .resolver import IdentityResolver, resolve
from .service import apply_patch, generate_patch, get_tree_snapshot
from .tree import SceneNode, SceneTree, Transaction

__version__ = "0.1.0"

__all__ = [
    "ID_META_KEY",
    "ROOT_PATH",
    "CreateNode",
    "DeleteNode",
    "DesiredNode",
    "DiffOptions",
    "DiffResult",
    "IdentityAssignor",
    "IdentityResolver",
    "LiveNode",
    "NodeType",
    "PatchIssue",
    "PatchOperation",
    "PatchResult",
    "PropertyEqualityFilter",
    "RenameNode",
    "ReparentNode",
    "SceneNode",
    "SceneTree",
    "SetProperty",
    "Snapshot",
    "Transaction",
    "TreeHandle",
    "TypeRegistry",
    "apply",
    "apply_patch",
    "default_registry",
    "diff",
    "generate_patch",
    "get_tree_snapshot",
    "operation_to_dict",
    "parse_operation",
    "resolve",
    "values_equal",
]
