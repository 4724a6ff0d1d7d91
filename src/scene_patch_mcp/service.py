"""The three request/response operations behind the MCP tools.

Every call receives the :class:`TreeHandle` it works on; nothing here reaches
for a global tree.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, Mapping, Optional, Sequence, Union

from .applicator import apply
from .differ import DiffOptions, diff
from .handle import TreeHandle
from .model import DesiredNode
from .operations import operation_to_dict
from .property_filter import PropertyEqualityFilter
from .shared.config import PatchDefaults
from .shared.logging import get_logger

logger = get_logger(__name__)

JsonDict = Dict[str, Any]


def get_tree_snapshot(
    handle: TreeHandle,
    ensure_ids: bool = True,
    include_properties: bool = False,
    properties: Optional[Iterable[str]] = None,
) -> JsonDict:
    snapshot = handle.snapshot(
        ensure_ids=ensure_ids,
        include_properties=include_properties,
        properties=properties or (),
    )
    return snapshot.to_dict()


def generate_patch(
    handle: TreeHandle,
    desired: Union[DesiredNode, Mapping[str, Any]],
    options: Optional[Mapping[str, Any]] = None,
    defaults: Optional[PatchDefaults] = None,
) -> JsonDict:
    """Diff the live tree against ``desired`` and return the operations.

    With ``options["apply"]`` the generated batch is applied right away,
    unless the diff reported errors.
    """
    defaults = defaults or PatchDefaults()
    options = dict(options or {})
    desired_node = desired if isinstance(desired, DesiredNode) else DesiredNode.from_dict(dict(desired))
    diff_options = DiffOptions.from_mapping(options, defaults)

    snapshot = handle.snapshot(ensure_ids=True)
    result = diff(snapshot.structure, desired_node, diff_options)
    operations = PropertyEqualityFilter(handle.fetch_properties).filter(result.operations)
    logger.info(
        "Generated %d operations (%d suppressed, %d issues)",
        len(operations),
        len(result.operations) - len(operations),
        len(result.errors),
    )

    response: JsonDict = {
        "operations": [operation_to_dict(op) for op in operations],
        "errors": [issue.to_dict() for issue in result.errors],
        "aliases": dict(result.aliases),
    }
    if not options.get("apply"):
        return response

    blocking = [issue for issue in result.errors if issue.severity == "error"]
    if blocking:
        logger.warning("Not applying generated patch: %d diff errors", len(blocking))
        response.update(applied=0, total=len(operations), apply_errors=[], apply_skipped=True)
        return response

    strict = options.get("strict")
    applied = apply(handle, operations, strict=defaults.strict if strict is None else bool(strict))
    response.update(
        applied=applied.applied,
        total=applied.total,
        apply_errors=[error.to_dict() for error in applied.errors],
        rolled_back=applied.rolled_back,
    )
    return response


def apply_patch(handle: TreeHandle, operations: Sequence[Any], strict: bool = True) -> JsonDict:
    return apply(handle, operations, strict=strict).to_dict()
