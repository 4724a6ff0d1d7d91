"""Stable node identities.

An id is generated the first time a node is referenced and stored in the
node's hidden metadata, so it survives renames, reparents and a round trip
through ``SceneTree.to_dict()``. Once assigned it never changes.
"""

from __future__ import annotations

import itertools
import secrets
import threading
from typing import TYPE_CHECKING, Iterator, Optional

if TYPE_CHECKING:
    from .tree import SceneNode

ID_META_KEY = "scene_patch_id"


class IdentityAssignor:
    def __init__(self) -> None:
        self._counter = itertools.count(1)
        self._lock = threading.Lock()
        self._issued: set[str] = set()

    def _next_id(self, node: "SceneNode") -> str:
        with self._lock:
            while True:
                candidate = f"{next(self._counter):x}-{secrets.token_hex(4)}-{id(node):x}"
                if candidate not in self._issued:
                    self._issued.add(candidate)
                    return candidate

    def ensure_id(self, node: "SceneNode") -> str:
        existing = get_id(node)
        if existing:
            self._issued.add(existing)
            return existing
        new_id = self._next_id(node)
        node.meta[ID_META_KEY] = new_id
        return new_id

    def assign_all(self, root: "SceneNode") -> int:
        """Ensure every node below ``root`` has an id; returns how many were new."""
        created = 0
        for node in _walk(root):
            if not get_id(node):
                created += 1
            self.ensure_id(node)
        return created


def get_id(node: "SceneNode") -> Optional[str]:
    value = node.meta.get(ID_META_KEY)
    return value if isinstance(value, str) and value else None


def _walk(node: "SceneNode") -> Iterator["SceneNode"]:
    yield node
    for child in node.children:
        yield from _walk(child)
