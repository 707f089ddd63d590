"""
Named tree snapshots and structural diffing between trees.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from guibridge.core.models import NodeRecord, UiTree
from guibridge.errors import InvalidArgument, NotFound

logger = logging.getLogger(__name__)

# Order in which per-node differences are reported
DIFF_FIELDS = (
    "role", "label", "value", "bounds", "visible",
    "enabled", "focused", "checked", "parent_id",
)


@dataclass(frozen=True)
class Snapshot:
    name: str
    tree: UiTree
    created_at: float = field(default_factory=time.time)


@dataclass(frozen=True)
class Added:
    node: NodeRecord

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": "added", "id": self.node.id, "node": self.node.to_dict()}


@dataclass(frozen=True)
class Removed:
    node: NodeRecord

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": "removed", "id": self.node.id, "node": self.node.to_dict()}


@dataclass(frozen=True)
class Modified:
    id: int
    field: str
    old: Any
    new: Any

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": "modified",
            "id": self.id,
            "field": self.field,
            "old": _plain(self.old),
            "new": _plain(self.new),
        }


DiffEntry = Union[Added, Removed, Modified]


def _plain(value: Any) -> Any:
    return value.to_dict() if hasattr(value, "to_dict") else value


def diff_trees(old: UiTree, new: UiTree) -> List[DiffEntry]:
    """Compare two trees by node id.

    Ids are visited in ascending order over the union of both trees, and the
    fields of a node present in both are compared in DIFF_FIELDS order, so the
    output is deterministic. Children lists are not compared directly, since
    structural moves already show up as parent_id changes and additions.
    """
    entries: List[DiffEntry] = []
    for node_id in sorted(set(old.nodes) | set(new.nodes)):
        before = old.nodes.get(node_id)
        after = new.nodes.get(node_id)
        if before is None:
            entries.append(Added(after))
        elif after is None:
            entries.append(Removed(before))
        else:
            for name in DIFF_FIELDS:
                old_value = getattr(before, name)
                new_value = getattr(after, name)
                if old_value != new_value:
                    entries.append(Modified(node_id, name, old_value, new_value))
    return entries


def summarize_diff(entries: List[DiffEntry]) -> Dict[str, Any]:
    """Group diff entries into the shape returned to controllers."""
    added = [entry.to_dict() for entry in entries if isinstance(entry, Added)]
    removed = [entry.to_dict() for entry in entries if isinstance(entry, Removed)]
    modified = [entry.to_dict() for entry in entries if isinstance(entry, Modified)]
    return {
        "added": added,
        "removed": removed,
        "modified": modified,
        "summary": {
            "added_count": len(added),
            "removed_count": len(removed),
            "modified_count": len(modified),
            "has_changes": bool(entries),
        },
    }


class SnapshotStore:
    """Thread-safe mapping of snapshot name to Snapshot.

    Snapshots live until deleted or until the store is cleared.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._snapshots: Dict[str, Snapshot] = {}

    def save(self, name: str, tree: UiTree) -> Snapshot:
        """Store a tree under `name`, replacing any previous snapshot."""
        if not name:
            raise InvalidArgument("Snapshot name must not be empty")
        snapshot = Snapshot(name=name, tree=tree)
        with self._lock:
            replaced = name in self._snapshots
            self._snapshots[name] = snapshot
        logger.debug(f"{'Replaced' if replaced else 'Saved'} snapshot '{name}' with {len(tree)} nodes")
        return snapshot

    def load(self, name: str) -> Snapshot:
        with self._lock:
            snapshot = self._snapshots.get(name)
        if snapshot is None:
            raise NotFound(f"Snapshot '{name}' not found", code="snapshot_not_found")
        return snapshot

    def get(self, name: str) -> Optional[Snapshot]:
        with self._lock:
            return self._snapshots.get(name)

    def delete(self, name: str) -> bool:
        with self._lock:
            return self._snapshots.pop(name, None) is not None

    def names(self) -> List[str]:
        with self._lock:
            return sorted(self._snapshots)

    def clear(self):
        with self._lock:
            self._snapshots.clear()

    def diff(self, name_a: str, name_b: str) -> List[DiffEntry]:
        """Diff snapshot `name_a` (before) against `name_b` (after)."""
        before = self.load(name_a)
        after = self.load(name_b)
        return diff_trees(before.tree, after.tree)

    def __len__(self) -> int:
        with self._lock:
            return len(self._snapshots)
