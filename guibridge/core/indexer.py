"""
Builds indexed UiTree copies of the target application's accessibility tree.
"""

import hashlib
import logging
import time
from collections import deque
from typing import Any, Dict, List, Optional, Tuple

from guibridge.constants import MAX_TREE_DEPTH, MAX_TREE_NODES
from guibridge.core.models import NodeRecord, UiTree, normalize_role_name
from guibridge.core.source import SourceGateway
from guibridge.errors import BridgeError, NotFound

logger = logging.getLogger(__name__)

# Ids must stay exact when a controller reads them as JSON numbers
ID_SPACE = 2 ** 53


def handle_id(native_key: str) -> int:
    """Derive a stable node id from a native element key."""
    digest = int(hashlib.md5(native_key.encode("utf-8")).hexdigest(), 16)
    return digest % ID_SPACE or 1


class NodeIndexer:
    """Walks the application tree and keeps the most recent build.

    find_* queries always rebuild. get_element and resolve read the most
    recent build and only walk when none exists yet.
    """

    def __init__(self, gateway: SourceGateway, app_name: str,
                 max_depth: int = MAX_TREE_DEPTH, max_nodes: int = MAX_TREE_NODES):
        self.gateway = gateway
        self.app_name = app_name
        self.max_depth = max_depth
        self.max_nodes = max_nodes
        # (tree, id -> handle) replaced as a single reference
        self._cache: Optional[Tuple[UiTree, Dict[int, Any]]] = None

    def current_tree(self) -> Optional[UiTree]:
        cache = self._cache
        return cache[0] if cache else None

    async def build_tree(self) -> UiTree:
        """Walk breadth-first from the application root and index every node."""
        start = time.time()
        root = await self.gateway.call("find_application", self.app_name)
        if root is None:
            raise NotFound(f"Application '{self.app_name}' not found on the accessibility bus",
                           code="app_not_found")

        use_handles = self.gateway.stable_handles
        root_info = await self.gateway.call("describe", root)

        records: Dict[int, dict] = {}
        handles: Dict[int, Any] = {}
        seen_keys = set()
        next_traversal_id = 1

        def assign_id(info) -> Optional[int]:
            nonlocal next_traversal_id
            if use_handles and info.native_key is not None:
                if info.native_key in seen_keys:
                    return None
                seen_keys.add(info.native_key)
                node_id = handle_id(info.native_key)
                # Deterministic probing keeps colliding keys distinct
                while node_id in records:
                    node_id = (node_id + 1) % ID_SPACE or 1
                return node_id
            while next_traversal_id in records:
                next_traversal_id += 1
            node_id = next_traversal_id
            next_traversal_id += 1
            return node_id

        root_id = assign_id(root_info)
        records[root_id] = self._record_fields(root_id, root_info, None)
        handles[root_id] = root
        queue = deque([(root_id, root, 0)])

        while queue:
            parent_id, parent_handle, depth = queue.popleft()
            if depth >= self.max_depth:
                continue
            try:
                child_handles = await self.gateway.call("get_children", parent_handle)
            except BridgeError as e:
                logger.debug(f"Could not read children of node {parent_id}: {e}")
                continue

            for child in child_handles:
                if len(records) >= self.max_nodes:
                    logger.warning(f"Tree exceeds {self.max_nodes} nodes, truncating")
                    queue.clear()
                    break
                try:
                    info = await self.gateway.call("describe", child)
                except BridgeError as e:
                    logger.debug(f"Dropping subtree under node {parent_id}: {e}")
                    continue
                child_id = assign_id(info)
                if child_id is None:
                    logger.debug(f"Skipping element already indexed: {info.native_key}")
                    continue
                records[child_id] = self._record_fields(child_id, info, parent_id)
                records[parent_id]["children"].append(child_id)
                handles[child_id] = child
                queue.append((child_id, child, depth + 1))

        nodes = [
            NodeRecord(**dict(fields, children=tuple(fields["children"])))
            for fields in records.values()
        ]
        tree = UiTree.from_records(
            nodes, [root_id],
            id_scheme="handle" if use_handles else "traversal",
        )
        self._cache = (tree, handles)
        logger.info(f"Built UI tree for '{self.app_name}' with {len(tree)} nodes "
                    f"in {time.time() - start:.3f}s")
        return tree

    @staticmethod
    def _record_fields(node_id: int, info, parent_id: Optional[int]) -> dict:
        return {
            "id": node_id,
            "role": info.role,
            "label": info.label,
            "value": info.value,
            "bounds": info.bounds,
            "visible": info.tristate("visible"),
            "enabled": info.tristate("enabled"),
            "focused": info.tristate("focused"),
            "checked": info.checked(),
            "parent_id": parent_id,
            "children": [],
        }

    async def _latest(self) -> Tuple[UiTree, Dict[int, Any]]:
        cache = self._cache
        if cache is None:
            await self.build_tree()
            cache = self._cache
        return cache

    async def get_element(self, node_id: int) -> NodeRecord:
        tree, _ = await self._latest()
        record = tree.get(node_id)
        if record is None:
            raise NotFound(f"Element {node_id} not found")
        return record

    async def resolve(self, node_id: int) -> Tuple[NodeRecord, Any]:
        """Map a node id from the latest build to its live source handle."""
        tree, handles = await self._latest()
        record = tree.get(node_id)
        if record is None:
            raise NotFound(f"Element {node_id} not found")
        return record, handles[node_id]

    async def find_by_label(self, pattern: str) -> List[NodeRecord]:
        """Nodes whose label contains the pattern."""
        tree = await self.build_tree()
        return [node for node in tree.nodes.values() if node.label and pattern in node.label]

    async def find_by_label_exact(self, label: str) -> List[NodeRecord]:
        tree = await self.build_tree()
        return [node for node in tree.nodes.values() if node.label == label]

    async def find_by_role(self, role: str) -> List[NodeRecord]:
        """Nodes whose role contains `role`, ignoring case, spaces, dashes and underscores.

        "button" therefore also finds toggle_button and radio_button.
        """
        wanted = normalize_role_name(role)
        tree = await self.build_tree()
        return [node for node in tree.nodes.values() if wanted in normalize_role_name(node.role)]
