"""Conversation tree over the uuid/parentUuid links of a session's turns."""

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional

from .models import ConversationPair


@dataclass
class TreeNode:
    uuid: str
    parent_uuid: Optional[str]
    type: str  # user or assistant
    content: str
    timestamp: datetime
    is_meta: bool = False
    is_sidechain: bool = False
    pair: Optional[ConversationPair] = field(default=None, repr=False, compare=False)


@dataclass
class ConversationTree:
    """Forest of turn endpoints keyed by uuid.

    Nodes never hold references to each other; structure lives in the
    ``children`` adjacency map and the ``roots`` list, both ordered by time.
    """

    nodes: dict[str, TreeNode] = field(default_factory=dict)
    children: dict[str, list[str]] = field(default_factory=dict)
    roots: list[str] = field(default_factory=list)

    def children_of(self, uuid: str) -> list[str]:
        return list(self.children.get(uuid, []))

    def parent_of(self, uuid: str) -> Optional[str]:
        """Parent uuid, or None for roots and unknown nodes."""
        node = self.nodes.get(uuid)
        if node is None or uuid in self._root_set():
            return None
        return node.parent_uuid

    def path_to_node(self, uuid: str) -> list[str]:
        """Uuids from the node's root down to the node itself."""
        if uuid not in self.nodes:
            return []
        roots = self._root_set()
        path = []
        current: Optional[str] = uuid
        seen = set()
        while current is not None and current not in seen:
            seen.add(current)
            path.append(current)
            if current in roots:
                break
            current = self.nodes[current].parent_uuid
        path.reverse()
        return path

    def descendants(self, uuid: str) -> list[str]:
        """All nodes below ``uuid``, ordered by timestamp."""
        found = []
        queue = deque(self.children.get(uuid, []))
        seen = {uuid}
        while queue:
            child = queue.popleft()
            if child in seen:
                continue
            seen.add(child)
            found.append(child)
            queue.extend(self.children.get(child, []))
        found.sort(key=lambda node_id: self.nodes[node_id].timestamp)
        return found

    def _root_set(self) -> set[str]:
        return set(self.roots)


def _materialize(pairs: Iterable[ConversationPair]) -> dict[str, TreeNode]:
    nodes: dict[str, TreeNode] = {}
    for pair in pairs:
        if pair.user_uuid and pair.user_uuid not in nodes:
            nodes[pair.user_uuid] = TreeNode(
                uuid=pair.user_uuid,
                parent_uuid=pair.user_parent_uuid,
                type="user",
                content=pair.user_content,
                timestamp=pair.user_time,
                is_meta=pair.is_meta,
                is_sidechain=pair.is_sidechain,
                pair=pair,
            )
        if pair.assistant_uuid and pair.assistant_uuid not in nodes:
            nodes[pair.assistant_uuid] = TreeNode(
                uuid=pair.assistant_uuid,
                parent_uuid=pair.assistant_parent_uuid,
                type="assistant",
                content=pair.assistant_content,
                timestamp=pair.assistant_time,
                is_meta=pair.is_meta,
                is_sidechain=pair.is_sidechain,
                pair=pair,
            )
    return nodes


def _is_ancestor(candidate: str, node_id: str, parent_of: dict[str, str]) -> bool:
    """True if ``candidate`` is reached by walking up from ``node_id``."""
    current = node_id
    seen = set()
    while current in parent_of and current not in seen:
        seen.add(current)
        current = parent_of[current]
        if current == candidate:
            return True
    return False


def build_tree(pairs: Iterable[ConversationPair]) -> ConversationTree:
    """Build the conversation forest for a session's pairs.

    Nodes whose parent is unknown become roots. A link that would make a
    node its own ancestor is dropped, turning that node into a root.
    """
    nodes = _materialize(pairs)
    children: dict[str, list[str]] = {}
    roots: list[str] = []
    parent_of: dict[str, str] = {}

    for uuid, node in nodes.items():
        parent = node.parent_uuid
        if parent and parent in nodes and parent != uuid and not _is_ancestor(
            uuid, parent, parent_of
        ):
            parent_of[uuid] = parent
            children.setdefault(parent, []).append(uuid)
        else:
            roots.append(uuid)

    def by_time(node_id: str) -> datetime:
        return nodes[node_id].timestamp

    for child_ids in children.values():
        child_ids.sort(key=by_time)
    roots.sort(key=by_time)

    return ConversationTree(nodes=nodes, children=children, roots=roots)
