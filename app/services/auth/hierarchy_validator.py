"""
Parent-pointer forest checks shared by the permission and menu trees.

The index is an arena keyed by node id with a children map rebuilt on load,
so cycle and depth checks walk memory instead of querying storage per hop.
"""

from collections import deque
from typing import Dict, Iterable, List, Optional, Tuple

# Walks longer than this are treated as a cycle
MAX_WALK_DEPTH = 64


class HierarchyIndex:
    """
    In-memory view of a parent-pointer forest
    """

    def __init__(self, parents: Dict[int, Optional[int]]):
        self.parents = dict(parents)
        self.children: Dict[int, List[int]] = {}
        for node_id, parent_id in self.parents.items():
            if parent_id is not None:
                self.children.setdefault(parent_id, []).append(node_id)

    @classmethod
    def from_rows(cls, rows: Iterable[Tuple[int, Optional[int]]]) -> "HierarchyIndex":
        """Build from (id, parent_id) rows"""
        return cls({node_id: parent_id for node_id, parent_id in rows})

    def __contains__(self, node_id: int) -> bool:
        return node_id in self.parents

    def would_cycle(self, node_id: int, candidate_parent_id: Optional[int]) -> bool:
        """
        Check whether making candidate_parent_id the parent of node_id creates a cycle

        True when the candidate is the node itself, when the node sits on the
        candidate's ancestor chain, or when the walk does not terminate within
        MAX_WALK_DEPTH hops.
        """
        if candidate_parent_id is None:
            return False
        if candidate_parent_id == node_id:
            return True

        current = candidate_parent_id
        for _ in range(MAX_WALK_DEPTH):
            if current == node_id:
                return True
            current = self.parents.get(current)
            if current is None:
                return False
        return True

    def depth(self, node_id: int) -> int:
        """Number of ancestors between node_id and its root"""
        hops = 0
        current = self.parents.get(node_id)
        while current is not None:
            hops += 1
            if hops > MAX_WALK_DEPTH:
                raise ValueError(f"Ancestor chain of {node_id} does not terminate")
            current = self.parents.get(current)
        return hops

    def ancestors(self, node_id: int) -> List[int]:
        """Ancestor ids ordered from the root down to the direct parent"""
        chain = []
        current = self.parents.get(node_id)
        while current is not None and len(chain) < MAX_WALK_DEPTH:
            chain.append(current)
            current = self.parents.get(current)
        chain.reverse()
        return chain

    def descendants(self, node_id: int) -> List[int]:
        """Breadth-first descendant ids, parents always before their children"""
        result = []
        queue = deque(self.children.get(node_id, []))
        seen = {node_id}
        while queue:
            child_id = queue.popleft()
            if child_id in seen:
                continue
            seen.add(child_id)
            result.append(child_id)
            queue.extend(self.children.get(child_id, []))
        return result

    def subtree_height(self, node_id: int) -> int:
        """Levels below node_id (0 for a leaf)"""
        height = 0
        frontier = [node_id]
        seen = {node_id}
        while True:
            next_frontier = [
                child_id
                for current in frontier
                for child_id in self.children.get(current, [])
                if child_id not in seen
            ]
            if not next_frontier:
                return height
            seen.update(next_frontier)
            height += 1
            frontier = next_frontier

    def move(self, node_id: int, new_parent_id: Optional[int]) -> None:
        """Apply a reparent to the index after it has been validated"""
        old_parent_id = self.parents.get(node_id)
        if old_parent_id is not None and node_id in self.children.get(old_parent_id, []):
            self.children[old_parent_id].remove(node_id)
        self.parents[node_id] = new_parent_id
        if new_parent_id is not None:
            self.children.setdefault(new_parent_id, []).append(node_id)
