import pytest
from app.services.auth.hierarchy_validator import HierarchyIndex, MAX_WALK_DEPTH

@pytest.fixture
def index() -> HierarchyIndex:
    # 1 -> 2 -> 4, 1 -> 3, 5 standalone
    return HierarchyIndex({1: None, 2: 1, 3: 1, 4: 2, 5: None})

class TestWouldCycle:
    def test_self_parent_is_a_cycle(self, index):
        assert index.would_cycle(2, 2)

    def test_descendant_as_parent_is_a_cycle(self, index):
        assert index.would_cycle(1, 4)
        assert index.would_cycle(2, 4)

    def test_unrelated_parent_is_fine(self, index):
        assert not index.would_cycle(4, 5)
        assert not index.would_cycle(2, 3)

    def test_moving_to_root_is_fine(self, index):
        assert not index.would_cycle(4, None)

    def test_child_cannot_become_parent_of_its_parent(self):
        # content.edit (1) -> content.edit.draft (2)
        index = HierarchyIndex.from_rows([(1, None), (2, 1)])
        assert index.would_cycle(1, 2)

    def test_corrupted_chain_is_reported_as_cycle(self):
        index = HierarchyIndex({1: 2, 2: 1})
        assert index.would_cycle(3, 1)

    def test_deep_chain_beyond_walk_limit(self):
        chain = {i: i - 1 for i in range(1, MAX_WALK_DEPTH + 5)}
        chain[0] = None
        index = HierarchyIndex(chain)
        assert index.would_cycle(10_000, MAX_WALK_DEPTH + 4)

class TestTreeQueries:
    def test_depth(self, index):
        assert index.depth(1) == 0
        assert index.depth(4) == 2

    def test_ancestors_root_first(self, index):
        assert index.ancestors(4) == [1, 2]
        assert index.ancestors(1) == []

    def test_descendants_breadth_first(self, index):
        assert index.descendants(1) == [2, 3, 4]
        assert index.descendants(4) == []

    def test_subtree_height(self, index):
        assert index.subtree_height(1) == 2
        assert index.subtree_height(2) == 1
        assert index.subtree_height(5) == 0

    def test_move_updates_both_directions(self, index):
        index.move(4, 5)
        assert index.parents[4] == 5
        assert index.descendants(2) == []
        assert index.descendants(5) == [4]
        assert index.subtree_height(1) == 1

    def test_contains(self, index):
        assert 3 in index
        assert 42 not in index
