"""Tests for umbra.subtree.builder — tree assembly and root detachment."""

import pytest

from umbra.subtree.builder import (
    assemble_tree,
    build_subtree,
    detach_root,
    fetch_commit_tree,
    get_subtree,
)
from umbra.subtree.models import (
    Copy,
    MalformedLogError,
    MultipleRootsError,
    RawCommitNode,
)


def _raw(hash_, parent=None, **kwargs):
    return RawCommitNode(hash=hash_, parent_hash=parent, **kwargs)


# ── assemble_tree ───────────────────────────────────────────────────


class TestAssembleTree:
    def test_single_root(self):
        tree = assemble_tree([_raw("r", "missing", phase="public")])
        assert len(tree) == 1
        assert tree.root.hash == "r"
        assert tree.root.parent is None
        assert tree.current is None

    def test_root_may_appear_last(self):
        tree = assemble_tree([_raw("a", "r"), _raw("b", "a"), _raw("r", "x", phase="public")])
        assert tree.root.hash == "r"
        assert [c.hash for c in tree.children_of(tree.root)] == ["a"]
        assert tree.parent_of(tree.find("b")).hash == "a"

    def test_children_keep_log_order(self):
        tree = assemble_tree(
            [_raw("r", None, phase="public"), _raw("c2", "r"), _raw("c1", "r"), _raw("c3", "r")]
        )
        assert [c.hash for c in tree.children_of(tree.root)] == ["c2", "c1", "c3"]

    def test_current_flag_surfaces(self):
        tree = assemble_tree([_raw("r"), _raw("a", "r", is_current_revision=True)])
        assert tree.node(tree.current).hash == "a"

    def test_two_unresolvable_parents(self):
        with pytest.raises(MultipleRootsError) as exc_info:
            assemble_tree([_raw("r1", "x"), _raw("r2", "y")])
        assert exc_info.value.hashes == ("r1", "r2")

    def test_two_current_nodes(self):
        with pytest.raises(MalformedLogError):
            assemble_tree(
                [_raw("r", is_current_revision=True), _raw("a", "r", is_current_revision=True)]
            )

    def test_duplicate_hash(self):
        with pytest.raises(MalformedLogError, match="twice"):
            assemble_tree([_raw("r"), _raw("r")])

    def test_empty_listing(self):
        with pytest.raises(MalformedLogError):
            assemble_tree([])

    def test_cycle_has_no_root(self):
        with pytest.raises(MalformedLogError, match="no root"):
            assemble_tree([_raw("a", "b"), _raw("b", "a")])

    def test_change_sets_are_copied(self):
        raw = _raw("r", added_files={"a"})
        tree = assemble_tree([raw])
        tree.root.added_files.add("b")
        assert raw.added_files == {"a"}


# ── detach_root ─────────────────────────────────────────────────────


class TestDetachRoot:
    def test_initial_files_from_root_changes(self):
        tree = assemble_tree(
            [
                _raw(
                    "r",
                    phase="public",
                    added_files={"a.txt"},
                    modified_files={"m.txt"},
                    copied_files={Copy("a.txt", "copy.txt")},
                    deleted_files={"old.txt"},
                ),
                _raw("c", "r", modified_files={"a.txt"}),
            ]
        )
        subtree = detach_root(tree)
        assert subtree.initial_files == {"a.txt", "m.txt", "copy.txt"}
        assert subtree.root.added_files == set()
        assert subtree.root.deleted_files == set()
        assert subtree.root.copied_files == set()
        # Children keep their own change sets.
        assert subtree.tree.find("c").modified_files == {"a.txt"}

    def test_current_defaults_to_root(self):
        subtree = build_subtree([_raw("r"), _raw("a", "r")])
        assert subtree.current_commit is subtree.root

    def test_current_commit_is_reachable(self):
        subtree = build_subtree([_raw("r"), _raw("a", "r"), _raw("b", "a", is_current_revision=True)])
        assert subtree.current_commit.hash == "b"
        assert subtree.current_commit in list(subtree.tree.dfs())


# ── fetching from a repository ──────────────────────────────────────


class TestFetch:
    async def test_fetch_commit_tree_keeps_root_changes(self, fake_hg, source_repo):
        tree = await fetch_commit_tree(fake_hg, source_repo["path"])
        assert tree.root.hash == source_repo["base"]
        assert tree.root.added_files == {"a.txt", "lib/b.txt", "unrelated.txt"}
        assert tree.node(tree.current).hash == source_repo["d2"]

    async def test_get_subtree(self, fake_hg, source_repo):
        subtree = await get_subtree(fake_hg, source_repo["path"])
        assert subtree.initial_files == {"a.txt", "lib/b.txt", "unrelated.txt"}
        assert subtree.root.added_files == set()
        assert subtree.current_commit.hash == source_repo["d2"]
        assert subtree.tree.shape() == (((),),)

    async def test_get_subtree_at_public_commit(self, fake_hg, source_repo):
        subtree = await get_subtree(fake_hg, source_repo["path"], source_repo["base"])
        assert subtree.root.hash == source_repo["base"]
        assert len(subtree.tree) == 3
