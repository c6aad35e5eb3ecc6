"""Locate "the same" commit across trees that were rebuilt from scratch.

Rebuilding a tree loses node identity but keeps its shape, so a node is
addressed by the child index taken at each level below the root.
"""

from __future__ import annotations

from umbra.subtree.models import (
    CommitNode,
    CommitTree,
    PathOutOfRangeError,
    Subtree,
    SubtreePath,
)


def path_of(tree: CommitTree, node: CommitNode) -> SubtreePath:
    """Return the root-relative child-index path of *node* in *tree*."""
    if not tree.owns(node):
        raise ValueError(f"Commit {node.hash} does not belong to this tree")

    indices: list[int] = []
    current = node
    while current.parent is not None:
        parent = tree.node(current.parent)
        indices.append(parent.children.index(current.slot))
        current = parent

    indices.reverse()
    return tuple(indices)


def node_at(tree: CommitTree, path: SubtreePath) -> CommitNode:
    """Descend *path* from the root of *tree*.

    Raises PathOutOfRangeError if the tree no longer has the shape the path
    was recorded against.
    """
    current = tree.root
    for depth, index in enumerate(path):
        if not 0 <= index < len(current.children):
            raise PathOutOfRangeError(tuple(path), depth, len(current.children))
        current = tree.node(current.children[index])
    return current


def path_to_current(subtree: Subtree) -> SubtreePath:
    return path_of(subtree.tree, subtree.current_commit)
