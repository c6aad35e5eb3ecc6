"""Assemble parsed log records into a commit tree and a Subtree."""

from __future__ import annotations

import logging

from umbra.subtree.models import (
    CommitNode,
    CommitTree,
    MalformedLogError,
    MultipleRootsError,
    RawCommitNode,
    Subtree,
)
from umbra.subtree.parser import parse_subtree_log
from umbra.vcs.base import VCSClient

logger = logging.getLogger(__name__)


def assemble_tree(raw_nodes: list[RawCommitNode]) -> CommitTree:
    """Link raw nodes into a CommitTree without touching any change sets.

    Children keep the order in which they appear in *raw_nodes*. A node whose
    parent hash is missing from the listing is the root; there must be exactly one.
    """
    if not raw_nodes:
        raise MalformedLogError("Subtree listing contains no commits")

    nodes: list[CommitNode] = []
    slots: dict[str, int] = {}
    current: int | None = None
    for slot, raw in enumerate(raw_nodes):
        if raw.hash in slots:
            raise MalformedLogError(f"Commit {raw.hash} listed twice")
        slots[raw.hash] = slot
        nodes.append(
            CommitNode(
                slot=slot,
                hash=raw.hash,
                phase=raw.phase,
                added_files=set(raw.added_files),
                copied_files=set(raw.copied_files),
                modified_files=set(raw.modified_files),
                deleted_files=set(raw.deleted_files),
            )
        )
        if raw.is_current_revision:
            if current is not None:
                raise MalformedLogError("Multiple revisions were marked current.")
            current = slot

    root: int | None = None
    for raw, node in zip(raw_nodes, nodes):
        parent_slot = slots.get(raw.parent_hash) if raw.parent_hash else None
        if parent_slot is None:
            if root is not None:
                raise MultipleRootsError(nodes[root].hash, node.hash)
            root = node.slot
            continue
        node.parent = parent_slot
        nodes[parent_slot].children.append(node.slot)

    if root is None:
        raise MalformedLogError("Subtree listing has no root commit")

    return CommitTree(nodes, root=root, current=current)


def detach_root(tree: CommitTree) -> Subtree:
    """Capture the root's contributions as initial files, then clear its changes.

    File dependencies must be resolved on *tree* before calling this, since a
    cleared root makes files it introduced look like external dependencies.
    """
    root = tree.root
    initial_files = set(root.added_files) | root.modified_files
    initial_files.update(copy.dest for copy in root.copied_files)
    root.clear_changes()

    current = tree.current if tree.current is not None else tree.root_slot
    return Subtree(tree=tree, initial_files=frozenset(initial_files), current=current)


def build_subtree(raw_nodes: list[RawCommitNode]) -> Subtree:
    return detach_root(assemble_tree(raw_nodes))


async def fetch_commit_tree(vcs: VCSClient, repo_root: str, rev: str = ".") -> CommitTree:
    """Read the subtree around *rev* with every node's change sets intact."""
    text = await vcs.subtree_log(repo_root, rev)
    tree = assemble_tree(parse_subtree_log(text))
    logger.debug(
        "fetched subtree of %s at %s: %d commits, root %s",
        repo_root,
        rev,
        len(tree),
        tree.root.hash,
    )
    return tree


async def get_subtree(vcs: VCSClient, repo_root: str, rev: str = ".") -> Subtree:
    """Read the subtree around *rev* from *repo_root*."""
    return detach_root(await fetch_commit_tree(vcs, repo_root, rev))
