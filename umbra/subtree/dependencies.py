"""Minimal file set a subtree needs in order to replay cleanly."""

from __future__ import annotations

from umbra.subtree.models import CommitNode, CommitTree


def immediate_dependencies(node: CommitNode) -> set[str]:
    """Files that must exist before *node* itself can be applied."""
    deps = set(node.modified_files) | node.deleted_files
    deps.update(copy.source for copy in node.copied_files)
    return deps


def project_through(node: CommitNode, files: set[str]) -> set[str]:
    """Rewrite descendants' requirements as requirements on *node*'s parent.

    Files *node* adds are satisfied by *node*; a copy destination is satisfied
    by its source.
    """
    resolved = files - node.added_files
    for copy in node.copied_files:
        resolved.discard(copy.dest)
        resolved.add(copy.source)
    return resolved


def file_dependencies(tree: CommitTree, start: CommitNode | None = None) -> set[str]:
    """Return every path that must pre-exist for the subtree at *start* to replay.

    Call this on a tree whose root still carries its change sets.
    """
    top = start if start is not None else tree.root
    resolved: dict[int, set[str]] = {}

    # Post-order without recursion: children are resolved before their parent.
    for node in reversed(list(tree.dfs(top))):
        from_children: set[str] = set()
        for slot in node.children:
            from_children |= resolved.pop(slot)
        resolved[node.slot] = immediate_dependencies(node) | project_through(
            node, from_children
        )

    return resolved[top.slot]
