"""Human- and machine-readable dumps of a commit subtree."""

from __future__ import annotations

from typing import Any

from rich.tree import Tree

from umbra.subtree.models import CommitNode, CommitTree, Subtree


def _node_dict(tree: CommitTree, node: CommitNode) -> dict[str, Any]:
    return {
        "hash": node.hash,
        "phase": node.phase,
        "addedFiles": sorted(node.added_files),
        "copiedFiles": sorted(
            ({"source": c.source, "dest": c.dest} for c in node.copied_files),
            key=lambda c: (c["source"], c["dest"]),
        ),
        "modifiedFiles": sorted(node.modified_files),
        "deletedFiles": sorted(node.deleted_files),
        "children": [_node_dict(tree, child) for child in tree.children_of(node)],
    }


def subtree_to_dict(subtree: Subtree) -> dict[str, Any]:
    """Nested, JSON-serializable form of *subtree* without parent links."""
    return {
        "initialFiles": sorted(subtree.initial_files),
        "currentCommit": subtree.current_commit.hash,
        "root": _node_dict(subtree.tree, subtree.root),
    }


def _label(node: CommitNode, current: bool) -> str:
    style = "green" if node.phase == "public" else "cyan"
    label = f"[{style}]{node.hash[:12]}[/{style}] [dim]{node.phase}[/dim]"
    if current:
        label += " [bold yellow]@[/bold yellow]"
    counts = [
        (len(node.added_files), "A"),
        (len(node.copied_files), "C"),
        (len(node.modified_files), "M"),
        (len(node.deleted_files), "R"),
    ]
    summary = " ".join(f"{n}{tag}" for n, tag in counts if n)
    if summary:
        label += f" ({summary})"
    return label


def render_subtree(subtree: Subtree) -> Tree:
    """Rich tree of commits; the checked-out commit is marked with ``@``."""
    tree = subtree.tree
    top = Tree(
        _label(subtree.root, subtree.current == tree.root_slot)
        + f" [dim]{len(subtree.initial_files)} initial files[/dim]"
    )
    stack = [(subtree.root, top)]
    while stack:
        node, branch = stack.pop()
        for child in tree.children_of(node):
            child_branch = branch.add(_label(child, child.slot == subtree.current))
            stack.append((child, child_branch))
    return top
