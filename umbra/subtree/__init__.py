"""Commit subtree extraction, dependency resolution and transplanting."""

from umbra.subtree.builder import (
    assemble_tree,
    build_subtree,
    detach_root,
    fetch_commit_tree,
    get_subtree,
)
from umbra.subtree.dependencies import file_dependencies
from umbra.subtree.models import (
    CommitNode,
    CommitTree,
    Copy,
    MalformedLogError,
    MultipleRootsError,
    PathOutOfRangeError,
    RawCommitNode,
    Subtree,
    SubtreePath,
)
from umbra.subtree.parser import parse_subtree_log
from umbra.subtree.path import node_at, path_of, path_to_current
from umbra.subtree.transplant import SubtreeTransplanter

__all__ = [
    "CommitNode",
    "CommitTree",
    "Copy",
    "MalformedLogError",
    "MultipleRootsError",
    "PathOutOfRangeError",
    "RawCommitNode",
    "Subtree",
    "SubtreePath",
    "SubtreeTransplanter",
    "assemble_tree",
    "build_subtree",
    "detach_root",
    "fetch_commit_tree",
    "file_dependencies",
    "get_subtree",
    "node_at",
    "parse_subtree_log",
    "path_of",
    "path_to_current",
]
