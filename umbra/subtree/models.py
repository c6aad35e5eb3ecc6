"""Data models for commit subtrees."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Literal

from umbra.errors import UmbraError

CommitPhase = Literal["draft", "public"]
PHASES: tuple[str, ...] = ("draft", "public")

# A root-relative sequence of child indices.
SubtreePath = tuple[int, ...]


class MalformedLogError(UmbraError):
    """The section-tagged log text does not follow the expected grammar."""


class MultipleRootsError(UmbraError):
    """More than one commit in a log listing has an unresolvable parent."""

    def __init__(self, first: str, second: str) -> None:
        self.hashes = (first, second)
        super().__init__(f"Found multiple roots in tree: {first} and {second}")


class PathOutOfRangeError(UmbraError):
    """A subtree path no longer fits the shape of the tree it is replayed on."""

    def __init__(self, path: SubtreePath, depth: int, child_count: int) -> None:
        self.path = path
        self.depth = depth
        self.child_count = child_count
        super().__init__(
            f"Subtree path {list(path)} is out of range at depth {depth}: "
            f"node has {child_count} children"
        )


@dataclass(frozen=True)
class Copy:
    """A file copy recorded by a commit."""

    source: str
    dest: str


@dataclass
class RawCommitNode:
    """A commit as parsed from log output, before parent/child assembly."""

    hash: str
    parent_hash: str | None = None
    is_current_revision: bool = False
    phase: CommitPhase = "draft"
    added_files: set[str] = field(default_factory=set)
    copied_files: set[Copy] = field(default_factory=set)
    modified_files: set[str] = field(default_factory=set)
    deleted_files: set[str] = field(default_factory=set)


@dataclass
class CommitNode:
    """A commit inside a CommitTree.

    ``parent`` and ``children`` are slots in the owning tree's arena, so a node
    is only meaningful together with the tree it came from.
    """

    slot: int
    hash: str
    phase: CommitPhase = "draft"
    added_files: set[str] = field(default_factory=set)
    copied_files: set[Copy] = field(default_factory=set)
    modified_files: set[str] = field(default_factory=set)
    deleted_files: set[str] = field(default_factory=set)
    parent: int | None = None
    children: list[int] = field(default_factory=list)

    def touched_files(self) -> set[str]:
        """Every path this commit adds, deletes, modifies, or copies from/to."""
        files = self.added_files | self.deleted_files | self.modified_files
        for copy in self.copied_files:
            files.add(copy.source)
            files.add(copy.dest)
        return files

    def clear_changes(self) -> None:
        self.added_files = set()
        self.copied_files = set()
        self.modified_files = set()
        self.deleted_files = set()


class CommitTree:
    """Arena of commit nodes with a single root.

    Nodes refer to each other by slot id. ``current`` is the slot flagged as the
    checked-out revision by the log listing, if any.
    """

    def __init__(
        self,
        nodes: list[CommitNode],
        root: int,
        current: int | None = None,
    ) -> None:
        self.nodes = nodes
        self.root_slot = root
        self.current = current

    def __len__(self) -> int:
        return len(self.nodes)

    @property
    def root(self) -> CommitNode:
        return self.nodes[self.root_slot]

    def node(self, slot: int) -> CommitNode:
        return self.nodes[slot]

    def owns(self, node: CommitNode) -> bool:
        """True if *node* is the very object stored in this tree's arena."""
        return 0 <= node.slot < len(self.nodes) and self.nodes[node.slot] is node

    def parent_of(self, node: CommitNode) -> CommitNode | None:
        if node.parent is None:
            return None
        return self.nodes[node.parent]

    def children_of(self, node: CommitNode) -> list[CommitNode]:
        return [self.nodes[slot] for slot in node.children]

    def find(self, commit_hash: str) -> CommitNode | None:
        for node in self.nodes:
            if node.hash == commit_hash:
                return node
        return None

    def dfs(self, start: CommitNode | None = None) -> Iterator[CommitNode]:
        """Pre-order traversal, children visited in log order."""
        stack = [start if start is not None else self.root]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(self.nodes[slot] for slot in reversed(node.children))

    def shape(self, start: CommitNode | None = None) -> tuple:
        """Nested tuple describing the parent/child structure, hashes excluded."""
        node = start if start is not None else self.root
        return tuple(self.shape(child) for child in self.children_of(node))


@dataclass
class Subtree:
    """The slice of history a shadow repository mirrors.

    ``initial_files`` are the paths the root commit contributed; the root's own
    change sets are cleared once they have been captured here.
    """

    tree: CommitTree
    initial_files: frozenset[str]
    current: int

    @property
    def root(self) -> CommitNode:
        return self.tree.root

    @property
    def current_commit(self) -> CommitNode:
        return self.tree.node(self.current)
