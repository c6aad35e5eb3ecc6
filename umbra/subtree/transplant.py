"""Move non-public history between repositories."""

from __future__ import annotations

import logging
from typing import Literal

from umbra.subtree.builder import fetch_commit_tree
from umbra.subtree.models import CommitNode, CommitTree
from umbra.subtree.path import node_at, path_of
from umbra.vcs.base import VCSClient

logger = logging.getLogger(__name__)

TransplantStrategy = Literal["bulk", "per-commit"]


class SubtreeTransplanter:
    """Reproduces a subtree's draft commits in another repository.

    Every strategy leaves the destination checked out at the image of
    ``current_hash`` and returns the destination tree with ``current`` set to
    that image. A failed import or checkout aborts the move as-is; nothing is
    rolled back, so callers must not persist state after a failure.
    """

    def __init__(self, vcs: VCSClient, strip_source: bool = True) -> None:
        self.vcs = vcs
        self.strip_source = strip_source

    async def transplant(
        self,
        strategy: TransplantStrategy,
        source_repo: str,
        source: CommitTree,
        dest_repo: str,
        dest_parent_hash: str,
        current_hash: str,
    ) -> CommitTree:
        if strategy == "per-commit":
            move = self.move_subtree
        elif strategy == "bulk":
            move = self.bulk_move_subtree
        else:
            raise ValueError(f"Unknown transplant strategy: {strategy!r}")
        return await move(source_repo, source, dest_repo, dest_parent_hash, current_hash)

    async def move_subtree(
        self,
        source_repo: str,
        source: CommitTree,
        dest_repo: str,
        dest_parent_hash: str,
        current_hash: str,
    ) -> CommitTree:
        """Replay the subtree one commit at a time, parents before children."""
        images: dict[str, str] = {}
        moved: list[CommitNode] = []

        for node in source.dfs():
            parent = source.parent_of(node)
            base = images[parent.hash] if parent is not None else dest_parent_hash

            if node.phase == "public":
                image = base
            else:
                await self.vcs.checkout(dest_repo, base)
                patch = await self.vcs.export_patch(source_repo, [node.hash])
                await self.vcs.import_patch(dest_repo, patch)
                image = await self.vcs.current_revision(dest_repo)
                logger.info("Moved %s -> %s", node.hash[:12], image[:12])

            images[node.hash] = image
            moved.append(_image_of(node, image))

        if current_hash not in images:
            raise ValueError(f"Commit {current_hash} is not part of the subtree")
        await self.vcs.checkout(dest_repo, images[current_hash])

        moved.sort(key=lambda n: n.slot)
        current = source.find(current_hash)
        tree = CommitTree(moved, root=source.root_slot, current=current.slot if current else None)

        await self._strip_source(source_repo, source)
        return tree

    async def bulk_move_subtree(
        self,
        source_repo: str,
        source: CommitTree,
        dest_repo: str,
        dest_parent_hash: str,
        current_hash: str,
    ) -> CommitTree:
        """Replay every draft commit in one import, then relocate the checkout.

        The imported tree is read back from scratch, so the checkout target is
        found by its structural position in the source tree.
        """
        current = source.find(current_hash)
        if current is None:
            raise ValueError(f"Commit {current_hash} is not part of the subtree")
        path = path_of(source, current)

        drafts = [node.hash for node in source.dfs() if node.phase != "public"]
        await self.vcs.checkout(dest_repo, dest_parent_hash)
        if drafts:
            patch = await self.vcs.export_patch(source_repo, drafts)
            await self.vcs.import_patch(dest_repo, patch)
            logger.info("Moved %d commits into %s", len(drafts), dest_repo)

        dest = await fetch_commit_tree(self.vcs, dest_repo, dest_parent_hash)
        target = node_at(dest, path)
        await self.vcs.checkout(dest_repo, target.hash)
        dest.current = target.slot

        await self._strip_source(source_repo, source)
        return dest

    async def _strip_source(self, source_repo: str, source: CommitTree) -> None:
        if not self.strip_source:
            return
        for child in source.children_of(source.root):
            if child.phase != "public":
                await self.vcs.strip(source_repo, child.hash)


def _image_of(node: CommitNode, image: str) -> CommitNode:
    return CommitNode(
        slot=node.slot,
        hash=image,
        phase=node.phase,
        added_files=set(node.added_files),
        copied_files=set(node.copied_files),
        modified_files=set(node.modified_files),
        deleted_files=set(node.deleted_files),
        parent=node.parent,
        children=list(node.children),
    )
