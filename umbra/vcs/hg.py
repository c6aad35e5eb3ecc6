"""Mercurial implementation of VCSClient, shelling out to ``hg``.

hg is a blocking subprocess, so every call is wrapped with
asyncio.to_thread() to keep the event loop free.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
import subprocess
from collections.abc import Iterable

from umbra.config.models import VCSConfig
from umbra.vcs.base import VCSClient
from umbra.vcs.models import NotARepositoryError, VCSError

logger = logging.getLogger(__name__)

MERGE_BASE_REVSET = "last(public() and ancestors({rev}))"
SUBTREE_REVSET = (
    "descendants(not public() and children(last(public() and ancestors({rev}))))"
    " or last(public() and ancestors({rev}))"
)
SUBTREE_TEMPLATE = (
    "----node\n{node}\n"
    "----p1node\n{p1node}\n"
    '----current\n{ifcontains(rev, revset("."), "1\\n")}'
    "----phase\n{phase}\n"
    '----file_adds\n{file_adds % "{file}\\n"}'
    '----file_copies\n{file_copies % "{source}\\n{name}\\n"}'
    '----file_dels\n{file_dels % "{file}\\n"}'
    '----file_mods\n{file_mods % "{file}\\n"}'
)

PATCH_HEADER = "# HG changeset patch"
_NODE_RE = re.compile(r"^# Node ID ([0-9a-f]{40})$", re.MULTILINE)
_PARENT_RE = re.compile(r"^# Parent +([0-9a-f]{40})$", re.MULTILINE)
_NO_REPO_PREFIX = "abort: no repository found"

# Bundled extensions that must be enabled per invocation.
_EXTENSIONS = {
    "purge": ["--config", "extensions.purge="],
    "rebase": ["--config", "extensions.rebase="],
    "shelve": ["--config", "extensions.shelve="],
    "strip": ["--config", "extensions.strip="],
}

# Amending the shadow root orphans its drafts until they are rebased, which
# stock Mercurial refuses without obsolescence markers.
_EVOLUTION = [
    "--config",
    "experimental.evolution.createmarkers=true",
    "--config",
    "experimental.evolution.allowunstable=true",
]


def split_patches(stream: str) -> list[str]:
    """Split a multi-revision export into one patch per changeset."""
    patches: list[str] = []
    current: list[str] = []
    for line in stream.splitlines(keepends=True):
        if line.rstrip("\n") == PATCH_HEADER and current:
            patches.append("".join(current))
            current = []
        current.append(line)
    if current and "".join(current).strip():
        patches.append("".join(current))
    return patches


def patch_ids(patch: str) -> tuple[str | None, str | None]:
    """Return the (node, parent) hashes recorded in a single patch header."""
    node = _NODE_RE.search(patch)
    parent = _PARENT_RE.search(patch)
    return (
        node.group(1) if node else None,
        parent.group(1) if parent else None,
    )


class MercurialClient(VCSClient):
    """VCSClient backed by the Mercurial command line."""

    def __init__(self, config: VCSConfig | None = None) -> None:
        self.config = config or VCSConfig()

    def _hg_sync(
        self,
        subcommand: str,
        args: list[str],
        cwd: str | None = None,
        input: str | None = None,
        ok_codes: tuple[int, ...] = (0,),
    ) -> str:
        cmd = [self.config.binary, subcommand, *args]
        logger.debug("running %s (cwd=%s)", " ".join(cmd), cwd)
        try:
            result = subprocess.run(
                cmd,
                cwd=cwd,
                input=input,
                capture_output=True,
                encoding="utf-8",
                errors="surrogateescape",
                env={**os.environ, "HGPLAIN": "1"},
                timeout=self.config.timeout,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise VCSError(f"hg {subcommand}", cwd, e) from e

        if result.returncode not in ok_codes:
            err = subprocess.CalledProcessError(
                result.returncode, cmd, result.stdout, result.stderr
            )
            if result.returncode == 255 and result.stderr.startswith(_NO_REPO_PREFIX):
                raise NotARepositoryError(f"hg {subcommand}", cwd, err, result.stderr)
            raise VCSError(f"hg {subcommand}", cwd, err, result.stderr)
        return result.stdout

    async def _hg(
        self,
        subcommand: str,
        args: list[str],
        cwd: str | None = None,
        input: str | None = None,
        ok_codes: tuple[int, ...] = (0,),
    ) -> str:
        return await asyncio.to_thread(
            self._hg_sync, subcommand, args, cwd, input, ok_codes
        )

    async def _log(self, repo: str, revset: str, template: str) -> str:
        return await self._hg("log", ["-r", revset, "--template", template], cwd=repo)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def repo_root(self, cwd: str) -> str:
        return (await self._hg("root", [], cwd=cwd)).strip()

    async def current_revision(self, repo: str) -> str:
        return (await self._log(repo, ".", "{node}")).strip()

    async def merge_base(self, repo: str, rev: str = ".") -> str:
        return (await self._log(repo, MERGE_BASE_REVSET.format(rev=rev), "{node}")).strip()

    async def subtree_log(self, repo: str, rev: str = ".") -> str:
        return await self._log(repo, SUBTREE_REVSET.format(rev=rev), SUBTREE_TEMPLATE)

    async def is_dirty(self, repo: str) -> bool:
        out = await self._hg("status", ["--modified", "--added", "--removed", "--deleted"], cwd=repo)
        return out.strip() != ""

    async def tracked_files(self, repo: str, rev: str, paths: Iterable[str]) -> set[str]:
        names = sorted(paths)
        if not names:
            return set()
        # `hg files` exits 1 when none of the patterns matched.
        out = await self._hg("files", ["-r", rev, "--", *names], cwd=repo, ok_codes=(0, 1))
        return {line.replace(os.sep, "/") for line in out.splitlines() if line}

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def init(self, path: str) -> None:
        await self._hg("init", [path])

    async def add(self, repo: str, paths: Iterable[str]) -> None:
        await self._hg("add", ["--", *paths], cwd=repo)

    async def commit(self, repo: str, message: str) -> None:
        await self._hg("commit", ["-m", message], cwd=repo)

    async def amend(self, repo: str) -> None:
        message = await self._log(repo, ".", "{desc}")
        await self._hg("commit", ["--amend", "-m", message, *_EVOLUTION], cwd=repo)

    async def checkout(self, repo: str, rev: str) -> None:
        await self._hg("update", [rev], cwd=repo)

    async def set_phase(self, repo: str, phase: str, rev: str, force: bool = False) -> None:
        args = [f"--{phase}"]
        if force:
            args.append("--force")
        await self._hg("phase", [*args, rev], cwd=repo)

    async def export_patch(self, repo: str, revs: list[str]) -> str:
        args = ["--git"]
        for rev in revs:
            args += ["-r", rev]
        return await self._hg("export", args, cwd=repo)

    async def import_patch(self, repo: str, patch: str) -> None:
        patches = split_patches(patch)
        if len(patches) <= 1:
            await self._hg("import", ["-"], cwd=repo, input=patch)
            return

        base = await self.current_revision(repo)
        images: dict[str, str] = {}
        at = base
        for chunk in patches:
            node, parent = patch_ids(chunk)
            target = images.get(parent or "", base)
            if target != at:
                await self.checkout(repo, target)
            await self._hg("import", ["-"], cwd=repo, input=chunk)
            at = await self.current_revision(repo)
            if node is not None:
                images[node] = at
        logger.debug("imported %d patches into %s", len(patches), repo)

    async def strip(self, repo: str, rev: str) -> None:
        await self._hg("strip", ["--rev", rev, *_EXTENSIONS["strip"]], cwd=repo)

    async def shelve(self, repo: str) -> None:
        await self._hg("shelve", _EXTENSIONS["shelve"], cwd=repo)

    async def unshelve(self, repo: str) -> None:
        await self._hg("unshelve", _EXTENSIONS["shelve"], cwd=repo)

    async def rebase(self, repo: str, source: str, dest: str) -> None:
        await self._hg(
            "rebase", ["-s", source, "-d", dest, *_EXTENSIONS["rebase"], *_EVOLUTION], cwd=repo
        )

    async def revert_files(self, repo: str, paths: Iterable[str]) -> None:
        names = sorted(paths)
        if names:
            await self._hg("revert", ["--no-backup", "--", *names], cwd=repo)

    async def purge_files(self, repo: str, paths: Iterable[str]) -> None:
        names = sorted(paths)
        if names:
            await self._hg("purge", [*_EXTENSIONS["purge"], "--", *names], cwd=repo)

    async def extract_files(
        self, repo: str, rev: str, dest_dir: str, paths: Iterable[str]
    ) -> None:
        names = sorted(paths)
        if names:
            output = os.path.join(dest_dir, "%p")
            await self._hg("cat", ["-r", rev, "-o", output, "--", *names], cwd=repo)

    async def run_forwarded(self, repo: str, args: list[str]) -> int:
        cmd = [self.config.binary, *args]
        logger.debug("forwarding %s (cwd=%s)", " ".join(cmd), repo)
        try:
            result = await asyncio.to_thread(subprocess.run, cmd, cwd=repo)
        except OSError as e:
            raise VCSError("hg (forwarded)", repo, e) from e
        return result.returncode
