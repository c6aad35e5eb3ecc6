"""Shared test fixtures for umbra.

``FakeHg`` keeps every repository's history in memory and renders the same
section-tagged listing the real client asks Mercurial for, so parsing,
assembly, transplanting and syncing run end to end without any binaries.
Working-directory files live on disk under ``tmp_path``.
"""

from __future__ import annotations

import hashlib
import json
import os
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

import pytest

from umbra.config.models import UmbraConfig
from umbra.subtree.models import Copy
from umbra.vcs.base import VCSClient
from umbra.vcs.hg import PATCH_HEADER, patch_ids, split_patches
from umbra.vcs.models import NotARepositoryError, VCSError
from umbra.watcher.base import ChangeWatcherClient
from umbra.watcher.models import ChangeSet

NULL_HASH = "0" * 40


@dataclass
class FakeCommit:
    hash: str
    parent: str | None
    seq: int
    phase: str = "draft"
    message: str = ""
    added: set[str] = field(default_factory=set)
    copied: set[Copy] = field(default_factory=set)
    modified: set[str] = field(default_factory=set)
    deleted: set[str] = field(default_factory=set)
    files: dict[str, str] = field(default_factory=dict)
    hidden: bool = False


@dataclass
class FakeRepo:
    path: str
    commits: dict[str, FakeCommit] = field(default_factory=dict)
    current: str | None = None
    dirty: bool = False
    shelved: bool = False
    staged: set[str] = field(default_factory=set)

    def visible(self) -> list[FakeCommit]:
        return sorted((c for c in self.commits.values() if not c.hidden), key=lambda c: c.seq)

    def children(self, commit_hash: str) -> list[str]:
        return [c.hash for c in self.visible() if c.parent == commit_hash]

    def subtree(self, commit_hash: str) -> list[str]:
        """*commit_hash* and its visible descendants, parents first."""
        order = [commit_hash]
        for child in self.children(commit_hash):
            order.extend(self.subtree(child))
        return order

    def last_public_ancestor(self, commit_hash: str) -> str:
        node = self.commits[commit_hash]
        while node.phase != "public" and node.parent is not None:
            node = self.commits[node.parent]
        return node.hash


def _apply(files: dict[str, str], source: dict[str, str], commit: FakeCommit) -> dict[str, str]:
    result = dict(files)
    for name in commit.added | commit.modified:
        result[name] = source.get(name, "")
    for copy in commit.copied:
        result[copy.dest] = source.get(copy.dest, result.get(copy.source, ""))
    for name in commit.deleted:
        result.pop(name, None)
    return result


class FakeHg(VCSClient):
    """In-memory stand-in for Mercurial, recording every call in ``calls``."""

    def __init__(self) -> None:
        self.repos: dict[str, FakeRepo] = {}
        self.calls: list[tuple] = []
        self.forward_exit_code = 0
        self.on_forward: Callable[[str, list[str]], None] | None = None
        self._seq = 0

    # ── test helpers ──────────────────────────────────────────────────

    def make_repo(self, path: os.PathLike | str) -> FakeRepo:
        path = str(path)
        os.makedirs(os.path.join(path, ".hg"), exist_ok=True)
        repo = FakeRepo(path=path)
        self.repos[path] = repo
        return repo

    def make_commit(
        self,
        repo: os.PathLike | str,
        parent: str | None = None,
        phase: str = "draft",
        added: Iterable[str] = (),
        modified: Iterable[str] = (),
        deleted: Iterable[str] = (),
        copied: Iterable[tuple[str, str]] = (),
        files: dict[str, str] | None = None,
        message: str = "",
    ) -> str:
        r = self._repo(str(repo))
        commit = self._new_commit(parent, phase, message)
        commit.added = set(added)
        commit.modified = set(modified)
        commit.deleted = set(deleted)
        commit.copied = {Copy(s, d) for s, d in copied}
        base = dict(r.commits[parent].files) if parent else {}
        commit.files = _apply(base, files or {}, commit)
        if files:
            commit.files.update(files)
        r.commits[commit.hash] = commit
        r.current = commit.hash
        return commit.hash

    def names(self, repo: os.PathLike | str | None = None) -> list[str]:
        """Names of the recorded calls, optionally for one repository."""
        return [c[0] for c in self.calls if repo is None or c[1] == str(repo)]

    def shape(self, repo: os.PathLike | str, root: str) -> tuple:
        r = self._repo(str(repo))
        return tuple(self.shape(repo, child) for child in r.children(root))

    # ── internals ─────────────────────────────────────────────────────

    def _new_commit(self, parent: str | None, phase: str, message: str) -> FakeCommit:
        self._seq += 1
        digest = hashlib.sha1(f"commit-{self._seq}".encode()).hexdigest()
        return FakeCommit(hash=digest, parent=parent, seq=self._seq, phase=phase, message=message)

    def _repo(self, path: str) -> FakeRepo:
        if path not in self.repos:
            raise NotARepositoryError("hg", path, RuntimeError("abort: no repository found"))
        return self.repos[path]

    def _resolve(self, r: FakeRepo, rev: str) -> str:
        commit_hash = r.current if rev == "." else rev
        if commit_hash is None or commit_hash not in r.commits or r.commits[commit_hash].hidden:
            raise VCSError("hg update", r.path, RuntimeError(f"unknown revision {rev!r}"))
        return commit_hash

    def _disk_files(self, r: FakeRepo, names: Iterable[str]) -> dict[str, str]:
        found = {}
        for name in names:
            full = os.path.join(r.path, name)
            if os.path.isfile(full):
                with open(full) as f:
                    found[name] = f.read()
        return found

    def _scan(self, r: FakeRepo) -> set[str]:
        names = set()
        for dirpath, dirnames, filenames in os.walk(r.path):
            dirnames[:] = [d for d in dirnames if d != ".hg"]
            for filename in filenames:
                names.add(os.path.relpath(os.path.join(dirpath, filename), r.path).replace(os.sep, "/"))
        return names

    def _render(self, r: FakeRepo, c: FakeCommit) -> str:
        lines = ["----node", c.hash, "----p1node", c.parent or NULL_HASH, "----current"]
        if c.hash == r.current:
            lines.append("1")
        lines += ["----phase", c.phase, "----file_adds", *sorted(c.added), "----file_copies"]
        for copy in sorted(c.copied, key=lambda cp: (cp.source, cp.dest)):
            lines += [copy.source, copy.dest]
        lines += ["----file_dels", *sorted(c.deleted), "----file_mods", *sorted(c.modified)]
        return "\n".join(lines) + "\n"

    # ── VCSClient ─────────────────────────────────────────────────────

    async def repo_root(self, cwd: str) -> str:
        self.calls.append(("repo_root", cwd))
        for path in self.repos:
            if cwd == path or cwd.startswith(path + os.sep):
                return path
        raise NotARepositoryError("hg root", cwd, RuntimeError("abort: no repository found"))

    async def current_revision(self, repo: str) -> str:
        return self._resolve(self._repo(repo), ".")

    async def merge_base(self, repo: str, rev: str = ".") -> str:
        r = self._repo(repo)
        return r.last_public_ancestor(self._resolve(r, rev))

    async def subtree_log(self, repo: str, rev: str = ".") -> str:
        self.calls.append(("subtree_log", repo, rev))
        r = self._repo(repo)
        root = r.last_public_ancestor(self._resolve(r, rev))
        listed: list[str] = []
        for child in r.children(root):
            if r.commits[child].phase != "public":
                listed.extend(r.subtree(child))
        # Mercurial lists the descendants in revision order and the root last.
        ordered = sorted(listed, key=lambda h: r.commits[h].seq) + [root]
        return "".join(self._render(r, r.commits[h]) for h in ordered)

    async def is_dirty(self, repo: str) -> bool:
        r = self._repo(repo)
        if r.dirty or r.current is None:
            return r.dirty
        # Only files present on disk are compared; checkouts do not rewrite the tree.
        committed = r.commits[r.current].files
        return any(committed[name] != content for name, content in self._disk_files(r, committed).items())

    async def init(self, path: str) -> None:
        self.calls.append(("init", path))
        if path in self.repos:
            raise VCSError("hg init", path, RuntimeError(f"abort: repository {path} already exists!"))
        self.make_repo(path)

    async def add(self, repo: str, paths: Iterable[str]) -> None:
        paths = list(paths)
        self.calls.append(("add", repo, tuple(paths)))
        r = self._repo(repo)
        if paths == ["."]:
            r.staged |= self._scan(r)
        else:
            r.staged |= set(paths)

    async def commit(self, repo: str, message: str) -> None:
        self.calls.append(("commit", repo, message))
        r = self._repo(repo)
        parent = r.commits[r.current] if r.current else None
        before = parent.files if parent else {}
        on_disk = self._disk_files(r, r.staged)
        changed = {n: v for n, v in on_disk.items() if before.get(n) != v}
        if not changed:
            raise VCSError("hg commit", repo, RuntimeError("nothing changed"))
        commit = self._new_commit(parent.hash if parent else None, "draft", message)
        commit.added = {n for n in changed if n not in before}
        commit.modified = {n for n in changed if n in before}
        commit.files = {**before, **changed}
        r.commits[commit.hash] = commit
        r.current = commit.hash
        r.staged = set()

    async def amend(self, repo: str) -> None:
        self.calls.append(("amend", repo))
        r = self._repo(repo)
        old = r.commits[self._resolve(r, ".")]
        before = r.commits[old.parent].files if old.parent else {}
        new = self._new_commit(old.parent, old.phase, old.message)
        staged = self._disk_files(r, r.staged)
        new.files = {**old.files, **staged}
        new.added = set(old.added) | {n for n in staged if n not in before}
        new.modified = set(old.modified) | {n for n in staged if n in before}
        new.copied = set(old.copied)
        new.deleted = set(old.deleted)
        old.hidden = True
        r.commits[new.hash] = new
        r.current = new.hash
        r.staged = set()

    async def checkout(self, repo: str, rev: str) -> None:
        self.calls.append(("checkout", repo, rev))
        r = self._repo(repo)
        r.current = self._resolve(r, rev)

    async def set_phase(self, repo: str, phase: str, rev: str, force: bool = False) -> None:
        self.calls.append(("set_phase", repo, phase, rev))
        r = self._repo(repo)
        commit = r.commits[self._resolve(r, rev)]
        if commit.phase == "public" and phase == "draft" and not force:
            raise VCSError("hg phase", repo, RuntimeError("cannot move public changeset to draft"))
        commit.phase = phase

    async def export_patch(self, repo: str, revs: list[str]) -> str:
        self.calls.append(("export_patch", repo, tuple(revs)))
        r = self._repo(repo)
        chunks = []
        for rev in revs:
            c = r.commits[self._resolve(r, rev)]
            payload = {
                "message": c.message,
                "added": sorted(c.added),
                "modified": sorted(c.modified),
                "deleted": sorted(c.deleted),
                "copied": sorted([cp.source, cp.dest] for cp in c.copied),
                "files": c.files,
            }
            chunks.append(
                f"{PATCH_HEADER}\n# Node ID {c.hash}\n# Parent  {c.parent or NULL_HASH}\n"
                f"{json.dumps(payload)}\n"
            )
        return "".join(chunks)

    async def import_patch(self, repo: str, patch: str) -> None:
        self.calls.append(("import_patch", repo))
        r = self._repo(repo)
        base = self._resolve(r, ".")
        images: dict[str, str] = {}
        for chunk in split_patches(patch):
            node, parent = patch_ids(chunk)
            target = images.get(parent or "", base)
            r.current = target
            payload = json.loads(chunk.splitlines()[3])
            commit = self._new_commit(target, "draft", payload["message"])
            commit.added = set(payload["added"])
            commit.modified = set(payload["modified"])
            commit.deleted = set(payload["deleted"])
            commit.copied = {Copy(s, d) for s, d in payload["copied"]}
            commit.files = _apply(r.commits[target].files, payload["files"], commit)
            r.commits[commit.hash] = commit
            r.current = commit.hash
            if node is not None:
                images[node] = commit.hash

    async def strip(self, repo: str, rev: str) -> None:
        self.calls.append(("strip", repo, rev))
        r = self._repo(repo)
        top = self._resolve(r, rev)
        doomed = r.subtree(top)
        if r.current in doomed:
            r.current = r.commits[top].parent
        for h in doomed:
            del r.commits[h]

    async def shelve(self, repo: str) -> None:
        self.calls.append(("shelve", repo))
        r = self._repo(repo)
        r.shelved, r.dirty = True, False

    async def unshelve(self, repo: str) -> None:
        self.calls.append(("unshelve", repo))
        r = self._repo(repo)
        if not r.shelved:
            raise VCSError("hg unshelve", repo, RuntimeError("no shelved changes to apply!"))
        r.shelved, r.dirty = False, True

    async def rebase(self, repo: str, source: str, dest: str) -> None:
        self.calls.append(("rebase", repo, source, dest))
        r = self._repo(repo)
        images: dict[str, str] = {}
        for h in r.subtree(self._resolve(r, source)):
            old = r.commits[h]
            parent = images.get(old.parent or "", dest)
            new = self._new_commit(parent, old.phase, old.message)
            new.added, new.modified = set(old.added), set(old.modified)
            new.deleted, new.copied = set(old.deleted), set(old.copied)
            new.files = _apply(r.commits[parent].files, old.files, old)
            images[h] = new.hash
            r.commits[new.hash] = new
        for h in images:
            r.commits[h].hidden = True
        if r.current in images:
            r.current = images[r.current]

    async def revert_files(self, repo: str, paths: Iterable[str]) -> None:
        self.calls.append(("revert_files", repo, frozenset(paths)))

    async def purge_files(self, repo: str, paths: Iterable[str]) -> None:
        self.calls.append(("purge_files", repo, frozenset(paths)))

    async def extract_files(self, repo: str, rev: str, dest_dir: str, paths: Iterable[str]) -> None:
        paths = sorted(paths)
        self.calls.append(("extract_files", repo, rev, tuple(paths)))
        r = self._repo(repo)
        commit = r.commits[self._resolve(r, rev)]
        for name in paths:
            if name not in commit.files:
                raise VCSError("hg cat", repo, RuntimeError(f"{name}: no such file in rev {rev}"))
            dest = os.path.join(dest_dir, name)
            os.makedirs(os.path.dirname(dest), exist_ok=True)
            with open(dest, "w") as f:
                f.write(commit.files[name])

    async def tracked_files(self, repo: str, rev: str, paths: Iterable[str]) -> set[str]:
        r = self._repo(repo)
        commit = r.commits[self._resolve(r, rev)]
        return {name for name in paths if name in commit.files}

    async def run_forwarded(self, repo: str, args: list[str]) -> int:
        self.calls.append(("run_forwarded", repo, tuple(args)))
        if self.on_forward is not None:
            self.on_forward(repo, args)
        return self.forward_exit_code


class FakeWatcher(ChangeWatcherClient):
    """Change watcher driven by explicitly recorded events."""

    def __init__(self) -> None:
        self.events: list[tuple[int, str, str, str]] = []
        self.seq = 0
        self.overflown = False
        self.closed = False

    def record(
        self,
        root: os.PathLike | str,
        added: Iterable[str] = (),
        modified: Iterable[str] = (),
        deleted: Iterable[str] = (),
    ) -> None:
        for kind, names in (("added", added), ("modified", modified), ("deleted", deleted)):
            for name in names:
                self.seq += 1
                self.events.append((self.seq, str(root), kind, name))

    async def get_checkpoint(self, root: str) -> str:
        return f"c:{self.seq}"

    async def get_changes(self, root: str, since: str) -> ChangeSet:
        after = int(since.split(":", 1)[1])
        latest: dict[str, str] = {}
        for seq, event_root, kind, name in self.events:
            if seq > after and event_root == root:
                latest[name] = kind
        changes = ChangeSet(checkpoint=f"c:{self.seq}", overflown=self.overflown)
        for name, kind in latest.items():
            getattr(changes, f"files_{kind}").add(name)
        return changes

    async def close(self) -> None:
        self.closed = True


def write_files(root: os.PathLike | str, files: dict[str, str]) -> None:
    for name, content in files.items():
        path = os.path.join(str(root), name)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "w") as f:
            f.write(content)


def read_file(root: os.PathLike | str, name: str) -> str:
    with open(os.path.join(str(root), name)) as f:
        return f.read()


@pytest.fixture
def fake_hg():
    return FakeHg()


@pytest.fixture
def fake_watcher():
    return FakeWatcher()


@pytest.fixture
def umbra_config(tmp_path):
    return UmbraConfig(shadow_dir=str(tmp_path / "shadows"))


@pytest.fixture
def source_repo(tmp_path, fake_hg):
    """A source repository with a public base and a two-commit draft stack.

    History::

        base (public)   adds a.txt, lib/b.txt, unrelated.txt
        └── d1 (draft)  modifies a.txt, adds c.txt
            └── d2      modifies lib/b.txt  <- checked out
    """
    path = tmp_path / "source"
    fake_hg.make_repo(path)
    files = {"a.txt": "a0", "lib/b.txt": "b0", "unrelated.txt": "u0"}
    base = fake_hg.make_commit(
        path, phase="public", added=files, files=files, message="base"
    )
    d1 = fake_hg.make_commit(
        path, parent=base, modified=["a.txt"], added=["c.txt"],
        files={"a.txt": "a1", "c.txt": "c1"}, message="d1",
    )
    d2 = fake_hg.make_commit(
        path, parent=d1, modified=["lib/b.txt"], files={"lib/b.txt": "b2"}, message="d2"
    )
    write_files(path, {"a.txt": "a1", "lib/b.txt": "b2", "unrelated.txt": "u0", "c.txt": "c1"})
    return {"path": str(path), "base": base, "d1": d1, "d2": d2}
