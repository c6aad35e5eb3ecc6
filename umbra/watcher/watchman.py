"""Watchman-backed change watcher, talking JSON to the ``watchman`` CLI."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import subprocess
from typing import Any

from umbra.config.models import WatcherConfig
from umbra.watcher.base import ChangeWatcherClient
from umbra.watcher.models import ChangeSet, WatcherError

logger = logging.getLogger(__name__)


class WatchmanClient(ChangeWatcherClient):
    """Sends one JSON command per ``watchman -j`` invocation."""

    def __init__(self, config: WatcherConfig | None = None) -> None:
        self.config = config or WatcherConfig()
        self._watch_roots: dict[str, str] = {}
        self._closed = False

    def _command_sync(self, args: list[Any]) -> dict[str, Any]:
        cmd = [self.config.binary, "-j", "--no-pretty"]
        logger.debug("watchman %s", json.dumps(args))
        try:
            result = subprocess.run(
                cmd,
                input=json.dumps(args),
                capture_output=True,
                text=True,
                timeout=self.config.timeout,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise WatcherError(str(args[0]), e) from e

        try:
            response = json.loads(result.stdout)
        except json.JSONDecodeError as e:
            detail = result.stderr.strip() or f"exit code {result.returncode}"
            raise WatcherError(str(args[0]), f"unreadable response ({detail})") from e

        if "error" in response:
            raise WatcherError(str(args[0]), response["error"])
        return response

    async def _command(self, *args: Any) -> dict[str, Any]:
        if self._closed:
            raise WatcherError(str(args[0]), "client is closed")
        return await asyncio.to_thread(self._command_sync, list(args))

    async def _watch_project(self, root: str) -> str:
        if root not in self._watch_roots:
            response = await self._command("watch-project", root)
            self._watch_roots[root] = response["watch"]
        return self._watch_roots[root]

    async def get_checkpoint(self, root: str) -> str:
        watch = await self._watch_project(root)
        response = await self._command("clock", watch)
        return response["clock"]

    async def get_changes(self, root: str, since: str) -> ChangeSet:
        watch = await self._watch_project(root)
        response = await self._command(
            "query",
            watch,
            {
                "since": since,
                "expression": ["type", "f"],
                "fields": ["new", "exists", "name"],
                "empty_on_fresh_instance": True,
            },
        )

        changes = ChangeSet(
            checkpoint=response["clock"],
            overflown=bool(response.get("is_fresh_instance", False)),
        )
        prefix = root.rstrip(os.sep) + os.sep
        for entry in response.get("files", []):
            absolute = os.path.join(watch, entry["name"])
            if not absolute.startswith(prefix):
                continue
            name = os.path.relpath(absolute, root)
            if entry["new"]:
                if entry["exists"]:
                    changes.files_added.add(name)
            elif entry["exists"]:
                changes.files_modified.add(name)
            else:
                changes.files_deleted.add(name)

        logger.debug(
            "changes in %s since %s: %d added, %d modified, %d deleted%s",
            root,
            since,
            len(changes.files_added),
            len(changes.files_modified),
            len(changes.files_deleted),
            " (overflown)" if changes.overflown else "",
        )
        return changes

    async def close(self) -> None:
        self._watch_roots.clear()
        self._closed = True
