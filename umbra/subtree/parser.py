"""Parser for the section-tagged subtree log listing.

Each commit is rendered as a fixed cycle of sections::

    ----node
    <hash>
    ----p1node
    <parent hash>
    ----current
    1                      (only for the checked-out revision)
    ----phase
    draft|public
    ----file_adds
    <path>...
    ----file_copies
    <source>
    <dest>...
    ----file_dels
    <path>...
    ----file_mods
    <path>...
"""

from __future__ import annotations

import logging
from enum import Enum

from umbra.subtree.models import PHASES, Copy, MalformedLogError, RawCommitNode

logger = logging.getLogger(__name__)

MARKER_PREFIX = "----"


class Section(str, Enum):
    """Log sections, in the order they appear for every commit."""

    node = "node"
    p1node = "p1node"
    current = "current"
    phase = "phase"
    file_adds = "file_adds"
    file_copies = "file_copies"
    file_dels = "file_dels"
    file_mods = "file_mods"

    @property
    def marker(self) -> str:
        return f"{MARKER_PREFIX}{self.value}"


SECTION_ORDER: tuple[Section, ...] = tuple(Section)
_MARKERS = {section.marker: section for section in SECTION_ORDER}


def parse_subtree_log(text: str) -> list[RawCommitNode]:
    """Parse a subtree listing into raw nodes, in log order.

    Raises MalformedLogError on any line that is not a valid transition or a
    valid record for the section it appears in.
    """
    stripped = text.strip()
    if not stripped:
        return []

    lines = stripped.split("\n")
    nodes: list[RawCommitNode] = []
    current_node: RawCommitNode | None = None
    section: Section | None = None
    next_index = 0
    found_current = False
    pending_copy_source: str | None = None
    # Sections that hold exactly one line and have already received it.
    filled: set[Section] = set()

    for lineno, line in enumerate(lines, start=1):
        expected = SECTION_ORDER[next_index]
        if line == expected.marker:
            if pending_copy_source is not None:
                raise MalformedLogError(
                    f"line {lineno}: copy of {pending_copy_source!r} has no destination"
                )
            if expected is Section.node and current_node is not None:
                nodes.append(current_node)
                current_node = None
            section = expected
            filled.discard(section)
            next_index = (next_index + 1) % len(SECTION_ORDER)
            continue

        if line in _MARKERS:
            raise MalformedLogError(
                f"line {lineno}: expected section {expected.marker!r}, got {line!r}"
            )
        if section is None:
            raise MalformedLogError(f"line {lineno}: content before any section: {line!r}")
        if not line:
            raise MalformedLogError(f"line {lineno}: empty line in section {section.value!r}")

        if section is Section.node:
            if section in filled:
                raise MalformedLogError(f"line {lineno}: second hash in node section")
            current_node = RawCommitNode(hash=line)
            filled.add(section)
            continue

        if current_node is None:
            raise MalformedLogError(
                f"line {lineno}: {section.value!r} record precedes any node"
            )

        if section is Section.p1node:
            if section in filled:
                raise MalformedLogError(f"line {lineno}: second parent for {current_node.hash}")
            current_node.parent_hash = line
            filled.add(section)
        elif section is Section.current:
            if line != "1":
                raise MalformedLogError(f"line {lineno}: bad current marker {line!r}")
            if found_current:
                raise MalformedLogError("Multiple revisions were marked current.")
            current_node.is_current_revision = True
            found_current = True
        elif section is Section.phase:
            if line not in PHASES or section in filled:
                raise MalformedLogError(f"line {lineno}: unrecognized phase {line!r}")
            current_node.phase = line  # type: ignore[assignment]
            filled.add(section)
        elif section is Section.file_adds:
            current_node.added_files.add(line)
        elif section is Section.file_copies:
            # Copies come in source/dest line pairs.
            if pending_copy_source is None:
                pending_copy_source = line
            else:
                current_node.copied_files.add(Copy(source=pending_copy_source, dest=line))
                pending_copy_source = None
        elif section is Section.file_dels:
            current_node.deleted_files.add(line)
        elif section is Section.file_mods:
            current_node.modified_files.add(line)

    if pending_copy_source is not None:
        raise MalformedLogError(f"copy of {pending_copy_source!r} has no destination")
    if current_node is not None:
        nodes.append(current_node)

    logger.debug("parsed %d commits from subtree log", len(nodes))
    return nodes
