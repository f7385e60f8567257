"""In-memory working tree of a campaign, and Solver output segmentation.

The :class:`FileSet` is exclusively owned by the campaign controller.  Every
attempted mutation is preceded by :meth:`FileSet.snapshot` and undone with
:meth:`FileSet.restore` when verification fails, so a failed attempt leaves
the set byte-identical (same :meth:`FileSet.digest`) to its prior state.

Solver output is split into files with :func:`parse_solver_output`, a plain
line scanner for ``FILE: <path>`` markers::

    // FILE: src/components/Toggle.tsx
    export function Toggle() { ... }
    # FILE: api/routes.py
    def handler(): ...
"""
from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass
from typing import Iterable, Iterator, List, Optional, Sequence

from core.dream_types import FileEntry

_MARKER_RE = re.compile(
    r"^\s*(?:(?://|#|--|/\*|<!--)\s*)?FILE:\s*(?P<path>\S.*?)\s*(?:\*/|-->)?\s*$"
)
_FENCE_OPEN_RE = re.compile(r"^\s*```[\w+-]*\s*$")
_FENCE_CLOSE_RE = re.compile(r"^\s*```\s*$")


class FileSet:
    """Ordered collection of ``(path, content)`` entries."""

    def __init__(self, entries: Optional[Iterable[FileEntry]] = None):
        self._entries: List[FileEntry] = []
        for entry in entries or []:
            self.upsert(entry.path, entry.content)

    @classmethod
    def from_mapping(cls, files: dict) -> "FileSet":
        return cls(FileEntry(path, content) for path, content in files.items())

    # ── Access ───────────────────────────────────────────────────────────────

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[FileEntry]:
        return iter(list(self._entries))

    def __contains__(self, path: str) -> bool:
        return self.get(path) is not None

    def __eq__(self, other) -> bool:
        if not isinstance(other, FileSet):
            return NotImplemented
        return self._pairs() == other._pairs()

    def __repr__(self) -> str:
        return f"FileSet({len(self)} files)"

    def get(self, path: str) -> Optional[FileEntry]:
        for entry in self._entries:
            if entry.path == path:
                return entry
        return None

    def content_of(self, path: Optional[str]) -> str:
        entry = self.get(path) if path else None
        return entry.content if entry else ""

    def paths(self) -> List[str]:
        return [e.path for e in self._entries]

    def find_main_file(self, suffixes: Sequence[str]) -> Optional[FileEntry]:
        """Return the first entry matching *suffixes*, in suffix priority order."""
        for suffix in suffixes:
            bare = suffix.lstrip("/")
            for entry in self._entries:
                if entry.path.endswith(suffix) or entry.path == bare:
                    return entry
        return None

    # ── Mutation ─────────────────────────────────────────────────────────────

    def upsert(self, path: str, content: str) -> None:
        """Replace the content of *path*, or append it as a new entry."""
        for i, entry in enumerate(self._entries):
            if entry.path == path:
                self._entries[i] = FileEntry(path, content)
                return
        self._entries.append(FileEntry(path, content))

    def snapshot(self) -> "FileSet":
        """Deep copy of the current entries, in order."""
        return FileSet(FileEntry(e.path, e.content) for e in self._entries)

    def restore(self, snapshot: "FileSet") -> None:
        """Replace every entry with the snapshot's, verbatim."""
        self._entries = [FileEntry(e.path, e.content) for e in snapshot._entries]

    def digest(self) -> str:
        h = hashlib.sha256()
        for path, content in self._pairs():
            h.update(path.encode("utf-8"))
            h.update(b"\0")
            h.update(content.encode("utf-8"))
            h.update(b"\0")
        return h.hexdigest()

    def _pairs(self) -> List[tuple]:
        return [(e.path, e.content) for e in self._entries]


@dataclass
class FileSegment:
    path: str
    content: str


def _clean_segment(lines: List[str]) -> str:
    while lines and not lines[0].strip():
        lines.pop(0)
    while lines and not lines[-1].strip():
        lines.pop()
    if lines and _FENCE_OPEN_RE.match(lines[0]):
        lines.pop(0)
    if lines and _FENCE_CLOSE_RE.match(lines[-1]):
        lines.pop()
    if not lines:
        return ""
    return "\n".join(lines) + "\n"


def parse_solver_output(
    output: str,
    file_set: FileSet,
    main_suffixes: Sequence[str],
) -> List[FileSegment]:
    """Split Solver output into per-file segments.

    Returns an empty list when the output has no markers and *file_set* has no
    main file to receive it; callers treat that as "no target file".
    """
    segments: List[FileSegment] = []
    current_path: Optional[str] = None
    buffer: List[str] = []

    for line in output.splitlines():
        match = _MARKER_RE.match(line)
        if match:
            if current_path is not None:
                segments.append(FileSegment(current_path, _clean_segment(buffer)))
            current_path = match.group("path").strip().strip("`\"'")
            buffer = []
        elif current_path is not None:
            buffer.append(line)

    if current_path is not None:
        segments.append(FileSegment(current_path, _clean_segment(buffer)))
        return segments

    main = file_set.find_main_file(main_suffixes)
    if main is None:
        return []
    return [FileSegment(main.path, output)]
