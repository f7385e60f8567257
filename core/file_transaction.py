from typing import List, Optional

from core.file_set import FileSegment, FileSet
from core.logging_utils import log_json


class FileTransaction:
    """
    All-or-nothing application of Solver output to a FileSet.

    Opening a transaction snapshots the FileSet.  ``apply`` writes each
    segment into the in-memory set and persists it through the repository;
    ``rollback`` restores the snapshot verbatim and writes the pre-attempt
    content of every touched path back to the repository.
    """

    def __init__(self, file_set: FileSet, repository, label: Optional[str] = None):
        self.file_set = file_set
        self.repository = repository
        self.label = label
        self.snapshot = file_set.snapshot()
        self.digest_before = self.snapshot.digest()
        self.touched: List[str] = []

    def apply(self, segments: List[FileSegment]) -> List[str]:
        for segment in segments:
            if segment.path not in self.touched:
                self.touched.append(segment.path)
            self.file_set.upsert(segment.path, segment.content)
            self.repository.write_file(segment.path, segment.content)
        return list(self.touched)

    def rollback(self) -> None:
        self.file_set.restore(self.snapshot)
        if not self.touched:
            return

        restored: List[str] = []
        created: List[str] = []
        failed = []
        for path in reversed(self.touched):
            if path not in self.snapshot:
                created.append(path)
                continue
            try:
                self.repository.write_file(path, self.snapshot.content_of(path))
                restored.append(path)
            except Exception as exc:
                failed.append({"file": path, "error": str(exc)})

        if restored:
            log_json("INFO", "rollback_restore_ok", goal=self.label, details={"files": restored})
        if created:
            # Repository has no delete: created files stay on disk, gone from the FileSet.
            log_json("WARN", "rollback_created_files_left", goal=self.label, details={"files": created})
        if failed:
            log_json("ERROR", "rollback_restore_failed", goal=self.label, details={"failures": failed})

    @property
    def intact(self) -> bool:
        """True when the FileSet is byte-identical to its pre-transaction state."""
        return self.file_set.digest() == self.digest_before
