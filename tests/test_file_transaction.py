import unittest

from core.file_set import FileSegment, FileSet
from core.file_transaction import FileTransaction
from tests.fakes.fake_collaborators import DEFAULT_FILES, FakeRepository


class TestFileTransaction(unittest.TestCase):

    def setUp(self):
        self.repository = FakeRepository()
        self.file_set = FileSet.from_mapping(DEFAULT_FILES)

    def test_apply_updates_file_set_and_repository(self):
        txn = FileTransaction(self.file_set, self.repository)
        files = txn.apply([FileSegment("src/App.tsx", "v2"), FileSegment("src/New.tsx", "new")])

        self.assertEqual(files, ["src/App.tsx", "src/New.tsx"])
        self.assertEqual(self.file_set.content_of("src/New.tsx"), "new")
        self.assertEqual(self.repository.writes, [("src/App.tsx", "v2"), ("src/New.tsx", "new")])
        self.assertFalse(txn.intact)

    def test_rollback_restores_memory_and_disk(self):
        txn = FileTransaction(self.file_set, self.repository)
        txn.apply([FileSegment("src/App.tsx", "v2"), FileSegment("src/New.tsx", "new")])
        txn.rollback()

        self.assertTrue(txn.intact)
        self.assertNotIn("src/New.tsx", self.file_set)
        self.assertEqual(self.repository.files["src/App.tsx"], DEFAULT_FILES["src/App.tsx"])

    def test_rollback_after_partial_write(self):
        self.repository.fail_writes_for = {"src/utils.ts"}
        txn = FileTransaction(self.file_set, self.repository)
        with self.assertRaises(OSError):
            txn.apply([FileSegment("src/App.tsx", "v2"), FileSegment("src/utils.ts", "v2")])
        self.repository.fail_writes_for = set()
        txn.rollback()

        self.assertTrue(txn.intact)
        self.assertEqual(self.repository.files["src/App.tsx"], DEFAULT_FILES["src/App.tsx"])

    def test_rollback_without_changes_writes_nothing(self):
        txn = FileTransaction(self.file_set, self.repository)
        txn.rollback()
        self.assertEqual(self.repository.writes, [])
        self.assertTrue(txn.intact)

    def test_rollback_survives_repository_errors(self):
        txn = FileTransaction(self.file_set, self.repository)
        txn.apply([FileSegment("src/App.tsx", "v2")])
        self.repository.fail_writes_for = {"src/App.tsx"}
        txn.rollback()
        self.assertTrue(txn.intact)


if __name__ == "__main__":
    unittest.main()
