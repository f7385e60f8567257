import unittest

from core.dream_types import FileEntry
from core.file_set import FileSet, parse_solver_output

MAIN_SUFFIXES = ["/App.tsx", "/main.py"]


class TestFileSet(unittest.TestCase):

    def setUp(self):
        self.file_set = FileSet([FileEntry("src/App.tsx", "app"), FileEntry("src/a.ts", "a")])

    def test_upsert_replaces_in_place_and_appends_new(self):
        self.file_set.upsert("src/App.tsx", "app v2")
        self.file_set.upsert("src/b.ts", "b")
        self.assertEqual(self.file_set.paths(), ["src/App.tsx", "src/a.ts", "src/b.ts"])
        self.assertEqual(self.file_set.content_of("src/App.tsx"), "app v2")

    def test_duplicate_paths_collapse_on_construction(self):
        fs = FileSet([FileEntry("x.ts", "1"), FileEntry("x.ts", "2")])
        self.assertEqual(len(fs), 1)
        self.assertEqual(fs.content_of("x.ts"), "2")

    def test_snapshot_restore_is_byte_identical(self):
        digest = self.file_set.digest()
        snapshot = self.file_set.snapshot()

        self.file_set.upsert("src/a.ts", "changed")
        self.file_set.upsert("src/new.ts", "new")
        self.assertNotEqual(self.file_set.digest(), digest)

        self.file_set.restore(snapshot)
        self.assertEqual(self.file_set.digest(), digest)
        self.assertNotIn("src/new.ts", self.file_set)

    def test_snapshot_is_independent(self):
        snapshot = self.file_set.snapshot()
        self.file_set.upsert("src/a.ts", "changed")
        self.assertEqual(snapshot.content_of("src/a.ts"), "a")

    def test_digest_depends_on_order(self):
        reordered = FileSet([FileEntry("src/a.ts", "a"), FileEntry("src/App.tsx", "app")])
        self.assertNotEqual(self.file_set.digest(), reordered.digest())

    def test_content_of_missing_is_empty(self):
        self.assertEqual(self.file_set.content_of("nope.ts"), "")
        self.assertEqual(self.file_set.content_of(None), "")

    def test_find_main_file_by_suffix_priority(self):
        fs = FileSet.from_mapping({"main.py": "py", "web/src/App.tsx": "tsx"})
        self.assertEqual(fs.find_main_file(MAIN_SUFFIXES).path, "web/src/App.tsx")
        self.assertEqual(fs.find_main_file(["/main.py"]).path, "main.py")
        self.assertIsNone(fs.find_main_file(["/App.jsx"]))


class TestParseSolverOutput(unittest.TestCase):

    def setUp(self):
        self.file_set = FileSet.from_mapping({"src/App.tsx": "app"})

    def test_splits_on_comment_markers(self):
        output = (
            "// FILE: src/App.tsx\n"
            "export default App;\n"
            "\n"
            "# FILE: api/routes.py\n"
            "def handler():\n"
            "    pass\n"
        )
        segments = parse_solver_output(output, self.file_set, MAIN_SUFFIXES)
        self.assertEqual([s.path for s in segments], ["src/App.tsx", "api/routes.py"])
        self.assertEqual(segments[0].content, "export default App;\n")
        self.assertEqual(segments[1].content, "def handler():\n    pass\n")

    def test_strips_code_fences(self):
        output = "FILE: src/Toggle.tsx\n```tsx\nexport const T = 1;\n```\n"
        segments = parse_solver_output(output, self.file_set, MAIN_SUFFIXES)
        self.assertEqual(segments[0].content, "export const T = 1;\n")

    def test_block_comment_marker(self):
        output = "/* FILE: src/x.css */\nbody {}\n"
        segments = parse_solver_output(output, self.file_set, MAIN_SUFFIXES)
        self.assertEqual(segments[0].path, "src/x.css")

    def test_text_before_first_marker_is_ignored(self):
        output = "Here is the fix:\n// FILE: src/App.tsx\nfixed\n"
        segments = parse_solver_output(output, self.file_set, MAIN_SUFFIXES)
        self.assertEqual(len(segments), 1)
        self.assertEqual(segments[0].content, "fixed\n")

    def test_unmarked_output_targets_main_file(self):
        segments = parse_solver_output("whole file", self.file_set, MAIN_SUFFIXES)
        self.assertEqual([(s.path, s.content) for s in segments], [("src/App.tsx", "whole file")])

    def test_unmarked_output_without_main_file_is_empty(self):
        fs = FileSet.from_mapping({"lib/a.ts": "a"})
        self.assertEqual(parse_solver_output("whole file", fs, MAIN_SUFFIXES), [])


if __name__ == "__main__":
    unittest.main()
