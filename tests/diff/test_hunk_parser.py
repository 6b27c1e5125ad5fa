import unittest

from commit_weaver.diff.hunk_parser import build_patch, parse_diff_into_hunks


TWO_FILE_DIFF = (
    "diff --git a/src/app.py b/src/app.py\n"
    "index 1111111..2222222 100644\n"
    "--- a/src/app.py\n"
    "+++ b/src/app.py\n"
    "@@ -1,3 +1,4 @@ def main():\n"
    " import os\n"
    "+import sys\n"
    " \n"
    " print(os.name)\n"
    "@@ -10,4 +11,3 @@\n"
    " def helper():\n"
    "-    return 1\n"
    "-    # old\n"
    "+    return 2\n"
    "diff --git a/notes.txt b/notes.txt\n"
    "new file mode 100644\n"
    "index 0000000..3333333\n"
    "--- /dev/null\n"
    "+++ b/notes.txt\n"
    "@@ -0,0 +1,2 @@\n"
    "+first line\n"
    "+second line\n"
)


class TestParseDiffIntoHunks(unittest.TestCase):
    def test_empty_diff_yields_no_hunks(self) -> None:
        self.assertEqual(parse_diff_into_hunks(""), [])

    def test_parsing_is_deterministic(self) -> None:
        self.assertEqual(parse_diff_into_hunks(TWO_FILE_DIFF), parse_diff_into_hunks(TWO_FILE_DIFF))

    def test_hunks_are_numbered_in_order(self) -> None:
        hunks = parse_diff_into_hunks(TWO_FILE_DIFF)
        self.assertEqual([h.id for h in hunks], [0, 1, 2])
        self.assertEqual([h.file_path for h in hunks], ["src/app.py", "src/app.py", "notes.txt"])

    def test_counts_match_changed_lines(self) -> None:
        hunks = parse_diff_into_hunks(TWO_FILE_DIFF)
        self.assertEqual((hunks[0].additions, hunks[0].deletions), (1, 0))
        self.assertEqual((hunks[1].additions, hunks[1].deletions), (1, 2))
        self.assertEqual((hunks[2].additions, hunks[2].deletions), (2, 0))
        total = sum(h.additions + h.deletions for h in hunks)
        self.assertEqual(total, 6)

    def test_new_file_flags(self) -> None:
        hunks = parse_diff_into_hunks(TWO_FILE_DIFF)
        self.assertFalse(hunks[0].is_new_file)
        self.assertTrue(hunks[2].is_new_file)
        self.assertFalse(hunks[2].is_deleted)

    def test_deleted_file_keeps_old_path(self) -> None:
        diff = (
            "diff --git a/gone.py b/gone.py\n"
            "deleted file mode 100644\n"
            "--- a/gone.py\n"
            "+++ /dev/null\n"
            "@@ -1,2 +0,0 @@\n"
            "-a = 1\n"
            "-b = 2\n"
        )
        (hunk,) = parse_diff_into_hunks(diff)
        self.assertEqual(hunk.file_path, "gone.py")
        self.assertTrue(hunk.is_deleted)
        self.assertEqual(hunk.deletions, 2)

    def test_context_prefers_header_hint(self) -> None:
        hunks = parse_diff_into_hunks(TWO_FILE_DIFF)
        self.assertEqual(hunks[0].context, "def main():")

    def test_context_falls_back_to_added_lines(self) -> None:
        hunks = parse_diff_into_hunks(TWO_FILE_DIFF)
        self.assertEqual(hunks[2].context, "first line second line")
        self.assertEqual(hunks[1].context, "return 2")

    def test_content_excludes_header(self) -> None:
        hunks = parse_diff_into_hunks(TWO_FILE_DIFF)
        self.assertTrue(hunks[0].header.startswith("@@ -1,3 +1,4 @@"))
        self.assertEqual(hunks[0].content, " import os\n+import sys\n \n print(os.name)\n")

    def test_file_without_hunks_is_skipped(self) -> None:
        diff = (
            "diff --git a/old.py b/new.py\n"
            "similarity index 100%\n"
            "rename from old.py\n"
            "rename to new.py\n"
            "diff --git a/x.py b/x.py\n"
            "--- a/x.py\n"
            "+++ b/x.py\n"
            "@@ -1 +1 @@\n"
            "-x = 1\n"
            "+x = 2\n"
        )
        hunks = parse_diff_into_hunks(diff)
        self.assertEqual(len(hunks), 1)
        self.assertEqual(hunks[0].file_path, "x.py")
        self.assertEqual(hunks[0].id, 0)

    def test_added_line_starting_with_plus_is_counted(self) -> None:
        diff = (
            "diff --git a/c.c b/c.c\n"
            "--- a/c.c\n"
            "+++ b/c.c\n"
            "@@ -1 +1,2 @@\n"
            " int i = 0;\n"
            "+++i;\n"
        )
        (hunk,) = parse_diff_into_hunks(diff)
        self.assertEqual(hunk.additions, 1)

    def test_preview_limits_lines(self) -> None:
        hunks = parse_diff_into_hunks(TWO_FILE_DIFF)
        self.assertEqual(hunks[1].preview(max_lines=2), "-    return 1\n-    # old")


class TestBuildPatch(unittest.TestCase):
    def test_subset_keeps_file_header(self) -> None:
        hunks = parse_diff_into_hunks(TWO_FILE_DIFF)
        patch = build_patch([hunks[1]])
        self.assertTrue(patch.startswith("diff --git a/src/app.py b/src/app.py\n"))
        self.assertIn("--- a/src/app.py\n+++ b/src/app.py\n@@ -10,4 +11,3 @@\n", patch)
        self.assertNotIn("import sys", patch)

    def test_hunks_emitted_in_id_order_per_file(self) -> None:
        hunks = parse_diff_into_hunks(TWO_FILE_DIFF)
        patch = build_patch([hunks[2], hunks[1], hunks[0]])
        self.assertLess(patch.index("notes.txt"), patch.index("src/app.py"))
        self.assertLess(patch.index("@@ -1,3"), patch.index("@@ -10,4"))
        self.assertEqual(patch.count("diff --git"), 2)

    def test_synthesizes_markers_when_header_missing(self) -> None:
        hunk = parse_diff_into_hunks(TWO_FILE_DIFF)[2]
        bare = type(hunk)(
            id=hunk.id,
            file_path=hunk.file_path,
            is_new_file=True,
            is_deleted=False,
            header=hunk.header,
            content=hunk.content,
            additions=hunk.additions,
            deletions=hunk.deletions,
            context=hunk.context,
        )
        patch = build_patch([bare])
        self.assertIn("--- /dev/null\n+++ b/notes.txt\n", patch)


if __name__ == "__main__":
    unittest.main()
