import shutil
import subprocess
import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path

from commit_weaver.diff.hunk_parser import build_patch, parse_diff_into_hunks
from commit_weaver.vcs.git_client import GitClient, GitError


def git(root, *args):
    return subprocess.run(
        ["git"] + list(args), cwd=root, check=True, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True
    ).stdout


@unittest.skipUnless(shutil.which("git"), "git is not installed")
class TestGitIntegration(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        git(self.root, "init", "-q")
        git(self.root, "config", "user.email", "dev@example.com")
        git(self.root, "config", "user.name", "Dev")
        git(self.root, "config", "commit.gpgsign", "false")
        self.client = GitClient(self.root)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def write(self, name, text):
        (self.root / name).write_text(text, encoding="utf-8")

    def test_find_repo_root(self) -> None:
        nested = self.root / "a" / "b"
        nested.mkdir(parents=True)
        self.assertEqual(GitClient.find_repo_root(nested), self.root.resolve())

    def test_commit_with_timestamp(self) -> None:
        self.write("a.txt", "hello\n")
        self.client.stage_all()
        self.assertTrue(self.client.has_staged_changes())
        stamp = datetime(2023, 5, 1, 14, 0, tzinfo=timezone.utc)
        sha = self.client.commit("feat: add a", stamp)
        self.assertEqual(git(self.root, "rev-parse", "HEAD").strip(), sha)
        self.assertEqual(git(self.root, "log", "-1", "--format=%at %ct").split(), [str(int(stamp.timestamp()))] * 2)
        self.assertEqual(self.client.get_recent_commits(5), ["feat: add a"])
        self.assertFalse(self.client.has_uncommitted_changes())

    def test_single_hunk_is_committed_alone(self) -> None:
        lines = [f"line {i}\n" for i in range(30)]
        self.write("f.txt", "".join(lines))
        self.client.stage_all()
        self.client.commit("chore: init")
        lines[0] = "first changed\n"
        lines[29] = "last changed\n"
        self.write("f.txt", "".join(lines))

        hunks = parse_diff_into_hunks(git(self.root, "diff", "--no-color"))
        self.assertEqual(len(hunks), 2)
        self.client.apply_patch_to_index(build_patch([hunks[0]]))
        self.client.commit("fix: first line")

        committed = git(self.root, "show", "HEAD:f.txt")
        self.assertIn("first changed", committed)
        self.assertNotIn("last changed", committed)
        self.assertIn("last changed", self.client.read_working_file("f.txt"))
        self.assertTrue(self.client.has_uncommitted_changes())

    def test_snapshot_diff_between_trees(self) -> None:
        self.write("a.txt", "one\n")
        self.client.stage_all()
        first = self.client.write_tree()
        self.write("b.txt", "two\n")
        self.client.stage_all()
        second = self.client.write_tree()
        self.assertEqual(self.client.changed_paths_between(first, second), ["b.txt"])
        self.assertIn("+two", self.client.diff_trees(first, second))
        self.client.reset_index()
        self.assertFalse(self.client.has_staged_changes())

    def test_squash_refuses_initial_commits(self) -> None:
        for index in range(3):
            self.write(f"f{index}.txt", f"{index}\n")
            self.client.stage_all()
            self.client.commit(f"feat: add f{index}")
        head = git(self.root, "rev-parse", "HEAD").strip()
        self.assertEqual(self.client.count_unpushed_commits(), 3)

        with self.assertRaises(GitError):
            self.client.squash_commits(3, "feat: add files")
        self.assertEqual(git(self.root, "rev-parse", "HEAD").strip(), head)
        self.assertEqual(
            self.client.get_recent_commits(5),
            ["feat: add f2", "feat: add f1", "feat: add f0"],
        )

    def test_squash_keeps_older_history(self) -> None:
        for index in range(4):
            self.write(f"f{index}.txt", f"{index}\n")
            self.client.stage_all()
            self.client.commit(f"feat: add f{index}")
        self.client.squash_commits(2, "feat: add f2 and f3")
        self.assertEqual(
            self.client.get_recent_commits(5),
            ["feat: add f2 and f3", "feat: add f1", "feat: add f0"],
        )


if __name__ == "__main__":
    unittest.main()
