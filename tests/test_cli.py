import copy
import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from click.testing import CliRunner

import commit_weaver.cli as cli
from commit_weaver.config.loader import DEFAULTS
from commit_weaver.llm.claude_client import LLMError
from commit_weaver.vcs.git_client import GitError, StagedChanges


DIFF = (
    "diff --git a/Cargo.toml b/Cargo.toml\n"
    "--- a/Cargo.toml\n"
    "+++ b/Cargo.toml\n"
    "@@ -1 +1,2 @@\n"
    " [package]\n"
    "+serde = \"1\"\n"
    "diff --git a/src/models.py b/src/models.py\n"
    "new file mode 100644\n"
    "--- /dev/null\n"
    "+++ b/src/models.py\n"
    "@@ -0,0 +1 @@\n"
    "+class User: pass\n"
)


class DummyGitClient:
    def __init__(self, root):
        self.repo_root = Path(root)
        self.changes = StagedChanges()
        self.pending = False
        self.commits = []
        self.staged = []

    def get_staged_changes(self):
        return self.changes

    def get_current_branch(self):
        return "main"

    def get_recent_commits(self, count):
        return [m.splitlines()[0] for m, _ in self.commits][-count:]

    def count_unpushed_commits(self):
        return len(self.commits)

    def has_uncommitted_changes(self):
        return self.pending

    def stage_all(self):
        self.staged.append("*")

    def reset_index(self):
        self.staged = []

    def stage_files(self, paths):
        self.staged.extend(paths)

    def apply_patch_to_index(self, patch):
        self.staged.append(patch)

    def has_staged_changes(self):
        return bool(self.staged)

    def commit(self, message, timestamp=None):
        self.commits.append((message, timestamp))
        self.staged = []
        self.pending = False
        self.changes = StagedChanges()
        return f"{len(self.commits):040d}"


class FailingClient:
    def generate(self, system, prompt):
        raise LLMError("Failed after 4 attempts. Last error: 503")


class TestCLI(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.git = DummyGitClient(self.root)
        self.config = copy.deepcopy(DEFAULTS)
        self.runner = CliRunner()
        patches = [
            patch.object(cli, "open_repository", return_value=self.git),
            patch.object(cli, "load_config", side_effect=lambda root: self.config),
        ]
        for p in patches:
            p.start()
            self.addCleanup(p.stop)
        self.addCleanup(self._tmp.cleanup)

    def stage_diff(self) -> None:
        self.git.changes = StagedChanges(added=["src/models.py"], modified=["Cargo.toml"], diff=DIFF)

    # -- commit ---------------------------------------------------------
    def test_commit_no_changes(self) -> None:
        result = self.runner.invoke(cli.main, ["commit", "--offline"])
        self.assertEqual(result.exit_code, cli.EXIT_NO_CHANGES)

    def test_commit_modes_are_exclusive(self) -> None:
        result = self.runner.invoke(cli.main, ["commit", "--atomic", "--granular"])
        self.assertEqual(result.exit_code, cli.EXIT_INVALID_USAGE)

    def test_commit_bad_spread(self) -> None:
        result = self.runner.invoke(cli.main, ["commit", "--atomic", "--spread", "soon"])
        self.assertEqual(result.exit_code, cli.EXIT_INVALID_USAGE)

    def test_single_commit_offline(self) -> None:
        self.stage_diff()
        result = self.runner.invoke(cli.main, ["commit", "--offline", "--yes"])
        self.assertEqual(result.exit_code, cli.EXIT_SUCCESS, result.output)
        self.assertEqual(len(self.git.commits), 1)
        self.assertTrue(self.git.commits[0][0].startswith("build: update 2 files"))

    def test_single_commit_cancelled(self) -> None:
        self.stage_diff()
        result = self.runner.invoke(cli.main, ["commit", "--offline"], input="c\n")
        self.assertEqual(result.exit_code, cli.EXIT_ALL_DECLINED)
        self.assertEqual(self.git.commits, [])

    def test_atomic_commit_offline(self) -> None:
        self.stage_diff()
        result = self.runner.invoke(
            cli.main, ["commit", "--atomic", "--offline", "--yes", "--spread", "2h", "--start", "2024-01-15 09:00"]
        )
        self.assertEqual(result.exit_code, cli.EXIT_SUCCESS, result.output)
        self.assertEqual([m for m, _ in self.git.commits], ["build: update Cargo.toml", "feat: add models.py"])
        first, second = (ts for _, ts in self.git.commits)
        self.assertEqual((first.hour, first.minute), (9, 0))
        self.assertLess(first, second)
        self.assertIn("2 commits planned", result.output)

    def test_atomic_commit_declined(self) -> None:
        self.stage_diff()
        result = self.runner.invoke(cli.main, ["commit", "--atomic", "--offline"], input="x\n")
        self.assertEqual(result.exit_code, cli.EXIT_ALL_DECLINED)
        self.assertEqual(self.git.commits, [])

    def test_commit_requires_api_key(self) -> None:
        self.stage_diff()
        result = self.runner.invoke(cli.main, ["commit", "--yes"])
        self.assertEqual(result.exit_code, cli.EXIT_CONFIG_ERROR)

    def test_commit_llm_failure(self) -> None:
        self.stage_diff()
        with patch.object(cli, "build_client", return_value=FailingClient()):
            result = self.runner.invoke(cli.main, ["commit", "--atomic", "--yes"])
        self.assertEqual(result.exit_code, cli.EXIT_LLM_FAILURE)
        self.assertEqual(self.git.commits, [])

    # -- auto -----------------------------------------------------------
    def test_auto_spread_requires_defer(self) -> None:
        result = self.runner.invoke(cli.main, ["auto", "--spread", "2h"])
        self.assertEqual(result.exit_code, cli.EXIT_INVALID_USAGE)

    def test_auto_once_without_changes(self) -> None:
        result = self.runner.invoke(cli.main, ["auto", "--offline"])
        self.assertEqual(result.exit_code, cli.EXIT_NO_CHANGES)
        self.assertFalse((self.root / ".weaver.lock").exists())

    def test_auto_once_commits(self) -> None:
        self.git.pending = True
        self.stage_diff()
        result = self.runner.invoke(cli.main, ["auto", "--offline"])
        self.assertEqual(result.exit_code, cli.EXIT_SUCCESS, result.output)
        self.assertEqual(len(self.git.commits), 1)
        self.assertIn("Committed: 1", result.output)

    def test_auto_dry_run(self) -> None:
        self.git.pending = True
        self.stage_diff()
        result = self.runner.invoke(cli.main, ["auto", "--offline", "--dry-run"])
        self.assertEqual(result.exit_code, cli.EXIT_SUCCESS, result.output)
        self.assertEqual(self.git.commits, [])
        self.assertIn("[DRY RUN] Would commit", result.output)

    def test_auto_once_git_failure(self) -> None:
        self.git.pending = True
        self.stage_diff()
        with patch.object(self.git, "stage_all", side_effect=GitError("index.lock exists")):
            result = self.runner.invoke(cli.main, ["auto", "--offline"])
        self.assertEqual(result.exit_code, cli.EXIT_VCS_FAILURE)
        self.assertEqual(self.git.commits, [])
        self.assertIn("Failed (git): 1", result.output)

    def test_auto_refuses_when_locked(self) -> None:
        (self.root / ".weaver.lock").write_text(f"{os.getpid()}\n")
        result = self.runner.invoke(cli.main, ["auto", "--offline"])
        self.assertEqual(result.exit_code, cli.EXIT_LOCKED)
        self.assertEqual(self.git.commits, [])

    # -- status ---------------------------------------------------------
    def test_status(self) -> None:
        self.stage_diff()
        self.git.commits = [("chore: init", None)]
        result = self.runner.invoke(cli.main, ["status"])
        self.assertEqual(result.exit_code, cli.EXIT_SUCCESS, result.output)
        self.assertIn("Branch:     main", result.output)
        self.assertIn("1 added, 1 modified", result.output)
        self.assertIn("chore: init", result.output)


class TestOpenRepository(unittest.TestCase):
    def test_outside_repository(self) -> None:
        runner = CliRunner()
        with patch.object(cli.GitClient, "find_repo_root", return_value=None):
            result = runner.invoke(cli.main, ["status"])
        self.assertEqual(result.exit_code, cli.EXIT_NO_REPO)


if __name__ == "__main__":
    unittest.main()
