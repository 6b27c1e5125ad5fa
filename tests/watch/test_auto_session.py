import asyncio
import unittest
from datetime import datetime, timezone

from commit_weaver.vcs.git_client import GitError, StagedChanges
from commit_weaver.watch.loop import WatchLoop
from commit_weaver.watch.session import AutoOptions, AutoSession, Decision, Review


class FakeRepo:
    def __init__(self):
        self.pending = None
        self.commits = []
        self.staged = 0
        self.unpushed = 0
        self.squashed = []
        self.squash_error = None
        self.tree = "T0"

    # plain mode
    def has_uncommitted_changes(self):
        return self.pending is not None

    def stage_all(self):
        self.staged += 1

    def get_staged_changes(self):
        if self.pending is None:
            return StagedChanges()
        return StagedChanges(modified=["a.py"], diff=self.pending)

    def get_recent_commits(self, count):
        return [m for m, _ in self.commits][-count:]

    def commit(self, message, timestamp=None):
        self.commits.append((message, timestamp))
        self.pending = None
        self.unpushed += 1
        return f"{len(self.commits):07d}abc"

    def count_unpushed_commits(self):
        return self.unpushed

    def get_commit_messages(self, count):
        return [m for m, _ in reversed(self.commits)][:count]

    def squash_commits(self, count, message):
        if self.squash_error:
            raise self.squash_error
        self.squashed.append((count, message))
        self.unpushed = 1
        return "squashed"

    # deferred mode
    def head_tree(self):
        return "T0"

    def write_tree(self):
        return self.tree

    def diff_trees(self, old, new):
        return f"diff {old}..{new}\n"

    def changed_paths_between(self, old, new):
        return ["a.py"]

    def reset_index(self):
        pass

    def apply_patch_to_index(self, patch):
        pass

    def has_staged_changes(self):
        return True


class FlakyRepo(FakeRepo):
    """Fails to stage once, as when another tool holds the index lock."""

    def __init__(self):
        super().__init__()
        self.pending = "diff"
        self.failures = 1
        self.resets = 0

    def stage_all(self):
        if self.failures:
            self.failures -= 1
            raise GitError("Unable to create '.git/index.lock': File exists.")
        super().stage_all()

    def reset_index(self):
        self.resets += 1


class FakeMessages:
    def __init__(self):
        self.calls = []
        self.squash_calls = []

    def generate(self, diff, recent_commits=(), avoid_messages=()):
        self.calls.append((diff, list(recent_commits), list(avoid_messages)))
        return f"feat: change {len(self.calls)}"

    def squash_message(self, messages):
        self.squash_calls.append(list(messages))
        return "feat: combined"


class TestAutoSession(unittest.TestCase):
    def setUp(self) -> None:
        self.repo = FakeRepo()
        self.messages = FakeMessages()
        self.notices = []

    def session(self, **options):
        return AutoSession(
            self.repo,
            self.messages,
            AutoOptions(**options),
            notify=lambda level, msg: self.notices.append(msg),
        )

    def test_commits_pending_changes(self) -> None:
        session = self.session()
        self.repo.pending = "diff one"
        self.assertTrue(session.handle("tick", set()))
        self.assertEqual(self.repo.commits, [("feat: change 1", None)])
        self.assertEqual(session.stats.committed, 1)
        self.repo.pending = "diff two"
        session.handle("batch", {"a.py"})
        self.assertEqual(self.messages.calls[1][2], ["feat: change 1"])
        self.assertEqual(self.messages.calls[1][1], ["feat: change 1"])

    def test_nothing_pending(self) -> None:
        session = self.session()
        self.assertTrue(session.handle("tick", set()))
        self.assertEqual(self.messages.calls, [])
        self.assertEqual(self.repo.staged, 0)

    def test_stops_at_max_commits(self) -> None:
        session = self.session(max_commits=1)
        self.repo.pending = "diff"
        self.assertFalse(session.handle("startup", set()))
        self.repo.pending = "diff 2"
        self.assertFalse(session.handle("tick", set()))
        self.assertEqual(len(self.repo.commits), 1)
        self.assertIn("Max commits reached. Stopping.", self.notices)

    def test_dry_run_does_not_repeat(self) -> None:
        session = self.session(dry_run=True)
        self.repo.pending = "diff"
        session.handle("tick", set())
        session.handle("tick", set())
        self.assertEqual(self.repo.commits, [])
        self.assertEqual(len(self.messages.calls), 1)
        self.assertEqual(session.stats.previewed, 1)
        self.assertIn("[DRY RUN] Would commit: feat: change 1", self.notices)

    def test_reviewer_can_skip_and_edit(self) -> None:
        answers = [Review(Decision.SKIP), Review(Decision.ACCEPT, message="fix: edited")]
        session = AutoSession(
            self.repo, self.messages, AutoOptions(), notify=lambda *_: None,
            reviewer=lambda message, changes: answers.pop(0),
        )
        self.repo.pending = "diff"
        session.handle("tick", set())
        self.assertEqual(session.stats.skipped, 1)
        session.handle("tick", set())
        self.assertEqual(len(self.messages.calls), 1)
        self.repo.pending = "diff changed"
        session.handle("tick", set())
        self.assertEqual(self.repo.commits, [("fix: edited", None)])

    def test_reviewer_timestamp_is_used(self) -> None:
        when = datetime(2024, 2, 1, 10, tzinfo=timezone.utc)
        session = AutoSession(
            self.repo, self.messages, AutoOptions(), notify=lambda *_: None,
            reviewer=lambda message, changes: Review(Decision.ACCEPT, timestamp=when),
        )
        self.repo.pending = "diff"
        session.handle("tick", set())
        self.assertEqual(self.repo.commits, [("feat: change 1", when)])

    def test_squash_at_threshold(self) -> None:
        session = self.session(squash=True, squash_threshold=2)
        self.repo.pending = "diff 1"
        session.handle("tick", set())
        self.assertEqual(self.repo.squashed, [])
        self.repo.pending = "diff 2"
        session.handle("tick", set())
        self.assertEqual(self.repo.squashed, [(2, "feat: combined")])
        self.assertEqual(self.messages.squash_calls, [["feat: change 1", "feat: change 2"]])
        self.assertEqual(session.stats.squashed, 2)

    def test_squash_failure_is_reported(self) -> None:
        self.repo.squash_error = GitError("protected")
        session = self.session(squash=True, squash_threshold=2)
        for index in range(2):
            self.repo.pending = f"diff {index}"
            self.assertTrue(session.handle("tick", set()))
        self.assertTrue(any("Could not squash 2 commits" in n for n in self.notices))

    def test_squash_leaves_earlier_history_alone(self) -> None:
        self.repo.unpushed = 6
        session = self.session(squash=True, squash_threshold=3)
        self.repo.pending = "diff 1"
        session.handle("tick", set())
        self.assertEqual(self.repo.squashed, [])
        for index in (2, 3):
            self.repo.pending = f"diff {index}"
            session.handle("tick", set())
        self.assertEqual(self.repo.squashed, [(3, "feat: combined")])
        self.assertEqual(
            self.messages.squash_calls,
            [["feat: change 1", "feat: change 2", "feat: change 3"]],
        )

    def test_git_failure_keeps_session_alive(self) -> None:
        repo = FlakyRepo()
        session = AutoSession(repo, self.messages, AutoOptions(), notify=lambda level, msg: self.notices.append(msg))

        def handler(reason, paths):
            keep_going = session.handle(reason, paths)
            return keep_going and session.stats.committed == 0

        summary = asyncio.run(WatchLoop(handler, interval=0.01).run())
        self.assertEqual(summary.iterations, 2)
        self.assertEqual(session.stats.failed, 1)
        self.assertEqual(session.stats.committed, 1)
        self.assertEqual(repo.resets, 1)
        self.assertTrue(any("index.lock" in n for n in self.notices))

    def test_deferred_mode_records_then_flushes(self) -> None:
        session = self.session(defer=True)
        self.repo.tree = "T1"
        session.handle("tick", set())
        self.assertEqual(self.repo.commits, [])
        self.assertEqual(session.stats.deferred, 1)
        session.handle("tick", set())
        self.assertEqual(len(self.messages.calls), 1)
        shas = session.flush_deferred()
        self.assertEqual(len(shas), 1)
        self.assertEqual(self.repo.commits, [("feat: change 1", None)])
        self.assertEqual(session.stats.committed, 1)


if __name__ == "__main__":
    unittest.main()
