import unittest

from commit_weaver.grouping.fallback import FileGrouper, PerUnitGrouper
from commit_weaver.grouping.group_model import UnitSummary


def unit(unit_id, path, preview="", new=False, deleted=False, context=""):
    return UnitSummary(
        id=unit_id,
        file_path=path,
        is_new_file=new,
        is_deleted=deleted,
        preview=preview,
        context=context,
    )


class TestFileGrouper(unittest.TestCase):
    def setUp(self) -> None:
        self.units = [
            unit(0, "README.md", "+Intro"),
            unit(1, "src/a.py", "+def a():"),
            unit(2, "src/a.py", "+def b():"),
            unit(3, "Cargo.toml", "+serde = 1"),
        ]

    def test_one_group_per_file_in_dependency_order(self) -> None:
        result = FileGrouper().group(self.units)
        self.assertEqual([p.unit_ids for p in result.plans], [[3], [1, 2], [0]])
        self.assertEqual(
            [p.message for p in result.plans],
            ["build: update Cargo.toml", "feat: add a.py", "docs: update README.md"],
        )
        self.assertEqual(result.missing, [])

    def test_avoid_messages_are_not_reused(self) -> None:
        plans = FileGrouper().propose(self.units, avoid_messages=["build: update Cargo.toml"])
        self.assertEqual(plans[0].message, "build: update Cargo.toml (part 2)")

    def test_duplicate_messages_get_part_suffix(self) -> None:
        units = [unit(0, "src/a.py", "+def x():"), unit(1, "pkg/a.py", "+def y():")]
        plans = FileGrouper().propose(units)
        self.assertEqual([p.message for p in plans], ["feat: add a.py", "feat: add a.py (part 2)"])

    def test_target_merges_groups(self) -> None:
        result = FileGrouper().group(self.units, target=2)
        self.assertEqual(len(result.plans), 2)
        self.assertEqual(sorted(i for p in result.plans for i in p.unit_ids), [0, 1, 2, 3])


class TestPerUnitGrouper(unittest.TestCase):
    def test_new_file_chunk_message_carries_context(self) -> None:
        units = [
            unit(0, "src/a.py", "def foo():\n    pass", new=True, context="function foo"),
            unit(1, "src/a.py", "class Bar:\n    x = 1", new=True, context="type Bar"),
        ]
        plans = PerUnitGrouper().propose(units)
        self.assertEqual(
            [p.message for p in plans],
            ["feat: add a.py (function foo)", "feat: add a.py (type Bar)"],
        )
        self.assertEqual([p.unit_ids for p in plans], [[0], [1]])

    def test_whole_file_context_not_repeated(self) -> None:
        units = [
            unit(0, "src/b.py", "-x = 1", deleted=True, context="full file"),
            unit(1, "src/c.py", "-x = 1", deleted=True, context="full file"),
        ]
        plans = PerUnitGrouper().propose(units)
        self.assertEqual([p.message for p in plans], ["refactor: remove b.py", "refactor: remove c.py"])

    def test_repeated_messages_are_numbered(self) -> None:
        units = [unit(i, "src/a.py", "x = 1", new=True) for i in range(3)]
        plans = PerUnitGrouper().propose(units)
        self.assertEqual(len({p.message for p in plans}), 3)
        self.assertTrue(plans[2].message.endswith("(part 3)"))


if __name__ == "__main__":
    unittest.main()
