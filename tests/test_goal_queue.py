import json
import os
import unittest
from pathlib import Path

from core.dream_types import Goal, GoalSource, GoalStatus
from core.goal_queue import GoalQueue


class TestGoalQueue(unittest.TestCase):

    def setUp(self):
        self.test_queue_path = Path(__file__).parent / "test_goal_queue.json"
        if self.test_queue_path.exists():
            os.remove(self.test_queue_path)
        self.goal_queue = GoalQueue(queue_path=self.test_queue_path)

    def tearDown(self):
        if self.test_queue_path.exists():
            os.remove(self.test_queue_path)

    def test_init_and_load_empty(self):
        self.assertFalse(self.goal_queue.has_pending())
        self.assertEqual(len(self.goal_queue), 0)

    def test_add_goal_persists(self):
        goal = Goal.create("Implement feature A")
        self.goal_queue.add(goal)
        self.assertTrue(self.goal_queue.has_pending())

        with open(self.test_queue_path, 'r') as f:
            content = json.load(f)
        self.assertEqual(content[0]["prompt"], "Implement feature A")
        self.assertEqual(content[0]["status"], "PENDING")

    def test_next_pending_is_fifo_and_non_destructive(self):
        first = Goal.create("Implement feature A")
        second = Goal.create("Fix bug B")
        self.goal_queue.batch_add([first, second])

        self.assertIs(self.goal_queue.next_pending(), first)
        self.assertIs(self.goal_queue.next_pending(), first)
        first.mark_failed("nope")
        self.assertIs(self.goal_queue.next_pending(), second)
        self.assertEqual(len(self.goal_queue), 2)

    def test_counts_and_in_progress(self):
        a, b, c = Goal.create("a"), Goal.create("b"), Goal.create("c")
        self.goal_queue.batch_add([a, b, c])
        a.mark_completed()
        b.mark_in_progress()

        self.assertIs(self.goal_queue.in_progress(), b)
        self.assertEqual(self.goal_queue.counts(),
                         {"PENDING": 1, "IN_PROGRESS": 1, "COMPLETED": 1, "FAILED": 0})
        self.assertEqual(self.goal_queue.pending_count(), 1)

    def test_persistence_round_trip(self):
        goal = Goal.create("Goal 1 for persistence", GoalSource.SPEC)
        self.goal_queue.add(goal)
        goal.mark_failed("Build failed: x")
        self.goal_queue.save()

        reloaded = GoalQueue(queue_path=self.test_queue_path).get(goal.id)
        self.assertEqual(reloaded.source, GoalSource.SPEC)
        self.assertEqual(reloaded.status, GoalStatus.FAILED)
        self.assertEqual(reloaded.error_message, "Build failed: x")

    def test_in_progress_goal_is_retried_after_reload(self):
        goal = Goal.create("interrupted")
        self.goal_queue.add(goal)
        goal.mark_in_progress()
        self.goal_queue.save()

        reloaded = GoalQueue(queue_path=self.test_queue_path)
        self.assertEqual(reloaded.get(goal.id).status, GoalStatus.PENDING)

    def test_corrupted_file_starts_empty(self):
        self.test_queue_path.write_text("{not json")
        self.assertEqual(len(GoalQueue(queue_path=self.test_queue_path)), 0)

    def test_in_memory_queue_writes_nothing(self):
        queue = GoalQueue([Goal.create("x")])
        queue.save()
        self.assertEqual(len(queue), 1)
        self.assertFalse(self.test_queue_path.exists())


if __name__ == "__main__":
    unittest.main()
