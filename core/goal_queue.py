import json
import threading
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from core.dream_types import Goal, GoalStatus
from core.logging_utils import log_json


class GoalQueue:
    """
    Ordered collection of campaign goals with a status lifecycle.

    Goals are never removed; the controller transitions them from PENDING to
    a terminal status and the queue keeps the full history.  When a
    ``queue_path`` is given the queue is persisted as JSON after every change
    so directives survive across campaigns.
    """

    def __init__(self, goals: Optional[Iterable[Goal]] = None, queue_path=None):
        """
        Args:
            goals: Initial goals, kept in order.
            queue_path: Optional JSON file the queue is loaded from and saved to.
        """
        self.queue_path = Path(queue_path) if queue_path else None
        self._lock = threading.Lock()
        self._goals: List[Goal] = self._load_queue()
        for goal in goals or []:
            self._goals.append(goal)
        if goals:
            self._save_queue()

    def add(self, goal: Goal):
        """Append a goal and persist immediately."""
        with self._lock:
            self._goals.append(goal)
            self._save_queue()

    def batch_add(self, goals: Iterable[Goal]) -> int:
        """Append several goals with a single flush. Returns how many were added."""
        added = 0
        with self._lock:
            for goal in goals:
                self._goals.append(goal)
                added += 1
            if added:
                self._save_queue()
        return added

    def next_pending(self) -> Optional[Goal]:
        """Return the oldest PENDING goal without changing it, or None."""
        with self._lock:
            for goal in self._goals:
                if goal.status is GoalStatus.PENDING:
                    return goal
        return None

    def in_progress(self) -> Optional[Goal]:
        with self._lock:
            for goal in self._goals:
                if goal.status is GoalStatus.IN_PROGRESS:
                    return goal
        return None

    def get(self, goal_id: str) -> Optional[Goal]:
        with self._lock:
            for goal in self._goals:
                if goal.id == goal_id:
                    return goal
        return None

    def goals(self) -> List[Goal]:
        """Shallow copy of all goals in queue order."""
        with self._lock:
            return list(self._goals)

    def has_pending(self) -> bool:
        return self.next_pending() is not None

    def pending_count(self) -> int:
        return self.counts()[GoalStatus.PENDING.value]

    def counts(self) -> Dict[str, int]:
        counts = {status.value: 0 for status in GoalStatus}
        with self._lock:
            for goal in self._goals:
                counts[goal.status.value] += 1
        return counts

    def __len__(self) -> int:
        with self._lock:
            return len(self._goals)

    def save(self):
        """Persist the current statuses (call after a goal transition)."""
        with self._lock:
            self._save_queue()

    def _save_queue(self):
        if self.queue_path is None:
            return
        self.queue_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.queue_path, 'w') as f:
            json.dump([g.to_dict() for g in self._goals], f, indent=4)

    def _load_queue(self) -> List[Goal]:
        """
        Loads the goal queue from the configured JSON file.
        If the file does not exist or is corrupted, starts with an empty queue.
        """
        if self.queue_path is None or not self.queue_path.exists():
            return []
        with open(self.queue_path, 'r') as f:
            try:
                raw = json.load(f)
                goals = [Goal.from_dict(item) for item in raw]
            except (json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
                log_json("WARN", "goal_queue_corrupted",
                         details={"path": str(self.queue_path), "error": str(exc),
                                  "message": "Starting with empty queue."})
                return []
        # A goal left IN_PROGRESS by a crashed process never finished; retry it.
        for goal in goals:
            if goal.status is GoalStatus.IN_PROGRESS:
                goal.status = GoalStatus.PENDING
        return goals
