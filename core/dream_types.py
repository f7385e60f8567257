"""Data model of a maintenance campaign.

Goals, crash reports, patches and the terminal :class:`DreamLog` are plain
dataclasses; every closed vocabulary (goal status and source, campaign
phase, chaos strategy, stop reason) is an :class:`~enum.Enum` so callers
branch on members rather than loose strings.
"""
from __future__ import annotations

import dataclasses
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


def new_id(prefix: str) -> str:
    return f"{prefix}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:6]}"


def now_ms() -> int:
    return int(time.time() * 1000)


class GoalStatus(Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class GoalSource(Enum):
    DISCOVERY = "discovery"
    SPEC = "spec"
    TEMPORAL = "temporal"
    USER = "user"


class CampaignPhase(Enum):
    IDLE = "IDLE"
    LOADING = "LOADING"
    DISCOVERING = "DISCOVERING"
    BUILDING_GOAL = "BUILDING_GOAL"
    CHAOS_TESTING = "CHAOS_TESTING"
    DIAGNOSING = "DIAGNOSING"
    PATCHING = "PATCHING"
    VERIFYING = "VERIFYING"
    LOGGING = "LOGGING"
    DONE = "DONE"


class ChaosStrategy(Enum):
    ISOLATED = "strategyA"   # sandboxed test runner
    INJECTION = "strategyB"  # script injected into a live render
    BOTH = "both"


class StopReason(Enum):
    ALL_STABLE = "all_stable"
    BUDGET_EXHAUSTED = "budget_exhausted"
    TIME_LIMIT = "time_limit"
    USER_STOPPED = "user_stopped"
    ERROR = "error"


@dataclass
class Goal:
    """One unit of autonomous work with a terminal COMPLETED/FAILED outcome."""
    id: str
    prompt: str
    status: GoalStatus = GoalStatus.PENDING
    source: GoalSource = GoalSource.USER
    created_at: int = field(default_factory=now_ms)
    completed_at: Optional[int] = None
    error_message: Optional[str] = None

    @classmethod
    def create(cls, prompt: str, source: GoalSource = GoalSource.USER) -> "Goal":
        return cls(id=new_id(source.value), prompt=prompt, source=source)

    @property
    def is_terminal(self) -> bool:
        return self.status in (GoalStatus.COMPLETED, GoalStatus.FAILED)

    def mark_in_progress(self) -> None:
        self.status = GoalStatus.IN_PROGRESS
        self.error_message = None

    def mark_completed(self) -> None:
        self.status = GoalStatus.COMPLETED
        self.completed_at = now_ms()

    def mark_failed(self, message: str) -> None:
        self.status = GoalStatus.FAILED
        self.error_message = message

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "prompt": self.prompt,
            "status": self.status.value,
            "source": self.source.value,
            "createdAt": self.created_at,
            "completedAt": self.completed_at,
            "errorMessage": self.error_message,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Goal":
        return cls(
            id=d["id"],
            prompt=d["prompt"],
            status=GoalStatus(d.get("status", "PENDING")),
            source=GoalSource(d.get("source", "user")),
            created_at=d.get("createdAt") or now_ms(),
            completed_at=d.get("completedAt"),
            error_message=d.get("errorMessage"),
        )


@dataclass
class FileEntry:
    path: str
    content: str


@dataclass
class Crash:
    """A runtime failure observed while simulating user interaction."""
    error: str
    stack_trace: Optional[str] = None
    file: Optional[str] = None
    line: Optional[int] = None
    test_name: Optional[str] = None
    severity: str = "medium"
    steps_to_reproduce: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class CrashReport:
    id: str
    crashes: tuple
    timestamp: int
    duration: int
    strategy: ChaosStrategy
    tests_run: int
    tests_passed: int

    @classmethod
    def build(
        cls,
        crashes: List[Crash],
        strategy: ChaosStrategy,
        tests_run: int,
        tests_passed: int,
        started_at: Optional[int] = None,
        report_id: Optional[str] = None,
    ) -> "CrashReport":
        now = now_ms()
        started = started_at if started_at is not None else now
        return cls(
            id=report_id or new_id("chaos"),
            crashes=tuple(crashes),
            timestamp=started,
            duration=max(0, now - started),
            strategy=strategy,
            tests_run=tests_run,
            tests_passed=tests_passed,
        )

    @classmethod
    def empty(cls) -> "CrashReport":
        return cls.build([], ChaosStrategy.ISOLATED, 0, 0, report_id=new_id("chaos_empty"))

    @property
    def is_stable(self) -> bool:
        return not self.crashes

    def merged_with(self, other: "CrashReport") -> "CrashReport":
        """Return a new report with *other*'s crashes appended after ours."""
        return dataclasses.replace(
            self,
            crashes=self.crashes + tuple(other.crashes),
            strategy=ChaosStrategy.BOTH,
            tests_run=self.tests_run + other.tests_run,
            tests_passed=self.tests_passed + other.tests_passed,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "crashes": [dataclasses.asdict(c) for c in self.crashes],
            "timestamp": self.timestamp,
            "duration": self.duration,
            "strategy": self.strategy.value,
            "testsRun": self.tests_run,
            "testsPassed": self.tests_passed,
        }


@dataclass
class Patch:
    file: str
    before: str
    after: str
    crash_id: str
    verified: bool
    applied_at: int = field(default_factory=now_ms)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "file": self.file,
            "before": self.before,
            "after": self.after,
            "crashId": self.crash_id,
            "verified": self.verified,
            "appliedAt": self.applied_at,
        }


@dataclass
class DreamStats:
    phase: CampaignPhase
    elapsed_ms: int
    goals_completed: int
    bugs_found: int
    bugs_fixed: int
    discoveries: int
    budget_remaining: int
    current_goal: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        d = dataclasses.asdict(self)
        d["phase"] = self.phase.value
        return d


@dataclass
class DreamLog:
    """Terminal summary of one campaign run, built once when run() exits."""
    id: str
    started_at: int
    ended_at: int
    goals_completed: int
    bugs_found: int
    bugs_fixed: int
    discoveries: int
    crash_reports: List[CrashReport]
    patches: List[Patch]
    profile_used: str
    repo_url: str
    stop_reason: StopReason

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "startedAt": self.started_at,
            "endedAt": self.ended_at,
            "goalsCompleted": self.goals_completed,
            "bugsFound": self.bugs_found,
            "bugsFixed": self.bugs_fixed,
            "discoveries": self.discoveries,
            "crashReports": [r.to_dict() for r in self.crash_reports],
            "patches": [p.to_dict() for p in self.patches],
            "profileUsed": self.profile_used,
            "repoUrl": self.repo_url,
            "stopReason": self.stop_reason.value,
        }


class FeatureStatus(Enum):
    ACTIVE = "ACTIVE"
    PARTIALLY_CONNECTED = "PARTIALLY_CONNECTED"
    DISCONNECTED = "DISCONNECTED"


@dataclass
class DiscoveredFeature:
    file: str
    status: FeatureStatus
    consumers: List[str] = field(default_factory=list)
    inferred_purpose: str = ""
    suggested_action: str = ""


@dataclass
class DiscoveryReport:
    scanned_files: int
    discoveries: List[DiscoveredFeature]
    timestamp: int = field(default_factory=now_ms)
    duration: int = 0

    def count(self, status: FeatureStatus) -> int:
        return sum(1 for d in self.discoveries if d.status is status)

    @property
    def actionable(self) -> List[DiscoveredFeature]:
        return [d for d in self.discoveries if d.status is not FeatureStatus.ACTIVE]
