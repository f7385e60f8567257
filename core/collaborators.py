"""
Interfaces of the external collaborators a campaign drives.

The controller never reaches for ambient singletons: it is constructed with
one object per role below and talks to it only through these methods.  Any
object with matching methods satisfies a protocol; tests use the fakes in
``tests/fakes/fake_collaborators.py``.

Roles:
  Solver            natural-language → code agent
  Builder           compile/build sandbox
  Critic            screenshot-based visual judge
  Prober            UI analysis, test synthesis and test execution
  ImpactAnalyzer    source dependency graph
  Repository        checkout, file persistence and shell access
  WorkflowAuditor   temporal workflow discovery and simulation
  SpecAuditor / FeatureDiscoverer   goal-producing discovery passes
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol

from core.dream_types import (
    CampaignPhase,
    Crash,
    CrashReport,
    DiscoveryReport,
    DreamStats,
    Goal,
)
from core.file_set import FileSet
from core.logging_utils import log_json


# ---------------------------------------------------------------------------
# Request / result types
# ---------------------------------------------------------------------------

@dataclass
class SolveRequest:
    description: str
    context: str
    constraints: List[str] = field(default_factory=list)
    id: Optional[str] = None


@dataclass
class SolveResult:
    success: bool
    output: Optional[str] = None
    error: Optional[str] = None
    retry_suggestion: Optional[str] = None


@dataclass
class BuildError:
    message: str
    file: Optional[str] = None
    line: Optional[int] = None


@dataclass
class BuildResult:
    valid: bool
    errors: List[BuildError] = field(default_factory=list)

    def error_text(self, sep: str = "; ") -> str:
        return sep.join(e.message for e in self.errors) or "unknown build error"


class Verdict(Enum):
    ACCEPT = "accept"
    NEEDS_IMPROVEMENT = "needsImprovement"
    REGENERATE = "regenerate"


@dataclass
class CritiqueIssue:
    description: str
    severity: str = "medium"


@dataclass
class Critique:
    verdict: Verdict
    overall_score: float
    issues: List[CritiqueIssue] = field(default_factory=list)


@dataclass
class InteractableElement:
    type: str        # button | input | link | form | select | textarea | checkbox | radio
    selector: str
    label: str = ""
    file: str = ""
    line: int = 0
    handlers: List[str] = field(default_factory=list)


@dataclass
class TestRunOptions:
    __test__ = False  # not a pytest class

    delay: int
    writer: Callable[[str, str], Any]


@dataclass
class TestRunResult:
    __test__ = False

    crashes: List[Crash] = field(default_factory=list)
    tests_run: int = 0
    tests_passed: int = 0


@dataclass
class WorkflowDefinition:
    id: str
    name: str
    steps: List[Dict[str, Any]] = field(default_factory=list)
    source_file: Optional[str] = None


@dataclass
class WorkflowResult:
    name: str
    success: bool
    steps_passed: int
    total_steps: int
    failure_reason: Optional[str] = None


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------

class Solver(Protocol):
    def solve(self, request: SolveRequest) -> SolveResult: ...


class Builder(Protocol):
    def validate(self, file_set: FileSet) -> BuildResult: ...


class Critic(Protocol):
    def evaluate(self, file_set: FileSet, prompt: str) -> Critique: ...


class Prober(Protocol):
    def analyze_ui(self, file_set: FileSet) -> List[InteractableElement]: ...
    def generate_test_suite(self, elements: List[InteractableElement], file_set: FileSet, profile) -> str: ...
    def generate_test_for_feature(self, prompt: str, file_set: FileSet) -> str: ...
    def run_tests(self, executor: Callable[[str], str], test_code: str, options: TestRunOptions) -> TestRunResult: ...
    def generate_injection_script(self, elements: List[InteractableElement], profile) -> str: ...


class ImpactGraph(Protocol):
    def impacted_by(self, file: str) -> List[str]: ...


class ImpactAnalyzer(Protocol):
    def build_graph(self, file_set: FileSet) -> ImpactGraph: ...


class Repository(Protocol):
    def mount(self, url: str, credential: Optional[str], branch: str) -> FileSet: ...
    def write_file(self, path: str, content: str) -> None: ...
    def execute_shell(self, cmd: str) -> str: ...


class WorkflowAuditor(Protocol):
    def discover_workflows(self, file_set: FileSet) -> List[WorkflowDefinition]: ...
    def run_workflow(self, workflow: WorkflowDefinition) -> WorkflowResult: ...


class SpecAuditor(Protocol):
    def audit(self, spec_content: str, file_set: FileSet) -> List[Goal]: ...


class FeatureDiscoverer(Protocol):
    def scan(self, file_set: FileSet) -> DiscoveryReport: ...
    def wiring_goals(self, report: DiscoveryReport) -> List[Goal]: ...


# ---------------------------------------------------------------------------
# Host callbacks
# ---------------------------------------------------------------------------

@dataclass
class CampaignHooks:
    """Observability and injection points supplied by the host.

    Every callback is optional.  Errors raised by the notification callbacks
    are logged and never interrupt the campaign; ``on_injection_test_request``
    is called by the chaos cycle, which handles its errors itself.
    Returning ``None`` from it disables strategy B for that cycle.
    """
    on_log: Optional[Callable[[str], None]] = None
    on_phase_change: Optional[Callable[[CampaignPhase], None]] = None
    on_stats_update: Optional[Callable[[DreamStats], None]] = None
    on_goal_queue_update: Optional[Callable[[List[Goal]], None]] = None
    on_discovery_report: Optional[Callable[[DiscoveryReport], None]] = None
    on_injection_test_request: Optional[Callable[[str], Optional[CrashReport]]] = None

    def notify(self, name: str, *args) -> None:
        """Invoke callback *name* if set; swallow and log its errors."""
        callback = getattr(self, name, None)
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as exc:
            log_json("WARN", "campaign_hook_failed",
                     details={"hook": name, "error": str(exc)})
