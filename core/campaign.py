"""
Campaign controller: the self-healing maintenance loop.

    IDLE → LOADING → DISCOVERING → {BUILDING_GOAL | CHAOS_TESTING}
         → DIAGNOSING → PATCHING → VERIFYING → LOGGING → DONE

After mounting the repository and running the discovery passes once, the
priority loop drains pending goals through the
:class:`~core.verification.VerificationPipeline`; when the queue is empty it
runs one :class:`~core.chaos_cycle.ChaosCycle` and routes each crash through
:class:`~core.diagnosis.DiagnosisAndPatch`.  Two circuit breakers from the
:class:`~core.chaos_profile.ChaosProfile` bound the run: accepted fixes
(goals + verified patches) and wall-clock session time.

Cancellation is cooperative.  :meth:`CampaignController.stop` sets a flag
that is checked between collaborator calls; a goal or patch transaction
already in flight runs to completion so the FileSet is never left
half-applied.
"""
import threading
import time
from typing import Callable, List, Optional, Union

from core.chaos_cycle import ChaosCycle, ChaosResult
from core.chaos_profile import ChaosProfile, get_chaos_profile, validate_profile
from core.collaborators import CampaignHooks
from core.config_manager import config as default_config
from core.dependency_graph import DependencyGraphBuilder
from core.diagnosis import DiagnosisAndPatch
from core.dream_types import (
    CampaignPhase,
    Crash,
    CrashReport,
    DiscoveryReport,
    DreamLog,
    DreamStats,
    Goal,
    GoalSource,
    Patch,
    StopReason,
    new_id,
    now_ms,
)
from core.file_set import FileSet
from core.goal_queue import GoalQueue
from core.logging_utils import log_json
from core.stats_emitter import StatsEmitter
from core.verification import VerificationPipeline


class CampaignController:
    """Runs one maintenance campaign against a repository.

    Every collaborator is injected; see :mod:`core.collaborators` for the
    interfaces.  ``spec_auditor``, ``feature_discoverer`` and
    ``workflow_auditor`` are optional discovery passes; a missing one is
    simply skipped.
    """

    def __init__(
        self,
        solver,
        builder,
        critic,
        prober,
        impact_analyzer=None,
        repository=None,
        profile: Optional[ChaosProfile] = None,
        profile_name: Optional[str] = None,
        hooks: Optional[CampaignHooks] = None,
        goal_queue: Optional[GoalQueue] = None,
        spec_auditor=None,
        feature_discoverer=None,
        workflow_auditor=None,
        config=None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if repository is None:
            raise ValueError("CampaignController requires a repository")
        self.config = config or default_config
        self.solver = solver
        self.builder = builder
        self.critic = critic
        self.prober = prober
        self.impact_analyzer = impact_analyzer or DependencyGraphBuilder()
        self.repository = repository
        self.profile = validate_profile(
            profile or get_chaos_profile(profile_name or self.config.get("chaos_profile")))
        self.hooks = hooks or CampaignHooks()
        self.goal_queue = goal_queue if goal_queue is not None else GoalQueue(
            queue_path=self.config.get("goal_queue_path"))
        self.spec_auditor = spec_auditor
        self.feature_discoverer = feature_discoverer
        self.workflow_auditor = workflow_auditor
        self.clock = clock

        self.pipeline = VerificationPipeline(
            solver, builder, critic, prober, repository,
            config=self.config, action_delay=self.profile.action_delay)
        self.diagnosis = DiagnosisAndPatch(
            solver, builder, self.impact_analyzer, repository, config=self.config)

        self._aborted = threading.Event()
        self._phase = CampaignPhase.IDLE
        self._file_set = FileSet()
        self._stats: Optional[StatsEmitter] = None
        self._reset()

    def _reset(self):
        self._fix_count = 0
        self.goals_completed = 0
        self.bugs_found = 0
        self.bugs_fixed = 0
        self.discoveries = 0
        self.crash_reports: List[CrashReport] = []
        self.patches: List[Patch] = []
        self.discovery_report: Optional[DiscoveryReport] = None
        self.last_log: Optional[DreamLog] = None
        self._started_at = self.clock()
        self._started_wall = now_ms()

    # ── Public surface ───────────────────────────────────────────────────────

    @property
    def phase(self) -> CampaignPhase:
        return self._phase

    @property
    def fix_count(self) -> int:
        return self._fix_count

    @property
    def file_set(self) -> FileSet:
        return self._file_set

    @property
    def aborted(self) -> bool:
        return self._aborted.is_set()

    def stop(self):
        """Request a cooperative stop. Safe to call from any thread, any number of times."""
        if self._aborted.is_set():
            return
        self._aborted.set()
        self._log("Campaign stop requested")
        log_json("INFO", "campaign_stop_requested")

    def add_goal(self, goal: Union[Goal, str]) -> Goal:
        """Append a goal (or a prompt, as a USER goal); safe to call mid-run."""
        if isinstance(goal, str):
            goal = Goal.create(goal, GoalSource.USER)
        self.goal_queue.add(goal)
        self._notify_queue()
        self._log(f'Goal added: "{goal.prompt[:60]}"')
        log_json("INFO", "goal_added", goal=goal.id, details={"source": goal.source.value})
        return goal

    def run(self, repo_url: str, credential: Optional[str] = None, branch: str = "main") -> DreamLog:
        """Run the campaign to completion and return its :class:`DreamLog`."""
        self._reset()
        self._aborted.clear()
        self._stats = StatsEmitter(self.stats, self.hooks.on_stats_update,
                                   interval=self.config.get("stats_interval"))
        self._stats.start()
        log_json("INFO", "campaign_started",
                 details={"repo": repo_url, "branch": branch, "profile": self.profile.name})

        try:
            self._set_phase(CampaignPhase.LOADING)
            self._log(f"Loading repository: {repo_url} (branch: {branch})")
            self._file_set = self.repository.mount(repo_url, credential, branch)
            self._log(f"Repository loaded: {len(self._file_set)} files mounted")
            if self.aborted:
                return self._finish(repo_url, StopReason.USER_STOPPED)

            if not self._discover():
                return self._finish(repo_url, StopReason.USER_STOPPED)

            return self._finish(repo_url, self._priority_loop())
        except Exception as exc:
            self._log(f"Campaign error: {exc}")
            log_json("ERROR", "campaign_error", details={"error": str(exc), "type": type(exc).__name__})
            return self._finish(repo_url, StopReason.ERROR)
        finally:
            self._stats.stop()
            self._set_phase(CampaignPhase.DONE)

    # ── Budget ───────────────────────────────────────────────────────────────

    def elapsed(self) -> float:
        return self.clock() - self._started_at

    def time_expired(self) -> bool:
        return self.elapsed() >= self.profile.session_duration

    def within_budget(self) -> bool:
        if self.aborted:
            return False
        if self._fix_count >= self.profile.max_fixes_per_cycle:
            return False
        return not self.time_expired()

    def stats(self) -> DreamStats:
        current = self.goal_queue.in_progress()
        return DreamStats(
            phase=self._phase,
            elapsed_ms=int(self.elapsed() * 1000),
            goals_completed=self.goals_completed,
            bugs_found=self.bugs_found,
            bugs_fixed=self.bugs_fixed,
            discoveries=self.discoveries,
            budget_remaining=self.profile.max_fixes_per_cycle - self._fix_count,
            current_goal=current.prompt if current else None,
        )

    # ── Discovery ────────────────────────────────────────────────────────────

    def _discover(self) -> bool:
        """Run each discovery pass once. Returns False if a stop was observed."""
        self._set_phase(CampaignPhase.DISCOVERING)
        for name, step in (("spec_audit", self._audit_spec),
                           ("feature_discovery", self._discover_features),
                           ("temporal_audit", self._audit_workflows)):
            try:
                step()
            except Exception as exc:
                self._log(f"[WARN] {name.replace('_', ' ').capitalize()} failed: {exc}")
                log_json("WARN", "discovery_step_failed", details={"step": name, "error": str(exc)})
            if self.aborted:
                return False
        return True

    def _find_spec_file(self):
        for name in self.config.get_list("spec_files"):
            for entry in self._file_set:
                if entry.path == name or entry.path.endswith("/" + name):
                    return entry
        return None

    def _audit_spec(self):
        if self.spec_auditor is None:
            return
        spec_file = self._find_spec_file()
        if spec_file is None:
            return
        self._log(f"Found requirements document: {spec_file.path}. Running audit...")
        goals = self.spec_auditor.audit(spec_file.content, self._file_set)
        if not goals:
            self._log("Spec audit found no gaps")
            return
        self.goal_queue.batch_add(goals)
        self._notify_queue()
        self._log(f"Spec audit added {len(goals)} goals from requirements")
        log_json("INFO", "spec_audit_goals_added", details={"count": len(goals), "spec": spec_file.path})

    def _discover_features(self):
        if self.feature_discoverer is None:
            return
        self._log("Running feature discovery...")
        report = self.feature_discoverer.scan(self._file_set)
        self.discovery_report = report
        self.discoveries = len(report.actionable)
        self._log(f"Discovery complete: {len(report.discoveries)} features scanned, "
                  f"{self.discoveries} need wiring")
        log_json("INFO", "feature_discovery_done",
                 details={"scanned": report.scanned_files, "features": len(report.discoveries),
                          "actionable": self.discoveries})
        self.hooks.notify("on_discovery_report", report)

        goals = self.feature_discoverer.wiring_goals(report)
        if goals:
            self.goal_queue.batch_add(goals)
            self._notify_queue()
            self._log(f"Auto-queued {len(goals)} wiring goals from discoveries")

    def _audit_workflows(self):
        if self.workflow_auditor is None:
            return
        self._log("Running temporal workflow audit...")
        workflows = self.workflow_auditor.discover_workflows(self._file_set)
        if not workflows:
            self._log("No temporal logic found, skipping workflow simulations")
            return

        fix_goals = []
        for workflow in workflows:
            if self.aborted:
                break
            result = self.workflow_auditor.run_workflow(workflow)
            status = "PASS" if result.success else "FAIL"
            self._log(f"  {status} {workflow.name} ({result.steps_passed}/{result.total_steps} steps)")
            if not result.success and result.failure_reason:
                fix_goals.append(Goal.create(
                    f"[Temporal Fix] {workflow.name}: {result.failure_reason}", GoalSource.TEMPORAL))

        if fix_goals:
            self.goal_queue.batch_add(fix_goals)
            self._notify_queue()
        log_json("INFO", "temporal_audit_done",
                 details={"workflows": len(workflows), "fix_goals": len(fix_goals)})

    # ── Priority loop ────────────────────────────────────────────────────────

    def _priority_loop(self) -> StopReason:
        while self.within_budget():
            goal = self.goal_queue.next_pending()
            if goal is not None:
                self._execute_goal(goal)
                continue

            chaos = self._run_chaos_cycle()
            if self.aborted:
                break
            if chaos.is_stable:
                self._log("Chaos cycle found no crashes. App is stable!")
                return StopReason.ALL_STABLE

            for crash in chaos.report.crashes:
                if not self.within_budget():
                    break
                self._patch(crash)

        if self.aborted:
            return StopReason.USER_STOPPED
        reason = StopReason.TIME_LIMIT if self.time_expired() else StopReason.BUDGET_EXHAUSTED
        self._log(f"Campaign ending: {reason.value}")
        return reason

    def _execute_goal(self, goal: Goal):
        self._set_phase(CampaignPhase.BUILDING_GOAL)
        self._log(f'Executing goal: "{goal.prompt[:80]}"')
        outcome = self.pipeline.execute(goal, self._file_set, self._goal_context(), self._set_phase,
                                        on_started=lambda started: self._notify_queue())
        if outcome.accepted:
            self.goals_completed += 1
            self._fix_count += 1
            functional = "skipped" if outcome.soft_pass else "PASS"
            self._log(f"Goal verified (Visual: {outcome.visual_score}/10, Func: {functional})")
        else:
            self._log(f"Goal failed: {outcome.error}")
        self.goal_queue.save()
        self._notify_queue()

    def _run_chaos_cycle(self) -> ChaosResult:
        self._set_phase(CampaignPhase.CHAOS_TESTING)
        self._log("Starting chaos cycle...")
        cycle = ChaosCycle(
            self.prober,
            self.repository,
            self.profile,
            injection_request=self.hooks.on_injection_test_request,
            is_aborted=lambda: self.aborted,
            log=self._log,
        )
        result = cycle.run(self._file_set)
        self.crash_reports.extend(result.reports)
        self.bugs_found += sum(len(r.crashes) for r in result.reports)
        log_json("INFO", "chaos_cycle_done",
                 details={"strategy": result.report.strategy.value,
                          "tests_run": result.report.tests_run,
                          "crashes": len(result.report.crashes)})
        return result

    def _patch(self, crash: Crash):
        outcome = self.diagnosis.diagnose_and_patch(crash, self._file_set, self._set_phase, self._log)
        if outcome.patch is not None:
            self.patches.append(outcome.patch)
        if outcome.verified:
            self.bugs_fixed += 1
            self._fix_count += 1

    def _goal_context(self) -> str:
        paths = self._file_set.paths()
        limit = self.config.get("context_file_limit")
        lines = [f"Project files ({len(paths)} total):"]
        lines.extend(paths[:limit])
        if len(paths) > limit:
            lines.append(f"...and {len(paths) - limit} more")
        lines.append("")
        main = self._file_set.find_main_file(self.config.get_list("main_file_suffixes"))
        if main is not None:
            lines.append(f"Main app code ({main.path}):\n{main.content[:self.config.get('context_main_chars')]}")
        return "\n".join(lines)

    # ── Notifications ────────────────────────────────────────────────────────

    def _set_phase(self, phase: CampaignPhase):
        self._phase = phase
        self.hooks.notify("on_phase_change", phase)
        if self._stats is not None:
            self._stats.emit_now()

    def _log(self, message: str):
        self.hooks.notify("on_log", f"[{time.strftime('%H:%M:%S')}] {message}")

    def _notify_queue(self):
        self.hooks.notify("on_goal_queue_update", self.goal_queue.goals())

    def _finish(self, repo_url: str, stop_reason: StopReason) -> DreamLog:
        self._set_phase(CampaignPhase.LOGGING)
        log = DreamLog(
            id=new_id("dream"),
            started_at=self._started_wall,
            ended_at=now_ms(),
            goals_completed=self.goals_completed,
            bugs_found=self.bugs_found,
            bugs_fixed=self.bugs_fixed,
            discoveries=self.discoveries,
            crash_reports=list(self.crash_reports),
            patches=list(self.patches),
            profile_used=self.profile.name,
            repo_url=repo_url,
            stop_reason=stop_reason,
        )
        self.last_log = log
        log_json("INFO", "campaign_finished",
                 details={"stop_reason": stop_reason.value, "goals_completed": self.goals_completed,
                          "bugs_found": self.bugs_found, "bugs_fixed": self.bugs_fixed})
        return log
