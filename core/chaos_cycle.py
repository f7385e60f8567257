"""One round of synthesized-interaction stress testing.

Strategy A runs the generated suite through the repository's isolated shell.
Strategy B hands an injection script to the host (a live render), when the
host offers one.  They run sequentially so crash order is always A then B.
"""
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from core.collaborators import TestRunOptions
from core.dream_types import ChaosStrategy, CrashReport, now_ms
from core.logging_utils import log_json


@dataclass
class ChaosResult:
    report: CrashReport                 # merged view the controller patches from
    reports: List[CrashReport] = field(default_factory=list)  # per strategy, for the DreamLog
    elements: int = 0

    @property
    def is_stable(self) -> bool:
        return self.report.is_stable


class ChaosCycle:
    def __init__(
        self,
        prober,
        repository,
        profile,
        injection_request: Optional[Callable[[str], Optional[CrashReport]]] = None,
        is_aborted: Callable[[], bool] = lambda: False,
        log: Callable[[str], None] = lambda line: None,
    ):
        self.prober = prober
        self.repository = repository
        self.profile = profile
        self.injection_request = injection_request
        self.is_aborted = is_aborted
        self.log = log

    def run(self, file_set) -> ChaosResult:
        elements = self.prober.analyze_ui(file_set)
        self.log(f"Found {len(elements)} interactive elements to test")
        if not elements:
            self.log("No interactive elements found, skipping chaos cycle")
            log_json("INFO", "chaos_no_elements")
            empty = CrashReport.empty()
            return ChaosResult(report=empty, reports=[], elements=0)

        test_code = self.prober.generate_test_suite(elements, file_set, self.profile)
        self.log(f"Generated test suite ({len(test_code)} chars)")

        started = now_ms()
        run = self.prober.run_tests(
            self.repository.execute_shell,
            test_code,
            TestRunOptions(delay=self.profile.action_delay, writer=self.repository.write_file),
        )
        report = CrashReport.build(run.crashes, ChaosStrategy.ISOLATED,
                                   run.tests_run, run.tests_passed, started_at=started)
        reports = [report]
        self.log(f"Strategy A: {report.tests_run} tests run, {len(report.crashes)} crashes found")
        log_json("INFO", "chaos_strategy_a_done",
                 details={"tests_run": report.tests_run, "crashes": len(report.crashes)})

        injected = self._run_injection(elements)
        if injected is not None:
            reports.append(injected)
            report = report.merged_with(injected)

        return ChaosResult(report=report, reports=reports, elements=len(elements))

    def _run_injection(self, elements) -> Optional[CrashReport]:
        if self.injection_request is None:
            self.log("No live render channel, running strategy A only")
            return None
        if self.is_aborted():
            return None
        try:
            script = self.prober.generate_injection_script(elements, self.profile)
            injected = self.injection_request(script)
        except Exception as exc:
            self.log(f"[WARN] Strategy B failed: {exc}")
            log_json("WARN", "chaos_strategy_b_failed", details={"error": str(exc)})
            return None

        if injected is None:
            self.log("Live render unavailable, skipping strategy B")
            log_json("INFO", "chaos_strategy_b_unavailable")
            return None
        self.log(f"Strategy B: {len(injected.crashes)} crashes found")
        log_json("INFO", "chaos_strategy_b_done",
                 details={"tests_run": injected.tests_run, "crashes": len(injected.crashes)})
        return injected
