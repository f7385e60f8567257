"""Crash diagnosis: one scoped patch per crash, verified by a rebuild."""
from dataclasses import dataclass
from typing import Callable, List, Optional

from core.collaborators import SolveRequest
from core.config_manager import config as default_config
from core.dream_types import CampaignPhase, Crash, Patch, new_id
from core.file_set import parse_solver_output
from core.file_transaction import FileTransaction
from core.logging_utils import log_json

PATCH_CONSTRAINTS = ["minimum necessary diff", "preserve public API and other features"]


@dataclass
class PatchOutcome:
    patch: Optional[Patch] = None
    error: Optional[str] = None

    @property
    def verified(self) -> bool:
        return self.patch is not None and self.patch.verified


class DiagnosisAndPatch:
    """
    Turns a :class:`~core.dream_types.Crash` into at most one :class:`Patch`.

    The Solver sees the error, stack trace, origin file, a bounded preview of
    the files that depend on the origin (from the impact analyzer) and the
    head of the origin file's code.  A patch that fails to build is rolled
    back but still recorded with ``verified=False``.
    """

    def __init__(self, solver, builder, impact_analyzer, repository, config=None):
        self.solver = solver
        self.builder = builder
        self.impact_analyzer = impact_analyzer
        self.repository = repository
        self.config = config or default_config

    def diagnose_and_patch(
        self,
        crash: Crash,
        file_set,
        set_phase: Optional[Callable[[CampaignPhase], None]] = None,
        log: Callable[[str], None] = lambda line: None,
    ) -> PatchOutcome:
        set_phase = set_phase or (lambda phase: None)
        patch_id = new_id("patch")

        set_phase(CampaignPhase.DIAGNOSING)
        log(f"Diagnosing crash: {crash.error[:100]}")
        impacted = self._impacted_files(crash.file, file_set)
        if crash.file:
            log(f"Impact analysis: {len(impacted)} files depend on {crash.file}")

        set_phase(CampaignPhase.PATCHING)
        request = SolveRequest(
            description=f"Fix this crash: {crash.error[:200]}",
            context=self._crash_context(crash, impacted, file_set),
            constraints=list(PATCH_CONSTRAINTS),
            id=patch_id,
        )
        try:
            result = self.solver.solve(request)
        except Exception as exc:
            result = None
            error = str(exc) or type(exc).__name__
        else:
            error = None if (result.success and result.output) else (result.error or "No output")
        if error is not None:
            log(f"Patch generation failed: {error}")
            log_json("WARN", "patch_generation_failed", details={"crash_id": patch_id, "error": error})
            return PatchOutcome(error=error)

        segments = parse_solver_output(result.output, file_set, self.config.get_list("main_file_suffixes"))
        if not segments:
            log("Patch dropped: no target file")
            log_json("WARN", "patch_no_target_file", details={"crash_id": patch_id})
            return PatchOutcome(error="Solver output has no FILE: markers and no main file to target")

        target = crash.file or segments[0].path
        before = file_set.content_of(target)
        txn = FileTransaction(file_set, self.repository, label=patch_id)
        try:
            txn.apply(segments)
            after = file_set.content_of(target) if target in txn.touched else result.output
            set_phase(CampaignPhase.VERIFYING)
            build = self.builder.validate(file_set)
        except Exception as exc:
            txn.rollback()
            log(f"Patch error: {exc}")
            log_json("ERROR", "patch_apply_failed", details={"crash_id": patch_id, "error": str(exc)})
            return PatchOutcome(error=str(exc) or type(exc).__name__)

        if build.valid:
            log("Patch verified and applied")
            log_json("INFO", "patch_verified", details={"crash_id": patch_id, "files": txn.touched})
            return PatchOutcome(patch=Patch(target, before, after, patch_id, verified=True))

        txn.rollback()
        log(f"Patch verification failed, reverted: {build.error_text(', ')}")
        log_json("WARN", "patch_unverified",
                 details={"crash_id": patch_id, "errors": build.error_text(), "intact": txn.intact})
        return PatchOutcome(patch=Patch(target, before, after, patch_id, verified=False),
                            error="Build failed: " + build.error_text())

    def _impacted_files(self, origin: Optional[str], file_set) -> List[str]:
        if not origin:
            return []
        try:
            graph = self.impact_analyzer.build_graph(file_set)
            impacted = list(graph.impacted_by(origin))
        except Exception as exc:
            log_json("WARN", "impact_analysis_failed", details={"file": origin, "error": str(exc)})
            return []
        return impacted[:self.config.get("impact_preview_limit")]

    def _crash_context(self, crash: Crash, impacted: List[str], file_set) -> str:
        lines = [f"Error: {crash.error}"]
        if crash.stack_trace:
            lines.append(f"Stack trace:\n{crash.stack_trace}")
        if crash.file:
            lines.append(f"Origin file: {crash.file}")
        if impacted:
            lines.append(f"Impacted files: {', '.join(impacted)}")
        code = file_set.content_of(crash.file)[:self.config.get("relevant_code_chars")]
        return "\n".join(lines) + "\n\nExisting code:\n" + code
