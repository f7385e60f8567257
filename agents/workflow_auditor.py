import json
import re
from typing import Any, Dict, List, Optional, Tuple

from core.collaborators import WorkflowDefinition, WorkflowResult
from core.dream_types import new_id
from core.file_set import FileSet
from core.llm_json import safe_loads
from core.logging_utils import log_json

# Content that suggests time-dependent behaviour
TEMPORAL_PATTERNS = [
    re.compile(r"setTimeout|setInterval"),
    re.compile(r"cron|schedule|recurring", re.IGNORECASE),
    re.compile(r"expir|ttl|timeout|deadline", re.IGNORECASE),
    re.compile(r"billing|subscription|trial", re.IGNORECASE),
    re.compile(r"reminder|notification|queue", re.IGNORECASE),
    re.compile(r"archive|cleanup|purge|sweep", re.IGNORECASE),
    re.compile(r"Date\.now|new Date"),
]

_SOURCE_EXTENSIONS = (".ts", ".tsx", ".js", ".jsx")
_EXCLUDED_SEGMENTS = ("node_modules", ".git")
MAX_CONTEXT_FILES = 15
MAX_FILE_CHARS = 3000

ACTION_SCRIPT = "__dream_action.js"
ASSERT_SCRIPT = "__dream_assert.js"

_DURATION_RE = re.compile(r"^(\d+)(s|m|h|d)$")
_UNIT_MS = {"s": 1000, "m": 60 * 1000, "h": 60 * 60 * 1000, "d": 24 * 60 * 60 * 1000}

WORKFLOW_PROMPT = """
You are a senior QA engineer specializing in temporal testing: finding bugs that only appear after time passes.

Analyze the following code for time-dependent logic: cron jobs, trial expirations, scheduled emails,
subscription billing, TTLs, cleanup jobs.

For each piece of temporal logic, write a workflow that simulates the passage of time to verify it.

### Code Context
{context}

### Output Format
Respond with valid JSON only:
{{"workflows": [{{"name": "Free Trial Expiration", "sourceFile": "path/to/file.ts", "steps": [
  {{"type": "action", "description": "What this does", "code": "JavaScript to run"}},
  {{"type": "wait", "duration": "7d"}},
  {{"type": "assertion", "expression": "JavaScript boolean expression", "expected": true, "description": "What we check"}}
]}}]}}

Rules:
- Each workflow MUST have at least one "wait" step.
- Durations look like 10s, 30m, 24h or 7d; read them from the code.
- If no temporal logic is found, return {{"workflows": []}}.
"""

# Shifts Date by the simulated offset before the step body runs
_CLOCK_SHIM = """const __dreamOffset = __OFFSET__;
const __RealDate = Date;
class __DreamDate extends __RealDate {
  constructor(...args) { if (args.length === 0) { super(__RealDate.now() + __dreamOffset); } else { super(...args); } }
  static now() { return __RealDate.now() + __dreamOffset; }
}
globalThis.Date = __DreamDate;
"""

_ACTION_BODY = """try {
  __CODE__
  console.log('__ACTION_OK__');
} catch (e) {
  console.error('__ACTION_FAIL__: ' + e.message);
  process.exit(1);
}
"""

_ASSERT_BODY = """try {
  const result = (__EXPRESSION__);
  console.log('__ASSERT_RESULT__:' + JSON.stringify(result));
} catch (e) {
  console.error('__ASSERT_ERROR__: ' + e.message);
  process.exit(1);
}
"""

_ASSERT_RESULT_RE = re.compile(r"__ASSERT_RESULT__:(.*)")


def parse_duration(text: str) -> int:
    """``"7d"`` → milliseconds; anything unparseable is 0."""
    match = _DURATION_RE.match(str(text or "").strip())
    if not match:
        log_json("WARN", "workflow_duration_invalid", details={"duration": text})
        return 0
    return int(match.group(1)) * _UNIT_MS[match.group(2)]


class WorkflowAuditor:
    """
    Finds time-dependent logic in a FileSet, asks the model for workflows
    that exercise it, and simulates each workflow step by step.

    Action and assertion steps run as node scripts through the repository
    shell. Wait steps advance a simulated clock that later steps see through
    ``Date``.
    """
    def __init__(self, model, repository):
        """
        Args:
            model: Model adapter exposing ``respond(prompt) -> str``.
            repository: Repository used to write and run step scripts.
        """
        self.model = model
        self.repository = repository

    def temporal_files(self, file_set: FileSet) -> List[str]:
        found = []
        for entry in file_set:
            if any(seg in entry.path.split("/") for seg in _EXCLUDED_SEGMENTS):
                continue
            if not entry.path.endswith(_SOURCE_EXTENSIONS):
                continue
            if any(p.search(entry.content) for p in TEMPORAL_PATTERNS):
                found.append(entry.path)
        return found

    def discover_workflows(self, file_set: FileSet) -> List[WorkflowDefinition]:
        paths = self.temporal_files(file_set)
        if not paths:
            log_json("INFO", "workflow_audit_no_temporal_logic")
            return []

        context = "\n\n".join(
            f"-- {path} --\n{file_set.content_of(path)[:MAX_FILE_CHARS]}"
            for path in paths[:MAX_CONTEXT_FILES]
        )
        response = self.model.respond(WORKFLOW_PROMPT.format(context=context))
        try:
            data = safe_loads(response)
        except json.JSONDecodeError as e:
            log_json("ERROR", "workflow_audit_parse_failed",
                     details={"error": str(e), "response_snippet": (response or "")[:200]})
            return []

        raw = data.get("workflows") if isinstance(data, dict) else None
        if not isinstance(raw, list):
            log_json("WARN", "workflow_audit_unexpected_shape", details={"type": type(data).__name__})
            return []

        workflows = []
        for item in raw:
            if not isinstance(item, dict):
                continue
            steps = [s for s in item.get("steps") or [] if isinstance(s, dict)]
            if not any(s.get("type") == "wait" for s in steps):
                log_json("WARN", "workflow_without_wait_dropped", details={"name": item.get("name")})
                continue
            workflows.append(WorkflowDefinition(
                id=new_id("wf"),
                name=str(item.get("name") or "Unnamed workflow"),
                steps=steps,
                source_file=item.get("sourceFile"),
            ))
        log_json("INFO", "workflow_audit_complete",
                 details={"temporal_files": len(paths), "workflows": len(workflows)})
        return workflows

    def run_workflow(self, workflow: WorkflowDefinition) -> WorkflowResult:
        offset_ms = 0
        passed = 0
        for index, step in enumerate(workflow.steps):
            kind = step.get("type")
            if kind == "wait":
                offset_ms += parse_duration(step.get("duration"))
                passed += 1
                continue
            if kind == "action":
                ok, reason = self._run_action(step, offset_ms)
            elif kind == "assertion":
                ok, reason = self._run_assertion(step, offset_ms)
            else:
                log_json("WARN", "workflow_step_unknown", details={"workflow": workflow.name, "type": kind})
                continue
            if not ok:
                log_json("INFO", "workflow_failed",
                         details={"workflow": workflow.name, "step": index, "reason": reason})
                return WorkflowResult(workflow.name, False, passed, len(workflow.steps), reason)
            passed += 1

        log_json("INFO", "workflow_passed", details={"workflow": workflow.name, "steps": passed})
        return WorkflowResult(workflow.name, True, passed, len(workflow.steps))

    # ── Steps ────────────────────────────────────────────────────────────────

    def _execute(self, script_name: str, body: str, offset_ms: int) -> str:
        self.repository.write_file(script_name, _CLOCK_SHIM.replace("__OFFSET__", str(offset_ms)) + body)
        return self.repository.execute_shell(f"node {script_name}")

    def _run_action(self, step: Dict[str, Any], offset_ms: int) -> Tuple[bool, Optional[str]]:
        description = step.get("description", "action")
        try:
            output = self._execute(ACTION_SCRIPT, _ACTION_BODY.replace("__CODE__", str(step.get("code", ""))),
                                   offset_ms)
        except Exception as exc:
            return False, f"Action step error: {exc}"
        if "__ACTION_OK__" not in output:
            return False, f"Action step failed: {description}"
        return True, None

    def _run_assertion(self, step: Dict[str, Any], offset_ms: int) -> Tuple[bool, Optional[str]]:
        description = step.get("description", "assertion")
        body = _ASSERT_BODY.replace("__EXPRESSION__", str(step.get("expression", "undefined")))
        try:
            output = self._execute(ASSERT_SCRIPT, body, offset_ms)
        except Exception as exc:
            return False, f"Assertion error: {exc}"

        match = _ASSERT_RESULT_RE.search(output)
        if match is None:
            return False, f'Assertion "{description}" threw an error'
        actual_text = match.group(1).strip()
        try:
            actual = json.loads(actual_text)
        except json.JSONDecodeError:
            actual = actual_text
        expected = step.get("expected")
        if actual != expected:
            return False, (f'Assertion failed: "{description}": expected {json.dumps(expected)}, '
                           f"got {actual_text}")
        return True, None
