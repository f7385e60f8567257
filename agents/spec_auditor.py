import json
from typing import List

from core.dream_types import Goal, GoalSource
from core.file_set import FileSet
from core.llm_json import safe_loads
from core.logging_utils import log_json


GAP_ANALYSIS_PROMPT = """
You are a senior technical project manager. Compare the Requirements against the Codebase Structure.

### Requirements
{spec}

### Current Codebase (file list)
{files}

### Task
Identify features listed in the Requirements that are completely missing or likely
incomplete based on the file structure. Ignore features that appear to exist
(for example, if the requirements ask for "Login" and you see "auth/Login.tsx").

For each missing feature, write one clear, actionable instruction.

### Output Format
Respond with valid JSON only:
{{"missing_features": [{{"instruction": "...", "priority": "high" | "medium" | "low"}}]}}
If every feature appears to exist, return {{"missing_features": []}}.
"""

_PRIORITY_ORDER = {"high": 0, "medium": 1, "low": 2}
_EXCLUDED_SEGMENTS = ("node_modules", ".git")


class SpecAuditor:
    """
    Turns a requirements document into SPEC goals by asking the model for a
    gap analysis between the document and the repository's file list.
    """
    def __init__(self, model):
        """
        Args:
            model: Model adapter exposing ``respond(prompt) -> str``.
        """
        self.model = model

    def audit(self, spec_content: str, file_set: FileSet) -> List[Goal]:
        files = "\n".join(
            p for p in file_set.paths()
            if not any(seg in p.split("/") for seg in _EXCLUDED_SEGMENTS)
        )
        response = self.model.respond(GAP_ANALYSIS_PROMPT.format(spec=spec_content, files=files))
        try:
            data = safe_loads(response)
        except json.JSONDecodeError as e:
            log_json("ERROR", "spec_audit_parse_failed",
                     details={"error": str(e), "response_snippet": (response or "")[:200]})
            return []

        features = data.get("missing_features") if isinstance(data, dict) else None
        if not isinstance(features, list):
            log_json("WARN", "spec_audit_unexpected_shape", details={"type": type(data).__name__})
            return []

        items = [f for f in features if isinstance(f, dict) and str(f.get("instruction", "")).strip()]
        items.sort(key=lambda f: _PRIORITY_ORDER.get(str(f.get("priority", "medium")).lower(), 1))
        goals = [
            Goal.create(f"[Spec Implementation] {str(item['instruction']).strip()}", GoalSource.SPEC)
            for item in items
        ]
        log_json("INFO", "spec_audit_complete", details={"gaps": len(goals)})
        return goals
