"""
Feature discovery: finds feature modules the application never reaches.

Files named like major capabilities (``*Service``, ``*Manager``, ``*Agent``,
...) are classified against the import graph:

    ACTIVE               reachable from an entry point
    PARTIALLY_CONNECTED  imported somewhere, but not from any entry point
    DISCONNECTED         never imported at all

Non-active features become DISCOVERY goals asking for them to be wired in.
"""
import posixpath
import re
import time
from typing import List, Optional

from core.dependency_graph import DependencyGraphBuilder
from core.dream_types import (
    DiscoveredFeature,
    DiscoveryReport,
    FeatureStatus,
    Goal,
    GoalSource,
)
from core.file_set import FileSet
from core.logging_utils import log_json

_FEATURE_SUFFIXES = ("Service", "Manager", "Provider", "Engine", "Agent",
                     "Controller", "Handler", "Workflow", "Store", "Hook")
FEATURE_PATTERN = re.compile(
    r"(?:%s|_(?:%s))\.(?:tsx?|jsx?|py)$" % (
        "|".join(_FEATURE_SUFFIXES),
        "|".join(s.lower() for s in _FEATURE_SUFFIXES),
    )
)
EXCLUDED_PATTERNS = [
    re.compile(r"(^|/)node_modules/"),
    re.compile(r"\.test\."),
    re.compile(r"\.spec\."),
    re.compile(r"(^|/)__tests__/"),
    re.compile(r"(^|/)tests?/"),
    re.compile(r"(^|/)test_[^/]*\.py$"),
    re.compile(r"\.d\.ts$"),
    re.compile(r"(^|/)index\.[jt]sx?$"),
]

PURPOSE_PROMPT = """Infer the purpose of this source file in ONE sentence (max 20 words).
Focus on exports, class and function names, doc comments and imports.

File: {path}
```
{signatures}
```

Respond with ONLY the one-sentence purpose. No markdown, no quotes."""

_SIGNATURE_PREFIXES = ("export ", "class ", "interface ", "type ", "function ", "async function",
                       "const ", "/**", "*", "import ", "from ", "def ", "async def ", '"""', "#")
_SIGNATURE_CHARS = 2000


def is_feature_file(path: str) -> bool:
    if not FEATURE_PATTERN.search(path):
        return False
    return not any(p.search(path) for p in EXCLUDED_PATTERNS)


def purpose_from_name(path: str) -> str:
    """Split a file name into words: ``AuthService.ts`` becomes ``Auth Service``."""
    name = posixpath.basename(path).rsplit(".", 1)[0]
    return re.sub(r"(?<!^)([A-Z])", r" \1", name).replace("_", " ")


def extract_signatures(content: str) -> str:
    significant: List[str] = []
    count = 0
    for line in content.splitlines():
        trimmed = line.strip()
        if trimmed.startswith(_SIGNATURE_PREFIXES):
            significant.append(trimmed)
            count += len(trimmed)
            if count > _SIGNATURE_CHARS:
                break
    return "\n".join(significant)


class FeatureDiscovery:
    def __init__(self, graph_builder: Optional[DependencyGraphBuilder] = None, model=None,
                 max_inferences: int = 30):
        """
        Args:
            graph_builder: Builds the import graph; defaults to the regex builder.
            model: Optional model adapter (``respond(prompt) -> str``) used to
                infer the purpose of non-active features.
            max_inferences: Upper bound on model calls per scan.
        """
        self.graph_builder = graph_builder or DependencyGraphBuilder()
        self.model = model
        self.max_inferences = max_inferences

    def scan(self, file_set: FileSet, entry_points: Optional[List[str]] = None) -> DiscoveryReport:
        started = time.time()
        graph = self.graph_builder.build_graph(file_set)
        entries = entry_points if entry_points is not None else graph.find_entry_points()
        reachable = graph.reachable_from(entries)

        discoveries: List[DiscoveredFeature] = []
        for path in file_set.paths():
            if not is_feature_file(path):
                continue
            consumers = graph.consumers(path)
            if path in reachable:
                status = FeatureStatus.ACTIVE
            elif consumers:
                status = FeatureStatus.PARTIALLY_CONNECTED
            else:
                status = FeatureStatus.DISCONNECTED
            discoveries.append(DiscoveredFeature(file=path, status=status, consumers=consumers))

        inferred = 0
        for feature in discoveries:
            if feature.status is FeatureStatus.ACTIVE:
                feature.inferred_purpose = f"{purpose_from_name(feature.file)} (active, fully connected)"
                continue
            if self.model is not None and inferred < self.max_inferences:
                inferred += 1
                feature.inferred_purpose = self._infer_purpose(feature.file, file_set.content_of(feature.file))
            else:
                feature.inferred_purpose = purpose_from_name(feature.file)
            feature.suggested_action = self._suggest_action(feature)

        report = DiscoveryReport(
            scanned_files=len(file_set),
            discoveries=discoveries,
            duration=int((time.time() - started) * 1000),
        )
        log_json("INFO", "feature_scan_complete",
                 details={"entry_points": len(entries), "features": len(discoveries),
                          "disconnected": report.count(FeatureStatus.DISCONNECTED),
                          "partial": report.count(FeatureStatus.PARTIALLY_CONNECTED)})
        return report

    def wiring_goals(self, report: DiscoveryReport) -> List[Goal]:
        goals = []
        for feature in report.actionable:
            name = posixpath.basename(feature.file)
            if feature.status is FeatureStatus.DISCONNECTED:
                prompt = (f'Wire the disconnected feature "{name}" into the application. '
                          f"Purpose: {feature.inferred_purpose}. "
                          "This file is never imported by any other file in the project. "
                          "Find the appropriate integration point and connect it.")
            else:
                prompt = (f'Complete the integration of "{name}". '
                          f"Purpose: {feature.inferred_purpose}. "
                          f"Currently imported by: {', '.join(feature.consumers)} "
                          "but not reachable from any application entry point. "
                          "Trace the import chain and connect the missing link.")
            goals.append(Goal.create(prompt, GoalSource.DISCOVERY))
        return goals

    def _infer_purpose(self, path: str, content: str) -> str:
        prompt = PURPOSE_PROMPT.format(path=path, signatures=extract_signatures(content))
        try:
            purpose = (self.model.respond(prompt) or "").strip()
        except Exception as e:
            log_json("WARN", "purpose_inference_failed", details={"file": path, "error": str(e)})
            return "Purpose inference failed"
        return purpose or "Purpose could not be determined"

    @staticmethod
    def _suggest_action(feature: DiscoveredFeature) -> str:
        name = posixpath.basename(feature.file)
        if feature.status is FeatureStatus.DISCONNECTED:
            return f"Wire {name} into the application. {feature.inferred_purpose}"
        return (f"Complete integration of {name}: imported by {len(feature.consumers)} file(s) "
                "but not reachable from any entry point.")
