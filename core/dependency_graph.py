"""
Dependency graph: import-level graph of a FileSet.

Scans every code file for import statements and builds forward (imports) and
reverse (imported_by) edges.  Used for:

  impact analysis   files that transitively depend on a crashing file
  feature discovery files never reachable from an application entry point

Handles ES module imports, ``require()``, re-exports, the ``@/`` alias
(mapped to ``src/``), relative paths with extension/index fallbacks, and
Python ``import``/``from`` statements (absolute dotted and relative).
External packages resolve to nothing and are skipped.
"""
from __future__ import annotations

import posixpath
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set

import networkx as nx

from core.file_set import FileSet

_JS_IMPORT_PATTERNS = [
    re.compile(
        r"""import\s+(?:type\s+)?(?:(?:\{[^}]*\}|\*\s+as\s+\w+|\w+)"""
        r"""(?:\s*,\s*(?:\{[^}]*\}|\*\s+as\s+\w+))?\s+from\s+)?['"]([^'"]+)['"]"""
    ),
    re.compile(r"""require\s*\(\s*['"]([^'"]+)['"]\s*\)"""),
    re.compile(r"""export\s+(?:type\s+)?(?:\{[^}]*\}|\*)\s+from\s+['"]([^'"]+)['"]"""),
    re.compile(r"""import\s*\(\s*['"]([^'"]+)['"]\s*\)"""),
]
_PY_FROM_RE = re.compile(r"^\s*from\s+(\.*)([\w.]*)\s+import\s+(.+)$", re.MULTILINE)
_PY_IMPORT_RE = re.compile(r"^\s*import\s+([\w.]+(?:\s*,\s*[\w.]+)*)", re.MULTILINE)

JS_EXTENSIONS = (".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs")
_RESOLVE_EXTENSIONS = JS_EXTENSIONS + (".json",)
_INDEX_FILES = ("index.ts", "index.tsx", "index.js", "index.jsx")

_ENTRY_PATTERNS = [
    re.compile(r"(^|/)page\.[jt]sx?$"),
    re.compile(r"(^|/)layout\.[jt]sx?$"),
    re.compile(r"(^|/)route\.[jt]s$"),
    re.compile(r"(^|/)middleware\.[jt]s$"),
    re.compile(r"(^|/)App\.[jt]sx?$"),
    re.compile(r"(^|/)main\.([jt]sx?|py)$"),
    re.compile(r"(^|/)index\.[jt]sx?$"),
    re.compile(r"(^|/)__main__\.py$"),
    re.compile(r"(^|/)app\.py$"),
]


def is_code_file(path: str) -> bool:
    return path.endswith(JS_EXTENSIONS) or path.endswith(".py")


@dataclass
class DependencyNode:
    file: str
    imports: List[str] = field(default_factory=list)
    imported_by: List[str] = field(default_factory=list)


class DependencyGraph:
    """Import edges between files of one FileSet, importer → imported.

    Backed by a ``networkx.DiGraph``; edge insertion order follows file
    order, so successor and predecessor lists are deterministic.
    """

    def __init__(self, graph: nx.DiGraph):
        self.graph = graph

    @property
    def nodes(self) -> Dict[str, DependencyNode]:
        return {path: DependencyNode(path, list(self.graph.successors(path)),
                                     list(self.graph.predecessors(path)))
                for path in self.graph.nodes}

    def impacted_by(self, file: str) -> List[str]:
        """Files that transitively import *file* (BFS order, excluding *file*)."""
        if file not in self.graph:
            return []
        return [dependent for _, dependent in nx.bfs_edges(self.graph, file, reverse=True)]

    def reachable_from(self, entry_points: Iterable[str]) -> Set[str]:
        """Files reachable from *entry_points* along import edges (entries included)."""
        reachable = set(entry_points)
        for entry in list(reachable):
            if entry in self.graph:
                reachable |= nx.descendants(self.graph, entry)
        return reachable

    def consumers(self, file: str) -> List[str]:
        if file not in self.graph:
            return []
        return list(self.graph.predecessors(file))

    def find_entry_points(self) -> List[str]:
        return [path for path in self.graph.nodes
                if any(p.search(path) for p in _ENTRY_PATTERNS)]


class DependencyGraphBuilder:
    """Default ImpactAnalyzer: builds a :class:`DependencyGraph` from a FileSet."""

    def build_graph(self, file_set: FileSet) -> DependencyGraph:
        known = set(file_set.paths())
        graph = nx.DiGraph()
        graph.add_nodes_from(file_set.paths())

        for entry in file_set:
            if not is_code_file(entry.path):
                continue
            for resolved in self._resolved_imports(entry.path, entry.content, known):
                if resolved != entry.path:
                    graph.add_edge(entry.path, resolved)

        return DependencyGraph(graph)

    # ── Parsing ──────────────────────────────────────────────────────────────

    def _resolved_imports(self, path: str, content: str, known: Set[str]) -> List[str]:
        if path.endswith(".py"):
            return self._python_imports(path, content, known)
        resolved = []
        for source in self._js_sources(content):
            target = self._resolve_js(source, path, known)
            if target:
                resolved.append(target)
        return resolved

    @staticmethod
    def _js_sources(content: str) -> List[str]:
        sources: List[str] = []
        for pattern in _JS_IMPORT_PATTERNS:
            for match in pattern.finditer(content):
                if match.group(1) not in sources:
                    sources.append(match.group(1))
        return sources

    def _resolve_js(self, source: str, from_file: str, known: Set[str]) -> Optional[str]:
        if source.startswith("@/"):
            prefix = "/" if from_file.startswith("/") else ""
            target = prefix + "src/" + source[2:]
        elif source.startswith("."):
            target = _join(posixpath.dirname(from_file), source)
        else:
            return None  # npm package
        return _first_known(
            [target]
            + [target + ext for ext in _RESOLVE_EXTENSIONS]
            + [target + "/" + index for index in _INDEX_FILES],
            known,
        )

    def _python_imports(self, path: str, content: str, known: Set[str]) -> List[str]:
        base_dir = posixpath.dirname(path)
        resolved: List[str] = []

        for match in _PY_FROM_RE.finditer(content):
            dots, module, names = match.group(1), match.group(2), match.group(3)
            if dots:
                anchor = base_dir
                for _ in range(len(dots) - 1):
                    anchor = posixpath.dirname(anchor)
            else:
                anchor = ""
            module_path = _join(anchor, module.replace(".", "/")) if module else anchor
            # "from pkg import mod" may name submodules rather than attributes
            candidates = [_py_candidates(module_path)]
            for name in re.split(r"[,\s()]+", names):
                if name and name != "as" and name.isidentifier():
                    candidates.append(_py_candidates(_join(module_path, name)))
            for group in candidates:
                target = _first_known(group, known, roots=_PY_ROOTS)
                if target and target not in resolved:
                    resolved.append(target)

        for match in _PY_IMPORT_RE.finditer(content):
            for module in match.group(1).split(","):
                module_path = module.strip().split(" ")[0].replace(".", "/")
                target = _first_known(_py_candidates(module_path), known, roots=_PY_ROOTS)
                if target and target not in resolved:
                    resolved.append(target)
        return resolved


def _join(base: str, rel: str) -> str:
    joined = posixpath.normpath(posixpath.join(base, rel)) if base else posixpath.normpath(rel)
    return "" if joined == "." else joined


def _py_candidates(module_path: str) -> List[str]:
    if not module_path:
        return ["__init__.py"]
    return [module_path + ".py", module_path + "/__init__.py"]


# Absolute Python imports resolve against the repo root, "src/" and a leading "/" mount point.
_PY_ROOTS = ["", "src", "/", "/src"]


def _first_known(candidates: List[str], known: Set[str], roots: Optional[List[str]] = None) -> Optional[str]:
    for root in roots or [""]:
        for candidate in candidates:
            full = posixpath.join(root, candidate) if root else candidate
            if full in known:
                return full
    return None
