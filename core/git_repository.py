"""Repository adapter backed by a local git checkout (GitPython)."""
import re
import shlex
import shutil
import subprocess
from pathlib import Path
from typing import Optional

from git import Repo
from git.exc import GitCommandError, InvalidGitRepositoryError, NoSuchPathError

from core.config_manager import config as default_config
from core.dream_types import FileEntry
from core.exceptions import RepositoryError, SecurityError
from core.file_set import FileSet
from core.logging_utils import log_json
from core.sanitizer import sanitize_command, sanitize_path

_SHORTHAND_RE = re.compile(r"^[\w.-]+/[\w.-]+$")
_SKIP_DIRS = {".git", "node_modules", "dist", "build", ".next", "__pycache__", ".venv"}
SHELL_TIMEOUT_S = 300


def clone_url(repo_url: str, credential: Optional[str] = None) -> str:
    """Expand ``owner/repo`` shorthand and embed *credential* for HTTPS clones."""
    url = repo_url.strip()
    if _SHORTHAND_RE.match(url):
        url = f"https://github.com/{url}.git"
    if credential and url.startswith("https://"):
        url = "https://x-access-token:" + credential + "@" + url[len("https://"):]
    return url


class GitRepository:
    """Mounts a repository into a work directory and exposes it as a FileSet.

    ``mount`` clones (or reuses) a checkout under ``workdir``; ``write_file``
    persists into that checkout and ``execute_shell`` runs allow-listed
    commands inside it.
    """

    def __init__(self, workdir=None, config=None):
        self.config = config or default_config
        self.workdir = Path(workdir or self.config.get("workdir")).expanduser()
        self.repo: Optional[Repo] = None
        self.root: Optional[Path] = None

    def mount(self, url: str, credential: Optional[str] = None, branch: str = "main") -> FileSet:
        target = self.workdir / re.sub(r"[^\w.-]+", "_", url.strip().rstrip("/"))
        try:
            if (target / ".git").exists():
                self.repo = Repo(target)
                self.repo.git.fetch("origin", branch)
                self.repo.git.checkout(branch)
                self.repo.git.reset("--hard", f"origin/{branch}")
                log_json("INFO", "git_checkout_reused", details={"path": str(target), "branch": branch})
            else:
                if target.exists():
                    shutil.rmtree(target)
                target.parent.mkdir(parents=True, exist_ok=True)
                self.repo = Repo.clone_from(clone_url(url, credential), target, branch=branch, depth=1)
                log_json("INFO", "git_cloned", details={"url": url, "branch": branch})
        except (GitCommandError, InvalidGitRepositoryError, NoSuchPathError) as e:
            log_json("ERROR", "git_mount_failed", details={"error": str(e), "url": url})
            raise RepositoryError(f"Failed to mount {url}@{branch}: {e}") from e

        self.root = Path(self.repo.working_tree_dir)
        return self._load_files()

    def _load_files(self) -> FileSet:
        max_bytes = self.config.get("max_file_bytes")
        entries = []
        for path in sorted(self.root.rglob("*")):
            rel = path.relative_to(self.root)
            if not path.is_file() or any(part in _SKIP_DIRS for part in rel.parts):
                continue
            if path.stat().st_size > max_bytes:
                continue
            try:
                content = path.read_text(encoding="utf-8")
            except UnicodeDecodeError:
                continue  # binary
            entries.append(FileEntry(rel.as_posix(), content))
        log_json("INFO", "repository_loaded", details={"files": len(entries), "root": str(self.root)})
        return FileSet(entries)

    def _require_root(self) -> Path:
        if self.root is None:
            raise RepositoryError("Repository is not mounted.")
        return self.root

    def write_file(self, path: str, content: str) -> None:
        root = self._require_root()
        try:
            target = sanitize_path(path, root)
        except SecurityError as e:
            raise RepositoryError(str(e)) from e
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")

    def execute_shell(self, cmd: str) -> str:
        root = self._require_root()
        parts = shlex.split(cmd)
        sanitize_command(parts)
        try:
            proc = subprocess.run(parts, cwd=str(root), capture_output=True, text=True,
                                  timeout=SHELL_TIMEOUT_S)
        except (OSError, subprocess.TimeoutExpired) as e:
            raise RepositoryError(f"Command failed to run: {cmd!r}: {e}") from e
        return proc.stdout + proc.stderr

    def commit_all(self, message: str) -> bool:
        """Stage and commit everything; returns False when there was nothing to commit."""
        if self.repo is None:
            raise RepositoryError("Repository is not mounted.")
        try:
            if not self.repo.is_dirty(untracked_files=True):
                log_json("INFO", "git_no_changes_to_commit")
                return False
            self.repo.git.add(A=True)
            self.repo.index.commit(message)
            log_json("INFO", "git_committed", details={"message": message})
            return True
        except GitCommandError as e:
            log_json("ERROR", "git_commit_failed", details={"error": str(e), "message": message})
            raise RepositoryError(f"Failed to commit changes: {e}") from e
