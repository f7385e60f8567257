import os
import re
from pathlib import Path
from typing import Any, List, Union
from core.exceptions import SecurityError

# Commands the repository adapter may run inside a checkout
BASE_ALLOWED_COMMANDS = {
    "npm", "npx", "node", "pnpm", "yarn", "python", "python3", "pytest",
    "git", "ls", "cat", "mkdir", "tsc", "vitest",
}

# Regex for masking secrets (best-effort)
SECRET_PATTERNS = [
    re.compile(r"sk-[a-zA-Z0-9]{32,}", re.IGNORECASE),
    re.compile(r"gh[pousr]_[A-Za-z0-9]{20,}"),
    re.compile(r"github_pat_[A-Za-z0-9_]{20,}"),
    re.compile(r"Bearer\s+[a-zA-Z0-9._-]+", re.IGNORECASE),
    re.compile(r"(?<=://)[^/@\s:]+(:[^/@\s]*)?(?=@)"),  # userinfo in clone URLs
]
SECRET_KEY_PATTERN = re.compile(r"api[-_]?key|token|credential|password|secret", re.IGNORECASE)


def get_allowed_commands() -> set:
    """Returns the effective set of allowed commands from config + base."""
    from core.config_manager import config
    return BASE_ALLOWED_COMMANDS.union(set(config.get_list("allowed_commands")))


def sanitize_path(file_path: Union[str, Path], root_dir: Union[str, Path]) -> Path:
    """
    Ensures path is safe and within the checkout jail.
    Prevents path traversal attacks.
    """
    root = Path(root_dir).resolve()
    raw_target = Path(str(file_path).lstrip("/"))
    target = (root / raw_target).resolve()

    try:
        target.relative_to(root)
    except ValueError as exc:
        raise SecurityError(f"Access denied: Path '{file_path}' escapes checkout root '{root_dir}'.") from exc

    return target


def sanitize_command(cmd: List[str]):
    """
    Validates shell commands against an allowlist.
    """
    if not cmd:
        raise SecurityError("Access denied: empty command.")

    allowed = get_allowed_commands()
    base_cmd = os.path.basename(cmd[0])
    if base_cmd not in allowed:
        raise SecurityError(f"Access denied: Command '{base_cmd}' is not in the allowlist.")

    dangerous_args = ["--eval", "-e", "--exec", "-c"]
    if base_cmd in ("python", "python3", "node"):
        for arg in cmd[1:]:
            if arg in dangerous_args:
                raise SecurityError(f"Access denied: Dangerous argument '{arg}' in command.")


def mask_secrets(data: Any) -> Any:
    """
    Recursively redacts tokens and credentials from log payloads.
    """
    if isinstance(data, dict):
        new_dict = {}
        for k, v in data.items():
            if isinstance(k, str) and SECRET_KEY_PATTERN.search(k) and v:
                new_dict[k] = "[REDACTED]"
            else:
                new_dict[k] = mask_secrets(v)
        return new_dict
    elif isinstance(data, (list, tuple)):
        return [mask_secrets(i) for i in data]
    elif isinstance(data, str):
        masked = data
        for p in SECRET_PATTERNS:
            masked = p.sub("[REDACTED]", masked)
        return masked
    return data
