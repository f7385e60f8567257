import json
import os
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from core.exceptions import ConfigurationError
from core.logging_utils import log_json

# ---------------------------------------------------------------------------
# Validators: (key, raw) -> (ok, coerced, reason)
# ---------------------------------------------------------------------------

Check = Callable[[str, Any], Tuple[bool, Any, str]]


def _positive(cast: type) -> Check:
    label = "integer" if cast is int else "number"

    def check(key: str, raw: Any) -> Tuple[bool, Any, str]:
        try:
            value = cast(raw)
        except (ValueError, TypeError):
            return False, None, f"{key} must be a {label}, got {raw!r}"
        if value <= 0:
            return False, None, f"{key} must be a positive {label}, got {raw!r}"
        return True, value, ""

    return check


def _flag(key: str, raw: Any) -> Tuple[bool, Any, str]:
    if isinstance(raw, bool):
        return True, raw, ""
    text = str(raw).strip().lower()
    if text in ("true", "1", "yes", "on"):
        return True, True, ""
    if text in ("false", "0", "no", "off"):
        return True, False, ""
    return False, None, f"{key} must be true or false, got {raw!r}"


def _optional_path(key: str, raw: Any) -> Tuple[bool, Any, str]:
    if raw is None or isinstance(raw, (str, Path)):
        return True, (str(raw) if raw is not None else None), ""
    return False, None, f"{key} must be a path, got {raw!r}"


def _names(key: str, raw: Any) -> Tuple[bool, Any, str]:
    # Env values arrive comma separated
    if isinstance(raw, str):
        return True, [part.strip() for part in raw.split(",") if part.strip()], ""
    if isinstance(raw, (list, tuple)) and all(isinstance(part, str) for part in raw):
        return True, list(raw), ""
    return False, None, f"{key} must be a list of names, got {raw!r}"


def _profile(key: str, raw: Any) -> Tuple[bool, Any, str]:
    name = str(raw or "").upper()
    if name in ("NAP", "REM", "NIGHTMARE"):
        return True, name, ""
    return False, None, f"{key} must be NAP, REM or NIGHTMARE, got {raw!r}"


_VALIDATORS: Dict[str, Check] = {
    "chaos_profile": _profile,
    "stats_interval": _positive(float),
    "spec_files": _names,
    "main_file_suffixes": _names,
    "impact_preview_limit": _positive(int),
    "relevant_code_chars": _positive(int),
    "context_file_limit": _positive(int),
    "context_main_chars": _positive(int),
    "strict_functional_gate": _flag,
    "goal_queue_path": _optional_path,
    "workdir": _optional_path,
    "allowed_commands": _names,
    "max_file_bytes": _positive(int),
}

DEFAULT_CONFIG = {
    "chaos_profile": "REM",
    "stats_interval": 2.0,
    # Requirement documents the spec auditor reads, first match wins
    "spec_files": ["TITAN_SPEC.md", "SPEC.md"],
    # Fallback target when Solver output carries no FILE: markers
    "main_file_suffixes": ["/App.tsx", "/App.jsx", "/main.py", "/app.py"],
    "impact_preview_limit": 10,
    "relevant_code_chars": 4000,
    "context_file_limit": 50,
    "context_main_chars": 3000,
    "strict_functional_gate": False,
    "goal_queue_path": None,
    "workdir": "~/.dreamloop/repos",
    "allowed_commands": [],
    "max_file_bytes": 524288,
}

ENV_PREFIX = "DREAM_"


class ConfigManager:
    """
    Effective DreamLoop settings, merged from four tiers:
    runtime overrides > DREAM_* environment > dream.config.json > defaults.

    Values are validated on read; an invalid value is logged and replaced by
    its default rather than failing the campaign.
    """
    def __init__(self, config_file="dream.config.json", overrides: Optional[Dict[str, Any]] = None):
        self.config_file = Path(config_file)
        self.runtime_overrides = dict(overrides or {})
        self.file_config: Dict[str, Any] = {}
        self.effective_config: Dict[str, Any] = {}
        self.refresh()

    def _read_file(self) -> Dict[str, Any]:
        if not self.config_file.is_file():
            return {}
        try:
            data = json.loads(self.config_file.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            log_json("ERROR", "config_parse_failed", details={"path": str(self.config_file), "error": str(e)})
            raise ConfigurationError(f"Malformed config file {self.config_file}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {self.config_file} must hold a JSON object")
        log_json("INFO", "config_loaded_from_file", details={"path": str(self.config_file)})
        return data

    @staticmethod
    def _read_env() -> Dict[str, Any]:
        # Strings only; _VALIDATORS coerces them on read.
        found = {}
        for key in DEFAULT_CONFIG:
            raw = os.environ.get(ENV_PREFIX + key.upper())
            if raw is not None:
                found[key] = raw
        return found

    def refresh(self):
        """Rebuild the effective config from all tiers."""
        self.file_config = self._read_file()
        merged = dict(DEFAULT_CONFIG)
        for tier in (self.file_config, self._read_env(), self.runtime_overrides):
            merged.update(tier)
        self.effective_config = merged

    def _checked(self, key: str, value: Any) -> Any:
        check = _VALIDATORS.get(key)
        if check is None or (value is None and DEFAULT_CONFIG.get(key) is None):
            return value
        ok, coerced, reason = check(key, value)
        if ok:
            return coerced
        fallback = DEFAULT_CONFIG.get(key)
        log_json("ERROR", "config_value_invalid",
                 details={"key": key, "value": value, "reason": reason, "fallback": fallback})
        return fallback

    def get(self, key: str, default: Any = None) -> Any:
        if key not in self.effective_config:
            return default
        return self._checked(key, self.effective_config[key])

    def get_list(self, key: str) -> List[str]:
        return list(self.get(key) or [])

    def show_config(self) -> Dict[str, Any]:
        """Validated view of every known key (for ``dream show-config``)."""
        shown = {key: self.get(key) for key in DEFAULT_CONFIG}
        for key, value in self.effective_config.items():
            shown.setdefault(key, value)
        return shown

    def set_runtime_override(self, key: str, value: Any):
        self.runtime_overrides[key] = value
        self.refresh()

    def persist_to_file(self, key: str, value: Any):
        """Write *key* into dream.config.json and reload."""
        self.file_config[key] = value
        try:
            self.config_file.write_text(json.dumps(self.file_config, indent=4), encoding="utf-8")
        except OSError as e:
            log_json("ERROR", "config_save_failed", details={"path": str(self.config_file), "error": str(e)})
            raise ConfigurationError(f"Failed to save config: {e}") from e
        log_json("INFO", "config_persisted", details={"key": key})
        self.refresh()


# Process-wide settings; tests and embedders pass their own ConfigManager.
config = ConfigManager()
