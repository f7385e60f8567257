import datetime
import json
import os
import sys

_LEVELS = {"DEBUG": 10, "INFO": 20, "WARN": 30, "WARNING": 30, "ERROR": 40}


def _enabled(level: str) -> bool:
    threshold = os.getenv("DREAM_LOG_LEVEL", "INFO").upper()
    return _LEVELS.get(level, 20) >= _LEVELS.get(threshold, 20)


def log_json(level: str, event: str, goal: str = None, details: dict = None):
    """
    Write one JSON line describing *event* to stderr.

    Credentials in *details* are masked before they are serialized.
    ``DREAM_LOG_STREAM=stdout`` redirects the stream and ``DREAM_LOG_LEVEL``
    (DEBUG, INFO, WARN, ERROR) drops events below the threshold.

    Args:
        level (str): "DEBUG", "INFO", "WARN" or "ERROR".
        event (str): snake_case event name, e.g. ``goal_failed``.
        goal (str, optional): Id of the goal or patch the event belongs to.
        details (dict, optional): Extra structured fields.
    """
    level = level.upper()
    if not _enabled(level):
        return

    # Imported lazily: sanitizer reads the config manager, which logs.
    from core.sanitizer import mask_secrets

    entry = {
        "ts": datetime.datetime.now(datetime.timezone.utc).isoformat(),
        "level": level,
        "event": event,
    }
    if goal:
        entry["goal"] = goal
    if details:
        entry["details"] = mask_secrets(details)

    stream = sys.stdout if os.getenv("DREAM_LOG_STREAM", "stderr").lower() == "stdout" else sys.stderr
    stream.write(json.dumps(entry, default=str) + "\n")
    stream.flush()
