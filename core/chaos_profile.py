"""Chaos profiles: the immutable budget of one campaign run.

NAP         human-speed interactions, 5 minute sessions, 2 fixes
REM         balanced default, 30 minute sessions, 10 fixes
NIGHTMARE   brute-force speed, 1 hour sessions, 50 fixes (high model cost)

``max_fixes_per_cycle`` and ``session_duration`` are the two circuit
breakers of :class:`~core.campaign.CampaignController`.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict

from core.exceptions import ConfigurationError
from core.logging_utils import log_json


@dataclass(frozen=True)
class ChaosProfile:
    max_fixes_per_cycle: int
    session_duration: float  # seconds
    action_delay: int        # milliseconds between simulated actions
    concurrent_gremlins: int = 1
    name: str = "CUSTOM"


CHAOS_PROFILES: Dict[str, ChaosProfile] = {
    "NAP": ChaosProfile(max_fixes_per_cycle=2, session_duration=300, action_delay=1000, name="NAP"),
    # Default profile.
    "REM": ChaosProfile(max_fixes_per_cycle=10, session_duration=1800, action_delay=250, name="REM"),
    "NIGHTMARE": ChaosProfile(max_fixes_per_cycle=50, session_duration=3600, action_delay=50, name="NIGHTMARE"),
}

DEFAULT_PROFILE_NAME = "REM"


def get_chaos_profile(name: str) -> ChaosProfile:
    """Return the named preset, falling back to REM for unknown names."""
    profile = CHAOS_PROFILES.get((name or "").upper())
    if profile is None:
        log_json("WARN", "chaos_profile_unknown",
                 details={"requested": name, "fallback": DEFAULT_PROFILE_NAME})
        return CHAOS_PROFILES[DEFAULT_PROFILE_NAME]
    return profile


def validate_profile(profile: ChaosProfile) -> ChaosProfile:
    if profile.max_fixes_per_cycle <= 0:
        raise ConfigurationError(
            f"max_fixes_per_cycle must be positive, got {profile.max_fixes_per_cycle}")
    if profile.session_duration <= 0:
        raise ConfigurationError(
            f"session_duration must be positive, got {profile.session_duration}")
    if profile.action_delay < 0:
        raise ConfigurationError(
            f"action_delay must not be negative, got {profile.action_delay}")
    return profile
