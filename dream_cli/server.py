"""FastAPI host API: start, steer and observe one campaign at a time."""
from __future__ import annotations

import os
import threading
from collections import deque
from typing import Callable, List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException
from pydantic import BaseModel, Field

from core.campaign import CampaignController
from core.collaborators import CampaignHooks
from core.dream_types import DreamLog, DreamStats, Goal, GoalSource
from core.logging_utils import log_json

RECENT_LOG_LINES = 200


def require_auth(authorization: Optional[str] = Header(default=None)):
    """Simple bearer-token auth; disabled if DREAM_API_TOKEN is unset."""
    token = os.getenv("DREAM_API_TOKEN")
    if not token:
        return
    if not authorization:
        raise HTTPException(status_code=401, detail="Missing Authorization header")
    if authorization != f"Bearer {token}":
        raise HTTPException(status_code=403, detail="Invalid token")


class CampaignRequest(BaseModel):
    repo_url: str = Field(..., description="Repository URL or owner/repo shorthand")
    credential: Optional[str] = None
    branch: str = "main"
    profile: Optional[str] = Field(default=None, description="NAP, REM or NIGHTMARE")
    goals: List[str] = Field(default_factory=list)


class GoalRequest(BaseModel):
    prompt: str = Field(..., min_length=1, max_length=2000)


class CampaignSession:
    """The single campaign the server hosts, plus what its hooks reported."""

    def __init__(self):
        self.lock = threading.Lock()
        self.controller: Optional[CampaignController] = None
        self.thread: Optional[threading.Thread] = None
        self.logs: deque = deque(maxlen=RECENT_LOG_LINES)
        self.stats: Optional[DreamStats] = None
        self.result: Optional[DreamLog] = None

    @property
    def running(self) -> bool:
        return self.thread is not None and self.thread.is_alive()

    def hooks(self) -> CampaignHooks:
        return CampaignHooks(on_log=self.logs.append, on_stats_update=self._on_stats)

    def _on_stats(self, stats: DreamStats):
        self.stats = stats

    def run(self, controller: CampaignController, request: CampaignRequest):
        try:
            self.result = controller.run(request.repo_url, request.credential, request.branch)
        except Exception as exc:
            log_json("ERROR", "server_campaign_crashed", details={"error": str(exc)})
            raise


def create_app(controller_factory: Callable[..., CampaignController]) -> FastAPI:
    """Build the API around ``controller_factory(profile_name=..., hooks=...)``."""
    app = FastAPI(title="DreamLoop API", version="0.1.0")
    session = CampaignSession()
    app.state.session = session

    def _require_controller() -> CampaignController:
        if session.controller is None:
            raise HTTPException(status_code=404, detail="No campaign has been started")
        return session.controller

    @app.get("/health")
    async def health():
        return {"status": "ok", "running": session.running}

    @app.post("/campaign", status_code=202)
    async def start_campaign(req: CampaignRequest, auth=Depends(require_auth)):
        with session.lock:
            if session.running:
                raise HTTPException(status_code=409, detail="A campaign is already running")
            session.logs.clear()
            session.stats = None
            session.result = None
            controller = controller_factory(profile_name=req.profile, hooks=session.hooks())
            for prompt in req.goals:
                controller.add_goal(Goal.create(prompt, GoalSource.USER))
            session.controller = controller
            session.thread = threading.Thread(target=session.run, args=(controller, req),
                                              daemon=True, name="dream-campaign")
            session.thread.start()
        log_json("INFO", "server_campaign_started", details={"repo": req.repo_url, "branch": req.branch})
        return {"status": "started", "profile": controller.profile.name}

    @app.post("/campaign/stop")
    async def stop_campaign(auth=Depends(require_auth)):
        controller = _require_controller()
        controller.stop()
        return {"status": "stopping" if session.running else "stopped"}

    @app.post("/goals", status_code=201)
    async def add_goal(req: GoalRequest, auth=Depends(require_auth)):
        controller = _require_controller()
        goal = controller.add_goal(Goal.create(req.prompt, GoalSource.USER))
        return goal.to_dict()

    @app.get("/campaign")
    async def campaign_status(auth=Depends(require_auth)):
        controller = _require_controller()
        return {
            "running": session.running,
            "phase": controller.phase.value,
            "stats": session.stats.to_dict() if session.stats else controller.stats().to_dict(),
            "goals": [g.to_dict() for g in controller.goal_queue.goals()],
            "recent_logs": list(session.logs),
            "log": session.result.to_dict() if session.result else None,
        }

    return app
