import argparse
import importlib
import json
import os
import sys
import threading
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from rich import box
from rich.console import Console
from rich.table import Table

from agents.feature_discovery import FeatureDiscovery
from agents.spec_auditor import SpecAuditor
from agents.workflow_auditor import WorkflowAuditor
from core.campaign import CampaignController
from core.chaos_profile import CHAOS_PROFILES
from core.collaborators import CampaignHooks
from core.config_manager import config
from core.dream_types import DreamLog, Goal, GoalSource, StopReason
from core.exceptions import ConfigurationError
from core.git_repository import GitRepository
from core.logging_utils import log_json

_REQUIRED_COLLABORATORS = ("solver", "builder", "critic", "prober")
_TOKEN_ENV_VARS = ("DREAM_GITHUB_TOKEN", "GITHUB_TOKEN")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dream",
        description="Self-healing maintenance campaigns: discover, build, chaos-test, patch.",
    )
    sub = parser.add_subparsers(dest="command")

    run = sub.add_parser("run", help="Run one maintenance campaign against a repository.")
    run.add_argument("--repo", required=True, help="Repository URL or owner/repo shorthand.")
    run.add_argument("--branch", default="main")
    run.add_argument("--token", default=None,
                     help="Access token for private repositories (default: $DREAM_GITHUB_TOKEN / $GITHUB_TOKEN).")
    run.add_argument("--profile", default=None, choices=sorted(CHAOS_PROFILES),
                     type=str.upper, help="Chaos profile (default: config chaos_profile).")
    run.add_argument("--collaborators", required=True, metavar="MODULE:FACTORY",
                     help="Callable returning a dict of collaborators (solver, builder, critic, prober, ...).")
    run.add_argument("--goal", action="append", default=[], metavar="TEXT",
                     help="Queue a user goal before discovery (repeatable).")
    run.add_argument("--json", action="store_true", help="Print the DreamLog as JSON.")
    run.add_argument("--quiet", action="store_true", help="Do not echo campaign log lines to stderr.")

    profiles = sub.add_parser("profiles", help="List chaos profiles.")
    profiles.add_argument("--json", action="store_true")

    serve = sub.add_parser("serve", help="Serve the campaign host API over HTTP.")
    serve.add_argument("--collaborators", required=True, metavar="MODULE:FACTORY")
    serve.add_argument("--host", default=os.environ.get("DREAM_API_HOST", "127.0.0.1"))
    serve.add_argument("--port", type=int, default=int(os.environ.get("PORT", 8080)))

    sub.add_parser("show-config", help="Print the effective configuration as JSON.")
    return parser


def load_collaborators(spec: str) -> Dict[str, object]:
    """Import ``module:factory`` and call it; the factory returns a dict of collaborators."""
    module_name, sep, attr = spec.partition(":")
    if not sep or not module_name or not attr:
        raise ConfigurationError(f"--collaborators must look like module:factory, got {spec!r}")
    try:
        factory = getattr(importlib.import_module(module_name), attr)
    except (ImportError, AttributeError) as e:
        raise ConfigurationError(f"Cannot load collaborator factory {spec!r}: {e}") from e

    collaborators = factory()
    if not isinstance(collaborators, dict):
        raise ConfigurationError(f"Collaborator factory {spec!r} must return a dict")
    missing = [name for name in _REQUIRED_COLLABORATORS if collaborators.get(name) is None]
    if missing:
        raise ConfigurationError(f"Collaborator factory {spec!r} is missing: {', '.join(missing)}")
    return collaborators


def create_controller(collaborators: Dict[str, object], profile_name: Optional[str] = None,
                      hooks: Optional[CampaignHooks] = None) -> CampaignController:
    model = collaborators.get("model")
    spec_auditor = collaborators.get("spec_auditor")
    if spec_auditor is None and model is not None:
        spec_auditor = SpecAuditor(model)
    repository = collaborators.get("repository") or GitRepository()
    workflow_auditor = collaborators.get("workflow_auditor")
    if workflow_auditor is None and model is not None:
        workflow_auditor = WorkflowAuditor(model, repository)
    return CampaignController(
        solver=collaborators["solver"],
        builder=collaborators["builder"],
        critic=collaborators["critic"],
        prober=collaborators["prober"],
        impact_analyzer=collaborators.get("impact_analyzer"),
        repository=repository,
        profile_name=profile_name,
        hooks=hooks,
        spec_auditor=spec_auditor,
        feature_discoverer=collaborators.get("feature_discoverer") or FeatureDiscovery(model=model),
        workflow_auditor=workflow_auditor,
    )


def render_summary(log: DreamLog, console: Console) -> None:
    table = Table(title="Dream Campaign", box=box.ROUNDED, show_lines=False)
    table.add_column("Metric", style="bold")
    table.add_column("Value")

    color = {StopReason.ALL_STABLE: "green", StopReason.ERROR: "red"}.get(log.stop_reason, "yellow")
    verified = sum(1 for p in log.patches if p.verified)
    table.add_row("Repository", log.repo_url)
    table.add_row("Profile", log.profile_used)
    table.add_row("Stop reason", f"[{color}]{log.stop_reason.value}[/{color}]")
    table.add_row("Goals completed", str(log.goals_completed))
    table.add_row("Bugs found", str(log.bugs_found))
    table.add_row("Bugs fixed", str(log.bugs_fixed))
    table.add_row("Discoveries", str(log.discoveries))
    table.add_row("Patches (verified)", f"{len(log.patches)} ({verified})")
    table.add_row("Chaos reports", str(len(log.crash_reports)))
    table.add_row("Duration", f"{(log.ended_at - log.started_at) / 1000:.1f}s")
    console.print(table)


def render_profiles(console: Console) -> None:
    table = Table(title="Chaos Profiles", box=box.ROUNDED)
    table.add_column("Name", style="bold")
    table.add_column("Action delay (ms)", justify="right")
    table.add_column("Session (s)", justify="right")
    table.add_column("Max fixes", justify="right")
    for name, profile in CHAOS_PROFILES.items():
        table.add_row(name, str(profile.action_delay), str(profile.session_duration),
                      str(profile.max_fixes_per_cycle))
    console.print(table)


def run_interruptible(controller: CampaignController, repo: str, token: Optional[str],
                      branch: str) -> Tuple[DreamLog, bool]:
    """Run the campaign on a worker thread; Ctrl+C requests a cooperative stop.

    Returns the DreamLog and whether the run was interrupted.
    """
    result = {}
    worker = threading.Thread(
        target=lambda: result.update(log=controller.run(repo, token, branch)),
        name="dream-campaign", daemon=True)
    interrupted = False
    try:
        worker.start()
        while worker.is_alive():
            worker.join(0.5)
    except KeyboardInterrupt:
        interrupted = True
        log_json("WARN", "campaign_interrupted")
        controller.stop()
        worker.join()
    return result.get("log") or controller.last_log, interrupted


@dataclass
class DispatchContext:
    args: argparse.Namespace
    console: Console
    controller_factory: Callable[..., CampaignController]


def _handle_run(ctx: DispatchContext) -> int:
    args = ctx.args
    try:
        collaborators = load_collaborators(args.collaborators)
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    def _echo(line: str):
        print(line, file=sys.stderr)

    hooks = CampaignHooks(on_log=None if args.quiet else _echo)
    controller = ctx.controller_factory(collaborators, profile_name=args.profile, hooks=hooks)
    for text in args.goal:
        controller.add_goal(Goal.create(text, GoalSource.USER))

    token = args.token or next((os.environ[v] for v in _TOKEN_ENV_VARS if os.environ.get(v)), None)
    log, interrupted = run_interruptible(controller, args.repo, token, args.branch)

    if args.json:
        print(json.dumps(log.to_dict(), indent=2))
    else:
        render_summary(log, ctx.console)
    if interrupted:
        return 130
    return 1 if log.stop_reason is StopReason.ERROR else 0


def _handle_profiles(ctx: DispatchContext) -> int:
    if ctx.args.json:
        payload = {name: {"action_delay": p.action_delay, "session_duration": p.session_duration,
                          "max_fixes_per_cycle": p.max_fixes_per_cycle}
                   for name, p in CHAOS_PROFILES.items()}
        print(json.dumps(payload, indent=2))
    else:
        render_profiles(ctx.console)
    return 0


def _handle_show_config(_ctx: DispatchContext) -> int:
    print(json.dumps(config.show_config(), indent=2, default=str))
    return 0


def _handle_serve(ctx: DispatchContext) -> int:
    args = ctx.args
    try:
        load_collaborators(args.collaborators)
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    def _factory(profile_name=None, hooks=None):
        # fresh collaborators per campaign
        return ctx.controller_factory(load_collaborators(args.collaborators),
                                      profile_name=profile_name, hooks=hooks)

    import uvicorn
    from dream_cli.server import create_app

    log_json("INFO", "server_starting", details={"host": args.host, "port": args.port})
    uvicorn.run(create_app(_factory), host=args.host, port=args.port)
    return 0


COMMAND_DISPATCH_REGISTRY = {
    "run": _handle_run,
    "profiles": _handle_profiles,
    "show-config": _handle_show_config,
    "serve": _handle_serve,
}


def main(argv=None, controller_factory=create_controller, console: Optional[Console] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(list(sys.argv[1:] if argv is None else argv))
    handler = COMMAND_DISPATCH_REGISTRY.get(args.command)
    if handler is None:
        parser.print_help()
        return 1
    ctx = DispatchContext(args=args, console=console or Console(), controller_factory=controller_factory)
    return handler(ctx)


if __name__ == "__main__":
    raise SystemExit(main())
