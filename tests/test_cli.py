import _thread
import io
import json
import time

import pytest
from rich.console import Console

from agents.workflow_auditor import WorkflowAuditor
from core.exceptions import ConfigurationError
from core.goal_queue import GoalQueue
from dream_cli.cli_main import build_parser, create_controller, load_collaborators, main
from tests.fakes.fake_collaborators import FakeSolver

FAKES = "tests.fakes.fake_collaborators:build_collaborators"


def _controller_factory(collaborators, profile_name=None, hooks=None):
    controller = create_controller(collaborators, profile_name=profile_name, hooks=hooks)
    controller.goal_queue = GoalQueue()
    return controller


def _rich_console():
    buf = io.StringIO()
    return Console(file=buf, width=120, force_terminal=False), buf


def test_no_command_prints_help(capsys):
    assert main([]) == 1
    assert "usage: dream" in capsys.readouterr().out


def test_profile_choice_is_case_insensitive():
    args = build_parser().parse_args(["run", "--repo", "o/r", "--collaborators", FAKES, "--profile", "nap"])
    assert args.profile == "NAP"


def test_profiles_json(capsys):
    assert main(["profiles", "--json"]) == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["NIGHTMARE"] == {"action_delay": 50, "session_duration": 3600, "max_fixes_per_cycle": 50}


def test_profiles_table():
    console, buf = _rich_console()
    assert main(["profiles"], console=console) == 0
    out = buf.getvalue()
    assert "Chaos Profiles" in out
    assert "NIGHTMARE" in out


def test_show_config(capsys):
    assert main(["show-config"]) == 0
    assert "chaos_profile" in json.loads(capsys.readouterr().out)


def test_run_json_quiet(capsys):
    code = main(["run", "--repo", "owner/app", "--collaborators", FAKES, "--profile", "NAP",
                 "--goal", "Add a footer", "--json", "--quiet"],
                controller_factory=_controller_factory)

    assert code == 0
    log = json.loads(capsys.readouterr().out)
    assert log["stopReason"] == "all_stable"
    assert log["goalsCompleted"] == 1
    assert log["profileUsed"] == "NAP"
    assert log["repoUrl"] == "owner/app"


def test_run_echoes_log_lines_and_renders_summary(capsys):
    console, buf = _rich_console()
    code = main(["run", "--repo", "owner/app", "--collaborators", FAKES],
                controller_factory=_controller_factory, console=console)

    assert code == 0
    assert "Repository loaded" in capsys.readouterr().err
    out = buf.getvalue()
    assert "Dream Campaign" in out
    assert "all_stable" in out


def test_run_uses_token_from_environment(monkeypatch):
    monkeypatch.setenv("DREAM_GITHUB_TOKEN", "ghp_fromenv")
    seen = {}

    def factory(collaborators, profile_name=None, hooks=None):
        controller = _controller_factory(collaborators, profile_name, hooks)
        seen["repository"] = controller.repository
        return controller

    main(["run", "--repo", "owner/app", "--collaborators", FAKES, "--json", "--quiet"],
         controller_factory=factory)
    assert seen["repository"].mounted == ("owner/app", "ghp_fromenv", "main")


@pytest.mark.parametrize("spec", ["no_colon", "tests.fakes.missing_module:x",
                                  "tests.fakes.fake_collaborators:nope",
                                  "tests.fakes.fake_collaborators:make_crash"])
def test_bad_collaborator_factory_exits_2(spec, capsys):
    assert main(["run", "--repo", "owner/app", "--collaborators", spec]) == 2
    assert "Error:" in capsys.readouterr().err


def test_load_collaborators_requires_core_roles(monkeypatch):
    import tests.fakes.fake_collaborators as fakes
    monkeypatch.setattr(fakes, "partial", lambda: {"solver": object()}, raising=False)
    with pytest.raises(ConfigurationError, match="builder, critic, prober"):
        load_collaborators("tests.fakes.fake_collaborators:partial")


def test_create_controller_builds_optional_passes():
    collaborators = load_collaborators(FAKES)
    collaborators["model"] = object()
    controller = create_controller(collaborators, profile_name="REM")

    assert controller.spec_auditor is not None
    assert controller.feature_discoverer.model is collaborators["model"]
    assert isinstance(controller.workflow_auditor, WorkflowAuditor)
    assert controller.workflow_auditor.repository is controller.repository
    assert controller.profile.name == "REM"


def test_serve_builds_app_with_fresh_collaborators(monkeypatch):
    import uvicorn
    served = {}

    def fake_run(app, host, port):
        served.update(app=app, host=host, port=port)

    monkeypatch.setattr(uvicorn, "run", fake_run)
    assert main(["serve", "--collaborators", FAKES, "--port", "9001"],
                controller_factory=_controller_factory) == 0

    assert served["port"] == 9001
    session = served["app"].state.session
    assert session.controller is None
    assert served["app"].title == "DreamLoop API"


def test_serve_rejects_bad_factory(capsys):
    assert main(["serve", "--collaborators", "no_colon"]) == 2


def test_create_controller_without_model_skips_workflow_audit():
    controller = create_controller(load_collaborators(FAKES))
    assert controller.workflow_auditor is None


def test_ctrl_c_stops_campaign_and_still_reports(capsys):
    seen = {}

    class InterruptingSolver(FakeSolver):
        def solve(self, request):
            _thread.interrupt_main()
            deadline = time.monotonic() + 5.0
            while not seen["controller"].aborted and time.monotonic() < deadline:
                time.sleep(0.01)
            return super().solve(request)

    def factory(collaborators, profile_name=None, hooks=None):
        collaborators["solver"] = InterruptingSolver()
        seen["controller"] = _controller_factory(collaborators, profile_name, hooks)
        return seen["controller"]

    code = main(["run", "--repo", "owner/app", "--collaborators", FAKES,
                 "--goal", "Add a footer", "--json", "--quiet"],
                controller_factory=factory)

    assert code == 130
    log = json.loads(capsys.readouterr().out)
    assert log["stopReason"] == "user_stopped"
    assert log["goalsCompleted"] == 1
