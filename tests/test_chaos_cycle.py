import pytest

from core.chaos_cycle import ChaosCycle
from core.chaos_profile import CHAOS_PROFILES
from core.collaborators import TestRunResult
from core.dream_types import ChaosStrategy, Crash, CrashReport
from core.file_set import FileSet
from tests.fakes.fake_collaborators import DEFAULT_FILES, FakeProber, FakeRepository


@pytest.fixture
def file_set():
    return FileSet.from_mapping(DEFAULT_FILES)


def _cycle(prober, injection_request=None, is_aborted=lambda: False, lines=None, profile="REM"):
    return ChaosCycle(
        prober,
        FakeRepository(),
        CHAOS_PROFILES[profile],
        injection_request=injection_request,
        is_aborted=is_aborted,
        log=(lines.append if lines is not None else (lambda line: None)),
    )


def _injected(*errors):
    return CrashReport.build([Crash(e) for e in errors], ChaosStrategy.INJECTION, len(errors), 0)


def test_no_elements_returns_empty_stable_result(file_set):
    prober = FakeProber(elements=[])
    lines = []
    result = _cycle(prober, lines=lines).run(file_set)

    assert result.is_stable
    assert result.reports == []
    assert result.elements == 0
    assert prober.calls == ["analyze_ui"]
    assert "No interactive elements found, skipping chaos cycle" in lines


def test_strategy_a_only_without_live_render(file_set):
    prober = FakeProber(chaos_runs=[TestRunResult([Crash("boom")], 5, 4)])
    result = _cycle(prober).run(file_set)

    assert result.report.strategy is ChaosStrategy.ISOLATED
    assert [c.error for c in result.report.crashes] == ["boom"]
    assert result.report.tests_run == 5
    assert result.report.tests_passed == 4
    assert len(result.reports) == 1
    assert "generate_injection_script" not in prober.calls


def test_strategy_a_runs_with_profile_delay(file_set):
    prober = FakeProber()
    _cycle(prober, profile="NIGHTMARE").run(file_set)
    assert prober.options[0].delay == 50


def test_strategy_b_crashes_are_appended_after_a(file_set):
    prober = FakeProber(chaos_runs=[TestRunResult([Crash("from A")], 3, 2)])
    scripts = []

    def inject(script):
        scripts.append(script)
        return _injected("from B1", "from B2")

    result = _cycle(prober, injection_request=inject).run(file_set)

    assert scripts == ["inject()"]
    assert [c.error for c in result.report.crashes] == ["from A", "from B1", "from B2"]
    assert result.report.strategy is ChaosStrategy.BOTH
    assert result.report.tests_run == 5
    assert [r.strategy for r in result.reports] == [ChaosStrategy.ISOLATED, ChaosStrategy.INJECTION]


def test_unavailable_live_render_keeps_strategy_a(file_set):
    prober = FakeProber(chaos_runs=[TestRunResult([], 2, 2)])
    lines = []
    result = _cycle(prober, injection_request=lambda script: None, lines=lines).run(file_set)

    assert result.is_stable
    assert result.report.strategy is ChaosStrategy.ISOLATED
    assert len(result.reports) == 1
    assert "Live render unavailable, skipping strategy B" in lines


def test_strategy_b_error_is_logged_not_raised(file_set):
    prober = FakeProber(chaos_runs=[TestRunResult([Crash("from A")], 1, 0)])
    lines = []

    def inject(script):
        raise ConnectionError("render host gone")

    result = _cycle(prober, injection_request=inject, lines=lines).run(file_set)

    assert [c.error for c in result.report.crashes] == ["from A"]
    assert any("Strategy B failed: render host gone" in line for line in lines)


def test_abort_skips_strategy_b(file_set):
    prober = FakeProber()
    called = []
    result = _cycle(prober, injection_request=called.append, is_aborted=lambda: True).run(file_set)

    assert called == []
    assert len(result.reports) == 1
