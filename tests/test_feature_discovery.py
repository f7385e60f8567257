import pytest

from agents.feature_discovery import (
    FeatureDiscovery,
    extract_signatures,
    is_feature_file,
    purpose_from_name,
)
from core.dream_types import FeatureStatus, GoalSource
from core.file_set import FileSet
from tests.fakes.fake_collaborators import FakeModel

FILES = {
    "src/App.tsx": "import { AuthService } from './services/AuthService';\n",
    "src/services/AuthService.ts": "export class AuthService {}\n",
    "src/services/BillingService.ts": "import { CartStore } from '../stores/CartStore';\nexport class BillingService {}\n",
    "src/stores/CartStore.ts": "export class CartStore {}\n",
    "src/agents/SyncAgent.ts": "/** Syncs offline edits. */\nexport class SyncAgent {}\n",
    "src/services/AuthService.test.ts": "",
    "src/utils.ts": "",
}


@pytest.mark.parametrize("path,expected", [
    ("src/services/AuthService.ts", True),
    ("app/billing_service.py", True),
    ("src/hooks/useThemeHook.tsx", True),
    ("src/utils.ts", False),
    ("src/services/AuthService.test.ts", False),
    ("node_modules/x/FooManager.js", False),
    ("tests/FooManager.ts", False),
    ("types/AuthService.d.ts", False),
])
def test_is_feature_file(path, expected):
    assert is_feature_file(path) is expected


def test_purpose_from_name():
    assert purpose_from_name("src/AuthService.ts") == "Auth Service"
    assert purpose_from_name("app/billing_service.py") == "billing service"


def test_extract_signatures_keeps_declarations():
    content = "import x from 'y';\n\nexport class A {\n  private z = 1;\n}\n"
    assert extract_signatures(content) == "import x from 'y';\nexport class A {"


def test_scan_classifies_features():
    report = FeatureDiscovery().scan(FileSet.from_mapping(FILES))
    by_file = {d.file: d for d in report.discoveries}

    assert report.scanned_files == len(FILES)
    assert by_file["src/services/AuthService.ts"].status is FeatureStatus.ACTIVE
    assert by_file["src/services/AuthService.ts"].inferred_purpose == "Auth Service (active, fully connected)"
    assert by_file["src/stores/CartStore.ts"].status is FeatureStatus.PARTIALLY_CONNECTED
    assert by_file["src/stores/CartStore.ts"].consumers == ["src/services/BillingService.ts"]
    assert by_file["src/services/BillingService.ts"].status is FeatureStatus.DISCONNECTED
    assert by_file["src/agents/SyncAgent.ts"].status is FeatureStatus.DISCONNECTED
    assert "src/services/AuthService.test.ts" not in by_file
    assert len(report.actionable) == 3


def test_scan_uses_model_for_inactive_features_only():
    model = FakeModel("Synchronises offline edits with the server.")
    report = FeatureDiscovery(model=model, max_inferences=2).scan(FileSet.from_mapping(FILES))
    by_file = {d.file: d for d in report.discoveries}

    assert len(model.prompts) == 2
    assert "Auth Service" in by_file["src/services/AuthService.ts"].inferred_purpose
    inferred = [d for d in report.actionable if d.inferred_purpose == "Synchronises offline edits with the server."]
    assert len(inferred) == 2


def test_model_failure_falls_back_to_marker():
    class BrokenModel:
        def respond(self, prompt):
            raise RuntimeError("quota")

    report = FeatureDiscovery(model=BrokenModel()).scan(FileSet.from_mapping(FILES))
    assert {d.inferred_purpose for d in report.actionable} == {"Purpose inference failed"}


def test_wiring_goals():
    discovery = FeatureDiscovery()
    goals = discovery.wiring_goals(discovery.scan(FileSet.from_mapping(FILES)))

    assert len(goals) == 3
    assert all(g.source is GoalSource.DISCOVERY for g in goals)
    prompts = {g.prompt.split('"')[1]: g.prompt for g in goals}
    assert prompts["BillingService.ts"].startswith('Wire the disconnected feature "BillingService.ts"')
    assert prompts["CartStore.ts"].startswith('Complete the integration of "CartStore.ts"')
    assert "src/services/BillingService.ts" in prompts["CartStore.ts"]
