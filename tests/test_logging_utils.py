import json

from core.logging_utils import log_json


def test_log_json_writes_one_masked_line(capsys):
    log_json("warn", "goal_failed", goal="user_1",
             details={"error": "Build failed", "credential": "ghp_abcdefghijklmnopqrstuvwx"})

    lines = capsys.readouterr().err.strip().splitlines()
    assert len(lines) == 1
    entry = json.loads(lines[0])
    assert entry["level"] == "WARN"
    assert entry["event"] == "goal_failed"
    assert entry["goal"] == "user_1"
    assert entry["details"] == {"error": "Build failed", "credential": "[REDACTED]"}


def test_log_json_stream_and_level(monkeypatch, capsys):
    monkeypatch.setenv("DREAM_LOG_STREAM", "stdout")
    monkeypatch.setenv("DREAM_LOG_LEVEL", "WARN")

    log_json("INFO", "chaos_cycle_done")
    log_json("ERROR", "campaign_error")

    out = capsys.readouterr().out.strip().splitlines()
    assert [json.loads(line)["event"] for line in out] == ["campaign_error"]
