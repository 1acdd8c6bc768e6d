import json
from datetime import datetime, timedelta, timezone
from io import StringIO

from main import main, watch
from flow_insights.config import InsightsConfig
from flow_insights.models import event_to_dict
from flow_insights.pipeline import FlowInsights

from conftest import QUICK_BOUNCE, build_bursts


def _write_events(tmp_path):
    base = datetime.now(timezone.utc) - timedelta(hours=2)
    events = build_bursts(4, semantic=QUICK_BOUNCE, base=base)
    payload = {
        "events": [event_to_dict(event) for event in events],
        "friction": [{"event_id": events[0].id, "friction_score": 0.4, "friction_types": ["back_button"]}],
    }
    path = tmp_path / "events.json"
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def test_ingest_mine_insights_report(tmp_path, capsys, monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    db = str(tmp_path / "insights.db")
    path = _write_events(tmp_path)

    assert main(["--db", db, "ingest", str(path)]) == 0
    assert "Ingested 12 events and 1 friction scores" in capsys.readouterr().out

    assert main(["--db", db, "mine", "--user", "user-1"]) == 0
    assert "user-1: found 1, stored 1" in capsys.readouterr().out

    assert main(["--db", db, "insights", "user-1"]) == 0
    out = capsys.readouterr().out
    assert "Generated 1 insights from 1 patterns" in out
    assert "Repeated Search Pattern" in out

    assert main(["--db", db, "report", "user-1"]) == 0
    assert "Insights: 1" in capsys.readouterr().out


def test_feedback_rejects_unknown_status(tmp_path, capsys):
    db = str(tmp_path / "insights.db")
    assert main(["--db", db, "feedback", "ins_missing", "wonderful"]) == 2
    assert "Invalid status" in capsys.readouterr().err
    assert main(["--db", db, "feedback", "ins_missing", "helpful"]) == 1


def test_watch_reports_live_patterns(capsys):
    kinds = ["click", "search", "nav"]
    lines = [
        json.dumps({"id": f"e{i}", "type": kinds[i % 3], "url": "https://a.example.com/", "ts": 1767258000 + i})
        for i in range(9)
    ]
    lines.insert(4, "{not json")
    app = FlowInsights(InsightsConfig())
    try:
        assert watch(app, StringIO("\n".join(lines)), session_id="s1") == 0
    finally:
        app.close()
    out = capsys.readouterr().out
    assert "pattern click -> search -> nav x3" in out
