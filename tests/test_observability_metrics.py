from pathlib import Path

from inbox_agent.observability.metrics import MetricsStore


def test_snapshot_aggregates_events(tmp_path: Path):
    store = MetricsStore(tmp_path / "metrics" / "events.jsonl")
    store.record_reasoning_call(model="openai/gpt-4o-mini", success=True, latency_ms=120, steps=2)
    store.record_reasoning_call(model="openai/gpt-4o-mini", success=False, latency_ms=900, error="timeout")
    store.record_step(module="whatsapp", action="ANSWER", outcome="executed")
    store.record_step(module="whatsapp", action="BOGUS", outcome="skipped")
    store.record_flush(module="whatsapp", fragments=3)
    store.record_flush(module="whatsapp", fragments=1)

    snap = store.snapshot(hours=24)
    assert snap["totals"]["events"] == 6
    assert snap["reasoning"]["calls"] == 2
    assert snap["reasoning"]["success_rate"] == 50.0
    assert snap["reasoning"]["latency_ms_p95"] == 120.0
    assert snap["steps"]["outcomes"] == {"executed": 1, "skipped": 1}
    assert snap["flushes"] == {"count": 2, "fragments": 4, "avg_fragments": 2.0}


def test_snapshot_ignores_malformed_lines(tmp_path: Path):
    path = tmp_path / "events.jsonl"
    store = MetricsStore(path)
    store.record_flush(module="instagram", fragments=2)
    with path.open("a", encoding="utf-8") as handle:
        handle.write("not json\n[1, 2]\n")
    assert store.snapshot()["flushes"]["count"] == 1
