"""Lightweight pipeline metrics collector backed by JSONL."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from inbox_agent.utils.helpers import ensure_dir


def _now_utc() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


def _to_iso(ts: datetime | None = None) -> str:
    return (ts or _now_utc()).isoformat()


def _parse_iso(value: str | None) -> datetime | None:
    raw = (value or "").strip()
    if not raw:
        return None
    try:
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)
    except ValueError:
        return None


def _pct(numerator: int, denominator: int) -> float:
    if denominator <= 0:
        return 0.0
    return round((numerator / denominator) * 100.0, 2)


def _p95(values: list[float]) -> float:
    if not values:
        return 0.0
    data = sorted(float(v) for v in values)
    index = int(0.95 * (len(data) - 1))
    return round(data[index], 2)


class MetricsStore:
    """Append-only metrics event store with aggregated snapshots."""

    def __init__(self, events_path: Path):
        self.events_path = events_path
        ensure_dir(events_path.parent)

    def _append(self, payload: dict[str, Any]) -> bool:
        record = dict(payload)
        record.setdefault("ts", _to_iso())
        line = json.dumps(record, ensure_ascii=False)
        try:
            with self.events_path.open("a", encoding="utf-8") as handle:
                handle.write(line + "\n")
            return True
        except OSError:
            return False

    def record_reasoning_call(
        self,
        *,
        model: str,
        success: bool,
        latency_ms: float,
        steps: int = 0,
        error: str = "",
    ) -> bool:
        return self._append(
            {
                "type": "reasoning_call",
                "model": (model or "").strip(),
                "success": bool(success),
                "latency_ms": round(float(latency_ms), 2),
                "steps": max(0, int(steps)),
                "error": (error or "").strip()[:500],
            }
        )

    def record_step(self, *, module: str, action: str, outcome: str, error: str = "") -> bool:
        return self._append(
            {
                "type": "step",
                "module": (module or "").strip(),
                "action": (action or "").strip(),
                "outcome": (outcome or "").strip(),
                "error": (error or "").strip()[:500],
            }
        )

    def record_flush(self, *, module: str, fragments: int) -> bool:
        return self._append(
            {
                "type": "flush",
                "module": (module or "").strip(),
                "fragments": max(0, int(fragments)),
            }
        )

    def _iter_events(self, since: datetime | None = None) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        try:
            if not self.events_path.exists():
                return []
            for raw_line in self.events_path.read_text(encoding="utf-8").splitlines():
                line = raw_line.strip()
                if not line:
                    continue
                try:
                    event = json.loads(line)
                except json.JSONDecodeError:
                    continue
                if not isinstance(event, dict):
                    continue
                if since is not None:
                    ts = _parse_iso(str(event.get("ts", "")))
                    if ts is None or ts < since:
                        continue
                items.append(event)
        except OSError:
            return []
        return items

    def snapshot(self, hours: int = 24) -> dict[str, Any]:
        """Build aggregated metrics snapshot for the given window."""
        window_hours = max(1, int(hours))
        since = _now_utc() - timedelta(hours=window_hours)
        events = self._iter_events(since=since)

        reasoning_events = [e for e in events if e.get("type") == "reasoning_call"]
        step_events = [e for e in events if e.get("type") == "step"]
        flush_events = [e for e in events if e.get("type") == "flush"]

        reasoning_success = sum(1 for e in reasoning_events if bool(e.get("success")))
        latencies = [float(e.get("latency_ms", 0.0) or 0.0) for e in reasoning_events]

        outcomes: dict[str, int] = {}
        actions: dict[str, int] = {}
        for item in step_events:
            outcome = str(item.get("outcome", "")).strip() or "unknown"
            outcomes[outcome] = outcomes.get(outcome, 0) + 1
            action = str(item.get("action", "")).strip() or "unknown"
            actions[action] = actions.get(action, 0) + 1

        fragments = sum(int(e.get("fragments", 0) or 0) for e in flush_events)

        return {
            "window_hours": window_hours,
            "generated_at": _to_iso(),
            "events_file": str(self.events_path),
            "totals": {"events": len(events)},
            "reasoning": {
                "calls": len(reasoning_events),
                "success": reasoning_success,
                "errors": len(reasoning_events) - reasoning_success,
                "success_rate": _pct(reasoning_success, len(reasoning_events)),
                "latency_ms_p95": _p95(latencies),
            },
            "steps": {
                "total": len(step_events),
                "outcomes": outcomes,
                "actions": actions,
            },
            "flushes": {
                "count": len(flush_events),
                "fragments": fragments,
                "avg_fragments": round(fragments / len(flush_events), 2) if flush_events else 0.0,
            },
        }
