# events.py
import json
import logging
import os
import threading
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Dict, List

logger = logging.getLogger(__name__)


def _structured(event: Dict[str, Any]) -> Dict[str, Any]:
    data = event.get("data") or {}
    analysis = data.get("analysis") or data.get("call_analysis") or {}
    return analysis.get("structured") or analysis.get("custom_analysis_data") or {}


class CallEventLog:
    """Append-only JSON-lines log of webhook events."""

    def __init__(self, path: str):
        self.path = str(path)
        self._lock = threading.Lock()

    def append(self, event_type: str, data: Dict[str, Any]) -> None:
        record = {"received_at": datetime.now(timezone.utc).isoformat(), "type": event_type, "data": data}
        line = json.dumps(record, ensure_ascii=False, default=str)
        with self._lock:
            os.makedirs(os.path.dirname(os.path.abspath(self.path)), exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(line + "\n")

    def _read(self) -> List[Dict[str, Any]]:
        if not os.path.exists(self.path):
            return []
        events = []
        with self._lock, open(self.path, "r", encoding="utf-8") as f:
            for n, line in enumerate(f, 1):
                if not line.strip():
                    continue
                try:
                    events.append(json.loads(line))
                except json.JSONDecodeError:
                    logger.warning(f"Skipping malformed line {n} in {self.path}")
        return events

    def recent(self, limit: int = 25) -> List[Dict[str, Any]]:
        limit = max(1, min(int(limit), 200))
        return self._read()[-limit:]

    def summary(self) -> Dict[str, Any]:
        by_type: Counter = Counter()
        scores = []
        issues = 0
        events = self._read()
        for evt in events:
            by_type[evt.get("type")] += 1
            s = _structured(evt)
            score = s.get("satisfied_score", (evt.get("data") or {}).get("satisfied_score"))
            if isinstance(score, (int, float)) and not isinstance(score, bool):
                scores.append(score)
            if s.get("had_issue", (evt.get("data") or {}).get("had_issue")):
                issues += 1
        return {
            "total_events": len(events),
            "by_type": dict(by_type),
            "avg_satisfaction": sum(scores) / len(scores) if scores else None,
            "issues": issues,
        }
