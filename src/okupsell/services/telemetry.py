from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Mapping
from uuid import uuid4


@dataclass
class TelemetryService:
    """Append-only JSON Lines log of store events.

    Every record carries the session id of the service instance that wrote it,
    so events from one app run can be told apart in a shared file.
    """

    path: Path
    session: str = field(default_factory=lambda: uuid4().hex[:12])

    def log(self, event_type: str, payload: Mapping[str, object]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        rec = {
            "ts": datetime.now(tz=timezone.utc).isoformat(),
            "session": self.session,
            "type": event_type,
            "payload": dict(payload),
        }
        with self.path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(rec, ensure_ascii=False) + "\n")

    def events(self, event_type: str | None = None, *, session: str | None = None) -> list[dict[str, object]]:
        if not self.path.exists():
            return []
        out: list[dict[str, object]] = []
        with self.path.open(encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                rec = json.loads(line)
                if event_type is not None and rec.get("type") != event_type:
                    continue
                if session is not None and rec.get("session") != session:
                    continue
                out.append(rec)
        return out
