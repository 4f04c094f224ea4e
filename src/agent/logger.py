from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional


LOG_PATH = Path(os.getenv("AGENT_LOG_PATH", "agent.log"))

logger = logging.getLogger(__name__)


def log_event(conversation_id: Optional[str], event: str, data: Dict[str, Any]) -> None:
    """
    Append one audit entry for a chat turn (user message, provider request,
    tool call or result, commit outcome) as a JSON line.
    """
    try:
        record = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "conversation_id": conversation_id,
            "event": event,
            "data": data,
        }
        LOG_PATH.parent.mkdir(parents=True, exist_ok=True)
        with LOG_PATH.open("a", encoding="utf-8") as f:
            f.write(json.dumps(record, ensure_ascii=False, default=str) + "\n")
    except Exception:
        # Audit logging must never break a turn.
        return


def read_events(conversation_id: Optional[str] = None, event: Optional[str] = None) -> List[Dict[str, Any]]:
    """Audit entries in write order, optionally filtered by conversation and event name."""
    if not LOG_PATH.exists():
        return []
    entries: List[Dict[str, Any]] = []
    with LOG_PATH.open(encoding="utf-8") as f:
        for line_no, line in enumerate(f, start=1):
            if not line.strip():
                continue
            try:
                entry = json.loads(line)
            except json.JSONDecodeError:
                logger.warning("Skipping unreadable audit line %d in %s", line_no, LOG_PATH)
                continue
            if conversation_id is not None and entry.get("conversation_id") != conversation_id:
                continue
            if event is not None and entry.get("event") != event:
                continue
            entries.append(entry)
    return entries
