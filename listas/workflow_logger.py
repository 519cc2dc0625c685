# listas/workflow_logger.py
# review/import events: one line per event, console + run file
from __future__ import annotations

from datetime import datetime, timezone
import json
import os
from pathlib import Path
from typing import Any, Dict, Optional

_LOG_PATH: Path | None = None


def run_log_path() -> Path:
    """logs/run_<UTC stamp>.log, created on first use and reused for the whole run."""
    global _LOG_PATH
    if _LOG_PATH is None:
        log_dir = Path(os.getenv("WORKFLOW_LOG_DIR", "logs"))
        log_dir.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        _LOG_PATH = log_dir / f"run_{stamp}.log"
    return _LOG_PATH


def format_event(
    *,
    course_id: Optional[str],
    status: str,
    actor: str,
    event: str,
    extra: Optional[Dict[str, Any]] = None,
    at: Optional[datetime] = None,
) -> str:
    when = (at or datetime.now(timezone.utc)).isoformat(timespec="seconds")
    payload = json.dumps(extra or {}, ensure_ascii=False, default=str, sort_keys=True)
    return f"{when} | course_id={course_id or '-'} | status={status} | actor={actor} | {event} | json={payload}"


def log_event(
    *,
    course_id: Optional[str],
    status: str,
    actor: str,
    event: str,
    extra: Optional[Dict[str, Any]] = None,
) -> str:
    line = format_event(course_id=course_id, status=status, actor=actor, event=event, extra=extra)

    # console for live imports, file for the audit trail
    print(line, flush=True)
    with run_log_path().open("a", encoding="utf-8") as f:
        f.write(line + "\n")
    return line
