from __future__ import annotations
import os, json
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Any

# Default: orgstructure/var/audit (override with env AUDIT_DIR)
_DEFAULT_DIR = Path(__file__).resolve().parents[2] / "var" / "audit"
AUDIT_DIR = Path(os.getenv("AUDIT_DIR", str(_DEFAULT_DIR)))
AUDIT_MIRROR_ENABLED = os.getenv("AUDIT_MIRROR_ENABLED", "1") == "1"

def _ensure_dir() -> None:
    AUDIT_DIR.mkdir(parents=True, exist_ok=True)

def write_event(event: Dict[str, Any]) -> Path:
    """
    Append a single change-log event to a day-partitioned .jsonl file.
    Each line is a JSON object.
    """
    _ensure_dir()
    day = datetime.now(timezone.utc).strftime("%Y-%m-%d")
    fp = AUDIT_DIR / f"{day}.jsonl"
    with fp.open("a", encoding="utf-8") as fh:
        json.dump(event, fh, ensure_ascii=False, default=str)
        fh.write("\n")
    return fp
