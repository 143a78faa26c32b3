"""Append-only JSON-lines audit trail for the sync server."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Any


def write_audit_entry(audit_path: Path, action: str, **fields: Any) -> None:
    """Append one timestamped event. Never include passwords, tokens or document bodies."""
    entry = {"timestamp": datetime.now(UTC).isoformat(), "action": action, **fields}
    audit_path.parent.mkdir(parents=True, exist_ok=True)
    with audit_path.open("a", encoding="utf-8") as f:
        f.write(json.dumps(entry, default=str) + "\n")
