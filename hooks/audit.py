#!/usr/bin/env python3
"""
Shellgate — Audit Log

Appends one JSON line per non-trivial decision to ~/.shellgate/audit.log.

The `audit` section of gate.yaml turns the log on or off and can move it.
The environment wins over the file: SHELLGATE_AUDIT_LOG sets the path and
SHELLGATE_AUDIT=off disables logging.

The log is write-only from the hooks' point of view: no decision ever reads
it back. A failure to write prints a warning and never changes a verdict.
"""

import json
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional

from rule_loader import get_loader

# === CONFIGURATION ===

LOG_FILE_ENV = "SHELLGATE_AUDIT_LOG"
ENABLED_ENV = "SHELLGATE_AUDIT"
OFF_VALUES = ("off", "0", "false", "no")

STATE_DIR = Path.home() / ".shellgate"
LOG_FILE = Path(os.environ.get(LOG_FILE_ENV, str(STATE_DIR / "audit.log")))

MAX_SUBJECT_LENGTH = 500


def _audit_settings(settings: Optional[Dict]) -> Dict:
    if settings is None:
        settings = get_loader().load_settings()
    section = settings.get("audit")
    return section if isinstance(section, dict) else {}


def is_enabled(settings: Optional[Dict] = None) -> bool:
    """SHELLGATE_AUDIT if set, otherwise audit.enabled from gate.yaml."""
    value = os.environ.get(ENABLED_ENV)
    if value is not None:
        return value.lower() not in OFF_VALUES
    return _audit_settings(settings).get("enabled", True) is not False


def log_path(settings: Optional[Dict] = None) -> Path:
    """SHELLGATE_AUDIT_LOG if set, otherwise audit.log_file, otherwise LOG_FILE."""
    if os.environ.get(LOG_FILE_ENV):
        return LOG_FILE
    configured = _audit_settings(settings).get("log_file")
    if configured:
        return Path(os.path.expanduser(str(configured)))
    return LOG_FILE


# === LOGGING ===

def log_decision(hook: str, subject: str, verdict: str, reason: str, layer: str,
                 rule: str = "", settings: Optional[Dict] = None):
    """Log a guard decision to the audit file."""
    try:
        if not is_enabled(settings):
            return
        log_file = log_path(settings)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        entry = {
            "timestamp": datetime.now().isoformat(),
            "hook": hook,
            "subject": subject[:MAX_SUBJECT_LENGTH],
            "verdict": verdict,
            "reason": reason,
            "layer": layer,
        }
        if rule:
            entry["rule"] = rule
        with open(log_file, "a", encoding="utf-8") as f:
            f.write(json.dumps(entry) + "\n")
    except (IOError, OSError) as e:
        print(f"Warning: Could not write to audit log: {e}", file=sys.stderr)
