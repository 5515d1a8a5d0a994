#!/usr/bin/env python3
"""
Shellgate — PreToolUse Hook (Read)

Asks for confirmation before the agent reads a file that matches the
sensitive-path rules (SSH keys, cloud credentials, .env files, ...).

Exit codes:
  0 = Success (uses JSON output for the ask decision)

Design principle: Ask, don't block. Refusing ordinary file access because
of a configuration problem is worse than asking, so rule errors and
malformed input ask with a warning that secret detection is degraded.
"""

import json
import sys

import audit
from decision import ask
from path_check import PathStatus, classify_path

HOOK_NAME = "read-guard"

DEGRADED_SUFFIX = "secret detection may be degraded"


def warn_degraded(reason: str, file_path: str = ""):
    """Ask because the check itself could not run properly."""
    audit.log_decision(HOOK_NAME, file_path, "ASK", reason, "error")
    ask(f"Secret guard warning: {reason}. {DEGRADED_SUFFIX}.")


def main():
    try:
        input_data = json.loads(sys.stdin.read())
    except ValueError as e:
        warn_degraded(f"could not parse hook input ({e})")
    except OSError as e:
        warn_degraded(f"could not read hook input ({e})")

    tool_input = input_data.get("tool_input") if isinstance(input_data, dict) else None
    file_path = tool_input.get("file_path", "") if isinstance(tool_input, dict) else ""
    if not isinstance(file_path, str) or not file_path:
        warn_degraded("no file path in hook input")

    result = classify_path(file_path)

    if result.status is PathStatus.SENSITIVE:
        audit.log_decision(HOOK_NAME, file_path, "ASK", result.reason, "path")
        ask(result.reason)

    if result.status is PathStatus.ERROR:
        warn_degraded(result.reason, file_path)

    # Safe reads are not logged
    sys.exit(0)


if __name__ == "__main__":
    main()
