#!/usr/bin/env python3
"""
Shellgate — PostToolUse Hook (Read, Bash)

Scans what a Read or Bash call returned for token-shaped secrets and, on a
hit, tells the agent not to repeat them. Runs after the tool, so it can
never block; it is the backstop for reads the PreToolUse guards missed
(redirections, interpreters, sourced files).

Exit codes:
  0 = Success (advisory, if any, in JSON output)

Design principle: Warn when unsure. If the patterns cannot be loaded the
agent still gets a generic warning for any non-empty output.
"""

import json
import sys
from typing import Optional

import audit
from decision import advise
from rule_loader import ConfigError, get_loader
from secret_scan import scan_output

HOOK_NAME = "secret-scan"

GENERIC_WARNING = ("Tool output may contain secrets. Do not repeat any token-like values "
                   "(secret pattern configuration could not be loaded).")


def secrets_warning(names) -> str:
    return (f"WARNING: Possible secrets detected in tool output ({', '.join(names)}). "
            "DO NOT repeat, display, or include these values in your response. "
            "Summarize the file content without including the actual secret values.")


def extract_output(tool_name: str, response) -> Optional[str]:
    """
    Pull the text a tool produced out of its response.

    Read -> tool_response.file.content
    Bash -> tool_response.stdout and tool_response.stderr
    Anything else -> None (not scanned)
    """
    if not isinstance(response, dict):
        return None
    if tool_name == "Read":
        file_info = response.get("file")
        if isinstance(file_info, dict):
            content = file_info.get("content")
            return content if isinstance(content, str) else ""
        return ""
    if tool_name == "Bash":
        parts = [response.get("stdout"), response.get("stderr")]
        return "\n".join(p for p in parts if isinstance(p, str) and p)
    return None


def main():
    try:
        context = json.loads(sys.stdin.read())
    except (ValueError, OSError):
        advise(GENERIC_WARNING)

    if not isinstance(context, dict):
        advise(GENERIC_WARNING)

    tool_name = context.get("tool_name", "")
    output = extract_output(tool_name, context.get("tool_response"))
    if not output:
        sys.exit(0)

    try:
        rules = get_loader().load_token_rules()
    except ConfigError as e:
        audit.log_decision(HOOK_NAME, tool_name, "ADVISE", f"Generic warning: {e}", "error")
        advise(GENERIC_WARNING)

    names = scan_output(output, rules)
    if names:
        audit.log_decision(HOOK_NAME, tool_name, "ADVISE", ", ".join(names), "pattern")
        advise(secrets_warning(names))

    sys.exit(0)


if __name__ == "__main__":
    main()
