#!/usr/bin/env python3
"""
Shellgate — PreToolUse Hook (Bash, command policy)

Denies commands that match a rule in config/command-guard.conf, such as
running docker compose directly or installing packages.

Every command is split twice (primary segments, then secondary fragments
that surface $( ), ( ) and back-quote contents), heredoc bodies are
dropped, each piece is normalized, and the policy rules are tried in file
order. The first match denies the whole command.

Exit codes:
  0 = Success (uses JSON output for the deny decision)

Design principle: Fail-open. These rules protect workflow, not secrets,
so malformed input, missing config or a parse error allows the command.
"""

import json
import sys
from typing import List, Optional, Tuple

import audit
from decision import deny
from deep_scanner import split_both_passes
from normalizer import CommandNormalizer
from rule_engine import Rule, first_match_in
from rule_loader import RuleLoader, get_loader

HOOK_NAME = "command-guard"

# Fail-open: if False, errors during the policy check allow the command
FAIL_CLOSED = False


# === POLICY CHECK ===

def check_command(command: str, loader: Optional[RuleLoader] = None) -> Optional[Tuple[Rule, str, str]]:
    """
    Check every segment and fragment of a command against the policy.

    Returns (rule, normalized_segment, layer) for the first match, or None.
    """
    loader = loader or get_loader()
    rules = loader.load_policy_rules()
    if not rules:
        return None

    normalizer = CommandNormalizer(loader.load_settings())
    primary, secondary = split_both_passes(command)

    passes: List[Tuple[str, List[str]]] = [
        ("primary", [s.text for s in primary]),
        ("secondary", [s.text for s in secondary]),
    ]
    for layer, segments in passes:
        normalized = [n for n in (normalizer.normalize(s) for s in segments) if n]
        match = first_match_in(rules, normalized)
        if match is not None:
            subject, rule = match
            return rule, subject, layer
    return None


# === MAIN ===

def block_command(rule: Rule, command: str, layer: str):
    audit.log_decision(HOOK_NAME, command, "DENY", rule.reason, layer, rule=rule.pattern)
    deny(rule.reason)


def main():
    try:
        context = json.loads(sys.stdin.read())
    except (ValueError, OSError) as e:
        print(f"Warning: Could not parse hook input ({e}), allowing", file=sys.stderr)
        sys.exit(0)

    if not isinstance(context, dict):
        sys.exit(0)
    tool_input = context.get("tool_input") or {}
    command = tool_input.get("command", "") if isinstance(tool_input, dict) else ""
    if not isinstance(command, str) or not command.strip():
        sys.exit(0)

    try:
        match = check_command(command)
    except Exception as e:
        if FAIL_CLOSED:
            deny(f"Command policy check failed: {e}")
        print(f"Warning: Command policy check failed ({e}), allowing", file=sys.stderr)
        audit.log_decision(HOOK_NAME, command, "ALLOW", f"Check failed: {e}", "error")
        sys.exit(0)

    if match is not None:
        rule, _, layer = match
        block_command(rule, command, layer)

    sys.exit(0)


if __name__ == "__main__":
    main()
