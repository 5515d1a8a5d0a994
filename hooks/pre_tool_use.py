#!/usr/bin/env python3
"""
Shellgate — PreToolUse Hook (Bash, sensitive paths)

Blocks shell commands that read secret files (cat ~/.ssh/id_rsa,
head ~/.aws/credentials, ...). Reading a file through the shell bypasses
the Read hook, so the same path rules are applied to the arguments of
file-read commands here.

Two passes are checked:
  Primary:   quote-aware top-level segments
  Secondary: fragments surfaced from inside $( ), ( ) and back-quotes

Exit codes:
  0 = Success (uses JSON output for the deny decision)

Design principle: Fail-closed. Unreadable input, an empty command, a path
rule error or a path the guard cannot resolve blocks the command.
"""

import json
import os
import re
import shlex
import sys
from typing import Dict, List, Optional

import audit
from decision import deny
from deep_scanner import split_both_passes
from normalizer import CommandNormalizer
from path_check import PathStatus, classify_path
from rule_loader import RuleLoader, get_loader
from shell_scanner import Segment

HOOK_NAME = "bash-path-guard"

# Fail-closed: if True, errors during the safety check block the command
FAIL_CLOSED = True

# Characters a shell would expand or interpret before the program sees the path
SHELL_METACHARS = re.compile(r"[$`{*?\[()]")

EXPANSION_REASON = ("Path contains shell expansion syntax that cannot be safely resolved. "
                    "Use the Read tool instead.")
PARSE_FAILURE_REASON = "Secret guard: failed to parse file-read command arguments. Use the Read tool instead."

# Argument check levels
SKIP = 0
FULL_CHECK = 1   # metacharacter deny + path rules (file-read commands)
PATH_ONLY = 2    # path rules, expansion syntax only (case/select/coproc)


class PathGuard:
    """Applies the path rules to the arguments of file-read commands."""

    def __init__(self, settings: Dict, loader: Optional[RuleLoader] = None):
        self.loader = loader
        self.normalizer = CommandNormalizer(settings, keep_case_head=True)
        self.file_read_commands = set(settings["file_read_commands"])
        self.embedding_keywords = set(settings["path_embedding_keywords"])
        words = "|".join(re.escape(c) for c in sorted(self.file_read_commands))
        self.mentions_file_read = re.compile(rf"\b({words})\b")
        self.starts_with_file_read = re.compile(rf"^({words})(\s|$)")
        self.sensitive_hint = re.compile(settings["sensitive_hint"])
        checked = "|".join(re.escape(c) for c in sorted(self.file_read_commands | self.embedding_keywords))
        self.mentions_checked_command = re.compile(rf"\b({checked})\b")

    def check_level(self, command_name: str) -> int:
        if command_name in self.file_read_commands:
            return FULL_CHECK
        if command_name in self.embedding_keywords:
            return PATH_ONLY
        if SHELL_METACHARS.search(command_name):
            return FULL_CHECK
        return SKIP

    @staticmethod
    def _tokenize(text: str, lenient: bool) -> Optional[List[str]]:
        """Split a normalized command into words, or None if it does not parse."""
        try:
            return shlex.split(text)
        except ValueError:
            if lenient:
                return text.replace('"', " ").replace("'", " ").split()
            return None

    def check_segment(self, segment: Segment, lenient: bool = False) -> Optional[str]:
        """
        Check one segment. Returns a deny reason or None.

        lenient is used for secondary fragments: those are often quote-broken
        pieces of a larger word, so a rule error or unresolvable syntax only
        blocks when the fragment text also looks like it names a secret.
        """
        text = self.normalizer.normalize(segment.text)
        if not text:
            return None

        args = self._tokenize(text, lenient)
        if args is None:
            if self.starts_with_file_read.match(text):
                return PARSE_FAILURE_REASON
            if segment.parse_failed and self.mentions_file_read.search(text):
                return PARSE_FAILURE_REASON
            return None
        if not args:
            return None

        level = self.check_level(os.path.basename(args[0]))
        if level == SKIP:
            return None

        looks_sensitive = lenient and self.sensitive_hint.search(segment.text) is not None

        for arg in args[1:]:
            if arg.startswith("-"):
                continue

            if SHELL_METACHARS.search(arg):
                expansion = "$" in arg or "`" in arg or "/" in arg or "~" in arg
                if level == FULL_CHECK or expansion:
                    if not lenient or looks_sensitive:
                        return EXPANSION_REASON
                    continue

            result = classify_path(arg, self.loader)
            if result.status is PathStatus.SAFE:
                continue
            if result.status is PathStatus.ERROR and lenient and not looks_sensitive:
                continue
            return f"{result.reason}. Use the Read tool instead for file access."
        return None

    def check_command(self, command: str) -> Optional[str]:
        """Check both passes of a command. Returns the first deny reason or None."""
        primary, secondary = split_both_passes(command)
        for segment in primary:
            reason = self.check_segment(segment)
            if reason:
                return reason
        for fragment in secondary:
            reason = self.check_segment(fragment, lenient=True)
            if reason:
                return reason
        return None


# === MAIN ===

def block_command(reason: str, command: str, layer: str):
    audit.log_decision(HOOK_NAME, command, "DENY", reason, layer)
    deny(reason)


def block_error(reason: str, command: str = ""):
    """Block due to an error (fail-closed behavior)."""
    audit.log_decision(HOOK_NAME, command, "DENY", reason, "error")
    deny(f"Secret guard (fail-closed): {reason}")


def main():
    try:
        context = json.loads(sys.stdin.read())
    except ValueError as e:
        block_error(f"Failed to parse hook input: {e}")
    except OSError as e:
        block_error(f"Failed to read hook input: {e}")

    if not isinstance(context, dict):
        block_error("Hook input is not a JSON object")
    tool_input = context.get("tool_input") or {}
    command = tool_input.get("command", "") if isinstance(tool_input, dict) else ""
    if not isinstance(command, str) or not command.strip():
        block_error("Empty command")

    try:
        loader = get_loader()
        guard = PathGuard(loader.load_settings(), loader)

        # Nothing to check unless a file-read command or keyword is named somewhere
        if not guard.mentions_checked_command.search(command):
            sys.exit(0)

        reason = guard.check_command(command)
    except Exception as e:
        if FAIL_CLOSED:
            block_error(f"Safety check failed: {e}", command)
        sys.exit(0)

    if reason:
        block_command(reason, command, "path")

    sys.exit(0)


if __name__ == "__main__":
    main()
