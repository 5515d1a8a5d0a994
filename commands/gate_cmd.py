#!/usr/bin/env python3
"""
Shellgate — Operator Command

Commands:
  /gate check <command>   Run both Bash guards on a command and show the verdicts
  /gate path <file>       Classify a file path against the sensitive-path rules
  /gate scan <file>       Scan a file's text for secret tokens
  /gate rules             Show how many rules each config source provides
  /gate log               Show recent audit log entries
  /gate help              Show this help
"""

import sys
import io
import json
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "hooks"))

import audit  # noqa: E402
from command_guard import check_command as check_policy  # noqa: E402
from path_check import PathStatus, classify_path  # noqa: E402
from pre_tool_use import PathGuard  # noqa: E402
from rule_loader import ConfigError, get_loader  # noqa: E402
from secret_scan import scan_output  # noqa: E402

# Fix Windows console encoding for Unicode output
if sys.platform == "win32":
    sys.stdout = io.TextIOWrapper(sys.stdout.buffer, encoding='utf-8', errors='replace')
    sys.stderr = io.TextIOWrapper(sys.stderr.buffer, encoding='utf-8', errors='replace')


def cmd_check(command: str):
    """Show what each Bash guard would decide for a command."""
    loader = get_loader()

    match = check_policy(command, loader)
    if match is None:
        print("Command policy:  ALLOW")
    else:
        rule, normalized, layer = match
        print("Command policy:  DENY")
        print(f"  Rule:     {rule.pattern}")
        print(f"  Matched:  {normalized} ({layer} pass)")
        print(f"  Message:  {rule.reason}")

    guard = PathGuard(loader.load_settings(), loader)
    reason = guard.check_command(command)
    if reason is None:
        print("Sensitive paths: ALLOW")
    else:
        print("Sensitive paths: DENY")
        print(f"  Reason:   {reason}")


def cmd_path(file_path: str):
    result = classify_path(file_path)
    labels = {
        PathStatus.SENSITIVE: "SENSITIVE",
        PathStatus.SAFE: "SAFE",
        PathStatus.ERROR: "ERROR",
    }
    print(f"{labels[result.status]}: {file_path}")
    if result.reason:
        print(f"  {result.reason}")


def cmd_scan(file_path: str):
    try:
        text = Path(file_path).read_text(encoding="utf-8", errors="replace")
    except (IOError, OSError) as e:
        print(f"Error reading {file_path}: {e}")
        return

    try:
        rules = get_loader().load_token_rules()
    except ConfigError as e:
        print(f"Error loading secret patterns: {e}")
        return

    names = scan_output(text, rules)
    if names:
        print(f"Possible secrets in {file_path}:")
        for name in names:
            print(f"  - {name}")
    else:
        print(f"No secrets detected in {file_path}")


def cmd_rules():
    loader = get_loader()
    print(f"Shellgate rules ({loader.config_dir})")
    print()
    for source, count in loader.get_rule_count().items():
        print(f"  {source:16} {count}")


def cmd_log():
    """Show recent audit log entries."""
    log_file = audit.log_path(get_loader().load_settings())
    if not log_file.exists():
        print("No audit log found yet.")
        print(f"Log will be created at: {log_file}")
        return

    try:
        lines = log_file.read_text(encoding="utf-8").strip().split('\n')
        recent = lines[-20:]  # Last 20 entries

        print(f"Shellgate Audit Log (last {len(recent)} entries)")
        print("=" * 60)

        for line in recent:
            try:
                entry = json.loads(line)
            except json.JSONDecodeError:
                continue
            ts = entry.get("timestamp", "")[:19]  # Trim microseconds
            verdict = entry.get("verdict", "?")
            hook = entry.get("hook", "?")
            subject = entry.get("subject", "")[:50]
            reason = entry.get("reason", "")[:60]
            rule = entry.get("rule", "")

            print(f"{ts} {verdict:6} [{hook:15}] {subject}")
            if reason:
                print(f"                         └─ {reason}")
            if rule:
                print(f"                            rule: {rule}")

        print()
        print(f"Full log: {log_file}")

    except (IOError, OSError) as e:
        print(f"Error reading log: {e}")


def cmd_help():
    print("""
Shellgate
Command-safety gate for agent shell and file access

Commands:
  /gate check <command>   Run both Bash guards on a command
  /gate path <file>       Classify a file path
  /gate scan <file>       Scan a file for secret tokens
  /gate rules             Show rule counts per config source
  /gate log               Show recent audit log entries
  /gate help              Show this help

Guards:
  Command policy    config/command-guard.conf   fail-open (deny on match)
  Sensitive paths   config/secret-patterns.json fail-closed for Bash, ask for Read
  Secret scan       token patterns on output    advisory only

Audit log: ~/.shellgate/audit.log
""")


def main():
    if len(sys.argv) < 2:
        cmd_help()
        return

    subcommand = sys.argv[1].lower()
    argument = " ".join(sys.argv[2:])

    with_argument = {
        "check": cmd_check,
        "path": cmd_path,
        "scan": cmd_scan,
    }
    commands = {
        "rules": cmd_rules,
        "log": cmd_log,
        "logs": cmd_log,
        "audit": cmd_log,
        "help": cmd_help,
        "-h": cmd_help,
        "--help": cmd_help,
    }

    if subcommand in with_argument:
        if not argument:
            print(f"Usage: /gate {subcommand} <{'command' if subcommand == 'check' else 'file'}>")
            return
        with_argument[subcommand](argument)
        return

    handler = commands.get(subcommand)
    if handler:
        handler()
    else:
        print(f"Unknown command: {subcommand}")
        print("Use '/gate help' for available commands.")


if __name__ == "__main__":
    main()
