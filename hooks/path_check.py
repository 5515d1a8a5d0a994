#!/usr/bin/env python3
"""
Shellgate — Sensitive Path Check

Classifies one file path as sensitive, safe, or "could not tell".

The path is expanded (~, $VARS) and resolved (.., duplicate slashes,
symlinks) first, then tested against, in order:
  1. exact paths      (secret-patterns.json, canonicalized the same way)
  2. glob patterns    (secret-patterns.json)
  3. regex patterns   (secret-patterns.json)
  4. project rules    (secret-paths.conf, optional)

Used by the Bash path guard (error = deny) and the Read guard
(error = ask with a warning).

Also usable on its own:
  python hooks/path_check.py PATH

Exit codes:
  0 = sensitive (reason on stdout)
  1 = safe (no output)
  2 = error (reason on stdout)
"""

import sys
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from rule_engine import canonicalize, first_match
from rule_loader import ConfigError, RuleLoader, get_loader


class PathStatus(Enum):
    SENSITIVE = "sensitive"
    SAFE = "safe"
    ERROR = "error"


@dataclass(frozen=True)
class PathResult:
    status: PathStatus
    reason: str = ""

    @property
    def is_safe(self) -> bool:
        return self.status is PathStatus.SAFE


def classify_path(path: str, loader: Optional[RuleLoader] = None) -> PathResult:
    """Classify a single path argument."""
    if not path:
        return PathResult(PathStatus.ERROR, "Secret path check: no file path provided")

    loader = loader or get_loader()
    try:
        rules = loader.load_path_rules() + loader.load_supplementary_path_rules()
    except ConfigError as e:
        return PathResult(PathStatus.ERROR, f"Secret path check: {e}")

    try:
        canonical = canonicalize(path)
    except (OSError, ValueError):
        return PathResult(PathStatus.ERROR, f"Secret path check: failed to canonicalize path '{path}'")

    rule = first_match(rules, canonical)
    if rule is not None:
        return PathResult(PathStatus.SENSITIVE, rule.reason)
    return PathResult(PathStatus.SAFE)


EXIT_CODES = {
    PathStatus.SENSITIVE: 0,
    PathStatus.SAFE: 1,
    PathStatus.ERROR: 2,
}


def main():
    path = sys.argv[1] if len(sys.argv) > 1 else ""
    result = classify_path(path)
    if result.reason:
        print(result.reason)
    sys.exit(EXIT_CODES[result.status])


if __name__ == "__main__":
    main()
