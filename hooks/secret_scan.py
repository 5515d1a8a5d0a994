#!/usr/bin/env python3
"""
Shellgate — Secret Pattern Scanner

Looks for token-shaped values in the text a tool returned (file contents,
command output). It never blocks anything; a hit only produces an advisory
telling the agent not to repeat the values.

Rules with min_unique_chars > 0 are statistical (e.g. "any long base64
run") and get three false-positive filters:
  - too few distinct characters (aaaa..., 0000...)
  - pure hexadecimal (hashes, commit ids, migration names)
  - directly preceded by an integrity prefix (sha256-, sha384-, sha512-)
"""

import re
from dataclasses import dataclass
from typing import List, Pattern

INTEGRITY_PREFIXES = ("sha256-", "sha384-", "sha512-")
HEX_ONLY = re.compile(r"[0-9a-fA-F]+")


@dataclass(frozen=True)
class SecretRule:
    name: str
    pattern: Pattern
    min_unique_chars: int = 0


def _is_false_positive(match: str, text: str, min_unique_chars: int) -> bool:
    stripped = match.rstrip("=")
    if len(set(stripped)) < min_unique_chars:
        return True
    if HEX_ONLY.fullmatch(stripped):
        return True
    return any(prefix + match in text for prefix in INTEGRITY_PREFIXES)


def rule_matches(rule: SecretRule, text: str) -> bool:
    """True if any match of the rule survives its filters."""
    for match in rule.pattern.finditer(text):
        value = match.group(0)
        if rule.min_unique_chars <= 0:
            return True
        if not _is_false_positive(value, text, rule.min_unique_chars):
            return True
    return False


def scan_output(text: str, rules: List[SecretRule]) -> List[str]:
    """Return the names of the rules that found a secret, in rule order."""
    names: List[str] = []
    for rule in rules:
        if rule.name not in names and rule_matches(rule, text):
            names.append(rule.name)
    return names
