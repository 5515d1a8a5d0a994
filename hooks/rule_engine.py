#!/usr/bin/env python3
"""
Shellgate — Rule Engine

Ordered, first-match-wins rule evaluation shared by the command policy
(regex rules over normalized commands) and the path classifier (exact,
glob and regex rules over canonical paths).
"""

import fnmatch
import os
import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, Optional, Tuple


class Action(Enum):
    ASK = "ask"
    DENY = "deny"


@dataclass(frozen=True)
class Rule:
    """
    A single rule.

    Attributes:
        pattern: The rule as written in configuration (regex, glob or path).
        reason: Human-readable message reported when the rule matches.
        matcher: Predicate applied to the subject string.
        action: What a match asks the caller to do.
    """
    pattern: str
    reason: str
    matcher: Callable[[str], bool]
    action: Action = Action.DENY

    def matches(self, subject: str) -> bool:
        return self.matcher(subject)


def regex_rule(pattern: str, reason: str, action: Action = Action.DENY) -> Rule:
    """Build a rule matched with re.search. Raises re.error on a bad pattern."""
    compiled = re.compile(pattern)
    return Rule(pattern, reason, lambda subject: compiled.search(subject) is not None, action)


def glob_rule(pattern: str, reason: str, action: Action = Action.DENY) -> Rule:
    """Build a case-sensitive glob rule; * also matches across /."""
    return Rule(pattern, reason, lambda subject: fnmatch.fnmatchcase(subject, pattern), action)


def exact_rule(path: str, reason: str, action: Action = Action.DENY) -> Rule:
    return Rule(path, reason, lambda subject: subject == path, action)


def canonicalize(path: str) -> str:
    """Expand ~ and environment variables, then resolve to a real absolute path."""
    return os.path.realpath(os.path.expandvars(os.path.expanduser(path)))


def first_match(rules: Iterable[Rule], subject: str) -> Optional[Rule]:
    """Return the first rule that matches subject, or None."""
    for rule in rules:
        if rule.matches(subject):
            return rule
    return None


def first_match_in(rules: Iterable[Rule], subjects: Iterable[str]) -> Optional[Tuple[str, Rule]]:
    """
    Evaluate subjects in order and stop at the first one any rule matches.

    Returns (subject, rule) or None.
    """
    rules = list(rules)
    for subject in subjects:
        rule = first_match(rules, subject)
        if rule is not None:
            return subject, rule
    return None
