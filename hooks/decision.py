#!/usr/bin/env python3
"""
Shellgate — Decision Emitter

Turns a verdict into the host's hook output and ends the process.

  allow   -> no output
  deny    -> PreToolUse permissionDecision "deny"
  ask     -> PreToolUse permissionDecision "ask"
  advise  -> PostToolUse additionalContext

Every path exits with code 0; the JSON carries the decision.
"""

import json
import sys
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Decision(Enum):
    ALLOW = "allow"
    ASK = "ask"
    DENY = "deny"
    ADVISE = "advise"


@dataclass(frozen=True)
class Verdict:
    decision: Decision
    reason: str = ""


def render(verdict: Verdict) -> Optional[dict]:
    """Build the hook output for a verdict, or None for allow."""
    if verdict.decision is Decision.ALLOW:
        return None
    if verdict.decision is Decision.ADVISE:
        return {
            "hookSpecificOutput": {
                "hookEventName": "PostToolUse",
                "additionalContext": verdict.reason,
            }
        }
    return {
        "hookSpecificOutput": {
            "hookEventName": "PreToolUse",
            "permissionDecision": verdict.decision.value,
            "permissionDecisionReason": verdict.reason,
        }
    }


def emit(verdict: Verdict):
    output = render(verdict)
    if output is not None:
        print(json.dumps(output))
    sys.exit(0)


def allow():
    emit(Verdict(Decision.ALLOW))


def deny(reason: str):
    emit(Verdict(Decision.DENY, reason))


def ask(reason: str):
    emit(Verdict(Decision.ASK, reason))


def advise(text: str):
    emit(Verdict(Decision.ADVISE, text))
