#!/usr/bin/env python3
"""
Shellgate — Heredoc Recognizer

Heredoc bodies are data, not commands. They are cut out of the raw command
line by line before either splitter runs, so nothing inside a body (an
apostrophe, an unbalanced paren) can change how the rest of the command is
quoted or split.

A crafted one-liner must not be able to switch the filter on and hide the
commands that follow it, so an opener is only honoured when:
  - it is not inside a quoted string, and
  - every closing identifier really appears as a standalone line after it.

When the delimiter is unquoted the shell still expands $( ) and back-quotes
in the body, so those commands are handed back for checking.
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from shell_scanner import FrameKind, QuoteTracker, closing_index

# <<EOF, <<-EOF, <<'EOF', <<"EOF"; <<< (here-string) never matches
HEREDOC_OPENER = re.compile(r"<<(-?)(['\"]?)([A-Za-z_][A-Za-z0-9_]*)\2")

QUOTE_FRAMES = (FrameKind.SINGLE_QUOTE, FrameKind.DOUBLE_QUOTE)


@dataclass(frozen=True)
class HeredocOpener:
    delimiter: str
    strip_tabs: bool
    quoted: bool


@dataclass
class HeredocBody:
    opener: HeredocOpener
    lines: List[str] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "\n".join(self.lines)


def opener_at(text: str, pos: int) -> Optional[HeredocOpener]:
    """Return the heredoc opener starting at `pos`, if there is one."""
    if pos > 0 and not text[pos - 1].isspace():
        return None
    match = HEREDOC_OPENER.match(text, pos)
    if match is None:
        return None
    return HeredocOpener(match.group(3), match.group(1) == "-", match.group(2) != "")


def _is_closing_line(line: str, opener: HeredocOpener) -> bool:
    if opener.strip_tabs:
        line = line.lstrip("\t")
    return line == opener.delimiter


def _read_bodies(text: str, start: int, openers: List[HeredocOpener]) -> Tuple[int, List[HeredocBody]]:
    """
    Read one body per opener, in order, starting at `start`.

    Returns the index just past the last closing line. If any closing line
    is missing nothing is consumed and `start` is returned.
    """
    pos = start
    bodies: List[HeredocBody] = []
    for opener in openers:
        body = HeredocBody(opener)
        while pos < len(text):
            newline = text.find("\n", pos)
            end = len(text) if newline == -1 else newline
            line = text[pos:end]
            pos = end + 1
            if _is_closing_line(line, opener):
                bodies.append(body)
                break
            body.lines.append(line)
        else:
            return start, []
    return min(pos, len(text)), bodies


def strip_heredoc_bodies(command: str) -> Tuple[str, List[HeredocBody]]:
    """
    Remove heredoc bodies and their closing lines from a command.

    The opener stays where it was and the newline ending its line is kept,
    so whatever follows the closing line is still a separate command.
    Returns (remaining_command, bodies).
    """
    tracker = QuoteTracker(command)
    kept: List[str] = []
    bodies: List[HeredocBody] = []
    pending: List[HeredocOpener] = []

    while not tracker.done:
        pos = tracker.state.pos
        if tracker.state.top not in QUOTE_FRAMES:
            if command[pos] == "\n" and pending:
                kept.append("\n")
                end, read = _read_bodies(command, pos + 1, pending)
                bodies.extend(read)
                pending = []
                tracker.state.pos = end
                continue
            opener = opener_at(command, pos)
            if opener is not None:
                pending.append(opener)
        kept.append(tracker.advance())

    return "".join(kept), bodies


def body_substitutions(body: str) -> List[str]:
    """
    Commands the shell runs while expanding an unquoted heredoc body.

    Quotes are literal in a body, so only backslashes, $( ) and back-quotes
    are structural. An unterminated region runs to the end of the body.
    """
    commands: List[str] = []
    pos = 0
    while pos < len(body):
        ch = body[pos]
        if ch == "\\":
            pos += 2
            continue
        if body.startswith("$(", pos):
            end = closing_index(body, pos)
            if end == -1:
                end = len(body)
            commands.append(body[pos + 2:end])
            pos = end + 1
            continue
        if ch == "`":
            end = body.find("`", pos + 1)
            if end == -1:
                end = len(body)
            commands.append(body[pos + 1:end])
            pos = end + 1
            continue
        pos += 1
    return [c.strip() for c in commands if c.strip()]
