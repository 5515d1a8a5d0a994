#!/usr/bin/env python3
"""
Shellgate — Shell Scanner

Quote/nesting tracker and the primary command splitter.

The tracker walks a command string one construct at a time and keeps an
explicit frame stack (single quotes, double quotes, back-quotes, $( )
substitutions, ( ) groups and case pattern lists). The primary splitter
uses it to cut the command on &&, ||, ;, |, & and newlines, but only where
no frame is open. Back-quote regions are opaque here; the secondary
splitter in deep_scanner.py looks inside them.

Nothing is executed and no expansion is performed.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class FrameKind(Enum):
    SINGLE_QUOTE = "single_quote"
    DOUBLE_QUOTE = "double_quote"
    BACKTICK = "backtick"
    SUBSTITUTION = "substitution"
    GROUP = "group"
    CASE_PATTERN = "case_pattern"


# Frames whose interior is a fresh quoting context where case/esac count
CASE_CONTEXTS = (FrameKind.SUBSTITUTION, FrameKind.GROUP, FrameKind.CASE_PATTERN)

# Frames a closing paren may pop
PAREN_FRAMES = (FrameKind.SUBSTITUTION, FrameKind.GROUP)

KEYWORD_BEFORE = " \t\n;&|("
KEYWORD_AFTER = " \t\n;&|)"


@dataclass
class QuoteFrame:
    """One open quoting or nesting region."""
    kind: FrameKind
    start: int


@dataclass
class ScanState:
    """Scan position plus the stack of open frames."""
    frames: List[QuoteFrame] = field(default_factory=list)
    pos: int = 0

    @property
    def depth(self) -> int:
        return len(self.frames)

    @property
    def top(self) -> Optional[FrameKind]:
        return self.frames[-1].kind if self.frames else None

    def push(self, kind: FrameKind):
        self.frames.append(QuoteFrame(kind, self.pos))

    def pop(self) -> QuoteFrame:
        return self.frames.pop()


@dataclass
class Segment:
    """A command fragment produced by one of the splitters."""
    text: str
    parse_failed: bool = False


def keyword_at(text: str, pos: int, word: str) -> bool:
    """True if `word` starts at `pos` as a whole shell word."""
    if not text.startswith(word, pos):
        return False
    if pos > 0 and text[pos - 1] not in KEYWORD_BEFORE:
        return False
    end = pos + len(word)
    return end >= len(text) or text[end] in KEYWORD_AFTER


def operator_at(text: str, pos: int) -> str:
    """
    Return the sequencing operator starting at `pos`, or "".

    Recognizes &&, ||, |&, ;, |, & and newline. An ampersand that belongs
    to a redirection (2>&1, <&0, &>file) is not an operator.
    """
    pair = text[pos:pos + 2]
    if pair in ("&&", "||", "|&"):
        return pair
    ch = text[pos]
    if ch in (";", "|", "\n"):
        return ch
    if ch == "&":
        if pos > 0 and text[pos - 1] in "<>":
            return ""
        if text[pos + 1:pos + 2] == ">":
            return ""
        return ch
    return ""


class QuoteTracker:
    """
    Walks a command string construct by construct, maintaining a ScanState.

    Priority of the rules applied at each position:
      1. inside single quotes everything is literal until the closing quote
      2. a backslash escapes exactly the next character
      3. inside double quotes only ", $( and ` are structural
      4. inside back-quotes only the closing back-quote is structural
      5. elsewhere quotes open frames, $( and ( push frames, ) pops them,
         and case/esac toggle a case pattern frame inside nested regions
    """

    def __init__(self, text: str, start: int = 0):
        self.text = text
        self.state = ScanState(pos=start)

    @property
    def done(self) -> bool:
        return self.state.pos >= len(self.text)

    @property
    def at_top_level(self) -> bool:
        return self.state.depth == 0

    @property
    def balanced(self) -> bool:
        return self.state.depth == 0

    def skip(self, count: int):
        self.state.pos += count

    def _take(self, count: int) -> str:
        start = self.state.pos
        self.state.pos = min(start + count, len(self.text))
        return self.text[start:self.state.pos]

    def advance(self) -> str:
        """Consume the construct at the current position and return its text."""
        text = self.text
        state = self.state
        pos = state.pos
        ch = text[pos]
        top = state.top

        if top is FrameKind.SINGLE_QUOTE:
            if ch == "'":
                state.pop()
            return self._take(1)

        if ch == "\\":
            return self._take(2)

        if top is FrameKind.DOUBLE_QUOTE:
            if ch == '"':
                state.pop()
            elif text.startswith("$(", pos):
                state.push(FrameKind.SUBSTITUTION)
                return self._take(2)
            elif ch == "`":
                state.push(FrameKind.BACKTICK)
            return self._take(1)

        if top is FrameKind.BACKTICK:
            if ch == "`":
                state.pop()
            return self._take(1)

        if ch == "'":
            state.push(FrameKind.SINGLE_QUOTE)
        elif ch == '"':
            state.push(FrameKind.DOUBLE_QUOTE)
        elif ch == "`":
            state.push(FrameKind.BACKTICK)
        elif text.startswith("$(", pos):
            state.push(FrameKind.SUBSTITUTION)
            return self._take(2)
        elif ch == "(":
            state.push(FrameKind.GROUP)
        elif ch == ")":
            # Inside a case pattern list ) is a delimiter; at depth 0 it is literal
            if top in PAREN_FRAMES:
                state.pop()
        elif top in CASE_CONTEXTS and keyword_at(text, pos, "case"):
            state.push(FrameKind.CASE_PATTERN)
            return self._take(4)
        elif top is FrameKind.CASE_PATTERN and keyword_at(text, pos, "esac"):
            state.pop()
            return self._take(4)
        return self._take(1)


def find_word_end(text: str, start: int) -> int:
    """
    Index just past the shell word beginning at `start`.

    Quoted and nested regions are skipped whole. An unterminated region runs
    to the end of the string.
    """
    tracker = QuoteTracker(text, start)
    while not tracker.done:
        if tracker.at_top_level and text[tracker.state.pos].isspace():
            break
        tracker.advance()
    return tracker.state.pos


def closing_index(text: str, start: int = 0) -> int:
    """
    Index of the character that returns the tracker to depth 0 after the
    frame opened at `start`, or -1 if that never happens.
    """
    tracker = QuoteTracker(text, start)
    tracker.advance()
    while not tracker.done:
        if tracker.at_top_level:
            return tracker.state.pos - 1
        tracker.advance()
    return len(text) - 1 if tracker.at_top_level else -1


def fallback_split(command: str) -> List[Segment]:
    """
    Split on operators without any quote awareness.

    Used when the primary scan cannot balance its frames, so that every
    candidate command is still seen by the checks.
    """
    parts = re.split(r"&&|\|\||[;|&\n]", command)
    return [Segment(p.strip(), parse_failed=True) for p in parts if p.strip()]


class Segmenter(ABC):
    """Turns a raw command string into an ordered list of segments."""

    @abstractmethod
    def split(self, command: str) -> List[Segment]:
        ...


class PrimarySegmenter(Segmenter):
    """
    Quote-aware splitter that only cuts at nesting depth zero.

    Substitutions, groups and back-quotes stay inside the segment that
    contains them. If the scan ends with a frame still open the naive
    fallback split is returned instead, every segment flagged parse_failed.
    """

    def split(self, command: str) -> List[Segment]:
        tracker = QuoteTracker(command)
        segments: List[Segment] = []
        current: List[str] = []

        def flush():
            text = "".join(current).strip()
            if text:
                segments.append(Segment(text))
            current.clear()

        while not tracker.done:
            if tracker.at_top_level:
                op = operator_at(command, tracker.state.pos)
                if op:
                    flush()
                    tracker.skip(len(op))
                    continue
            current.append(tracker.advance())
        flush()

        if not tracker.balanced:
            return fallback_split(command)
        return segments


def split_command(command: str) -> List[Segment]:
    """Split with the primary segmenter."""
    return PrimarySegmenter().split(command)
