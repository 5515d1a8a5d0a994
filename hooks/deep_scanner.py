#!/usr/bin/env python3
"""
Shellgate — Deep Scanner

Secondary splitter used as a second line of defense.

Where the primary splitter keeps $( ), ( ) and back-quote regions inside the
segment that contains them, this pass treats the opening and the closing of
each region as a fragment boundary. Whatever runs inside a substitution is
surfaced as its own fragment and checked like a top-level command.

Quotes are still honoured so that literal text is not split apart, case
pattern delimiters never close a region, and a # that starts a new word at
the top level begins a comment. The scan never reports failure: an
unterminated region simply ends at the end of the input.
"""

from typing import List, Tuple

from heredoc import body_substitutions, strip_heredoc_bodies
from shell_scanner import (
    CASE_CONTEXTS,
    PAREN_FRAMES,
    FrameKind,
    PrimarySegmenter,
    ScanState,
    Segment,
    Segmenter,
    keyword_at,
    operator_at,
)

# Back-quotes are transparent in this pass, so case counts inside them too
DEEP_CASE_CONTEXTS = CASE_CONTEXTS + (FrameKind.BACKTICK,)

COMMENT_WORD_START = " \t\n;&|"


class SecondarySegmenter(Segmenter):
    """Splits at operators and at every substitution/group/back-quote boundary."""

    def split(self, command: str) -> List[Segment]:
        state = ScanState()
        fragments: List[Segment] = []
        current: List[str] = []
        length = len(command)

        def flush():
            text = "".join(current).strip()
            if text:
                fragments.append(Segment(text))
            current.clear()

        while state.pos < length:
            pos = state.pos
            ch = command[pos]
            top = state.top

            if top is FrameKind.SINGLE_QUOTE:
                if ch == "'":
                    state.pop()
                current.append(ch)
                state.pos += 1
                continue

            if ch == "\\":
                current.append(command[pos:pos + 2])
                state.pos += 2
                continue

            if top is FrameKind.DOUBLE_QUOTE:
                if ch == '"':
                    state.pop()
                elif command.startswith("$(", pos):
                    state.push(FrameKind.SUBSTITUTION)
                    flush()
                    state.pos += 2
                    continue
                elif ch == "`":
                    state.push(FrameKind.BACKTICK)
                    flush()
                    state.pos += 1
                    continue
                current.append(ch)
                state.pos += 1
                continue

            if ch == "#" and state.depth == 0 and (pos == 0 or command[pos - 1] in COMMENT_WORD_START):
                newline = command.find("\n", pos)
                state.pos = length if newline == -1 else newline
                continue

            if command.startswith("$(", pos):
                state.push(FrameKind.SUBSTITUTION)
                flush()
                state.pos += 2
                continue

            if ch == "`":
                if top is FrameKind.BACKTICK:
                    state.pop()
                else:
                    state.push(FrameKind.BACKTICK)
                flush()
                state.pos += 1
                continue

            if ch == "(":
                state.push(FrameKind.GROUP)
                flush()
                state.pos += 1
                continue

            if ch == ")" and top in PAREN_FRAMES:
                state.pop()
                flush()
                state.pos += 1
                continue

            if top in DEEP_CASE_CONTEXTS and keyword_at(command, pos, "case"):
                state.push(FrameKind.CASE_PATTERN)
                current.append("case")
                state.pos += 4
                continue

            if top is FrameKind.CASE_PATTERN and keyword_at(command, pos, "esac"):
                state.pop()
                current.append("esac")
                state.pos += 4
                continue

            op = operator_at(command, pos)
            if op:
                flush()
                state.pos += len(op)
                continue

            if ch == "'":
                state.push(FrameKind.SINGLE_QUOTE)
            elif ch == '"':
                state.push(FrameKind.DOUBLE_QUOTE)
            current.append(ch)
            state.pos += 1

        flush()
        return fragments


def split_fragments(command: str) -> List[Segment]:
    """Split with the secondary segmenter."""
    return SecondarySegmenter().split(command)


def split_both_passes(command: str) -> Tuple[List[Segment], List[Segment]]:
    """
    Cut heredoc bodies out of a command, then run both splitters over what
    is left.

    Commands substituted inside an unquoted heredoc body still run, so they
    are split in turn and appended to the secondary fragments.

    Returns (primary_segments, secondary_fragments).
    """
    remaining, bodies = strip_heredoc_bodies(command)
    primary = PrimarySegmenter().split(remaining)
    secondary = SecondarySegmenter().split(remaining)
    for body in bodies:
        if body.opener.quoted:
            continue
        for inner in body_substitutions(body.text):
            inner_primary, inner_secondary = split_both_passes(inner)
            secondary.extend(inner_primary + inner_secondary)
    return primary, secondary
