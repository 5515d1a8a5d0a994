#!/usr/bin/env python3
"""
Shellgate — Command Normalizer

Peels the prefixes that do not change which program really runs:
substitution/group wrappers, absolute directory prefixes, NAME=value
assignments, compound-statement keywords, case heads and pattern labels,
wrapper programs (sudo, env, nice, ...) and package-manager global flags.

`sudo -E /usr/bin/env CI=1 pnpm --filter web install` normalizes to
`pnpm install`, which is the form policy rules are written against.
"""

import re
from typing import Dict, Optional, Tuple

from rule_loader import DEFAULT_SETTINGS
from shell_scanner import closing_index, find_word_end

ASSIGNMENT = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*\+?=")
ABSOLUTE_PREFIX = re.compile(r"^/[^ ]*/")
CASE_LABEL = re.compile(r"^[\w.*?\[\]\-+@%:,/~|!=]+\)(?:\s+|$)")
CASE_HEAD = re.compile(r"^case\s+")
FIRST_TOKEN = re.compile(r"(\S+)\s*(.*)", re.DOTALL)


def split_first(text: str) -> Tuple[str, str]:
    """Split off the first whitespace-delimited token."""
    match = FIRST_TOKEN.match(text)
    if not match:
        return "", ""
    return match.group(1), match.group(2)


def unwrap(segment: str) -> str:
    """Remove one $( ) or ( ) wrapper when it spans the whole segment."""
    if segment.startswith("$("):
        inner_start = 2
    elif segment.startswith("("):
        inner_start = 1
    else:
        return segment
    if closing_index(segment) == len(segment) - 1 and segment.endswith(")"):
        return segment[inner_start:-1]
    return segment


def strip_absolute_prefix(segment: str) -> str:
    if segment.startswith("/"):
        return ABSOLUTE_PREFIX.sub("", segment, count=1)
    return segment


def strip_assignments(segment: str) -> str:
    """Drop every leading NAME=value word, quoted or substituted values included."""
    while True:
        match = ASSIGNMENT.match(segment)
        if not match:
            return segment
        end = find_word_end(segment, match.end())
        segment = segment[end:].lstrip()


def strip_case_head(segment: str) -> str:
    """Drop a leading `case WORD in` so the first arm's label and command are exposed."""
    match = CASE_HEAD.match(segment)
    if not match:
        return segment
    rest = segment[find_word_end(segment, match.end()):].lstrip()
    token, after = split_first(rest)
    if token != "in":
        return segment
    return after


def strip_case_label(segment: str) -> str:
    return CASE_LABEL.sub("", segment, count=1)


class CommandNormalizer:
    """
    Iterates every rewrite step until the segment stops changing.

    Word lists come from the `normalizer` section of gate.yaml (see
    rule_loader.DEFAULT_SETTINGS).
    """

    def __init__(self, settings: Optional[Dict] = None, keep_case_head: bool = False):
        if settings is None:
            settings = DEFAULT_SETTINGS
        config = settings["normalizer"]
        self.keywords = set(config["keywords"])
        self.wrappers = set(config["wrappers"])
        self.wrapper_positionals: Dict[str, int] = dict(config.get("wrapper_positionals") or {})
        self.known_programs = set(config["known_programs"]) | set(settings.get("file_read_commands", []))
        managers = config["package_managers"]
        self.package_managers = set(managers["commands"])
        self.value_flags = set(managers["value_flags"])
        self.subcommands = set(managers["subcommands"])
        self.keep_case_head = keep_case_head

    def normalize(self, segment: str) -> str:
        previous = None
        while segment != previous:
            previous = segment
            segment = segment.strip()
            segment = unwrap(segment)
            segment = strip_absolute_prefix(segment)
            segment = strip_assignments(segment)
            segment = self.strip_keyword(segment)
            if not self.keep_case_head:
                segment = strip_case_head(segment)
            segment = strip_case_label(segment)
            segment = self.strip_wrapper(segment)
            segment = self.skip_package_manager_flags(segment)
        return segment

    def strip_keyword(self, segment: str) -> str:
        token, rest = split_first(segment)
        if token in self.keywords and segment[len(token):len(token) + 1].isspace():
            return rest
        return segment

    def strip_wrapper(self, segment: str) -> str:
        """
        Remove one wrapper program and its options.

        A token after an option is taken as that option's argument unless it
        looks like a flag, a path, or a known program name. This is a
        best-effort guess: wrappers do not declare which options take values.
        """
        token, rest = split_first(segment)
        if token not in self.wrappers or not segment[len(token):len(token) + 1].isspace():
            return segment

        while rest:
            flag, after = split_first(rest)
            if flag == "--":
                rest = after
                break
            if not flag.startswith("-"):
                break
            rest = after
            candidate, after = split_first(rest)
            if candidate and not candidate.startswith("-") and "/" not in candidate \
                    and candidate not in self.known_programs:
                rest = after

        for _ in range(self.wrapper_positionals.get(token, 0)):
            candidate, after = split_first(rest)
            if not candidate or candidate in self.known_programs:
                break
            rest = after
        return rest

    def skip_package_manager_flags(self, segment: str) -> str:
        """
        Walk past global flags placed before a package manager's subcommand.

        `pnpm -C web install` becomes `pnpm install`. Known value flags always
        take the next token, --flag=value takes none, and an unknown flag
        takes the next token unless that token is a known subcommand.
        """
        program, rest = split_first(segment)
        if program not in self.package_managers or not rest.startswith("-"):
            return segment

        while rest.startswith("-"):
            flag, rest = split_first(rest)
            if flag == "--":
                break
            if flag.startswith("--") and "=" in flag:
                continue
            if flag in self.value_flags:
                _, rest = split_first(rest)
                continue
            candidate, after = split_first(rest)
            if candidate and not candidate.startswith("-") and candidate not in self.subcommands:
                rest = after

        return f"{program} {rest}".rstrip()
