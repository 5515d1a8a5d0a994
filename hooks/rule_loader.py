#!/usr/bin/env python3
"""
Rule Loader for Shellgate
Loads settings, command policy, sensitive-path rules and secret token
patterns from the config directory, with per-loader caching.

Config directory: ../config relative to this file, or $SHELLGATE_CONFIG_DIR.

  gate.yaml             normalizer word lists and other tunables (YAML)
  command-guard.conf    command policy, one "regex | message" per line
  secret-patterns.json  sensitive paths and secret token patterns
  secret-paths.conf     optional project-specific path rules
  schema.json           JSON schema for secret-patterns.json
"""

import copy
import json
import os
import re
import sys
from pathlib import Path
from typing import Dict, List, Optional

import jsonschema
import yaml

from rule_engine import Action, Rule, canonicalize, exact_rule, glob_rule, regex_rule
from secret_scan import SecretRule

CONFIG_DIR_ENV = "SHELLGATE_CONFIG_DIR"

SETTINGS_FILE = "gate.yaml"
POLICY_FILE = "command-guard.conf"
SECRET_PATTERNS_FILE = "secret-patterns.json"
SUPPLEMENTARY_PATHS_FILE = "secret-paths.conf"
SCHEMA_FILE = "schema.json"

POLICY_SEPARATOR = " | "

DEFAULT_SETTINGS: Dict = {
    "file_read_commands": ["cat", "head", "tail", "less", "more", "bat", "strings"],
    "path_embedding_keywords": ["case", "select", "coproc"],
    "sensitive_hint": r"~/\.|\.ssh|\.aws|\.codex|\.config/gh|\.netrc|\.npmrc|id_rsa|id_ed25519"
                      r"|\.env|\.pem|\.key|\.p12|credentials|\$HOME|\$\{HOME",
    "audit": {"enabled": True, "log_file": None},
    "normalizer": {
        "keywords": ["if", "then", "do", "else", "elif", "while", "until", "for", "!", "{"],
        "wrappers": ["command", "env", "sudo", "doas", "time", "nice", "nohup", "exec",
                     "timeout", "stdbuf", "strace", "ltrace"],
        "wrapper_positionals": {"timeout": 1},
        "known_programs": ["docker", "docker-compose", "pnpm", "npm", "yarn", "cd",
                           "pip", "pip3", "python", "python3", "node", "git", "make"],
        "package_managers": {
            "commands": ["pnpm", "npm", "yarn"],
            "value_flags": [
                "--filter", "-F", "--filter-prod", "-C", "--dir", "--store-dir",
                "--virtual-store-dir", "--global-dir", "--lockfile-dir", "--modules-dir",
                "--reporter", "--loglevel", "--prefix", "--registry", "--cache",
                "--userconfig", "--cwd", "--mutex", "--network-timeout",
            ],
            "subcommands": [
                "install", "i", "ci", "add", "remove", "rm", "uninstall", "update", "up",
                "upgrade", "link", "ln", "unlink", "run", "test", "t", "exec", "dlx",
                "create", "init", "publish", "pack", "list", "ls", "why", "outdated",
                "audit", "bin", "root", "store", "help", "doctor", "rebuild", "rb",
                "prune", "fetch", "dedupe", "patch", "setup",
            ],
        },
    },
}


class ConfigError(Exception):
    """Configuration is missing, unreadable or malformed."""


def _deep_merge(base: Dict, override: Dict) -> Dict:
    """Return base with override merged in; nested dicts merge, everything else replaces."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _rule_lines(path: Path) -> List[str]:
    """Non-blank, non-comment lines of a line-oriented rule file."""
    with open(path, "r", encoding="utf-8") as f:
        lines = [line.rstrip("\n") for line in f]
    return [line for line in lines if line.strip() and not line.lstrip().startswith("#")]


class RuleLoader:
    """Loads and caches everything under the config directory."""

    def __init__(self, config_dir: Optional[Path] = None):
        """
        Initialize rule loader.

        Args:
            config_dir: Directory containing the config files.
                        Defaults to $SHELLGATE_CONFIG_DIR, then ../config
                        relative to this file.
        """
        if config_dir is None:
            env_dir = os.environ.get(CONFIG_DIR_ENV)
            config_dir = Path(env_dir) if env_dir else Path(__file__).parent.parent / "config"

        self.config_dir = Path(config_dir)
        self.schema_path = Path(__file__).parent.parent / "config" / SCHEMA_FILE
        self._cache: Dict[str, object] = {}

    # === SETTINGS ===

    def load_settings(self) -> Dict:
        """
        Load gate.yaml merged over DEFAULT_SETTINGS.

        A missing file gives the defaults. An unreadable or malformed file
        prints a warning and also gives the defaults.
        """
        if "settings" in self._cache:
            return self._cache["settings"]

        settings = copy.deepcopy(DEFAULT_SETTINGS)
        file_path = self.config_dir / SETTINGS_FILE
        if file_path.exists():
            try:
                with open(file_path, "r", encoding="utf-8") as f:
                    data = yaml.safe_load(f)
                if isinstance(data, dict):
                    settings = _deep_merge(settings, data)
                elif data is not None:
                    print(f"Warning: {SETTINGS_FILE} is not a mapping, using defaults", file=sys.stderr)
            except (yaml.YAMLError, OSError) as e:
                print(f"Warning: Failed to load {SETTINGS_FILE}: {e}", file=sys.stderr)

        self._cache["settings"] = settings
        return settings

    # === COMMAND POLICY ===

    def load_policy_rules(self) -> List[Rule]:
        """
        Load command-guard.conf.

        Each rule line is "regex | message", split on the first " | ".
        Comments, blank lines and lines without a separator are ignored.
        A missing file means no rules. A rule whose regex does not compile
        is skipped with a warning.
        """
        if "policy" in self._cache:
            return self._cache["policy"]

        rules: List[Rule] = []
        file_path = self.config_dir / POLICY_FILE
        if file_path.exists():
            try:
                lines = _rule_lines(file_path)
            except (OSError, UnicodeDecodeError) as e:
                print(f"Warning: Failed to load {POLICY_FILE}: {e}", file=sys.stderr)
                lines = []
            seen = set()
            for line in lines:
                if POLICY_SEPARATOR not in line:
                    continue
                pattern, message = line.split(POLICY_SEPARATOR, 1)
                pattern = pattern.strip()
                if not pattern or pattern in seen:
                    continue
                try:
                    rules.append(regex_rule(pattern, message.strip(), Action.DENY))
                    seen.add(pattern)
                except re.error as e:
                    print(f"Warning: Invalid regex pattern '{pattern}': {e}", file=sys.stderr)

        self._cache["policy"] = rules
        return rules

    # === SECRET-PATTERNS.JSON ===

    def _load_schema(self) -> Dict:
        if "schema" not in self._cache:
            try:
                with open(self.schema_path, "r", encoding="utf-8") as f:
                    self._cache["schema"] = json.load(f)
            except (OSError, ValueError) as e:
                raise ConfigError(f"schema unavailable at {self.schema_path}: {e}")
        return self._cache["schema"]

    def load_secret_config(self) -> Dict:
        """Read secret-patterns.json. Raises ConfigError if missing or not JSON."""
        if "secret_config" in self._cache:
            return self._cache["secret_config"]

        file_path = self.config_dir / SECRET_PATTERNS_FILE
        if not file_path.is_file():
            raise ConfigError(f"config missing at {file_path}")
        try:
            with open(file_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except ValueError:
            raise ConfigError("config is not valid JSON")
        except OSError as e:
            raise ConfigError(f"config unreadable: {e}")

        self._cache["secret_config"] = data
        return data

    def _validate(self, data: Dict, definition: str):
        schema = self._load_schema()
        subschema = {
            "$schema": schema.get("$schema", "http://json-schema.org/draft-07/schema#"),
            "definitions": schema.get("definitions", {}),
            "$ref": f"#/definitions/{definition}",
        }
        try:
            jsonschema.validate(instance=data, schema=subschema)
        except jsonschema.ValidationError as e:
            if e.validator == "required" and isinstance(data, dict):
                field = next((key for key in e.validator_value if key not in data), "")
            elif e.path:
                field = e.path[0]
            else:
                raise ConfigError(f"config does not match schema: {e.message}")
            raise ConfigError(f"config missing or invalid '{field}' array")
        except jsonschema.SchemaError as e:
            raise ConfigError(f"schema is invalid: {e.message}")

    def load_path_rules(self) -> List[Rule]:
        """
        Load exact, glob and regex sensitive-path rules, in that order.

        Exact paths are canonicalized the same way inputs are. Any problem
        (missing file, invalid JSON, schema drift, bad regex) raises
        ConfigError.
        """
        if "paths" in self._cache:
            return self._cache["paths"]

        data = self.load_secret_config()
        self._validate(data, "pathRules")

        rules: List[Rule] = []
        for path in data["sensitive_exact_paths"]:
            if not path:
                continue
            try:
                canonical = canonicalize(path)
            except (OSError, ValueError):
                continue
            rules.append(exact_rule(canonical, f"Sensitive file: matches exact path '{path}'", Action.ASK))
        for glob in data["sensitive_path_globs"]:
            if glob:
                rules.append(glob_rule(glob, f"Sensitive file: matches glob pattern '{glob}'", Action.ASK))
        for pattern in data["sensitive_path_patterns"]:
            if not pattern:
                continue
            try:
                rules.append(regex_rule(pattern, f"Sensitive file: matches pattern '{pattern}'", Action.ASK))
            except re.error:
                raise ConfigError(f"invalid regex pattern '{pattern}'")

        self._cache["paths"] = rules
        return rules

    def load_supplementary_path_rules(self) -> List[Rule]:
        """
        Load the optional project file secret-paths.conf.

        One rule per line; "glob:" prefixes a glob, anything else is a regex.
        A missing file means no extra rules. A bad regex raises ConfigError.
        """
        if "supplementary" in self._cache:
            return self._cache["supplementary"]

        rules: List[Rule] = []
        file_path = self.config_dir / SUPPLEMENTARY_PATHS_FILE
        if file_path.exists():
            try:
                lines = _rule_lines(file_path)
            except (OSError, UnicodeDecodeError) as e:
                raise ConfigError(f"{SUPPLEMENTARY_PATHS_FILE} unreadable: {e}")
            for line in lines:
                entry = line.strip()
                if entry.startswith("glob:"):
                    glob = entry[len("glob:"):].strip()
                    rules.append(glob_rule(glob, f"Sensitive file: matches project glob '{glob}'", Action.ASK))
                    continue
                try:
                    rules.append(regex_rule(entry, f"Sensitive file: matches project pattern '{entry}'", Action.ASK))
                except re.error:
                    raise ConfigError(f"invalid regex pattern '{entry}' in {SUPPLEMENTARY_PATHS_FILE}")

        self._cache["supplementary"] = rules
        return rules

    def load_token_rules(self) -> List[SecretRule]:
        """Load secret_token_patterns. Raises ConfigError on any problem."""
        if "tokens" in self._cache:
            return self._cache["tokens"]

        data = self.load_secret_config()
        self._validate(data, "tokenRules")

        rules: List[SecretRule] = []
        for entry in data["secret_token_patterns"]:
            try:
                compiled = re.compile(entry["pattern"])
            except re.error:
                raise ConfigError(f"invalid regex pattern '{entry['pattern']}'")
            rules.append(SecretRule(entry["name"], compiled, int(entry.get("min_unique_chars", 0))))

        self._cache["tokens"] = rules
        return rules

    # === SUMMARY ===

    def get_rule_count(self) -> Dict[str, object]:
        """
        Count rules per source.

        Returns:
            Dictionary mapping source names to counts, or to an error string
            when that source could not be loaded.
        """
        counts: Dict[str, object] = {"command_policy": len(self.load_policy_rules())}
        for name, loader in (
            ("sensitive_paths", self.load_path_rules),
            ("project_paths", self.load_supplementary_path_rules),
            ("secret_tokens", self.load_token_rules),
        ):
            try:
                counts[name] = len(loader())
            except ConfigError as e:
                counts[name] = f"error: {e}"
        return counts

    def clear_cache(self):
        """Clear the rule cache. Useful for testing or live reloading."""
        self._cache.clear()


# Singleton instance for convenience
_default_loader: Optional[RuleLoader] = None


def get_loader() -> RuleLoader:
    """Get the default rule loader instance."""
    global _default_loader
    if _default_loader is None:
        _default_loader = RuleLoader()
    return _default_loader


def reset_loader():
    """Forget the default loader so the next get_loader() re-reads the environment."""
    global _default_loader
    _default_loader = None
