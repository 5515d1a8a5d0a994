#!/usr/bin/env python3
"""
Unit tests for rule_loader.py.

Targets: settings merge, command policy parsing, secret-patterns.json
validation, project path rules, caching and the shipped config files.
"""

import json
import os
import re
import shutil
import sys
import tempfile
from io import StringIO
from pathlib import Path
from unittest import TestCase, main as unittest_main
from unittest.mock import patch

# Add hooks to path
sys.path.insert(0, str(Path(__file__).parent.parent / "hooks"))

import rule_loader
from rule_engine import Action, canonicalize
from rule_loader import DEFAULT_SETTINGS, ConfigError, RuleLoader, _deep_merge

CONFIG_DIR = Path(__file__).parent.parent / "config"

VALID_SECRET_CONFIG = {
    "sensitive_exact_paths": ["~/.aws/credentials"],
    "sensitive_path_globs": ["*/.env"],
    "sensitive_path_patterns": [r"\.pem$"],
    "secret_token_patterns": [
        {"name": "AWS Access Key", "pattern": "AKIA[0-9A-Z]{16}", "min_unique_chars": 0},
    ],
}


class TempConfigTestCase(TestCase):
    """Gives each test an empty config directory."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.config_dir = Path(self.temp_dir)
        self.loader = RuleLoader(config_dir=self.config_dir)

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def write(self, name, content):
        (self.config_dir / name).write_text(content, encoding="utf-8")

    def write_secret_config(self, data):
        self.write("secret-patterns.json", json.dumps(data))


class TestConfigDirectory(TestCase):

    def test_default_config_dir(self):
        with patch.dict(os.environ, {}, clear=False):
            os.environ.pop("SHELLGATE_CONFIG_DIR", None)
            loader = RuleLoader()
        self.assertEqual(loader.config_dir.resolve(), CONFIG_DIR.resolve())

    def test_env_config_dir(self):
        with patch.dict(os.environ, {"SHELLGATE_CONFIG_DIR": "/tmp/shellgate-test"}):
            loader = RuleLoader()
        self.assertEqual(loader.config_dir, Path("/tmp/shellgate-test"))

    def test_schema_always_from_repo(self):
        loader = RuleLoader(config_dir=Path("/nonexistent"))
        self.assertEqual(loader.schema_path.resolve(), (CONFIG_DIR / "schema.json").resolve())

    def test_get_loader_singleton(self):
        rule_loader.reset_loader()
        try:
            self.assertIs(rule_loader.get_loader(), rule_loader.get_loader())
        finally:
            rule_loader.reset_loader()


class TestSettings(TempConfigTestCase):

    def test_missing_file_gives_defaults(self):
        self.assertEqual(self.loader.load_settings(), DEFAULT_SETTINGS)

    def test_defaults_not_mutated(self):
        settings = self.loader.load_settings()
        settings["file_read_commands"].append("nl")
        self.assertNotIn("nl", DEFAULT_SETTINGS["file_read_commands"])

    def test_nested_merge(self):
        self.write("gate.yaml", "normalizer:\n  wrappers: [sudo]\n")
        settings = self.loader.load_settings()
        self.assertEqual(settings["normalizer"]["wrappers"], ["sudo"])
        self.assertEqual(settings["normalizer"]["keywords"], DEFAULT_SETTINGS["normalizer"]["keywords"])
        self.assertIn("package_managers", settings["normalizer"])

    def test_invalid_yaml_warns_and_uses_defaults(self):
        self.write("gate.yaml", "normalizer: [unclosed\n")
        with patch("sys.stderr", new_callable=StringIO) as err:
            settings = self.loader.load_settings()
        self.assertEqual(settings, DEFAULT_SETTINGS)
        self.assertIn("Failed to load gate.yaml", err.getvalue())

    def test_non_mapping_warns(self):
        self.write("gate.yaml", "- just\n- a list\n")
        with patch("sys.stderr", new_callable=StringIO) as err:
            settings = self.loader.load_settings()
        self.assertEqual(settings, DEFAULT_SETTINGS)
        self.assertIn("not a mapping", err.getvalue())

    def test_empty_file_gives_defaults(self):
        self.write("gate.yaml", "")
        self.assertEqual(self.loader.load_settings(), DEFAULT_SETTINGS)

    def test_deep_merge_replaces_lists(self):
        merged = _deep_merge({"a": {"b": [1], "c": 2}}, {"a": {"b": [3]}})
        self.assertEqual(merged, {"a": {"b": [3], "c": 2}})


class TestPolicyRules(TempConfigTestCase):

    def test_missing_file_means_no_rules(self):
        self.assertEqual(self.loader.load_policy_rules(), [])

    def test_parses_rules_in_order(self):
        self.write("command-guard.conf",
                   "# comment\n\n^docker\\s+compose\\b | Use make.\n^pip3?\\s+install\\b | No pip.\n")
        rules = self.loader.load_policy_rules()
        self.assertEqual([r.pattern for r in rules], [r"^docker\s+compose\b", r"^pip3?\s+install\b"])
        self.assertEqual(rules[0].reason, "Use make.")
        self.assertEqual(rules[0].action, Action.DENY)

    def test_splits_on_first_separator(self):
        self.write("command-guard.conf", "^make\\b | first | second\n")
        self.assertEqual(self.loader.load_policy_rules()[0].reason, "first | second")

    def test_line_without_separator_ignored(self):
        self.write("command-guard.conf", "^make\\b|no spaces\n^ls\\b | listed\n")
        self.assertEqual([r.pattern for r in self.loader.load_policy_rules()], [r"^ls\b"])

    def test_duplicate_patterns_keep_first(self):
        self.write("command-guard.conf", "^make\\b | one\n^make\\b | two\n")
        rules = self.loader.load_policy_rules()
        self.assertEqual(len(rules), 1)
        self.assertEqual(rules[0].reason, "one")

    def test_bad_regex_skipped_with_warning(self):
        self.write("command-guard.conf", "^(unclosed | broken\n^make\\b | ok\n")
        with patch("sys.stderr", new_callable=StringIO) as err:
            rules = self.loader.load_policy_rules()
        self.assertEqual([r.pattern for r in rules], [r"^make\b"])
        self.assertIn("Invalid regex pattern", err.getvalue())

    def test_cache_hit(self):
        self.write("command-guard.conf", "^make\\b | ok\n")
        first = self.loader.load_policy_rules()
        self.write("command-guard.conf", "^ls\\b | changed\n")
        self.assertIs(self.loader.load_policy_rules(), first)
        self.loader.clear_cache()
        self.assertEqual(self.loader.load_policy_rules()[0].pattern, r"^ls\b")


class TestPathRules(TempConfigTestCase):

    def test_missing_config(self):
        with self.assertRaises(ConfigError) as ctx:
            self.loader.load_path_rules()
        self.assertIn("config missing at", str(ctx.exception))

    def test_invalid_json(self):
        self.write("secret-patterns.json", "{not json")
        with self.assertRaises(ConfigError) as ctx:
            self.loader.load_path_rules()
        self.assertEqual(str(ctx.exception), "config is not valid JSON")

    def test_missing_array(self):
        data = dict(VALID_SECRET_CONFIG)
        del data["sensitive_path_globs"]
        self.write_secret_config(data)
        with self.assertRaises(ConfigError) as ctx:
            self.loader.load_path_rules()
        self.assertEqual(str(ctx.exception), "config missing or invalid 'sensitive_path_globs' array")

    def test_wrong_type(self):
        data = dict(VALID_SECRET_CONFIG, sensitive_path_patterns="\\.pem$")
        self.write_secret_config(data)
        with self.assertRaises(ConfigError) as ctx:
            self.loader.load_path_rules()
        self.assertIn("sensitive_path_patterns", str(ctx.exception))

    def test_bad_regex_is_config_error(self):
        self.write_secret_config(dict(VALID_SECRET_CONFIG, sensitive_path_patterns=["(unclosed"]))
        with self.assertRaises(ConfigError):
            self.loader.load_path_rules()

    def test_rule_order_and_reasons(self):
        self.write_secret_config(VALID_SECRET_CONFIG)
        rules = self.loader.load_path_rules()
        self.assertEqual(len(rules), 3)
        self.assertEqual(rules[0].pattern, canonicalize("~/.aws/credentials"))
        self.assertEqual(rules[0].reason, "Sensitive file: matches exact path '~/.aws/credentials'")
        self.assertEqual(rules[1].reason, "Sensitive file: matches glob pattern '*/.env'")
        self.assertEqual(rules[2].reason, "Sensitive file: matches pattern '\\.pem$'")
        self.assertTrue(all(r.action is Action.ASK for r in rules))

    def test_empty_entries_skipped(self):
        self.write_secret_config(dict(VALID_SECRET_CONFIG, sensitive_path_globs=["", "*/.env"]))
        self.assertEqual(len(self.loader.load_path_rules()), 3)

    def test_token_section_not_required_for_paths(self):
        data = dict(VALID_SECRET_CONFIG)
        del data["secret_token_patterns"]
        self.write_secret_config(data)
        self.assertEqual(len(self.loader.load_path_rules()), 3)
        with self.assertRaises(ConfigError):
            self.loader.load_token_rules()


class TestSupplementaryRules(TempConfigTestCase):

    def test_missing_file_means_no_rules(self):
        self.assertEqual(self.loader.load_supplementary_path_rules(), [])

    def test_glob_and_regex_lines(self):
        self.write("secret-paths.conf", "# note\nglob:*/deploy/keys/*\n(^|/)terraform\\.tfvars$\n")
        rules = self.loader.load_supplementary_path_rules()
        self.assertTrue(rules[0].matches("/repo/deploy/keys/prod"))
        self.assertTrue(rules[1].matches("/repo/terraform.tfvars"))
        self.assertFalse(rules[1].matches("/repo/terraform.tfvars.example"))

    def test_bad_regex_is_config_error(self):
        self.write("secret-paths.conf", "(unclosed\n")
        with self.assertRaises(ConfigError):
            self.loader.load_supplementary_path_rules()


class TestTokenRules(TempConfigTestCase):

    def test_loads_rules(self):
        self.write_secret_config(VALID_SECRET_CONFIG)
        rules = self.loader.load_token_rules()
        self.assertEqual(rules[0].name, "AWS Access Key")
        self.assertEqual(rules[0].min_unique_chars, 0)

    def test_unknown_field_rejected(self):
        data = dict(VALID_SECRET_CONFIG, secret_token_patterns=[
            {"name": "x", "pattern": "y", "severity": "high"},
        ])
        self.write_secret_config(data)
        with self.assertRaises(ConfigError) as ctx:
            self.loader.load_token_rules()
        self.assertIn("secret_token_patterns", str(ctx.exception))

    def test_bad_regex_is_config_error(self):
        data = dict(VALID_SECRET_CONFIG, secret_token_patterns=[{"name": "x", "pattern": "(unclosed"}])
        self.write_secret_config(data)
        with self.assertRaises(ConfigError):
            self.loader.load_token_rules()


class TestRuleCount(TempConfigTestCase):

    def test_errors_reported_per_source(self):
        counts = self.loader.get_rule_count()
        self.assertEqual(counts["command_policy"], 0)
        self.assertEqual(counts["project_paths"], 0)
        self.assertTrue(str(counts["sensitive_paths"]).startswith("error: config missing"))
        self.assertTrue(str(counts["secret_tokens"]).startswith("error: config missing"))


class TestShippedConfig(TestCase):
    """The files in config/ load cleanly."""

    def setUp(self):
        self.loader = RuleLoader(config_dir=CONFIG_DIR)

    def test_rule_counts(self):
        counts = self.loader.get_rule_count()
        self.assertEqual(counts["command_policy"], 6)
        self.assertEqual(counts["sensitive_paths"], 32)
        self.assertEqual(counts["project_paths"], 2)
        self.assertEqual(counts["secret_tokens"], 12)

    def test_settings_match_defaults(self):
        self.assertEqual(self.loader.load_settings(), DEFAULT_SETTINGS)

    def test_sensitive_hint_compiles(self):
        re.compile(self.loader.load_settings()["sensitive_hint"])


if __name__ == "__main__":
    unittest_main()
