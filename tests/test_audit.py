#!/usr/bin/env python3
"""
Tests for the audit log (audit.py).

Run: python -m pytest tests/test_audit.py -v
"""

import copy
import json
import os
import shutil
import sys
import tempfile
from io import StringIO
from pathlib import Path
from unittest import TestCase, main as unittest_main
from unittest.mock import patch

sys.path.insert(0, str(Path(__file__).parent.parent / "hooks"))

import audit
from rule_loader import DEFAULT_SETTINGS


def settings_with(**section):
    settings = copy.deepcopy(DEFAULT_SETTINGS)
    settings["audit"].update(section)
    return settings


class TestAuditLog(TestCase):

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.log_file = Path(self.temp_dir) / "audit.log"
        patchers = [
            patch("audit.LOG_FILE", self.log_file),
            patch.dict(os.environ),
        ]
        for p in patchers:
            p.start()
            self.addCleanup(p.stop)
        os.environ.pop(audit.ENABLED_ENV, None)
        os.environ.pop(audit.LOG_FILE_ENV, None)

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def entries(self, log_file=None):
        lines = (log_file or self.log_file).read_text().strip().split("\n")
        return [json.loads(line) for line in lines]

    def test_entry_fields(self):
        audit.log_decision("command-guard", "docker compose up", "DENY", "Use make", "primary",
                           rule=r"^docker\s+compose\b", settings=DEFAULT_SETTINGS)
        entry = self.entries()[0]
        self.assertEqual(entry["hook"], "command-guard")
        self.assertEqual(entry["subject"], "docker compose up")
        self.assertEqual(entry["verdict"], "DENY")
        self.assertEqual(entry["reason"], "Use make")
        self.assertEqual(entry["layer"], "primary")
        self.assertEqual(entry["rule"], r"^docker\s+compose\b")
        self.assertIn("timestamp", entry)

    def test_rule_omitted_when_empty(self):
        audit.log_decision("read-guard", "/x/.env", "ASK", "Sensitive file", "path", settings=DEFAULT_SETTINGS)
        self.assertNotIn("rule", self.entries()[0])

    def test_subject_truncated(self):
        audit.log_decision("h", "x" * 2000, "DENY", "r", "l", settings=DEFAULT_SETTINGS)
        self.assertEqual(len(self.entries()[0]["subject"]), audit.MAX_SUBJECT_LENGTH)

    def test_appends(self):
        for verdict in ("DENY", "ASK"):
            audit.log_decision("h", "s", verdict, "r", "l", settings=DEFAULT_SETTINGS)
        self.assertEqual([e["verdict"] for e in self.entries()], ["DENY", "ASK"])

    def test_disabled_in_settings(self):
        audit.log_decision("h", "s", "DENY", "r", "l", settings=settings_with(enabled=False))
        self.assertFalse(self.log_file.exists())

    def test_env_overrides_settings(self):
        os.environ[audit.ENABLED_ENV] = "off"
        audit.log_decision("h", "s", "DENY", "r", "l", settings=DEFAULT_SETTINGS)
        self.assertFalse(self.log_file.exists())

        os.environ[audit.ENABLED_ENV] = "on"
        audit.log_decision("h", "s", "DENY", "r", "l", settings=settings_with(enabled=False))
        self.assertTrue(self.log_file.exists())

    def test_log_file_from_settings(self):
        configured = Path(self.temp_dir) / "nested" / "gate.log"
        audit.log_decision("h", "s", "DENY", "r", "l", settings=settings_with(log_file=str(configured)))
        self.assertEqual(self.entries(configured)[0]["verdict"], "DENY")
        self.assertFalse(self.log_file.exists())

    def test_log_path_env_wins(self):
        os.environ[audit.LOG_FILE_ENV] = str(self.log_file)
        self.assertEqual(audit.log_path(settings_with(log_file="/elsewhere/gate.log")), self.log_file)

    def test_log_path_default(self):
        self.assertEqual(audit.log_path(DEFAULT_SETTINGS), self.log_file)

    def test_write_failure_only_warns(self):
        blocker = Path(self.temp_dir) / "file"
        blocker.write_text("")
        stderr = StringIO()
        with patch("audit.LOG_FILE", blocker / "audit.log"), patch("sys.stderr", stderr):
            audit.log_decision("h", "s", "DENY", "r", "l", settings=DEFAULT_SETTINGS)
        self.assertIn("Could not write to audit log", stderr.getvalue())


if __name__ == "__main__":
    unittest_main()
