"""Tests for the PII logging gate."""

import importlib.util
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent


@pytest.fixture(scope="module")
def gate():
    spec = importlib.util.spec_from_file_location("gate_security_pii", ROOT / "scripts" / "gate_security_pii.py")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


class TestPiiGate:
    def test_source_tree_passes(self, gate):
        assert gate.main(ROOT / "src") == 0

    def test_flags_unredacted_phone(self, gate, tmp_path):
        bad = tmp_path / "bad.py"
        bad.write_text('logger.info("checked in %s", visitor.phone)\n')
        errors = gate.check_file(bad)
        assert len(errors) == 1
        assert "'phone'" in errors[0]

    def test_redacted_call_allowed(self, gate, tmp_path):
        ok = tmp_path / "ok.py"
        ok.write_text('logger.info("mail", extra={"extra_fields": safe_log_context(email=e)})\n')
        assert gate.check_file(ok) == []

    def test_flags_print(self, gate, tmp_path):
        bad = tmp_path / "bad.py"
        bad.write_text('print("debug")\n# print("fine in a comment")\n')
        assert len(gate.check_file(bad)) == 1
