"""Tests for core types: Result[T] and Diag."""

from cellweave.core import Diag, DiagCode, Result, Severity


def test_severity_values() -> None:
    assert Severity.ERROR == "error"
    assert Severity.WARNING == "warning"
    assert Severity.INFO == "info"


def test_diag_creation() -> None:
    d = Diag(severity=Severity.ERROR, code="NOT_FOUND", message="missing snapshot")
    assert d.severity == Severity.ERROR
    assert d.code == "NOT_FOUND"
    assert d.hint is None


def test_result_empty_is_ok() -> None:
    r: Result[str] = Result()
    assert r.ok is True
    assert r.has_errors is False
    assert r.data is None
    assert r.diagnostics == []


def test_result_error_helper() -> None:
    r: Result[str] = Result(data="hello")
    r.error("LOAD_ERROR", "bad bytes", hint="re-export the snapshot")
    assert r.ok is False
    assert r.diagnostics[0].hint == "re-export the snapshot"


def test_warnings_and_info_do_not_fail() -> None:
    r: Result[int] = Result(data=1)
    r.warning("HAS_ISSUES", "structural issues")
    r.info("REPAIRED", "fixed on load")
    assert r.ok is True
    assert [d.severity for d in r.diagnostics] == [Severity.WARNING, Severity.INFO]


def test_codes_follow_diagnostic_order() -> None:
    r: Result[int] = Result(data=1)
    r.info(DiagCode.REPAIRED, "fixed on load")
    r.warning(DiagCode.HAS_ISSUES, "structural issues")
    assert r.codes == ["REPAIRED", "HAS_ISSUES"]
    assert DiagCode.NOT_FOUND == "NOT_FOUND"
