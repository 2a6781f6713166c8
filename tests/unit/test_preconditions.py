"""Tests for duplicate-resource precondition checks."""

from unittest.mock import MagicMock

import pytest

from provkit.exceptions import PreconditionEvaluationError
from provkit.preconditions import (
    FailureCode,
    PreconditionChecker,
    PreconditionFailure,
    check_all,
    find_conflicts,
)


class TestFindConflicts:
    """Tests for find_conflicts."""

    def test_case_insensitive_prefix(self):
        assert find_conflicts("testp", {"testp-cd", "TESTP-dev", "other"}) == [
            "TESTP-dev",
            "testp-cd",
        ]

    def test_exact_key_without_dash_is_not_a_conflict(self):
        assert find_conflicts("testp", ["testp", "testproject-cd"]) == []

    def test_duplicates_collapsed(self):
        assert find_conflicts("a", ["a-x", "a-x"]) == ["a-x"]


class TestCheckNoConflict:
    """Tests for PreconditionChecker.check_no_conflict."""

    def test_conflicts_reported_as_one_failure(self):
        existing = {"testp-cd", "TESTP-dev", "other"}
        checker = PreconditionChecker("openshiftService", lambda: existing)

        failures = checker.check_no_conflict("testp")

        assert len(failures) == 1
        failure = failures[0]
        assert failure.code is FailureCode.PROJECT_EXISTS
        assert "testp-cd" in failure.detail
        assert "TESTP-dev" in failure.detail
        assert "'openshiftService'" in failure.detail
        assert failure.detail.startswith(
            "Project name (namespace) with prefix 'testp' already exists"
        )

    def test_uppercase_key(self):
        checker = PreconditionChecker("bitbucket", lambda: ["testp-cd", "TESTP-dev", "other"])

        failures = checker.check_no_conflict("TESTP")

        assert len(failures) == 1
        assert "testp-cd" in failures[0].detail
        assert "TESTP-dev" in failures[0].detail

    def test_no_conflict(self):
        checker = PreconditionChecker("openshiftService", lambda: {"other-cd", "ods"})
        assert checker.check_no_conflict("testp") == []

    def test_empty_platform(self):
        assert PreconditionChecker("bitbucket", list).check_no_conflict("testp") == []

    @pytest.mark.parametrize("key", [None, "", "   "])
    def test_blank_key_rejected_without_fetch(self, key):
        fetch = MagicMock(return_value=[])
        checker = PreconditionChecker("openshiftService", fetch)

        with pytest.raises(ValueError, match="openshiftService"):
            checker.check_no_conflict(key)

        fetch.assert_not_called()

    def test_fetch_error_wrapped(self):
        cause = RuntimeError("connection refused")
        checker = PreconditionChecker("openshiftService", MagicMock(side_effect=cause))

        with pytest.raises(PreconditionEvaluationError) as exc_info:
            checker.check_no_conflict("testp")

        error = exc_info.value
        assert error.__cause__ is cause
        assert error.adapter_name == "openshiftService"
        assert error.candidate_key == "testp"
        assert str(error) == (
            "'openshiftService' found a precondition failure for project 'testp': "
            "connection refused"
        )

    def test_fetch_called_once_per_check(self):
        fetch = MagicMock(return_value=["x-cd"])
        checker = PreconditionChecker("bitbucket", fetch)
        checker.check_no_conflict("testp")
        checker.check_no_conflict("testp")
        assert fetch.call_count == 2


class TestPreconditionFailure:
    """Tests for PreconditionFailure serialization."""

    def test_to_dict(self):
        failure = PreconditionFailure.project_exists("taken")
        assert failure.to_dict() == {"error-code": "PROJECT_EXISTS", "error-message": "taken"}

    def test_str(self):
        failure = PreconditionFailure(FailureCode.UNEXISTANT_USER, "no such user 'bob'")
        assert str(failure) == "UNEXISTANT_USER: no such user 'bob'"


class TestCheckAll:
    """Tests for check_all."""

    def test_collects_failures(self):
        checkers = [
            PreconditionChecker("openshiftService", lambda: ["testp-cd"]),
            PreconditionChecker("bitbucket", lambda: ["other"]),
            PreconditionChecker("jira", lambda: ["TESTP-x"]),
        ]
        failures = check_all(checkers, "testp")
        assert len(failures) == 2
        assert "'openshiftService'" in failures[0].detail
        assert "'jira'" in failures[1].detail

    def test_error_stops_run(self):
        later = MagicMock(return_value=[])
        checkers = [
            PreconditionChecker("a", MagicMock(side_effect=OSError("boom"))),
            PreconditionChecker("b", later),
        ]
        with pytest.raises(PreconditionEvaluationError):
            check_all(checkers, "testp")
        later.assert_not_called()
