"""Duplicate-resource precondition checks.

Before a project is created on a platform, the platform is asked for the
identifiers it already has. Resources are namespaced by project key with a
dash separator (``testp-cd``, ``testp-dev``), so any existing identifier that
starts with ``<key>-`` (case-insensitive) means the key is taken.

A conflict is ordinary data: ``check_no_conflict`` returns a list of
``PreconditionFailure`` and only raises when the check itself cannot be
evaluated.

The check is advisory. A key that passes can still collide if another
workflow creates the same project before the create call is made.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from enum import StrEnum

from provkit.exceptions import PreconditionEvaluationError
from provkit.logging import get_logger

LOG = get_logger(__name__)


class FailureCode(StrEnum):
    """Kinds of precondition failure reported to callers."""

    PROJECT_EXISTS = "PROJECT_EXISTS"
    UNEXISTANT_GROUP = "UNEXISTANT_GROUP"
    UNEXISTANT_USER = "UNEXISTANT_USER"
    CREATE_PROJECT_PERMISSION_MISSING = "CREATE_PROJECT_PERMISSION_MISSING"
    EXCEPTION = "EXCEPTION"


@dataclass(frozen=True)
class PreconditionFailure:
    """One reason why a project cannot be created."""

    code: FailureCode
    detail: str

    @classmethod
    def project_exists(cls, detail: str) -> PreconditionFailure:
        return cls(FailureCode.PROJECT_EXISTS, detail)

    def to_dict(self) -> dict[str, str]:
        """Serialize using the wire field names ``error-code`` / ``error-message``."""
        return {"error-code": self.code.value, "error-message": self.detail}

    def __str__(self) -> str:
        return f"{self.code.value}: {self.detail}"


def find_conflicts(candidate_key: str, existing: Iterable[str]) -> list[str]:
    """Return existing identifiers namespaced under ``candidate_key``.

    Args:
        candidate_key: Project key to check.
        existing: Identifiers already present on the platform.

    Returns:
        Sorted identifiers whose lowercase form starts with
        ``candidate_key.lower() + "-"``.
    """
    prefix = candidate_key.lower() + "-"
    return sorted({name for name in existing if name.lower().startswith(prefix)})


class PreconditionChecker:
    """Check that a project key is not already used on one platform."""

    def __init__(self, adapter_name: str, fetch_existing: Callable[[], Iterable[str]]) -> None:
        """Initialize a PreconditionChecker.

        Args:
            adapter_name: Name of the platform adapter, used in messages and errors.
            fetch_existing: Returns every resource identifier on the platform.
                Called once per check.
        """
        self.adapter_name = adapter_name
        self._fetch_existing = fetch_existing

    def check_no_conflict(self, candidate_key: str | None) -> list[PreconditionFailure]:
        """Report resources that already use ``candidate_key`` as a prefix.

        Args:
            candidate_key: Project key to check.

        Returns:
            An empty list when the key is free, otherwise one
            ``PROJECT_EXISTS`` failure naming the conflicting identifiers.

        Raises:
            ValueError: If the key is None or blank. No remote call is made.
            PreconditionEvaluationError: If the platform cannot be queried.
        """
        if candidate_key is None or not candidate_key.strip():
            raise ValueError(f"'{self.adapter_name}': project key must be non-empty")

        LOG.info("precondition_check_started", adapter=self.adapter_name, key=candidate_key)
        try:
            existing = list(self._fetch_existing())
        except Exception as exc:
            LOG.error(
                "precondition_check_failed",
                adapter=self.adapter_name,
                key=candidate_key,
                error=str(exc),
                exc_type=type(exc).__name__,
            )
            raise PreconditionEvaluationError(self.adapter_name, candidate_key, str(exc)) from exc

        failures: list[PreconditionFailure] = []
        conflicts = find_conflicts(candidate_key, existing)
        if conflicts:
            failures.append(
                PreconditionFailure.project_exists(
                    f"Project name (namespace) with prefix '{candidate_key}' already exists "
                    f"in '{self.adapter_name}'! [existingProjects={conflicts}]"
                )
            )
        LOG.info(
            "precondition_check_done",
            adapter=self.adapter_name,
            key=candidate_key,
            conflicts=len(conflicts),
        )
        return failures


def check_all(
    checkers: Sequence[PreconditionChecker], candidate_key: str | None
) -> list[PreconditionFailure]:
    """Run several checkers and collect their failures.

    An evaluation error in one checker stops the run; callers that want to
    report it as data can catch ``PreconditionEvaluationError`` and use
    ``FailureCode.EXCEPTION``.
    """
    failures: list[PreconditionFailure] = []
    for checker in checkers:
        failures.extend(checker.check_no_conflict(candidate_key))
    return failures
