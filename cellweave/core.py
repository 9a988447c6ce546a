"""Diagnostics returned by the snapshot store and the tooling built on it."""

from enum import StrEnum
from typing import Generic, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class Severity(StrEnum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class DiagCode(StrEnum):
    """Codes the store attaches to load and save results."""

    NOT_FOUND = "NOT_FOUND"
    LOAD_ERROR = "LOAD_ERROR"
    INVALID_NAME = "INVALID_NAME"
    HAS_ISSUES = "HAS_ISSUES"
    REPAIRED = "REPAIRED"


class Diag(BaseModel):
    """One store finding; `hint` names the command that resolves it, if any."""

    severity: Severity
    code: str
    message: str
    hint: str | None = None


class Result(BaseModel, Generic[T]):  # noqa: UP046 - Pydantic requires Generic[T] subclass
    """A loaded document (or nothing) plus what the store noticed on the way.

    A missing, unreadable or badly named snapshot yields `data=None` and an
    error diagnostic. A document that loads but fails validation still carries
    `data`, with a HAS_ISSUES warning or a REPAIRED note alongside.
    """

    model_config = {"arbitrary_types_allowed": True}

    data: T | None = None
    diagnostics: list[Diag] = Field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return any(d.severity == Severity.ERROR for d in self.diagnostics)

    @property
    def ok(self) -> bool:
        return not self.has_errors

    @property
    def codes(self) -> list[str]:
        return [d.code for d in self.diagnostics]

    def error(self, code: str, message: str, *, hint: str | None = None) -> None:
        self.diagnostics.append(Diag(severity=Severity.ERROR, code=code, message=message, hint=hint))

    def warning(self, code: str, message: str, *, hint: str | None = None) -> None:
        self.diagnostics.append(Diag(severity=Severity.WARNING, code=code, message=message, hint=hint))

    def info(self, code: str, message: str, *, hint: str | None = None) -> None:
        self.diagnostics.append(Diag(severity=Severity.INFO, code=code, message=message, hint=hint))
