"""Structured error objects for the VERISM compiler.

Every error is machine-readable: a kind, a message, the originating source
location, and optional details. Errors are raised wrapped in CompileError,
which can carry one error or a whole batch collected across independent
constructs.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class ErrorKind(Enum):
    SYNTAX_ERROR = "syntax_error"
    GRAMMAR_ERROR = "grammar_error"
    REFERENCE_ERROR = "reference_error"
    ARITY_ERROR = "arity_error"
    SCOPING_ERROR = "scoping_error"
    ANNOTATION_ERROR = "annotation_error"
    DEFINITION_ERROR = "definition_error"
    TRANSLATION_ERROR = "translation_error"


@dataclass(frozen=True)
class SourceLocation:
    line: int
    column: int
    file: str = "<stdin>"

    def __str__(self) -> str:
        return f"{self.file}:{self.line}:{self.column}"


@dataclass
class VerismError:
    kind: ErrorKind
    message: str
    location: Optional[SourceLocation] = None
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "kind": self.kind.value,
            "message": self.message,
        }
        if self.location:
            d["location"] = {
                "file": self.location.file,
                "line": self.location.line,
                "column": self.location.column,
            }
        if self.details:
            d["details"] = self.details
        return d

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    def __str__(self) -> str:
        loc = f" at {self.location}" if self.location else ""
        return f"[{self.kind.value}]{loc}: {self.message}"


def syntax_error(
    message: str,
    location: Optional[SourceLocation] = None,
) -> VerismError:
    return VerismError(
        kind=ErrorKind.SYNTAX_ERROR,
        message=message,
        location=location,
    )


def grammar_error(
    message: str,
    location: Optional[SourceLocation] = None,
) -> VerismError:
    """A statement or expression shape outside the transition grammar."""
    return VerismError(
        kind=ErrorKind.GRAMMAR_ERROR,
        message=message,
        location=location,
    )


def reference_error(
    name: str,
    message: str,
    location: Optional[SourceLocation] = None,
) -> VerismError:
    return VerismError(
        kind=ErrorKind.REFERENCE_ERROR,
        message=message,
        location=location,
        details={"name": name},
    )


def arity_error(
    operation: str,
    expected: int,
    actual: int,
    location: Optional[SourceLocation] = None,
) -> VerismError:
    plural = "argument" if expected == 1 else "arguments"
    return VerismError(
        kind=ErrorKind.ARITY_ERROR,
        message=f"'{operation}' expected {expected} {plural}, got {actual}",
        location=location,
        details={
            "operation": operation,
            "expected": expected,
            "actual": actual,
        },
    )


def scoping_error(
    message: str,
    location: Optional[SourceLocation] = None,
    name: Optional[str] = None,
) -> VerismError:
    details: dict[str, Any] = {}
    if name is not None:
        details["name"] = name
    return VerismError(
        kind=ErrorKind.SCOPING_ERROR,
        message=message,
        location=location,
        details=details,
    )


def annotation_error(
    message: str,
    location: Optional[SourceLocation] = None,
) -> VerismError:
    return VerismError(
        kind=ErrorKind.ANNOTATION_ERROR,
        message=message,
        location=location,
    )


def definition_error(
    message: str,
    location: Optional[SourceLocation] = None,
) -> VerismError:
    return VerismError(
        kind=ErrorKind.DEFINITION_ERROR,
        message=message,
        location=location,
    )


def translation_error(
    message: str,
    location: Optional[SourceLocation] = None,
    shape: Optional[str] = None,
) -> VerismError:
    """Raised by verifier adapters on an unsupported expression shape."""
    details: dict[str, Any] = {}
    if shape is not None:
        details["shape"] = shape
    return VerismError(
        kind=ErrorKind.TRANSLATION_ERROR,
        message=message,
        location=location,
        details=details,
    )


class CompileError(Exception):
    """Exception wrapping one or more VerismErrors."""

    def __init__(self, errors: list[VerismError] | VerismError):
        if isinstance(errors, VerismError):
            errors = [errors]
        self.errors = errors
        super().__init__(self._format())

    @property
    def first(self) -> VerismError:
        return self.errors[0]

    def _format(self) -> str:
        return "\n".join(str(e) for e in self.errors)

    def to_json(self, indent: int = 2) -> str:
        return json.dumps([e.to_dict() for e in self.errors], indent=indent)
