#!/usr/bin/env python3
# kate: replace-tabs on; indent-width 4;

"""
Diagnostic records and the reporter that collects them.

Every constraint violation found by the HTTP binding checks is recorded as a
Diagnostic carrying a DiagKind, a severity, the source location of the
offending method and a human readable message. Nothing is raised: the
DiagReporter only accumulates records, and callers decide afterwards how to
print them and which exit status to return.
"""

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional


class Severity(Enum):
    """Severity of a diagnostic."""
    ERROR = "error"
    WARNING = "warning"


class DiagKind(Enum):
    """One kind per HTTP binding rule, so tests can match on the rule."""
    MAP_NOT_ALLOWED_AS_PARAM = "MapNotAllowedAsParam"
    REPEATED_MESSAGE_NOT_ALLOWED_AS_PARAM = "RepeatedMessageNotAllowedAsParam"
    CYCLIC_PARAM_REFERENCE = "CyclicParamReference"
    MAP_OR_REPEATED_OR_DISALLOWED_MESSAGE_ON_PATH = "MapOrRepeatedOrDisallowedMessageOnPath"
    OVERLAPPING_PATH_SELECTORS = "OverlappingPathSelectors"
    BODY_MUST_BE_TOP_LEVEL_FIELD = "BodyMustBeTopLevelField"
    BODY_MUST_BE_NON_REPEATED_ALLOWED_MESSAGE = "BodyMustBeNonRepeatedAllowedMessage"
    RESPONSE_NOT_JSON_RENDERABLE = "ResponseNotJsonRenderable"
    ADDITIONAL_BINDING_HAS_NESTED_BINDINGS = "AdditionalBindingHasNestedBindings"
    ADDITIONAL_BINDING_HAS_SELECTOR = "AdditionalBindingHasSelector"


@dataclass(frozen=True)
class Location:
    """
    A position in a .proto source file.

    Line and column are 1-based. They are None when the descriptor set was
    built without source info; the element name is then used as a fallback
    so the diagnostic still points somewhere useful.
    """
    file: str
    line: Optional[int] = None
    column: Optional[int] = None
    element: str = ''

    def __str__(self):
        if self.line is None:
            if self.element:
                return f"{self.file}: {self.element}" if self.file else self.element
            return self.file or '<unknown>'
        if self.column is None:
            return f"{self.file}:{self.line}"
        return f"{self.file}:{self.line}:{self.column}"


UNKNOWN_LOCATION = Location('')


@dataclass(frozen=True)
class Diagnostic:
    """A single reported violation."""
    kind: DiagKind
    severity: Severity
    location: Location
    message: str

    def __str__(self):
        return f"{self.location}: {self.severity.value}: {self.message}"


class DiagReporter:
    """
    Collects diagnostics emitted by validators.

    Appends are guarded by a lock so that methods can be validated from
    several threads against the same reporter.
    """

    def __init__(self):
        self._diagnostics: List[Diagnostic] = []
        self._lock = threading.Lock()

    def report(self, diagnostic: Diagnostic) -> None:
        with self._lock:
            self._diagnostics.append(diagnostic)

    def error(self, location: Location, kind: DiagKind, fmt: str, *args: Any) -> Diagnostic:
        """
        Record an error diagnostic.

        Args:
            location: Where the violation was declared
            kind: The rule that was violated
            fmt: A printf-style message template
            *args: Values substituted into the template via str()

        Returns:
            The recorded Diagnostic.
        """
        message = fmt % tuple(str(a) for a in args) if args else fmt
        diagnostic = Diagnostic(kind, Severity.ERROR, location, message)
        self.report(diagnostic)
        return diagnostic

    @property
    def diagnostics(self) -> List[Diagnostic]:
        with self._lock:
            return list(self._diagnostics)

    @property
    def errors(self) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.severity is Severity.ERROR]

    def error_count(self) -> int:
        return len(self.errors)

    def has_errors(self) -> bool:
        return self.error_count() > 0

    def of_kind(self, kind: DiagKind) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.kind is kind]

    def clear(self) -> None:
        with self._lock:
            self._diagnostics.clear()

    def format_all(self) -> str:
        return '\n'.join(str(d) for d in self.diagnostics)

    def exit_code(self) -> int:
        """0 when no errors were reported, 1 otherwise."""
        return 1 if self.has_errors() else 0
