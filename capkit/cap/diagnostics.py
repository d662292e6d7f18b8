"""
Validation diagnostics and fatal decode errors.

Recoverable problems are reported as Diagnostic entries and collected into a
list; only document-level failures raise.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional


class CAPError(ValueError):
    """Base class for fatal CAP errors."""


class MalformedInput(CAPError):
    """Document is not parsable XML or is not a CAP alert."""


class UnknownVersion(CAPError):
    """Root namespace does not match any known CAP version."""


class DiagnosticSeverity(Enum):
    WARNING = 'WARNING'
    ERROR = 'ERROR'


class DiagnosticKind(Enum):
    REQUIRED_FIELD_MISSING = 'RequiredFieldMissing'
    INVALID_ENUM_VALUE = 'InvalidEnumValue'
    INVALID_STRUCTURE = 'InvalidStructure'
    INVALID_FORMAT = 'InvalidFormat'
    DEPRECATED = 'Deprecated'


@dataclass(frozen=True)
class Diagnostic:
    """
    A single validation finding.

    path locates the offending entity using wire element names,
    e.g. 'alert.info[0].area[2].ceiling'. rule_id is stable across releases.
    """
    severity: DiagnosticSeverity
    kind: DiagnosticKind
    path: str
    message: str
    rule_id: str

    def to_dict(self) -> dict:
        return {
            'severity': self.severity.value,
            'kind': self.kind.value,
            'path': self.path,
            'message': self.message,
            'rule_id': self.rule_id,
        }

    def __str__(self) -> str:
        return f"{self.severity.value}: {self.kind.value} at {self.path} [{self.rule_id}] {self.message}"


def error(kind: DiagnosticKind, path: str, rule_id: str, message: str) -> Diagnostic:
    return Diagnostic(DiagnosticSeverity.ERROR, kind, path, message, rule_id)


def warning(kind: DiagnosticKind, path: str, rule_id: str, message: str) -> Diagnostic:
    return Diagnostic(DiagnosticSeverity.WARNING, kind, path, message, rule_id)


def max_severity(diagnostics: Iterable[Diagnostic]) -> Optional[DiagnosticSeverity]:
    """Highest severity in the list, or None if it is empty."""
    worst = None
    for diag in diagnostics:
        if diag.severity == DiagnosticSeverity.ERROR:
            return DiagnosticSeverity.ERROR
        worst = DiagnosticSeverity.WARNING
    return worst


def has_errors(diagnostics: Iterable[Diagnostic]) -> bool:
    return max_severity(diagnostics) == DiagnosticSeverity.ERROR


def errors_only(diagnostics: Iterable[Diagnostic]) -> List[Diagnostic]:
    return [d for d in diagnostics if d.severity == DiagnosticSeverity.ERROR]
