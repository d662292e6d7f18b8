"""
CAP (Common Alerting Protocol) codec and validator

Implements OASIS CAP v1.0, v1.1 and v1.2.
Provides bidirectional conversion between CAP XML and validated Alert values.
"""

from .codec import (
    DecodeResult, EncodeResult, convert, decode, encode, normalize,
    split_reference, validate
)
from .diagnostics import (
    CAPError, Diagnostic, DiagnosticKind, DiagnosticSeverity, MalformedInput,
    UnknownVersion, has_errors, max_severity
)
from .enums import (
    Category, Certainty, EnumMapper, MsgType, ResponseType, Scope, Severity,
    Status, Urgency
)
from .model import (
    Alert, Area, Circle, Group, Info, Point, Polygon, Reference, Resource,
    ValuePair, parse_datetime
)
from .profile import Version, VersionProfile, get_profile
from .validator import validate_alert

__all__ = [
    'Alert', 'Info', 'Area', 'Resource', 'Polygon', 'Circle', 'Point',
    'ValuePair', 'Group', 'Reference', 'parse_datetime',
    'Status', 'MsgType', 'Scope', 'Category', 'ResponseType', 'Urgency', 'Severity',
    'Certainty', 'EnumMapper',
    'Version', 'VersionProfile', 'get_profile',
    'Diagnostic', 'DiagnosticKind', 'DiagnosticSeverity', 'CAPError', 'MalformedInput',
    'UnknownVersion', 'has_errors', 'max_severity',
    'decode', 'encode', 'validate', 'convert', 'normalize', 'split_reference',
    'DecodeResult', 'EncodeResult', 'validate_alert',
]
