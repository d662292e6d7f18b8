"""
CAP enumerations and the wire-token mapper.

Enum values are the literal wire tokens. Urgency, Severity and Certainty each
carry their own UNKNOWN member; they are distinct values of distinct types.
"""

from enum import Enum
from typing import List, Optional, Tuple, Type

from .diagnostics import Diagnostic, DiagnosticKind, error, warning
from .profile import Version, get_profile


class Status(Enum):
    ACTUAL = 'Actual'
    EXERCISE = 'Exercise'
    SYSTEM = 'System'
    TEST = 'Test'
    DRAFT = 'Draft'  # added in 1.1


class MsgType(Enum):
    ALERT = 'Alert'
    UPDATE = 'Update'
    CANCEL = 'Cancel'
    ACK = 'Ack'
    ERROR = 'Error'


class Scope(Enum):
    PUBLIC = 'Public'
    RESTRICTED = 'Restricted'
    PRIVATE = 'Private'


class Category(Enum):
    GEO = 'Geo'
    MET = 'Met'
    SAFETY = 'Safety'
    SECURITY = 'Security'
    RESCUE = 'Rescue'
    FIRE = 'Fire'
    HEALTH = 'Health'
    ENV = 'Env'
    TRANSPORT = 'Transport'
    INFRA = 'Infra'
    CBRNE = 'CBRNE'  # added in 1.1
    OTHER = 'Other'


class ResponseType(Enum):
    SHELTER = 'Shelter'
    EVACUATE = 'Evacuate'
    PREPARE = 'Prepare'
    EXECUTE = 'Execute'
    AVOID = 'Avoid'  # added in 1.2
    MONITOR = 'Monitor'
    ASSESS = 'Assess'
    ALL_CLEAR = 'AllClear'  # added in 1.2
    NONE = 'None'


class Urgency(Enum):
    IMMEDIATE = 'Immediate'
    EXPECTED = 'Expected'
    FUTURE = 'Future'
    PAST = 'Past'
    UNKNOWN = 'Unknown'


class Severity(Enum):
    EXTREME = 'Extreme'
    SEVERE = 'Severe'
    MODERATE = 'Moderate'
    MINOR = 'Minor'
    UNKNOWN = 'Unknown'


class Certainty(Enum):
    OBSERVED = 'Observed'
    VERY_LIKELY = 'Very Likely'  # deprecated as of 1.1, kept for round-trip
    LIKELY = 'Likely'
    POSSIBLE = 'Possible'
    UNLIKELY = 'Unlikely'
    UNKNOWN = 'Unknown'


# still legal on the wire, but flagged whenever seen
DEPRECATED_VALUES = frozenset({Certainty.VERY_LIKELY})

# members whose replacement is worth pointing at in the warning
_REPLACEMENTS = {
    Certainty.VERY_LIKELY: Certainty.LIKELY,
}


def _deprecation(value: Enum, path: str) -> Diagnostic:
    message = f"'{value.value}' is deprecated"
    replacement = _REPLACEMENTS.get(value)
    if replacement is not None:
        message += f", use '{replacement.value}'"
    return warning(DiagnosticKind.DEPRECATED, path, 'enum.deprecated', message)


class EnumMapper:
    """
    Bidirectional token <-> enum mapping, checked against a version profile.

    Both directions return (result, diagnostics); result is None when the
    token or value cannot be used in the requested version.
    """

    @staticmethod
    def decode(
        token: str,
        kind: Type[Enum],
        version: Version,
        path: str
    ) -> Tuple[Optional[Enum], List[Diagnostic]]:
        try:
            value = kind(token)
        except ValueError:
            allowed = ', '.join(f"'{m.value}'" for m in kind)
            return None, [error(
                DiagnosticKind.INVALID_ENUM_VALUE, path, 'enum.invalid',
                f"'{token}' is not a valid {kind.__name__} (expected one of {allowed})"
            )]

        if value in DEPRECATED_VALUES:
            return value, [_deprecation(value, path)]

        if not get_profile(version).has_value(value):
            return None, [error(
                DiagnosticKind.INVALID_ENUM_VALUE, path, 'enum.unavailable',
                f"{kind.__name__} '{token}' does not exist in CAP {version.value}"
            )]

        return value, []

    @staticmethod
    def encode(value: Enum, version: Version, path: str) -> Tuple[Optional[str], List[Diagnostic]]:
        if value in DEPRECATED_VALUES:
            return value.value, [_deprecation(value, path)]

        if not get_profile(version).has_value(value):
            return None, [error(
                DiagnosticKind.INVALID_ENUM_VALUE, path, 'enum.unavailable',
                f"{type(value).__name__} '{value.value}' cannot be encoded for CAP {version.value}"
            )]

        return value.value, []
