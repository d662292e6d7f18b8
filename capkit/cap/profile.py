"""
Per-version CAP rule tables.

CAP 1.0: http://www.incident.com/cap/1.0
CAP 1.1: http://docs.oasis-open.org/emergency/cap/v1.1/
CAP 1.2: http://docs.oasis-open.org/emergency/cap/v1.2/CAP-v1.2.html
"""

from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, Optional


class Version(Enum):
    V1_0 = '1.0'
    V1_1 = '1.1'
    V1_2 = '1.2'

    @property
    def xmlns(self) -> str:
        return get_profile(self).xmlns

    @classmethod
    def from_xmlns(cls, xmlns: Optional[str]) -> Optional['Version']:
        """Exact namespace match, None if unrecognized."""
        for profile in _PROFILES.values():
            if profile.xmlns == xmlns:
                return profile.version
        return None

    @classmethod
    def from_label(cls, label: str) -> 'Version':
        """Accepts '1.2', 'V1_2' or a namespace string."""
        label = label.strip()
        for version in cls:
            if label in (version.value, version.name):
                return version
        version = cls.from_xmlns(label)
        if version is None:
            raise ValueError(f"Unknown CAP version: {label}")
        return version


@dataclass(frozen=True)
class VersionProfile:
    """Rules that differ between CAP versions."""
    version: Version
    xmlns: str
    # wire names of fields whose requiredness changed across versions
    required_fields: FrozenSet[str]
    # wire names of fields that do not exist in this version
    unavailable_fields: FrozenSet[str]
    # Enum members, keyed '<EnumClass>.<MEMBER>', that do not exist yet
    unavailable_values: FrozenSet[str]
    password_permitted: bool

    def is_required(self, field_name: str) -> bool:
        return field_name in self.required_fields

    def has_field(self, field_name: str) -> bool:
        return field_name not in self.unavailable_fields

    def has_value(self, value: Enum) -> bool:
        return f'{type(value).__name__}.{value.name}' not in self.unavailable_values


_PROFILES = {
    Version.V1_0: VersionProfile(
        version=Version.V1_0,
        xmlns='http://www.incident.com/cap/1.0',
        required_fields=frozenset(),
        unavailable_fields=frozenset({'responseType', 'derefUri'}),
        unavailable_values=frozenset({
            'Category.CBRNE',
            'Status.DRAFT',
            'ResponseType.AVOID',
            'ResponseType.ALL_CLEAR',
        }),
        password_permitted=True,
    ),
    Version.V1_1: VersionProfile(
        version=Version.V1_1,
        xmlns='urn:oasis:names:tc:emergency:cap:1.1',
        required_fields=frozenset({'scope', 'category'}),
        unavailable_fields=frozenset(),
        unavailable_values=frozenset({
            'ResponseType.AVOID',
            'ResponseType.ALL_CLEAR',
        }),
        password_permitted=False,
    ),
    Version.V1_2: VersionProfile(
        version=Version.V1_2,
        xmlns='urn:oasis:names:tc:emergency:cap:1.2',
        required_fields=frozenset({'scope', 'category', 'mimeType'}),
        unavailable_fields=frozenset(),
        unavailable_values=frozenset(),
        password_permitted=False,
    ),
}


def get_profile(version: Version) -> VersionProfile:
    """Look up the rule table; an unknown tag raises KeyError."""
    return _PROFILES[version]

