"""
CAP alert data model.

Entities are immutable values: sequences are tuples and a change is made with
dataclasses.replace(). The Alert owns its whole tree; nothing points back up.
"""

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from . import groups
from .enums import Category, Certainty, MsgType, ResponseType, Scope, Severity, Status, Urgency


DEFAULT_LANGUAGE = 'en-US'

# YYYY-MM-DDThh:mm:ss with a mandatory numeric offset; 'Z' is not allowed in CAP
DATETIME_PATTERN = re.compile(r'^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}[+-]\d{2}:\d{2}$')


def parse_datetime(text: Optional[str]) -> Optional[datetime]:
    """
    Convert a CAP timestamp into an aware datetime.

    Returns None for a missing value or one that does not follow the CAP
    dateTime profile.
    """
    if not text or not DATETIME_PATTERN.match(text):
        return None
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


@dataclass(frozen=True)
class Point:
    """WGS-84 coordinate pair."""
    latitude: float
    longitude: float

    def to_dict(self) -> Dict[str, Any]:
        return {'latitude': self.latitude, 'longitude': self.longitude}


@dataclass(frozen=True)
class Polygon:
    points: Tuple[Point, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {'points': [p.to_dict() for p in self.points]}


@dataclass(frozen=True)
class Circle:
    center: Point
    radius: float  # km

    def to_dict(self) -> Dict[str, Any]:
        return {'center': self.center.to_dict(), 'radius': self.radius}


@dataclass(frozen=True)
class ValuePair:
    """eventCode, parameter and geocode entries."""
    value_name: Optional[str] = None
    value: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {'value_name': self.value_name, 'value': self.value}


@dataclass(frozen=True)
class Group:
    """Ordered token list; the quoting used on the wire is not part of identity."""
    values: Tuple[str, ...] = ()

    @classmethod
    def parse(cls, text: str) -> 'Group':
        return cls(tuple(groups.parse(text)))

    def __str__(self) -> str:
        return groups.serialize(self.values)

    def __len__(self) -> int:
        return len(self.values)

    def __iter__(self):
        return iter(self.values)


@dataclass(frozen=True)
class Reference:
    """One sender,identifier,sent entry of <references>."""
    sender: str
    identifier: str
    sent: str

    @classmethod
    def from_token(cls, token: str) -> 'Reference':
        """
        Split one references token.

        Raises:
            ValueError: if the token is not exactly three comma-joined parts
        """
        parts = token.split(',')
        if len(parts) != 3 or not all(parts):
            raise ValueError(f"Reference must be sender,identifier,sent: {token!r}")
        return cls(sender=parts[0], identifier=parts[1], sent=parts[2])

    def to_token(self) -> str:
        return f'{self.sender},{self.identifier},{self.sent}'

    def to_dict(self) -> Dict[str, Any]:
        return {'sender': self.sender, 'identifier': self.identifier, 'sent': self.sent}


@dataclass(frozen=True)
class Area:
    """Geographic area; the target is the union of its shapes and geocodes."""
    area_desc: Optional[str] = None
    polygons: Tuple[Polygon, ...] = ()
    circles: Tuple[Circle, ...] = ()
    geocodes: Tuple[ValuePair, ...] = ()
    altitude: Optional[float] = None  # feet
    ceiling: Optional[float] = None  # feet

    def to_dict(self) -> Dict[str, Any]:
        return {
            'area_desc': self.area_desc,
            'polygons': [p.to_dict() for p in self.polygons],
            'circles': [c.to_dict() for c in self.circles],
            'geocodes': [g.to_dict() for g in self.geocodes],
            'altitude': self.altitude,
            'ceiling': self.ceiling,
        }


@dataclass(frozen=True)
class Resource:
    """Supplemental file attached to an info block."""
    resource_desc: Optional[str] = None
    mime_type: Optional[str] = None
    size: Optional[int] = None
    uri: Optional[str] = None
    deref_uri: Optional[str] = None
    digest: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'resource_desc': self.resource_desc,
            'mime_type': self.mime_type,
            'size': self.size,
            'uri': self.uri,
            'deref_uri': self.deref_uri,
            'digest': self.digest,
        }


@dataclass(frozen=True)
class Info:
    """Alert information block (language-specific)."""
    language: str = DEFAULT_LANGUAGE
    categories: Tuple[Category, ...] = ()
    event: Optional[str] = None
    response_types: Tuple[ResponseType, ...] = ()
    urgency: Optional[Urgency] = None
    severity: Optional[Severity] = None
    certainty: Optional[Certainty] = None
    audience: Optional[str] = None
    event_codes: Tuple[ValuePair, ...] = ()
    effective: Optional[str] = None
    onset: Optional[str] = None
    expires: Optional[str] = None
    sender_name: Optional[str] = None
    headline: Optional[str] = None
    description: Optional[str] = None
    instruction: Optional[str] = None
    web: Optional[str] = None
    contact: Optional[str] = None
    parameters: Tuple[ValuePair, ...] = ()
    resources: Tuple[Resource, ...] = ()
    areas: Tuple[Area, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'language': self.language,
            'categories': [c.value for c in self.categories],
            'event': self.event,
            'response_types': [r.value for r in self.response_types],
            'urgency': self.urgency.value if self.urgency else None,
            'severity': self.severity.value if self.severity else None,
            'certainty': self.certainty.value if self.certainty else None,
            'audience': self.audience,
            'event_codes': [e.to_dict() for e in self.event_codes],
            'effective': self.effective,
            'onset': self.onset,
            'expires': self.expires,
            'sender_name': self.sender_name,
            'headline': self.headline,
            'description': self.description,
            'instruction': self.instruction,
            'web': self.web,
            'contact': self.contact,
            'parameters': [p.to_dict() for p in self.parameters],
            'resources': [r.to_dict() for r in self.resources],
            'areas': [a.to_dict() for a in self.areas],
        }


@dataclass(frozen=True)
class Alert:
    """
    Root of a CAP message.

    xmlns pins the protocol version. Header fields mirror the <alert>
    children; info blocks are kept in document order.
    """
    xmlns: str
    identifier: Optional[str] = None
    sender: Optional[str] = None
    sent: Optional[str] = None
    status: Optional[Status] = None
    msg_type: Optional[MsgType] = None
    password: Optional[str] = None  # deprecated, 1.0 only
    source: Optional[str] = None
    scope: Optional[Scope] = None
    restriction: Optional[str] = None
    addresses: Optional[Group] = None
    codes: Tuple[str, ...] = ()
    note: Optional[str] = None
    references: Optional[Group] = None
    incidents: Optional[Group] = None
    infos: Tuple[Info, ...] = ()

    @property
    def sent_datetime(self) -> Optional[datetime]:
        return parse_datetime(self.sent)

    @property
    def primary_info(self) -> Optional[Info]:
        """Get primary (first) info block."""
        return self.infos[0] if self.infos else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'xmlns': self.xmlns,
            'identifier': self.identifier,
            'sender': self.sender,
            'sent': self.sent,
            'status': self.status.value if self.status else None,
            'msg_type': self.msg_type.value if self.msg_type else None,
            'password': self.password,
            'source': self.source,
            'scope': self.scope.value if self.scope else None,
            'restriction': self.restriction,
            'addresses': list(self.addresses) if self.addresses is not None else None,
            'codes': list(self.codes),
            'note': self.note,
            'references': list(self.references) if self.references is not None else None,
            'incidents': list(self.incidents) if self.incidents is not None else None,
            'info': [i.to_dict() for i in self.infos],
        }
