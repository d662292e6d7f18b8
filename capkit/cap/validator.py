"""
Structural validation of a CAP alert tree.

Every entity is visited; nothing stops at the first defect, so a single call
reports everything wrong with the alert. ERROR marks a CAP "MUST" violation,
WARNING a "SHOULD".
"""

import base64
import binascii
import math
import re
from typing import List, Optional, Sequence
from urllib.parse import urlparse

from .diagnostics import Diagnostic, DiagnosticKind, error, warning
from .enums import MsgType, Scope
from .model import (
    DATETIME_PATTERN, Alert, Area, Circle, Info, Point, Polygon, Reference,
    Resource, ValuePair, parse_datetime
)
from .profile import Version, VersionProfile, get_profile


SHA1_PATTERN = re.compile(r'^[0-9a-fA-F]{40}$')

# characters CAP forbids in identifier, sender and code
_RESTRICTED_CHARS = (',', '<', '&')

# message types that act on earlier messages named in <references>
_REFERENCING_TYPES = (MsgType.UPDATE, MsgType.CANCEL, MsgType.ACK, MsgType.ERROR)

# scalar info fields a later same-language block must not change
_OVERRIDE_FIELDS = (
    ('event', 'event'),
    ('urgency', 'urgency'),
    ('severity', 'severity'),
    ('certainty', 'certainty'),
    ('effective', 'effective'),
    ('onset', 'onset'),
    ('expires', 'expires'),
    ('sender_name', 'senderName'),
)


def _missing(path: str, what: str, rule_id: str = 'field.required') -> Diagnostic:
    return error(DiagnosticKind.REQUIRED_FIELD_MISSING, path, rule_id, f"{what} is required")


def _require(value, path: str, what: str, out: List[Diagnostic]) -> bool:
    if value is None or value == '' or value == ():
        out.append(_missing(path, what))
        return False
    return True


def _check_token(value: Optional[str], path: str, out: List[Diagnostic]) -> None:
    if not value:
        return
    if any(c.isspace() for c in value) or any(c in value for c in _RESTRICTED_CHARS):
        out.append(error(
            DiagnosticKind.INVALID_FORMAT, path, 'token.restricted-chars',
            f"'{value}' must not contain whitespace, ',', '<' or '&'"
        ))


def _check_datetime(value: Optional[str], path: str, out: List[Diagnostic]) -> None:
    if value is None:
        return
    if value.endswith('Z'):
        out.append(error(
            DiagnosticKind.INVALID_FORMAT, path, 'datetime.format',
            f"'{value}' uses the 'Z' designator; CAP requires a numeric offset such as +00:00"
        ))
    elif not DATETIME_PATTERN.match(value) or parse_datetime(value) is None:
        out.append(error(
            DiagnosticKind.INVALID_FORMAT, path, 'datetime.format',
            f"'{value}' is not a CAP dateTime (YYYY-MM-DDThh:mm:ss+hh:mm)"
        ))


def _check_unavailable(profile: VersionProfile, field_name: str, present: bool,
                       path: str, out: List[Diagnostic]) -> None:
    if present and not profile.has_field(field_name):
        out.append(error(
            DiagnosticKind.INVALID_STRUCTURE, path, 'field.unavailable',
            f"<{field_name}> does not exist in CAP {profile.version.value}"
        ))


def _validate_value_pairs(pairs: Sequence[ValuePair], path: str, out: List[Diagnostic]) -> None:
    for i, pair in enumerate(pairs):
        if not pair.value_name:
            out.append(_missing(f'{path}[{i}].valueName', 'valueName', 'value-pair.required'))
        if not pair.value:
            out.append(_missing(f'{path}[{i}].value', 'value', 'value-pair.required'))


def _validate_point(point: Point, path: str, out: List[Diagnostic]) -> None:
    if not (-90.0 <= point.latitude <= 90.0) or not (-180.0 <= point.longitude <= 180.0):
        out.append(error(
            DiagnosticKind.INVALID_STRUCTURE, path, 'point.range',
            f"({point.latitude}, {point.longitude}) is outside WGS-84 bounds"
        ))


def validate_polygon(polygon: Polygon, path: str) -> List[Diagnostic]:
    """Point count, closure and degenerate edges. Closure is exact equality."""
    out = []
    points = polygon.points

    if len(points) < 4:
        out.append(error(
            DiagnosticKind.INVALID_STRUCTURE, path, 'polygon.min-points',
            f"polygon has {len(points)} points, at least 4 are required"
        ))

    if points and points[0] != points[-1]:
        out.append(error(
            DiagnosticKind.INVALID_STRUCTURE, path, 'polygon.closure',
            "first and last points of a polygon must be identical"
        ))

    for i in range(1, len(points)):
        if points[i] == points[i - 1]:
            out.append(error(
                DiagnosticKind.INVALID_STRUCTURE, f'{path}.point[{i}]', 'polygon.degenerate-edge',
                f"point {i} repeats the previous point"
            ))

    for i, point in enumerate(points):
        _validate_point(point, f'{path}.point[{i}]', out)

    return out


def validate_circle(circle: Circle, path: str) -> List[Diagnostic]:
    out = []
    _validate_point(circle.center, f'{path}.point', out)
    if not math.isfinite(circle.radius) or circle.radius < 0:
        out.append(error(
            DiagnosticKind.INVALID_STRUCTURE, f'{path}.radius', 'circle.radius',
            f"radius must be a finite, non-negative number of km, got {circle.radius}"
        ))
    return out


def validate_area(area: Area, path: str) -> List[Diagnostic]:
    out = []
    _require(area.area_desc, f'{path}.areaDesc', 'areaDesc', out)

    for i, polygon in enumerate(area.polygons):
        out.extend(validate_polygon(polygon, f'{path}.polygon[{i}]'))
    for i, circle in enumerate(area.circles):
        out.extend(validate_circle(circle, f'{path}.circle[{i}]'))
    _validate_value_pairs(area.geocodes, f'{path}.geocode', out)

    finite = True
    for name, value in (('altitude', area.altitude), ('ceiling', area.ceiling)):
        if value is not None and not math.isfinite(value):
            finite = False
            out.append(error(
                DiagnosticKind.INVALID_STRUCTURE, f'{path}.{name}', 'area.non-finite',
                f"{name} must be a finite number of feet, got {value}"
            ))

    if area.ceiling is not None:
        if area.altitude is None:
            out.append(error(
                DiagnosticKind.INVALID_STRUCTURE, f'{path}.ceiling', 'area.ceiling-without-altitude',
                "ceiling must not be used without altitude"
            ))
        elif finite and area.ceiling < area.altitude:
            out.append(error(
                DiagnosticKind.INVALID_STRUCTURE, f'{path}.ceiling', 'area.ceiling-below-altitude',
                f"ceiling {area.ceiling} is below altitude {area.altitude}"
            ))

    return out


def _is_base64(text: str) -> bool:
    try:
        base64.b64decode(''.join(text.split()), validate=True)
    except (binascii.Error, ValueError):
        return False
    return True


def validate_resource(resource: Resource, path: str, profile: VersionProfile) -> List[Diagnostic]:
    out = []
    _require(resource.resource_desc, f'{path}.resourceDesc', 'resourceDesc', out)
    if profile.is_required('mimeType'):
        _require(resource.mime_type, f'{path}.mimeType', 'mimeType', out)

    if resource.size is not None and resource.size < 0:
        out.append(error(
            DiagnosticKind.INVALID_FORMAT, f'{path}.size', 'resource.size',
            f"size must be a non-negative byte count, got {resource.size}"
        ))

    if resource.digest is not None and not SHA1_PATTERN.match(resource.digest):
        out.append(error(
            DiagnosticKind.INVALID_FORMAT, f'{path}.digest', 'resource.digest',
            "digest must be a 40 character hex SHA-1"
        ))

    _check_unavailable(profile, 'derefUri', resource.deref_uri is not None, f'{path}.derefUri', out)
    if resource.deref_uri is not None and not _is_base64(resource.deref_uri):
        out.append(error(
            DiagnosticKind.INVALID_FORMAT, f'{path}.derefUri', 'resource.deref-uri-encoding',
            "derefUri must hold base64 encoded content"
        ))

    # a relative uri only names the inline derefUri content
    if resource.uri and not urlparse(resource.uri).scheme and resource.deref_uri is None:
        out.append(error(
            DiagnosticKind.INVALID_STRUCTURE, f'{path}.uri', 'resource.relative-uri',
            f"relative uri '{resource.uri}' requires a derefUri"
        ))

    return out


def validate_info(info: Info, path: str, profile: VersionProfile) -> List[Diagnostic]:
    out = []

    if profile.is_required('category'):
        _require(info.categories, f'{path}.category', 'category', out)
    _require(info.event, f'{path}.event', 'event', out)
    _check_unavailable(profile, 'responseType', bool(info.response_types), f'{path}.responseType', out)
    _require(info.urgency, f'{path}.urgency', 'urgency', out)
    _require(info.severity, f'{path}.severity', 'severity', out)
    _require(info.certainty, f'{path}.certainty', 'certainty', out)

    _validate_value_pairs(info.event_codes, f'{path}.eventCode', out)
    _check_datetime(info.effective, f'{path}.effective', out)
    _check_datetime(info.onset, f'{path}.onset', out)
    _check_datetime(info.expires, f'{path}.expires', out)
    _validate_value_pairs(info.parameters, f'{path}.parameter', out)

    for i, resource in enumerate(info.resources):
        out.extend(validate_resource(resource, f'{path}.resource[{i}]', profile))
    for i, area in enumerate(info.areas):
        out.extend(validate_area(area, f'{path}.area[{i}]'))

    return out


def _check_info_sequences(infos: Sequence[Info]) -> List[Diagnostic]:
    """
    Later info blocks in the same language may expand targeting but not
    override earlier values. Only flagged as a warning.
    """
    out = []
    seen = {}
    for i, info in enumerate(infos):
        earlier = seen.setdefault(info.language, [])
        for attr, wire_name in _OVERRIDE_FIELDS:
            value = getattr(info, attr)
            if value is None:
                continue
            for j, prev in earlier:
                prev_value = getattr(prev, attr)
                if prev_value is not None and prev_value != value:
                    out.append(warning(
                        DiagnosticKind.INVALID_STRUCTURE, f'alert.info[{i}].{wire_name}', 'info.override',
                        f"overrides {wire_name} of alert.info[{j}] in the same language ({info.language})"
                    ))
                    break
        earlier.append((i, info))
    return out


def _check_references(alert: Alert, out: List[Diagnostic]) -> None:
    for i, token in enumerate(alert.references or ()):
        path = f'alert.references[{i}]'
        try:
            ref = Reference.from_token(token)
        except ValueError as e:
            out.append(error(DiagnosticKind.INVALID_FORMAT, path, 'references.format', str(e)))
            continue
        _check_token(ref.sender, f'{path}.sender', out)
        _check_token(ref.identifier, f'{path}.identifier', out)
        _check_datetime(ref.sent, f'{path}.sent', out)


def validate_alert(alert: Alert, version: Version) -> List[Diagnostic]:
    """Run every structural rule against the alert for the given CAP version."""
    profile = get_profile(version)
    out = []

    if _require(alert.identifier, 'alert.identifier', 'identifier', out):
        _check_token(alert.identifier, 'alert.identifier', out)
    if _require(alert.sender, 'alert.sender', 'sender', out):
        _check_token(alert.sender, 'alert.sender', out)

    if alert.password is not None:
        if profile.password_permitted:
            message = "password is insecure and was deprecated after CAP 1.0"
        else:
            message = f"password is not part of CAP {version.value} and is insecure"
        out.append(warning(DiagnosticKind.DEPRECATED, 'alert.password', 'password.deprecated', message))

    if _require(alert.sent, 'alert.sent', 'sent', out):
        _check_datetime(alert.sent, 'alert.sent', out)
    _require(alert.status, 'alert.status', 'status', out)
    _require(alert.msg_type, 'alert.msgType', 'msgType', out)

    if profile.is_required('scope'):
        _require(alert.scope, 'alert.scope', 'scope', out)

    if alert.scope == Scope.RESTRICTED and not alert.restriction:
        out.append(warning(
            DiagnosticKind.REQUIRED_FIELD_MISSING, 'alert.restriction', 'restriction.recommended',
            "restricted alerts should describe the restriction"
        ))
    if alert.scope == Scope.PRIVATE and not alert.addresses:
        out.append(_missing('alert.addresses', 'addresses for a private alert', 'addresses.required'))

    for i, code in enumerate(alert.codes):
        _check_token(code, f'alert.code[{i}]', out)

    if alert.msg_type in _REFERENCING_TYPES and not alert.references:
        out.append(warning(
            DiagnosticKind.REQUIRED_FIELD_MISSING, 'alert.references', 'references.recommended',
            f"{alert.msg_type.value} messages should reference the earlier message"
        ))
    _check_references(alert, out)

    for i, info in enumerate(alert.infos):
        out.extend(validate_info(info, f'alert.info[{i}]', profile))
    out.extend(_check_info_sequences(alert.infos))

    return out
