"""
CAP XML <-> Alert codec.

Parses and writes Common Alerting Protocol XML for versions 1.0, 1.1 and 1.2.
The version is taken from the root namespace; the per-version rules come
from profile.py. Field problems are collected as diagnostics and decoding
keeps walking the tree; only unparsable XML or an unknown namespace raise.

Reference: http://docs.oasis-open.org/emergency/cap/v1.2/CAP-v1.2.html
"""

import dataclasses
import logging
import math
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .diagnostics import (
    Diagnostic, DiagnosticKind, MalformedInput, UnknownVersion,
    error, errors_only, has_errors, warning
)
from .enums import (
    Category, Certainty, EnumMapper, MsgType, ResponseType, Scope, Severity,
    Status, Urgency
)
from .model import (
    Alert, Area, Circle, Group, Info, Point, Polygon, Reference, Resource,
    ValuePair, parse_datetime
)
from .profile import Version
from .validator import validate_alert

logger = logging.getLogger(__name__)


# value kinds for the field tables; TEXT is kept verbatim, everything else is stripped
TEXT = 'text'
TOKEN = 'token'
INT = 'int'
FLOAT = 'float'
GROUP = 'group'
POLYGON = 'polygon'
CIRCLE = 'circle'


@dataclass(frozen=True)
class _Field:
    """One child element and the model attribute it fills."""
    wire: str
    attr: str
    kind: Any  # a kind constant, an Enum class, or a nested element table
    repeated: bool = False


@dataclass(frozen=True)
class _Element:
    cls: type
    fields: Tuple[_Field, ...]


# tables follow schema element order, which encode relies on
_VALUE_PAIR = _Element(ValuePair, (
    _Field('valueName', 'value_name', TEXT),
    _Field('value', 'value', TEXT),
))

_RESOURCE = _Element(Resource, (
    _Field('resourceDesc', 'resource_desc', TEXT),
    _Field('mimeType', 'mime_type', TOKEN),
    _Field('size', 'size', INT),
    _Field('uri', 'uri', TOKEN),
    _Field('derefUri', 'deref_uri', TOKEN),
    _Field('digest', 'digest', TOKEN),
))

_AREA = _Element(Area, (
    _Field('areaDesc', 'area_desc', TEXT),
    _Field('polygon', 'polygons', POLYGON, repeated=True),
    _Field('circle', 'circles', CIRCLE, repeated=True),
    _Field('geocode', 'geocodes', _VALUE_PAIR, repeated=True),
    _Field('altitude', 'altitude', FLOAT),
    _Field('ceiling', 'ceiling', FLOAT),
))

_INFO = _Element(Info, (
    _Field('language', 'language', TOKEN),
    _Field('category', 'categories', Category, repeated=True),
    _Field('event', 'event', TEXT),
    _Field('responseType', 'response_types', ResponseType, repeated=True),
    _Field('urgency', 'urgency', Urgency),
    _Field('severity', 'severity', Severity),
    _Field('certainty', 'certainty', Certainty),
    _Field('audience', 'audience', TEXT),
    _Field('eventCode', 'event_codes', _VALUE_PAIR, repeated=True),
    _Field('effective', 'effective', TOKEN),
    _Field('onset', 'onset', TOKEN),
    _Field('expires', 'expires', TOKEN),
    _Field('senderName', 'sender_name', TEXT),
    _Field('headline', 'headline', TEXT),
    _Field('description', 'description', TEXT),
    _Field('instruction', 'instruction', TEXT),
    _Field('web', 'web', TOKEN),
    _Field('contact', 'contact', TEXT),
    _Field('parameter', 'parameters', _VALUE_PAIR, repeated=True),
    _Field('resource', 'resources', _RESOURCE, repeated=True),
    _Field('area', 'areas', _AREA, repeated=True),
))

_ALERT = _Element(Alert, (
    _Field('identifier', 'identifier', TOKEN),
    _Field('sender', 'sender', TOKEN),
    _Field('password', 'password', TOKEN),
    _Field('sent', 'sent', TOKEN),
    _Field('status', 'status', Status),
    _Field('msgType', 'msg_type', MsgType),
    _Field('source', 'source', TEXT),
    _Field('scope', 'scope', Scope),
    _Field('restriction', 'restriction', TEXT),
    _Field('addresses', 'addresses', GROUP),
    _Field('code', 'codes', TOKEN, repeated=True),
    _Field('note', 'note', TEXT),
    _Field('references', 'references', GROUP),
    _Field('incidents', 'incidents', GROUP),
    _Field('info', 'infos', _INFO, repeated=True),
))


@dataclass(frozen=True)
class DecodeResult:
    """Unpacks as (alert, diagnostics); alert is None when any ERROR was found."""
    alert: Optional[Alert]
    diagnostics: Tuple[Diagnostic, ...]
    version: Version

    def __iter__(self):
        yield self.alert
        yield self.diagnostics

    @property
    def ok(self) -> bool:
        return self.alert is not None


@dataclass(frozen=True)
class EncodeResult:
    """Unpacks as (xml, diagnostics); xml is None when any ERROR was found."""
    xml: Optional[str]
    diagnostics: Tuple[Diagnostic, ...]
    version: Version

    def __iter__(self):
        yield self.xml
        yield self.diagnostics

    @property
    def ok(self) -> bool:
        return self.xml is not None


# ---------------------------------------------------------------------------
# helpers


def split_reference(token: str) -> Reference:
    """
    Split one <references> token into its sender, identifier and sent parts.

    Raises:
        ValueError: if the token is not a 3-part comma-joined record
    """
    return Reference.from_token(token)


def normalize(alert: Alert) -> Alert:
    """
    Apply the CAP derivation defaults: a missing info effective time is the
    alert's sent time. (language already defaults to en-US on the model.)
    An unparsable sent is left for the validator to report and not copied.
    """
    if parse_datetime(alert.sent) is None:
        return alert
    infos = tuple(
        dataclasses.replace(info, effective=alert.sent) if info.effective is None else info
        for info in alert.infos
    )
    return dataclasses.replace(alert, infos=infos)


def _format_number(value: float) -> str:
    """xs:decimal text: no exponent, shortest digits that read back as the same float."""
    if not isinstance(value, float):
        return str(value)
    if value.is_integer():
        return str(int(value))
    if not math.isfinite(value):
        return repr(value)
    return format(Decimal(repr(value)), 'f')


def _get_text(elem: Optional[ET.Element], strip: bool = True) -> Optional[str]:
    """Get element text, or None if element doesn't exist or is empty."""
    if elem is None or not elem.text:
        return None
    if not strip:
        return elem.text
    return elem.text.strip() or None


def _local_name(tag: str) -> Tuple[Optional[str], str]:
    if tag.startswith('{'):
        ns, _, local = tag[1:].partition('}')
        return ns, local
    return None, tag


# ---------------------------------------------------------------------------
# decoding


class _Decoder:
    """Tree walk state for a single decode call."""

    def __init__(self, ns: str, version: Version):
        self.ns = ns
        self.version = version
        self.diagnostics: List[Diagnostic] = []

    def report(self, diag: Diagnostic) -> None:
        self.diagnostics.append(diag)

    def _parse_float(self, text: str, path: str) -> Optional[float]:
        try:
            return float(text)
        except ValueError:
            self.report(error(DiagnosticKind.INVALID_FORMAT, path, 'number.format',
                              f"'{text}' is not a number"))
            return None

    def _parse_point(self, pair: str, path: str) -> Optional[Point]:
        lat, sep, lon = pair.partition(',')
        if not sep:
            self.report(error(DiagnosticKind.INVALID_FORMAT, path, 'point.format',
                              f"'{pair}' is not a latitude,longitude pair"))
            return None
        latitude = self._parse_float(lat, path)
        longitude = self._parse_float(lon, path)
        if latitude is None or longitude is None:
            return None
        return Point(latitude, longitude)

    def _decode_polygon(self, text: str, path: str) -> Optional[Polygon]:
        points = []
        for pair in text.split():
            point = self._parse_point(pair, path)
            if point is None:
                return None
            points.append(point)
        return Polygon(tuple(points))

    def _decode_circle(self, text: str, path: str) -> Optional[Circle]:
        parts = text.split()
        if len(parts) != 2:
            self.report(error(DiagnosticKind.INVALID_FORMAT, path, 'circle.format',
                              f"'{text}' is not 'latitude,longitude radius'"))
            return None
        center = self._parse_point(parts[0], path)
        radius = self._parse_float(parts[1], f'{path}.radius')
        if center is None or radius is None:
            return None
        return Circle(center, radius)

    def _decode_group(self, text: str, path: str) -> Group:
        try:
            return Group.parse(text)
        except ValueError as e:
            self.report(error(DiagnosticKind.INVALID_FORMAT, path, 'group.format', str(e)))
            return Group(tuple(text.split()))

    def _decode_value(self, elem: ET.Element, fld: _Field, path: str) -> Any:
        if isinstance(fld.kind, _Element):
            return self.decode_element(elem, fld.kind, path)

        kind = fld.kind
        text = _get_text(elem, strip=kind != TEXT)
        if text is None:
            if kind == POLYGON:
                return Polygon(())
            if kind == CIRCLE:
                self.report(error(DiagnosticKind.INVALID_FORMAT, path, 'circle.format',
                                  "empty <circle>, expected 'latitude,longitude radius'"))
            return None

        if isinstance(kind, type) and issubclass(kind, Enum):
            value, diags = EnumMapper.decode(text, kind, self.version, path)
            self.diagnostics.extend(diags)
            return value
        if kind in (TEXT, TOKEN):
            return text
        if kind == INT:
            try:
                return int(text)
            except ValueError:
                self.report(error(DiagnosticKind.INVALID_FORMAT, path, 'number.format',
                                  f"'{text}' is not an integer"))
                return None
        if kind == FLOAT:
            return self._parse_float(text, path)
        if kind == GROUP:
            return self._decode_group(text, path)
        if kind == POLYGON:
            return self._decode_polygon(text, path)
        if kind == CIRCLE:
            return self._decode_circle(text, path)
        raise ValueError(f"Unhandled field kind: {kind}")

    def _children(self, elem: ET.Element) -> Dict[str, List[ET.Element]]:
        """Group CAP-namespace children by local name; other namespaces are skipped."""
        children: Dict[str, List[ET.Element]] = {}
        for child in elem:
            if not isinstance(child.tag, str):
                continue  # comments, processing instructions
            ns, local = _local_name(child.tag)
            if ns != self.ns:
                continue
            children.setdefault(local, []).append(child)
        return children

    def decode_element(self, elem: ET.Element, table: _Element, path: str, **extra) -> Any:
        children = self._children(elem)
        known = {f.wire for f in table.fields}
        for name in children:
            if name not in known:
                self.report(warning(DiagnosticKind.INVALID_STRUCTURE, f'{path}.{name}',
                                    'element.unknown', f"unexpected element <{name}> ignored"))

        kwargs = dict(extra)
        for fld in table.fields:
            elems = children.get(fld.wire, [])
            if fld.repeated:
                values = []
                for i, child in enumerate(elems):
                    value = self._decode_value(child, fld, f'{path}.{fld.wire}[{i}]')
                    if value is not None:
                        values.append(value)
                kwargs[fld.attr] = tuple(values)
                continue

            if not elems:
                continue
            child_path = f'{path}.{fld.wire}'
            if len(elems) > 1:
                self.report(error(DiagnosticKind.INVALID_STRUCTURE, child_path, 'element.repeated',
                                  f"<{fld.wire}> may appear only once, found {len(elems)}"))
            value = self._decode_value(elems[0], fld, child_path)
            if value is not None:
                kwargs[fld.attr] = value

        return table.cls(**kwargs)


def _detect_version(root: ET.Element) -> Tuple[str, Version]:
    ns, local = _local_name(root.tag)
    if local != 'alert':
        raise MalformedInput(f"Root element must be 'alert', got '{local}'")
    version = Version.from_xmlns(ns)
    if version is None:
        raise UnknownVersion(f"Unrecognized CAP namespace: {ns!r}")
    return ns, version


def _already_reported(path: str, reported: Sequence[str]) -> bool:
    return any(p == path or p.startswith(path + '[') or p.startswith(path + '.') for p in reported)


def decode(xml_content) -> DecodeResult:
    """
    Parse CAP XML (str or bytes) into an Alert.

    Returns:
        DecodeResult; its alert is None if any ERROR diagnostic was raised

    Raises:
        MalformedInput: if the XML is unparsable or the root is not <alert>
        UnknownVersion: if the root namespace is not a CAP namespace
    """
    try:
        root = ET.fromstring(xml_content)
    except ET.ParseError as e:
        raise MalformedInput(f"Invalid XML: {e}") from e

    ns, version = _detect_version(root)
    logger.debug("Detected CAP %s from namespace %s", version.value, ns)

    decoder = _Decoder(ns, version)
    alert = normalize(decoder.decode_element(root, _ALERT, 'alert', xmlns=ns))

    # an unparsable value was already reported; don't report it missing too
    field_paths = [d.path for d in errors_only(decoder.diagnostics)]
    structural = [
        d for d in validate_alert(alert, version)
        if not (d.kind == DiagnosticKind.REQUIRED_FIELD_MISSING and _already_reported(d.path, field_paths))
    ]
    diagnostics = tuple(decoder.diagnostics + structural)

    if has_errors(diagnostics):
        logger.debug("Rejected CAP %s document with %d diagnostics", version.value, len(diagnostics))
        return DecodeResult(None, diagnostics, version)

    logger.debug("Decoded alert %s (%d info blocks, %d diagnostics)",
                 alert.identifier, len(alert.infos), len(diagnostics))
    return DecodeResult(alert, diagnostics, version)


# ---------------------------------------------------------------------------
# encoding


def _encode_text(value: Any, fld: _Field, version: Version, path: str,
                 diagnostics: List[Diagnostic]) -> Optional[str]:
    kind = fld.kind
    if isinstance(kind, type) and issubclass(kind, Enum):
        token, diags = EnumMapper.encode(value, version, path)
        diagnostics.extend(diags)
        return token
    if kind in (TEXT, TOKEN):
        return value
    if kind == INT:
        return str(value)
    if kind == FLOAT:
        return _format_number(value)
    if kind == GROUP:
        return str(value) if len(value) else None
    if kind == POLYGON:
        return ' '.join(f'{_format_number(p.latitude)},{_format_number(p.longitude)}'
                        for p in value.points)
    if kind == CIRCLE:
        center = value.center
        return (f'{_format_number(center.latitude)},{_format_number(center.longitude)} '
                f'{_format_number(value.radius)}')
    raise ValueError(f"Unhandled field kind: {kind}")


def _encode_element(parent: ET.Element, obj: Any, table: _Element, version: Version,
                    path: str, diagnostics: List[Diagnostic]) -> None:
    for fld in table.fields:
        value = getattr(obj, fld.attr)
        if value is None:
            continue
        items = list(enumerate(value)) if fld.repeated else [(None, value)]
        for i, item in items:
            item_path = f'{path}.{fld.wire}' if i is None else f'{path}.{fld.wire}[{i}]'
            if isinstance(fld.kind, _Element):
                child = ET.SubElement(parent, fld.wire)
                _encode_element(child, item, fld.kind, version, item_path, diagnostics)
                continue
            if item == '':
                # would read back as absent
                if not _already_reported(item_path, [d.path for d in diagnostics]):
                    diagnostics.append(error(DiagnosticKind.INVALID_FORMAT, item_path, 'field.empty',
                                             f"<{fld.wire}> must be omitted rather than left empty"))
                continue
            text = _encode_text(item, fld, version, item_path, diagnostics)
            if text is not None:
                ET.SubElement(parent, fld.wire).text = text


def _resolve_version(alert: Alert, version: Optional[Version]) -> Version:
    if version is not None:
        return version
    detected = Version.from_xmlns(alert.xmlns)
    if detected is None:
        raise UnknownVersion(f"Unrecognized CAP namespace: {alert.xmlns!r}")
    return detected


def _build(alert: Alert, version: Version) -> Tuple[ET.Element, List[Diagnostic]]:
    diagnostics = validate_alert(alert, version)
    root = ET.Element('alert')
    root.set('xmlns', version.xmlns)
    _encode_element(root, alert, _ALERT, version, 'alert', diagnostics)
    return root, diagnostics


def validate(alert: Alert, version: Optional[Version] = None) -> List[Diagnostic]:
    """Everything encode would report for this alert, without producing XML."""
    _, diagnostics = _build(alert, _resolve_version(alert, version))
    return diagnostics


def encode(alert: Alert, version: Optional[Version] = None) -> EncodeResult:
    """
    Serialize an Alert to CAP XML.

    Args:
        alert: Alert to write
        version: target CAP version (defaults to the one pinned by alert.xmlns)

    Returns:
        EncodeResult; its xml is None if any ERROR diagnostic was raised

    Raises:
        UnknownVersion: if no version is given and alert.xmlns is unrecognized
    """
    version = _resolve_version(alert, version)
    root, diagnostics = _build(alert, version)

    if has_errors(diagnostics):
        logger.debug("Refused to encode alert %s as CAP %s: %d diagnostics",
                     alert.identifier, version.value, len(diagnostics))
        return EncodeResult(None, tuple(diagnostics), version)

    ET.indent(root)
    xml = ET.tostring(root, encoding='unicode', xml_declaration=True)
    return EncodeResult(xml, tuple(diagnostics), version)


def convert(xml_content, version: Version) -> EncodeResult:
    """
    Re-encode a CAP document under another CAP version.

    Diagnostics from decoding come first, followed by any new ones raised
    while encoding for the target version.
    """
    alert, decode_diags = decode(xml_content)
    if alert is None:
        return EncodeResult(None, decode_diags, version)

    result = encode(alert, version)
    extra = tuple(d for d in result.diagnostics if d not in decode_diags)
    logger.debug("Converted alert %s to CAP %s", alert.identifier, version.value)
    return EncodeResult(result.xml, decode_diags + extra, version)
