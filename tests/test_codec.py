"""
Tests for CAP XML decode/encode
"""

import dataclasses
import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from capkit.cap import (
    Alert, Category, Certainty, DiagnosticKind, DiagnosticSeverity, Group,
    Info, MalformedInput, MsgType, Point, Reference, Scope, Severity,
    Status, UnknownVersion, Urgency, Version, convert, decode, encode,
    normalize, split_reference, validate
)

FIXTURES = os.path.join(os.path.dirname(__file__), 'fixtures')

NS_10 = 'http://www.incident.com/cap/1.0'
NS_11 = 'urn:oasis:names:tc:emergency:cap:1.1'
NS_12 = 'urn:oasis:names:tc:emergency:cap:1.2'


def load(name):
    with open(os.path.join(FIXTURES, name), 'rb') as f:
        return f.read()


def minimal_xml(ns, scope='<scope>Public</scope>', info=None, header=''):
    """Build a small alert document around the given pieces."""
    if info is None:
        info = ('<info><category>Met</category><event>Flood</event>'
                '<urgency>Expected</urgency><severity>Moderate</severity>'
                '<certainty>Likely</certainty></info>')
    return (
        f'<alert xmlns="{ns}">'
        '<identifier>id-1</identifier>'
        '<sender>sender@example.org</sender>'
        '<sent>2020-01-01T00:00:00-05:00</sent>'
        '<status>Actual</status>'
        '<msgType>Alert</msgType>'
        f'{scope}{header}{info}'
        '</alert>'
    )


def rules(diags):
    return [d.rule_id for d in diags]


class TestDecode:
    """Tests for decoding CAP documents."""

    def test_decode_v12_fixture(self):
        """Test decoding a complete CAP 1.2 alert."""
        result = decode(load('severe_thunderstorm_v12.xml'))
        assert result.ok
        assert result.version == Version.V1_2
        assert result.diagnostics == ()

        alert = result.alert
        assert alert.xmlns == NS_12
        assert alert.identifier == 'KSTO1055887203'
        assert alert.status == Status.ACTUAL
        assert alert.msg_type == MsgType.UPDATE
        assert alert.scope == Scope.PUBLIC
        assert alert.codes == ('IPAWSv1.0',)
        assert alert.incidents == Group(('inc-1', 'wild fire'))

        info = alert.primary_info
        assert info.categories == (Category.MET,)
        assert info.urgency == Urgency.IMMEDIATE
        assert info.severity == Severity.SEVERE
        assert info.event_codes[0].value_name == 'SAME'
        assert info.event_codes[0].value == 'SVR'

        resource = info.resources[0]
        assert resource.mime_type == 'image/png'
        assert resource.size == 1024

        area = info.areas[0]
        assert len(area.polygons[0].points) == 5
        assert area.polygons[0].points[0] == Point(38.47, -120.14)
        assert area.circles[0].center == Point(38.5, -120.0)
        assert area.circles[0].radius == 10.5
        assert area.altitude == 100.0
        assert area.ceiling == 5000.0

    def test_references_split_into_records(self):
        """Test the references group yields two 3-part records."""
        alert = decode(load('severe_thunderstorm_v12.xml')).alert
        assert len(alert.references) == 2
        records = [split_reference(token) for token in alert.references]
        assert records == [
            Reference('sender@example.org', 'id-42', '2020-01-01T00:00:00-05:00'),
            Reference('sender@example.org', 'id-43', '2020-01-01T01:00:00-05:00'),
        ]
        assert records[1].to_token() == alert.references.values[1]

    def test_split_reference_rejects_bad_token(self):
        """Test that a 2-part token is not a reference."""
        with pytest.raises(ValueError):
            split_reference('sender@example.org,id-42')

    def test_decode_v10_legacy_fields(self):
        """Test password and Very Likely survive decoding as warnings."""
        result = decode(load('homeland_security_v10.xml'))
        assert result.ok
        assert result.version == Version.V1_0
        assert result.alert.password == 'letmein'
        assert result.alert.scope is None
        assert result.alert.infos[0].certainty == Certainty.VERY_LIKELY
        assert all(d.severity == DiagnosticSeverity.WARNING for d in result.diagnostics)
        assert sorted(rules(result.diagnostics)) == ['enum.deprecated', 'password.deprecated']

    def test_defaults_applied(self):
        """Test language and effective defaults."""
        alert = decode(load('earthquake_v11.xml')).alert
        info = alert.infos[0]
        assert info.language == 'en-US'
        assert info.effective == alert.sent == '2003-06-11T20:56:00-07:00'
        assert alert.sent_datetime.utcoffset().total_seconds() == -7 * 3600

    def test_very_likely_any_version(self):
        """Test Very Likely decodes with a warning and re-encodes literally."""
        info = ('<info><category>Met</category><event>Flood</event>'
                '<urgency>Expected</urgency><severity>Moderate</severity>'
                '<certainty>Very Likely</certainty></info>')
        alert, diags = decode(minimal_xml(NS_12, info=info))
        assert alert is not None
        assert [(d.severity, d.kind) for d in diags] == [
            (DiagnosticSeverity.WARNING, DiagnosticKind.DEPRECATED)
        ]
        xml, _ = encode(alert)
        assert '<certainty>Very Likely</certainty>' in xml

    def test_missing_scope_by_version(self):
        """Test that scope is required in 1.1 but not in 1.0."""
        alert, diags = decode(minimal_xml(NS_11, scope=''))
        assert alert is None
        assert [(d.kind, d.path) for d in diags] == [
            (DiagnosticKind.REQUIRED_FIELD_MISSING, 'alert.scope')
        ]

        alert, diags = decode(minimal_xml(NS_10, scope=''))
        assert alert is not None
        assert diags == ()

    def test_sent_with_z(self):
        """Test that a Z-suffixed sent is an error."""
        xml = minimal_xml(NS_12).replace('2020-01-01T00:00:00-05:00', '2002-05-24T16:49:00Z')
        alert, diags = decode(xml)
        assert alert is None
        assert ('alert.sent', DiagnosticKind.INVALID_FORMAT) in [(d.path, d.kind) for d in diags]

    def test_three_point_polygon(self):
        """Test that a 3-point polygon prevents an alert from being returned."""
        info = ('<info><category>Met</category><event>Flood</event>'
                '<urgency>Expected</urgency><severity>Moderate</severity>'
                '<certainty>Likely</certainty>'
                '<area><areaDesc>x</areaDesc><polygon>1,1 2,2 1,1</polygon></area></info>')
        alert, diags = decode(minimal_xml(NS_12, info=info))
        assert alert is None
        assert [(d.kind, d.rule_id, d.path) for d in diags] == [
            (DiagnosticKind.INVALID_STRUCTURE, 'polygon.min-points', 'alert.info[0].area[0].polygon[0]')
        ]

    def test_empty_polygon_and_circle(self):
        """Test that empty shape elements are reported, not dropped."""
        info = ('<info><category>Met</category><event>Flood</event>'
                '<urgency>Expected</urgency><severity>Moderate</severity>'
                '<certainty>Likely</certainty>'
                '<area><areaDesc>x</areaDesc><polygon></polygon><circle/></area></info>')
        alert, diags = decode(minimal_xml(NS_12, info=info))
        assert alert is None
        assert sorted((d.rule_id, d.path) for d in diags) == [
            ('circle.format', 'alert.info[0].area[0].circle[0]'),
            ('polygon.min-points', 'alert.info[0].area[0].polygon[0]'),
        ]
        assert all(d.severity == DiagnosticSeverity.ERROR for d in diags)

    def test_free_text_kept_verbatim(self):
        """Test that free text keeps its whitespace while tokens are trimmed."""
        info = ('<info><category>Met</category><event>Flood</event>'
                '<urgency>Expected</urgency><severity>Moderate</severity>'
                '<certainty>Likely</certainty><headline> lead</headline>'
                '<description>Line one\n  indented\n</description></info>')
        xml = minimal_xml(NS_12, info=info).replace('<identifier>id-1', '<identifier>\n  id-1\n')
        alert, diags = decode(xml)
        assert diags == ()
        assert alert.identifier == 'id-1'
        assert alert.infos[0].headline == ' lead'
        assert alert.infos[0].description == 'Line one\n  indented\n'

    def test_bad_sent_reported_once(self):
        """Test that a bad sent is not copied into each info's effective."""
        info = ('<info><category>Met</category><event>Flood</event>'
                '<urgency>Expected</urgency><severity>Moderate</severity>'
                '<certainty>Likely</certainty></info>')
        xml = minimal_xml(NS_12, info=info * 2).replace('2020-01-01T00:00:00-05:00', 'yesterday')
        alert, diags = decode(xml)
        assert alert is None
        assert [(d.rule_id, d.path) for d in diags] == [('datetime.format', 'alert.sent')]

    def test_ceiling_without_altitude(self):
        """Test the altitude/ceiling pairing rule through decode."""
        info = ('<info><category>Met</category><event>Flood</event>'
                '<urgency>Expected</urgency><severity>Moderate</severity>'
                '<certainty>Likely</certainty>'
                '<area><areaDesc>x</areaDesc><ceiling>500</ceiling></area></info>')
        alert, diags = decode(minimal_xml(NS_12, info=info))
        assert alert is None
        assert [(d.kind, d.path) for d in diags] == [
            (DiagnosticKind.INVALID_STRUCTURE, 'alert.info[0].area[0].ceiling')
        ]

    def test_invalid_enum_reported_once(self):
        """Test a bad urgency token is not also reported as missing."""
        info = ('<info><category>Met</category><event>Flood</event>'
                '<urgency>Soon</urgency><severity>Moderate</severity>'
                '<certainty>Likely</certainty></info>')
        alert, diags = decode(minimal_xml(NS_12, info=info))
        assert alert is None
        assert rules(diags) == ['enum.invalid']

    def test_cbrne_not_in_1_0(self):
        """Test that a 1.1 category in a 1.0 document is rejected."""
        info = ('<info><category>CBRNE</category><event>Spill</event>'
                '<urgency>Expected</urgency><severity>Moderate</severity>'
                '<certainty>Likely</certainty></info>')
        alert, diags = decode(minimal_xml(NS_10, info=info))
        assert alert is None
        assert [(d.rule_id, d.path) for d in diags] == [('enum.unavailable', 'alert.info[0].category[0]')]

    def test_all_errors_reported(self):
        """Test that decoding keeps going after the first defect."""
        info = ('<info><event>Flood</event>'
                '<urgency>Expected</urgency><severity>Moderate</severity>'
                '<certainty>Likely</certainty>'
                '<area><areaDesc>a</areaDesc><altitude>high</altitude></area>'
                '<area><areaDesc>b</areaDesc><polygon>1,1 2,2 3,3 4,4</polygon></area></info>')
        alert, diags = decode(minimal_xml(NS_12, info=info))
        assert alert is None
        assert set(rules(diags)) == {'number.format', 'field.required', 'polygon.closure'}

    def test_unknown_element_warns(self):
        """Test that unknown CAP elements are reported, foreign ones ignored."""
        header = ('<note>hi</note><bogus>1</bogus>'
                  '<ds:Signature xmlns:ds="http://www.w3.org/2000/09/xmldsig#"/>')
        # note must precede info; header is placed before it
        alert, diags = decode(minimal_xml(NS_12, header=header))
        assert alert is not None
        assert alert.note == 'hi'
        assert [(d.rule_id, d.path) for d in diags] == [('element.unknown', 'alert.bogus')]

    def test_repeated_singular_element(self):
        """Test that a duplicated identifier is an error."""
        header = '<identifier>id-2</identifier>'
        alert, diags = decode(minimal_xml(NS_12, header=header))
        assert alert is None
        assert rules(diags) == ['element.repeated']

    def test_bad_group_quote(self):
        """Test an unterminated quote in incidents."""
        alert, diags = decode(minimal_xml(NS_12, header='<incidents>a "b</incidents>'))
        assert alert is None
        assert rules(diags) == ['group.format']


class TestDecodeFatal:
    """Tests for document-level failures."""

    def test_malformed_xml(self):
        """Test unparsable input raises."""
        with pytest.raises(MalformedInput):
            decode('<alert xmlns="urn:oasis:names:tc:emergency:cap:1.2"><identifier>')

    def test_wrong_root(self):
        """Test a non-alert root raises."""
        with pytest.raises(MalformedInput):
            decode(f'<feed xmlns="{NS_12}"/>')

    def test_unknown_namespace(self):
        """Test that an unrecognized namespace is fatal."""
        with pytest.raises(UnknownVersion):
            decode('<alert xmlns="urn:oasis:names:tc:emergency:cap:1.3"/>')
        with pytest.raises(UnknownVersion):
            decode('<alert/>')

    def test_errors_are_value_errors(self):
        """Test the fatal errors can be caught as ValueError."""
        with pytest.raises(ValueError):
            decode('not xml')


class TestEncode:
    """Tests for encoding alerts."""

    @pytest.mark.parametrize('name', [
        'severe_thunderstorm_v12.xml',
        'homeland_security_v10.xml',
        'earthquake_v11.xml',
    ])
    def test_roundtrip(self, name):
        """Test decode(encode(a)) == a for decoded fixtures."""
        alert = decode(load(name)).alert
        xml, diags = encode(alert)
        assert xml is not None
        again, _ = decode(xml)
        assert again == alert

    def test_roundtrip_clean_alert_has_no_diagnostics(self):
        """Test a valid alert round-trips with an empty diagnostic list."""
        alert = decode(load('severe_thunderstorm_v12.xml')).alert
        xml, diags = encode(alert)
        assert diags == ()
        assert decode(xml).diagnostics == ()

    def test_optional_fields_omitted(self):
        """Test absent optional fields produce no empty elements."""
        alert = decode(minimal_xml(NS_12)).alert
        xml, _ = encode(alert)
        for tag in ('source', 'restriction', 'addresses', 'note', 'references', 'incidents',
                    'audience', 'headline', 'resource', 'area', 'password'):
            assert f'<{tag}' not in xml
        assert xml.index('<identifier>') < xml.index('<sent>') < xml.index('<info>')
        assert f'xmlns="{NS_12}"' in xml

    def test_encode_incompatible_enum(self):
        """Test CBRNE cannot be encoded as CAP 1.0."""
        alert = decode(load('earthquake_v11.xml')).alert
        info = dataclasses.replace(alert.infos[0], categories=(Category.CBRNE,))
        alert = dataclasses.replace(alert, infos=(info,))
        xml, diags = encode(alert, Version.V1_0)
        assert xml is None
        assert [(d.rule_id, d.path) for d in diags] == [('enum.unavailable', 'alert.info[0].category[0]')]

    def test_encode_prevalidates(self):
        """Test that an invalid alert produces no text but all diagnostics."""
        alert = Alert(xmlns=NS_12, identifier='a b', sent='2020-01-01T00:00:00Z')
        xml, diags = encode(alert)
        assert xml is None
        assert 'token.restricted-chars' in rules(diags)
        assert 'datetime.format' in rules(diags)
        assert rules(validate(alert)) == rules(diags)

    def test_free_text_roundtrip(self):
        """Test that multi-line and indented text survives encode and decode."""
        alert = decode(load('severe_thunderstorm_v12.xml')).alert
        info = dataclasses.replace(alert.infos[0], headline=' lead',
                                   description='Line one\n  indented\n')
        alert = dataclasses.replace(alert, infos=(info,), note='\tsee below ')
        xml, diags = encode(alert)
        assert diags == ()
        assert decode(xml).alert == alert

    def test_empty_optional_field(self):
        """Test that an empty string is reported instead of written as an empty element."""
        alert = dataclasses.replace(decode(minimal_xml(NS_12)).alert, note='')
        xml, diags = encode(alert)
        assert xml is None
        assert [(d.rule_id, d.path, d.severity) for d in diags] == [
            ('field.empty', 'alert.note', DiagnosticSeverity.ERROR)
        ]

    def test_empty_required_field_reported_once(self):
        """Test an empty identifier is only reported as missing."""
        alert = dataclasses.replace(decode(minimal_xml(NS_12)).alert, identifier='')
        _, diags = encode(alert)
        assert rules(diags) == ['field.required']

    def test_numbers_written_without_exponent(self):
        """Test small and fractional numbers are written as plain decimals."""
        alert = decode(load('severe_thunderstorm_v12.xml')).alert
        info = alert.infos[0]
        area = dataclasses.replace(info.areas[0], altitude=1e-05, ceiling=0.25)
        alert = dataclasses.replace(alert, infos=(dataclasses.replace(info, areas=(area,)),))
        xml, diags = encode(alert)
        assert diags == ()
        assert '<altitude>0.00001</altitude>' in xml
        assert '<ceiling>0.25</ceiling>' in xml
        assert decode(xml).alert == alert

    def test_unknown_xmlns(self):
        """Test encoding an alert pinned to an unknown namespace."""
        with pytest.raises(UnknownVersion):
            encode(Alert(xmlns='urn:example'))

    def test_group_quoting(self):
        """Test group values are written through the group format."""
        alert = decode(load('severe_thunderstorm_v12.xml')).alert
        xml, _ = encode(alert)
        assert '<incidents>inc-1 "wild fire"</incidents>' in xml

    def test_application_built_alert(self):
        """Test an alert built in code round-trips after normalize()."""
        alert = normalize(Alert(
            xmlns=NS_12,
            identifier='app-1',
            sender='app@example.org',
            sent='2021-03-04T05:06:07+00:00',
            status=Status.EXERCISE,
            msg_type=MsgType.ALERT,
            scope=Scope.PUBLIC,
            infos=(Info(
                categories=(Category.SAFETY, Category.CBRNE),
                event='Drill',
                urgency=Urgency.FUTURE,
                severity=Severity.MINOR,
                certainty=Certainty.POSSIBLE,
            ),),
        ))
        assert alert.infos[0].effective == '2021-03-04T05:06:07+00:00'
        xml, diags = encode(alert)
        assert diags == ()
        assert decode(xml).alert == alert


class TestConvert:
    """Tests for re-encoding under another version."""

    def test_upgrade_1_0_to_1_2(self):
        """Test that a 1.0 alert lacking scope cannot become 1.2."""
        xml, diags = convert(load('homeland_security_v10.xml'), Version.V1_2)
        assert xml is None
        assert ('field.required', 'alert.scope') in [(d.rule_id, d.path) for d in diags]

    def test_downgrade_1_1_to_1_0(self):
        """Test converting a 1.1 alert to 1.0."""
        xml, diags = convert(load('earthquake_v11.xml'), Version.V1_0)
        assert xml is not None
        assert diags == ()
        alert = decode(xml).alert
        assert alert.xmlns == NS_10
        assert alert.identifier == 'TRI13970876.1'

    def test_no_duplicate_warnings(self):
        """Test decode warnings are not repeated by the encode pass."""
        _, diags = convert(load('homeland_security_v10.xml'), Version.V1_0)
        assert sorted(rules(diags)) == ['enum.deprecated', 'password.deprecated']
