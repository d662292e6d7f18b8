"""
Flask routes for capkit
"""

import logging

from flask import Blueprint, current_app, jsonify, request

from ..cap import CAPError, Version, convert, decode

logger = logging.getLogger(__name__)

api_bp = Blueprint('api', __name__)


def _request_xml():
    """
    Pull CAP XML out of the request.

    Accepts:
        - JSON with 'xml' field containing CAP XML string
        - Plain text CAP XML (Content-Type: application/xml or text/xml)
    """
    if request.content_type and ('xml' in request.content_type or 'text/plain' in request.content_type):
        return request.get_data(as_text=True), {}
    data = request.get_json(silent=True) or {}
    return data.get('xml', ''), data


def _fail(message, status=400):
    return jsonify({
        'success': False,
        'error': message
    }), status


@api_bp.route('/cap/status', methods=['GET'])
def cap_status():
    """List supported CAP versions."""
    return jsonify({
        'available': True,
        'default_version': current_app.config['CAP_DEFAULT_VERSION'],
        'versions': {v.value: v.xmlns for v in Version}
    })


@api_bp.route('/cap/decode', methods=['POST'])
def decode_cap_xml():
    """
    Decode CAP XML and return structured data.

    Returns:
        Alert data (null if any ERROR diagnostic) and the diagnostic list
    """
    xml_content, _ = _request_xml()
    if not xml_content:
        return _fail('No CAP XML provided')

    try:
        result = decode(xml_content)
    except CAPError as e:
        logger.info("Rejected CAP document: %s", e)
        return _fail(str(e))

    return jsonify({
        'success': result.ok,
        'version': result.version.value,
        'alert': result.alert.to_dict() if result.alert else None,
        'diagnostics': [d.to_dict() for d in result.diagnostics]
    })


@api_bp.route('/cap/validate', methods=['POST'])
def validate_cap():
    """
    Validate CAP XML.

    Returns:
        valid: bool, version and diagnostics
    """
    xml_content, _ = _request_xml()
    if not xml_content:
        return _fail('No CAP XML provided')

    try:
        result = decode(xml_content)
    except CAPError as e:
        return _fail(str(e))

    return jsonify({
        'success': True,
        'valid': result.ok,
        'version': result.version.value,
        'diagnostics': [d.to_dict() for d in result.diagnostics]
    })


@api_bp.route('/cap/convert', methods=['POST'])
def convert_cap():
    """
    Re-encode CAP XML for another CAP version.

    Request JSON:
        xml: str - CAP XML content
        version: str - target version ('1.0', '1.1', '1.2'), optional

    Returns:
        Converted CAP XML string and diagnostics
    """
    xml_content, data = _request_xml()
    if not xml_content:
        return _fail('No CAP XML provided')

    label = data.get('version') or request.args.get('version') or current_app.config['CAP_DEFAULT_VERSION']
    try:
        version = Version.from_label(str(label))
    except ValueError as e:
        return _fail(str(e))

    try:
        result = convert(xml_content, version)
    except CAPError as e:
        return _fail(str(e))

    return jsonify({
        'success': result.ok,
        'version': version.value,
        'cap_xml': result.xml,
        'diagnostics': [d.to_dict() for d in result.diagnostics]
    }), 200 if result.ok else 422
