"""JSON envelope helpers: {success, message, data}."""
from flask import jsonify, request


def success_response(data=None, message=None, status_code=200):
    """Success envelope."""
    body = {'success': True}
    if message:
        body['message'] = message
    body['data'] = data
    return jsonify(body), status_code


def get_json_body():
    """Request JSON as a dict (empty when missing or malformed)."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def get_int_arg(name, default=None):
    """Integer query parameter; non-numeric values fall back to ``default``."""
    value = request.args.get(name)
    if value is None or value == '':
        return default
    try:
        return int(value)
    except ValueError:
        return default
