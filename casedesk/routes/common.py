"""
Helpers shared by the JSON blueprints.
"""
from flask import request

from casedesk.errors import ValidationError


def json_body():
    """Request body as a dict. A missing or non-object body is a 400."""
    body = request.get_json(silent=True)
    if body is None:
        return {}
    if not isinstance(body, dict):
        raise ValidationError('Request body must be a JSON object')
    return body


def patch_response(lead):
    """Shape returned by the lead update endpoints."""
    return {
        'success': True,
        'id': lead['id'],
        'case_code': lead['case_code'],
        'status': lead['status'],
        'cost_records': lead['cost_records'],
        'profit_records': lead['profit_records'],
        'updated_at': lead['updated_at'],
    }
