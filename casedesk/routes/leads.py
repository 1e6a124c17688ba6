"""
Lead routes — list, create, patch, delete for the web client.
"""
import logging

from flask import Blueprint, jsonify

from casedesk.extensions import get_mutator
from casedesk.routes.common import json_body, patch_response
from casedesk.services.leads import LeadHandle

logger = logging.getLogger('routes.leads')

bp = Blueprint('leads', __name__)


@bp.route('/api/leads')
def list_leads():
    """All leads, newest first."""
    leads = get_mutator().list_leads()
    logger.debug("Listing %d leads", len(leads))
    return jsonify(leads)


@bp.route('/api/leads', methods=['POST'])
def create_lead():
    lead = get_mutator().create(json_body())
    return jsonify({'id': lead['id']})


@bp.route('/api/leads/<lead_id>', methods=['PUT'])
def update_lead(lead_id):
    """Partial update. Immutable and unknown fields are ignored."""
    lead = get_mutator().patch(LeadHandle(id=lead_id), json_body())
    return jsonify(patch_response(lead))


@bp.route('/api/leads/<lead_id>', methods=['DELETE'])
def delete_lead(lead_id):
    get_mutator().remove(LeadHandle(id=lead_id))
    return jsonify({'success': True})
