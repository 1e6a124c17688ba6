"""
Audit log routes — read-only listing, optionally filtered by lead.
"""
from flask import Blueprint, jsonify, request
from sqlalchemy import select

from casedesk.config import AUDIT_LOG_LIMIT
from casedesk.extensions import get_store
from casedesk.models.audit_log import AuditLog
from casedesk.services.normalizer import decode_audit_log

bp = Blueprint('audit', __name__)


@bp.route('/api/audit-logs')
def list_audit_logs():
    """Newest first, capped at AUDIT_LOG_LIMIT. ?leadId= filters by lead."""
    lead_id = request.args.get('leadId')
    query = select(AuditLog).order_by(AuditLog.created_at.desc()).limit(AUDIT_LOG_LIMIT)
    if lead_id:
        query = query.where(AuditLog.lead_id == lead_id)

    with get_store().session_scope() as session:
        logs = [decode_audit_log(row) for row in session.scalars(query).all()]
    return jsonify(logs)
