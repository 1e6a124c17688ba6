"""
System routes — API index, health check, database diagnostics, snapshot migration.
"""
import logging

from flask import Blueprint, jsonify
from sqlalchemy import func, select, table
from sqlalchemy.exc import SQLAlchemyError

from casedesk.config import EXPECTED_TABLES
from casedesk.errors import StoreError, ValidationError
from casedesk.extensions import get_mutator, get_store
from casedesk.routes.common import json_body
from casedesk.services.migration import migrate_snapshot
from casedesk.services.normalizer import now_iso

logger = logging.getLogger('routes.system')

bp = Blueprint('system', __name__)

ENDPOINTS = {
    'health': 'GET /health',
    'diagnose': 'GET /api/diagnose',
    'users': {
        'getAll': 'GET /api/users',
        'getOne': 'GET /api/users/<uid>',
        'upsert': 'POST /api/users',
        'update': 'PUT /api/users/<uid>',
    },
    'leads': {
        'getAll': 'GET /api/leads',
        'create': 'POST /api/leads',
        'update': 'PUT /api/leads/<id>',
        'delete': 'DELETE /api/leads/<id>',
    },
    'auditLogs': {
        'getAll': 'GET /api/audit-logs',
        'getByLead': 'GET /api/audit-logs?leadId=<id>',
    },
    'ai': {
        'import': 'POST /api/ai/import',
        'query': 'GET /api/ai/leads',
        'update': 'PUT /api/ai/update',
        'delete': 'DELETE /api/ai/delete',
        'cost': 'POST /api/ai/cost',
        'profit': 'POST /api/ai/profit',
        'attachment': 'POST /api/ai/attachment',
        'progress': 'POST /api/ai/progress',
    },
    'migrate': 'POST /api/migrate',
}


@bp.route('/')
def index():
    """API index."""
    store = get_store()
    return jsonify({
        'message': 'Casedesk lead management API',
        'endpoints': ENDPOINTS,
        'database': {
            'backend': store.engine.url.get_backend_name(),
            'database': store.engine.url.database,
            'connected': 'see /health',
        },
    })


@bp.route('/health')
def health_check():
    """Connectivity plus presence of the expected tables."""
    store = get_store()
    try:
        store.ping()
        existing = store.table_names()
    except StoreError as e:
        logger.error("Health check failed: %s", e.details)
        return jsonify({
            'status': 'error',
            'database': 'disconnected',
            'error': e.details or e.message,
            'timestamp': now_iso(),
        }), 500

    return jsonify({
        'status': 'ok',
        'database': 'connected',
        'tables': {name: name in existing for name in EXPECTED_TABLES},
        'timestamp': now_iso(),
    })


def _count_rows(store, name):
    with store.engine.connect() as conn:
        return conn.execute(select(func.count()).select_from(table(name))).scalar()


@bp.route('/api/diagnose')
def diagnose():
    """Per-table existence and row counts. Always 200; problems are reported in the body."""
    store = get_store()
    url = store.engine.url
    report = {
        'database': {
            'connected': False,
            'error': None,
            'config': {
                'backend': url.get_backend_name(),
                'host': url.host,
                'database': url.database,
                'user': url.username,
                'hasPassword': bool(url.password),
            },
        },
        'tables': {name: {'exists': False, 'count': 0, 'error': None} for name in EXPECTED_TABLES},
        'timestamp': now_iso(),
    }

    try:
        store.ping()
    except StoreError as e:
        report['database']['error'] = e.details or e.message
        return jsonify(report)
    report['database']['connected'] = True

    for name in EXPECTED_TABLES:
        try:
            report['tables'][name] = {'exists': True, 'count': _count_rows(store, name), 'error': None}
        except SQLAlchemyError as e:
            report['tables'][name]['error'] = str(getattr(e, 'orig', None) or e)
    return jsonify(report)


@bp.route('/api/migrate', methods=['POST'])
def migrate():
    """Bulk-ingest a client snapshot of users, leads and audit logs."""
    body = json_body()
    users = body.get('users')
    leads = body.get('leads')
    audit_logs = body.get('auditLogs', body.get('audit_logs'))
    if not users and not leads and not audit_logs:
        raise ValidationError(
            'Provide users, leads or auditLogs to migrate',
            example={'users': {}, 'leads': [], 'auditLogs': []},
        )
    if leads is not None and not isinstance(leads, list):
        raise ValidationError('leads must be a list')
    if audit_logs is not None and not isinstance(audit_logs, list):
        raise ValidationError('auditLogs must be a list')

    results = migrate_snapshot(get_store(), get_mutator(), users=users, leads=leads, audit_logs=audit_logs)
    return jsonify({
        'success': True,
        'message': (
            f"Migrated {results['users']['inserted']} users, "
            f"{results['leads']['inserted']} leads, "
            f"{results['auditLogs']['inserted']} audit logs"
        ),
        'results': results,
    })
