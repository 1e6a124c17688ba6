"""
Snapshot migration — bulk-ingest users, leads and audit logs exported by the
browser client.

Every item commits on its own; a failing item is recorded and the rest of the
batch carries on. Leads go through LeadMutator.create so they get exactly the
same field policy as the single-row endpoints.
"""
import logging

from casedesk.config import DEFAULT_USER_ROLE
from casedesk.errors import CasedeskError
from casedesk.models.audit_log import AuditLog
from casedesk.models.user import User
from casedesk.services.normalizer import (
    USER_FIELD_ALIASES,
    clean_text,
    encode_fields,
    encode_json_document,
    map_fields,
    to_datetime,
)

logger = logging.getLogger('services.migration')


def _error_text(exc):
    return exc.message if isinstance(exc, CasedeskError) else str(exc)


def _migrate_user(store, payload):
    values = encode_fields(map_fields(payload, USER_FIELD_ALIASES))
    user_id = values.get('id')
    if not user_id:
        raise ValueError('user has no uid')

    with store.session_scope() as session:
        user = session.get(User, user_id)
        if user is None:
            user = User(id=user_id)
            if values.get('created_at'):
                user.created_at = values['created_at']
            session.add(user)
        user.email = values.get('email') or ''
        user.display_name = values.get('display_name') or ''
        user.role = values.get('role') or DEFAULT_USER_ROLE
        # Blank avatar/status keep whatever is stored
        if values.get('avatar'):
            user.avatar = values['avatar']
        if values.get('status'):
            user.status = values['status']
        if values.get('is_active') is not None:
            user.is_active = values['is_active']
        elif user.is_active is None:
            user.is_active = True
        user.is_online = False


def _migrate_audit_log(store, payload):
    log_id = clean_text(payload.get('id'))
    if not log_id:
        raise ValueError('audit log has no id')

    created_at = to_datetime(payload.get('created_at'))
    with store.session_scope() as session:
        if session.get(AuditLog, log_id) is not None:
            return False
        log = AuditLog(
            id=log_id,
            lead_id=clean_text(payload.get('lead_id')),
            actor_uid=clean_text(payload.get('actor_uid')),
            actor_name=clean_text(payload.get('actor_name')) or '',
            action=clean_text(payload.get('action')) or '',
            before=encode_json_document(payload.get('before')),
            after=encode_json_document(payload.get('after')),
        )
        if created_at is not None:
            log.created_at = created_at
        session.add(log)
    return True


def migrate_snapshot(store, mutator, users=None, leads=None, audit_logs=None):
    """
    Ingest a client snapshot.

    Args:
        users:      {uid: user} mapping (a plain list is accepted too)
        leads:      list of lead dicts; ids already present are skipped
        audit_logs: list of audit log dicts; ids already present are skipped

    Returns per-collection counters and error lists.
    """
    results = {
        'users': {'inserted': 0, 'errors': []},
        'leads': {'inserted': 0, 'skipped': 0, 'errors': []},
        'auditLogs': {'inserted': 0, 'skipped': 0, 'errors': []},
    }

    user_list = list(users.values()) if isinstance(users, dict) else list(users or [])
    for user in user_list:
        try:
            _migrate_user(store, user)
            results['users']['inserted'] += 1
        except (CasedeskError, ValueError, AttributeError) as e:
            ident = user.get('uid') or user.get('id') if isinstance(user, dict) else None
            results['users']['errors'].append({'user': ident, 'error': _error_text(e)})

    for lead in leads or []:
        ident = lead.get('id') if isinstance(lead, dict) else None
        try:
            if ident and mutator.exists(ident):
                results['leads']['skipped'] += 1
                continue
            mutator.create(lead, keep_timestamps=True)
            results['leads']['inserted'] += 1
        except CasedeskError as e:
            results['leads']['errors'].append({'lead': ident, 'error': _error_text(e)})

    for log in audit_logs or []:
        ident = log.get('id') if isinstance(log, dict) else None
        try:
            if _migrate_audit_log(store, log):
                results['auditLogs']['inserted'] += 1
            else:
                results['auditLogs']['skipped'] += 1
        except (CasedeskError, ValueError, AttributeError) as e:
            results['auditLogs']['errors'].append({'log': ident, 'error': _error_text(e)})

    logger.info(
        "Migration finished: %d users, %d leads (%d skipped), %d audit logs (%d skipped)",
        results['users']['inserted'],
        results['leads']['inserted'], results['leads']['skipped'],
        results['auditLogs']['inserted'], results['auditLogs']['skipped'],
    )
    return results
