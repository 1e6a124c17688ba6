"""
AI assistant routes — lead import/query/update/delete by case_code, plus
appending cost, profit, attachment and progress records.

Batch endpoints accept either a single object or a list under a plural key
({"leads": [...]}, {"costs": [...]}, ...). Each item succeeds or fails on its
own; failures are collected in results.errors and the response is still 200.
"""
import logging

from flask import Blueprint, jsonify, request

from casedesk.config import AI_ACTOR_ID, AI_ACTOR_NAME, AI_IMPORT_DEFAULTS, AI_LEADS_DEFAULT_LIMIT
from casedesk.errors import CasedeskError, ValidationError
from casedesk.extensions import get_mutator
from casedesk.routes.common import json_body, patch_response
from casedesk.services.leads import (
    Actor,
    build_attachment,
    build_money_record,
    build_progress_update,
)
from casedesk.services.normalizer import now_iso

logger = logging.getLogger('routes.ai')

bp = Blueprint('ai', __name__)

MAX_QUERY_LIMIT = 500

IDENTIFIER_KEYS = ('lead_id', 'case_code')

IMPORT_EXAMPLE = {
    'need': '案件需求描述',
    'platform': 'FB',
    'platform_id': '客戶名稱',
    'budget_text': '預算 5000-10000',
}


def _actor():
    return Actor(uid=AI_ACTOR_ID, name=AI_ACTOR_NAME)


def _batch_items(body, list_key):
    """Items under body[list_key] when it is a list, else the body itself."""
    batch = body.get(list_key)
    if isinstance(batch, list):
        return batch
    return [{k: v for k, v in body.items() if k != list_key}]


def _identifier(item):
    if not isinstance(item, dict):
        return None
    return item.get('lead_id') or item.get('case_code')


def _append_batch(list_key, field, build_entry, describe, example, noun):
    """
    Resolve each item's lead and append one entry to field.

    build_entry(handle, item) → entry dict
    describe(entry)           → extra keys for the success record
    """
    items = _batch_items(json_body(), list_key)
    if not items or not _identifier(items[0]):
        raise ValidationError(f'Provide {noun} data with lead_id or case_code', example=example)

    mutator = get_mutator()
    results = {'success': [], 'errors': []}
    for item in items:
        identifier = _identifier(item)
        try:
            if not isinstance(item, dict):
                raise ValidationError(f'Each {noun} must be a JSON object')
            handle = mutator.resolve(lead_id=item.get('lead_id'), case_code=item.get('case_code'))
            entry = build_entry(handle, item)
            mutator.append_sub_document(handle, field, entry)
            results['success'].append({'lead_id': handle.id, 'case_code': handle.case_code, **describe(entry)})
        except CasedeskError as e:
            logger.warning("AI %s for %s failed: %s", noun, identifier, e.message)
            results['errors'].append({'identifier': identifier, 'error': e.message})
    return results


# ── Leads ─────────────────────────────────────────────────────────────────────

@bp.route('/api/ai/import', methods=['POST'])
def import_leads():
    """Create one or many leads from a simplified payload; assigns case_code."""
    items = _batch_items(json_body(), 'leads')
    if not items or not isinstance(items[0], dict) or not items[0].get('need'):
        raise ValidationError('Provide lead data with a need', example=IMPORT_EXAMPLE)

    mutator = get_mutator()
    defaults = {
        **AI_IMPORT_DEFAULTS,
        'posted_at': now_iso(),
        'links': [],
    }
    results = {'success': [], 'errors': []}
    for item in items:
        need = item.get('need') if isinstance(item, dict) else None
        try:
            if not isinstance(item, dict):
                raise ValidationError('Each lead must be a JSON object')
            payload = dict(item, created_by=AI_ACTOR_ID, created_by_name=AI_ACTOR_NAME)
            lead = mutator.create(payload, defaults=defaults, assign_case_code=True)
            results['success'].append({'id': lead['id'], 'case_code': lead['case_code'], 'need': lead['need']})
        except CasedeskError as e:
            logger.warning("AI import failed: %s", e.message)
            results['errors'].append({'need': str(need)[:50] if need else None, 'error': e.message})

    return jsonify({
        'message': f"Imported {len(results['success'])} leads",
        'imported': len(results['success']),
        'failed': len(results['errors']),
        'results': results,
    })


@bp.route('/api/ai/leads')
def query_leads():
    """Compact lead listing. ?status= filters, ?limit= caps (default 20)."""
    status = request.args.get('status')
    try:
        limit = int(request.args.get('limit', AI_LEADS_DEFAULT_LIMIT))
    except ValueError:
        limit = AI_LEADS_DEFAULT_LIMIT
    limit = max(1, min(limit, MAX_QUERY_LIMIT))

    leads = get_mutator().summaries(status=status, limit=limit)
    return jsonify({'count': len(leads), 'leads': leads})


@bp.route('/api/ai/update', methods=['PUT'])
def update_lead():
    """Patch a lead addressed by case_code (or lead_id)."""
    body = json_body()
    mutator = get_mutator()
    handle = mutator.resolve(lead_id=body.get('lead_id'), case_code=body.get('case_code'))
    changes = {k: v for k, v in body.items() if k not in IDENTIFIER_KEYS}
    lead = mutator.patch(handle, changes)
    return jsonify(patch_response(lead))


@bp.route('/api/ai/delete', methods=['DELETE'])
def delete_lead():
    """Delete a lead addressed by case_code (or lead_id), from body or query."""
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        body = {}
    lead_id = body.get('lead_id') or request.args.get('lead_id')
    case_code = body.get('case_code') or request.args.get('case_code')

    mutator = get_mutator()
    handle = mutator.resolve(lead_id=lead_id, case_code=case_code)
    mutator.remove(handle)
    return jsonify({'success': True, 'id': handle.id, 'case_code': handle.case_code})


# ── Sub-documents ─────────────────────────────────────────────────────────────

@bp.route('/api/ai/cost', methods=['POST'])
def import_costs():
    results = _append_batch(
        'costs', 'cost_records',
        lambda handle, item: build_money_record('cost', handle.id, item, _actor()),
        lambda entry: {'item_name': entry['item_name'], 'amount': entry['amount']},
        {'case_code': 'aijob-001', 'item_name': '外包費用', 'amount': 5000, 'note': '設計外包'},
        'cost',
    )
    return jsonify({
        'message': f"Imported {len(results['success'])} cost records",
        'imported': len(results['success']),
        'failed': len(results['errors']),
        'results': results,
    })


@bp.route('/api/ai/profit', methods=['POST'])
def import_profits():
    results = _append_batch(
        'profits', 'profit_records',
        lambda handle, item: build_money_record('profit', handle.id, item, _actor()),
        lambda entry: {'item_name': entry['item_name'], 'amount': entry['amount']},
        {'case_code': 'aijob-001', 'item_name': '專案收入', 'amount': 50000, 'note': '第一期款'},
        'profit',
    )
    return jsonify({
        'message': f"Imported {len(results['success'])} profit records",
        'imported': len(results['success']),
        'failed': len(results['errors']),
        'results': results,
    })


@bp.route('/api/ai/attachment', methods=['POST'])
def upload_attachments():
    results = _append_batch(
        'attachments', 'contracts',
        lambda handle, item: build_attachment(item, _actor()),
        lambda entry: {'attachment_id': entry['id'], 'filename': entry['filename']},
        {'case_code': 'aijob-001', 'image': 'base64 string or URL', 'filename': 'screenshot.jpg'},
        'attachment',
    )
    return jsonify({
        'message': f"Uploaded {len(results['success'])} attachments",
        'uploaded': len(results['success']),
        'failed': len(results['errors']),
        'results': results,
    })


@bp.route('/api/ai/progress', methods=['POST'])
def add_progress_updates():
    results = _append_batch(
        'updates', 'progress_updates',
        lambda handle, item: build_progress_update(item, _actor()),
        lambda entry: {'progress_id': entry['id']},
        {'case_code': 'aijob-001', 'content': '已與客戶通話，等待報價確認'},
        'progress update',
    )
    return jsonify({
        'message': f"Added {len(results['success'])} progress updates",
        'imported': len(results['success']),
        'failed': len(results['errors']),
        'results': results,
    })
