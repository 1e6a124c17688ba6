"""
Lead mutator — every write to the leads table goes through here.

Responsibilities:
  - resolve a lead by id or by case_code
  - create leads (defaults, required fields, case_code assignment)
  - patch leads through the explicit field alias table
  - append entries to JSON sub-documents without losing concurrent appends

Sub-document appends are optimistic: the UPDATE only matches if the column
still holds the value we read, and the read-modify-write is retried when
another writer got there first.
"""
import json
import logging
import math
import time
import uuid
from dataclasses import dataclass

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError

from casedesk.config import (
    AI_LEADS_DEFAULT_LIMIT,
    APPEND_MAX_RETRIES,
    CASE_CODE_MAX_ATTEMPTS,
    CASE_CODE_PREFIX,
    LEAD_DEFAULTS,
)
from casedesk.errors import ConflictError, NotFoundError, StoreError, ValidationError
from casedesk.models.lead import Lead
from casedesk.services.normalizer import (
    IMMUTABLE_LEAD_FIELDS,
    LEAD_FIELD_ALIASES,
    SUB_DOCUMENT_FIELDS,
    decode_lead,
    encode_field,
    encode_fields,
    map_fields,
    now_iso,
    parse_json_array,
    summarize_lead,
)

logger = logging.getLogger('services.leads')

CREATE_EXAMPLE = {
    'need': '需要一個形象網站',
    'platform': 'FB',
    'platform_id': '客戶名稱',
    'budget_text': '預算 5000-10000',
    'created_by_name': '王小明',
}


@dataclass(frozen=True)
class LeadHandle:
    """A resolved lead: its primary key plus the case_code, if any."""
    id: str
    case_code: str = None


@dataclass(frozen=True)
class Actor:
    """Author stamped onto appended records."""
    uid: str
    name: str


def new_id(prefix):
    """`<prefix>_<epoch ms>_<9 hex chars>`"""
    return f'{prefix}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}'


def parse_amount(value):
    """Float amount; anything unparseable (or NaN/inf) counts as 0."""
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return 0.0
    return amount if math.isfinite(amount) else 0.0


def _optional_text(value):
    if value is None:
        return None
    return str(value).strip() or None


# ── Sub-document entry builders ──────────────────────────────────────────────

def build_money_record(kind, lead_id, item, actor):
    """Cost or profit record (kind = 'cost' | 'profit')."""
    return {
        'id': new_id(kind),
        'lead_id': lead_id,
        'item_name': _optional_text(item.get('item_name')),
        'amount': parse_amount(item.get('amount')),
        'author_uid': actor.uid,
        'author_name': actor.name,
        'created_at': now_iso(),
        'note': _optional_text(item.get('note')),
    }


def build_attachment(item, actor):
    """Attachment record. The payload is stored as given (base64 or URL)."""
    filename = _optional_text(item.get('filename')) or f'screenshot_{int(time.time() * 1000)}.jpg'
    return {
        'id': new_id('att'),
        'filename': filename,
        'data': item.get('image', item.get('data')),
        'uploaded_by': actor.name,
        'uploaded_at': now_iso(),
    }


def build_progress_update(item, actor):
    content = _optional_text(item.get('content'))
    if not content:
        raise ValidationError('content must not be empty', example={'case_code': 'aijob-001', 'content': '已報價'})
    return {
        'id': new_id('progress'),
        'content': content,
        'author_uid': actor.uid,
        'author_name': actor.name,
        'created_at': now_iso(),
    }


class LeadMutator:
    """Validated reads and writes against the leads table of one Store."""

    def __init__(self, store, append_max_retries=APPEND_MAX_RETRIES,
                 case_code_attempts=CASE_CODE_MAX_ATTEMPTS, case_code_prefix=CASE_CODE_PREFIX):
        self.store = store
        self.append_max_retries = append_max_retries
        self.case_code_attempts = case_code_attempts
        self.case_code_prefix = case_code_prefix

    # ── Reads ─────────────────────────────────────────────────────────

    def list_leads(self):
        """All leads, newest first."""
        with self.store.session_scope() as session:
            rows = session.scalars(select(Lead).order_by(Lead.created_at.desc())).all()
            return [decode_lead(row) for row in rows]

    def summaries(self, status=None, limit=AI_LEADS_DEFAULT_LIMIT):
        """Compact newest-first listing for the AI assistant."""
        query = select(Lead).order_by(Lead.created_at.desc()).limit(limit)
        if status == LEAD_DEFAULTS['status']:
            # NULL status reads back as the default
            query = query.where(or_(Lead.status == status, Lead.status.is_(None)))
        elif status:
            query = query.where(Lead.status == status)
        with self.store.session_scope() as session:
            return [summarize_lead(row) for row in session.scalars(query).all()]

    def resolve(self, lead_id=None, case_code=None):
        """
        Locate a lead by id (when given) or else by case_code.

        Raises ValidationError when neither identifier is supplied and
        NotFoundError when nothing matches.
        """
        lead_id = _optional_text(lead_id)
        case_code = _optional_text(case_code)
        if not lead_id and not case_code:
            raise ValidationError('lead_id or case_code is required', example={'case_code': 'aijob-001'})

        query = select(Lead.id, Lead.case_code)
        if lead_id:
            query = query.where(Lead.id == lead_id)
        else:
            query = query.where(Lead.case_code == case_code)

        with self.store.session_scope() as session:
            row = session.execute(query).first()
        if row is None:
            raise NotFoundError(lead_id or case_code)
        return LeadHandle(id=row.id, case_code=row.case_code)

    def get(self, handle):
        with self.store.session_scope() as session:
            row = session.get(Lead, handle.id)
            if row is None:
                raise NotFoundError(handle.id)
            return decode_lead(row)

    def exists(self, lead_id):
        with self.store.session_scope() as session:
            return session.scalar(select(Lead.id).where(Lead.id == lead_id)) is not None

    # ── Create ────────────────────────────────────────────────────────

    def create(self, data, defaults=None, assign_case_code=False, keep_timestamps=False):
        """
        Insert a new lead and return it decoded.

        Args:
            data:             client payload (snake_case or camelCase keys)
            defaults:         per-call defaults layered over LEAD_DEFAULTS
            assign_case_code: generate an aijob-NNN code when none is given
            keep_timestamps:  honour client created_at/updated_at (migration)
        """
        if not isinstance(data, dict):
            raise ValidationError('Lead payload must be a JSON object', example=CREATE_EXAMPLE)
        mapped = map_fields(data, LEAD_FIELD_ALIASES)
        if not keep_timestamps:
            mapped.pop('created_at', None)
            mapped.pop('updated_at', None)

        values = encode_fields(mapped)
        for column, default in {**LEAD_DEFAULTS, **(defaults or {})}.items():
            if values.get(column) is None:
                values[column] = encode_field(column, default)

        if not values.get('need'):
            raise ValidationError('need must not be empty', example=CREATE_EXAMPLE)
        if not values.get('created_by_name'):
            raise ValidationError('created_by_name must not be empty', example=CREATE_EXAMPLE)
        values['id'] = values.get('id') or new_id('lead')

        # Let the server default fill timestamps the caller did not send
        for column in ('created_at', 'updated_at'):
            if values.get(column) is None:
                values.pop(column, None)

        if assign_case_code and not values.get('case_code'):
            return self._insert_with_case_code(values)
        return self._insert(values)

    def _insert(self, values):
        with self.store.session_scope() as session:
            lead = Lead(**values)
            session.add(lead)
            session.flush()
            session.refresh(lead)
            logger.info("Created lead %s", lead.id, extra={'lead_id': lead.id, 'case_code': lead.case_code})
            return decode_lead(lead)

    def _next_case_code(self, session):
        """Row count + 1, bumped past any code already taken."""
        number = session.scalar(select(func.count()).select_from(Lead)) + 1
        while True:
            code = f'{self.case_code_prefix}-{number:03d}'
            if session.scalar(select(Lead.id).where(Lead.case_code == code)) is None:
                return code
            number += 1

    def _case_code_taken(self, code):
        with self.store.session_scope() as session:
            return session.scalar(select(Lead.id).where(Lead.case_code == code)) is not None

    def _insert_with_case_code(self, values):
        for attempt in range(1, self.case_code_attempts + 1):
            with self.store.session_scope() as session:
                values['case_code'] = self._next_case_code(session)
            try:
                return self._insert(dict(values))
            except StoreError as e:
                # A concurrent import claimed the same code between our check and insert
                if not isinstance(e.__cause__, IntegrityError) or not self._case_code_taken(values['case_code']):
                    raise
                logger.warning("case_code %s was taken concurrently; retrying (%d/%d)",
                               values['case_code'], attempt, self.case_code_attempts)
        raise ConflictError('Could not assign a unique case_code', hint='Retry the import')

    # ── Patch ─────────────────────────────────────────────────────────

    def _encode_changes(self, changes):
        if not isinstance(changes, dict):
            raise ValidationError('Request body must be a JSON object')
        mapped = map_fields(changes, LEAD_FIELD_ALIASES)
        for column in IMMUTABLE_LEAD_FIELDS:
            mapped.pop(column, None)
        values = encode_fields(mapped)
        if 'need' in values and values['need'] is None:
            raise ValidationError('need must not be empty')
        if not values:
            raise ValidationError('No updatable fields supplied')
        return values

    def patch(self, handle, changes):
        """
        Apply a partial update and return the lead decoded.

        Immutable and unknown fields are dropped; updated_at is refreshed by
        the store. Raises ValidationError when nothing is left to write.

        case_code is write-once: it is only applied while the stored code is
        NULL, and a code already used by another lead raises ConflictError.
        """
        values = self._encode_changes(changes)
        try:
            with self.store.session_scope() as session:
                stored = session.execute(select(Lead.case_code).where(Lead.id == handle.id)).first()
                if stored is None:
                    raise NotFoundError(handle.id)
                if 'case_code' in values and (stored.case_code is not None or values['case_code'] is None):
                    values.pop('case_code')
                    if not values:
                        raise ValidationError('No updatable fields supplied')

                guard = [Lead.id == handle.id]
                if 'case_code' in values:
                    guard.append(Lead.case_code.is_(None))
                result = session.execute(
                    update(Lead)
                    .where(*guard)
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 0 and 'case_code' in values:
                    raise ConflictError(f'case_code of lead {handle.id} was assigned concurrently',
                                        hint='Retry the request')
                if result.rowcount == 0:
                    raise NotFoundError(handle.id)
                lead = decode_lead(session.get(Lead, handle.id))
        except StoreError as e:
            if 'case_code' in values and isinstance(e.__cause__, IntegrityError):
                raise ConflictError(f"case_code {values['case_code']} is already in use",
                                    details=e.details, hint='Pick another case_code') from e
            raise
        logger.info("Updated lead %s: %s", handle.id, ', '.join(sorted(values)), extra={'lead_id': handle.id})
        return lead

    # ── Sub-documents ─────────────────────────────────────────────────

    def append_sub_document(self, handle, field, entry):
        """
        Append entry to the JSON array stored in field.

        The write is guarded by the value read, so a concurrent append makes
        the UPDATE match zero rows; we then re-read and try again, up to
        append_max_retries times before raising ConflictError.
        """
        if field not in SUB_DOCUMENT_FIELDS:
            raise ValidationError(f'{field} is not an appendable field')
        column = Lead.__table__.c[field]

        for attempt in range(1, self.append_max_retries + 1):
            with self.store.session_scope() as session:
                stored = session.execute(select(column).where(Lead.id == handle.id)).first()
                if stored is None:
                    raise NotFoundError(handle.id)
                raw = stored[0]
                items = parse_json_array(raw, field, handle.id)
                items.append(entry)

                unchanged = column.is_(None) if raw is None else column == raw
                result = session.execute(
                    update(Lead)
                    .where(Lead.id == handle.id, unchanged)
                    .values({field: json.dumps(items, ensure_ascii=False)})
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 1:
                    logger.info("Appended to %s of lead %s (%d entries)", field, handle.id, len(items),
                                extra={'lead_id': handle.id, 'field': field})
                    return decode_lead(session.get(Lead, handle.id))

            logger.warning("Concurrent write to %s of lead %s; retrying (%d/%d)",
                           field, handle.id, attempt, self.append_max_retries,
                           extra={'lead_id': handle.id, 'field': field})

        raise ConflictError(f'{field} of lead {handle.id} kept changing; append abandoned',
                            hint='Retry the request')

    # ── Delete ────────────────────────────────────────────────────────

    def remove(self, handle):
        """Delete the lead. Deleting a missing id is not an error."""
        with self.store.session_scope() as session:
            deleted = session.execute(delete(Lead).where(Lead.id == handle.id)).rowcount
        if deleted:
            logger.info("Deleted lead %s", handle.id, extra={'lead_id': handle.id})
        return deleted
