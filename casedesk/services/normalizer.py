"""
Record normalizer — maps between the API shape of a record and its columns.

Pure functions, no database access. One encode policy serves every write
path (create, patch, AI import, migration):

  - JSON sub-documents are stored as JSON text, or NULL
  - date fields become timezone-aware datetimes, or NULL
  - text is trimmed, and a blank result is stored as NULL

Decoding never raises on bad stored data: a sub-document that does not parse
to an array comes back as [] and a warning is logged.
"""
import json
import logging
import math
from datetime import date, datetime, time, timezone

logger = logging.getLogger('services.normalizer')


class MalformedValue(ValueError):
    """A supplied value cannot be stored in its column; the field is dropped."""


# ── Field catalogue ──────────────────────────────────────────────────────────

SUB_DOCUMENT_FIELDS = (
    'progress_updates',
    'change_history',
    'cost_records',
    'profit_records',
    'contracts',
    'links',
)

LEAD_TEXT_FIELDS = (
    'case_code', 'platform', 'platform_id', 'need', 'budget_text',
    'phone', 'email', 'location', 'estimated_duration', 'contact_method',
    'note', 'internal_remarks', 'remarks_author',
    'status', 'decision', 'decision_by', 'reject_reason', 'review_note',
    'assigned_to', 'assigned_to_name', 'contact_status',
    'created_by', 'created_by_name', 'last_action_by',
)

LEAD_COLUMNS = ('id',) + LEAD_TEXT_FIELDS + (
    'posted_at', 'priority', 'created_at', 'updated_at',
) + SUB_DOCUMENT_FIELDS

JSON_FIELDS = frozenset(SUB_DOCUMENT_FIELDS)
DATE_FIELDS = frozenset({'posted_at', 'created_at', 'updated_at', 'last_seen'})
INTEGER_FIELDS = frozenset({'priority'})
BOOLEAN_FIELDS = frozenset({'is_active', 'is_online'})

# Never writable through patch once the row exists. case_code is
# write-once and handled by LeadMutator.patch.
IMMUTABLE_LEAD_FIELDS = frozenset({
    'id', 'created_at', 'created_by', 'created_by_name', 'updated_at',
})


def _camel(name):
    head, *rest = name.split('_')
    return head + ''.join(part.title() for part in rest)


def _alias_table(columns, extra=None):
    table = {}
    for column in columns:
        table[column] = column
        table[_camel(column)] = column
    table.update(extra or {})
    return table


# External key → column. Anything not listed here is ignored on write.
LEAD_FIELD_ALIASES = _alias_table(LEAD_COLUMNS, {'budget': 'budget_text'})

USER_FIELD_ALIASES = _alias_table(
    ('email', 'display_name', 'role', 'avatar', 'status', 'is_active', 'created_at'),
    {'uid': 'id', 'id': 'id'},
)


def map_fields(payload, aliases):
    """
    Translate external keys to column names through an alias table.

    Unknown keys are dropped. When both spellings of a column are present
    the snake_case (column) spelling wins.
    """
    mapped = {}
    ignored = []
    for key, value in (payload or {}).items():
        column = aliases.get(key)
        if column is None:
            ignored.append(key)
            continue
        if column in mapped and key != column:
            continue
        mapped[column] = value
    if ignored:
        logger.debug("Ignoring unmapped fields: %s", ', '.join(sorted(ignored)))
    return mapped


# ── Encode ───────────────────────────────────────────────────────────────────

def clean_text(value):
    """Trimmed string, or None when blank."""
    if value is None:
        return None
    if isinstance(value, (dict, list)):
        raise MalformedValue('expected a string')
    if not isinstance(value, str):
        value = str(value)
    value = value.strip()
    return value or None


def _encode_json_array(field, value):
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        return json.dumps(list(value), ensure_ascii=False)
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except ValueError:
            raise MalformedValue(f'{field} is not valid JSON')
        if isinstance(parsed, list):
            return value
        raise MalformedValue(f'{field} is not a JSON array')
    raise MalformedValue(f'{field} must be an array')


def _as_utc(value):
    # SQLite keeps wall-clock time only, so everything is stored as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_datetime(value):
    """
    Coerce a date-like value to an aware datetime.

    Accepts datetime/date objects, ISO-8601 strings (trailing Z allowed) and
    epoch milliseconds. Blank → None. Anything else → MalformedValue.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return _as_utc(value)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    if isinstance(value, bool):
        raise MalformedValue('expected a date')
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            raise MalformedValue('timestamp out of range')
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            raise MalformedValue(f'unrecognised date {value!r}')
        return _as_utc(parsed)
    raise MalformedValue('expected a date')


def _encode_integer(value):
    if value is None:
        return None
    if isinstance(value, bool):
        raise MalformedValue('expected an integer')
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            raise MalformedValue(f'expected an integer, got {value!r}')
        return int(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return int(text)
        except ValueError:
            raise MalformedValue(f'expected an integer, got {value!r}')
    raise MalformedValue('expected an integer')


_TRUE_STRINGS = frozenset({'true', '1', 'yes'})
_FALSE_STRINGS = frozenset({'false', '0', 'no'})


def _encode_boolean(value):
    if value is None or isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if not text:
            return None
        if text in _TRUE_STRINGS:
            return True
        if text in _FALSE_STRINGS:
            return False
    raise MalformedValue(f'expected a boolean, got {value!r}')


def encode_field(column, value):
    """Encode one value for storage in column. Raises MalformedValue."""
    if column in JSON_FIELDS:
        return _encode_json_array(column, value)
    if column in DATE_FIELDS:
        return to_datetime(value)
    if column in INTEGER_FIELDS:
        return _encode_integer(value)
    if column in BOOLEAN_FIELDS:
        return _encode_boolean(value)
    return clean_text(value)


def encode_fields(mapped):
    """Encode a {column: value} mapping, dropping values that do not fit."""
    encoded = {}
    for column, value in mapped.items():
        try:
            encoded[column] = encode_field(column, value)
        except MalformedValue as e:
            logger.warning("Dropping field %s: %s", column, e, extra={'field': column})
    return encoded


def encode_json_document(value):
    """Audit snapshots: any JSON value as text, or None."""
    if value is None or value == '' or value == {}:
        return None
    if isinstance(value, str):
        try:
            json.loads(value)
        except ValueError:
            return None
        return value
    return json.dumps(value, ensure_ascii=False, default=str)


# ── Decode ───────────────────────────────────────────────────────────────────

def _get(row, name):
    """Column value from an ORM row or a mapping; None when absent."""
    if isinstance(row, dict):
        return row.get(name)
    return getattr(row, name, None)


def now_iso():
    return datetime.now(timezone.utc).isoformat()


def to_iso(value, default_now=False):
    """Render a stored timestamp as ISO-8601. Naive values are taken as UTC."""
    if value is None or value == '':
        return now_iso() if default_now else None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def parse_json_array(value, field, lead_id=None):
    """
    Read a stored sub-document as a list.

    Strings are JSON-parsed; anything that is not (or does not parse to) an
    array yields [] and a warning. Never raises.
    """
    if value is None or value == '':
        return []
    if isinstance(value, list):
        return value
    if isinstance(value, (str, bytes, bytearray)):
        try:
            parsed = json.loads(value)
        except ValueError:
            logger.warning("Could not parse %s of lead %s; treating as empty", field, lead_id,
                           extra={'lead_id': lead_id, 'field': field})
            return []
        if isinstance(parsed, list):
            return parsed
    logger.warning("%s of lead %s is not an array; treating as empty", field, lead_id,
                   extra={'lead_id': lead_id, 'field': field})
    return []


def parse_json_document(value, field=None):
    """Read an audit snapshot. Unparseable text yields None."""
    if value is None or value == '':
        return None
    if not isinstance(value, (str, bytes, bytearray)):
        return value
    try:
        return json.loads(value)
    except ValueError:
        logger.warning("Could not parse audit %s snapshot; returning null", field)
        return None


def decode_lead(row):
    """Storage row → API dict."""
    lead_id = _get(row, 'id')
    priority = _get(row, 'priority')
    lead = {
        'id': lead_id,
        'case_code': _get(row, 'case_code'),
        'platform': _get(row, 'platform'),
        'platform_id': _get(row, 'platform_id'),
        'need': _get(row, 'need') or '',
        'budget_text': _get(row, 'budget_text'),
        'posted_at': to_iso(_get(row, 'posted_at')),
        'phone': _get(row, 'phone'),
        'email': _get(row, 'email'),
        'location': _get(row, 'location'),
        'estimated_duration': _get(row, 'estimated_duration'),
        'contact_method': _get(row, 'contact_method'),
        'note': _get(row, 'note'),
        'internal_remarks': _get(row, 'internal_remarks'),
        'remarks_author': _get(row, 'remarks_author'),
        'status': _get(row, 'status') or '待篩選',
        'decision': _get(row, 'decision') or 'pending',
        'decision_by': _get(row, 'decision_by'),
        'reject_reason': _get(row, 'reject_reason'),
        'review_note': _get(row, 'review_note'),
        'assigned_to': _get(row, 'assigned_to'),
        'assigned_to_name': _get(row, 'assigned_to_name'),
        'priority': 3 if priority is None else priority,
        'contact_status': _get(row, 'contact_status') or '未回覆',
        'created_by': _get(row, 'created_by'),
        'created_by_name': _get(row, 'created_by_name') or '',
        'created_at': to_iso(_get(row, 'created_at'), default_now=True),
        'updated_at': to_iso(_get(row, 'updated_at'), default_now=True),
        'last_action_by': _get(row, 'last_action_by'),
    }
    for field in SUB_DOCUMENT_FIELDS:
        lead[field] = parse_json_array(_get(row, field), field, lead_id)
    return lead


def summarize_lead(row):
    """Compact lead view for the AI assistant."""
    return {
        'id': _get(row, 'id'),
        'case_code': _get(row, 'case_code'),
        'need': _get(row, 'need'),
        'platform': _get(row, 'platform'),
        'platform_id': _get(row, 'platform_id'),
        'budget': _get(row, 'budget_text'),
        'status': _get(row, 'status') or '待篩選',
        'contact_status': _get(row, 'contact_status') or '未回覆',
        'created_at': to_iso(_get(row, 'created_at')),
    }


def decode_user(row):
    is_active = _get(row, 'is_active')
    return {
        'uid': _get(row, 'id'),
        'email': _get(row, 'email'),
        'displayName': _get(row, 'display_name'),
        'role': _get(row, 'role'),
        'avatar': _get(row, 'avatar'),
        'status': _get(row, 'status'),
        'createdAt': to_iso(_get(row, 'created_at')),
        'isActive': is_active is not False,
        'isOnline': bool(_get(row, 'is_online')),
        'lastSeen': to_iso(_get(row, 'last_seen')),
    }


def decode_audit_log(row):
    return {
        'id': _get(row, 'id'),
        'lead_id': _get(row, 'lead_id'),
        'actor_uid': _get(row, 'actor_uid'),
        'actor_name': _get(row, 'actor_name'),
        'action': _get(row, 'action'),
        'before': parse_json_document(_get(row, 'before'), 'before'),
        'after': parse_json_document(_get(row, 'after'), 'after'),
        'created_at': to_iso(_get(row, 'created_at')),
    }
