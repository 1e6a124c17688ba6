"""Tests for the record normalizer (field mapping, encode and decode policy)."""
import json
from datetime import date, datetime, timezone

import pytest

from casedesk.services.normalizer import (
    LEAD_FIELD_ALIASES,
    USER_FIELD_ALIASES,
    MalformedValue,
    clean_text,
    decode_audit_log,
    decode_lead,
    decode_user,
    encode_field,
    encode_fields,
    encode_json_document,
    map_fields,
    parse_json_array,
    summarize_lead,
    to_datetime,
    to_iso,
)


class TestMapFields:

    def test_camel_and_snake_map_to_same_column(self):
        mapped = map_fields({'platformId': 'a', 'budget_text': 'b', 'contactStatus': 'c'}, LEAD_FIELD_ALIASES)
        assert mapped == {'platform_id': 'a', 'budget_text': 'b', 'contact_status': 'c'}

    def test_unknown_keys_dropped(self):
        mapped = map_fields({'need': 'x', 'drop_table': 'leads', 'status; --': 'y'}, LEAD_FIELD_ALIASES)
        assert mapped == {'need': 'x'}

    def test_snake_case_wins_when_both_present(self):
        assert map_fields({'created_by_name': 'snake', 'createdByName': 'camel'},
                          LEAD_FIELD_ALIASES) == {'created_by_name': 'snake'}
        assert map_fields({'createdByName': 'camel', 'created_by_name': 'snake'},
                          LEAD_FIELD_ALIASES) == {'created_by_name': 'snake'}

    def test_budget_alias(self):
        assert map_fields({'budget': '5000'}, LEAD_FIELD_ALIASES) == {'budget_text': '5000'}

    def test_user_aliases(self):
        mapped = map_fields({'uid': 'u1', 'displayName': 'Amy', 'isActive': False}, USER_FIELD_ALIASES)
        assert mapped == {'id': 'u1', 'display_name': 'Amy', 'is_active': False}

    def test_none_payload(self):
        assert map_fields(None, LEAD_FIELD_ALIASES) == {}


class TestCleanText:

    def test_trims(self):
        assert clean_text('  0912-345-678 ') == '0912-345-678'

    def test_blank_is_none(self):
        assert clean_text('') is None
        assert clean_text('   ') is None
        assert clean_text(None) is None

    def test_numbers_become_strings(self):
        assert clean_text(42) == '42'

    def test_structures_rejected(self):
        with pytest.raises(MalformedValue):
            clean_text({'a': 1})


class TestEncodeField:

    def test_list_stored_as_json_text(self):
        encoded = encode_field('links', ['https://example.com', '網站'])
        assert isinstance(encoded, str)
        assert json.loads(encoded) == ['https://example.com', '網站']
        assert '網站' in encoded

    def test_json_array_string_kept(self):
        assert encode_field('cost_records', '[{"amount": 1}]') == '[{"amount": 1}]'

    @pytest.mark.parametrize('value', ['{"a": 1}', 'not json', {'a': 1}, 5])
    def test_non_array_sub_document_rejected(self, value):
        with pytest.raises(MalformedValue):
            encode_field('progress_updates', value)

    def test_none_sub_document(self):
        assert encode_field('contracts', None) is None

    def test_priority_coerced_to_int(self):
        assert encode_field('priority', '4') == 4
        assert encode_field('priority', 2.9) == 2
        assert encode_field('priority', '') is None

    def test_priority_rejects_words(self):
        with pytest.raises(MalformedValue):
            encode_field('priority', 'high')

    @pytest.mark.parametrize('value', [float('inf'), float('-inf'), float('nan'), '1e400'])
    def test_priority_rejects_non_finite(self, value):
        with pytest.raises(MalformedValue):
            encode_field('priority', value)

    def test_boolean_field(self):
        assert encode_field('is_active', 0) is False
        assert encode_field('is_active', True) is True
        assert encode_field('is_active', None) is None

    @pytest.mark.parametrize('value,expected', [
        ('false', False), ('False', False), ('0', False), ('no', False),
        ('true', True), (' TRUE ', True), ('1', True), ('', None),
    ])
    def test_boolean_strings(self, value, expected):
        assert encode_field('is_active', value) is expected

    def test_boolean_rejects_other_strings(self):
        with pytest.raises(MalformedValue):
            encode_field('is_active', 'maybe')

    def test_text_field(self):
        assert encode_field('need', '  網站  ') == '網站'


class TestEncodeFields:

    def test_malformed_fields_dropped(self):
        encoded = encode_fields({'need': 'x', 'links': {'not': 'a list'}, 'priority': 'high'})
        assert encoded == {'need': 'x'}

    def test_infinite_priority_dropped(self):
        assert encode_fields({'need': 'x', 'priority': float('inf')}) == {'need': 'x'}

    def test_blank_text_kept_as_none(self):
        assert encode_fields({'phone': '  '}) == {'phone': None}


class TestToDatetime:

    def test_iso_with_z(self):
        assert to_datetime('2024-01-02T03:04:05Z') == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

    def test_offset_converted_to_utc(self):
        parsed = to_datetime('2024-01-02T08:00:00+08:00')
        assert parsed == datetime(2024, 1, 2, 0, 0, tzinfo=timezone.utc)
        assert parsed.utcoffset().total_seconds() == 0

    def test_naive_taken_as_utc(self):
        assert to_datetime(datetime(2024, 5, 1, 12, 0)).tzinfo == timezone.utc

    def test_epoch_millis(self):
        assert to_datetime(0) == datetime(1970, 1, 1, tzinfo=timezone.utc)
        assert to_datetime(1704164645000) == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

    def test_date(self):
        assert to_datetime(date(2024, 1, 2)) == datetime(2024, 1, 2, tzinfo=timezone.utc)

    def test_blank(self):
        assert to_datetime('  ') is None
        assert to_datetime(None) is None

    @pytest.mark.parametrize('value', ['yesterday', True, ['2024-01-01']])
    def test_garbage_rejected(self, value):
        with pytest.raises(MalformedValue):
            to_datetime(value)


class TestParseJsonArray:

    def test_empty(self):
        assert parse_json_array(None, 'links') == []
        assert parse_json_array('', 'links') == []

    def test_array(self):
        assert parse_json_array('[1, 2]', 'links') == [1, 2]

    def test_unparseable_is_empty(self):
        assert parse_json_array('{oops', 'links', 'lead_1') == []

    def test_non_array_is_empty(self):
        assert parse_json_array('{"a": 1}', 'links', 'lead_1') == []


class TestEncodeJsonDocument:

    def test_object(self):
        assert json.loads(encode_json_document({'status': '已接洽'})) == {'status': '已接洽'}

    def test_empty_values(self):
        assert encode_json_document({}) is None
        assert encode_json_document('') is None
        assert encode_json_document(None) is None

    def test_invalid_string(self):
        assert encode_json_document('not json') is None


class TestDecode:

    def test_decode_lead_defaults(self):
        lead = decode_lead({'id': 'lead_1', 'need': 'x', 'created_by_name': 'Amy'})
        assert lead['status'] == '待篩選'
        assert lead['decision'] == 'pending'
        assert lead['priority'] == 3
        assert lead['contact_status'] == '未回覆'
        assert lead['progress_updates'] == []
        assert lead['links'] == []
        assert lead['created_at'] is not None

    def test_decode_lead_parses_sub_documents(self):
        lead = decode_lead({
            'id': 'lead_1', 'need': 'x',
            'cost_records': '[{"amount": 10.0}]',
            'contracts': 'garbage',
        })
        assert lead['cost_records'] == [{'amount': 10.0}]
        assert lead['contracts'] == []

    def test_decode_lead_keeps_priority_zero(self):
        assert decode_lead({'id': 'lead_1', 'priority': 0})['priority'] == 0

    def test_to_iso_naive_is_utc(self):
        assert to_iso(datetime(2024, 1, 2, 3, 4, 5)) == '2024-01-02T03:04:05+00:00'

    def test_summarize_lead(self):
        summary = summarize_lead({'id': 'lead_1', 'case_code': 'aijob-001', 'need': 'x', 'budget_text': '5k'})
        assert summary['budget'] == '5k'
        assert summary['status'] == '待篩選'
        assert set(summary) == {
            'id', 'case_code', 'need', 'platform', 'platform_id',
            'budget', 'status', 'contact_status', 'created_at',
        }

    def test_decode_user(self):
        user = decode_user({'id': 'u1', 'email': 'a@b.c', 'display_name': 'Amy', 'is_active': None})
        assert user['uid'] == 'u1'
        assert user['displayName'] == 'Amy'
        assert user['isActive'] is True
        assert user['isOnline'] is False

    def test_decode_user_inactive(self):
        assert decode_user({'id': 'u1', 'is_active': False})['isActive'] is False

    def test_decode_audit_log(self):
        log = decode_audit_log({'id': 'log1', 'before': '{"status": "待篩選"}', 'after': 'broken'})
        assert log['before'] == {'status': '待篩選'}
        assert log['after'] is None
