"""Tests for structured logging configuration."""
import json
import logging
import os
from unittest.mock import patch

import pytest
from flask import Flask

from casedesk.logging_config import configure_logging, JSONFormatter


@pytest.fixture(autouse=True)
def _reset_root_logger():
    """Reset root logger state after each test."""
    root = logging.getLogger()
    original_level = root.level
    original_handlers = root.handlers[:]
    yield
    root.setLevel(original_level)
    root.handlers = original_handlers


class TestConfigureLogging:
    """Tests for configure_logging()."""

    def test_default_level_is_info(self):
        with patch.dict(os.environ, {}, clear=False):
            os.environ.pop('LOG_LEVEL', None)
            configure_logging()
        assert logging.getLogger().level == logging.INFO

    def test_log_level_env_var_changes_level(self):
        with patch.dict(os.environ, {'LOG_LEVEL': 'DEBUG'}):
            configure_logging()
        assert logging.getLogger().level == logging.DEBUG

    def test_log_level_case_insensitive(self):
        with patch.dict(os.environ, {'LOG_LEVEL': 'warning'}):
            configure_logging()
        assert logging.getLogger().level == logging.WARNING

    def test_invalid_log_level_defaults_to_info(self):
        with patch.dict(os.environ, {'LOG_LEVEL': 'NONSENSE'}):
            configure_logging()
        assert logging.getLogger().level == logging.INFO

    def test_text_format_includes_logger_name(self, capsys):
        with patch.dict(os.environ, {'LOG_FORMAT': 'text'}):
            configure_logging()
        logging.getLogger('services.leads').info("Created lead lead_1")
        output = capsys.readouterr().err
        assert 'services.leads' in output
        assert 'Created lead lead_1' in output
        assert 'INFO' in output

    def test_json_format_produces_parseable_json(self, capsys):
        with patch.dict(os.environ, {'LOG_FORMAT': 'json'}):
            configure_logging()
        logging.getLogger('test.json').info("structured log")
        parsed = json.loads(capsys.readouterr().err.strip())
        assert parsed['level'] == 'INFO'
        assert parsed['logger'] == 'test.json'
        assert parsed['message'] == 'structured log'
        assert 'timestamp' in parsed

    def test_json_format_keeps_non_ascii(self, capsys):
        with patch.dict(os.environ, {'LOG_FORMAT': 'json'}):
            configure_logging()
        logging.getLogger('test.json').info("案件 %s", '待篩選')
        output = capsys.readouterr().err.strip()
        assert '待篩選' in output
        assert json.loads(output)['message'] == '案件 待篩選'

    def test_json_format_includes_exception(self, capsys):
        with patch.dict(os.environ, {'LOG_FORMAT': 'json'}):
            configure_logging()
        try:
            raise ValueError("boom")
        except ValueError:
            logging.getLogger('test.exc').error("failed", exc_info=True)
        parsed = json.loads(capsys.readouterr().err.strip())
        assert parsed['level'] == 'ERROR'
        assert 'ValueError' in parsed['exception']

    def test_third_party_loggers_quieted_to_warning(self):
        configure_logging()
        for name in ['sqlalchemy.engine', 'sqlalchemy.pool', 'werkzeug', 'urllib3']:
            assert logging.getLogger(name).level == logging.WARNING

    def test_no_duplicate_handlers_on_repeated_calls(self):
        configure_logging()
        configure_logging()
        assert len(logging.getLogger().handlers) == 1

    def test_flask_logger_propagates_to_root(self):
        app = Flask(__name__)
        configure_logging(app)
        assert app.logger.handlers == []
        assert app.logger.propagate is True


class TestJSONFormatter:
    """Tests for the JSONFormatter class."""

    def _record(self, **extra):
        record = logging.LogRecord(
            name='test', level=logging.INFO, pathname='', lineno=0,
            msg='hello %s', args=('world',), exc_info=None,
        )
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_format_basic_record(self):
        parsed = json.loads(JSONFormatter().format(self._record()))
        assert parsed['message'] == 'hello world'
        assert parsed['level'] == 'INFO'
        assert parsed['logger'] == 'test'
        assert 'lead_id' not in parsed

    def test_context_fields_are_included(self):
        record = self._record(lead_id='lead_1', case_code='aijob-001', field='cost_records')
        parsed = json.loads(JSONFormatter().format(record))
        assert parsed['lead_id'] == 'lead_1'
        assert parsed['case_code'] == 'aijob-001'
        assert parsed['field'] == 'cost_records'
