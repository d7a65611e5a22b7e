#!/usr/bin/env python3
"""
ltcheck Test Suite v1.0.0
=========================
Validates application configuration, structured logging, the error taxonomy
and the Flask application factory.

Run with: python -m pytest tests.py -v
Or standalone: python tests.py
"""

import os
import json
import logging
import unittest
from unittest.mock import patch

from app import create_app
from config_logging import (
    VERSION, AppConfig, StructuredLogger, JsonFormatter, RecentErrors,
    LTCheckError, ValidationError, NotFoundError, ProcessingError,
    TransportError, CheckRequestError, SynonymError, DictionarySyncError,
    OffsetCorruptionError, MarkdownAnnotationError,
    get_config, get_logger, reset_config, redact_credentials
)
from ltcheck.session import SessionRegistry
from ltcheck.routes import REGISTRY_KEY


class TestConfigDefaults(unittest.TestCase):
    """Test application configuration."""

    def setUp(self):
        reset_config()

    def tearDown(self):
        reset_config()

    def test_local_only_defaults(self):
        """
        Test that the server binds to localhost by default.

        Expects: host 127.0.0.1, port 5060, debug off.
        """
        config = AppConfig()
        self.assertEqual(config.host, '127.0.0.1')
        self.assertEqual(config.port, 5060)
        self.assertFalse(config.debug)

    def test_from_env(self):
        """Test that LTCHECK_* variables are read."""
        env = {'LTCHECK_PORT': '6000', 'LTCHECK_DEBUG': 'true', 'LTCHECK_LOG_FORMAT': 'json'}
        with patch.dict(os.environ, env):
            config = AppConfig.from_env()
        self.assertEqual(config.port, 6000)
        self.assertTrue(config.debug)
        self.assertEqual(config.log_format, 'json')

    def test_production_disables_debug(self):
        """Test that production mode forces debug off."""
        with patch.dict(os.environ, {'LTCHECK_ENV': 'production'}):
            config = AppConfig(debug=True)
        self.assertFalse(config.debug)
        self.assertEqual(config.log_level, 'WARNING')

    def test_validate(self):
        """Test that invalid settings are reported, not raised."""
        valid, errors = AppConfig().validate()
        self.assertTrue(valid)
        self.assertEqual(errors, [])

        valid, errors = AppConfig(log_format='xml', log_level='LOUD').validate()
        self.assertFalse(valid)
        self.assertEqual(len(errors), 2)

    def test_global_config_cached(self):
        """Test that get_config returns one instance until reset."""
        self.assertIs(get_config(), get_config())

    def test_version(self):
        self.assertEqual(VERSION, '1.0.0')


class TestStructuredLogging(unittest.TestCase):
    """Test the structured logger."""

    def test_one_logger_per_name(self):
        self.assertIs(get_logger('ltcheck.tests'), get_logger('ltcheck.tests'))

    def test_correlation_id(self):
        """Test that a new correlation ID becomes the thread's current one."""
        correlation_id = StructuredLogger.new_correlation_id()
        self.assertEqual(len(correlation_id), 12)
        self.assertEqual(StructuredLogger.get_correlation_id(), correlation_id)

    def test_json_rendering(self):
        """Test that JSON format carries the extra fields."""
        logger = StructuredLogger('ltcheck.tests.json', AppConfig(log_format='json'))
        record = json.loads(logger._render('INFO', 'Checked', characters=12))
        self.assertEqual(record['message'], 'Checked')
        self.assertEqual(record['characters'], 12)
        self.assertEqual(record['logger'], 'ltcheck.tests.json')

    def test_text_rendering(self):
        """Test that text format appends the context as key=value pairs."""
        logger = StructuredLogger('ltcheck.tests.text', AppConfig())
        self.assertEqual(logger._render('INFO', 'Checked', characters=12), 'Checked [characters=12]')
        self.assertEqual(logger._render('INFO', 'Checked'), 'Checked')

    def test_json_formatter_passes_rendered_records(self):
        formatter = JsonFormatter()
        record = logging.LogRecord('x', logging.INFO, __file__, 1, '{"a": 1}', None, None)
        self.assertEqual(formatter.format(record), '{"a": 1}')

        record = logging.LogRecord('x', logging.INFO, __file__, 1, 'plain', None, None)
        self.assertEqual(json.loads(formatter.format(record))['message'], 'plain')

    def test_log_operation_reraises(self):
        """Test that failures inside log_operation are logged and propagated."""
        logger = get_logger('ltcheck.tests.operation')
        with patch.object(logger, 'error') as error:
            with self.assertRaises(RuntimeError):
                with logger.log_operation('run_check', offset=0):
                    raise RuntimeError('boom')
        error.assert_called_once()
        self.assertEqual(error.call_args[1]['status'], 'failed')


class TestRecentErrors(unittest.TestCase):
    """Test the bounded failure log behind "copy logs"."""

    def test_redact_credentials(self):
        message = redact_credentials("user alice key s3cret", ['alice', None, 's3cret', ''])
        self.assertEqual(message, "user <<redacted>> key <<redacted>>")

    def test_push_redacts(self):
        errors = RecentErrors()
        errors.push(TransportError("Login failed for alice"),
                    settings={'server': {'api_key': 'REDACTED'}},
                    secrets=('alice', 's3cret'))
        entry = errors.entries()[0]
        self.assertNotIn('alice', entry)
        self.assertIn("Error: 'Login failed for <<redacted>>'", entry)
        self.assertIn('Settings:', entry)

    def test_bounded(self):
        errors = RecentErrors(limit=3)
        for i in range(5):
            errors.push(ValueError(f"failure {i}"))
        self.assertEqual(len(errors), 3)
        self.assertIn('failure 4', errors.entries()[-1])

        errors.clear()
        self.assertEqual(errors.entries(), [])


class TestErrorTaxonomy(unittest.TestCase):
    """Test error codes and the response envelope."""

    def test_envelope(self):
        body = ValidationError("Missing 'word'", field='word').to_dict()
        self.assertFalse(body['success'])
        self.assertEqual(body['error']['code'], 'VALIDATION_ERROR')
        self.assertEqual(body['error']['details']['field'], 'word')

    def test_status_codes(self):
        cases = [
            (ValidationError('x'), 'VALIDATION_ERROR', 400),
            (NotFoundError('x'), 'NOT_FOUND', 404),
            (ProcessingError('x'), 'PROCESSING_ERROR', 500),
            (TransportError('x'), 'TRANSPORT_ERROR', 502),
            (CheckRequestError('x'), 'CHECK_REQUEST_ERROR', 413),
            (SynonymError('x'), 'SYNONYM_ERROR', 502),
            (DictionarySyncError('x', step='add'), 'DICTIONARY_SYNC_ERROR', 502),
        ]
        for error, code, status in cases:
            with self.subTest(code=code):
                self.assertIsInstance(error, LTCheckError)
                self.assertEqual(error.code, code)
                self.assertEqual(error.status_code, status)

    def test_offset_errors(self):
        error = MarkdownAnnotationError("Node does not fit", node_type='link', start=3, end=9)
        self.assertIsInstance(error, OffsetCorruptionError)
        self.assertEqual(error.code, 'MARKDOWN_ANNOTATION_ERROR')
        self.assertEqual(error.details['stage'], 'annotation')
        self.assertEqual(error.details['node_type'], 'link')


class TestApplicationFactory(unittest.TestCase):
    """Test the Flask application."""

    def setUp(self):
        self.registry = SessionRegistry()
        self.app = create_app(self.registry)
        self.app.config['TESTING'] = True
        self.client = self.app.test_client()

    def test_empty_registry_kept(self):
        self.assertIs(self.app.extensions[REGISTRY_KEY], self.registry)

    def test_index(self):
        response = self.client.get('/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(json.loads(response.data)['name'], 'ltcheck')

    def test_health(self):
        response = self.client.get('/api/ltcheck/health')
        data = json.loads(response.data)
        self.assertEqual(data['status'], 'ok')
        self.assertEqual(data['version'], VERSION)
        self.assertEqual(data['sessions'], 0)

    def test_session_lifecycle(self):
        """Test that sessions opened over HTTP land in the registry."""
        response = self.client.post('/api/ltcheck/sessions', json={'text': 'Hello'})
        self.assertEqual(response.status_code, 201)
        session_id = json.loads(response.data)['session']['id']
        self.assertIsNotNone(self.registry.get(session_id))

        response = self.client.delete(f'/api/ltcheck/sessions/{session_id}')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(self.registry), 0)

    def test_unknown_route(self):
        self.assertEqual(self.client.get('/api/ltcheck/nope').status_code, 404)


if __name__ == '__main__':
    unittest.main(verbosity=2)
