"""
Tests for structured logging and security event logging.
"""
import json
import logging
import sys
from datetime import datetime, timedelta
from unittest.mock import patch

from django.test import SimpleTestCase

from apps.core.logging import JSONFormatter, SecurityLogger


class JSONFormatterTestCase(SimpleTestCase):
    """Test JSON log formatting."""

    def setUp(self):
        self.formatter = JSONFormatter()

    def make_record(self, msg='Test message', level=logging.INFO, exc_info=None, **extra):
        record = logging.LogRecord(
            name='apps.authz.cache',
            level=level,
            pathname='cache.py',
            lineno=42,
            msg=msg,
            args=(),
            exc_info=exc_info,
        )
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_basic_log_format(self):
        data = json.loads(self.formatter.format(self.make_record()))

        self.assertEqual(data['level'], 'INFO')
        self.assertEqual(data['logger'], 'apps.authz.cache')
        self.assertEqual(data['message'], 'Test message')
        self.assertEqual(data['line'], 42)
        self.assertEqual(datetime.fromisoformat(data['timestamp']).utcoffset(), timedelta(0))

    def test_extra_fields_are_included(self):
        record = self.make_record(principal_id='p1', principal_ids=['p1', 'p2'])

        data = json.loads(self.formatter.format(record))

        self.assertEqual(data['principal_id'], 'p1')
        self.assertEqual(data['principal_ids'], ['p1', 'p2'])

    def test_unserializable_extra_is_stringified(self):
        record = self.make_record(scope=object())

        data = json.loads(self.formatter.format(record))

        self.assertIsInstance(data['scope'], str)

    def test_exception_info(self):
        try:
            raise ValueError('boom')
        except ValueError:
            record = self.make_record(level=logging.ERROR, exc_info=sys.exc_info())

        data = json.loads(self.formatter.format(record))

        self.assertEqual(data['exception']['type'], 'ValueError')
        self.assertEqual(data['exception']['message'], 'boom')


class SecurityLoggerTestCase(SimpleTestCase):
    """Test security event logging."""

    def test_permission_denied_logged_at_info(self):
        with self.assertLogs('security', level='INFO') as logs:
            SecurityLogger.log_permission_denied('p1', 'order:delete', 'biz-1')

        record = logs.records[0]
        self.assertEqual(record.levelno, logging.INFO)
        self.assertEqual(record.event_type, 'permission_denied')
        self.assertEqual(record.principal_id, 'p1')
        self.assertEqual(record.target_business_id, 'biz-1')

    @patch('apps.core.logging.sentry_sdk')
    def test_out_of_scope_is_critical(self, sentry):
        with self.assertLogs('security', level='WARNING') as logs:
            SecurityLogger.log_out_of_scope('p1', 'order:read', 'biz-1', 'biz-2')

        record = logs.records[0]
        self.assertEqual(record.event_type, 'cross_tenant_access_denied')
        self.assertEqual(record.principal_business_id, 'biz-1')
        self.assertEqual(record.target_business_id, 'biz-2')
        sentry.capture_message.assert_called_once()

    @patch('apps.core.logging.sentry_sdk')
    def test_ordinary_events_not_sent_to_sentry(self, sentry):
        with self.assertLogs('security', level='WARNING'):
            SecurityLogger.log_inactive_principal('p1', 'order:read')

        sentry.capture_message.assert_not_called()
