"""Tests for :mod:`regicide_auth.app_logging`."""

import json
import logging
from io import StringIO
from unittest import TestCase

from pythonjsonlogger import jsonlogger

from regicide_auth.app_logging import setup_logger


class TestSetupLogger(TestCase):
    def setUp(self):
        root = logging.getLogger()
        self.handlers = list(root.handlers)
        self.level = root.level

    def tearDown(self):
        root = logging.getLogger()
        for handler in list(root.handlers):
            if handler not in self.handlers:
                root.removeHandler(handler)
        root.setLevel(self.level)

    def json_handlers(self):
        return [handler for handler in logging.getLogger().handlers
                if isinstance(handler.formatter, jsonlogger.JsonFormatter)]

    def test_single_handler(self):
        """Calling again only changes the level."""
        setup_logger()
        logger = setup_logger('DEBUG')
        self.assertEqual(len(self.json_handlers()), 1)
        self.assertEqual(logger.level, logging.DEBUG)

    def test_json_output(self):
        setup_logger()
        stream = StringIO()
        handler = self.json_handlers()[0]
        handler.setStream(stream)
        logging.getLogger('regicide_auth.test').info('Created %s', 'accounts')
        record = json.loads(stream.getvalue().splitlines()[-1])
        self.assertEqual(record['message'], 'Created accounts')
        self.assertEqual(record['level'], 'INFO')
        self.assertEqual(record['name'], 'regicide_auth.test')
        self.assertIn('timestamp', record)
