# tests/test_log.py
"""
Tests for CardNavigator.log.log
(covers NoticeHandler, the Qt bridge and the setup helpers).

Run:
    python -m unittest tests.test_log
"""
import logging
from typing import List

from PySide6.QtCore import QtMsgType

from CardNavigator.log.log import (
    NoticeHandler,
    get_notice_handler,
    qt_message_handler,
    set_logging_level,
    setup_logging,
)
from CardNavigator.status import status
from tests.base import BaseTestCase, mute_ui_signals


class LogModuleTests(BaseTestCase):
    """
    Each test starts with a root logger configured by
    setup_logging(enable_stream_handler=False, enable_qt_handler=False).
    """

    def setUp(self) -> None:
        super().setUp()
        logging.disable(logging.NOTSET)
        setup_logging(enable_stream_handler=False, enable_qt_handler=False, log_level=logging.DEBUG)

        self.root_logger = logging.getLogger()
        self.notices: NoticeHandler = get_notice_handler()

    def tearDown(self) -> None:
        set_logging_level(logging.DEBUG)
        super().tearDown()

    def test_setup_installs_notice_handler_only(self):
        self.assertEqual([type(h) for h in self.root_logger.handlers], [NoticeHandler])
        self.assertIs(get_notice_handler(), self.root_logger.handlers[0])

    def test_setup_with_stream_handler(self):
        setup_logging(enable_stream_handler=True, enable_qt_handler=False, log_level=logging.INFO)
        types = [type(h) for h in self.root_logger.handlers]
        self.assertIn(logging.StreamHandler, types)
        self.assertIn(NoticeHandler, types)
        self.assertEqual(self.root_logger.level, logging.INFO)

    def test_set_logging_level_updates_handlers(self):
        set_logging_level(logging.WARNING)
        self.assertEqual(self.root_logger.level, logging.WARNING)
        for h in self.root_logger.handlers:
            self.assertEqual(h.level, logging.WARNING)

    def test_set_logging_level_accepts_names(self):
        set_logging_level('error')
        self.assertEqual(self.root_logger.level, logging.ERROR)

    def test_set_logging_level_rejects_invalid(self):
        for level in ('LOUD', 42, True, None):
            with self.assertRaises(ValueError):
                set_logging_level(level)  # type: ignore[arg-type]

    def test_notices_store_and_filter(self):
        self.notices.clear_logs()
        logging.debug('resolved folder')
        logging.error('preset unreadable')
        self.assertEqual(len(self.notices.notices), 2)
        errors: List[str] = self.notices.get_logs(logging.ERROR)
        self.assertEqual(len(errors), 1)
        self.assertIn('preset unreadable', errors[0])
        self.assertEqual(self.notices.notices[-1].level, logging.ERROR)
        self.notices.clear_logs()
        self.assertEqual(self.notices.get_logs(), [])

    def test_notices_are_bounded(self):
        handler = NoticeHandler(capacity=3)
        handler.setFormatter(logging.Formatter('%(message)s'))
        for i in range(5):
            handler.handle(logging.makeLogRecord({'msg': f'record {i}', 'levelno': logging.INFO}))
        self.assertEqual(handler.get_logs(), ['record 2', 'record 3', 'record 4'])

    def test_status_exception_is_logged(self):
        self.notices.clear_logs()
        with mute_ui_signals():
            status.PresetNotFoundException('"travel"')
        errors = self.notices.get_logs(logging.ERROR)
        self.assertEqual(len(errors), 1)
        self.assertIn('"travel"', errors[0])

    def test_qt_message_handler_maps_levels(self):
        self.notices.clear_logs()
        qt_message_handler(QtMsgType.QtDebugMsg, None, 'Qt debug ')
        qt_message_handler(QtMsgType.QtWarningMsg, None, 'Qt warning')
        qt_message_handler(QtMsgType.QtCriticalMsg, None, 'Qt critical')
        self.assertTrue(any('Qt debug' in m for m in self.notices.get_logs(logging.DEBUG)))
        self.assertTrue(any('Qt warning' in m for m in self.notices.get_logs(logging.WARNING)))
        self.assertTrue(any('Qt critical' in m for m in self.notices.get_logs(logging.ERROR)))

    def test_qt_message_handler_fatal_exits(self):
        with self.assertRaises(SystemExit):
            qt_message_handler(QtMsgType.QtFatalMsg, None, 'fatal')
