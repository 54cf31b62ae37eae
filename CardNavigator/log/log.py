import collections
import logging
import sys
from typing import Deque, List, NamedTuple, Optional

from PySide6.QtCore import QtMsgType, qInstallMessageHandler

LOG_LEVEL = logging.DEBUG
LOG_FORMAT = '[%(asctime)s] <%(module)s> %(levelname)s:  %(message)s'
LOG_DATEFMT = '%Y-%m-%d %H:%M:%S'

NOTICE_CAPACITY = 200

LEVELS = {
    'DEBUG': logging.DEBUG,
    'INFO': logging.INFO,
    'WARNING': logging.WARNING,
    'ERROR': logging.ERROR,
    'CRITICAL': logging.CRITICAL,
}

QT_LEVELS = {
    QtMsgType.QtDebugMsg: logging.DEBUG,
    QtMsgType.QtInfoMsg: logging.INFO,
    QtMsgType.QtWarningMsg: logging.WARNING,
    QtMsgType.QtCriticalMsg: logging.ERROR,
    QtMsgType.QtFatalMsg: logging.CRITICAL,
}


def set_logging_level(level):
    """
    Sets the logging level for the root logger and its handlers.

    Args:
        level (int | str): A standard logging level, or its name (``'INFO'``).
    """
    if isinstance(level, str):
        if level.upper() not in LEVELS:
            raise ValueError(f'Unknown logging level name "{level}".')
        level = LEVELS[level.upper()]
    if isinstance(level, bool) or level not in LEVELS.values():
        raise ValueError('Invalid logging level. Use one of the standard logging levels, e.g., logging.DEBUG.')

    logging.getLogger().setLevel(level)
    for handler in logging.getLogger().handlers:
        handler.setLevel(level)


def qt_message_handler(mode, context, message):
    """
    Converts Qt messages to standard Python logging.
    """
    level = QT_LEVELS.get(mode, logging.WARNING)
    logging.getLogger('Qt').log(level, message.strip())
    if mode == QtMsgType.QtFatalMsg:
        sys.exit(1)


def setup_logging(enable_stream_handler=True, enable_qt_handler=True, log_level=LOG_LEVEL):
    """
    Configures the root logger and optionally installs the Qt message handler.

    A :class:`NoticeHandler` is always installed so the engine can report recent
    warnings and errors, such as why a preset could not be applied.

    Args:
        enable_stream_handler (bool): Also print records to stdout.
        enable_qt_handler (bool): Route Qt's own messages through the root logger.
        log_level (int): Level applied to the root logger and every handler.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Clear all handlers to avoid formatting conflicts
    root_logger.handlers.clear()

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)

    if enable_stream_handler:
        stream_handler = logging.StreamHandler(sys.stdout)
        stream_handler.setFormatter(formatter)
        stream_handler.setLevel(log_level)
        root_logger.addHandler(stream_handler)

    notice_handler = NoticeHandler()
    notice_handler.setFormatter(formatter)
    notice_handler.setLevel(log_level)
    root_logger.addHandler(notice_handler)

    if enable_qt_handler:
        qInstallMessageHandler(qt_message_handler)


def get_notice_handler() -> Optional['NoticeHandler']:
    """
    Returns the NoticeHandler installed on the root logger, or None.
    """
    return next((h for h in logging.getLogger().handlers if isinstance(h, NoticeHandler)), None)


class Notice(NamedTuple):
    level: int
    module: str
    message: str


class NoticeHandler(logging.Handler):
    """
    Keeps the most recent log records in memory, oldest first.

    Only the last ``capacity`` records are kept, so a long-running session does not
    grow without bound.
    """

    def __init__(self, capacity: int = NOTICE_CAPACITY) -> None:
        super().__init__()
        self.notices: Deque[Notice] = collections.deque(maxlen=capacity)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.notices.append(Notice(record.levelno, record.module, self.format(record)))
        except Exception:
            self.handleError(record)

    def get_logs(self, level: int = logging.NOTSET) -> List[str]:
        """Return the formatted messages at ``level`` or above."""
        return [n.message for n in self.notices if n.level >= level]

    def clear_logs(self) -> None:
        self.notices.clear()
