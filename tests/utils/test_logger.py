import logging
from logging.handlers import RotatingFileHandler
import sys

from streamcrew.util.logger import (
    ROOT_LOGGER_NAME,
    ColorFormatter,
    PromptToolkitHandler,
    get_log_filepath,
    get_logger,
    handle_exception,
    should_use_color,
)


class DummyStream:
    def __init__(self, tty: bool):
        self.tty = tty

    def write(self, msg):
        pass

    def isatty(self):
        return self.tty


class ListHandler(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records = []

    def emit(self, record):
        self.records.append(record)


def test_get_logger_is_child_of_streamcrew():
    logger = get_logger("test_logger")
    assert logger.name == "streamcrew.test_logger"
    assert logger.propagate is True


def test_root_handlers_attached_once():
    get_logger("one")
    get_logger("two")
    root = logging.getLogger(ROOT_LOGGER_NAME)
    assert root.propagate is False
    assert sum(isinstance(h, PromptToolkitHandler) for h in root.handlers) == 1
    assert sum(isinstance(h, RotatingFileHandler) for h in root.handlers) == 1


def test_foreign_handler_does_not_block_setup():
    root = logging.getLogger(ROOT_LOGGER_NAME)
    ours = [h for h in root.handlers if isinstance(h, (PromptToolkitHandler, RotatingFileHandler))]
    foreign = ListHandler()
    for handler in ours:
        root.removeHandler(handler)
    root.addHandler(foreign)
    try:
        get_logger("after_foreign")
        assert sum(isinstance(h, PromptToolkitHandler) for h in root.handlers) == 1
        assert sum(isinstance(h, RotatingFileHandler) for h in root.handlers) == 1
    finally:
        root.removeHandler(foreign)
        for handler in root.handlers[:]:
            if isinstance(handler, (PromptToolkitHandler, RotatingFileHandler)):
                root.removeHandler(handler)
                handler.close()
        for handler in ours:
            root.addHandler(handler)


def test_color_formatter_applies_color():
    formatter = ColorFormatter("%(levelname)s %(message)s")
    record = logging.LogRecord("test", logging.ERROR, "", 0, "error occurred", None, None)
    formatted = formatter.format(record)
    assert formatted.startswith("\033[31m")
    assert formatted.endswith("\033[0m")


def test_color_formatter_plain_when_disabled():
    formatter = ColorFormatter("%(levelname)s %(message)s", use_color=False)
    record = logging.LogRecord("test", logging.ERROR, "", 0, "error occurred", None, None)
    assert formatter.format(record) == "ERROR error occurred"


def test_should_use_color_follows_tty(monkeypatch):
    monkeypatch.setattr(sys, "stderr", DummyStream(True))
    assert should_use_color() is True
    monkeypatch.setattr(sys, "stderr", DummyStream(False))
    assert should_use_color() is False


def test_log_filepath_is_daily():
    path = get_log_filepath()
    assert path.name.startswith("streamcrew-")
    assert path.suffix == ".log"


def test_handle_exception_logs_uncaught():
    handler = ListHandler()
    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.addHandler(handler)
    try:
        try:
            raise ValueError("kaboom")
        except ValueError:
            handle_exception(*sys.exc_info())
    finally:
        root.removeHandler(handler)

    assert [r.getMessage() for r in handler.records] == ["Uncaught exception"]
    assert handler.records[0].exc_info[0] is ValueError
