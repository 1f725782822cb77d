import logging

import pytest

from logsink import Level, LogStore, StoreHandler, setup_logging
from logsink.logging_setup import level_for


@pytest.fixture
def app_logger():
  logger = logging.getLogger("logsink-tests.app")
  logger.setLevel(logging.DEBUG)
  logger.propagate = False
  yield logger
  for handler in list(logger.handlers):
    if isinstance(handler, StoreHandler):
      logger.removeHandler(handler)
  logger.propagate = True


def test_level_mapping():
  assert level_for(logging.DEBUG) is Level.DEBUG
  assert level_for(5) is Level.DEBUG
  assert level_for(logging.INFO) is Level.INFO
  assert level_for(logging.WARNING) is Level.WARN
  assert level_for(logging.ERROR) is Level.ERROR
  assert level_for(logging.CRITICAL) is Level.ERROR


def test_setup_logging_attaches_handler_and_writes_records(store, app_logger):
  setup_logging(store, app_logger)

  app_logger.debug("starting %s", "up")
  app_logger.warning("careful", extra={"data": {"disk": "90%"}})

  warn, debug = store.get_messages(ctxs=["logsink-tests.app"])
  assert debug.level == Level.DEBUG
  assert debug.msg == "starting up"
  assert debug.data is None
  assert warn.level == Level.WARN
  assert warn.data == {"disk": "90%"}


def test_setup_logging_does_not_duplicate_handlers(store, app_logger):
  first = setup_logging(store, app_logger)
  second = setup_logging(store, app_logger)
  assert first is second
  assert sum(isinstance(h, StoreHandler) for h in app_logger.handlers) == 1


def test_handler_level_is_respected(store, app_logger):
  setup_logging(store, app_logger, level=logging.ERROR)
  app_logger.info("ignored")
  app_logger.critical("kept")

  (record,) = store.get_messages(ctxs=["logsink-tests.app"])
  assert record.msg == "kept"
  assert record.level == Level.ERROR


def test_exception_logging_includes_error_context(store, app_logger):
  setup_logging(store, app_logger)

  try:
    raise ValueError("boom")
  except ValueError:
    app_logger.exception("failed", extra={"data": {"request": "r-1"}})

  (record,) = store.get_messages(ctxs=["logsink-tests.app"])
  assert record.level == Level.ERROR
  assert record.data["request"] == "r-1"
  assert record.data["exception_type"] == "ValueError"
  assert "ValueError: boom" in record.data["stacktrace"]


def test_exception_with_scalar_data_is_wrapped(store, app_logger):
  setup_logging(store, app_logger)

  try:
    raise KeyError("k")
  except KeyError:
    app_logger.error("lookup", exc_info=True, extra={"data": 42})

  (record,) = store.get_messages(ctxs=["logsink-tests.app"])
  assert record.data["data"] == 42
  assert record.data["exception_type"] == "KeyError"


def test_write_failures_go_to_handle_error(store, app_logger, monkeypatch):
  handler = setup_logging(store, app_logger)
  failures = []
  monkeypatch.setattr(handler, "handleError", lambda record: failures.append(record))

  app_logger.info("unserializable", extra={"data": object()})

  assert len(failures) == 1
  assert store.get_messages(ctxs=["logsink-tests.app"]) == []


@pytest.fixture
def debug_root():
  root = logging.getLogger()
  previous = root.level
  root.setLevel(logging.DEBUG)
  yield root
  for handler in list(root.handlers):
    if isinstance(handler, StoreHandler):
      root.removeHandler(handler)
  root.setLevel(previous)


def test_closing_store_with_root_handler_is_quiet(debug_root, capsys):
  s = LogStore.open(max_age_ms=0)
  setup_logging(s)

  s.close()
  logging.getLogger("after-close").error("dropped")

  assert "Logging error" not in capsys.readouterr().err


def test_handler_drops_records_once_store_is_closed(app_logger, monkeypatch):
  s = LogStore.open(max_age_ms=0)
  handler = setup_logging(s, app_logger)
  failures = []
  monkeypatch.setattr(handler, "handleError", lambda record: failures.append(record))

  s.close()
  app_logger.warning("too late")

  assert failures == []
