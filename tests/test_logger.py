import logging

from symtrace import config
from symtrace.logger import LOG_FILE_NAME, configure_logging, logger


def test_log_dir_receives_records(tmp_path):
    configure_logging(logging.DEBUG, str(tmp_path))

    logger.debug("mapping evicted")
    for handler in logger.handlers:
        handler.flush()

    assert logger.level == logging.DEBUG
    assert "mapping evicted" in (tmp_path / LOG_FILE_NAME).read_text()


def test_repeated_configuration_does_not_duplicate_handlers(tmp_path):
    configure_logging(log_dir=str(tmp_path))
    count = len(logger.handlers)

    configure_logging(log_dir=str(tmp_path))

    assert len(logger.handlers) == count
    assert logger.level == config.LOG_LEVEL
