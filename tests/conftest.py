import pytest

from symtrace.logger import logger


@pytest.fixture(autouse=True)
def restore_logger():
    handlers, level = list(logger.handlers), logger.level
    yield
    for handler in list(logger.handlers):
        if handler not in handlers:
            logger.removeHandler(handler)
            handler.close()
    logger.setLevel(level)
