# Copyright (C) 2025 ByteDance Inc.
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#      http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.


import logging
import os
import sys
from typing import Optional

from symtrace import config

LOG_FORMAT = "%(asctime)s %(levelname)s [%(module)s.%(funcName)s] %(message)s"
LOG_FILE_NAME = "symtrace.log"

logger = logging.getLogger("symtrace")


def _find_handler(name: str) -> Optional[logging.Handler]:
    for handler in logger.handlers:
        if handler.get_name() == name:
            return handler
    return None


def configure_logging(level: Optional[int] = None, log_dir: Optional[str] = None):
    """
    Send `symtrace` records to stderr and, when `log_dir` is given, to
    `<log_dir>/symtrace.log` as well. Calling it again only adjusts the
    level and adds handlers that are still missing.
    """
    formatter = logging.Formatter(LOG_FORMAT)

    if _find_handler("console") is None:
        console = logging.StreamHandler(sys.stderr)
        console.set_name("console")
        console.setFormatter(formatter)
        logger.addHandler(console)

    if log_dir:
        log_path = os.path.abspath(os.path.join(log_dir, LOG_FILE_NAME))
        if _find_handler(log_path) is None:
            file_handler = logging.FileHandler(log_path, encoding="utf-8")
            file_handler.set_name(log_path)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    logger.setLevel(level if level is not None else config.LOG_LEVEL)
    logger.disabled = not config.LOG_IS_OPEN
