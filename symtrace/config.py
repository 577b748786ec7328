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

# frames kept per sample, including the truncation frame
MAX_STACK_DEPTH = 1024

TRUNCATED_STACK_LABEL = "(stack truncated)"
UNKNOWN_FRAME_LABEL = "unknown"

USER_CATEGORY_NAME = "User"
KERNEL_CATEGORY_NAME = "Kernel"
LOGGING_CATEGORY_NAME = "(Logging)"
OTHER_CATEGORY_NAME = "Other"

NEW_CLOSE_KEYWORDS = ("new", "close")
ENTER_EXIT_KEYWORDS = ("enter", "exit")

LABEL_ID_MAX_LEN = 8

DEFAULT_EXPORT_SUFFIX = "_profile.json"

LOG_IS_OPEN = True
LOG_LEVEL = logging.INFO
