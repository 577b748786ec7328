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

import os
from typing import Iterable, Optional, Sequence

from symtrace.lib_mappings import LibMappingOpQueue
from symtrace.logger import logger
from symtrace.model import LibMappingInfo, LibMappingOp
from symtrace.util import open_file_with_fallback


def parse_perf_map_lines(lines: Iterable[str], map_name: str, category=None) -> LibMappingOpQueue:
    """
    Each line is `START SIZE NAME` with hex START and SIZE. Every symbol
    becomes its own mapping, present from the beginning of the recording.
    """
    queue = LibMappingOpQueue()

    for line_no, line in enumerate(lines, 1):
        line = line.strip()
        if not line:
            continue

        fields = line.split(" ", 2)
        if len(fields) != 3:
            logger.warning("%s:%d: skipping malformed line '%s'", map_name, line_no, line)
            continue

        start_str, size_str, symbol = fields

        try:
            start = int(start_str, 16)
            size = int(size_str, 16)
        except ValueError:
            logger.warning("%s:%d: skipping malformed line '%s'", map_name, line_no, line)
            continue

        if size == 0:
            continue

        info = LibMappingInfo(map_name, map_name, category, symbol)
        queue.push(LibMappingOp.add(0, start, start + size, 0, info))

    return queue


def get_perf_map_mappings(
    perf_map_file: str, lookup_dirs: Optional[Sequence[str]] = None, category=None
) -> LibMappingOpQueue:
    fp, true_path = open_file_with_fallback(perf_map_file, lookup_dirs)

    with fp:
        return parse_perf_map_lines(fp, os.path.basename(true_path), category)
