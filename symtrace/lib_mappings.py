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

import heapq
from typing import Iterable, List, Optional, Tuple

import sortedcontainers

from symtrace.logger import logger
from symtrace.model import AddLibMapping, LibMappingInfo, LibMappingOp, RemoveLibMapping


class LibMapping:

    def __init__(self, start: int, end: int, relative_address_at_start: int, info: LibMappingInfo):
        self.start = start
        self.end = end
        self.relative_address_at_start = relative_address_at_start
        self.info = info

    def contains(self, address: int) -> bool:
        return self.start <= address < self.end

    def relative_address(self, address: int) -> int:
        return address - self.start + self.relative_address_at_start

    def __repr__(self):
        return f"LibMapping({hex(self.start)}..{hex(self.end)}, {self.info.name!r})"


class LibMappings:
    """Disjoint [start, end) address ranges keyed by start address."""

    def __init__(self):
        self.map = sortedcontainers.SortedDict()

    def __len__(self):
        return len(self.map)

    def add(self, start: int, end: int, relative_address_at_start: int, info: LibMappingInfo):
        # a remap at the same start replaces the old mapping; any other
        # mapping the new range overlaps is evicted so ranges stay disjoint
        for overlapping_start in self._overlapping_starts(start, end):
            if overlapping_start != start:
                evicted = self.map.pop(overlapping_start)
                logger.debug("evicting %s, overlapped by %s at %s", evicted, info.name, hex(start))

        self.map[start] = LibMapping(start, end, relative_address_at_start, info)

    def remove(self, start: int) -> Optional[LibMapping]:
        return self.map.pop(start, None)

    def lookup(self, address: int) -> Optional[LibMapping]:
        idx = self.map.bisect_right(address)

        if idx == 0:
            return None

        mapping: LibMapping = self.map.values()[idx - 1]

        if mapping.contains(address):
            return mapping

        return None

    def convert_address(self, address: int) -> Optional[Tuple[int, LibMappingInfo]]:
        mapping = self.lookup(address)

        if mapping is None:
            return None

        return mapping.relative_address(address), mapping.info

    def _overlapping_starts(self, start: int, end: int) -> List[int]:
        result: List[int] = []
        idx = self.map.bisect_right(start)

        if 0 < idx:
            prev: LibMapping = self.map.values()[idx - 1]
            if start < prev.end:
                result.append(prev.start)

        for key in self.map.irange(start, end, inclusive=(False, False)):
            result.append(key)

        return result


class LibMappingOpQueue:
    """Time-ordered (un)map operations from one source, consumed once."""

    def __init__(self, ops: Optional[Iterable[LibMappingOp]] = None):
        self.ops: List[LibMappingOp] = []
        self.cursor = 0

        for op in ops or []:
            self.push(op)

    def push(self, op: LibMappingOp):
        if self.ops and op.timestamp < self.ops[-1].timestamp:
            raise ValueError(
                f"lib mapping op at {op.timestamp} is older than the previous op at {self.ops[-1].timestamp}"
            )
        self.ops.append(op)

    def peek_timestamp(self) -> Optional[int]:
        if self.cursor < len(self.ops):
            return self.ops[self.cursor].timestamp
        return None

    def pop(self) -> LibMappingOp:
        op = self.ops[self.cursor]
        self.cursor += 1
        return op

    def __len__(self):
        return len(self.ops) - self.cursor


class LibMappingsHierarchy:
    """
    Merges one regular op queue and any number of auxiliary queues (JIT
    code-region logs, symbol-map files) into a single active mapping table.

    Ops are applied in (timestamp, registration order) order. The regular
    queue is always registered first, so it wins ties against auxiliary
    queues, and auxiliary queues win ties in the order they were added.
    """

    def __init__(self, regular_lib_mapping_op_queue: LibMappingOpQueue):
        self.mappings = LibMappings()
        self.queues: List[LibMappingOpQueue] = []
        self.heads: List[Tuple[int, int]] = []
        self.unmatched_remove_count = 0
        self._add_queue(regular_lib_mapping_op_queue)

    def add_jitdump_lib_mappings_ops(self, queue: LibMappingOpQueue):
        self._add_queue(queue)

    def add_perf_map_mappings(self, queue: LibMappingOpQueue):
        self._add_queue(queue)

    def _add_queue(self, queue: LibMappingOpQueue):
        priority = len(self.queues)
        self.queues.append(queue)
        self._push_head(priority)

    def _push_head(self, priority: int):
        timestamp = self.queues[priority].peek_timestamp()
        if timestamp is not None:
            heapq.heappush(self.heads, (timestamp, priority))

    def process_ops(self, timestamp: int):
        while self.heads and self.heads[0][0] <= timestamp:
            _, priority = heapq.heappop(self.heads)
            op = self.queues[priority].pop()
            self._apply(op)
            self._push_head(priority)

    def _apply(self, op: LibMappingOp):
        inner = op.op

        if isinstance(inner, AddLibMapping):
            self.mappings.add(inner.start, inner.end, inner.relative_address_at_start, inner.info)
        elif isinstance(inner, RemoveLibMapping):
            if self.mappings.remove(inner.start) is None:
                self.unmatched_remove_count += 1
                logger.debug("no mapping at %s to remove (ts %s)", hex(inner.start), op.timestamp)
        else:
            raise TypeError(f"unknown lib mapping op: {inner!r}")

    def resolve(self, address: int) -> Optional[LibMapping]:
        return self.mappings.lookup(address)

    def convert_address(self, address: int) -> Optional[Tuple[int, LibMappingInfo]]:
        return self.mappings.convert_address(address)
