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

from enum import Enum
from typing import Dict, List, Optional, Union


class FrameKind(Enum):
    USER = "user"
    KERNEL = "kernel"
    LABEL = "label"


class StackFrame:

    def __init__(self, kind: FrameKind, address: int = 0, label: str = ""):
        self.kind = kind
        self.address = address
        self.label = label

    @staticmethod
    def user(address: int):
        return StackFrame(FrameKind.USER, address)

    @staticmethod
    def kernel(address: int):
        return StackFrame(FrameKind.KERNEL, address)

    @staticmethod
    def synthetic(label: str):
        return StackFrame(FrameKind.LABEL, 0, label)

    def key(self):
        return (self.kind, self.address, self.label)

    def __eq__(self, other):
        return isinstance(other, StackFrame) and self.key() == other.key()

    def __hash__(self):
        return hash(self.key())

    def __repr__(self):
        if self.kind == FrameKind.LABEL:
            return f"StackFrame(label={self.label!r})"
        return f"StackFrame({self.kind.value}, {hex(self.address)})"


class CallstackNode:
    def __init__(self, frame: StackFrame, parent: Optional[int], stack_id: int):
        self.stack_id = stack_id
        self.frame = frame
        self.parent = parent


class LibMappingInfo:

    def __init__(self, name: str, path: str = "", category=None, symbol: Optional[str] = None):
        self.name = name
        self.path = path or name
        # category handle overriding the user category, e.g. for JIT code
        self.category = category
        self.symbol = symbol

    def __repr__(self):
        return f"LibMappingInfo({self.name!r})"


class AddLibMapping:

    def __init__(self, start: int, end: int, relative_address_at_start: int, info: LibMappingInfo):
        if end <= start:
            raise ValueError(f"empty mapping range {hex(start)}..{hex(end)}")
        self.start = start
        self.end = end
        self.relative_address_at_start = relative_address_at_start
        self.info = info


class RemoveLibMapping:

    def __init__(self, start: int):
        self.start = start


class LibMappingOp:

    def __init__(self, timestamp: int, op: Union[AddLibMapping, RemoveLibMapping]):
        self.timestamp = timestamp
        self.op = op

    @staticmethod
    def add(timestamp: int, start: int, end: int, relative_address_at_start: int, info: LibMappingInfo):
        return LibMappingOp(timestamp, AddLibMapping(start, end, relative_address_at_start, info))

    @staticmethod
    def remove(timestamp: int, start: int):
        return LibMappingOp(timestamp, RemoveLibMapping(start))


class FrameInfo:
    """A resolved frame as stored in the output profile."""

    def __init__(
        self,
        kind: FrameKind,
        category,
        address: int = 0,
        lib: Optional[LibMappingInfo] = None,
        relative_address: Optional[int] = None,
        label: Optional[str] = None,
    ):
        self.kind = kind
        self.category = category
        self.address = address
        self.lib = lib
        self.relative_address = relative_address
        self.label = label

    def is_resolved(self) -> bool:
        return self.lib is not None

    def __repr__(self):
        if self.lib is not None:
            return f"FrameInfo({self.lib.name}+{hex(self.relative_address)})"
        return f"FrameInfo({self.kind.value}, {hex(self.address)}, {self.label!r})"


class SampleData:
    def __init__(self, cpu_delta: int, weight: int = 1):
        self.cpu_delta = cpu_delta
        self.weight = weight


class MarkerHandle:
    def __init__(self, thread: int, index: int):
        self.thread = thread
        self.index = index


class RawSample:

    def __init__(
        self,
        thread: int,
        timestamp: int,
        timestamp_mono: int,
        stack: Optional[int],
        payload: Union[SampleData, MarkerHandle],
        extra_label_frame: Optional[str] = None,
    ):
        self.thread = thread
        self.timestamp = timestamp
        self.timestamp_mono = timestamp_mono
        self.stack = stack
        self.payload = payload
        self.extra_label_frame = extra_label_frame


def raw_sample_key(sample: RawSample):
    return sample.timestamp_mono


class TracingTimings:
    """Busy and idle time of a span, in nanoseconds."""

    def __init__(self, time_busy: int = 0, time_idle: int = 0):
        self.time_busy = time_busy
        self.time_idle = time_idle

    @property
    def total(self) -> int:
        return self.time_busy + self.time_idle

    def __add__(self, other):
        return TracingTimings(self.time_busy + other.time_busy, self.time_idle + other.time_idle)

    def __iadd__(self, other):
        self.time_busy += other.time_busy
        self.time_idle += other.time_idle
        return self

    def __eq__(self, other):
        return isinstance(other, TracingTimings) and \
            (self.time_busy, self.time_idle) == (other.time_busy, other.time_idle)

    def __repr__(self):
        return f"TracingTimings(busy={self.time_busy}ns, idle={self.time_idle}ns)"


class SpanType(Enum):
    TOTAL = "Total"
    RUNNING = "Running"

    def __str__(self):
        return self.value


class MarkerSpan:

    def __init__(
        self,
        span_type: SpanType,
        end_time: int,
        timings: TracingTimings,
        category: str,
        profiler_label: Optional[str] = None,
        stats_label: Optional[str] = None,
    ):
        self.span_type = span_type
        self.end_time = end_time
        self.timings = timings
        self.category = category
        self.profiler_label = profiler_label
        self.stats_label = stats_label


class EventOrSpanMarker:

    def __init__(
        self,
        start_time: int,
        message: str,
        target: str,
        extra_fields: Dict[str, str],
        marker_data: Optional[MarkerSpan] = None,
    ):
        self.start_time = start_time
        self.message = message
        self.target = target
        self.extra_fields = extra_fields
        # None for a plain event
        self.marker_data = marker_data

    @property
    def is_span(self) -> bool:
        return self.marker_data is not None

    def __repr__(self):
        kind = self.marker_data.span_type if self.is_span else "Event"
        return f"EventOrSpanMarker({kind}, {self.message!r}, start={self.start_time})"


def marker_start_key(marker: EventOrSpanMarker):
    return marker.start_time


class MarkerOnThread:
    def __init__(self, thread: int, event_or_span: EventOrSpanMarker):
        self.thread = thread
        self.event_or_span = event_or_span


class GraphColor(Enum):
    BLUE = "blue"
    GREEN = "green"
    GREY = "grey"
    INK = "ink"
    MAGENTA = "magenta"
    ORANGE = "orange"
    PURPLE = "purple"
    RED = "red"
    TEAL = "teal"
    YELLOW = "yellow"


class CategoryColor(Enum):
    TRANSPARENT = "transparent"
    BLUE = "blue"
    GREEN = "green"
    GREY = "grey"
    ORANGE = "orange"
    PURPLE = "purple"
    RED = "red"
    YELLOW = "yellow"


class CounterCategory(Enum):
    MEMORY = "Memory"
    BANDWIDTH = "Bandwidth"
    CPU = "CPU"
    CUSTOM = "Custom"


class CounterSample:

    def __init__(self, timestamp: int, value: float, modification_count: int):
        self.timestamp = timestamp
        self.value = value
        self.modification_count = modification_count

    def __repr__(self):
        return f"CounterSample({self.timestamp}, {self.value}, {self.modification_count})"


class Counter:

    def __init__(
        self,
        name: str,
        category: CounterCategory,
        description: str,
        color: Optional[GraphColor],
        samples: Optional[List[CounterSample]] = None,
    ):
        self.name = name
        self.category = category
        self.description = description
        self.color = color
        self.samples: List[CounterSample] = samples if samples is not None else []


class CounterOnThread:
    def __init__(self, thread: int, counter: Counter):
        self.thread = thread
        self.counter = counter
