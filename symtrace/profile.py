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
from typing import Dict, Iterable, List, Optional, Union

from symtrace import config
from symtrace.model import CategoryColor, CounterCategory, FrameInfo, FrameKind, GraphColor, MarkerHandle


class MarkerFieldFormat(Enum):
    STRING = "string"
    INTEGER = "integer"
    DECIMAL = "decimal"
    DURATION = "duration"
    BYTES = "bytes"

    def is_string(self) -> bool:
        return self == MarkerFieldFormat.STRING


class MarkerLocation(Enum):
    MARKER_CHART = "marker-chart"
    MARKER_TABLE = "marker-table"


class MarkerGraphType(Enum):
    LINE = "line"


class MarkerFieldSchema:
    def __init__(self, key: str, label: str, format: MarkerFieldFormat, searchable: bool = True):
        self.key = key
        self.label = label
        self.format = format
        self.searchable = searchable


class MarkerStaticField:
    def __init__(self, label: str, value: str):
        self.label = label
        self.value = value


class MarkerGraph:
    def __init__(self, key: str, graph_type: MarkerGraphType, color: Optional[GraphColor] = None):
        self.key = key
        self.graph_type = graph_type
        self.color = color


class MarkerSchema:

    def __init__(
        self,
        type_name: str,
        locations: List[MarkerLocation],
        fields: List[MarkerFieldSchema],
        chart_label: Optional[str] = None,
        tooltip_label: Optional[str] = None,
        table_label: Optional[str] = None,
        static_fields: Optional[List[MarkerStaticField]] = None,
        graphs: Optional[List[MarkerGraph]] = None,
    ):
        self.type_name = type_name
        self.locations = locations
        self.fields = fields
        self.chart_label = chart_label
        self.tooltip_label = tooltip_label
        self.table_label = table_label
        self.static_fields = static_fields or []
        self.graphs = graphs or []


class MarkerTiming:

    def __init__(self, start: int, end: Optional[int] = None):
        if end is not None and end < start:
            raise ValueError(f"marker ends before it starts: {start} > {end}")
        self.start = start
        self.end = end

    @staticmethod
    def instant(timestamp: int):
        return MarkerTiming(timestamp)

    @staticmethod
    def interval(start: int, end: int):
        return MarkerTiming(start, end)

    def is_instant(self) -> bool:
        return self.end is None


class Category:
    def __init__(self, name: str, color: CategoryColor):
        self.name = name
        self.color = color


class Process:
    def __init__(self, pid: int, name: str):
        self.pid = pid
        self.name = name
        self.threads: List[int] = []


class Thread:

    def __init__(self, process: int, tid: int, name: str, is_main: bool):
        self.process = process
        self.tid = tid
        self.name = name
        self.is_main = is_main
        self.samples: List[ProfileSample] = []
        self.markers: List[ProfileMarker] = []


class ProfileFrame:
    """A resolved frame as kept by the profile. `lib` and `label` are string handles."""

    def __init__(
        self,
        kind: FrameKind,
        category: int,
        address: int,
        lib: Optional[int],
        relative_address: Optional[int],
        label: Optional[int],
    ):
        self.kind = kind
        self.category = category
        self.address = address
        self.lib = lib
        self.relative_address = relative_address
        self.label = label

    def is_resolved(self) -> bool:
        return self.lib is not None


class ProfileSample:
    def __init__(self, timestamp: int, frames: List[ProfileFrame], cpu_delta: int, weight: int):
        self.timestamp = timestamp
        self.frames = frames
        self.cpu_delta = cpu_delta
        self.weight = weight


class ProfileMarker:

    def __init__(
        self,
        timing: MarkerTiming,
        name: int,
        category: int,
        marker_type: int,
        field_values: List[Union[int, float]],
    ):
        self.timing = timing
        self.name = name
        self.category = category
        self.marker_type = marker_type
        # string fields hold string handles, the rest hold numbers
        self.field_values = field_values
        self.stack: Optional[List[ProfileFrame]] = None


class CounterTrack:

    def __init__(
        self,
        process: int,
        name: str,
        category: CounterCategory,
        description: str,
        color: Optional[GraphColor],
    ):
        self.process = process
        self.name = name
        self.category = category
        self.description = description
        self.color = color
        self.samples: List[tuple] = []


class AutoIncrease:
    def __init__(self):
        self.val = -1

    def get(self):
        self.val += 1
        return self.val


class Profile:
    """
    In-memory profile that collects processed samples, markers and
    counters. Strings, categories and marker schemas are deduplicated by
    key, so handles can be shared between processes of the same profile.
    """

    OTHER_CATEGORY = 0

    def __init__(self, product: str = "symtrace", interval_ns: int = 1_000_000):
        self.product = product
        self.interval_ns = interval_ns

        self.strings: List[str] = []
        self.string_index: Dict[str, int] = {}

        self.categories: List[Category] = []
        self.category_index: Dict[str, int] = {}

        self.marker_schemas: List[MarkerSchema] = []
        self.marker_schema_index: Dict[str, int] = {}

        self.processes: List[Process] = []
        self.threads: List[Thread] = []
        self.counters: List[CounterTrack] = []

        self._thread_ids = AutoIncrease()
        self.add_category(config.OTHER_CATEGORY_NAME, CategoryColor.GREY)

    def intern_string(self, s: str) -> int:
        handle = self.string_index.get(s)

        if handle is None:
            handle = len(self.strings)
            self.strings.append(s)
            self.string_index[s] = handle

        return handle

    def get_string(self, handle: int) -> str:
        return self.strings[handle]

    def add_category(self, name: str, color: CategoryColor) -> int:
        handle = self.category_index.get(name)

        if handle is None:
            handle = len(self.categories)
            self.categories.append(Category(name, color))
            self.category_index[name] = handle

        return handle

    def register_marker_type(self, schema: MarkerSchema) -> int:
        handle = self.marker_schema_index.get(schema.type_name)

        if handle is None:
            handle = len(self.marker_schemas)
            self.marker_schemas.append(schema)
            self.marker_schema_index[schema.type_name] = handle

        return handle

    def add_process(self, pid: int, name: str) -> int:
        self.processes.append(Process(pid, name))
        return len(self.processes) - 1

    def add_thread(self, process: int, tid: int, name: str = "", is_main: bool = False) -> int:
        handle = self._thread_ids.get()
        self.threads.append(Thread(process, tid, name, is_main))
        self.processes[process].threads.append(handle)
        return handle

    def intern_frame(self, frame: FrameInfo) -> ProfileFrame:
        lib = self.intern_string(frame.lib.name) if frame.lib is not None else None
        label = self.intern_string(frame.label) if frame.label is not None else None
        return ProfileFrame(frame.kind, frame.category, frame.address, lib, frame.relative_address, label)

    def add_sample(self, thread: int, timestamp: int, frames: Iterable[FrameInfo], cpu_delta: int, weight: int = 1):
        profile_frames = [self.intern_frame(frame) for frame in frames]
        self.threads[thread].samples.append(ProfileSample(timestamp, profile_frames, cpu_delta, weight))

    def add_marker(self, thread: int, timing: MarkerTiming, marker) -> MarkerHandle:
        """
        `marker` provides marker_type/name/category and indexed field
        accessors; the values are read once, following its schema.
        """
        marker_type = marker.marker_type(self)
        schema = self.marker_schemas[marker_type]
        field_values: List[Union[int, float]] = []

        for idx, field in enumerate(schema.fields):
            if field.format.is_string():
                field_values.append(marker.string_field_value(idx))
            else:
                field_values.append(marker.number_field_value(idx))

        markers = self.threads[thread].markers
        markers.append(ProfileMarker(timing, marker.name(self), marker.category(self), marker_type, field_values))

        return MarkerHandle(thread, len(markers) - 1)

    def set_marker_stack(self, thread: int, marker_handle: MarkerHandle, frames: Iterable[FrameInfo]):
        if marker_handle.thread != thread:
            raise ValueError(f"marker belongs to thread {marker_handle.thread}, not {thread}")
        self.threads[thread].markers[marker_handle.index].stack = [self.intern_frame(frame) for frame in frames]

    def add_counter(
        self,
        process: int,
        name: str,
        category: CounterCategory,
        description: str,
        color: Optional[GraphColor] = None,
    ) -> int:
        self.counters.append(CounterTrack(process, name, category, description, color))
        return len(self.counters) - 1

    def add_counter_sample(self, counter: int, timestamp: int, value: float, number_of_operations: int):
        self.counters[counter].samples.append((timestamp, value, number_of_operations))
