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

from typing import Dict, List, Optional, Sequence, Tuple

from symtrace import config
from symtrace import util
from symtrace.lib_mappings import LibMappingOpQueue, LibMappingsHierarchy
from symtrace.marker_file import MarkerStats
from symtrace.model import (
    CategoryColor,
    Counter,
    CounterCategory,
    CounterOnThread,
    MarkerOnThread,
    MarkerSpan,
    SampleData,
    TracingTimings,
)
from symtrace.profile import (
    MarkerFieldFormat,
    MarkerFieldSchema,
    MarkerGraph,
    MarkerGraphType,
    MarkerLocation,
    MarkerSchema,
    MarkerTiming,
    Profile,
)
from symtrace.stack_converter import StackConverter, StackDepthLimitingFrameIter
from symtrace.unresolved_samples import UnresolvedSamples, UnresolvedStacks


def ns_to_ms(ns: int) -> float:
    # microsecond precision
    return (ns // 1000) / 1000.0


def string_field_schemas(field_names: Sequence[str]) -> List[MarkerFieldSchema]:
    return [MarkerFieldSchema(name, name, MarkerFieldFormat.STRING) for name in field_names]


def field_names_suffix(field_names: Sequence[str]) -> str:
    # backslashes and commas are escaped so ["a", "b"] and ["a,b"] never share a name
    return ",".join(name.replace("\\", "\\\\").replace(",", "\\,") for name in field_names)


class SpanMarkerWithTimings:
    """Fields: 0 time_idle, 1 time_busy, 2 name, 3.. extra fields."""

    FIXED_FIELD_COUNT = 3

    def __init__(
        self,
        profile: Profile,
        marker: MarkerOnThread,
        span: MarkerSpan,
        category_handles: Dict[str, int],
        marker_type: int,
        field_values: Sequence[str],
    ):
        event_or_span = marker.event_or_span

        if span.profiler_label is not None:
            self.label = profile.intern_string(span.profiler_label)
        else:
            self.label = profile.intern_string(str(span.span_type))

        category = category_handles.get(span.category)
        if category is None:
            category = profile.add_category(span.category, CategoryColor.GREEN)
            category_handles[span.category] = category

        self.category_handle = category
        self.timings: TracingTimings = span.timings
        self.message = profile.intern_string(event_or_span.message)
        self.marker_type_handle = marker_type
        self.extra_fields = [profile.intern_string(value) for value in field_values]

    @staticmethod
    def create_marker_type(profile: Profile, extra_field_names: Sequence[str]) -> int:
        all_fields = [
            MarkerFieldSchema("time_idle", "time_idle", MarkerFieldFormat.DURATION),
            MarkerFieldSchema("time_busy", "time_busy", MarkerFieldFormat.DURATION),
            MarkerFieldSchema("name", "name", MarkerFieldFormat.STRING),
        ]
        all_fields.extend(string_field_schemas(extra_field_names))

        return profile.register_marker_type(MarkerSchema(
            type_name=f"Span-{field_names_suffix(extra_field_names)}",
            locations=[MarkerLocation.MARKER_CHART, MarkerLocation.MARKER_TABLE],
            fields=all_fields,
            chart_label="{marker.data.name}",
            tooltip_label="{marker.data.name}",
            table_label="{marker.data.name}",
        ))

    def marker_type(self, profile: Profile) -> int:
        return self.marker_type_handle

    def name(self, profile: Profile) -> int:
        return self.label

    def category(self, profile: Profile) -> int:
        return self.category_handle

    def string_field_value(self, field_index: int) -> int:
        if field_index == 2:
            return self.message
        if field_index < self.FIXED_FIELD_COUNT:
            raise IndexError(f"field {field_index} is not a string field")
        return self.extra_fields[field_index - self.FIXED_FIELD_COUNT]

    def number_field_value(self, field_index: int) -> float:
        if field_index == 0:
            return ns_to_ms(self.timings.time_idle)
        if field_index == 1:
            return ns_to_ms(self.timings.time_busy)
        raise IndexError(f"field {field_index} is not a number field")


class EventMarker:
    """Fields: 0 message, 1.. extra fields."""

    def __init__(
        self,
        profile: Profile,
        category: int,
        marker: MarkerOnThread,
        marker_type: int,
        field_values: Sequence[str],
    ):
        event = marker.event_or_span

        self.category_handle = category
        self.message = profile.intern_string(event.message)
        self.target = profile.intern_string(event.target)
        self.marker_type_handle = marker_type
        self.extra_fields = [profile.intern_string(value) for value in field_values]

    @staticmethod
    def create_marker_type(profile: Profile, extra_field_names: Sequence[str]) -> int:
        all_fields = [MarkerFieldSchema("message", "Message", MarkerFieldFormat.STRING)]
        all_fields.extend(string_field_schemas(extra_field_names))

        return profile.register_marker_type(MarkerSchema(
            type_name=f"Event-{field_names_suffix(extra_field_names)}",
            locations=[MarkerLocation.MARKER_CHART, MarkerLocation.MARKER_TABLE],
            fields=all_fields,
            chart_label="{marker.data.message}",
            tooltip_label="{marker.data.message}",
            table_label="{marker.data.message}",
        ))

    def marker_type(self, profile: Profile) -> int:
        return self.marker_type_handle

    def name(self, profile: Profile) -> int:
        return self.target

    def category(self, profile: Profile) -> int:
        return self.category_handle

    def string_field_value(self, field_index: int) -> int:
        if field_index == 0:
            return self.message
        return self.extra_fields[field_index - 1]

    def number_field_value(self, field_index: int) -> float:
        raise IndexError(f"event markers have no number fields ({field_index})")


class CustomGraphMarker:
    """Fields: 0 value."""

    def __init__(self, name: int, category: int, marker_type: int, value: float):
        self.name_handle = name
        self.category_handle = category
        self.marker_type_handle = marker_type
        self.value = value

    @staticmethod
    def create_marker_type(profile: Profile, counter: Counter) -> int:
        return profile.register_marker_type(MarkerSchema(
            type_name=f"CustomGraph-{counter.name}",
            locations=[],
            fields=[MarkerFieldSchema("value", "Value", MarkerFieldFormat.DECIMAL, searchable=False)],
            graphs=[MarkerGraph("value", MarkerGraphType.LINE, counter.color)],
        ))

    def marker_type(self, profile: Profile) -> int:
        return self.marker_type_handle

    def name(self, profile: Profile) -> int:
        return self.name_handle

    def category(self, profile: Profile) -> int:
        return self.category_handle

    def string_field_value(self, field_index: int) -> int:
        raise IndexError(f"custom graph markers have no string fields ({field_index})")

    def number_field_value(self, field_index: int) -> float:
        if field_index == 0:
            return self.value
        raise IndexError(f"field {field_index} is not a number field")


class ProcessSampleData:
    """
    Everything recorded for one process, waiting to be resolved and
    written into a profile. It can be flushed exactly once.
    """

    def __init__(
        self,
        unresolved_samples: UnresolvedSamples,
        regular_lib_mapping_op_queue: LibMappingOpQueue,
        jitdump_lib_mapping_op_queues: Optional[List[LibMappingOpQueue]] = None,
        perf_map_mappings: Optional[LibMappingOpQueue] = None,
        markers: Optional[List[MarkerOnThread]] = None,
        counters: Optional[List[CounterOnThread]] = None,
        process: int = 0,
    ):
        self.unresolved_samples = unresolved_samples
        self.regular_lib_mapping_op_queue = regular_lib_mapping_op_queue
        self.jitdump_lib_mapping_op_queues = jitdump_lib_mapping_op_queues or []
        self.perf_map_mappings = perf_map_mappings
        self.markers = markers or []
        self.counters = counters or []
        self.process = process
        self.lib_mappings_hierarchy: Optional[LibMappingsHierarchy] = None
        self.flushed = False

    def is_empty(self) -> bool:
        return self.unresolved_samples.is_empty()

    def flush_samples_to_profile(
        self,
        profile: Profile,
        user_category: int,
        kernel_category: int,
        stacks: UnresolvedStacks,
        max_stack_depth: Optional[int] = None,
    ) -> MarkerStats:
        if self.flushed:
            raise RuntimeError("process sample data has already been flushed")
        self.flushed = True

        self.flush_samples(profile, user_category, kernel_category, stacks, max_stack_depth)
        stats = self.flush_markers(profile)
        self.flush_counters(profile)

        return stats

    def flush_samples(
        self,
        profile: Profile,
        user_category: int,
        kernel_category: int,
        stacks: UnresolvedStacks,
        max_stack_depth: Optional[int] = None,
    ):
        hierarchy = LibMappingsHierarchy(self.regular_lib_mapping_op_queue)
        for jitdump_lib_mapping_ops in self.jitdump_lib_mapping_op_queues:
            hierarchy.add_jitdump_lib_mappings_ops(jitdump_lib_mapping_ops)
        if self.perf_map_mappings is not None:
            hierarchy.add_perf_map_mappings(self.perf_map_mappings)
        self.lib_mappings_hierarchy = hierarchy

        stack_converter = StackConverter(user_category, kernel_category)
        samples = self.unresolved_samples.into_inner()

        for sample in samples:
            hierarchy.process_ops(sample.timestamp_mono)

            raw_frames = stacks.convert_back(sample.stack)
            frames = stack_converter.convert_stack(raw_frames, hierarchy, sample.extra_label_frame)
            frames = StackDepthLimitingFrameIter(frames, user_category, max_stack_depth)

            payload = sample.payload
            if isinstance(payload, SampleData):
                profile.add_sample(sample.thread, sample.timestamp, frames, payload.cpu_delta, payload.weight)
            else:
                profile.set_marker_stack(sample.thread, payload, frames)

        if util.verbose():
            print(f"> resolved {len(samples)} samples, {len(hierarchy.mappings)} mappings active at the end")

    def flush_markers(self, profile: Profile) -> MarkerStats:
        category_handles: Dict[str, int] = {}
        logging_category = profile.add_category(config.LOGGING_CATEGORY_NAME, CategoryColor.GREEN)

        span_marker_types: Dict[Tuple[str, ...], int] = {}
        event_marker_types: Dict[Tuple[str, ...], int] = {}

        stats = MarkerStats()

        for marker in self.markers:
            event_or_span = marker.event_or_span
            stats.process_span(event_or_span)

            extra_fields = sorted(event_or_span.extra_fields.items())
            field_names = [k for k, _ in extra_fields]
            field_values = [v for _, v in extra_fields]
            marker_type_key = tuple(field_names)

            span = event_or_span.marker_data

            if span is None:
                marker_type = event_marker_types.get(marker_type_key)
                if marker_type is None:
                    marker_type = EventMarker.create_marker_type(profile, field_names)
                    event_marker_types[marker_type_key] = marker_type

                event_marker = EventMarker(profile, logging_category, marker, marker_type, field_values)
                profile.add_marker(marker.thread, MarkerTiming.instant(event_or_span.start_time), event_marker)
            else:
                marker_type = span_marker_types.get(marker_type_key)
                if marker_type is None:
                    marker_type = SpanMarkerWithTimings.create_marker_type(profile, field_names)
                    span_marker_types[marker_type_key] = marker_type

                span_marker = SpanMarkerWithTimings(
                    profile, marker, span, category_handles, marker_type, field_values
                )
                profile.add_marker(
                    marker.thread, MarkerTiming.interval(event_or_span.start_time, span.end_time), span_marker
                )

        if not stats.is_empty():
            stats.dump()

        return stats

    def flush_counters(self, profile: Profile):
        for counter_on_thread in self.counters:
            counter = counter_on_thread.counter

            if counter.category == CounterCategory.CUSTOM:
                # counter tracks cannot show arbitrary graphs, use one marker per sample
                marker_type = CustomGraphMarker.create_marker_type(profile, counter)
                name = profile.intern_string(counter.name)

                for sample in counter.samples:
                    marker = CustomGraphMarker(name, Profile.OTHER_CATEGORY, marker_type, sample.value)
                    profile.add_marker(counter_on_thread.thread, MarkerTiming.instant(sample.timestamp), marker)
            else:
                counter_handle = profile.add_counter(
                    self.process, counter.name, counter.category, counter.description, counter.color
                )

                for sample in counter.samples:
                    profile.add_counter_sample(
                        counter_handle, sample.timestamp, sample.value, sample.modification_count
                    )
