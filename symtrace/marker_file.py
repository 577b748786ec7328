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

import json
import os
import re
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

from symtrace import config
from symtrace.logger import logger
from symtrace.model import (
    EventOrSpanMarker,
    MarkerSpan,
    SpanType,
    TracingTimings,
    marker_start_key,
)
from symtrace.timestamp_converter import TimestampConverter
from symtrace.util import open_file_with_fallback

# AtomType[-AtomId]/CollectionType-CollectionId
ACTION_PATTERN = re.compile(r"^(?P<atom>[^/]+)/(?P<collection_type>[^/-]+)-(?P<collection_id>.+)$")

TIME_UNIT_NS = {
    "s": 1_000_000_000,
    "ms": 1_000_000,
    "us": 1_000,
    "ns": 1,
}


def parse_timing_field(fields: Dict, field: str) -> Optional[int]:
    """Parse a `<number><unit>` field such as `1.5ms` into nanoseconds."""
    if field not in fields:
        return None

    value = fields[field]
    if not isinstance(value, str):
        raise ValueError(f"{field} is not a string: {value!r}")

    field_str = value.strip().replace("µ", "u").replace("μ", "u")

    end_idx = -1
    for idx, c in enumerate(field_str):
        if c.isdigit() or c == ".":
            end_idx = idx

    num, unit = field_str[: end_idx + 1], field_str[end_idx + 1:]

    if unit not in TIME_UNIT_NS:
        raise ValueError(f"unknown unit '{unit}' in field {field_str}")

    return int(round(float(num) * TIME_UNIT_NS[unit]))


def value_to_str_dict(value) -> Dict[str, str]:
    if not isinstance(value, dict):
        return {}

    return {k: v if isinstance(v, str) else json.dumps(v) for k, v in value.items()}


def split_action(action: str, message: str, span_type: SpanType) -> Tuple[str, Optional[str], Optional[str]]:
    """Return (category, profiler_label, stats_label) for a span action."""
    match = ACTION_PATTERN.match(action)

    if not match:
        return action, None, None

    atom_type = match.group("atom").split("-", 1)[0]
    collection_type = match.group("collection_type")
    collection_id = match.group("collection_id")[: config.LABEL_ID_MAX_LEN]

    profiler_label = f"{collection_type}-{collection_id} {span_type}"
    stats_label = f"{collection_type}::{message}-{collection_id}"

    return atom_type, profiler_label, stats_label


class SpanTracker:

    def __init__(self, start_keyword: str, end_keyword: str):
        self.start_keyword = start_keyword
        self.end_keyword = end_keyword
        self.started_span_cache: Dict[int, Dict] = {}

    def handles(self, message: str) -> bool:
        return message == self.start_keyword or message == self.end_keyword

    def process_line(self, id: int, record: Dict, message: str) -> Optional[Tuple[Dict, Dict]]:
        span_exists = id in self.started_span_cache
        expected_keyword = self.end_keyword if span_exists else self.start_keyword

        if message != expected_keyword:
            logger.warning("Dropping span - expected '%s', got '%s' for span %s", expected_keyword, message, record)
            return None

        if span_exists:
            return self.started_span_cache.pop(id), record

        self.started_span_cache[id] = record
        return None


class MarkerFile:
    """
    Iterates over the markers of a line-oriented span log. Lines look like
    `<id>[,<tid>] <json>`; id 0 is a plain event, any other id is a span
    that is paired by either the new/close or the enter/exit keywords.
    """

    def __init__(self, lines: Iterable[Union[str, bytes]], timestamp_converter: Optional[TimestampConverter] = None):
        self.lines = lines
        self.timestamp_converter = timestamp_converter or TimestampConverter()
        self.new_close_tracker = SpanTracker(*config.NEW_CLOSE_KEYWORDS)
        self.enter_exit_tracker = SpanTracker(*config.ENTER_EXIT_KEYWORDS)
        self.dropped_line_count = 0

    def __iter__(self) -> Iterator[EventOrSpanMarker]:
        for line_no, line in enumerate(self.lines, 1):
            if isinstance(line, bytes):
                try:
                    line = line.decode("utf-8")
                except UnicodeDecodeError as e:
                    self._drop(line_no, f"invalid utf-8 ({e.reason})", repr(line))
                    continue

            line = line.rstrip("\r\n")
            if not line.strip():
                continue

            marker = self.process_line(line, line_no)
            if marker is not None:
                yield marker

    def _drop(self, line_no: int, reason: str, line: str):
        self.dropped_line_count += 1
        logger.warning("line %d: %s, dropping '%s'", line_no, reason, line)

    @staticmethod
    def read_timestamp(record: Dict) -> int:
        return int(record.get("timestamp", 0))

    def process_line(self, line: str, line_no: int = 0) -> Optional[EventOrSpanMarker]:
        ids, sep, json_str = line.partition(" ")
        if not sep:
            self._drop(line_no, "no id prefix", line)
            return None

        id_str, _, tid_str = ids.partition(",")

        try:
            id = int(id_str)
            tid = int(tid_str) if tid_str else None
        except ValueError:
            self._drop(line_no, "invalid id", line)
            return None

        if id < 0:
            self._drop(line_no, "negative id", line)
            return None

        try:
            record = json.loads(json_str)
        except json.JSONDecodeError:
            self._drop(line_no, "invalid json", line)
            return None

        if not isinstance(record, dict):
            self._drop(line_no, "record is not an object", line)
            return None

        try:
            if id == 0:
                return self.process_event(record)
            return self.process_span_record(id, tid, record)
        except (TypeError, ValueError) as e:
            self._drop(line_no, str(e), line)
            return None

    def process_span_record(self, id: int, tid: Optional[int], record: Dict) -> Optional[EventOrSpanMarker]:
        fields = record.get("fields")
        message = fields.get("message") if isinstance(fields, dict) else None

        if self.new_close_tracker.handles(message):
            pair = self.new_close_tracker.process_line(id, record, message)
            span_type = SpanType.TOTAL
        elif self.enter_exit_tracker.handles(message):
            pair = self.enter_exit_tracker.process_line(id, record, message)
            span_type = SpanType.RUNNING
        else:
            return None

        if pair is None:
            return None

        start, end = pair
        return self.process_complete_span(span_type, start, end, tid)

    def process_complete_span(
        self, span_type: SpanType, start: Dict, end: Dict, tid: Optional[int] = None
    ) -> EventOrSpanMarker:
        fields = end.get("fields")
        if not isinstance(fields, dict):
            fields = {}

        start_time = self.read_timestamp(start)
        end_time = self.read_timestamp(end)

        if end_time < start_time:
            raise ValueError(f"span ends before it starts ({start_time} > {end_time})")

        extra_fields = value_to_str_dict(end.get("span"))
        message = extra_fields.pop("name", "")
        action = extra_fields.get("action", "-")

        # tid only makes sense for running spans
        if span_type == SpanType.RUNNING and tid is not None:
            extra_fields["tid"] = str(tid)

        category, profiler_label, stats_label = split_action(action, message, span_type)

        time_busy = parse_timing_field(fields, "time.busy")
        if time_busy is None:
            time_busy = end_time - start_time
        time_idle = parse_timing_field(fields, "time.idle") or 0

        return EventOrSpanMarker(
            self.timestamp_converter.convert_time(start_time),
            message,
            str(end.get("target", "")),
            extra_fields,
            MarkerSpan(
                span_type,
                self.timestamp_converter.convert_time(end_time),
                TracingTimings(time_busy, time_idle),
                category,
                profiler_label,
                stats_label,
            ),
        )

    def process_event(self, record: Dict) -> Optional[EventOrSpanMarker]:
        extra_fields = value_to_str_dict(record.get("fields"))
        message = extra_fields.pop("message", None)

        if message is None:
            raise ValueError("event without a message")

        return EventOrSpanMarker(
            self.timestamp_converter.convert_time(self.read_timestamp(record)),
            message,
            str(record.get("target", "")),
            extra_fields,
        )


def parse_markers(
    lines: Iterable[Union[str, bytes]], timestamp_converter: Optional[TimestampConverter] = None
) -> List[EventOrSpanMarker]:
    markers = list(MarkerFile(lines, timestamp_converter))
    # stable, so markers with equal start times keep their log order
    markers.sort(key=marker_start_key)
    return markers


def get_markers(
    marker_file: str,
    lookup_dirs: Optional[Sequence[str]] = None,
    timestamp_converter: Optional[TimestampConverter] = None,
) -> List[EventOrSpanMarker]:
    fp, _true_path = open_file_with_fallback(marker_file, lookup_dirs, binary=True)

    with fp:
        return parse_markers(fp, timestamp_converter)


class MarkerFileInfo:
    def __init__(self, prefix: str, pid: int, tid: Optional[int]):
        self.prefix = prefix
        self.pid = pid
        self.tid = tid


def parse_marker_file_path(path: str) -> Optional[MarkerFileInfo]:
    """Split `<prefix>-<pid>[-<tid>].txt` into its parts."""
    file_name, _ = os.path.splitext(os.path.basename(path))
    parts = file_name.split("-", 2)

    try:
        pid = int(parts[1])
        tid = int(parts[2]) if len(parts) == 3 else None
    except (IndexError, ValueError):
        return None

    return MarkerFileInfo(parts[0], pid, tid)


def format_duration(ns: int) -> str:
    s, rest = divmod(ns, 1_000_000_000)
    ms, rest = divmod(rest, 1_000_000)
    us = rest // 1000

    duration_str = f"{us}us"
    if ms:
        duration_str = f"{ms}ms " + duration_str
    if s:
        duration_str = f"{s}s " + duration_str

    return duration_str


class MarkerStats:

    def __init__(self):
        self.per_collection_map: Dict[str, TracingTimings] = {}

    def is_empty(self) -> bool:
        return not self.per_collection_map

    def process_span(self, marker: EventOrSpanMarker):
        span = marker.marker_data

        if span is None or span.span_type != SpanType.TOTAL or span.stats_label is None:
            return

        timings = self.per_collection_map.setdefault(span.stats_label, TracingTimings())
        timings += span.timings

    def calc_per_type(self) -> Dict[str, TracingTimings]:
        per_type: Dict[str, TracingTimings] = {}

        for collection, timings in self.per_collection_map.items():
            collection_type = collection.split("-", 1)[0]
            per_type.setdefault(collection_type, TracingTimings())
            per_type[collection_type] += timings

        return per_type

    @staticmethod
    def ranked(timings_map: Dict[str, TracingTimings], callback: Callable[[TracingTimings], int]) -> List[Tuple[str, int]]:
        timings = [(k, callback(v)) for k, v in timings_map.items()]
        timings.sort(key=lambda kv: (-kv[1], kv[0]))
        return timings

    def dump_stat(self, title: str, timings_map: Dict[str, TracingTimings], callback: Callable[[TracingTimings], int]):
        print(f"\t{title}:")
        for k, v in self.ranked(timings_map, callback):
            print(f"\t\t{k:<40}\t{format_duration(v)}")

    def dump_stats_map(self, title: str, timings_map: Dict[str, TracingTimings]):
        print(f"{title}:")

        self.dump_stat("Total", timings_map, lambda t: t.total)
        self.dump_stat("Busy", timings_map, lambda t: t.time_busy)
        self.dump_stat("Idle", timings_map, lambda t: t.time_idle)

    def dump(self):
        self.dump_stats_map("Per Type", self.calc_per_type())
        self.dump_stats_map("Per Collection", self.per_collection_map)
