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
from typing import Dict, Iterable, Optional, Sequence

from symtrace.model import Counter, CounterCategory, CounterSample, GraphColor
from symtrace.timestamp_converter import TimestampConverter
from symtrace.util import open_file_with_fallback


class CounterFileError(RuntimeError):
    pass


def get_graph_color(color: str) -> Optional[GraphColor]:
    try:
        return GraphColor(color)
    except ValueError:
        # includes "unspec"
        return None


def get_counter_category(category: str) -> CounterCategory:
    try:
        return CounterCategory(category)
    except ValueError:
        raise CounterFileError(f"unknown counter category: {category!r}") from None


def process_counter_definition_line(line: str) -> Counter:
    fields = line.rstrip("\r\n").split(",", 3)

    if len(fields) != 4:
        raise CounterFileError(f"invalid counter definition: {line!r}")

    category, name, description, color = fields

    return Counter(name, get_counter_category(category), description, get_graph_color(color))


def process_counter_line(line: str, timestamp_converter: TimestampConverter) -> CounterSample:
    fields = line.strip().split(",", 2)

    if len(fields) != 3:
        raise CounterFileError(f"invalid counter sample: {line!r}")

    timestamp, value_delta, number_of_operations_delta = fields

    try:
        return CounterSample(
            timestamp_converter.convert_time(int(timestamp)),
            float(value_delta),
            int(number_of_operations_delta),
        )
    except ValueError as e:
        raise CounterFileError(f"invalid counter sample: {line!r}") from e


def parse_counter_lines(lines: Iterable[str], timestamp_converter: TimestampConverter) -> Counter:
    """
    Format A: a `category,name,description,color` line followed by
    `timestamp,value_delta,number_of_operations_delta` lines.
    """
    lines = iter(lines)
    definition_line = next(lines, None)

    if definition_line is None or not definition_line.strip():
        raise CounterFileError("missing counter definition line")

    counter = process_counter_definition_line(definition_line)

    for line in lines:
        if not line.strip():
            continue
        counter.samples.append(process_counter_line(line, timestamp_converter))

    return counter


def parse_counter_json(content: str, timestamp_converter: TimestampConverter) -> Counter:
    """
    Format B: a single JSON object carrying the definition and a
    `samples` list of `[timestamp, value, modification_count]` triples.
    """
    try:
        doc: Dict = json.loads(content)
    except json.JSONDecodeError as e:
        raise CounterFileError(f"invalid counter json: {e}") from e

    if not isinstance(doc, dict) or "name" not in doc or "category" not in doc:
        raise CounterFileError("counter json needs at least 'name' and 'category'")

    counter = Counter(
        str(doc["name"]),
        get_counter_category(doc["category"]),
        str(doc.get("description") or ""),
        get_graph_color(str(doc.get("color") or "unspec")),
    )

    samples = doc.get("samples", [])
    if not isinstance(samples, list):
        raise CounterFileError(f"counter samples must be a list, got {samples!r}")

    for entry in samples:
        if not isinstance(entry, list) or len(entry) != 3:
            raise CounterFileError(f"invalid counter sample: {entry!r}")

        timestamp, value, modification_count = entry

        try:
            sample = CounterSample(
                timestamp_converter.convert_time(int(timestamp)),
                float(value),
                int(modification_count),
            )
        except (TypeError, ValueError) as e:
            raise CounterFileError(f"invalid counter sample: {entry!r}") from e

        counter.samples.append(sample)

    return counter


def parse_counter_file(fp, timestamp_converter: TimestampConverter) -> Counter:
    content = fp.read()

    if content.lstrip().startswith("{"):
        return parse_counter_json(content, timestamp_converter)

    return parse_counter_lines(content.splitlines(), timestamp_converter)


def get_counter(
    counter_file: str,
    lookup_dirs: Optional[Sequence[str]] = None,
    timestamp_converter: Optional[TimestampConverter] = None,
) -> Counter:
    timestamp_converter = timestamp_converter or TimestampConverter()
    fp, _true_path = open_file_with_fallback(counter_file, lookup_dirs)

    with fp:
        return parse_counter_file(fp, timestamp_converter)
