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
from typing import Dict, List, Optional

from symtrace.profile import MarkerSchema, Profile, ProfileFrame, ProfileMarker


def optional_string(profile: Profile, handle: Optional[int]) -> Optional[str]:
    return profile.get_string(handle) if handle is not None else None


def serialize_frames(profile: Profile, frames: Optional[List[ProfileFrame]]) -> Optional[List[Dict]]:
    if frames is None:
        return None

    result: List[Dict] = []

    for frame in frames:
        result.append({
            "kind": frame.kind.value,
            "category": frame.category,
            "address": frame.address,
            "lib": optional_string(profile, frame.lib),
            "relative_address": frame.relative_address,
            "label": optional_string(profile, frame.label),
        })

    return result


def serialize_schema(schema: MarkerSchema) -> Dict:
    return {
        "name": schema.type_name,
        "display": [location.value for location in schema.locations],
        "chartLabel": schema.chart_label,
        "tooltipLabel": schema.tooltip_label,
        "tableLabel": schema.table_label,
        "fields": [
            {"key": f.key, "label": f.label, "format": f.format.value, "searchable": f.searchable}
            for f in schema.fields
        ],
        "staticFields": [{"label": f.label, "value": f.value} for f in schema.static_fields],
        "graphs": [
            {"key": g.key, "type": g.graph_type.value, "color": g.color.value if g.color else None}
            for g in schema.graphs
        ],
    }


def serialize_marker(profile: Profile, marker: ProfileMarker) -> Dict:
    schema = profile.marker_schemas[marker.marker_type]
    data: Dict = {"type": schema.type_name}

    for field, value in zip(schema.fields, marker.field_values):
        data[field.key] = profile.get_string(value) if field.format.is_string() else value

    return {
        "name": profile.get_string(marker.name),
        "category": marker.category,
        "start": marker.timing.start,
        "end": marker.timing.end,
        "data": data,
        "stack": serialize_frames(profile, marker.stack),
    }


def profile_to_dict(profile: Profile) -> Dict:
    threads: List[Dict] = []

    for thread in profile.threads:
        threads.append({
            "pid": profile.processes[thread.process].pid,
            "tid": thread.tid,
            "name": thread.name,
            "is_main": thread.is_main,
            "samples": [
                {
                    "time": sample.timestamp,
                    "cpu_delta": sample.cpu_delta,
                    "weight": sample.weight,
                    "frames": serialize_frames(profile, sample.frames),
                }
                for sample in thread.samples
            ],
            "markers": [serialize_marker(profile, marker) for marker in thread.markers],
        })

    return {
        "meta": {"product": profile.product, "interval_ns": profile.interval_ns},
        "categories": [{"name": c.name, "color": c.color.value} for c in profile.categories],
        "marker_schemas": [serialize_schema(schema) for schema in profile.marker_schemas],
        "processes": [{"pid": p.pid, "name": p.name} for p in profile.processes],
        "threads": threads,
        "counters": [
            {
                "pid": profile.processes[counter.process].pid,
                "name": counter.name,
                "category": counter.category.value,
                "description": counter.description,
                "color": counter.color.value if counter.color else None,
                "samples": [
                    {"time": t, "value": v, "count": n} for t, v, n in counter.samples
                ],
            }
            for counter in profile.counters
        ],
        "strings": profile.strings,
    }


def export(profile: Profile, output_path: str):
    with open(output_path, "w") as fp:
        json.dump(profile_to_dict(profile), fp)
