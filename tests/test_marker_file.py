import json

import pytest

from symtrace.marker_file import (
    MarkerFile,
    MarkerStats,
    get_markers,
    parse_marker_file_path,
    parse_markers,
    parse_timing_field,
)
from symtrace.model import SpanType, TracingTimings
from symtrace.timestamp_converter import TimestampConverter


def line(id, record, tid=None):
    ids = f"{id},{tid}" if tid is not None else f"{id}"
    return f"{ids} {json.dumps(record)}"


def span_record(message, timestamp, name="work", action="cpu/work-42", **fields):
    return {
        "timestamp": str(timestamp),
        "target": "app::worker",
        "fields": dict(message=message, **fields),
        "span": {"name": name, "action": action},
    }


def test_new_close_pair_yields_one_total_span():
    markers = parse_markers([
        '1 {"fields":{"message":"new"}}',
        '1 {"fields":{"message":"close"},"span":{"name":"x","action":"cpu/work-42"}}',
    ])

    assert len(markers) == 1
    marker = markers[0]
    span = marker.marker_data
    assert marker.message == "x"
    assert span.span_type == SpanType.TOTAL
    assert span.category == "cpu"
    assert span.stats_label == "work::x-42"
    assert span.profiler_label == "work-42 Total"
    assert marker.extra_fields == {"action": "cpu/work-42"}


def test_enter_exit_pairs_recur_for_same_id():
    markers = parse_markers([
        line(7, span_record("enter", 100)),
        line(7, span_record("exit", 150)),
        line(7, span_record("enter", 200)),
        line(7, span_record("exit", 260)),
    ])

    assert [m.marker_data.span_type for m in markers] == [SpanType.RUNNING, SpanType.RUNNING]
    assert [(m.start_time, m.marker_data.end_time) for m in markers] == [(100, 150), (200, 260)]


def test_close_without_new_is_dropped_and_later_pair_survives():
    marker_file = MarkerFile([
        line(3, span_record("close", 10)),
        line(3, span_record("new", 20)),
        line(3, span_record("close", 30)),
    ])
    markers = list(marker_file)

    assert len(markers) == 1
    assert markers[0].start_time == 20
    assert markers[0].marker_data.end_time == 30


def test_duplicate_start_is_dropped_and_first_start_kept():
    markers = parse_markers([
        line(3, span_record("new", 10)),
        line(3, span_record("new", 20)),
        line(3, span_record("close", 30)),
    ])

    assert len(markers) == 1
    assert markers[0].start_time == 10


def test_conventions_pair_independently_on_same_id():
    markers = parse_markers([
        line(5, span_record("new", 0)),
        line(5, span_record("enter", 10)),
        line(5, span_record("exit", 20)),
        line(5, span_record("close", 30)),
    ])

    assert [m.marker_data.span_type for m in markers] == [SpanType.TOTAL, SpanType.RUNNING]


def test_markers_are_sorted_by_start_time_stably():
    markers = parse_markers([
        line(0, {"timestamp": "50", "target": "t", "fields": {"message": "late"}}),
        line(2, span_record("new", 5)),
        line(0, {"timestamp": "5", "target": "t", "fields": {"message": "early-a"}}),
        line(2, span_record("close", 60)),
        line(0, {"timestamp": "5", "target": "t", "fields": {"message": "early-b"}}),
    ])

    starts = [m.start_time for m in markers]
    assert starts == sorted(starts)
    # the span is emitted when it closes, after early-a was read
    assert [m.message for m in markers if m.start_time == 5] == ["early-a", "work", "early-b"]
    assert markers[-1].message == "late"


def test_event_markers_keep_extra_fields():
    markers = parse_markers([
        line(0, {"timestamp": "12", "target": "net", "fields": {"message": "sent", "bytes": 512, "peer": "a"}}),
    ])

    assert len(markers) == 1
    event = markers[0]
    assert event.marker_data is None
    assert event.target == "net"
    assert event.extra_fields == {"bytes": "512", "peer": "a"}


def test_malformed_lines_are_dropped():
    marker_file = MarkerFile([
        "not-a-number {}",
        "1 {broken json",
        "no_space_here",
        "0 []",
        '0 {"timestamp": "1", "fields": {}}',
        line(0, {"timestamp": "2", "fields": {"message": "ok"}}),
    ])
    markers = list(marker_file)

    assert [m.message for m in markers] == ["ok"]
    assert marker_file.dropped_line_count == 5


def test_tid_is_attached_to_running_spans_only():
    markers = parse_markers([
        line(4, span_record("enter", 1), tid=99),
        line(4, span_record("exit", 2), tid=99),
        line(6, span_record("new", 1), tid=99),
        line(6, span_record("close", 2), tid=99),
    ])

    running = [m for m in markers if m.marker_data.span_type == SpanType.RUNNING][0]
    total = [m for m in markers if m.marker_data.span_type == SpanType.TOTAL][0]
    assert running.extra_fields["tid"] == "99"
    assert "tid" not in total.extra_fields


@pytest.mark.parametrize("value, expected", [
    ("2s", 2_000_000_000),
    ("1.5ms", 1_500_000),
    ("12us", 12_000),
    ("12µs", 12_000),
    ("7ns", 7),
])
def test_parse_timing_field_units(value, expected):
    assert parse_timing_field({"time.busy": value}, "time.busy") == expected


def test_parse_timing_field_rejects_unknown_unit():
    assert parse_timing_field({}, "time.busy") is None
    with pytest.raises(ValueError):
        parse_timing_field({"time.busy": "3min"}, "time.busy")


def test_span_timings_from_fields_or_wall_time():
    markers = parse_markers([
        line(1, span_record("new", 1000)),
        line(1, span_record("close", 5000, **{"time.busy": "2us", "time.idle": "1us"})),
        line(2, span_record("new", 1000)),
        line(2, span_record("close", 1500)),
    ])

    timings = [m.marker_data.timings for m in markers]
    assert TracingTimings(2000, 1000) in timings
    assert TracingTimings(500, 0) in timings


def test_action_without_collection_is_whole_category():
    markers = parse_markers([
        line(1, span_record("new", 0, action="render")),
        line(1, span_record("close", 1, action="render")),
    ])

    span = markers[0].marker_data
    assert span.category == "render"
    assert span.profiler_label is None
    assert span.stats_label is None


def test_action_ids_are_truncated_and_atom_id_stripped():
    markers = parse_markers([
        line(1, span_record("new", 0, name="load", action="io-17/table-0123456789abcdef")),
        line(1, span_record("close", 1, name="load", action="io-17/table-0123456789abcdef")),
    ])

    span = markers[0].marker_data
    assert span.category == "io"
    assert span.profiler_label == "table-01234567 Total"
    assert span.stats_label == "table::load-01234567"


def test_timestamps_go_through_converter():
    markers = parse_markers(
        [line(0, {"timestamp": "110", "fields": {"message": "m"}})],
        TimestampConverter(reference_raw=100, raw_to_ns_factor=1000),
    )

    assert markers[0].start_time == 10_000


def test_get_markers_reads_file_with_lookup_dirs(tmp_path):
    marker_dir = tmp_path / "markers"
    marker_dir.mkdir()
    (marker_dir / "marker-42-43.txt").write_text(
        line(0, {"timestamp": "9", "fields": {"message": "b"}}) + "\n"
        + line(0, {"timestamp": "3", "fields": {"message": "a"}}) + "\n"
    )

    markers = get_markers(str(tmp_path / "marker-42-43.txt"), [str(marker_dir)])

    assert [m.message for m in markers] == ["a", "b"]


def test_invalid_utf8_line_is_dropped_and_stream_continues(tmp_path):
    path = tmp_path / "marker-1.txt"
    path.write_bytes(
        line(0, {"timestamp": "1", "fields": {"message": "a"}}).encode() + b"\n"
        + b'0 {"timestamp": "2", "fields": {"message": "b\xff\xfe"}}\n'
        + line(0, {"timestamp": "3", "fields": {"message": "c", "time": "1\xb5s"}}).encode() + b"\n"
    )

    markers = get_markers(str(path))

    assert [m.message for m in markers] == ["a", "c"]


def test_byte_lines_are_decoded_per_line():
    marker_file = MarkerFile([
        b'0 {"timestamp": "5", "fields": {"message": "caf\xc3\xa9"}}\r\n',
        b"\xff\n",
        b"\n",
    ])

    assert [m.message for m in marker_file] == ["café"]
    assert marker_file.dropped_line_count == 1


def test_get_markers_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        get_markers(str(tmp_path / "missing.txt"))


def test_parse_marker_file_path():
    info = parse_marker_file_path("/tmp/marker-42-43.txt")
    assert (info.prefix, info.pid, info.tid) == ("marker", 42, 43)

    info = parse_marker_file_path("marker-42.txt")
    assert (info.pid, info.tid) == (42, None)

    assert parse_marker_file_path("markers.txt") is None


def test_marker_stats_aggregate_total_spans(capsys):
    markers = parse_markers([
        line(1, span_record("new", 0, name="x", action="cpu/work-42")),
        line(1, span_record("close", 10, name="x", action="cpu/work-42", **{"time.busy": "3us", "time.idle": "1us"})),
        line(2, span_record("new", 0, name="x", action="cpu/work-42")),
        line(2, span_record("close", 10, name="x", action="cpu/work-42", **{"time.busy": "2us", "time.idle": "0us"})),
        line(3, span_record("new", 0, name="y", action="io/read-7")),
        line(3, span_record("close", 10, name="y", action="io/read-7", **{"time.busy": "1us", "time.idle": "9us"})),
        line(4, span_record("enter", 0, name="x", action="cpu/work-42")),
        line(4, span_record("exit", 10, name="x", action="cpu/work-42", **{"time.busy": "100us"})),
    ])

    stats = MarkerStats()
    for marker in markers:
        stats.process_span(marker)

    assert stats.per_collection_map == {
        "work::x-42": TracingTimings(5000, 1000),
        "read::y-7": TracingTimings(1000, 9000),
    }
    assert set(stats.calc_per_type()) == {"work::x", "read::y"}

    ranked = MarkerStats.ranked(stats.per_collection_map, lambda t: t.total)
    assert [k for k, _ in ranked] == ["read::y-7", "work::x-42"]

    stats.dump()
    out = capsys.readouterr().out
    assert out.index("Per Type:") < out.index("Per Collection:")
    assert "work::x-42" in out
