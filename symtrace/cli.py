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

import argparse
import logging
import os
import sys

from symtrace import config
from symtrace import util
from symtrace.counter_file import get_counter
from symtrace.export import export
from symtrace.lib_mappings import LibMappingOpQueue
from symtrace.logger import configure_logging
from symtrace.marker_file import MarkerStats, format_duration, get_markers, parse_marker_file_path
from symtrace.model import CategoryColor, CounterOnThread, MarkerOnThread
from symtrace.process_sample_data import ProcessSampleData
from symtrace.profile import Profile
from symtrace.timestamp_converter import TimestampConverter
from symtrace.unresolved_samples import UnresolvedSamples, UnresolvedStacks


def cmd_markers(args):
    lookup_dirs = args.lookup_dirs or []
    markers = get_markers(args.file_path, lookup_dirs, TimestampConverter())
    stats = MarkerStats()

    for marker in markers:
        stats.process_span(marker)
        span = marker.marker_data

        if span is None:
            print(f"{marker.start_time}\tevent\t{marker.target}\t{marker.message}")
        else:
            duration = format_duration(span.end_time - marker.start_time)
            print(f"{marker.start_time}\t{span.span_type}\t{span.category}\t{marker.message}\t{duration}")

    print(f"{len(markers)} markers")

    if not stats.is_empty():
        stats.dump()


def cmd_counter(args):
    counter = get_counter(args.file_path, args.lookup_dirs or [], TimestampConverter())
    color = counter.color.value if counter.color else "-"

    util.prt(f"{counter.name} [{counter.category.value}] {color}: {counter.description}", util.ANSI.BOLD)

    for sample in counter.samples:
        print(f"{sample.timestamp}\t{sample.value}\t{sample.modification_count}")


def cmd_convert(args):
    lookup_dirs = args.lookup_dirs or []
    output_path = args.output

    if not args.marker_files and not args.counter_files:
        raise RuntimeError("nothing to convert, pass at least one marker or counter file")

    if not output_path:
        first_file = (args.marker_files or args.counter_files)[0]
        file_prefix, _ = os.path.splitext(first_file)
        output_path = file_prefix + config.DEFAULT_EXPORT_SUFFIX

    pid = args.pid
    if pid is None:
        info = parse_marker_file_path(args.marker_files[0]) if args.marker_files else None
        pid = info.pid if info else 0

    timestamp_converter = TimestampConverter()
    profile = Profile()
    process = profile.add_process(pid, args.name or f"pid {pid}")
    thread = profile.add_thread(process, pid, args.name or "", is_main=True)
    user_category = profile.add_category(config.USER_CATEGORY_NAME, CategoryColor.YELLOW)
    kernel_category = profile.add_category(config.KERNEL_CATEGORY_NAME, CategoryColor.ORANGE)

    markers = []
    for marker_file in args.marker_files or []:
        for marker in get_markers(marker_file, lookup_dirs, timestamp_converter):
            markers.append(MarkerOnThread(thread, marker))

    counters = []
    for counter_file in args.counter_files or []:
        counters.append(CounterOnThread(thread, get_counter(counter_file, lookup_dirs, timestamp_converter)))

    process_sample_data = ProcessSampleData(
        UnresolvedSamples(), LibMappingOpQueue(), markers=markers, counters=counters, process=process
    )
    process_sample_data.flush_samples_to_profile(profile, user_category, kernel_category, UnresolvedStacks())

    export(profile, output_path)
    print(f"profile file: {output_path}")


def cmd(args):
    subparser: str = args.subparser

    if subparser == "markers":
        cmd_markers(args)
    elif subparser == "counter":
        cmd_counter(args)
    elif subparser == "convert":
        cmd_convert(args)


def add_common_arguments(parser):
    parser.add_argument(
        "-L", "--lookup_dir", dest="lookup_dirs", action="append", help="extra directory to look for input files"
    )
    parser.add_argument(
        "-v", "--verbose", dest="verbose", action="store_true", help="show verbose info"
    )
    parser.add_argument(
        "--log_dir", dest="log_dir", help="also write the log to symtrace.log in this directory"
    )


def main():
    parser = argparse.ArgumentParser(description="symtrace command line tool.")

    subparser = parser.add_subparsers(dest="subparser", help="sub-command help")

    # markers
    markers_parser = subparser.add_parser("markers", help="print the markers of a span log")
    markers_parser.add_argument("file_path", help="marker file path")
    add_common_arguments(markers_parser)

    # counter
    counter_parser = subparser.add_parser("counter", help="print a counter file")
    counter_parser.add_argument("file_path", help="counter file path")
    add_common_arguments(counter_parser)

    # convert
    convert_parser = subparser.add_parser("convert", help="convert marker and counter files into a profile")
    convert_parser.add_argument(
        "-m", "--markers", dest="marker_files", action="append", help="marker file, may be repeated"
    )
    convert_parser.add_argument(
        "-c", "--counter", dest="counter_files", action="append", help="counter file, may be repeated"
    )
    convert_parser.add_argument("-p", "--pid", dest="pid", type=int, help="process id")
    convert_parser.add_argument("-n", "--name", dest="name", help="process name")
    convert_parser.add_argument("-o", "--output", dest="output", help="profile output path")
    add_common_arguments(convert_parser)

    if len(sys.argv) == 1:
        parser.print_help()
        sys.exit(1)

    args = parser.parse_args()

    util.set_verbose(args.verbose)
    configure_logging(logging.DEBUG if args.verbose else None, args.log_dir)

    cmd(args)


if __name__ == "__main__":
    main()
