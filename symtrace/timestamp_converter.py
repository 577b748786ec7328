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


class TimestampConverter:
    """Maps raw monotonic ticks to nanoseconds since the profile start."""

    def __init__(self, reference_raw: int = 0, raw_to_ns_factor: int = 1):
        self.reference_raw = reference_raw
        self.raw_to_ns_factor = raw_to_ns_factor

    def convert_time(self, raw: int) -> int:
        return (raw - self.reference_raw) * self.raw_to_ns_factor
