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

from typing import Iterator, List, Optional, Sequence, Union

from symtrace import config
from symtrace.lib_mappings import LibMappings, LibMappingsHierarchy
from symtrace.model import FrameInfo, FrameKind, StackFrame

AddressResolver = Union[LibMappings, LibMappingsHierarchy]


class StackConverter:

    def __init__(self, user_category: int, kernel_category: int):
        self.user_category = user_category
        self.kernel_category = kernel_category

    def convert_frame(self, frame: StackFrame, lib_mappings: AddressResolver) -> FrameInfo:
        if frame.kind == FrameKind.LABEL:
            return FrameInfo(FrameKind.LABEL, self.user_category, label=frame.label)

        if frame.kind == FrameKind.KERNEL:
            category = self.kernel_category
        else:
            category = self.user_category

        converted = lib_mappings.convert_address(frame.address)

        if converted is None:
            return FrameInfo(frame.kind, category, frame.address, label=config.UNKNOWN_FRAME_LABEL)

        relative_address, info = converted

        if frame.kind == FrameKind.USER and info.category is not None:
            category = info.category

        return FrameInfo(frame.kind, category, frame.address, info, relative_address, info.symbol)

    def convert_stack(
        self,
        frames: Sequence[StackFrame],
        lib_mappings: AddressResolver,
        extra_label_frame: Optional[str] = None,
    ) -> List[FrameInfo]:
        """Convert leaf-to-root frames, keeping their order."""
        result: List[FrameInfo] = []

        if extra_label_frame is not None:
            result.append(FrameInfo(FrameKind.LABEL, self.user_category, label=extra_label_frame))

        for frame in frames:
            result.append(self.convert_frame(frame, lib_mappings))

        return result


class StackDepthLimitingFrameIter:
    """
    Yields at most `max_depth` frames. Longer stacks keep their leaf-most
    `max_depth - 1` frames, and everything root-ward of those is replaced
    by a single truncation frame.
    """

    def __init__(self, frames: Sequence[FrameInfo], category: int, max_depth: Optional[int] = None):
        if max_depth is None:
            max_depth = config.MAX_STACK_DEPTH
        if max_depth < 1:
            raise ValueError(f"max stack depth must be at least 1, got {max_depth}")

        self.frames = frames
        self.category = category
        self.max_depth = max_depth

    def is_truncated(self) -> bool:
        return len(self.frames) > self.max_depth

    def __iter__(self) -> Iterator[FrameInfo]:
        if not self.is_truncated():
            yield from self.frames
            return

        yield from self.frames[: self.max_depth - 1]
        yield FrameInfo(FrameKind.LABEL, self.category, label=config.TRUNCATED_STACK_LABEL)
