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

from symtrace.model import (
    CallstackNode,
    MarkerHandle,
    RawSample,
    SampleData,
    StackFrame,
    raw_sample_key,
)


class UnresolvedStacks:
    """
    Interned stacks shared by all samples of a process. Stacks are kept as
    a prefix tree of root-to-leaf nodes, so a stack is just the index of its
    leaf node.
    """

    def __init__(self):
        self.nodes: List[CallstackNode] = []
        self.node_index: Dict[Tuple[Optional[int], StackFrame], int] = {}

    def convert(self, frames: Sequence[StackFrame]) -> Optional[int]:
        """Intern a leaf-to-root frame list and return its stack index."""
        parent: Optional[int] = None

        for frame in reversed(frames):
            key = (parent, frame)
            stack_id = self.node_index.get(key)

            if stack_id is None:
                stack_id = len(self.nodes)
                self.nodes.append(CallstackNode(frame, parent, stack_id))
                self.node_index[key] = stack_id

            parent = stack_id

        return parent

    def convert_back(self, stack_id: Optional[int]) -> List[StackFrame]:
        """Return the leaf-to-root frames of an interned stack."""
        result: List[StackFrame] = []

        while stack_id is not None:
            node = self.nodes[stack_id]
            result.append(node.frame)
            stack_id = node.parent

        return result

    def __len__(self):
        return len(self.nodes)


class UnresolvedSamples:

    def __init__(self):
        self.samples: List[RawSample] = []

    def is_empty(self) -> bool:
        return not self.samples

    def __len__(self):
        return len(self.samples)

    def add_sample(
        self,
        thread: int,
        timestamp: int,
        timestamp_mono: int,
        stack: Optional[int],
        cpu_delta: int,
        weight: int = 1,
        extra_label_frame: Optional[str] = None,
    ):
        self.samples.append(
            RawSample(thread, timestamp, timestamp_mono, stack, SampleData(cpu_delta, weight), extra_label_frame)
        )

    def attach_stack_to_marker(
        self,
        thread: int,
        timestamp: int,
        timestamp_mono: int,
        stack: Optional[int],
        marker_handle: MarkerHandle,
        extra_label_frame: Optional[str] = None,
    ):
        self.samples.append(
            RawSample(thread, timestamp, timestamp_mono, stack, marker_handle, extra_label_frame)
        )

    def into_inner(self) -> List[RawSample]:
        samples = self.samples
        self.samples = []
        samples.sort(key=raw_sample_key)
        return samples
